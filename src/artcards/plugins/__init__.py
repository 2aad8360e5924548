"""Extension layer: lifecycle hooks via pluggy.

Discovery: entry_points (pip-installed) in the ``artcards.plugins`` group.
INVARIANT: Plugin failures are warnings, never errors.
"""

from artcards.plugins.hookspecs import hookimpl
from artcards.plugins.manager import PluginManager

__all__ = ["PluginManager", "hookimpl"]
