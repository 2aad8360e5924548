"""Subcommand modules for artcards.

``register_commands()`` uses deferred imports to keep ``artcards --help``
fast.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Register all command groups and standalone commands on the root CLI group."""
    # --- Groups ---
    from artcards.commands.card import card
    from artcards.commands.gallery import gallery
    from artcards.commands.keys import keys
    from artcards.commands.project import project

    cli.add_command(project)
    cli.add_command(card)
    cli.add_command(gallery)
    cli.add_command(keys)

    # --- Standalone commands ---
    from artcards.commands.generate import generate

    cli.add_command(generate)
