"""Plugin registry wrapping a pluggy manager with the artcards lifecycle hooks."""

from __future__ import annotations

import inspect
import logging
from typing import Any

import pluggy

from artcards.plugins.hookspecs import PROJECT_NAME, ArtcardsHookSpec

ENTRY_POINT_GROUP = "artcards.plugins"

logger = logging.getLogger(__name__)


class PluginManager:
    """Registry of lifecycle plugins for one workspace."""

    def __init__(self) -> None:
        self._pm = pluggy.PluginManager(PROJECT_NAME)
        self._pm.add_hookspecs(ArtcardsHookSpec)
        self._loaded = False

    @property
    def is_loaded(self) -> bool:
        """True once entry points have been scanned."""
        return self._loaded

    def discover_and_load(self) -> list[str]:
        """Register every plugin advertised under ``artcards.plugins``.

        Entry points may name either a plugin class or an instance.
        Returns the names of everything now registered.
        """
        count = self._pm.load_setuptools_entrypoints(ENTRY_POINT_GROUP)
        logger.debug("Entry points scanned for %s: %d found", ENTRY_POINT_GROUP, count)
        self._instantiate_classes()
        self._loaded = True
        return self.list_plugin_names()

    def register_plugin(self, plugin: object, name: str | None = None) -> None:
        label = name or type(plugin).__name__
        self._pm.register(plugin, name=label)
        logger.debug("Registered plugin %s", label)

    def unregister(self, plugin: object) -> None:
        self._pm.unregister(plugin)

    def list_plugin_names(self) -> list[str]:
        return sorted(self._pm.get_name(p) or type(p).__name__ for p in self._pm.get_plugins())

    def call(self, hook_name: str, payload: dict[str, Any]) -> None:
        """Fire *hook_name* with *payload* as keyword arguments.

        Raises ``ValueError`` for a hook that is not part of the lifecycle,
        and lets a plugin's own exception propagate.
        """
        hook = getattr(self._pm.hook, hook_name, None)
        if hook is None:
            raise ValueError(f"Unknown lifecycle hook: {hook_name}")
        hook(**payload)

    def _instantiate_classes(self) -> None:
        # A class registered straight from an entry point would be called
        # with an unbound ``self``; swap each one for an instance.
        for plugin in list(self._pm.get_plugins()):
            if not inspect.isclass(plugin):
                continue
            label = self._pm.get_name(plugin) or plugin.__name__
            self._pm.unregister(plugin)
            try:
                instance = plugin()
            except Exception:
                logger.warning("Dropping plugin %s: constructor failed", label, exc_info=True)
                continue
            self._pm.register(instance, name=label)
