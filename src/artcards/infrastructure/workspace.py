"""Workspace: the single dependency injected into every service.

Owns the record store, the entity repository, the secure path resolver
and (lazily) the plugin manager and image provider. Mirrors the on-disk
layout::

    {data_root}/
        records/   projects/*.json, cards/{project}/*.json, keys/keyring.json
        output/    {outputRoot}/{outputSubfolder}/{card}_vNNN.png
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from artcards.infrastructure.paths import SecurePathResolver
from artcards.infrastructure.records import RecordStore
from artcards.infrastructure.repository import EntityRepository

if TYPE_CHECKING:
    from pathlib import Path

    from artcards.config.settings import ArtSettings
    from artcards.infrastructure.provider import ImageProvider
    from artcards.plugins.manager import PluginManager

logger = logging.getLogger(__name__)


class Workspace:
    """Data root plus the collaborators that operate on it."""

    def __init__(
        self,
        settings: ArtSettings,
        *,
        provider: ImageProvider | None = None,
    ) -> None:
        self.settings = settings
        self.store = RecordStore(settings.records_root)
        self.repository = EntityRepository(self.store)
        self.paths = SecurePathResolver(settings.output_root, data_root=settings.data_root)
        self._provider = provider
        self._plugin_manager: PluginManager | None = None

    @property
    def root(self) -> Path:
        return self.settings.data_root

    @property
    def provider(self) -> ImageProvider:
        """The image provider (built from ``[provider]`` on first access)."""
        if self._provider is None:
            from artcards.infrastructure.provider import create_provider

            self._provider = create_provider(self.settings.provider)
        return self._provider

    @property
    def plugin_manager(self) -> PluginManager | None:
        return self._plugin_manager

    def init_plugins(self) -> None:
        """Discover entry-point plugins. Failures are logged, never raised."""
        from artcards.plugins.manager import PluginManager

        pm = PluginManager()
        try:
            names = pm.discover_and_load()
        except Exception:
            logger.warning("Plugin discovery failed", exc_info=True)
            names = []
        logger.debug("Loaded plugins: %s", names)
        self._plugin_manager = pm
