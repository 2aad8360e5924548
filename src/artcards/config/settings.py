"""ArtSettings: the one settings object every command and service reads.

Values are layered, first match wins:

1. keyword arguments (the global CLI flags),
2. ``ARTCARDS_*`` environment variables, ``__`` separating nested keys
   (``ARTCARDS_PROVIDER__API_KEY``),
3. ``artcards.toml``, explicit via ``--config`` or found by walking up,
4. the defaults in :mod:`artcards.config.models`.
"""

from __future__ import annotations

import tomllib
from contextvars import ContextVar
from pathlib import Path
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, TomlConfigSettingsSource

from artcards.config.discovery import find_config
from artcards.config.models import GalleryConfig, GenerationConfig, ProviderConfig, StorageConfig

# Config file for the settings object currently being built.
_config_file: ContextVar[Path | None] = ContextVar("artcards_config_file", default=None)


class ConfigFileError(ValueError):
    """The config file named or discovered for this run cannot be used."""


class ArtSettings(BaseSettings):
    """Resolved configuration for one artcards invocation.

    ``data_root`` holds both the records area and the output root. Without
    an explicit ``--data-root`` it is the directory of the config file in
    effect, or the working directory when there is none.
    """

    model_config = {
        "frozen": True,
        "env_prefix": "ARTCARDS_",
        "env_nested_delimiter": "__",
    }

    data_root: Path = Field(default_factory=Path.cwd)
    config_path: Path | None = None

    json_output: bool = False
    quiet: bool = False
    verbose: bool = False
    log_json: bool = False

    storage: StorageConfig = Field(default_factory=StorageConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    gallery: GalleryConfig = Field(default_factory=GalleryConfig)

    @property
    def records_root(self) -> Path:
        return self.data_root / self.storage.records_dir

    @property
    def output_root(self) -> Path:
        return self.data_root / self.storage.output_dir

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        config_file = _config_file.get()
        if config_file is None:
            return (init_settings, env_settings)
        return (init_settings, env_settings, TomlConfigSettingsSource(settings_cls, config_file))

    @classmethod
    def from_cli(
        cls,
        *,
        config_path: str | None = None,
        data_root: Path | None = None,
        **flags: Any,
    ) -> ArtSettings:
        """Build settings for a CLI run.

        Raises:
            ConfigFileError: *config_path* does not exist, or the config
                file in effect is not valid TOML.
        """
        config_file: Path | None
        if config_path:
            config_file = Path(config_path)
            if not config_file.is_file():
                raise ConfigFileError(f"Config file not found: {config_path}")
        else:
            config_file = find_config(data_root)

        if data_root is None:
            data_root = config_file.parent if config_file is not None else Path.cwd()

        token = _config_file.set(config_file)
        try:
            return cls(data_root=data_root, config_path=config_file, **flags)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigFileError(f"Invalid TOML in {config_file}: {exc}") from exc
        finally:
            _config_file.reset(token)
