"""Pydantic configuration models with code-baked defaults.

Sparse TOML contract: defaults baked here, artcards.toml only contains overrides.
A fresh data directory needs no config file at all.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, SecretStr


class StorageConfig(BaseModel):
    """[storage] section. Both paths are relative to the data root."""

    model_config = {"frozen": True}

    records_dir: str = "records"
    output_dir: str = "output"


class GenerationConfig(BaseModel):
    """[generation] section."""

    model_config = {"frozen": True}

    default_aspect_ratio: str = "2:3"
    default_resolution: str = "2K"
    max_count: int = Field(default=10, ge=1)
    filename_version_width: int = Field(default=3, ge=1, le=8)


class ProviderConfig(BaseModel):
    """[provider] section."""

    model_config = {"frozen": True}

    name: str = "gemini"
    model: str = "gemini-3-pro-image-preview"
    base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    timeout_seconds: float = 120.0
    api_key: SecretStr | None = None


class GalleryConfig(BaseModel):
    """[gallery] section."""

    model_config = {"frozen": True}

    image_extensions: tuple[str, ...] = ("png", "jpg", "jpeg", "webp")
    preview_limit: int = Field(default=6, ge=1)

