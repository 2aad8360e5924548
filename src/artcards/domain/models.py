"""Entity models: Project, Card, PromptModifier, StoredKey.

Records are persisted as JSON with camelCase keys (``outputRoot``,
``archivedImages``, ...). Python attributes stay snake_case; the alias
generator maps between the two. Always dump with ``by_alias=True``.

INVARIANT: ``Project.id`` and ``Card.id`` are directory-safe tokens.
They are embedded in record paths and never change after creation.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from artcards.domain.naming import DEFAULT_FOLDER, is_directory_safe


class ModifierType(StrEnum):
    """Where a prompt modifier is placed relative to the card prompt."""

    PREFIX = "prefix"
    SUFFIX = "suffix"


class RecordModel(BaseModel):
    """Base for all persisted records (camelCase on disk, snake_case in code)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        validate_assignment=True,
    )

    def to_record(self) -> dict[str, Any]:
        """Serialize to the on-disk JSON shape."""
        return self.model_dump(mode="json", by_alias=True)


def _dedupe(values: list[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for value in values:
        if value not in seen:
            seen.add(value)
            out.append(value)
    return out


def _check_token(value: str, label: str) -> str:
    if not is_directory_safe(value):
        msg = f"{label} must be a directory-safe token, got {value!r}"
        raise ValueError(msg)
    return value


class PromptModifier(RecordModel):
    """Reusable prompt fragment attached to a project."""

    id: str
    name: str = ""
    text: str = ""
    type: ModifierType = ModifierType.PREFIX


class Project(RecordModel):
    """Top-level grouping with shared prompt wrapping and default image settings."""

    id: str
    name: str = ""
    description: str = ""
    output_root: str = DEFAULT_FOLDER
    global_prefix: str = ""
    global_suffix: str = ""
    default_aspect_ratio: str | None = None
    default_resolution: str | None = None
    prompt_modifiers: list[PromptModifier] = Field(default_factory=list)

    @field_validator("id")
    @classmethod
    def _id_is_token(cls, v: str) -> str:
        return _check_token(v, "Project id")

    @field_validator("output_root", mode="before")
    @classmethod
    def _default_root(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return DEFAULT_FOLDER
        return v

    @field_validator("prompt_modifiers")
    @classmethod
    def _unique_modifiers(cls, v: list[PromptModifier]) -> list[PromptModifier]:
        # Ordered set keyed on modifier id; first occurrence wins.
        seen: set[str] = set()
        out: list[PromptModifier] = []
        for mod in v:
            if mod.id not in seen:
                seen.add(mod.id)
                out.append(mod)
        return out


class Card(RecordModel):
    """A unit of generation work owned by a project.

    ``archived_images`` and ``favorite_images`` have set semantics. They may
    name files that no longer exist on disk; readers tolerate that.
    """

    id: str
    project_id: str
    name: str = ""
    prompt: str = ""
    output_subfolder: str = DEFAULT_FOLDER
    aspect_ratio: str | None = None
    resolution: str | None = None
    archived_images: list[str] = Field(default_factory=list)
    favorite_images: list[str] = Field(default_factory=list)
    inactive_modifiers: list[str] = Field(default_factory=list)

    @field_validator("id")
    @classmethod
    def _id_is_token(cls, v: str) -> str:
        return _check_token(v, "Card id")

    @field_validator("project_id")
    @classmethod
    def _project_is_token(cls, v: str) -> str:
        return _check_token(v, "Card projectId")

    @field_validator("output_subfolder", mode="before")
    @classmethod
    def _default_subfolder(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return DEFAULT_FOLDER
        return v

    @field_validator("archived_images", "favorite_images", "inactive_modifiers", mode="before")
    @classmethod
    def _as_set(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, (list, tuple, set, frozenset)):
            return _dedupe([str(x) for x in v])
        return v

    def is_archived(self, filename: str) -> bool:
        return filename in self.archived_images

    def is_favorite(self, filename: str) -> bool:
        return filename in self.favorite_images

    def toggle_favorite(self, filename: str) -> bool:
        """Flip favorite membership for *filename*. Returns the new state."""
        if filename in self.favorite_images:
            self.favorite_images = [f for f in self.favorite_images if f != filename]
            return False
        self.favorite_images = [*self.favorite_images, filename]
        return True

    def set_archived(self, filename: str, archived: bool = True) -> bool:
        """Add or remove *filename* from the archive set. Returns the new state."""
        present = filename in self.archived_images
        if archived and not present:
            self.archived_images = [*self.archived_images, filename]
        elif not archived and present:
            self.archived_images = [f for f in self.archived_images if f != filename]
        return archived


class StoredKey(RecordModel):
    """Named provider API key."""

    name: str
    key: str

    @property
    def masked(self) -> str:
        if len(self.key) <= 8:
            return "*" * len(self.key)
        return f"{self.key[:4]}…{self.key[-4:]}"
