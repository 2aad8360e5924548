"""Client actions: tagged follow-ups attached to mutating service results.

A caller (CLI, HTTP layer, tool dispatcher) pattern-matches on the variant
type instead of inspecting a free-form string::

    match result.action:
        case CardUpdated(card=card):
            refresh(card)
        case ImagesGenerated(paths=paths):
            show(paths)
"""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, Field

from artcards.domain.models import Card, Project


class ProjectUpdated(BaseModel):
    model_config = {"frozen": True}

    kind: Literal["project_updated"] = "project_updated"
    project: Project


class CardUpdated(BaseModel):
    model_config = {"frozen": True}

    kind: Literal["card_updated"] = "card_updated"
    card: Card


class EntityDeleted(BaseModel):
    model_config = {"frozen": True}

    kind: Literal["entity_deleted"] = "entity_deleted"
    entity: Literal["project", "card"]
    project_id: str
    card_id: str | None = None


class ImagesGenerated(BaseModel):
    model_config = {"frozen": True}

    kind: Literal["images_generated"] = "images_generated"
    project_id: str
    card_id: str
    paths: tuple[str, ...] = ()


ClientAction = Annotated[
    ProjectUpdated | CardUpdated | EntityDeleted | ImagesGenerated,
    Field(discriminator="kind"),
]
