"""Tests for entity models and their on-disk record shape."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from artcards.domain.models import Card, ModifierType, Project, PromptModifier, StoredKey


class TestProject:
    def test_record_uses_camel_case(self) -> None:
        project = Project(id="tarot", name="Tarot", output_root="tarot", global_prefix="Art")
        record = project.to_record()
        assert record["outputRoot"] == "tarot"
        assert record["globalPrefix"] == "Art"
        assert "output_root" not in record

    def test_loads_from_camel_case(self) -> None:
        project = Project.model_validate(
            {"id": "tarot", "outputRoot": "deck", "defaultAspectRatio": "2:3"}
        )
        assert project.output_root == "deck"
        assert project.default_aspect_ratio == "2:3"

    @pytest.mark.parametrize("root", [None, "", "   "])
    def test_blank_output_root_defaults(self, root: str | None) -> None:
        assert Project.model_validate({"id": "p", "outputRoot": root}).output_root == "default"

    @pytest.mark.parametrize("bad", ["", "../p", "a/b", ".."])
    def test_rejects_unsafe_id(self, bad: str) -> None:
        with pytest.raises(ValidationError):
            Project(id=bad)

    def test_unknown_fields_are_ignored(self) -> None:
        project = Project.model_validate({"id": "p", "legacyField": 1})
        assert "legacyField" not in project.to_record()

    def test_modifiers_are_unique_by_id(self) -> None:
        project = Project.model_validate(
            {
                "id": "p",
                "promptModifiers": [
                    {"id": "m1", "text": "first"},
                    {"id": "m1", "text": "duplicate"},
                    {"id": "m2", "text": "second", "type": "suffix"},
                ],
            }
        )
        assert [m.text for m in project.prompt_modifiers] == ["first", "second"]
        assert project.prompt_modifiers[1].type is ModifierType.SUFFIX

    def test_modifier_defaults_to_prefix(self) -> None:
        assert PromptModifier(id="m").type is ModifierType.PREFIX


class TestCard:
    def test_project_id_is_required(self) -> None:
        with pytest.raises(ValidationError):
            Card.model_validate({"id": "c1"})

    def test_image_sets_are_deduplicated(self) -> None:
        card = Card.model_validate(
            {
                "id": "c1",
                "projectId": "p",
                "archivedImages": ["a.png", "a.png", "b.png"],
                "favoriteImages": None,
            }
        )
        assert card.archived_images == ["a.png", "b.png"]
        assert card.favorite_images == []

    def test_blank_subfolder_defaults(self) -> None:
        card = Card.model_validate({"id": "c1", "projectId": "p", "outputSubfolder": ""})
        assert card.output_subfolder == "default"

    def test_toggle_favorite_twice_restores(self) -> None:
        card = Card(id="c1", project_id="p")
        assert card.toggle_favorite("a.png") is True
        assert card.is_favorite("a.png")
        assert card.toggle_favorite("a.png") is False
        assert card.favorite_images == []

    def test_set_archived_is_idempotent(self) -> None:
        card = Card(id="c1", project_id="p")
        card.set_archived("a.png")
        card.set_archived("a.png")
        assert card.archived_images == ["a.png"]
        assert card.set_archived("a.png", archived=False) is False
        assert not card.is_archived("a.png")

    def test_record_round_trip(self) -> None:
        card = Card(
            id="c1",
            project_id="p",
            name="The Fool",
            output_subfolder="The_Fool",
            inactive_modifiers=["m1"],
        )
        assert Card.model_validate(card.to_record()) == card


class TestStoredKey:
    def test_masks_long_keys(self) -> None:
        assert StoredKey(name="k", key="abcdefghijkl").masked == "abcd…ijkl"

    def test_masks_short_keys_entirely(self) -> None:
        assert StoredKey(name="k", key="short").masked == "*****"
