"""Tests for identifier, filename and ordering rules."""

import re

import pytest

from artcards.domain.naming import (
    DEFAULT_FOLDER,
    extension_for_mime,
    generate_card_id,
    generate_project_id,
    highest_version,
    is_directory_safe,
    is_plain_filename,
    natural_key,
    newest_first,
    slugify,
    subfolder_from_name,
    versioned_filename,
)


class TestIds:
    def test_project_id_from_name(self) -> None:
        pid = generate_project_id("Major Arcana!")
        assert re.fullmatch(r"major_arcana_[0-9a-f]{6}", pid)

    def test_project_id_without_usable_name(self) -> None:
        assert generate_project_id("!!!").startswith("project_")

    def test_project_ids_are_unique(self) -> None:
        assert generate_project_id("Tarot") != generate_project_id("Tarot")

    def test_card_id_shape(self) -> None:
        assert re.fullmatch(r"card_[0-9a-f]{8}", generate_card_id())

    def test_slugify_strips_accents(self) -> None:
        assert slugify("Café Noir") == "cafe_noir"


class TestDirectorySafe:
    @pytest.mark.parametrize("value", ["tarot_3fa9c1", "card_1a2b3c4d", "A-1.v2"])
    def test_accepts_tokens(self, value: str) -> None:
        assert is_directory_safe(value)

    @pytest.mark.parametrize("value", ["", ".", "..", "../x", "a/b", "a\\b", "a..b", ".hidden"])
    def test_rejects_traversal_and_separators(self, value: str) -> None:
        assert not is_directory_safe(value)

    def test_plain_filename(self) -> None:
        assert is_plain_filename("card_1_v001.png")
        assert not is_plain_filename("../card_1_v001.png")
        assert not is_plain_filename("sub/card.png")
        assert not is_plain_filename("..")


class TestSubfolder:
    def test_replaces_non_alphanumerics(self) -> None:
        assert subfolder_from_name("The Fool") == "The_Fool"

    def test_keeps_casing(self) -> None:
        assert subfolder_from_name("Wheel of Fortune") == "Wheel_of_Fortune"

    def test_blank_falls_back_to_default(self) -> None:
        assert subfolder_from_name("***") == DEFAULT_FOLDER
        assert subfolder_from_name("") == DEFAULT_FOLDER


class TestFilenames:
    def test_versioned_filename_is_zero_padded(self) -> None:
        assert versioned_filename("card_1", 7, "png") == "card_1_v007.png"
        assert versioned_filename("card_1", 7, "png", width=5) == "card_1_v00007.png"

    def test_version_wider_than_padding(self) -> None:
        assert versioned_filename("card_1", 1000, "jpg") == "card_1_v1000.jpg"

    def test_highest_version_matches_base_exactly(self) -> None:
        names = ["card_1_v001.png", "card_1_v012.jpg", "card_10_v099.png", "other.png"]
        assert highest_version(names, "card_1") == 12

    def test_highest_version_empty(self) -> None:
        assert highest_version([], "card_1") == 0

    @pytest.mark.parametrize(
        ("mime", "ext"),
        [
            ("image/png", "png"),
            ("image/jpeg", "jpg"),
            ("image/webp", "webp"),
            ("IMAGE/PNG; charset=binary", "png"),
            ("application/octet-stream", "png"),
        ],
    )
    def test_extension_for_mime(self, mime: str, ext: str) -> None:
        assert extension_for_mime(mime) == ext


class TestOrdering:
    def test_natural_key_orders_numbers_by_value(self) -> None:
        names = ["image_10.png", "image_9.png", "image_1.png"]
        assert sorted(names, key=natural_key) == ["image_1.png", "image_9.png", "image_10.png"]

    def test_natural_key_is_case_insensitive(self) -> None:
        assert natural_key("Image_1.png") == natural_key("image_1.png")

    def test_newest_first_uses_descending_natural_order(self) -> None:
        names = ["image_1.png", "image_10.png", "image_2.png", "image_100.png", "image_3.png"]
        ordered = newest_first(names, name=lambda n: n, mtime=lambda n: 0.0)
        assert ordered == [
            "image_100.png",
            "image_10.png",
            "image_3.png",
            "image_2.png",
            "image_1.png",
        ]

    def test_newest_first_breaks_name_ties_by_mtime(self) -> None:
        entries = [("a1.png", 1.0), ("A1.png", 5.0), ("b.png", 3.0)]
        ordered = newest_first(entries, name=lambda e: e[0], mtime=lambda e: e[1])
        assert [e[0] for e in ordered] == ["b.png", "A1.png", "a1.png"]
