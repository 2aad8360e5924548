"""Tests for versioned image saves, embedded provenance, and listing."""

from __future__ import annotations

import os
import struct
import threading
import zipfile
from pathlib import Path

import pytest
from PIL import Image

from artcards.infrastructure.media import (
    NO_PROMPT,
    MediaReadError,
    Provenance,
    extract_member,
    is_newer_member,
    list_image_files,
    member_mtime,
    read_metadata,
    read_tags,
    remove_tree,
    save_image,
    write_archive,
)
from tests.conftest import jpeg_bytes, png_bytes

EXTS = ("png", "jpg", "jpeg", "webp")


def _provenance(prompt: str = "a red fox") -> Provenance:
    return Provenance(
        prompt=prompt,
        title="The Fox",
        project="Bestiary",
        card_id="card_1",
        created="2025-01-02T03:04:05+00:00",
        generation={"aspect_ratio": "2:3", "resolution": "2K", "model": "fake-model"},
    )


class TestSaveImage:
    def test_creates_directory_and_first_version(self, tmp_path: Path) -> None:
        directory = tmp_path / "out" / "card"
        saved = save_image(
            directory, png_bytes(), "image/png", base_name="card_1", provenance=_provenance()
        )
        assert saved.filename == "card_1_v001.png"
        assert saved.path.is_file()
        assert saved.metadata_error is None

    def test_versions_increment(self, tmp_path: Path) -> None:
        for _ in range(3):
            saved = save_image(
                tmp_path, png_bytes(), "image/png", base_name="card_1", provenance=_provenance()
            )
        assert saved.filename == "card_1_v003.png"

    def test_continues_after_highest_existing_version(self, tmp_path: Path) -> None:
        (tmp_path / "card_1_v041.png").write_bytes(png_bytes())
        saved = save_image(
            tmp_path, png_bytes(), "image/png", base_name="card_1", provenance=_provenance()
        )
        assert saved.filename == "card_1_v042.png"

    def test_jpeg_extension(self, tmp_path: Path) -> None:
        saved = save_image(
            tmp_path, jpeg_bytes(), "image/jpeg", base_name="card_1", provenance=_provenance()
        )
        assert saved.filename == "card_1_v001.jpg"

    def test_no_temp_files_remain(self, tmp_path: Path) -> None:
        save_image(tmp_path, png_bytes(), "image/png", base_name="c", provenance=_provenance())
        assert [p.name for p in tmp_path.iterdir()] == ["c_v001.png"]

    def test_undecodable_bytes_are_kept_without_provenance(self, tmp_path: Path) -> None:
        saved = save_image(
            tmp_path, b"not an image", "image/png", base_name="c", provenance=_provenance()
        )
        assert saved.path.read_bytes() == b"not an image"
        assert saved.metadata_error is not None

    def test_concurrent_saves_get_distinct_names(self, tmp_path: Path) -> None:
        names: list[str] = []
        lock = threading.Lock()

        def worker() -> None:
            saved = save_image(
                tmp_path, png_bytes(), "image/png", base_name="card_1", provenance=_provenance()
            )
            with lock:
                names.append(saved.filename)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(set(names)) == 8
        assert sorted(p.name for p in tmp_path.iterdir()) == sorted(names)


class TestProvenance:
    def test_png_round_trip(self, tmp_path: Path) -> None:
        saved = save_image(
            tmp_path, png_bytes(), "image/png", base_name="c", provenance=_provenance()
        )
        meta = read_metadata(saved.path)
        assert meta["prompt"] == "a red fox"
        assert meta["has_prompt"] is True
        assert meta["title"] == "The Fox"
        assert meta["creator"] == "Bestiary"
        assert meta["comment"] == "Project: Bestiary | CardID: card_1"
        assert meta["embedded_created"] == "2025-01-02T03:04:05+00:00"
        assert meta["generation"] == {
            "aspect_ratio": "2:3",
            "resolution": "2K",
            "model": "fake-model",
        }
        assert meta["model"] == "fake-model"

    def test_png_non_ascii_prompt(self, tmp_path: Path) -> None:
        saved = save_image(
            tmp_path,
            png_bytes(),
            "image/png",
            base_name="c",
            provenance=_provenance("un renard roux, forêt enneigée ❄"),
        )
        assert read_metadata(saved.path)["prompt"] == "un renard roux, forêt enneigée ❄"

    def test_jpeg_round_trip(self, tmp_path: Path) -> None:
        saved = save_image(
            tmp_path, jpeg_bytes(), "image/jpeg", base_name="c", provenance=_provenance()
        )
        meta = read_metadata(saved.path)
        assert meta["prompt"] == "a red fox"
        assert meta["title"] == "The Fox"
        assert meta["creator"] == "Bestiary"
        assert meta["model"] == "fake-model"
        assert meta["generation"]["resolution"] == "2K"

    def test_missing_prompt_is_not_an_error(self, tmp_path: Path) -> None:
        path = tmp_path / "plain.png"
        path.write_bytes(png_bytes())
        meta = read_metadata(path)
        assert meta["prompt"] == NO_PROMPT
        assert meta["has_prompt"] is False
        assert meta["generation"] is None

    def test_unreadable_image(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.png"
        path.write_bytes(b"garbage")
        with pytest.raises(MediaReadError):
            read_metadata(path)

    @pytest.mark.parametrize(
        "error",
        [
            SyntaxError("not a TIFF file"),
            ValueError("bad IFD"),
            struct.error("unpack requires 4 bytes"),
        ],
        ids=["syntax", "value", "struct"],
    )
    def test_damaged_exif(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch, error: Exception
    ) -> None:
        path = tmp_path / "damaged.jpg"
        path.write_bytes(jpeg_bytes())

        def explode(self: Image.Image) -> Image.Exif:
            raise error

        monkeypatch.setattr(Image.Image, "getexif", explode)
        with pytest.raises(MediaReadError, match="damaged.jpg"):
            read_tags(path)


class TestListing:
    def test_filters_extensions_and_hidden_files(self, tmp_path: Path) -> None:
        (tmp_path / "a.png").write_bytes(b"x")
        (tmp_path / "b.JPG").write_bytes(b"x")
        (tmp_path / "notes.txt").write_text("x")
        (tmp_path / ".abc.part").write_bytes(b"x")
        (tmp_path / ".hidden.png").write_bytes(b"x")
        (tmp_path / "dir.png").mkdir()
        names = sorted(f.filename for f in list_image_files(tmp_path, EXTS))
        assert names == ["a.png", "b.JPG"]

    def test_missing_directory_is_empty(self, tmp_path: Path) -> None:
        assert list_image_files(tmp_path / "nope", EXTS) == []


class TestRemovalAndExport:
    def test_remove_tree(self, tmp_path: Path) -> None:
        target = tmp_path / "card"
        (target / "nested").mkdir(parents=True)
        (target / "nested" / "a.png").write_bytes(b"x")
        assert remove_tree(target) is True
        assert not target.exists()
        assert remove_tree(target) is False

    def test_write_archive(self, tmp_path: Path) -> None:
        a = tmp_path / "a.png"
        a.write_bytes(b"aaa")
        dest = tmp_path / "exports" / "deck.zip"
        assert write_archive(dest, [(a, "The_Fool.png")]) == 1
        with zipfile.ZipFile(dest) as zf:
            assert zf.namelist() == ["The_Fool.png"]
            assert zf.read("The_Fool.png") == b"aaa"
        assert sorted(p.name for p in dest.parent.iterdir()) == ["deck.zip"]

    def test_failed_archive_leaves_nothing(self, tmp_path: Path) -> None:
        dest = tmp_path / "deck.zip"
        with pytest.raises(OSError):
            write_archive(dest, [(tmp_path / "missing.png", "x.png")])
        assert list(tmp_path.iterdir()) == []

    def test_extract_member_carries_timestamp(self, tmp_path: Path) -> None:
        dest = tmp_path / "bundle.zip"
        with zipfile.ZipFile(dest, "w") as zf:
            zf.writestr(zipfile.ZipInfo("a.png", date_time=(2020, 5, 6, 7, 8, 10)), b"aaa")
        target = tmp_path / "out" / "a.png"
        with zipfile.ZipFile(dest) as zf:
            info = zf.getinfo("a.png")
            assert is_newer_member(info, target)
            extract_member(zf, info, target)
        assert target.read_bytes() == b"aaa"
        assert target.stat().st_mtime == member_mtime(info)
        assert sorted(p.name for p in target.parent.iterdir()) == ["a.png"]

    def test_newer_file_on_disk_wins(self, tmp_path: Path) -> None:
        info = zipfile.ZipInfo("a.png", date_time=(2020, 5, 6, 7, 8, 10))
        target = tmp_path / "a.png"
        target.write_bytes(b"local")
        assert not is_newer_member(info, target)
        os.utime(target, (member_mtime(info) - 60, member_mtime(info) - 60))
        assert is_newer_member(info, target)
