"""Tests for GalleryService: listing, metadata, favorites, archive and export."""

from __future__ import annotations

import os
import zipfile
from pathlib import Path

import pytest
from PIL import Image

from artcards.infrastructure.workspace import Workspace
from artcards.services.gallery import GalleryService
from artcards.services.result import ErrorCode
from tests.conftest import generate_images, jpeg_bytes, make_card, make_project, png_bytes


@pytest.fixture
def seeded(workspace: Workspace) -> tuple[str, str, list[str]]:
    """A project, one card, and three generated images (oldest first)."""
    project = make_project(workspace, outputRoot="tarot")
    card = make_card(workspace, project["id"], outputSubfolder="The_Fool", prompt="A jester")
    paths = generate_images(workspace, project["id"], card["id"], count=3)
    return project["id"], card["id"], paths


def _name(rel: str) -> str:
    return Path(rel).name


class TestListImages:
    def test_newest_first(self, workspace: Workspace, seeded: tuple[str, str, list[str]]) -> None:
        pid, cid, paths = seeded
        result = GalleryService(workspace).list_images(pid, cid)
        assert result.ok, result.error
        assert [item["path"] for item in result.data["items"]] == list(reversed(paths))
        first = result.data["items"][0]
        assert first["isFavorite"] is False
        assert first["isArchived"] is False

    def test_archived_hidden_unless_requested(
        self, workspace: Workspace, seeded: tuple[str, str, list[str]]
    ) -> None:
        pid, cid, paths = seeded
        svc = GalleryService(workspace)
        svc.archive(pid, cid, _name(paths[0]))

        visible = svc.list_images(pid, cid)
        everything = svc.list_images(pid, cid, include_archived=True)

        assert visible.data["count"] == 2
        assert everything.data["count"] == 3
        flagged = [i["filename"] for i in everything.data["items"] if i["isArchived"]]
        assert flagged == [_name(paths[0])]

    def test_ignores_other_files(
        self, workspace: Workspace, seeded: tuple[str, str, list[str]]
    ) -> None:
        pid, cid, _ = seeded
        directory = workspace.paths.output_root / "tarot" / "The_Fool"
        (directory / "notes.txt").write_text("x")
        (directory / ".hidden.png").write_bytes(b"")
        assert GalleryService(workspace).count_images(pid, cid).data["count"] == 3

    def test_no_directory_yet(self, workspace: Workspace) -> None:
        project = make_project(workspace)
        card = make_card(workspace, project["id"])
        result = GalleryService(workspace).list_images(project["id"], card["id"])
        assert result.ok
        assert result.data["items"] == []

    def test_missing_card(self, workspace: Workspace) -> None:
        project = make_project(workspace)
        result = GalleryService(workspace).list_images(project["id"], "card_gone")
        assert result.error is not None
        assert result.error.code == ErrorCode.NOT_FOUND

    def test_escaping_subfolder(self, workspace: Workspace) -> None:
        project = make_project(workspace, outputRoot="tarot")
        card = make_card(workspace, project["id"], outputSubfolder="x/../../../records")
        result = GalleryService(workspace).list_images(project["id"], card["id"])
        assert result.error is not None
        assert result.error.code == ErrorCode.SECURITY_VIOLATION


class TestCount:
    def test_excludes_archived(
        self, workspace: Workspace, seeded: tuple[str, str, list[str]]
    ) -> None:
        pid, cid, paths = seeded
        svc = GalleryService(workspace)
        svc.archive(pid, cid, _name(paths[1]))
        assert svc.count_images(pid, cid).data["count"] == 2


class TestMetadata:
    def test_reads_provenance(
        self, workspace: Workspace, seeded: tuple[str, str, list[str]]
    ) -> None:
        _, cid, paths = seeded
        result = GalleryService(workspace).read_metadata(paths[0])
        assert result.ok, result.error
        assert result.data["path"] == paths[0]
        assert result.data["prompt"] == "A jester"
        assert result.data["has_prompt"] is True
        assert cid in result.data["comment"]

    def test_image_without_provenance(self, workspace: Workspace) -> None:
        directory = workspace.paths.output_root / "plain"
        directory.mkdir(parents=True)
        (directory / "bare.png").write_bytes(png_bytes())
        result = GalleryService(workspace).read_metadata("output/plain/bare.png")
        assert result.ok, result.error
        assert result.data["has_prompt"] is False
        assert result.data["prompt"] == "No prompt found"

    def test_damaged_exif_is_metadata_failure(
        self, workspace: Workspace, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        directory = workspace.paths.output_root / "plain"
        directory.mkdir(parents=True)
        (directory / "damaged.jpg").write_bytes(jpeg_bytes())

        def explode(self: Image.Image) -> Image.Exif:
            raise SyntaxError("not a TIFF file")

        monkeypatch.setattr(Image.Image, "getexif", explode)
        result = GalleryService(workspace).read_metadata("output/plain/damaged.jpg")
        assert result.error is not None
        assert result.error.code == ErrorCode.METADATA_FAILED

    def test_outside_output_root(self, workspace: Workspace) -> None:
        result = GalleryService(workspace).read_metadata("records/projects/tarot.json")
        assert result.error is not None
        assert result.error.code == ErrorCode.SECURITY_VIOLATION

    def test_traversal(self, workspace: Workspace) -> None:
        result = GalleryService(workspace).read_metadata("output/../../etc/passwd")
        assert result.error is not None
        assert result.error.code == ErrorCode.SECURITY_VIOLATION

    def test_missing_file(self, workspace: Workspace) -> None:
        result = GalleryService(workspace).read_metadata("output/tarot/nope.png")
        assert result.error is not None
        assert result.error.code == ErrorCode.NOT_FOUND

    def test_not_an_image(self, workspace: Workspace) -> None:
        directory = workspace.paths.output_root / "broken"
        directory.mkdir(parents=True)
        (directory / "fake.png").write_text("definitely not a png")
        result = GalleryService(workspace).read_metadata("output/broken/fake.png")
        assert result.error is not None
        assert result.error.code == ErrorCode.METADATA_FAILED


class TestCuration:
    def test_toggle_favorite_twice_restores(
        self, workspace: Workspace, seeded: tuple[str, str, list[str]]
    ) -> None:
        pid, cid, paths = seeded
        svc = GalleryService(workspace)
        first = svc.toggle_favorite(pid, cid, _name(paths[0]))
        second = svc.toggle_favorite(pid, cid, _name(paths[0]))
        assert first.data["isFavorite"] is True
        assert second.data["isFavorite"] is False
        assert workspace.repository.get_card(pid, cid).favorite_images == []

    def test_archive_is_idempotent_and_reversible(
        self, workspace: Workspace, seeded: tuple[str, str, list[str]]
    ) -> None:
        pid, cid, paths = seeded
        svc = GalleryService(workspace)
        name = _name(paths[0])
        svc.archive(pid, cid, name)
        again = svc.archive(pid, cid, name)
        assert again.data["isArchived"] is True
        assert workspace.repository.get_card(pid, cid).archived_images == [name]

        restored = svc.archive(pid, cid, name, archived=False)
        assert restored.data["isArchived"] is False
        assert workspace.repository.get_card(pid, cid).archived_images == []

    def test_files_are_untouched(
        self, workspace: Workspace, seeded: tuple[str, str, list[str]]
    ) -> None:
        pid, cid, paths = seeded
        svc = GalleryService(workspace)
        svc.archive(pid, cid, _name(paths[0]))
        svc.toggle_favorite(pid, cid, _name(paths[1]))
        for rel in paths:
            assert workspace.paths.from_relative(rel).is_file()

    def test_filename_with_path(
        self, workspace: Workspace, seeded: tuple[str, str, list[str]]
    ) -> None:
        pid, cid, _ = seeded
        result = GalleryService(workspace).toggle_favorite(pid, cid, "../other.png")
        assert result.error is not None
        assert result.error.code == ErrorCode.INVALID_INPUT

    def test_missing_card(self, workspace: Workspace) -> None:
        result = GalleryService(workspace).archive("tarot", "card_gone", "a.png")
        assert result.error is not None
        assert result.error.code == ErrorCode.NOT_FOUND


class TestExport:
    def test_zips_named_images(
        self, workspace: Workspace, seeded: tuple[str, str, list[str]], tmp_path: Path
    ) -> None:
        pid, cid, paths = seeded
        dest = tmp_path / "out" / "images.zip"
        names = [_name(p) for p in paths[:2]]

        result = GalleryService(workspace).export_images(pid, cid, names, dest)

        assert result.ok, result.error
        assert result.data["count"] == 2
        with zipfile.ZipFile(dest) as zf:
            assert sorted(zf.namelist()) == sorted(names)
        assert [p for p in os.listdir(dest.parent) if p.startswith(".")] == []

    def test_missing_files_are_warnings(
        self, workspace: Workspace, seeded: tuple[str, str, list[str]], tmp_path: Path
    ) -> None:
        pid, cid, paths = seeded
        result = GalleryService(workspace).export_images(
            pid, cid, [_name(paths[0]), "gone.png"], tmp_path / "images.zip"
        )
        assert result.ok
        assert result.data["count"] == 1
        assert result.warnings == ["Skipped missing image gone.png"]

    def test_nothing_exists(
        self, workspace: Workspace, seeded: tuple[str, str, list[str]], tmp_path: Path
    ) -> None:
        pid, cid, _ = seeded
        result = GalleryService(workspace).export_images(
            pid, cid, ["gone.png"], tmp_path / "images.zip"
        )
        assert result.error is not None
        assert result.error.code == ErrorCode.NOT_FOUND
        assert not (tmp_path / "images.zip").exists()

    def test_empty_list(
        self, workspace: Workspace, seeded: tuple[str, str, list[str]], tmp_path: Path
    ) -> None:
        pid, cid, _ = seeded
        result = GalleryService(workspace).export_images(pid, cid, [], tmp_path / "x.zip")
        assert result.error is not None
        assert result.error.code == ErrorCode.INVALID_INPUT

    def test_path_in_filename(
        self, workspace: Workspace, seeded: tuple[str, str, list[str]], tmp_path: Path
    ) -> None:
        pid, cid, _ = seeded
        result = GalleryService(workspace).export_images(
            pid, cid, ["../../records/keys/keyring.json"], tmp_path / "x.zip"
        )
        assert result.error is not None
        assert result.error.code == ErrorCode.SECURITY_VIOLATION
