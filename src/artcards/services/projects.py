"""ProjectService: project CRUD, cascade deletion, previews, deck export and bundles.

Deletion is two-phase (DESIGN.md, "Cascade"):

1. RECORDS: the repository removes the project record and every card
   record under it, returning a :class:`CascadeSignal`.
2. FILES: this service removes each card's output directory and then the
   project's ``outputRoot`` directory, skipping any directory another
   remaining record still resolves to.

A failure in phase 2 does not roll back phase 1. It is reported as
``PARTIAL_CASCADE`` with the records-side outcome in ``data``.

A project bundle (``.artproj``) is a zip of the project record, its card
records and their images. Importing one merges file by file, keeping
whichever copy was modified last.
"""

from __future__ import annotations

import json
import zipfile
from pathlib import Path
from typing import Any

import structlog
from pydantic import ValidationError

from artcards.domain.actions import EntityDeleted, ProjectUpdated
from artcards.domain.models import Card, Project
from artcards.domain.naming import generate_project_id, is_plain_filename
from artcards.infrastructure.media import (
    apply_member_mtime,
    extract_member,
    is_newer_member,
    list_image_files,
    remove_tree,
    write_archive,
)
from artcards.infrastructure.paths import PathEscapeError, is_strictly_within
from artcards.infrastructure.records import CorruptRecordError
from artcards.infrastructure.repository import CARDS, PROJECTS
from artcards.services._helpers import failure, unknown_fields, validation_message
from artcards.services.base import BaseService
from artcards.services.result import ErrorCode, ServiceResult
from artcards.services.telemetry import trace_span, traced

log = structlog.get_logger(__name__)

PROJECT_ENTRY = "project.json"
CARDS_PREFIX = "cards/"
IMAGES_PREFIX = "images/"


class ProjectService(BaseService):
    """Create, read, update and delete projects."""

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    @traced
    def list_projects(self) -> ServiceResult:
        op = "list_projects"
        warnings: list[str] = []
        try:
            projects = self._repo.list_projects(skip_corrupt=True)
        except OSError as exc:
            return failure(op, ErrorCode.IO_FAILED, str(exc))
        skipped = len(self._repo.store.list_ids(PROJECTS)) - len(projects)
        if skipped > 0:
            warnings.append(f"Skipped {skipped} unreadable project record(s)")
        return ServiceResult(
            ok=True,
            op=op,
            data={"items": [p.to_record() for p in projects], "count": len(projects)},
            warnings=warnings,
        )

    @traced
    def get_project(self, project_id: str) -> ServiceResult:
        op = "get_project"
        project, err = self._load_project(op, project_id)
        if err is not None:
            return err
        card_count = len(self._repo.store.list_ids(CARDS, project_id))
        return ServiceResult(
            ok=True,
            op=op,
            data={"project": project.to_record(), "card_count": card_count},
        )

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    @traced
    def save_project(self, data: dict[str, Any]) -> ServiceResult:
        """Upsert a project. A missing ``id`` is generated from the name."""
        op = "save_project"
        warnings: list[str] = []
        record = dict(data)
        if not record.get("id"):
            record["id"] = generate_project_id(str(record.get("name", "")))
        try:
            project = Project.model_validate(record)
        except ValidationError as exc:
            return failure(
                op,
                ErrorCode.INVALID_INPUT,
                validation_message(exc),
                project_id=str(record.get("id")),
            )

        created = not self._repo.store.exists(PROJECTS, project.id)
        try:
            self._repo.save_project(project)
        except OSError as exc:
            return failure(op, ErrorCode.IO_FAILED, str(exc), project_id=project.id)

        self._dispatch_event(
            "post_save_project",
            {"project_id": project.id, "project": project.to_record()},
            warnings,
        )
        return ServiceResult(
            ok=True,
            op=op,
            data={"project": project.to_record(), "created": created},
            warnings=warnings,
            action=ProjectUpdated(project=project),
        )

    @traced
    def update_project(self, project_id: str, changes: dict[str, Any]) -> ServiceResult:
        """Partial update. ``id`` cannot change."""
        op = "update_project"
        warnings: list[str] = []
        err = self._invalid_ids(op, project_id=project_id)
        if err is not None:
            return err
        if not changes:
            return failure(op, ErrorCode.INVALID_INPUT, "No changes given", project_id=project_id)
        unknown = unknown_fields(Project, changes)
        if unknown:
            return failure(
                op,
                ErrorCode.INVALID_INPUT,
                f"Unknown project field(s): {', '.join(unknown)}",
                project_id=project_id,
            )
        if "id" in changes and changes["id"] != project_id:
            return failure(
                op, ErrorCode.INVALID_INPUT, "Project id cannot be changed", project_id=project_id
            )

        try:
            project = self._repo.update_project(project_id, changes)
        except LookupError:
            return failure(op, ErrorCode.NOT_FOUND, "Project not found", project_id=project_id)
        except ValidationError as exc:
            return failure(
                op, ErrorCode.INVALID_INPUT, validation_message(exc), project_id=project_id
            )
        except CorruptRecordError as exc:
            return failure(op, ErrorCode.CORRUPT_RECORD, str(exc), project_id=project_id)
        except OSError as exc:
            return failure(op, ErrorCode.IO_FAILED, str(exc), project_id=project_id)

        self._dispatch_event(
            "post_save_project",
            {"project_id": project.id, "project": project.to_record()},
            warnings,
        )
        return ServiceResult(
            ok=True,
            op=op,
            data={"project": project.to_record(), "fields_changed": sorted(changes)},
            warnings=warnings,
            action=ProjectUpdated(project=project),
        )

    @traced
    def delete_project(self, project_id: str) -> ServiceResult:
        """Delete the project, its cards, and their output directories."""
        op = "delete_project"
        warnings: list[str] = []
        err = self._invalid_ids(op, project_id=project_id)
        if err is not None:
            return err

        # ── RECORDS ──────────────────────────────────────────
        existed = self._repo.store.exists(PROJECTS, project_id)
        try:
            with trace_span("delete_records"):
                signal = self._repo.delete_project(project_id)
        except OSError as exc:
            return failure(op, ErrorCode.IO_FAILED, str(exc), project_id=project_id)
        if not existed and not signal.cards:
            return failure(op, ErrorCode.NOT_FOUND, "Project not found", project_id=project_id)

        card_ids = [c.id for c in signal.cards]
        data: dict[str, Any] = {
            "project_id": project_id,
            "cards_removed": card_ids,
            "dirs_removed": [],
            "dirs_kept": [],
        }

        # ── FILES ────────────────────────────────────────────
        errors: list[str] = []
        if signal.project is None:
            errors.append("Project record was unreadable; output directory location is unknown")
        else:
            with trace_span("delete_files"):
                errors.extend(self._remove_project_files(signal.project, signal.cards, data))
        if data["dirs_kept"]:
            kept = ", ".join(data["dirs_kept"])
            warnings.append(f"Kept output directories still used by other cards: {kept}")

        files_removed = not errors
        self._dispatch_event(
            "post_delete_project",
            {"project_id": project_id, "card_ids": card_ids, "files_removed": files_removed},
            warnings,
        )
        action = EntityDeleted(entity="project", project_id=project_id)
        if errors:
            return failure(
                op,
                ErrorCode.PARTIAL_CASCADE,
                "Records removed, files could not be removed: " + "; ".join(errors),
                data=data,
                warnings=warnings,
                project_id=project_id,
            ).model_copy(update={"action": action})
        return ServiceResult(ok=True, op=op, data=data, warnings=warnings, action=action)

    def _remove_project_files(
        self, project: Project, cards: list[Card], data: dict[str, Any]
    ) -> list[str]:
        paths = self._ws.paths
        in_use = self._dirs_in_use()
        errors: list[str] = []

        targets: list[Path] = []
        for card in cards:
            try:
                targets.append(paths.card_dir(project, card))
            except PathEscapeError:
                errors.append(f"Card {card.id} output path escapes the output root")
        try:
            targets.append(paths.project_dir(project))
        except PathEscapeError:
            errors.append(f"Project outputRoot {project.output_root!r} escapes the output root")

        for target in targets:
            rel = paths.to_relative(target)
            if self._is_shared(target, in_use):
                data["dirs_kept"].append(rel)
                continue
            try:
                if remove_tree(target):
                    data["dirs_removed"].append(rel)
            except OSError as exc:
                errors.append(f"{rel}: {exc}")
        return errors

    # ------------------------------------------------------------------
    # Gallery views over a whole project
    # ------------------------------------------------------------------

    @traced
    def previews(self, project_id: str, limit: int | None = None) -> ServiceResult:
        """Newest non-archived images across all of the project's cards."""
        op = "project_previews"
        warnings: list[str] = []
        limit = limit if limit is not None else self._ws.settings.gallery.preview_limit
        if limit < 1:
            return failure(op, ErrorCode.INVALID_INPUT, "limit must be >= 1", project_id=project_id)

        project, err = self._load_project(op, project_id)
        if err is not None:
            return err

        found: list[tuple[float, dict[str, Any]]] = []
        for card in self._repo.list_cards(project_id, skip_corrupt=True):
            try:
                images = self._card_images(project, card)
            except PathEscapeError:
                warnings.append(f"Card {card.id}: output path rejected")
                continue
            for image in images:
                found.append(
                    (
                        image.created,
                        {
                            "card_id": card.id,
                            "filename": image.filename,
                            "path": self._ws.paths.to_relative(image.path),
                        },
                    )
                )

        found.sort(key=lambda pair: pair[0], reverse=True)
        items = [item for _, item in found[:limit]]
        return ServiceResult(
            ok=True,
            op=op,
            data={"project_id": project_id, "items": items, "count": len(items)},
            warnings=warnings,
        )

    @traced
    def export_deck(self, project_id: str, destination: Path) -> ServiceResult:
        """Zip every card's favorite images, each named after its card's subfolder."""
        op = "export_deck"
        warnings: list[str] = []
        project, err = self._load_project(op, project_id)
        if err is not None:
            return err

        members: list[tuple[Path, str]] = []
        used: set[str] = set()
        for card in self._repo.list_cards(project_id, skip_corrupt=True):
            for filename in card.favorite_images:
                try:
                    source = self._ws.paths.image_path(project, card, filename)
                except PathEscapeError:
                    warnings.append(f"Card {card.id}: rejected favorite {filename!r}")
                    continue
                if not source.is_file():
                    warnings.append(f"Card {card.id}: favorite {filename} is missing on disk")
                    continue
                arcname = _unique_name(f"{card.output_subfolder}{source.suffix}", used)
                members.append((source, arcname))

        if not members:
            return failure(
                op,
                ErrorCode.NOT_FOUND,
                "No favorite images to export",
                warnings=warnings,
                project_id=project_id,
            )
        try:
            written = write_archive(destination, members)
        except OSError as exc:
            return failure(op, ErrorCode.IO_FAILED, str(exc), project_id=project_id)
        return ServiceResult(
            ok=True,
            op=op,
            data={
                "project_id": project_id,
                "archive": str(destination),
                "count": written,
                "entries": [name for _, name in members],
            },
            warnings=warnings,
        )

    # ------------------------------------------------------------------
    # Project bundles
    # ------------------------------------------------------------------

    @traced
    def export_project(self, project_id: str, destination: Path) -> ServiceResult:
        """Zip the project record, its card records and their images.

        Layout: ``project.json``, ``cards/<card id>.json`` and
        ``images/<path under the output root>``. Member timestamps are the
        files' own, which :meth:`import_project` uses to merge.
        """
        op = "export_project"
        warnings: list[str] = []
        project, err = self._load_project(op, project_id)
        if err is not None:
            return err

        store = self._repo.store
        members: list[tuple[Path, str]] = [(store.path_for(PROJECTS, project_id), PROJECT_ENTRY)]
        cards = self._repo.list_cards(project_id, skip_corrupt=True)
        for card in cards:
            members.append((store.path_for(CARDS, (project_id, card.id)), f"cards/{card.id}.json"))

        paths = self._ws.paths
        extensions = self._ws.settings.gallery.image_extensions
        directories: list[Path] = []
        try:
            directories.append(paths.project_dir(project))
        except PathEscapeError as exc:
            return self._security_failure(op, exc, project_id=project_id)
        for card in cards:
            try:
                directories.append(paths.card_dir(project, card))
            except PathEscapeError:
                warnings.append(f"Card {card.id}: output path rejected, images not exported")

        image_count = 0
        seen: set[Path] = set()
        for directory in directories:
            for image in sorted(list_image_files(directory, extensions), key=lambda f: f.filename):
                if image.path in seen:
                    continue
                seen.add(image.path)
                rel = image.path.relative_to(paths.output_root).as_posix()
                members.append((image.path, f"{IMAGES_PREFIX}{rel}"))
                image_count += 1

        try:
            with trace_span("write_bundle", members=len(members)):
                write_archive(destination, members)
        except OSError as exc:
            return failure(op, ErrorCode.IO_FAILED, str(exc), project_id=project_id)
        return ServiceResult(
            ok=True,
            op=op,
            data={
                "project_id": project_id,
                "archive": str(destination),
                "cards": len(cards),
                "images": image_count,
            },
            warnings=warnings,
        )

    @traced
    def import_project(self, source: Path) -> ServiceResult:
        """Merge a bundle written by :meth:`export_project` into the workspace.

        Every record and image is compared with the file already on disk and
        the newer one wins, so importing a stale bundle never rolls back
        later edits. Images land only inside the project's own directories.
        """
        op = "import_project"
        try:
            with zipfile.ZipFile(source) as archive:
                return self._import_bundle(op, archive)
        except FileNotFoundError:
            return failure(op, ErrorCode.NOT_FOUND, f"Project file not found: {source}")
        except zipfile.BadZipFile as exc:
            return failure(op, ErrorCode.INVALID_INPUT, f"Not a project file: {exc}")
        except OSError as exc:
            return failure(op, ErrorCode.IO_FAILED, str(exc))

    def _import_bundle(self, op: str, archive: zipfile.ZipFile) -> ServiceResult:
        warnings: list[str] = []
        entries = [info for info in archive.infolist() if not info.is_dir()]
        if not entries:
            return failure(op, ErrorCode.INVALID_INPUT, "The project file is empty")

        # The bundle may be wrapped in one top-level folder.
        manifests = [
            info
            for info in entries
            if info.filename == PROJECT_ENTRY or info.filename.endswith(f"/{PROJECT_ENTRY}")
        ]
        if not manifests:
            msg = "Invalid project file: project.json not found"
            return failure(op, ErrorCode.INVALID_INPUT, msg)
        manifest = min(manifests, key=lambda info: info.filename.count("/"))
        base = manifest.filename[: -len(PROJECT_ENTRY)]

        try:
            project = Project.model_validate(_read_json(archive, manifest))
        except ValidationError as exc:
            return failure(op, ErrorCode.INVALID_INPUT, validation_message(exc))
        except ValueError:
            msg = "Invalid project file: project.json is corrupted"
            return failure(op, ErrorCode.INVALID_INPUT, msg)

        cards: list[tuple[zipfile.ZipInfo, Card]] = []
        images: list[tuple[zipfile.ZipInfo, str]] = []
        for info in entries:
            name = info.filename
            if not name.startswith(base) or info is manifest:
                continue
            rel = name[len(base) :]
            if rel.startswith(CARDS_PREFIX) and rel.endswith(".json"):
                try:
                    record = _read_json(archive, info)
                    record["projectId"] = project.id
                    cards.append((info, Card.model_validate(record)))
                except ValueError:
                    warnings.append(f"Skipped unreadable card record {rel}")
            elif rel.startswith(IMAGES_PREFIX):
                images.append((info, rel[len(IMAGES_PREFIX) :]))

        paths = self._ws.paths
        try:
            allowed = [paths.project_dir(project)]
        except PathEscapeError as exc:
            return self._security_failure(op, exc, project_id=project.id)
        for _, card in cards:
            try:
                allowed.append(paths.card_dir(project, card))
            except PathEscapeError:
                warnings.append(f"Card {card.id}: output path rejected, images not imported")

        written: list[str] = []
        kept: list[str] = []
        store = self._repo.store
        with trace_span("merge_records"):
            target = store.path_for(PROJECTS, project.id)
            if is_newer_member(manifest, target):
                self._repo.save_project(project)
                apply_member_mtime(target, manifest)
                written.append(PROJECT_ENTRY)
            else:
                kept.append(PROJECT_ENTRY)
            for info, card in cards:
                rel = info.filename[len(base) :]
                target = store.path_for(CARDS, (project.id, card.id))
                if is_newer_member(info, target):
                    self._repo.save_card(card)
                    apply_member_mtime(target, info)
                    written.append(rel)
                else:
                    kept.append(rel)

        extensions = {e.lower() for e in self._ws.settings.gallery.image_extensions}
        with trace_span("merge_images"):
            for info, rel in images:
                image_target = self._image_target(rel, allowed, extensions)
                if image_target is None:
                    warnings.append(f"Skipped image outside the project: {rel}")
                    continue
                if is_newer_member(info, image_target):
                    extract_member(archive, info, image_target)
                    written.append(IMAGES_PREFIX + rel)
                else:
                    kept.append(IMAGES_PREFIX + rel)

        if kept:
            warnings.append(f"Kept {len(kept)} newer file(s) already on disk")
        log.info("project_imported", project_id=project.id, written=len(written), kept=len(kept))
        project_written = PROJECT_ENTRY in written
        return ServiceResult(
            ok=True,
            op=op,
            data={
                "project_id": project.id,
                "name": project.name,
                "written": written,
                "kept": kept,
            },
            warnings=warnings,
            action=ProjectUpdated(project=project) if project_written else None,
        )

    def _image_target(self, rel: str, allowed: list[Path], extensions: set[str]) -> Path | None:
        """Destination of one bundled image, or None if it falls outside *allowed*.

        *allowed* starts with the project directory; anything under it is
        accepted, elsewhere only files directly in one of the card directories.
        """
        parts = rel.split("/")
        if not all(is_plain_filename(p) for p in parts):
            return None
        if parts[-1].startswith(".") or parts[-1].rpartition(".")[2].lower() not in extensions:
            return None
        try:
            target = self._ws.paths.resolve(*parts)
        except PathEscapeError:
            return None
        project_dir = str(allowed[0])
        if target.parent in allowed or is_strictly_within(str(target), project_dir):
            return target
        return None


def _read_json(archive: zipfile.ZipFile, info: zipfile.ZipInfo) -> dict[str, Any]:
    """One JSON-object member. Raises ValueError for anything else."""
    value = json.loads(archive.read(info).decode("utf-8"))
    if not isinstance(value, dict):
        msg = f"{info.filename} is not a JSON object"
        raise ValueError(msg)
    return value


def _unique_name(name: str, used: set[str]) -> str:
    """``name`` or ``stem_2.ext``, ``stem_3.ext``... if already taken."""
    candidate = name
    stem, dot, ext = name.rpartition(".")
    n = 2
    while candidate in used:
        candidate = f"{stem}_{n}{dot}{ext}"
        n += 1
    used.add(candidate)
    return candidate
