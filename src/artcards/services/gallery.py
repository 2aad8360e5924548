"""GalleryService: list, inspect, favorite, archive and export a card's images.

Favorite and archive are set-membership changes on the Card record; the
image files themselves are never modified or moved. Archiving is
reversible (``archived=False`` removes the name from the set).
"""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from artcards.domain.actions import CardUpdated
from artcards.domain.models import Card
from artcards.domain.naming import is_plain_filename, newest_first
from artcards.infrastructure.media import (
    ImageFile,
    MediaReadError,
    read_metadata,
    write_archive,
)
from artcards.infrastructure.paths import PathEscapeError
from artcards.infrastructure.records import CorruptRecordError
from artcards.services._helpers import failure
from artcards.services.base import BaseService
from artcards.services.result import ErrorCode, ServiceResult
from artcards.services.telemetry import traced


def _iso(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, UTC).isoformat()


class GalleryService(BaseService):
    """Read and curate the generated images of one card."""

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    @traced
    def list_images(
        self, project_id: str, card_id: str, *, include_archived: bool = False
    ) -> ServiceResult:
        """Images newest first (descending natural filename order, then mtime).

        A card with no output directory yet has no images; that is not an error.
        """
        op = "list_images"
        ids = {"project_id": project_id, "card_id": card_id}
        project, err = self._load_project(op, project_id)
        if err is not None:
            return err
        card, err = self._load_card(op, project_id, card_id)
        if err is not None:
            return err

        try:
            files = self._card_images(project, card, include_archived=include_archived)
        except PathEscapeError as exc:
            return self._security_failure(op, exc, **ids)
        except OSError as exc:
            return failure(op, ErrorCode.IO_FAILED, str(exc), **ids)

        favorites = set(card.favorite_images)
        archived = set(card.archived_images)
        items = [
            self._describe(f, favorites, archived)
            for f in newest_first(files, name=lambda f: f.filename, mtime=lambda f: f.mtime)
        ]
        return ServiceResult(
            ok=True,
            op=op,
            data={**ids, "items": items, "count": len(items)},
        )

    def _describe(
        self, image: ImageFile, favorites: set[str], archived: set[str]
    ) -> dict[str, Any]:
        return {
            "filename": image.filename,
            "path": self._ws.paths.to_relative(image.path),
            "mtime": _iso(image.mtime),
            "created": _iso(image.created),
            "isFavorite": image.filename in favorites,
            "isArchived": image.filename in archived,
        }

    @traced
    def count_images(self, project_id: str, card_id: str) -> ServiceResult:
        """Number of non-archived images. A missing directory counts as zero."""
        op = "count_images"
        ids = {"project_id": project_id, "card_id": card_id}
        project, err = self._load_project(op, project_id)
        if err is not None:
            return err
        card, err = self._load_card(op, project_id, card_id)
        if err is not None:
            return err
        try:
            count = len(self._card_images(project, card))
        except PathEscapeError as exc:
            return self._security_failure(op, exc, **ids)
        except OSError as exc:
            return failure(op, ErrorCode.IO_FAILED, str(exc), **ids)
        return ServiceResult(ok=True, op=op, data={**ids, "count": count})

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    @traced
    def read_metadata(self, path: str) -> ServiceResult:
        """Provenance of one image, by its data-root-relative path."""
        op = "read_metadata"
        try:
            absolute = self._ws.paths.from_relative(path)
        except PathEscapeError as exc:
            return self._security_failure(op, exc, path=path)
        if not absolute.is_file():
            return failure(op, ErrorCode.NOT_FOUND, "Image not found", path=path)
        try:
            meta = read_metadata(absolute)
        except MediaReadError as exc:
            return failure(op, ErrorCode.METADATA_FAILED, str(exc), path=path)
        except OSError as exc:
            return failure(op, ErrorCode.IO_FAILED, str(exc), path=path)
        return ServiceResult(ok=True, op=op, data={"path": path, **meta})

    # ------------------------------------------------------------------
    # Curation
    # ------------------------------------------------------------------

    @traced
    def toggle_favorite(self, project_id: str, card_id: str, filename: str) -> ServiceResult:
        """Flip favorite membership. Calling twice restores the original state."""
        op = "toggle_favorite"
        card, state, err = self._curate(op, project_id, card_id, filename, "favorite")
        if err is not None:
            return err
        return ServiceResult(
            ok=True,
            op=op,
            data={
                "project_id": project_id,
                "card_id": card_id,
                "filename": filename,
                "isFavorite": state,
            },
            action=CardUpdated(card=card),
        )

    @traced
    def archive(
        self, project_id: str, card_id: str, filename: str, *, archived: bool = True
    ) -> ServiceResult:
        """Hide (or, with ``archived=False``, restore) an image in default listings."""
        op = "archive"
        card, state, err = self._curate(
            op, project_id, card_id, filename, "archive" if archived else "restore"
        )
        if err is not None:
            return err
        return ServiceResult(
            ok=True,
            op=op,
            data={
                "project_id": project_id,
                "card_id": card_id,
                "filename": filename,
                "isArchived": state,
            },
            action=CardUpdated(card=card),
        )

    def _curate(
        self, op: str, project_id: str, card_id: str, filename: str, change: str
    ) -> tuple[Card | None, bool, ServiceResult | None]:
        ids = {"project_id": project_id, "card_id": card_id, "filename": filename}
        err = self._invalid_ids(op, project_id=project_id, card_id=card_id)
        if err is not None:
            return None, False, err
        if not is_plain_filename(filename):
            return None, False, failure(
                op, ErrorCode.INVALID_INPUT, "Filename must not contain a path", **ids
            )

        def _apply(card: Card) -> bool:
            if change == "favorite":
                return card.toggle_favorite(filename)
            return card.set_archived(filename, archived=change == "archive")

        try:
            card, state = self._repo.modify_card(project_id, card_id, _apply)
        except LookupError:
            return None, False, failure(op, ErrorCode.NOT_FOUND, "Card not found", **ids)
        except CorruptRecordError as exc:
            return None, False, failure(op, ErrorCode.CORRUPT_RECORD, str(exc), **ids)
        except OSError as exc:
            return None, False, failure(op, ErrorCode.IO_FAILED, str(exc), **ids)
        return card, state, None

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    @traced
    def export_images(
        self,
        project_id: str,
        card_id: str,
        filenames: list[str],
        destination: Path,
    ) -> ServiceResult:
        """Zip the named images of one card. Missing files are skipped with a warning."""
        op = "export_images"
        ids = {"project_id": project_id, "card_id": card_id}
        warnings: list[str] = []
        if not filenames:
            return failure(op, ErrorCode.INVALID_INPUT, "No filenames given", **ids)
        project, err = self._load_project(op, project_id)
        if err is not None:
            return err
        card, err = self._load_card(op, project_id, card_id)
        if err is not None:
            return err

        members: list[tuple[Path, str]] = []
        for filename in dict.fromkeys(filenames):
            try:
                source = self._ws.paths.image_path(project, card, filename)
            except PathEscapeError as exc:
                return self._security_failure(op, exc, filename=filename, **ids)
            if not source.is_file():
                warnings.append(f"Skipped missing image {filename}")
                continue
            members.append((source, filename))

        if not members:
            return failure(
                op, ErrorCode.NOT_FOUND, "None of the images exist", warnings=warnings, **ids
            )
        try:
            written = write_archive(destination, members)
        except OSError as exc:
            return failure(op, ErrorCode.IO_FAILED, str(exc), **ids)
        return ServiceResult(
            ok=True,
            op=op,
            data={**ids, "archive": str(destination), "count": written},
            warnings=warnings,
        )
