"""CardService: card CRUD, bulk creation, search and cascade deletion."""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError

from artcards.domain.actions import CardUpdated, EntityDeleted
from artcards.domain.models import Card, Project
from artcards.domain.naming import subfolder_from_name
from artcards.infrastructure.media import remove_tree
from artcards.infrastructure.paths import PathEscapeError
from artcards.infrastructure.records import CorruptRecordError
from artcards.infrastructure.repository import CARDS
from artcards.services._helpers import failure, unknown_fields, validation_message
from artcards.services.base import BaseService
from artcards.services.result import ErrorCode, ServiceResult
from artcards.services.telemetry import trace_span, traced

_IMMUTABLE = {"id", "projectId", "project_id"}


class CardService(BaseService):
    """Create, read, update, search and delete cards."""

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    @traced
    def list_cards(self, project_id: str) -> ServiceResult:
        """Cards of one project, ordered by id, each with its ``imageCount``."""
        op = "list_cards"
        warnings: list[str] = []
        err = self._invalid_ids(op, project_id=project_id)
        if err is not None:
            return err

        try:
            cards = self._repo.list_cards(project_id, skip_corrupt=True)
        except OSError as exc:
            return failure(op, ErrorCode.IO_FAILED, str(exc), project_id=project_id)

        project: Project | None
        try:
            project = self._repo.get_project(project_id)
        except (LookupError, CorruptRecordError):
            project = None
            if cards:
                warnings.append(f"Project {project_id} is unavailable; image counts omitted")

        items: list[dict[str, Any]] = []
        for card in cards:
            record = card.to_record()
            record["imageCount"] = self._image_count(project, card, warnings)
            items.append(record)
        return ServiceResult(
            ok=True,
            op=op,
            data={"project_id": project_id, "items": items, "count": len(items)},
            warnings=warnings,
        )

    def _image_count(self, project: Project | None, card: Card, warnings: list[str]) -> int | None:
        if project is None:
            return None
        try:
            return len(self._card_images(project, card))
        except PathEscapeError:
            warnings.append(f"Card {card.id}: output path rejected")
            return None
        except OSError as exc:
            warnings.append(f"Card {card.id}: cannot list images ({exc})")
            return None

    @traced
    def get_card(self, project_id: str, card_id: str) -> ServiceResult:
        op = "get_card"
        card, err = self._load_card(op, project_id, card_id)
        if err is not None:
            return err
        return ServiceResult(ok=True, op=op, data={"card": card.to_record()})

    @traced
    def find_cards(self, query: str, project_id: str | None = None) -> ServiceResult:
        """Case-insensitive substring search on card names."""
        op = "find_cards"
        if not query.strip():
            return failure(op, ErrorCode.INVALID_INPUT, "Search query is empty")
        err = self._invalid_ids(op, project_id=project_id)
        if err is not None:
            return err
        try:
            cards = self._repo.find_cards(query.strip(), project_id)
        except OSError as exc:
            return failure(op, ErrorCode.IO_FAILED, str(exc), project_id=project_id)
        return ServiceResult(
            ok=True,
            op=op,
            data={
                "query": query,
                "items": [c.to_record() for c in cards],
                "count": len(cards),
            },
        )

    @traced
    def new_card_id(self, project_id: str) -> ServiceResult:
        op = "new_card_id"
        err = self._invalid_ids(op, project_id=project_id)
        if err is not None:
            return err
        try:
            card_id = self._repo.generate_card_id(project_id)
        except RuntimeError as exc:
            return failure(op, ErrorCode.IO_FAILED, str(exc), project_id=project_id)
        return ServiceResult(ok=True, op=op, data={"project_id": project_id, "card_id": card_id})

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    @traced
    def save_card(self, data: dict[str, Any]) -> ServiceResult:
        """Upsert a card. ``projectId`` is required; a missing ``id`` is generated.

        The owning project is not required to exist yet.
        """
        op = "save_card"
        warnings: list[str] = []
        record = dict(data)
        project_id = record.get("projectId", record.get("project_id"))
        if not project_id:
            return failure(op, ErrorCode.INVALID_INPUT, "Card projectId is required")
        err = self._invalid_ids(op, project_id=str(project_id))
        if err is not None:
            return err
        if not record.get("id"):
            record["id"] = self._repo.generate_card_id(str(project_id))

        try:
            card = Card.model_validate(record)
        except ValidationError as exc:
            return failure(
                op,
                ErrorCode.INVALID_INPUT,
                validation_message(exc),
                project_id=str(project_id),
                card_id=str(record.get("id")),
            )

        created = not self._repo.store.exists(CARDS, (card.project_id, card.id))
        try:
            self._repo.save_card(card)
        except OSError as exc:
            return failure(
                op, ErrorCode.IO_FAILED, str(exc), project_id=card.project_id, card_id=card.id
            )

        self._after_save(card, warnings)
        return ServiceResult(
            ok=True,
            op=op,
            data={"card": card.to_record(), "created": created},
            warnings=warnings,
            action=CardUpdated(card=card),
        )

    @traced
    def create_cards(self, project_id: str, items: list[dict[str, Any]]) -> ServiceResult:
        """Create several cards from ``{name, prompt, ...}`` entries.

        Each card gets a fresh id, an ``outputSubfolder`` derived from its
        name (unless given), and the project's default size settings. Entries
        that fail validation are reported individually; the rest are saved.
        """
        op = "create_cards"
        warnings: list[str] = []
        err = self._invalid_ids(op, project_id=project_id)
        if err is not None:
            return err
        if not items:
            return failure(op, ErrorCode.INVALID_INPUT, "No cards given", project_id=project_id)

        project, err = self._load_project(op, project_id)
        if err is not None:
            return err

        created: list[Card] = []
        failures: list[dict[str, Any]] = []
        for index, item in enumerate(items):
            with trace_span("create_card", index=index):
                try:
                    card = self._build_card(project, item)
                    self._repo.save_card(card)
                except ValidationError as exc:
                    failures.append({"index": index, "message": validation_message(exc)})
                    continue
                except OSError as exc:
                    failures.append({"index": index, "message": str(exc)})
                    continue
            created.append(card)
            self._after_save(card, warnings)

        data = {
            "project_id": project_id,
            "items": [c.to_record() for c in created],
            "count": len(created),
            "failures": failures,
        }
        if failures and not created:
            return failure(
                op,
                ErrorCode.INVALID_INPUT,
                f"All {len(failures)} card(s) were rejected",
                data=data,
                warnings=warnings,
                project_id=project_id,
            )
        if failures:
            return failure(
                op,
                ErrorCode.BATCH_PARTIAL,
                f"Created {len(created)} of {len(items)} card(s)",
                data=data,
                warnings=warnings,
                project_id=project_id,
            )
        return ServiceResult(
            ok=True,
            op=op,
            data=data,
            warnings=warnings,
            action=CardUpdated(card=created[-1]),
        )

    def _build_card(self, project: Project, item: dict[str, Any]) -> Card:
        name = str(item.get("name", "")).strip()
        fields: dict[str, Any] = {
            "id": self._repo.generate_card_id(project.id),
            "projectId": project.id,
            "name": name,
            "prompt": item.get("prompt", ""),
            "outputSubfolder": item.get("outputSubfolder") or subfolder_from_name(name),
            "aspectRatio": item.get("aspectRatio") or project.default_aspect_ratio,
            "resolution": item.get("resolution") or project.default_resolution,
        }
        return Card.model_validate(fields)

    @traced
    def update_card(self, project_id: str, card_id: str, changes: dict[str, Any]) -> ServiceResult:
        """Partial update. ``id`` and ``projectId`` cannot change."""
        op = "update_card"
        warnings: list[str] = []
        ids = {"project_id": project_id, "card_id": card_id}
        err = self._invalid_ids(op, **ids)
        if err is not None:
            return err
        if not changes:
            return failure(op, ErrorCode.INVALID_INPUT, "No changes given", **ids)
        unknown = unknown_fields(Card, changes)
        if unknown:
            return failure(
                op, ErrorCode.INVALID_INPUT, f"Unknown card field(s): {', '.join(unknown)}", **ids
            )
        current = {"id": card_id, "projectId": project_id, "project_id": project_id}
        locked = sorted(k for k in _IMMUTABLE & set(changes) if changes[k] != current[k])
        if locked:
            return failure(
                op, ErrorCode.INVALID_INPUT, f"Cannot change immutable field(s): {locked}", **ids
            )

        try:
            card = self._repo.update_card(project_id, card_id, changes)
        except LookupError:
            return failure(op, ErrorCode.NOT_FOUND, "Card not found", **ids)
        except ValidationError as exc:
            return failure(op, ErrorCode.INVALID_INPUT, validation_message(exc), **ids)
        except CorruptRecordError as exc:
            return failure(op, ErrorCode.CORRUPT_RECORD, str(exc), **ids)
        except OSError as exc:
            return failure(op, ErrorCode.IO_FAILED, str(exc), **ids)

        self._after_save(card, warnings)
        return ServiceResult(
            ok=True,
            op=op,
            data={"card": card.to_record(), "fields_changed": sorted(changes)},
            warnings=warnings,
            action=CardUpdated(card=card),
        )

    @traced
    def delete_card(self, project_id: str, card_id: str) -> ServiceResult:
        """Delete the card record, then its output directory."""
        op = "delete_card"
        warnings: list[str] = []
        ids = {"project_id": project_id, "card_id": card_id}
        err = self._invalid_ids(op, **ids)
        if err is not None:
            return err

        # ── RECORDS ──────────────────────────────────────────
        existed = self._repo.store.exists(CARDS, (project_id, card_id))
        if not existed:
            return failure(op, ErrorCode.NOT_FOUND, "Card not found", **ids)
        try:
            with trace_span("delete_records"):
                signal = self._repo.delete_card(project_id, card_id)
        except OSError as exc:
            return failure(op, ErrorCode.IO_FAILED, str(exc), **ids)

        data: dict[str, Any] = {
            "project_id": project_id,
            "card_id": card_id,
            "dirs_removed": [],
            "dirs_kept": [],
        }

        # ── FILES ────────────────────────────────────────────
        errors: list[str] = []
        if not signal.cards:
            errors.append("Card record was unreadable; output directory location is unknown")
        else:
            with trace_span("delete_files"):
                errors.extend(self._remove_card_files(project_id, signal.cards[0], data))
        if data["dirs_kept"]:
            kept = ", ".join(data["dirs_kept"])
            warnings.append(f"Kept output directories still used by other cards: {kept}")

        files_removed = not errors
        self._dispatch_event(
            "post_delete_card",
            {"project_id": project_id, "card_id": card_id, "files_removed": files_removed},
            warnings,
        )
        action = EntityDeleted(entity="card", project_id=project_id, card_id=card_id)
        if errors:
            return failure(
                op,
                ErrorCode.PARTIAL_CASCADE,
                "Records removed, files could not be removed: " + "; ".join(errors),
                data=data,
                warnings=warnings,
                **ids,
            ).model_copy(update={"action": action})
        return ServiceResult(ok=True, op=op, data=data, warnings=warnings, action=action)

    def _remove_card_files(self, project_id: str, card: Card, data: dict[str, Any]) -> list[str]:
        try:
            project = self._repo.get_project(project_id)
        except (LookupError, CorruptRecordError):
            return [f"Project {project_id} is unavailable; output directory location is unknown"]
        paths = self._ws.paths
        try:
            target = paths.card_dir(project, card)
        except PathEscapeError:
            return [f"Card {card.id} output path escapes the output root"]

        rel = paths.to_relative(target)
        if self._is_shared(target, self._dirs_in_use()):
            data["dirs_kept"].append(rel)
            return []
        try:
            if remove_tree(target):
                data["dirs_removed"].append(rel)
        except OSError as exc:
            return [f"{rel}: {exc}"]
        return []

    def _after_save(self, card: Card, warnings: list[str]) -> None:
        self._dispatch_event(
            "post_save_card",
            {"project_id": card.project_id, "card_id": card.id, "card": card.to_record()},
            warnings,
        )
