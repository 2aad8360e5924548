"""BaseService: foundation for all artcards services.

Every service receives a :class:`Workspace` at construction time. The
workspace provides the repository (records), the secure path resolver
(output tree), and the image provider.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from artcards.domain.naming import is_directory_safe
from artcards.infrastructure.media import list_image_files
from artcards.infrastructure.paths import PathEscapeError
from artcards.infrastructure.records import CorruptRecordError
from artcards.services._helpers import failure
from artcards.services.result import ErrorCode, ServiceResult

if TYPE_CHECKING:
    from pathlib import Path

    from artcards.domain.models import Card, Project
    from artcards.infrastructure.media import ImageFile
    from artcards.infrastructure.repository import EntityRepository
    from artcards.infrastructure.workspace import Workspace

logger = logging.getLogger(__name__)


class BaseService:
    """Base for all service-layer classes.

    Usage::

        class ProjectService(BaseService):
            def get_project(self, project_id: str) -> ServiceResult:
                project, err = self._load_project("get_project", project_id)
                if err is not None:
                    return err
                ...
    """

    def __init__(self, workspace: Workspace) -> None:
        self._ws = workspace

    @property
    def _repo(self) -> EntityRepository:
        return self._ws.repository

    # ------------------------------------------------------------------
    # Entity loading with error mapping
    # ------------------------------------------------------------------

    def _load(
        self, op: str, loader: Callable[[], Any], what: str, **ids: str | None
    ) -> tuple[Any, ServiceResult | None]:
        try:
            return loader(), None
        except LookupError:
            return None, failure(op, ErrorCode.NOT_FOUND, f"{what} not found", **ids)
        except CorruptRecordError as exc:
            logger.error("Corrupt %s record: %s", what.lower(), exc)
            return None, failure(op, ErrorCode.CORRUPT_RECORD, str(exc), **ids)
        except ValueError as exc:
            return None, failure(op, ErrorCode.INVALID_INPUT, str(exc), **ids)
        except OSError as exc:
            return None, failure(op, ErrorCode.IO_FAILED, str(exc), **ids)

    def _invalid_ids(self, op: str, **ids: str | None) -> ServiceResult | None:
        """INVALID_INPUT result if any given id is not a directory-safe token."""
        bad = [f"{k}={v!r}" for k, v in ids.items() if v is not None and not is_directory_safe(v)]
        if not bad:
            return None
        return failure(op, ErrorCode.INVALID_INPUT, "Invalid identifier: " + ", ".join(bad), **ids)

    def _load_project(self, op: str, project_id: str) -> tuple[Project, ServiceResult | None]:
        return self._load(
            op, lambda: self._repo.get_project(project_id), "Project", project_id=project_id
        )

    def _load_card(
        self, op: str, project_id: str, card_id: str
    ) -> tuple[Card, ServiceResult | None]:
        return self._load(
            op,
            lambda: self._repo.get_card(project_id, card_id),
            "Card",
            project_id=project_id,
            card_id=card_id,
        )

    def _security_failure(self, op: str, exc: PathEscapeError, **ids: str | None) -> ServiceResult:
        logger.warning("%s refused an output path outside the root: %s", op, list(exc.fragments))
        return failure(
            op,
            ErrorCode.SECURITY_VIOLATION,
            "Security Error: Invalid output path",
            fragments=list(exc.fragments),
            **ids,
        )

    # ------------------------------------------------------------------
    # Output tree
    # ------------------------------------------------------------------

    def _dirs_in_use(self) -> set[Path]:
        """Output directories still referenced by the remaining records.

        Covers every project root and every card directory. Records whose
        paths cannot be resolved safely are skipped.
        """
        in_use: set[Path] = set()
        paths = self._ws.paths
        for project in self._repo.list_projects(skip_corrupt=True):
            try:
                in_use.add(paths.project_dir(project))
            except PathEscapeError:
                continue
            for card in self._repo.list_cards(project.id, skip_corrupt=True):
                try:
                    in_use.add(paths.card_dir(project, card))
                except PathEscapeError:
                    continue
        return in_use

    def _card_images(
        self, project: Project, card: Card, *, include_archived: bool = False
    ) -> list[ImageFile]:
        """Image files in the card's output directory, archive-filtered, unsorted.

        Raises:
            PathEscapeError: the card's directory resolves outside the output root.
        """
        directory = self._ws.paths.card_dir(project, card)
        files = list_image_files(directory, self._ws.settings.gallery.image_extensions)
        if include_archived:
            return files
        archived = set(card.archived_images)
        return [f for f in files if f.filename not in archived]

    @staticmethod
    def _is_shared(target: Path, in_use: set[Path]) -> bool:
        """True if *target* is, or contains, a directory another record uses."""
        return any(d == target or d.is_relative_to(target) for d in in_use)

    # ------------------------------------------------------------------
    # Lifecycle hooks
    # ------------------------------------------------------------------

    def _dispatch_event(
        self,
        hook_name: str,
        payload: dict[str, Any],
        warnings: list[str],
    ) -> None:
        """Run a lifecycle hook. No-op if plugins are not initialized.

        INVARIANT: Plugin failures are warnings, never errors.
        """
        pm = self._ws.plugin_manager
        if pm is None:
            return
        try:
            pm.call(hook_name, payload)
        except Exception:
            logger.debug("Plugin hook failed for %s", hook_name, exc_info=True)
            warnings.append(f"Plugin hook failed for {hook_name}")
