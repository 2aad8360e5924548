"""Secure path resolution for the image output tree.

Every code path that turns entity fields into a filesystem location
(generation, listing, metadata lookup, archival, cascade deletion) goes
through :class:`SecurePathResolver`.

Algorithm:
1. Strip leading ``..`` segments from each fragment independently.
2. Join ``(output_root, *fragments)`` and normalize lexically.
3. Accept only if the result is *strictly* inside the output root,
   compared segment by segment (``/data/output-evil`` is not inside
   ``/data/output``).

INVARIANT: Resolution performs no filesystem I/O. A rejected path raises
:class:`PathEscapeError` before anything is created, read, or removed.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path, PurePosixPath

from artcards.domain.models import Card, Project
from artcards.domain.naming import is_plain_filename

logger = logging.getLogger(__name__)

_LEADING_PARENT_RE = re.compile(r"^(?:\.\.(?:[/\\]+|$))+")


class PathEscapeError(ValueError):
    """A derived path would resolve outside the output root."""

    def __init__(self, fragments: tuple[str, ...], resolved: str) -> None:
        self.fragments = fragments
        self.resolved = resolved
        super().__init__(f"Path escapes output root: {resolved}")


def strip_parent_segments(fragment: str) -> str:
    """Remove leading ``../`` (or ``..\\``) traversal from *fragment*."""
    return _LEADING_PARENT_RE.sub("", fragment)


def _normalize(path: str) -> str:
    return os.path.normpath(os.path.abspath(path))


def is_strictly_within(candidate: str, root: str) -> bool:
    """Segment-wise strict containment of normalized absolute paths."""
    root_parts = Path(root).parts
    cand_parts = Path(candidate).parts
    return len(cand_parts) > len(root_parts) and cand_parts[: len(root_parts)] == root_parts


class SecurePathResolver:
    """Derives on-disk locations confined to a single output root.

    Args:
        output_root: Directory all generated images live under.
        data_root: Base for the relative paths handed to callers
            (``output/<root>/<subfolder>/<file>``). Defaults to the
            output root's parent.
    """

    def __init__(self, output_root: Path, data_root: Path | None = None) -> None:
        self._root = _normalize(str(output_root))
        self._data_root = _normalize(str(data_root if data_root is not None else output_root.parent))

    @property
    def output_root(self) -> Path:
        return Path(self._root)

    @property
    def data_root(self) -> Path:
        return Path(self._data_root)

    def resolve(self, *fragments: str) -> Path:
        """Join *fragments* under the output root, rejecting any escape."""
        cleaned = tuple(strip_parent_segments(f) for f in fragments)
        target = _normalize(os.path.join(self._root, *cleaned))
        if not is_strictly_within(target, self._root):
            logger.warning(
                "Rejected output path outside root: fragments=%r resolved=%s", fragments, target
            )
            raise PathEscapeError(fragments, target)
        return Path(target)

    def project_dir(self, project: Project) -> Path:
        return self.resolve(project.output_root)

    def card_dir(self, project: Project, card: Card) -> Path:
        return self.resolve(project.output_root, card.output_subfolder)

    def image_path(self, project: Project, card: Card, filename: str) -> Path:
        """Path of one image file; *filename* must be a bare name."""
        if not is_plain_filename(filename):
            raise PathEscapeError((project.output_root, card.output_subfolder, filename), filename)
        return self.resolve(project.output_root, card.output_subfolder, filename)

    # ------------------------------------------------------------------
    # Data-root-relative form
    # ------------------------------------------------------------------

    def to_relative(self, path: Path) -> str:
        """POSIX path of *path* relative to the data root."""
        rel = os.path.relpath(_normalize(str(path)), self._data_root)
        return PurePosixPath(*Path(rel).parts).as_posix()

    def from_relative(self, relative: str) -> Path:
        """Resolve a data-root-relative path, confined to the output root."""
        target = _normalize(os.path.join(self._data_root, relative))
        if not is_strictly_within(target, self._root):
            logger.warning("Rejected relative path outside output root: %r", relative)
            raise PathEscapeError((relative,), target)
        return Path(target)
