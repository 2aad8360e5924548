"""Identifier, filename and ordering rules.

Two ID strategies:
- Projects: slug of the name plus a short random suffix (``tarot_3fa9c1``).
- Cards: ``card_`` plus 8 random hex chars; the repository retries on
  collision against the project's current card set.

Generated image filenames are versioned per card:
``{card_id}_v{NNN}.{ext}`` where NNN is one past the highest version
already present in the directory.

INVARIANT: IDs are permanent. Once generated, an ID never changes.
"""

from __future__ import annotations

import re
import secrets
import unicodedata
from collections.abc import Callable, Iterable
from typing import TypeVar

DEFAULT_FOLDER = "default"
CARD_ID_PREFIX = "card_"

_TOKEN_RE = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.-]*$")
_NON_ALNUM_RE = re.compile(r"[^A-Za-z0-9]")
_DIGITS_RE = re.compile(r"(\d+)")

T = TypeVar("T")

MIME_EXTENSIONS: dict[str, str] = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/webp": "webp",
}


def is_directory_safe(value: str) -> bool:
    """True if *value* can be used verbatim as a single path segment."""
    if not value or value in (".", ".."):
        return False
    return _TOKEN_RE.match(value) is not None and ".." not in value


def is_plain_filename(value: str) -> bool:
    """True if *value* is a bare filename (no separators, no traversal)."""
    if not value or value in (".", ".."):
        return False
    return "/" not in value and "\\" not in value and "\0" not in value


def slugify(name: str) -> str:
    """Lowercase ASCII slug, non-alphanumerics collapsed to ``_``."""
    text = unicodedata.normalize("NFKD", name).encode("ascii", "ignore").decode("ascii")
    text = re.sub(r"[^a-z0-9]+", "_", text.lower()).strip("_")
    return text


def generate_project_id(name: str) -> str:
    slug = slugify(name)[:32] or "project"
    return f"{slug}_{secrets.token_hex(3)}"


def generate_card_id() -> str:
    return f"{CARD_ID_PREFIX}{secrets.token_hex(4)}"


def subfolder_from_name(name: str) -> str:
    """Derive an output subfolder from a card name (original casing kept)."""
    folder = _NON_ALNUM_RE.sub("_", name)
    return folder if folder.strip("_") else DEFAULT_FOLDER


# ---------------------------------------------------------------------------
# Filenames
# ---------------------------------------------------------------------------


def extension_for_mime(mime_type: str) -> str:
    """File extension (no dot) for an image mime type. Unknown types map to ``png``."""
    return MIME_EXTENSIONS.get(mime_type.lower().split(";")[0].strip(), "png")


def versioned_filename(base: str, version: int, ext: str, *, width: int = 3) -> str:
    return f"{base}_v{version:0{width}d}.{ext}"


def highest_version(filenames: Iterable[str], base: str) -> int:
    """Largest ``_vNNN`` number among files named after *base* (0 if none)."""
    pattern = re.compile(rf"^{re.escape(base)}_v(\d+)\.")
    best = 0
    for name in filenames:
        m = pattern.match(name)
        if m:
            best = max(best, int(m.group(1)))
    return best


# ---------------------------------------------------------------------------
# Ordering
# ---------------------------------------------------------------------------


def natural_key(name: str) -> tuple[tuple[int, int, str], ...]:
    """Numeric-aware, case-insensitive sort key.

    Digit runs compare by value and sort before text at the same position,
    so ``image_10.png`` follows ``image_9.png``.

    Examples:
        >>> sorted(["a10", "a9", "A1"], key=natural_key)
        ['A1', 'a9', 'a10']
    """
    parts: list[tuple[int, int, str]] = []
    for chunk in _DIGITS_RE.split(name):
        if not chunk:
            continue
        if chunk.isdigit():
            parts.append((0, int(chunk), ""))
        else:
            parts.append((1, 0, chunk.casefold()))
    return tuple(parts)


def newest_first(
    entries: Iterable[T],
    *,
    name: Callable[[T], str],
    mtime: Callable[[T], float],
) -> list[T]:
    """Gallery order: natural filename order descending, then newest mtime first.

    Two stable sorts: the secondary key (mtime) first, then the primary.
    """
    ordered = sorted(entries, key=mtime, reverse=True)
    ordered.sort(key=lambda e: natural_key(name(e)), reverse=True)
    return ordered
