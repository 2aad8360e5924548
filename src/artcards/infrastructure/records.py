"""Record store: one JSON file per record under a root directory.

Layout: ``{root}/{kind}/{key[0]}/.../{key[-1]}.json``. Projects use a
single-part key (``projects/{id}.json``), cards a two-part key
(``cards/{project_id}/{card_id}.json``).

INVARIANT: A reader never observes a partially-written record. Writes go
to a temp file in the same directory and are published with
``os.replace``. Saves and deletes of the same key are serialized through
an in-process per-key lock; :meth:`RecordStore.update` holds that lock
across the whole read-modify-write.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from artcards.domain.naming import is_directory_safe

logger = logging.getLogger(__name__)

RECORD_SUFFIX = ".json"

Key = str | Sequence[str]


class RecordNotFoundError(LookupError):
    """No record exists for the requested key."""

    def __init__(self, kind: str, key: tuple[str, ...]) -> None:
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} record not found: {'/'.join(key)}")


class CorruptRecordError(ValueError):
    """A record file exists but cannot be read as a JSON object."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Corrupt record {path}: {reason}")


def _normalize_key(key: Key) -> tuple[str, ...]:
    parts = (key,) if isinstance(key, str) else tuple(key)
    if not parts:
        msg = "Record key must have at least one part"
        raise ValueError(msg)
    for part in parts:
        if not is_directory_safe(part):
            msg = f"Record key part is not directory-safe: {part!r}"
            raise ValueError(msg)
    return parts


def atomic_write_text(path: Path, content: str) -> None:
    """Write *content* to *path* via temp file + ``os.replace``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(content)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp, path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise


class RecordStore:
    """Durable, per-key serialized storage of JSON-object records."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self._locks: dict[tuple[str, ...], threading.RLock] = {}
        self._locks_guard = threading.Lock()

    # ------------------------------------------------------------------
    # Paths and locks
    # ------------------------------------------------------------------

    def path_for(self, kind: str, key: Key) -> Path:
        parts = _normalize_key(key)
        kind_dir = self.root / _normalize_key(kind)[0]
        return kind_dir.joinpath(*parts[:-1], f"{parts[-1]}{RECORD_SUFFIX}")

    def _lock_for(self, kind: str, parts: tuple[str, ...]) -> threading.RLock:
        ident = (kind, *parts)
        with self._locks_guard:
            lock = self._locks.get(ident)
            if lock is None:
                lock = threading.RLock()
                self._locks[ident] = lock
            return lock

    @contextmanager
    def locked(self, kind: str, key: Key) -> Iterator[None]:
        """Hold the per-key lock (re-entrant) for the duration of the block."""
        with self._lock_for(kind, _normalize_key(key)):
            yield

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def load(self, kind: str, key: Key) -> dict[str, Any]:
        """Return the record for *key*.

        Raises:
            RecordNotFoundError: no file for the key.
            CorruptRecordError: the file is not valid UTF-8 JSON or not an object.
        """
        parts = _normalize_key(key)
        path = self.path_for(kind, parts)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise RecordNotFoundError(kind, parts) from None
        except UnicodeDecodeError as exc:
            raise CorruptRecordError(path, f"not UTF-8 ({exc.reason})") from exc
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise CorruptRecordError(path, f"invalid JSON ({exc.msg})") from exc
        if not isinstance(data, dict):
            raise CorruptRecordError(path, f"expected an object, got {type(data).__name__}")
        return data

    def exists(self, kind: str, key: Key) -> bool:
        return self.path_for(kind, key).is_file()

    def save(self, kind: str, key: Key, record: dict[str, Any]) -> Path:
        """Atomically write *record* for *key*. Returns the record path."""
        parts = _normalize_key(key)
        path = self.path_for(kind, parts)
        content = json.dumps(record, indent=2, ensure_ascii=False) + "\n"
        with self._lock_for(kind, parts):
            atomic_write_text(path, content)
        logger.debug("Saved %s record %s", kind, "/".join(parts))
        return path

    def delete(self, kind: str, key: Key) -> bool:
        """Remove the record for *key*. Idempotent; returns True if a file was removed."""
        parts = _normalize_key(key)
        path = self.path_for(kind, parts)
        with self._lock_for(kind, parts):
            try:
                path.unlink()
            except FileNotFoundError:
                return False
        logger.debug("Deleted %s record %s", kind, "/".join(parts))
        return True

    def update(
        self,
        kind: str,
        key: Key,
        mutate: Callable[[dict[str, Any]], dict[str, Any]],
        *,
        default: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Read-modify-write *key* under its lock.

        *mutate* receives the current record (or a copy of *default* when the
        record is missing and a default is given) and returns the new record.
        """
        parts = _normalize_key(key)
        with self._lock_for(kind, parts):
            try:
                current = self.load(kind, parts)
            except RecordNotFoundError:
                if default is None:
                    raise
                current = json.loads(json.dumps(default))
            updated = mutate(current)
            self.save(kind, parts, updated)
            return updated

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def list_ids(self, kind: str, prefix: Key = ()) -> list[str]:
        """Record ids directly under *prefix*, sorted by name.

        Temp files and dot-files are ignored. A missing directory yields ``[]``.
        """
        parts = () if prefix == () else _normalize_key(prefix)
        directory = (self.root / _normalize_key(kind)[0]).joinpath(*parts)
        if not directory.is_dir():
            return []
        return sorted(
            p.stem
            for p in directory.iterdir()
            if p.is_file() and p.suffix == RECORD_SUFFIX and not p.name.startswith(".")
        )

    def delete_prefix(self, kind: str, prefix: Key) -> int:
        """Delete every record directly under *prefix*, then the empty directory.

        Returns the number of records removed.
        """
        parts = _normalize_key(prefix)
        removed = 0
        for record_id in self.list_ids(kind, parts):
            if self.delete(kind, (*parts, record_id)):
                removed += 1
        directory = (self.root / _normalize_key(kind)[0]).joinpath(*parts)
        try:
            directory.rmdir()
        except FileNotFoundError:
            pass
        except OSError:
            # Something other than records (or a concurrent writer) is still there.
            logger.debug("Left non-empty record directory %s", directory)
        return removed
