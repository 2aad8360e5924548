"""Entity repository: typed Project/Card/key operations over the record store.

The repository owns the *data* half of every cascade. Deleting a project
removes its card records and returns a :class:`CascadeSignal` describing
what was removed; it never touches the image output tree. The caller
performs the *file* half so each phase can fail and be reported on its own.

Every call re-reads from disk; there is no authoritative in-memory cache.
Listing helpers re-scan on every call.

A project's record lock also guards its card set: card writes take it
before the card's own lock, and a project delete holds it for the whole
cascade.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, TypeVar

from pydantic import ValidationError
from pydantic.alias_generators import to_camel

from artcards.domain.models import Card, Project, StoredKey
from artcards.domain.naming import generate_card_id
from artcards.infrastructure.records import CorruptRecordError, RecordStore

logger = logging.getLogger(__name__)

PROJECTS = "projects"
CARDS = "cards"
KEYS = "keys"
KEYRING_ID = "keyring"

MAX_ID_ATTEMPTS = 32

T = TypeVar("T")


def camel_keys(changes: Mapping[str, Any]) -> dict[str, Any]:
    """Normalize snake_case field names to the on-disk camelCase aliases."""
    return {(to_camel(k) if "_" in k else k): v for k, v in changes.items()}


@dataclass(frozen=True)
class CascadeSignal:
    """Records removed by a delete, for the caller's file-cleanup phase.

    ``project`` is None when the project record was already absent (the
    delete is idempotent). ``cards`` lists every card record removed.
    """

    project_id: str
    project: Project | None
    cards: list[Card] = field(default_factory=list)


class EntityRepository:
    """Projects, cards and the API keyring on top of a :class:`RecordStore`."""

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    @property
    def store(self) -> RecordStore:
        return self._store

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def list_projects(self, *, skip_corrupt: bool = False) -> list[Project]:
        """All projects, ordered by id.

        Corrupt records raise :class:`CorruptRecordError` unless
        *skip_corrupt* is set, in which case they are logged and skipped.
        """
        projects: list[Project] = []
        for project_id in self._store.list_ids(PROJECTS):
            try:
                projects.append(self.get_project(project_id))
            except CorruptRecordError:
                if not skip_corrupt:
                    raise
                logger.warning("Skipping corrupt project record %s", project_id)
        return projects

    def get_project(self, project_id: str) -> Project:
        data = self._store.load(PROJECTS, project_id)
        return self._parse(Project, data, PROJECTS, project_id)

    def save_project(self, project: Project) -> Project:
        """Upsert: creates the record or fully replaces its fields."""
        self._store.save(PROJECTS, project.id, project.to_record())
        return project

    def update_project(self, project_id: str, changes: Mapping[str, Any]) -> Project:
        """Merge *changes* into the stored project and re-validate. The id is fixed."""
        with self._store.locked(PROJECTS, project_id):
            current = self.get_project(project_id)
            merged = {**current.to_record(), **camel_keys(changes), "id": project_id}
            project = Project.model_validate(merged)
            return self.save_project(project)

    def delete_project(self, project_id: str) -> CascadeSignal:
        """Delete the project record and every card record under it.

        Card saves for the project wait until the cascade is done, so every
        card record removed is reported in the signal.
        """
        with self._store.locked(PROJECTS, project_id):
            project: Project | None
            try:
                project = self.get_project(project_id)
            except LookupError:
                project = None
            except CorruptRecordError:
                logger.warning("Deleting corrupt project record %s", project_id)
                project = None

            cards = self.list_cards(project_id, skip_corrupt=True)
            for card in cards:
                self._store.delete(CARDS, (project_id, card.id))
            # Corrupt or stray card records go too; the project owns them.
            self._store.delete_prefix(CARDS, project_id)
            self._store.delete(PROJECTS, project_id)
            return CascadeSignal(project_id=project_id, project=project, cards=cards)

    # ------------------------------------------------------------------
    # Cards
    # ------------------------------------------------------------------

    def list_cards(self, project_id: str, *, skip_corrupt: bool = False) -> list[Card]:
        cards: list[Card] = []
        for card_id in self._store.list_ids(CARDS, project_id):
            try:
                cards.append(self.get_card(project_id, card_id))
            except CorruptRecordError:
                if not skip_corrupt:
                    raise
                logger.warning("Skipping corrupt card record %s/%s", project_id, card_id)
        return cards

    def get_card(self, project_id: str, card_id: str) -> Card:
        data = self._store.load(CARDS, (project_id, card_id))
        return self._parse(Card, data, CARDS, f"{project_id}/{card_id}")

    def save_card(self, card: Card) -> Card:
        """Upsert a card under ``card.project_id``.

        Does not check that the project exists; bulk flows may write cards
        before the project record is finalized.
        """
        with self._store.locked(PROJECTS, card.project_id):
            self._store.save(CARDS, (card.project_id, card.id), card.to_record())
        return card

    def modify_card(
        self, project_id: str, card_id: str, mutate: Callable[[Card], T]
    ) -> tuple[Card, T]:
        """Load, mutate in place and save a card under its record lock."""
        with self._card_lock(project_id, card_id):
            card = self.get_card(project_id, card_id)
            outcome = mutate(card)
            self.save_card(card)
            return card, outcome

    def update_card(self, project_id: str, card_id: str, changes: Mapping[str, Any]) -> Card:
        """Merge *changes* into the stored card. Id and owning project are fixed."""
        with self._card_lock(project_id, card_id):
            current = self.get_card(project_id, card_id)
            merged = {
                **current.to_record(),
                **camel_keys(changes),
                "id": card_id,
                "projectId": project_id,
            }
            card = Card.model_validate(merged)
            return self.save_card(card)

    def delete_card(self, project_id: str, card_id: str) -> CascadeSignal:
        """Delete one card record. Idempotent."""
        card: Card | None
        try:
            card = self.get_card(project_id, card_id)
        except LookupError:
            card = None
        except CorruptRecordError:
            logger.warning("Deleting corrupt card record %s/%s", project_id, card_id)
            card = None
        self._store.delete(CARDS, (project_id, card_id))
        return CascadeSignal(project_id=project_id, project=None, cards=[card] if card else [])

    def generate_card_id(self, project_id: str) -> str:
        """New card id not present in the project's current card set.

        Checked against the live listing rather than a counter because ids
        may also arrive from outside (bulk-creation tools).
        """
        existing = set(self._store.list_ids(CARDS, project_id))
        for _ in range(MAX_ID_ATTEMPTS):
            candidate = generate_card_id()
            if candidate not in existing:
                return candidate
        msg = f"Could not generate a unique card id for project {project_id!r}"
        raise RuntimeError(msg)

    def find_cards(self, query: str, project_id: str | None = None) -> list[Card]:
        """Cards whose name contains *query* (case-insensitive).

        Searches one project, or every project when *project_id* is None.
        Corrupt records are skipped.
        """
        needle = query.casefold()
        if project_id is not None:
            project_ids = [project_id]
        else:
            project_ids = self._store.list_ids(PROJECTS)
        found: list[Card] = []
        for pid in project_ids:
            found.extend(
                c for c in self.list_cards(pid, skip_corrupt=True) if needle in c.name.casefold()
            )
        return found

    # ------------------------------------------------------------------
    # Keyring
    # ------------------------------------------------------------------

    def get_keys(self) -> list[StoredKey]:
        try:
            data = self._store.load(KEYS, KEYRING_ID)
        except LookupError:
            return []
        entries = self._keyring_entries(data)
        try:
            return [StoredKey.model_validate(e) for e in entries]
        except ValidationError as exc:
            path = self._store.path_for(KEYS, KEYRING_ID)
            raise CorruptRecordError(path, "malformed keyring entry") from exc

    def save_key(self, name: str, key: str) -> StoredKey:
        """Append a named key, or replace the key stored under *name*."""
        entry = StoredKey(name=name, key=key)

        def _merge(record: dict[str, object]) -> dict[str, object]:
            keys = [k for k in self._keyring_entries(record) if isinstance(k, dict)]
            for existing in keys:
                if existing.get("name") == name:
                    existing["key"] = key
                    break
            else:
                keys.append(entry.to_record())
            record["keys"] = keys
            return record

        self._store.update(KEYS, KEYRING_ID, _merge, default={"keys": []})
        return entry

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _card_lock(self, project_id: str, card_id: str) -> Iterator[None]:
        with (
            self._store.locked(PROJECTS, project_id),
            self._store.locked(CARDS, (project_id, card_id)),
        ):
            yield

    def _keyring_entries(self, record: Mapping[str, object]) -> list[Any]:
        entries = record.get("keys", [])
        if not isinstance(entries, list):
            path = self._store.path_for(KEYS, KEYRING_ID)
            reason = f"keyring 'keys' is {type(entries).__name__}, not a list"
            raise CorruptRecordError(path, reason)
        return entries

    def _parse(self, model: type[T], data: dict[str, object], kind: str, ident: str) -> T:
        try:
            return model.model_validate(data)  # type: ignore[attr-defined]
        except ValidationError as exc:
            key = tuple(ident.split("/"))
            raise CorruptRecordError(
                self._store.path_for(kind, key), f"schema mismatch ({exc.error_count()} errors)"
            ) from exc
