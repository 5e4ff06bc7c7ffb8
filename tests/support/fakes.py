"""In-memory store and tracker doubles for reconciliation tests."""

from __future__ import annotations

import copy
import threading
from contextlib import contextmanager
from dataclasses import replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from termrequester.domain.model import IdAllocator, TermEntity, TermStatus, TicketSnapshot
from termrequester.errors import InvalidArgumentError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator


def make_term(name: str = "Long fingers", **kwargs: object) -> TermEntity:
    return TermEntity(name=name, **kwargs)  # type: ignore[arg-type]


class FakeTermStore:
    """Keeps copies of saved terms so callers never share objects with the store."""

    def __init__(self) -> None:
        self.rows: dict[str, TermEntity] = {}
        self.save_calls = 0
        self.writes = 0
        self.commits = 0
        self.rollbacks = 0
        self.closed = False
        self.fail_on_save: Exception | None = None
        self.fail_when: Callable[[TermEntity], bool] | None = None
        self._autocommit = True
        self._pending: dict[str, TermEntity] | None = None
        self._lock = threading.RLock()
        self._allocator = IdAllocator()

    # lifecycle
    @property
    def autocommit(self) -> bool:
        return self._autocommit

    def set_batch_mode(self, enabled: bool) -> None:  # noqa: FBT001
        self._autocommit = not enabled

    @contextmanager
    def exclusive(self) -> Iterator[None]:
        with self._lock:
            yield

    def commit(self) -> None:
        self.commits += 1
        self._pending = None

    def rollback(self) -> None:
        self.rollbacks += 1
        if self._pending is not None:
            self.rows = self._pending
            self._pending = None

    def close(self) -> None:
        self.closed = True

    # writes
    def save(self, term: TermEntity) -> TermEntity:
        self.save_calls += 1
        if not term.is_dirty:
            return term
        if self.fail_on_save is not None:
            raise self.fail_on_save
        if self.fail_when is not None and self.fail_when(term):
            raise RuntimeError(f"cannot save {term.name!r}")
        if not self._autocommit and self._pending is None:
            self._pending = {key: copy.copy(value) for key, value in self.rows.items()}
        now = datetime.now(UTC)
        if term.local_id is None:
            term.local_id = self._allocator.next_id(self.latest_local_id())
            term.created_at = now
        term.modified_at = now
        term.mark_clean()
        self.rows[term.local_id] = copy.copy(term)
        self.writes += 1
        return term

    def delete(self, term: TermEntity) -> bool:
        if term.local_id is None:
            raise InvalidArgumentError("unsaved")
        return self.rows.pop(term.local_id, None) is not None

    # queries
    def _ordered(self) -> list[TermEntity]:
        return [self.rows[key] for key in sorted(self.rows)]

    def _prefer_non_synonym(self, terms: list[TermEntity]) -> TermEntity | None:
        ranked = sorted(terms, key=lambda t: (t.status is TermStatus.SYNONYM, t.local_id))
        return copy.copy(ranked[0]) if ranked else None

    def find_equivalent(self, term: TermEntity) -> TermEntity | None:
        return self._prefer_non_synonym([t for t in self._ordered() if t.is_equivalent(term)])

    def find_by_id(self, local_id: str) -> TermEntity | None:
        found = self.rows.get(local_id)
        return copy.copy(found) if found is not None else None

    def find_by_authority_id(self, authority_id: str) -> TermEntity | None:
        return self._prefer_non_synonym(
            [t for t in self._ordered() if t.authority_id == authority_id]
        )

    def find_by_ticket_id(self, ticket_id: str) -> TermEntity | None:
        return next(
            (copy.copy(t) for t in self._ordered() if t.ticket_id == ticket_id),
            None,
        )

    def find_by_status(self, status: TermStatus) -> list[TermEntity]:
        return [copy.copy(t) for t in self._ordered() if t.status is status]

    def search(self, text: str) -> list[TermEntity]:
        needle = text.casefold()
        return [
            copy.copy(t)
            for t in self._ordered()
            if any(needle in label.casefold() for label in t.labels)
        ]

    def latest_local_id(self) -> str | None:
        return max(self.rows, default=None)


class FakeTracker:
    """Tickets keyed by number; each remote change issues a new validator."""

    def __init__(self) -> None:
        self.tickets: dict[str, TicketSnapshot] = {}
        self.opened: list[str] = []
        self.reads: list[str] = []
        self.patches: list[str] = []
        self.finds: list[str] = []
        self._next_number = 1
        self._version = 0

    def _validator(self) -> str:
        self._version += 1
        return f'W/"v{self._version}"'

    def add_ticket(self, name: str, *, status: TermStatus = TermStatus.SUBMITTED) -> str:
        ticket_id = str(self._next_number)
        self._next_number += 1
        self.tickets[ticket_id] = TicketSnapshot(
            ticket_id=ticket_id,
            status=status,
            validator=self._validator(),
            name=name,
        )
        return ticket_id

    def update_remote(self, ticket_id: str, **changes: object) -> None:
        current = self.tickets[ticket_id]
        self.tickets[ticket_id] = replace(current, validator=self._validator(), **changes)  # type: ignore[arg-type]

    def open_ticket(self, term: TermEntity) -> TicketSnapshot:
        if not term.submittable:
            raise InvalidArgumentError("already submitted")
        ticket_id = str(self._next_number)
        self._next_number += 1
        snapshot = TicketSnapshot(
            ticket_id=ticket_id,
            status=TermStatus.SUBMITTED,
            validator=self._validator(),
            name=term.name,
            synonyms=term.synonyms,
            parent_ids=term.parent_ids,
            description=term.description,
        )
        self.tickets[ticket_id] = snapshot
        self.opened.append(ticket_id)
        return snapshot

    def patch_ticket(self, term: TermEntity) -> TicketSnapshot:
        assert term.ticket_id is not None
        self.patches.append(term.ticket_id)
        self.update_remote(
            term.ticket_id,
            name=term.name,
            synonyms=term.synonyms,
            parent_ids=term.parent_ids,
        )
        return self.tickets[term.ticket_id]

    def read_ticket(self, term: TermEntity) -> TicketSnapshot | None:
        assert term.ticket_id is not None
        self.reads.append(term.ticket_id)
        snapshot = self.tickets[term.ticket_id]
        if term.cache_validator is not None and term.cache_validator == snapshot.validator:
            return None
        return snapshot

    def find_ticket(self, term: TermEntity) -> str | None:
        self.finds.append(term.name)
        keys = term.label_keys
        for ticket_id in sorted(self.tickets, key=int):
            ticket_term = TermEntity(name=self.tickets[ticket_id].name or "?")
            if not ticket_term.label_keys.isdisjoint(keys):
                return ticket_id
        return None
