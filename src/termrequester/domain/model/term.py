"""The term request entity: identity, mergeable labels and dirty tracking."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from termrequester.errors import InvalidArgumentError

from .enums import TermStatus
from .labels import clean_label, label_key, label_keys
from .lifecycle import check_transition

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import datetime

    from .ticket import TicketSnapshot


def _union_labels(
    existing: frozenset[str], extra: Iterable[str], *, exclude_key: str
) -> frozenset[str]:
    """Add ``extra`` to ``existing`` skipping blanks, the excluded key and key duplicates."""

    result = set(existing)
    seen = {exclude_key, *label_keys(existing)}
    for raw in sorted(extra):
        label = clean_label(raw)
        key = label_key(label)
        if not key or key in seen:
            continue
        seen.add(key)
        result.add(label)
    return frozenset(result)


@dataclass(eq=False, kw_only=True)
class TermEntity:
    """A proposed vocabulary term.

    Equality is strict: two entities are equal only when both carry the same
    ``local_id`` (or they are the same object). Use :meth:`is_equivalent` for the fuzzy
    label-based match used during deduplication. Entities are mutable and therefore
    unhashable; key collections by ``local_id``.
    """

    name: str
    synonyms: frozenset[str] = field(default_factory=frozenset)
    description: str = ""
    parent_ids: frozenset[str] = field(default_factory=frozenset)
    status: TermStatus = TermStatus.UNSUBMITTED
    local_id: str | None = None
    authority_id: str | None = None
    ticket_id: str | None = None
    created_at: datetime | None = None
    modified_at: datetime | None = None
    cache_validator: str | None = None
    version_mark: str | None = field(default=None, repr=False)

    __hash__ = None  # type: ignore[assignment]

    def __post_init__(self) -> None:
        self.name = clean_label(self.name)
        if not self.name:
            raise InvalidArgumentError("Term name must not be blank")
        self.synonyms = _union_labels(frozenset(), self.synonyms, exclude_key=self.name_key)
        self.parent_ids = frozenset(p.strip() for p in self.parent_ids if p.strip())
        self.description = self.description.strip()
        if self.status is TermStatus.UNSUBMITTED and self.ticket_id is not None:
            raise InvalidArgumentError("An unsubmitted term cannot carry a ticket id")
        if self.status is not TermStatus.UNSUBMITTED and self.ticket_id is None:
            raise InvalidArgumentError(f"A {self.status} term needs a ticket id")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TermEntity):
            return NotImplemented
        if self is other:
            return True
        return self.local_id is not None and self.local_id == other.local_id

    # Labels -----------------------------------------------------------------

    @property
    def name_key(self) -> str:
        return label_key(self.name)

    @property
    def labels(self) -> frozenset[str]:
        return self.synonyms | {self.name}

    @property
    def label_keys(self) -> frozenset[str]:
        return label_keys(self.labels)

    def add_synonym(self, label: str) -> bool:
        return self.add_synonyms((label,))

    def add_synonyms(self, labels: Iterable[str]) -> bool:
        """Add alternate labels; the name and already known labels are skipped."""

        updated = _union_labels(self.synonyms, labels, exclude_key=self.name_key)
        if updated == self.synonyms:
            return False
        self.synonyms = updated
        return True

    def add_parent(self, parent_id: str) -> bool:
        return self.add_parents((parent_id,))

    def add_parents(self, parent_ids: Iterable[str]) -> bool:
        updated = self.parent_ids | {p.strip() for p in parent_ids if p.strip()}
        if updated == self.parent_ids:
            return False
        self.parent_ids = updated
        return True

    def rename(self, name: str) -> bool:
        """Make ``name`` the primary label, keeping the previous one as a synonym."""

        cleaned = clean_label(name)
        new_key = label_key(cleaned)
        if not new_key:
            raise InvalidArgumentError("Term name must not be blank")
        if new_key == self.name_key:
            return False
        previous = self.name
        self.name = cleaned
        remaining = frozenset(s for s in self.synonyms if label_key(s) != new_key)
        self.synonyms = _union_labels(remaining, (previous,), exclude_key=new_key)
        return True

    # Identity ---------------------------------------------------------------

    def is_equivalent(self, other: TermEntity) -> bool:
        """Whether ``other`` describes the same term (shared id or any shared label)."""

        if self.local_id is not None and self.local_id == other.local_id:
            return True
        return not self.label_keys.isdisjoint(other.label_keys)

    def merge_with(self, other: TermEntity) -> bool:
        """Absorb ``other``'s name and synonyms as synonyms of this term.

        Status, ids and parents stay as they are and ``other`` is not modified.
        Returns whether any label was added.
        """

        return self.add_synonyms((*other.synonyms, other.name))

    @property
    def submittable(self) -> bool:
        """Unsubmitted, without a ticket, and not already held by the authority."""

        return (
            self.status is TermStatus.UNSUBMITTED
            and self.ticket_id is None
            and self.authority_id is None
        )

    # Tracker observations ---------------------------------------------------

    def mark_submitted(self, ticket_id: str, *, validator: str | None = None) -> None:
        """Record that a ticket now exists for this term."""

        if not self.submittable:
            raise InvalidArgumentError(f"Term {self.name!r} already has ticket {self.ticket_id}")
        check_transition(self.status, TermStatus.SUBMITTED)
        self.ticket_id = ticket_id
        self.status = TermStatus.SUBMITTED
        self.cache_validator = validator

    def apply_observation(self, snapshot: TicketSnapshot) -> TermStatus:
        """Apply tracker state read for this term's ticket and return the previous status.

        The transition is validated before anything changes, so a rejected observation
        leaves the entity untouched. Remote labels never drop local ones: the remote name
        wins and the old name becomes a synonym, synonyms and parents are unioned.
        """

        if self.ticket_id is None:
            raise InvalidArgumentError(f"Term {self.name!r} has no ticket to observe")
        if snapshot.ticket_id != self.ticket_id:
            raise InvalidArgumentError(
                f"Snapshot for ticket {snapshot.ticket_id} does not belong to {self.ticket_id}"
            )
        check_transition(self.status, snapshot.status)

        previous = self.status
        self.status = snapshot.status
        if snapshot.authority_id is not None:
            self.authority_id = snapshot.authority_id
        if snapshot.name:
            self.rename(snapshot.name)
        self.add_synonyms(snapshot.synonyms)
        self.add_parents(snapshot.parent_ids)
        if snapshot.description:
            self.description = snapshot.description.strip()
        if snapshot.validator is not None:
            self.cache_validator = snapshot.validator
        return previous

    # Dirty tracking ---------------------------------------------------------

    def state_hash(self) -> str:
        """Digest of every persisted attribute except the store timestamps."""

        state = {
            "local_id": self.local_id,
            "authority_id": self.authority_id,
            "ticket_id": self.ticket_id,
            "name": self.name,
            "synonyms": sorted(self.synonyms),
            "description": self.description,
            "parent_ids": sorted(self.parent_ids),
            "status": self.status.value,
            "cache_validator": self.cache_validator,
        }
        encoded = json.dumps(state, sort_keys=True, ensure_ascii=False).encode("utf-8")
        return hashlib.sha256(encoded).hexdigest()

    @property
    def is_dirty(self) -> bool:
        return self.local_id is None or self.version_mark != self.state_hash()

    def mark_clean(self) -> None:
        if self.local_id is None:
            raise InvalidArgumentError("Only saved terms can be marked clean")
        self.version_mark = self.state_hash()

    def describe(self) -> str:
        """One-line summary for logs and command output."""

        ident = self.local_id or "<unsaved>"
        extra = f" ticket={self.ticket_id}" if self.ticket_id else ""
        if self.authority_id:
            extra += f" authority={self.authority_id}"
        return f"{ident} {self.name!r} [{self.status}]{extra}"
