"""Reconcile term requests between the local store and the issue tracker.

The store and the tracker fail independently and share no transaction. The engine
keeps them consistent by always looking before writing (store first, then tracker
search) and by storing a record before its ticket is opened, so a term never gets
more than one ticket and no ticket is left without a record.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, replace
from logging import getLogger
from typing import TYPE_CHECKING

from termrequester.domain.model import IdKind, TermStatus, classify_id, is_allowed_transition
from termrequester.errors import (
    BackendError,
    DataLossError,
    InitializationError,
    InvalidArgumentError,
    InvalidTransitionError,
    TermRequesterError,
)

if TYPE_CHECKING:
    from pathlib import Path

    from termrequester.config.tracker import TrackerConfig
    from termrequester.domain.model import TermEntity, TicketSnapshot
    from termrequester.domain.ports import TermStore, TrackerClient

log = getLogger(__name__)

type StoreFactory = Callable[[Path], TermStore]
type TrackerFactory = Callable[[TrackerConfig], TrackerClient]


@contextmanager
def _backend(operation: str) -> Iterator[None]:
    """Re-raise collaborator failures as :class:`BackendError`."""

    try:
        yield
    except TermRequesterError:
        raise
    except Exception as exc:
        raise BackendError(f"{operation} failed: {exc}") from exc


@dataclass(slots=True, frozen=True)
class CreationResult:
    term: TermEntity
    is_new: bool


@dataclass(slots=True)
class SyncResult:
    """Counters reported by a sync pass."""

    checked: int = 0
    changed: int = 0
    merged: int = 0

    def add(self, other: SyncResult) -> None:
        self.checked += other.checked
        self.changed += other.changed
        self.merged += other.merged


class ReconciliationEngine:
    """Create, look up and synchronise term requests across store and tracker."""

    def __init__(self, *, store_factory: StoreFactory, tracker_factory: TrackerFactory) -> None:
        self._store_factory = store_factory
        self._tracker_factory = tracker_factory
        self._lifecycle_lock = threading.Lock()
        self._store: TermStore | None = None
        self._tracker: TrackerClient | None = None

    # Lifecycle --------------------------------------------------------------

    @property
    def initialized(self) -> bool:
        return self._store is not None

    def init(self, tracker_config: TrackerConfig, store_home: Path) -> None:
        """Open the store and build the tracker client; later calls are no-ops."""

        with self._lifecycle_lock:
            if self._store is not None:
                log.debug("Engine already initialised")
                return
            try:
                store = self._store_factory(store_home)
            except InitializationError:
                raise
            except Exception as exc:
                raise InitializationError(f"Cannot open term store at {store_home}") from exc
            try:
                tracker = self._tracker_factory(tracker_config)
            except Exception as exc:
                store.close()
                raise InitializationError("Cannot create tracker client") from exc
            self._store = store
            self._tracker = tracker
            log.info(
                "Engine initialised: store=%s, tracker=%s",
                store_home,
                tracker_config.repository_path,
            )

    def shutdown(self) -> None:
        """Flush and close the store; safe to call repeatedly."""

        with self._lifecycle_lock:
            store = self._store
            if store is None:
                return
            self._store = None
            self._tracker = None
            with _backend("closing term store"):
                try:
                    store.commit()
                finally:
                    store.close()
            log.info("Engine shut down")

    def _require(self) -> tuple[TermStore, TrackerClient]:
        store, tracker = self._store, self._tracker
        if store is None or tracker is None:
            raise InitializationError("Engine not initialised. Call init() first.")
        return store, tracker

    # Operations -------------------------------------------------------------

    def create_request(self, candidate: TermEntity) -> CreationResult:
        """Register ``candidate`` unless the store or the tracker already knows the term.

        Returns the entity that now represents the term and whether it is new.
        """

        if not candidate.submittable or candidate.local_id is not None:
            raise InvalidArgumentError("Only new, unsubmitted terms can be requested")
        store, tracker = self._require()

        with store.exclusive():
            with _backend("store lookup"):
                existing = store.find_equivalent(candidate)
            if existing is not None:
                log.info("Request %r matches stored term %s", candidate.name, existing.local_id)
                merged = self._merge_existing(store, tracker, existing, candidate)
                return CreationResult(merged, is_new=False)

            with _backend("ticket search"):
                ticket_id = tracker.find_ticket(candidate)
            if ticket_id is not None:
                with _backend("store lookup"):
                    owner = store.find_by_ticket_id(ticket_id)
                if owner is None:
                    raise DataLossError(
                        f"Ticket {ticket_id} for {candidate.name!r} has no stored term",
                        ticket_id=ticket_id,
                    )
                owner.merge_with(candidate)
                self._save(store, owner)
                return CreationResult(owner, is_new=False)

            # the record exists before its ticket; a later request adopts the ticket
            # if the second save fails
            self._save(store, candidate)
            self._submit(tracker, candidate)
            self._save(store, candidate)
            log.info("Created term request %s", candidate.describe())
            return CreationResult(candidate, is_new=True)

    def get_by_id(self, term_id: str) -> TermEntity | None:
        """Fetch a term by local or authority id, refreshed from its ticket.

        A term merged into another as a synonym resolves to the term that owns it.
        """

        kind = classify_id(term_id)
        store, tracker = self._require()
        with store.exclusive():
            with _backend(f"loading {term_id}"):
                if kind is IdKind.LOCAL:
                    term = store.find_by_id(term_id)
                else:
                    term = store.find_by_authority_id(term_id)
            if term is None:
                return None
            if term.ticket_id is not None:
                with self._batch(store):
                    self._sync_one(store, tracker, term)
            if term.status is TermStatus.SYNONYM:
                owner = self._synonym_owner(store, term)
                if owner is not None:
                    log.debug("%s resolves to %s", term.local_id, owner.local_id)
                    return owner
            return term

    def search(self, text: str) -> list[TermEntity]:
        """Search stored terms; the tracker is not consulted."""

        if not text.strip():
            return []
        store, _tracker = self._require()
        with _backend("search"):
            return store.search(text)

    def sync_one(self, term: TermEntity) -> SyncResult:
        store, tracker = self._require()
        with store.exclusive(), self._batch(store):
            return self._sync_one(store, tracker, term)

    def sync_all(self) -> SyncResult:
        """Refresh every submitted term from the tracker and commit once.

        The first failure aborts the batch and rolls the store back.
        """

        store, tracker = self._require()
        total = SyncResult()
        with store.exclusive(), self._batch(store):
            with _backend("listing submitted terms"):
                pending = store.find_by_status(TermStatus.SUBMITTED)
            for term in pending:
                total.add(self._sync_one(store, tracker, term))

        log.info(
            "Sync finished: checked=%s, changed=%s, merged=%s",
            total.checked,
            total.changed,
            total.merged,
        )
        return total

    # Steps ------------------------------------------------------------------

    @contextmanager
    def _batch(self, store: TermStore) -> Iterator[None]:
        """Commit the enclosed writes once, or roll all of them back."""

        previous_autocommit = store.autocommit
        store.set_batch_mode(True)
        try:
            yield
            with _backend("commit"):
                store.commit()
        except Exception:
            self._rollback(store)
            raise
        finally:
            store.set_batch_mode(not previous_autocommit)

    def _merge_existing(
        self,
        store: TermStore,
        tracker: TrackerClient,
        existing: TermEntity,
        candidate: TermEntity,
    ) -> TermEntity:
        gained = existing.merge_with(candidate)
        if existing.submittable:
            with _backend("ticket search"):
                ticket_id = tracker.find_ticket(existing)
            if ticket_id is None:
                self._submit(tracker, existing)
            else:
                log.info("Adopting ticket %s for %s", ticket_id, existing.local_id)
                existing.mark_submitted(ticket_id)
                self._refresh(store, tracker, existing)
                if gained:
                    self._push(store, tracker, existing)
        elif existing.ticket_id is not None:
            self._refresh(store, tracker, existing)
            if gained:
                self._push(store, tracker, existing)
        self._save(store, existing)
        return existing

    def _sync_one(self, store: TermStore, tracker: TrackerClient, term: TermEntity) -> SyncResult:
        result = SyncResult(checked=1)
        previous = self._refresh(store, tracker, term)
        if previous is None or previous is term.status:
            self._save(store, term)
            return result

        result.changed = 1
        log.info("Term %s moved from %s to %s", term.local_id, previous, term.status)
        if term.status is TermStatus.SYNONYM:
            target = self._synonym_owner(store, term)
            if target is None:
                log.warning(
                    "No stored term owns %s; %s keeps its labels",
                    term.authority_id,
                    term.local_id,
                )
            else:
                target.merge_with(term)
                self._save(store, target)
                result.merged = 1
                log.info("Merged %r into %s as a synonym", term.name, target.local_id)
        self._save(store, term)
        return result

    def _synonym_owner(self, store: TermStore, term: TermEntity) -> TermEntity | None:
        if term.authority_id is None:
            return None
        with _backend(f"loading {term.authority_id}"):
            owner = store.find_by_authority_id(term.authority_id)
        if owner is None or owner == term:
            return None
        return owner

    def _submit(self, tracker: TrackerClient, term: TermEntity) -> None:
        with _backend(f"opening ticket for {term.name!r}"):
            snapshot = tracker.open_ticket(term)
        term.mark_submitted(snapshot.ticket_id, validator=snapshot.validator)

    def _refresh(
        self,
        store: TermStore,
        tracker: TrackerClient,
        term: TermEntity,
    ) -> TermStatus | None:
        """Conditionally read the ticket; return the prior status if anything was applied."""

        with _backend(f"reading ticket {term.ticket_id}"):
            snapshot = tracker.read_ticket(term)
        if snapshot is None:
            log.debug("Ticket %s not modified", term.ticket_id)
            return None
        return self._observe(store, term, snapshot)

    def _push(self, store: TermStore, tracker: TrackerClient, term: TermEntity) -> None:
        with _backend(f"updating ticket {term.ticket_id}"):
            snapshot = tracker.patch_ticket(term)
        self._observe(store, term, snapshot)

    def _observe(
        self,
        store: TermStore,
        term: TermEntity,
        snapshot: TicketSnapshot,
    ) -> TermStatus | None:
        snapshot = self._hold_publication(store, term, snapshot)
        try:
            return term.apply_observation(snapshot)
        except InvalidTransitionError as exc:
            log.warning("Ignoring ticket %s for %s: %s", snapshot.ticket_id, term.local_id, exc)
            return None

    def _hold_publication(
        self,
        store: TermStore,
        term: TermEntity,
        snapshot: TicketSnapshot,
    ) -> TicketSnapshot:
        """Keep the current status until the store holds the published authority record.

        A held snapshot still carries its body but drops its validator, so the next
        read fetches the ticket again.
        """

        if (
            snapshot.status is not TermStatus.PUBLISHED
            or term.status is TermStatus.PUBLISHED
            or not is_allowed_transition(term.status, TermStatus.PUBLISHED)
        ):
            return snapshot
        authority_id = snapshot.authority_id or term.authority_id
        if authority_id is not None:
            with _backend(f"loading {authority_id}"):
                if store.find_by_authority_id(authority_id) is not None:
                    return snapshot
        log.warning(
            "Ticket %s is published but %s is not stored; %s stays %s",
            snapshot.ticket_id,
            authority_id,
            term.local_id,
            term.status,
        )
        return replace(snapshot, status=term.status, validator=None)

    def _save(self, store: TermStore, term: TermEntity) -> None:
        with _backend(f"saving {term.name!r}"):
            store.save(term)

    def _rollback(self, store: TermStore) -> None:
        try:
            store.rollback()
        except Exception:
            log.exception("Rollback failed after an aborted write")
