from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from termrequester.domain.model import TermEntity, TermStatus
from termrequester.domain.reconciliation import ReconciliationEngine
from termrequester.errors import (
    BackendError,
    DataLossError,
    InitializationError,
    InvalidArgumentError,
)
from tests.support.fakes import FakeTermStore, FakeTracker

if TYPE_CHECKING:
    from collections.abc import Iterator

    from termrequester.adapters.sqlalchemy import SqlAlchemyTermStore
    from termrequester.config import TrackerConfig


def _stored(
    store: FakeTermStore,
    tracker: FakeTracker,
    name: str,
    *,
    status: TermStatus = TermStatus.SUBMITTED,
    authority_id: str | None = None,
    synonyms: frozenset[str] = frozenset(),
) -> TermEntity:
    ticket_id = None
    if status is not TermStatus.UNSUBMITTED:
        ticket_id = tracker.add_ticket(name, status=status)
    term = TermEntity(
        name=name,
        synonyms=synonyms,
        status=status,
        ticket_id=ticket_id,
        authority_id=authority_id,
    )
    if ticket_id is not None:
        term.cache_validator = tracker.tickets[ticket_id].validator
    return store.save(term)


# Lifecycle --------------------------------------------------------------------


def test_init_is_idempotent(
    fake_store: FakeTermStore,
    fake_tracker: FakeTracker,
    tracker_config: TrackerConfig,
) -> None:
    opened: list[Path] = []

    def store_factory(home: Path) -> FakeTermStore:
        opened.append(home)
        return fake_store

    engine = ReconciliationEngine(
        store_factory=store_factory,
        tracker_factory=lambda _config: fake_tracker,
    )

    engine.init(tracker_config, Path("home"))
    engine.init(tracker_config, Path("elsewhere"))

    assert opened == [Path("home")]
    assert engine.initialized

    engine.shutdown()
    engine.shutdown()

    assert fake_store.closed
    assert fake_store.commits == 1
    assert not engine.initialized


def test_init_wraps_store_failures(fake_tracker: FakeTracker, tracker_config: TrackerConfig) -> None:
    def broken_store(_home: Path) -> FakeTermStore:
        raise OSError("disk full")

    engine = ReconciliationEngine(
        store_factory=broken_store,
        tracker_factory=lambda _config: fake_tracker,
    )

    with pytest.raises(InitializationError):
        engine.init(tracker_config, Path("home"))
    assert not engine.initialized


def test_operations_require_init(fake_store: FakeTermStore, fake_tracker: FakeTracker) -> None:
    engine = ReconciliationEngine(
        store_factory=lambda _home: fake_store,
        tracker_factory=lambda _config: fake_tracker,
    )

    with pytest.raises(InitializationError):
        engine.search("fingers")


# create_request ---------------------------------------------------------------


def test_create_request_opens_exactly_one_ticket(
    engine: ReconciliationEngine,
    fake_tracker: FakeTracker,
) -> None:
    first = engine.create_request(TermEntity(name="Foo"))
    second = engine.create_request(TermEntity(name="Foo"))

    assert first.is_new is True
    assert second.is_new is False
    assert len(fake_tracker.opened) == 1
    assert len(fake_tracker.tickets) == 1
    assert first.term.local_id == "TEMPHPO_000001"
    assert first.term.status is TermStatus.SUBMITTED
    assert second.term == first.term


def test_create_request_merges_labels_into_existing_term(
    engine: ReconciliationEngine,
    fake_store: FakeTermStore,
    fake_tracker: FakeTracker,
) -> None:
    existing = _stored(fake_store, fake_tracker, "Long fingers")

    result = engine.create_request(
        TermEntity(name="Spider fingers", synonyms=frozenset({"long fingers"}))
    )

    assert result.is_new is False
    assert result.term == existing
    assert "Spider fingers" in result.term.synonyms
    assert fake_tracker.opened == []
    assert fake_tracker.patches == [existing.ticket_id]
    stored = fake_store.find_by_id(existing.local_id or "")
    assert stored is not None
    assert "Spider fingers" in stored.synonyms
    assert stored.cache_validator == fake_tracker.tickets[existing.ticket_id or ""].validator


def test_create_request_submits_stored_term_without_ticket(
    engine: ReconciliationEngine,
    fake_store: FakeTermStore,
    fake_tracker: FakeTracker,
) -> None:
    existing = _stored(fake_store, fake_tracker, "Long fingers", status=TermStatus.UNSUBMITTED)

    result = engine.create_request(TermEntity(name="Long fingers"))

    assert result.is_new is False
    assert result.term == existing
    assert fake_tracker.opened == [result.term.ticket_id]
    assert result.term.status is TermStatus.SUBMITTED
    assert not result.term.is_dirty


def test_create_request_adopts_ticket_found_for_unsubmitted_term(
    engine: ReconciliationEngine,
    fake_store: FakeTermStore,
    fake_tracker: FakeTracker,
) -> None:
    existing = _stored(fake_store, fake_tracker, "Long fingers", status=TermStatus.UNSUBMITTED)
    ticket_id = fake_tracker.add_ticket("Long fingers")

    result = engine.create_request(TermEntity(name="Long fingers"))

    assert result.term == existing
    assert result.term.ticket_id == ticket_id
    assert fake_tracker.opened == []
    assert fake_tracker.reads == [ticket_id]


def test_create_request_adopts_tracker_ticket_owned_by_store(
    engine: ReconciliationEngine,
    fake_store: FakeTermStore,
    fake_tracker: FakeTracker,
) -> None:
    owner = _stored(fake_store, fake_tracker, "Arachnodactyly")
    # the ticket was renamed remotely; the store still knows the old label only
    fake_tracker.update_remote(owner.ticket_id or "", name="Spider fingers")

    result = engine.create_request(TermEntity(name="Spider fingers"))

    assert result.is_new is False
    assert result.term == owner
    assert "Spider fingers" in result.term.synonyms
    assert fake_tracker.opened == []


def test_create_request_raises_data_loss_for_orphan_ticket(
    engine: ReconciliationEngine,
    fake_store: FakeTermStore,
    fake_tracker: FakeTracker,
) -> None:
    ticket_id = fake_tracker.add_ticket("Foo")

    with pytest.raises(DataLossError) as excinfo:
        engine.create_request(TermEntity(name="Foo"))

    assert excinfo.value.ticket_id == ticket_id
    assert fake_store.rows == {}
    assert fake_tracker.opened == []


def test_create_request_rejects_already_submitted_candidates(engine: ReconciliationEngine) -> None:
    candidate = TermEntity(name="Foo", status=TermStatus.SUBMITTED, ticket_id="1")

    with pytest.raises(InvalidArgumentError):
        engine.create_request(candidate)


def test_create_request_wraps_store_failures(
    engine: ReconciliationEngine,
    fake_store: FakeTermStore,
    fake_tracker: FakeTracker,
) -> None:
    fake_store.fail_on_save = RuntimeError("database is locked")

    with pytest.raises(BackendError) as excinfo:
        engine.create_request(TermEntity(name="Foo"))

    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert fake_tracker.tickets == {}


def test_create_request_recovers_when_save_after_ticket_fails(
    engine: ReconciliationEngine,
    fake_store: FakeTermStore,
    fake_tracker: FakeTracker,
) -> None:
    fake_store.fail_when = lambda term: term.status is TermStatus.SUBMITTED

    with pytest.raises(BackendError):
        engine.create_request(TermEntity(name="Foo"))

    assert list(fake_tracker.tickets) == ["1"]
    [pending] = fake_store.rows.values()
    assert pending.status is TermStatus.UNSUBMITTED

    fake_store.fail_when = None
    result = engine.create_request(TermEntity(name="Foo"))

    assert result.is_new is False
    assert result.term.local_id == pending.local_id
    assert result.term.ticket_id == "1"
    assert result.term.status is TermStatus.SUBMITTED
    assert fake_tracker.opened == ["1"]


def test_create_request_refuses_terms_held_by_the_authority(
    engine: ReconciliationEngine,
    fake_tracker: FakeTracker,
) -> None:
    with pytest.raises(InvalidArgumentError):
        engine.create_request(TermEntity(name="Foo", authority_id="HP:0000118"))

    assert fake_tracker.finds == []


# get_by_id / search -----------------------------------------------------------


def test_get_by_id_refreshes_from_ticket(
    engine: ReconciliationEngine,
    fake_store: FakeTermStore,
    fake_tracker: FakeTracker,
) -> None:
    term = _stored(fake_store, fake_tracker, "Long fingers")
    fake_tracker.update_remote(
        term.ticket_id or "",
        status=TermStatus.ACCEPTED,
        authority_id="HP:0001166",
    )

    found = engine.get_by_id(term.local_id or "")

    assert found is not None
    assert found.status is TermStatus.ACCEPTED
    assert found.authority_id == "HP:0001166"
    assert engine.get_by_id("HP:0001166") == found
    stored = fake_store.find_by_id(term.local_id or "")
    assert stored is not None
    assert stored.status is TermStatus.ACCEPTED


def test_get_by_id_missing_and_malformed(engine: ReconciliationEngine) -> None:
    assert engine.get_by_id("TEMPHPO_000404") is None
    with pytest.raises(InvalidArgumentError):
        engine.get_by_id("not-an-id")


def test_not_modified_read_leaves_term_unchanged(
    engine: ReconciliationEngine,
    fake_store: FakeTermStore,
    fake_tracker: FakeTracker,
) -> None:
    term = _stored(fake_store, fake_tracker, "Long fingers")
    writes_before = fake_store.writes

    found = engine.get_by_id(term.local_id or "")

    assert found is not None
    assert found.status is TermStatus.SUBMITTED
    assert found.cache_validator == term.cache_validator
    assert fake_tracker.reads == [term.ticket_id]
    assert fake_store.writes == writes_before


def test_search_only_consults_the_store(
    engine: ReconciliationEngine,
    fake_store: FakeTermStore,
    fake_tracker: FakeTracker,
) -> None:
    _stored(fake_store, fake_tracker, "Long fingers")

    assert [t.name for t in engine.search("finger")] == ["Long fingers"]
    assert engine.search("   ") == []
    assert fake_tracker.reads == []
    assert fake_tracker.finds == []


# sync -------------------------------------------------------------------------


@pytest.mark.parametrize("count", [0, 1, 4])
def test_sync_all_reads_each_submitted_term_and_commits_once(
    engine: ReconciliationEngine,
    fake_store: FakeTermStore,
    fake_tracker: FakeTracker,
    count: int,
) -> None:
    for index in range(count):
        _stored(fake_store, fake_tracker, f"Term {index}")
    _stored(fake_store, fake_tracker, "Done", status=TermStatus.ACCEPTED)
    fake_store.save_calls = 0

    result = engine.sync_all()

    assert len(fake_tracker.reads) == count
    assert fake_store.save_calls <= count
    assert fake_store.commits == 1
    assert fake_store.autocommit is True
    assert result.checked == count


def test_sync_all_applies_status_changes(
    engine: ReconciliationEngine,
    fake_store: FakeTermStore,
    fake_tracker: FakeTracker,
) -> None:
    accepted = _stored(fake_store, fake_tracker, "Long fingers")
    untouched = _stored(fake_store, fake_tracker, "Short toes")
    fake_tracker.update_remote(accepted.ticket_id or "", status=TermStatus.ACCEPTED)

    result = engine.sync_all()

    assert result.changed == 1
    refreshed = fake_store.find_by_id(accepted.local_id or "")
    assert refreshed is not None
    assert refreshed.status is TermStatus.ACCEPTED
    still = fake_store.find_by_id(untouched.local_id or "")
    assert still is not None
    assert still.status is TermStatus.SUBMITTED


def test_sync_one_persists_observed_changes(
    engine: ReconciliationEngine,
    fake_store: FakeTermStore,
    fake_tracker: FakeTracker,
) -> None:
    term = _stored(fake_store, fake_tracker, "Long fingers")
    fake_tracker.update_remote(
        term.ticket_id or "",
        status=TermStatus.REJECTED,
        synonyms=frozenset({"Arachnodactyly"}),
    )

    result = engine.sync_one(term)

    assert (result.checked, result.changed, result.merged) == (1, 1, 0)
    stored = fake_store.find_by_id(term.local_id or "")
    assert stored is not None
    assert stored.status is TermStatus.REJECTED
    assert stored.synonyms == frozenset({"Arachnodactyly"})
    assert engine.sync_one(stored).changed == 0


def test_sync_all_merges_synonym_into_authority_owner(
    engine: ReconciliationEngine,
    fake_store: FakeTermStore,
    fake_tracker: FakeTracker,
) -> None:
    owner = _stored(
        fake_store,
        fake_tracker,
        "Arachnodactyly",
        status=TermStatus.ACCEPTED,
        authority_id="HP:0001166",
    )
    duplicate = _stored(fake_store, fake_tracker, "Spider fingers")
    fake_tracker.update_remote(
        duplicate.ticket_id or "",
        status=TermStatus.SYNONYM,
        authority_id="HP:0001166",
    )

    result = engine.sync_all()

    assert result.merged == 1
    merged_owner = fake_store.find_by_id(owner.local_id or "")
    assert merged_owner is not None
    assert "Spider fingers" in merged_owner.synonyms
    assert merged_owner.status is TermStatus.ACCEPTED
    synonym = fake_store.find_by_id(duplicate.local_id or "")
    assert synonym is not None
    assert synonym.status is TermStatus.SYNONYM
    assert synonym.authority_id == "HP:0001166"


def test_sync_all_flags_unexpected_transition(
    engine: ReconciliationEngine,
    fake_store: FakeTermStore,
    fake_tracker: FakeTracker,
    caplog: pytest.LogCaptureFixture,
) -> None:
    term = _stored(fake_store, fake_tracker, "Long fingers")
    fake_tracker.update_remote(term.ticket_id or "", status=TermStatus.UNSUBMITTED)

    result = engine.sync_all()

    assert result.changed == 0
    stored = fake_store.find_by_id(term.local_id or "")
    assert stored is not None
    assert stored.status is TermStatus.SUBMITTED
    assert stored.cache_validator == term.cache_validator
    assert "Ignoring ticket" in caplog.text


def test_sync_all_rolls_back_on_failure(
    engine: ReconciliationEngine,
    fake_store: FakeTermStore,
    fake_tracker: FakeTracker,
) -> None:
    first = _stored(fake_store, fake_tracker, "Long fingers")
    _stored(fake_store, fake_tracker, "Short toes")
    fake_tracker.update_remote(first.ticket_id or "", status=TermStatus.ACCEPTED)
    original_read = fake_tracker.read_ticket
    calls = 0

    def flaky_read(term: TermEntity) -> object:
        nonlocal calls
        calls += 1
        if calls == 2:
            raise ConnectionError("tracker unavailable")
        return original_read(term)

    fake_tracker.read_ticket = flaky_read  # type: ignore[method-assign]

    with pytest.raises(BackendError):
        engine.sync_all()

    assert fake_store.commits == 0
    assert fake_store.rollbacks == 1
    assert fake_store.autocommit is True
    reverted = fake_store.find_by_id(first.local_id or "")
    assert reverted is not None
    assert reverted.status is TermStatus.SUBMITTED


def _synonym_pair(store: FakeTermStore, tracker: FakeTracker) -> tuple[TermEntity, TermEntity]:
    owner = _stored(
        store,
        tracker,
        "Arachnodactyly",
        status=TermStatus.ACCEPTED,
        authority_id="HP:0001166",
    )
    duplicate = _stored(store, tracker, "Spider fingers")
    tracker.update_remote(
        duplicate.ticket_id or "",
        status=TermStatus.SYNONYM,
        authority_id="HP:0001166",
    )
    return owner, duplicate


def test_get_by_id_resolves_synonym_to_its_owner(
    engine: ReconciliationEngine,
    fake_store: FakeTermStore,
    fake_tracker: FakeTracker,
) -> None:
    owner, duplicate = _synonym_pair(fake_store, fake_tracker)

    found = engine.get_by_id(duplicate.local_id or "")

    assert found == owner
    assert found is not None
    assert "Spider fingers" in found.synonyms
    assert fake_store.commits == 1
    # already merged: the next lookup reads a not-modified ticket and resolves again
    assert engine.get_by_id(duplicate.local_id or "") == owner


def test_get_by_id_rolls_back_a_half_applied_merge(
    engine: ReconciliationEngine,
    fake_store: FakeTermStore,
    fake_tracker: FakeTracker,
) -> None:
    owner, duplicate = _synonym_pair(fake_store, fake_tracker)
    fake_store.fail_when = lambda term: term.status is TermStatus.SYNONYM

    with pytest.raises(BackendError):
        engine.get_by_id(duplicate.local_id or "")

    assert fake_store.rollbacks == 1
    assert fake_store.commits == 0
    assert fake_store.autocommit is True
    stored_owner = fake_store.find_by_id(owner.local_id or "")
    assert stored_owner is not None
    assert stored_owner.synonyms == frozenset()
    stored_duplicate = fake_store.find_by_id(duplicate.local_id or "")
    assert stored_duplicate is not None
    assert stored_duplicate.status is TermStatus.SUBMITTED
    assert stored_duplicate.cache_validator == duplicate.cache_validator


# publication --------------------------------------------------------------------


def test_publication_applies_once_authority_record_is_stored(
    engine: ReconciliationEngine,
    fake_store: FakeTermStore,
    fake_tracker: FakeTracker,
) -> None:
    term = _stored(
        fake_store,
        fake_tracker,
        "Long fingers",
        status=TermStatus.ACCEPTED,
        authority_id="HP:0001166",
    )
    fake_tracker.update_remote(term.ticket_id or "", status=TermStatus.PUBLISHED)

    found = engine.get_by_id(term.local_id or "")

    assert found is not None
    assert found.status is TermStatus.PUBLISHED


def test_publication_waits_for_authority_record(
    engine: ReconciliationEngine,
    fake_store: FakeTermStore,
    fake_tracker: FakeTracker,
    caplog: pytest.LogCaptureFixture,
) -> None:
    term = _stored(fake_store, fake_tracker, "Long fingers", status=TermStatus.ACCEPTED)
    fake_tracker.update_remote(
        term.ticket_id or "",
        status=TermStatus.PUBLISHED,
        authority_id="HP:0001166",
    )

    held = engine.get_by_id(term.local_id or "")

    assert held is not None
    assert held.status is TermStatus.ACCEPTED
    assert held.authority_id == "HP:0001166"
    assert held.cache_validator == term.cache_validator
    assert "is published but HP:0001166 is not stored" in caplog.text

    published = engine.get_by_id(term.local_id or "")

    assert published is not None
    assert published.status is TermStatus.PUBLISHED


# SQLAlchemy store -----------------------------------------------------------------


@pytest.fixture
def stored_engine(
    term_store: SqlAlchemyTermStore,
    fake_tracker: FakeTracker,
    tracker_config: TrackerConfig,
) -> Iterator[ReconciliationEngine]:
    reconciliation = ReconciliationEngine(
        store_factory=lambda _home: term_store,
        tracker_factory=lambda _config: fake_tracker,
    )
    reconciliation.init(tracker_config, Path("unused"))
    try:
        yield reconciliation
    finally:
        reconciliation.shutdown()


def test_request_accept_and_merge_against_sqlite(
    stored_engine: ReconciliationEngine,
    term_store: SqlAlchemyTermStore,
    fake_tracker: FakeTracker,
) -> None:
    owner = stored_engine.create_request(TermEntity(name="Arachnodactyly")).term
    fake_tracker.update_remote(
        owner.ticket_id or "",
        status=TermStatus.ACCEPTED,
        authority_id="HP:0001166",
    )
    accepted = stored_engine.get_by_id(owner.local_id or "")
    assert accepted is not None
    assert accepted.status is TermStatus.ACCEPTED

    again = stored_engine.create_request(
        TermEntity(name="arachnodactyly", synonyms=frozenset({"Long slender fingers"}))
    )
    assert again.is_new is False
    assert fake_tracker.patches == [owner.ticket_id]

    duplicate = stored_engine.create_request(TermEntity(name="Spider fingers")).term
    assert duplicate.local_id == "TEMPHPO_000002"
    fake_tracker.update_remote(
        duplicate.ticket_id or "",
        status=TermStatus.SYNONYM,
        authority_id="HP:0001166",
    )

    summary = stored_engine.sync_all()

    assert (summary.checked, summary.changed, summary.merged) == (1, 1, 1)
    resolved = stored_engine.get_by_id(duplicate.local_id or "")
    assert resolved == owner
    assert resolved is not None
    assert resolved.synonyms == frozenset({"Long slender fingers", "Spider fingers"})
    assert [term.local_id for term in stored_engine.search("spider")] == [
        owner.local_id,
        duplicate.local_id,
    ]
    stored_duplicate = term_store.find_by_id(duplicate.local_id or "")
    assert stored_duplicate is not None
    assert stored_duplicate.status is TermStatus.SYNONYM
