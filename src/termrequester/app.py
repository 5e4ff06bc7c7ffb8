"""Application orchestration entry points."""

from __future__ import annotations

from contextlib import contextmanager
from logging import getLogger
from typing import TYPE_CHECKING

from termrequester.adapters.github import GitHubTrackerClient
from termrequester.adapters.sqlalchemy import open_store
from termrequester.config import get_storage_config, get_tracker_config
from termrequester.domain.model import TermEntity
from termrequester.domain.reconciliation import ReconciliationEngine

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from termrequester.config import StorageConfig, TrackerConfig
    from termrequester.domain.reconciliation import CreationResult, SyncResult
    from termrequester.domain.reconciliation.engine import StoreFactory, TrackerFactory

log = getLogger(__name__)


def _github_tracker(config: TrackerConfig) -> GitHubTrackerClient:
    return GitHubTrackerClient(config=config)


def build_engine(
    *,
    store_factory: StoreFactory | None = None,
    tracker_factory: TrackerFactory | None = None,
) -> ReconciliationEngine:
    return ReconciliationEngine(
        store_factory=store_factory or open_store,
        tracker_factory=tracker_factory or _github_tracker,
    )


@contextmanager
def running_engine(
    *,
    tracker_config: TrackerConfig | None = None,
    storage: StorageConfig | None = None,
    engine: ReconciliationEngine | None = None,
) -> Iterator[ReconciliationEngine]:
    """Yield an initialised engine and shut it down afterwards."""

    effective = engine or build_engine()
    storage_config = storage or get_storage_config()
    effective.init(tracker_config or get_tracker_config(), storage_config.resolve_data_dir())
    try:
        yield effective
    finally:
        effective.shutdown()


def request_term(
    *,
    name: str,
    synonyms: Iterable[str] = (),
    parents: Iterable[str] = (),
    description: str = "",
    engine: ReconciliationEngine | None = None,
) -> CreationResult:
    """Submit a new term request, or return the request that already covers it."""

    candidate = TermEntity(
        name=name,
        synonyms=frozenset(synonyms),
        parent_ids=frozenset(parents),
        description=description,
    )
    with running_engine(engine=engine) as active:
        result = active.create_request(candidate)
    if result.is_new:
        log.info("Requested new term %s", result.term.describe())
    else:
        log.info("Term already requested: %s", result.term.describe())
    return result


def get_term(term_id: str, *, engine: ReconciliationEngine | None = None) -> TermEntity | None:
    with running_engine(engine=engine) as active:
        return active.get_by_id(term_id)


def search_terms(text: str, *, engine: ReconciliationEngine | None = None) -> list[TermEntity]:
    with running_engine(engine=engine) as active:
        return active.search(text)


def sync_terms(*, engine: ReconciliationEngine | None = None) -> SyncResult:
    """Pull tracker state for every submitted term."""

    with running_engine(engine=engine) as active:
        return active.sync_all()
