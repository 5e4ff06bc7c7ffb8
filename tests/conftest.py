from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine  # noqa: TC002

from termrequester.adapters.sqlalchemy import SqlAlchemyTermStore
from termrequester.config import TrackerConfig
from termrequester.domain.reconciliation import ReconciliationEngine
from tests.support.fakes import FakeTermStore, FakeTracker

os.environ.setdefault("DATABASE_URI", "sqlite+pysqlite:///:memory:")

if TYPE_CHECKING:
    from collections.abc import Iterator


@pytest.fixture
def sqlite_engine() -> Iterator[Engine]:
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def term_store(sqlite_engine: Engine) -> Iterator[SqlAlchemyTermStore]:
    store = SqlAlchemyTermStore.open(engine=sqlite_engine)
    try:
        yield store
    finally:
        store.close()


@pytest.fixture
def tracker_config() -> TrackerConfig:
    return TrackerConfig(owner="obophenotype", repository="human-phenotype-ontology", token="t0k")


@pytest.fixture
def fake_store() -> FakeTermStore:
    return FakeTermStore()


@pytest.fixture
def fake_tracker() -> FakeTracker:
    return FakeTracker()


@pytest.fixture
def engine(
    fake_store: FakeTermStore,
    fake_tracker: FakeTracker,
    tracker_config: TrackerConfig,
) -> Iterator[ReconciliationEngine]:
    reconciliation = ReconciliationEngine(
        store_factory=lambda _home: fake_store,
        tracker_factory=lambda _config: fake_tracker,
    )
    reconciliation.init(tracker_config, Path("unused"))
    try:
        yield reconciliation
    finally:
        reconciliation.shutdown()
