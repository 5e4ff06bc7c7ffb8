"""SQLAlchemy-backed term store."""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING, Any

from sqlalchemy import case, create_engine, delete, insert, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from termrequester.config.storage import StorageConfig, get_database_uri
from termrequester.domain.model import IdAllocator, TermEntity, TermStatus, label_key
from termrequester.domain.ports import TermStore
from termrequester.errors import InitializationError, InvalidArgumentError

from .mappings import term_label_table, term_table
from .migrations import upgrade_head

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from pathlib import Path

    from sqlalchemy import Row
    from sqlalchemy.engine import Engine

log = getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SqlAlchemyTermStore:
    """Term store over a single SQLAlchemy session.

    All access is serialised through one re-entrant lock, which :meth:`exclusive`
    also exposes to callers that need several operations to run without
    interleaving. In batch mode writes stay in the open transaction until
    :meth:`commit`; entities saved in a batch that is rolled back must be reloaded.
    """

    def __init__(
        self,
        engine: Engine,
        *,
        allocator: IdAllocator | None = None,
        clock: Callable[[], datetime] = _utcnow,
        owns_engine: bool = False,
    ) -> None:
        self._engine = engine
        self._owns_engine = owns_engine
        self._session_factory: sessionmaker[Session] = sessionmaker(
            bind=engine, expire_on_commit=False
        )
        self._session: Session | None = self._session_factory()
        self._allocator = allocator or IdAllocator()
        self._clock = clock
        self._autocommit = True
        self._lock = threading.RLock()

    @classmethod
    def open(
        cls,
        *,
        engine: Engine | None = None,
        database_uri: str | None = None,
    ) -> SqlAlchemyTermStore:
        """Create the store, migrating the schema to the latest revision first."""

        owns_engine = engine is None
        uri = database_uri or get_database_uri()
        try:
            resolved = engine or create_engine(uri, future=True)
            upgrade_head(engine=resolved)
        except SQLAlchemyError as exc:
            raise InitializationError(f"Cannot open term store: {exc}") from exc
        log.debug("Opened term store on %s", resolved.url)
        return cls(resolved, owns_engine=owns_engine)

    # Session handling -------------------------------------------------------

    @property
    def session(self) -> Session:
        if self._session is None:
            raise InitializationError("Term store is closed")
        return self._session

    @property
    def autocommit(self) -> bool:
        return self._autocommit

    def set_batch_mode(self, enabled: bool) -> None:  # noqa: FBT001
        with self._lock:
            self._autocommit = not enabled

    @contextmanager
    def exclusive(self) -> Iterator[None]:
        with self._lock:
            yield

    def commit(self) -> None:
        with self._lock:
            self.session.commit()

    def rollback(self) -> None:
        with self._lock:
            self.session.rollback()

    def close(self) -> None:
        with self._lock:
            if self._session is None:
                return
            self._session.close()
            self._session = None
            if self._owns_engine:
                self._engine.dispose()

    def _write(self, statements: Sequence[Any]) -> None:
        session = self.session
        try:
            for statement in statements:
                session.execute(statement)
            if self._autocommit:
                session.commit()
        except SQLAlchemyError:
            session.rollback()
            raise

    # Writes -----------------------------------------------------------------

    def save(self, term: TermEntity) -> TermEntity:
        with self._lock:
            if not term.is_dirty:
                return term
            now = self._clock()
            is_new = term.local_id is None or self._find_row(term.local_id) is None
            local_id = term.local_id or self._allocator.next_id(self.latest_local_id())
            created_at = term.created_at or now
            values = self._row_values(term)
            values["modified_at"] = now

            if is_new:
                statement: Any = insert(term_table).values(
                    local_id=local_id, created_at=created_at, **values
                )
            else:
                statement = (
                    update(term_table).where(term_table.c.local_id == local_id).values(**values)
                )
            self._write(
                [
                    statement,
                    delete(term_label_table).where(term_label_table.c.local_id == local_id),
                    *(
                        insert(term_label_table).values(local_id=local_id, label_key=key)
                        for key in sorted(term.label_keys)
                    ),
                ]
            )

            term.local_id = local_id
            term.created_at = created_at
            term.modified_at = now
            term.mark_clean()
            log.debug("Saved %s", term.describe())
            return term

    def delete(self, term: TermEntity) -> bool:
        if term.local_id is None:
            raise InvalidArgumentError("Cannot delete a term that was never saved")
        with self._lock:
            existed = self._find_row(term.local_id) is not None
            self._write(
                [
                    delete(term_label_table).where(term_label_table.c.local_id == term.local_id),
                    delete(term_table).where(term_table.c.local_id == term.local_id),
                ]
            )
            term.version_mark = None
            return existed

    # Queries ----------------------------------------------------------------

    def find_by_id(self, local_id: str) -> TermEntity | None:
        with self._lock:
            row = self._find_row(local_id)
            return None if row is None else self._to_entity(row)

    def find_by_authority_id(self, authority_id: str) -> TermEntity | None:
        """Return the term owning ``authority_id``, preferring one that is not a synonym."""

        stmt = (
            select(term_table)
            .where(term_table.c.authority_id == authority_id)
            .order_by(self._synonyms_last(), term_table.c.local_id)
            .limit(1)
        )
        return self._first(stmt)

    def find_by_ticket_id(self, ticket_id: str) -> TermEntity | None:
        stmt = (
            select(term_table)
            .where(term_table.c.ticket_id == ticket_id)
            .order_by(term_table.c.local_id)
            .limit(1)
        )
        return self._first(stmt)

    def find_equivalent(self, term: TermEntity) -> TermEntity | None:
        with self._lock:
            if term.local_id is not None:
                found = self.find_by_id(term.local_id)
                if found is not None:
                    return found
            keys = sorted(term.label_keys)
            if not keys:
                return None
            stmt = (
                select(term_table)
                .where(
                    term_table.c.local_id.in_(
                        select(term_label_table.c.local_id).where(
                            term_label_table.c.label_key.in_(keys)
                        )
                    )
                )
                .order_by(self._synonyms_last(), term_table.c.local_id)
                .limit(1)
            )
            return self._first(stmt)

    def find_by_status(self, status: TermStatus) -> list[TermEntity]:
        stmt = select(term_table).where(term_table.c.status == status).order_by(
            term_table.c.local_id
        )
        return self._all(stmt)

    def search(self, text: str) -> list[TermEntity]:
        """Substring match over labels and descriptions, plus exact id matches."""

        needle = text.strip()
        key = label_key(needle)
        if not key:
            return []
        stmt = (
            select(term_table)
            .where(
                or_(
                    term_table.c.local_id.in_(
                        select(term_label_table.c.local_id).where(
                            term_label_table.c.label_key.contains(key, autoescape=True)
                        )
                    ),
                    term_table.c.description.icontains(needle, autoescape=True),
                    term_table.c.local_id == needle,
                    term_table.c.authority_id == needle,
                )
            )
            .order_by(term_table.c.local_id)
        )
        return self._all(stmt)

    def latest_local_id(self) -> str | None:
        stmt = select(term_table.c.local_id).order_by(term_table.c.local_id.desc()).limit(1)
        with self._lock:
            return self.session.execute(stmt).scalar_one_or_none()

    # Helpers ----------------------------------------------------------------

    @staticmethod
    def _synonyms_last() -> Any:
        return case((term_table.c.status == TermStatus.SYNONYM, 1), else_=0)

    def _find_row(self, local_id: str) -> Row[Any] | None:
        stmt = select(term_table).where(term_table.c.local_id == local_id)
        return self.session.execute(stmt).first()

    def _first(self, stmt: Any) -> TermEntity | None:
        with self._lock:
            row = self.session.execute(stmt).first()
            return None if row is None else self._to_entity(row)

    def _all(self, stmt: Any) -> list[TermEntity]:
        with self._lock:
            return [self._to_entity(row) for row in self.session.execute(stmt).all()]

    @staticmethod
    def _row_values(term: TermEntity) -> dict[str, Any]:
        return {
            "authority_id": term.authority_id,
            "ticket_id": term.ticket_id,
            "name": term.name,
            "synonyms": term.synonyms,
            "description": term.description,
            "parent_ids": term.parent_ids,
            "status": term.status,
            "cache_validator": term.cache_validator,
        }

    @staticmethod
    def _to_entity(row: Row[Any]) -> TermEntity:
        mapping = row._mapping  # noqa: SLF001
        term = TermEntity(
            local_id=mapping["local_id"],
            authority_id=mapping["authority_id"],
            ticket_id=mapping["ticket_id"],
            name=mapping["name"],
            synonyms=mapping["synonyms"],
            description=mapping["description"],
            parent_ids=mapping["parent_ids"],
            status=TermStatus(mapping["status"]),
            created_at=mapping["created_at"],
            modified_at=mapping["modified_at"],
            cache_validator=mapping["cache_validator"],
        )
        term.mark_clean()
        return term


def open_store(store_home: Path) -> SqlAlchemyTermStore:
    """Open the store kept under ``store_home`` (``DATABASE_URI`` takes precedence)."""

    storage = StorageConfig(data_dir=store_home)
    return SqlAlchemyTermStore.open(database_uri=get_database_uri(storage=storage))


if TYPE_CHECKING:
    _store_check: TermStore = SqlAlchemyTermStore.open()
