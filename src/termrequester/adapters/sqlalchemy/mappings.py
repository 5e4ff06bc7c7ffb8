"""SQLAlchemy table metadata for term requests."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import Any, cast

from sqlalchemy import (
    Column,
    DateTime,
    Dialect,
    Enum,
    ForeignKey,
    Index,
    MetaData,
    String,
    Table,
    Text,
    TypeDecorator,
)

from termrequester.domain.model import TermStatus

log = logging.getLogger(__name__)


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        return value if value.tzinfo else value.replace(tzinfo=UTC)


class LabelSetType(TypeDecorator[frozenset[str]]):
    """A set of strings stored as a sorted JSON array."""

    impl = Text
    cache_ok = True

    def process_bind_param(self, value: frozenset[str] | None, dialect: Dialect) -> str | None:
        _ = dialect
        if value is None:
            return None
        return json.dumps(sorted(value), ensure_ascii=False)

    def process_result_value(self, value: str | None, dialect: Dialect) -> frozenset[str]:
        _ = dialect
        if value is None:
            return frozenset()
        loaded = json.loads(value)
        if not isinstance(loaded, list):
            log.warning("Discarding malformed label set: %r", value)
            return frozenset()
        items = cast(list[Any], loaded)
        return frozenset(item for item in items if isinstance(item, str))


metadata = MetaData(
    naming_convention={
        "ix": "ix_%(column_0_label)s",
        "uq": "uq_%(table_name)s_%(column_0_label)s",
        "ck": "ck_%(table_name)s_%(constraint_name)s",
        "fk": "fk_%(table_name)s_%(column_0_label)s_%(referred_table_name)s",
        "pk": "pk_%(table_name)s",
    }
)

term_table = Table(
    "term",
    metadata,
    Column("local_id", String(32), primary_key=True),
    Column("authority_id", String(32), nullable=True, index=True),
    Column("ticket_id", String(32), nullable=True, index=True),
    Column("name", String, nullable=False),
    Column("synonyms", LabelSetType, nullable=False),
    Column("description", Text, nullable=False, default=""),
    Column("parent_ids", LabelSetType, nullable=False),
    Column("status", Enum(TermStatus, native_enum=False, length=16), nullable=False, index=True),
    Column("created_at", UTCDateTime, nullable=False),
    Column("modified_at", UTCDateTime, nullable=False),
    Column("cache_validator", String, nullable=True),
)

# one row per normalized label, for exact-label equivalence lookups
term_label_table = Table(
    "term_label",
    metadata,
    Column(
        "local_id",
        String(32),
        ForeignKey("term.local_id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column("label_key", String, primary_key=True),
    Index("ix_term_label_label_key", "label_key"),
)
