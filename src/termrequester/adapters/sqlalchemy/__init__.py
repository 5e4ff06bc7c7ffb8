"""SQLAlchemy adapter package for the term store."""

from __future__ import annotations

from .mappings import metadata, term_label_table, term_table
from .store import SqlAlchemyTermStore, open_store

__all__ = [
    "SqlAlchemyTermStore",
    "metadata",
    "open_store",
    "term_label_table",
    "term_table",
]
