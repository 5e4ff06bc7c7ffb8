"""Public domain model surface."""

from __future__ import annotations

from termrequester.domain.model.enums import IdKind, TermStatus
from termrequester.domain.model.identifiers import (
    INITIAL_ID,
    LOCAL_ID_PREFIX,
    IdAllocator,
    classify_id,
    format_local_id,
    increment_id,
    is_authority_id,
    is_local_id,
    local_id_counter,
)
from termrequester.domain.model.labels import clean_label, label_key, label_keys
from termrequester.domain.model.lifecycle import (
    ALLOWED_TRANSITIONS,
    TERMINAL_STATUSES,
    check_transition,
    is_allowed_transition,
)
from termrequester.domain.model.term import TermEntity
from termrequester.domain.model.ticket import TicketSnapshot

__all__ = [
    "ALLOWED_TRANSITIONS",
    "INITIAL_ID",
    "LOCAL_ID_PREFIX",
    "TERMINAL_STATUSES",
    "IdAllocator",
    "IdKind",
    "TermEntity",
    "TermStatus",
    "TicketSnapshot",
    "check_transition",
    "classify_id",
    "clean_label",
    "format_local_id",
    "increment_id",
    "is_allowed_transition",
    "is_authority_id",
    "is_local_id",
    "label_key",
    "label_keys",
    "local_id_counter",
]
