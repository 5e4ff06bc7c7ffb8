"""Domain enums (pure, dependency-light)."""

from __future__ import annotations

from enum import StrEnum


class TermStatus(StrEnum):
    UNSUBMITTED = "unsubmitted"
    SUBMITTED = "submitted"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    SYNONYM = "synonym"
    PUBLISHED = "published"


class IdKind(StrEnum):
    """Which namespace a term identifier belongs to."""

    LOCAL = "local"
    AUTHORITY = "authority"
