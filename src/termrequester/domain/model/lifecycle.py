"""Allowed status transitions for term requests.

Only the local submission step moves a term out of ``UNSUBMITTED``. Every later change
is observed on the tracker and has to be listed here; anything else (a reopened
ticket, a rejected term turning up as accepted) is treated as an inconsistency.
"""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType
from typing import Final

from termrequester.errors import InvalidTransitionError

from .enums import TermStatus

ALLOWED_TRANSITIONS: Final[Mapping[TermStatus, frozenset[TermStatus]]] = MappingProxyType(
    {
        TermStatus.UNSUBMITTED: frozenset({TermStatus.SUBMITTED}),
        TermStatus.SUBMITTED: frozenset(
            {TermStatus.ACCEPTED, TermStatus.REJECTED, TermStatus.SYNONYM}
        ),
        TermStatus.ACCEPTED: frozenset({TermStatus.SYNONYM, TermStatus.PUBLISHED}),
        TermStatus.SYNONYM: frozenset({TermStatus.PUBLISHED}),
        TermStatus.REJECTED: frozenset(),
        TermStatus.PUBLISHED: frozenset(),
    }
)

TERMINAL_STATUSES: Final[frozenset[TermStatus]] = frozenset(
    status for status, targets in ALLOWED_TRANSITIONS.items() if not targets
)


def is_allowed_transition(old: TermStatus, new: TermStatus) -> bool:
    return old == new or new in ALLOWED_TRANSITIONS[old]


def check_transition(old: TermStatus, new: TermStatus) -> None:
    if not is_allowed_transition(old, new):
        raise InvalidTransitionError(f"Status cannot move from {old} to {new}")
