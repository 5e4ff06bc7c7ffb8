"""Observed tracker state for a single ticket."""

from __future__ import annotations

from dataclasses import dataclass, field

from .enums import TermStatus


@dataclass(frozen=True, slots=True, kw_only=True)
class TicketSnapshot:
    """What a successful tracker create, patch or read reported about a ticket.

    ``validator`` is the opaque token (an HTTP ETag) to present on the next
    conditional read. Body fields are ``None``/empty when the tracker did not carry them.
    """

    ticket_id: str
    status: TermStatus
    validator: str | None = None
    name: str | None = None
    synonyms: frozenset[str] = field(default_factory=frozenset)
    parent_ids: frozenset[str] = field(default_factory=frozenset)
    description: str | None = None
    authority_id: str | None = None
