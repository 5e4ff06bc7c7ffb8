"""Port for the external issue tracker."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from termrequester.domain.model import TermEntity, TicketSnapshot


@runtime_checkable
class TrackerClient(Protocol):
    """Ticket operations against one fixed repository.

    Every successful call that touches a ticket returns a :class:`TicketSnapshot`
    carrying a fresh validator. ``read_ticket`` is conditional on the entity's
    ``cache_validator`` and returns ``None`` when the ticket has not changed.
    """

    def open_ticket(self, term: TermEntity) -> TicketSnapshot: ...

    def patch_ticket(self, term: TermEntity) -> TicketSnapshot: ...

    def read_ticket(self, term: TermEntity) -> TicketSnapshot | None: ...

    def find_ticket(self, term: TermEntity) -> str | None: ...
