"""Port for the local, searchable term store."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from contextlib import AbstractContextManager

    from termrequester.domain.model import TermEntity, TermStatus


@runtime_checkable
class TermStore(Protocol):
    """Persistence contract for term requests.

    ``save`` is a no-op for clean entities. On first save the store assigns the local
    id and creation time; every write refreshes ``modified_at`` and marks the entity
    clean. With auto-commit enabled each save is committed immediately, otherwise
    writes accumulate until :meth:`commit`.
    """

    def save(self, term: TermEntity) -> TermEntity: ...

    def delete(self, term: TermEntity) -> bool: ...

    def find_equivalent(self, term: TermEntity) -> TermEntity | None: ...

    def find_by_id(self, local_id: str) -> TermEntity | None: ...

    def find_by_authority_id(self, authority_id: str) -> TermEntity | None: ...

    def find_by_ticket_id(self, ticket_id: str) -> TermEntity | None: ...

    def find_by_status(self, status: TermStatus) -> list[TermEntity]: ...

    def search(self, text: str) -> list[TermEntity]: ...

    def latest_local_id(self) -> str | None: ...

    @property
    def autocommit(self) -> bool: ...

    def set_batch_mode(self, enabled: bool) -> None: ...  # noqa: FBT001

    def commit(self) -> None: ...

    def rollback(self) -> None: ...

    def exclusive(self) -> AbstractContextManager[None]: ...

    def close(self) -> None: ...
