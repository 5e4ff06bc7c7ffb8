"""GitHub issue tracker client for term requests."""

from __future__ import annotations

import asyncio
from logging import getLogger
from typing import TYPE_CHECKING

import httpx
from pydantic import ValidationError

from termrequester.adapters.http_resilience import ResilientClient
from termrequester.config.tracker import GITHUB_API_URL
from termrequester.domain.model import label_keys
from termrequester.domain.ports import TrackerClient
from termrequester.errors import InvalidArgumentError

from .schema import GitHubIssue, GitHubIssueSearch
from .translator import issue_labels, render_body, render_title, snapshot_from_issue

if TYPE_CHECKING:
    from collections.abc import Callable

    from termrequester.config.http_resilience import ResilienceConfig
    from termrequester.config.tracker import TrackerConfig
    from termrequester.domain.model import TermEntity, TicketSnapshot

log = getLogger(__name__)

SEARCH_PAGE_SIZE = 30


class TrackerAPIError(RuntimeError):
    """Raised when the GitHub API returns an unexpected response."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TicketConflictError(TrackerAPIError):
    """Raised when opening a ticket for a term the tracker already has."""

    def __init__(self, message: str, *, ticket_id: str) -> None:
        super().__init__(message)
        self.ticket_id = ticket_id


def _escape_query(text: str) -> str:
    return text.replace("\\", " ").replace('"', " ")


class GitHubTrackerClient:
    """Files, reads and updates term request issues in one GitHub repository."""

    def __init__(
        self,
        *,
        config: TrackerConfig,
        client_factory: Callable[[ResilienceConfig], ResilientClient] | None = None,
    ) -> None:
        self._config = config
        self._resilience = config.resilience
        self._client_factory = client_factory or ResilientClient

    # Public API -------------------------------------------------------------

    def open_ticket(self, term: TermEntity) -> TicketSnapshot:
        if not term.submittable:
            raise InvalidArgumentError(f"Term {term.name!r} is already submitted")
        return asyncio.run(self._open_ticket_async(term))

    def patch_ticket(self, term: TermEntity) -> TicketSnapshot:
        ticket_id = self._require_ticket(term)
        return asyncio.run(self._patch_ticket_async(term, ticket_id))

    def read_ticket(self, term: TermEntity) -> TicketSnapshot | None:
        ticket_id = self._require_ticket(term)
        return asyncio.run(self._read_ticket_async(ticket_id, term.cache_validator))

    def find_ticket(self, term: TermEntity) -> str | None:
        return asyncio.run(self._find_ticket_async(term))

    # Async implementations --------------------------------------------------

    async def _open_ticket_async(self, term: TermEntity) -> TicketSnapshot:
        async with self._client_factory(self._resilience) as client:
            existing = await self._search(client, term)
            if existing is not None:
                raise TicketConflictError(
                    f"Ticket #{existing} already requests {term.name!r}",
                    ticket_id=existing,
                )
            response = await client.post(
                self._url("issues"),
                json={"title": render_title(term), "body": render_body(term)},
                headers=self._auth_headers(),
            )
            issue = self._parse_issue(response)
        log.info("Opened ticket #%s for %r", issue.number, term.name)
        return snapshot_from_issue(issue, validator=response.headers.get("ETag"))

    async def _patch_ticket_async(self, term: TermEntity, ticket_id: str) -> TicketSnapshot:
        async with self._client_factory(self._resilience) as client:
            response = await client.patch(
                self._url(f"issues/{ticket_id}"),
                json={"title": render_title(term), "body": render_body(term)},
                headers=self._auth_headers(),
            )
            issue = self._parse_issue(response)
        return snapshot_from_issue(issue, validator=response.headers.get("ETag"))

    async def _read_ticket_async(
        self,
        ticket_id: str,
        validator: str | None,
    ) -> TicketSnapshot | None:
        headers = self._auth_headers()
        if validator:
            headers["If-None-Match"] = validator
        async with self._client_factory(self._resilience) as client:
            response = await client.get(self._url(f"issues/{ticket_id}"), headers=headers)
            if response.status_code == httpx.codes.NOT_MODIFIED:
                return None
            issue = self._parse_issue(response)
        return snapshot_from_issue(issue, validator=response.headers.get("ETag") or validator)

    async def _find_ticket_async(self, term: TermEntity) -> str | None:
        async with self._client_factory(self._resilience) as client:
            return await self._search(client, term)

    async def _search(self, client: ResilientClient, term: TermEntity) -> str | None:
        """Return the oldest issue whose title or body names any of the term's labels."""

        wanted = term.label_keys
        for label in sorted(term.labels):
            query = (
                f'"{_escape_query(label)}" repo:{self._config.repository_path} '
                "is:issue in:title"
            )
            response = await client.get(
                self._base_url() + "/search/issues",
                params={"q": query, "per_page": str(SEARCH_PAGE_SIZE)},
                headers=self._auth_headers(),
            )
            results = self._parse(response, GitHubIssueSearch)
            matches = sorted(
                issue.number
                for issue in results.items
                if not label_keys(issue_labels(issue)).isdisjoint(wanted)
            )
            if matches:
                return str(matches[0])
        return None

    # Helpers ----------------------------------------------------------------

    def _require_ticket(self, term: TermEntity) -> str:
        if term.ticket_id is None:
            raise InvalidArgumentError(f"Term {term.name!r} has no ticket")
        return term.ticket_id

    def _base_url(self) -> str:
        return (self._resilience.base_url or GITHUB_API_URL).rstrip("/")

    def _url(self, path: str) -> str:
        return f"{self._base_url()}/repos/{self._config.repository_path}/{path}"

    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"token {self._config.token}"}

    def _parse_issue(self, response: httpx.Response) -> GitHubIssue:
        return self._parse(response, GitHubIssue)

    def _parse[TModel: (GitHubIssue, GitHubIssueSearch)](
        self,
        response: httpx.Response,
        model: type[TModel],
    ) -> TModel:
        if response.is_error:
            message = response.text.strip()[:200] or response.reason_phrase
            log.error("GitHub API error %s: %s", response.status_code, message)
            raise TrackerAPIError(
                f"GitHub API error {response.status_code}: {message}",
                status_code=response.status_code,
            )
        try:
            return model.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise TrackerAPIError("Unexpected GitHub response payload") from exc


if TYPE_CHECKING:
    from termrequester.config.tracker import TrackerConfig as _TrackerConfig

    _client_check: TrackerClient = GitHubTrackerClient(
        config=_TrackerConfig(owner="o", repository="r", token="t")
    )
