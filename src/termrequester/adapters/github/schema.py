"""GitHub REST API payload schemas for issues."""

from __future__ import annotations

import logging
from enum import StrEnum
from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field

log = logging.getLogger(__name__)


class GitHubBaseModel(BaseModel):
    model_config = ConfigDict(extra="allow")
    _logged_extra_keys: ClassVar[set[str]] = set()

    def model_post_init(self, _context: object, /) -> None:
        extras = self.__pydantic_extra__
        if not extras:
            return
        new_keys = set(extras).difference(self._logged_extra_keys)
        if not new_keys:
            return
        self._logged_extra_keys.update(new_keys)
        # issue payloads carry many fields we never read
        log.debug(
            "GitHub %s: unmodeled keys: %s",
            type(self).__name__,
            ", ".join(sorted(new_keys)),
        )


class IssueState(StrEnum):
    OPEN = "open"
    CLOSED = "closed"


class GitHubLabel(GitHubBaseModel):
    name: str
    id: int | None = None
    color: str | None = None


class GitHubIssue(GitHubBaseModel):
    number: int
    title: str
    state: IssueState
    body: str | None = None
    labels: list[GitHubLabel] = Field(default_factory=list)
    html_url: str | None = None
    state_reason: str | None = None

    @property
    def label_names(self) -> frozenset[str]:
        return frozenset(label.name.strip().casefold() for label in self.labels)


class GitHubIssueSearch(GitHubBaseModel):
    total_count: int
    incomplete_results: bool = False
    items: list[GitHubIssue] = Field(default_factory=list)
