"""GitHub issue tracker adapter."""

from __future__ import annotations

from .client import GitHubTrackerClient, TicketConflictError, TrackerAPIError
from .schema import GitHubIssue, GitHubIssueSearch, GitHubLabel, IssueState
from .translator import (
    TicketBody,
    issue_labels,
    parse_body,
    render_body,
    render_title,
    snapshot_from_issue,
    status_from_issue,
    title_label,
)

__all__ = [
    "GitHubIssue",
    "GitHubIssueSearch",
    "GitHubLabel",
    "GitHubTrackerClient",
    "IssueState",
    "TicketBody",
    "TicketConflictError",
    "TrackerAPIError",
    "issue_labels",
    "parse_body",
    "render_body",
    "render_title",
    "snapshot_from_issue",
    "status_from_issue",
    "title_label",
]
