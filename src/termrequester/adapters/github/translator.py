"""Translate between term entities and GitHub issue titles/bodies.

Ticket bodies use one ``KEY: value`` line per field::

    TERM: Long fingers
    SYNONYMS: Arachnodactyly, Spider fingers
    PARENTS: HP:0001167
    DESCRIPTION: Abnormally long and slender fingers.

Reviewers may append ``AUTHORITY_ID: HP:nnnnnnn`` once the term is accepted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Final

from termrequester.domain.model import (
    TermStatus,
    TicketSnapshot,
    clean_label,
    is_authority_id,
)

from .schema import GitHubIssue, IssueState

if TYPE_CHECKING:
    from termrequester.domain.model import TermEntity

log = logging.getLogger(__name__)

TITLE_PREFIX: Final[str] = "Add term "
LIST_SEPARATOR: Final[str] = ", "

TERM_FIELD: Final[str] = "TERM"
SYNONYMS_FIELD: Final[str] = "SYNONYMS"
PARENTS_FIELD: Final[str] = "PARENTS"
DESCRIPTION_FIELD: Final[str] = "DESCRIPTION"
AUTHORITY_FIELD: Final[str] = "AUTHORITY_ID"
_FIELDS: Final[frozenset[str]] = frozenset(
    {TERM_FIELD, SYNONYMS_FIELD, PARENTS_FIELD, DESCRIPTION_FIELD, AUTHORITY_FIELD}
)

# closed tickets: first matching label wins, no label means accepted
CLOSED_LABEL_STATUSES: Final[tuple[tuple[str, TermStatus], ...]] = (
    ("rejected", TermStatus.REJECTED),
    ("synonym", TermStatus.SYNONYM),
    ("published", TermStatus.PUBLISHED),
)


@dataclass(frozen=True, slots=True)
class TicketBody:
    name: str | None = None
    synonyms: frozenset[str] = field(default_factory=frozenset)
    parent_ids: frozenset[str] = field(default_factory=frozenset)
    description: str | None = None
    authority_id: str | None = None


def render_title(term: TermEntity) -> str:
    return f"{TITLE_PREFIX}{term.name}"


def title_label(title: str) -> str | None:
    """Return the term name from a ticket title, if it follows the request format."""

    if not title.startswith(TITLE_PREFIX):
        return None
    return clean_label(title.removeprefix(TITLE_PREFIX)) or None


def _flatten(text: str) -> str:
    lines = [line.strip() for line in text.strip().splitlines()]
    return ". ".join(line for line in lines if line)


def render_body(term: TermEntity) -> str:
    lines = [
        f"{TERM_FIELD}: {term.name}",
        f"{SYNONYMS_FIELD}: {LIST_SEPARATOR.join(sorted(term.synonyms))}",
        f"{PARENTS_FIELD}: {LIST_SEPARATOR.join(sorted(term.parent_ids))}",
        f"{DESCRIPTION_FIELD}: {_flatten(term.description)}",
    ]
    if term.authority_id:
        lines.append(f"{AUTHORITY_FIELD}: {term.authority_id}")
    return "\n".join(lines)


def _split_list(value: str) -> frozenset[str]:
    return frozenset(item.strip() for item in value.split(",") if item.strip())


def parse_body(body: str | None) -> TicketBody:
    """Parse a ticket body; unknown lines continue the preceding field."""

    if not body:
        return TicketBody()

    values: dict[str, list[str]] = {}
    current: str | None = None
    for raw_line in body.splitlines():
        key, sep, rest = raw_line.partition(":")
        key = key.strip().upper()
        if sep and key in _FIELDS:
            current = key
            values.setdefault(key, []).append(rest.strip())
        elif current is not None and raw_line.strip():
            values[current].append(raw_line.strip())

    def joined(name: str, separator: str) -> str:
        return separator.join(part for part in values.get(name, []) if part)

    authority = joined(AUTHORITY_FIELD, " ") or None
    if authority is not None and not is_authority_id(authority):
        log.warning("Ignoring malformed authority id in ticket body: %r", authority)
        authority = None

    return TicketBody(
        name=clean_label(joined(TERM_FIELD, " ")) or None,
        synonyms=_split_list(joined(SYNONYMS_FIELD, ",")),
        parent_ids=_split_list(joined(PARENTS_FIELD, ",")),
        description=joined(DESCRIPTION_FIELD, ". ") or None,
        authority_id=authority,
    )


def status_from_issue(issue: GitHubIssue) -> TermStatus:
    if issue.state is IssueState.OPEN:
        return TermStatus.SUBMITTED
    labels = issue.label_names
    for label, status in CLOSED_LABEL_STATUSES:
        if label in labels:
            return status
    return TermStatus.ACCEPTED


def snapshot_from_issue(issue: GitHubIssue, *, validator: str | None) -> TicketSnapshot:
    body = parse_body(issue.body)
    return TicketSnapshot(
        ticket_id=str(issue.number),
        status=status_from_issue(issue),
        validator=validator,
        name=body.name or title_label(issue.title),
        synonyms=body.synonyms,
        parent_ids=body.parent_ids,
        description=body.description,
        authority_id=body.authority_id,
    )


def issue_labels(issue: GitHubIssue) -> frozenset[str]:
    """Every term label a ticket mentions, from its title and body."""

    body = parse_body(issue.body)
    labels = set(body.synonyms)
    if body.name:
        labels.add(body.name)
    title_name = title_label(issue.title)
    if title_name:
        labels.add(title_name)
    return frozenset(labels)
