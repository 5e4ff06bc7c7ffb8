"""Term identifier formats and local id allocation."""

from __future__ import annotations

import re
from typing import Final

from termrequester.errors import InvalidArgumentError

from .enums import IdKind

LOCAL_ID_PREFIX: Final[str] = "TEMPHPO_"
LOCAL_ID_DIGITS: Final[int] = 6
LOCAL_ID_PATTERN: Final[re.Pattern[str]] = re.compile(
    rf"^{LOCAL_ID_PREFIX}(\d{{{LOCAL_ID_DIGITS}}})$"
)
AUTHORITY_ID_PATTERN: Final[re.Pattern[str]] = re.compile(r"^HP:\d{7}$")
_MAX_COUNTER: Final[int] = 10**LOCAL_ID_DIGITS - 1


def format_local_id(counter: int) -> str:
    if not 1 <= counter <= _MAX_COUNTER:
        raise InvalidArgumentError(f"Local id counter out of range: {counter}")
    return f"{LOCAL_ID_PREFIX}{counter:0{LOCAL_ID_DIGITS}d}"


INITIAL_ID: Final[str] = format_local_id(1)


def local_id_counter(local_id: str) -> int:
    match = LOCAL_ID_PATTERN.match(local_id)
    if match is None:
        raise InvalidArgumentError(f"Malformed local id: {local_id!r}")
    return int(match.group(1))


def increment_id(local_id: str) -> str:
    """Return the id following ``local_id``, e.g. ``TEMPHPO_000052`` -> ``TEMPHPO_000053``."""

    return format_local_id(local_id_counter(local_id) + 1)


def is_local_id(value: str) -> bool:
    return LOCAL_ID_PATTERN.match(value) is not None


def is_authority_id(value: str) -> bool:
    return AUTHORITY_ID_PATTERN.match(value) is not None


def classify_id(value: str) -> IdKind:
    if is_local_id(value):
        return IdKind.LOCAL
    if is_authority_id(value):
        return IdKind.AUTHORITY
    raise InvalidArgumentError(f"Not a term identifier: {value!r}")


class IdAllocator:
    """Derive the next local id from the most recently issued one.

    The store hands in its latest id; allocation is only safe under a single writer.
    """

    def next_id(self, latest: str | None) -> str:
        if latest is None:
            return INITIAL_ID
        return increment_id(latest)
