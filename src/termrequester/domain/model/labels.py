"""Label comparison helpers."""

from __future__ import annotations

import unicodedata
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable


def clean_label(text: str) -> str:
    """Trim and collapse internal whitespace, keeping the original spelling."""

    return " ".join(text.split())


def label_key(text: str) -> str:
    """Comparison key for a label: NFKC, casefolded, whitespace collapsed."""

    normalized = unicodedata.normalize("NFKC", text).casefold()
    return " ".join(normalized.split())


def label_keys(labels: Iterable[str]) -> frozenset[str]:
    return frozenset(key for key in (label_key(label) for label in labels) if key)
