"""Domain port definitions for adapters."""

from __future__ import annotations

from .persistence import TermStore
from .tracker import TrackerClient

__all__ = ["TermStore", "TrackerClient"]
