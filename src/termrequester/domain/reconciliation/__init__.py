"""Reconciliation of term requests between the store and the tracker."""

from __future__ import annotations

from .engine import CreationResult, ReconciliationEngine, SyncResult

__all__ = ["CreationResult", "ReconciliationEngine", "SyncResult"]
