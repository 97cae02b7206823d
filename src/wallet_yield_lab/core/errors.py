"""Exception types raised by the APY engine."""

from __future__ import annotations


class ValidationError(ValueError):
    """Malformed request parameters (user id, target date)."""


class SnapshotStoreError(RuntimeError):
    """Reading from the snapshot store failed or timed out."""


__all__ = ["SnapshotStoreError", "ValidationError"]
