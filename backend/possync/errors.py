# Overview: Error kinds surfaced across the engine boundary.

"""
Every error carries one human-readable message (str(exc)) and an optional
``details`` dict for callers that want structure. No error codes cross the
component boundary; routes render ``{"error": str(exc)}``.
"""

from __future__ import annotations


class PosSyncError(Exception):
    """Base class for engine errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class NetworkUnavailable(PosSyncError):
    """The connectivity probe reports down, or the transport failed."""


class RemoteRejected(PosSyncError):
    """The backend returned an error for a well-formed request."""


class InsufficientStock(PosSyncError):
    """Requested quantity exceeds availability. Raised before any persistence."""

    def __init__(self, shortfalls: list[dict]):
        parts = [
            f"{s['name']} (requested: {s['requested']}, available: {s['available']})"
            for s in shortfalls
        ]
        super().__init__(
            "Some items are out of stock: " + ", ".join(parts),
            details={"items": shortfalls},
        )
        self.shortfalls = shortfalls


class PartialPersistFailure(PosSyncError):
    """A later step of a multi-step write failed after an earlier step committed."""

    def __init__(self, message: str, *, stage: str, transaction_id: str | None = None):
        super().__init__(message, details={"stage": stage, "transaction_id": transaction_id})
        self.stage = stage
        self.transaction_id = transaction_id
