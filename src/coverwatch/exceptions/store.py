"""Persistence and collector exceptions."""

from typing import Optional

from .base import CoverwatchError


class PersistenceError(CoverwatchError):
    """Raised when a store fails to load or save coverage."""

    def __init__(self, store: str, reason: str, path: Optional[str] = None):
        details = {"store": store, "reason": reason}
        if path:
            details["path"] = path
        super().__init__(f"Coverage store {store} failed", details=details)
        self.store = store
        self.reason = reason


class StoreTimeoutError(PersistenceError):
    """Raised when a store round-trip exceeds its timeout."""

    pass


class UnsupportedOperationError(CoverwatchError):
    """Raised when a store does not implement an operation."""

    def __init__(self, store: str, operation: str):
        super().__init__(
            f"{store} does not implement {operation}",
            details={"store": store, "operation": operation},
        )
        self.store = store
        self.operation = operation


class CollectorStateError(CoverwatchError):
    """Raised on an illegal collector phase transition."""

    def __init__(self, current: str, requested: str):
        super().__init__(
            f"Cannot move collector from {current} to {requested}",
            details={"current": current, "requested": requested},
        )
        self.current = current
        self.requested = requested
