"""Exception hierarchy for coverwatch."""

from .base import CoverwatchError
from .config import ConfigurationError, InvalidConfigError
from .store import (
    CollectorStateError,
    PersistenceError,
    StoreTimeoutError,
    UnsupportedOperationError,
)

__all__ = [
    "CoverwatchError",
    "ConfigurationError",
    "InvalidConfigError",
    "PersistenceError",
    "StoreTimeoutError",
    "UnsupportedOperationError",
    "CollectorStateError",
]
