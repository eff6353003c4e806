"""Lettrage and bank reconciliation engine for SYSCOHADA ledgers."""

from .api import ClearingEngine
from .config import Settings, get_settings
from .errors import (
    ClearingEngineError,
    ValidationError,
    NotBalancedError,
    AlreadyClearedError,
    AlreadyReconciledError,
    NotFoundError,
    StoreError,
    OperationResult,
)
from .store import InMemoryLedgerStore, LedgerStore

__version__ = "0.1.0"

__all__ = [
    "ClearingEngine",
    "Settings",
    "get_settings",
    "ClearingEngineError",
    "ValidationError",
    "NotBalancedError",
    "AlreadyClearedError",
    "AlreadyReconciledError",
    "NotFoundError",
    "StoreError",
    "OperationResult",
    "InMemoryLedgerStore",
    "LedgerStore",
]
