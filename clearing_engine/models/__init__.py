"""Data models for the clearing and reconciliation engine."""

from .enums import (
    AuditAction,
    ClearingMethod,
    ClearingStatus,
    HistoryAction,
    ReconciliationMethod,
)
from .ledger import (
    LedgerLine,
    BankStatementLine,
)
from .clearing import (
    ClearingGroup,
    ClearingProposal,
    ReconciliationLink,
    ReconciliationPair,
    BatchFailure,
    AutoReconcileResult,
    AutoLettrageResult,
    ReconciliationSession,
    SessionReport,
    LettrageStats,
    ReconciliationStats,
    ClearingHistoryEntry,
    AuditEntry,
)

__all__ = [
    # Enums
    "AuditAction",
    "ClearingMethod",
    "ClearingStatus",
    "HistoryAction",
    "ReconciliationMethod",
    # Lines
    "LedgerLine",
    "BankStatementLine",
    # Clearing & reconciliation
    "ClearingGroup",
    "ClearingProposal",
    "ReconciliationLink",
    "ReconciliationPair",
    "BatchFailure",
    "AutoReconcileResult",
    "AutoLettrageResult",
    "ReconciliationSession",
    "SessionReport",
    "LettrageStats",
    "ReconciliationStats",
    "ClearingHistoryEntry",
    "AuditEntry",
]
