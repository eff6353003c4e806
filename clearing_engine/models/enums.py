"""Enumerations for the clearing and reconciliation engine."""

from enum import Enum


class ClearingMethod(str, Enum):
    """How a clearing group (lettrage) was created."""
    MANUAL = "manual"
    AUTOMATIC = "automatic"


class ClearingStatus(str, Enum):
    """Clearing status filter for ledger line queries."""
    UNCLEARED = "uncleared"   # non lettré
    CLEARED = "cleared"       # lettré


class ReconciliationMethod(str, Enum):
    """How a bank line was linked to a ledger line."""
    MANUAL = "manual"
    AUTO = "auto"
    SUGGESTION = "suggestion"


class HistoryAction(str, Enum):
    """Kind of lettrage history entry."""
    LETTRAGE = "lettrage"
    DELETTRAGE = "delettrage"


class AuditAction(str, Enum):
    """Type of audit action."""
    LETTRAGE_PROPOSED = "lettrage_proposed"
    LETTRAGE_EXECUTED = "lettrage_executed"
    LETTRAGE_REJECTED = "lettrage_rejected"
    LETTRAGE_CANCELLED = "lettrage_cancelled"
    RECONCILIATION_EXECUTED = "reconciliation_executed"
    RECONCILIATION_REJECTED = "reconciliation_rejected"
    RECONCILIATION_CANCELLED = "reconciliation_cancelled"
    AUTO_RECONCILE_COMPLETED = "auto_reconcile_completed"
    AUTO_LETTRAGE_COMPLETED = "auto_lettrage_completed"
    SESSION_CREATED = "session_created"
    BANK_STATEMENT_IMPORTED = "bank_statement_imported"
