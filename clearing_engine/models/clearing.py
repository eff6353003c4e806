"""Clearing, reconciliation and reporting result models."""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional, List, Dict, Any
from uuid import uuid4

from ..config import get_settings
from .enums import (
    AuditAction,
    ClearingMethod,
    HistoryAction,
    ReconciliationMethod,
)
from .ledger import LedgerLine, utcnow


@dataclass
class ClearingGroup:
    """A balanced set of ledger lines sharing one clearing code (lettrage)."""
    code: str
    account: str
    third_party_code: Optional[str] = None
    line_ids: List[str] = field(default_factory=list)

    # Amounts (in cents)
    total_debit_cents: int = 0
    total_credit_cents: int = 0

    # Audit
    created_at: datetime = field(default_factory=utcnow)
    method: ClearingMethod = ClearingMethod.MANUAL
    actor: Optional[str] = None
    cancelled_at: Optional[datetime] = None

    # Populated by listings only
    lines: List[LedgerLine] = field(default_factory=list)

    @property
    def balance_cents(self) -> int:
        """Signed difference debit - credit."""
        return self.total_debit_cents - self.total_credit_cents

    @property
    def residual_cents(self) -> int:
        return abs(self.balance_cents)

    @property
    def residual(self) -> float:
        return self.residual_cents / 100.0

    @property
    def is_active(self) -> bool:
        return self.cancelled_at is None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "code": self.code,
            "account": self.account,
            "third_party_code": self.third_party_code,
            "line_ids": list(self.line_ids),
            "total_debit": self.total_debit_cents / 100.0,
            "total_credit": self.total_credit_cents / 100.0,
            "residual": self.residual,
            "created_at": self.created_at.isoformat(),
            "method": self.method.value,
            "actor": self.actor,
            "lines": [line.to_dict() for line in self.lines],
        }


@dataclass
class ClearingProposal:
    """A candidate lettrage grouping proposed to the user."""
    account: str
    third_party_code: Optional[str] = None
    debit_lines: List[LedgerLine] = field(default_factory=list)
    credit_lines: List[LedgerLine] = field(default_factory=list)

    # Quality
    score: float = 0.0
    confidence: int = 0
    reason: str = ""
    shared_reference: Optional[str] = None

    @property
    def lines(self) -> List[LedgerLine]:
        return self.debit_lines + self.credit_lines

    @property
    def line_ids(self) -> List[str]:
        return [line.id for line in self.lines]

    @property
    def cardinality(self) -> int:
        return len(self.debit_lines) + len(self.credit_lines)

    @property
    def total_debit_cents(self) -> int:
        return sum(line.debit_cents for line in self.debit_lines)

    @property
    def total_credit_cents(self) -> int:
        return sum(line.credit_cents for line in self.credit_lines)

    @property
    def residual_cents(self) -> int:
        return abs(self.total_debit_cents - self.total_credit_cents)

    @property
    def first_debit_id(self) -> str:
        """Tie-break key: smallest debit line id (falls back to any member)."""
        ids = [line.id for line in self.debit_lines] or self.line_ids
        return min(ids)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "account": self.account,
            "third_party_code": self.third_party_code,
            "debit_lines": [line.to_dict() for line in self.debit_lines],
            "credit_lines": [line.to_dict() for line in self.credit_lines],
            "amount": self.total_debit_cents / 100.0,
            "residual": self.residual_cents / 100.0,
            "score": self.score,
            "confidence": self.confidence,
            "reason": self.reason,
            "shared_reference": self.shared_reference,
        }


@dataclass
class ReconciliationLink:
    """Pairing of one bank statement line with one treasury ledger line."""
    id: str = field(default_factory=lambda: str(uuid4()))
    bank_line_id: str = ""
    ledger_line_id: str = ""
    session_id: Optional[str] = None
    amount_cents: int = 0
    method: ReconciliationMethod = ReconciliationMethod.MANUAL
    confidence: Optional[int] = None  # 0-100, auto/suggestion only
    created_at: datetime = field(default_factory=utcnow)

    @property
    def amount(self) -> float:
        return self.amount_cents / 100.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "bank_line_id": self.bank_line_id,
            "ledger_line_id": self.ledger_line_id,
            "session_id": self.session_id,
            "amount": self.amount,
            "method": self.method.value,
            "confidence": self.confidence,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class ReconciliationPair:
    """An accepted bank/ledger pairing produced by the greedy assignment."""
    bank_line_id: str
    ledger_line_id: str
    amount_cents: int
    score: float
    confidence: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bank_line_id": self.bank_line_id,
            "ledger_line_id": self.ledger_line_id,
            "amount": self.amount_cents / 100.0,
            "score": self.score,
            "confidence": self.confidence,
        }


@dataclass
class BatchFailure:
    """One item of a batch operation that could not be committed."""
    item_ids: List[str]
    error_code: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "item_ids": list(self.item_ids),
            "error_code": self.error_code,
            "message": self.message,
        }


@dataclass
class AutoReconcileResult:
    """Outcome of an auto-reconciliation batch."""
    matched_count: int = 0
    total_bank_lines: int = 0
    pairs: List[ReconciliationPair] = field(default_factory=list)
    links: List[ReconciliationLink] = field(default_factory=list)
    failures: List[BatchFailure] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "matched": self.matched_count,
            "total_bank_lines": self.total_bank_lines,
            "pairs": [pair.to_dict() for pair in self.pairs],
            "failures": [failure.to_dict() for failure in self.failures],
        }


@dataclass
class AutoLettrageResult:
    """Outcome of an automatic lettrage batch."""
    proposed_count: int = 0
    groups: List[ClearingGroup] = field(default_factory=list)
    failures: List[BatchFailure] = field(default_factory=list)

    @property
    def cleared_count(self) -> int:
        return len(self.groups)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "proposed": self.proposed_count,
            "cleared": self.cleared_count,
            "groups": [group.to_dict() for group in self.groups],
            "failures": [failure.to_dict() for failure in self.failures],
        }


@dataclass
class ReconciliationSession:
    """A bank reconciliation run for one period and bank account."""
    id: str = field(default_factory=lambda: str(uuid4()))
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    bank_account: str = field(default_factory=lambda: get_settings().default_bank_account)

    # Amounts (in cents)
    statement_opening_cents: int = 0
    statement_closing_cents: int = 0
    ledger_balance_cents: int = 0

    created_at: datetime = field(default_factory=utcnow)

    @property
    def variance_cents(self) -> int:
        """Statement closing balance minus computed ledger balance (écart)."""
        return self.statement_closing_cents - self.ledger_balance_cents

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "period_start": self.period_start.isoformat() if self.period_start else None,
            "period_end": self.period_end.isoformat() if self.period_end else None,
            "bank_account": self.bank_account,
            "statement_opening": self.statement_opening_cents / 100.0,
            "statement_closing": self.statement_closing_cents / 100.0,
            "ledger_balance": self.ledger_balance_cents / 100.0,
            "variance": self.variance_cents / 100.0,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class SessionReport:
    """A stored session with its variance recomputed from the current ledger."""
    session: ReconciliationSession
    current_ledger_balance_cents: int = 0
    linked_count: int = 0

    @property
    def current_variance_cents(self) -> int:
        return self.session.statement_closing_cents - self.current_ledger_balance_cents

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session": self.session.to_dict(),
            "current_ledger_balance": self.current_ledger_balance_cents / 100.0,
            "current_variance": self.current_variance_cents / 100.0,
            "linked_count": self.linked_count,
        }


@dataclass
class LettrageStats:
    """Clearing completion for one account."""
    total_lines: int = 0
    cleared_lines: int = 0
    uncleared_lines: int = 0
    cleared_amount_cents: int = 0
    uncleared_amount_cents: int = 0

    @property
    def completion_rate(self) -> int:
        """Percentage of lines cleared, rounded."""
        if self.total_lines == 0:
            return 0
        # integer half-up: round(cleared * 100 / total)
        return (self.cleared_lines * 200 + self.total_lines) // (2 * self.total_lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_lines": self.total_lines,
            "cleared_lines": self.cleared_lines,
            "uncleared_lines": self.uncleared_lines,
            "cleared_amount": self.cleared_amount_cents / 100.0,
            "uncleared_amount": self.uncleared_amount_cents / 100.0,
            "completion_rate": self.completion_rate,
        }


@dataclass
class ReconciliationStats:
    """Bank reconciliation progress for a scope."""
    statement_total: int = 0
    statement_reconciled: int = 0
    ledger_total: int = 0
    ledger_reconciled: int = 0
    statement_balance_cents: int = 0
    ledger_balance_cents: int = 0

    @property
    def statement_unreconciled(self) -> int:
        return self.statement_total - self.statement_reconciled

    @property
    def variance_cents(self) -> int:
        return self.statement_balance_cents - self.ledger_balance_cents

    @property
    def reconciliation_rate(self) -> int:
        if self.statement_total == 0:
            return 0
        return (self.statement_reconciled * 200 + self.statement_total) // (2 * self.statement_total)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "statement_total": self.statement_total,
            "statement_reconciled": self.statement_reconciled,
            "statement_unreconciled": self.statement_unreconciled,
            "ledger_total": self.ledger_total,
            "ledger_reconciled": self.ledger_reconciled,
            "statement_balance": self.statement_balance_cents / 100.0,
            "ledger_balance": self.ledger_balance_cents / 100.0,
            "variance": self.variance_cents / 100.0,
            "reconciliation_rate": self.reconciliation_rate,
        }


@dataclass
class ClearingHistoryEntry:
    """One lettrage / délettrage operation, kept for the history view."""
    id: str = field(default_factory=lambda: str(uuid4()))
    code: str = ""
    action: HistoryAction = HistoryAction.LETTRAGE
    line_ids: List[str] = field(default_factory=list)
    account: str = ""
    amount_cents: int = 0
    created_at: datetime = field(default_factory=utcnow)
    actor: Optional[str] = None
    comment: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "code": self.code,
            "action": self.action.value,
            "line_ids": list(self.line_ids),
            "account": self.account,
            "amount": self.amount_cents / 100.0,
            "created_at": self.created_at.isoformat(),
            "actor": self.actor,
            "comment": self.comment,
        }


@dataclass
class AuditEntry:
    """An entry in the audit log."""
    id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=utcnow)

    # Action
    action: AuditAction = AuditAction.LETTRAGE_EXECUTED

    # Context
    line_ids: List[str] = field(default_factory=list)
    account: Optional[str] = None
    actor: Optional[str] = None

    # Details
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    # Outcome
    success: bool = True
    error_message: Optional[str] = None
