"""Ledger and bank statement line models."""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Optional, Dict, Any
from uuid import uuid4

from ..config import get_settings
from ..errors import ValidationError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class LedgerLine:
    """
    A single debit/credit movement posted to one account.
    All monetary amounts are stored in CENTS (integer) to avoid floating point errors.
    """
    # Identity
    id: str = field(default_factory=lambda: str(uuid4()))
    entry_id: str = ""
    piece_number: str = ""

    # Posting
    piece_date: Optional[date] = None
    journal_code: str = ""
    account: str = ""
    label: str = ""

    # Third party (tiers)
    third_party_code: Optional[str] = None
    third_party_name: Optional[str] = None

    # Financial data (ALL IN CENTS - integers only)
    debit_cents: int = 0
    credit_cents: int = 0

    # Clearing state (lettrage)
    clearing_code: Optional[str] = None
    cleared_at: Optional[datetime] = None

    def __post_init__(self):
        if self.debit_cents < 0 or self.credit_cents < 0:
            raise ValidationError(
                f"Line {self.id}: debit and credit must be non-negative"
            )
        if self.debit_cents > 0 and self.credit_cents > 0:
            raise ValidationError(
                f"Line {self.id}: debit and credit cannot both be positive"
            )

    @property
    def debit(self) -> float:
        return self.debit_cents / 100.0

    @property
    def credit(self) -> float:
        return self.credit_cents / 100.0

    @property
    def balance_cents(self) -> int:
        """Debit minus credit (positive on the debit side)."""
        return self.debit_cents - self.credit_cents

    @property
    def amount_cents(self) -> int:
        """Unsigned movement amount."""
        return abs(self.balance_cents)

    @property
    def treasury_signed_cents(self) -> int:
        """Signed amount compared against bank statement lines (credit - debit)."""
        return self.credit_cents - self.debit_cents

    @property
    def is_debit(self) -> bool:
        return self.debit_cents > 0

    @property
    def is_credit(self) -> bool:
        return self.credit_cents > 0

    @property
    def is_cleared(self) -> bool:
        return self.clearing_code is not None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "entry_id": self.entry_id,
            "piece_number": self.piece_number,
            "piece_date": self.piece_date.isoformat() if self.piece_date else None,
            "journal_code": self.journal_code,
            "account": self.account,
            "label": self.label,
            "third_party_code": self.third_party_code,
            "third_party_name": self.third_party_name,
            "debit": self.debit,
            "credit": self.credit,
            "clearing_code": self.clearing_code,
            "cleared_at": self.cleared_at.isoformat() if self.cleared_at else None,
        }


@dataclass
class BankStatementLine:
    """
    Externally sourced cash movement (relevé bancaire).
    Positive amount = inflow, negative = outflow.
    """
    id: str = field(default_factory=lambda: str(uuid4()))
    operation_date: Optional[date] = None
    value_date: Optional[date] = None
    label: str = ""
    reference: Optional[str] = None

    amount_cents: int = 0
    running_balance_cents: Optional[int] = None

    # Reconciliation state
    reconciled: bool = False
    link_id: Optional[str] = None

    # Source
    bank_account: str = field(default_factory=lambda: get_settings().default_bank_account)
    source_file: Optional[str] = None
    imported_at: datetime = field(default_factory=utcnow)

    @property
    def amount(self) -> float:
        return self.amount_cents / 100.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "operation_date": self.operation_date.isoformat() if self.operation_date else None,
            "value_date": self.value_date.isoformat() if self.value_date else None,
            "label": self.label,
            "reference": self.reference,
            "amount": self.amount,
            "running_balance": (
                self.running_balance_cents / 100.0
                if self.running_balance_cents is not None else None
            ),
            "reconciled": self.reconciled,
            "link_id": self.link_id,
            "bank_account": self.bank_account,
            "source_file": self.source_file,
        }
