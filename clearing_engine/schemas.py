"""
Request schemas for the engine facade.

Callers pass plain dicts or keyword arguments; these models validate and
normalise them before anything touches the store. Amounts arrive in
currency units and are converted to cents by the facade.
"""

from datetime import date
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, model_validator


class LettrageRequest(BaseModel):
    line_ids: List[str] = Field(min_length=2)
    account: str = Field(min_length=1)
    third_party_code: Optional[str] = None
    actor: Optional[str] = None


class CancelLettrageRequest(BaseModel):
    code: str = Field(min_length=1, pattern=r"^[A-Za-z]+$")
    account: str = Field(min_length=1)
    actor: Optional[str] = None


class ProposeLettrageRequest(BaseModel):
    account: str = Field(min_length=1)
    third_party_code: Optional[str] = None


class AutoLettrageRequest(ProposeLettrageRequest):
    actor: Optional[str] = None


class ReconcileRequest(BaseModel):
    bank_line_id: str = Field(min_length=1)
    ledger_line_id: str = Field(min_length=1)
    session_id: Optional[str] = None
    amount: Optional[Decimal] = None
    method: Literal["manual", "auto", "suggestion"] = "manual"
    confidence: Optional[int] = Field(default=None, ge=0, le=100)


class AutoReconcileRequest(BaseModel):
    session_id: Optional[str] = None
    tolerance_days: Optional[int] = Field(default=None, ge=0)
    bank_account: Optional[str] = None


class SessionRequest(BaseModel):
    period_start: date
    period_end: date
    # None means the configured default bank account
    bank_account: Optional[str] = Field(default=None, min_length=1)
    statement_opening: Decimal = Decimal("0")
    statement_closing: Decimal = Decimal("0")

    @model_validator(mode="after")
    def check_period(self) -> "SessionRequest":
        if self.period_end < self.period_start:
            raise ValueError("period_end must not precede period_start")
        return self


class BankStatementLineInput(BaseModel):
    operation_date: date
    value_date: Optional[date] = None
    label: str = ""
    reference: Optional[str] = None
    amount: Decimal
    running_balance: Optional[Decimal] = None


class BankStatementImport(BaseModel):
    lines: List[BankStatementLineInput]
    source_file: Optional[str] = None
    bank_account: Optional[str] = Field(default=None, min_length=1)


class LineFilter(BaseModel):
    """Filter for ledger line listings."""
    account_start: Optional[str] = None
    account_end: Optional[str] = None
    third_party_code: Optional[str] = None
    date_start: Optional[date] = None
    date_end: Optional[date] = None
    clearing_status: Optional[Literal["cleared", "uncleared"]] = None
    journal_code: Optional[str] = None
    limit: Optional[int] = Field(default=None, ge=1)


class BankLineFilter(BaseModel):
    reconciled: Optional[bool] = None
    date_start: Optional[date] = None
    date_end: Optional[date] = None
    bank_account: Optional[str] = None
