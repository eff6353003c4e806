"""
Session and statistics aggregation.

Read-side reporting over the clearing state: bank reconciliation
sessions with their variance (écart), lettrage completion per account,
and reconciliation progress per bank account. Only `compute_session`
writes, and it writes a new session row once.
"""

from datetime import date
from typing import Optional

import structlog

from ..config import Settings, get_settings
from ..errors import NotFoundError, ValidationError
from ..models import (
    AuditAction,
    LettrageStats,
    ReconciliationSession,
    ReconciliationStats,
    SessionReport,
)
from ..store import DateRange, LedgerStore
from ..utils.audit_logger import AuditLogger

logger = structlog.get_logger()


class ReconciliationStatistics:
    """Computes sessions and completion ratios from the store."""

    def __init__(
        self,
        store: LedgerStore,
        settings: Optional[Settings] = None,
        audit: Optional[AuditLogger] = None,
    ):
        self.store = store
        self.settings = settings or get_settings()
        self.audit = audit or AuditLogger()

    def ledger_balance_cents(
        self,
        bank_account: str,
        date_range: Optional[DateRange] = None,
    ) -> int:
        """Sum of credit - debit over the account's treasury lines in range."""
        lines = self.store.list_treasury_lines(date_range=date_range, account=bank_account)
        return sum(line.treasury_signed_cents for line in lines)

    def compute_session(
        self,
        period_start: date,
        period_end: date,
        bank_account: str,
        statement_opening_cents: int,
        statement_closing_cents: int,
    ) -> ReconciliationSession:
        """
        Create and persist a reconciliation session for one period.

        Args:
            period_start: First day of the period (inclusive)
            period_end: Last day of the period (inclusive)
            bank_account: Treasury account number (e.g. 5211)
            statement_opening_cents: Opening balance reported by the bank
            statement_closing_cents: Closing balance reported by the bank

        Returns:
            The stored session; its variance is fixed at creation
        """
        if period_end < period_start:
            raise ValidationError(
                f"Period end {period_end.isoformat()} precedes start {period_start.isoformat()}"
            )
        if not self.settings.is_treasury_account(bank_account):
            raise ValidationError(f"Account {bank_account} is not a treasury account")

        with self.store.transaction():
            session = ReconciliationSession(
                period_start=period_start,
                period_end=period_end,
                bank_account=bank_account,
                statement_opening_cents=statement_opening_cents,
                statement_closing_cents=statement_closing_cents,
                ledger_balance_cents=self.ledger_balance_cents(
                    bank_account, (period_start, period_end)
                ),
            )
            self.store.insert_session(session)

        self.audit.record(
            AuditAction.SESSION_CREATED,
            "Reconciliation session created",
            account=bank_account,
            session_id=session.id,
            variance=session.variance_cents / 100.0,
        )
        return session

    def session_report(self, session_id: str) -> SessionReport:
        """Stored session with its variance recomputed from the current ledger."""
        session = self.store.get_session(session_id)
        if session is None:
            raise NotFoundError(f"Reconciliation session {session_id} not found")

        return SessionReport(
            session=session,
            current_ledger_balance_cents=self.ledger_balance_cents(
                session.bank_account, (session.period_start, session.period_end)
            ),
            linked_count=len(self.store.list_links(session_id)),
        )

    def lettrage_stats(self, account: str) -> LettrageStats:
        lines = self.store.list_lines(account_range=(account, account))

        stats = LettrageStats(total_lines=len(lines))
        for line in lines:
            amount = abs(line.debit_cents - line.credit_cents)
            if line.is_cleared:
                stats.cleared_lines += 1
                stats.cleared_amount_cents += amount
            else:
                stats.uncleared_lines += 1
                stats.uncleared_amount_cents += amount

        logger.debug(
            "Lettrage stats computed",
            account=account,
            total=stats.total_lines,
            completion_rate=stats.completion_rate,
        )
        return stats

    def reconciliation_stats(
        self,
        bank_account: Optional[str] = None,
        date_range: Optional[DateRange] = None,
    ) -> ReconciliationStats:
        """Bank reconciliation progress for an account and optional period."""
        bank_lines = self.store.list_bank_lines(date_range=date_range, bank_account=bank_account)
        ledger_lines = self.store.list_treasury_lines(date_range=date_range, account=bank_account)
        linked = {
            line.id
            for line in self.store.list_treasury_lines(
                date_range=date_range, reconciled=True, account=bank_account
            )
        }

        return ReconciliationStats(
            statement_total=len(bank_lines),
            statement_reconciled=sum(1 for line in bank_lines if line.reconciled),
            ledger_total=len(ledger_lines),
            ledger_reconciled=sum(1 for line in ledger_lines if line.id in linked),
            statement_balance_cents=sum(line.amount_cents for line in bank_lines),
            ledger_balance_cents=sum(line.treasury_signed_cents for line in ledger_lines),
        )
