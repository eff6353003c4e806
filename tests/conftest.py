"""
Shared fixtures: settings reset, in-memory store, line factories.
"""

import pytest
from datetime import date

from clearing_engine.api import ClearingEngine
from clearing_engine.config import get_settings
from clearing_engine.models import BankStatementLine, LedgerLine
from clearing_engine.reconciliation import ClearingExecutor, ReconciliationStatistics
from clearing_engine.store import InMemoryLedgerStore
from clearing_engine.utils.audit_logger import AuditLogger


@pytest.fixture
def settings():
    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()


@pytest.fixture
def store(settings):
    return InMemoryLedgerStore(settings.treasury_account_prefix)


@pytest.fixture
def audit():
    return AuditLogger(context_id="test")


@pytest.fixture
def executor(store, settings, audit):
    return ClearingExecutor(store, settings, audit)


@pytest.fixture
def statistics(store, settings, audit):
    return ReconciliationStatistics(store, settings, audit)


@pytest.fixture
def engine(store, settings, audit):
    return ClearingEngine(store, settings, audit)


@pytest.fixture
def make_line():
    """Factory for ledger lines; amounts in cents."""
    def _make(
        line_id,
        debit=0,
        credit=0,
        account="4111",
        third_party="C001",
        piece_date=date(2025, 1, 10),
        piece_number="",
        label="",
    ):
        return LedgerLine(
            id=line_id,
            entry_id=f"E-{line_id}",
            piece_number=piece_number or f"P-{line_id}",
            piece_date=piece_date,
            journal_code="VT",
            account=account,
            label=label,
            third_party_code=third_party,
            debit_cents=debit,
            credit_cents=credit,
        )
    return _make


@pytest.fixture
def make_bank_line():
    """Factory for bank statement lines; signed amount in cents."""
    def _make(
        line_id,
        amount,
        operation_date=date(2025, 1, 10),
        reference=None,
        label="",
        bank_account="5211",
    ):
        return BankStatementLine(
            id=line_id,
            operation_date=operation_date,
            value_date=operation_date,
            label=label,
            reference=reference,
            amount_cents=amount,
            bank_account=bank_account,
        )
    return _make


@pytest.fixture
def customer_lines(store, make_line):
    """Invoice of 1000 settled by two payments of 600 and 400."""
    lines = [
        make_line("l1", debit=100000, label="Facture FA-2025001"),
        make_line("l2", credit=60000, piece_date=date(2025, 1, 20), label="Reglement FA-2025001"),
        make_line("l3", credit=40000, piece_date=date(2025, 1, 25), label="Reglement solde"),
    ]
    store.add_lines(lines)
    return lines
