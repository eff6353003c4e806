"""
Tests for the in-memory ledger store.
"""

import pytest
from datetime import date

from clearing_engine.errors import StoreError
from clearing_engine.models import ClearingStatus, ReconciliationLink


class TestTransactions:

    def test_rollback_on_error(self, store, make_line):
        store.add_lines([make_line("l1", debit=1000)])

        with pytest.raises(RuntimeError):
            with store.transaction():
                store.set_line_clearing("l1", "A", None)
                raise RuntimeError("boom")

        assert store.get_lines(["l1"])["l1"].clearing_code is None

    def test_nested_transaction_joins_outer(self, store, make_line):
        store.add_lines([make_line("l1", debit=1000), make_line("l2", credit=1000)])

        with pytest.raises(RuntimeError):
            with store.transaction():
                with store.transaction():
                    store.set_line_clearing("l1", "A", None)
                store.set_line_clearing("l2", "A", None)
                raise RuntimeError("boom")

        lines = store.get_lines(["l1", "l2"])
        assert lines["l1"].clearing_code is None
        assert lines["l2"].clearing_code is None

    def test_commit(self, store, make_line):
        store.add_lines([make_line("l1", debit=1000)])

        with store.transaction():
            store.set_line_clearing("l1", "A", None)

        assert store.get_lines(["l1"])["l1"].clearing_code == "A"


class TestReads:

    def test_reads_are_copies(self, store, make_line):
        store.add_lines([make_line("l1", debit=1000)])

        store.get_lines(["l1"])["l1"].clearing_code = "Z"

        assert store.get_lines(["l1"])["l1"].clearing_code is None

    def test_list_lines_filters(self, store, make_line):
        cleared = make_line("l2", credit=1000)
        cleared.clearing_code = "A"
        store.add_lines([
            make_line("l1", debit=1000),
            cleared,
            make_line("l3", debit=500, account="4011"),
            make_line("l4", debit=700, piece_date=date(2025, 3, 1)),
        ])

        uncleared = store.list_lines(
            account_range=("4111", "4111"),
            clearing_status=ClearingStatus.UNCLEARED,
        )
        january = store.list_lines(date_range=(date(2025, 1, 1), date(2025, 1, 31)))

        assert [l.id for l in uncleared] == ["l1", "l4"]
        assert [l.id for l in january] == ["l3", "l1", "l2"]

    def test_treasury_lines_and_link_state(self, store, make_line, make_bank_line):
        store.add_lines([
            make_line("l1", credit=1000, account="5211"),
            make_line("l2", credit=1000, account="5211"),
            make_line("l3", debit=1000, account="4111"),
        ])
        store.add_bank_lines([make_bank_line("b1", 1000)])
        store.insert_link(ReconciliationLink(id="k1", bank_line_id="b1", ledger_line_id="l1"))

        assert [l.id for l in store.list_treasury_lines()] == ["l1", "l2"]
        assert [l.id for l in store.list_treasury_lines(reconciled=True)] == ["l1"]
        assert [l.id for l in store.list_treasury_lines(reconciled=False)] == ["l2"]


class TestMutations:

    def test_unknown_line_raises(self, store):
        with pytest.raises(StoreError):
            store.set_line_clearing("missing", "A", None)

    def test_delete_only_unreconciled_bank_lines(self, store, make_bank_line):
        store.add_bank_lines([make_bank_line("b1", 1000), make_bank_line("b2", 2000)])
        store.set_bank_line_reconciliation("b1", "k1")

        assert store.delete_unreconciled_bank_lines() == 1
        assert [l.id for l in store.list_bank_lines()] == ["b1"]
        assert store.list_bank_lines()[0].reconciled

    def test_history_newest_first(self, store):
        from clearing_engine.models import ClearingHistoryEntry, HistoryAction

        store.insert_history(ClearingHistoryEntry(code="A", account="4111"))
        store.insert_history(ClearingHistoryEntry(
            code="A", account="4111", action=HistoryAction.DELETTRAGE
        ))
        store.insert_history(ClearingHistoryEntry(code="A", account="4011"))

        entries = store.list_history("4111")

        assert [e.action for e in entries] == [HistoryAction.DELETTRAGE, HistoryAction.LETTRAGE]
        assert len(store.list_history(limit=1)) == 1
