"""
Tests for the greedy assignment engine.
"""

import pytest
from datetime import date

from clearing_engine.reconciliation.assignment import GreedyAssignmentEngine
from clearing_engine.reconciliation.candidates import (
    BankCandidateGenerator,
    LettrageCandidateGenerator,
)


@pytest.fixture
def assignment(settings):
    return GreedyAssignmentEngine(settings)


class TestGroupAssignment:

    def test_each_line_used_once(self, settings, assignment, make_line):
        lines = [
            make_line("d1", debit=100000),
            make_line("d2", debit=100000),
            make_line("c1", credit=100000),
            make_line("c2", credit=60000),
            make_line("c3", credit=40000),
        ]
        proposals = LettrageCandidateGenerator(settings).generate(lines, "4111")

        accepted = assignment.assign_groups(proposals)

        assert len(proposals) == 4
        assert [p.line_ids for p in accepted] == [["d1", "c1"], ["d2", "c2", "c3"]]
        used = [line_id for p in accepted for line_id in p.line_ids]
        assert len(used) == len(set(used))

    def test_tie_broken_by_first_debit_id(self, settings, assignment, make_line):
        lines = [
            make_line("d2", debit=5000),
            make_line("d1", debit=5000),
            make_line("c1", credit=5000),
        ]
        proposals = LettrageCandidateGenerator(settings).generate(lines, "4111")

        accepted = assignment.assign_groups(list(reversed(proposals)))

        assert [p.line_ids for p in accepted] == [["d1", "c1"]]

    def test_empty_input(self, assignment):
        assert assignment.assign_groups([]) == []
        assert assignment.assign_bank_pairs([], []) == []


class TestBankAssignment:

    def _assign(self, settings, assignment, bank_lines, ledger_lines, tolerance_days=5):
        candidates = BankCandidateGenerator(settings).generate(
            bank_lines, ledger_lines, tolerance_days
        )
        return assignment.assign_bank_pairs(bank_lines, candidates)

    def test_ledger_line_used_once(self, settings, assignment, make_line, make_bank_line):
        bank_lines = [
            make_bank_line("b2", 30000, operation_date=date(2025, 1, 11)),
            make_bank_line("b1", 30000, operation_date=date(2025, 1, 10)),
        ]
        ledger_lines = [make_line("l1", credit=30000, account="5211")]

        pairs = self._assign(settings, assignment, bank_lines, ledger_lines)

        assert [(p.bank_line_id, p.ledger_line_id) for p in pairs] == [("b1", "l1")]

    def test_best_score_wins(self, settings, assignment, make_line, make_bank_line):
        bank_lines = [make_bank_line("b1", 30000, reference="CHQ-881")]
        ledger_lines = [
            make_line("l1", credit=30000, account="5211"),
            make_line("l2", credit=30000, account="5211", piece_number="CHQ-881"),
        ]

        pairs = self._assign(settings, assignment, bank_lines, ledger_lines)

        assert pairs[0].ledger_line_id == "l2"
        assert pairs[0].score == pytest.approx(1.3)
        assert pairs[0].confidence == 100

    def test_tie_goes_to_lowest_ledger_id(self, settings, assignment, make_line, make_bank_line):
        bank_lines = [make_bank_line("b1", 30000)]
        ledger_lines = [
            make_line("l9", credit=30000, account="5211"),
            make_line("l3", credit=30000, account="5211"),
        ]

        pairs = self._assign(settings, assignment, bank_lines, ledger_lines)

        assert pairs[0].ledger_line_id == "l3"

    def test_below_threshold_not_accepted(self, settings, assignment, make_line, make_bank_line):
        bank_lines = [make_bank_line("b1", 30000, operation_date=date(2025, 1, 5))]
        ledger_lines = [
            make_line("l1", credit=30000, account="5211", piece_date=date(2025, 1, 10))
        ]

        # five days apart with a five day window: 0.3 + 0.1 label bonus < 0.5
        assert self._assign(settings, assignment, bank_lines, ledger_lines) == []

    def test_confidence_from_capped_score(self, settings, assignment, make_line, make_bank_line):
        bank_lines = [make_bank_line("b1", 30000, operation_date=date(2025, 1, 8), label="CHEQUE 4471")]
        ledger_lines = [
            make_line("l1", credit=30000, account="5211",
                      piece_date=date(2025, 1, 10), label="Remise client")
        ]

        pairs = self._assign(settings, assignment, bank_lines, ledger_lines)

        assert pairs[0].score == pytest.approx(0.72)
        assert pairs[0].confidence == 72

    def test_label_bonus_lifts_pair_over_threshold(self, settings, assignment, make_line, make_bank_line):
        bank_lines = [
            make_bank_line("b1", -10000, operation_date=date(2025, 1, 10), label="VIREMENT SORTANT")
        ]
        ledger_lines = [
            make_line("l1", debit=10000, account="5211", piece_date=date(2025, 1, 14), label="")
        ]

        pairs = self._assign(settings, assignment, bank_lines, ledger_lines)

        assert [(p.bank_line_id, p.ledger_line_id) for p in pairs] == [("b1", "l1")]
        assert pairs[0].score == pytest.approx(0.54)
