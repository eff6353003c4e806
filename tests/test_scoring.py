"""
Tests for bank match scoring and lettrage group scoring.
"""

import pytest
from datetime import date

from clearing_engine.reconciliation.scoring import (
    BankMatchScorer,
    LettrageScorer,
    MatchScore,
    extract_reference,
)


@pytest.fixture
def bank_scorer(settings):
    return BankMatchScorer(settings)


@pytest.fixture
def lettrage_scorer(settings):
    return LettrageScorer(settings)


class TestBankMatchScorer:
    """Amount gate, date window and reference bonus."""

    def test_reference_scenario(self, bank_scorer, make_line, make_bank_line):
        bank = make_bank_line("b1", -100000, operation_date=date(2025, 1, 10), reference="FA-22")
        ledger = make_line(
            "l1", debit=100000, account="5211",
            piece_date=date(2025, 1, 12), piece_number="FA-22",
        )

        score = bank_scorer.score(bank, ledger, tolerance_days=5)

        assert score.eligible
        assert score.amount_score == pytest.approx(0.3)
        assert score.date_score == pytest.approx(0.42)
        assert score.reference_score == pytest.approx(0.3)
        assert score.total == pytest.approx(1.02)
        assert score.confidence == 100

    def test_amount_gate_allows_one_cent(self, bank_scorer, make_line, make_bank_line):
        ledger = make_line("l1", credit=100000, account="5211")

        assert bank_scorer.score(make_bank_line("b1", 100001), ledger, 5).eligible
        assert not bank_scorer.score(make_bank_line("b2", 100002), ledger, 5).eligible

    def test_sign_must_match(self, bank_scorer, make_line, make_bank_line):
        ledger = make_line("l1", credit=100000, account="5211")

        score = bank_scorer.score(make_bank_line("b1", -100000), ledger, 5)

        assert not score.eligible
        assert score.total == 0

    def test_outside_date_window_is_ineligible(self, bank_scorer, make_line, make_bank_line):
        bank = make_bank_line("b1", 50000, operation_date=date(2025, 1, 1))
        ledger = make_line("l1", credit=50000, account="5211", piece_date=date(2025, 1, 7))

        score = bank_scorer.score(bank, ledger, tolerance_days=5)

        assert not score.eligible
        assert score.days_apart == 6

    def test_edge_of_window_scores_only_base(self, bank_scorer, make_line, make_bank_line):
        bank = make_bank_line("b1", 50000, operation_date=date(2025, 1, 1), label="VIREMENT RECU")
        ledger = make_line(
            "l1", credit=50000, account="5211",
            piece_date=date(2025, 1, 6), label="Encaissement client",
        )

        score = bank_scorer.score(bank, ledger, tolerance_days=5)

        assert score.eligible
        assert score.date_score == pytest.approx(0.0)
        assert score.total == pytest.approx(0.3)

    def test_zero_tolerance_means_same_day(self, bank_scorer, make_line, make_bank_line):
        ledger = make_line("l1", credit=50000, account="5211", piece_date=date(2025, 1, 1))

        same_day = bank_scorer.score(
            make_bank_line("b1", 50000, operation_date=date(2025, 1, 1)), ledger, 0
        )
        next_day = bank_scorer.score(
            make_bank_line("b2", 50000, operation_date=date(2025, 1, 2)), ledger, 0
        )

        assert same_day.eligible
        assert same_day.date_score == pytest.approx(0.7)
        assert not next_day.eligible

    def test_label_prefix_bonus(self, bank_scorer, make_line, make_bank_line):
        bank = make_bank_line("b1", 50000, label="VIREMENT CLIENT ABC 123")
        ledger = make_line("l1", credit=50000, account="5211", label="Virement client ABC")

        assert bank_scorer.reference_score(bank, ledger) == pytest.approx(0.1)

    def test_unrelated_labels_earn_nothing(self, bank_scorer, make_line, make_bank_line):
        bank = make_bank_line("b1", 50000, label="CHEQUE 4471")
        ledger = make_line("l1", credit=50000, account="5211", label="Remise client")

        assert bank_scorer.reference_score(bank, ledger) == 0.0

    def test_empty_ledger_label_earns_prefix_bonus(self, bank_scorer, make_line, make_bank_line):
        bank = make_bank_line(
            "b1", -10000, operation_date=date(2025, 1, 10), label="VIREMENT SORTANT"
        )
        ledger = make_line(
            "l1", debit=10000, account="5211", piece_date=date(2025, 1, 14), label=""
        )

        score = bank_scorer.score(bank, ledger, tolerance_days=5)

        assert score.reference_score == pytest.approx(0.1)
        assert score.total == pytest.approx(0.54)

    def test_confidence_below_one(self):
        score = MatchScore(amount_score=0.3, date_score=0.42, eligible=True)

        assert score.confidence == 72


class TestReferenceExtraction:

    @pytest.mark.parametrize("text,expected", [
        ("Facture FA-2025001", "2025001"),
        ("FACTURE N° 45678", "45678"),
        ("Virement REF: AB12CD", "AB12CD"),
        ("Reglement divers", None),
        ("", None),
    ])
    def test_patterns(self, text, expected):
        assert extract_reference(text) == expected


class TestLettrageScorer:
    """Balance gate and ranking heuristic."""

    def test_unbalanced_group_is_ineligible(self, lettrage_scorer, make_line):
        score = lettrage_scorer.score_group(
            [make_line("d1", debit=50000)], [make_line("c1", credit=47000)]
        )

        assert not score.eligible
        assert score.residual_cents == 3000

    def test_one_cent_tolerance(self, lettrage_scorer, make_line):
        score = lettrage_scorer.score_group(
            [make_line("d1", debit=50000)], [make_line("c1", credit=50001)]
        )

        assert score.eligible

    def test_pair_outranks_any_triple(self, lettrage_scorer, make_line):
        # worst possible pair: far apart, no shared reference
        pair = lettrage_scorer.score_group(
            [make_line("d1", debit=1000, piece_date=date(2024, 1, 1))],
            [make_line("c1", credit=1000, piece_date=date(2025, 1, 1))],
        )
        # best possible triple: same day, shared reference
        triple = lettrage_scorer.score_group(
            [make_line("d2", debit=1000, label="FA-20251")],
            [
                make_line("c2", credit=600, label="FA-20251"),
                make_line("c3", credit=400, label="FA-20251"),
            ],
        )

        assert pair.total == pytest.approx(0.9)
        assert triple.total == pytest.approx(0.89)
        assert pair.total > triple.total

    def test_shared_reference_raises_score(self, lettrage_scorer, make_line):
        plain = lettrage_scorer.score_group(
            [make_line("d1", debit=1000)], [make_line("c1", credit=1000)]
        )
        shared = lettrage_scorer.score_group(
            [make_line("d2", debit=1000, label="Facture FA-20251")],
            [make_line("c2", credit=1000, label="Reglement FA 20251")],
        )

        assert shared.shared_reference == "20251"
        assert plain.total == pytest.approx(0.963)
        assert shared.total == pytest.approx(0.99)
        assert shared.confidence == 99
