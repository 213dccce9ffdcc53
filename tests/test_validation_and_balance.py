from datetime import date
from decimal import Decimal

from statement_import.balance import compute_impact
from statement_import.models import CandidateTransaction, TransactionType, ValidationError
from statement_import.validation import ValidationLimits, validate_candidates


def _cand(idx, amount, tx_type=TransactionType.EXPENSE, *, date_="2026-01-15", desc="X"):
    value = None if amount is None else Decimal(amount)
    return CandidateTransaction(
        source_row_index=idx,
        date=date_,
        amount=value,
        signed_raw_amount=value,
        description=desc,
        type=tx_type,
    )


def test_valid_candidates_have_no_errors():
    assert validate_candidates([_cand(0, "10.00"), _cand(1, "0.00")]) == []


def test_one_error_per_offending_field():
    errors = validate_candidates([_cand(3, None, date_=None, desc="  ")])

    assert [(e.row_index, e.field) for e in errors] == [
        (3, "date"),
        (3, "amount"),
        (3, "description"),
    ]


def test_unparseable_amount_scenario():
    errors = validate_candidates([_cand(0, "10.00"), _cand(1, None)])

    assert errors == [ValidationError(1, "amount", "missing or non-numeric amount")]


def test_limits():
    limits = ValidationLimits(
        min_date=date(2026, 1, 1), max_date=date(2026, 12, 31), max_amount=Decimal("1000")
    )

    errors = validate_candidates(
        [
            _cand(0, "10", date_="2025-12-31"),
            _cand(1, "10", date_="2027-01-01"),
            _cand(2, "1000.01"),
            _cand(3, "1000.00"),
        ],
        limits=limits,
    )

    assert [(e.row_index, e.field) for e in errors] == [(0, "date"), (1, "date"), (2, "amount")]


def test_negative_and_non_finite_amounts():
    errors = validate_candidates([_cand(0, "-1"), _cand(1, "NaN"), _cand(2, "Infinity")])

    assert [e.field for e in errors] == ["amount", "amount", "amount"]


def test_balance_projection():
    cands = [
        _cand(0, "200", TransactionType.INCOME),
        _cand(1, "50", TransactionType.EXPENSE),
    ]

    impact = compute_impact(cands, Decimal("1000"), accepted={0, 1})

    assert impact.income_total == Decimal("200")
    assert impact.expense_total == Decimal("50")
    assert impact.net_impact == Decimal("150")
    assert impact.projected_ending_balance == Decimal("1150")


def test_balance_ignores_unaccepted_and_missing_amounts():
    cands = [
        _cand(0, "200", TransactionType.INCOME),
        _cand(1, None, TransactionType.INCOME),
        _cand(2, "75", TransactionType.EXPENSE),
    ]

    impact = compute_impact(cands, Decimal("0"), accepted={0, 1})

    assert impact.income_total == Decimal("200")
    assert impact.expense_total == Decimal("0")
    assert impact.projected_ending_balance == impact.starting_balance + impact.net_impact


def test_empty_batch():
    impact = compute_impact([], Decimal("12.34"), accepted=set())

    assert impact.net_impact == 0
    assert impact.projected_ending_balance == Decimal("12.34")
