from decimal import Decimal

import pytest

from statement_import.duplicates import DuplicatePolicy, detect_duplicates
from statement_import.models import (
    CandidateTransaction,
    DuplicateMatch,
    Transaction,
    TransactionType,
)


def _cand(idx=0, date="2026-01-15", amount="45.50", description="MERCADONA MADRID", acc="acc1"):
    return CandidateTransaction(
        source_row_index=idx,
        date=date,
        amount=None if amount is None else Decimal(amount),
        signed_raw_amount=None if amount is None else -Decimal(amount),
        description=description,
        type=TransactionType.EXPENSE,
        account_id=acc,
    )


def _tx(tx_id, date="2026-01-15", amount="45.50", description="MERCADONA MADRID", acc="acc1"):
    return Transaction(
        id=tx_id,
        date=date,
        amount=Decimal(amount),
        type=TransactionType.EXPENSE,
        category="Alimentación",
        account_id=acc,
        description=description,
    )


def test_exact_copy_is_a_duplicate():
    matches = detect_duplicates([_cand()], [_tx("t1")])

    assert matches == [DuplicateMatch(candidate_index=0, matched_ledger_transaction_ids=("t1",))]


def test_description_compare_ignores_case_and_spacing():
    matches = detect_duplicates([_cand(description="mercadona   madrid")], [_tx("t1")])

    assert [m.candidate_index for m in matches] == [0]


def test_containment_default_and_exact_policy():
    cands = [_cand(description="MERCADONA")]
    existing = [_tx("t1", description="MERCADONA MADRID")]

    assert len(detect_duplicates(cands, existing)) == 1
    assert detect_duplicates(cands, existing, policy=DuplicatePolicy(similarity="exact")) == []


def test_date_window():
    cands = [_cand(date="2026-01-16")]
    existing = [_tx("t1", date="2026-01-15")]

    assert detect_duplicates(cands, existing) == []
    assert len(detect_duplicates(cands, existing, policy=DuplicatePolicy(date_window_days=1))) == 1


@pytest.mark.parametrize(
    "cand",
    [
        _cand(amount="45.51"),
        _cand(acc="acc2"),
        _cand(description="CARREFOUR"),
        _cand(date=None),
        _cand(amount=None),
    ],
)
def test_non_matches(cand):
    assert detect_duplicates([cand], [_tx("t1")]) == []


def test_unbound_candidate_matches_any_account():
    assert len(detect_duplicates([_cand(acc=None)], [_tx("t1", acc="acc9")])) == 1


def test_multiple_matches_in_ledger_order():
    existing = [_tx("t2"), _tx("t9", description="OTHER"), _tx("t1")]

    matches = detect_duplicates([_cand(idx=4)], existing)

    assert matches == [DuplicateMatch(4, ("t2", "t1"))]


def test_policy_validation():
    with pytest.raises(ValueError):
        DuplicatePolicy(date_window_days=-1)
    with pytest.raises(ValueError):
        DuplicatePolicy(similarity="fuzzy")  # type: ignore[arg-type]
