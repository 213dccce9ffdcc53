"""Projected balance change of an import batch."""

from __future__ import annotations

from collections.abc import Collection, Sequence
from decimal import Decimal

from .models import BalanceImpactSummary, CandidateTransaction, TransactionType

_ZERO = Decimal("0.00")


def compute_impact(
    candidates: Sequence[CandidateTransaction],
    starting_balance: Decimal,
    *,
    accepted: Collection[int],
) -> BalanceImpactSummary:
    """Sum accepted income and expense into a :class:`BalanceImpactSummary`.

    ``accepted`` holds ``source_row_index`` values. Candidates outside it, and
    candidates without an amount, do not contribute.
    """

    income = _ZERO
    expense = _ZERO
    for cand in candidates:
        if cand.source_row_index not in accepted or cand.amount is None:
            continue
        if cand.type is TransactionType.INCOME:
            income += cand.amount
        else:
            expense += cand.amount
    net = income - expense
    return BalanceImpactSummary(
        starting_balance=starting_balance,
        income_total=income,
        expense_total=expense,
        net_impact=net,
        projected_ending_balance=starting_balance + net,
    )


__all__ = ["compute_impact"]
