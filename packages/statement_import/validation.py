"""Structural validation of candidate transactions.

Every offending field yields one :class:`ValidationError`; nothing here
raises. Rows with at least one error are excluded from the balance impact and
from the committed batch.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from .models import CandidateTransaction, ValidationError


@dataclass(frozen=True, slots=True)
class ValidationLimits:
    """Optional bounds; ``None`` disables the corresponding check."""

    min_date: date | None = None
    max_date: date | None = None
    max_amount: Decimal | None = None


def _check_date(cand: CandidateTransaction, limits: ValidationLimits) -> str | None:
    if cand.date is None:
        return "missing or unparseable date"
    try:
        day = date.fromisoformat(cand.date)
    except ValueError:
        return f"invalid date: {cand.date!r}"
    if limits.min_date is not None and day < limits.min_date:
        return f"date {cand.date} is before {limits.min_date.isoformat()}"
    if limits.max_date is not None and day > limits.max_date:
        return f"date {cand.date} is after {limits.max_date.isoformat()}"
    return None


def _check_amount(cand: CandidateTransaction, limits: ValidationLimits) -> str | None:
    amount = cand.amount
    if amount is None:
        return "missing or non-numeric amount"
    if not amount.is_finite():
        return "amount is not finite"
    if amount < 0:
        return "amount is negative"
    if limits.max_amount is not None and amount > limits.max_amount:
        return f"amount {amount} exceeds maximum {limits.max_amount}"
    return None


def validate_candidates(
    candidates: Sequence[CandidateTransaction], *, limits: ValidationLimits | None = None
) -> list[ValidationError]:
    """Return validation errors for ``candidates`` in row order."""

    lim = limits or ValidationLimits()
    errors: list[ValidationError] = []
    for cand in candidates:
        reason = _check_date(cand, lim)
        if reason:
            errors.append(ValidationError(cand.source_row_index, "date", reason))
        reason = _check_amount(cand, lim)
        if reason:
            errors.append(ValidationError(cand.source_row_index, "amount", reason))
        if not cand.description.strip():
            errors.append(
                ValidationError(cand.source_row_index, "description", "description is empty")
            )
    return errors


def invalid_rows(errors: Iterable[ValidationError]) -> frozenset[int]:
    return frozenset(e.row_index for e in errors)


__all__ = ["ValidationLimits", "validate_candidates", "invalid_rows"]
