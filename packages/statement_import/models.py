"""Data models and type aliases for ``statement_import``.

Pipeline records are frozen dataclasses. A candidate is built once by the
normalizer and never mutated afterwards; downstream stages describe it with
annotations keyed by ``source_row_index`` (validation errors, duplicate
matches, user exclusions) instead of writing onto the record.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, fields, replace
from decimal import Decimal
from enum import StrEnum

# ---------------------------------------------------------------------------
# Raw input
# ---------------------------------------------------------------------------

type RawRow = Mapping[str, str]
"""A single parsed line: source column header -> raw cell text.

The parser hands these out as read-only mapping proxies, in source order.
"""


class TransactionType(StrEnum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


# ---------------------------------------------------------------------------
# Column mapping
# ---------------------------------------------------------------------------

REQUIRED_FIELDS: tuple[str, ...] = ("date", "amount", "description")
PREVIEW_REQUIRED_FIELDS: tuple[str, ...] = ("date", "amount")


@dataclass(frozen=True, slots=True)
class ColumnMapping:
    """Association from canonical field name to a header of the parsed file.

    An empty string means the field is not mapped. ``date``, ``amount`` and
    ``description`` must be set before normalization produces usable rows;
    the session only insists on ``date`` and ``amount`` (a missing
    description surfaces as per-row validation errors).
    """

    date: str = ""
    amount: str = ""
    description: str = ""
    category: str = ""
    sub_category: str = ""
    type: str = ""

    @classmethod
    def field_names(cls) -> tuple[str, ...]:
        return tuple(f.name for f in fields(cls))

    def with_overrides(self, **overrides: str | None) -> ColumnMapping:
        """Return a copy with the given fields replaced (``None`` unmaps a field)."""

        unknown = sorted(set(overrides) - set(self.field_names()))
        if unknown:
            raise ValueError(f"unknown mapping field(s): {', '.join(unknown)}")
        cleaned = {k: (v or "").strip() for k, v in overrides.items()}
        return replace(self, **cleaned)

    def missing_required(self) -> list[str]:
        return [name for name in REQUIRED_FIELDS if not getattr(self, name)]

    def is_previewable(self) -> bool:
        return all(getattr(self, name) for name in PREVIEW_REQUIRED_FIELDS)

    def as_dict(self) -> dict[str, str]:
        return {name: getattr(self, name) for name in self.field_names()}


# ---------------------------------------------------------------------------
# Candidates and annotations
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CandidateTransaction:
    """A normalized, not-yet-committed transaction.

    ``date`` is an ISO ``YYYY-MM-DD`` string or ``None`` when the source cell
    could not be parsed; ``amount``/``signed_raw_amount`` are ``None`` when the
    amount cell was not numeric. These sentinels are turned into
    :class:`ValidationError` records by the validator.
    """

    source_row_index: int
    date: str | None
    amount: Decimal | None
    signed_raw_amount: Decimal | None
    description: str
    type: TransactionType
    category: str = ""
    sub_category: str | None = None
    account_id: str | None = None


@dataclass(frozen=True, slots=True)
class ValidationError:
    """A structural problem with one field of one candidate (recorded, not raised)."""

    row_index: int
    field: str
    reason: str


@dataclass(frozen=True, slots=True)
class DuplicateMatch:
    """Advisory link between a candidate and likely-identical ledger rows."""

    candidate_index: int
    matched_ledger_transaction_ids: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class BalanceImpactSummary:
    starting_balance: Decimal
    income_total: Decimal
    expense_total: Decimal
    net_impact: Decimal
    projected_ending_balance: Decimal


@dataclass(frozen=True, slots=True)
class Classification:
    category: str
    sub_category: str | None = None


# ---------------------------------------------------------------------------
# Ledger-side records
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Transaction:
    """Canonical committed ledger record. ``amount`` is never negative."""

    id: str
    date: str
    amount: Decimal
    type: TransactionType
    category: str
    account_id: str
    description: str
    sub_category: str | None = None


@dataclass(frozen=True, slots=True)
class Account:
    id: str
    name: str
    balance: Decimal


@dataclass(frozen=True, slots=True)
class Category:
    """A top-level category with its known subcategory names."""

    name: str
    type: TransactionType
    sub_categories: tuple[str, ...] = ()


type CategoryTaxonomy = Sequence[Category]


__all__ = [
    "RawRow",
    "TransactionType",
    "REQUIRED_FIELDS",
    "PREVIEW_REQUIRED_FIELDS",
    "ColumnMapping",
    "CandidateTransaction",
    "ValidationError",
    "DuplicateMatch",
    "BalanceImpactSummary",
    "Classification",
    "Transaction",
    "Account",
    "Category",
    "CategoryTaxonomy",
]
