"""Normalize -> classify -> detect duplicates -> validate, as one pure pass.

The result is an immutable batch of candidates plus annotations keyed by
``source_row_index``. User choices made in preview (skipping duplicates,
excluding rows) are applied on top of it without recomputing anything.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Collection, Mapping, Sequence
from dataclasses import dataclass, replace
from decimal import Decimal

from .balance import compute_impact
from .classifier import classify_all
from .config import ImportConfig
from .duplicates import detect_duplicates
from .logging_setup import get_logger
from .models import (
    BalanceImpactSummary,
    CandidateTransaction,
    CategoryTaxonomy,
    ColumnMapping,
    DuplicateMatch,
    RawRow,
    Transaction,
    TransactionType,
    ValidationError,
)
from .normalizers import normalize_row
from .templates import BankTemplate
from .validation import invalid_rows, validate_candidates

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class ImportCounts:
    total: int
    valid: int
    duplicates: int
    errors: int


@dataclass(frozen=True, slots=True)
class ImportStats:
    """Breakdown of the valid rows of a batch.

    ``first_date``/``last_date`` are ISO strings (``None`` for an empty batch);
    ``categories`` counts rows per category in first-seen order.
    """

    income: int
    expense: int
    first_date: str | None
    last_date: str | None
    categories: Mapping[str, int]


@dataclass(frozen=True, slots=True)
class PipelineResult:
    candidates: tuple[CandidateTransaction, ...]
    errors: tuple[ValidationError, ...]
    duplicates: tuple[DuplicateMatch, ...]
    starting_balance: Decimal

    @property
    def invalid_indices(self) -> frozenset[int]:
        return invalid_rows(self.errors)

    @property
    def duplicate_indices(self) -> frozenset[int]:
        return frozenset(m.candidate_index for m in self.duplicates)

    def errors_for(self, row_index: int) -> list[ValidationError]:
        return [e for e in self.errors if e.row_index == row_index]

    def duplicate_for(self, row_index: int) -> DuplicateMatch | None:
        for m in self.duplicates:
            if m.candidate_index == row_index:
                return m
        return None

    def accepted_indices(
        self, *, skip_duplicates: bool = False, excluded: Collection[int] = ()
    ) -> frozenset[int]:
        """Rows that would be committed: valid, not excluded, not skipped duplicates."""

        blocked = set(self.invalid_indices) | set(excluded)
        if skip_duplicates:
            blocked |= self.duplicate_indices
        return frozenset(
            c.source_row_index for c in self.candidates if c.source_row_index not in blocked
        )

    def accepted(
        self, *, skip_duplicates: bool = False, excluded: Collection[int] = ()
    ) -> list[CandidateTransaction]:
        keep = self.accepted_indices(skip_duplicates=skip_duplicates, excluded=excluded)
        return [c for c in self.candidates if c.source_row_index in keep]

    def impact(
        self, *, skip_duplicates: bool = False, excluded: Collection[int] = ()
    ) -> BalanceImpactSummary:
        return compute_impact(
            self.candidates,
            self.starting_balance,
            accepted=self.accepted_indices(skip_duplicates=skip_duplicates, excluded=excluded),
        )

    def counts(self) -> ImportCounts:
        invalid = self.invalid_indices
        return ImportCounts(
            total=len(self.candidates),
            valid=sum(1 for c in self.candidates if c.source_row_index not in invalid),
            duplicates=len(self.duplicate_indices),
            errors=len(invalid),
        )

    def stats(self) -> ImportStats:
        invalid = self.invalid_indices
        valid = [c for c in self.candidates if c.source_row_index not in invalid]
        dates = sorted(c.date for c in valid if c.date)
        income = sum(1 for c in valid if c.type is TransactionType.INCOME)
        return ImportStats(
            income=income,
            expense=len(valid) - income,
            first_date=dates[0] if dates else None,
            last_date=dates[-1] if dates else None,
            categories=dict(Counter(c.category for c in valid if c.category)),
        )


def run_pipeline(
    rows: Sequence[RawRow],
    mapping: ColumnMapping,
    *,
    categories: CategoryTaxonomy,
    existing: Sequence[Transaction],
    starting_balance: Decimal,
    account_id: str | None,
    template: BankTemplate | None = None,
    config: ImportConfig | None = None,
) -> PipelineResult:
    """Normalize, classify, match and validate ``rows``; row ``i`` becomes candidate ``i``."""

    cfg = config or ImportConfig()
    norm_cfg = cfg.normalizer.for_template(template)

    normalized = [
        normalize_row(row, mapping, idx, config=norm_cfg, account_id=account_id)
        for idx, row in enumerate(rows)
    ]
    labels = classify_all(normalized, rows, mapping, categories, config=cfg.classifier)
    candidates = [
        replace(cand, category=label.category, sub_category=label.sub_category)
        for cand, label in zip(normalized, labels, strict=True)
    ]

    duplicates = detect_duplicates(candidates, existing, policy=cfg.duplicates)
    errors = validate_candidates(candidates, limits=cfg.limits)

    result = PipelineResult(
        candidates=tuple(candidates),
        errors=tuple(errors),
        duplicates=tuple(duplicates),
        starting_balance=starting_balance,
    )
    counts = result.counts()
    logger.info(
        "Pipeline: %d row(s), %d valid, %d with errors, %d possible duplicate(s)",
        counts.total,
        counts.valid,
        counts.errors,
        counts.duplicates,
    )
    return result


__all__ = ["ImportCounts", "ImportStats", "PipelineResult", "run_pipeline"]
