"""Duplicate detection against transactions already in the ledger.

Matches are advisory: they annotate candidates by ``source_row_index`` and
the session decides (``skip_duplicates``) whether they are committed.
"""

from __future__ import annotations

import unicodedata
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Literal

from .logging_setup import get_logger
from .models import CandidateTransaction, DuplicateMatch, Transaction

logger = get_logger(__name__)

type Similarity = Literal["exact", "containment"]


@dataclass(frozen=True, slots=True)
class DuplicatePolicy:
    """Tolerances used by :func:`detect_duplicates`.

    ``date_window_days`` is the largest allowed distance in calendar days (0
    means the same day). ``similarity`` compares normalized descriptions:
    ``"exact"`` requires equality, ``"containment"`` also accepts one
    description containing the other.
    """

    date_window_days: int = 0
    similarity: Similarity = "containment"

    def __post_init__(self) -> None:
        if self.date_window_days < 0:
            raise ValueError("date_window_days must be >= 0")
        if self.similarity not in ("exact", "containment"):
            raise ValueError(f"unsupported similarity: {self.similarity!r}")


def _norm_description_key(raw: str | None) -> str:
    """Case/whitespace-insensitive comparison key (NFKC, casefolded)."""

    if raw is None:
        return ""
    s = unicodedata.normalize("NFKC", raw).strip()
    return " ".join(s.split()).casefold()


def _amount_key(amount: Decimal) -> Decimal:
    return amount.quantize(Decimal("0.01"))


def _similar(a: str, b: str, similarity: Similarity) -> bool:
    if not a or not b:
        return False
    if a == b:
        return True
    return similarity == "containment" and (a in b or b in a)


@dataclass(frozen=True, slots=True)
class _Existing:
    id: str
    account_id: str
    day: date
    key: str


def _index_existing(existing: Sequence[Transaction]) -> dict[Decimal, list[_Existing]]:
    by_amount: dict[Decimal, list[_Existing]] = {}
    for tx in existing:
        try:
            day = date.fromisoformat(tx.date)
        except ValueError:
            continue
        by_amount.setdefault(_amount_key(tx.amount), []).append(
            _Existing(tx.id, tx.account_id, day, _norm_description_key(tx.description))
        )
    return by_amount


def detect_duplicates(
    candidates: Sequence[CandidateTransaction],
    existing: Sequence[Transaction],
    *,
    policy: DuplicatePolicy | None = None,
) -> list[DuplicateMatch]:
    """Return one :class:`DuplicateMatch` per candidate with ledger look-alikes.

    Matched ids are listed in ledger order. Candidates with a missing date or
    amount are never matched; account ids are compared only when both sides
    carry one.
    """

    pol = policy or DuplicatePolicy()
    by_amount = _index_existing(existing)
    matches: list[DuplicateMatch] = []

    for cand in candidates:
        if cand.date is None or cand.amount is None:
            continue
        bucket = by_amount.get(_amount_key(cand.amount))
        if not bucket:
            continue
        cand_day = date.fromisoformat(cand.date)
        cand_key = _norm_description_key(cand.description)

        ids = tuple(
            e.id
            for e in bucket
            if (cand.account_id is None or not e.account_id or e.account_id == cand.account_id)
            and abs((e.day - cand_day).days) <= pol.date_window_days
            and _similar(cand_key, e.key, pol.similarity)
        )
        if ids:
            matches.append(DuplicateMatch(cand.source_row_index, ids))

    logger.debug(
        "Duplicate scan: %d candidate(s) vs %d ledger row(s), %d match(es)",
        len(candidates),
        len(existing),
        len(matches),
    )
    return matches


__all__ = ["Similarity", "DuplicatePolicy", "detect_duplicates"]
