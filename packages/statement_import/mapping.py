"""Heuristic column mapping for files without a bank template.

Every header is lower-cased and, per canonical field, the first header that
contains one of the field's keywords wins. The result is only a guess: the
user can revise any field before normalization, and empty required fields are
reported later by the session and the validator, never here.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from .models import ColumnMapping

FIELD_KEYWORDS: Mapping[str, tuple[str, ...]] = {
    "date": ("date", "fecha", "time"),
    "amount": ("amount", "cantidad", "importe", "monto", "valor"),
    "description": ("description", "descripción", "concepto", "memo", "detail"),
    "category": ("category", "categoría"),
    "sub_category": ("subcategory", "subcategoría", "subcat"),
}


def _find_match(
    lowered: Sequence[str], headers: Sequence[str], keywords: Sequence[str], *, skip: str = ""
) -> str:
    for pos, name in enumerate(lowered):
        if headers[pos] == skip:
            continue
        if any(k in name for k in keywords):
            return headers[pos]
    return ""


def auto_map(headers: Sequence[str]) -> ColumnMapping:
    """Guess a :class:`ColumnMapping` from ``headers``. Never raises."""

    lowered = [h.lower() for h in headers]
    sub_category = _find_match(lowered, headers, FIELD_KEYWORDS["sub_category"])
    # "subcategoría" contains "categoría"; a header taken by sub_category is
    # never reused for category.
    category = _find_match(lowered, headers, FIELD_KEYWORDS["category"], skip=sub_category)
    return ColumnMapping(
        date=_find_match(lowered, headers, FIELD_KEYWORDS["date"]),
        amount=_find_match(lowered, headers, FIELD_KEYWORDS["amount"]),
        description=_find_match(lowered, headers, FIELD_KEYWORDS["description"]),
        category=category,
        sub_category=sub_category,
    )


__all__ = ["FIELD_KEYWORDS", "auto_map"]
