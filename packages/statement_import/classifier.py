"""Deterministic, rule-based category inference.

Resolution order for the category:

1. the mapped category cell, when it names a taxonomy category (or one of its
   subcategories, which then selects the parent);
2. the first :class:`ClassificationRule` whose keyword occurs in the
   upper-cased description, considering only rules whose category exists in
   the taxonomy;
3. ``ClassifierConfig.fallback_category``.

The subcategory is then taken from the mapped subcategory cell, the winning
rule, or the first subcategory name that appears in the description, in that
order, and only when it belongs to the chosen category.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import dataclass, field
from functools import lru_cache
from importlib import resources
from os import PathLike
from pathlib import Path

from pydantic import BaseModel, ConfigDict, field_validator

from .models import (
    CandidateTransaction,
    Category,
    CategoryTaxonomy,
    Classification,
    ColumnMapping,
    RawRow,
    TransactionType,
)

_SEED_PACKAGE = "statement_import"
_SEED_FILE = "seeds/merchant_rules.v1.json"
_SUPPORTED_SCHEMA_VERSION = 1

DEFAULT_FALLBACK_CATEGORY = "Uncategorized"


class ClassificationRule(BaseModel):
    """Keyword rule: any keyword found in the description selects ``category``.

    Keywords are matched as upper-case substrings against the description
    padded with one space on each side, so ``" BAR "`` matches a trailing
    ``BAR`` but not ``BARCELONA``.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    category: str
    sub_category: str | None = None
    keywords: tuple[str, ...]

    @field_validator("keywords")
    @classmethod
    def _upper_keywords(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        kws = tuple(k.upper() for k in v if k.strip())
        if not kws:
            raise ValueError("rule needs at least one non-blank keyword")
        return kws

    def matches(self, padded_description: str) -> bool:
        return any(k in padded_description for k in self.keywords)


class _RulesFile(BaseModel):
    model_config = ConfigDict(extra="forbid")

    schema_version: int
    rules: list[ClassificationRule]


def _rules_from_text(text: str) -> tuple[ClassificationRule, ...]:
    parsed = _RulesFile.model_validate(json.loads(text))
    if parsed.schema_version != _SUPPORTED_SCHEMA_VERSION:
        raise ValueError(f"unsupported merchant rules schema_version: {parsed.schema_version}")
    return tuple(parsed.rules)


def load_rules(path: str | PathLike[str]) -> tuple[ClassificationRule, ...]:
    return _rules_from_text(Path(path).read_text(encoding="utf-8"))


@lru_cache(maxsize=1)
def load_default_rules() -> tuple[ClassificationRule, ...]:
    """Ranked merchant rules bundled with the package."""

    text = resources.files(_SEED_PACKAGE).joinpath(_SEED_FILE).read_text(encoding="utf-8")
    return _rules_from_text(text)


@dataclass(frozen=True, slots=True)
class ClassifierConfig:
    rules: tuple[ClassificationRule, ...] = field(default_factory=load_default_rules)
    fallback_category: str = DEFAULT_FALLBACK_CATEGORY


# ---------------------------
# Taxonomy lookups
# ---------------------------


def _find_category(
    categories: CategoryTaxonomy, name: str, tx_type: TransactionType
) -> Category | None:
    # A name may exist once per type (e.g. transfers); prefer the candidate's type.
    key = name.strip().casefold()
    hits = [c for c in categories if c.name.casefold() == key]
    if not hits:
        return None
    for c in hits:
        if c.type == tx_type:
            return c
    return hits[0]


def _find_parent_of(
    categories: CategoryTaxonomy, sub_name: str, tx_type: TransactionType
) -> tuple[Category, str] | None:
    key = sub_name.strip().casefold()
    hits: list[tuple[Category, str]] = []
    for c in categories:
        for s in c.sub_categories:
            if s.casefold() == key:
                hits.append((c, s))
                break
    if not hits:
        return None
    for c, s in hits:
        if c.type == tx_type:
            return c, s
    return hits[0]


def _own_sub(category: Category, name: str | None) -> str | None:
    if not name:
        return None
    key = name.strip().casefold()
    for s in category.sub_categories:
        if s.casefold() == key:
            return s
    return None


def _sub_in_description(category: Category, description: str) -> str | None:
    lowered = description.casefold()
    for s in category.sub_categories:
        if s.casefold() in lowered:
            return s
    return None


def _cell(row: RawRow, header: str) -> str:
    if not header:
        return ""
    return (row.get(header) or "").strip()


# ---------------------------
# Public API
# ---------------------------


def classify(
    candidate: CandidateTransaction,
    raw_row: RawRow,
    mapping: ColumnMapping,
    categories: CategoryTaxonomy,
    *,
    config: ClassifierConfig | None = None,
) -> Classification:
    """Return the category/subcategory for ``candidate``. Pure and idempotent."""

    cfg = config or ClassifierConfig()
    tx_type = candidate.type
    category_cell = _cell(raw_row, mapping.category)
    sub_cell = _cell(raw_row, mapping.sub_category)

    chosen: Category | None = None
    sub_from_category_cell: str | None = None
    rule_sub: str | None = None

    if category_cell:
        chosen = _find_category(categories, category_cell, tx_type)
        if chosen is None:
            parent = _find_parent_of(categories, category_cell, tx_type)
            if parent is not None:
                chosen, sub_from_category_cell = parent

    if chosen is None:
        padded = f" {candidate.description.upper()} "
        for rule in cfg.rules:
            if not rule.matches(padded):
                continue
            node = _find_category(categories, rule.category, tx_type)
            if node is None:
                continue
            chosen, rule_sub = node, rule.sub_category
            break

    if chosen is None:
        return Classification(category=cfg.fallback_category, sub_category=None)

    sub = (
        _own_sub(chosen, sub_cell)
        or sub_from_category_cell
        or _own_sub(chosen, rule_sub)
        or _sub_in_description(chosen, candidate.description)
    )
    return Classification(category=chosen.name, sub_category=sub)


def classify_all(
    candidates: Sequence[CandidateTransaction],
    rows: Sequence[RawRow],
    mapping: ColumnMapping,
    categories: CategoryTaxonomy,
    *,
    config: ClassifierConfig | None = None,
) -> list[Classification]:
    """Classify a batch; ``rows[i]`` is the raw row of ``candidates[i]``."""

    cfg = config or ClassifierConfig()
    return [
        classify(c, r, mapping, categories, config=cfg)
        for c, r in zip(candidates, rows, strict=True)
    ]


__all__ = [
    "DEFAULT_FALLBACK_CATEGORY",
    "ClassificationRule",
    "ClassifierConfig",
    "load_rules",
    "load_default_rules",
    "classify",
    "classify_all",
]
