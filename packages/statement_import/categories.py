"""Category taxonomy loading and seeding.

The classifier works on an in-memory two-level taxonomy
(:class:`~statement_import.models.Category` nodes with their subcategory
names). It comes either from the bundled ``seeds/categories.v1.json`` or
from the ``ledger_categories`` table of the ledger database.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from functools import lru_cache
from importlib import resources
from os import PathLike
from pathlib import Path

from db.client import session_scope
from db.models.ledger import LedgerCategory
from pydantic import BaseModel, ConfigDict, field_validator
from sqlalchemy import delete, func, select

from .logging_setup import get_logger
from .models import Category, TransactionType

logger = get_logger(__name__)

_SEED_PACKAGE = "statement_import"
_SEED_FILE = "seeds/categories.v1.json"
_SUPPORTED_SCHEMA_VERSION = 1


def normalize_name(name: str) -> str:
    """Return a trimmed, single-spaced representation of ``name``.

    Does not change case; lookups compare with ``casefold()``.
    """

    return " ".join(name.strip().split())


# ---------------------------
# Seed file
# ---------------------------


class _CategoryEntry(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str
    type: TransactionType
    sub_categories: tuple[str, ...] = ()

    @field_validator("name")
    @classmethod
    def _non_empty_name(cls, v: str) -> str:
        v = normalize_name(v)
        if not v:
            raise ValueError("category name must be non-empty")
        return v

    @field_validator("sub_categories")
    @classmethod
    def _clean_children(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(dict.fromkeys(n for n in (normalize_name(s) for s in v) if n))


class _TaxonomyFile(BaseModel):
    model_config = ConfigDict(extra="forbid")

    schema_version: int
    categories: list[_CategoryEntry]


def _taxonomy_from_text(text: str) -> tuple[Category, ...]:
    parsed = _TaxonomyFile.model_validate(json.loads(text))
    if parsed.schema_version != _SUPPORTED_SCHEMA_VERSION:
        raise ValueError(f"unsupported taxonomy schema_version: {parsed.schema_version}")
    seen: set[tuple[str, TransactionType]] = set()
    out: list[Category] = []
    for entry in parsed.categories:
        key = (entry.name.casefold(), entry.type)
        if key in seen:
            raise ValueError(f"duplicate {entry.type} category: {entry.name!r}")
        seen.add(key)
        out.append(Category(entry.name, entry.type, entry.sub_categories))
    return tuple(out)


def load_taxonomy(path: str | PathLike[str]) -> tuple[Category, ...]:
    """Load a taxonomy from a ``categories.v1.json``-shaped file."""

    return _taxonomy_from_text(Path(path).read_text(encoding="utf-8"))


@lru_cache(maxsize=1)
def load_default_taxonomy() -> tuple[Category, ...]:
    """The bundled default taxonomy (cached, read-only)."""

    text = resources.files(_SEED_PACKAGE).joinpath(_SEED_FILE).read_text(encoding="utf-8")
    return _taxonomy_from_text(text)


# ---------------------------
# Database
# ---------------------------


def load_taxonomy_from_db(*, database_url: str | None) -> list[Category]:
    """Return the two-level taxonomy stored in ``ledger_categories``.

    Parents are ordered by ``sort_order`` then name; children keep their own
    ``sort_order``. Children whose parent is itself a child are ignored.
    Raises ``RuntimeError`` when the table holds no top-level category.
    """

    with session_scope(database_url=database_url) as session:
        rows = (
            session.execute(
                select(LedgerCategory).order_by(
                    func.coalesce(LedgerCategory.sort_order, 10_000), LedgerCategory.name
                )
            )
            .scalars()
            .all()
        )

    parents = [r for r in rows if r.parent_id is None]
    if not parents:
        raise RuntimeError("no categories present in ledger_categories")

    children: dict[int, list[str]] = {}
    for r in rows:
        if r.parent_id is not None:
            children.setdefault(r.parent_id, []).append(normalize_name(r.name))

    return [
        Category(
            name=normalize_name(p.name),
            type=TransactionType(p.kind),
            sub_categories=tuple(dict.fromkeys(children.get(p.id, []))),
        )
        for p in parents
    ]


def seed_categories(taxonomy: Sequence[Category], *, database_url: str | None) -> int:
    """Replace the contents of ``ledger_categories`` with ``taxonomy``.

    Parents are inserted first, then their children with ``parent_id`` set;
    input order is preserved through ``sort_order``. Returns the number of
    rows written.
    """

    written = 0
    with session_scope(database_url=database_url) as session:
        session.execute(delete(LedgerCategory))

        parent_rows: list[LedgerCategory] = []
        for order, cat in enumerate(taxonomy):
            row = LedgerCategory(
                name=normalize_name(cat.name),
                kind=str(cat.type),
                parent_id=None,
                sort_order=order,
            )
            session.add(row)
            parent_rows.append(row)
        session.flush()
        written += len(parent_rows)

        for parent_index, (cat, parent) in enumerate(zip(taxonomy, parent_rows, strict=True)):
            for child_index, child in enumerate(cat.sub_categories):
                session.add(
                    LedgerCategory(
                        name=normalize_name(child),
                        kind=str(cat.type),
                        parent_id=parent.id,
                        sort_order=parent_index * 100 + child_index,
                    )
                )
                written += 1
        session.flush()

    logger.info("Seeded %d ledger categories (%d top-level)", written, len(parent_rows))
    return written


__all__ = [
    "normalize_name",
    "load_taxonomy",
    "load_default_taxonomy",
    "load_taxonomy_from_db",
    "seed_categories",
]
