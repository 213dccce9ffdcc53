"""Bank template registry and resolver.

A bank template maps the canonical import fields to the exact column headers
a given bank uses in its statement export, plus optional parsing overrides
(decimal separator, date formats, delimiter, debit/credit markers and extra
description boilerplate). Templates are static, versioned configuration
loaded from ``seeds/bank_templates.v1.json`` and validated with pydantic;
supporting another bank means adding an entry to that file.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Iterator
from functools import lru_cache
from importlib import resources
from os import PathLike
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, field_validator

from .errors import UnknownTemplateError
from .models import ColumnMapping

MANUAL_BANK_ID = "manual"
"""Pseudo bank id selecting heuristic auto-mapping instead of a template."""

_SEED_PACKAGE = "statement_import"
_SEED_FILE = "seeds/bank_templates.v1.json"
_SUPPORTED_SCHEMA_VERSION = 1


class TemplateColumns(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True, str_strip_whitespace=True)

    date: str
    amount: str
    description: str
    category: str | None = None
    sub_category: str | None = None
    type: str | None = None

    @field_validator("date", "amount", "description")
    @classmethod
    def _required_non_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("required template column must be non-empty")
        return v


class BankTemplate(BaseModel):
    """Typed, validated descriptor of one bank's export layout."""

    model_config = ConfigDict(extra="forbid", frozen=True, str_strip_whitespace=True)

    id: str
    display_name: str
    version: int = 1
    columns: TemplateColumns
    decimal_separator: Literal[",", "."] | None = None
    date_formats: tuple[str, ...] = ()
    delimiter: str | None = None
    debit_markers: tuple[str, ...] = ()
    credit_markers: tuple[str, ...] = ()
    description_strip_patterns: tuple[str, ...] = ()

    @field_validator("id")
    @classmethod
    def _normalize_id(cls, v: str) -> str:
        v = v.lower()
        if not v or v == MANUAL_BANK_ID:
            raise ValueError(f"invalid template id: {v!r}")
        return v

    @field_validator("delimiter")
    @classmethod
    def _single_char_delimiter(cls, v: str | None) -> str | None:
        if v is not None and len(v) != 1:
            raise ValueError("delimiter must be a single character")
        return v

    def to_mapping(self) -> ColumnMapping:
        cols = self.columns
        return ColumnMapping(
            date=cols.date,
            amount=cols.amount,
            description=cols.description,
            category=cols.category or "",
            sub_category=cols.sub_category or "",
            type=cols.type or "",
        )


class _RegistryFile(BaseModel):
    model_config = ConfigDict(extra="forbid")

    schema_version: int
    templates: list[BankTemplate]


class TemplateRegistry:
    """Read-only lookup of :class:`BankTemplate` by id."""

    def __init__(self, templates: Iterable[BankTemplate]) -> None:
        by_id: dict[str, BankTemplate] = {}
        for t in templates:
            if t.id in by_id:
                raise ValueError(f"duplicate bank template id: {t.id!r}")
            by_id[t.id] = t
        self._by_id = by_id

    @classmethod
    def from_json(cls, path: str | PathLike[str]) -> TemplateRegistry:
        return cls._from_text(Path(path).read_text(encoding="utf-8"))

    @classmethod
    def _from_text(cls, text: str) -> TemplateRegistry:
        parsed = _RegistryFile.model_validate(json.loads(text))
        if parsed.schema_version != _SUPPORTED_SCHEMA_VERSION:
            raise ValueError(
                f"unsupported bank template schema_version: {parsed.schema_version}"
            )
        return cls(parsed.templates)

    def __contains__(self, bank_id: object) -> bool:
        return isinstance(bank_id, str) and bank_id.strip().lower() in self._by_id

    def __iter__(self) -> Iterator[BankTemplate]:
        return iter(self._by_id.values())

    def __len__(self) -> int:
        return len(self._by_id)

    def templates(self) -> list[BankTemplate]:
        return sorted(self._by_id.values(), key=lambda t: t.display_name.casefold())

    def get(self, bank_id: str) -> BankTemplate:
        key = bank_id.strip().lower()
        try:
            return self._by_id[key]
        except KeyError:
            raise UnknownTemplateError(bank_id) from None

    def resolve(self, bank_id: str | None) -> ColumnMapping | None:
        """Return the template's mapping, or ``None`` to request auto-mapping.

        ``None`` and ``"manual"`` both select auto-mapping. Any other id must
        exist in the registry, otherwise :class:`UnknownTemplateError` is
        raised.
        """

        if bank_id is None or bank_id.strip().lower() == MANUAL_BANK_ID:
            return None
        return self.get(bank_id).to_mapping()


@lru_cache(maxsize=1)
def default_registry() -> TemplateRegistry:
    """Registry built from the bundled ``bank_templates.v1.json`` seed."""

    text = resources.files(_SEED_PACKAGE).joinpath(_SEED_FILE).read_text(encoding="utf-8")
    return TemplateRegistry._from_text(text)


__all__ = [
    "MANUAL_BANK_ID",
    "TemplateColumns",
    "BankTemplate",
    "TemplateRegistry",
    "default_registry",
]
