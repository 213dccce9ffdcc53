"""Pytest configuration shared by unit and end-to-end tests.

Puts the workspace ``packages/`` and ``libs/db/src`` directories on
``sys.path`` so ``statement_import`` and ``db`` import without installation,
and keeps database engines and logging state from leaking between tests.
"""

# ruff: noqa: E402, I001
from __future__ import annotations

import sys
from collections.abc import Iterator
from decimal import Decimal
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
_PKG_DIRS = [_ROOT / "packages", _ROOT / "libs" / "db" / "src"]
# Ensure local packages precede the repo root on sys.path so they resolve first.
sys.path[:0] = [p for p in [*(str(d) for d in _PKG_DIRS), str(_ROOT)] if p not in sys.path]

from db.client import dispose_engines  # noqa: E402

from statement_import.ledger import InMemoryLedger  # noqa: E402
from statement_import.models import Account  # noqa: E402

DATA_DIR = _ROOT / "tests" / "data"


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Drop ambient configuration and dispose engines created by the test."""

    for name in (
        "DATABASE_URL",
        "STATEMENT_IMPORT_LOG_LEVEL",
        "STATEMENT_IMPORT_LOG_FORMAT",
        "STATEMENT_IMPORT_DUPLICATE_WINDOW_DAYS",
        "STATEMENT_IMPORT_DUPLICATE_SIMILARITY",
        "STATEMENT_IMPORT_FALLBACK_CATEGORY",
        "STATEMENT_IMPORT_MAX_AMOUNT",
        "STATEMENT_IMPORT_PREVIEW_LIMIT",
    ):
        monkeypatch.delenv(name, raising=False)
    yield
    dispose_engines()


@pytest.fixture
def data_dir() -> Path:
    return DATA_DIR


@pytest.fixture
def ledger() -> InMemoryLedger:
    """In-memory ledger with two accounts and the bundled taxonomy."""

    return InMemoryLedger(
        accounts=[
            Account(id="acc1", name="Cuenta Nómina", balance=Decimal("1000.00")),
            Account(id="acc2", name="Ahorro", balance=Decimal("5000.00")),
        ]
    )
