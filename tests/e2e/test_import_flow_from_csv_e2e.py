# ruff: noqa: E402, I001
from __future__ import annotations

import sys
from decimal import Decimal
from pathlib import Path

# Make sure the workspace `packages/` dir is on sys.path so `statement_import` is importable
_ROOT = Path(__file__).resolve().parents[2]
_PKG_DIRS = [_ROOT / "packages", _ROOT / "libs" / "db" / "src"]
sys.path[:0] = [p for p in [*(str(d) for d in _PKG_DIRS), str(_ROOT)] if p not in sys.path]

from statement_import.api import import_statement, preview_statement  # noqa: E402
from statement_import.ledger import SqlLedgerStore  # noqa: E402
from statement_import.models import Transaction, TransactionType  # noqa: E402

from tests.helpers.db import (  # noqa: E402
    account_balance,
    bootstrap_sqlite_db,
    imported_rows,
    seed_accounts,
    seed_transactions,
)


def test_e2e_import_statement_skips_known_duplicate_and_updates_balance(tmp_path: Path):
    # -------------------------
    # Input (fixture file path)
    # -------------------------
    csv_path = Path(__file__).resolve().parents[1] / "data/santander_2026_01.csv"

    # -------------------------
    # DB bootstrap + ledger state
    # -------------------------
    db_url = bootstrap_sqlite_db(tmp_path / "import-e2e.db")
    seed_accounts(
        database_url=db_url,
        accounts=[("acc1", "Cuenta Nómina", "1000.00"), ("acc2", "Ahorro", "5000.00")],
    )
    # Already in the ledger from an earlier manual entry
    seed_transactions(
        database_url=db_url,
        transactions=[
            Transaction(
                id="manual-1",
                date="2026-01-15",
                amount=Decimal("45.50"),
                type=TransactionType.EXPENSE,
                category="Alimentación",
                sub_category="Supermercado",
                account_id="acc1",
                description="Mercadona Madrid",
            )
        ],
    )
    ledger = SqlLedgerStore(database_url=db_url)

    # -------------------------
    # Preview: nothing written, duplicate flagged
    # -------------------------
    session = preview_statement(csv_path, ledger=ledger, account_id="acc1", bank_id="santander")
    counts = session.counts()
    assert (counts.total, counts.valid, counts.duplicates, counts.errors) == (10, 9, 1, 1)
    assert session.result.duplicate_for(0).matched_ledger_transaction_ids == ("manual-1",)
    assert imported_rows(database_url=db_url, account_id="acc1") == []

    # -------------------------
    # Commit, skipping the duplicate
    # -------------------------
    result = import_statement(
        csv_path,
        ledger=ledger,
        account_id="acc1",
        bank_id="santander",
        skip_duplicates=True,
    )

    assert result.skipped_rows == (0, 9)
    assert result.impact.net_impact == Decimal("1834.76")

    # -------------------------
    # Assert rows persisted and balance moved by the net impact
    # -------------------------
    rows = imported_rows(database_url=db_url, account_id="acc1")
    got = {r.description: (r.type, r.category, r.sub_category) for r in rows}
    expected = {
        "NOMINA ACME SL": ("INCOME", "Trabajo", "Salario"),
        "REPSOL ESTACION 1234": ("EXPENSE", "Transporte", "Gasolina"),
        "NETFLIX.COM": ("EXPENSE", "Ocio", "Suscripciones"),
        "FARMACIA LOPEZ": ("EXPENSE", "Salud", "Farmacia"),
        "BIZUM DE ANA GARCIA": ("INCOME", "Transferencia", None),
        "RESTAURANTE CASA PEPE": ("EXPENSE", "Alimentación", "Restaurantes"),
        "COMPRA IKEA ALCORCON": ("EXPENSE", "Vivienda", "Muebles y Decoración"),
        "ENDESA ENERGIA": ("EXPENSE", "Servicios", "Luz"),
    }
    assert got == expected
    assert account_balance(database_url=db_url, account_id="acc1") == Decimal("2834.76")
    assert account_balance(database_url=db_url, account_id="acc2") == Decimal("5000.00")

    # The ledger copy now matches every imported row: a second run finds only duplicates
    again = preview_statement(csv_path, ledger=ledger, account_id="acc1", bank_id="santander")
    assert again.counts().duplicates == 9
