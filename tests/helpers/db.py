"""DB helpers for tests: bootstrap a temporary SQLite ledger and seed it."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date
from decimal import Decimal
from pathlib import Path

from db.client import create_schema, session_scope
from db.models.ledger import LedgerAccount, LedgerTransaction
from sqlalchemy import select
from sqlalchemy import text as sql_text

from statement_import.categories import load_default_taxonomy, seed_categories
from statement_import.models import Category, Transaction


def bootstrap_sqlite_db(db_file: Path, *, with_taxonomy: bool = True) -> str:
    """Create a SQLite database file, initialize schema, and return the URL.

    Using a file-backed SQLite DB ensures multiple SQLAlchemy connections share
    the same state (in-memory DBs are per-connection by default).
    """

    url = f"sqlite+pysqlite:///{db_file}"
    db_file.parent.mkdir(parents=True, exist_ok=True)
    create_schema(database_url=url)
    _assert_tables_present(url)
    if with_taxonomy:
        seed_taxonomy(database_url=url)
    return url


def seed_taxonomy(*, database_url: str, taxonomy: Sequence[Category] | None = None) -> None:
    seed_categories(
        taxonomy if taxonomy is not None else load_default_taxonomy(),
        database_url=database_url,
    )


def seed_accounts(*, database_url: str, accounts: Iterable[tuple[str, str, str]]) -> None:
    """Insert ``(id, name, balance)`` accounts."""

    with session_scope(database_url=database_url) as session:
        for acc_id, name, balance in accounts:
            session.add(LedgerAccount(id=acc_id, name=name, balance=Decimal(balance)))


def seed_transactions(*, database_url: str, transactions: Iterable[Transaction]) -> None:
    with session_scope(database_url=database_url) as session:
        for tx in transactions:
            session.add(
                LedgerTransaction(
                    id=tx.id,
                    account_id=tx.account_id,
                    date=date.fromisoformat(tx.date),
                    amount=tx.amount,
                    type=str(tx.type),
                    category=tx.category,
                    sub_category=tx.sub_category,
                    description=tx.description,
                )
            )


def account_balance(*, database_url: str, account_id: str) -> Decimal:
    with session_scope(database_url=database_url) as session:
        row = session.get(LedgerAccount, account_id)
        assert row is not None, f"account {account_id!r} missing"
        return Decimal(row.balance).quantize(Decimal("0.01"))


def imported_rows(*, database_url: str, account_id: str) -> list[LedgerTransaction]:
    with session_scope(database_url=database_url) as session:
        return list(
            session.execute(
                select(LedgerTransaction)
                .where(LedgerTransaction.account_id == account_id)
                .where(LedgerTransaction.source == "import")
                .order_by(LedgerTransaction.date, LedgerTransaction.description)
            )
            .scalars()
            .all()
        )


def _assert_tables_present(database_url: str) -> None:
    """Quick sanity check that ``create_schema`` built every ledger table."""

    expected = {"ledger_accounts", "ledger_categories", "ledger_transactions"}
    with session_scope(database_url=database_url) as session:
        rows = session.execute(
            sql_text("SELECT name FROM sqlite_master WHERE type = 'table'")
        ).fetchall()
    got = {r[0] for r in rows}
    missing = expected - got
    assert not missing, f"ledger schema incomplete: missing={missing}"
