from decimal import Decimal

import pytest

from statement_import.categories import (
    load_default_taxonomy,
    load_taxonomy_from_db,
    seed_categories,
)
from statement_import.errors import UnknownAccountError
from statement_import.ledger import LedgerStore, SqlLedgerStore
from statement_import.models import Category, Transaction, TransactionType

from tests.helpers.db import account_balance, bootstrap_sqlite_db, seed_accounts, seed_transactions


def _tx(tx_id, day, amount, *, acc="acc1", description="CAFETERIA"):
    return Transaction(
        id=tx_id,
        date=day,
        amount=Decimal(amount),
        type=TransactionType.EXPENSE,
        category="Alimentación",
        sub_category="Cafetería",
        account_id=acc,
        description=description,
    )


@pytest.fixture
def db_url(tmp_path):
    url = bootstrap_sqlite_db(tmp_path / "ledger.sqlite")
    seed_accounts(
        database_url=url,
        accounts=[("acc1", "Cuenta Nómina", "1000.00"), ("acc2", "Ahorro", "5000.00")],
    )
    return url


def test_seeded_taxonomy_round_trips_through_db(db_url):
    assert load_taxonomy_from_db(database_url=db_url) == list(load_default_taxonomy())


def test_seed_replaces_existing_rows(db_url):
    custom = [
        Category("Comida", TransactionType.EXPENSE, ("Café", "Menú")),
        Category("Comida", TransactionType.INCOME, ()),
    ]

    assert seed_categories(custom, database_url=db_url) == 4
    assert load_taxonomy_from_db(database_url=db_url) == custom


def test_empty_category_table_falls_back_to_bundled_taxonomy(tmp_path):
    url = bootstrap_sqlite_db(tmp_path / "bare.sqlite", with_taxonomy=False)

    with pytest.raises(RuntimeError):
        load_taxonomy_from_db(database_url=url)
    assert SqlLedgerStore(database_url=url).list_categories() == list(load_default_taxonomy())


def test_accounts_and_transactions(db_url):
    seed_transactions(
        database_url=db_url,
        transactions=[
            _tx("t2", "2026-01-20", "3.00"),
            _tx("t1", "2026-01-10", "2.50"),
            _tx("t3", "2026-01-15", "9.99", acc="acc2"),
        ],
    )
    store = SqlLedgerStore(database_url=db_url)

    assert isinstance(store, LedgerStore)
    assert [a.id for a in store.list_accounts()] == ["acc2", "acc1"]
    assert store.get_account("acc1").balance == Decimal("1000.00")
    assert store.get_account("missing") is None
    assert [t.id for t in store.list_transactions("acc1")] == ["t1", "t2"]
    assert [t.id for t in store.list_transactions()] == ["t1", "t3", "t2"]
    assert store.list_transactions("acc1")[0] == _tx("t1", "2026-01-10", "2.50")


def test_atomic_commits_append_and_balance_together(db_url):
    store = SqlLedgerStore(database_url=db_url)

    with store.atomic():
        store.append_transactions([_tx("n1", "2026-02-01", "4.00")])
        store.adjust_account_balance("acc1", Decimal("-4.00"))

    assert [t.id for t in store.list_transactions("acc1")] == ["n1"]
    assert account_balance(database_url=db_url, account_id="acc1") == Decimal("996.00")


def test_atomic_rolls_back_on_failure(db_url):
    store = SqlLedgerStore(database_url=db_url)

    with pytest.raises(UnknownAccountError):
        with store.atomic():
            store.append_transactions([_tx("n1", "2026-02-01", "4.00")])
            store.adjust_account_balance("nope", Decimal("-4.00"))

    assert store.list_transactions() == []
    assert account_balance(database_url=db_url, account_id="acc1") == Decimal("1000.00")
