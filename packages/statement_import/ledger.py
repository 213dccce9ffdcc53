"""Ledger store interface and its two implementations.

The session only needs a handful of operations from the host ledger:
read accounts, categories and existing transactions, then append one batch
and adjust one balance inside :meth:`LedgerStore.atomic`. Everything else
about the ledger (general CRUD, sync) lives outside this package.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from contextlib import AbstractContextManager, contextmanager
from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Protocol, runtime_checkable

from db.client import session_scope
from db.models.ledger import LedgerAccount, LedgerTransaction
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from .categories import load_default_taxonomy, load_taxonomy_from_db
from .errors import UnknownAccountError
from .logging_setup import get_logger
from .models import Account, Category, Transaction, TransactionType

logger = get_logger(__name__)


@runtime_checkable
class LedgerStore(Protocol):
    def list_transactions(self, account_id: str | None = None) -> list[Transaction]: ...

    def get_account(self, account_id: str) -> Account | None: ...

    def list_accounts(self) -> list[Account]: ...

    def list_categories(self) -> list[Category]: ...

    def append_transactions(self, batch: Sequence[Transaction]) -> None: ...

    def adjust_account_balance(self, account_id: str, delta: Decimal) -> None: ...

    def atomic(self) -> AbstractContextManager[None]: ...


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------


class InMemoryLedger:
    """Process-local ledger, used by tests and by hosts without a database.

    ``atomic()`` snapshots accounts and transactions and restores them when
    the block raises.
    """

    def __init__(
        self,
        *,
        accounts: Sequence[Account] = (),
        transactions: Sequence[Transaction] = (),
        categories: Sequence[Category] | None = None,
    ) -> None:
        self._accounts: dict[str, Account] = {a.id: a for a in accounts}
        self._transactions: list[Transaction] = list(transactions)
        self._categories = list(categories) if categories is not None else None

    def list_transactions(self, account_id: str | None = None) -> list[Transaction]:
        if account_id is None:
            return list(self._transactions)
        return [t for t in self._transactions if t.account_id == account_id]

    def get_account(self, account_id: str) -> Account | None:
        return self._accounts.get(account_id)

    def list_accounts(self) -> list[Account]:
        return list(self._accounts.values())

    def list_categories(self) -> list[Category]:
        if self._categories is None:
            return list(load_default_taxonomy())
        return list(self._categories)

    def append_transactions(self, batch: Sequence[Transaction]) -> None:
        for tx in batch:
            if tx.account_id not in self._accounts:
                raise UnknownAccountError(tx.account_id)
        self._transactions.extend(batch)

    def adjust_account_balance(self, account_id: str, delta: Decimal) -> None:
        acct = self._accounts.get(account_id)
        if acct is None:
            raise UnknownAccountError(account_id)
        self._accounts[account_id] = replace(acct, balance=acct.balance + delta)

    @contextmanager
    def atomic(self) -> Iterator[None]:
        accounts = dict(self._accounts)
        transactions = list(self._transactions)
        try:
            yield
        except BaseException:
            self._accounts = accounts
            self._transactions = transactions
            raise


# ---------------------------------------------------------------------------
# SQLAlchemy
# ---------------------------------------------------------------------------


def _tx_from_row(row: LedgerTransaction) -> Transaction:
    return Transaction(
        id=row.id,
        date=row.date.isoformat(),
        amount=Decimal(row.amount),
        type=TransactionType(row.type),
        category=row.category,
        sub_category=row.sub_category,
        account_id=row.account_id,
        description=row.description,
    )


def _account_from_row(row: LedgerAccount) -> Account:
    return Account(id=row.id, name=row.name, balance=Decimal(row.balance))


class SqlLedgerStore:
    """Ledger backed by the ``db`` library tables.

    Outside :meth:`atomic` every call runs in its own ``session_scope``.
    Inside it, writes share one session so the batch append and the balance
    adjustment commit or roll back together.
    """

    def __init__(self, *, database_url: str | None = None) -> None:
        self.database_url = database_url
        self._active: Session | None = None

    @contextmanager
    def _session(self) -> Iterator[Session]:
        if self._active is not None:
            yield self._active
            return
        with session_scope(database_url=self.database_url) as session:
            yield session

    def list_transactions(self, account_id: str | None = None) -> list[Transaction]:
        stmt = select(LedgerTransaction).order_by(
            LedgerTransaction.date, LedgerTransaction.created_at, LedgerTransaction.id
        )
        if account_id is not None:
            stmt = stmt.where(LedgerTransaction.account_id == account_id)
        with self._session() as session:
            return [_tx_from_row(r) for r in session.execute(stmt).scalars().all()]

    def get_account(self, account_id: str) -> Account | None:
        with self._session() as session:
            row = session.get(LedgerAccount, account_id)
            return _account_from_row(row) if row is not None else None

    def list_accounts(self) -> list[Account]:
        with self._session() as session:
            rows = session.execute(select(LedgerAccount).order_by(LedgerAccount.name)).scalars()
            return [_account_from_row(r) for r in rows.all()]

    def list_categories(self) -> list[Category]:
        try:
            return load_taxonomy_from_db(database_url=self.database_url)
        except RuntimeError:
            logger.warning("ledger_categories is empty; using the bundled taxonomy")
            return list(load_default_taxonomy())

    def append_transactions(self, batch: Sequence[Transaction]) -> None:
        with self._session() as session:
            session.add_all(
                LedgerTransaction(
                    id=tx.id,
                    account_id=tx.account_id,
                    date=date.fromisoformat(tx.date),
                    amount=tx.amount,
                    type=str(tx.type),
                    category=tx.category,
                    sub_category=tx.sub_category,
                    description=tx.description,
                    source="import",
                )
                for tx in batch
            )
            session.flush()

    def adjust_account_balance(self, account_id: str, delta: Decimal) -> None:
        with self._session() as session:
            result = session.execute(
                update(LedgerAccount)
                .where(LedgerAccount.id == account_id)
                .values(balance=LedgerAccount.balance + delta, updated_at=func.now())
            )
            if result.rowcount == 0:
                raise UnknownAccountError(account_id)

    @contextmanager
    def atomic(self) -> Iterator[None]:
        if self._active is not None:
            yield
            return
        with session_scope(database_url=self.database_url) as session:
            self._active = session
            try:
                yield
            finally:
                self._active = None


__all__ = ["LedgerStore", "InMemoryLedger", "SqlLedgerStore"]
