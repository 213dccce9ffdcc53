from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    CHAR,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


# ---------------------------
# Reference: ledger_accounts
# ---------------------------


class LedgerAccount(Base):
    __tablename__ = "ledger_accounts"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    # Running balance; imports apply one delta per commit.
    balance: Mapped[Decimal] = mapped_column(
        Numeric(18, 2), nullable=False, server_default=text("0")
    )
    currency_code: Mapped[str] = mapped_column(
        CHAR(3), nullable=False, server_default=text("'EUR'")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


# ---------------------------
# Reference: ledger_categories
# ---------------------------


class LedgerCategory(Base):
    __tablename__ = "ledger_categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    # INCOME or EXPENSE. The same name may exist once per kind (e.g. transfers).
    kind: Mapped[str] = mapped_column(String, nullable=False)
    # Two-level taxonomy: children point at a top-level parent. Depth is
    # enforced when seeding, not by recursive constraints.
    parent_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("ledger_categories.id"), nullable=True
    )
    sort_order: Mapped[int | None] = mapped_column(Integer, nullable=True)

    __table_args__ = (
        CheckConstraint("kind in ('INCOME','EXPENSE')", name="ck_ledger_category_kind"),
        UniqueConstraint("kind", "parent_id", "name", name="uq_ledger_category_scope"),
    )


# ---------------------------
# Core: ledger_transactions
# ---------------------------


class LedgerTransaction(Base):
    __tablename__ = "ledger_transactions"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    account_id: Mapped[str] = mapped_column(
        String, ForeignKey("ledger_accounts.id"), nullable=False, index=True
    )
    date: Mapped[date] = mapped_column(Date, nullable=False)
    # Always non-negative; direction lives in ``type``.
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    type: Mapped[str] = mapped_column(String, nullable=False)
    category: Mapped[str] = mapped_column(String, nullable=False)
    sub_category: Mapped[str | None] = mapped_column(String, nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    source: Mapped[str] = mapped_column(
        String, nullable=False, server_default=text("'manual'")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_ledger_tx_amount_non_negative"),
        CheckConstraint("type in ('INCOME','EXPENSE')", name="ck_ledger_tx_type"),
        CheckConstraint("source in ('manual','import')", name="ck_ledger_tx_source"),
    )


__all__ = [
    "Base",
    "LedgerAccount",
    "LedgerCategory",
    "LedgerTransaction",
]
