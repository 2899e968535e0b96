from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
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
# Core: ledger_transactions
# ---------------------------


class LedgerTransaction(Base):
    __tablename__ = "ledger_transactions"

    # SQLite only auto-increments an ``INTEGER PRIMARY KEY`` (rowid alias).
    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer(), "sqlite"),
        primary_key=True,
        autoincrement=True,
    )
    # ISO-8601 calendar date (YYYY-MM-DD). Kept as text so month/year/day
    # grouping is a portable substring on every backend.
    date: Mapped[str] = mapped_column(String(10), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    # Untouched source narrative. Part of the dedup key and never rewritten by
    # corrections, unlike ``description``/``counterparty``.
    raw_description: Mapped[str] = mapped_column(Text, nullable=False)
    details: Mapped[str | None] = mapped_column(Text, nullable=True)
    counterparty: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str] = mapped_column(
        String, nullable=False, server_default=text("'Other'")
    )
    type: Mapped[str] = mapped_column(String, nullable=False, server_default=text("''"))
    source: Mapped[str] = mapped_column(
        String, nullable=False, server_default=text("'bank_statement'")
    )
    is_credit_card_payment: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("false")
    )
    status: Mapped[str | None] = mapped_column(String, nullable=True)
    imported_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        # The store is the single source of truth for duplicate suppression;
        # importers insert with ON CONFLICT DO NOTHING against this target.
        UniqueConstraint("date", "amount", "raw_description", name="uq_ledger_tx_dedup_key"),
        CheckConstraint(
            "source in ('bank_statement','mastercard_pdf')",
            name="ck_ledger_tx_source",
        ),
    )


__all__ = [
    "Base",
    "LedgerTransaction",
]
