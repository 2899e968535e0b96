# ruff: noqa: I001
"""Ledger core table with the import dedup key.

Revision ID: 0001_ledger_core
Revises: None
Create Date: 2026-10-19
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001_ledger_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "ledger_transactions",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("date", sa.String(10), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("raw_description", sa.Text(), nullable=False),
        sa.Column("details", sa.Text(), nullable=True),
        sa.Column("counterparty", sa.Text(), nullable=True),
        sa.Column(
            "category",
            sa.String(),
            nullable=False,
            server_default=sa.text("'Other'"),
        ),
        sa.Column("type", sa.String(), nullable=False, server_default=sa.text("''")),
        sa.Column(
            "source",
            sa.String(),
            nullable=False,
            server_default=sa.text("'bank_statement'"),
        ),
        sa.Column(
            "is_credit_card_payment",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("false"),
        ),
        sa.Column("status", sa.String(), nullable=True),
        sa.Column(
            "imported_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.UniqueConstraint(
            "date", "amount", "raw_description", name="uq_ledger_tx_dedup_key"
        ),
        sa.CheckConstraint(
            "source in ('bank_statement','mastercard_pdf')",
            name="ck_ledger_tx_source",
        ),
    )

    # Query-path indexes (listing is date-sorted; filters hit these columns)
    op.create_index("ix_ledger_tx_date", "ledger_transactions", ["date"], unique=False)
    op.create_index("ix_ledger_tx_category", "ledger_transactions", ["category"], unique=False)
    op.create_index(
        "ix_ledger_tx_counterparty", "ledger_transactions", ["counterparty"], unique=False
    )
    op.create_index("ix_ledger_tx_amount", "ledger_transactions", ["amount"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_ledger_tx_amount", table_name="ledger_transactions")
    op.drop_index("ix_ledger_tx_counterparty", table_name="ledger_transactions")
    op.drop_index("ix_ledger_tx_category", table_name="ledger_transactions")
    op.drop_index("ix_ledger_tx_date", table_name="ledger_transactions")
    op.drop_table("ledger_transactions")
