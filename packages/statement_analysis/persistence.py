# ruff: noqa: I001
"""Persistence integration for statement_analysis.

Functions here write to the ``ledger_transactions`` table owned by
``libs/db``. They take an open SQLAlchemy ``Session`` (usually from
``db.client.session_scope``) and never commit themselves; the scope commits on
success and rolls the whole batch back on error.

Scope:
- Deduplicating bulk import keyed on ``(date, amount, raw_description)``.
- Manual corrections of single rows (category and other labels).
- Clear-all.
- Counterparty backfill for rows imported without one.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import delete, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.orm import Session

from db.models.ledger import LedgerTransaction
from .categories import CREDIT_CARD_PAYMENT, is_valid_category
from .counterparty import extract_counterparty
from .credit_card import is_credit_card_payment
from .logging_setup import get_logger
from .models import ImportResult, StoredTransaction, Transaction

logger = get_logger(__name__)

# Rows per INSERT statement; keeps SQLite under its bound-parameter limit.
INSERT_CHUNK_SIZE = 500

# Columns a correction may touch. The dedup key columns are immutable.
EDITABLE_FIELDS: frozenset[str] = frozenset(
    {
        "category",
        "counterparty",
        "description",
        "details",
        "type",
        "status",
        "is_credit_card_payment",
    }
)

# Editable columns that may not be cleared.
_REQUIRED_FIELDS: frozenset[str] = frozenset({"category", "type", "is_credit_card_payment"})

_PAYLOAD_FIELDS: tuple[str, ...] = (
    "date",
    "amount",
    "description",
    "raw_description",
    "details",
    "counterparty",
    "category",
    "type",
    "source",
    "is_credit_card_payment",
    "status",
)


class StoreConnectivityError(RuntimeError):
    """The store could not be reached or the connection dropped mid-operation."""


@contextmanager
def store_errors(action: str) -> Iterator[None]:
    """Re-raise driver connectivity failures as ``StoreConnectivityError``."""

    try:
        yield
    except (OperationalError, InterfaceError) as exc:
        raise StoreConnectivityError(f"{action} failed: {exc.orig or exc}") from exc


def _dialect_insert(session: Session):
    bind = session.get_bind()
    if bind.dialect.name == "postgresql":
        return pg_insert
    if bind.dialect.name == "sqlite":
        return sqlite_insert
    raise NotImplementedError(f"Unsupported database dialect: {bind.dialect.name}")


def to_stored(row: LedgerTransaction) -> StoredTransaction:
    """Validate an ORM row into the public read model."""

    return StoredTransaction.model_validate(
        {c.key: getattr(row, c.key) for c in LedgerTransaction.__table__.columns}
    )


def _payload(tx: Transaction) -> dict[str, Any]:
    # Every row carries the same keys so one multi-row VALUES clause fits all.
    data = tx.model_dump()
    return {k: data[k] for k in _PAYLOAD_FIELDS}


def import_batch(session: Session, transactions: Sequence[Transaction]) -> ImportResult:
    """Insert ``transactions``, skipping any whose dedup key already exists.

    Duplicates are detected by the store's unique constraint alone, both
    against stored rows and within the batch itself, so
    ``inserted_count + duplicate_count == len(transactions)``.

    Raises
    ------
    StoreConnectivityError
        When the store is unreachable; nothing from the batch is kept once the
        caller's session scope rolls back.
    """

    if not transactions:
        return ImportResult(inserted_count=0, duplicate_count=0)

    insert = _dialect_insert(session)
    inserted = 0
    with store_errors("Import"):
        for start in range(0, len(transactions), INSERT_CHUNK_SIZE):
            chunk = transactions[start : start + INSERT_CHUNK_SIZE]
            stmt = (
                insert(LedgerTransaction)
                .values([_payload(tx) for tx in chunk])
                .on_conflict_do_nothing(
                    index_elements=[
                        LedgerTransaction.date,
                        LedgerTransaction.amount,
                        LedgerTransaction.raw_description,
                    ]
                )
                .returning(LedgerTransaction.id)
            )
            inserted += len(session.execute(stmt).scalars().all())

    result = ImportResult(inserted_count=inserted, duplicate_count=len(transactions) - inserted)
    logger.info(result.message)
    return result


def update_transaction(session: Session, tx_id: int, **changes: Any) -> int:
    """Apply a manual correction to one stored row; return the modified count.

    Only ``EDITABLE_FIELDS`` may change. A new ``category`` must belong to the
    taxonomy and ``description`` must stay non-empty. Returns 0 when no row
    has ``tx_id``.
    """

    if not changes:
        raise ValueError("No fields to update")
    unknown = sorted(set(changes) - EDITABLE_FIELDS)
    if unknown:
        raise ValueError("Fields cannot be updated: " + ", ".join(unknown))
    missing = sorted(f for f in _REQUIRED_FIELDS if f in changes and changes[f] is None)
    if missing:
        raise ValueError("Fields cannot be null: " + ", ".join(missing))
    if "description" in changes and not (changes["description"] or "").strip():
        raise ValueError("description must not be empty")
    if "category" in changes and not is_valid_category(changes["category"]):
        raise ValueError(f"Unknown category: {changes['category']!r}")

    stmt = update(LedgerTransaction).where(LedgerTransaction.id == tx_id).values(**changes)
    with store_errors("Update"):
        count = session.execute(stmt).rowcount or 0
    logger.debug("Updated transaction %s: %s (%d row)", tx_id, sorted(changes), count)
    return count


def clear_transactions(session: Session) -> int:
    """Delete every stored transaction; return how many were removed."""

    with store_errors("Clear"):
        count = session.execute(delete(LedgerTransaction)).rowcount or 0
    logger.info("Deleted %d transactions", count)
    return count


@dataclass(frozen=True, slots=True)
class BackfillResult:
    scanned: int
    extracted: int
    card_payments: int
    unresolved: list[StoredTransaction] = field(default_factory=list)


def backfill_counterparties(session: Session) -> BackfillResult:
    """Derive counterparties for stored rows that have none.

    Rows are re-run through the counterparty extractor (description, then
    details) and the credit-card detector. Rows the extractor cannot resolve
    are returned for manual review and left unchanged otherwise.
    """

    stmt = select(LedgerTransaction).where(
        or_(LedgerTransaction.counterparty.is_(None), LedgerTransaction.counterparty == "")
    )
    extracted = 0
    card_payments = 0
    unresolved: list[StoredTransaction] = []
    with store_errors("Backfill"):
        rows = session.execute(stmt).scalars().all()
        for row in rows:
            name = extract_counterparty(row.description, row.details)
            if name:
                row.counterparty = name
                extracted += 1
            else:
                unresolved.append(to_stored(row))
            if not row.is_credit_card_payment and is_credit_card_payment(
                row.raw_description, row.type
            ):
                row.is_credit_card_payment = True
                row.category = CREDIT_CARD_PAYMENT
                card_payments += 1
        session.flush()

    logger.info(
        "Backfill: %d scanned, %d counterparties extracted, %d card payments, %d unresolved",
        len(rows),
        extracted,
        card_payments,
        len(unresolved),
    )
    return BackfillResult(
        scanned=len(rows),
        extracted=extracted,
        card_payments=card_payments,
        unresolved=unresolved,
    )


__all__ = [
    "BackfillResult",
    "EDITABLE_FIELDS",
    "INSERT_CHUNK_SIZE",
    "StoreConnectivityError",
    "backfill_counterparties",
    "clear_transactions",
    "import_batch",
    "store_errors",
    "to_stored",
    "update_transaction",
]
