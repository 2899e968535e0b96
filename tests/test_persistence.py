# ruff: noqa: I001
from __future__ import annotations

from decimal import Decimal

import pytest
from db.client import session_scope
from db.models.ledger import LedgerTransaction
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from statement_analysis.models import Transaction
from statement_analysis.persistence import (
    StoreConnectivityError,
    backfill_counterparties,
    clear_transactions,
    import_batch,
    to_stored,
    update_transaction,
)
from tests.helpers.db import count_rows, seed_transactions


def _tx(**overrides) -> Transaction:
    data = {"date": "2024-01-15", "amount": "-45.50", "description": "Delhaize"}
    data.update(overrides)
    return Transaction.model_validate(data)


def _import(db_url: str, txs: list[Transaction]):
    with session_scope(database_url=db_url) as session:
        return import_batch(session, txs)


def _rows(db_url: str):
    with session_scope(database_url=db_url) as session:
        rows = session.execute(select(LedgerTransaction).order_by(LedgerTransaction.id))
        return [to_stored(r) for r in rows.scalars().all()]


def test_import_skips_duplicates_within_batch_and_store(db_url: str) -> None:
    first = _import(db_url, [_tx(), _tx(), _tx(date="2024-01-16")])
    assert (first.inserted_count, first.duplicate_count) == (2, 1)
    assert first.message == "Imported 2 new transactions, skipped 1 duplicates"

    second = _import(db_url, [_tx(), _tx(amount="-45.51")])
    assert (second.inserted_count, second.duplicate_count) == (1, 1)
    assert count_rows(db_url) == 3


def test_dedup_key_uses_raw_description_not_display_text(db_url: str) -> None:
    a = _tx(description="AD Delhaize - BETALING", raw_description="BETALING 1234")
    b = _tx(description="Renamed later", raw_description="BETALING 1234")
    c = _tx(description="AD Delhaize - BETALING", raw_description="BETALING 5678")

    result = _import(db_url, [a, b, c])
    assert result.inserted_count == 2
    assert result.duplicate_count == 1
    assert result.total == 3


def test_dedup_key_ignores_edge_padding_only(db_url: str) -> None:
    padded = _tx(raw_description="  BETALING 1234 \t")
    assert padded.raw_description == "BETALING 1234"

    result = _import(
        db_url,
        [
            _tx(raw_description="BETALING 1234"),
            padded,
            _tx(raw_description="BETALING  1234"),
        ],
    )
    assert (result.inserted_count, result.duplicate_count) == (2, 1)
    assert sorted(r.raw_description for r in _rows(db_url)) == ["BETALING  1234", "BETALING 1234"]


def test_import_in_chunks(db_url: str, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("statement_analysis.persistence.INSERT_CHUNK_SIZE", 2)
    txs = [_tx(date=f"2024-01-{day:02d}") for day in range(1, 6)] + [_tx(date="2024-01-01")]

    result = _import(db_url, txs)
    assert result.inserted_count == 5
    assert result.duplicate_count == 1


def test_empty_import(db_url: str) -> None:
    result = _import(db_url, [])
    assert result.total == 0
    assert result.message == "Imported 0 transactions"


def test_stored_rows_round_trip(db_url: str) -> None:
    _import(
        db_url,
        [
            _tx(
                counterparty="AD Delhaize",
                details="BETALING MET DEBETKAART",
                type="Betaling met debetkaart",
                status="Geaccepteerd",
            )
        ],
    )
    (row,) = _rows(db_url)
    assert row.id > 0
    assert row.date == "2024-01-15"
    assert row.amount == Decimal("-45.50")
    assert row.raw_description == "Delhaize"
    assert row.category == "Groceries"
    assert row.counterparty == "AD Delhaize"
    assert row.is_credit_card_payment is False
    assert row.source == "bank_statement"
    assert row.imported_at is not None


def test_update_transaction(db_url: str) -> None:
    _import(db_url, [_tx()])
    (row,) = _rows(db_url)

    with session_scope(database_url=db_url) as session:
        assert update_transaction(session, row.id, category="Dining", counterparty="Delhaize") == 1
        assert update_transaction(session, row.id + 100, category="Dining") == 0

    (updated,) = _rows(db_url)
    assert updated.category == "Dining"
    assert updated.counterparty == "Delhaize"
    assert updated.raw_description == row.raw_description


@pytest.mark.parametrize(
    ("changes", "message"),
    [
        ({}, "No fields to update"),
        ({"amount": 1}, "cannot be updated: amount"),
        ({"raw_description": "x", "date": "2024-01-01"}, "cannot be updated: date, raw_description"),
        ({"category": "Rides & Taxis"}, "Unknown category"),
        ({"description": ""}, "description must not be empty"),
        ({"description": "   "}, "description must not be empty"),
        ({"description": None}, "description must not be empty"),
        ({"category": None}, "cannot be null: category"),
        ({"type": None, "category": None}, "cannot be null: category, type"),
    ],
)
def test_update_transaction_rejects_invalid_changes(db_url: str, changes: dict, message: str) -> None:
    with session_scope(database_url=db_url) as session:
        with pytest.raises(ValueError, match=message):
            update_transaction(session, 1, **changes)


def test_rejected_correction_leaves_row_unchanged(db_url: str) -> None:
    _import(db_url, [_tx()])
    (row,) = _rows(db_url)
    with session_scope(database_url=db_url) as session:
        with pytest.raises(ValueError):
            update_transaction(session, row.id, description="")
    (after,) = _rows(db_url)
    assert after.description == row.description


def test_clear_transactions(db_url: str) -> None:
    _import(db_url, [_tx(), _tx(date="2024-02-01")])
    with session_scope(database_url=db_url) as session:
        assert clear_transactions(session) == 2
    assert count_rows(db_url) == 0


def test_backfill_counterparties(db_url: str) -> None:
    seed_transactions(
        db_url,
        [
            {"date": "2024-01-01", "amount": -10, "description": "Jaxx: 72288235"},
            {"date": "2024-01-02", "amount": -20, "description": "123456789"},
            {
                "date": "2024-01-03",
                "amount": -812.4,
                "description": "MASTERCARD 5244 XXXX XXXX 1234",
                "isCreditCardPayment": False,
                "category": "Other",
            },
            {
                "date": "2024-01-04",
                "amount": -5,
                "description": "Bestelling SHEIN",
                "counterparty": "Already Set",
            },
        ],
    )

    with session_scope(database_url=db_url) as session:
        result = backfill_counterparties(session)

    assert result.scanned == 3
    assert result.extracted == 2
    assert result.card_payments == 1
    assert [tx.description for tx in result.unresolved] == ["123456789"]

    by_date = {r.date: r for r in _rows(db_url)}
    assert by_date["2024-01-01"].counterparty == "Jaxx"
    assert by_date["2024-01-02"].counterparty is None
    assert by_date["2024-01-03"].counterparty == "Mastercard Payment"
    assert by_date["2024-01-03"].is_credit_card_payment is True
    assert by_date["2024-01-03"].category == "Credit Card Payment"
    assert by_date["2024-01-04"].counterparty == "Already Set"


def test_connectivity_failure_is_reported_and_rolled_back(
    db_url: str, monkeypatch: pytest.MonkeyPatch
) -> None:
    def boom(*_args, **_kwargs):
        raise OperationalError("INSERT ...", {}, Exception("connection refused"))

    with pytest.raises(StoreConnectivityError, match="Import failed: connection refused"):
        with session_scope(database_url=db_url) as session:
            monkeypatch.setattr(session, "execute", boom)
            import_batch(session, [_tx()])

    assert count_rows(db_url) == 0
