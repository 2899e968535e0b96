from __future__ import annotations

from decimal import Decimal
from pathlib import Path

import pytest
from pydantic import ValidationError

from statement_analysis import (
    TransactionFilter,
    backfill_counterparties,
    get_aggregates,
    get_distinct_values,
    get_summary,
    get_transactions,
    import_bank_csv,
    import_mastercard_pdfs,
    import_transactions,
    reconcile_card_payments,
    update_transaction,
)
from statement_analysis.ingest.adapters import mastercard_pdf
from tests.helpers.db import count_rows

_DATA = Path(__file__).resolve().parents[1] / "data"


class _Pdf:
    def __init__(self, text: str) -> None:
        self.pages = [type("Page", (), {"extract_text": lambda _self: text})()]

    def __enter__(self) -> _Pdf:
        return self

    def __exit__(self, *exc: object) -> None:
        return None


def test_e2e_bank_and_card_statements_to_summary(
    db_url: str, monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    # -------------------------
    # Bank CSV export
    # -------------------------
    csv_import = import_bank_csv(_DATA / "belfius_jan_2024.csv", database_url=db_url)
    assert csv_import.result is not None
    assert csv_import.result.inserted_count == 3
    assert len(csv_import.batch.rejected) == 3

    # -------------------------
    # Mastercard PDF statement
    # -------------------------
    card_text = (_DATA / "mastercard_2025_01.txt").read_text(encoding="utf-8")
    monkeypatch.setattr(mastercard_pdf.pdfplumber, "open", lambda _handle: _Pdf(card_text))
    pdf_path = tmp_path / "kbc-mastercard-2025-01.pdf"
    pdf_path.write_bytes(b"%PDF-1.7")

    pdf_import = import_mastercard_pdfs([pdf_path], database_url=db_url, concurrency=1)
    assert pdf_import.batch.errors == []
    assert pdf_import.result is not None
    assert pdf_import.result.inserted_count == 2

    # Re-importing both sources is a no-op.
    assert import_bank_csv(_DATA / "belfius_jan_2024.csv", database_url=db_url).result.inserted_count == 0
    assert import_mastercard_pdfs([pdf_path], database_url=db_url).result.duplicate_count == 2
    assert count_rows(db_url) == 5

    # -------------------------
    # Structured records (camelCase)
    # -------------------------
    result = import_transactions(
        [
            {
                "date": "2025-01-25",
                "amount": "-23.10",
                "description": "Basic-Fit - maandabonnement",
                "rawDescription": "EUROPESE DOMICILIERING SCHULDEISER: BASIC-FIT REF. 99",
                "details": "EUROPESE DOMICILIERING SCHULDEISER: BASIC-FIT REF. 99",
                "type": "Domiciliering",
            }
        ],
        database_url=db_url,
    )
    assert result.inserted_count == 1
    with pytest.raises(ValidationError):
        import_transactions([{"date": "2025-01-26", "amount": 1}], database_url=db_url)
    assert count_rows(db_url) == 6

    # -------------------------
    # Reads
    # -------------------------
    summary = get_summary(database_url=db_url)
    assert summary.total_income == Decimal("2500.00")
    assert summary.total_expenses == Decimal("881.00")
    assert summary.net_balance == Decimal("1619.00")
    assert summary.transaction_count == 5

    by_category = {r.key: r for r in get_aggregates("category", database_url=db_url)}
    assert set(by_category) == {"Groceries", "Income", "Shopping", "Health & Fitness"}
    assert by_category["Shopping"].total_amount == Decimal("-812.40")
    assert by_category["Shopping"].count == 2

    rec = reconcile_card_payments(database_url=db_url)
    assert rec.balanced

    # -------------------------
    # Corrections and backfill
    # -------------------------
    fitness = get_transactions(
        TransactionFilter(category="Health & Fitness"), database_url=db_url
    ).transactions[0]
    assert fitness.counterparty is None
    assert update_transaction(fitness.id, category="Subscriptions", database_url=db_url) == 1

    backfill = backfill_counterparties(database_url=db_url)
    assert backfill.scanned == 1
    assert backfill.extracted == 1
    assert "BASIC-FIT" in get_distinct_values("counterparty", database_url=db_url)

    corrected = get_transactions(TransactionFilter(counterparty="basic"), database_url=db_url)
    assert corrected.total == 1
    assert corrected.transactions[0].category == "Subscriptions"
