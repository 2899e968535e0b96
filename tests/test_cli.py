from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from statement_analysis.cli import app
from statement_analysis.ingest.adapters import mastercard_pdf

DATA = Path(__file__).resolve().parent / "data"
BANK_CSV = DATA / "belfius_jan_2024.csv"
CARD_TEXT = (DATA / "mastercard_2025_01.txt").read_text(encoding="utf-8")

runner = CliRunner()


def _run(*args: str):
    return runner.invoke(app, list(args))


class _Page:
    def __init__(self, text: str) -> None:
        self.text = text

    def extract_text(self) -> str:
        return self.text


class _Pdf:
    def __init__(self, text: str) -> None:
        self.pages = [_Page(text)]

    def __enter__(self) -> _Pdf:
        return self

    def __exit__(self, *exc: object) -> None:
        return None


@pytest.fixture
def fake_pdfs(monkeypatch: pytest.MonkeyPatch):
    """Serve PDF 'pages' from a name → text table instead of real files."""

    texts: dict[str, str] = {}

    def fake_open(handle):
        name = Path(handle).name
        if name not in texts:
            raise OSError(f"not a PDF: {name}")
        return _Pdf(texts[name])

    monkeypatch.setattr(mastercard_pdf.pdfplumber, "open", fake_open)
    return texts


def test_import_csv_reports_mapping_and_counts(db_url: str) -> None:
    result = _run("import-csv", str(BANK_CSV), "--database-url", db_url)

    assert result.exit_code == 0, result.output
    assert "date\tUitvoeringsdatum" in result.output
    assert "counterparty\tNaam van de tegenpartij" in result.output
    assert "Skipped row 3: declined status: Geweigerd" in result.output
    assert "Imported 3 transactions" in result.output

    again = _run("import-csv", str(BANK_CSV), "--database-url", db_url)
    assert "Imported 0 new transactions, skipped 3 duplicates" in again.output


def test_import_csv_dry_run_json(db_url: str) -> None:
    result = _run("import-csv", str(BANK_CSV), "--dry-run", "--json", "--database-url", db_url)

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["rows"] == 6
    assert payload["normalized"] == 3
    assert [r["row"] for r in payload["rejected"]] == [3, 4, 5]
    assert payload["insertedCount"] is None
    assert payload["mapping"]["amount"] == "Bedrag"

    summary = _run("summary", "--json", "--database-url", db_url)
    assert json.loads(summary.stdout)["transaction_count"] == 0


def test_import_csv_mapping_overrides(db_url: str, tmp_path: Path) -> None:
    csv_path = tmp_path / "export.csv"
    csv_path.write_text("Date;Value;Memo\n2024-03-01;-12.50;Coffee corner\n", encoding="utf-8")

    missing = _run("import-csv", str(csv_path), "--database-url", db_url)
    assert missing.exit_code == 1
    assert "Error: column mapping: Date and Amount fields are required" in missing.output

    ok = _run(
        "import-csv",
        str(csv_path),
        "--map-amount",
        "Value",
        "--map-description",
        "Memo",
        "--database-url",
        db_url,
    )
    assert ok.exit_code == 0, ok.output
    assert "Imported 1 transactions" in ok.output

    unknown = _run("import-csv", str(csv_path), "--map-amount", "Saldo", "--database-url", db_url)
    assert unknown.exit_code == 1
    assert "not found in file headers" in unknown.output


def test_import_csv_missing_file(db_url: str, tmp_path: Path) -> None:
    result = _run("import-csv", str(tmp_path / "nope.csv"), "--database-url", db_url)
    assert result.exit_code == 1
    assert "Error: File not found" in result.output


def test_import_pdf(db_url: str, fake_pdfs: dict[str, str]) -> None:
    fake_pdfs["jan.pdf"] = CARD_TEXT

    result = _run("import-pdf", "jan.pdf", "broken.pdf", "--database-url", db_url)

    assert result.exit_code == 0, result.output
    assert "Error: broken.pdf: not a PDF: broken.pdf" in result.output
    assert "2025-01-06\t-54.97\tiBood\tShopping\tPAYPAL IBOOD 123456 NL" in result.output
    assert "Imported 2 transactions" in result.output


def test_import_pdf_unrecognized_document(db_url: str, fake_pdfs: dict[str, str]) -> None:
    fake_pdfs["invoice.pdf"] = "Factuur 2024-001\nTotaal € 10,00"

    result = _run("import-pdf", "invoice.pdf", "--database-url", db_url)

    assert result.exit_code == 1
    assert "Error: No transactions found. Is this a Mastercard statement?" in result.output


def test_import_pdf_all_files_failing(db_url: str, fake_pdfs: dict[str, str]) -> None:
    result = _run("import-pdf", "a.pdf", "b.pdf", "--workers", "2", "--database-url", db_url)
    assert result.exit_code == 1
    assert "Error: a.pdf" in result.output
    assert "Error: b.pdf" in result.output


def test_read_commands(db_url: str, fake_pdfs: dict[str, str]) -> None:
    fake_pdfs["jan.pdf"] = CARD_TEXT
    assert _run("import-csv", str(BANK_CSV), "--database-url", db_url).exit_code == 0
    assert _run("import-pdf", "jan.pdf", "--database-url", db_url).exit_code == 0

    summary = _run("summary", "--end-date", "2024-12-31", "--database-url", db_url)
    assert summary.exit_code == 0, summary.output
    assert "total_income\t2500.00" in summary.output
    assert "total_expenses\t45.50" in summary.output
    assert "net_balance\t2454.50" in summary.output
    assert "transaction_count\t2" in summary.output

    months = _run("aggregate", "--group-by", "month", "--database-url", db_url)
    assert months.exit_code == 0, months.output
    assert months.stdout.splitlines() == [
        "2025-01\t2\t-812.40\t0.00\t812.40\t-406.20\t-757.43\t-54.97",
        "2024-01\t2\t2454.50\t2500.00\t45.50\t1227.25\t-45.50\t2500.00",
    ]

    cats = _run("aggregate", "--json", "--source", "bank_statement", "--database-url", db_url)
    payload = json.loads(cats.stdout)
    assert payload["groupBy"] == "category"
    assert [r["key"] for r in payload["results"]] == ["Groceries", "Income"]
    assert payload["results"][0]["total_amount"] == "-45.50"

    with_cards = _run(
        "aggregate", "--source", "bank_statement", "--include-card-payments", "--database-url", db_url
    )
    assert with_cards.stdout.splitlines()[0].startswith("Credit Card Payment\t1\t-812.40")

    listing = _run("list", "--json", "--sort-by", "amount", "--sort-order", "asc", "--database-url", db_url)
    page = json.loads(listing.stdout)
    assert page["total"] == 5
    assert page["transactions"][0]["amount"] == "-812.40"
    assert page["transactions"][0]["isCreditCardPayment"] is True

    distinct = _run("distinct", "type", "--database-url", db_url)
    assert distinct.stdout.splitlines() == [
        "Betaling met debetkaart",
        "Kredietkaartbetaling",
        "Mastercard",
        "Overschrijving",
    ]

    rec = _run("reconcile", "--database-url", db_url)
    assert "lump_sum_total\t812.40" in rec.output
    assert "itemized_total\t812.40" in rec.output
    assert "balanced\tTrue" in rec.output


def test_bad_read_arguments_are_reported(db_url: str) -> None:
    bad_group = _run("aggregate", "--group-by", "week", "--database-url", db_url)
    assert bad_group.exit_code == 1
    assert "Error: Unknown group_by 'week'" in bad_group.output

    bad_field = _run("distinct", "amount", "--database-url", db_url)
    assert bad_field.exit_code == 1
    assert "Error: Invalid field 'amount'" in bad_field.output

    bad_date = _run("summary", "--start-date", "soon", "--database-url", db_url)
    assert bad_date.exit_code == 1
    assert "unsupported date format" in bad_date.output


def test_set_category(db_url: str) -> None:
    _run("import-csv", str(BANK_CSV), "--database-url", db_url)
    page = json.loads(_run("list", "--json", "--category", "Groceries", "--database-url", db_url).stdout)
    tx_id = page["transactions"][0]["id"]

    ok = _run("set-category", str(tx_id), "Dining", "--database-url", db_url)
    assert ok.exit_code == 0, ok.output
    assert f"Updated transaction {tx_id}: Dining" in ok.output

    distinct = _run("distinct", "category", "--database-url", db_url)
    assert "Groceries" not in distinct.stdout.splitlines()

    bad = _run("set-category", str(tx_id), "Rides & Taxis", "--database-url", db_url)
    assert bad.exit_code == 1
    assert "Error: Unknown category" in bad.output

    missing = _run("set-category", "9999", "Dining", "--database-url", db_url)
    assert missing.exit_code == 1
    assert "Error: Transaction 9999 not found" in missing.output


def test_backfill_and_clear(db_url: str) -> None:
    _run("import-csv", str(BANK_CSV), "--database-url", db_url)

    backfill = _run("backfill-counterparties", "--database-url", db_url)
    assert backfill.exit_code == 0, backfill.output
    assert "Scanned: 0" in backfill.output

    refused = _run("clear", "--database-url", db_url)
    assert refused.exit_code == 1
    assert "without --yes" in refused.output

    cleared = _run("clear", "--yes", "--database-url", db_url)
    assert cleared.exit_code == 0
    assert "Deleted 3 transactions" in cleared.output


def test_unreachable_store(tmp_path: Path) -> None:
    url = f"sqlite+pysqlite:///{tmp_path / 'missing-dir' / 'ledger.db'}"
    result = _run("summary", "--database-url", url)
    assert result.exit_code == 1
    assert "Error: database unavailable" in result.output
