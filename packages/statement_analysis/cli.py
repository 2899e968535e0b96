# ruff: noqa: I001
"""CLI for the ``statement_analysis`` package.

A Typer console interface over :mod:`statement_analysis.api`. The root
callback loads a local ``.env`` with ``python-dotenv`` (without overriding the
environment) and configures package logging before any command runs.

Output is tab-separated text by default and JSON with ``--json``. Failures are
reported as ``Error: ...`` on stderr with exit status 1.
"""

from __future__ import annotations

import json
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict
from decimal import Decimal
from pathlib import Path
from typing import Annotated, Any, NoReturn

import typer
from dotenv import load_dotenv
from pydantic import ValidationError
from typer.models import ArgumentInfo, OptionInfo

from .logging_setup import configure_logging


# ---- Small module-level helpers used by CLI commands -------------------------


def _fail(message: str) -> NoReturn:
    print(f"Error: {message}", file=sys.stderr)
    raise typer.Exit(1)


@contextmanager
def _reported_errors() -> Iterator[None]:
    """Turn expected failures into ``Error: ...`` + exit status 1."""

    from .ingest.columns import ColumnMappingError
    from .persistence import StoreConnectivityError

    try:
        yield
    except typer.Exit:
        raise
    except StoreConnectivityError as e:
        _fail(f"database unavailable: {e}")
    except ColumnMappingError as e:
        _fail(f"column mapping: {e}")
    except ValidationError as e:
        _fail(f"invalid record: {e.errors()[0].get('msg', e)}")
    except FileNotFoundError as e:
        _fail(f"File not found: {e.filename or e}")
    except PermissionError as e:
        _fail(f"Permission denied: {e.filename or e}")
    except (ValueError, RuntimeError) as e:
        _fail(str(e))


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if hasattr(value, "isoformat"):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False, default=_json_default))


def _build_filters(
    *,
    start_date: str | None = None,
    end_date: str | None = None,
    category: str | None = None,
    counterparty: str | None = None,
    tx_type: str | None = None,
    source: str | None = None,
    min_amount: str | None = None,
    max_amount: str | None = None,
):
    from .aggregation import TransactionFilter

    return TransactionFilter(
        start_date=start_date,
        end_date=end_date,
        category=category,
        counterparty=counterparty,
        type=tx_type,
        source=source,
        min_amount=min_amount,
        max_amount=max_amount,
    )


# Module-level option objects to satisfy ruff B008 (no calls in parameter
# defaults).
DATABASE_URL_OPTION: OptionInfo = typer.Option(
    None, "--database-url", help="Override DATABASE_URL (falls back to env var)."
)
JSON_OPTION: OptionInfo = typer.Option(False, "--json", help="Print JSON instead of text.")
DRY_RUN_OPTION: OptionInfo = typer.Option(
    False, "--dry-run", help="Parse and report without writing to the database."
)
START_DATE_OPTION: OptionInfo = typer.Option(None, "--start-date", help="Inclusive start date.")
END_DATE_OPTION: OptionInfo = typer.Option(None, "--end-date", help="Inclusive end date.")
CATEGORY_OPTION: OptionInfo = typer.Option(None, "--category", help="Exact category.")
COUNTERPARTY_OPTION: OptionInfo = typer.Option(
    None, "--counterparty", help="Case-insensitive counterparty substring."
)
TYPE_OPTION: OptionInfo = typer.Option(None, "--type", help="Exact source type label.")
SOURCE_OPTION: OptionInfo = typer.Option(
    None, "--source", help="bank_statement or mastercard_pdf."
)
MIN_AMOUNT_OPTION: OptionInfo = typer.Option(None, "--min-amount", help="Minimum signed amount.")
MAX_AMOUNT_OPTION: OptionInfo = typer.Option(None, "--max-amount", help="Maximum signed amount.")
INCLUDE_CARD_OPTION: OptionInfo = typer.Option(
    False,
    "--include-card-payments",
    help="Count lump-sum credit-card payments (excluded by default).",
)
CSV_PATH_ARGUMENT: ArgumentInfo = typer.Argument(
    ..., help="Bank CSV export to import.", dir_okay=False
)
PDF_PATHS_ARGUMENT: ArgumentInfo = typer.Argument(
    ..., help="Mastercard statement PDF(s) to import.", dir_okay=False
)


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Import bank CSV exports and Mastercard PDF statements, then aggregate "
        "and summarize spending. Loads DATABASE_URL from a local .env."
    ),
)


@app.command("import-csv")
def import_csv_cmd(
    csv_path: Annotated[Path, CSV_PATH_ARGUMENT],
    *,
    map_date: str | None = typer.Option(None, "--map-date", help="Column for the date."),
    map_amount: str | None = typer.Option(None, "--map-amount", help="Column for the amount."),
    map_description: str | None = typer.Option(
        None, "--map-description", help="Column for the description."
    ),
    map_details: str | None = typer.Option(None, "--map-details", help="Column for details."),
    map_counterparty: str | None = typer.Option(
        None, "--map-counterparty", help="Column for the counterparty name."
    ),
    map_type: str | None = typer.Option(None, "--map-type", help="Column for the type label."),
    map_status: str | None = typer.Option(None, "--map-status", help="Column for the status."),
    dry_run: bool = DRY_RUN_OPTION,
    database_url: str | None = DATABASE_URL_OPTION,
    as_json: bool = JSON_OPTION,
) -> None:
    """Import a bank CSV export, skipping duplicates and rejected rows."""

    from .api import import_bank_csv

    overrides = {
        slot: value
        for slot, value in (
            ("date", map_date),
            ("amount", map_amount),
            ("description", map_description),
            ("details", map_details),
            ("counterparty", map_counterparty),
            ("type", map_type),
            ("status", map_status),
        )
        if value is not None
    }
    with _reported_errors():
        report = import_bank_csv(
            csv_path, database_url=database_url, dry_run=dry_run, **overrides
        )

    batch, result = report.batch, report.result
    if as_json:
        _print_json(
            {
                "mapping": batch.mapping.as_dict(),
                "rows": batch.row_count,
                "normalized": len(batch.transactions),
                "rejected": [{"row": r.index, "reason": r.reason} for r in batch.rejected],
                "insertedCount": result.inserted_count if result else None,
                "duplicateCount": result.duplicate_count if result else None,
                "message": result.message if result else None,
            }
        )
        return

    for slot, header in batch.mapping.as_dict().items():
        print(f"{slot}\t{header or ''}")
    for r in batch.rejected:
        print(f"Skipped row {r.index}: {r.reason}", file=sys.stderr)
    if result is None:
        print(f"Dry run: {len(batch.transactions)} of {batch.row_count} rows would be imported")
    else:
        print(result.message)


@app.command("import-pdf")
def import_pdf_cmd(
    pdf_paths: Annotated[list[Path], PDF_PATHS_ARGUMENT],
    *,
    workers: int | None = typer.Option(
        None, "--workers", min=1, help="Files parsed in parallel (default SA_PDF_MAX_WORKERS)."
    ),
    dry_run: bool = DRY_RUN_OPTION,
    database_url: str | None = DATABASE_URL_OPTION,
    as_json: bool = JSON_OPTION,
) -> None:
    """Import line items from one or more Mastercard statement PDFs."""

    from .api import import_mastercard_pdfs

    with _reported_errors():
        report = import_mastercard_pdfs(
            pdf_paths, database_url=database_url, concurrency=workers, dry_run=dry_run
        )

    batch, result = report.batch, report.result
    if as_json:
        _print_json(
            {
                "files": batch.file_count,
                "transactions": [tx.model_dump(mode="json", by_alias=True) for tx in batch.transactions],
                "errors": [asdict(e) for e in batch.errors],
                "insertedCount": result.inserted_count if result else None,
                "duplicateCount": result.duplicate_count if result else None,
            }
        )
    else:
        for e in batch.errors:
            print(f"Error: {e.file}: {e.error}", file=sys.stderr)
        for tx in batch.transactions:
            print(f"{tx.date}\t{tx.amount}\t{tx.counterparty}\t{tx.category}\t{tx.description}")
        if result is not None:
            print(result.message)

    if batch.is_unrecognized:
        _fail("No transactions found. Is this a Mastercard statement?")
    if batch.errors and not batch.transactions:
        raise typer.Exit(1)


@app.command("aggregate")
def aggregate_cmd(
    *,
    group_by: str = typer.Option(
        "category", "--group-by", help="category, counterparty, type, month, year or day."
    ),
    start_date: str | None = START_DATE_OPTION,
    end_date: str | None = END_DATE_OPTION,
    category: str | None = CATEGORY_OPTION,
    counterparty: str | None = COUNTERPARTY_OPTION,
    tx_type: str | None = TYPE_OPTION,
    source: str | None = SOURCE_OPTION,
    min_amount: str | None = MIN_AMOUNT_OPTION,
    max_amount: str | None = MAX_AMOUNT_OPTION,
    include_card_payments: bool = INCLUDE_CARD_OPTION,
    database_url: str | None = DATABASE_URL_OPTION,
    as_json: bool = JSON_OPTION,
) -> None:
    """Group transactions and print per-group totals."""

    from .api import get_aggregates

    with _reported_errors():
        filters = _build_filters(
            start_date=start_date,
            end_date=end_date,
            category=category,
            counterparty=counterparty,
            tx_type=tx_type,
            source=source,
            min_amount=min_amount,
            max_amount=max_amount,
        )
        results = get_aggregates(
            group_by,
            filters,
            exclude_credit_card_payments=not include_card_payments,
            database_url=database_url,
        )

    if as_json:
        _print_json({"groupBy": group_by, "results": [asdict(r) for r in results]})
        return
    for r in results:
        print(
            f"{r.key if r.key is not None else ''}\t{r.count}\t{r.total_amount}\t"
            f"{r.income}\t{r.expenses}\t{r.avg_amount}\t{r.min_amount}\t{r.max_amount}"
        )


@app.command("summary")
def summary_cmd(
    *,
    start_date: str | None = START_DATE_OPTION,
    end_date: str | None = END_DATE_OPTION,
    include_card_payments: bool = INCLUDE_CARD_OPTION,
    database_url: str | None = DATABASE_URL_OPTION,
    as_json: bool = JSON_OPTION,
) -> None:
    """Print total income, expenses, net balance and averages."""

    from .api import get_summary

    with _reported_errors():
        summary = get_summary(
            _build_filters(start_date=start_date, end_date=end_date),
            exclude_credit_card_payments=not include_card_payments,
            database_url=database_url,
        )

    if as_json:
        _print_json(asdict(summary))
        return
    for name, value in asdict(summary).items():
        print(f"{name}\t{value}")


@app.command("list")
def list_cmd(
    *,
    start_date: str | None = START_DATE_OPTION,
    end_date: str | None = END_DATE_OPTION,
    category: str | None = CATEGORY_OPTION,
    counterparty: str | None = COUNTERPARTY_OPTION,
    tx_type: str | None = TYPE_OPTION,
    source: str | None = SOURCE_OPTION,
    min_amount: str | None = MIN_AMOUNT_OPTION,
    max_amount: str | None = MAX_AMOUNT_OPTION,
    sort_by: str = typer.Option("date", "--sort-by", help="Column to sort by."),
    sort_order: str = typer.Option("desc", "--sort-order", help="asc or desc."),
    skip: int = typer.Option(0, "--skip", min=0),
    limit: int = typer.Option(1000, "--limit", min=0),
    database_url: str | None = DATABASE_URL_OPTION,
    as_json: bool = JSON_OPTION,
) -> None:
    """List stored transactions."""

    from .api import get_transactions

    with _reported_errors():
        page = get_transactions(
            _build_filters(
                start_date=start_date,
                end_date=end_date,
                category=category,
                counterparty=counterparty,
                tx_type=tx_type,
                source=source,
                min_amount=min_amount,
                max_amount=max_amount,
            ),
            sort_by=sort_by,
            sort_order=sort_order,
            skip=skip,
            limit=limit,
            database_url=database_url,
        )

    if as_json:
        _print_json(
            {
                "transactions": [
                    tx.model_dump(mode="json", by_alias=True) for tx in page.transactions
                ],
                "total": page.total,
            }
        )
        return
    for tx in page.transactions:
        print(
            f"{tx.id}\t{tx.date}\t{tx.amount}\t{tx.category}\t"
            f"{tx.counterparty or ''}\t{tx.description}"
        )


@app.command("distinct")
def distinct_cmd(
    field: str = typer.Argument(..., help="category, counterparty, type or status."),
    *,
    database_url: str | None = DATABASE_URL_OPTION,
    as_json: bool = JSON_OPTION,
) -> None:
    """Print the distinct non-empty values of a column."""

    from .api import get_distinct_values

    with _reported_errors():
        values = get_distinct_values(field, database_url=database_url)
    if as_json:
        _print_json({"field": field, "values": values})
        return
    for v in values:
        print(v)


@app.command("set-category")
def set_category_cmd(
    tx_id: int = typer.Argument(..., help="Transaction id (see `list`)."),
    category: str = typer.Argument(..., help="New category."),
    *,
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Correct the category of one stored transaction."""

    from .api import update_transaction

    with _reported_errors():
        modified = update_transaction(tx_id, category=category, database_url=database_url)
    if not modified:
        _fail(f"Transaction {tx_id} not found")
    print(f"Updated transaction {tx_id}: {category}")


@app.command("reconcile")
def reconcile_cmd(
    *,
    start_date: str | None = START_DATE_OPTION,
    end_date: str | None = END_DATE_OPTION,
    database_url: str | None = DATABASE_URL_OPTION,
    as_json: bool = JSON_OPTION,
) -> None:
    """Compare lump-sum card payments with itemized card spending."""

    from .api import reconcile_card_payments

    with _reported_errors():
        rec = reconcile_card_payments(
            _build_filters(start_date=start_date, end_date=end_date),
            database_url=database_url,
        )
    if as_json:
        _print_json(asdict(rec))
        return
    for name, value in asdict(rec).items():
        print(f"{name}\t{value}")


@app.command("backfill-counterparties")
def backfill_counterparties_cmd(
    *,
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Derive counterparties for stored rows that have none."""

    from .api import backfill_counterparties

    with _reported_errors():
        res = backfill_counterparties(database_url=database_url)

    print(f"Scanned: {res.scanned}")
    print(f"Extracted counterparty: {res.extracted}")
    print(f"Marked as credit card payment: {res.card_payments}")
    print(f"Still unresolved: {len(res.unresolved)}")
    for i, tx in enumerate(res.unresolved, start=1):
        print(f"{i}. {tx.date} | {tx.amount} | {tx.type} | {tx.description}")


@app.command("clear")
def clear_cmd(
    *,
    yes: bool = typer.Option(False, "--yes", help="Confirm deleting every transaction."),
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Delete all stored transactions."""

    from .api import clear_transactions

    if not yes:
        _fail("refusing to delete all transactions without --yes")
    with _reported_errors():
        deleted = clear_transactions(database_url=database_url)
    print(f"Deleted {deleted} transactions")


@app.callback()
def _root(
    *,
    log_level: str | None = typer.Option(
        None, "--log-level", help="Log level (defaults to STATEMENT_ANALYSIS_LOG_LEVEL or INFO)."
    ),
) -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures package logging.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging(log_level)


def main() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover - exercised via console script
    # Running as a module: `python -m statement_analysis.cli`
    main()
