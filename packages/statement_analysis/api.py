"""Public orchestration facade for the ``statement_analysis`` package.

Each function opens its own short transactional scope through
``db.client.session_scope`` so callers (the CLI, notebooks, other services)
never handle sessions. ``database_url`` overrides ``DATABASE_URL`` from the
environment.

Flows
-----
- Bank CSV: read → detect/override/confirm columns → normalize → import.
- Mastercard PDFs: extract text → scan line items (files in parallel) → import.
- Structured records (e.g. JSON from another client): validate → import.
- Reads: aggregate, summarize, list, distinct values, reconcile.
- Maintenance: category corrections, counterparty backfill, clear-all.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from os import PathLike
from typing import Any

from db.client import session_scope

from . import aggregation, persistence
from .aggregation import TransactionFilter
from .ingest.adapters.mastercard_pdf import PdfSource, parse_statement_files
from .ingest.columns import ColumnMapping
from .ingest.utils import read_csv_file
from .logging_setup import get_logger
from .models import (
    CardReconciliation,
    GroupResult,
    ImportResult,
    StatementBatch,
    Summary,
    Transaction,
    TransactionPage,
)
from .normalizers import BankCSVNormalizer, NormalizedBatch
from .persistence import BackfillResult

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class CsvImport:
    batch: NormalizedBatch
    result: ImportResult | None


@dataclass(frozen=True, slots=True)
class PdfImport:
    batch: StatementBatch
    result: ImportResult | None


def import_transactions(
    transactions: Iterable[Transaction | Mapping[str, Any]],
    *,
    database_url: str | None = None,
) -> ImportResult:
    """Validate and import canonical records (camelCase or snake_case keys).

    Raises ``pydantic.ValidationError`` when any record is malformed; nothing
    is written in that case.
    """

    validated = [
        tx if isinstance(tx, Transaction) else Transaction.model_validate(tx)
        for tx in transactions
    ]
    with session_scope(database_url=database_url) as session:
        return persistence.import_batch(session, validated)


def import_bank_csv(
    csv_path: str | PathLike[str],
    *,
    database_url: str | None = None,
    mapping: ColumnMapping | None = None,
    dry_run: bool = False,
    **overrides: str | None,
) -> CsvImport:
    """Normalize a bank CSV export and import the surviving rows.

    ``overrides`` reassign detected columns by slot name (``amount="Bedrag"``).
    With ``dry_run`` nothing touches the store and ``result`` is ``None``.
    """

    batch = BankCSVNormalizer.normalize(read_csv_file(csv_path), mapping, **overrides)
    if dry_run:
        return CsvImport(batch=batch, result=None)
    with session_scope(database_url=database_url) as session:
        result = persistence.import_batch(session, batch.transactions)
    return CsvImport(batch=batch, result=result)


def import_mastercard_pdfs(
    files: Iterable[PdfSource],
    *,
    database_url: str | None = None,
    concurrency: int | None = None,
    dry_run: bool = False,
) -> PdfImport:
    """Parse Mastercard statement PDFs and import their line items.

    Per-file failures are reported in ``batch.errors``; line items from the
    other files are still imported.
    """

    batch = parse_statement_files(files, concurrency=concurrency)
    if batch.is_unrecognized:
        logger.warning("No line items found in %d file(s)", batch.file_count)
    if dry_run or not batch.transactions:
        return PdfImport(batch=batch, result=None)
    with session_scope(database_url=database_url) as session:
        result = persistence.import_batch(session, batch.transactions)
    return PdfImport(batch=batch, result=result)


def get_aggregates(
    group_by: str = "category",
    filters: TransactionFilter | None = None,
    *,
    exclude_credit_card_payments: bool = True,
    database_url: str | None = None,
) -> list[GroupResult]:
    with session_scope(database_url=database_url) as session:
        return aggregation.aggregate(
            session,
            group_by,
            filters,
            exclude_credit_card_payments=exclude_credit_card_payments,
        )


def get_summary(
    filters: TransactionFilter | None = None,
    *,
    exclude_credit_card_payments: bool = True,
    database_url: str | None = None,
) -> Summary:
    with session_scope(database_url=database_url) as session:
        return aggregation.summarize(
            session, filters, exclude_credit_card_payments=exclude_credit_card_payments
        )


def get_transactions(
    filters: TransactionFilter | None = None,
    *,
    sort_by: str = "date",
    sort_order: str = "desc",
    skip: int = 0,
    limit: int = 1000,
    database_url: str | None = None,
) -> TransactionPage:
    with session_scope(database_url=database_url) as session:
        return aggregation.list_transactions(
            session, filters, sort_by=sort_by, sort_order=sort_order, skip=skip, limit=limit
        )


def get_distinct_values(field: str, *, database_url: str | None = None) -> list[str]:
    with session_scope(database_url=database_url) as session:
        return aggregation.distinct_values(session, field)


def reconcile_card_payments(
    filters: TransactionFilter | None = None, *, database_url: str | None = None
) -> CardReconciliation:
    with session_scope(database_url=database_url) as session:
        return aggregation.reconcile_card_payments(session, filters)


def update_transaction(tx_id: int, *, database_url: str | None = None, **changes: Any) -> int:
    with session_scope(database_url=database_url) as session:
        return persistence.update_transaction(session, tx_id, **changes)


def backfill_counterparties(*, database_url: str | None = None) -> BackfillResult:
    with session_scope(database_url=database_url) as session:
        return persistence.backfill_counterparties(session)


def clear_transactions(*, database_url: str | None = None) -> int:
    with session_scope(database_url=database_url) as session:
        return persistence.clear_transactions(session)


__all__ = [
    "CsvImport",
    "PdfImport",
    "backfill_counterparties",
    "clear_transactions",
    "get_aggregates",
    "get_distinct_values",
    "get_summary",
    "get_transactions",
    "import_bank_csv",
    "import_mastercard_pdfs",
    "import_transactions",
    "reconcile_card_payments",
    "update_transaction",
]
