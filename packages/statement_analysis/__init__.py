"""Public interface for the ``statement_analysis`` package.

Bank-statement analysis: ingest bank CSV exports and Mastercard PDF
statements into canonical transactions, store them without duplicates and
aggregate spending. This module only re-exports the stable import surface.
"""

from .aggregation import TransactionFilter
from .api import (
    CsvImport,
    PdfImport,
    backfill_counterparties,
    clear_transactions,
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
from .categories import CATEGORIES, classify
from .counterparty import extract_counterparty, extract_counterparty_mastercard
from .credit_card import is_credit_card_payment
from .models import (
    CardReconciliation,
    GroupResult,
    ImportResult,
    ParseFailure,
    Rejected,
    StatementBatch,
    StoredTransaction,
    Summary,
    Transaction,
    TransactionPage,
)
from .persistence import StoreConnectivityError

__all__ = [
    # API
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
    # Pure helpers
    "CATEGORIES",
    "classify",
    "extract_counterparty",
    "extract_counterparty_mastercard",
    "is_credit_card_payment",
    # Models
    "CardReconciliation",
    "CsvImport",
    "GroupResult",
    "ImportResult",
    "ParseFailure",
    "PdfImport",
    "Rejected",
    "StatementBatch",
    "StoreConnectivityError",
    "StoredTransaction",
    "Summary",
    "Transaction",
    "TransactionFilter",
    "TransactionPage",
]
