"""Bank CSV → canonical :class:`~statement_analysis.models.Transaction` rows.

A row is materialized against a confirmed :class:`ColumnMapping`:

- ``description`` is the mapped description column, else ``details``;
- ``counterparty`` is the mapped counterparty column, else whatever the
  counterparty extractor derives from ``(description, details)``;
- the stored display description is ``"<counterparty> - <description>"``
  (or whichever part is non-empty);
- the credit-card flag is computed from the description *before* the
  counterparty prefix and the ``type`` column; flagged rows get
  ``"Credit Card Payment"``, the rest are classified from the display
  description;
- ``raw_description`` keeps the untouched source narrative (``details`` when
  present) and is part of the dedup key.

Rows are rejected, not raised, when the date is empty or unreadable, the
amount is not a finite number, the status says "geweigerd" (declined) or no
description text remains.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from .categories import CREDIT_CARD_PAYMENT, classify
from .counterparty import extract_counterparty
from .credit_card import is_credit_card_payment
from .ingest.columns import (
    ColumnMapping,
    detect_columns,
    parse_amount,
    read_csv_text,
    row_value,
)
from .logging_setup import get_logger
from .models import BANK_STATEMENT, Rejected, Transaction

logger = get_logger(__name__)

DECLINED_STATUS_TOKEN = "geweigerd"


def display_description(counterparty: str | None, description: str) -> str:
    if counterparty and description:
        return f"{counterparty} - {description}"
    return counterparty or description


def normalize_row(
    raw_row: Mapping[str, Any], mapping: ColumnMapping, *, index: int = 0
) -> Transaction | Rejected:
    """Materialize one source row, or explain why it was dropped."""

    def _reject(reason: str) -> Rejected:
        logger.debug("Rejected row %d: %s", index, reason)
        return Rejected(index=index, reason=reason, row=dict(raw_row))

    date_raw = row_value(raw_row, mapping.date)
    if not date_raw:
        return _reject("missing date")

    status = row_value(raw_row, mapping.status)
    if DECLINED_STATUS_TOKEN in status.lower():
        return _reject(f"declined status: {status}")

    amount = parse_amount(raw_row.get(mapping.amount) if mapping.amount else None)
    if amount is None:
        return _reject("amount is not a finite number")

    details = row_value(raw_row, mapping.details)
    description = row_value(raw_row, mapping.description) or details
    tx_type = row_value(raw_row, mapping.type)

    flagged = is_credit_card_payment(description, tx_type)
    counterparty = row_value(raw_row, mapping.counterparty) or extract_counterparty(
        description, details
    )
    shown = display_description(counterparty, description)
    if not shown:
        return _reject("missing description")

    try:
        return Transaction(
            date=date_raw,
            amount=amount,
            description=shown,
            raw_description=details or description or shown,
            details=details or None,
            counterparty=counterparty or None,
            category=CREDIT_CARD_PAYMENT if flagged else classify(shown, amount),
            type=tx_type,
            source=BANK_STATEMENT,
            is_credit_card_payment=flagged,
            status=status or None,
        )
    except ValidationError as exc:
        first = exc.errors()[0]
        where = ".".join(str(p) for p in first.get("loc", ())) or "row"
        return _reject(f"invalid {where}: {first.get('msg', exc)}")


@dataclass(frozen=True, slots=True)
class NormalizedBatch:
    """Transactions ready for import plus the rows that were dropped."""

    transactions: list[Transaction]
    rejected: list[Rejected]
    mapping: ColumnMapping
    row_count: int = 0
    headers: list[str] = field(default_factory=list)


class BankCSVNormalizer:
    """Normalize a bank CSV export into canonical transactions.

    Usage
    -----
    batch = BankCSVNormalizer.normalize(csv_text)  # auto-detected columns
    batch = BankCSVNormalizer.normalize(csv_text, amount="Bedrag (EUR)")  # override
    """

    @staticmethod
    def normalize(
        csv_text: str,
        mapping: ColumnMapping | None = None,
        **overrides: str | None,
    ) -> NormalizedBatch:
        """Read, map, confirm and normalize ``csv_text``.

        Raises
        ------
        ColumnMappingError
            When an override is invalid or date/amount remain unmapped.
        """

        headers, rows = read_csv_text(csv_text)
        if mapping is None:
            mapping = detect_columns(headers)
        if overrides:
            mapping = mapping.with_overrides(**overrides)
        mapping.confirm()

        transactions: list[Transaction] = []
        rejected: list[Rejected] = []
        for i, row in enumerate(rows):
            result = normalize_row(row, mapping, index=i)
            if isinstance(result, Rejected):
                rejected.append(result)
            else:
                transactions.append(result)

        logger.info(
            "Normalized %d of %d rows (%d rejected)",
            len(transactions),
            len(rows),
            len(rejected),
        )
        return NormalizedBatch(
            transactions=transactions,
            rejected=rejected,
            mapping=mapping,
            row_count=len(rows),
            headers=headers,
        )


__all__ = [
    "BankCSVNormalizer",
    "DECLINED_STATUS_TOKEN",
    "NormalizedBatch",
    "display_description",
    "normalize_row",
]
