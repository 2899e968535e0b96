"""Canonical transaction model and result types for ``statement_analysis``.

``Transaction`` is the canonical unit every ingestion path produces and the
importer persists. It is a Pydantic model so records coming from JSON (camel
case, e.g. ``rawDescription``) and from Python callers (snake case) validate
through the same rules:

- ``date`` is normalized to ISO ``YYYY-MM-DD`` (``DD/MM/YYYY`` accepted);
- ``amount`` is a finite ``Decimal`` with two places;
- ``description`` must be non-empty;
- every text field is trimmed at both ends, ``raw_description`` included, so
  the dedup key ignores padding but keeps interior text as exported;
- derived fields left unset are filled in: ``raw_description`` defaults to
  ``description``, ``is_credit_card_payment`` comes from the detector and
  ``category`` from the classifier (credit-card rows get
  ``"Credit Card Payment"``).

The remaining types are small frozen dataclasses returned by batch
operations; they carry counts and errors rather than raising for expected
conditions.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .categories import CATEGORIES, CREDIT_CARD_PAYMENT, classify
from .credit_card import is_credit_card_payment

type Source = Literal["bank_statement", "mastercard_pdf"]

BANK_STATEMENT: Source = "bank_statement"
MASTERCARD_PDF: Source = "mastercard_pdf"

_CENT = Decimal("0.01")


# ---------------------------------------------------------------------------
# Field normalization helpers
# ---------------------------------------------------------------------------


def to_iso_date(value: Any) -> str:
    """Normalize ``value`` to ``YYYY-MM-DD``.

    Accepts ``date``/``datetime`` objects and strings in ``YYYY-MM-DD`` or
    ``DD/MM/YYYY`` form; a trailing time part (``T..`` or `` ..``) is ignored.
    Raises ``ValueError`` for anything else.
    """

    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if value is None:
        raise ValueError("date is required")
    s = str(value).strip()
    if not s:
        raise ValueError("date is empty")
    first = s.split()[0].split("T", 1)[0]
    for fmt in ("%Y-%m-%d", "%d/%m/%Y"):
        try:
            return datetime.strptime(first, fmt).date().isoformat()
        except ValueError:
            continue
    raise ValueError(f"unsupported date format: {value!r}")


def to_amount(value: Any) -> Decimal:
    """Return ``value`` as a finite ``Decimal`` quantized to cents."""

    if isinstance(value, bool) or value is None:
        raise ValueError(f"invalid amount: {value!r}")
    try:
        d = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"invalid amount: {value!r}") from exc
    if not d.is_finite():
        raise ValueError(f"amount must be finite: {value!r}")
    return d.quantize(_CENT, rounding=ROUND_HALF_UP)


# ---------------------------------------------------------------------------
# Canonical record
# ---------------------------------------------------------------------------


class Transaction(BaseModel):
    """A single canonical transaction (see module docstring for the rules)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="ignore",
    )

    date: str
    amount: Decimal
    description: str
    raw_description: str | None = None
    details: str | None = None
    counterparty: str | None = None
    category: str | None = None
    type: str = ""
    source: Source = BANK_STATEMENT
    is_credit_card_payment: bool | None = None
    status: str | None = None

    @field_validator("date", mode="before")
    @classmethod
    def _normalize_date(cls, v: Any) -> str:
        return to_iso_date(v)

    @field_validator("amount", mode="before")
    @classmethod
    def _normalize_amount(cls, v: Any) -> Decimal:
        return to_amount(v)

    @field_validator("description")
    @classmethod
    def _description_non_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("description must be non-empty")
        return v

    @field_validator("type", mode="before")
    @classmethod
    def _type_default(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("raw_description", "details", "counterparty", "status")
    @classmethod
    def _blank_to_none(cls, v: str | None) -> str | None:
        return v or None

    @field_validator("category")
    @classmethod
    def _category_in_taxonomy(cls, v: str | None) -> str | None:
        if v is not None and v not in CATEGORIES:
            raise ValueError(f"unknown category: {v!r}")
        return v

    @model_validator(mode="after")
    def _derive_defaults(self) -> Transaction:
        if self.raw_description is None:
            self.raw_description = self.description
        if self.is_credit_card_payment is None:
            self.is_credit_card_payment = is_credit_card_payment(self.raw_description, self.type)
        if self.category is None:
            self.category = (
                CREDIT_CARD_PAYMENT
                if self.is_credit_card_payment
                else classify(self.description, self.amount)
            )
        return self

    def dedup_key(self) -> tuple[str, Decimal, str]:
        """The ``(date, amount, raw_description)`` identity enforced by the store."""

        assert self.raw_description is not None  # filled by _derive_defaults
        return (self.date, self.amount, self.raw_description)


class StoredTransaction(Transaction):
    """A persisted transaction as read back from the store."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    imported_at: datetime | None = None


# ---------------------------------------------------------------------------
# Batch results
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Rejected:
    """A source row dropped before import (missing date/amount, rejected status...)."""

    index: int
    reason: str
    row: Mapping[str, Any] = field(default_factory=dict, repr=False)


@dataclass(frozen=True, slots=True)
class ImportResult:
    inserted_count: int
    duplicate_count: int

    @property
    def total(self) -> int:
        return self.inserted_count + self.duplicate_count

    @property
    def message(self) -> str:
        if self.duplicate_count > 0:
            return (
                f"Imported {self.inserted_count} new transactions, "
                f"skipped {self.duplicate_count} duplicates"
            )
        return f"Imported {self.inserted_count} transactions"


@dataclass(frozen=True, slots=True)
class ParseFailure:
    file: str
    error: str


@dataclass(frozen=True, slots=True)
class StatementBatch:
    """Outcome of parsing one or more Mastercard statements."""

    transactions: list[Transaction]
    errors: list[ParseFailure]
    file_count: int

    @property
    def is_unrecognized(self) -> bool:
        """True when nothing failed but nothing was found either."""

        return not self.transactions and not self.errors


@dataclass(frozen=True, slots=True)
class GroupResult:
    key: str | None
    count: int
    total_amount: Decimal
    income: Decimal
    expenses: Decimal
    avg_amount: Decimal
    min_amount: Decimal
    max_amount: Decimal


@dataclass(frozen=True, slots=True)
class Summary:
    total_income: Decimal
    total_expenses: Decimal
    net_balance: Decimal
    transaction_count: int
    avg_transaction: Decimal


@dataclass(frozen=True, slots=True)
class TransactionPage:
    transactions: list[StoredTransaction]
    total: int


@dataclass(frozen=True, slots=True)
class CardReconciliation:
    """Lump-sum card payments vs. itemized card spending over one window."""

    lump_sum_total: Decimal
    itemized_total: Decimal
    difference: Decimal
    balanced: bool


__all__ = [
    "BANK_STATEMENT",
    "CardReconciliation",
    "GroupResult",
    "ImportResult",
    "MASTERCARD_PDF",
    "ParseFailure",
    "Rejected",
    "Source",
    "StatementBatch",
    "StoredTransaction",
    "Summary",
    "Transaction",
    "TransactionPage",
    "to_amount",
    "to_iso_date",
]
