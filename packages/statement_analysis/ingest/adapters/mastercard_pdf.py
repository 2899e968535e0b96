"""Mastercard PDF statement → canonical transactions.

The card issuer's statement, once reduced to text, lists each line item as a
narrative line that starts with two ``DD/MM`` dates (transaction date, booking
date) followed by an amount line::

    Kaartnummer 5244 XXXX XXXX 1234
    Datum transactie Datum verwerking Omschrijving Bedrag
    06/0108/01PAYPAL IBOOD 123456 NL
    € -54,97
    Subtotaal

:class:`StatementScanner` is the line-oriented state machine that walks that
text. It starts in ``SEEKING`` until the masked card-number header, collects
items in ``IN_SECTION`` and stops for good (``DONE``) at the first
``Subtotaal`` marker. An item stays *pending* until its ``€`` amount line
arrives; a pending item without an amount is flushed with amount 0.

Depending on the extractor the two dates come out run together
(``06/0108/01PAYPAL``) or space-separated (``06/01 08/01 PAYPAL``), and the
amount may share the narrative line (``... NL € -54,97``). All three forms
are accepted.

The year is not printed next to items; it comes from the statement period
("Van 05/01/2025 tot 04/02/2025") or defaults to the current year.
"""

from __future__ import annotations

import os
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from enum import Enum, auto
from io import BytesIO
from os import PathLike
from pathlib import Path

import pdfplumber
from pydantic import ValidationError

from ...categories import classify
from ...counterparty import extract_counterparty_mastercard
from ...logging_setup import get_logger
from ...models import (
    MASTERCARD_PDF,
    ParseFailure,
    StatementBatch,
    Transaction,
)
from ...pmap import p_map

logger = get_logger(__name__)

MASTERCARD_TYPE = "Mastercard"

DEFAULT_MAX_WORKERS = 4
MAX_WORKERS_CAP = 16

_PERIOD_RE = re.compile(r"Van\s+\d{2}/\d{2}/(\d{4})\s+tot")
_ITEM_START_RE = re.compile(r"^(\d{2})/(\d{2})\s*(\d{2})/(\d{2})\s*(.+)$")
_INLINE_AMOUNT_RE = re.compile(r"^(.*?)\s*€\s*([+-]?[\d.,]+)$")
_AMOUNT_LINE_RE = re.compile(r"^€\s*([+-]?[\d.,]+)$")


class ScanState(Enum):
    SEEKING = auto()
    IN_SECTION = auto()
    DONE = auto()


@dataclass(slots=True)
class _PendingItem:
    day: str
    month: str
    description: str


def statement_year(text: str) -> int:
    """Return the statement year from its period header (current year if absent)."""

    m = _PERIOD_RE.search(text)
    return int(m.group(1)) if m else date.today().year


def parse_european_amount(raw: str) -> Decimal:
    """``"1.234,56"`` → ``Decimal("1234.56")`` (``.`` thousands, ``,`` decimal)."""

    try:
        return Decimal(raw.replace(".", "").replace(",", "."))
    except InvalidOperation as exc:
        raise ValueError(f"invalid amount: {raw!r}") from exc


def _is_header(line: str) -> bool:
    return "Transacties van" in line or ("Datum" in line and "transactie" in line)


class StatementScanner:
    """Stateful line scanner for one statement document.

    Feed lines in order with :meth:`feed`; each call returns the transactions
    completed by that line. Call :meth:`finish` at end of input to flush a
    trailing pending item.
    """

    def __init__(self, year: int) -> None:
        self.year = year
        self.state = ScanState.SEEKING
        self._pending: _PendingItem | None = None

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    def feed(self, line: str) -> list[Transaction]:
        if self.state is ScanState.DONE:
            return []
        s = line.strip()

        if "Kaartnummer" in s and "XXXX" in s:
            self.state = ScanState.IN_SECTION
            return []
        if _is_header(s):
            return []
        if "Subtotaal" in s:
            out = self._flush()
            self.state = ScanState.DONE
            return out
        if self.state is not ScanState.IN_SECTION:
            return []

        m = _AMOUNT_LINE_RE.match(s)
        if m and self._pending is not None:
            return self._flush(parse_european_amount(m.group(1)))

        m = _ITEM_START_RE.match(s)
        if m:
            out = self._flush()
            day, month, _, _, narrative = m.groups()
            inline = _INLINE_AMOUNT_RE.match(narrative.strip())
            if inline and inline.group(1):
                self._pending = _PendingItem(day=day, month=month, description=inline.group(1))
                return out + self._flush(parse_european_amount(inline.group(2)))
            self._pending = _PendingItem(day=day, month=month, description=narrative.strip())
            return out

        # Continuation text of a pending item is not used.
        return []

    def finish(self) -> list[Transaction]:
        out = self._flush()
        self.state = ScanState.DONE
        return out

    def _flush(self, amount: Decimal | None = None) -> list[Transaction]:
        item, self._pending = self._pending, None
        if item is None:
            return []
        if amount is None:
            logger.debug("Line item without amount line: %s", item.description)
            amount = Decimal(0)
        try:
            tx = Transaction(
                date=f"{item.day}/{item.month}/{self.year}",
                amount=amount,
                description=item.description,
                raw_description=item.description,
                counterparty=extract_counterparty_mastercard(item.description),
                type=MASTERCARD_TYPE,
                source=MASTERCARD_PDF,
                # Itemized card spend is classified as an expense.
                category=classify(item.description, -1),
                is_credit_card_payment=False,
            )
        except ValidationError as exc:
            logger.warning(
                "Skipping unreadable line item %r: %s",
                item.description,
                exc.errors()[0].get("msg", exc),
            )
            return []
        return [tx]


def parse_statement(text: str) -> list[Transaction]:
    """Parse the extracted text of one statement document."""

    scanner = StatementScanner(statement_year(text))
    out: list[Transaction] = []
    for line in text.split("\n"):
        out.extend(scanner.feed(line))
        if scanner.state is ScanState.DONE:
            break
    out.extend(scanner.finish())
    return out


# ---------------------------------------------------------------------------
# PDF text extraction and multi-file parsing
# ---------------------------------------------------------------------------


type PdfSource = str | PathLike[str] | bytes


def extract_pdf_text(source: PdfSource) -> str:
    """Return the text of every page of ``source`` joined by newlines."""

    handle = BytesIO(source) if isinstance(source, bytes) else Path(source)
    with pdfplumber.open(handle) as pdf:
        pages = [page.extract_text() or "" for page in pdf.pages]
    return "\n".join(pages)


def resolve_max_workers(file_count: int, requested: int | None = None) -> int:
    """Concurrency for ``file_count`` files.

    ``requested`` falls back to ``SA_PDF_MAX_WORKERS`` (default 4); the result
    is capped to the file count and to ``MAX_WORKERS_CAP``.
    """

    if requested is None:
        env_val = os.getenv("SA_PDF_MAX_WORKERS", "").strip()
        requested = int(env_val) if env_val.isdigit() else DEFAULT_MAX_WORKERS
    return max(1, min(requested, file_count, MAX_WORKERS_CAP))


def _file_label(source: PdfSource) -> str:
    if isinstance(source, bytes):
        return "<bytes>"
    return Path(source).name


def parse_statement_files(
    files: Iterable[PdfSource],
    *,
    concurrency: int | None = None,
    text_loader: Callable[[PdfSource], str] = extract_pdf_text,
) -> StatementBatch:
    """Parse several statement PDFs independently.

    A file that cannot be read or parsed is recorded as a
    :class:`ParseFailure` and does not stop the others. Transactions are
    returned in input-file order.

    Parameters
    ----------
    files:
        Paths (or raw bytes) of the statement PDFs.
    concurrency:
        Maximum number of files parsed at once; see :func:`resolve_max_workers`.
    text_loader:
        Text extractor; tests substitute a plain-text reader.
    """

    sources = list(files)
    if not sources:
        return StatementBatch(transactions=[], errors=[], file_count=0)

    def _parse_one(source: PdfSource) -> list[Transaction] | ParseFailure:
        label = _file_label(source)
        try:
            txs = parse_statement(text_loader(source))
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to parse %s: %s", label, exc)
            return ParseFailure(file=label, error=str(exc) or type(exc).__name__)
        logger.info("Parsed %d line items from %s", len(txs), label)
        return txs

    results = p_map(
        sources,
        _parse_one,
        concurrency=resolve_max_workers(len(sources), concurrency),
    )

    transactions: list[Transaction] = []
    errors: list[ParseFailure] = []
    for r in results:
        if isinstance(r, ParseFailure):
            errors.append(r)
        else:
            transactions.extend(r)
    return StatementBatch(transactions=transactions, errors=errors, file_count=len(sources))


__all__ = [
    "MASTERCARD_TYPE",
    "PdfSource",
    "ScanState",
    "StatementScanner",
    "extract_pdf_text",
    "parse_european_amount",
    "parse_statement",
    "parse_statement_files",
    "resolve_max_workers",
    "statement_year",
]
