"""Column detection and value parsing for bank CSV exports.

Bank exports differ in delimiter, header language and number format. This
module turns the header row into an advisory :class:`ColumnMapping` (each
canonical slot points at one source header or is unmapped), lets callers
override slots before confirming, and parses textual amounts.

Detection is a case-insensitive token match per slot. Tokens come in two
strengths: a *primary* (or *exact*) hit beats a *secondary* one, so a file with
both "Boekingsdatum" and "Uitvoeringsdatum" maps ``date`` to the latter
regardless of column order. Excluded tokens (e.g. "valutadatum") never match.
"""

from __future__ import annotations

import csv
from collections.abc import Mapping
from dataclasses import dataclass, fields, replace
from decimal import Decimal, InvalidOperation
from io import StringIO
from typing import Any

SLOTS: tuple[str, ...] = (
    "date",
    "amount",
    "description",
    "details",
    "counterparty",
    "type",
    "status",
)
REQUIRED_SLOTS: tuple[str, ...] = ("date", "amount")


class ColumnMappingError(ValueError):
    """Raised when a mapping cannot be overridden or confirmed."""


@dataclass(frozen=True, slots=True)
class _SlotTokens:
    primary: tuple[str, ...] = ()
    secondary: tuple[str, ...] = ()
    exact: tuple[str, ...] = ()
    exclude: tuple[str, ...] = ()

    def score(self, header: str) -> int:
        h = header.strip().lower()
        if not h or any(x in h for x in self.exclude):
            return 0
        if h in self.exact or any(t in h for t in self.primary):
            return 2
        if any(t in h for t in self.secondary):
            return 1
        return 0


# Localized (Dutch/English) header tokens per slot.
SLOT_TOKENS: dict[str, _SlotTokens] = {
    "date": _SlotTokens(
        primary=("uitvoeringsdatum",),
        secondary=("datum", "date"),
        exclude=("valutadatum", "valuta datum"),
    ),
    "amount": _SlotTokens(primary=("bedrag",), secondary=("amount",)),
    "description": _SlotTokens(primary=("mededeling",), exact=("description",)),
    "details": _SlotTokens(secondary=("omschrijving",), exact=("details",)),
    "counterparty": _SlotTokens(
        primary=("naam van de tegenpartij", "naam tegenpartij"),
        secondary=("tegenpartij",),
        exclude=("rekening", "bic", "iban", "adres"),
    ),
    "type": _SlotTokens(primary=("type verrichting",), exact=("type",)),
    "status": _SlotTokens(secondary=("status",)),
}


@dataclass(frozen=True, slots=True)
class ColumnMapping:
    """Canonical slot → source header assignment for one CSV file.

    ``headers`` lists the file's (trimmed) header row so overrides can be
    validated against it.
    """

    headers: tuple[str, ...] = ()
    date: str | None = None
    amount: str | None = None
    description: str | None = None
    details: str | None = None
    counterparty: str | None = None
    type: str | None = None
    status: str | None = None

    def with_overrides(self, **slots: str | None) -> ColumnMapping:
        """Return a copy with the given slots reassigned.

        ``None`` or an empty string unmaps a slot. Unknown slot names and
        headers absent from the file raise :class:`ColumnMappingError`.
        """

        changes: dict[str, str | None] = {}
        for slot, header in slots.items():
            if slot not in SLOTS:
                raise ColumnMappingError(f"Unknown column slot: {slot!r}")
            header = (header or "").strip() or None
            if header is not None and self.headers and header not in self.headers:
                raise ColumnMappingError(f"Column {header!r} not found in file headers")
            changes[slot] = header
        return replace(self, **changes)

    def confirm(self) -> ColumnMapping:
        missing = [s for s in REQUIRED_SLOTS if not getattr(self, s)]
        if missing:
            raise ColumnMappingError(
                "Date and Amount fields are required (unmapped: " + ", ".join(missing) + ")"
            )
        return self

    def as_dict(self) -> dict[str, str | None]:
        return {f.name: getattr(self, f.name) for f in fields(self) if f.name in SLOTS}


def detect_columns(headers: list[str] | tuple[str, ...]) -> ColumnMapping:
    """Propose a mapping for ``headers``.

    Each slot takes its best-scoring header (first one on ties); a header is
    assigned to at most one slot, claimed in ``SLOTS`` order.
    """

    cleaned = tuple(h.strip() for h in headers)
    claimed: set[str] = set()
    assigned: dict[str, str | None] = {}
    for slot in SLOTS:
        tokens = SLOT_TOKENS[slot]
        best: str | None = None
        best_score = 0
        for header in cleaned:
            if header in claimed:
                continue
            score = tokens.score(header)
            if score > best_score:
                best, best_score = header, score
        if best is not None:
            claimed.add(best)
        assigned[slot] = best
    return ColumnMapping(headers=cleaned, **assigned)


# ---------------------------------------------------------------------------
# Values
# ---------------------------------------------------------------------------


def parse_amount(value: Any) -> Decimal | None:
    """Parse a source amount cell.

    - Numbers pass through; non-finite ones return ``None``.
    - Text keeps only digits, ``.``, ``,`` and ``-``. When both separators
      occur the right-most one is the decimal separator; a single separator
      repeated more than once is a thousands separator.
    - Text without digits coerces to ``Decimal(0)``.
    """

    if value is None:
        return Decimal(0)
    if isinstance(value, bool):
        return Decimal(int(value))
    if isinstance(value, (int, float, Decimal)):
        d = Decimal(str(value)) if isinstance(value, float) else Decimal(value)
        return d if d.is_finite() else None

    kept = "".join(ch for ch in str(value) if ch.isdigit() or ch in ".,-")
    if not any(ch.isdigit() for ch in kept):
        return Decimal(0)
    negative = kept.startswith("-") or kept.endswith("-")
    body = kept.replace("-", "")

    last_dot, last_comma = body.rfind("."), body.rfind(",")
    if last_dot >= 0 and last_comma >= 0:
        decimal_sep = "." if last_dot > last_comma else ","
    elif last_dot >= 0 or last_comma >= 0:
        sep = "." if last_dot >= 0 else ","
        decimal_sep = sep if body.count(sep) == 1 else None
    else:
        decimal_sep = None

    if decimal_sep is None:
        digits = body.replace(".", "").replace(",", "")
    else:
        head, _, tail = body.rpartition(decimal_sep)
        digits = head.replace(".", "").replace(",", "") + "." + tail
    try:
        d = Decimal(digits)
    except InvalidOperation:
        return Decimal(0)
    return -d if negative else d


# ---------------------------------------------------------------------------
# CSV loading
# ---------------------------------------------------------------------------

_DELIMITERS = (",", ";", "\t")


def _guess_delimiter(first_line: str) -> str:
    counts = {d: first_line.count(d) for d in _DELIMITERS}
    best = max(_DELIMITERS, key=lambda d: counts[d])
    return best if counts[best] > 0 else ","


def read_csv_text(text: str) -> tuple[list[str], list[dict[str, str]]]:
    """Parse CSV ``text`` into ``(headers, rows)``.

    The delimiter is guessed among ``,``, ``;`` and tab from the header line.
    Header names and row keys are trimmed; a UTF-8 BOM is dropped and rows
    whose cells are all blank are skipped.
    """

    text = text.lstrip("\ufeff")
    first_line = next((ln for ln in text.splitlines() if ln.strip()), "")
    if not first_line:
        return [], []
    delimiter = _guess_delimiter(first_line)

    with StringIO(text) as f:
        reader = csv.reader(f, delimiter=delimiter)
        headers: list[str] = []
        rows: list[dict[str, str]] = []
        for record in reader:
            if not headers:
                if not any(c.strip() for c in record):
                    continue
                headers = [c.strip() for c in record]
                continue
            if not any(c.strip() for c in record):
                continue
            row = {h: (record[i] if i < len(record) else "") for i, h in enumerate(headers) if h}
            rows.append(row)
    return headers, rows


def row_value(row: Mapping[str, Any], header: str | None) -> str:
    """Return the trimmed text of ``row[header]`` ('' when unmapped/missing)."""

    if not header:
        return ""
    value = row.get(header)
    return "" if value is None else str(value).strip()


__all__ = [
    "ColumnMapping",
    "ColumnMappingError",
    "REQUIRED_SLOTS",
    "SLOTS",
    "SLOT_TOKENS",
    "detect_columns",
    "parse_amount",
    "read_csv_text",
    "row_value",
]
