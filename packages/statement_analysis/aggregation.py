# ruff: noqa: I001
"""Read-side queries over stored transactions.

- :func:`aggregate`: grouped totals by category, counterparty, type or a
  calendar bucket (month ``YYYY-MM``, year ``YYYY``, day ``YYYY-MM-DD``).
- :func:`summarize`: one-line income/expense summary.
- :func:`list_transactions`: filtered, sorted, paginated listing.
- :func:`distinct_values`: filter dropdown values.
- :func:`reconcile_card_payments`: lump-sum card payments vs. itemized card
  spending.

Lump-sum credit-card payments are left out of :func:`aggregate` and
:func:`summarize` unless ``exclude_credit_card_payments=False``; when the card
statement is imported as well, counting both would double the spending.

All grouping happens in the database. Dates are stored as ISO text, so
calendar buckets are prefixes of the ``date`` column on every backend.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Literal

from sqlalchemy import ColumnElement, case, func, select
from sqlalchemy.orm import Session

from db.models.ledger import LedgerTransaction
from .credit_card import amounts_balance
from .models import (
    BANK_STATEMENT,
    MASTERCARD_PDF,
    CardReconciliation,
    GroupResult,
    Summary,
    TransactionPage,
    to_amount,
    to_iso_date,
)
from .persistence import store_errors, to_stored

type GroupBy = Literal["category", "counterparty", "type", "month", "year", "day"]

_CENT = Decimal("0.01")
_ZERO = Decimal("0.00")

_T = LedgerTransaction

GROUP_DIMENSIONS: dict[str, ColumnElement[Any]] = {
    "category": _T.category,
    "counterparty": _T.counterparty,
    "type": _T.type,
    "month": func.substr(_T.date, 1, 7),
    "year": func.substr(_T.date, 1, 4),
    "day": _T.date,
}

SORT_FIELDS: dict[str, ColumnElement[Any]] = {
    "date": _T.date,
    "amount": _T.amount,
    "description": _T.description,
    "category": _T.category,
    "counterparty": _T.counterparty,
    "type": _T.type,
    "source": _T.source,
    "imported_at": _T.imported_at,
}

DISTINCT_FIELDS: dict[str, ColumnElement[Any]] = {
    "category": _T.category,
    "counterparty": _T.counterparty,
    "type": _T.type,
    "status": _T.status,
}


@dataclass(frozen=True, slots=True)
class TransactionFilter:
    """Optional constraints shared by every read query.

    Dates are inclusive and accept the same formats as imports. ``counterparty``
    is a case-insensitive substring match; the other text fields match exactly.
    """

    start_date: str | date | None = None
    end_date: str | date | None = None
    category: str | None = None
    counterparty: str | None = None
    type: str | None = None
    source: str | None = None
    min_amount: Decimal | float | str | None = None
    max_amount: Decimal | float | str | None = None

    def clauses(self) -> list[ColumnElement[bool]]:
        out: list[ColumnElement[bool]] = []
        if self.start_date:
            out.append(_T.date >= to_iso_date(self.start_date))
        if self.end_date:
            out.append(_T.date <= to_iso_date(self.end_date))
        if self.category:
            out.append(_T.category == self.category)
        if self.counterparty:
            out.append(_T.counterparty.icontains(self.counterparty, autoescape=True))
        if self.type:
            out.append(_T.type == self.type)
        if self.source:
            out.append(_T.source == self.source)
        if self.min_amount is not None and self.min_amount != "":
            out.append(_T.amount >= to_amount(self.min_amount))
        if self.max_amount is not None and self.max_amount != "":
            out.append(_T.amount <= to_amount(self.max_amount))
        return out


def _where(
    filters: TransactionFilter | None, *, exclude_credit_card_payments: bool
) -> list[ColumnElement[bool]]:
    clauses = (filters or TransactionFilter()).clauses()
    if exclude_credit_card_payments:
        clauses.append(_T.is_credit_card_payment.is_(False))
    return clauses


def _dec(value: Any) -> Decimal:
    if value is None:
        return _ZERO
    d = value if isinstance(value, Decimal) else Decimal(str(value))
    return d.quantize(_CENT, rounding=ROUND_HALF_UP)


def _avg(total: Decimal, count: int) -> Decimal:
    if not count:
        return _ZERO
    return (total / count).quantize(_CENT, rounding=ROUND_HALF_UP)


def _income_expr() -> ColumnElement[Any]:
    return func.coalesce(func.sum(case((_T.amount > 0, _T.amount), else_=0)), 0)


def _expenses_expr() -> ColumnElement[Any]:
    return func.coalesce(func.sum(case((_T.amount < 0, -_T.amount), else_=0)), 0)


def aggregate(
    session: Session,
    group_by: GroupBy | str = "category",
    filters: TransactionFilter | None = None,
    *,
    exclude_credit_card_payments: bool = True,
) -> list[GroupResult]:
    """Group matching rows by ``group_by`` and compute per-group statistics.

    Results are sorted ascending by ``total_amount`` (largest net spend
    first), then by key.

    Raises
    ------
    ValueError
        For an unknown ``group_by`` dimension.
    """

    try:
        dimension = GROUP_DIMENSIONS[group_by]
    except KeyError:
        raise ValueError(
            f"Unknown group_by {group_by!r}; expected one of {', '.join(GROUP_DIMENSIONS)}"
        ) from None

    key = dimension.label("key")
    stmt = (
        select(
            key,
            func.count().label("tx_count"),
            func.coalesce(func.sum(_T.amount), 0).label("total"),
            _income_expr().label("income"),
            _expenses_expr().label("expenses"),
            func.min(_T.amount).label("min_amount"),
            func.max(_T.amount).label("max_amount"),
        )
        .where(*_where(filters, exclude_credit_card_payments=exclude_credit_card_payments))
        .group_by(dimension)
    )
    with store_errors("Aggregate"):
        rows = session.execute(stmt).all()

    results = [
        GroupResult(
            key=row.key,
            count=int(row.tx_count),
            total_amount=_dec(row.total),
            income=_dec(row.income),
            expenses=_dec(row.expenses),
            avg_amount=_avg(_dec(row.total), int(row.tx_count)),
            min_amount=_dec(row.min_amount),
            max_amount=_dec(row.max_amount),
        )
        for row in rows
    ]
    results.sort(key=lambda r: (r.total_amount, r.key is None, r.key or ""))
    return results


def summarize(
    session: Session,
    filters: TransactionFilter | None = None,
    *,
    exclude_credit_card_payments: bool = True,
) -> Summary:
    stmt = select(
        func.count().label("tx_count"),
        func.coalesce(func.sum(_T.amount), 0).label("total"),
        _income_expr().label("income"),
        _expenses_expr().label("expenses"),
    ).where(*_where(filters, exclude_credit_card_payments=exclude_credit_card_payments))
    with store_errors("Summary"):
        row = session.execute(stmt).one()

    income, expenses = _dec(row.income), _dec(row.expenses)
    count = int(row.tx_count or 0)
    return Summary(
        total_income=income,
        total_expenses=expenses,
        net_balance=income - expenses,
        transaction_count=count,
        avg_transaction=_avg(_dec(row.total), count),
    )


def list_transactions(
    session: Session,
    filters: TransactionFilter | None = None,
    *,
    sort_by: str = "date",
    sort_order: Literal["asc", "desc"] | str = "desc",
    skip: int = 0,
    limit: int = 1000,
) -> TransactionPage:
    """Return one page of matching rows plus the total match count.

    Lump-sum card payments are listed like any other row.
    """

    if sort_by not in SORT_FIELDS:
        raise ValueError(f"Unknown sort field {sort_by!r}; expected one of {', '.join(SORT_FIELDS)}")
    if sort_order not in ("asc", "desc"):
        raise ValueError("sort_order must be 'asc' or 'desc'")
    if skip < 0 or limit < 0:
        raise ValueError("skip and limit must be non-negative")

    clauses = _where(filters, exclude_credit_card_payments=False)
    column = SORT_FIELDS[sort_by]
    ordering = (
        (column.asc(), _T.id.asc()) if sort_order == "asc" else (column.desc(), _T.id.desc())
    )
    stmt = select(_T).where(*clauses).order_by(*ordering).offset(skip).limit(limit)
    count_stmt = select(func.count()).select_from(_T).where(*clauses)

    with store_errors("Listing"):
        rows = session.execute(stmt).scalars().all()
        total = session.execute(count_stmt).scalar_one()
    return TransactionPage(transactions=[to_stored(r) for r in rows], total=int(total))


def distinct_values(session: Session, field: str) -> list[str]:
    """Sorted distinct non-empty values of ``field`` across all rows."""

    try:
        column = DISTINCT_FIELDS[field]
    except KeyError:
        raise ValueError(
            f"Invalid field {field!r}; expected one of {', '.join(DISTINCT_FIELDS)}"
        ) from None
    stmt = select(column).where(column.is_not(None), column != "").distinct().order_by(column)
    with store_errors("Distinct"):
        return [v for v in session.execute(stmt).scalars().all()]


def reconcile_card_payments(
    session: Session, filters: TransactionFilter | None = None
) -> CardReconciliation:
    """Compare lump-sum card payments with itemized card spending.

    Both sides are absolute sums over the same filter window; statement
    periods are not aligned, so the check only balances when the window
    covers whole billing cycles on both sides.
    """

    base = replace(filters, source=None) if filters else TransactionFilter()
    lump_stmt = select(func.coalesce(func.sum(_T.amount), 0)).where(
        *base.clauses(),
        _T.is_credit_card_payment.is_(True),
        _T.source == BANK_STATEMENT,
    )
    itemized_stmt = select(func.coalesce(func.sum(_T.amount), 0)).where(
        *base.clauses(), _T.source == MASTERCARD_PDF
    )
    with store_errors("Reconciliation"):
        lump = abs(_dec(session.execute(lump_stmt).scalar_one()))
        itemized = abs(_dec(session.execute(itemized_stmt).scalar_one()))
    return CardReconciliation(
        lump_sum_total=lump,
        itemized_total=itemized,
        difference=lump - itemized,
        balanced=amounts_balance(lump, itemized),
    )


__all__ = [
    "DISTINCT_FIELDS",
    "GROUP_DIMENSIONS",
    "GroupBy",
    "SORT_FIELDS",
    "TransactionFilter",
    "aggregate",
    "distinct_values",
    "list_transactions",
    "reconcile_card_payments",
    "summarize",
]
