"""Credit-card lump-sum detection.

A bank statement pays the whole Mastercard bill in one entry. When the card's
PDF statement is imported as well, the same spending appears twice: once as
the lump sum and once itemized. Lump sums are therefore flagged at import and
left out of aggregates by default.
"""

from __future__ import annotations

import re
from decimal import Decimal

# Source type label the bank uses for the monthly card-bill debit.
CREDIT_CARD_PAYMENT_TYPE = "Kredietkaartbetaling"

# Fixed tolerance for the lump-sum vs. itemized comparison (no period alignment).
RECONCILIATION_TOLERANCE = Decimal("0.01")

_MASTERCARD_NARRATIVE_RE = re.compile(r"^MASTERCARD\s+\d+", re.IGNORECASE)


def is_credit_card_payment(description: str | None, type_: str | None) -> bool:
    """Return True when the row is a lump-sum card-bill payment."""

    if type_ == CREDIT_CARD_PAYMENT_TYPE:
        return True
    return bool(description and _MASTERCARD_NARRATIVE_RE.match(description.strip()))


def amounts_balance(
    lump_sum_total: Decimal,
    itemized_total: Decimal,
    *,
    tolerance: Decimal = RECONCILIATION_TOLERANCE,
) -> bool:
    return abs(lump_sum_total - itemized_total) <= tolerance


__all__ = [
    "CREDIT_CARD_PAYMENT_TYPE",
    "RECONCILIATION_TOLERANCE",
    "amounts_balance",
    "is_credit_card_payment",
]
