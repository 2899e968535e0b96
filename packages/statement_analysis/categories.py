"""Category taxonomy and keyword classifier.

The taxonomy is closed: every stored transaction carries exactly one of
``CATEGORIES``. Classification is a first-match walk over a static keyword
table, with positive amounts short-circuiting to ``"Income"``.

Exports
-------
- ``CATEGORIES``: the ordered, closed taxonomy.
- ``CATEGORY_KEYWORDS``: ordered ``(category, keywords)`` table used by
  :func:`classify`. Order matters; the first category with a matching keyword
  wins.
- ``classify(description, amount)``: pure keyword classifier.
- ``is_valid_category(name)``: membership test used by corrections.
"""

from __future__ import annotations

import re
from decimal import Decimal

INCOME = "Income"
CREDIT_CARD_PAYMENT = "Credit Card Payment"
OTHER = "Other"

CATEGORIES: tuple[str, ...] = (
    INCOME,
    "Groceries",
    "Dining",
    "Transportation",
    "Housing",
    "Utilities",
    "Shopping",
    "Entertainment",
    "Health & Fitness",
    CREDIT_CARD_PAYMENT,
    "Subscriptions",
    "Travel",
    OTHER,
)

type Keyword = str | re.Pattern[str]

# Lower-case substrings, or patterns searched in the lower-cased text.
CATEGORY_KEYWORDS: tuple[tuple[str, tuple[Keyword, ...]], ...] = (
    (
        "Groceries",
        (
            "grocery",
            "supermarket",
            "food",
            "delhaize",
            "colruyt",
            "carrefour",
            "aldi",
            "lidl",
        ),
    ),
    (
        "Dining",
        ("restaurant", "cafe", "coffee", "resto", "horeca", "pizza", "takeaway"),
    ),
    (
        "Transportation",
        (re.compile(r"\bgas\b"), "fuel", "shell", "benzine", "nmbs", "de lijn", "total", "q8"),
    ),
    ("Housing", (re.compile(r"\brent\b"), "mortgage", "huur", "woonkrediet")),
    (
        "Utilities",
        (
            "electric",
            "water",
            "internet",
            "phone",
            "proximus",
            "telenet",
            "engie",
            "luminus",
            re.compile(r"(?=.*\bring\b)(?=.*\bplan\b)"),
        ),
    ),
    (
        "Shopping",
        (
            "amazon",
            "bol.com",
            "coolblue",
            "zalando",
            "h&m",
            "ikea",
            "furniture",
            "ibood",
        ),
    ),
    (
        "Entertainment",
        (
            "netflix",
            "spotify",
            "streamz",
            "disney",
            "cinema",
            "itunes",
            "apple",
        ),
    ),
    (
        "Health & Fitness",
        ("gym", "fitness", "basic-fit", "apotheek", "pharmacy", "acupunctuur"),
    ),
    ("Subscriptions", ("dpg media",)),
    ("Travel", ("airbnb", "hotel", "booking")),
)


def _matches(keyword: Keyword, text: str) -> bool:
    if isinstance(keyword, str):
        return keyword in text
    return keyword.search(text) is not None


def classify(description: str | None, amount: Decimal | float | int) -> str:
    """Return the category for ``description`` given its signed ``amount``.

    Positive amounts are always ``"Income"``; keyword matching only applies to
    outflows (and zero amounts). Unmatched descriptions fall back to
    ``"Other"``. Credit-card lump sums are not detected here; the normalizer
    assigns ``"Credit Card Payment"`` before calling this function.
    """

    if amount > 0:
        return INCOME
    text = (description or "").lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if any(_matches(k, text) for k in keywords):
            return category
    return OTHER


def is_valid_category(name: str | None) -> bool:
    return name in CATEGORIES


__all__ = [
    "CATEGORIES",
    "CATEGORY_KEYWORDS",
    "CREDIT_CARD_PAYMENT",
    "INCOME",
    "OTHER",
    "classify",
    "is_valid_category",
]
