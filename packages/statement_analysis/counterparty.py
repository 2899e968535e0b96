"""Counterparty (merchant/payer/creditor) extraction from bank narratives.

Bank exports put the other party's name inside free-text narratives whose
shape depends on the payment channel (debit-card terminal, ATM, direct debit,
transfer, web-shop checkout). Extraction is an ordered rule table: each
:class:`CounterpartyRule` pairs a compiled pattern with a builder that turns
the match into a display name. The first rule whose pattern matches decides:

- a builder returning a non-empty string ends the search with that name;
- a builder returning ``None`` lets the next rule try;
- a rule without a builder marks the input as *unresolvable* and ends the
  search with ``None`` (the row is left for manual review instead of guessed).

Mastercard PDF line items use a separate, simpler extractor
(:func:`extract_counterparty_mastercard`) that never returns ``None``.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass

# ---------------------------------------------------------------------------
# Rule record
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CounterpartyRule:
    """One ordered extraction rule.

    ``build`` receives the match object; ``None`` (the attribute, not the
    return value) marks the rule as an unresolvable guard.
    """

    name: str
    pattern: re.Pattern[str]
    build: Callable[[re.Match[str]], str | None] | None

    def apply(self, text: str) -> tuple[bool, str | None]:
        """Return ``(matched, name)`` for ``text``."""

        m = self.pattern.search(text)
        if m is None:
            return False, None
        if self.build is None:
            return True, None
        return True, self.build(m)


# ---------------------------------------------------------------------------
# Debit-card terminal narratives
# ---------------------------------------------------------------------------

# Terminal merchant abbreviations as printed on debit-card narratives.
MERCHANT_ABBREVIATIONS: dict[str, str] = {
    "AD DELH": "AD Delhaize",
    "DELH": "Delhaize",
    "PROXY DELH": "Proxy Delhaize",
    "SHOP N GO": "Shop'n Go",
    "COLR": "Colruyt",
    "CARREF": "Carrefour",
    "CARREF MARKET": "Carrefour Market",
    "CARREF EXPR": "Carrefour Express",
    "ALDI": "Aldi",
    "LIDL": "Lidl",
    "OKAY": "OKay",
    "SPAR": "Spar",
    "KRUIDV": "Kruidvat",
    "ACTION": "Action",
    "HEMA": "HEMA",
    "IKEA": "IKEA",
    "BRICO": "Brico",
    "DECATH": "Decathlon",
    "DATS 24": "DATS 24",
    "Q8": "Q8",
    "TOTAL": "TotalEnergies",
    "ESSO": "Esso",
    "SHELL": "Shell",
    "MEDIAMARKT": "MediaMarkt",
}

_DEBIT_CARD_RE = re.compile(
    r"^BETALING MET DEBETKAART NUMMER\s+(?:[\dX]{4}\s?){3}[\dX]{4}\s+(?P<rest>.+)$",
    re.IGNORECASE,
)
# The narrative continues after the date ("OM 10.23 UUR", bank references).
_TRAILING_DATE_RE = re.compile(r"\s*\b\d{2}/\d{2}/\d{4}\b.*$")
_TRAILING_POSTAL_CITY_RE = re.compile(r"\s+\d{4}\s+[A-Z][A-Z'. -]*$")
_TRAILING_CITY_POSTAL_RE = re.compile(r"\s+[A-Z][A-Z'.-]*\s+\d{4}$")
_LEADING_STORE_CODE_RE = re.compile(r"^\d{4}\s+")


def _title_case(name: str) -> str:
    return " ".join(w.capitalize() for w in name.split())


def expand_merchant(name: str) -> str:
    """Expand a terminal abbreviation, else title-case ``name``.

    Abbreviations match as a whole-word prefix; the longest key wins so
    ``"AD DELH"`` beats ``"DELH"``.
    """

    upper = " ".join(name.upper().split())
    for key in sorted(MERCHANT_ABBREVIATIONS, key=len, reverse=True):
        if upper == key or upper.startswith(key + " "):
            return MERCHANT_ABBREVIATIONS[key]
    return _title_case(name)


def _debit_card_merchant(m: re.Match[str]) -> str | None:
    rest = m.group("rest")
    rest = _TRAILING_DATE_RE.sub("", rest).strip()
    rest = _TRAILING_POSTAL_CITY_RE.sub("", rest).strip()
    rest = _TRAILING_CITY_POSTAL_RE.sub("", rest).strip()
    rest = _LEADING_STORE_CODE_RE.sub("", rest).strip()
    if not rest:
        return None
    return expand_merchant(rest)


# ---------------------------------------------------------------------------
# Name cleanups for the generic rules
# ---------------------------------------------------------------------------

_BV_SUFFIX_RE = re.compile(r"\s+B\.?V\.?$", re.IGNORECASE)
_BALANS_SUFFIX_RE = re.compile(r"\s+-\s*balans-?$", re.IGNORECASE)
_HM_RE = re.compile(r"^H\s+M\b", re.IGNORECASE)


def _coded_name(m: re.Match[str]) -> str | None:
    name = m.group("name").strip()
    name = _BV_SUFFIX_RE.sub("", name).strip()
    name = _BALANS_SUFFIX_RE.sub("", name).strip()
    if _HM_RE.match(name):
        return "H&M"
    return name or None


def _group(name: str) -> Callable[[re.Match[str]], str | None]:
    def build(m: re.Match[str]) -> str | None:
        value = " ".join(m.group(name).split())
        return value or None

    return build


def _literal(value: str) -> Callable[[re.Match[str]], str | None]:
    return lambda _m: value


_COUNTRY_CODES = r"(?:BE|NL|DE|FR|LU|GB|IE)"

# ---------------------------------------------------------------------------
# Ordered rule table
# ---------------------------------------------------------------------------

COUNTERPARTY_RULES: tuple[CounterpartyRule, ...] = (
    CounterpartyRule("debit_card_terminal", _DEBIT_CARD_RE, _debit_card_merchant),
    CounterpartyRule(
        "mortgage_repayment",
        re.compile(r"^TERUGBETALING WOONKREDIET\b", re.IGNORECASE),
        _literal("Woonkrediet (Hypotheek)"),
    ),
    CounterpartyRule(
        "atm_withdrawal",
        re.compile(r"^GELDOPNEMING\b.*\s(?!X+\s)(?P<location>[A-Z][A-Z'.-]+)\s+\d{4}\b"),
        lambda m: f"ATM {m.group('location')}",
    ),
    CounterpartyRule(
        "direct_debit",
        re.compile(
            r"^(?:EUROPESE\s+)?DOMICILIERING\b[^:]*:\s*(?P<creditor>.+?)"
            r"(?:\s+(?:REF(?:ERTE)?|MANDAAT(?:REFERTE)?|ID)\b.*)?$",
            re.IGNORECASE,
        ),
        _group("creditor"),
    ),
    CounterpartyRule(
        "named_party",
        re.compile(
            r"\bNAAM\s*:\s*(?P<name>.+?)"
            r"(?=\s+(?:[A-Z]{2}\d{2}(?:\s?[A-Z0-9]{4}){2,8}\b|IBAN\b|BIC\b|[A-Z]+:)"
            rf"|\s+{_COUNTRY_CODES}(?:\s|$)|\s*$)"
        ),
        _group("name"),
    ),
    # Unresolvable: references and processors that never name the merchant.
    CounterpartyRule("numeric_reference", re.compile(r"^\d+$"), None),
    CounterpartyRule("order_reference", re.compile(r"Order[:\s]+\d+", re.IGNORECASE), None),
    CounterpartyRule("checkout_id", re.compile(r"Checkout id:", re.IGNORECASE), None),
    CounterpartyRule("multisafepay", re.compile(r"by Multisafepay$", re.IGNORECASE), None),
    CounterpartyRule("placeholder", re.compile(r"^Payment Description$"), None),
    CounterpartyRule("coded_hash", re.compile(r"^[A-Z0-9]{7}\s+[a-zA-Z0-9]{20,}$"), None),
    # Generic shapes
    CounterpartyRule(
        "terminal_receipt",
        re.compile(r"^\d{4}\s+(?P<name>.+?)\s+\w+\s+-$"),
        _group("name"),
    ),
    CounterpartyRule(
        "name_reference",
        re.compile(r"^(?P<name>[A-Za-z][A-Za-z0-9\s&'-]+):\s*\d+"),
        _group("name"),
    ),
    CounterpartyRule(
        "coded_name",
        re.compile(
            rf"^(?=[A-Z0-9]{{0,6}}\d)[A-Z0-9]{{7}}\s+(?P<name>.+?)(?:\s+{_COUNTRY_CODES})?$"
        ),
        _coded_name,
    ),
    CounterpartyRule(
        "acupuncture",
        re.compile(r"^ACUPUNCTUUR(?P<location>[A-Z]\w*)", re.IGNORECASE),
        lambda m: f"Acupunctuur {m.group('location').capitalize()}",
    ),
    CounterpartyRule("klarna", re.compile(r"Klarna$", re.IGNORECASE), _literal("Klarna")),
    CounterpartyRule("shein", re.compile(r"SHEIN$", re.IGNORECASE), _literal("Shein")),
    CounterpartyRule(
        "mastercard_payment",
        re.compile(r"^MASTERCARD\s+\d+", re.IGNORECASE),
        _literal("Mastercard Payment"),
    ),
)


def _extract_one(text: str) -> str | None:
    for rule in COUNTERPARTY_RULES:
        matched, name = rule.apply(text)
        if not matched:
            continue
        if rule.build is None or name:
            return name
    return None


def extract_counterparty(description: str | None, details: str | None = None) -> str | None:
    """Derive a counterparty name from a bank narrative.

    ``description`` is tried first, then ``details``; the first non-null name
    wins. Returns ``None`` when no rule can determine the party.
    """

    for text in (description, details):
        if not text:
            continue
        cleaned = " ".join(str(text).split())
        if not cleaned:
            continue
        name = _extract_one(cleaned)
        if name:
            return name
    return None


# ---------------------------------------------------------------------------
# Mastercard PDF line items
# ---------------------------------------------------------------------------

PAYPAL_MERCHANTS: dict[str, str] = {
    "IBOOD": "iBood",
    "ITUNESAPPST AP": "Apple/iTunes",
    "AIRBNB": "Airbnb",
    "DISNEYPLUS": "Disney+",
}

# (substring, display name) checked in order after PayPal.
KNOWN_CARD_MERCHANTS: tuple[tuple[str, str], ...] = (
    ("IKEA", "IKEA"),
    ("DPG Media", "DPG Media"),
    ("RING STANDARD", "Ring"),
)

_PAYPAL_PREFIX_RE = re.compile(r"^PAYPAL\s+")
_FIRST_NUMERIC_TOKEN_RE = re.compile(r"\s+\d")
_TRAILING_COUNTRY_RE = re.compile(rf"\s+{_COUNTRY_CODES}$")
_TRAILING_DIGITS_RE = re.compile(r"\s+\d+$")


def extract_counterparty_mastercard(description: str) -> str:
    """Return the merchant for a Mastercard statement line item.

    Never returns ``None``: when nothing better is found the trimmed
    description itself is returned.
    """

    desc = description.strip()

    if desc.startswith("PAYPAL "):
        merchant = _FIRST_NUMERIC_TOKEN_RE.split(_PAYPAL_PREFIX_RE.sub("", desc), maxsplit=1)[0]
        merchant = merchant.strip()
        for key, value in PAYPAL_MERCHANTS.items():
            if key in merchant:
                return value
        return merchant or desc

    for needle, name in KNOWN_CARD_MERCHANTS:
        if needle in desc:
            return name

    remainder = _TRAILING_COUNTRY_RE.sub("", desc)
    remainder = _TRAILING_DIGITS_RE.sub("", remainder).strip()
    return remainder or desc


__all__ = [
    "COUNTERPARTY_RULES",
    "CounterpartyRule",
    "KNOWN_CARD_MERCHANTS",
    "MERCHANT_ABBREVIATIONS",
    "PAYPAL_MERCHANTS",
    "expand_merchant",
    "extract_counterparty",
    "extract_counterparty_mastercard",
]
