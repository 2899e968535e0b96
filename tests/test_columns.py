from __future__ import annotations

from decimal import Decimal

import pytest

from statement_analysis.ingest.columns import (
    ColumnMapping,
    ColumnMappingError,
    detect_columns,
    parse_amount,
    read_csv_text,
)

KBC_HEADERS = [
    "Rekeningnummer",
    "Rubrieknaam",
    "Naam",
    "Munt",
    "Afschriftnummer",
    "Datum",
    "Omschrijving",
    "Valuta",
    "Bedrag",
    "Saldo",
    "credit",
    "debet",
    "rekening tegenpartij",
    "BIC tegenpartij",
    "Naam tegenpartij",
    "Adres tegenpartij",
    "gestructureerde mededeling",
    "Vrije mededeling",
]


def test_detects_localized_headers() -> None:
    mapping = detect_columns(
        [
            "Volgnummer",
            "Uitvoeringsdatum",
            "Valutadatum",
            "Bedrag",
            "Valuta rekening",
            "Type verrichting",
            "Naam van de tegenpartij",
            "Mededeling",
            "Details",
            "Status",
        ]
    )
    assert mapping.date == "Uitvoeringsdatum"
    assert mapping.amount == "Bedrag"
    assert mapping.description == "Mededeling"
    assert mapping.details == "Details"
    assert mapping.counterparty == "Naam van de tegenpartij"
    assert mapping.type == "Type verrichting"
    assert mapping.status == "Status"


def test_primary_token_beats_earlier_secondary_match() -> None:
    mapping = detect_columns(["Boekingsdatum", "Uitvoeringsdatum", "Bedrag"])
    assert mapping.date == "Uitvoeringsdatum"


def test_valutadatum_is_never_a_date_column() -> None:
    mapping = detect_columns(["Valutadatum", "Bedrag"])
    assert mapping.date is None


def test_english_headers_and_exact_tokens() -> None:
    mapping = detect_columns([" Date ", "Amount", "Description", "Type", "Details"])
    assert mapping.date == "Date"
    assert mapping.amount == "Amount"
    assert mapping.description == "Description"
    assert mapping.type == "Type"
    assert mapping.details == "Details"


def test_counterparty_ignores_account_number_column() -> None:
    mapping = detect_columns(KBC_HEADERS)
    assert mapping.counterparty == "Naam tegenpartij"
    assert mapping.details == "Omschrijving"
    assert mapping.description == "gestructureerde mededeling"


def test_confirm_requires_date_and_amount() -> None:
    mapping = detect_columns(["Omschrijving", "Bedrag"])
    with pytest.raises(ColumnMappingError, match="required"):
        mapping.confirm()
    assert mapping.with_overrides(date="Omschrijving").confirm().date == "Omschrijving"


def test_overrides_validate_slot_and_header() -> None:
    mapping = detect_columns(["Datum", "Bedrag", "Vrije mededeling"])
    updated = mapping.with_overrides(description="Vrije mededeling", status=None)
    assert updated.description == "Vrije mededeling"
    assert mapping.with_overrides(amount="").amount is None
    with pytest.raises(ColumnMappingError, match="Unknown column slot"):
        mapping.with_overrides(memo="Datum")
    with pytest.raises(ColumnMappingError, match="not found"):
        mapping.with_overrides(amount="Saldo")


def test_mapping_as_dict_lists_every_slot() -> None:
    assert list(ColumnMapping().as_dict()) == [
        "date",
        "amount",
        "description",
        "details",
        "counterparty",
        "type",
        "status",
    ]


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("-45,50", Decimal("-45.50")),
        ("1.234,56", Decimal("1234.56")),
        ("1,234.56", Decimal("1234.56")),
        ("€ -12,00", Decimal("-12.00")),
        ("1.234.567", Decimal("1234567")),
        ("12.5", Decimal("12.5")),
        ("", Decimal(0)),
        ("n/a", Decimal(0)),
        (None, Decimal(0)),
        (-3.25, Decimal("-3.25")),
        (7, Decimal(7)),
    ],
)
def test_parse_amount(raw: object, expected: Decimal) -> None:
    assert parse_amount(raw) == expected


def test_parse_amount_rejects_non_finite_numbers() -> None:
    assert parse_amount(float("inf")) is None
    assert parse_amount(float("nan")) is None
    assert parse_amount(Decimal("NaN")) is None


def test_read_csv_text_sniffs_semicolons_and_trims_headers() -> None:
    text = "\ufeff Datum ;Bedrag; Omschrijving\n01/02/2024;-5,00;Bakker\n;;\n02/02/2024;10,00;Loon\n"
    headers, rows = read_csv_text(text)
    assert headers == ["Datum", "Bedrag", "Omschrijving"]
    assert rows == [
        {"Datum": "01/02/2024", "Bedrag": "-5,00", "Omschrijving": "Bakker"},
        {"Datum": "02/02/2024", "Bedrag": "10,00", "Omschrijving": "Loon"},
    ]


def test_read_csv_text_handles_tabs_quotes_and_short_rows() -> None:
    text = 'Date\tAmount\tDescription\n2024-01-15\t-45.50\t"Test, transaction"\n2024-01-17\t1000\n'
    headers, rows = read_csv_text(text)
    assert headers == ["Date", "Amount", "Description"]
    assert rows[0]["Description"] == "Test, transaction"
    assert rows[1] == {"Date": "2024-01-17", "Amount": "1000", "Description": ""}


def test_read_csv_text_empty_input() -> None:
    assert read_csv_text("") == ([], [])
    assert read_csv_text("\n\n") == ([], [])
