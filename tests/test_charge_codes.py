from decimal import Decimal

import pytest

from freight_recon.charge_codes import (
    code_to_category,
    first_nonzero_amount,
    first_present,
    format_amount,
    invoice_line_amount,
    name_to_code,
    text_or,
    to_amount,
)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (600, 600.0),
        (12.5, 12.5),
        ("600", 600.0),
        ("  42.10 ", 42.1),
        ("$1,234.50", 1234.5),
        ("12.5 CAD", 12.5),
        (Decimal("2.25"), 2.25),
        (None, 0.0),
        ("", 0.0),
        ("abc", 0.0),
        (True, 0.0),
        ([1, 2], 0.0),
        ({"amount": 3}, 0.0),
        (float("nan"), 0.0),
        (float("inf"), 0.0),
        (-5, 0.0),
        ("-3", 0.0),
    ],
)
def test_to_amount_is_total_and_non_negative(raw, expected):
    assert to_amount(raw) == expected


def test_format_amount_drops_trailing_zero_fraction():
    assert format_amount(600.0) == "600"
    assert format_amount(12.5) == "12.5"
    assert to_amount(format_amount(0.1 + 0.2)) == 0.1 + 0.2


@pytest.mark.parametrize(
    ("name", "code"),
    [
        ("Freight", "FRT"),
        ("Fuel Surcharge", "FSC"),
        ("Linehaul Freight", "FRT"),
        ("fuel surcharge", "FSC"),
        ("Residential Surcharge", "SUR"),
        ("Sales Tax", "TAX"),
        ("HST", "HST"),
        ("Pickup", "OTHER"),
        (None, "OTHER"),
    ],
)
def test_name_to_code(name, code):
    assert name_to_code(name) == code


def test_code_to_category():
    assert code_to_category("fsc") == "fuel"
    assert code_to_category("FRT") == "freight"
    assert code_to_category("ZZZ") == "other"
    assert code_to_category(None) == "other"


def test_zero_is_a_present_value():
    assert first_present(None, "", "  ", 0, 5) == 0
    assert first_present(None, " ") is None
    assert text_or("  ", "fallback") == "fallback"
    assert text_or(" FRT ", "fallback") == "FRT"


def test_rate_fallbacks_skip_zero_amounts():
    assert first_nonzero_amount(0, "75", 10) == 75.0
    assert first_nonzero_amount(None, "0.00", "abc", "12.5") == 12.5
    assert first_nonzero_amount(0, None) == 0.0


def test_invoice_line_amount_prefers_amount_then_cost():
    assert invoice_line_amount({"amount": "605.00", "cost": 1}) == 605.0
    assert invoice_line_amount({"cost": 500}) == 500.0
    assert invoice_line_amount({"amount": 0, "cost": 500}) == 0.0
    assert invoice_line_amount({}) == 0.0
