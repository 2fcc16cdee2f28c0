from decimal import Decimal

import pytest

from app.core.money import InvalidAmountError, round2, to_amount, to_decimal


class Cents:
    def __init__(self, cents):
        self.cents = cents

    def __float__(self):
        return self.cents / 100


class Textual:
    def __str__(self):
        return "12.50"


@pytest.mark.parametrize("value, expected", [
    (10, 10.0),
    (10.5, 10.5),
    ("19.99", 19.99),
    (" 7 ", 7.0),
    (Decimal("3.25"), 3.25),
    (Cents(1999), 19.99),
    (Textual(), 12.5),
])
def test_to_amount_accepts_number_like_values(value, expected):
    assert to_amount(value) == expected


@pytest.mark.parametrize("value", [
    "abc",
    "",
    None,
    True,
    float("nan"),
    float("inf"),
    "NaN",
    Decimal("Infinity"),
    object(),
])
def test_to_amount_rejects_non_numeric_values(value):
    with pytest.raises(InvalidAmountError):
        to_amount(value)


def test_invalid_amount_is_a_value_error():
    with pytest.raises(ValueError):
        to_amount("twelve")


def test_round2_rounds_half_away_from_zero():
    assert round2(1.005) == 1.01
    assert round2(2.675) == 2.68
    assert round2(8.2499) == 8.25
    assert round2(-1.005) == -1.01


def test_to_decimal_quantizes_to_cents():
    assert to_decimal("10") == Decimal("10.00")
    assert to_decimal(0.1 + 0.2) == Decimal("0.30")
