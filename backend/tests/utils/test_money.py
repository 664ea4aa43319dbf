from decimal import Decimal

import pytest

from booking_payments.utils.money import to_cents, to_decimal


@pytest.mark.parametrize(
    "amount,cents",
    [
        (Decimal("120.00"), 12000),
        ("150", 15000),
        (99.99, 9999),
        (0.1 + 0.2, 30),
        ("10.005", 1001),
        (Decimal("10.004"), 1000),
    ],
)
def test_to_cents(amount, cents):
    assert to_cents(amount) == cents


def test_floats_are_converted_through_their_repr():
    assert to_decimal(19.99) == Decimal("19.99")


def test_invalid_amount():
    with pytest.raises(ValueError):
        to_decimal("twelve dollars")
