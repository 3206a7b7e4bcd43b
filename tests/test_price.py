"""Tests for price normalization."""

from decimal import Decimal

import pytest

from procurement_bot.ingest.price import STRICT_PRICE_RE, normalize_price, to_decimal


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("$1,299.99", ("1299.99", False)),
        ("from $12.50", ("12.50", False)),
        ("From $12.50", ("12.50", False)),
        ("$10.00 - $25.00", ("10.00", False)),
        ("$10.00\u2013$25.00", ("10.00", False)),
        ("US $45.00", ("45.00", False)),
        ("CALL", ("", True)),
        ("Call for price", ("", True)),
        ("", ("", False)),
        ("n/a", ("", False)),
    ],
)
def test_normalize_price(raw, expected):
    assert normalize_price(raw) == expected


def test_strict_price_shape():
    assert STRICT_PRICE_RE.match("45")
    assert STRICT_PRICE_RE.match("45.00")
    assert not STRICT_PRICE_RE.match("45.5")
    assert not STRICT_PRICE_RE.match("")


def test_to_decimal():
    assert to_decimal("-$1,250.40") == Decimal("-1250.40")
    assert to_decimal(12.99) == Decimal("12.99")
    assert to_decimal(7) == Decimal("7")
    assert to_decimal("abc") is None
    assert to_decimal(None) is None
