"""Price text normalization."""

import re
from decimal import Decimal, InvalidOperation
from typing import Optional

_CALL_RE = re.compile(r"call", re.IGNORECASE)
_FROM_RE = re.compile(r"^\s*from\s+", re.IGNORECASE)
_RANGE_RE = re.compile(r"\s*[-\u2013]\s*")
_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")
_CURRENCY_RE = re.compile(r"[$€£¥]|US\s*\$|USD", re.IGNORECASE)

STRICT_PRICE_RE = re.compile(r"^\d+(?:\.\d{2})?$")


def clean_price_text(raw: str) -> str:
    """Collapse NBSPs/whitespace and drop a leading "from" qualifier."""
    text = (raw or "").replace("\u00a0", " ")
    text = re.sub(r"\s+", " ", text).strip()
    return _FROM_RE.sub("", text)


def is_call_for_price(raw: str) -> bool:
    return bool(_CALL_RE.search(raw or ""))


def normalize_price(raw: str) -> tuple[str, bool]:
    """
    Normalize a displayed price.

    Returns ``(price, is_call)``. ``price`` is a plain numeric string
    (``"1299.99"``) or ``""`` when nothing numeric was found. Call-for-price
    text short-circuits to ``("", True)``. Ranges ("$10.00 - $25.00")
    collapse to their first bound.
    """
    if is_call_for_price(raw):
        return "", True

    text = clean_price_text(raw)
    text = _CURRENCY_RE.sub("", text)
    text = _RANGE_RE.split(text, maxsplit=1)[0]
    text = text.replace(",", "").strip()

    match = _NUMBER_RE.search(text)
    return (match.group(0) if match else ""), False


def to_decimal(value) -> Optional[Decimal]:
    """Parse a number or price-like text into a Decimal."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    cleaned = re.sub(r"[^0-9.\-]", "", str(value))
    if not cleaned:
        return None
    try:
        return Decimal(cleaned)
    except InvalidOperation:
        return None
