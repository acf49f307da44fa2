"""
Shared text helpers for product extraction: price parsing, product-name
plausibility and "N x Product" line parsing.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from ..protocols import MAX_PRODUCT_NAME_LENGTH, is_valid_price

MIN_PRODUCT_NAME_LENGTH = 3

_CURRENCY_SYMBOLS = r"[$£€¥₹]"
_CURRENCY_CODES = r"(?:USD|EUR|GBP|AUD|CAD|NZD)"
_AMOUNT = r"(\d{1,3}(?:,\d{3})+(?:\.\d{1,2})?|\d+(?:[.,]\d{1,2})?)"

_PREFIXED_PRICE = re.compile(
    rf"(?:(?:{_CURRENCY_CODES}\s?)?(?:[A-Z]{{1,2}})?{_CURRENCY_SYMBOLS}|{_CURRENCY_CODES})\s?{_AMOUNT}"
)
# A symbol directly followed by a number prefixes that number ("2 $5.00" is not "2 $")
_SUFFIXED_PRICE = re.compile(rf"{_AMOUNT}\s?(?:{_CURRENCY_SYMBOLS}|{_CURRENCY_CODES}\b)(?!\s?\d)")
_BARE_DECIMAL = re.compile(r"(?<![\d.,])(\d{1,4}\.\d{2})(?![\d])")
# "$28 .85" is what "$28<sup>.85</sup>" looks like once tags become spaces
_SPLIT_CENTS = re.compile(r"(\d)\s+([.,]\d{2})(?!\d)")

_NON_PRODUCT_LABELS = frozenset(
    {
        "your",
        "order",
        "orders",
        "your order",
        "order summary",
        "order details",
        "thank you",
        "thanks",
        "confirmation",
        "order confirmation",
        "item",
        "items",
        "product",
        "products",
        "description",
        "quantity",
        "qty",
        "price",
        "unit price",
        "each",
        "total",
        "subtotal",
        "sub-total",
        "grand total",
        "order total",
        "shipping",
        "delivery",
        "tax",
        "gst",
        "vat",
        "discount",
        "promo",
        "remove",
        "edit",
        "view",
        "details",
        "free",
        "buy again",
        "track package",
    }
)
_SUMMARY_LINE = re.compile(
    r"^(?:sub[\s-]?total|order\s+total|grand\s+total|total|tax|gst|vat|shipping|delivery|discount|promo(?:tion)?|fee|item\s*#)\b",
    re.IGNORECASE,
)
_ONLY_SYMBOLS = re.compile(r"^[\W\d_]+$")

_QUANTITY_LINE = re.compile(r"^\s*(\d{1,3})\s*(?:x|×|\*)\s+(.+?)\s*$", re.IGNORECASE)
_MEASURE_LINE = re.compile(
    r"^\s*(\d+(?:[.,]\d+)?)\s*(kg|g|l|ml|lb|lbs|oz|pack|pk|ea)\b\.?\s+(.+?)\s*$",
    re.IGNORECASE,
)


def _to_float(amount: str) -> Optional[float]:
    if "," in amount and "." not in amount and re.fullmatch(r"\d+,\d{1,2}", amount):
        amount = amount.replace(",", ".")
    else:
        amount = amount.replace(",", "")
    try:
        return float(amount)
    except ValueError:
        return None


def extract_price(text: str, *, allow_bare: bool = False) -> Optional[float]:
    """
    Return the first plausible price in ``text``.

    Accepts currency-prefixed ("$12.99", "AU$ 5", "USD 3.50") and suffixed
    ("12,99 €", "4.00 AUD") amounts; anything outside (0, 10000) is skipped.
    With ``allow_bare`` a currency-less "19.99" is accepted when no
    currency-marked amount is found.
    """
    if not text:
        return None
    text = _SPLIT_CENTS.sub(r"\1\2", text)
    candidates = []
    for pattern in (_PREFIXED_PRICE, _SUFFIXED_PRICE):
        for match in pattern.finditer(text):
            candidates.append((match.start(), match.group(1)))
    for _, amount in sorted(candidates):
        value = _to_float(amount)
        if value is not None and is_valid_price(value):
            return value
    if allow_bare:
        for match in _BARE_DECIMAL.finditer(text):
            value = float(match.group(1))
            if is_valid_price(value):
                return value
    return None


def is_likely_product_name(text: Optional[str]) -> bool:
    """Reject strings that are too short/long, purely numeric/punctuation, or UI labels."""
    if not text:
        return False
    name = " ".join(text.split())
    if not (MIN_PRODUCT_NAME_LENGTH <= len(name) <= MAX_PRODUCT_NAME_LENGTH):
        return False
    if _ONLY_SYMBOLS.match(name):
        return False
    if name.lower().rstrip(":").strip() in _NON_PRODUCT_LABELS:
        return False
    if _SUMMARY_LINE.match(name):
        return False
    return True


@dataclass(frozen=True)
class QuantityLine:
    quantity: int
    name: str
    unit: Optional[str] = None


def parse_quantity_line(line: str) -> Optional[QuantityLine]:
    """Parse "2 x Dog Food" and "1.5 kg Bananas" style order lines."""
    match = _QUANTITY_LINE.match(line)
    if match:
        return QuantityLine(quantity=max(1, int(match.group(1))), name=match.group(2))
    match = _MEASURE_LINE.match(line)
    if match:
        unit = match.group(2).lower()
        return QuantityLine(quantity=1, name=match.group(3), unit=f"{match.group(1)} {unit}")
    return None


def strip_price(text: str) -> str:
    """Remove price tokens and trailing separators from a product line."""
    text = _SPLIT_CENTS.sub(r"\1\2", text)
    text = _PREFIXED_PRICE.sub(" ", text)
    text = _SUFFIXED_PRICE.sub(" ", text)
    return " ".join(text.split()).strip(" -–|:•")
