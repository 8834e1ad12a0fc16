"""Price parsing and money arithmetic.

Prices arrive from the admin configuration as free-form strings such as
``"₹1,299.00"`` or ``"$15"``. Everything here works in ``Decimal`` so displayed
totals never carry binary floating point error.
"""

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

TWOPLACES = Decimal("0.01")
ZERO = Decimal("0.00")
DEFAULT_CURRENCY = "$"

# Checked in order; the first symbol found in the price string wins.
CURRENCY_SYMBOLS = ("₹", "$", "€", "£", "¥", "₩", "₽", "₦", "₨")

CURRENCY_CODES = {
    "USD": "$",
    "CAD": "$",
    "AUD": "$",
    "EUR": "€",
    "GBP": "£",
    "INR": "₹",
    "JPY": "¥",
    "CNY": "¥",
    "KRW": "₩",
    "RUB": "₽",
    "NGN": "₦",
    "PKR": "₨",
    "LKR": "₨",
    "NPR": "₨",
}

_AMOUNT = re.compile(r"\d[\d,]*(?:\.\d+)?(?:[eE][+-]?\d+)?")


def to_money(value: Any) -> Decimal:
    """Coerce a number-like value to a 2dp Decimal, ``0.00`` when empty."""
    if value is None or value == "":
        return ZERO
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            amount = Decimal(str(value))
        except InvalidOperation:
            return ZERO
    if not amount.is_finite():
        return ZERO
    try:
        return amount.quantize(TWOPLACES, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        # More digits than the context precision can hold at 2dp
        return ZERO


def parse_price(raw: Any) -> Decimal:
    """
    Extract the numeric amount from a price string.

    The first number in the string is used, so currency prefixes such as
    ``"Rs."`` are skipped and thousands separators are dropped. Unparseable
    or out-of-range input yields ``0.00``.

    Args:
        raw: Price as string, number or None

    Returns:
        Amount quantized to two decimal places
    """
    if raw is None:
        return ZERO
    if isinstance(raw, (int, float, Decimal)) and not isinstance(raw, bool):
        return to_money(raw)

    match = _AMOUNT.search(str(raw))
    if match is None:
        return ZERO
    try:
        return to_money(Decimal(match.group(0).replace(",", "")))
    except InvalidOperation:
        return ZERO


def detect_currency(raw: Any, default: str = DEFAULT_CURRENCY) -> str:
    """Return the first known currency symbol found in a price string."""
    text = "" if raw is None else str(raw)
    for symbol in CURRENCY_SYMBOLS:
        if symbol in text:
            return symbol
    return default


def currency_symbol_from_code(code: Optional[str], default: str = DEFAULT_CURRENCY) -> str:
    """Map an ISO 4217 code to its display symbol."""
    if not code:
        return default
    return CURRENCY_CODES.get(code.strip().upper(), default)


def apply_percent_discount(price: Decimal, percent: Decimal) -> Decimal:
    """Price after taking ``percent`` off, e.g. 100 at 15% -> 85.00."""
    return to_money(price * (Decimal(1) - percent / Decimal(100)))


def calculate_tax(subtotal: Decimal, tax_rate: Decimal) -> Decimal:
    return to_money(subtotal * tax_rate / Decimal(100))


def apply_shipping(
    total: Decimal,
    shipping_fee: Decimal = Decimal("5.99"),
    free_shipping_threshold: Decimal = Decimal("100.00"),
) -> Decimal:
    """Add the flat shipping fee unless the order qualifies for free shipping."""
    if total >= free_shipping_threshold:
        return to_money(total)
    return to_money(total + shipping_fee)


def format_price(amount: Any, currency: str = DEFAULT_CURRENCY) -> str:
    return f"{currency}{to_money(amount)}"
