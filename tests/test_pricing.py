from decimal import Decimal

from storefront_sync.pricing import (
    apply_percent_discount,
    apply_shipping,
    calculate_tax,
    currency_symbol_from_code,
    detect_currency,
    format_price,
    parse_price,
    to_money,
)


def test_parse_price_strips_symbols_and_separators():
    assert parse_price("₹1,299.00") == Decimal("1299.00")
    assert parse_price("$15") == Decimal("15.00")
    assert parse_price(" 7.5 USD") == Decimal("7.50")


def test_parse_price_falls_back_to_zero():
    assert parse_price(None) == Decimal("0.00")
    assert parse_price("") == Decimal("0.00")
    assert parse_price("free") == Decimal("0.00")
    assert parse_price("1e+30") == Decimal("0.00")


def test_parse_price_uses_first_number():
    assert parse_price("Rs. 500") == Decimal("500.00")
    assert parse_price("Rs.1,250.50") == Decimal("1250.50")
    assert parse_price("1.2.3") == Decimal("1.20")
    assert parse_price("2.5e2") == Decimal("250.00")


def test_parse_price_accepts_numbers():
    assert parse_price(12) == Decimal("12.00")
    assert parse_price(Decimal("3.456")) == Decimal("3.46")


def test_to_money_rounds_half_up():
    assert to_money("2.345") == Decimal("2.35")
    assert to_money("2.344") == Decimal("2.34")
    assert to_money("NaN") == Decimal("0.00")
    assert to_money("garbage") == Decimal("0.00")
    assert to_money(Decimal("1E+40")) == Decimal("0.00")
    assert to_money("1e+30") == Decimal("0.00")


def test_detect_currency():
    assert detect_currency("₹499") == "₹"
    assert detect_currency("€9.99") == "€"
    assert detect_currency("9.99") == "$"
    assert detect_currency("9.99", default="£") == "£"


def test_currency_symbol_from_code():
    assert currency_symbol_from_code("inr") == "₹"
    assert currency_symbol_from_code("GBP") == "£"
    assert currency_symbol_from_code("XYZ") == "$"
    assert currency_symbol_from_code(None, default="€") == "€"


def test_percent_discount_and_tax():
    assert apply_percent_discount(Decimal("100.00"), Decimal("15")) == Decimal("85.00")
    assert apply_percent_discount(Decimal("1299.00"), Decimal("10")) == Decimal("1169.10")
    assert calculate_tax(Decimal("35.00"), Decimal("18")) == Decimal("6.30")


def test_shipping_is_free_over_threshold():
    assert apply_shipping(Decimal("50.00")) == Decimal("55.99")
    assert apply_shipping(Decimal("100.00")) == Decimal("100.00")


def test_format_price():
    assert format_price(Decimal("5"), "€") == "€5.00"
