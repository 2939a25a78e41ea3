"""Tests for money and calendar helpers."""

from datetime import date, datetime
from decimal import Decimal

import pytest

from licensebill.config import BillingConfig, set_config
from licensebill.money import (
    BillingDecimal,
    add_months,
    format_currency,
    from_month_index,
    month_index,
    month_label,
    parse_date,
    parse_month_label,
    quantize_money,
    to_decimal,
)


class TestBillingDecimal:
    """Lenient conversion and rounding."""

    @pytest.mark.parametrize("value,expected", [
        (None, Decimal("0")),
        ("", Decimal("0")),
        ("   ", Decimal("0")),
        ("abc", Decimal("0")),
        (True, Decimal("0")),
        (float("nan"), Decimal("0")),
        (float("inf"), Decimal("0")),
        (Decimal("NaN"), Decimal("0")),
        (0.1, Decimal("0.1")),
        (42, Decimal("42")),
        ("1,250.50", Decimal("1250.50")),
        (" 7.25 ", Decimal("7.25")),
        ([1, 2], Decimal("0")),
    ])
    def test_from_any(self, value, expected):
        assert BillingDecimal.from_any(value) == expected

    def test_divide_by_zero_is_zero(self):
        assert BillingDecimal.divide(100, 0) == Decimal("0")
        assert BillingDecimal.divide(100, None) == Decimal("0")
        assert BillingDecimal.divide(100, 8) == Decimal("12.5")

    def test_sum_skips_bad_values(self):
        assert BillingDecimal.sum(["1.10", None, 2, "x"]) == Decimal("3.10")

    def test_round_half_up(self):
        assert BillingDecimal.round_to_places("2.345", 2) == Decimal("2.35")
        assert BillingDecimal.round_to_places("-2.345", 2) == Decimal("-2.35")
        assert BillingDecimal.round_to_places("1666.6666", 2) == Decimal("1666.67")

    def test_negative_places_rejected(self):
        with pytest.raises(ValueError):
            BillingDecimal.round_to_places(1, -1)

    def test_quantize_money_uses_config(self):
        set_config(BillingConfig(decimal_places=3))
        assert quantize_money("1.23456") == Decimal("1.235")
        assert quantize_money("1.23456", 1) == Decimal("1.2")

    def test_to_decimal(self):
        assert to_decimal("3") == Decimal("3")


class TestFormatting:

    def test_format_currency(self):
        assert format_currency(Decimal("1666.666"), "ZAR") == "ZAR 1,666.67"
        assert format_currency(50, "USD") == "USD 50.00"

    def test_default_currency_from_config(self):
        set_config(BillingConfig(default_currency="EUR"))
        assert format_currency(1) == "EUR 1.00"


class TestCalendar:

    @pytest.mark.parametrize("value,expected", [
        ("2025-03-15", date(2025, 3, 15)),
        ("2025-03", date(2025, 3, 1)),
        ("2025-03-15T10:00:00Z", date(2025, 3, 15)),
        (datetime(2025, 3, 15, 8, 30), date(2025, 3, 15)),
        (date(2025, 3, 15), date(2025, 3, 15)),
        ("", None),
        ("15/03/2025", None),
        (None, None),
        (20250315, None),
    ])
    def test_parse_date(self, value, expected):
        assert parse_date(value) == expected

    def test_month_index_roundtrip(self):
        idx = month_index(2025, 12)
        assert idx - month_index(2025, 1) == 11
        assert from_month_index(idx) == (2025, 12)
        assert from_month_index(idx + 1) == (2026, 1)

    def test_add_months(self):
        assert add_months(2025, 11, 3) == (2026, 2)
        assert add_months(2025, 1, -1) == (2024, 12)

    def test_month_label(self):
        assert month_label(2025, 3) == "Mar 2025"

    @pytest.mark.parametrize("text,expected", [
        ("Mar 2025", (2025, 3)),
        ("September 2025", (2025, 9)),
        ("sep 2025", (2025, 9)),
        ("Smarch 2025", None),
        ("Mar", None),
        ("Mar twenty", None),
    ])
    def test_parse_month_label(self, text, expected):
        assert parse_month_label(text) == expected
