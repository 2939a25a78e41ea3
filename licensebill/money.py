"""
licensebill Money and Calendar Helpers

Decimal arithmetic, currency formatting and month arithmetic shared by
every calculator.

Features:
- Lenient conversion of any numeric input to Decimal (missing -> 0)
- ROUND_HALF_UP quantization to the configured number of places
- Zero-safe division
- Month index arithmetic and "Mon YYYY" labels used in the comment log

Author: licensebill Team
Date: October 2026
"""

from __future__ import annotations

import calendar
import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, getcontext
from typing import Any, Iterable, Optional, Tuple

logger = logging.getLogger(__name__)

getcontext().prec = 28
getcontext().rounding = ROUND_HALF_UP

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")
TWELVE = Decimal("12")

MONTH_KEYS: Tuple[str, ...] = (
    "jan", "feb", "mar", "apr", "may", "jun",
    "jul", "aug", "sep", "oct", "nov", "dec",
)

_MONTH_ABBR = {name.lower(): idx for idx, name in enumerate(calendar.month_abbr) if name}
_MONTH_FULL = {name.lower(): idx for idx, name in enumerate(calendar.month_name) if name}


class BillingDecimal:
    """
    Decimal operations with billing precision.

    Intermediate values keep full context precision; only published
    amounts are quantized (see ``round_to_places``).
    """

    ROUNDING = ROUND_HALF_UP

    @classmethod
    def from_any(cls, value: Any) -> Decimal:
        """
        Convert any value to Decimal, treating missing input as zero.

        Floats convert through ``str`` so 0.1 stays 0.1. Strings may carry
        thousands separators. ``None``, empty strings, booleans and anything
        unparseable become ``Decimal("0")``.

        Example:
            >>> BillingDecimal.from_any("1,250.50")
            Decimal('1250.50')
            >>> BillingDecimal.from_any(None)
            Decimal('0')
        """
        if value is None or isinstance(value, bool):
            return ZERO
        if isinstance(value, Decimal):
            return value if value.is_finite() else ZERO
        if isinstance(value, int):
            return Decimal(value)
        if isinstance(value, float):
            if value != value or value in (float("inf"), float("-inf")):
                return ZERO
            return Decimal(str(value))
        if isinstance(value, str):
            cleaned = value.replace(",", "").strip()
            if not cleaned:
                return ZERO
            try:
                result = Decimal(cleaned)
            except InvalidOperation:
                logger.debug("Non-numeric value %r treated as 0", value)
                return ZERO
            return result if result.is_finite() else ZERO
        logger.debug("Unsupported numeric type %s treated as 0", type(value).__name__)
        return ZERO

    @classmethod
    def divide(cls, a: Any, b: Any) -> Decimal:
        """Divide, returning zero when the divisor is zero."""
        divisor = cls.from_any(b)
        if divisor == 0:
            return ZERO
        return cls.from_any(a) / divisor

    @classmethod
    def sum(cls, values: Iterable[Any]) -> Decimal:
        """Sum values without intermediate rounding."""
        total = ZERO
        for v in values:
            total += cls.from_any(v)
        return total

    @classmethod
    def round_to_places(cls, value: Any, decimal_places: int) -> Decimal:
        """
        Round value to a number of decimal places with ROUND_HALF_UP.

        Example:
            >>> BillingDecimal.round_to_places("833.3333", 2)
            Decimal('833.33')
        """
        if decimal_places < 0:
            raise ValueError(f"decimal_places must be >= 0, got {decimal_places}")
        exponent = Decimal(1).scaleb(-decimal_places)
        return cls.from_any(value).quantize(exponent, rounding=cls.ROUNDING)


# ==================== MODULE HELPERS ====================

def to_decimal(value: Any) -> Decimal:
    """Shorthand for :meth:`BillingDecimal.from_any`."""
    return BillingDecimal.from_any(value)


def quantize_money(value: Any, decimal_places: Optional[int] = None) -> Decimal:
    """
    Round a monetary amount to the configured number of places.

    Args:
        value: Amount to round.
        decimal_places: Override for ``BillingConfig.decimal_places``.

    Returns:
        Quantized Decimal.
    """
    if decimal_places is None:
        from licensebill.config import get_config

        decimal_places = get_config().decimal_places
    return BillingDecimal.round_to_places(value, decimal_places)


def format_currency(amount: Any, currency: Optional[str] = None, decimal_places: int = 2) -> str:
    """
    Format an amount as ``CUR 1,234.56``.

    Example:
        >>> format_currency(Decimal("1666.666"), "ZAR")
        'ZAR 1,666.67'
    """
    if currency is None:
        from licensebill.config import get_config

        currency = get_config().default_currency
    rounded = BillingDecimal.round_to_places(amount, decimal_places)
    return f"{currency} {rounded:,.{decimal_places}f}"


# ==================== CALENDAR HELPERS ====================

def parse_date(value: Any) -> Optional[date]:
    """
    Parse a date from ``date``, ``datetime`` or common string forms.

    Accepts ``YYYY-MM-DD``, ``YYYY-MM`` (first of month) and ISO datetime
    strings. Returns None for empty or unparseable input.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    try:
        return datetime.strptime(text, "%Y-%m").date()
    except ValueError:
        logger.debug("Unparseable date %r", value)
        return None


def month_index(year: int, month: int) -> int:
    """Absolute month number, so month differences are plain subtraction."""
    return year * 12 + (month - 1)


def date_month_index(value: date) -> int:
    return month_index(value.year, value.month)


def from_month_index(index: int) -> Tuple[int, int]:
    """Inverse of :func:`month_index`, returning ``(year, month)``."""
    year, rem = divmod(index, 12)
    return year, rem + 1


def add_months(year: int, month: int, count: int) -> Tuple[int, int]:
    return from_month_index(month_index(year, month) + count)


def month_label(year: int, month: int) -> str:
    """
    Render ``(2025, 3)`` as ``"Mar 2025"``.
    """
    return f"{calendar.month_abbr[month]} {year}"


def parse_month_label(text: str) -> Optional[Tuple[int, int]]:
    """
    Parse ``"Mar 2025"`` or ``"March 2025"`` into ``(2025, 3)``.

    Returns None when the text is not a month label.
    """
    parts = text.strip().split()
    if len(parts) != 2 or not parts[1].isdigit():
        return None
    name = parts[0].lower()
    month = _MONTH_ABBR.get(name) or _MONTH_FULL.get(name)
    if month is None:
        return None
    return int(parts[1]), month


__all__ = [
    "BillingDecimal",
    "ZERO",
    "ONE",
    "HUNDRED",
    "TWELVE",
    "MONTH_KEYS",
    "to_decimal",
    "quantize_money",
    "format_currency",
    "parse_date",
    "month_index",
    "date_month_index",
    "from_month_index",
    "add_months",
    "month_label",
    "parse_month_label",
]
