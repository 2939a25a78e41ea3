# -*- coding: utf-8 -*-
"""
Annual Increase Resolver

Resolves the compounded price multiplier for a client and year from a table
of global and client-specific percentage increases, and provides the pure
table operations used when users apply or reset increases.

Rules:
    - A client-specific entry for a year fully replaces the global entry.
    - Within one scope (client or global) the last appended entry wins.
    - Years without an entry contribute 0%.
    - Increases compound forward from the year after the baseline year.

Example:
    >>> from licensebill.increases import apply_global_increase, resolve_multiplier
    >>> table = apply_global_increase((), 2026, 5)
    >>> table = apply_global_increase(table, 2027, 10)
    >>> resolve_multiplier("c-1", 2027, table, baseline_year=2024)
    Decimal('1.155')

Author: licensebill Team
Date: October 2026
Status: Production Ready
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional, Sequence, Tuple

from licensebill.models import AnnualIncrease, Client
from licensebill.money import HUNDRED, ONE, ZERO, to_decimal

logger = logging.getLogger(__name__)

_Key = Tuple[Optional[str], int]


def _index(increases: Iterable[AnnualIncrease]) -> Dict[_Key, Decimal]:
    """Map (client_id or None, year) to percentage; later entries overwrite."""
    table: Dict[_Key, Decimal] = {}
    for inc in increases:
        table[(inc.client_id, inc.year)] = inc.percentage
    return table


def _lookup(table: Dict[_Key, Decimal], client_id: Optional[str], year: int) -> Decimal:
    if client_id is not None and (client_id, year) in table:
        return table[(client_id, year)]
    return table.get((None, year), ZERO)


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


def effective_percentage(
    client_id: Optional[str],
    year: int,
    increases: Iterable[AnnualIncrease],
) -> Decimal:
    """Percentage that applies to ``client_id`` in ``year``.

    Client override first, then the global entry, then 0.
    """
    return _lookup(_index(increases), client_id, year)


def resolve_multiplier(
    client_id: Optional[str],
    year: int,
    increases: Iterable[AnnualIncrease],
    baseline_year: Optional[int] = None,
) -> Decimal:
    """Compounded increase factor for ``year`` relative to ``baseline_year``.

    Every year after the baseline up to and including ``year`` multiplies the
    running factor by ``1 + pct/100``. The baseline year itself and any earlier
    year resolve to exactly 1.

    Args:
        client_id: Client whose overrides apply (None for global only).
        year: Year being billed.
        increases: Increase table.
        baseline_year: Year the priced value refers to. When omitted, every
            entry in the table up to ``year`` applies.

    Returns:
        Multiplier as an unrounded Decimal.
    """
    table = _index(increases)
    if baseline_year is None:
        years = [y for (_, y) in table]
        if not years:
            return ONE
        baseline_year = min(years) - 1

    factor = ONE
    for y in range(baseline_year + 1, year + 1):
        pct = _lookup(table, client_id, y)
        if pct:
            factor *= ONE + pct / HUNDRED
    return factor


def client_multiplier(
    client: Client,
    year: int,
    increases: Iterable[AnnualIncrease],
) -> Decimal:
    """Multiplier for a client, measured from its deal start year."""
    if client.deal_start_date is None:
        return ONE
    return resolve_multiplier(
        client.id, year, increases, baseline_year=client.deal_start_date.year,
    )


# ---------------------------------------------------------------------------
# Table operations
# ---------------------------------------------------------------------------


def _check_percentage(percentage: Any) -> Decimal:
    pct = to_decimal(percentage)
    if pct <= 0:
        raise ValueError(f"Increase percentage must be positive, got {percentage!r}")
    return pct


def apply_global_increase(
    increases: Sequence[AnnualIncrease],
    year: int,
    percentage: Any,
) -> Tuple[AnnualIncrease, ...]:
    """Return a new table with a global increase appended."""
    pct = _check_percentage(percentage)
    logger.info("Applying global increase: year=%d pct=%s", year, pct)
    return tuple(increases) + (AnnualIncrease(year=year, percentage=pct),)


def apply_client_increase(
    increases: Sequence[AnnualIncrease],
    client_id: str,
    year: int,
    percentage: Any,
) -> Tuple[AnnualIncrease, ...]:
    """Return a new table with a client-specific increase appended."""
    pct = _check_percentage(percentage)
    logger.info(
        "Applying client increase: client=%s year=%d pct=%s", client_id, year, pct,
    )
    return tuple(increases) + (
        AnnualIncrease(year=year, percentage=pct, client_id=client_id),
    )


def reset_increases(
    increases: Sequence[AnnualIncrease],
    client_id: Optional[str] = None,
) -> Tuple[AnnualIncrease, ...]:
    """Drop every entry, or only ``client_id``'s overrides when given."""
    if client_id is None:
        logger.info("Resetting all annual increases (%d entries)", len(increases))
        return ()
    kept = tuple(inc for inc in increases if inc.client_id != client_id)
    logger.info(
        "Reset increases for client %s (%d removed)",
        client_id, len(increases) - len(kept),
    )
    return kept


__all__ = [
    "effective_percentage",
    "resolve_multiplier",
    "client_multiplier",
    "apply_global_increase",
    "apply_client_increase",
    "reset_increases",
]
