# -*- coding: utf-8 -*-
"""
Portfolio Aggregates

Figures shown on the dashboard and billing overview screens, computed from
client snapshots through the engine entry points.

Features:
- Inactive clients and VAR clients are skipped everywhere
- Money is always grouped by currency, never summed across currencies
- VAR clients contribute their annual commission, a twelfth per month

Author: licensebill Team
Date: October 2026
Status: Production Ready
"""

from __future__ import annotations

import logging
from collections import defaultdict
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from licensebill.config import BillingConfig, get_config
from licensebill.engine import (
    calculate_client_annual_total,
    calculate_client_monthly_billing,
    calculate_var_client_total,
    monthly_breakdown,
)
from licensebill.ledger import LicenseLedger, LicenseSource, seats_in_effect
from licensebill.models import (
    AnnualIncrease,
    BillingModel,
    Client,
    ClientYearRow,
    CurrencyMonth,
    PeriodProjection,
    PortfolioMetrics,
    VarClient,
)
from licensebill.money import HUNDRED, TWELVE, ZERO, BillingDecimal, month_label

logger = logging.getLogger(__name__)

CurrencyTotals = Dict[str, Decimal]


def _active(clients: Iterable[Client]) -> List[Client]:
    return [c for c in clients if c.is_active]


def _add(bucket: Dict[str, Decimal], currency: str, amount: Decimal) -> None:
    bucket[currency] = bucket.get(currency, ZERO) + amount


def _var_monthly(var_client: VarClient, ledger: LicenseLedger, config: BillingConfig) -> Decimal:
    total = calculate_var_client_total(var_client, ledger, config)
    return BillingDecimal.round_to_places(total / TWELVE, config.decimal_places)


def _context(
    licenses: Optional[LicenseSource],
    increases: Optional[Iterable[AnnualIncrease]],
    config: Optional[BillingConfig],
) -> Tuple[LicenseLedger, Tuple[AnnualIncrease, ...], BillingConfig]:
    return LicenseLedger.coerce(licenses), tuple(increases or ()), config or get_config()


# ---------------------------------------------------------------------------
# Headline metrics
# ---------------------------------------------------------------------------


def portfolio_metrics(
    clients: Sequence[Client],
    year: int,
    month: int,
    var_clients: Sequence[VarClient] = (),
    licenses: Optional[LicenseSource] = None,
    increases: Optional[Iterable[AnnualIncrease]] = None,
    config: Optional[BillingConfig] = None,
) -> PortfolioMetrics:
    """Headline figures for ``year`` and the billing of ``month``.

    Licenses count each active client's seats in effect in ``month``: base
    users plus active added seats less removed seats.
    """
    ledger, increases, config = _context(licenses, increases, config)
    active = _active(clients)
    active_var = _active(var_clients)

    total_licenses = 0
    revenue: CurrencyTotals = {}
    monthly: CurrencyTotals = {}

    for client in active:
        total_licenses += seats_in_effect(client, year, month, ledger)
        _add(revenue, client.currency,
             calculate_client_annual_total(client, year, increases, ledger, config))
        _add(monthly, client.currency,
             calculate_client_monthly_billing(client, year, month, increases, ledger, config))

    for var_client in active_var:
        total_licenses += seats_in_effect(var_client, year, month, ledger)
        _add(revenue, var_client.currency,
             calculate_var_client_total(var_client, ledger, config))
        _add(monthly, var_client.currency, _var_monthly(var_client, ledger, config))

    metrics = PortfolioMetrics(
        year=year,
        month=month,
        total_licenses=total_licenses,
        active_clients=len(active) + len(active_var),
        revenue_by_currency=revenue,
        monthly_billing_by_currency=monthly,
    )
    logger.info(
        "Portfolio metrics %d-%02d: clients=%d licenses=%d currencies=%s",
        year, month, metrics.active_clients, total_licenses, sorted(revenue),
    )
    return metrics


def average_revenue_per_client(
    clients: Sequence[Client],
    year: int,
    var_clients: Sequence[VarClient] = (),
    licenses: Optional[LicenseSource] = None,
    increases: Optional[Iterable[AnnualIncrease]] = None,
    config: Optional[BillingConfig] = None,
) -> CurrencyTotals:
    """Annual revenue per active client, per currency."""
    ledger, increases, config = _context(licenses, increases, config)
    revenue: CurrencyTotals = {}
    counts: Dict[str, int] = defaultdict(int)
    for client in _active(clients):
        _add(revenue, client.currency,
             calculate_client_annual_total(client, year, increases, ledger, config))
        counts[client.currency] += 1
    for var_client in _active(var_clients):
        _add(revenue, var_client.currency,
             calculate_var_client_total(var_client, ledger, config))
        counts[var_client.currency] += 1
    return {
        currency: BillingDecimal.round_to_places(total / counts[currency], config.decimal_places)
        for currency, total in revenue.items()
    }


# ---------------------------------------------------------------------------
# Monthly views
# ---------------------------------------------------------------------------


def monthly_trend(
    clients: Sequence[Client],
    year: int,
    var_clients: Sequence[VarClient] = (),
    licenses: Optional[LicenseSource] = None,
    increases: Optional[Iterable[AnnualIncrease]] = None,
    config: Optional[BillingConfig] = None,
) -> Dict[str, Tuple[Decimal, ...]]:
    """Twelve monthly totals per currency."""
    ledger, increases, config = _context(licenses, increases, config)
    trend: Dict[str, List[Decimal]] = {}

    for client in _active(clients):
        row = trend.setdefault(client.currency, [ZERO] * 12)
        breakdown = monthly_breakdown(client, year, increases, ledger, config)
        for i, amount in enumerate(breakdown.months):
            row[i] += amount

    for var_client in _active(var_clients):
        row = trend.setdefault(var_client.currency, [ZERO] * 12)
        share = _var_monthly(var_client, ledger, config)
        for i in range(12):
            row[i] += share

    return {currency: tuple(values) for currency, values in trend.items()}


def currency_month_table(
    clients: Sequence[Client],
    year: int,
    currency: str,
    licenses: Optional[LicenseSource] = None,
    increases: Optional[Iterable[AnnualIncrease]] = None,
    config: Optional[BillingConfig] = None,
) -> List[CurrencyMonth]:
    """Monthly revenue, billing clients and growth for one currency.

    Growth is month-over-month percent; January and months following a zero
    month report 0.
    """
    ledger, increases, config = _context(licenses, increases, config)
    revenue = [ZERO] * 12
    billing = [0] * 12
    for client in _active(clients):
        if client.currency != currency:
            continue
        breakdown = monthly_breakdown(client, year, increases, ledger, config)
        for i, amount in enumerate(breakdown.months):
            revenue[i] += amount
            if amount != 0:
                billing[i] += 1

    rows: List[CurrencyMonth] = []
    for i in range(12):
        growth = ZERO
        if i > 0 and revenue[i - 1] != 0:
            growth = BillingDecimal.round_to_places(
                (revenue[i] - revenue[i - 1]) / revenue[i - 1] * HUNDRED, 2,
            )
        rows.append(CurrencyMonth(
            month=i + 1, revenue=revenue[i], billing_clients=billing[i], growth_pct=growth,
        ))
    return rows


def half_year_projections(
    clients: Sequence[Client],
    year: int,
    var_clients: Sequence[VarClient] = (),
    licenses: Optional[LicenseSource] = None,
    increases: Optional[Iterable[AnnualIncrease]] = None,
    config: Optional[BillingConfig] = None,
) -> List[PeriodProjection]:
    """Jan-Jun and Jul-Dec revenue for ``year`` and the following year."""
    ledger, increases, config = _context(licenses, increases, config)
    projections: List[PeriodProjection] = []
    for period_year in (year, year + 1):
        trend = monthly_trend(clients, period_year, var_clients, ledger, increases, config)
        for start, end in ((1, 6), (7, 12)):
            label = (
                f"{month_label(period_year, start).split()[0]}-"
                f"{month_label(period_year, end)}"
            )
            projections.append(PeriodProjection(
                label=label,
                year=period_year,
                start_month=start,
                end_month=end,
                revenue_by_currency={
                    currency: BillingDecimal.sum(values[start - 1:end])
                    for currency, values in trend.items()
                },
            ))
    return projections


# ---------------------------------------------------------------------------
# Yearly views
# ---------------------------------------------------------------------------


def annual_comparison(
    clients: Sequence[Client],
    year: int,
    var_clients: Sequence[VarClient] = (),
    licenses: Optional[LicenseSource] = None,
    increases: Optional[Iterable[AnnualIncrease]] = None,
    years: int = 4,
    config: Optional[BillingConfig] = None,
) -> Dict[int, CurrencyTotals]:
    """Annual totals per currency for ``years`` consecutive years from ``year``."""
    ledger, increases, config = _context(licenses, increases, config)
    comparison: Dict[int, CurrencyTotals] = {}
    for y in range(year, year + years):
        totals: CurrencyTotals = {}
        for client in _active(clients):
            _add(totals, client.currency,
                 calculate_client_annual_total(client, y, increases, ledger, config))
        for var_client in _active(var_clients):
            _add(totals, var_client.currency,
                 calculate_var_client_total(var_client, ledger, config))
        comparison[y] = totals
    return comparison


def clients_by_model(
    clients: Sequence[Client],
    year: int,
    licenses: Optional[LicenseSource] = None,
    increases: Optional[Iterable[AnnualIncrease]] = None,
    config: Optional[BillingConfig] = None,
) -> Dict[BillingModel, List[ClientYearRow]]:
    """Active clients of each billing model with their monthly figures."""
    ledger, increases, config = _context(licenses, increases, config)
    grouped: Dict[BillingModel, List[ClientYearRow]] = {model: [] for model in BillingModel}
    for client in _active(clients):
        if client.billing_model not in grouped:
            logger.debug("Client %s has unknown model %s", client.id, client.billing_model)
            continue
        breakdown = monthly_breakdown(client, year, increases, ledger, config)
        grouped[client.billing_model].append(ClientYearRow(
            client_id=client.id,
            client_name=client.client_name,
            currency=client.currency,
            months=breakdown.months,
            total=breakdown.total,
        ))
    return grouped


__all__ = [
    "portfolio_metrics",
    "average_revenue_per_client",
    "monthly_trend",
    "currency_month_table",
    "half_year_projections",
    "annual_comparison",
    "clients_by_model",
]
