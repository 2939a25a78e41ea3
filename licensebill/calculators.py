# -*- coding: utf-8 -*-
"""
Per-Model Monthly Billing Calculators

Strict calculation core: one function per billing model computing the
unrounded amount billed in a single month, plus the perpetual annual S&M
figure. These raise :class:`~licensebill.exceptions.CalculationError`
subclasses; the lenient, rounded entry points live in
:mod:`licensebill.engine`.

Models:
    perpetual     (annual S&M x increase factor + licenses) / 12, first year free
    subscription  implementation fee window, then rate x users by frequency
    installment   total / installment_months over the installment window
    rentals       stored monthly value from the deal start month

Decreased seats keep billing through the credited months and leave the
base value from the next invoice boundary; ``users`` stays the base count.

Author: licensebill Team
Date: October 2026
Status: Production Ready
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Callable, Dict, Optional, Sequence, Tuple

from licensebill.exceptions import (
    InvalidDateRange,
    MissingRequiredField,
    UnknownBillingModel,
)
from licensebill.increases import client_multiplier
from licensebill.ledger import (
    LicenseLedger,
    base_seat_factor,
    credit_for_month,
    credit_for_year,
    monthly_license_value,
    net_license_impact,
    removed_base_seats,
)
from licensebill.models import AnnualIncrease, BillingFrequency, BillingModel, Client
from licensebill.money import TWELVE, ZERO, BillingDecimal, date_month_index, month_index

logger = logging.getLogger(__name__)

Increases = Sequence[AnnualIncrease]


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_period(client: Client, year: int, month: int) -> None:
    """Raise InvalidDateRange for an impossible month or anniversary."""
    if not 1 <= month <= 12:
        raise InvalidDateRange(
            f"Month must be between 1 and 12, got {month}",
            client_id=client.id,
            context={"year": year, "month": month},
        )
    if not 1 <= client.anniversary_month <= 12:
        raise InvalidDateRange(
            f"Anniversary month must be between 1 and 12, got {client.anniversary_month}",
            client_id=client.id,
            context={"anniversary_month": client.anniversary_month},
        )


def _require_deal_start(client: Client) -> int:
    if client.deal_start_date is None:
        raise MissingRequiredField("deal_start_date", client_id=client.id)
    return date_month_index(client.deal_start_date)


# ---------------------------------------------------------------------------
# Perpetual S&M
# ---------------------------------------------------------------------------


def in_first_year(client: Client, year: int, month: int) -> bool:
    """True from the deal start month through the first anniversary month."""
    deal_idx = _require_deal_start(client)
    return month_index(year, month) <= deal_idx + 12


def perpetual_monthly(
    client: Client,
    year: int,
    month: int,
    increases: Increases,
    ledger: LicenseLedger,
    default_installment_months: int = 12,
) -> Decimal:
    if in_first_year(client, year, month):
        return ZERO
    base = client.total * client_multiplier(client, year, increases) * base_seat_factor(
        client, year, month, ledger,
    )
    impact = net_license_impact(client, year, month, ledger, increases)
    credit = credit_for_month(
        client, year, month, ledger, increases, default_installment_months,
    )
    return (base + impact.incremental_value) / TWELVE - credit


def perpetual_annual(
    client: Client,
    year: int,
    increases: Increases,
    ledger: LicenseLedger,
    default_installment_months: int = 12,
) -> Decimal:
    """Full-year S&M for ``year``.

    The deal start year is free. Later years carry the base value compounded
    from the deal start year plus each added license's contribution for the
    year, less credits applied in the year.

    Base seats removed by decreases leave the figure month by month from
    the invoice boundary after each decrease.
    """
    _require_deal_start(client)
    deal_year = client.deal_start_date.year
    if year <= deal_year:
        return ZERO
    base = client.total * client_multiplier(client, year, increases)
    seat_months = BillingDecimal.sum(
        base_seat_factor(client, year, m, ledger) for m in range(1, 13)
    )
    base = base * seat_months / TWELVE
    impact = net_license_impact(client, year, 12, ledger, increases)
    credit = credit_for_year(client, year, ledger, increases, default_installment_months)
    logger.debug(
        "Perpetual S&M client=%s year=%d base=%s licenses=%s credit=%s",
        client.id, year, base, impact.incremental_value, credit,
    )
    return base + impact.incremental_value - credit


# ---------------------------------------------------------------------------
# Subscription
# ---------------------------------------------------------------------------


def implementation_fee_component(client: Client, year: int, month: int) -> Decimal:
    """Share of the implementation fee billed in the month."""
    start = client.implementation_start_date
    months = client.implementation_months or 0
    if start is None or client.implementation_fee <= 0 or months <= 0:
        return ZERO
    query = month_index(year, month)
    start_idx = date_month_index(start)
    if not start_idx <= query < start_idx + months:
        return ZERO
    complete = client.implementation_complete_date
    if complete is not None and date_month_index(complete) < query:
        return ZERO
    return client.implementation_fee / Decimal(months)


def _has_implementation(client: Client) -> bool:
    return client.implementation_start_date is not None or client.implementation_fee > 0


def subscription_window(client: Client) -> Tuple[Optional[int], Optional[int]]:
    """Recurring window as ``(start_idx, end_idx)`` month indexes.

    ``start_idx`` is None when recurring billing has not started; ``end_idx``
    is exclusive and None for an open-ended subscription.
    """
    sub_start = client.subscription_start_date
    if _has_implementation(client):
        complete = client.implementation_complete_date
        if complete is None:
            return None, None
        start_idx = date_month_index(complete)
        if sub_start is not None:
            start_idx = max(start_idx, date_month_index(sub_start))
    else:
        anchor = sub_start or client.deal_start_date
        if anchor is None:
            return None, None
        start_idx = date_month_index(anchor)

    end_idx = None
    if client.subscription_duration:
        end_idx = start_idx + client.subscription_duration
    return start_idx, end_idx


def _recurring_amount(
    client: Client,
    idx: int,
    window: Tuple[Optional[int], Optional[int]],
    ledger: LicenseLedger,
    default_installment_months: int,
) -> Decimal:
    start_idx, end_idx = window
    if start_idx is None or idx < start_idx:
        return ZERO
    if end_idx is not None and idx >= end_idx:
        return ZERO
    year, month = divmod(idx, 12)
    seats = client.users - removed_base_seats(client, year, month + 1, ledger)
    amount = client.monthly_license_rate * Decimal(seats)
    for event in ledger.additions(client.id):
        amount += monthly_license_value(
            event, client, year, month + 1, default_installment_months,
        )
    return amount


def subscription_monthly(
    client: Client,
    year: int,
    month: int,
    increases: Increases,
    ledger: LicenseLedger,
    default_installment_months: int = 12,
) -> Decimal:
    impl_start = client.implementation_start_date
    impl_done = client.implementation_complete_date
    if impl_start is not None and impl_done is not None and impl_done < impl_start:
        raise InvalidDateRange(
            "Implementation completes before it starts",
            client_id=client.id,
            context={"start": impl_start.isoformat(), "complete": impl_done.isoformat()},
        )

    fee = implementation_fee_component(client, year, month)
    window = subscription_window(client)
    query = month_index(year, month)
    frequency = client.billing_frequency or BillingFrequency.MONTHLY

    recurring = ZERO
    start_idx = window[0]
    if start_idx is not None and query >= start_idx:
        if frequency.months == 1:
            recurring = _recurring_amount(
                client, query, window, ledger, default_installment_months,
            )
        elif (query - start_idx) % frequency.months == 0:
            recurring = BillingDecimal.sum(
                _recurring_amount(client, i, window, ledger, default_installment_months)
                for i in range(query, query + frequency.months)
            )

    credit = credit_for_month(
        client, year, month, ledger, increases, default_installment_months,
    )
    return fee + recurring - credit


# ---------------------------------------------------------------------------
# Installment and rentals
# ---------------------------------------------------------------------------


def installment_monthly(
    client: Client,
    year: int,
    month: int,
    increases: Increases,
    ledger: LicenseLedger,
    default_installment_months: int = 12,
) -> Decimal:
    deal_idx = _require_deal_start(client)
    months = client.installment_months or default_installment_months
    offset = month_index(year, month) - deal_idx

    amount = ZERO
    if 0 <= offset < months:
        amount = client.total / Decimal(months) * base_seat_factor(client, year, month, ledger)
    impact = net_license_impact(
        client, year, month, ledger, increases, default_installment_months,
    )
    credit = credit_for_month(
        client, year, month, ledger, increases, default_installment_months,
    )
    return amount + impact.incremental_value - credit


def rentals_monthly(
    client: Client,
    year: int,
    month: int,
    increases: Increases,
    ledger: LicenseLedger,
    default_installment_months: int = 12,
) -> Decimal:
    amount = client.monthly_values()[month - 1] * base_seat_factor(client, year, month, ledger)
    if client.deal_start_date is not None:
        if month_index(year, month) < date_month_index(client.deal_start_date):
            amount = ZERO
    impact = net_license_impact(
        client, year, month, ledger, increases, default_installment_months,
    )
    credit = credit_for_month(
        client, year, month, ledger, increases, default_installment_months,
    )
    return amount + impact.incremental_value - credit


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

MonthlyCalculator = Callable[..., Decimal]

CALCULATORS: Dict[BillingModel, MonthlyCalculator] = {
    BillingModel.PERPETUAL: perpetual_monthly,
    BillingModel.SUBSCRIPTION: subscription_monthly,
    BillingModel.INSTALLMENT: installment_monthly,
    BillingModel.RENTALS: rentals_monthly,
}


def calculate_monthly(
    client: Client,
    year: int,
    month: int,
    increases: Increases,
    ledger: LicenseLedger,
    default_installment_months: int = 12,
) -> Decimal:
    """Unrounded amount billed to ``client`` in the month.

    Raises:
        UnknownBillingModel: If the client's model is not supported.
        MissingRequiredField: If the model needs a field the client lacks.
        InvalidDateRange: If the month or a configured date window is invalid.
    """
    validate_period(client, year, month)
    calculator = CALCULATORS.get(client.billing_model)
    if calculator is None:
        raise UnknownBillingModel(client.billing_model, client_id=client.id)
    return calculator(client, year, month, increases, ledger, default_installment_months)


__all__ = [
    "CALCULATORS",
    "validate_period",
    "in_first_year",
    "perpetual_monthly",
    "perpetual_annual",
    "implementation_fee_component",
    "subscription_window",
    "subscription_monthly",
    "installment_monthly",
    "rentals_monthly",
    "calculate_monthly",
]
