# -*- coding: utf-8 -*-
"""
Billing Engine Entry Points

Public API consumed by display, form and import collaborators. Every entry
point is a pure function over immutable snapshots (client, increase table,
license ledger) returning an amount rounded to
``BillingConfig.decimal_places``.

Error policy:
    Lenient entry points (``calculate_*``) catch CalculationError, log a
    warning and return 0 unless ``strict_mode`` is configured, in which case
    the error propagates. ``evaluate_monthly_billing`` never raises for
    calculation errors and reports them in a CalculationResult instead.

Example:
    >>> from licensebill.engine import calculate_client_monthly_billing
    >>> amount = calculate_client_monthly_billing(client, 2026, 3, increases, licenses)

Author: licensebill Team
Date: October 2026
Status: Production Ready
"""

from __future__ import annotations

import logging
import time
from decimal import Decimal
from typing import Callable, Iterable, Optional, Tuple

from licensebill.calculators import (
    calculate_monthly,
    perpetual_annual,
    subscription_monthly,
    validate_period,
)
from licensebill.config import BillingConfig, get_config
from licensebill.exceptions import CalculationError
from licensebill.ledger import LicenseLedger, LicenseSource
from licensebill.metrics import record_calculation, record_error
from licensebill.models import (
    AnnualIncrease,
    BillingModel,
    CalculationResult,
    CalculationStatus,
    Client,
    LicenseAdded,
    MonthlyBreakdown,
    VarClient,
)
from licensebill.money import ZERO, BillingDecimal
from licensebill.provenance import calculation_hash

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _prepare(
    increases: Optional[Iterable[AnnualIncrease]],
    licenses: Optional[LicenseSource],
    config: Optional[BillingConfig],
) -> Tuple[Tuple[AnnualIncrease, ...], LicenseLedger, BillingConfig]:
    return (
        tuple(increases or ()),
        LicenseLedger.coerce(licenses),
        config or get_config(),
    )


def _round(value: Decimal, config: BillingConfig) -> Decimal:
    return BillingDecimal.round_to_places(value, config.decimal_places)


def _run(
    operation: str,
    client: Client,
    config: BillingConfig,
    compute: Callable[[], Decimal],
) -> Decimal:
    """Run a strict computation under the lenient error policy."""
    start = time.monotonic()
    try:
        amount = _round(compute(), config)
    except CalculationError as e:
        record_error(e.error_code)
        record_calculation(
            operation, client.billing_model_name, "error", time.monotonic() - start,
        )
        if config.strict_mode:
            raise
        logger.warning(
            "%s for client %s failed (%s); billing 0: %s",
            operation, client.id, e.error_code, e.message,
        )
        return _round(ZERO, config)

    record_calculation(
        operation, client.billing_model_name, "success", time.monotonic() - start,
    )
    return amount


# ---------------------------------------------------------------------------
# Monthly and annual entry points
# ---------------------------------------------------------------------------


def calculate_client_monthly_billing(
    client: Client,
    year: int,
    month: int,
    increases: Optional[Iterable[AnnualIncrease]] = None,
    licenses: Optional[LicenseSource] = None,
    config: Optional[BillingConfig] = None,
) -> Decimal:
    """Amount billed to ``client`` in ``month`` of ``year``.

    Args:
        client: Client snapshot.
        year: Calendar year.
        month: Month number, 1-12.
        increases: Annual increase table.
        licenses: LicenseLedger or iterable of AdditionalLicense rows/events.
        config: Overrides the global configuration.

    Returns:
        Rounded amount; 0 on calculation errors in lenient mode.
    """
    increases, ledger, config = _prepare(increases, licenses, config)
    return _run(
        "monthly",
        client,
        config,
        lambda: calculate_monthly(
            client, year, month, increases, ledger, config.default_installment_months,
        ),
    )


def calculate_perpetual_sm(
    client: Client,
    year: int,
    increases: Optional[Iterable[AnnualIncrease]] = None,
    licenses: Optional[LicenseSource] = None,
    config: Optional[BillingConfig] = None,
) -> Decimal:
    """Full-year S&M for a perpetual client (deal start year is free)."""
    increases, ledger, config = _prepare(increases, licenses, config)

    def compute() -> Decimal:
        validate_period(client, year, 1)
        return perpetual_annual(
            client, year, increases, ledger, config.default_installment_months,
        )

    return _run("perpetual_sm", client, config, compute)


def calculate_client_annual_total(
    client: Client,
    year: int,
    increases: Optional[Iterable[AnnualIncrease]] = None,
    licenses: Optional[LicenseSource] = None,
    config: Optional[BillingConfig] = None,
) -> Decimal:
    """Annual total for ``client``.

    Perpetual clients use the dedicated S&M figure; every other model is the
    sum of the twelve rounded monthly amounts. The two can differ for a
    perpetual client, whose monthly figures are zero through the first
    anniversary month while the annual figure covers the whole year.
    """
    increases, ledger, config = _prepare(increases, licenses, config)
    if client.billing_model == BillingModel.PERPETUAL:
        return calculate_perpetual_sm(client, year, increases, ledger, config)
    return BillingDecimal.sum(
        calculate_client_monthly_billing(client, year, m, increases, ledger, config)
        for m in range(1, 13)
    )


def monthly_breakdown(
    client: Client,
    year: int,
    increases: Optional[Iterable[AnnualIncrease]] = None,
    licenses: Optional[LicenseSource] = None,
    config: Optional[BillingConfig] = None,
) -> MonthlyBreakdown:
    """Twelve rounded monthly amounts for any billing model."""
    increases, ledger, config = _prepare(increases, licenses, config)
    months = tuple(
        calculate_client_monthly_billing(client, year, m, increases, ledger, config)
        for m in range(1, 13)
    )
    return MonthlyBreakdown(year=year, months=months, total=BillingDecimal.sum(months))


def calculate_subscription_monthly_breakdown(
    client: Client,
    year: int,
    increases: Optional[Iterable[AnnualIncrease]] = None,
    licenses: Optional[LicenseSource] = None,
    config: Optional[BillingConfig] = None,
) -> MonthlyBreakdown:
    """Subscription billing for each month of ``year``.

    Used when a subscription client is entered, before it is stored, to fill
    its ``jan..dec`` and ``total`` snapshot fields.
    """
    increases, ledger, config = _prepare(increases, licenses, config)

    def month_amount(m: int) -> Decimal:
        return _run(
            "subscription_breakdown",
            client,
            config,
            lambda: subscription_monthly(
                client, year, m, increases, ledger, config.default_installment_months,
            ),
        )

    months = tuple(month_amount(m) for m in range(1, 13))
    breakdown = MonthlyBreakdown(year=year, months=months, total=BillingDecimal.sum(months))
    logger.debug("Subscription breakdown for %s %d: total=%s", client.id, year, breakdown.total)
    return breakdown


# ---------------------------------------------------------------------------
# VAR commission
# ---------------------------------------------------------------------------


def calculate_var_client_total(
    var_client: VarClient,
    licenses: Optional[LicenseSource] = None,
    config: Optional[BillingConfig] = None,
) -> Decimal:
    """Annual commission for a VAR client.

    The stored monthly values already hold the commission amounts, so
    ``commission_rate`` is not applied and no increases are resolved. Each
    active added license tied to the client adds its value once.
    """
    ledger = LicenseLedger.coerce(licenses)
    config = config or get_config()
    start = time.monotonic()
    total = BillingDecimal.sum(var_client.monthly_values())
    for event in ledger.additions(var_client.id):
        if isinstance(event, LicenseAdded) and event.is_active:
            total += Decimal(event.quantity) * event.price_per_unit
    record_calculation("var_total", var_client.billing_model_name, "success", time.monotonic() - start)
    return _round(total, config)


# ---------------------------------------------------------------------------
# Typed result
# ---------------------------------------------------------------------------


def _snapshot_payload(
    client: Client,
    year: int,
    month: int,
    increases: Tuple[AnnualIncrease, ...],
    ledger: LicenseLedger,
) -> dict:
    return {
        "client": client,
        "year": year,
        "month": month,
        "increases": list(increases),
        "events": list(ledger.for_client(client.id)),
    }


def evaluate_monthly_billing(
    client: Client,
    year: int,
    month: int,
    increases: Optional[Iterable[AnnualIncrease]] = None,
    licenses: Optional[LicenseSource] = None,
    config: Optional[BillingConfig] = None,
) -> CalculationResult:
    """Monthly billing as a CalculationResult instead of a bare amount.

    Calculation errors become a ``failed`` result carrying the error code;
    ``strict_mode`` does not apply here.
    """
    increases, ledger, config = _prepare(increases, licenses, config)
    start = time.monotonic()
    payload = _snapshot_payload(client, year, month, increases, ledger)

    try:
        amount = _round(
            calculate_monthly(
                client, year, month, increases, ledger, config.default_installment_months,
            ),
            config,
        )
    except CalculationError as e:
        elapsed = time.monotonic() - start
        record_error(e.error_code)
        record_calculation("evaluate", client.billing_model_name, "error", elapsed)
        logger.info("Evaluation failed for client %s: %s", client.id, e)
        return CalculationResult(
            client_id=client.id,
            year=year,
            month=month,
            billing_model=client.billing_model_name,
            status=CalculationStatus.FAILED,
            amount=_round(ZERO, config),
            error_code=e.error_code,
            error_message=e.message,
            provenance_hash=calculation_hash({**payload, "error": e.error_code}),
            calculation_time_ms=elapsed * 1000,
        )

    elapsed = time.monotonic() - start
    record_calculation("evaluate", client.billing_model_name, "success", elapsed)
    return CalculationResult(
        client_id=client.id,
        year=year,
        month=month,
        billing_model=client.billing_model_name,
        status=CalculationStatus.SUCCESS,
        amount=amount,
        provenance_hash=calculation_hash({**payload, "amount": amount}),
        calculation_time_ms=elapsed * 1000,
    )


__all__ = [
    "calculate_client_monthly_billing",
    "calculate_client_annual_total",
    "calculate_perpetual_sm",
    "calculate_subscription_monthly_breakdown",
    "calculate_var_client_total",
    "monthly_breakdown",
    "evaluate_monthly_billing",
]
