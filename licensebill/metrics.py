# -*- coding: utf-8 -*-
"""
Prometheus Metrics - licensebill billing engine

Metrics:
    1. lb_billing_calculations_total (Counter)
    2. lb_billing_calculation_duration_seconds (Histogram)
    3. lb_billing_calculation_errors_total (Counter)
    4. lb_billing_cache_hits_total (Counter)
    5. lb_billing_cache_misses_total (Counter)
    6. lb_billing_ledger_events (Gauge)

Every helper is a no-op when ``BillingConfig.enable_metrics`` is off.

Author: licensebill Team
Date: October 2026
Status: Production Ready
"""

from __future__ import annotations

import logging

from prometheus_client import Counter, Gauge, Histogram

from licensebill.config import get_config
from licensebill.models import BillingModel

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Metric definitions
# ---------------------------------------------------------------------------

# 1. Calculations count
billing_calculations_total = Counter(
    "lb_billing_calculations_total",
    "Total billing calculations performed",
    labelnames=["operation", "billing_model", "result"],
)

# 2. Calculation duration
billing_calculation_duration_seconds = Histogram(
    "lb_billing_calculation_duration_seconds",
    "Billing calculation duration in seconds",
    labelnames=["operation"],
    buckets=(0.00005, 0.0001, 0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5),
)

# 3. Errors by code
billing_calculation_errors_total = Counter(
    "lb_billing_calculation_errors_total",
    "Total billing calculation errors by error code",
    labelnames=["error_code"],
)

# 4. Cache hits
billing_cache_hits_total = Counter(
    "lb_billing_cache_hits_total",
    "Total billing service cache hits",
)

# 5. Cache misses
billing_cache_misses_total = Counter(
    "lb_billing_cache_misses_total",
    "Total billing service cache misses",
)

# 6. Ledger size
billing_ledger_events = Gauge(
    "lb_billing_ledger_events",
    "Current number of license ledger events held by the service",
)


# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------


def _enabled() -> bool:
    return get_config().enable_metrics


_MODEL_LABELS = frozenset(m.value for m in BillingModel)


def model_label(billing_model: object) -> str:
    """Billing model label value; anything outside BillingModel is 'unknown'."""
    value = billing_model.value if isinstance(billing_model, BillingModel) else str(billing_model)
    return value if value in _MODEL_LABELS else "unknown"


def record_calculation(
    operation: str,
    billing_model: str,
    result: str,
    duration_seconds: float,
) -> None:
    """Record a billing calculation.

    Args:
        operation: Entry point name (monthly, annual, perpetual_sm, ...).
        billing_model: Billing model of the client; unsupported models
            are labelled "unknown".
        result: "success" or "error".
        duration_seconds: Calculation duration in seconds.
    """
    if not _enabled():
        return
    billing_calculations_total.labels(
        operation=operation, billing_model=model_label(billing_model), result=result,
    ).inc()
    billing_calculation_duration_seconds.labels(operation=operation).observe(
        duration_seconds,
    )


def record_error(error_code: str) -> None:
    """Record a calculation error by code."""
    if not _enabled():
        return
    billing_calculation_errors_total.labels(error_code=error_code).inc()


def record_cache_hit() -> None:
    if not _enabled():
        return
    billing_cache_hits_total.inc()


def record_cache_miss() -> None:
    if not _enabled():
        return
    billing_cache_misses_total.inc()


def update_ledger_size(count: int) -> None:
    """Set the ledger events gauge.

    Args:
        count: Current number of ledger events.
    """
    if not _enabled():
        return
    billing_ledger_events.set(count)


__all__ = [
    # Metric objects
    "billing_calculations_total",
    "billing_calculation_duration_seconds",
    "billing_calculation_errors_total",
    "billing_cache_hits_total",
    "billing_cache_misses_total",
    "billing_ledger_events",
    # Helper functions
    "model_label",
    "record_calculation",
    "record_error",
    "record_cache_hit",
    "record_cache_miss",
    "update_ledger_size",
]
