"""Tests for Prometheus metric helpers."""

from licensebill.config import BillingConfig, set_config
from licensebill.engine import calculate_client_monthly_billing
from licensebill.metrics import (
    billing_cache_hits_total,
    billing_calculation_errors_total,
    billing_calculations_total,
    billing_ledger_events,
    model_label,
    record_cache_hit,
    update_ledger_size,
)
from licensebill.models import BillingModel


def _value(metric, **labels):
    target = metric.labels(**labels) if labels else metric
    return target._value.get()


class TestMetrics:

    def test_successful_calculation_counted(self, installment_client):
        labels = {"operation": "monthly", "billing_model": "installment", "result": "success"}
        before = _value(billing_calculations_total, **labels)

        calculate_client_monthly_billing(installment_client, 2025, 1)

        assert _value(billing_calculations_total, **labels) == before + 1

    def test_errors_counted_by_code(self, installment_client):
        code = {"error_code": "LB_CALC_UNKNOWN_BILLING_MODEL"}
        before = _value(billing_calculation_errors_total, **code)

        calculate_client_monthly_billing(installment_client.evolve(billing_model="lease"), 2025, 1)

        assert _value(billing_calculation_errors_total, **code) == before + 1

    def test_ledger_gauge(self):
        update_ledger_size(7)
        assert _value(billing_ledger_events) == 7

    def test_disabled_metrics_are_not_recorded(self):
        set_config(BillingConfig(enable_metrics=False))
        before = _value(billing_cache_hits_total)

        record_cache_hit()

        assert _value(billing_cache_hits_total) == before

    def test_unknown_models_share_one_label(self, installment_client):
        labels = {"operation": "monthly", "billing_model": "unknown", "result": "error"}
        before = _value(billing_calculations_total, **labels)

        calculate_client_monthly_billing(installment_client.evolve(billing_model="lease"), 2025, 1)
        calculate_client_monthly_billing(installment_client.evolve(billing_model="barter"), 2025, 1)

        assert _value(billing_calculations_total, **labels) == before + 2

    def test_model_label(self):
        assert model_label(BillingModel.RENTALS) == "rentals"
        assert model_label("subscription") == "subscription"
        assert model_label("lease") == "unknown"
        assert model_label("") == "unknown"
