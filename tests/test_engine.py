"""
Billing Engine Tests

This test suite validates:
- Perpetual S&M: free first year, annual figure versus monthly sum
- Compounding annual increases and client overrides
- Proration of licenses added to perpetual clients
- Installment, rentals and subscription monthly rules
- VAR commission totals
- Idempotence of every entry point
- Lenient versus strict error policy and typed results

Author: licensebill Team
Date: October 2026
Status: Production Ready
"""

from decimal import Decimal

import pytest

from licensebill.config import BillingConfig
from licensebill.engine import (
    calculate_client_annual_total,
    calculate_client_monthly_billing,
    calculate_perpetual_sm,
    calculate_subscription_monthly_breakdown,
    calculate_var_client_total,
    evaluate_monthly_billing,
    monthly_breakdown,
)
from licensebill.exceptions import InvalidDateRange, MissingRequiredField, UnknownBillingModel
from licensebill.ledger import LicenseLedger
from licensebill.models import (
    AdditionalLicense,
    AnnualIncrease,
    CalculationStatus,
    Client,
    LicenseAdded,
    LicenseDecreased,
    VarClient,
)


def added(client_id, quantity, price, effective, **kwargs):
    return LicenseAdded(
        client_id=client_id,
        quantity=quantity,
        price_per_unit=Decimal(price),
        effective_date=effective,
        **kwargs,
    )


# ==================== PERPETUAL ====================

class TestPerpetualFirstYear:
    """Perpetual clients pay no S&M through their first anniversary."""

    def test_first_twelve_months_are_free(self, perpetual_client):
        """Every month from the deal start for twelve months bills 0."""
        for year, month in [(2024, m) for m in range(1, 13)] + [(2025, 1)]:
            amount = calculate_client_monthly_billing(perpetual_client, year, month)
            assert amount == Decimal("0"), (year, month)

    def test_monthly_after_first_year(self, perpetual_client):
        """After the first year a month carries a twelfth of the S&M."""
        assert calculate_client_monthly_billing(perpetual_client, 2025, 2) == Decimal("1000.00")

    def test_deal_year_annual_is_zero(self, perpetual_client):
        assert calculate_perpetual_sm(perpetual_client, 2024) == Decimal("0.00")

    def test_annual_differs_from_monthly_sum(self, perpetual_client):
        """Perpetual annual S&M is computed directly, not summed from months."""
        annual = calculate_client_annual_total(perpetual_client, 2025)
        monthly_sum = sum(
            calculate_client_monthly_billing(perpetual_client, 2025, m) for m in range(1, 13)
        )

        assert annual == Decimal("12000.00")
        assert monthly_sum == Decimal("11000.00")
        assert annual != monthly_sum

    def test_results_are_rounded_to_two_places(self, perpetual_client):
        client = perpetual_client.evolve(total=Decimal("10000"))
        amount = calculate_client_monthly_billing(client, 2025, 6)

        assert amount == Decimal("833.33")
        assert amount.as_tuple().exponent == -2

    def test_missing_deal_start_bills_zero(self, perpetual_client):
        client = perpetual_client.evolve(deal_start_date=None)
        assert calculate_client_monthly_billing(client, 2025, 6) == Decimal("0.00")
        assert calculate_perpetual_sm(client, 2025) == Decimal("0.00")


class TestCompounding:
    """Annual increases compound from the deal start year."""

    def test_compounding_law(self, perpetual_client, global_increases):
        """Base 10,000 with 5% then 10% gives 11,550 in 2027."""
        client = perpetual_client.evolve(total=Decimal("10000"))

        assert calculate_perpetual_sm(client, 2025, global_increases) == Decimal("10000.00")
        assert calculate_perpetual_sm(client, 2026, global_increases) == Decimal("10500.00")
        assert calculate_perpetual_sm(client, 2027, global_increases) == Decimal("11550.00")

    def test_client_override_replaces_global(self, perpetual_client, global_increases):
        client = perpetual_client.evolve(total=Decimal("10000"))
        increases = global_increases + (
            AnnualIncrease(year=2026, percentage=Decimal("8"), client_id=client.id),
        )

        assert calculate_perpetual_sm(client, 2026, increases) == Decimal("10800.00")
        assert calculate_perpetual_sm(client, 2027, increases) == Decimal("11880.00")

    def test_override_for_other_client_is_ignored(self, perpetual_client, global_increases):
        client = perpetual_client.evolve(total=Decimal("10000"))
        increases = global_increases + (
            AnnualIncrease(year=2026, percentage=Decimal("20"), client_id="someone-else"),
        )

        assert calculate_perpetual_sm(client, 2026, increases) == Decimal("10500.00")

    def test_increases_before_deal_year_do_not_apply(self, perpetual_client):
        client = perpetual_client.evolve(total=Decimal("10000"))
        increases = (AnnualIncrease(year=2023, percentage=Decimal("50")),)

        assert calculate_perpetual_sm(client, 2025, increases) == Decimal("10000.00")

    def test_monthly_uses_compounded_value(self, perpetual_client, global_increases):
        assert calculate_client_monthly_billing(
            perpetual_client, 2026, 5, global_increases,
        ) == Decimal("1050.00")


class TestPerpetualProration:
    """Licenses added to perpetual clients are prorated to the anniversary."""

    @pytest.fixture
    def client(self):
        return Client(
            id="p-2",
            billing_model="perpetual",
            users=5,
            total=Decimal("0"),
            deal_start_date="2024-01-01",
            anniversary_month=7,
        )

    def test_added_before_anniversary(self, client):
        """Added in March with a July anniversary: 5/12 in the year added."""
        ledger = LicenseLedger([added(client.id, 1, "2000", "2025-03-01")])

        assert calculate_perpetual_sm(client, 2025, licenses=ledger) == Decimal("833.33")
        assert calculate_perpetual_sm(client, 2026, licenses=ledger) == Decimal("2000.00")

    def test_added_after_anniversary(self, client):
        """Added in September: nothing that year, 10/12 the next, then full."""
        ledger = LicenseLedger([added(client.id, 1, "2000", "2025-09-01")])

        assert calculate_perpetual_sm(client, 2025, licenses=ledger) == Decimal("0.00")
        assert calculate_perpetual_sm(client, 2026, licenses=ledger) == Decimal("1666.67")
        assert calculate_perpetual_sm(client, 2027, licenses=ledger) == Decimal("2000.00")

    def test_added_license_compounds_from_its_year(self, client):
        ledger = LicenseLedger([added(client.id, 1, "2000", "2025-03-01")])
        increases = (
            AnnualIncrease(year=2025, percentage=Decimal("50")),
            AnnualIncrease(year=2026, percentage=Decimal("5")),
        )

        assert calculate_perpetual_sm(client, 2026, increases, ledger) == Decimal("2100.00")

    def test_inactive_license_contributes_nothing(self, client):
        ledger = LicenseLedger([added(client.id, 1, "2000", "2025-03-01", is_active=False)])
        assert calculate_perpetual_sm(client, 2026, licenses=ledger) == Decimal("0.00")

    def test_accepts_stored_license_rows(self, client):
        rows = [AdditionalLicense(
            client_id=client.id, quantity=1, price_per_unit=2000, start_date="2025-03-01",
        )]
        assert calculate_perpetual_sm(client, 2025, licenses=rows) == Decimal("833.33")

    def test_decrease_credit_reduces_year(self, perpetual_client):
        ledger = LicenseLedger([LicenseDecreased(
            client_id=perpetual_client.id,
            quantity=2,
            effective_date="2025-09-01",
            credit_amount=Decimal("1200"),
        )])

        assert calculate_perpetual_sm(perpetual_client, 2025, licenses=ledger) == Decimal("10800.00")
        assert calculate_client_monthly_billing(
            perpetual_client, 2025, 9, licenses=ledger,
        ) == Decimal("-200.00")


# ==================== INSTALLMENT AND RENTALS ====================

class TestInstallment:
    """Installment clients pay total / months inside the installment window."""

    def test_bills_thousand_per_month_in_window(self, installment_client):
        for month in range(1, 13):
            assert calculate_client_monthly_billing(
                installment_client, 2025, month,
            ) == Decimal("1000.00")

    def test_zero_outside_window(self, installment_client):
        assert calculate_client_monthly_billing(installment_client, 2024, 12) == Decimal("0.00")
        assert calculate_client_monthly_billing(installment_client, 2026, 1) == Decimal("0.00")

    def test_window_spans_years(self, installment_client):
        client = installment_client.evolve(deal_start_date="2025-04-01")

        assert calculate_client_annual_total(client, 2025) == Decimal("9000.00")
        assert calculate_client_annual_total(client, 2026) == Decimal("3000.00")

    def test_default_months_when_missing(self, installment_client):
        client = installment_client.evolve(installment_months=None)
        config = BillingConfig(default_installment_months=6)

        assert calculate_client_monthly_billing(client, 2025, 1, config=config) == Decimal("2000.00")
        assert calculate_client_monthly_billing(client, 2025, 7, config=config) == Decimal("0.00")

    def test_added_license_runs_parallel_schedule(self, installment_client):
        ledger = LicenseLedger([added(installment_client.id, 2, "50", "2025-03-01")])

        assert calculate_client_monthly_billing(
            installment_client, 2025, 2, licenses=ledger,
        ) == Decimal("1000.00")
        assert calculate_client_monthly_billing(
            installment_client, 2025, 3, licenses=ledger,
        ) == Decimal("1100.00")
        assert calculate_client_monthly_billing(
            installment_client, 2026, 2, licenses=ledger,
        ) == Decimal("100.00")
        assert calculate_client_monthly_billing(
            installment_client, 2026, 3, licenses=ledger,
        ) == Decimal("0.00")

    def test_decrease_lowers_installments_after_year_end(self, installment_client):
        client = installment_client.evolve(installment_months=24)
        ledger = LicenseLedger([LicenseDecreased(
            client_id=client.id,
            quantity=3,
            effective_date="2025-10-01",
            credit_amount=Decimal("450"),
        )])

        assert calculate_client_monthly_billing(client, 2025, 9, licenses=ledger) == Decimal("500.00")
        assert calculate_client_monthly_billing(client, 2025, 10, licenses=ledger) == Decimal("50.00")
        assert calculate_client_monthly_billing(client, 2025, 12, licenses=ledger) == Decimal("500.00")
        assert calculate_client_monthly_billing(client, 2026, 1, licenses=ledger) == Decimal("350.00")


class TestRentals:
    """Rental clients bill their stored monthly values from the deal start."""

    def test_zero_before_deal_start(self, rentals_client):
        assert calculate_client_monthly_billing(rentals_client, 2025, 3) == Decimal("0.00")
        assert calculate_client_monthly_billing(rentals_client, 2025, 4) == Decimal("500.00")

    def test_annual_totals(self, rentals_client):
        assert calculate_client_annual_total(rentals_client, 2025) == Decimal("4500.00")
        assert calculate_client_annual_total(rentals_client, 2026) == Decimal("6000.00")

    def test_added_license_adds_monthly_value(self, rentals_client):
        ledger = LicenseLedger([added(rentals_client.id, 1, "75", "2025-06-01")])

        assert calculate_client_monthly_billing(
            rentals_client, 2025, 5, licenses=ledger,
        ) == Decimal("500.00")
        assert calculate_client_monthly_billing(
            rentals_client, 2025, 6, licenses=ledger,
        ) == Decimal("575.00")


# ==================== SUBSCRIPTION ====================

class TestSubscription:
    """Subscription clients pay rate x users, plus implementation fees."""

    def test_monthly_rate_times_users(self, subscription_client):
        assert calculate_client_monthly_billing(subscription_client, 2025, 1) == Decimal("1000.00")
        assert calculate_client_monthly_billing(subscription_client, 2024, 12) == Decimal("0.00")

    def test_missing_rate_bills_zero(self, subscription_client):
        client = subscription_client.evolve(monthly_license_rate="")
        assert calculate_client_monthly_billing(client, 2025, 3) == Decimal("0.00")

    def test_implementation_scenario(self):
        """Fee billed over three months; recurring starts at completion."""
        client = Client(
            id="s-2",
            billing_model="subscription",
            users=10,
            monthly_license_rate=Decimal("50"),
            implementation_fee=Decimal("6000"),
            implementation_months=3,
            implementation_start_date="2025-01-01",
        )

        for month in (1, 2, 3):
            assert calculate_client_monthly_billing(client, 2025, month) == Decimal("2000.00")
        for month in range(4, 13):
            assert calculate_client_monthly_billing(client, 2025, month) == Decimal("0.00")

        completed = client.evolve(implementation_complete_date="2025-04-10")
        assert calculate_client_monthly_billing(completed, 2025, 3) == Decimal("2000.00")
        assert calculate_client_monthly_billing(completed, 2025, 4) == Decimal("500.00")
        assert calculate_client_monthly_billing(completed, 2025, 12) == Decimal("500.00")

    def test_quarterly_bills_in_advance(self, subscription_client):
        client = subscription_client.evolve(
            billing_frequency="quarterly", subscription_start_date="2025-02-01",
        )
        breakdown = monthly_breakdown(client, 2025)

        assert breakdown.months[0] == Decimal("0.00")
        assert breakdown.months[1] == Decimal("3000.00")
        assert breakdown.months[2] == Decimal("0.00")
        assert breakdown.months[4] == Decimal("3000.00")
        assert breakdown.total == Decimal("12000.00")

    def test_duration_ends_recurring_billing(self, subscription_client):
        client = subscription_client.evolve(
            billing_frequency="quarterly",
            subscription_start_date="2025-02-01",
            subscription_duration=6,
        )
        assert monthly_breakdown(client, 2025).total == Decimal("6000.00")

    def test_completion_before_start_is_invalid(self):
        client = Client(
            id="s-3",
            billing_model="subscription",
            implementation_fee=Decimal("3000"),
            implementation_months=3,
            implementation_start_date="2025-05-01",
            implementation_complete_date="2025-03-01",
        )
        strict = BillingConfig(strict_mode=True)

        assert calculate_client_monthly_billing(client, 2025, 5) == Decimal("0.00")
        with pytest.raises(InvalidDateRange):
            calculate_client_monthly_billing(client, 2025, 5, config=strict)

    def test_subscription_breakdown_for_snapshot(self, subscription_client):
        breakdown = calculate_subscription_monthly_breakdown(subscription_client, 2025)
        snapshot = breakdown.to_snapshot()

        assert snapshot["jan"] == Decimal("1000.00")
        assert snapshot["total"] == Decimal("12000.00")


# ==================== ANNUAL LAW ====================

class TestAnnualEqualsMonthlySum:
    """Non-perpetual annual totals are the sum of their monthly figures."""

    @pytest.mark.parametrize("fixture_name", [
        "subscription_client", "installment_client", "rentals_client",
    ])
    def test_annual_is_sum_of_months(self, request, fixture_name):
        client = request.getfixturevalue(fixture_name)
        ledger = LicenseLedger([added(client.id, 3, "33.33", "2025-05-01")])

        for year in (2024, 2025, 2026):
            annual = calculate_client_annual_total(client, year, licenses=ledger)
            monthly = sum(
                calculate_client_monthly_billing(client, year, m, licenses=ledger)
                for m in range(1, 13)
            )
            assert annual == monthly


# ==================== VAR ====================

class TestVarClientTotal:
    """VAR commission is the stored monthly values plus added licenses."""

    def test_sum_of_monthly_values(self, var_client):
        assert calculate_var_client_total(var_client) == Decimal("1200.00")

    def test_commission_rate_is_ignored(self, var_client):
        other = var_client.evolve(id="v-2", commission_rate=Decimal("40"))
        assert calculate_var_client_total(var_client) == calculate_var_client_total(other)

    def test_active_added_licenses_count_once(self, var_client):
        ledger = LicenseLedger([
            added(var_client.id, 2, "150", "2025-01-01"),
            added(var_client.id, 5, "999", "2025-01-01", is_active=False),
            added("someone-else", 1, "500", "2025-01-01"),
        ])
        assert calculate_var_client_total(var_client, ledger) == Decimal("1500.00")

    def test_var_client_accepts_stored_keys(self):
        record = VarClient.model_validate({
            "id": 7,
            "varPartnerId": "vp-9",
            "billingModel": "rentals",
            "jan": "1,000.50",
            "commissionRate": "12.5",
        })
        assert record.id == "7"
        assert calculate_var_client_total(record) == Decimal("1000.50")


# ==================== DETERMINISM ====================

class TestIdempotence:
    """Identical snapshots always produce identical results."""

    def test_repeat_calls_identical(self, perpetual_client, global_increases):
        ledger = LicenseLedger([added(perpetual_client.id, 2, "300", "2025-05-01")])
        first = [
            calculate_client_monthly_billing(perpetual_client, 2026, m, global_increases, ledger)
            for m in range(1, 13)
        ]
        second = [
            calculate_client_monthly_billing(perpetual_client, 2026, m, global_increases, ledger)
            for m in range(1, 13)
        ]
        assert first == second
        assert calculate_perpetual_sm(perpetual_client, 2027, global_increases, ledger) == \
            calculate_perpetual_sm(perpetual_client, 2027, global_increases, ledger)

    def test_evaluation_hash_is_stable(self, installment_client):
        first = evaluate_monthly_billing(installment_client, 2025, 3)
        second = evaluate_monthly_billing(installment_client, 2025, 3)

        assert first.provenance_hash == second.provenance_hash
        assert len(first.provenance_hash) == 64

    def test_evaluation_hash_changes_with_inputs(self, installment_client):
        first = evaluate_monthly_billing(installment_client, 2025, 3)
        changed = evaluate_monthly_billing(installment_client.evolve(total=13000), 2025, 3)
        assert first.provenance_hash != changed.provenance_hash


# ==================== ERROR POLICY ====================

class TestErrorPolicy:
    """Lenient entry points default to zero; strict mode raises."""

    def test_unknown_model_lenient(self, installment_client):
        client = installment_client.evolve(billing_model="lease")
        assert client.billing_model == "lease"
        assert calculate_client_monthly_billing(client, 2025, 1) == Decimal("0.00")
        assert calculate_client_annual_total(client, 2025) == Decimal("0.00")

    def test_unknown_model_strict(self, installment_client, strict_config):
        client = installment_client.evolve(billing_model="lease")
        with pytest.raises(UnknownBillingModel) as exc_info:
            calculate_client_monthly_billing(client, 2025, 1, config=strict_config)

        assert exc_info.value.model == "lease"
        assert exc_info.value.error_code == "LB_CALC_UNKNOWN_BILLING_MODEL"

    def test_missing_deal_start_strict(self, installment_client, strict_config):
        client = installment_client.evolve(deal_start_date=None)
        with pytest.raises(MissingRequiredField) as exc_info:
            calculate_client_monthly_billing(client, 2025, 1, config=strict_config)
        assert exc_info.value.field_name == "deal_start_date"

    def test_invalid_month(self, installment_client, strict_config):
        assert calculate_client_monthly_billing(installment_client, 2025, 13) == Decimal("0.00")
        with pytest.raises(InvalidDateRange):
            calculate_client_monthly_billing(installment_client, 2025, 0, config=strict_config)

    def test_invalid_anniversary(self, perpetual_client, strict_config):
        client = perpetual_client.evolve(anniversary_month=14)
        with pytest.raises(InvalidDateRange):
            calculate_perpetual_sm(client, 2025, config=strict_config)

    def test_evaluate_reports_failure(self, installment_client):
        client = installment_client.evolve(billing_model="lease")
        result = evaluate_monthly_billing(client, 2025, 1)

        assert result.status == CalculationStatus.FAILED
        assert not result.ok
        assert result.amount == Decimal("0.00")
        assert result.error_code == "LB_CALC_UNKNOWN_BILLING_MODEL"
        assert result.billing_model == "lease"

    def test_evaluate_ignores_strict_mode(self, installment_client, strict_config):
        client = installment_client.evolve(deal_start_date=None)
        result = evaluate_monthly_billing(client, 2025, 1, config=strict_config)
        assert result.error_code == "LB_CALC_MISSING_REQUIRED_FIELD"

    def test_evaluate_success(self, installment_client):
        result = evaluate_monthly_billing(installment_client, 2025, 1)

        assert result.ok
        assert result.amount == Decimal("1000.00")
        assert result.error_code is None
        assert result.calculation_time_ms >= 0

    def test_custom_decimal_places(self, perpetual_client):
        client = perpetual_client.evolve(total=Decimal("10000"))
        config = BillingConfig(decimal_places=0)
        assert calculate_client_monthly_billing(client, 2025, 6, config=config) == Decimal("833")
