# -*- coding: utf-8 -*-
"""Pytest configuration and shared fixtures."""

from decimal import Decimal

import pytest

from licensebill.config import BillingConfig, reset_config, set_config
from licensebill.models import AnnualIncrease, Client, VarClient, VarPartner
from licensebill.service import reset_billing_service


@pytest.fixture(autouse=True)
def billing_config():
    """Install a default configuration for every test, ignoring the environment."""
    config = BillingConfig()
    set_config(config)
    yield config
    reset_config()
    reset_billing_service()


@pytest.fixture
def strict_config():
    return BillingConfig(strict_mode=True)


# ==================== CLIENTS ====================

@pytest.fixture
def perpetual_client():
    """Perpetual client: S&M of 12,000 a year, deal in January 2024, anniversary March."""
    return Client(
        id="p-1",
        client_name="Acme Mining",
        billing_model="perpetual",
        currency="ZAR",
        users=10,
        total=Decimal("12000"),
        deal_start_date="2024-01-15",
        anniversary_month=3,
    )


@pytest.fixture
def subscription_client():
    """Monthly subscription: 10 users at 100 each from January 2025."""
    return Client(
        id="s-1",
        client_name="Beta Logistics",
        billing_model="subscription",
        currency="ZAR",
        users=10,
        monthly_license_rate=Decimal("100"),
        subscription_start_date="2025-01-01",
        deal_start_date="2025-01-01",
        billing_frequency="monthly",
    )


@pytest.fixture
def installment_client():
    """Installment client: 12,000 over 12 months from January 2025."""
    return Client(
        id="i-1",
        client_name="Gamma Foods",
        billing_model="installment",
        currency="ZAR",
        users=10,
        total=Decimal("12000"),
        installment_months=12,
        deal_start_date="2025-01-01",
    )


@pytest.fixture
def rentals_client():
    """Rental client billing 500 a month, starting April 2025."""
    months = {key: Decimal("500") for key in (
        "jan", "feb", "mar", "apr", "may", "jun",
        "jul", "aug", "sep", "oct", "nov", "dec",
    )}
    return Client(
        id="r-1",
        client_name="Delta Rentals",
        billing_model="rentals",
        currency="USD",
        users=3,
        total=Decimal("6000"),
        deal_start_date="2025-04-01",
        **months,
    )


@pytest.fixture
def var_partner():
    return VarPartner(id="vp-1", name="Reseller One", region="Gauteng", commission_rate=Decimal("15"))


@pytest.fixture
def var_client():
    """VAR client whose monthly values hold 100 of commission each."""
    months = {key: Decimal("100") for key in (
        "jan", "feb", "mar", "apr", "may", "jun",
        "jul", "aug", "sep", "oct", "nov", "dec",
    )}
    return VarClient(
        id="v-1",
        client_name="Epsilon via Reseller",
        billing_model="rentals",
        currency="ZAR",
        users=2,
        var_partner_id="vp-1",
        commission_rate=Decimal("15"),
        deal_start_date="2024-01-01",
        **months,
    )


# ==================== INCREASES ====================

@pytest.fixture
def global_increases():
    """Global increases of 5% in 2026 and 10% in 2027."""
    return (
        AnnualIncrease(year=2026, percentage=Decimal("5")),
        AnnualIncrease(year=2027, percentage=Decimal("10")),
    )
