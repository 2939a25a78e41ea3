# -*- coding: utf-8 -*-
"""
licensebill: Software License Billing Engine
============================================

Calculates what a software-licensing business bills each client per month
and per year across four billing models, plus VAR commission. It supports:

- Perpetual licenses with annual support & maintenance (S&M)
- Subscriptions with optional implementation fees and periodic invoicing
- Installment plans and rentals
- VAR partner commission totals
- Compounding annual increases (global or per client)
- Added and decreased seats with prorated decrease credits
- Portfolio aggregates grouped by currency
- SHA-256 provenance tracking of service mutations
- Prometheus metrics for observability
- Thread-safe configuration with LB_BILLING_ env prefix

Key Components:
    - engine: pure calculation entry points
    - calculators: per-model monthly rules
    - ledger: LicenseLedger of added/decreased seat events
    - increases: annual increase table and multipliers
    - portfolio: dashboard aggregates
    - service: BillingService facade with cache and invoice flags
    - config: BillingConfig with LB_BILLING_ env prefix

Example:
    >>> from licensebill import Client, calculate_client_monthly_billing
    >>> client = Client(id="c-1", billing_model="installment", total=12000,
    ...                 deal_start_date="2025-01-01")
    >>> calculate_client_monthly_billing(client, 2025, 3)
    Decimal('1000.00')
"""

__version__ = "1.0.0"

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------
from licensebill.config import (
    BillingConfig,
    get_config,
    set_config,
    reset_config,
)

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------
from licensebill.exceptions import (
    BillingException,
    CalculationError,
    MissingRequiredField,
    UnknownBillingModel,
    InvalidDateRange,
    LedgerError,
    ConfigurationError,
)

# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------
from licensebill.models import (
    # Enumerations
    BillingModel,
    BillingFrequency,
    CalculationStatus,
    ChangeType,
    # Entities
    Client,
    VarClient,
    VarPartner,
    AdditionalLicense,
    AnnualIncrease,
    # Ledger events
    LicenseAdded,
    LicenseDecreased,
    LicenseEvent,
    # Results
    LicenseImpact,
    MonthlyBreakdown,
    CalculationResult,
    ClientYearRow,
    PortfolioMetrics,
    CurrencyMonth,
    PeriodProjection,
    # Audit
    ChangeLogEntry,
)

# ---------------------------------------------------------------------------
# Core engines
# ---------------------------------------------------------------------------
from licensebill.money import BillingDecimal, format_currency, quantize_money
from licensebill.increases import (
    resolve_multiplier,
    client_multiplier,
    apply_global_increase,
    apply_client_increase,
    reset_increases,
)
from licensebill.ledger import (
    LicenseLedger,
    net_license_impact,
    compute_decrease_credit,
    seats_in_effect,
    migrate_legacy_client,
)
from licensebill.engine import (
    calculate_client_monthly_billing,
    calculate_client_annual_total,
    calculate_perpetual_sm,
    calculate_subscription_monthly_breakdown,
    calculate_var_client_total,
    monthly_breakdown,
    evaluate_monthly_billing,
)
from licensebill.portfolio import (
    portfolio_metrics,
    average_revenue_per_client,
    monthly_trend,
    currency_month_table,
    half_year_projections,
    annual_comparison,
    clients_by_model,
)
from licensebill.provenance import ProvenanceTracker, calculation_hash

# ---------------------------------------------------------------------------
# Service facade
# ---------------------------------------------------------------------------
from licensebill.service import (
    BillingService,
    get_billing_service,
    reset_billing_service,
)

__all__ = [
    # Version
    "__version__",
    # Configuration
    "BillingConfig",
    "get_config",
    "set_config",
    "reset_config",
    # Exceptions
    "BillingException",
    "CalculationError",
    "MissingRequiredField",
    "UnknownBillingModel",
    "InvalidDateRange",
    "LedgerError",
    "ConfigurationError",
    # Enumerations
    "BillingModel",
    "BillingFrequency",
    "CalculationStatus",
    "ChangeType",
    # Entities
    "Client",
    "VarClient",
    "VarPartner",
    "AdditionalLicense",
    "AnnualIncrease",
    # Ledger events
    "LicenseAdded",
    "LicenseDecreased",
    "LicenseEvent",
    # Results
    "LicenseImpact",
    "MonthlyBreakdown",
    "CalculationResult",
    "ClientYearRow",
    "PortfolioMetrics",
    "CurrencyMonth",
    "PeriodProjection",
    "ChangeLogEntry",
    # Money
    "BillingDecimal",
    "format_currency",
    "quantize_money",
    # Increases
    "resolve_multiplier",
    "client_multiplier",
    "apply_global_increase",
    "apply_client_increase",
    "reset_increases",
    # Ledger
    "LicenseLedger",
    "net_license_impact",
    "compute_decrease_credit",
    "seats_in_effect",
    "migrate_legacy_client",
    # Engine
    "calculate_client_monthly_billing",
    "calculate_client_annual_total",
    "calculate_perpetual_sm",
    "calculate_subscription_monthly_breakdown",
    "calculate_var_client_total",
    "monthly_breakdown",
    "evaluate_monthly_billing",
    # Portfolio
    "portfolio_metrics",
    "average_revenue_per_client",
    "monthly_trend",
    "currency_month_table",
    "half_year_projections",
    "annual_comparison",
    "clients_by_model",
    # Provenance
    "ProvenanceTracker",
    "calculation_hash",
    # Service
    "BillingService",
    "get_billing_service",
    "reset_billing_service",
]
