# -*- coding: utf-8 -*-
"""
licensebill Data Models

Pydantic v2 value objects for the billing engine. Entity records are frozen
snapshots handed to the engine by the persistence layer; they accept both
the camelCase keys stored by the desktop application and snake_case names.

Models:
    - Enums: BillingModel, BillingFrequency, CalculationStatus, ChangeType
    - Entities: Client, VarClient, VarPartner, AdditionalLicense,
                AnnualIncrease
    - Ledger events: LicenseAdded, LicenseDecreased (LicenseEvent union)
    - Audit: ChangeLogEntry
    - Results: LicenseImpact, MonthlyBreakdown, CalculationResult,
               ClientYearRow, PortfolioMetrics, CurrencyMonth,
               PeriodProjection

Author: licensebill Team
Date: October 2026
Status: Production Ready
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Dict, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from licensebill.money import MONTH_KEYS, ZERO, parse_date, to_decimal

logger = logging.getLogger(__name__)


# =============================================================================
# Enumerations
# =============================================================================


class BillingModel(str, Enum):
    """Commercial model a client is billed under."""
    PERPETUAL = "perpetual"
    SUBSCRIPTION = "subscription"
    INSTALLMENT = "installment"
    RENTALS = "rentals"


class BillingFrequency(str, Enum):
    """Invoice cadence for subscription clients."""
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    SEMI_ANNUAL = "semi_annual"
    ANNUAL = "annual"

    @property
    def months(self) -> int:
        """Number of months one invoice covers."""
        return _FREQUENCY_MONTHS[self]


_FREQUENCY_MONTHS = {
    BillingFrequency.MONTHLY: 1,
    BillingFrequency.QUARTERLY: 3,
    BillingFrequency.SEMI_ANNUAL: 6,
    BillingFrequency.ANNUAL: 12,
}

_FREQUENCY_ALIASES = {
    "semi-annual": BillingFrequency.SEMI_ANNUAL,
    "semiannual": BillingFrequency.SEMI_ANNUAL,
    "biannual": BillingFrequency.SEMI_ANNUAL,
    "bi-annual": BillingFrequency.SEMI_ANNUAL,
    "annually": BillingFrequency.ANNUAL,
    "yearly": BillingFrequency.ANNUAL,
}


class CalculationStatus(str, Enum):
    """Outcome of an evaluated calculation."""
    SUCCESS = "success"
    FAILED = "failed"


class ChangeType(str, Enum):
    """Mutations recorded in the service change log."""
    CLIENT_ADDED = "client_added"
    CLIENT_UPDATED = "client_updated"
    CLIENT_DEACTIVATED = "client_deactivated"
    CLIENT_REMOVED = "client_removed"
    VAR_PARTNER_ADDED = "var_partner_added"
    VAR_CLIENT_ADDED = "var_client_added"
    LICENSE_ADDED = "license_added"
    LICENSE_DECREASED = "license_decreased"
    INCREASE_APPLIED = "increase_applied"
    INCREASES_RESET = "increases_reset"
    INVOICE_FLAG_SET = "invoice_flag_set"


# =============================================================================
# Coercion helpers
# =============================================================================


def _to_int(v: Any) -> int:
    return int(to_decimal(v))


def _to_optional_int(v: Any) -> Optional[int]:
    if v is None or (isinstance(v, str) and not v.strip()):
        return None
    return int(to_decimal(v))


def _to_optional_str(v: Any) -> Optional[str]:
    if v is None:
        return None
    text = str(v).strip()
    return text or None


def coerce_billing_model(v: Any) -> Union[BillingModel, str]:
    """Map a stored model string onto BillingModel, keeping unknown values raw."""
    if isinstance(v, BillingModel):
        return v
    text = "" if v is None else str(v).strip().lower()
    try:
        return BillingModel(text)
    except ValueError:
        return text


def coerce_frequency(v: Any) -> Optional[BillingFrequency]:
    """Map a stored frequency onto BillingFrequency; unknown values become None.

    None bills monthly.
    """
    if v is None or isinstance(v, BillingFrequency):
        return v
    text = str(v).strip().lower()
    if not text:
        return None
    if text in _FREQUENCY_ALIASES:
        return _FREQUENCY_ALIASES[text]
    try:
        return BillingFrequency(text.replace("-", "_"))
    except ValueError:
        logger.warning("Unknown billing frequency %r, billing monthly", v)
        return None


# =============================================================================
# Entity records
# =============================================================================


class BillingRecord(BaseModel):
    """Base for persisted records: frozen, camelCase or snake_case keys."""

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        extra="ignore",
    )

    def evolve(self, **changes: Any) -> BillingRecord:
        """Return a validated copy with ``changes`` applied."""
        data = self.model_dump()
        data.update(changes)
        return type(self).model_validate(data)


def _default_currency() -> str:
    from licensebill.config import get_config

    return get_config().default_currency


class Client(BillingRecord):
    """One billable account with its stored monthly snapshot."""

    id: str = Field(..., description="Opaque client key")
    client_name: str = Field(default="", description="Display name")
    debt_code: Optional[str] = Field(None, description="External debtor reference")

    billing_model: Union[BillingModel, str] = Field(
        default=BillingModel.PERPETUAL, description="Commercial billing model",
    )
    currency: str = Field(default_factory=_default_currency, description="Currency code")
    users: int = Field(default=0, description="Base seat count")
    deal_start_date: Optional[date] = Field(None, description="Contract start date")
    anniversary_month: int = Field(default=1, description="Billing-cycle month (1-12)")

    billing_frequency: Optional[BillingFrequency] = Field(
        None, description="Subscription invoice cadence",
    )
    subscription_duration: Optional[int] = Field(
        None, description="Subscription term in months",
    )
    subscription_start_date: Optional[date] = Field(None, description="Subscription start")
    monthly_license_rate: Decimal = Field(default=ZERO, description="Per-seat monthly rate")
    implementation_fee: Decimal = Field(default=ZERO, description="One-off implementation fee")
    implementation_months: Optional[int] = Field(
        None, description="Months the implementation fee is spread over",
    )
    implementation_start_date: Optional[date] = Field(None, description="Implementation start")
    implementation_complete_date: Optional[date] = Field(
        None, description="Implementation completion",
    )
    installment_months: Optional[int] = Field(None, description="Installment period in months")

    jan: Decimal = ZERO
    feb: Decimal = ZERO
    mar: Decimal = ZERO
    apr: Decimal = ZERO
    may: Decimal = ZERO
    jun: Decimal = ZERO
    jul: Decimal = ZERO
    aug: Decimal = ZERO
    sep: Decimal = ZERO
    oct: Decimal = ZERO
    nov: Decimal = ZERO
    dec: Decimal = ZERO
    total: Decimal = Field(default=ZERO, description="Stored annual value")

    comments: str = Field(default="", description="Free-text comment and event log")
    is_active: bool = Field(default=True, description="Soft-delete flag")

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v: Any) -> Any:
        return v if v is None else str(v)

    @field_validator("billing_model", mode="before")
    @classmethod
    def _coerce_model(cls, v: Any) -> Any:
        return coerce_billing_model(v)

    @field_validator("billing_frequency", mode="before")
    @classmethod
    def _coerce_frequency(cls, v: Any) -> Any:
        return coerce_frequency(v)

    @field_validator(
        "monthly_license_rate", "implementation_fee", "total",
        *MONTH_KEYS, mode="before",
    )
    @classmethod
    def _coerce_money(cls, v: Any) -> Decimal:
        return to_decimal(v)

    @field_validator("users", mode="before")
    @classmethod
    def _coerce_users(cls, v: Any) -> int:
        return _to_int(v)

    @field_validator("anniversary_month", mode="before")
    @classmethod
    def _coerce_anniversary(cls, v: Any) -> int:
        return _to_optional_int(v) or 1

    @field_validator(
        "subscription_duration", "implementation_months", "installment_months",
        mode="before",
    )
    @classmethod
    def _coerce_optional_int(cls, v: Any) -> Optional[int]:
        return _to_optional_int(v)

    @field_validator(
        "deal_start_date", "subscription_start_date",
        "implementation_start_date", "implementation_complete_date",
        mode="before",
    )
    @classmethod
    def _coerce_date(cls, v: Any) -> Optional[date]:
        return parse_date(v)

    @field_validator("debt_code", mode="before")
    @classmethod
    def _coerce_debt_code(cls, v: Any) -> Optional[str]:
        return _to_optional_str(v)

    @field_validator("comments", mode="before")
    @classmethod
    def _coerce_comments(cls, v: Any) -> str:
        return "" if v is None else str(v)

    def monthly_values(self) -> Tuple[Decimal, ...]:
        """Stored snapshot values, January first."""
        return tuple(getattr(self, key) for key in MONTH_KEYS)

    @property
    def billing_model_name(self) -> str:
        """Billing model as a plain string, known or not."""
        model = self.billing_model
        return model.value if isinstance(model, BillingModel) else str(model)


class VarClient(Client):
    """Client billed through a reseller; monthly values hold commission."""

    var_partner_id: str = Field(default="", description="Owning VAR partner")
    commission_rate: Decimal = Field(
        default=ZERO, description="Nominal commission percentage (informational)",
    )

    @field_validator("var_partner_id", mode="before")
    @classmethod
    def _coerce_partner(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("commission_rate", mode="before")
    @classmethod
    def _coerce_rate(cls, v: Any) -> Decimal:
        return to_decimal(v)


class VarPartner(BillingRecord):
    """Reseller identity."""

    id: str = Field(..., description="Partner key")
    name: str = Field(default="", description="Partner name")
    region: str = Field(default="", description="Sales region")
    contact_person: str = Field(default="", description="Primary contact")
    email: str = Field(default="", description="Contact email")
    phone: str = Field(default="", description="Contact phone")
    commission_rate: Decimal = Field(default=ZERO, description="Nominal commission rate")
    is_active: bool = Field(default=True, description="Soft-delete flag")

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v: Any) -> Any:
        return v if v is None else str(v)

    @field_validator("commission_rate", mode="before")
    @classmethod
    def _coerce_rate(cls, v: Any) -> Decimal:
        return to_decimal(v)


class AdditionalLicense(BillingRecord):
    """Stored row for a seat addition."""

    id: Optional[str] = Field(None, description="Row key")
    client_id: str = Field(..., description="Client the seats belong to")
    license_type: str = Field(default="", description="License product name")
    quantity: int = Field(default=0, description="Seats added")
    price_per_unit: Decimal = Field(
        default=ZERO, description="Annual (perpetual) or monthly value per seat",
    )
    start_date: Optional[date] = Field(None, description="Effective date")
    is_active: bool = Field(default=True, description="Soft-delete flag")
    billing_periods: Optional[int] = Field(
        None, description="Months the addition is billed for (non-perpetual)",
    )
    currency: Optional[str] = Field(None, description="Currency of price_per_unit")

    @field_validator("id", "client_id", mode="before")
    @classmethod
    def _coerce_key(cls, v: Any) -> Any:
        return v if v is None else str(v)

    @field_validator("quantity", mode="before")
    @classmethod
    def _coerce_quantity(cls, v: Any) -> int:
        return _to_int(v)

    @field_validator("billing_periods", mode="before")
    @classmethod
    def _coerce_periods(cls, v: Any) -> Optional[int]:
        return _to_optional_int(v)

    @field_validator("price_per_unit", mode="before")
    @classmethod
    def _coerce_price(cls, v: Any) -> Decimal:
        return to_decimal(v)

    @field_validator("start_date", mode="before")
    @classmethod
    def _coerce_date(cls, v: Any) -> Optional[date]:
        return parse_date(v)


class AnnualIncrease(BillingRecord):
    """Percentage increase for a year, global or client-specific."""

    year: int = Field(..., description="Calendar year the increase applies to")
    percentage: Decimal = Field(..., description="Increase percentage")
    client_id: Optional[str] = Field(None, description="Client override; None is global")

    @field_validator("year", mode="before")
    @classmethod
    def _coerce_year(cls, v: Any) -> int:
        return _to_int(v)

    @field_validator("percentage", mode="before")
    @classmethod
    def _coerce_percentage(cls, v: Any) -> Decimal:
        return to_decimal(v)

    @field_validator("client_id", mode="before")
    @classmethod
    def _coerce_client(cls, v: Any) -> Optional[str]:
        return _to_optional_str(v)

    @property
    def is_global(self) -> bool:
        return self.client_id is None


# =============================================================================
# License ledger events
# =============================================================================


class LicenseAdded(BillingRecord):
    """Seats added to a client from ``effective_date``."""

    kind: Literal["added"] = "added"
    client_id: str = Field(..., description="Client the seats belong to")
    quantity: int = Field(..., description="Seats added")
    price_per_unit: Decimal = Field(default=ZERO, description="Value per seat")
    effective_date: date = Field(..., description="First month in effect")
    license_type: str = Field(default="", description="License product name")
    billing_periods: Optional[int] = Field(None, description="Months billed (non-perpetual)")
    currency: Optional[str] = Field(None, description="Currency of price_per_unit")
    is_active: bool = Field(default=True, description="Soft-delete flag")

    @field_validator("client_id", mode="before")
    @classmethod
    def _coerce_key(cls, v: Any) -> Any:
        return v if v is None else str(v)

    @field_validator("quantity", mode="before")
    @classmethod
    def _coerce_quantity(cls, v: Any) -> int:
        return _to_int(v)

    @field_validator("billing_periods", mode="before")
    @classmethod
    def _coerce_periods(cls, v: Any) -> Optional[int]:
        return _to_optional_int(v)

    @field_validator("price_per_unit", mode="before")
    @classmethod
    def _coerce_price(cls, v: Any) -> Decimal:
        return to_decimal(v)

    @field_validator("effective_date", mode="before")
    @classmethod
    def _coerce_date(cls, v: Any) -> Any:
        return parse_date(v)

    @classmethod
    def from_license(cls, row: AdditionalLicense) -> LicenseAdded:
        return cls(
            client_id=row.client_id,
            quantity=row.quantity,
            price_per_unit=row.price_per_unit,
            effective_date=row.start_date,
            license_type=row.license_type,
            billing_periods=row.billing_periods,
            currency=row.currency,
            is_active=row.is_active,
        )


class LicenseDecreased(BillingRecord):
    """Seats removed from ``effective_date`` with a one-time credit."""

    kind: Literal["decreased"] = "decreased"
    client_id: str = Field(..., description="Client the seats are removed from")
    quantity: int = Field(..., description="Seats removed")
    effective_date: date = Field(..., description="First month without the seats")
    reason: str = Field(default="", description="Reason given for the decrease")
    credit_amount: Optional[Decimal] = Field(
        None, description="Precomputed credit; derived when absent",
    )
    applied_on: Optional[date] = Field(
        None, description="Month the credit is applied (defaults to effective month)",
    )

    @field_validator("client_id", mode="before")
    @classmethod
    def _coerce_key(cls, v: Any) -> Any:
        return v if v is None else str(v)

    @field_validator("quantity", mode="before")
    @classmethod
    def _coerce_quantity(cls, v: Any) -> int:
        return _to_int(v)

    @field_validator("credit_amount", mode="before")
    @classmethod
    def _coerce_credit(cls, v: Any) -> Optional[Decimal]:
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        return to_decimal(v)

    @field_validator("effective_date", "applied_on", mode="before")
    @classmethod
    def _coerce_date(cls, v: Any) -> Any:
        return parse_date(v)

    @property
    def credit_date(self) -> date:
        return self.applied_on or self.effective_date


LicenseEvent = Annotated[
    Union[LicenseAdded, LicenseDecreased], Field(discriminator="kind"),
]


# =============================================================================
# Results
# =============================================================================


class LicenseImpact(BaseModel):
    """Net effect of license events on a client for one month."""
    incremental_users: int = Field(default=0, description="Net seats added")
    incremental_value: Decimal = Field(default=ZERO, description="Incremental value")

    model_config = ConfigDict(frozen=True, extra="forbid")


class MonthlyBreakdown(BaseModel):
    """Twelve monthly amounts for a year plus their sum."""
    year: int = Field(..., description="Calendar year")
    months: Tuple[Decimal, ...] = Field(..., description="January..December amounts")
    total: Decimal = Field(..., description="Sum of months")

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("months")
    @classmethod
    def _twelve_months(cls, v: Tuple[Decimal, ...]) -> Tuple[Decimal, ...]:
        if len(v) != 12:
            raise ValueError(f"months must have 12 entries, got {len(v)}")
        return v

    def to_snapshot(self) -> Dict[str, Decimal]:
        """Mapping of ``jan..dec`` and ``total`` for a client record."""
        snapshot = dict(zip(MONTH_KEYS, self.months))
        snapshot["total"] = self.total
        return snapshot


class CalculationResult(BaseModel):
    """Typed outcome of a single monthly billing evaluation."""
    client_id: str = Field(..., description="Client evaluated")
    year: int = Field(..., description="Year evaluated")
    month: int = Field(..., description="Month evaluated")
    billing_model: str = Field(..., description="Billing model as stored")
    status: CalculationStatus = Field(..., description="success or failed")
    amount: Decimal = Field(default=ZERO, description="Billed amount (0 when failed)")
    error_code: Optional[str] = Field(None, description="Error code when failed")
    error_message: Optional[str] = Field(None, description="Error message when failed")
    provenance_hash: str = Field(default="", description="SHA-256 of inputs and output")
    calculation_time_ms: float = Field(default=0.0, description="Wall time in ms")

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def ok(self) -> bool:
        return self.status == CalculationStatus.SUCCESS


class ClientYearRow(BaseModel):
    """One client's twelve monthly figures for a year."""
    client_id: str
    client_name: str
    currency: str
    months: Tuple[Decimal, ...]
    total: Decimal

    model_config = ConfigDict(frozen=True, extra="forbid")


class PortfolioMetrics(BaseModel):
    """Headline dashboard figures for a year and month."""
    year: int = Field(..., description="Year reported")
    month: int = Field(..., description="Month used for the monthly figures")
    total_licenses: int = Field(default=0, description="Seats across active clients")
    active_clients: int = Field(default=0, description="Active clients and VAR clients")
    revenue_by_currency: Dict[str, Decimal] = Field(
        default_factory=dict, description="Annual revenue per currency",
    )
    monthly_billing_by_currency: Dict[str, Decimal] = Field(
        default_factory=dict, description="Billing for the month per currency",
    )

    model_config = ConfigDict(frozen=True, extra="forbid")


class CurrencyMonth(BaseModel):
    """One row of the per-currency monthly table."""
    month: int = Field(..., description="Month number")
    revenue: Decimal = Field(default=ZERO, description="Revenue billed in the month")
    billing_clients: int = Field(default=0, description="Clients billed a non-zero amount")
    growth_pct: Decimal = Field(default=ZERO, description="Month-over-month growth %")

    model_config = ConfigDict(frozen=True, extra="forbid")


def _utcnow() -> datetime:
    """Return current UTC datetime with microseconds zeroed."""
    return datetime.now(timezone.utc).replace(microsecond=0)


class ChangeLogEntry(BaseModel):
    """Audit log entry for a service mutation."""
    log_id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        description="Unique log ID",
    )
    timestamp: datetime = Field(default_factory=_utcnow, description="Change timestamp")
    change_type: ChangeType = Field(..., description="Type of change")
    entity_id: str = Field(..., description="Client, partner or table affected")
    details: Dict[str, Any] = Field(default_factory=dict, description="Change details")
    provenance_hash: str = Field(default="", description="SHA-256 chain hash")

    model_config = {"extra": "forbid"}


class PeriodProjection(BaseModel):
    """Revenue for a half-year period."""
    label: str = Field(..., description="Display label, e.g. 'Jan-Jun 2026'")
    year: int = Field(..., description="Year of the period")
    start_month: int = Field(..., description="First month")
    end_month: int = Field(..., description="Last month")
    revenue_by_currency: Dict[str, Decimal] = Field(
        default_factory=dict, description="Revenue per currency",
    )

    model_config = ConfigDict(frozen=True, extra="forbid")


__all__ = [
    "BillingModel",
    "BillingFrequency",
    "CalculationStatus",
    "ChangeType",
    "coerce_billing_model",
    "coerce_frequency",
    "BillingRecord",
    "Client",
    "VarClient",
    "VarPartner",
    "AdditionalLicense",
    "AnnualIncrease",
    "LicenseAdded",
    "LicenseDecreased",
    "LicenseEvent",
    "LicenseImpact",
    "MonthlyBreakdown",
    "CalculationResult",
    "ClientYearRow",
    "PortfolioMetrics",
    "CurrencyMonth",
    "ChangeLogEntry",
    "PeriodProjection",
]
