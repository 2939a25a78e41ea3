# -*- coding: utf-8 -*-
"""
Additional License Ledger

Append-only, per-client ordered record of license events. Seat additions
and seat decreases are both structured events (``LicenseAdded`` and
``LicenseDecreased``); the engine never reconstructs history from comment
text. Old records whose decreases only exist in ``Client.comments`` can be
migrated with :meth:`LicenseLedger.from_legacy`.

Computations:
    - net_license_impact: seats and value contributed in a given month
    - perpetual_license_contribution: prorated/free/full annual value
    - compute_decrease_credit: one-time credit for removed seats
    - base_seat_factor: share of the base still billed after decreases
    - credit_for_month / credit_for_year: credits applied in a period

Example:
    >>> ledger = LicenseLedger.from_records([
    ...     AdditionalLicense(client_id="c-1", quantity=1,
    ...                       price_per_unit=2000, start_date="2025-03-01"),
    ... ])
    >>> impact = net_license_impact(client, 2025, 12, ledger)

Author: licensebill Team
Date: October 2026
Status: Production Ready
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from pydantic import TypeAdapter

from licensebill.comments import decreases_from_comments
from licensebill.exceptions import LedgerError
from licensebill.increases import client_multiplier, resolve_multiplier
from licensebill.models import (
    AdditionalLicense,
    AnnualIncrease,
    BillingFrequency,
    BillingModel,
    Client,
    LicenseAdded,
    LicenseDecreased,
    LicenseEvent,
    LicenseImpact,
)
from licensebill.money import (
    TWELVE,
    ZERO,
    BillingDecimal,
    date_month_index,
    month_index,
)

logger = logging.getLogger(__name__)

_EVENT_ADAPTER = TypeAdapter(LicenseEvent)

Event = Union[LicenseAdded, LicenseDecreased]
LicenseSource = Union["LicenseLedger", Iterable[Any]]


# =============================================================================
# Ledger
# =============================================================================


class LicenseLedger:
    """Immutable ordered collection of license events.

    Events are ordered by effective date; events with the same date keep
    insertion order. Mutating operations return a new ledger.
    """

    __slots__ = ("_events",)

    def __init__(self, events: Iterable[Event] = ()):
        ordered = sorted(
            enumerate(events),
            key=lambda pair: (pair[1].effective_date, pair[0]),
        )
        self._events: Tuple[Event, ...] = tuple(e for _, e in ordered)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_records(cls, records: Iterable[Any]) -> LicenseLedger:
        """Build a ledger from stored rows, events or plain dicts.

        Dicts carrying a ``kind`` key are read as events; other dicts are read
        as ``AdditionalLicense`` rows. Rows without a start date are skipped.
        """
        events: List[Event] = []
        for record in records:
            event = _to_event(record)
            if event is not None:
                events.append(event)
        return cls(events)

    @classmethod
    def from_legacy(
        cls,
        client: Client,
        licenses: Iterable[Any] = (),
    ) -> LicenseLedger:
        """Build a client's ledger, recovering decreases from its comment log."""
        ledger = cls.from_records(
            r for r in licenses if _record_client_id(r) in (None, client.id)
        )
        recovered: List[Event] = []
        for entry in decreases_from_comments(client.comments):
            if entry.effective is None:
                logger.warning(
                    "Skipping decrease without effective month for client %s: %s",
                    client.id, entry.line,
                )
                continue
            applied = date(*entry.applied, 1) if entry.applied else None
            recovered.append(LicenseDecreased(
                client_id=client.id,
                quantity=entry.quantity,
                effective_date=date(*entry.effective, 1),
                reason=entry.reason,
                credit_amount=entry.amount,
                applied_on=applied,
            ))
        if recovered:
            logger.info(
                "Recovered %d decrease(s) from comments for client %s",
                len(recovered), client.id,
            )
        return cls(ledger._events + tuple(recovered))

    @classmethod
    def coerce(cls, source: Optional[LicenseSource]) -> LicenseLedger:
        if source is None:
            return cls()
        if isinstance(source, LicenseLedger):
            return source
        return cls.from_records(source)

    # ------------------------------------------------------------------
    # Mutation (returns new ledgers)
    # ------------------------------------------------------------------

    def append(self, event: Event) -> LicenseLedger:
        """Return a new ledger with ``event`` recorded.

        Raises:
            LedgerError: If the event quantity is not positive.
        """
        if event.quantity <= 0:
            raise LedgerError(
                f"License quantity must be positive, got {event.quantity}",
                client_id=event.client_id,
                context={"kind": event.kind, "quantity": event.quantity},
            )
        return LicenseLedger(self._events + (event,))

    def without_client(self, client_id: str) -> LicenseLedger:
        return LicenseLedger(e for e in self._events if e.client_id != client_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def for_client(self, client_id: str) -> Tuple[Event, ...]:
        return tuple(e for e in self._events if e.client_id == client_id)

    def additions(self, client_id: str) -> Tuple[LicenseAdded, ...]:
        return tuple(
            e for e in self._events
            if isinstance(e, LicenseAdded) and e.client_id == client_id
        )

    def decreases(self, client_id: str) -> Tuple[LicenseDecreased, ...]:
        return tuple(
            e for e in self._events
            if isinstance(e, LicenseDecreased) and e.client_id == client_id
        )

    @property
    def events(self) -> Tuple[Event, ...]:
        return self._events

    def __iter__(self) -> Iterator[Event]:
        return iter(self._events)

    def __len__(self) -> int:
        return len(self._events)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LicenseLedger):
            return NotImplemented
        return self._events == other._events

    def __hash__(self) -> int:
        return hash(self._events)

    def __repr__(self) -> str:
        return f"LicenseLedger(events={len(self._events)})"


def _record_client_id(record: Any) -> Optional[str]:
    if isinstance(record, dict):
        value = record.get("client_id", record.get("clientId"))
        return None if value is None else str(value)
    return getattr(record, "client_id", None)


def _to_event(record: Any) -> Optional[Event]:
    if isinstance(record, (LicenseAdded, LicenseDecreased)):
        return record
    if isinstance(record, dict) and "kind" in record:
        return _EVENT_ADAPTER.validate_python(record)
    row = record if isinstance(record, AdditionalLicense) else AdditionalLicense.model_validate(record)
    if row.start_date is None:
        logger.warning(
            "Skipping additional license without start date for client %s", row.client_id,
        )
        return None
    return LicenseAdded.from_license(row)


def migrate_legacy_client(
    client: Client,
    licenses: Iterable[Any] = (),
) -> Tuple[Client, LicenseLedger]:
    """Convert a legacy record to a base-seat client plus its ledger.

    Legacy records lowered ``users`` on every decrease. The recovered
    decrease events carry that reduction now, so the removed seats are
    added back to restore the base seat count.
    """
    ledger = LicenseLedger.from_legacy(client, licenses)
    removed = sum(e.quantity for e in ledger.decreases(client.id))
    if removed:
        client = client.evolve(users=client.users + removed)
    return client, ledger


# =============================================================================
# Perpetual proration
# =============================================================================


def perpetual_license_contribution(
    event: LicenseAdded,
    anniversary_month: int,
    year: int,
    increases: Iterable[AnnualIncrease] = (),
) -> Decimal:
    """Annual S&M contribution of one added license to ``year``.

    A license effective in month ``m`` of year ``L`` with anniversary ``A``:
        - m <= A: year L carries (A - m + 1)/12 of the value.
        - m > A: year L carries nothing; year L + 1 carries (12 - m + A)/12.
        - Later years carry the full value.
    Contributions after year L are compounded from L.
    """
    if not event.is_active:
        return ZERO
    start_year = event.effective_date.year
    m = event.effective_date.month
    value = Decimal(event.quantity) * event.price_per_unit
    if year < start_year:
        return ZERO

    if m <= anniversary_month:
        if year == start_year:
            return value * Decimal(anniversary_month - m + 1) / TWELVE
        fraction = Decimal(1)
    else:
        if year == start_year:
            return ZERO
        if year == start_year + 1:
            fraction = Decimal(12 - m + anniversary_month) / TWELVE
        else:
            fraction = Decimal(1)

    factor = resolve_multiplier(event.client_id, year, increases, baseline_year=start_year)
    return value * fraction * factor


# =============================================================================
# Non-perpetual monthly value
# =============================================================================


def _schedule_months(
    event: LicenseAdded,
    client: Client,
    default_installment_months: int,
) -> Optional[int]:
    if event.billing_periods:
        return event.billing_periods
    if client.billing_model == BillingModel.INSTALLMENT:
        return client.installment_months or default_installment_months
    return None


def monthly_license_value(
    event: LicenseAdded,
    client: Client,
    year: int,
    month: int,
    default_installment_months: int = 12,
) -> Decimal:
    """Monthly value of an addition for subscription, installment and rentals.

    Full ``quantity x price_per_unit`` from the effective month, limited to
    the addition's own schedule when it has one (installment additions run a
    parallel schedule of ``installment_months``).
    """
    if not event.is_active:
        return ZERO
    offset = month_index(year, month) - date_month_index(event.effective_date)
    if offset < 0:
        return ZERO
    periods = _schedule_months(event, client, default_installment_months)
    if periods is not None and offset >= periods:
        return ZERO
    return Decimal(event.quantity) * event.price_per_unit


# =============================================================================
# Net impact
# =============================================================================


def net_license_impact(
    client: Client,
    year: int,
    month: int,
    licenses: Optional[LicenseSource] = None,
    increases: Iterable[AnnualIncrease] = (),
    default_installment_months: int = 12,
) -> LicenseImpact:
    """Seats and value license events contribute to ``client`` in a month.

    Only active additions for the client effective on or before the queried
    month count. For perpetual clients ``incremental_value`` is the annual
    contribution for ``year``; for the other models it is the monthly value.
    Decreases in effect reduce ``incremental_users`` only. Their money effect
    is the one-time credit (see :func:`credit_for_month`) followed by the
    reduced base from the next invoice boundary (see :func:`base_seat_factor`).
    """
    ledger = LicenseLedger.coerce(licenses)
    query = month_index(year, month)
    increases = tuple(increases)

    users = 0
    value = ZERO
    perpetual = client.billing_model == BillingModel.PERPETUAL
    for event in ledger.for_client(client.id):
        if date_month_index(event.effective_date) > query:
            continue
        if isinstance(event, LicenseDecreased):
            users -= event.quantity
            continue
        if not event.is_active:
            continue
        users += event.quantity
        if perpetual:
            value += perpetual_license_contribution(
                event, client.anniversary_month, year, increases,
            )
        else:
            value += monthly_license_value(
                event, client, year, month, default_installment_months,
            )

    return LicenseImpact(incremental_users=users, incremental_value=value)


# =============================================================================
# Decrease credits
# =============================================================================


def _subscription_anchor(client: Client) -> Optional[date]:
    return (
        client.subscription_start_date
        or client.implementation_complete_date
        or client.deal_start_date
    )


def months_to_next_invoice(client: Client, effective: date) -> int:
    """Months from ``effective`` (inclusive) to the next invoice boundary."""
    m = effective.month
    if client.billing_model == BillingModel.PERPETUAL:
        remaining = (client.anniversary_month - m) % 12
        return remaining or 12
    if client.billing_model == BillingModel.SUBSCRIPTION:
        frequency = client.billing_frequency or BillingFrequency.MONTHLY
        anchor = _subscription_anchor(client)
        anchor_idx = date_month_index(anchor) if anchor else month_index(effective.year, 1)
        elapsed = (date_month_index(effective) - anchor_idx) % frequency.months
        return frequency.months - elapsed
    return 13 - m


def decrease_drop_index(client: Client, event: LicenseDecreased) -> int:
    """Month index from which a decrease's seats leave the billed base.

    Removed seats stay billed through the months the credit covers and drop
    out at the next invoice boundary.
    """
    effective = event.effective_date
    return date_month_index(effective) + months_to_next_invoice(client, effective)


def removed_base_seats(
    client: Client,
    year: int,
    month: int,
    licenses: Optional[LicenseSource] = None,
) -> int:
    """Base seats no longer billed in the month, capped at ``client.users``."""
    ledger = LicenseLedger.coerce(licenses)
    query = month_index(year, month)
    removed = sum(
        e.quantity for e in ledger.decreases(client.id)
        if decrease_drop_index(client, e) <= query
    )
    return min(removed, max(client.users, 0))


def base_seat_factor(
    client: Client,
    year: int,
    month: int,
    licenses: Optional[LicenseSource] = None,
) -> Decimal:
    """Share of the base value (``total``, stored months) still billed in the month.

    ``users`` is the seat count the base value was priced for; decreases
    never rewrite it, so months before a decrease keep their figures.
    """
    if client.users <= 0:
        return Decimal(1)
    removed = removed_base_seats(client, year, month, licenses)
    if removed == 0:
        return Decimal(1)
    return Decimal(client.users - removed) / Decimal(client.users)


def seats_in_effect(
    client: Client,
    year: int,
    month: int,
    licenses: Optional[LicenseSource] = None,
) -> int:
    """Base seats plus added seats less removed seats effective by the month."""
    impact = net_license_impact(client, year, month, licenses)
    return max(client.users + impact.incremental_users, 0)


def per_seat_monthly_rate(
    client: Client,
    year: int,
    increases: Iterable[AnnualIncrease] = (),
    default_installment_months: int = 12,
) -> Decimal:
    """Monthly value of one base seat, by billing model.

    Divides by the base ``users`` the stored value was priced for, so the
    rate does not change as seats are removed.
    """
    if client.users <= 0:
        return ZERO
    users = Decimal(client.users)
    if client.billing_model == BillingModel.PERPETUAL:
        annual = client.total * client_multiplier(client, year, increases)
        return annual / users / TWELVE
    if client.billing_model == BillingModel.SUBSCRIPTION:
        return client.monthly_license_rate
    if client.billing_model == BillingModel.INSTALLMENT:
        months = client.installment_months or default_installment_months
        return BillingDecimal.divide(client.total, months) / users
    return client.total / users / TWELVE


def compute_decrease_credit(
    client: Client,
    quantity: int,
    effective: date,
    increases: Iterable[AnnualIncrease] = (),
    default_installment_months: int = 12,
) -> Decimal:
    """One-time credit for removing ``quantity`` seats from ``effective``.

    ``per_seat_monthly_rate x quantity x months_to_next_invoice``, evaluated
    against the base seat count. Unrounded.
    """
    if quantity <= 0 or client.users <= 0:
        return ZERO
    rate = per_seat_monthly_rate(client, effective.year, increases, default_installment_months)
    months = months_to_next_invoice(client, effective)
    credit = rate * Decimal(quantity) * Decimal(months)
    logger.debug(
        "Decrease credit for client %s: rate=%s qty=%d months=%d credit=%s",
        client.id, rate, quantity, months, credit,
    )
    return credit


def _event_credit(
    event: LicenseDecreased,
    client: Client,
    increases: Sequence[AnnualIncrease],
    default_installment_months: int,
) -> Decimal:
    if event.credit_amount is not None:
        return event.credit_amount
    return compute_decrease_credit(
        client, event.quantity, event.effective_date, increases, default_installment_months,
    )


def credit_for_month(
    client: Client,
    year: int,
    month: int,
    licenses: Optional[LicenseSource] = None,
    increases: Iterable[AnnualIncrease] = (),
    default_installment_months: int = 12,
) -> Decimal:
    """Total decrease credits applied to ``client`` in the given month."""
    ledger = LicenseLedger.coerce(licenses)
    increases = tuple(increases)
    query = month_index(year, month)
    total = ZERO
    for event in ledger.decreases(client.id):
        if date_month_index(event.credit_date) == query:
            total += _event_credit(event, client, increases, default_installment_months)
    return total


def credit_for_year(
    client: Client,
    year: int,
    licenses: Optional[LicenseSource] = None,
    increases: Iterable[AnnualIncrease] = (),
    default_installment_months: int = 12,
) -> Decimal:
    """Total decrease credits applied to ``client`` during ``year``."""
    ledger = LicenseLedger.coerce(licenses)
    increases = tuple(increases)
    total = ZERO
    for event in ledger.decreases(client.id):
        if event.credit_date.year == year:
            total += _event_credit(event, client, increases, default_installment_months)
    return total


__all__ = [
    "LicenseLedger",
    "migrate_legacy_client",
    "perpetual_license_contribution",
    "monthly_license_value",
    "net_license_impact",
    "months_to_next_invoice",
    "decrease_drop_index",
    "removed_base_seats",
    "base_seat_factor",
    "seats_in_effect",
    "per_seat_monthly_rate",
    "compute_decrease_credit",
    "credit_for_month",
    "credit_for_year",
]
