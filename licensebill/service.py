# -*- coding: utf-8 -*-
"""
Billing Service Facade

``BillingService`` holds an in-memory snapshot of clients, VAR partners, VAR
clients, the license ledger, the annual increase table and invoice flags,
and exposes the mutations the desktop screens perform together with cached
reads through the billing engine.

Cache policy:
    Monthly figures are cached per ``(client_id, year)``. Any mutation that
    touches a client drops that client's entries; any change to the increase
    table clears the whole cache. The cache is bounded by
    ``BillingConfig.cache_max_size`` (least recently used entries go first).

Usage:
    >>> from licensebill.service import BillingService
    >>> service = BillingService()
    >>> service.add_client({"id": "c-1", "billingModel": "installment",
    ...                     "total": 12000, "dealStartDate": "2025-01-01"})
    >>> service.monthly_billing("c-1", 2025, 3)
    Decimal('1000.00')

Author: licensebill Team
Date: October 2026
Status: Production Ready
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from licensebill.comments import append_comment, format_added_line, format_decreased_line
from licensebill.config import BillingConfig, get_config
from licensebill.engine import (
    calculate_client_annual_total,
    calculate_subscription_monthly_breakdown,
    calculate_var_client_total,
    monthly_breakdown,
)
from licensebill.exceptions import LedgerError
from licensebill import increases as increase_table
from licensebill.ledger import (
    LicenseLedger,
    LicenseSource,
    compute_decrease_credit,
    seats_in_effect,
)
from licensebill.metrics import record_cache_hit, record_cache_miss, update_ledger_size
from licensebill.models import (
    AnnualIncrease,
    BillingModel,
    ChangeType,
    Client,
    LicenseAdded,
    LicenseDecreased,
    MonthlyBreakdown,
    PortfolioMetrics,
    VarClient,
    VarPartner,
)
from licensebill.money import MONTH_KEYS, BillingDecimal, parse_date
from licensebill.portfolio import portfolio_metrics
from licensebill.provenance import ProvenanceTracker

logger = logging.getLogger(__name__)

ClientInput = Union[Client, Dict[str, Any]]


# ===================================================================
# Snapshot preparation
# ===================================================================


def prepare_client_snapshot(
    client: Client,
    year: Optional[int] = None,
    config: Optional[BillingConfig] = None,
) -> Client:
    """Fill the stored ``jan..dec``/``total`` fields of a newly entered client.

    Subscription clients get the computed breakdown for ``year`` (default:
    the current year). Installment and rental clients spread ``total`` evenly,
    over ``installment_months`` (default 12) or 12 respectively. Perpetual
    clients keep the values as entered.
    """
    config = config or get_config()
    model = client.billing_model

    if model == BillingModel.SUBSCRIPTION:
        breakdown = calculate_subscription_monthly_breakdown(
            client, year or date.today().year, config=config,
        )
        return client.evolve(**breakdown.to_snapshot())

    if model in (BillingModel.INSTALLMENT, BillingModel.RENTALS):
        divisor = 12
        if model == BillingModel.INSTALLMENT:
            divisor = client.installment_months or config.default_installment_months
        monthly = BillingDecimal.round_to_places(
            BillingDecimal.divide(client.total, divisor), config.decimal_places,
        )
        return client.evolve(**{key: monthly for key in MONTH_KEYS})

    return client


# ===================================================================
# BillingService facade
# ===================================================================

_singleton_lock = threading.Lock()
_singleton_instance: Optional["BillingService"] = None


class BillingService:
    """In-memory billing snapshot with mutations and cached engine reads.

    Attributes:
        config: BillingConfig instance.
        provenance: ProvenanceTracker recording every mutation.

    Example:
        >>> service = BillingService()
        >>> service.apply_global_increase(2026, 5)
        >>> service.annual_total("c-1", 2026)
    """

    def __init__(
        self,
        config: Optional[BillingConfig] = None,
        clients: Iterable[ClientInput] = (),
        var_clients: Iterable[ClientInput] = (),
        var_partners: Iterable[Union[VarPartner, Dict[str, Any]]] = (),
        licenses: Optional[LicenseSource] = None,
        increases: Iterable[Union[AnnualIncrease, Dict[str, Any]]] = (),
    ) -> None:
        """Initialize the service from stored snapshots.

        Stored records are taken as-is; snapshot fields are only derived for
        clients added through :meth:`add_client`.
        """
        self.config = config or get_config()
        self.provenance = ProvenanceTracker()
        self._lock = threading.RLock()

        self._clients: Dict[str, Client] = {}
        for c in clients:
            record = _as_model(Client, c)
            self._clients[record.id] = record
        self._var_clients: Dict[str, VarClient] = {}
        for c in var_clients:
            record = _as_model(VarClient, c)
            self._var_clients[record.id] = record
        self._partners: Dict[str, VarPartner] = {}
        for p in var_partners:
            partner = _as_model(VarPartner, p)
            self._partners[partner.id] = partner

        self._ledger = LicenseLedger.coerce(licenses)
        self._increases: Tuple[AnnualIncrease, ...] = tuple(
            _as_model(AnnualIncrease, inc) for inc in increases
        )
        self._invoiced: Dict[Tuple[str, int, int], bool] = {}
        self._cache: "OrderedDict[Tuple[str, int], MonthlyBreakdown]" = OrderedDict()

        update_ledger_size(len(self._ledger))
        logger.info(
            "BillingService created: clients=%d var_clients=%d partners=%d events=%d",
            len(self._clients), len(self._var_clients), len(self._partners), len(self._ledger),
        )

    # ------------------------------------------------------------------
    # Snapshot accessors
    # ------------------------------------------------------------------

    @property
    def clients(self) -> List[Client]:
        return list(self._clients.values())

    @property
    def var_clients(self) -> List[VarClient]:
        return list(self._var_clients.values())

    @property
    def var_partners(self) -> List[VarPartner]:
        return list(self._partners.values())

    @property
    def ledger(self) -> LicenseLedger:
        return self._ledger

    @property
    def increases(self) -> Tuple[AnnualIncrease, ...]:
        return self._increases

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def get_client(self, client_id: str) -> Client:
        """Return a client or VAR client by id.

        Raises:
            ValueError: If no such client exists.
        """
        client = self._clients.get(client_id) or self._var_clients.get(client_id)
        if client is None:
            raise ValueError(f"Client {client_id} not found")
        return client

    # ------------------------------------------------------------------
    # Client lifecycle
    # ------------------------------------------------------------------

    def add_client(self, client: ClientInput, snapshot_year: Optional[int] = None) -> Client:
        """Add a client, deriving its stored monthly snapshot."""
        record = prepare_client_snapshot(_as_model(Client, client), snapshot_year, self.config)
        with self._lock:
            self._ensure_new_id(record.id)
            self._clients[record.id] = record
            self._invalidate(record.id)
            self._record(ChangeType.CLIENT_ADDED, record.id, {
                "billing_model": record.billing_model_name,
                "users": record.users,
                "total": record.total,
            })
        logger.info("Added client %s (%s)", record.id, record.billing_model_name)
        return record

    def update_client(self, client_id: str, **changes: Any) -> Client:
        """Apply field changes to a client and drop its cached figures."""
        with self._lock:
            current = self.get_client(client_id)
            updated = current.evolve(**changes)
            self._store(updated)
            self._invalidate(client_id)
            self._record(ChangeType.CLIENT_UPDATED, client_id, {"fields": sorted(changes)})
        logger.info("Updated client %s: %s", client_id, ", ".join(sorted(changes)))
        return updated

    def deactivate_client(self, client_id: str) -> Client:
        """Soft-delete a client; it drops out of every aggregate."""
        with self._lock:
            updated = self.get_client(client_id).evolve(is_active=False)
            self._store(updated)
            self._invalidate(client_id)
            self._record(ChangeType.CLIENT_DEACTIVATED, client_id)
        logger.info("Deactivated client %s", client_id)
        return updated

    def remove_client(self, client_id: str) -> None:
        """Delete a client together with its license events and invoice flags."""
        with self._lock:
            self.get_client(client_id)
            self._clients.pop(client_id, None)
            self._var_clients.pop(client_id, None)
            self._ledger = self._ledger.without_client(client_id)
            self._invoiced = {
                key: flag for key, flag in self._invoiced.items() if key[0] != client_id
            }
            self._invalidate(client_id)
            self._record(ChangeType.CLIENT_REMOVED, client_id)
            update_ledger_size(len(self._ledger))
        logger.info("Removed client %s", client_id)

    # ------------------------------------------------------------------
    # VAR partners and clients
    # ------------------------------------------------------------------

    def add_var_partner(self, partner: Union[VarPartner, Dict[str, Any]]) -> VarPartner:
        record = _as_model(VarPartner, partner)
        with self._lock:
            if record.id in self._partners:
                raise ValueError(f"VAR partner {record.id} already exists")
            self._partners[record.id] = record
            self._record(ChangeType.VAR_PARTNER_ADDED, record.id, {"name": record.name})
        logger.info("Added VAR partner %s (%s)", record.id, record.name)
        return record

    def add_var_client(self, var_client: ClientInput) -> VarClient:
        """Add a client billed through a known VAR partner.

        The monthly values are the entered commission amounts and are stored
        as given.
        """
        record = _as_model(VarClient, var_client)
        with self._lock:
            if record.var_partner_id not in self._partners:
                raise ValueError(f"VAR partner {record.var_partner_id} not found")
            self._ensure_new_id(record.id)
            self._var_clients[record.id] = record
            self._invalidate(record.id)
            self._record(ChangeType.VAR_CLIENT_ADDED, record.id, {
                "var_partner_id": record.var_partner_id,
            })
        logger.info("Added VAR client %s for partner %s", record.id, record.var_partner_id)
        return record

    def var_clients_for_partner(self, partner_id: str) -> List[VarClient]:
        return [c for c in self._var_clients.values() if c.var_partner_id == partner_id]

    # ------------------------------------------------------------------
    # License events
    # ------------------------------------------------------------------

    def add_license(
        self,
        client_id: str,
        quantity: int,
        price_per_unit: Any,
        effective_date: Union[date, str],
        license_type: str = "",
        billing_periods: Optional[int] = None,
        currency: Optional[str] = None,
    ) -> LicenseAdded:
        """Record added seats and note them in the client's comment log.

        Raises:
            LedgerError: If the client is unknown or the quantity not positive.
        """
        with self._lock:
            client = self._client_for_ledger(client_id)
            effective = parse_date(effective_date)
            if effective is None:
                raise LedgerError(
                    f"Invalid effective date: {effective_date!r}", client_id=client_id,
                )
            event = LicenseAdded(
                client_id=client_id,
                quantity=quantity,
                price_per_unit=price_per_unit,
                effective_date=effective,
                license_type=license_type,
                billing_periods=billing_periods,
                currency=currency or client.currency,
            )
            self._ledger = self._ledger.append(event)
            line = format_added_line(
                event.quantity,
                event.effective_date.year,
                event.effective_date.month,
                event.price_per_unit,
                event.currency,
            )
            self._store(client.evolve(comments=append_comment(client.comments, line)))
            self._invalidate(client_id)
            self._record(ChangeType.LICENSE_ADDED, client_id, {
                "quantity": event.quantity,
                "price_per_unit": event.price_per_unit,
                "effective_date": event.effective_date,
            })
            update_ledger_size(len(self._ledger))
        logger.info(
            "Added %d license(s) to client %s effective %s",
            event.quantity, client_id, event.effective_date,
        )
        return event

    def decrease_license(
        self,
        client_id: str,
        quantity: int,
        effective_date: Union[date, str],
        reason: str = "",
        applied_on: Optional[Union[date, str]] = None,
    ) -> LicenseDecreased:
        """Remove seats, crediting the rest of the current billing period.

        ``users`` keeps the base seat count; the removed seats leave billing
        at the next invoice boundary and the credit, stored on the event,
        covers the months up to it.

        Raises:
            LedgerError: If the client is unknown, or the quantity is not
                positive or exceeds the seats in effect on the date.
        """
        with self._lock:
            client = self._client_for_ledger(client_id)
            effective = parse_date(effective_date)
            if effective is None:
                raise LedgerError(
                    f"Invalid effective date: {effective_date!r}", client_id=client_id,
                )
            seats = seats_in_effect(client, effective.year, effective.month, self._ledger)
            if quantity > seats:
                raise LedgerError(
                    f"Cannot remove {quantity} license(s) from {seats} user(s)",
                    client_id=client_id,
                    context={"quantity": quantity, "users": seats},
                )
            credit = BillingDecimal.round_to_places(
                compute_decrease_credit(
                    client, quantity, effective, self._increases,
                    self.config.default_installment_months,
                ),
                self.config.decimal_places,
            )
            event = LicenseDecreased(
                client_id=client_id,
                quantity=quantity,
                effective_date=effective,
                reason=reason,
                credit_amount=credit,
                applied_on=applied_on,
            )
            self._ledger = self._ledger.append(event)

            applied = event.credit_date
            line = format_decreased_line(
                event.quantity,
                (effective.year, effective.month),
                credit,
                client.currency,
                applied=(applied.year, applied.month),
                reason=reason,
            )
            self._store(client.evolve(
                comments=append_comment(client.comments, line),
            ))
            self._invalidate(client_id)
            self._record(ChangeType.LICENSE_DECREASED, client_id, {
                "quantity": quantity,
                "effective_date": effective,
                "credit": credit,
                "reason": reason,
            })
            update_ledger_size(len(self._ledger))
        logger.info(
            "Decreased %d license(s) for client %s effective %s, credit %s",
            quantity, client_id, effective, credit,
        )
        return event

    # ------------------------------------------------------------------
    # Annual increases
    # ------------------------------------------------------------------

    def apply_global_increase(self, year: int, percentage: Any) -> None:
        with self._lock:
            self._increases = increase_table.apply_global_increase(
                self._increases, year, percentage,
            )
            self._clear_cache()
            self._record(ChangeType.INCREASE_APPLIED, "global", {
                "year": year, "percentage": percentage,
            })

    def apply_client_increase(self, client_id: str, year: int, percentage: Any) -> None:
        with self._lock:
            self.get_client(client_id)
            self._increases = increase_table.apply_client_increase(
                self._increases, client_id, year, percentage,
            )
            self._clear_cache()
            self._record(ChangeType.INCREASE_APPLIED, client_id, {
                "year": year, "percentage": percentage,
            })

    def reset_increases(self, client_id: Optional[str] = None) -> None:
        """Clear every increase, or only one client's overrides."""
        with self._lock:
            self._increases = increase_table.reset_increases(self._increases, client_id)
            self._clear_cache()
            self._record(ChangeType.INCREASES_RESET, client_id or "global")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def monthly_breakdown(self, client_id: str, year: int) -> MonthlyBreakdown:
        """Twelve monthly figures for a client, served from the cache."""
        key = (client_id, year)
        with self._lock:
            if self.config.cache_enabled and key in self._cache:
                self._cache.move_to_end(key)
                record_cache_hit()
                return self._cache[key]
            record_cache_miss()
            breakdown = monthly_breakdown(
                self.get_client(client_id), year, self._increases, self._ledger, self.config,
            )
            if self.config.cache_enabled:
                self._cache[key] = breakdown
                while len(self._cache) > self.config.cache_max_size:
                    self._cache.popitem(last=False)
            return breakdown

    def monthly_billing(self, client_id: str, year: int, month: int) -> Decimal:
        if not 1 <= month <= 12:
            raise ValueError(f"Month must be between 1 and 12, got {month}")
        return self.monthly_breakdown(client_id, year).months[month - 1]

    def annual_total(self, client_id: str, year: int) -> Decimal:
        """Annual total; perpetual clients use the dedicated S&M figure."""
        client = self.get_client(client_id)
        if client.billing_model == BillingModel.PERPETUAL:
            return calculate_client_annual_total(
                client, year, self._increases, self._ledger, self.config,
            )
        return self.monthly_breakdown(client_id, year).total

    def seat_count(self, client_id: str, year: int, month: int) -> int:
        """Seats in effect in the month: base users plus net license events."""
        return seats_in_effect(self.get_client(client_id), year, month, self._ledger)

    def var_total(self, var_client_id: str) -> Decimal:
        var_client = self._var_clients.get(var_client_id)
        if var_client is None:
            raise ValueError(f"VAR client {var_client_id} not found")
        return calculate_var_client_total(var_client, self._ledger, self.config)

    def portfolio(self, year: int, month: int) -> PortfolioMetrics:
        return portfolio_metrics(
            self.clients, year, month, self.var_clients,
            self._ledger, self._increases, self.config,
        )

    # ------------------------------------------------------------------
    # Invoice tracking
    # ------------------------------------------------------------------

    def set_invoiced(self, client_id: str, year: int, month: int, invoiced: bool = True) -> None:
        """Flag a client's month as invoiced (never read by the engine)."""
        with self._lock:
            self.get_client(client_id)
            self._invoiced[(client_id, year, month)] = invoiced
            self._record(ChangeType.INVOICE_FLAG_SET, client_id, {
                "year": year, "month": month, "invoiced": invoiced,
            })

    def is_invoiced(self, client_id: str, year: int, month: int) -> bool:
        return self._invoiced.get((client_id, year, month), False)

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    def get_metrics(self) -> Dict[str, Any]:
        """Summary of the service state."""
        return {
            "clients": len(self._clients),
            "var_clients": len(self._var_clients),
            "var_partners": len(self._partners),
            "ledger_events": len(self._ledger),
            "increases": len(self._increases),
            "cache_entries": len(self._cache),
            "provenance_entries": self.provenance.entry_count,
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ensure_new_id(self, client_id: str) -> None:
        if client_id in self._clients or client_id in self._var_clients:
            raise ValueError(f"Client {client_id} already exists")

    def _client_for_ledger(self, client_id: str) -> Client:
        client = self._clients.get(client_id) or self._var_clients.get(client_id)
        if client is None:
            raise LedgerError(f"Unknown client {client_id}", client_id=client_id)
        return client

    def _store(self, client: Client) -> None:
        if isinstance(client, VarClient):
            self._var_clients[client.id] = client
        else:
            self._clients[client.id] = client

    def _invalidate(self, client_id: str) -> None:
        stale = [key for key in self._cache if key[0] == client_id]
        for key in stale:
            del self._cache[key]
        if stale:
            logger.debug("Invalidated %d cache entries for client %s", len(stale), client_id)

    def _clear_cache(self) -> None:
        self._cache.clear()
        logger.debug("Billing cache cleared")

    def _record(
        self,
        change_type: ChangeType,
        entity_id: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        if self.config.enable_provenance:
            self.provenance.record_change(change_type, entity_id, details)


def _as_model(model_cls: Any, value: Any) -> Any:
    if isinstance(value, model_cls):
        return value
    if hasattr(value, "model_dump"):
        return model_cls.model_validate(value.model_dump())
    return model_cls.model_validate(value)


# ===================================================================
# Thread-safe singleton access
# ===================================================================


def get_billing_service() -> BillingService:
    """Get or create the process-wide BillingService."""
    global _singleton_instance
    if _singleton_instance is None:
        with _singleton_lock:
            if _singleton_instance is None:
                _singleton_instance = BillingService()
    return _singleton_instance


def reset_billing_service() -> None:
    """Drop the process-wide BillingService (primarily for tests)."""
    global _singleton_instance
    with _singleton_lock:
        _singleton_instance = None


__all__ = [
    "BillingService",
    "prepare_client_snapshot",
    "get_billing_service",
    "reset_billing_service",
]
