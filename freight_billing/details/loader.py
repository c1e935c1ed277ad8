from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal

from freight_billing.charges.views import ChargeView, build_charge_view
from freight_billing.core.errors import ShipmentNotFoundError
from freight_billing.details.cache import ExpandedDetailCache
from freight_billing.invoice_status.registry import InvoiceStatusRegistry
from freight_billing.rates.normalizer import FALLBACK_CURRENCY
from freight_billing.rates.representations import DualRate, ManualRates, SingleRate
from freight_billing.shipments.events import ShipmentEvent
from freight_billing.shipments.models import Shipment
from freight_billing.stores.base import AuditTrail, ShipmentStore


@dataclass(frozen=True)
class RateLine:
    code: str | None
    label: str
    cost: Decimal
    charge: Decimal
    currency: str


@dataclass(frozen=True)
class DetailView:
    charge: ChargeView
    invoice_status_label: str
    rate_lines: tuple[RateLine, ...]
    events: tuple[ShipmentEvent, ...]


def rate_lines(shipment: Shipment, view: ChargeView, labels: Mapping[str, str]) -> tuple[RateLine, ...]:
    rates = shipment.rates
    if isinstance(rates, ManualRates):
        return tuple(
            RateLine(
                code=line.code,
                label=labels.get(line.code or "", line.charge_name or line.code or "Charge"),
                cost=line.cost,
                charge=line.charge,
                currency=line.currency or view.currency,
            )
            for line in rates.lines
        )
    if isinstance(rates, DualRate):
        return (RateLine("FRT", labels.get("FRT", "Freight"), rates.actual_total, rates.markup_total, view.currency),)
    if isinstance(rates, SingleRate):
        return (RateLine("FRT", labels.get("FRT", "Freight"), rates.total, rates.total, view.currency),)
    return ()


class ShipmentDetailLoader:
    """Fetches everything the expanded row shows for one shipment (by business key)."""

    def __init__(
        self,
        shipments: ShipmentStore,
        audit: AuditTrail,
        registry: InvoiceStatusRegistry,
        *,
        charge_type_labels: Mapping[str, str] | None = None,
        default_status: str = "uninvoiced",
        fallback_currency: str = FALLBACK_CURRENCY,
    ) -> None:
        self._shipments = shipments
        self._audit = audit
        self._registry = registry
        self.charge_type_labels: dict[str, str] = dict(charge_type_labels or {})
        self._default_status = default_status
        self._fallback_currency = fallback_currency

    async def __call__(self, shipment_number: str) -> DetailView:
        shipment = await self._shipments.find_by_shipment_number(shipment_number)
        if shipment is None:
            raise ShipmentNotFoundError(shipment_number)

        view = build_charge_view(
            shipment,
            default_status=self._default_status,
            fallback_currency=self._fallback_currency,
        )
        events = await self._audit.events_for(shipment.storage_id)
        label = await self._registry.label_for(view.invoice_status)
        return DetailView(
            charge=view,
            invoice_status_label=label,
            rate_lines=rate_lines(shipment, view, self.charge_type_labels),
            events=tuple(events),
        )


class ShipmentDetailService:
    def __init__(self, loader: ShipmentDetailLoader) -> None:
        self._loader = loader
        self.cache: ExpandedDetailCache[str, DetailView] = ExpandedDetailCache(loader, name="shipment_details")

    async def load(self, shipment_number: str) -> DetailView:
        return await self.cache.load(shipment_number)

    def is_loading(self, shipment_number: str) -> bool:
        return self.cache.is_loading(shipment_number)

    def set_charge_type_labels(self, labels: Mapping[str, str]) -> None:
        # Labels feed every cached view, so the whole cache goes
        self._loader.charge_type_labels = dict(labels)
        self.cache.invalidate_all()

    def invalidate(self) -> None:
        self.cache.invalidate_all()
