from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal

from freight_billing.invoice_status.models import effective_invoice_status
from freight_billing.rates.normalizer import FALLBACK_CURRENCY, normalize
from freight_billing.rates.representations import ZERO
from freight_billing.shipments.models import Shipment

EXCLUDED_SHIPMENT_STATUSES = frozenset({"archived", "draft", "deleted", "cancelled", "void"})

SORT_FIELDS = frozenset({"shipment_date", "company_id", "customer_name", "cost", "charge", "margin"})


@dataclass(frozen=True)
class ChargeView:
    """Reconciliation projection of a shipment. Recomputed on every read."""

    shipment_id: str
    storage_id: str
    company_id: str | None
    customer_id: str | None
    customer_name: str
    cost: Decimal
    charge: Decimal
    margin: Decimal
    margin_percent: Decimal
    currency: str
    invoice_status: str
    has_manual_override: bool
    carrier: str
    service_name: str
    route: str
    shipment_date: datetime | None
    shipment_status: str


def format_route(shipment: Shipment) -> str:
    origin, destination = shipment.ship_from, shipment.ship_to
    if not origin or not destination:
        return "N/A"

    def _place(address: dict) -> str:
        city = address.get("city") or "Unknown"
        region = address.get("state") or address.get("province") or ""
        return f"{city}, {region}" if region else city

    return f"{_place(origin)} → {_place(destination)}"


def build_charge_view(
    shipment: Shipment,
    *,
    default_status: str = "uninvoiced",
    fallback_currency: str = FALLBACK_CURRENCY,
) -> ChargeView:
    rate = normalize(shipment, fallback_currency=fallback_currency)
    margin = rate.margin
    margin_percent = (margin / rate.cost * 100) if rate.cost > 0 else ZERO
    return ChargeView(
        shipment_id=shipment.shipment_number,
        storage_id=shipment.storage_id,
        company_id=shipment.company_id,
        customer_id=shipment.customer_id,
        customer_name=shipment.customer_name or "Unknown Customer",
        cost=rate.cost,
        charge=rate.charge,
        margin=margin,
        margin_percent=margin_percent,
        currency=rate.currency,
        invoice_status=effective_invoice_status(shipment, default_status),
        has_manual_override=shipment.has_manual_override,
        carrier=shipment.carrier or "Unknown Carrier",
        service_name=shipment.service or "Standard Service",
        route=format_route(shipment),
        shipment_date=shipment.shipment_date or shipment.created_at,
        shipment_status=shipment.status or "unknown",
    )


@dataclass(frozen=True)
class ChargeFilters:
    company_id: str | None = None
    search_term: str | None = None
    invoice_status: str | None = None
    sort_field: str = "shipment_date"
    sort_direction: str = "desc"
    default_status: str = "uninvoiced"
    excluded_statuses: frozenset[str] = field(default=EXCLUDED_SHIPMENT_STATUSES)

    def matches(self, shipment: Shipment) -> bool:
        if (shipment.status or "").lower() in self.excluded_statuses:
            return False
        if self.company_id and shipment.company_id != self.company_id:
            return False
        if self.search_term:
            haystack = " ".join(
                v for v in (
                    shipment.shipment_number,
                    shipment.company_id,
                    shipment.customer_name,
                    shipment.customer_id,
                ) if v
            ).lower()
            if self.search_term.lower() not in haystack:
                return False
        if self.invoice_status:
            if effective_invoice_status(shipment, self.default_status) != self.invoice_status:
                return False
        return True

    def __call__(self, shipment: Shipment) -> bool:
        return self.matches(shipment)


_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def sort_charges(
    charges: Sequence[ChargeView],
    sort_field: str = "shipment_date",
    sort_direction: str = "desc",
) -> list[ChargeView]:
    if sort_field not in SORT_FIELDS:
        sort_field = "shipment_date"
    reverse = sort_direction != "asc"

    def key(charge: ChargeView):
        value = getattr(charge, sort_field)
        if sort_field == "shipment_date":
            return value or _EPOCH
        if sort_field in ("company_id", "customer_name"):
            return (value or "").lower()
        return value or ZERO

    return sorted(charges, key=key, reverse=reverse)
