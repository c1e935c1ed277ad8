from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from freight_billing.rates.representations import NoRate, RateRepresentation, as_mapping, parse_rates


@dataclass(frozen=True)
class Shipment:
    """A shipment as the billing core sees it.

    ``storage_id`` is the store's own identity; ``shipment_number`` is the
    business key users type and search for. The two are not guaranteed equal.
    """

    storage_id: str
    shipment_number: str
    company_id: str | None = None
    customer_id: str | None = None
    customer_name: str | None = None
    status: str | None = None
    invoice_status: str | None = None
    invoice_number: str | None = None
    payment_status: str | None = None
    has_manual_override: bool = False
    currency: str | None = None
    rates: RateRepresentation = field(default_factory=NoRate)
    carrier: str | None = None
    service: str | None = None
    ship_from: dict | None = None
    ship_to: dict | None = None
    shipment_date: datetime | None = None
    created_at: datetime | None = None
    version: int = 1
    status_updated_at: datetime | None = None
    status_updated_by: str | None = None

    @classmethod
    def from_document(cls, storage_id: str, doc: Mapping[str, Any]) -> Shipment:
        """Build a shipment from a loosely shaped shipment document."""
        selected_rate = as_mapping(doc.get("selectedRate"))
        return cls(
            storage_id=storage_id,
            shipment_number=doc.get("shipmentID") or storage_id,
            company_id=doc.get("companyID"),
            customer_id=_customer_id(doc),
            customer_name=doc.get("customerName"),
            status=doc.get("status"),
            invoice_status=doc.get("invoiceStatus"),
            invoice_number=doc.get("invoiceNumber") or doc.get("invoiceId"),
            payment_status="paid" if doc.get("paid") is True else doc.get("paymentStatus"),
            has_manual_override=bool(as_mapping(doc.get("statusOverride")).get("isManual")),
            currency=_upper(doc.get("currency")),
            rates=parse_rates(
                manual_rates=doc.get("manualRates"),
                actual_rates=doc.get("actualRates"),
                markup_rates=doc.get("markupRates"),
                selected_rate=selected_rate,
            ),
            carrier=_carrier_name(doc, selected_rate),
            service=_name(selected_rate.get("service")) or doc.get("serviceName") or _name(doc.get("service")),
            ship_from=_address(doc.get("shipFrom") or doc.get("origin")),
            ship_to=_address(doc.get("shipTo") or doc.get("destination")),
            shipment_date=_first_date(
                as_mapping(doc.get("shipmentInfo")).get("shipmentDate"),
                doc.get("shipmentDate"),
                doc.get("bookedAt"),
                doc.get("createdAt"),
            ),
            created_at=parse_datetime(doc.get("createdAt")),
            version=_version(doc.get("version")),
        )


def _upper(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip().upper()
    return None


def _address(value: Any) -> dict | None:
    return dict(value) if isinstance(value, Mapping) and value else None


def _version(value: Any) -> int:
    if isinstance(value, bool):
        return 1
    try:
        return int(value or 1)
    except (TypeError, ValueError):
        return 1


def _name(value: Any) -> str | None:
    if isinstance(value, Mapping):
        return value.get("name")
    if isinstance(value, str) and value:
        return value
    return None


def _customer_id(doc: Mapping[str, Any]) -> str | None:
    ship_from = as_mapping(doc.get("shipFrom"))
    ship_to = as_mapping(doc.get("shipTo"))
    customer = doc.get("customer")
    return (
        doc.get("customerId")
        or doc.get("customerID")
        or (customer.get("id") if isinstance(customer, Mapping) else None)
        or ship_from.get("customerID")
        or ship_to.get("customerID")
        or ship_from.get("customerId")
        or ship_to.get("customerId")
    )


def _carrier_name(doc: Mapping[str, Any], selected_rate: Mapping[str, Any]) -> str | None:
    return (
        _name(doc.get("selectedCarrier"))
        or _name(doc.get("carrier"))
        or _name(selected_rate.get("carrier"))
    )


def parse_datetime(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, Mapping):
        value = value.get("seconds")
        if isinstance(value, str):
            value = _number_or_none(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def _first_date(*candidates: Any) -> datetime | None:
    for candidate in candidates:
        parsed = parse_datetime(candidate)
        if parsed is not None:
            return parsed
    return None


def _number_or_none(value: str) -> float | None:
    try:
        return float(value)
    except ValueError:
        return None
