from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class InvoiceStatusDefinition:
    status_code: str
    status_label: str
    color: str = "#6b7280"
    font_color: str = "#ffffff"
    sort_order: int = 0
    enabled: bool = True
    description: str = ""

    @property
    def sort_key(self) -> tuple[int, str]:
        return (self.sort_order, self.status_label)


@dataclass(frozen=True)
class InvoiceStatusAssignment:
    shipment_id: str
    status_code: str
    has_manual_override: bool
    updated_at: datetime | None
    updated_by: str | None


DEFAULT_INVOICE_STATUSES: tuple[InvoiceStatusDefinition, ...] = (
    InvoiceStatusDefinition("uninvoiced", "Uninvoiced", "#6b7280", "#ffffff", 1,
                            description="Shipment has not been invoiced yet"),
    InvoiceStatusDefinition("ready_to_invoice", "Ready to Invoice", "#3b82f6", "#ffffff", 2,
                            description="Charges approved and ready for invoicing"),
    InvoiceStatusDefinition("generated", "Generated", "#8b5cf6", "#ffffff", 3,
                            description="Invoice document generated"),
    InvoiceStatusDefinition("invoiced", "Invoiced", "#f59e0b", "#ffffff", 4,
                            description="Invoice sent to the customer"),
    InvoiceStatusDefinition("paid", "Paid", "#10b981", "#ffffff", 5,
                            description="Invoice paid in full"),
    InvoiceStatusDefinition("overdue", "Overdue", "#ef4444", "#ffffff", 6,
                            description="Invoice is past its due date"),
    InvoiceStatusDefinition("exception", "Exception", "#dc2626", "#ffffff", 7,
                            description="Billing problem requiring attention"),
)


def sort_statuses(statuses: Iterable[InvoiceStatusDefinition]) -> list[InvoiceStatusDefinition]:
    return sorted(statuses, key=lambda s: s.sort_key)


def effective_invoice_status(shipment, default: str = "uninvoiced") -> str:
    """The shipment's explicit status, else one inferred from invoice and payment data."""
    if shipment.invoice_status:
        return shipment.invoice_status
    if shipment.invoice_number:
        return "invoiced"
    if shipment.payment_status == "paid":
        return "paid"
    return default
