from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    code: str
    message: str


class ChargeOut(BaseModel):
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


class CurrencyMetricsOut(BaseModel):
    """Totals per currency; currencies are never summed together."""
    total_shipments: dict[str, int]
    total_revenue: dict[str, Decimal]
    total_costs: dict[str, Decimal]
    total_margin: dict[str, Decimal]


class InvoiceStatusOut(BaseModel):
    status_code: str
    status_label: str
    color: str
    font_color: str
    sort_order: int
    enabled: bool
    description: str = ""


class InvoiceStatusChangeIn(BaseModel):
    status_code: str = Field(min_length=1)
    actor: str = Field(min_length=1)


class InvoiceStatusChangeOut(BaseModel):
    shipment_id: str
    shipment_number: str
    previous_status: str
    new_status: str
    changed: bool
    verified: bool
    audit_recorded: bool
    updated_at: datetime | None


class ShipmentEventOut(BaseModel):
    """Single audit trail entry."""
    event_type: str
    source: str
    title: str
    description: str
    actor: str | None
    status_change: dict[str, Any] | None
    timestamp: datetime


class RateLineOut(BaseModel):
    code: str | None
    label: str
    cost: Decimal
    charge: Decimal
    currency: str


class ChargeDetailOut(BaseModel):
    charge: ChargeOut
    invoice_status_label: str
    rate_lines: list[RateLineOut]
    events: list[ShipmentEventOut] = Field(default_factory=list)


class UploadIn(BaseModel):
    file_name: str
    file_size: int = 0
    carrier_id: str | None = None
    uploaded_by: str | None = None
    file_type: str | None = None
    storage_path: str | None = None


class UploadOut(BaseModel):
    id: str
    file_name: str
    file_size: int
    carrier_id: str
    processing_status: str
    uploaded_at: datetime | None
    processed_at: datetime | None
    result_id: str | None
    error: str | None


class ExtractedRecordOut(BaseModel):
    record_type: str
    data: dict[str, Any]


class ResultOut(BaseModel):
    id: str
    carrier: str | None
    confidence_score: int | None
    processing_time_ms: int | None
    shipments: list[ExtractedRecordOut]
    charges: list[ExtractedRecordOut]


class UploadStatusOut(BaseModel):
    upload: UploadOut
    store: str
    result: ResultOut | None = None
    result_store: str | None = None


class StuckUploadOut(BaseModel):
    upload_id: str
    store: str
    processing_status: str
    stuck_minutes: float


class QueueDiagnosisOut(BaseModel):
    checked_at: datetime
    healthy: bool
    pending_by_store: dict[str, int]
    unavailable_stores: list[str]
    stuck: list[StuckUploadOut]


class QueueRepairOut(BaseModel):
    requeued: list[str]
    failed: dict[str, str]
    skipped: int
