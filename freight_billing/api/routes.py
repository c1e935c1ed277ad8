from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query, Request

from freight_billing.charges.views import ChargeFilters, ChargeView
from freight_billing.ingestion.diagnostics import diagnose_queue, repair_stuck_queue
from freight_billing.ingestion.models import ResultRecord, UploadRecord, UploadSubmission
from freight_billing.schemas import (
    ChargeDetailOut,
    ChargeOut,
    CurrencyMetricsOut,
    ExtractedRecordOut,
    InvoiceStatusChangeIn,
    InvoiceStatusChangeOut,
    InvoiceStatusOut,
    QueueDiagnosisOut,
    QueueRepairOut,
    RateLineOut,
    ResultOut,
    ShipmentEventOut,
    StuckUploadOut,
    UploadIn,
    UploadOut,
    UploadStatusOut,
)
from freight_billing.services import BillingServices

logger = logging.getLogger(__name__)
router = APIRouter()


def get_services(request: Request) -> BillingServices:
    return request.app.state.services


def charge_filters(
    services: BillingServices = Depends(get_services),
    company_id: str | None = None,
    search_term: str | None = None,
    invoice_status: str | None = None,
    sort_field: str = "shipment_date",
    sort_direction: str = "desc",
) -> ChargeFilters:
    return ChargeFilters(
        company_id=company_id,
        search_term=search_term,
        invoice_status=invoice_status,
        sort_field=sort_field,
        sort_direction=sort_direction,
        default_status=services.settings.default_invoice_status,
    )


def _charge_out(view: ChargeView) -> ChargeOut:
    return ChargeOut.model_validate(view, from_attributes=True)


def _upload_out(record: UploadRecord) -> UploadOut:
    return UploadOut(
        id=record.id,
        file_name=record.file_name,
        file_size=record.file_size,
        carrier_id=record.carrier_id,
        processing_status=record.processing_status.value,
        uploaded_at=record.uploaded_at,
        processed_at=record.processed_at,
        result_id=record.result_id,
        error=record.error,
    )


def _result_out(result: ResultRecord) -> ResultOut:
    return ResultOut(
        id=result.id,
        carrier=result.carrier,
        confidence_score=result.confidence_score,
        processing_time_ms=result.processing_time_ms,
        shipments=[ExtractedRecordOut(record_type=r.record_type.value, data=r.data) for r in result.shipments()],
        charges=[ExtractedRecordOut(record_type=r.record_type.value, data=r.data) for r in result.charges()],
    )


@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/charges", response_model=list[ChargeOut])
async def list_charges(
    filters: ChargeFilters = Depends(charge_filters),
    connected_companies: list[str] | None = Query(default=None),
    services: BillingServices = Depends(get_services),
) -> list[ChargeOut]:
    charges = await services.charges.fetch_charges(filters, connected_companies=connected_companies)
    return [_charge_out(c) for c in charges]


@router.get("/charges/metrics", response_model=CurrencyMetricsOut)
async def charge_metrics(
    filters: ChargeFilters = Depends(charge_filters),
    connected_companies: list[str] | None = Query(default=None),
    services: BillingServices = Depends(get_services),
) -> CurrencyMetricsOut:
    totals = await services.charges.calculate_metrics(filters, connected_companies=connected_companies)
    return CurrencyMetricsOut(
        total_shipments=totals.total_shipments,
        total_revenue=totals.total_revenue,
        total_costs=totals.total_costs,
        total_margin={c: totals.margin_for(c) for c in sorted(totals.currencies)},
    )


@router.get("/charges/{shipment_id}/details", response_model=ChargeDetailOut)
async def charge_details(
    shipment_id: str,
    services: BillingServices = Depends(get_services),
) -> ChargeDetailOut:
    detail = await services.details.load(shipment_id)
    return ChargeDetailOut(
        charge=_charge_out(detail.charge),
        invoice_status_label=detail.invoice_status_label,
        rate_lines=[RateLineOut.model_validate(line, from_attributes=True) for line in detail.rate_lines],
        events=[
            ShipmentEventOut(
                event_type=e.event_type.value,
                source=e.source.value,
                title=e.title,
                description=e.description,
                actor=e.actor,
                status_change=e.status_change,
                timestamp=e.timestamp,
            )
            for e in detail.events
        ],
    )


@router.get("/invoice-statuses", response_model=list[InvoiceStatusOut])
async def list_invoice_statuses(
    services: BillingServices = Depends(get_services),
) -> list[InvoiceStatusOut]:
    statuses = await services.registry.load_statuses()
    return [InvoiceStatusOut.model_validate(s, from_attributes=True) for s in statuses]


@router.post("/shipments/{shipment_number}/invoice-status", response_model=InvoiceStatusChangeOut)
async def change_invoice_status(
    shipment_number: str,
    body: InvoiceStatusChangeIn,
    services: BillingServices = Depends(get_services),
) -> InvoiceStatusChangeOut:
    result = await services.authority.transition(shipment_number, body.status_code, body.actor)
    if result.changed:
        # Detail views embed the status label and audit events
        services.details.invalidate()
    return InvoiceStatusChangeOut.model_validate(result, from_attributes=True)


@router.post("/edi/uploads", response_model=UploadOut, status_code=201)
async def create_upload(
    body: UploadIn,
    services: BillingServices = Depends(get_services),
) -> UploadOut:
    record = await services.uploads.submit(
        UploadSubmission(
            file_name=body.file_name,
            file_size=body.file_size,
            carrier_id=body.carrier_id,
            uploaded_at=datetime.now(timezone.utc),
            uploaded_by=body.uploaded_by,
            file_type=body.file_type,
            storage_path=body.storage_path,
        )
    )
    logger.info("edi_upload_submitted", extra={"upload_id": record.id, "upload_filename": record.file_name})
    return _upload_out(record)


@router.get("/edi/uploads/{upload_id}", response_model=UploadStatusOut)
async def get_upload(
    upload_id: str,
    services: BillingServices = Depends(get_services),
) -> UploadStatusOut:
    snapshot = await services.ingestion.snapshot(upload_id)
    return UploadStatusOut(
        upload=_upload_out(snapshot.record),
        store=snapshot.store,
        result=_result_out(snapshot.result) if snapshot.result is not None else None,
        result_store=snapshot.result_store,
    )


@router.get("/edi/queue/diagnosis", response_model=QueueDiagnosisOut)
async def queue_diagnosis(
    services: BillingServices = Depends(get_services),
) -> QueueDiagnosisOut:
    diagnosis = await diagnose_queue(services.chain, services.stuck_after)
    return QueueDiagnosisOut(
        checked_at=diagnosis.checked_at,
        healthy=diagnosis.healthy,
        pending_by_store=diagnosis.pending_by_store,
        unavailable_stores=diagnosis.unavailable_stores,
        stuck=[
            StuckUploadOut(
                upload_id=s.record.id,
                store=s.store,
                processing_status=s.record.processing_status.value,
                stuck_minutes=round(s.stuck_for.total_seconds() / 60, 1),
            )
            for s in diagnosis.stuck
        ],
    )


@router.post("/edi/queue/repair", response_model=QueueRepairOut)
async def queue_repair(
    limit: int | None = Query(default=None, ge=0),
    services: BillingServices = Depends(get_services),
) -> QueueRepairOut:
    diagnosis = await diagnose_queue(services.chain, services.stuck_after)
    report = await repair_stuck_queue(
        diagnosis,
        services.engine,
        limit if limit is not None else services.settings.stuck_repair_limit,
    )
    return QueueRepairOut(requeued=report.requeued, failed=report.failed, skipped=report.skipped)
