"""SQLAlchemy-backed stores.

Each store wraps one named database. Driver and connection errors surface
as ``StoreUnavailableError`` so the fallback chain can move on to the next
store; an id that is not even a valid UUID is simply a miss.
"""
from __future__ import annotations

import logging
import uuid
from collections.abc import AsyncIterator, Iterable, Sequence
from contextlib import asynccontextmanager
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from freight_billing.core.errors import StoreUnavailableError
from freight_billing.db.models import (
    EdiResultRow,
    EdiUploadRow,
    InvoiceStatusRow,
    ShipmentEventRow,
    ShipmentRow,
)
from freight_billing.ingestion.models import (
    ProcessingStatus,
    ResultRecord,
    UploadRecord,
    UploadSubmission,
)
from freight_billing.invoice_status.models import InvoiceStatusDefinition
from freight_billing.rates.representations import parse_rates
from freight_billing.shipments.events import EventSource, EventType, ShipmentEvent
from freight_billing.shipments.models import Shipment
from freight_billing.stores.base import AuditTrail, RecordStore, ShipmentStore, StatusCatalogStore

logger = logging.getLogger(__name__)


def _as_uuid(value: str) -> uuid.UUID | None:
    try:
        return uuid.UUID(str(value))
    except (ValueError, AttributeError):
        return None


class _SqlStore:
    name: str

    def __init__(self, name: str, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.name = name
        self._sessions = session_factory

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._sessions() as session:
                yield session
        except (SQLAlchemyError, OSError) as exc:
            logger.warning("store_io_error", extra={"store": self.name, "error": str(exc)})
            raise StoreUnavailableError(self.name, str(exc)) from exc


# ---------------------------------------------------------------------------
# EDI uploads / results
# ---------------------------------------------------------------------------

def upload_from_row(row: EdiUploadRow) -> UploadRecord:
    return UploadRecord(
        id=str(row.id),
        file_name=row.file_name,
        file_size=row.file_size,
        carrier_id=row.carrier_id,
        processing_status=ProcessingStatus(row.processing_status),
        uploaded_at=row.uploaded_at,
        processed_at=row.processed_at,
        updated_at=row.updated_at,
        result_id=row.result_id,
        error=row.error,
        uploaded_by=row.uploaded_by,
        version=row.version or 1,
    )


def result_from_row(row: EdiResultRow) -> ResultRecord:
    return ResultRecord.from_document(
        str(row.id),
        {
            "records": row.records or [],
            "carrier": row.carrier,
            "confidenceScore": row.confidence_score,
            "processingTimeMs": row.processing_time_ms,
            "rawSample": row.raw_sample,
        },
    )


class SqlRecordStore(_SqlStore, RecordStore):
    async def get_upload(self, upload_id: str) -> UploadRecord | None:
        key = _as_uuid(upload_id)
        if key is None:
            return None
        async with self._session() as session:
            row = await session.get(EdiUploadRow, key)
            return upload_from_row(row) if row is not None else None

    async def get_result(self, result_id: str) -> ResultRecord | None:
        key = _as_uuid(result_id)
        if key is None:
            return None
        async with self._session() as session:
            row = await session.get(EdiResultRow, key)
            return result_from_row(row) if row is not None else None

    async def create_upload(self, submission: UploadSubmission) -> UploadRecord:
        async with self._session() as session:
            row = EdiUploadRow(
                file_name=submission.file_name,
                file_size=submission.file_size,
                file_type=submission.file_type,
                carrier_id=submission.carrier_id,
                storage_path=submission.storage_path,
                uploaded_by=submission.uploaded_by,
                processing_status=ProcessingStatus.QUEUED.value,
                uploaded_at=submission.uploaded_at,
                updated_at=submission.uploaded_at,
            )
            session.add(row)
            await session.commit()
            await session.refresh(row)
            return upload_from_row(row)

    async def list_uploads(self, statuses: Iterable[ProcessingStatus]) -> list[UploadRecord]:
        values = [s.value for s in statuses]
        async with self._session() as session:
            stmt = (
                select(EdiUploadRow)
                .where(EdiUploadRow.processing_status.in_(values))
                .order_by(EdiUploadRow.uploaded_at)
            )
            rows = (await session.execute(stmt)).scalars().all()
            return [upload_from_row(r) for r in rows]


# ---------------------------------------------------------------------------
# Shipments
# ---------------------------------------------------------------------------

def shipment_from_row(row: ShipmentRow) -> Shipment:
    return Shipment(
        storage_id=str(row.id),
        shipment_number=row.shipment_number,
        company_id=row.company_id,
        customer_id=row.customer_id,
        customer_name=row.customer_name,
        status=row.status,
        invoice_status=row.invoice_status,
        invoice_number=row.invoice_number,
        payment_status=row.payment_status,
        has_manual_override=bool(row.has_manual_override),
        currency=row.currency.upper() if row.currency else None,
        rates=parse_rates(
            manual_rates=row.manual_rates,
            actual_rates=row.actual_rates,
            markup_rates=row.markup_rates,
            selected_rate=row.selected_rate,
        ),
        carrier=row.carrier,
        service=row.service,
        ship_from=row.ship_from,
        ship_to=row.ship_to,
        shipment_date=row.shipment_date,
        created_at=row.created_at,
        version=row.version or 1,
        status_updated_at=row.status_updated_at,
        status_updated_by=row.status_updated_by,
    )


class SqlShipmentStore(_SqlStore, ShipmentStore):
    async def find_by_shipment_number(self, shipment_number: str) -> Shipment | None:
        async with self._session() as session:
            stmt = select(ShipmentRow).where(ShipmentRow.shipment_number == shipment_number).limit(1)
            row = (await session.execute(stmt)).scalars().first()
            return shipment_from_row(row) if row is not None else None

    async def get(self, storage_id: str) -> Shipment | None:
        key = _as_uuid(storage_id)
        if key is None:
            return None
        async with self._session() as session:
            row = await session.get(ShipmentRow, key)
            return shipment_from_row(row) if row is not None else None

    async def list_shipments(
        self,
        *,
        company_ids: Sequence[str] | None = None,
        limit: int = 100,
    ) -> list[Shipment]:
        stmt = select(ShipmentRow).order_by(ShipmentRow.created_at.desc()).limit(limit)
        if company_ids:
            stmt = stmt.where(ShipmentRow.company_id.in_(list(company_ids)))
        async with self._session() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [shipment_from_row(r) for r in rows]

    async def update_invoice_status(
        self,
        storage_id: str,
        *,
        status_code: str,
        actor: str,
        updated_at: datetime,
        expected_version: int,
        manual_override: bool = True,
    ) -> bool:
        key = _as_uuid(storage_id)
        if key is None:
            return False
        stmt = (
            update(ShipmentRow)
            .where(ShipmentRow.id == key, ShipmentRow.version == expected_version)
            .values(
                invoice_status=status_code,
                has_manual_override=manual_override,
                status_updated_at=updated_at,
                status_updated_by=actor,
                version=expected_version + 1,
            )
        )
        async with self._session() as session:
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount == 1


# ---------------------------------------------------------------------------
# Invoice status catalog
# ---------------------------------------------------------------------------

def status_from_row(row: InvoiceStatusRow) -> InvoiceStatusDefinition:
    return InvoiceStatusDefinition(
        status_code=row.status_code,
        status_label=row.status_label,
        color=row.color,
        font_color=row.font_color,
        sort_order=row.sort_order or 0,
        enabled=bool(row.enabled),
        description=row.status_description or "",
    )


class SqlStatusCatalogStore(_SqlStore, StatusCatalogStore):
    async def list_definitions(self) -> list[InvoiceStatusDefinition]:
        async with self._session() as session:
            rows = (await session.execute(select(InvoiceStatusRow))).scalars().all()
            return [status_from_row(r) for r in rows]

    async def upsert_definitions(self, definitions: Sequence[InvoiceStatusDefinition]) -> int:
        async with self._session() as session:
            existing = set((await session.execute(select(InvoiceStatusRow.status_code))).scalars().all())
            missing = [d for d in definitions if d.status_code not in existing]
            for d in missing:
                session.add(
                    InvoiceStatusRow(
                        status_code=d.status_code,
                        status_label=d.status_label,
                        status_description=d.description,
                        color=d.color,
                        font_color=d.font_color,
                        sort_order=d.sort_order,
                        enabled=d.enabled,
                    )
                )
            try:
                await session.commit()
            except IntegrityError:
                # Another writer inserted the same codes first
                await session.rollback()
                logger.info("invoice_status_seed_raced", extra={"store": self.name})
                return 0
            return len(missing)


# ---------------------------------------------------------------------------
# Audit trail
# ---------------------------------------------------------------------------

def event_from_row(row: ShipmentEventRow) -> ShipmentEvent:
    return ShipmentEvent(
        shipment_id=row.shipment_id,
        event_type=EventType(row.event_type),
        title=row.title,
        timestamp=row.timestamp,
        source=EventSource(row.source),
        actor=row.actor,
        description=row.description or "",
        status_change=row.status_change,
        metadata=row.event_metadata or {},
    )


class SqlAuditTrail(_SqlStore, AuditTrail):
    async def record(self, event: ShipmentEvent) -> None:
        async with self._session() as session:
            session.add(
                ShipmentEventRow(
                    shipment_id=event.shipment_id,
                    event_type=event.event_type.value,
                    source=event.source.value,
                    title=event.title,
                    description=event.description,
                    actor=event.actor,
                    status_change=event.status_change,
                    event_metadata=event.metadata,
                    timestamp=event.timestamp,
                )
            )
            await session.commit()

    async def events_for(self, shipment_id: str) -> list[ShipmentEvent]:
        stmt = (
            select(ShipmentEventRow)
            .where(ShipmentEventRow.shipment_id == shipment_id)
            .order_by(ShipmentEventRow.timestamp.desc())
        )
        async with self._session() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [event_from_row(r) for r in rows]
