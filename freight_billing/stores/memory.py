"""In-process stores for development and tests (STORE_BACKEND=memory).

They keep the same contracts as the SQL stores and record the reads and
writes they serve, so callers can check which store answered. Setting
``available = False`` makes a store behave as unreachable.
"""
from __future__ import annotations

import asyncio
import dataclasses
import uuid
from collections.abc import Iterable, Sequence
from datetime import datetime, timezone

from freight_billing.core.errors import StoreUnavailableError
from freight_billing.ingestion.models import (
    ProcessingStatus,
    ResultRecord,
    UploadRecord,
    UploadSubmission,
)
from freight_billing.invoice_status.models import InvoiceStatusDefinition
from freight_billing.shipments.events import ShipmentEvent
from freight_billing.shipments.models import Shipment
from freight_billing.stores.base import AuditTrail, RecordStore, ShipmentStore, StatusCatalogStore


class _Availability:
    name: str
    available: bool = True

    async def _touch(self) -> None:
        # Yield so concurrent callers interleave the way they would on real I/O
        await asyncio.sleep(0)
        if not self.available:
            raise StoreUnavailableError(self.name, "simulated outage")


class MemoryRecordStore(_Availability, RecordStore):
    def __init__(self, name: str = "memory") -> None:
        self.name = name
        self.available = True
        self.uploads: dict[str, UploadRecord] = {}
        self.results: dict[str, ResultRecord] = {}
        self.reads: list[tuple[str, str]] = []

    async def get_upload(self, upload_id: str) -> UploadRecord | None:
        await self._touch()
        self.reads.append(("upload", upload_id))
        return self.uploads.get(upload_id)

    async def get_result(self, result_id: str) -> ResultRecord | None:
        await self._touch()
        self.reads.append(("result", result_id))
        return self.results.get(result_id)

    async def create_upload(self, submission: UploadSubmission) -> UploadRecord:
        await self._touch()
        record = UploadRecord(
            id=uuid.uuid4().hex,
            file_name=submission.file_name,
            file_size=submission.file_size,
            carrier_id=submission.carrier_id or "",
            processing_status=ProcessingStatus.QUEUED,
            uploaded_at=submission.uploaded_at,
            updated_at=submission.uploaded_at,
            uploaded_by=submission.uploaded_by,
        )
        self.uploads[record.id] = record
        return record

    async def list_uploads(self, statuses: Iterable[ProcessingStatus]) -> list[UploadRecord]:
        await self._touch()
        wanted = set(statuses)
        return [u for u in self.uploads.values() if u.processing_status in wanted]

    # Writers on the extraction-engine side of the boundary

    def put_upload(self, record: UploadRecord) -> None:
        self.uploads[record.id] = record

    def put_result(self, record: ResultRecord) -> None:
        self.results[record.id] = record

    def set_status(
        self,
        upload_id: str,
        status: ProcessingStatus,
        *,
        result_id: str | None = None,
        error: str | None = None,
        at: datetime | None = None,
    ) -> UploadRecord:
        current = self.uploads[upload_id]
        now = at or datetime.now(timezone.utc)
        updated = dataclasses.replace(
            current,
            processing_status=status,
            result_id=result_id if result_id is not None else current.result_id,
            error=error,
            updated_at=now,
            processed_at=now if status.is_terminal else current.processed_at,
            version=current.version + 1,
        )
        self.uploads[upload_id] = updated
        return updated


class MemoryShipmentStore(_Availability, ShipmentStore):
    def __init__(self, shipments: Iterable[Shipment] = (), name: str = "shipments") -> None:
        self.name = name
        self.available = True
        self.shipments: dict[str, Shipment] = {s.storage_id: s for s in shipments}
        self.writes: list[tuple[str, str]] = []

    def add(self, shipment: Shipment) -> None:
        self.shipments[shipment.storage_id] = shipment

    async def find_by_shipment_number(self, shipment_number: str) -> Shipment | None:
        await self._touch()
        for shipment in self.shipments.values():
            if shipment.shipment_number == shipment_number:
                return shipment
        return None

    async def get(self, storage_id: str) -> Shipment | None:
        await self._touch()
        return self.shipments.get(storage_id)

    async def list_shipments(
        self,
        *,
        company_ids: Sequence[str] | None = None,
        limit: int = 100,
    ) -> list[Shipment]:
        await self._touch()
        rows = list(self.shipments.values())
        if company_ids:
            rows = [s for s in rows if s.company_id in company_ids]
        epoch = datetime.min.replace(tzinfo=timezone.utc)
        rows.sort(key=lambda s: s.created_at or epoch, reverse=True)
        return rows[:limit]

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
        await self._touch()
        current = self.shipments.get(storage_id)
        if current is None or current.version != expected_version:
            return False
        self.shipments[storage_id] = dataclasses.replace(
            current,
            invoice_status=status_code,
            has_manual_override=manual_override,
            status_updated_at=updated_at,
            status_updated_by=actor,
            version=current.version + 1,
        )
        self.writes.append((storage_id, status_code))
        return True


class MemoryStatusCatalogStore(_Availability, StatusCatalogStore):
    def __init__(self, definitions: Iterable[InvoiceStatusDefinition] = (), name: str = "invoice_statuses") -> None:
        self.name = name
        self.available = True
        self.definitions: dict[str, InvoiceStatusDefinition] = {d.status_code: d for d in definitions}
        self.inserted = 0

    async def list_definitions(self) -> list[InvoiceStatusDefinition]:
        await self._touch()
        return list(self.definitions.values())

    async def upsert_definitions(self, definitions: Sequence[InvoiceStatusDefinition]) -> int:
        await self._touch()
        count = 0
        for definition in definitions:
            if definition.status_code not in self.definitions:
                self.definitions[definition.status_code] = definition
                count += 1
        self.inserted += count
        return count


class MemoryAuditTrail(_Availability, AuditTrail):
    def __init__(self, name: str = "shipment_events") -> None:
        self.name = name
        self.available = True
        self.events: list[ShipmentEvent] = []

    async def record(self, event: ShipmentEvent) -> None:
        await self._touch()
        self.events.append(event)

    async def events_for(self, shipment_id: str) -> list[ShipmentEvent]:
        await self._touch()
        rows = [e for e in self.events if e.shipment_id == shipment_id]
        return sorted(rows, key=lambda e: e.timestamp, reverse=True)
