"""Store interfaces the billing core reads and writes through.

Concrete stores live in ``freight_billing.db.repositories`` (SQL) and
``freight_billing.stores.memory`` (in-process, dev/test). Adapters raise
``StoreUnavailableError`` for transient I/O and return ``None`` for misses.
"""
from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime

from freight_billing.ingestion.models import (
    ProcessingStatus,
    ResultRecord,
    UploadRecord,
    UploadSubmission,
)
from freight_billing.invoice_status.models import InvoiceStatusDefinition
from freight_billing.shipments.events import ShipmentEvent
from freight_billing.shipments.models import Shipment


class RecordStore:
    """EDI upload and result records held by one named store."""

    name: str = "store"

    async def get_upload(self, upload_id: str) -> UploadRecord | None:
        raise NotImplementedError

    async def get_result(self, result_id: str) -> ResultRecord | None:
        raise NotImplementedError

    async def create_upload(self, submission: UploadSubmission) -> UploadRecord:
        raise NotImplementedError

    async def list_uploads(self, statuses: Iterable[ProcessingStatus]) -> list[UploadRecord]:
        raise NotImplementedError


class ShipmentStore:
    name: str = "shipments"

    async def find_by_shipment_number(self, shipment_number: str) -> Shipment | None:
        raise NotImplementedError

    async def get(self, storage_id: str) -> Shipment | None:
        raise NotImplementedError

    async def list_shipments(
        self,
        *,
        company_ids: Sequence[str] | None = None,
        limit: int = 100,
    ) -> list[Shipment]:
        """Newest first."""
        raise NotImplementedError

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
        """Compare-and-swap on ``version``. Returns False when the version moved on."""
        raise NotImplementedError


class StatusCatalogStore:
    name: str = "invoice_statuses"

    async def list_definitions(self) -> list[InvoiceStatusDefinition]:
        raise NotImplementedError

    async def upsert_definitions(self, definitions: Sequence[InvoiceStatusDefinition]) -> int:
        """Insert definitions whose status_code is absent. Returns the number inserted."""
        raise NotImplementedError


class AuditTrail:
    async def record(self, event: ShipmentEvent) -> None:
        raise NotImplementedError

    async def events_for(self, shipment_id: str) -> list[ShipmentEvent]:
        """Newest first."""
        raise NotImplementedError
