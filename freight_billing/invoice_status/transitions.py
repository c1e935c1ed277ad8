"""Invoice status changes for a single shipment.

A transition resolves the shipment by its business key, skips no-op
changes, writes the new status against the storage identity with a
compare-and-swap on ``version``, reads the write back, and records an audit
event. The audit event is best effort: once the status write has landed the
transition succeeds even if recording the event fails.

Any enabled status can be reached from any other; there is no pipeline
order, so corrections such as ``paid`` -> ``exception`` are allowed.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone

from freight_billing.core.errors import (
    ConcurrentStatusUpdateError,
    FreightBillingError,
    MissingActorError,
    ShipmentNotFoundError,
    StatusWriteError,
    StoreUnavailableError,
    UnknownInvoiceStatusError,
)
from freight_billing.invoice_status.models import effective_invoice_status
from freight_billing.invoice_status.registry import InvoiceStatusRegistry
from freight_billing.notifications import Notifier, notify
from freight_billing.shipments.events import EventSource, EventType, ShipmentEvent
from freight_billing.shipments.models import Shipment
from freight_billing.stores.base import AuditTrail, ShipmentStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TransitionResult:
    shipment_id: str
    shipment_number: str
    previous_status: str
    new_status: str
    changed: bool
    verified: bool = False
    audit_recorded: bool = False
    updated_at: datetime | None = None


class _KeyedLocks:
    """One asyncio.Lock per key, dropped once nobody holds or waits on it."""

    def __init__(self) -> None:
        self._locks: dict[str, tuple[asyncio.Lock, int]] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock, users = self._locks.get(key, (asyncio.Lock(), 0))
        self._locks[key] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._locks[key]
            if users <= 1:
                del self._locks[key]
            else:
                self._locks[key] = (lock, users - 1)

    def __len__(self) -> int:
        return len(self._locks)


class InvoiceStatusAuthority:
    def __init__(
        self,
        shipments: ShipmentStore,
        registry: InvoiceStatusRegistry,
        audit: AuditTrail,
        *,
        notifier: Notifier | None = None,
        default_status: str = "uninvoiced",
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._shipments = shipments
        self._registry = registry
        self._audit = audit
        self._notifier = notifier
        self._default_status = default_status
        self._clock = clock
        self._locks = _KeyedLocks()

    async def transition(self, shipment_number: str, new_status_code: str, actor: str) -> TransitionResult:
        try:
            if not actor or not actor.strip():
                raise MissingActorError()
            async with self._locks.hold(shipment_number):
                result = await self._transition(shipment_number, new_status_code, actor)
        except FreightBillingError as exc:
            notify(self._notifier, str(exc), ok=False)
            raise

        if result.changed:
            label = await self._registry.label_for(result.new_status)
            notify(self._notifier, f"Invoice status updated to {label}", ok=True)
        return result

    async def _transition(self, shipment_number: str, new_status_code: str, actor: str) -> TransitionResult:
        shipment = await self._resolve(shipment_number)
        previous = effective_invoice_status(shipment, self._default_status)

        if previous == new_status_code:
            logger.info(
                "invoice_status_unchanged",
                extra={"shipment_id": shipment.storage_id, "status": previous},
            )
            return TransitionResult(
                shipment_id=shipment.storage_id,
                shipment_number=shipment.shipment_number,
                previous_status=previous,
                new_status=new_status_code,
                changed=False,
            )

        target = await self._registry.get_status(new_status_code)
        if target is None or not target.enabled:
            raise UnknownInvoiceStatusError(new_status_code)

        updated_at = self._clock()
        await self._write(shipment, new_status_code, actor, updated_at)
        verified = await self._verify(shipment.storage_id, new_status_code)

        logger.info(
            "invoice_status_updated",
            extra={
                "shipment_id": shipment.storage_id,
                "shipment_number": shipment.shipment_number,
                "from": previous,
                "to": new_status_code,
                "actor": actor,
            },
        )

        audit_recorded = await self._record_event(
            shipment,
            previous=previous,
            previous_label=await self._registry.label_for(previous),
            new=new_status_code,
            new_label=target.status_label,
            actor=actor,
            at=updated_at,
        )

        return TransitionResult(
            shipment_id=shipment.storage_id,
            shipment_number=shipment.shipment_number,
            previous_status=previous,
            new_status=new_status_code,
            changed=True,
            verified=verified,
            audit_recorded=audit_recorded,
            updated_at=updated_at,
        )

    async def _resolve(self, shipment_number: str) -> Shipment:
        # The business key is not the storage identity; always look it up
        shipment = await self._shipments.find_by_shipment_number(shipment_number)
        if shipment is None:
            raise ShipmentNotFoundError(shipment_number)
        return shipment

    async def _write(self, shipment: Shipment, status_code: str, actor: str, updated_at: datetime) -> None:
        try:
            written = await self._shipments.update_invoice_status(
                shipment.storage_id,
                status_code=status_code,
                actor=actor,
                updated_at=updated_at,
                expected_version=shipment.version,
                manual_override=True,
            )
        except StoreUnavailableError as exc:
            raise StatusWriteError(shipment.storage_id, str(exc)) from exc
        if not written:
            raise ConcurrentStatusUpdateError(shipment.storage_id)

    async def _verify(self, storage_id: str, status_code: str) -> bool:
        try:
            stored = await self._shipments.get(storage_id)
        except StoreUnavailableError as exc:
            logger.warning(
                "invoice_status_verify_unavailable",
                extra={"shipment_id": storage_id, "error": str(exc)},
            )
            return False
        if stored is None or stored.invoice_status != status_code:
            logger.warning(
                "invoice_status_verify_mismatch",
                extra={
                    "shipment_id": storage_id,
                    "expected": status_code,
                    "found": stored.invoice_status if stored else None,
                },
            )
            return False
        return True

    async def _record_event(
        self,
        shipment: Shipment,
        *,
        previous: str,
        previous_label: str,
        new: str,
        new_label: str,
        actor: str,
        at: datetime,
    ) -> bool:
        event = ShipmentEvent(
            shipment_id=shipment.storage_id,
            event_type=EventType.INVOICE_STATUS_CHANGE,
            title=f"Invoice Status Updated: {new_label}",
            timestamp=at,
            source=EventSource.USER,
            actor=actor,
            description=f'Invoice status changed from "{previous_label}" to "{new_label}"',
            status_change={
                "from": previous,
                "fromLabel": previous_label,
                "to": new,
                "toLabel": new_label,
            },
            metadata={"shipmentNumber": shipment.shipment_number, "manualOverride": True},
        )
        try:
            await self._audit.record(event)
        except Exception:
            logger.exception(
                "invoice_status_audit_failed",
                extra={"shipment_id": shipment.storage_id, "to": new},
            )
            return False
        return True
