"""Stuck-queue administration.

Finds uploads that have sat in ``queued`` or ``processing`` without any
change for too long, and asks the extraction engine to pick them up
again. Status writes stay with the engine.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from freight_billing.core.errors import FreightBillingError, StoreUnavailableError
from freight_billing.ingestion.models import ProcessingStatus, UploadRecord
from freight_billing.stores.chain import StoreChain

logger = logging.getLogger(__name__)

PENDING_STATUSES = (ProcessingStatus.QUEUED, ProcessingStatus.PROCESSING)


@dataclass(frozen=True)
class StuckUpload:
    record: UploadRecord
    store: str
    stuck_for: timedelta


@dataclass
class QueueDiagnosis:
    checked_at: datetime
    stuck_after: timedelta
    stuck: list[StuckUpload] = field(default_factory=list)
    pending_by_store: dict[str, int] = field(default_factory=dict)
    unavailable_stores: list[str] = field(default_factory=list)

    @property
    def healthy(self) -> bool:
        return not self.stuck and not self.unavailable_stores


@dataclass
class RepairReport:
    requeued: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    skipped: int = 0


class ExtractionEngine:
    """The external worker that owns ``processing_status`` writes."""

    async def requeue(self, upload: UploadRecord) -> None:
        raise NotImplementedError


class LoggingExtractionEngine(ExtractionEngine):
    """Used when no engine is wired in; records the request and does nothing else."""

    async def requeue(self, upload: UploadRecord) -> None:
        logger.info("requeue_requested", extra={"upload_id": upload.id, "status": upload.processing_status.value})


def _last_change(record: UploadRecord) -> datetime | None:
    moment = record.updated_at or record.uploaded_at
    if moment is not None and moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


async def diagnose_queue(
    chain: StoreChain,
    stuck_after: timedelta,
    now: datetime | None = None,
) -> QueueDiagnosis:
    now = now or datetime.now(timezone.utc)
    diagnosis = QueueDiagnosis(checked_at=now, stuck_after=stuck_after)

    for store in chain.stores:
        try:
            pending = await store.list_uploads(PENDING_STATUSES)
        except StoreUnavailableError as exc:
            logger.warning("queue_diagnosis_store_unavailable", extra={"store": store.name, "error": str(exc)})
            diagnosis.unavailable_stores.append(store.name)
            continue

        diagnosis.pending_by_store[store.name] = len(pending)
        for record in pending:
            changed_at = _last_change(record)
            if changed_at is None:
                continue
            age = now - changed_at
            if age > stuck_after:
                diagnosis.stuck.append(StuckUpload(record=record, store=store.name, stuck_for=age))

    diagnosis.stuck.sort(key=lambda s: s.stuck_for, reverse=True)
    logger.info(
        "queue_diagnosed",
        extra={
            "stuck": len(diagnosis.stuck),
            "pending": diagnosis.pending_by_store,
            "unavailable": diagnosis.unavailable_stores,
        },
    )
    return diagnosis


async def repair_stuck_queue(
    diagnosis: QueueDiagnosis,
    engine: ExtractionEngine,
    limit: int = 5,
) -> RepairReport:
    """Requeue at most ``limit`` of the longest-stuck uploads."""
    report = RepairReport()
    targets = diagnosis.stuck[: max(limit, 0)]
    report.skipped = len(diagnosis.stuck) - len(targets)

    for stuck in targets:
        upload_id = stuck.record.id
        try:
            await engine.requeue(stuck.record)
        except FreightBillingError as exc:
            logger.error("requeue_failed", extra={"upload_id": upload_id, "store": stuck.store, "error": str(exc)})
            report.failed[upload_id] = str(exc)
            continue
        except Exception as exc:
            logger.exception("requeue_failed", extra={"upload_id": upload_id, "store": stuck.store})
            report.failed[upload_id] = str(exc)
            continue
        report.requeued.append(upload_id)

    logger.info(
        "queue_repaired",
        extra={"requeued": len(report.requeued), "failed": len(report.failed), "skipped": report.skipped},
    )
    return report
