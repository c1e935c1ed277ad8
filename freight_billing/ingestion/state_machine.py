"""Observation of an EDI upload through extraction.

    queued -> processing -> completed | failed

The extraction engine drives every transition; this module only watches.
The upload record is located through the store chain (primary first) and
the store that answered is remembered: the subscription watches that
store, and the result record is read from it first, falling back to the
other store only when that read misses.
"""
from __future__ import annotations

import enum
import inspect
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from freight_billing.core.errors import (
    FreightBillingError,
    IngestionFailedError,
    ResultMissingError,
    StoreUnavailableError,
    UploadNotFoundError,
)
from freight_billing.ingestion.models import ProcessingStatus, ResultRecord, UploadRecord
from freight_billing.ingestion.subscription import PollingSubscription, Subscription
from freight_billing.notifications import Notifier, notify
from freight_billing.stores.base import RecordStore
from freight_billing.stores.chain import Located, StoreChain

logger = logging.getLogger(__name__)


class UpdateKind(str, enum.Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    STALLED = "stalled"
    ERROR = "error"


_TERMINAL_KINDS = frozenset({UpdateKind.COMPLETED, UpdateKind.FAILED, UpdateKind.ERROR})

_MESSAGES = {
    UpdateKind.QUEUED: "Waiting in queue...",
    UpdateKind.PROCESSING: "Processing file...",
    UpdateKind.STALLED: "No progress reported; the upload may be stuck",
}


@dataclass(frozen=True)
class IngestionUpdate:
    upload_id: str
    kind: UpdateKind
    store: str | None = None
    record: UploadRecord | None = None
    result: ResultRecord | None = None
    result_store: str | None = None
    error: FreightBillingError | None = None
    seconds_since_transition: float = 0.0

    @property
    def is_terminal(self) -> bool:
        return self.kind in _TERMINAL_KINDS

    @property
    def message(self) -> str:
        if self.error is not None:
            return str(self.error)
        if self.kind is UpdateKind.COMPLETED and self.result is not None:
            return f"Extracted {len(self.result.records)} records"
        return _MESSAGES.get(self.kind, self.kind.value)


@dataclass(frozen=True)
class IngestionSnapshot:
    record: UploadRecord
    store: str
    result: ResultRecord | None = None
    result_store: str | None = None

    @property
    def status(self) -> ProcessingStatus:
        return self.record.processing_status


TransitionCallback = Callable[[IngestionUpdate], Awaitable[None] | None]


class IngestionStateMachine:
    def __init__(
        self,
        chain: StoreChain,
        *,
        poll_interval: float = 2.0,
        stall_timeout: float | None = 120.0,
        notifier: Notifier | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._chain = chain
        self._poll_interval = poll_interval
        self._stall_timeout = stall_timeout
        self._notifier = notifier
        self._clock = clock
        self._active: set[Subscription] = set()

    @property
    def active_subscriptions(self) -> int:
        return len(self._active)

    async def observe(self, upload_id: str, on_transition: TransitionCallback) -> Subscription:
        """Start watching an upload; the caller must cancel() the handle when done."""
        located = await self._chain.find_upload(upload_id)
        origin = located.store
        logger.info("upload_observe_started", extra={"upload_id": upload_id, "store": origin.name})

        stalled_reported = False
        subscription: PollingSubscription[UploadRecord]

        async def deliver(update: IngestionUpdate) -> None:
            if subscription.cancelled:
                return
            try:
                outcome = on_transition(update)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception:
                # A broken consumer must not end observation of the upload
                logger.exception(
                    "upload_callback_failed",
                    extra={"upload_id": upload_id, "store": origin.name, "kind": update.kind.value},
                )

        async def on_change(record: UploadRecord | None) -> bool:
            nonlocal stalled_reported
            stalled_reported = False
            update = await self._dispatch(upload_id, record, origin)
            await deliver(update)
            if update.is_terminal:
                notify(self._notifier, update.message, ok=update.kind is UpdateKind.COMPLETED)
            return update.is_terminal

        async def on_error(exc: Exception) -> None:
            error = exc if isinstance(exc, FreightBillingError) else StoreUnavailableError(origin.name, str(exc))
            await deliver(IngestionUpdate(upload_id=upload_id, kind=UpdateKind.ERROR, store=origin.name, error=error))
            notify(self._notifier, str(error), ok=False)

        async def on_idle(seconds: float) -> None:
            nonlocal stalled_reported
            if stalled_reported or self._stall_timeout is None or seconds < self._stall_timeout:
                return
            stalled_reported = True
            logger.warning(
                "upload_stalled",
                extra={"upload_id": upload_id, "store": origin.name, "seconds": round(seconds, 1)},
            )
            await deliver(
                IngestionUpdate(
                    upload_id=upload_id,
                    kind=UpdateKind.STALLED,
                    store=origin.name,
                    seconds_since_transition=seconds,
                )
            )

        subscription = PollingSubscription(
            f"upload:{upload_id}",
            lambda: origin.get_upload(upload_id),
            on_change,
            token=lambda record: record.change_token,
            interval=self._poll_interval,
            on_error=on_error,
            on_idle=on_idle,
            clock=self._clock,
        )
        subscription.start(initial=located.value)
        self._active.add(subscription)
        subscription.add_done_callback(self._active.discard)
        return subscription

    async def snapshot(self, upload_id: str) -> IngestionSnapshot:
        """Current state of an upload, with its result once completed."""
        located = await self._chain.find_upload(upload_id)
        record = located.value
        if record.processing_status is not ProcessingStatus.COMPLETED:
            return IngestionSnapshot(record=record, store=located.store_name)
        result = await self._find_result(record, located.store)
        return IngestionSnapshot(
            record=record,
            store=located.store_name,
            result=result.value,
            result_store=result.store_name,
        )

    def close(self) -> None:
        for subscription in list(self._active):
            subscription.cancel()

    async def _dispatch(
        self,
        upload_id: str,
        record: UploadRecord | None,
        origin: RecordStore,
    ) -> IngestionUpdate:
        if record is None:
            return IngestionUpdate(
                upload_id=upload_id,
                kind=UpdateKind.ERROR,
                store=origin.name,
                error=UploadNotFoundError(upload_id, (origin.name,)),
            )

        logger.info(
            "upload_status_changed",
            extra={"upload_id": upload_id, "status": record.processing_status.value, "store": origin.name},
        )
        base = dict(upload_id=upload_id, store=origin.name, record=record)

        if record.processing_status is ProcessingStatus.FAILED:
            return IngestionUpdate(
                kind=UpdateKind.FAILED,
                error=IngestionFailedError(upload_id, record.error),
                **base,
            )

        if record.processing_status is ProcessingStatus.COMPLETED:
            try:
                result = await self._find_result(record, origin)
            except (ResultMissingError, StoreUnavailableError) as exc:
                logger.error(
                    "upload_result_unavailable",
                    extra={"upload_id": upload_id, "result_id": record.result_id, "error": str(exc)},
                )
                return IngestionUpdate(kind=UpdateKind.ERROR, error=exc, **base)
            return IngestionUpdate(
                kind=UpdateKind.COMPLETED,
                result=result.value,
                result_store=result.store_name,
                **base,
            )

        kind = UpdateKind.QUEUED if record.processing_status is ProcessingStatus.QUEUED else UpdateKind.PROCESSING
        return IngestionUpdate(kind=kind, **base)

    async def _find_result(self, record: UploadRecord, origin: RecordStore) -> Located[ResultRecord]:
        if not record.result_id:
            raise ResultMissingError(record.id, None, (origin.name,))
        return await self._chain.find_result(record.result_id, preferred=origin, upload_id=record.id)
