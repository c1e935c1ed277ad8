"""Observation of EDI uploads: transitions, store affinity, cancellation, stalls."""
from __future__ import annotations

import asyncio

import pytest

from freight_billing.core.errors import IngestionFailedError, ResultMissingError, UploadNotFoundError
from freight_billing.ingestion.models import ExtractedRecord, ProcessingStatus, RecordType, ResultRecord, UploadRecord
from freight_billing.ingestion.state_machine import IngestionStateMachine, IngestionUpdate, UpdateKind
from freight_billing.stores.chain import StoreChain
from freight_billing.stores.memory import MemoryRecordStore

INTERVAL = 0.01


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _upload(upload_id: str = "u-1") -> UploadRecord:
    return UploadRecord(
        id=upload_id,
        file_name="fedex.csv",
        file_size=512,
        carrier_id="FEDEX",
        processing_status=ProcessingStatus.QUEUED,
    )


def _result(result_id: str = "r-1", carrier: str = "FEDEX") -> ResultRecord:
    return ResultRecord(
        id=result_id,
        carrier=carrier,
        records=(
            ExtractedRecord(RecordType.SHIPMENT, {"trackingNumber": "1Z"}),
            ExtractedRecord(RecordType.CHARGE, {"amount": "12.50"}),
        ),
    )


class _Collector:
    def __init__(self) -> None:
        self.queue: asyncio.Queue[IngestionUpdate] = asyncio.Queue()
        self.updates: list[IngestionUpdate] = []

    def __call__(self, update: IngestionUpdate) -> None:
        self.updates.append(update)
        self.queue.put_nowait(update)

    async def next(self) -> IngestionUpdate:
        return await asyncio.wait_for(self.queue.get(), timeout=1)


@pytest.fixture
def stores() -> tuple[MemoryRecordStore, MemoryRecordStore]:
    return MemoryRecordStore("admin"), MemoryRecordStore("regular")


def _machine(stores, **kwargs) -> IngestionStateMachine:
    kwargs.setdefault("poll_interval", INTERVAL)
    return IngestionStateMachine(StoreChain(list(stores)), **kwargs)


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_happy_path_reports_each_transition_once(stores) -> None:
    admin, _ = stores
    admin.put_upload(_upload())
    admin.put_result(_result())
    collector = _Collector()

    subscription = await _machine(stores).observe("u-1", collector)
    assert (await collector.next()).kind is UpdateKind.QUEUED

    admin.set_status("u-1", ProcessingStatus.PROCESSING)
    update = await collector.next()
    assert update.kind is UpdateKind.PROCESSING
    assert update.message == "Processing file..."

    admin.set_status("u-1", ProcessingStatus.COMPLETED, result_id="r-1")
    update = await collector.next()
    assert update.kind is UpdateKind.COMPLETED
    assert update.is_terminal
    assert update.result_store == "admin"
    assert len(update.result.shipments()) == 1
    assert len(update.result.charges()) == 1

    await subscription.wait()
    assert [u.kind for u in collector.updates] == [UpdateKind.QUEUED, UpdateKind.PROCESSING, UpdateKind.COMPLETED]


@pytest.mark.asyncio
async def test_queued_is_never_terminal(stores) -> None:
    admin, _ = stores
    admin.put_upload(_upload())
    collector = _Collector()

    subscription = await _machine(stores).observe("u-1", collector)
    update = await collector.next()
    await asyncio.sleep(INTERVAL * 5)

    assert update.is_terminal is False
    assert subscription.active
    assert len(collector.updates) == 1
    subscription.cancel()


@pytest.mark.asyncio
async def test_result_read_from_the_store_that_held_the_upload(stores) -> None:
    admin, regular = stores
    regular.put_upload(_upload())
    admin.put_result(_result(carrier="WRONG"))
    regular.put_result(_result(carrier="FEDEX"))
    collector = _Collector()

    await _machine(stores).observe("u-1", collector)
    await collector.next()
    regular.set_status("u-1", ProcessingStatus.COMPLETED, result_id="r-1")
    update = await collector.next()

    assert update.store == "regular"
    assert update.result_store == "regular"
    assert update.result.carrier == "FEDEX"
    assert ("result", "r-1") not in admin.reads


@pytest.mark.asyncio
async def test_result_falls_back_to_other_store(stores) -> None:
    admin, regular = stores
    admin.put_upload(_upload())
    regular.put_result(_result())
    collector = _Collector()

    await _machine(stores).observe("u-1", collector)
    await collector.next()
    admin.set_status("u-1", ProcessingStatus.COMPLETED, result_id="r-1")
    update = await collector.next()

    assert update.kind is UpdateKind.COMPLETED
    assert update.result_store == "regular"


@pytest.mark.asyncio
async def test_completed_without_result_is_an_error(stores) -> None:
    admin, _ = stores
    admin.put_upload(_upload())
    collector = _Collector()

    subscription = await _machine(stores).observe("u-1", collector)
    await collector.next()
    admin.set_status("u-1", ProcessingStatus.COMPLETED, result_id="r-missing")
    update = await collector.next()

    assert update.kind is UpdateKind.ERROR
    assert update.is_terminal
    assert isinstance(update.error, ResultMissingError)
    assert update.error.result_id == "r-missing"
    await subscription.wait()


@pytest.mark.asyncio
async def test_failed_upload_surfaces_reason(stores) -> None:
    admin, _ = stores
    admin.put_upload(_upload())
    collector = _Collector()

    await _machine(stores).observe("u-1", collector)
    await collector.next()
    admin.set_status("u-1", ProcessingStatus.FAILED, error="Unrecognized column layout")
    update = await collector.next()

    assert update.kind is UpdateKind.FAILED
    assert isinstance(update.error, IngestionFailedError)
    assert update.message == "Unrecognized column layout"


@pytest.mark.asyncio
async def test_raising_callback_does_not_stop_observation(stores) -> None:
    admin, _ = stores
    admin.put_upload(_upload())
    collector = _Collector()

    def on_transition(update: IngestionUpdate) -> None:
        collector(update)
        if update.kind is UpdateKind.QUEUED:
            raise RuntimeError("consumer bug")

    subscription = await _machine(stores).observe("u-1", on_transition)
    assert (await collector.next()).kind is UpdateKind.QUEUED

    admin.set_status("u-1", ProcessingStatus.FAILED, error="Unrecognized column layout")
    update = await collector.next()
    await subscription.wait()

    assert update.kind is UpdateKind.FAILED
    assert [u.kind for u in collector.updates] == [UpdateKind.QUEUED, UpdateKind.FAILED]


@pytest.mark.asyncio
async def test_cancel_stops_delivery(stores) -> None:
    admin, _ = stores
    admin.put_upload(_upload())
    collector = _Collector()

    subscription = await _machine(stores).observe("u-1", collector)
    await collector.next()
    subscription.cancel()
    admin.set_status("u-1", ProcessingStatus.PROCESSING)
    await asyncio.sleep(INTERVAL * 5)

    assert subscription.cancelled
    assert not subscription.active
    assert [u.kind for u in collector.updates] == [UpdateKind.QUEUED]


@pytest.mark.asyncio
async def test_stall_reported_once_per_stall(stores) -> None:
    admin, _ = stores
    admin.put_upload(_upload())
    now = [0.0]
    collector = _Collector()

    subscription = await _machine(stores, stall_timeout=5, clock=lambda: now[0]).observe("u-1", collector)
    await collector.next()

    now[0] = 10.0
    update = await collector.next()
    assert update.kind is UpdateKind.STALLED
    assert update.seconds_since_transition == pytest.approx(10.0)
    await asyncio.sleep(INTERVAL * 5)
    assert [u.kind for u in collector.updates] == [UpdateKind.QUEUED, UpdateKind.STALLED]

    admin.set_status("u-1", ProcessingStatus.PROCESSING)
    assert (await collector.next()).kind is UpdateKind.PROCESSING
    subscription.cancel()


@pytest.mark.asyncio
async def test_async_callbacks_are_awaited(stores) -> None:
    admin, _ = stores
    admin.put_upload(_upload())
    seen: list[UpdateKind] = []

    async def on_transition(update: IngestionUpdate) -> None:
        await asyncio.sleep(0)
        seen.append(update.kind)

    subscription = await _machine(stores).observe("u-1", on_transition)
    admin.set_status("u-1", ProcessingStatus.FAILED, error="bad file")
    await subscription.wait()

    assert seen[-1] is UpdateKind.FAILED


@pytest.mark.asyncio
async def test_unknown_upload_raises(stores) -> None:
    with pytest.raises(UploadNotFoundError):
        await _machine(stores).observe("u-404", _Collector())


@pytest.mark.asyncio
async def test_close_cancels_active_subscriptions(stores) -> None:
    admin, _ = stores
    admin.put_upload(_upload("u-1"))
    admin.put_upload(_upload("u-2"))
    machine = _machine(stores)

    first = await machine.observe("u-1", _Collector())
    second = await machine.observe("u-2", _Collector())
    machine.close()
    await first.wait()
    await second.wait()

    assert first.cancelled and second.cancelled
    assert machine.active_subscriptions == 0


@pytest.mark.asyncio
async def test_snapshot_includes_result_when_completed(stores) -> None:
    admin, regular = stores
    regular.put_upload(_upload())
    regular.put_result(_result())
    regular.set_status("u-1", ProcessingStatus.COMPLETED, result_id="r-1")

    snapshot = await _machine(stores).snapshot("u-1")

    assert snapshot.status is ProcessingStatus.COMPLETED
    assert snapshot.store == "regular"
    assert snapshot.result_store == "regular"
    assert snapshot.result.id == "r-1"
