"""SQL stores against mocked async sessions."""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from freight_billing.core.errors import StoreUnavailableError
from freight_billing.db.models import EdiResultRow, EdiUploadRow, ShipmentRow
from freight_billing.db.repositories import (
    SqlRecordStore,
    SqlShipmentStore,
    SqlStatusCatalogStore,
    result_from_row,
    shipment_from_row,
)
from freight_billing.ingestion.models import ProcessingStatus, RecordType
from freight_billing.invoice_status.models import DEFAULT_INVOICE_STATUSES
from freight_billing.rates.representations import DualRate


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _factory(session: AsyncMock) -> MagicMock:
    ctx = MagicMock()
    ctx.__aenter__ = AsyncMock(return_value=session)
    ctx.__aexit__ = AsyncMock(return_value=False)
    return MagicMock(return_value=ctx)


def _session() -> AsyncMock:
    session = AsyncMock()
    session.add = MagicMock()
    return session


def _scalars(values) -> MagicMock:
    result = MagicMock()
    result.scalars.return_value.all.return_value = values
    result.scalars.return_value.first.return_value = values[0] if values else None
    return result


# ---------------------------------------------------------------------------
# Record store
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_get_upload_maps_row() -> None:
    upload_id = uuid.uuid4()
    row = EdiUploadRow(
        id=upload_id,
        file_name="canpar.csv",
        file_size=99,
        carrier_id="CANPAR",
        processing_status="processing",
        version=3,
    )
    session = _session()
    session.get = AsyncMock(return_value=row)

    record = await SqlRecordStore("admin", _factory(session)).get_upload(str(upload_id))

    assert record.id == str(upload_id)
    assert record.processing_status is ProcessingStatus.PROCESSING
    assert record.version == 3


@pytest.mark.asyncio
async def test_non_uuid_id_is_a_miss_without_io() -> None:
    factory = _factory(_session())
    assert await SqlRecordStore("admin", factory).get_upload("not-a-uuid") is None
    factory.assert_not_called()


@pytest.mark.asyncio
async def test_driver_error_becomes_store_unavailable() -> None:
    session = _session()
    session.get = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("connection refused")))

    with pytest.raises(StoreUnavailableError) as excinfo:
        await SqlRecordStore("regular", _factory(session)).get_result(str(uuid.uuid4()))
    assert excinfo.value.store == "regular"


def test_result_rows_tag_records() -> None:
    row = EdiResultRow(
        id=uuid.uuid4(),
        records=[{"recordType": "charge", "amount": "4"}, {"trackingNumber": "1Z"}],
        carrier="UPS",
        confidence_score=87,
    )
    result = result_from_row(row)
    assert [r.record_type for r in result.records] == [RecordType.CHARGE, RecordType.SHIPMENT]
    assert result.confidence_score == 87


# ---------------------------------------------------------------------------
# Shipment store
# ---------------------------------------------------------------------------

def test_shipment_row_builds_rate_representation() -> None:
    row = ShipmentRow(
        id=uuid.uuid4(),
        shipment_number="IC-55",
        currency="usd",
        actual_rates={"totalCharges": 100},
        markup_rates={"totalCharges": 130, "currency": "USD"},
        has_manual_override=None,
        version=None,
    )
    shipment = shipment_from_row(row)
    assert isinstance(shipment.rates, DualRate)
    assert shipment.currency == "USD"
    assert shipment.version == 1
    assert shipment.has_manual_override is False


@pytest.mark.asyncio
@pytest.mark.parametrize("rowcount,expected", [(1, True), (0, False)])
async def test_update_invoice_status_is_compare_and_swap(rowcount, expected) -> None:
    session = _session()
    session.execute = AsyncMock(return_value=MagicMock(rowcount=rowcount))

    written = await SqlShipmentStore("admin", _factory(session)).update_invoice_status(
        str(uuid.uuid4()),
        status_code="paid",
        actor="ops@example.com",
        updated_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        expected_version=4,
    )

    assert written is expected
    session.commit.assert_awaited_once()


# ---------------------------------------------------------------------------
# Status catalog
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_upsert_inserts_only_missing_codes() -> None:
    session = _session()
    session.execute = AsyncMock(return_value=_scalars(["uninvoiced", "paid"]))

    inserted = await SqlStatusCatalogStore("admin", _factory(session)).upsert_definitions(DEFAULT_INVOICE_STATUSES)

    assert inserted == 5
    assert session.add.call_count == 5


@pytest.mark.asyncio
async def test_upsert_race_loses_quietly() -> None:
    session = _session()
    session.execute = AsyncMock(return_value=_scalars([]))
    session.commit = AsyncMock(side_effect=IntegrityError("INSERT", {}, Exception("duplicate key")))

    inserted = await SqlStatusCatalogStore("admin", _factory(session)).upsert_definitions(DEFAULT_INVOICE_STATUSES)

    assert inserted == 0
    session.rollback.assert_awaited_once()
