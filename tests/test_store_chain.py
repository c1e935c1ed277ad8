"""Fallback reads across the admin and regular record stores."""
from __future__ import annotations

import pytest

from freight_billing.core.errors import ResultMissingError, StoreUnavailableError, UploadNotFoundError
from freight_billing.ingestion.models import ProcessingStatus, ResultRecord, UploadRecord
from freight_billing.stores.chain import StoreChain
from freight_billing.stores.memory import MemoryRecordStore


def _upload(upload_id: str = "u-1") -> UploadRecord:
    return UploadRecord(
        id=upload_id,
        file_name="edi.csv",
        file_size=10,
        carrier_id="UPS",
        processing_status=ProcessingStatus.QUEUED,
    )


@pytest.fixture
def stores() -> tuple[MemoryRecordStore, MemoryRecordStore]:
    return MemoryRecordStore("admin"), MemoryRecordStore("regular")


@pytest.mark.asyncio
async def test_primary_hit_does_not_touch_secondary(stores) -> None:
    admin, regular = stores
    admin.put_upload(_upload())

    located = await StoreChain([admin, regular]).find_upload("u-1")

    assert located.store_name == "admin"
    assert regular.reads == []


@pytest.mark.asyncio
async def test_miss_falls_back_to_secondary_once(stores) -> None:
    admin, regular = stores
    regular.put_upload(_upload())

    located = await StoreChain([admin, regular]).find_upload("u-1")

    assert located.store is regular
    assert admin.reads == [("upload", "u-1")]
    assert regular.reads == [("upload", "u-1")]


@pytest.mark.asyncio
async def test_unavailable_primary_falls_through(stores) -> None:
    admin, regular = stores
    admin.available = False
    regular.put_upload(_upload())

    located = await StoreChain([admin, regular]).find_upload("u-1")

    assert located.store_name == "regular"


@pytest.mark.asyncio
async def test_miss_everywhere_is_not_found(stores) -> None:
    with pytest.raises(UploadNotFoundError) as excinfo:
        await StoreChain(list(stores)).find_upload("u-404")
    assert excinfo.value.stores == ("admin", "regular")


@pytest.mark.asyncio
async def test_miss_with_an_unavailable_store_is_inconclusive(stores) -> None:
    admin, regular = stores
    regular.available = False
    with pytest.raises(StoreUnavailableError):
        await StoreChain([admin, regular]).find_upload("u-1")


@pytest.mark.asyncio
async def test_result_lookup_prefers_given_store(stores) -> None:
    admin, regular = stores
    admin.put_result(ResultRecord(id="r-1", carrier="stale"))
    regular.put_result(ResultRecord(id="r-1", carrier="UPS"))

    located = await StoreChain([admin, regular]).find_result("r-1", preferred=regular, upload_id="u-1")

    assert located.value.carrier == "UPS"
    assert admin.reads == []


@pytest.mark.asyncio
async def test_result_missing_names_upload_and_result(stores) -> None:
    with pytest.raises(ResultMissingError) as excinfo:
        await StoreChain(list(stores)).find_result("r-9", upload_id="u-1")
    assert excinfo.value.upload_id == "u-1"
    assert excinfo.value.result_id == "r-9"


def test_chain_requires_a_store() -> None:
    with pytest.raises(ValueError):
        StoreChain([])
