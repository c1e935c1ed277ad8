"""Ordered fallback across named record stores.

Each store in the chain is tried at most once per read. A successful read
reports which store answered so follow-up reads can go to the same store
first (store affinity).
"""
from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

from freight_billing.core.errors import ResultMissingError, StoreUnavailableError, UploadNotFoundError
from freight_billing.ingestion.models import ResultRecord, UploadRecord
from freight_billing.stores.base import RecordStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Located(Generic[T]):
    value: T
    store: RecordStore

    @property
    def store_name(self) -> str:
        return self.store.name


class StoreChain:
    def __init__(self, stores: Sequence[RecordStore]) -> None:
        if not stores:
            raise ValueError("StoreChain needs at least one store")
        self._stores = tuple(stores)

    @property
    def stores(self) -> tuple[RecordStore, ...]:
        return self._stores

    @property
    def primary(self) -> RecordStore:
        return self._stores[0]

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(s.name for s in self._stores)

    def ordered_from(self, preferred: RecordStore | None) -> list[RecordStore]:
        if preferred is None:
            return list(self._stores)
        return [preferred] + [s for s in self._stores if s is not preferred]

    async def find_upload(self, upload_id: str) -> Located[UploadRecord]:
        located = await self._first_hit(
            self._stores, lambda store: store.get_upload(upload_id), what="upload", key=upload_id
        )
        if located is None:
            raise UploadNotFoundError(upload_id, self.names)
        return located

    async def find_result(
        self,
        result_id: str,
        *,
        preferred: RecordStore | None = None,
        upload_id: str = "",
    ) -> Located[ResultRecord]:
        stores = self.ordered_from(preferred)
        located = await self._first_hit(
            stores, lambda store: store.get_result(result_id), what="result", key=result_id
        )
        if located is None:
            raise ResultMissingError(upload_id, result_id, tuple(s.name for s in stores))
        return located

    async def _first_hit(
        self,
        stores: Sequence[RecordStore],
        read: Callable[[RecordStore], Awaitable[T | None]],
        *,
        what: str,
        key: str,
    ) -> Located[T] | None:
        unavailable: StoreUnavailableError | None = None
        for store in stores:
            try:
                value = await read(store)
            except StoreUnavailableError as exc:
                logger.warning(
                    "store_read_unavailable",
                    extra={"store": store.name, "record": what, "key": key, "error": str(exc)},
                )
                unavailable = exc
                continue
            if value is not None:
                if store is not stores[0]:
                    logger.info(
                        "store_fallback_hit",
                        extra={"store": store.name, "record": what, "key": key},
                    )
                return Located(value=value, store=store)
            logger.debug("store_read_miss", extra={"store": store.name, "record": what, "key": key})

        # A miss is only conclusive when every store actually answered
        if unavailable is not None:
            raise unavailable
        return None
