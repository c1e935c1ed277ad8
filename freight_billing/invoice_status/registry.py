"""Invoice status catalog.

Loads the status definitions ordered by (sort_order, status_label). An
empty catalog is seeded with the seven default statuses once. When the
primary store is unreachable the alternate store is read once, and if that
also fails the defaults are served from memory without being persisted.

Caching is opt-in: with ``cache_ttl_seconds=0`` every load revalidates
against the store.
"""
from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable

from freight_billing.core.errors import ConfigurationError, StoreUnavailableError
from freight_billing.invoice_status.models import (
    DEFAULT_INVOICE_STATUSES,
    InvoiceStatusDefinition,
    sort_statuses,
)
from freight_billing.stores.base import StatusCatalogStore

logger = logging.getLogger(__name__)


class InvoiceStatusRegistry:
    def __init__(
        self,
        primary: StatusCatalogStore,
        fallback: StatusCatalogStore | None = None,
        *,
        cache_ttl_seconds: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._primary = primary
        self._fallback = fallback
        self._ttl = cache_ttl_seconds
        self._clock = clock
        self._lock = asyncio.Lock()
        # (loaded_at, statuses) swapped as one tuple so readers never see half an update
        self._cache: tuple[float, tuple[InvoiceStatusDefinition, ...]] | None = None

    async def load_statuses(self) -> list[InvoiceStatusDefinition]:
        cached = self._fresh_cache()
        if cached is not None:
            return list(cached)

        async with self._lock:
            cached = self._fresh_cache()
            if cached is not None:
                return list(cached)
            statuses = tuple(await self._load_uncached())
            if self._ttl > 0:
                self._cache = (self._clock(), statuses)
            return list(statuses)

    async def seed_defaults(self) -> list[InvoiceStatusDefinition]:
        inserted = await self._primary.upsert_definitions(DEFAULT_INVOICE_STATUSES)
        logger.info(
            "invoice_statuses_seeded",
            extra={"store": self._primary.name, "inserted": inserted},
        )
        return sort_statuses(await self._primary.list_definitions())

    def invalidate(self) -> None:
        self._cache = None

    async def get_status(self, status_code: str) -> InvoiceStatusDefinition | None:
        for status in await self.load_statuses():
            if status.status_code == status_code:
                return status
        return None

    async def label_for(self, status_code: str) -> str:
        status = await self.get_status(status_code)
        return status.status_label if status is not None else status_code

    async def enabled_statuses(self) -> list[InvoiceStatusDefinition]:
        return [s for s in await self.load_statuses() if s.enabled]

    async def ensure_default_status(self, status_code: str = "uninvoiced") -> InvoiceStatusDefinition:
        """Fail fast when the default invoice status is missing or disabled."""
        status = await self.get_status(status_code)
        if status is None:
            raise ConfigurationError(f"Default invoice status {status_code!r} is not in the catalog")
        if not status.enabled:
            raise ConfigurationError(f"Default invoice status {status_code!r} is disabled")
        return status

    def _fresh_cache(self) -> tuple[InvoiceStatusDefinition, ...] | None:
        cache = self._cache
        if cache is None or self._ttl <= 0:
            return None
        loaded_at, statuses = cache
        if self._clock() - loaded_at >= self._ttl:
            return None
        return statuses

    async def _load_uncached(self) -> list[InvoiceStatusDefinition]:
        try:
            statuses = await self._primary.list_definitions()
        except StoreUnavailableError as exc:
            logger.warning(
                "invoice_statuses_primary_unavailable",
                extra={"store": self._primary.name, "error": str(exc)},
            )
            return await self._load_fallback()

        if statuses:
            return sort_statuses(statuses)

        try:
            return await self.seed_defaults()
        except StoreUnavailableError as exc:
            logger.warning("invoice_statuses_seed_failed", extra={"error": str(exc)})
            return sort_statuses(DEFAULT_INVOICE_STATUSES)

    async def _load_fallback(self) -> list[InvoiceStatusDefinition]:
        if self._fallback is not None:
            try:
                statuses = await self._fallback.list_definitions()
            except StoreUnavailableError as exc:
                logger.warning(
                    "invoice_statuses_fallback_unavailable",
                    extra={"store": self._fallback.name, "error": str(exc)},
                )
            else:
                if statuses:
                    return sort_statuses(statuses)

        logger.warning("invoice_statuses_using_builtin_defaults")
        return sort_statuses(DEFAULT_INVOICE_STATUSES)
