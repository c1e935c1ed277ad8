"""Per-key memoizing loader with in-flight deduplication.

Concurrent ``load`` calls for the same key share one fetch. Successful
results are cached until ``invalidate_all``; failures are not cached.
An invalidation bumps the generation, so a fetch that started before it
still answers its own callers but never populates the cache.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Hashable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class ExpandedDetailCache(Generic[K, V]):
    def __init__(self, loader: Callable[[K], Awaitable[V]], *, name: str = "details") -> None:
        self._loader = loader
        self._name = name
        self._cache: dict[K, V] = {}
        self._in_flight: dict[K, asyncio.Future[V]] = {}
        self._generation = 0

    def __len__(self) -> int:
        return len(self._cache)

    def is_loading(self, key: K) -> bool:
        return key in self._in_flight

    def is_cached(self, key: K) -> bool:
        return key in self._cache

    def peek(self, key: K) -> V | None:
        return self._cache.get(key)

    async def load(self, key: K) -> V:
        if key in self._cache:
            return self._cache[key]

        task = self._in_flight.get(key)
        if task is not None:
            logger.debug("detail_load_joined", extra={"cache": self._name, "key": str(key)})
        else:
            task = asyncio.ensure_future(self._fetch(key, self._generation))
            self._in_flight[key] = task
            task.add_done_callback(lambda done: self._finish(key, done))
        # A cancelled caller only stops waiting; the shared fetch keeps running for the others
        return await asyncio.shield(task)

    async def _fetch(self, key: K, generation: int) -> V:
        value = await self._loader(key)
        if generation == self._generation:
            self._cache[key] = value
        else:
            logger.debug("detail_load_discarded_stale", extra={"cache": self._name, "key": str(key)})
        return value

    def _finish(self, key: K, task: asyncio.Future[V]) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        if not task.cancelled() and task.exception() is not None:
            logger.debug("detail_load_failed", extra={"cache": self._name, "key": str(key)})

    def invalidate_all(self) -> None:
        self._generation += 1
        self._cache.clear()
        # In-flight fetches keep running for their callers; the next load starts fresh
        self._in_flight.clear()
        logger.info("detail_cache_invalidated", extra={"cache": self._name, "generation": self._generation})
