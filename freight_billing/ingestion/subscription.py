"""Change subscriptions over stores that cannot push.

A ``PollingSubscription`` reads a record on a fixed interval and hands it
to its handler only when the record's change token differs from the last
one delivered, so duplicate and no-op notifications are dropped. Each
change is handled to completion before the next read. ``cancel()`` stops
delivery immediately; nothing is delivered after it returns.
"""
from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Hashable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Returns True when the subscription has reached a terminal state
ChangeHandler = Callable[[T | None], Awaitable[bool]]
ErrorHandler = Callable[[Exception], Awaitable[None]]
IdleHandler = Callable[[float], Awaitable[None]]

_MISSING = object()


class Subscription:
    """Cancelable handle on a running observation."""

    def __init__(self, name: str, *, clock: Callable[[], float] = time.monotonic) -> None:
        self.name = name
        self._clock = clock
        self._cancelled = False
        self._task: asyncio.Task | None = None
        self._last_change_at = clock()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def seconds_since_change(self) -> float:
        return max(0.0, self._clock() - self._last_change_at)

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
        logger.debug("subscription_cancelled", extra={"subscription": self.name})

    async def wait(self) -> None:
        """Block until the observation ends (terminal state or cancel)."""
        if self._task is None:
            return
        try:
            await asyncio.shield(self._task)
        except asyncio.CancelledError:
            if not self._task.cancelled():
                raise

    def add_done_callback(self, callback: Callable[[Subscription], None]) -> None:
        if self._task is None:
            raise RuntimeError("subscription has not been started")
        self._task.add_done_callback(lambda _task: callback(self))

    def _mark_change(self) -> None:
        self._last_change_at = self._clock()


class PollingSubscription(Subscription, Generic[T]):
    def __init__(
        self,
        name: str,
        fetch: Callable[[], Awaitable[T | None]],
        on_change: ChangeHandler,
        *,
        token: Callable[[T], Hashable],
        interval: float,
        on_error: ErrorHandler | None = None,
        on_idle: IdleHandler | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(name, clock=clock)
        self._fetch = fetch
        self._on_change = on_change
        self._token = token
        self._interval = interval
        self._on_error = on_error
        self._on_idle = on_idle
        self._last_token: object = _MISSING

    def start(self, initial: T | None = None) -> PollingSubscription[T]:
        if self._task is not None:
            raise RuntimeError("subscription already started")
        self._task = asyncio.get_running_loop().create_task(self._run(initial))
        return self

    async def _run(self, initial: T | None) -> None:
        pending = initial
        while not self._cancelled:
            if pending is None:
                try:
                    pending = await self._fetch()
                except Exception as exc:
                    logger.warning(
                        "subscription_fetch_failed",
                        extra={"subscription": self.name, "error": str(exc)},
                    )
                    if self._on_error is not None and not self._cancelled:
                        await self._on_error(exc)
                    return
                if pending is None:
                    # The record disappeared; let the handler decide what that means
                    if not self._cancelled:
                        await self._on_change(None)
                    return

            current, pending = pending, None
            token = self._token(current)
            if token != self._last_token:
                self._last_token = token
                self._mark_change()
                if self._cancelled:
                    return
                if await self._on_change(current):
                    return
            elif self._on_idle is not None and not self._cancelled:
                await self._on_idle(self.seconds_since_change)

            await asyncio.sleep(self._interval)
