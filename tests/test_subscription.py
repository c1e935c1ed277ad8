"""Generic polling subscription: dedupe, errors, disappearance, cancellation."""
from __future__ import annotations

import asyncio

import pytest

from freight_billing.ingestion.subscription import PollingSubscription


class _Source:
    def __init__(self, *values) -> None:
        self.values = list(values)
        self.fetches = 0

    async def fetch(self):
        self.fetches += 1
        if len(self.values) > 1:
            return self.values.pop(0)
        return self.values[0]


@pytest.mark.asyncio
async def test_duplicate_values_are_delivered_once() -> None:
    source = _Source("a", "a", "a", "b", "b", "done")
    seen: list[str | None] = []

    async def on_change(value):
        seen.append(value)
        return value == "done"

    subscription = PollingSubscription("test", source.fetch, on_change, token=lambda v: v, interval=0)
    subscription.start()
    await asyncio.wait_for(subscription.wait(), timeout=1)

    assert seen == ["a", "b", "done"]


@pytest.mark.asyncio
async def test_fetch_error_goes_to_error_handler_and_stops() -> None:
    errors: list[Exception] = []

    async def fetch():
        raise RuntimeError("connection reset")

    async def on_change(value):
        raise AssertionError("should not be called")

    async def on_error(exc):
        errors.append(exc)

    subscription = PollingSubscription("test", fetch, on_change, token=lambda v: v, interval=0, on_error=on_error)
    subscription.start()
    await asyncio.wait_for(subscription.wait(), timeout=1)

    assert [str(e) for e in errors] == ["connection reset"]
    assert not subscription.active


@pytest.mark.asyncio
async def test_disappearing_record_delivers_none_and_stops() -> None:
    seen = []

    async def fetch():
        return None

    async def on_change(value):
        seen.append(value)
        return False

    subscription = PollingSubscription("test", fetch, on_change, token=lambda v: v, interval=0)
    subscription.start(initial="first")
    await asyncio.wait_for(subscription.wait(), timeout=1)

    assert seen == ["first", None]


@pytest.mark.asyncio
async def test_cancel_before_first_delivery_delivers_nothing() -> None:
    seen = []

    async def on_change(value):
        seen.append(value)
        return False

    subscription = PollingSubscription("test", _Source("a").fetch, on_change, token=lambda v: v, interval=0)
    subscription.start()
    subscription.cancel()
    await subscription.wait()

    assert seen == []
    assert subscription.cancelled


@pytest.mark.asyncio
async def test_start_twice_is_rejected() -> None:
    async def on_change(value):
        return True

    subscription = PollingSubscription("test", _Source("a").fetch, on_change, token=lambda v: v, interval=0)
    subscription.start()
    with pytest.raises(RuntimeError):
        subscription.start()
    await subscription.wait()
