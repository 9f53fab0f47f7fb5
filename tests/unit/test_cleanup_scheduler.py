import asyncio

import pytest

from crm_enrichment.features.enrichment.services import CleanupScheduler


@pytest.mark.asyncio
async def test_scheduled_callback_fires_once():
    scheduler = CleanupScheduler()
    fired = []

    async def callback():
        fired.append("k")

    scheduler.schedule("k", 0.01, callback)
    assert scheduler.is_scheduled("k")

    await asyncio.sleep(0.05)

    assert fired == ["k"]
    assert not scheduler.is_scheduled("k")


@pytest.mark.asyncio
async def test_cancel_prevents_callback():
    scheduler = CleanupScheduler()
    fired = []

    async def callback():
        fired.append("k")

    scheduler.schedule("k", 0.02, callback)
    assert scheduler.cancel("k")
    assert not scheduler.cancel("k")

    await asyncio.sleep(0.05)
    assert fired == []


@pytest.mark.asyncio
async def test_reschedule_replaces_previous_timer():
    scheduler = CleanupScheduler()
    fired = []

    async def first():
        fired.append("first")

    async def second():
        fired.append("second")

    scheduler.schedule("k", 0.01, first)
    scheduler.schedule("k", 0.02, second)

    await asyncio.sleep(0.06)
    assert fired == ["second"]


@pytest.mark.asyncio
async def test_failing_callback_is_contained():
    scheduler = CleanupScheduler()

    async def callback():
        raise RuntimeError("boom")

    scheduler.schedule("k", 0, callback)
    await asyncio.sleep(0.02)

    assert not scheduler.is_scheduled("k")


@pytest.mark.asyncio
async def test_cancel_all():
    scheduler = CleanupScheduler()

    async def callback():
        return None

    scheduler.schedule("a", 10, callback)
    scheduler.schedule("b", 10, callback)
    scheduler.cancel_all()

    assert not scheduler.is_scheduled("a")
    assert not scheduler.is_scheduled("b")
