"""Tests for core.scheduler.ChannelScheduler."""

import asyncio

from core.registry import Channel
from core.scheduler import ChannelScheduler


def test_each_channel_ticks_on_its_own_interval():
    ticks = []

    async def on_tick(channel):
        ticks.append(channel.name)

    async def scenario():
        scheduler = ChannelScheduler(on_tick)
        scheduler.start([
            Channel("fast", lambda: None, 10),
            Channel("slow", lambda: None, 1000),
        ])
        await asyncio.sleep(0.1)
        scheduler.stop()

    asyncio.run(scenario())
    assert ticks.count("fast") >= 3
    assert "slow" not in ticks


def test_slow_tick_stretches_only_its_own_period():
    ticks = []

    async def on_tick(channel):
        ticks.append(channel.name)
        if channel.name == "slow":
            await asyncio.sleep(0.05)

    async def scenario():
        scheduler = ChannelScheduler(on_tick)
        scheduler.start([
            Channel("fast", lambda: None, 10),
            Channel("slow", lambda: None, 10),
        ])
        await asyncio.sleep(0.2)
        scheduler.stop()

    asyncio.run(scenario())
    # Slow cycle is 10ms sleep + 50ms fetch
    assert ticks.count("slow") <= 4
    assert ticks.count("fast") >= 6


def test_failing_tick_does_not_end_loop():
    calls = []

    async def on_tick(channel):
        calls.append(channel.name)
        raise RuntimeError("boom")

    async def scenario():
        scheduler = ChannelScheduler(on_tick)
        scheduler.start([Channel("flaky", lambda: None, 10)])
        await asyncio.sleep(0.1)
        scheduler.stop()

    asyncio.run(scenario())
    assert len(calls) >= 2


def test_stop_cancels_every_loop():
    ticks = []

    async def on_tick(channel):
        ticks.append(channel.name)

    async def scenario():
        scheduler = ChannelScheduler(on_tick)
        scheduler.start([Channel("a", lambda: None, 10), Channel("b", lambda: None, 10)])
        tasks = list(scheduler._tasks.values())
        assert scheduler.running
        scheduler.stop()
        await asyncio.sleep(0.05)
        return scheduler, tasks

    scheduler, tasks = asyncio.run(scenario())
    assert not scheduler.running
    assert all(task.cancelled() for task in tasks)
    assert ticks == []


def test_start_twice_keeps_one_loop_per_channel():
    async def on_tick(channel):
        pass

    async def scenario():
        scheduler = ChannelScheduler(on_tick)
        channels = [Channel("a", lambda: None, 1000)]
        scheduler.start(channels)
        first = dict(scheduler._tasks)
        scheduler.start(channels)
        same = scheduler._tasks == first
        scheduler.stop()
        return same

    assert asyncio.run(scenario())
