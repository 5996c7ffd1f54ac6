"""Unit tests for the event bus.

Tests fan-out, per-topic ordering, backpressure and close semantics.
"""

import asyncio

import pytest

from remote_audio.bus import EventBus
from remote_audio.errors import BusClosedError
from remote_audio.events import Topic


@pytest.mark.asyncio
async def test_every_subscriber_receives_each_value() -> None:
    """Test broadcast to all subscribers of a topic."""
    bus = EventBus()
    first = bus.subscribe(Topic.SERVER_ONLINE)
    second = bus.subscribe(Topic.SERVER_ONLINE)

    await bus.publish(Topic.SERVER_ONLINE, True)

    assert await first.get() is True
    assert await second.get() is True
    assert first.pending() == 0
    assert second.pending() == 0


@pytest.mark.asyncio
async def test_publish_order_preserved_per_topic() -> None:
    """Test a subscriber sees values in publish order."""
    bus = EventBus()
    subscription = bus.subscribe(Topic.TX_USER)

    for name in ("a", "b", "c"):
        await bus.publish(Topic.TX_USER, name)

    assert [await subscription.get() for _ in range(3)] == ["a", "b", "c"]


@pytest.mark.asyncio
async def test_topics_are_isolated() -> None:
    """Test values only reach subscribers of their own topic."""
    bus = EventBus()
    online = bus.subscribe(Topic.SERVER_ONLINE)
    audio = bus.subscribe(Topic.SERVER_AUDIO_ON)

    await bus.publish(Topic.SERVER_ONLINE, True)

    assert online.pending() == 1
    assert audio.pending() == 0


@pytest.mark.asyncio
async def test_publish_without_subscribers() -> None:
    """Test publishing to a topic nobody listens on is a no-op."""
    bus = EventBus()

    await bus.publish(Topic.PING, 1000)

    assert bus.subscriber_count(Topic.PING) == 0


@pytest.mark.asyncio
async def test_late_subscriber_misses_earlier_values() -> None:
    """Test subscriptions only see values published after subscribing."""
    bus = EventBus()
    await bus.publish(Topic.TX_USER, "early")
    subscription = bus.subscribe(Topic.TX_USER)
    await bus.publish(Topic.TX_USER, "late")

    assert await subscription.get() == "late"
    assert subscription.pending() == 0


@pytest.mark.asyncio
async def test_full_buffer_blocks_publisher() -> None:
    """Test publisher waits when a subscriber buffer is full."""
    bus = EventBus(capacity=1)
    subscription = bus.subscribe(Topic.PING)

    await bus.publish(Topic.PING, 1)
    blocked = asyncio.create_task(bus.publish(Topic.PING, 2))
    await asyncio.sleep(0.01)
    assert not blocked.done()

    assert await subscription.get() == 1
    await asyncio.wait_for(blocked, timeout=1.0)
    assert await subscription.get() == 2


@pytest.mark.asyncio
async def test_close_releases_blocked_publisher() -> None:
    """Test closing the bus unblocks a publisher waiting on a full buffer."""
    bus = EventBus(capacity=1)
    bus.subscribe(Topic.PING)

    await bus.publish(Topic.PING, 1)
    blocked = asyncio.create_task(bus.publish(Topic.PING, 2))
    await asyncio.sleep(0.01)

    bus.close()
    await asyncio.wait_for(blocked, timeout=1.0)


@pytest.mark.asyncio
async def test_close_ends_iteration() -> None:
    """Test async iteration stops when the bus closes."""
    bus = EventBus()
    subscription = bus.subscribe(Topic.TX_USER)
    received: list[str] = []

    async def consume() -> None:
        async for value in subscription:
            received.append(value)

    consumer = asyncio.create_task(consume())
    await bus.publish(Topic.TX_USER, "DL1ABC")
    await asyncio.sleep(0.01)
    bus.close()
    await asyncio.wait_for(consumer, timeout=1.0)

    assert received == ["DL1ABC"]
    assert subscription.closed


@pytest.mark.asyncio
async def test_closed_bus_rejects_publish_and_subscribe() -> None:
    """Test operations on a closed bus raise BusClosedError."""
    bus = EventBus()
    subscription = bus.subscribe(Topic.SHUTDOWN)
    bus.close()
    bus.close()

    assert bus.closed
    with pytest.raises(BusClosedError):
        await bus.publish(Topic.SHUTDOWN, True)
    with pytest.raises(BusClosedError):
        bus.subscribe(Topic.SHUTDOWN)
    with pytest.raises(BusClosedError):
        await subscription.get()


@pytest.mark.asyncio
async def test_unsubscribe_detaches() -> None:
    """Test an unsubscribed subscription receives nothing further."""
    bus = EventBus()
    subscription = bus.subscribe(Topic.SERVER_ONLINE)
    subscription.unsubscribe()

    await bus.publish(Topic.SERVER_ONLINE, True)

    assert bus.subscriber_count(Topic.SERVER_ONLINE) == 0
    with pytest.raises(BusClosedError):
        await subscription.get()


def test_invalid_capacity() -> None:
    """Test capacity must be positive."""
    with pytest.raises(ValueError):
        EventBus(capacity=0)
