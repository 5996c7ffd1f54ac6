"""In-process publish/subscribe event bus.

Connects the control loop, the audio workers, the transport and the status
server without direct references between them. The bus is created once at
startup, passed to every component at construction time and closed at exit.

Delivery guarantees:
- Every subscription on a topic receives every value published on that
  topic after it subscribed, exactly once and in publish order.
- Each subscription buffers up to ``capacity`` values. When a buffer is full
  the publisher waits (backpressure); values are never dropped.
- No ordering is guaranteed across topics.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Any

from remote_audio.errors import BusClosedError
from remote_audio.events import Topic

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 100

_CLOSED = object()


class Subscription:
    """A single subscriber's view of one topic.

    Iterate with ``async for`` or call :meth:`get`. Iteration ends when the
    subscription is detached or the bus is closed.
    """

    def __init__(self, bus: "EventBus", topic: Topic, capacity: int) -> None:
        self.topic = topic
        self._bus = bus
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=capacity)
        self._closed = False
        self._closed_event = asyncio.Event()

    @property
    def closed(self) -> bool:
        """Whether the subscription stopped receiving values."""
        return self._closed

    def pending(self) -> int:
        """Number of buffered values not yet consumed."""
        return self._queue.qsize()

    async def get(self) -> Any:
        """Wait for the next value.

        Raises:
            BusClosedError: If the subscription was detached or the bus closed
        """
        if not self._closed:
            value = await self._queue.get()
            if value is not _CLOSED and not self._closed:
                return value
        raise BusClosedError(f"Subscription to '{self.topic.value}' is closed")

    def __aiter__(self) -> AsyncIterator[Any]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[Any]:
        while True:
            try:
                yield await self.get()
            except BusClosedError:
                return

    def unsubscribe(self) -> None:
        """Detach from the bus; pending values are discarded."""
        self._bus._detach(self)

    async def _deliver(self, value: Any) -> None:
        if self._closed:
            return
        if not self._queue.full():
            self._queue.put_nowait(value)
            return

        # Full buffer: wait for room, but give up if the subscription closes
        put = asyncio.ensure_future(self._queue.put(value))
        closed = asyncio.ensure_future(self._closed_event.wait())
        try:
            await asyncio.wait({put, closed}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            put.cancel()
            closed.cancel()

    def _close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._closed_event.set()
        discarded = 0
        while not self._queue.empty():
            self._queue.get_nowait()
            discarded += 1
        if discarded:
            logger.debug(
                "Discarded undelivered bus values",
                extra={"topic": self.topic.value, "count": discarded},
            )
        self._queue.put_nowait(_CLOSED)


class EventBus:
    """Topic-keyed broadcast bus with bounded per-subscriber buffers."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        """Initialize the bus.

        Args:
            capacity: Buffer size of each subscription
        """
        if capacity < 1:
            raise ValueError(f"Bus capacity must be >= 1, got {capacity}")
        self.capacity = capacity
        self._subscriptions: dict[Topic, list[Subscription]] = {}
        self._publish_locks: dict[Topic, asyncio.Lock] = {}
        self._closed = False

    @property
    def closed(self) -> bool:
        """Whether :meth:`close` has been called."""
        return self._closed

    def subscribe(self, topic: Topic) -> Subscription:
        """Register a new subscriber on a topic.

        Raises:
            BusClosedError: If the bus is closed
        """
        if self._closed:
            raise BusClosedError("Cannot subscribe on a closed bus")
        subscription = Subscription(self, topic, self.capacity)
        self._subscriptions.setdefault(topic, []).append(subscription)
        return subscription

    def subscriber_count(self, topic: Topic) -> int:
        """Number of active subscriptions on a topic."""
        return len(self._subscriptions.get(topic, ()))

    async def publish(self, topic: Topic, value: Any) -> None:
        """Deliver a value to every current subscriber of a topic.

        Publishers on the same topic are serialized so each subscriber sees
        values in publish order. Waits while any subscriber buffer is full.

        Raises:
            BusClosedError: If the bus is closed
        """
        if self._closed:
            raise BusClosedError(f"Cannot publish '{topic.value}' on a closed bus")

        lock = self._publish_locks.setdefault(topic, asyncio.Lock())
        async with lock:
            for subscription in tuple(self._subscriptions.get(topic, ())):
                await subscription._deliver(value)

    def close(self) -> None:
        """Close the bus; all subscriptions end. Safe to call multiple times."""
        if self._closed:
            return
        self._closed = True
        for subscriptions in self._subscriptions.values():
            for subscription in subscriptions:
                subscription._close()
        self._subscriptions.clear()
        logger.debug("Event bus closed")

    def _detach(self, subscription: Subscription) -> None:
        subscriptions = self._subscriptions.get(subscription.topic, [])
        if subscription in subscriptions:
            subscriptions.remove(subscription)
        subscription._close()
