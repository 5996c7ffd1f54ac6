"""Control-plane event loop.

The single coordinating task of the client. It:
1. Tracks the broker connection status published by the transport
2. Sends a keepalive ping on every tick while connected
3. Forwards local audio-enable intent to the server while connected
4. Decodes server responses, updates the session state and republishes
   each present field (and our own ping RTT) on the bus
5. Turns a pre-shutdown request into the shutdown event, then waits for all
   workers before returning

Inputs from every source are pumped into one fan-in queue of size one and
dispatched strictly one at a time, so the loop owns its state without locks.
Which ready source is serviced next is not defined; each is serviced
eventually.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any

from remote_audio.bus import EventBus, Subscription
from remote_audio.codec import (
    ClientRequest,
    audio_stream_request,
    decode_response,
    encode_request,
    ping_request,
)
from remote_audio.errors import DecodeError, EncodeError
from remote_audio.events import Topic
from remote_audio.pipeline import Pipeline, WireMessage
from remote_audio.session import ConnectionStatus, SessionState, measure_rtt
from remote_audio.shutdown import ShutdownBarrier

logger = logging.getLogger(__name__)


class InputKind(Enum):
    """Sources the control loop listens to."""

    CONNECTION_STATUS = "connection_status"
    AUDIO_INTENT = "audio_intent"
    OS_EXIT = "os_exit"
    SHUTDOWN = "shutdown"
    RESPONSE = "response"
    TICK = "tick"


@dataclass(frozen=True)
class LoopInput:
    """One ready input, tagged with its source."""

    kind: InputKind
    value: Any = None


_SUBSCRIBED_TOPICS: dict[InputKind, Topic] = {
    InputKind.CONNECTION_STATUS: Topic.CONNECTION_STATUS,
    InputKind.AUDIO_INTENT: Topic.REQUEST_SERVER_AUDIO_ON,
    InputKind.OS_EXIT: Topic.OS_EXIT,
    InputKind.SHUTDOWN: Topic.SHUTDOWN,
}


class ControlLoop:
    """Owns connection status and session state; drives the control protocol.

    Thread-safety: This class is NOT thread-safe. Use from a single event loop.
    """

    def __init__(
        self,
        *,
        bus: EventBus,
        pipeline: Pipeline,
        identity: str,
        barrier: ShutdownBarrier,
        ping_interval_s: float = 1.0,
        clock: Callable[[], int] = time.time_ns,
    ) -> None:
        """Initialize the control loop.

        Subscriptions are taken here rather than in :meth:`run` so events
        published while workers start up are not missed.

        Args:
            bus: Process-wide event bus
            pipeline: Queue topology (outbound and decode-response are used)
            identity: This process's identity, used as ping origin
            barrier: Barrier the workers release on exit
            ping_interval_s: Keepalive tick interval in seconds
            clock: Wall clock in nanoseconds since the epoch
        """
        if ping_interval_s <= 0:
            raise ValueError(f"ping_interval_s must be > 0, got {ping_interval_s}")

        self._bus = bus
        self._pipeline = pipeline
        self._identity = identity
        self._barrier = barrier
        self._ping_interval_s = ping_interval_s
        self._clock = clock

        self._connection_status = ConnectionStatus.DISCONNECTED
        self._session = SessionState()

        self._inputs: asyncio.Queue[LoopInput] = asyncio.Queue(maxsize=1)
        self._subscriptions: dict[InputKind, Subscription] = {
            kind: bus.subscribe(topic) for kind, topic in _SUBSCRIBED_TOPICS.items()
        }

    @property
    def connection_status(self) -> ConnectionStatus:
        return self._connection_status

    @property
    def session_state(self) -> SessionState:
        """Copy of the current session state."""
        return replace(self._session)

    @property
    def identity(self) -> str:
        return self._identity

    async def run(self) -> None:
        """Service inputs until shutdown has completed.

        Returns once the shutdown event was received and every worker
        registered on the barrier has exited.
        """
        pumps = [
            asyncio.create_task(self._pump_subscription(kind, subscription))
            for kind, subscription in self._subscriptions.items()
        ]
        pumps.append(asyncio.create_task(self._pump_responses()))
        pumps.append(asyncio.create_task(self._pump_ticks()))

        logger.info(
            "Control loop started",
            extra={"identity": self._identity, "request_topic": self._pipeline.topics.request},
        )
        try:
            while True:
                item = await self._inputs.get()
                if await self.dispatch(item):
                    break
        finally:
            for pump in pumps:
                pump.cancel()
            await asyncio.gather(*pumps, return_exceptions=True)
            for subscription in self._subscriptions.values():
                subscription.unsubscribe()

        logger.info("Control loop stopped")

    async def dispatch(self, item: LoopInput) -> bool:
        """Process a single input.

        Args:
            item: Input to process

        Returns:
            True once shutdown has completed and the loop should stop
        """
        if item.kind is InputKind.CONNECTION_STATUS:
            self._set_connection_status(item.value)

        elif item.kind is InputKind.TICK:
            if self._connection_status is ConnectionStatus.CONNECTED:
                await self._send(ping_request(self._identity, self._clock()))

        elif item.kind is InputKind.AUDIO_INTENT:
            if isinstance(item.value, bool):
                await self._request_server_audio(item.value)
            else:
                logger.warning(
                    "Ignoring non-boolean audio intent", extra={"intent": repr(item.value)}
                )

        elif item.kind is InputKind.RESPONSE:
            await self._handle_response(item.value)

        elif item.kind is InputKind.OS_EXIT:
            logger.info("Shutdown requested", extra={"source": str(item.value)})
            await self._bus.publish(Topic.SHUTDOWN, True)

        elif item.kind is InputKind.SHUTDOWN:
            await self._await_workers()
            return True

        return False

    def _set_connection_status(self, value: Any) -> None:
        try:
            status = ConnectionStatus(value)
        except ValueError:
            logger.warning("Ignoring unknown connection status", extra={"status": repr(value)})
            return
        if status is not self._connection_status:
            logger.info(
                "Connection status changed",
                extra={
                    "from_status": self._connection_status.value,
                    "to_status": status.value,
                },
            )
        self._connection_status = status

    async def _request_server_audio(self, on: bool) -> None:
        # Not queued for later: intent must be re-asserted after reconnecting
        if self._connection_status is not ConnectionStatus.CONNECTED:
            logger.debug(
                "Dropping audio request while not connected",
                extra={"audio_on": on, "status": self._connection_status.value},
            )
            return
        await self._send(audio_stream_request(on))

    async def _send(self, request: ClientRequest) -> None:
        try:
            payload = encode_request(request)
        except EncodeError as e:
            logger.warning("Failed to encode request, not sent", extra={"error": str(e)})
            return
        await self._pipeline.send(WireMessage(topic=self._pipeline.topics.request, payload=payload))

    async def _handle_response(self, message: WireMessage) -> None:
        try:
            response = decode_response(message.payload)
        except DecodeError as e:
            logger.warning(
                "Discarding undecodable server response",
                extra={"error": str(e), "size": len(message.payload)},
            )
            return

        for topic, value in self._session.apply(response):
            await self._bus.publish(topic, value)

        rtt_ns = measure_rtt(response, self._identity, self._clock())
        if rtt_ns is not None:
            logger.debug("Ping", extra={"rtt_ms": rtt_ns / 1_000_000})
            await self._bus.publish(Topic.PING, rtt_ns)

    async def _await_workers(self) -> None:
        logger.info(
            "Waiting for workers to exit", extra={"remaining": self._barrier.remaining}
        )
        # Keep draining responses so a transport blocked on a full
        # decode-response queue can still reach its exit point
        drain = asyncio.create_task(self._discard_responses())
        try:
            await self._barrier.wait()
        finally:
            drain.cancel()
            await asyncio.gather(drain, return_exceptions=True)
        logger.info("All workers exited")

    async def _discard_responses(self) -> None:
        while True:
            await self._pipeline.decode_response.get()

    async def _pump_subscription(self, kind: InputKind, subscription: Subscription) -> None:
        async for value in subscription:
            await self._inputs.put(LoopInput(kind, value))

    async def _pump_responses(self) -> None:
        while True:
            message = await self._pipeline.decode_response.get()
            await self._inputs.put(LoopInput(InputKind.RESPONSE, message))

    async def _pump_ticks(self) -> None:
        while True:
            await asyncio.sleep(self._ping_interval_s)
            await self._inputs.put(LoopInput(InputKind.TICK))
