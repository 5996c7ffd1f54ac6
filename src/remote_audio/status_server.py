"""Status and intent HTTP endpoints.

Exposes the bus-derived view of the client for a UI and lets the UI assert
the local audio-enable intent:

- ``GET /health``: liveness
- ``GET /status``: connection status, server state and last RTT
- ``POST /audio`` with ``{"on": bool}``: publish the audio-enable intent

The server never reads control loop state directly; it keeps its own view
built from the events the loop publishes.
"""

import asyncio
import logging
import time
from dataclasses import asdict, dataclass
from typing import Any

from aiohttp import web

from remote_audio.bus import EventBus, Subscription
from remote_audio.events import Topic
from remote_audio.session import ConnectionStatus

logger = logging.getLogger(__name__)

_BUS_KEY = web.AppKey("bus", EventBus)


@dataclass
class StatusView:
    """Client status as observed on the bus."""

    connection_status: str = ConnectionStatus.DISCONNECTED.value
    server_online: bool = False
    server_audio_on: bool = False
    tx_user: str = ""
    rtt_ms: float | None = None

    def update(self, topic: Topic, value: Any) -> None:
        """Fold one bus event into the view."""
        if topic is Topic.CONNECTION_STATUS:
            self.connection_status = ConnectionStatus(value).value
        elif topic is Topic.SERVER_ONLINE:
            self.server_online = bool(value)
        elif topic is Topic.SERVER_AUDIO_ON:
            self.server_audio_on = bool(value)
        elif topic is Topic.TX_USER:
            self.tx_user = str(value)
        elif topic is Topic.PING:
            self.rtt_ms = int(value) / 1_000_000


_VIEW_KEY = web.AppKey("status_view", StatusView)

_TRACKED_TOPICS = (
    Topic.CONNECTION_STATUS,
    Topic.SERVER_ONLINE,
    Topic.SERVER_AUDIO_ON,
    Topic.TX_USER,
    Topic.PING,
)


class StatusHandler:
    """Request handlers backed by a :class:`StatusView`."""

    def __init__(self) -> None:
        self.start_time = time.time()

    async def health_check(self, request: web.Request) -> web.Response:
        return web.json_response(
            {"status": "healthy", "uptime_seconds": time.time() - self.start_time}
        )

    async def status(self, request: web.Request) -> web.Response:
        view: StatusView = request.app[_VIEW_KEY]
        return web.json_response(asdict(view))

    async def set_audio(self, request: web.Request) -> web.Response:
        """Publish the audio-enable intent.

        Returns:
            202 Accepted: Intent published (the server may still refuse it)
            400 Bad Request: Body is not ``{"on": bool}``
        """
        try:
            body = await request.json()
        except ValueError:
            return web.json_response({"error": "Body must be JSON"}, status=400)

        on = body.get("on") if isinstance(body, dict) else None
        if not isinstance(on, bool):
            return web.json_response({"error": "Field 'on' must be a boolean"}, status=400)

        await request.app[_BUS_KEY].publish(Topic.REQUEST_SERVER_AUDIO_ON, on)
        logger.info("Audio intent received", extra={"audio_on": on})
        return web.json_response({"on": on}, status=202)


def setup_status_routes(app: web.Application, bus: EventBus, view: StatusView) -> None:
    """Register status routes on an aiohttp application.

    Args:
        app: aiohttp application
        bus: Event bus intents are published on
        view: View served by ``/status``
    """
    handler = StatusHandler()
    app[_BUS_KEY] = bus
    app[_VIEW_KEY] = view
    app.router.add_get("/health", handler.health_check)
    app.router.add_get("/status", handler.status)
    app.router.add_post("/audio", handler.set_audio)


class StatusServer:
    """Runs the status endpoints and keeps the view current from the bus."""

    def __init__(self, bus: EventBus, address: str = "127.0.0.1", port: int = 8080) -> None:
        self.address = address
        self.port = port
        self.view = StatusView()
        self.app = web.Application()
        setup_status_routes(self.app, bus, self.view)

        self._subscriptions: list[Subscription] = [bus.subscribe(t) for t in _TRACKED_TOPICS]
        self._trackers: list[asyncio.Task[None]] = []
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        """Start tracking bus events and serving HTTP."""
        self._trackers = [asyncio.create_task(self._track(s)) for s in self._subscriptions]

        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.address, self.port)
        await site.start()
        logger.info("Status server started", extra={"address": self.address, "port": self.port})

    async def stop(self) -> None:
        """Stop serving and detach from the bus. Safe to call multiple times."""
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        await asyncio.gather(*self._trackers, return_exceptions=True)
        self._trackers = []

        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("Status server stopped")

    async def _track(self, subscription: Subscription) -> None:
        async for value in subscription:
            try:
                self.view.update(subscription.topic, value)
            except (TypeError, ValueError) as e:
                logger.warning(
                    "Ignoring malformed status event",
                    extra={"topic": subscription.topic.value, "error": str(e)},
                )
