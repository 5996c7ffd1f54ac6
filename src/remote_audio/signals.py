"""System-event watcher: turns termination signals into a pre-shutdown event."""

import asyncio
import logging
import signal

from remote_audio.bus import EventBus
from remote_audio.errors import BusClosedError
from remote_audio.events import Topic

logger = logging.getLogger(__name__)

DEFAULT_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class SystemEventWatcher:
    """Publishes ``Topic.OS_EXIT`` when the process receives SIGINT or SIGTERM.

    The control loop owns the exit sequence; the watcher only asks for it.
    """

    def __init__(
        self,
        bus: EventBus,
        signals: tuple[signal.Signals, ...] = DEFAULT_SIGNALS,
    ) -> None:
        self._bus = bus
        self._signals = signals
        self._loop: asyncio.AbstractEventLoop | None = None
        self._tasks: set[asyncio.Task[None]] = set()

    def start(self) -> None:
        """Install signal handlers on the running event loop."""
        self._loop = asyncio.get_running_loop()
        for sig in self._signals:
            self._loop.add_signal_handler(sig, self._on_signal, sig)

    def stop(self) -> None:
        """Remove the signal handlers. Safe to call multiple times."""
        if self._loop is None:
            return
        for sig in self._signals:
            self._loop.remove_signal_handler(sig)
        self._loop = None

    def _on_signal(self, sig: signal.Signals) -> None:
        logger.info("Received signal", extra={"signal": sig.name})
        task = asyncio.ensure_future(self._request_exit(sig.name))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _request_exit(self, source: str) -> None:
        try:
            await self._bus.publish(Topic.OS_EXIT, source)
        except BusClosedError:
            logger.debug("Bus already closed, ignoring signal", extra={"signal": source})
