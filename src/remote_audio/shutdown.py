"""Shutdown coordination for independently started workers.

The control loop only exits once every registered worker has signalled that
it finished, so no worker is torn down in the middle of a device or socket
write.
"""

import asyncio
import logging
from collections.abc import Awaitable

logger = logging.getLogger(__name__)


class ShutdownBarrier:
    """Countdown released when every registered worker has called :meth:`done`."""

    def __init__(self, count: int = 0) -> None:
        """Initialize barrier.

        Args:
            count: Number of workers registered up front
        """
        if count < 0:
            raise ValueError(f"Worker count must be >= 0, got {count}")
        self._remaining = count
        self._released = asyncio.Event()
        if count == 0:
            self._released.set()

    @property
    def remaining(self) -> int:
        """Workers that have not signalled completion yet."""
        return self._remaining

    @property
    def released(self) -> bool:
        return self._released.is_set()

    def add(self, count: int = 1) -> None:
        """Register additional workers.

        Raises:
            RuntimeError: If the barrier was already released
        """
        if count < 1:
            raise ValueError(f"count must be >= 1, got {count}")
        if self._released.is_set():
            raise RuntimeError("Cannot register workers on a released barrier")
        self._remaining += count

    def done(self) -> None:
        """Signal that one worker has exited.

        Raises:
            RuntimeError: If called more times than workers were registered
        """
        if self._remaining == 0:
            raise RuntimeError("ShutdownBarrier.done() called more times than registered")
        self._remaining -= 1
        if self._remaining == 0:
            self._released.set()

    async def wait(self) -> None:
        """Block until every registered worker has called :meth:`done`."""
        await self._released.wait()


async def run_worker(barrier: ShutdownBarrier, name: str, worker: Awaitable[None]) -> None:
    """Run a worker and release its barrier slot on every exit path.

    Worker failures are logged and do not propagate; the rest of the process
    keeps running until an explicit shutdown.

    Args:
        barrier: Barrier the worker was registered on
        name: Worker name for logging
        worker: The worker's main coroutine
    """
    logger.info("Worker started", extra={"worker": name})
    try:
        await worker
        logger.info("Worker exited", extra={"worker": name})
    except asyncio.CancelledError:
        logger.info("Worker cancelled", extra={"worker": name})
        raise
    except Exception as e:
        logger.exception("Worker failed", extra={"worker": name, "error": str(e)})
    finally:
        barrier.done()
