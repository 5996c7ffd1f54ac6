"""Shared plumbing for externally supplied workers.

The broker transport and the audio devices are not part of this package.
They are plugged in through factories named in the ``collaborators``
configuration section as ``package.module:callable``; each factory is called
with a :class:`CollaboratorContext` and returns a :class:`Worker`.
"""

import importlib
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass

from remote_audio.bus import EventBus
from remote_audio.config import ClientConfig
from remote_audio.errors import BusClosedError, CollaboratorLoadError
from remote_audio.events import Topic
from remote_audio.pipeline import Pipeline, Topics

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CollaboratorContext:
    """Everything a worker may touch: configuration, the bus and the queues."""

    config: ClientConfig
    bus: EventBus
    pipeline: Pipeline
    identity: str

    @property
    def topics(self) -> Topics:
        return self.pipeline.topics


class Worker(ABC):
    """Base class for independently started workers.

    Subscribes to the shutdown topic on construction so a shutdown published
    before :meth:`run` starts is still seen. Workers must return from
    :meth:`run` once :meth:`wait_for_shutdown` completes.
    """

    def __init__(self, context: CollaboratorContext) -> None:
        self.context = context
        self._shutdown = context.bus.subscribe(Topic.SHUTDOWN)

    @property
    @abstractmethod
    def name(self) -> str:
        """Worker name used in logs."""
        pass

    @abstractmethod
    async def run(self) -> None:
        """Worker main coroutine; returns at the worker's natural exit point."""
        pass

    async def wait_for_shutdown(self) -> None:
        """Block until shutdown is published (or the bus is closed)."""
        try:
            await self._shutdown.get()
        except BusClosedError:
            pass


WorkerFactory = Callable[[CollaboratorContext], Worker]


def load_collaborator(path: str | None, role: str) -> WorkerFactory:
    """Resolve a ``package.module:callable`` factory path.

    Args:
        path: Dotted import path from configuration
        role: Collaborator role for error messages (transport, player, recorder)

    Returns:
        The factory callable

    Raises:
        CollaboratorLoadError: If the path is unset or cannot be resolved
    """
    if not path:
        raise CollaboratorLoadError(
            f"No {role} configured. "
            f"Resolution: set collaborators.{role} to 'package.module:factory' in the config file."
        )

    module_name, _, attr = path.partition(":")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise CollaboratorLoadError(f"Cannot import {role} module '{module_name}': {e}") from e

    factory = getattr(module, attr, None)
    if factory is None or not callable(factory):
        raise CollaboratorLoadError(f"'{path}' does not name a callable {role} factory")

    logger.debug("Loaded collaborator", extra={"role": role, "path": path})
    return factory  # type: ignore[no-any-return]
