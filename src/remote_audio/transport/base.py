"""Base broker transport abstraction.

Defines what the control plane expects from the broker client. The
connect/publish/subscribe mechanics live in the implementation.
"""

from abc import abstractmethod

from remote_audio.collaborators import Worker
from remote_audio.events import Topic
from remote_audio.session import ConnectionStatus


class BrokerTransport(Worker):
    """Base class for broker transports.

    An implementation must:
    - connect as client id ``context.identity`` and subscribe to
      ``context.topics.subscriptions``
    - report every status change through :meth:`set_status`
    - publish every message taken from ``context.pipeline.outbound`` on the
      message's topic
    - hand every inbound message to :meth:`deliver`
    - return from :meth:`run` after shutdown is published
    """

    @property
    def name(self) -> str:
        return f"transport:{self.transport_type}"

    @property
    @abstractmethod
    def transport_type(self) -> str:
        """Transport type identifier (e.g., 'mqtt')."""
        pass

    async def set_status(self, status: ConnectionStatus) -> None:
        """Publish a connection status change on the bus."""
        await self.context.bus.publish(Topic.CONNECTION_STATUS, status)

    async def deliver(self, topic: str, payload: bytes) -> bool:
        """Route an inbound broker message to the decode queues.

        Returns:
            False if the topic is not one the client consumes
        """
        return await self.context.pipeline.route_inbound(topic, payload)
