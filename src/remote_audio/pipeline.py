"""Pipeline topology: bounded queues between transport and audio workers.

Four queues, each carrying one data shape:

    recorder ──► recorder_to_encode ──► (encoder) ──► outbound ──► transport
    control loop ──────────────────────────────────► outbound
    transport ──► decode_response ──► control loop
    transport ──► decode_audio ──► player

Every queue is bounded; a full queue blocks its producer. Memory stays
bounded at the cost of stalling the producer, and control messages are
never dropped.
"""

import asyncio
import logging
from dataclasses import dataclass

from remote_audio.config import PipelineConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WireMessage:
    """A payload addressed to a broker topic. Owned by the transport once enqueued."""

    topic: str
    payload: bytes


@dataclass(frozen=True)
class Topics:
    """Broker topic names for one station/radio pair.

    The layout is a wire-level contract with the remote peer:
    ``<station>/radios/<radio>/audio`` plus ``/request`` (client → server
    control), ``/response`` (server → client control), ``/audio_out``
    (server → client audio) and ``/audio_in`` (client → server audio).
    """

    base: str

    @classmethod
    def for_radio(cls, station: str, radio: str) -> "Topics":
        """Build the topic set for a station and radio."""
        return cls(base=f"{station}/radios/{radio}/audio")

    @property
    def request(self) -> str:
        return f"{self.base}/request"

    @property
    def response(self) -> str:
        return f"{self.base}/response"

    @property
    def audio_out(self) -> str:
        return f"{self.base}/audio_out"

    @property
    def audio_in(self) -> str:
        return f"{self.base}/audio_in"

    @property
    def subscriptions(self) -> list[str]:
        """Topics the transport subscribes to on the broker."""
        return [self.response, self.audio_out]


class Pipeline:
    """The fixed set of bounded queues connecting the workers.

    Attributes:
        topics: Broker topics used for inbound routing
        outbound: Control requests and encoded audio for the transport
        recorder_to_encode: Raw captured frames awaiting encoding
        decode_audio: Encoded audio from the transport for the player
        decode_response: Control responses for the control loop only
    """

    def __init__(
        self,
        topics: Topics,
        *,
        outbound_capacity: int = 20,
        recorder_capacity: int = 20,
        decode_audio_capacity: int = 20,
        decode_response_capacity: int = 10,
    ) -> None:
        self.topics = topics
        self.outbound: asyncio.Queue[WireMessage] = asyncio.Queue(maxsize=outbound_capacity)
        self.recorder_to_encode: asyncio.Queue[bytes] = asyncio.Queue(
            maxsize=recorder_capacity
        )
        self.decode_audio: asyncio.Queue[bytes] = asyncio.Queue(maxsize=decode_audio_capacity)
        self.decode_response: asyncio.Queue[WireMessage] = asyncio.Queue(
            maxsize=decode_response_capacity
        )

    @classmethod
    def from_config(cls, topics: Topics, config: PipelineConfig) -> "Pipeline":
        """Create a pipeline sized from configuration."""
        return cls(
            topics,
            outbound_capacity=config.outbound_capacity,
            recorder_capacity=config.recorder_capacity,
            decode_audio_capacity=config.decode_audio_capacity,
            decode_response_capacity=config.decode_response_capacity,
        )

    async def send(self, message: WireMessage) -> None:
        """Enqueue a message for the transport, waiting while the queue is full."""
        await self.outbound.put(message)

    async def route_inbound(self, topic: str, payload: bytes) -> bool:
        """Hand inbound broker data to the queue for the topic it arrived on.

        Args:
            topic: Broker topic the payload arrived on
            payload: Raw bytes as received

        Returns:
            True if routed, False if the topic is not one we consume
        """
        if topic == self.topics.response:
            await self.decode_response.put(WireMessage(topic=topic, payload=payload))
            return True
        if topic == self.topics.audio_out:
            await self.decode_audio.put(payload)
            return True

        logger.warning("Dropping message on unexpected topic", extra={"topic": topic})
        return False

    def snapshot(self) -> dict[str, int]:
        """Current queue depths for logging."""
        return {
            "outbound": self.outbound.qsize(),
            "recorder_to_encode": self.recorder_to_encode.qsize(),
            "decode_audio": self.decode_audio.qsize(),
            "decode_response": self.decode_response.qsize(),
        }
