"""Connection status and remote session state.

Both are owned and mutated by the control loop only. Other components see
them through the events the loop publishes on the bus.

Connection transitions (driven by the transport's status notifications):
- DISCONNECTED → CONNECTING (transport starts dialing the broker)
- CONNECTING → CONNECTED (broker session established)
- * → DISCONNECTED (connection lost)

The loop stores the latest status it was told about; it never infers a
status from a transition.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from remote_audio.codec import ServerResponse
from remote_audio.events import Topic


class ConnectionStatus(Enum):
    """Broker connection status reported by the transport."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass
class SessionState:
    """Last known state of the remote session.

    Eventually consistent with the server's latest broadcast. Fields are only
    overwritten when a response explicitly carries them.
    """

    server_online: bool = False
    server_audio_on: bool = False
    tx_user: str = ""

    def apply(self, response: ServerResponse) -> list[tuple[Topic, Any]]:
        """Apply the fields present in a response.

        Args:
            response: Decoded server response

        Returns:
            (topic, value) pairs to publish, one per present state field,
            in field order
        """
        updates: list[tuple[Topic, Any]] = []

        if response.online is not None:
            self.server_online = response.online
            updates.append((Topic.SERVER_ONLINE, response.online))

        if response.audio_stream is not None:
            self.server_audio_on = response.audio_stream
            updates.append((Topic.SERVER_AUDIO_ON, response.audio_stream))

        if response.tx_user is not None:
            self.tx_user = response.tx_user
            updates.append((Topic.TX_USER, response.tx_user))

        return updates


def measure_rtt(response: ServerResponse, identity: str, now_ns: int) -> int | None:
    """Round-trip time of one of our own pings.

    Responses on the shared topic also echo pings from other clients, so the
    echoed origin must match our identity.

    Args:
        response: Decoded server response
        identity: This process's identity
        now_ns: Current wall clock in nanoseconds since the epoch

    Returns:
        RTT in nanoseconds, or None if the response does not echo our ping
    """
    if response.pong is None or response.ping_origin != identity:
        return None
    return now_ns - response.pong
