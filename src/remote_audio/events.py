"""Well-known event bus topics.

Payload types by topic:
- CONNECTION_STATUS: ``ConnectionStatus`` (published by the transport)
- REQUEST_SERVER_AUDIO_ON: ``bool`` local audio-enable intent (UI, keyboard)
- OS_EXIT: signal name or ``True``; pre-shutdown request from any worker
- SHUTDOWN: ``True``; published only by the control loop
- SERVER_ONLINE / SERVER_AUDIO_ON: ``bool`` from server responses
- TX_USER: ``str`` current transmitting user
- PING: ``int`` round-trip time in nanoseconds
"""

from enum import Enum


class Topic(str, Enum):
    """Event bus topic names."""

    CONNECTION_STATUS = "connection_status"
    REQUEST_SERVER_AUDIO_ON = "request_server_audio_on"
    OS_EXIT = "os_exit"
    SHUTDOWN = "shutdown"
    SERVER_ONLINE = "server_online"
    SERVER_AUDIO_ON = "server_audio_on"
    TX_USER = "tx_user"
    PING = "ping"
