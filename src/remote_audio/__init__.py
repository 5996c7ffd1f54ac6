"""Control plane of a real-time remote audio client.

Negotiates and supervises an audio session with a remote station over a
publish/subscribe broker. The broker transport and the audio devices are
plugged in as collaborators (see :mod:`remote_audio.collaborators`).
"""

from remote_audio.bus import EventBus, Subscription
from remote_audio.codec import ClientRequest, ServerResponse
from remote_audio.config import ClientConfig
from remote_audio.control import ControlLoop
from remote_audio.events import Topic
from remote_audio.pipeline import Pipeline, Topics, WireMessage
from remote_audio.session import ConnectionStatus, SessionState
from remote_audio.shutdown import ShutdownBarrier

__version__ = "0.1.0"

__all__ = [
    "ClientConfig",
    "ClientRequest",
    "ConnectionStatus",
    "ControlLoop",
    "EventBus",
    "Pipeline",
    "ServerResponse",
    "SessionState",
    "ShutdownBarrier",
    "Subscription",
    "Topic",
    "Topics",
    "WireMessage",
]
