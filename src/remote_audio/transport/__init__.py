"""Broker transport interface."""

from remote_audio.transport.base import BrokerTransport

__all__ = ["BrokerTransport"]
