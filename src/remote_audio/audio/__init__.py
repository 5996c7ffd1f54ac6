"""Audio device worker interface."""

from remote_audio.audio.base import AudioRole, AudioWorker

__all__ = ["AudioRole", "AudioWorker"]
