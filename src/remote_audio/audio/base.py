"""Base audio worker abstraction.

The recorder captures frames into ``pipeline.recorder_to_encode`` and the
player consumes ``pipeline.decode_audio``. Device access and the audio codec
live in the implementations.
"""

from enum import Enum

from remote_audio.collaborators import CollaboratorContext, Worker
from remote_audio.config import AudioDeviceConfig


class AudioRole(Enum):
    """Direction of an audio worker."""

    RECORDER = "recorder"
    PLAYER = "player"


class AudioWorker(Worker):
    """Base class for the recorder and the player."""

    def __init__(self, context: CollaboratorContext, role: AudioRole) -> None:
        super().__init__(context)
        self.role = role

    @property
    def name(self) -> str:
        return self.role.value

    @property
    def device(self) -> AudioDeviceConfig:
        """Device settings for this worker's direction."""
        if self.role is AudioRole.RECORDER:
            return self.context.config.input_device
        return self.context.config.output_device

    @property
    def frame_length(self) -> int:
        return self.context.config.audio.frame_length

    @property
    def audio_topic(self) -> str:
        """Broker topic this worker's audio travels on."""
        if self.role is AudioRole.RECORDER:
            return self.context.topics.audio_in
        return self.context.topics.audio_out
