"""Exception hierarchy for the remote audio client.

None of these are fatal to the process. Codec errors are handled where they
occur (the offending message is logged and discarded) and never reach the
control loop's flow.
"""


class RemoteAudioError(Exception):
    """Base class for remote audio client errors."""

    pass


class CodecError(RemoteAudioError):
    """Base class for control message codec errors."""

    pass


class DecodeError(CodecError):
    """Raised when inbound bytes cannot be parsed into a control message."""

    pass


class EncodeError(CodecError):
    """Raised when a control request cannot be serialized.

    Covers requests that carry no intent, half a ping (origin without
    timestamp or the reverse), and values the wire type cannot hold.
    """

    pass


class BusClosedError(RemoteAudioError):
    """Raised when publishing on, or reading from, a closed event bus."""

    pass


class CollaboratorLoadError(RemoteAudioError):
    """Raised when a configured collaborator factory cannot be resolved."""

    pass
