"""Control message codec.

Encodes and decodes the two control messages exchanged with the remote
station on the ``/request`` and ``/response`` topics. The wire format is
protobuf (proto2) with every field ``optional``: a field that is absent on
the wire means "no update", which is distinct from ``False``, ``0`` or the
empty string. The Python side mirrors this with ``X | None`` attributes.

Schema (see ``proto/shackbus_audio.proto``):

    message ClientRequest {
        optional bool audio_stream = 1;
        optional string ping_origin = 2;
        optional int64 ping = 3;
    }

    message ServerResponse {
        optional bool online = 1;
        optional bool audio_stream = 2;
        optional string tx_user = 3;
        optional string ping_origin = 4;
        optional int64 pong = 5;
    }

The descriptors are registered at import time in a private descriptor pool,
so no generated ``_pb2`` module is needed.

Example:
    >>> data = encode_request(ping_request("AbCdEfGhIj", now_ns=1_700_000_000_000_000_000))
    >>> decode_request(data).ping_origin
    'AbCdEfGhIj'
"""

from dataclasses import dataclass, fields
from typing import Any

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory
from google.protobuf.message import DecodeError as ProtobufDecodeError
from google.protobuf.message import EncodeError as ProtobufEncodeError
from google.protobuf.message import Message

from remote_audio.errors import DecodeError, EncodeError

PROTO_PACKAGE = "shackbus.audio"

_Field = descriptor_pb2.FieldDescriptorProto

# (python attribute, wire field name, field number, wire type)
_CLIENT_REQUEST_FIELDS: tuple[tuple[str, str, int, int], ...] = (
    ("audio_stream_on", "audio_stream", 1, _Field.TYPE_BOOL),
    ("ping_origin", "ping_origin", 2, _Field.TYPE_STRING),
    ("ping_timestamp", "ping", 3, _Field.TYPE_INT64),
)

_SERVER_RESPONSE_FIELDS: tuple[tuple[str, str, int, int], ...] = (
    ("online", "online", 1, _Field.TYPE_BOOL),
    ("audio_stream", "audio_stream", 2, _Field.TYPE_BOOL),
    ("tx_user", "tx_user", 3, _Field.TYPE_STRING),
    ("ping_origin", "ping_origin", 4, _Field.TYPE_STRING),
    ("pong", "pong", 5, _Field.TYPE_INT64),
)


def _build_file_descriptor() -> descriptor_pb2.FileDescriptorProto:
    file_proto = descriptor_pb2.FileDescriptorProto(
        name="shackbus_audio.proto",
        package=PROTO_PACKAGE,
        syntax="proto2",
    )
    for message_name, message_fields in (
        ("ClientRequest", _CLIENT_REQUEST_FIELDS),
        ("ServerResponse", _SERVER_RESPONSE_FIELDS),
    ):
        message_proto = file_proto.message_type.add(name=message_name)
        for _, wire_name, number, wire_type in message_fields:
            message_proto.field.add(
                name=wire_name,
                number=number,
                type=wire_type,
                label=_Field.LABEL_OPTIONAL,
            )
    return file_proto


_POOL = descriptor_pool.DescriptorPool()
_POOL.AddSerializedFile(_build_file_descriptor().SerializeToString())

_ClientRequestPb = message_factory.GetMessageClass(
    _POOL.FindMessageTypeByName(f"{PROTO_PACKAGE}.ClientRequest")
)
_ServerResponsePb = message_factory.GetMessageClass(
    _POOL.FindMessageTypeByName(f"{PROTO_PACKAGE}.ServerResponse")
)


@dataclass(frozen=True)
class ClientRequest:
    """Client → server control request.

    Carries one logical intent: either an audio-stream request
    (``audio_stream_on``) or a keepalive ping (``ping_origin`` plus
    ``ping_timestamp`` in nanoseconds since the epoch).
    """

    audio_stream_on: bool | None = None
    ping_origin: str | None = None
    ping_timestamp: int | None = None

    @property
    def is_ping(self) -> bool:
        """Whether the request carries a complete keepalive ping."""
        return self.ping_origin is not None and self.ping_timestamp is not None


@dataclass(frozen=True)
class ServerResponse:
    """Server → client broadcast. Any subset of fields may be present."""

    online: bool | None = None
    audio_stream: bool | None = None
    tx_user: str | None = None
    ping_origin: str | None = None
    pong: int | None = None

    def present_fields(self) -> list[str]:
        """Names of the fields carried by this response."""
        return [f.name for f in fields(self) if getattr(self, f.name) is not None]


def ping_request(origin: str, now_ns: int) -> ClientRequest:
    """Build a keepalive ping stamped with the sender's identity and clock."""
    return ClientRequest(ping_origin=origin, ping_timestamp=now_ns)


def audio_stream_request(on: bool) -> ClientRequest:
    """Build a request asking the server to enable or disable its audio stream."""
    return ClientRequest(audio_stream_on=on)


def _to_wire(
    pb_class: Any,
    value: Any,
    field_map: tuple[tuple[str, str, int, int], ...],
) -> bytes:
    message = pb_class()
    try:
        for attr, wire_name, _, _ in field_map:
            field_value = getattr(value, attr)
            if field_value is not None:
                setattr(message, wire_name, field_value)
        data: bytes = message.SerializeToString()
    except (TypeError, ValueError, ProtobufEncodeError) as e:
        raise EncodeError(f"Failed to encode {type(value).__name__}: {e}") from e
    return data


def _from_wire(
    pb_class: Any,
    data: bytes,
    field_map: tuple[tuple[str, str, int, int], ...],
) -> dict[str, Any]:
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise DecodeError(f"Expected bytes, got {type(data).__name__}")

    message: Message = pb_class()
    try:
        message.ParseFromString(bytes(data))
    except (ProtobufDecodeError, ValueError) as e:
        raise DecodeError(f"Malformed {pb_class.DESCRIPTOR.name}: {e}") from e

    values: dict[str, Any] = {}
    for attr, wire_name, _, wire_type in field_map:
        if not message.HasField(wire_name):
            values[attr] = None
            continue
        value = getattr(message, wire_name)
        # The parser hands back raw bytes for a string field that is not valid UTF-8
        if wire_type == _Field.TYPE_STRING and not isinstance(value, str):
            raise DecodeError(
                f"Malformed {pb_class.DESCRIPTOR.name}: field '{wire_name}' is not valid UTF-8"
            )
        values[attr] = value
    return values


def encode_request(request: ClientRequest) -> bytes:
    """Serialize a client request.

    Args:
        request: Request carrying an audio-stream intent, a ping, or both

    Returns:
        Wire bytes for the ``/request`` topic

    Raises:
        EncodeError: If the request carries no intent, carries only half a
            ping, or holds a value the wire type cannot represent
    """
    has_origin = request.ping_origin is not None
    has_timestamp = request.ping_timestamp is not None
    if has_origin != has_timestamp:
        raise EncodeError("Ping requires both ping_origin and ping_timestamp")
    if request.audio_stream_on is None and not has_origin:
        raise EncodeError("ClientRequest carries no intent")
    if request.audio_stream_on is not None and not isinstance(request.audio_stream_on, bool):
        raise EncodeError(
            f"audio_stream_on must be bool, got {type(request.audio_stream_on).__name__}"
        )

    return _to_wire(_ClientRequestPb, request, _CLIENT_REQUEST_FIELDS)


def decode_request(data: bytes) -> ClientRequest:
    """Parse a client request (server side of the exchange).

    Raises:
        DecodeError: If the bytes are not a valid ClientRequest
    """
    return ClientRequest(**_from_wire(_ClientRequestPb, data, _CLIENT_REQUEST_FIELDS))


def encode_response(response: ServerResponse) -> bytes:
    """Serialize a server response (server side of the exchange).

    An empty response is valid and encodes to zero bytes.

    Raises:
        EncodeError: If a field holds a value the wire type cannot represent
    """
    return _to_wire(_ServerResponsePb, response, _SERVER_RESPONSE_FIELDS)


def decode_response(data: bytes) -> ServerResponse:
    """Parse a server response.

    Args:
        data: Raw bytes received on the ``/response`` topic

    Returns:
        Response with ``None`` for every field absent on the wire

    Raises:
        DecodeError: If the bytes are not a valid ServerResponse
    """
    return ServerResponse(**_from_wire(_ServerResponsePb, data, _SERVER_RESPONSE_FIELDS))
