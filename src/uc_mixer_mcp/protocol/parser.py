"""Body parsers for messages received from the mixer."""

from __future__ import annotations

import json
import struct
import zlib
from dataclasses import dataclass
from typing import Any

from .commands import MessageType
from .errors import DecompressionError, MalformedFrameError
from .framing import Message

SNAPSHOT_PREFIX_SIZE = 4
SNAPSHOT_SKIP_SIZE = 2


@dataclass
class ParameterValue:
    """Parsed PV message: one named parameter and its float value."""

    name: str
    value: float

    @property
    def active(self) -> bool:
        return self.value > 0


@dataclass
class StateSnapshot:
    """Parsed ZM message.

    ``header`` is the leading 32-bit value of the body. It is kept for
    inspection only; its meaning is not relied upon.
    """

    header: int
    tree: dict[str, Any]

    def __repr__(self) -> str:
        return f"StateSnapshot(header={self.header}, keys={sorted(self.tree)})"


@dataclass
class UdpPortAnnouncement:
    """Parsed UM message."""

    port: int


@dataclass
class SubscribeRequest:
    """Parsed JM message."""

    document: dict[str, Any]


def _require_type(message: Message, msg_type: MessageType) -> None:
    if message.type != msg_type.value:
        raise ValueError(f"Expected {msg_type.value} message, got {message.type!r}")


def parse_parameter_value(message: Message) -> ParameterValue:
    """Parse a PV body.

    The last 4 bytes are the float value; everything before them is the
    name, with NUL padding stripped wherever it appears.
    """
    _require_type(message, MessageType.PARAMETER_VALUE)
    body = message.body
    if len(body) < 4:
        raise MalformedFrameError("short_pv_body", body)

    name_length = len(body) - 4
    name = body[:name_length].replace(b"\x00", b"").decode("utf-8", errors="replace")
    (value,) = struct.unpack_from("<f", body, name_length)
    return ParameterValue(name=name, value=value)


def inflate_snapshot(blob: bytes) -> bytes:
    """Raw-inflate a snapshot blob after skipping its 2-byte prefix."""
    decompressor = zlib.decompressobj(-zlib.MAX_WBITS)
    try:
        data = decompressor.decompress(blob[SNAPSHOT_SKIP_SIZE:])
    except zlib.error as e:
        raise DecompressionError(str(e)) from e
    if not decompressor.eof:
        raise DecompressionError("truncated deflate stream")
    return data


def parse_state_snapshot(message: Message) -> StateSnapshot:
    """Decompress and parse a ZM body into a state tree.

    Raises:
        DecompressionError: If the body is too short, the deflate stream
            is corrupt or truncated, or the content is not a JSON object.
    """
    _require_type(message, MessageType.STATE_SNAPSHOT)
    body = message.body
    if len(body) < SNAPSHOT_PREFIX_SIZE + SNAPSHOT_SKIP_SIZE:
        raise DecompressionError(f"body too short ({len(body)} bytes)")

    (header,) = struct.unpack_from("<I", body)
    raw = inflate_snapshot(body[SNAPSHOT_PREFIX_SIZE:])
    try:
        tree = json.loads(raw.decode("utf-8"))
    except (ValueError, RecursionError) as e:
        raise DecompressionError(f"invalid JSON document: {e}") from e
    if not isinstance(tree, dict):
        raise DecompressionError(f"expected a JSON object, got {type(tree).__name__}")

    return StateSnapshot(header=header, tree=tree)


def parse_udp_port_announcement(message: Message) -> UdpPortAnnouncement:
    """Parse a UM body."""
    _require_type(message, MessageType.UDP_PORT)
    if len(message.body) < 2:
        raise MalformedFrameError("short_um_body", message.body)
    (port,) = struct.unpack_from("<H", message.body)
    return UdpPortAnnouncement(port=port)


def parse_subscribe(message: Message) -> SubscribeRequest:
    """Parse a JM body: a 32-bit length followed by that many JSON bytes."""
    _require_type(message, MessageType.SUBSCRIBE)
    body = message.body
    if len(body) < 4:
        raise MalformedFrameError("short_jm_body", body)
    (length,) = struct.unpack_from("<I", body)
    if len(body) < 4 + length:
        raise MalformedFrameError("truncated_jm_body", body)
    try:
        document = json.loads(body[4 : 4 + length].decode("utf-8"))
    except (ValueError, RecursionError) as e:
        raise MalformedFrameError("invalid_jm_json", body) from e
    return SubscribeRequest(document=document)


def parse_response(message: Message):
    """Auto-dispatch a message to the appropriate body parser.

    Returns the parsed dataclass, or the Message itself if no specific
    parser exists for its type (KA and unrecognised types).
    """
    parsers = {
        MessageType.UDP_PORT.value: parse_udp_port_announcement,
        MessageType.SUBSCRIBE.value: parse_subscribe,
        MessageType.PARAMETER_VALUE.value: parse_parameter_value,
        MessageType.STATE_SNAPSHOT.value: parse_state_snapshot,
    }
    parser = parsers.get(message.type)
    if parser:
        return parser(message)
    return message
