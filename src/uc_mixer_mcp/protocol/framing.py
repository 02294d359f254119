"""Frame builder and parser for the UC control protocol.

Frame layout (TCP and UDP)::

    +-------+---------+---------+------+--------+--------+--------------+
    | Magic | Version | Length  | Type | Addr A | Addr B |     Body     |
    | "UC"  | 2 bytes | 2 bytes | 2 B  | 2 bytes| 2 bytes|   variable   |
    +-------+---------+---------+------+--------+--------+--------------+
                                |<------------- payload ------------->|

- Magic: ASCII ``UC``
- Version: little-endian, always 1
- Length: little-endian byte count of the payload that follows
- Type: two ASCII characters (``UM``, ``JM``, ``KA``, ``PV``, ``ZM``, ...)
- Addr A / Addr B: little-endian routing tags, opaque to this layer
"""

from __future__ import annotations

import struct
from dataclasses import dataclass

from .errors import MalformedFrameError

MAGIC = b"UC"
PROTOCOL_VERSION = 1
HEADER_SIZE = 6  # magic(2) + version(2) + length(2)
PAYLOAD_PREFIX_SIZE = 6  # type(2) + addr a(2) + addr b(2)
MAX_PAYLOAD_SIZE = 0xFFFF

_HEADER = struct.Struct("<2sHH")
_PREFIX = struct.Struct("<2sHH")


@dataclass(frozen=True)
class AddressPair:
    """The two 16-bit routing tags carried by every message."""

    a: int
    b: int

    def __post_init__(self) -> None:
        for value in (self.a, self.b):
            if not 0 <= value <= 0xFFFF:
                raise ValueError(f"Address values must be 0-65535, got {value}")

    def __repr__(self) -> str:
        return f"AddressPair(0x{self.a:02X}, 0x{self.b:02X})"


@dataclass
class Message:
    """A decoded frame payload."""

    type: str
    address: AddressPair
    body: bytes

    def __repr__(self) -> str:
        return (
            f"Message(type={self.type!r}, address={self.address!r}, "
            f"body={self.body.hex(' ') if self.body else '(empty)'})"
        )


def build_frame(msg_type: str, address: AddressPair, body: bytes = b"") -> bytes:
    """Build a complete frame for one message.

    Args:
        msg_type: Two-character ASCII message type.
        address: Routing tags for the message.
        body: Type-specific body bytes.

    Returns:
        The frame bytes ready to be written to a socket.
    """
    type_bytes = msg_type.encode("ascii")
    if len(type_bytes) != 2:
        raise ValueError(f"Message type must be 2 ASCII characters, got {msg_type!r}")
    payload = _PREFIX.pack(type_bytes, address.a, address.b) + bytes(body)
    if len(payload) > MAX_PAYLOAD_SIZE:
        raise ValueError(
            f"Payload must be at most {MAX_PAYLOAD_SIZE} bytes, got {len(payload)}"
        )
    return _HEADER.pack(MAGIC, PROTOCOL_VERSION, len(payload)) + payload


def read_header(data: bytes) -> tuple[int, int]:
    """Validate a frame header and return ``(version, payload_length)``.

    Raises:
        MalformedFrameError: If the header is short, the magic is wrong,
            or the version is unsupported.
    """
    if len(data) < HEADER_SIZE:
        raise MalformedFrameError("short_header", data)
    magic, version, length = _HEADER.unpack_from(data)
    if magic != MAGIC:
        raise MalformedFrameError("bad_magic", data)
    if version != PROTOCOL_VERSION:
        raise MalformedFrameError("bad_version", data)
    return version, length


def parse_frame(data: bytes) -> Message:
    """Parse one frame into a Message.

    Bytes past the declared payload length are ignored. The type and
    address are returned as-is; interpreting them is the caller's job.

    Raises:
        MalformedFrameError: If the frame is short, has bad magic or
            version, or its payload is truncated.
    """
    _, length = read_header(data)
    if len(data) < HEADER_SIZE + length:
        raise MalformedFrameError("truncated_payload", data)
    if length < PAYLOAD_PREFIX_SIZE:
        raise MalformedFrameError("short_payload", data)

    payload = bytes(data[HEADER_SIZE : HEADER_SIZE + length])
    type_bytes, addr_a, addr_b = _PREFIX.unpack_from(payload)
    return Message(
        type=type_bytes.decode("ascii", errors="replace"),
        address=AddressPair(addr_a, addr_b),
        body=payload[PAYLOAD_PREFIX_SIZE:],
    )
