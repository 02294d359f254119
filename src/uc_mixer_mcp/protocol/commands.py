"""Message type constants and body/frame builders.

Each message type has a small body constructor and a frame builder that
wraps it with :func:`build_frame`. Address pairs are fixed per type by
convention, but every builder accepts an explicit override.
"""

from __future__ import annotations

import json
import struct
import zlib
from enum import Enum
from typing import Any

from .framing import AddressPair, build_frame


class MessageType(str, Enum):
    """Two-character message type tags."""

    UDP_PORT = "UM"
    SUBSCRIBE = "JM"
    KEEPALIVE = "KA"
    PARAMETER_VALUE = "PV"
    STATE_SNAPSHOT = "ZM"


UDP_PORT_ADDRESS = AddressPair(0x00, 0x66)
CLIENT_ADDRESS = AddressPair(0x68, 0x66)

PV_PADDING = b"\x00" * 3

SUBSCRIBE_REQUEST: dict[str, Any] = {
    "id": "Subscribe",
    "clientName": "Universal Control",
    "clientInternalName": "ucremoteapp",
    "clientType": "iPhone",
    "clientDescription": "iPhone",
    "clientIdentifier": "BE705B5B-ACEC-4941-9ABA-4FB5CA04AC6D",
    "clientOptions": "",
    "clientEncoding": 23117,
}


def default_address(msg_type: MessageType | str) -> AddressPair:
    """Return the conventional address pair for a message type."""
    if MessageType(msg_type) is MessageType.UDP_PORT:
        return UDP_PORT_ADDRESS
    return CLIENT_ADDRESS


def build_command(
    msg_type: MessageType | str,
    body: bytes = b"",
    address: AddressPair | None = None,
) -> bytes:
    """Build a frame for a message type, using its default address pair."""
    msg_type = MessageType(msg_type)
    if address is None:
        address = default_address(msg_type)
    return build_frame(msg_type.value, address, body)


# ─── BODY CONSTRUCTORS ───────────────────────────────────────────────

def udp_port_body(port: int) -> bytes:
    """Body of a UM message: the local UDP port, little-endian."""
    if not 0 <= port <= 0xFFFF:
        raise ValueError(f"UDP port must be 0-65535, got {port}")
    return struct.pack("<H", port)


def subscribe_body(document: dict[str, Any] | None = None) -> bytes:
    """Body of a JM message: 32-bit length followed by UTF-8 JSON."""
    if document is None:
        document = SUBSCRIBE_REQUEST
    encoded = json.dumps(document, separators=(",", ":")).encode("utf-8")
    return struct.pack("<I", len(encoded)) + encoded


def keepalive_body() -> bytes:
    return b""


def parameter_value_body(name: str, value: float) -> bytes:
    """Body of a PV message: name, three NUL bytes, then a float32."""
    return name.encode("utf-8") + PV_PADDING + struct.pack("<f", value)


def state_snapshot_body(tree: dict[str, Any], header: int | None = None) -> bytes:
    """Body of a ZM message: 32-bit prefix followed by a zlib stream.

    Devices put the uncompressed size in the prefix; it is used here as
    the default when ``header`` is not given.
    """
    raw = json.dumps(tree, separators=(",", ":")).encode("utf-8")
    if header is None:
        header = len(raw)
    return struct.pack("<I", header) + zlib.compress(raw)


# ─── FRAME BUILDERS ──────────────────────────────────────────────────

def build_udp_port_announcement(port: int, address: AddressPair | None = None) -> bytes:
    """Build a UM frame announcing the local UDP port to the mixer."""
    return build_command(MessageType.UDP_PORT, udp_port_body(port), address)


def build_subscribe(
    document: dict[str, Any] | None = None,
    address: AddressPair | None = None,
) -> bytes:
    """Build a JM subscribe request."""
    return build_command(MessageType.SUBSCRIBE, subscribe_body(document), address)


def build_keepalive(address: AddressPair | None = None) -> bytes:
    """Build a KA heartbeat frame."""
    return build_command(MessageType.KEEPALIVE, keepalive_body(), address)


def build_parameter_value(
    name: str, value: float, address: AddressPair | None = None
) -> bytes:
    """Build a PV frame setting one named parameter."""
    return build_command(
        MessageType.PARAMETER_VALUE, parameter_value_body(name, value), address
    )


def build_set_parameter(name: str, enabled: bool) -> bytes:
    """Build a PV frame for a boolean parameter (1.0 on, 0.0 off)."""
    return build_parameter_value(name, 1.0 if enabled else 0.0)


def build_state_snapshot(
    tree: dict[str, Any],
    header: int | None = None,
    address: AddressPair | None = None,
) -> bytes:
    """Build a ZM frame carrying a compressed state tree."""
    return build_command(
        MessageType.STATE_SNAPSHOT, state_snapshot_body(tree, header), address
    )
