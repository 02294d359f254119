"""Exception hierarchy for the UC mixer protocol.

Frame- and snapshot-level errors are recovered by the session (skip and
resynchronize); transport errors end the current session.
"""

from __future__ import annotations


class UCProtocolError(Exception):
    """Base class for all UC protocol errors."""


class MalformedFrameError(UCProtocolError):
    """A frame could not be decoded.

    Raised for a short header, bad magic, unsupported version, a truncated
    payload, or a message body too short for its type.

    Attributes:
        reason: Short failure tag, e.g. ``"bad_magic"``.
        data_preview: First 16 bytes of the offending data.
    """

    def __init__(self, reason: str, data: bytes = b"") -> None:
        self.reason = reason
        self.data_preview = bytes(data[:16])
        super().__init__(f"Malformed frame: {reason}")


class DecompressionError(UCProtocolError):
    """A ZM state snapshot could not be inflated or parsed."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Snapshot decompression failed: {reason}")


class TransportError(UCProtocolError):
    """Connect, read, or write failure on the control channel.

    Attributes:
        reason: Human-readable failure reason.
        status: Session status when the error occurred.
    """

    def __init__(self, reason: str, status: str = "unknown") -> None:
        self.reason = reason
        self.status = status
        super().__init__(f"Transport error: {reason} (status: {status})")


class UnknownParameterError(UCProtocolError):
    """A parameter name does not match any path this client tracks."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Unknown parameter: {name!r}")
