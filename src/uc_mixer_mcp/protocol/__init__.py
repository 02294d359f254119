"""Protocol layer: frame codec, stream reassembly, message builders and parsers."""

from .framing import AddressPair, Message, build_frame, parse_frame
from .commands import MessageType, build_command
from .errors import (
    UCProtocolError,
    MalformedFrameError,
    DecompressionError,
    TransportError,
    UnknownParameterError,
)
from .reassembly import FrameReassembler
