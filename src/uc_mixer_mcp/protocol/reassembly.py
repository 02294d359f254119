"""TCP stream reassembly for UC frames.

TCP reads may split a frame anywhere, carry several frames at once, or
contain noise between frames. :class:`FrameReassembler` buffers the
stream and yields complete frames, resynchronizing on the ``UC`` magic.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator

from .framing import HEADER_SIZE, MAGIC, PROTOCOL_VERSION

logger = logging.getLogger(__name__)


class FrameReassembler:
    """Extract complete frames from an arbitrarily chunked byte stream.

    Algorithm, run on every fed chunk:

    1. While at least 6 bytes are buffered, search for the magic.
    2. No magic anywhere: drop the whole buffer.
    3. Magic at offset k > 0: drop the k leading bytes as noise.
    4. Fewer than 6 bytes left: wait for more data.
    5. Bad version: drop 2 bytes only, so a real header overlapping the
       dropped magic can still be found, and search again.
    6. Payload incomplete: wait for more data.
    7. Otherwise remove the frame from the buffer and yield it.

    Example::

        reassembler = FrameReassembler()
        for frame in reassembler.feed(chunk):
            message = parse_frame(frame)
    """

    def __init__(self) -> None:
        self.buffer = bytearray()

    def feed(self, data: bytes) -> Iterator[bytes]:
        """Append ``data`` to the buffer and yield every complete frame.

        Frames are yielded lazily, so a consumer may call :meth:`resync`
        between frames to skip past one that fails to decode.
        """
        self.buffer.extend(data)
        while len(self.buffer) >= HEADER_SIZE:
            index = self.buffer.find(MAGIC)
            if index == -1:
                logger.warning(
                    "No frame header in %d buffered bytes, discarding buffer",
                    len(self.buffer),
                )
                self.buffer.clear()
                break

            if index > 0:
                logger.warning("Discarding %d bytes before frame header", index)
                del self.buffer[:index]

            if len(self.buffer) < HEADER_SIZE:
                break

            version = int.from_bytes(self.buffer[2:4], "little")
            if version != PROTOCOL_VERSION:
                logger.warning(
                    "Invalid frame version %d, discarding header and searching again",
                    version,
                )
                del self.buffer[: len(MAGIC)]
                continue

            length = int.from_bytes(self.buffer[4:6], "little")
            total = HEADER_SIZE + length
            if len(self.buffer) < total:
                break

            frame = bytes(self.buffer[:total])
            del self.buffer[:total]
            yield frame

    def resync(self) -> None:
        """Drop the leading magic-sized chunk of the remaining buffer.

        Called after a yielded frame fails to decode so that a corrupt
        frame can never stall the stream.
        """
        del self.buffer[: len(MAGIC)]

    def reset(self) -> None:
        """Discard all buffered bytes."""
        self.buffer.clear()

    def __len__(self) -> int:
        return len(self.buffer)
