"""Parameter paths tracked by the client.

Two path shapes are recognised::

    global/mixerBypass
    line/ch<N>/<attr>      attr in mute, solo, 48v, hpf, pad; N >= 1
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from ..protocol.errors import UnknownParameterError

MIXER_BYPASS = "global/mixerBypass"

_CHANNEL_PATH = re.compile(r"line/ch(\d+)/(mute|solo|48v|hpf|pad)")


class ChannelAttribute(str, Enum):
    """Boolean per-channel attributes."""

    MUTE = "mute"
    SOLO = "solo"
    PHANTOM = "48v"
    HPF = "hpf"
    PAD = "pad"

    @property
    def unknown_default(self) -> bool:
        """Value a toggle sends when the current state was never observed.

        Mute and solo become active; 48V, HPF and pad become inactive.
        """
        return self in (ChannelAttribute.MUTE, ChannelAttribute.SOLO)


@dataclass(frozen=True)
class ParameterPath:
    """A parsed parameter name.

    ``channel`` and ``attribute`` are both None for the global bypass.
    """

    channel: int | None = None
    attribute: ChannelAttribute | None = None

    @classmethod
    def mixer_bypass(cls) -> ParameterPath:
        return cls()

    @classmethod
    def channel_attribute(
        cls, channel: int, attribute: ChannelAttribute | str
    ) -> ParameterPath:
        """Build the path of one channel attribute.

        Args:
            channel: 1-based channel number.
            attribute: One of mute, solo, 48v, hpf, pad.
        """
        if channel < 1:
            raise ValueError(f"Channel must be a positive integer, got {channel}")
        return cls(channel=channel, attribute=ChannelAttribute(attribute))

    @classmethod
    def parse(cls, name: str) -> ParameterPath:
        """Parse a wire parameter name.

        Raises:
            UnknownParameterError: If the name is not a tracked path.
        """
        if name == MIXER_BYPASS:
            return cls.mixer_bypass()
        match = _CHANNEL_PATH.fullmatch(name)
        if not match:
            raise UnknownParameterError(name)
        try:
            channel = int(match.group(1))
        except ValueError:
            # more digits than int() accepts
            raise UnknownParameterError(name) from None
        if channel < 1:
            raise UnknownParameterError(name)
        return cls(channel=channel, attribute=ChannelAttribute(match.group(2)))

    @property
    def is_mixer_bypass(self) -> bool:
        return self.channel is None

    def __str__(self) -> str:
        if self.is_mixer_bypass:
            return MIXER_BYPASS
        return f"line/ch{self.channel}/{self.attribute.value}"
