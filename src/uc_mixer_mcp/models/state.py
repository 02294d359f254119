"""Local mirror of mixer state.

Values are tri-state: a parameter is UNKNOWN until it has been seen in a
snapshot, a PV push, or an optimistic local write. Writes from any
source are applied in arrival order; the last write wins.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..protocol.errors import UnknownParameterError
from .parameters import ChannelAttribute, ParameterPath

logger = logging.getLogger(__name__)

_CHANNEL_KEY = re.compile(r"ch(\d+)")


class TriState(Enum):
    """A boolean that may not have been observed yet."""

    UNKNOWN = "unknown"
    OFF = "off"
    ON = "on"

    @classmethod
    def from_bool(cls, value: bool) -> TriState:
        return cls.ON if value else cls.OFF

    @classmethod
    def from_value(cls, value: float) -> TriState:
        """Map a wire value to a state: anything above zero is ON."""
        return cls.ON if value > 0 else cls.OFF

    @property
    def known(self) -> bool:
        return self is not TriState.UNKNOWN

    def as_bool(self, default: bool | None = None) -> bool | None:
        """Return True/False, or ``default`` when unknown."""
        if self is TriState.UNKNOWN:
            return default
        return self is TriState.ON


@dataclass
class ChannelState:
    """Known attribute values for one channel."""

    channel: int
    values: dict[ChannelAttribute, TriState] = field(default_factory=dict)

    def get(self, attribute: ChannelAttribute | str) -> TriState:
        return self.values.get(ChannelAttribute(attribute), TriState.UNKNOWN)

    def to_dict(self) -> dict[str, str]:
        return {attr.value: self.get(attr).value for attr in ChannelAttribute}


StateListener = Callable[[ParameterPath, TriState], None]


class MixerState:
    """The client-side store of channel and global parameters.

    Channel records are created lazily on first write and live for the
    duration of the session.
    """

    def __init__(self) -> None:
        self.channels: dict[int, ChannelState] = {}
        self.mixer_bypass = TriState.UNKNOWN
        self._listeners: list[StateListener] = []

    def add_listener(self, listener: StateListener) -> None:
        """Register a callback invoked after every parameter write."""
        self._listeners.append(listener)

    def remove_listener(self, listener: StateListener) -> None:
        self._listeners.remove(listener)

    # ─── READS ───────────────────────────────────────────────────────

    def channel(self, channel: int) -> ChannelState | None:
        return self.channels.get(channel)

    def get_parameter(self, path: ParameterPath) -> TriState:
        if path.is_mixer_bypass:
            return self.mixer_bypass
        record = self.channels.get(path.channel)
        if record is None:
            return TriState.UNKNOWN
        return record.get(path.attribute)

    def get_channel_attribute(
        self, channel: int, attribute: ChannelAttribute | str
    ) -> TriState:
        return self.get_parameter(ParameterPath.channel_attribute(channel, attribute))

    def get_mixer_bypass(self) -> TriState:
        return self.mixer_bypass

    # ─── WRITES ──────────────────────────────────────────────────────

    def _store(self, path: ParameterPath, value: TriState) -> None:
        if path.is_mixer_bypass:
            self.mixer_bypass = value
        else:
            record = self.channels.setdefault(path.channel, ChannelState(path.channel))
            record.values[path.attribute] = value
        for listener in list(self._listeners):
            listener(path, value)

    def set_parameter(self, path: ParameterPath, enabled: bool) -> None:
        """Record a locally issued value before the mixer confirms it."""
        self._store(path, TriState.from_bool(enabled))

    def apply_parameter(self, name: str, value: float) -> ParameterPath | None:
        """Apply a PV delta.

        Returns the updated path, or None if ``name`` is not tracked.
        """
        try:
            path = ParameterPath.parse(name)
        except UnknownParameterError:
            logger.debug("Ignoring untracked parameter %r = %s", name, value)
            return None
        state = TriState.from_value(value)
        self._store(path, state)
        logger.debug("%s updated to %s via PV", path, state.value)
        return path

    def apply_snapshot(self, tree: dict[str, Any]) -> list[ParameterPath]:
        """Merge a full state tree from a ZM snapshot.

        Only keys present in the tree are written; everything else keeps
        its previous value. A present key is ON when its value compares
        greater than zero and OFF otherwise, so ``null`` and non-numeric
        values record OFF.

        Returns:
            The paths that were written, in tree order.
        """
        updated: list[ParameterPath] = []
        children = _subtree(tree, "children")

        line = _subtree(_subtree(children, "line"), "children")
        for key, channel_data in line.items():
            channel = _channel_number(key)
            if channel is None:
                continue
            values = _subtree(channel_data, "values")
            for attribute in ChannelAttribute:
                if attribute.value not in values:
                    continue
                path = ParameterPath.channel_attribute(channel, attribute)
                self._store(path, TriState.from_bool(_is_active(values[attribute.value])))
                updated.append(path)

        global_values = _subtree(_subtree(children, "global"), "values")
        if "mixerBypass" in global_values:
            path = ParameterPath.mixer_bypass()
            self._store(path, TriState.from_bool(_is_active(global_values["mixerBypass"])))
            updated.append(path)

        logger.debug("Snapshot applied: %d parameters updated", len(updated))
        return updated

    def to_dict(self) -> dict[str, Any]:
        """Convert the store to a JSON-serializable dictionary."""
        return {
            "mixer_bypass": self.mixer_bypass.value,
            "channels": {
                str(number): self.channels[number].to_dict()
                for number in sorted(self.channels)
            },
        }


def _channel_number(key: str) -> int | None:
    """Channel number of a ``ch<N>`` key, or None for anything else."""
    match = _CHANNEL_KEY.fullmatch(key)
    if not match:
        return None
    try:
        channel = int(match.group(1))
    except ValueError:
        return None
    return channel if channel >= 1 else None


def _is_active(raw: Any) -> bool:
    # ints compare directly: float() overflows on huge JSON integers
    if isinstance(raw, (int, float)):
        return raw > 0
    try:
        return float(raw) > 0
    except (TypeError, ValueError):
        logger.debug("Non-numeric snapshot value %r treated as off", raw)
        return False


def _subtree(node: Any, key: str) -> dict[str, Any]:
    if isinstance(node, dict):
        child = node.get(key)
        if isinstance(child, dict):
            return child
    return {}
