"""Data models for parameter paths and the mirrored mixer state."""

from .parameters import ChannelAttribute, ParameterPath, MIXER_BYPASS
from .state import ChannelState, MixerState, TriState
