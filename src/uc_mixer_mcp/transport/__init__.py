"""Network transport: the TCP/UDP session with the mixer."""

from .session import (
    CONTROL_PORT,
    MixerSession,
    SessionConfig,
    SessionListener,
    SessionStatus,
)
