"""MCP server entry point for UC-protocol digital mixers.

Exposes the mixer command API (set/toggle) and the state-query API as
tools and resources, using the official Python MCP SDK with stdio
transport.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from mcp.server.fastmcp import FastMCP

from .models.parameters import ChannelAttribute
from .transport.session import CONTROL_PORT, MixerSession, SessionConfig, SessionStatus

logger = logging.getLogger(__name__)

mcp = FastMCP(
    "uc-mixer",
    instructions="MCP server for mixers speaking the UC control protocol",
)

MAX_CHANNEL = 100

# Global session state
_session: MixerSession | None = None


def _get_session() -> MixerSession:
    """Get the mixer session, creating an unconfigured one on first use."""
    global _session
    if _session is None:
        _session = MixerSession()
    return _session


def _check_channel(channel: int) -> str | None:
    if not 1 <= channel <= MAX_CHANNEL:
        return f"Channel must be 1-{MAX_CHANNEL}"
    return None


def _check_parameter(parameter: str) -> str | None:
    valid = [attr.value for attr in ChannelAttribute]
    if parameter not in valid:
        return f"Unknown parameter '{parameter}'. Valid: {valid}"
    return None


def _command_result(sent: bool, **fields: Any) -> dict[str, Any]:
    if not sent:
        return {"error": "Not connected to mixer. Use the 'connect' tool first."}
    return {"sent": True, **fields}


# ─── CONNECTION TOOLS ─────────────────────────────────────────────────

@mcp.tool()
async def connect(host: str, port: int = CONTROL_PORT) -> dict[str, Any]:
    """Connect (or reconnect) to a mixer.

    Opens the UDP notification socket, connects the TCP control channel,
    announces the UDP port and subscribes to state updates. Any existing
    connection is torn down first.

    Args:
        host: Mixer IP address.
        port: TCP control port (default 49162).
    """
    try:
        config = SessionConfig(host=host, port=port)
    except ValueError as e:
        return {"error": str(e)}

    session = _get_session()
    status = await session.reconfigure(config)
    return {
        "status": status.value,
        "connected": status is SessionStatus.CONNECTED,
        "udp_port": session.udp_port,
        "last_error": str(session.last_error) if session.last_error else None,
    }


@mcp.tool()
async def disconnect() -> dict[str, bool]:
    """Close the connection to the mixer."""
    if _session is not None:
        await _session.close()
    return {"disconnected": True}


@mcp.tool()
def get_status() -> dict[str, Any]:
    """Report the connection status and the configured mixer address."""
    session = _get_session()
    config = session.config
    return {
        "status": session.status.value,
        "host": config.host if config else None,
        "port": config.port if config else None,
        "udp_port": session.udp_port,
        "last_error": str(session.last_error) if session.last_error else None,
    }


# ─── COMMAND TOOLS ───────────────────────────────────────────────────

@mcp.tool()
def set_mixer_bypass(enabled: bool) -> dict[str, Any]:
    """Enable or disable the global mixer bypass.

    Args:
        enabled: True to bypass the mixer.
    """
    sent = _get_session().set_mixer_bypass(enabled)
    return _command_result(sent, mixer_bypass=enabled)


@mcp.tool()
def toggle_mixer_bypass() -> dict[str, Any]:
    """Toggle the global mixer bypass (assumes off if never observed)."""
    session = _get_session()
    sent = session.toggle_mixer_bypass()
    return _command_result(sent, mixer_bypass=session.state.get_mixer_bypass().value)


@mcp.tool()
def set_channel_parameter(channel: int, parameter: str, enabled: bool) -> dict[str, Any]:
    """Set a boolean channel parameter.

    Args:
        channel: Channel number (1-100).
        parameter: One of mute, solo, 48v, hpf, pad.
        enabled: New value.
    """
    error = _check_channel(channel) or _check_parameter(parameter)
    if error:
        return {"error": error}

    sent = _get_session().set_channel(channel, parameter, enabled)
    return _command_result(sent, channel=channel, parameter=parameter, enabled=enabled)


@mcp.tool()
def toggle_channel_parameter(channel: int, parameter: str) -> dict[str, Any]:
    """Toggle a boolean channel parameter.

    If the current value has never been observed, mute and solo are
    switched on while 48v, hpf and pad are switched off.

    Args:
        channel: Channel number (1-100).
        parameter: One of mute, solo, 48v, hpf, pad.
    """
    error = _check_channel(channel) or _check_parameter(parameter)
    if error:
        return {"error": error}

    session = _get_session()
    sent = session.toggle_channel(channel, parameter)
    value = session.state.get_channel_attribute(channel, parameter)
    return _command_result(sent, channel=channel, parameter=parameter, state=value.value)


# ─── STATE TOOLS ─────────────────────────────────────────────────────

@mcp.tool()
def get_channel_state(channel: int) -> dict[str, Any]:
    """Read the known state of one channel.

    Each parameter is reported as "on", "off" or "unknown" (never
    observed since connecting).

    Args:
        channel: Channel number (1-100).
    """
    error = _check_channel(channel)
    if error:
        return {"error": error}

    state = _get_session().state
    result: dict[str, Any] = {"channel": channel}
    for attribute in ChannelAttribute:
        result[attribute.value] = state.get_channel_attribute(channel, attribute).value
    return result


@mcp.tool()
def get_mixer_bypass() -> dict[str, str]:
    """Read the known global mixer bypass state."""
    return {"mixer_bypass": _get_session().state.get_mixer_bypass().value}


# ─── RESOURCES ───────────────────────────────────────────────────────

@mcp.resource("ucmixer://session/status")
def resource_session_status() -> str:
    """Connection status as JSON."""
    return json.dumps(get_status(), indent=2)


@mcp.resource("ucmixer://state/channels")
def resource_channel_state() -> str:
    """Every observed channel and global parameter as JSON."""
    return json.dumps(_get_session().state.to_dict(), indent=2)


@mcp.resource("ucmixer://catalog/parameters")
def resource_parameter_catalog() -> str:
    """Controllable parameters and their toggle defaults when unknown."""
    catalog = {
        "global": ["mixerBypass"],
        "channel": {
            attr.value: {"unknown_toggle_default": "on" if attr.unknown_default else "off"}
            for attr in ChannelAttribute
        },
        "channel_range": [1, MAX_CHANNEL],
    }
    return json.dumps(catalog, indent=2)


# ─── ENTRY POINT ─────────────────────────────────────────────────────

def main():
    """Run the MCP server with stdio transport."""
    logging.basicConfig(level=logging.INFO)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
