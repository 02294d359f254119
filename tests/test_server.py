"""Tests for the MCP tool layer."""

from __future__ import annotations

import asyncio
import json
import sys
from unittest.mock import MagicMock, patch

from uc_mixer_mcp.protocol.commands import build_parameter_value, build_set_parameter
from uc_mixer_mcp.transport.session import MixerSession, SessionConfig, _ControlProtocol


class FakeTransport:
    def __init__(self) -> None:
        self.written: list[bytes] = []

    def write(self, data: bytes) -> None:
        self.written.append(bytes(data))

    def is_closing(self) -> bool:
        return False

    def close(self) -> None:
        pass

    def get_extra_info(self, name, default=None):
        return default


def _get_server_module():
    """Import server module with FastMCP mocked to avoid init issues."""
    mock_fastmcp_cls = MagicMock()
    mock_fastmcp_instance = MagicMock()
    # Make the @mcp.tool() decorator a no-op that returns the function unchanged
    mock_fastmcp_instance.tool.return_value = lambda fn: fn
    mock_fastmcp_instance.resource.return_value = lambda fn: fn
    mock_fastmcp_instance.prompt.return_value = lambda fn: fn
    mock_fastmcp_cls.return_value = mock_fastmcp_instance

    with patch("mcp.server.fastmcp.FastMCP", mock_fastmcp_cls):
        # Remove cached server module so it re-imports with our mock
        sys.modules.pop("uc_mixer_mcp.server", None)
        import uc_mixer_mcp.server as server_mod

    server_mod._session = None
    return server_mod


def _connected_session(server) -> tuple[MixerSession, FakeTransport]:
    """Install a session wired to a fake transport. Needs a running loop."""
    session = MixerSession(SessionConfig(host="192.0.2.10"))
    transport = FakeTransport()
    protocol = _ControlProtocol(session)
    session._control_protocol = protocol
    session._udp_port = 50000
    protocol.connection_made(transport)
    server._session = session
    return session, transport


def test_status_before_connect():
    server = _get_server_module()
    assert server.get_status() == {
        "status": "disconnected",
        "host": None,
        "port": None,
        "udp_port": None,
        "last_error": None,
    }


def test_connect_rejects_hostname():
    server = _get_server_module()
    result = asyncio.run(server.connect("mixer.local"))
    assert "error" in result


def test_disconnect_without_session():
    server = _get_server_module()
    assert asyncio.run(server.disconnect()) == {"disconnected": True}


def test_commands_require_connection():
    server = _get_server_module()
    assert "error" in server.set_mixer_bypass(True)
    assert "error" in server.toggle_channel_parameter(1, "mute")


def test_channel_and_parameter_validation():
    server = _get_server_module()
    assert "1-100" in server.set_channel_parameter(101, "mute", True)["error"]
    assert "1-100" in server.get_channel_state(0)["error"]
    assert "Unknown parameter" in server.toggle_channel_parameter(1, "gain")["error"]


def test_toggle_channel_parameter_reports_new_state():
    server = _get_server_module()

    async def scenario():
        session, transport = _connected_session(server)
        result = server.toggle_channel_parameter(6, "solo")
        await session.close()
        return result, transport

    result, transport = asyncio.run(scenario())
    assert result == {"sent": True, "channel": 6, "parameter": "solo", "state": "on"}
    assert transport.written[-1] == build_set_parameter("line/ch6/solo", True)


def test_set_and_toggle_bypass():
    server = _get_server_module()

    async def scenario():
        session, transport = _connected_session(server)
        first = server.set_mixer_bypass(True)
        second = server.toggle_mixer_bypass()
        await session.close()
        return first, second

    first, second = asyncio.run(scenario())
    assert first == {"sent": True, "mixer_bypass": True}
    assert second == {"sent": True, "mixer_bypass": "off"}


def test_get_channel_state_reflects_pushes():
    server = _get_server_module()

    async def scenario():
        session, _ = _connected_session(server)
        session._on_control_data(
            session._control_protocol, build_parameter_value("line/ch2/48v", 1.0)
        )
        result = server.get_channel_state(2)
        await session.close()
        return result

    assert asyncio.run(scenario()) == {
        "channel": 2,
        "mute": "unknown",
        "solo": "unknown",
        "48v": "on",
        "hpf": "unknown",
        "pad": "unknown",
    }


def test_resources_are_json():
    server = _get_server_module()
    status = json.loads(server.resource_session_status())
    assert status["status"] == "disconnected"

    channels = json.loads(server.resource_channel_state())
    assert channels == {"mixer_bypass": "unknown", "channels": {}}

    catalog = json.loads(server.resource_parameter_catalog())
    assert catalog["channel"]["mute"]["unknown_toggle_default"] == "on"
    assert catalog["channel"]["48v"]["unknown_toggle_default"] == "off"
    assert server.get_mixer_bypass() == {"mixer_bypass": "unknown"}
