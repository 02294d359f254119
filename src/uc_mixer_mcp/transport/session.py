"""Network session with a UC-protocol mixer.

One session owns a TCP control connection (remote port 49162) and a UDP
socket bound to an ephemeral local port. After the TCP connection opens,
the session announces the UDP port (UM), subscribes (JM), and sends a
keepalive (KA) every two seconds until the connection closes. There is
no automatic reconnect: :meth:`MixerSession.reconfigure` or
:meth:`MixerSession.start` must be called again.

All callbacks run on the asyncio event loop, so the state store and the
session status are never touched concurrently.
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..models.parameters import ChannelAttribute, ParameterPath
from ..models.state import MixerState, TriState
from ..protocol.commands import (
    MessageType,
    build_keepalive,
    build_set_parameter,
    build_subscribe,
    build_udp_port_announcement,
)
from ..protocol.errors import DecompressionError, MalformedFrameError, TransportError
from ..protocol.framing import Message, parse_frame, read_header
from ..protocol.parser import parse_parameter_value, parse_state_snapshot
from ..protocol.reassembly import FrameReassembler

logger = logging.getLogger(__name__)

CONTROL_PORT = 49162
HEARTBEAT_INTERVAL = 2.0
UDP_BIND_ADDRESS = ("0.0.0.0", 0)


class SessionStatus(str, Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    CONNECTION_FAILED = "connection_failed"


@dataclass
class SessionConfig:
    """Where to find the mixer and how often to send keepalives."""

    host: str
    port: int = CONTROL_PORT
    heartbeat_interval: float = HEARTBEAT_INTERVAL

    def __post_init__(self) -> None:
        try:
            ipaddress.ip_address(self.host)
        except ValueError:
            raise ValueError(f"Mixer host must be an IP address, got {self.host!r}") from None
        if not 1 <= self.port <= 0xFFFF:
            raise ValueError(f"Port must be 1-65535, got {self.port}")
        if self.heartbeat_interval <= 0:
            raise ValueError(
                f"Heartbeat interval must be positive, got {self.heartbeat_interval}"
            )


class SessionListener:
    """Receives session events. Override the methods you need."""

    def status_changed(self, status: SessionStatus) -> None:
        pass

    def connection_error(self, error: TransportError) -> None:
        """Called before the status change a transport failure causes."""

    def parameter_changed(self, path: ParameterPath, value: TriState) -> None:
        pass


class _ControlProtocol(asyncio.Protocol):
    """TCP adapter forwarding asyncio callbacks to the session."""

    def __init__(self, session: MixerSession) -> None:
        self._session = session

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self._session._on_control_connected(self, transport)

    def data_received(self, data: bytes) -> None:
        self._session._on_control_data(self, data)

    def connection_lost(self, exc: Exception | None) -> None:
        self._session._on_control_lost(self, exc)


class _NotifyProtocol(asyncio.DatagramProtocol):
    """UDP adapter forwarding datagrams to the session."""

    def __init__(self, session: MixerSession) -> None:
        self._session = session
        self._transport: asyncio.DatagramTransport | None = None

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self._transport = transport

    def datagram_received(self, data: bytes, addr: Any) -> None:
        self._session._on_datagram(data)

    def error_received(self, exc: Exception) -> None:
        logger.error("UDP error: %s", exc)
        if self._transport is not None:
            self._transport.close()


class MixerSession:
    """Connection lifecycle, inbound dispatch, and the command API.

    Usage::

        session = MixerSession()
        await session.start(SessionConfig(host="192.168.1.50"))
        session.toggle_channel(5, "mute")
        await session.close()
    """

    def __init__(
        self,
        config: SessionConfig | None = None,
        state: MixerState | None = None,
        listener: SessionListener | None = None,
    ) -> None:
        self.config = config
        self.state = state if state is not None else MixerState()
        self.listener = listener if listener is not None else SessionListener()
        self.state.add_listener(self.listener.parameter_changed)

        self._status = SessionStatus.DISCONNECTED
        self._udp_port: int | None = None
        self._reassembler = FrameReassembler()
        self._control_protocol: _ControlProtocol | None = None
        self._tcp_transport: asyncio.Transport | None = None
        self._udp_transport: asyncio.DatagramTransport | None = None
        self._heartbeat_task: asyncio.Task[None] | None = None
        self._attempt = 0
        self._last_error: TransportError | None = None

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def udp_port(self) -> int | None:
        return self._udp_port

    @property
    def connected(self) -> bool:
        return self._tcp_transport is not None and not self._tcp_transport.is_closing()

    @property
    def last_error(self) -> TransportError | None:
        """The most recent connect or connection failure, if any."""
        return self._last_error

    def _set_status(self, status: SessionStatus) -> None:
        if status is self._status:
            return
        logger.debug("Session status %s -> %s", self._status.value, status.value)
        self._status = status
        self.listener.status_changed(status)

    # ─── LIFECYCLE ───────────────────────────────────────────────────

    async def start(self, config: SessionConfig | None = None) -> SessionStatus:
        """Open the UDP socket and the TCP control connection.

        Any existing connection is torn down first. Connection failures
        are reported through :attr:`status` and :attr:`last_error`, not
        raised. A :meth:`close` or another :meth:`start` issued while this
        one is still connecting supersedes it.

        Returns:
            The session status once the connect attempt has finished.
        """
        if config is not None:
            self.config = config
        if self.config is None:
            raise ValueError("No mixer host configured")

        host, port = self.config.host, self.config.port
        self._teardown()
        attempt = self._attempt
        self._last_error = None
        self._set_status(SessionStatus.CONNECTING)
        loop = asyncio.get_running_loop()

        try:
            udp_transport, _ = await loop.create_datagram_endpoint(
                lambda: _NotifyProtocol(self), local_addr=UDP_BIND_ADDRESS
            )
        except OSError as e:
            if attempt == self._attempt:
                self._fail(TransportError(f"UDP bind failed: {e}", self._status.value))
            return self._status
        if attempt != self._attempt:
            logger.debug("Connect attempt superseded; releasing UDP socket")
            udp_transport.close()
            return self._status
        self._udp_transport = udp_transport
        self._udp_port = udp_transport.get_extra_info("sockname")[1]
        logger.info("UDP listener bound on port %d", self._udp_port)

        protocol = _ControlProtocol(self)
        self._control_protocol = protocol
        try:
            await loop.create_connection(lambda: protocol, host, port)
        except OSError as e:
            if attempt == self._attempt:
                self._control_protocol = None
                self._fail(
                    TransportError(f"TCP connect to {host}:{port} failed: {e}", self._status.value)
                )
        return self._status

    def _fail(self, error: TransportError) -> None:
        logger.error("%s", error)
        self._last_error = error
        self.listener.connection_error(error)
        self._set_status(SessionStatus.CONNECTION_FAILED)

    async def reconfigure(self, config: SessionConfig) -> SessionStatus:
        """Tear down both sockets and connect to a (possibly new) mixer."""
        logger.info("Reconfiguring session for %s:%d", config.host, config.port)
        return await self.start(config)

    async def close(self) -> None:
        """Stop the heartbeat and close both sockets."""
        self._teardown()
        self._set_status(SessionStatus.DISCONNECTED)

    def _teardown(self) -> None:
        self._attempt += 1
        self._stop_heartbeat()
        self._control_protocol = None
        if self._tcp_transport is not None:
            self._tcp_transport.close()
            self._tcp_transport = None
        if self._udp_transport is not None:
            self._udp_transport.close()
            self._udp_transport = None
        self._udp_port = None
        self._reassembler.reset()

    def _start_heartbeat(self) -> None:
        self._stop_heartbeat()
        self._heartbeat_task = asyncio.get_running_loop().create_task(self._heartbeat())

    def _stop_heartbeat(self) -> None:
        if self._heartbeat_task is not None and not self._heartbeat_task.done():
            self._heartbeat_task.cancel()
        self._heartbeat_task = None

    async def _heartbeat(self) -> None:
        interval = self.config.heartbeat_interval if self.config else HEARTBEAT_INTERVAL
        while True:
            await asyncio.sleep(interval)
            self.send(build_keepalive())

    # ─── TRANSPORT CALLBACKS ─────────────────────────────────────────

    def _on_control_connected(
        self, protocol: _ControlProtocol, transport: asyncio.BaseTransport
    ) -> None:
        if protocol is not self._control_protocol:
            transport.close()
            return
        self._tcp_transport = transport
        self._reassembler.reset()
        logger.info("Connected to mixer at %s", transport.get_extra_info("peername"))
        self._set_status(SessionStatus.CONNECTED)
        self._subscribe()
        self._start_heartbeat()

    def _subscribe(self) -> None:
        self.send(build_udp_port_announcement(self._udp_port or 0))
        self.send(build_subscribe())

    def _on_control_data(self, protocol: _ControlProtocol, data: bytes) -> None:
        if protocol is not self._control_protocol:
            return
        logger.debug("Received TCP data (hex): %s", data.hex())
        for frame in self._reassembler.feed(data):
            try:
                self.dispatch(parse_frame(frame))
            except MalformedFrameError as e:
                logger.error("Error parsing TCP frame: %s", e)
                self._reassembler.resync()

    def _on_control_lost(self, protocol: _ControlProtocol, exc: Exception | None) -> None:
        if protocol is not self._control_protocol:
            return
        self._control_protocol = None
        self._tcp_transport = None
        self._stop_heartbeat()
        self._reassembler.reset()
        if exc is not None:
            error = TransportError(str(exc), self._status.value)
            logger.error("TCP error: %s", error)
            self._last_error = error
            self.listener.connection_error(error)
        else:
            logger.info("TCP connection closed")
        self._set_status(SessionStatus.DISCONNECTED)

    def _on_datagram(self, data: bytes) -> None:
        try:
            read_header(data)
        except MalformedFrameError:
            return
        try:
            self.dispatch(parse_frame(data))
        except MalformedFrameError as e:
            logger.error("Error parsing UDP data: %s", e)

    def dispatch(self, message: Message) -> None:
        """Route a decoded message to the state store.

        Raises:
            MalformedFrameError: If a PV body is too short to decode.
        """
        if message.type == MessageType.STATE_SNAPSHOT.value:
            try:
                snapshot = parse_state_snapshot(message)
            except DecompressionError as e:
                logger.error("Dropping state snapshot: %s", e)
                return
            self.state.apply_snapshot(snapshot.tree)
        elif message.type == MessageType.PARAMETER_VALUE.value:
            update = parse_parameter_value(message)
            self.state.apply_parameter(update.name, update.value)
        else:
            logger.debug("Ignoring %s message", message.type)

    # ─── COMMAND API ─────────────────────────────────────────────────

    def send(self, frame: bytes) -> bool:
        """Write a frame to the control connection.

        Returns:
            False, without queueing, if the connection is not writable.
        """
        if not self.connected:
            logger.error("TCP client is not connected")
            return False
        self._tcp_transport.write(frame)
        return True

    def _write_parameter(self, path: ParameterPath, enabled: bool) -> bool:
        if not self.send(build_set_parameter(str(path), enabled)):
            return False
        self.state.set_parameter(path, enabled)
        return True

    def set_mixer_bypass(self, enabled: bool) -> bool:
        return self._write_parameter(ParameterPath.mixer_bypass(), enabled)

    def toggle_mixer_bypass(self) -> bool:
        """Negate the last known bypass state, assuming off if never seen."""
        enabled = not self.state.get_mixer_bypass().as_bool(default=False)
        logger.info("Mixer bypass toggled to %s", enabled)
        return self._write_parameter(ParameterPath.mixer_bypass(), enabled)

    def set_channel(
        self, channel: int, attribute: ChannelAttribute | str, enabled: bool
    ) -> bool:
        """Set one channel attribute (mute, solo, 48v, hpf, pad)."""
        try:
            path = ParameterPath.channel_attribute(channel, attribute)
        except ValueError as e:
            logger.error("Invalid channel parameter: %s", e)
            return False
        return self._write_parameter(path, enabled)

    def toggle_channel(self, channel: int, attribute: ChannelAttribute | str) -> bool:
        """Toggle one channel attribute.

        When the current value is unknown, mute and solo are switched on
        and 48v, hpf and pad are switched off.
        """
        try:
            path = ParameterPath.channel_attribute(channel, attribute)
        except ValueError as e:
            logger.error("Invalid channel parameter: %s", e)
            return False

        current = self.state.get_parameter(path)
        if current.known:
            enabled = not current.as_bool()
            logger.info("Channel %d %s toggled to %s", channel, path.attribute.value, enabled)
        else:
            enabled = path.attribute.unknown_default
            logger.warning(
                "Channel %d %s state unknown. Defaulting to %s.",
                channel,
                path.attribute.value,
                "on" if enabled else "off",
            )
        return self._write_parameter(path, enabled)
