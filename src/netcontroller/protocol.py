"""Wire protocol spoken between the controller and the network elements.

Every frame is an 8 byte little-endian header (command, payload size) followed
by the payload. After the TLS handshake the controller logs in with the network
signature; from then on the element drives the conversation and the controller
answers the commands it receives, one at a time, until BYE or end of stream.
"""

from __future__ import annotations

import asyncio
import logging
import ssl
import struct
from datetime import datetime, timezone
from enum import Enum, IntEnum
from types import TracebackType

from netcontroller.core.exceptions import AuthError, ConnectError, ProtocolError
from netcontroller.models import LogRecord, MonitorSnapshot

logger = logging.getLogger(__name__)

HEADER = struct.Struct("<II")
MONITOR_HEADER = struct.Struct("<16sIII")
LOG_HEADER = struct.Struct("<qI")

MAX_FRAME_SIZE = 64 * 1024 * 1024
CLOSE_TIMEOUT_SECONDS = 2.0

LOG_SEVERITIES = {
    0: "info",
    1: "warning",
    2: "error",
    3: "debug",
}


class Command(IntEnum):
    """Command codes carried in the frame header."""

    OK = 0x000F0001
    NO = 0x000F0002
    BYE = 0x000F0003
    LOGIN = 0x000F0004
    MONITOR = 0x000F0005
    CONFIG = 0x000F0006
    LOG = 0x000F0007
    VERSION = 0x000F0008
    UPGRADE = 0x000F000A


# Commands an authenticated element may send to the controller
ELEMENT_COMMANDS = frozenset({
    Command.VERSION,
    Command.CONFIG,
    Command.UPGRADE,
    Command.MONITOR,
    Command.LOG,
    Command.BYE,
})


class SessionState(str, Enum):
    INIT = "init"
    CONNECTED = "connected"
    AUTHENTICATED = "authenticated"
    CLOSED = "closed"
    FAILED = "failed"


def encode_frame(command: Command, payload: bytes = b"") -> bytes:
    """Serialize one frame."""
    return HEADER.pack(int(command), len(payload)) + payload


def encode_monitor(snapshot: MonitorSnapshot) -> bytes:
    """Serialize a MONITOR payload."""
    return MONITOR_HEADER.pack(
        snapshot.status.encode("utf-8")[:16],
        snapshot.disk,
        snapshot.cpu,
        snapshot.process_cpu,
    ) + snapshot.description.encode("utf-8")


def encode_log(timestamp: int, severity: int, description: str) -> bytes:
    """Serialize a LOG payload."""
    return LOG_HEADER.pack(timestamp, severity) + description.encode("utf-8")


def _decode_text(raw: bytes) -> str:
    return raw.rstrip(b"\x00").decode("utf-8", errors="replace").strip()


def build_ssl_context(cert_file: str, ca_file: str | None = None) -> ssl.SSLContext:
    """Create the client TLS context used to reach the network elements.

    The client certificate file must contain both the certificate and its key.
    Without a CA bundle the peer certificate is not verified.
    """
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    context.load_cert_chain(cert_file)
    if ca_file:
        context.load_verify_locations(ca_file)
        context.check_hostname = False
        context.verify_mode = ssl.CERT_REQUIRED
    else:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


class ProtocolSession:
    """One connection to one network element.

    Use as an async context manager so the connection is released on every
    path, including deadline cancellation.
    """

    def __init__(
        self,
        address: str,
        port: int,
        ssl_context: ssl.SSLContext | None = None,
        connect_timeout: float | None = None,
    ) -> None:
        self.address = address
        self.port = port
        self._ssl_context = ssl_context
        self._connect_timeout = connect_timeout
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._pending: tuple[Command, int] | None = None
        self.state = SessionState.INIT

    async def __aenter__(self) -> ProtocolSession:
        await self.open()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        # a cancelled probe has run out of time, no grace period for the close
        if exc_type is not None and issubclass(exc_type, asyncio.CancelledError):
            self.abort()
        else:
            await self.close()

    @property
    def target(self) -> str:
        return f"{self.address}:{self.port}"

    def _fail(self, exc: Exception) -> Exception:
        self.state = SessionState.FAILED
        return exc

    def _require(self, state: SessionState) -> None:
        if self.state is not state:
            raise self._fail(
                ProtocolError(f"Invalid operation in state {self.state.value}")
            )

    async def open(self) -> None:
        """Open the stream socket and run the TLS handshake."""
        self._require(SessionState.INIT)
        connect = asyncio.open_connection(self.address, self.port, ssl=self._ssl_context)
        try:
            if self._connect_timeout:
                self._reader, self._writer = await asyncio.wait_for(
                    connect, self._connect_timeout
                )
            else:
                self._reader, self._writer = await connect
        except asyncio.TimeoutError as exc:
            raise self._fail(
                ConnectError(f"Cannot connect to {self.target}: connection timed out")
            ) from exc
        except OSError as exc:
            raise self._fail(ConnectError(f"Cannot connect to {self.target}: {exc}")) from exc
        self.state = SessionState.CONNECTED
        logger.debug("[NC] %s connected", self.target)

    async def login(self, signature: str | bytes) -> None:
        """Authenticate with the shared network signature."""
        self._require(SessionState.CONNECTED)
        if isinstance(signature, str):
            signature = signature.encode("utf-8")
        await self._write(encode_frame(Command.LOGIN, signature))
        header = await self._read_header()
        if header is None:
            raise self._fail(AuthError("Cannot authenticate: connection closed"))
        command, size = header
        await self._read_exactly(size)
        if command != Command.OK:
            raise self._fail(AuthError("Cannot authenticate"))
        self.state = SessionState.AUTHENTICATED

    async def next_command(self) -> Command | None:
        """Wait for the next command from the element.

        Returns:
            The command, or None when the element closed the stream
        """
        self._require(SessionState.AUTHENTICATED)
        if self._pending is not None:
            raise self._fail(
                ProtocolError(f"Command {self._pending[0].name} was not handled")
            )
        header = await self._read_header()
        if header is None:
            return None
        code, size = header
        try:
            command = Command(code)
        except ValueError:
            raise self._fail(ProtocolError(f"Unknown command 0x{code:08X}")) from None
        if command not in ELEMENT_COMMANDS:
            raise self._fail(ProtocolError(f"Unexpected command {command.name}"))
        if command is Command.BYE:
            await self._read_exactly(size)
        else:
            self._pending = (command, size)
        return command

    async def read_version(self) -> str:
        """Read the build version reported by the element."""
        payload = await self._take_payload(Command.VERSION)
        return _decode_text(payload)

    async def read_monitor(self) -> MonitorSnapshot:
        """Read the status snapshot reported by the element."""
        payload = await self._take_payload(Command.MONITOR)
        if len(payload) < MONITOR_HEADER.size:
            raise self._fail(ProtocolError("Truncated MONITOR payload"))
        status, disk, cpu, pcpu = MONITOR_HEADER.unpack_from(payload)
        return MonitorSnapshot(
            status=_decode_text(status),
            disk=disk,
            cpu=cpu,
            process_cpu=pcpu,
            description=_decode_text(payload[MONITOR_HEADER.size:]),
        )

    async def read_log(self) -> LogRecord:
        """Read one log entry buffered by the element."""
        payload = await self._take_payload(Command.LOG)
        if len(payload) < LOG_HEADER.size:
            raise self._fail(ProtocolError("Truncated LOG payload"))
        seconds, severity = LOG_HEADER.unpack_from(payload)
        try:
            timestamp = datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as exc:
            raise self._fail(ProtocolError(f"Invalid LOG timestamp {seconds}")) from exc
        return LogRecord(
            timestamp=timestamp,
            severity=LOG_SEVERITIES.get(severity, "info"),
            description=_decode_text(payload[LOG_HEADER.size:]),
        )

    async def send_config(self, payload: bytes | None) -> None:
        """Answer a CONFIG request; None means no new configuration."""
        await self._take_payload(Command.CONFIG)
        await self._send_content(Command.CONFIG, payload)

    async def send_upgrade(self, payload: bytes | None) -> None:
        """Answer an UPGRADE request; None means no upgrade available."""
        await self._take_payload(Command.UPGRADE)
        await self._send_content(Command.UPGRADE, payload)

    def _release(self) -> asyncio.StreamWriter | None:
        writer, self._writer = self._writer, None
        self._reader = None
        self._pending = None
        if self.state is not SessionState.FAILED:
            self.state = SessionState.CLOSED
        return writer

    def abort(self) -> None:
        """Drop the connection at once without waiting for the peer."""
        writer = self._release()
        if writer is not None:
            writer.transport.abort()

    async def close(self) -> None:
        """Release the connection. Safe to call more than once."""
        writer = self._release()
        if writer is None:
            return
        writer.close()
        try:
            await asyncio.wait_for(writer.wait_closed(), CLOSE_TIMEOUT_SECONDS)
        except (OSError, asyncio.TimeoutError):
            writer.transport.abort()
        except asyncio.CancelledError:
            writer.transport.abort()
            raise

    async def _send_content(self, command: Command, payload: bytes | None) -> None:
        if not payload:
            await self._write(encode_frame(Command.NO))
            return
        await self._write(encode_frame(command, payload))
        header = await self._read_header()
        if header is None:
            raise self._fail(
                ProtocolError(f"Connection closed while sending {command.name}")
            )
        ack, size = header
        await self._read_exactly(size)
        if ack != Command.OK:
            raise self._fail(ProtocolError(f"Element refused {command.name}"))

    async def _take_payload(self, command: Command) -> bytes:
        self._require(SessionState.AUTHENTICATED)
        if self._pending is None or self._pending[0] is not command:
            current = self._pending[0].name if self._pending else "none"
            raise self._fail(
                ProtocolError(f"Cannot handle {command.name}, pending command is {current}")
            )
        _, size = self._pending
        self._pending = None
        return await self._read_exactly(size)

    async def _read_header(self) -> tuple[int, int] | None:
        assert self._reader is not None
        try:
            raw = await self._reader.readexactly(HEADER.size)
        except asyncio.IncompleteReadError as exc:
            if not exc.partial:
                return None
            raise self._fail(ProtocolError("Truncated frame header")) from exc
        except OSError as exc:
            raise self._fail(ProtocolError(f"Connection lost: {exc}")) from exc
        command, size = HEADER.unpack(raw)
        if size > MAX_FRAME_SIZE:
            raise self._fail(ProtocolError(f"Frame too large ({size} bytes)"))
        return command, size

    async def _read_exactly(self, size: int) -> bytes:
        if size == 0:
            return b""
        assert self._reader is not None
        try:
            return await self._reader.readexactly(size)
        except asyncio.IncompleteReadError as exc:
            raise self._fail(ProtocolError("Truncated frame payload")) from exc
        except OSError as exc:
            raise self._fail(ProtocolError(f"Connection lost: {exc}")) from exc

    async def _write(self, data: bytes) -> None:
        assert self._writer is not None
        try:
            self._writer.write(data)
            await self._writer.drain()
        except OSError as exc:
            raise self._fail(ProtocolError(f"Connection lost: {exc}")) from exc
