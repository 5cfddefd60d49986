"""Pytest configuration and fixtures for network controller tests."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import Any

import pytest

from netcontroller.core.exceptions import StoreError
from netcontroller.models import ElementKind, LogRecord, NetworkElement
from netcontroller.protocol import HEADER, Command, encode_frame
from netcontroller.services.prober import ElementProber
from netcontroller.services.reporter import StatusReporter

SIGNATURE = "network-signature"

# Script steps understood by FakeElementServer besides (Command, payload)
HANG = "hang"
RAW = "raw"


# ============================================================================
# Fake store
# ============================================================================


class FakeStore:
    """In-memory store recording every write in arrival order."""

    def __init__(
        self,
        proxies: list[NetworkElement] | None = None,
        collectors: list[NetworkElement] | None = None,
    ) -> None:
        self.proxies = list(proxies or [])
        self.collectors = list(collectors or [])
        self.signature = SIGNATURE
        self.configs: dict[str, bytes] = {}
        self.upgrades: dict[str, bytes] = {}
        self.statuses: list[dict[str, Any]] = []
        self.logs: list[tuple[str, str, LogRecord]] = []
        self.versions: list[tuple[str, str]] = []
        self.config_requests: list[str] = []
        self.upgrade_requests: list[str] = []
        self.roster_error: Exception | None = None
        self.signature_error: Exception | None = None
        self.failing_components: set[str] = set()

    async def list_proxies(self) -> list[NetworkElement]:
        if self.roster_error is not None:
            raise self.roster_error
        return list(self.proxies)

    async def list_collectors(self) -> list[NetworkElement]:
        if self.roster_error is not None:
            raise self.roster_error
        return list(self.collectors)

    async def network_signature(self) -> str:
        if self.signature_error is not None:
            raise self.signature_error
        return self.signature

    async def element_config(self, element: NetworkElement) -> bytes | None:
        self.config_requests.append(element.id)
        return self.configs.get(element.id)

    async def element_upgrade(self, element: NetworkElement) -> bytes | None:
        self.upgrade_requests.append(element.id)
        return self.upgrades.get(element.id)

    async def update_element_version(self, element: NetworkElement, version: str) -> None:
        self.versions.append((element.id, version))

    async def add_element_log(self, element: NetworkElement, record: LogRecord) -> None:
        self.logs.append((element.id, element.kind.store_flavor, record))

    async def update_status(
        self,
        component: str,
        address: str,
        status: str,
        message: str,
        stats: dict[str, int],
        component_class: str,
    ) -> None:
        if component in self.failing_components:
            raise StoreError(f"cannot write status of {component}")
        self.statuses.append(
            {
                "component": component,
                "address": address,
                "status": status,
                "message": message,
                "stats": stats,
                "type": component_class,
                "at": asyncio.get_running_loop().time(),
            }
        )

    def element_statuses(self) -> list[dict[str, Any]]:
        return [s for s in self.statuses if s["type"] != "nc"]

    def heartbeats(self) -> list[dict[str, Any]]:
        return [s for s in self.statuses if s["type"] == "nc"]

    def status_of(self, component: str) -> dict[str, Any]:
        matches = [s for s in self.statuses if s["component"] == component]
        assert len(matches) == 1, f"expected one status for {component}, got {matches}"
        return matches[0]


class FakeMetrics:
    """Fixed system metrics."""

    def sample(self) -> tuple[str, dict[str, int]]:
        return "OK", {"disk": 80, "cpu": 10, "pcpu": 2}


# ============================================================================
# Fake network element
# ============================================================================


async def read_frame(reader: asyncio.StreamReader) -> tuple[int, bytes]:
    command, size = HEADER.unpack(await reader.readexactly(HEADER.size))
    payload = await reader.readexactly(size) if size else b""
    return command, payload


class FakeElementServer:
    """Plain TCP network element playing a fixed command script per connection."""

    def __init__(
        self,
        script: list[tuple[Any, Any]],
        accept_login: bool = True,
        hang_on_connect: bool = False,
    ) -> None:
        self.script = script
        self.accept_login = accept_login
        self.hang_on_connect = hang_on_connect
        self.connections = 0
        self.open_connections = 0
        self.signatures: list[bytes] = []
        self.responses: list[tuple[Command, int, bytes]] = []
        self._writers: set[asyncio.StreamWriter] = set()
        self._server: asyncio.AbstractServer | None = None
        self.port = 0

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        self.port = self._server.sockets[0].getsockname()[1]

    async def stop(self) -> None:
        if self._server is None:
            return
        self._server.close()
        for writer in list(self._writers):
            writer.close()
        try:
            await asyncio.wait_for(self._server.wait_closed(), 1.0)
        except asyncio.TimeoutError:
            pass
        self._server = None

    async def wait_until_idle(self, timeout: float = 2.0) -> bool:
        """Wait for every client connection to be closed."""
        deadline = asyncio.get_running_loop().time() + timeout
        while self.open_connections:
            if asyncio.get_running_loop().time() > deadline:
                return False
            await asyncio.sleep(0.01)
        return True

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self.connections += 1
        self.open_connections += 1
        self._writers.add(writer)
        try:
            if self.hang_on_connect:
                await reader.read()
                return
            command, signature = await read_frame(reader)
            assert command == Command.LOGIN
            self.signatures.append(signature)
            writer.write(encode_frame(Command.OK if self.accept_login else Command.NO))
            await writer.drain()
            if not self.accept_login:
                return
            for step, payload in self.script:
                if step == HANG:
                    await reader.read()
                    return
                if step == RAW:
                    writer.write(payload)
                    await writer.drain()
                    continue
                writer.write(encode_frame(step, payload or b""))
                await writer.drain()
                if step in (Command.CONFIG, Command.UPGRADE):
                    reply, content = await read_frame(reader)
                    self.responses.append((step, reply, content))
                    if reply == step:
                        writer.write(encode_frame(Command.OK))
                        await writer.drain()
        except (asyncio.IncompleteReadError, ConnectionError):
            pass
        finally:
            self.open_connections -= 1
            self._writers.discard(writer)
            writer.close()


ServerFactory = Callable[..., Awaitable[FakeElementServer]]


def make_element(
    server: FakeElementServer | None = None,
    *,
    element_id: str = "e1",
    address: str = "127.0.0.1",
    port: int | None = None,
    kind: ElementKind = ElementKind.PROXY_REMOTE,
    name: str | None = None,
    **flags: bool,
) -> NetworkElement:
    """Build a network element, pointed at the fake server when given."""
    return NetworkElement(
        id=element_id,
        address=address,
        port=port if port is not None else (server.port if server else 4444),
        kind=kind,
        name=name or element_id,
        **flags,
    )


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def metrics() -> FakeMetrics:
    return FakeMetrics()


@pytest.fixture
def prober(store: FakeStore) -> ElementProber:
    """Prober talking plain TCP to the fake elements."""
    return ElementProber(store, ssl_context=None, connect_timeout=2.0)


@pytest.fixture
def reporter(store: FakeStore, metrics: FakeMetrics) -> StatusReporter:
    return StatusReporter(store, metrics)  # type: ignore[arg-type]


@pytest.fixture
async def element_server() -> AsyncGenerator[ServerFactory, None]:
    """Factory starting fake network elements, all stopped at teardown."""
    servers: list[FakeElementServer] = []

    async def factory(script: list[tuple[Any, Any]] | None = None, **kwargs: Any) -> FakeElementServer:
        server = FakeElementServer(list(script or []), **kwargs)
        await server.start()
        servers.append(server)
        return server

    yield factory

    for server in servers:
        await server.stop()


@pytest.fixture
async def closed_port() -> int:
    """A local port with nothing listening on it."""
    server = await asyncio.start_server(lambda r, w: None, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    server.close()
    await server.wait_closed()
    return port
