"""Probe a single network element over the controller protocol."""

from __future__ import annotations

import asyncio
import logging
import ssl
from dataclasses import dataclass

from netcontroller.core.exceptions import (
    IncompatibleVersionError,
    NetworkControllerError,
    ProbeTimeoutError,
)
from netcontroller.models import (
    LogRecord,
    MonitorSnapshot,
    NetworkElement,
    ProbeOutcome,
    ProbeResult,
)
from netcontroller.protocol import ELEMENT_COMMANDS, Command, ProtocolSession
from netcontroller.services.store import ElementStore

logger = logging.getLogger(__name__)

# the minimum build of a network element able to talk to this controller
MIN_VERSION = 2011032101


def parse_version(raw: str) -> int:
    """Parse a build version, returning 0 when it is not numeric."""
    try:
        return int(raw.strip())
    except (AttributeError, ValueError):
        return 0


def is_compatible(version: int, minimum: int = MIN_VERSION) -> bool:
    return version >= minimum


@dataclass
class _Conversation:
    """State of one command loop."""

    element: NetworkElement
    session: ProtocolSession
    logs: list[LogRecord]
    config_override: bytes | None = None
    snapshot: MonitorSnapshot | None = None


# BYE is handled by the loop itself
_HANDLERS = {
    Command.VERSION: "_on_version",
    Command.CONFIG: "_on_config",
    Command.UPGRADE: "_on_upgrade",
    Command.MONITOR: "_on_monitor",
    Command.LOG: "_on_log",
}
if set(_HANDLERS) | {Command.BYE} != ELEMENT_COMMANDS:
    raise RuntimeError("Element command dispatch table is incomplete")


class ElementProber:
    """Runs the handshake and command loop against one element at a time."""

    def __init__(
        self,
        store: ElementStore,
        ssl_context: ssl.SSLContext | None = None,
        connect_timeout: float | None = None,
    ) -> None:
        self._store = store
        self._ssl_context = ssl_context
        self._connect_timeout = connect_timeout

    async def probe(
        self,
        element: NetworkElement,
        *,
        timeout: float | None = None,
        config_override: bytes | None = None,
    ) -> ProbeResult:
        """Probe an element and convert every failure into an ERROR outcome.

        Log entries received before a failure are kept in the result so the
        caller can still forward them.

        Args:
            element: Element to contact
            timeout: Deadline for the whole probe in seconds, None for no limit
            config_override: Configuration sent instead of the stored one

        Returns:
            ProbeResult with the outcome and the drained logs
        """
        logs: list[LogRecord] = []
        run = self._run(element, logs, config_override)
        try:
            if timeout is None:
                outcome = await run
            else:
                outcome = await asyncio.wait_for(run, timeout)
        except asyncio.TimeoutError:
            message = str(ProbeTimeoutError(timeout or 0))
            logger.debug("[NC] %s %s", element.address, message)
            outcome = ProbeOutcome.failure(message)
        except (NetworkControllerError, OSError) as exc:
            logger.debug("[NC] %s %s", element.address, exc)
            outcome = ProbeOutcome.failure(str(exc) or type(exc).__name__)
        except Exception as exc:
            logger.exception("[NC] %s unexpected failure", element.address)
            outcome = ProbeOutcome.failure(str(exc) or type(exc).__name__)
        return ProbeResult(outcome=outcome, logs=logs)

    async def _run(
        self,
        element: NetworkElement,
        logs: list[LogRecord],
        config_override: bytes | None,
    ) -> ProbeOutcome:
        session = ProtocolSession(
            element.address,
            element.port,
            ssl_context=self._ssl_context,
            connect_timeout=self._connect_timeout,
        )
        async with session:
            await session.login(await self._store.network_signature())
            conversation = _Conversation(
                element=element,
                session=session,
                logs=logs,
                config_override=config_override,
            )
            while True:
                command = await session.next_command()
                if command is None:
                    break
                if command is Command.BYE:
                    logger.info("[NC] %s end synchronization", element.address)
                    break
                await getattr(self, _HANDLERS[command])(conversation)
        return ProbeOutcome.from_monitor(conversation.snapshot)

    async def _on_version(self, conv: _Conversation) -> None:
        raw = await conv.session.read_version()
        logger.info("[NC] %s is version %s", conv.element.address, raw)
        await self._store.update_element_version(conv.element, raw)
        version = parse_version(raw)
        if not is_compatible(version):
            raise IncompatibleVersionError(version, MIN_VERSION)

    async def _on_config(self, conv: _Conversation) -> None:
        content = conv.config_override
        if not content and not conv.element.configured:
            content = await self._store.element_config(conv.element)
        if content:
            logger.info(
                "[NC] %s has a new configuration (%d bytes)", conv.element.address, len(content)
            )
        await conv.session.send_config(content)

    async def _on_upgrade(self, conv: _Conversation) -> None:
        content = None
        if conv.element.upgradable:
            content = await self._store.element_upgrade(conv.element)
            if content:
                logger.info(
                    "[NC] %s has a new upgrade (%d bytes)", conv.element.address, len(content)
                )
        await conv.session.send_upgrade(content)

    async def _on_monitor(self, conv: _Conversation) -> None:
        conv.snapshot = await conv.session.read_monitor()
        logger.info("[NC] %s monitor is: %s", conv.element.address, conv.snapshot)

    async def _on_log(self, conv: _Conversation) -> None:
        conv.logs.append(await conv.session.read_log())
