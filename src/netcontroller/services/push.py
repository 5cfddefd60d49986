"""Out-of-band push of a configuration to a single network element."""

from __future__ import annotations

import logging

from netcontroller.core.exceptions import StoreError
from netcontroller.services.network_controller import fetch_roster
from netcontroller.services.prober import ElementProber
from netcontroller.services.reporter import StatusReporter
from netcontroller.services.store import ElementStore

logger = logging.getLogger(__name__)

CONTENT_TYPE = "text/html"


class ElementPusher:
    """Probes one element immediately instead of waiting for the next cycle."""

    def __init__(
        self,
        store: ElementStore,
        prober: ElementProber,
        reporter: StatusReporter,
    ) -> None:
        self._store = store
        self._prober = prober
        self._reporter = reporter

    async def push(self, address: str, payload: bytes | None = None) -> tuple[str, str]:
        """Contact the element registered at ``address`` and report the result.

        A non-empty payload is sent as the element's configuration regardless
        of its ``configured`` flag. When several elements share the address the
        first one in the roster is used.

        Returns:
            Tuple of (message, content type); the message is "OK" on success
        """
        try:
            matches = [
                element for element in await fetch_roster(self._store) if element.address == address
            ]
        except StoreError as exc:
            logger.warning("[NC] CANNOT PUSH TO %s: %s", address, exc)
            return str(exc), CONTENT_TYPE

        if not matches:
            logger.warning("[NC] CANNOT PUSH TO %s: unknown network element", address)
            return f"Network element {address} not found", CONTENT_TYPE
        if len(matches) > 1:
            logger.warning(
                "[NC] %d network elements share the address %s, using %s",
                len(matches),
                address,
                matches[0].name,
            )
        element = matches[0]

        logger.info("[NC] PUSHING to %s:%s", element.address, element.port)
        result = await self._prober.probe(element, config_override=payload or None)
        try:
            await self._reporter.report(element, result.outcome)
            await self._reporter.forward_logs(element, result.logs)
        except StoreError as exc:
            logger.warning("[NC] CANNOT PUSH TO %s: %s", element.address, exc)
            return str(exc), CONTENT_TYPE

        if not result.outcome.ok:
            logger.warning("[NC] CANNOT PUSH TO %s: %s", element.address, result.outcome.message)
            return result.outcome.message, CONTENT_TYPE

        logger.info("[NC] PUSHED to %s:%s", element.address, element.port)
        return "OK", CONTENT_TYPE
