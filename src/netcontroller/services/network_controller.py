"""Poll cycle: check every network element concurrently and report the results."""

from __future__ import annotations

import asyncio
import logging

from netcontroller.core.exceptions import StoreError
from netcontroller.models import CycleSummary, NetworkElement, ProbeOutcome
from netcontroller.services.prober import ElementProber
from netcontroller.services.reporter import StatusReporter
from netcontroller.services.store import ElementStore

logger = logging.getLogger(__name__)

# fraction of the interval granted to each probe, so every probe ends before the next cycle
PROBE_TIMEOUT_RATIO = 0.75


async def fetch_roster(store: ElementStore) -> list[NetworkElement]:
    """Return proxies followed by collectors, as currently registered in the store."""
    elements = await store.list_proxies()
    elements += await store.list_collectors()
    return elements


class NetworkController:
    """Fans out one probe per network element and joins them at the end of the cycle."""

    def __init__(
        self,
        store: ElementStore,
        prober: ElementProber,
        reporter: StatusReporter,
        interval: float,
    ) -> None:
        self._store = store
        self._prober = prober
        self._reporter = reporter
        self._interval = interval

    @property
    def probe_timeout(self) -> float:
        return self._interval * PROBE_TIMEOUT_RATIO

    async def run_cycle(self) -> CycleSummary:
        """Run one poll cycle. Never raises; failures end up in the store and the log."""
        try:
            elements = await fetch_roster(self._store)
        except StoreError as exc:
            logger.error("[NC] Cannot retrieve the network elements: %s", exc)
            return CycleSummary()

        targets = [element for element in elements if element.is_pollable]

        if targets:
            logger.info("[NC] Handling %d network elements...", len(targets))
            message = f"Handling {len(targets)} network elements..."
        else:
            message = "Idle..."
        try:
            await self._reporter.report_self(message)
        except StoreError as exc:
            logger.warning("[NC] Cannot send the controller status: %s", exc)

        results = await asyncio.gather(
            *(self._check(element) for element in targets), return_exceptions=True
        )

        ok = errors = 0
        for element, result in zip(targets, results):
            if isinstance(result, BaseException):
                logger.error("[NC] %s cannot store the check result: %s", element.address, result)
                errors += 1
            elif result.ok:
                ok += 1
            else:
                errors += 1

        logger.info("[NC] Network elements check completed")
        return CycleSummary(
            polled=len(targets),
            ok=ok,
            errors=errors,
            skipped=len(elements) - len(targets),
        )

    async def _check(self, element: NetworkElement) -> ProbeOutcome:
        result = await self._prober.probe(element, timeout=self.probe_timeout)
        await self._reporter.report(element, result.outcome)
        await self._reporter.forward_logs(element, result.logs)
        return result.outcome
