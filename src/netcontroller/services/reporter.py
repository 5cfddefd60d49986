"""Write probe outcomes and the controller heartbeat to the store."""

from __future__ import annotations

import logging

from netcontroller.models import ElementKind, LogRecord, NetworkElement, ProbeOutcome
from netcontroller.services.store import ElementStore
from netcontroller.services.system_status import SystemMetrics

logger = logging.getLogger(__name__)

# Component ids are the keys of the status records already held by the store
COMPONENT_NAMESPACE = "RCS::"
CONTROLLER_COMPONENT = COMPONENT_NAMESPACE + "NetworkController"
CONTROLLER_CLASS = "nc"
ANONYMIZER_PREFIX = COMPONENT_NAMESPACE + "ANON::"
ANONYMIZER_CLASS = "anonymizer"
INJECTOR_PREFIX = COMPONENT_NAMESPACE + "NIA::"
INJECTOR_CLASS = "injector"


def component_identity(element: NetworkElement) -> tuple[str, str]:
    """Return the component identifier and class used for an element's status.

    Only remote proxies are anonymizers; collectors and local proxies are
    filed as injectors.
    """
    if element.kind is ElementKind.PROXY_REMOTE:
        return ANONYMIZER_PREFIX + element.name, ANONYMIZER_CLASS
    return INJECTOR_PREFIX + element.name, INJECTOR_CLASS


class StatusReporter:
    """Maps probe outcomes to status updates."""

    def __init__(self, store: ElementStore, metrics: SystemMetrics) -> None:
        self._store = store
        self._metrics = metrics

    async def report(self, element: NetworkElement, outcome: ProbeOutcome) -> None:
        component, component_class = component_identity(element)
        logger.info("[NC] [%s] %s %s", component, element.address, outcome.status.value)
        await self._store.update_status(
            component,
            element.address,
            outcome.status.value,
            outcome.message,
            outcome.stats(),
            component_class,
        )

    async def report_self(self, message: str) -> None:
        """Write the controller heartbeat using locally sampled metrics."""
        status, stats = self._metrics.sample()
        await self._store.update_status(
            CONTROLLER_COMPONENT, "", status, message, stats, CONTROLLER_CLASS
        )

    async def forward_logs(self, element: NetworkElement, logs: list[LogRecord]) -> None:
        """Store the element's logs in the order they were received."""
        if not logs:
            return
        logger.debug("[NC] %s Inserting %d logs...", element.address, len(logs))
        for record in logs:
            await self._store.add_element_log(element, record)
