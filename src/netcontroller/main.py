"""Network Controller - FastAPI application and entry point."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI

from .core.config import settings
from .core.log_config import configure_logging
from .core.version import get_version
from .protocol import build_ssl_context
from .routers import push, version
from .services.network_controller import NetworkController
from .services.prober import ElementProber
from .services.push import ElementPusher
from .services.reporter import StatusReporter
from .services.scheduler import shutdown_scheduler, start_scheduler
from .services.store import StoreClient
from .services.system_status import SystemMetrics

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler for startup and shutdown events."""
    configure_logging(settings.log_level)
    version_str = get_version()
    logger.info("Network Controller v%s starting...", version_str)

    store = StoreClient(
        settings.store_url,
        settings.store_api_key,
        controller_version=version_str,
        timeout=settings.store_timeout,
    )
    try:
        await store.wait_for_store()

        # be sure to have the network certificate
        cert_file = Path(settings.network_cert_file)
        if not cert_file.exists():
            await store.fetch_network_cert(cert_file)
        ssl_context = build_ssl_context(str(cert_file), settings.network_ca_file or None)

        prober = ElementProber(store, ssl_context, settings.connect_timeout)
        reporter = StatusReporter(store, SystemMetrics())
        controller = NetworkController(store, prober, reporter, settings.nc_interval)
        app.state.pusher = ElementPusher(store, prober, reporter)

        start_scheduler(controller, settings.nc_interval)
        yield
    finally:
        shutdown_scheduler()
        await store.aclose()


app = FastAPI(
    title="Network Controller",
    description="Polls the network elements and reports their status to the central store",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(push.router)
app.include_router(version.router)


def run() -> None:
    """Start the controller with uvicorn."""
    import uvicorn

    uvicorn.run(
        "netcontroller.main:app",
        host=settings.listen_host,
        port=settings.listen_port,
        reload=False,
        log_level=settings.log_level.lower(),
    )
