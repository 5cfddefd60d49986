"""Access to the central store holding the roster, configurations and statuses."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Protocol

import httpx

from netcontroller.core.exceptions import StoreError
from netcontroller.models import LogRecord, NetworkElement
from netcontroller.schemas.status import (
    ElementLogRequest,
    StatusStats,
    StatusUpdate,
    VersionUpdate,
)

logger = logging.getLogger(__name__)

# Constants
REQUEST_TIMEOUT_SECONDS = 15.0
MAX_RETRIES = 5
BACKOFF_BASE_SECONDS = 1.0
BACKOFF_MAX_SECONDS = 30.0


class ElementStore(Protocol):
    """Operations the polling engine needs from the central store."""

    async def list_proxies(self) -> list[NetworkElement]: ...

    async def list_collectors(self) -> list[NetworkElement]: ...

    async def network_signature(self) -> str: ...

    async def element_config(self, element: NetworkElement) -> bytes | None: ...

    async def element_upgrade(self, element: NetworkElement) -> bytes | None: ...

    async def update_element_version(self, element: NetworkElement, version: str) -> None: ...

    async def add_element_log(self, element: NetworkElement, record: LogRecord) -> None: ...

    async def update_status(
        self,
        component: str,
        address: str,
        status: str,
        message: str,
        stats: dict[str, int],
        component_class: str,
    ) -> None: ...


class StoreClient:
    """HTTP client for the central store with authentication and retry handling."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        controller_version: str = "unknown",
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        max_retries: int = MAX_RETRIES,
        backoff_base: float = BACKOFF_BASE_SECONDS,
        backoff_max: float = BACKOFF_MAX_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)
        self._api_key = api_key
        self._controller_version = controller_version
        self._token: str | None = None
        self._token_expires_at = 0.0
        self._max_retries = max_retries
        self._backoff_base = backoff_base
        self._backoff_max = backoff_max
        self._auth_lock = asyncio.Lock()

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def wait_for_store(self, max_attempts: int = 30, initial_delay: float = 2.0) -> None:
        """Wait for the store to be reachable before starting.

        Args:
            max_attempts: Maximum number of attempts before giving up
            initial_delay: Initial delay between attempts in seconds

        Raises:
            StoreError: If the store never answered
        """
        delay = initial_delay
        for attempt in range(1, max_attempts + 1):
            try:
                response = await self._client.get("/health")
                if response.status_code == 200:
                    logger.info("Store is ready")
                    return
                logger.warning(
                    "Store returned %s (attempt %d/%d), retrying in %.1fs...",
                    response.status_code, attempt, max_attempts, delay
                )
            except httpx.RequestError as e:
                logger.warning(
                    "Store not reachable: %s (attempt %d/%d), retrying in %.1fs...",
                    type(e).__name__, attempt, max_attempts, delay
                )

            if attempt < max_attempts:
                await asyncio.sleep(delay)
                delay = min(delay * 1.5, self._backoff_max)

        raise StoreError(f"Store not reachable after {max_attempts} attempts")

    async def ensure_authenticated(self) -> None:
        """Ensure the client has a valid authentication token.

        Callers only wait on the lock while a refresh is due; one of them
        logs in and the others reuse its token.
        """
        if self._token_valid():
            return
        async with self._auth_lock:
            if not self._token_valid():
                await self._authenticate()

    def _token_valid(self) -> bool:
        return self._token is not None and self._now() < self._token_expires_at

    async def _authenticate(self) -> None:
        logger.info("Authenticating network controller with the store")
        response = await self._request(
            "POST",
            "/api/controller/auth",
            headers={"X-API-Key": self._api_key},
            json={"controller_version": self._controller_version},
            auth_required=False,
        )
        payload = self._json(response)
        token = payload.get("access_token")
        expires_in = payload.get("expires_in")
        if not isinstance(token, str) or not isinstance(expires_in, int):
            raise StoreError("Invalid authentication response")
        self._token = token
        self._token_expires_at = self._now() + max(expires_in - 30, 0)

    async def fetch_network_cert(self, path: str | Path) -> Path:
        """Download the client certificate used to reach the network elements."""
        response = await self._request(
            "GET", "/api/signature/network/cert", auth_required=True
        )
        self._check(response)
        destination = Path(path)
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(response.content)
        logger.info("Network certificate saved to %s", destination)
        return destination

    async def list_proxies(self) -> list[NetworkElement]:
        return await self._list_elements("/api/proxies")

    async def list_collectors(self) -> list[NetworkElement]:
        return await self._list_elements("/api/collectors")

    async def network_signature(self) -> str:
        response = await self._request("GET", "/api/signature/network", auth_required=True)
        value = self._json(response).get("value")
        if not isinstance(value, str) or not value:
            raise StoreError("Network signature is missing")
        return value

    async def element_config(self, element: NetworkElement) -> bytes | None:
        return await self._get_content(element, "config")

    async def element_upgrade(self, element: NetworkElement) -> bytes | None:
        return await self._get_content(element, "upgrade")

    async def update_element_version(self, element: NetworkElement, version: str) -> None:
        response = await self._request(
            "POST",
            f"{self._element_path(element)}/version",
            json=VersionUpdate(version=version).model_dump(),
            auth_required=True,
        )
        self._check(response)

    async def add_element_log(self, element: NetworkElement, record: LogRecord) -> None:
        response = await self._request(
            "POST",
            f"{self._element_path(element)}/logs",
            json=ElementLogRequest(**record.to_payload()).model_dump(),
            auth_required=True,
        )
        self._check(response)

    async def update_status(
        self,
        component: str,
        address: str,
        status: str,
        message: str,
        stats: dict[str, int],
        component_class: str,
    ) -> None:
        update = StatusUpdate(
            component=component,
            ip=address,
            status=status,
            message=message,
            stats=StatusStats(**stats),
            type=component_class,
        )
        response = await self._request(
            "POST", "/api/status", json=update.model_dump(), auth_required=True
        )
        self._check(response)

    async def _list_elements(self, url: str) -> list[NetworkElement]:
        response = await self._request("GET", url, auth_required=True)
        items = self._json(response).get("elements", [])
        if not isinstance(items, list):
            raise StoreError(f"Unexpected roster from store for {url}")
        elements: list[NetworkElement] = []
        for item in items:
            try:
                elements.append(NetworkElement.from_payload(item))
            except (AttributeError, KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping invalid network element payload: %s", exc)
        return elements

    async def _get_content(self, element: NetworkElement, kind: str) -> bytes | None:
        response = await self._request(
            "GET", f"{self._element_path(element)}/{kind}", auth_required=True
        )
        if response.status_code == 404:
            return None
        self._check(response)
        return response.content or None

    @staticmethod
    def _element_path(element: NetworkElement) -> str:
        return f"/api/{element.kind.store_flavor}/{element.id}"

    @staticmethod
    def _now() -> float:
        return asyncio.get_running_loop().time()

    @staticmethod
    def _check(response: httpx.Response) -> None:
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise StoreError(
                f"Store returned {response.status_code} for {response.request.url.path}"
            ) from exc

    def _json(self, response: httpx.Response) -> dict[str, Any]:
        self._check(response)
        try:
            payload = response.json()
        except ValueError as exc:
            raise StoreError("Invalid JSON from store") from exc
        if not isinstance(payload, dict):
            raise StoreError("Unexpected response from store")
        return payload

    async def _request(
        self,
        method: str,
        url: str,
        *,
        json: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        auth_required: bool,
    ) -> httpx.Response:
        """Make an HTTP request with retries and authentication.

        Args:
            method: HTTP method
            url: URL path
            json: Optional JSON payload
            headers: Optional headers
            auth_required: Whether authentication is required

        Returns:
            HTTP response

        Raises:
            StoreError: If the store stayed unreachable
        """
        delay = self._backoff_base
        reauthed = False
        for attempt in range(1, self._max_retries + 1):
            if auth_required:
                await self.ensure_authenticated()
            request_headers = headers.copy() if headers else {}
            if auth_required and self._token:
                request_headers["Authorization"] = f"Bearer {self._token}"
            try:
                response = await self._client.request(
                    method, url, json=json, headers=request_headers
                )
            except httpx.RequestError as exc:
                if attempt == self._max_retries:
                    raise StoreError(f"Store unreachable: {exc}") from exc
                logger.warning(
                    "Network error contacting store (%s). Retrying in %.1fs",
                    exc,
                    delay,
                )
                await asyncio.sleep(delay)
                delay = min(delay * 2, self._backoff_max)
                continue

            if auth_required and response.status_code == 401 and not reauthed:
                logger.info("Controller token expired; re-authenticating")
                self._token = None
                reauthed = True
                continue

            if response.status_code in {429} or 500 <= response.status_code <= 599:
                if attempt == self._max_retries:
                    return response
                logger.warning(
                    "Store returned %s. Retrying in %.1fs", response.status_code, delay
                )
                await asyncio.sleep(delay)
                delay = min(delay * 2, self._backoff_max)
                continue

            return response

        raise StoreError("Request failed after retries")
