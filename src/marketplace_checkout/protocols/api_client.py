"""Async client for the marketplace backend API.

Every backend response is wrapped in a ``{status, message, data}``
envelope; :meth:`MarketplaceClient.request` unwraps it and returns ``data``.
Requests carry a bearer token supplied by an external token provider.
"""

from __future__ import annotations

from typing import Any, Callable

import httpx
import structlog

from marketplace_checkout.errors import GatewayError

logger = structlog.get_logger(__name__)

_DEFAULT_TIMEOUT = 15.0
_MAX_RETRIES = 2

TokenProvider = Callable[[], "str | None"]


class MarketplaceClient:
    """Async HTTP client for the marketplace REST API."""

    def __init__(
        self,
        base_url: str,
        token_provider: TokenProvider | None = None,
        timeout: float = _DEFAULT_TIMEOUT,
        max_retries: int = _MAX_RETRIES,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url if base_url.endswith("/") else f"{base_url}/"
        self._token_provider = token_provider
        self._timeout = timeout
        self._max_retries = max_retries
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Lazy-initialise the shared ``httpx.AsyncClient``."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=httpx.Timeout(self._timeout),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Shut down the underlying HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    def _auth_headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        token = self._token_provider() if self._token_provider else None
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    # ------------------------------------------------------------------
    # Request helper with retry
    # ------------------------------------------------------------------

    async def request(
        self,
        method: str,
        path: str,
        json_body: Any = None,
        params: dict[str, Any] | None = None,
        retries: int | None = None,
    ) -> Any:
        """Execute a request with retries and return the envelope's ``data``.

        Timeouts, transport errors and 5xx responses are retried; 4xx
        responses fail immediately.  Raises :class:`GatewayError` once
        retries are exhausted.
        """
        client = await self._get_client()
        max_retries = self._max_retries if retries is None else retries
        path = path.lstrip("/")
        last_error: Exception | None = None

        for attempt in range(max_retries + 1):
            try:
                response = await client.request(
                    method,
                    path,
                    json=json_body,
                    params=params,
                    headers=self._auth_headers(),
                )
                response.raise_for_status()
                return self._unwrap(response)
            except httpx.TimeoutException as exc:
                last_error = exc
                logger.warning("api_request_timeout", path=path, attempt=attempt + 1)
            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                if 400 <= status < 500:
                    raise GatewayError(
                        f"{_error_message(exc.response)} ({status})",
                        upstream_status=status,
                    ) from exc
                last_error = exc
                logger.warning(
                    "api_request_http_error",
                    path=path,
                    status=status,
                    attempt=attempt + 1,
                )
            except httpx.RequestError as exc:
                last_error = exc
                logger.warning(
                    "api_request_error",
                    path=path,
                    error=str(exc),
                    attempt=attempt + 1,
                )

        raise GatewayError(
            f"Request to {path} failed after {max_retries + 1} attempts: {last_error}"
        )

    @staticmethod
    def _unwrap(response: httpx.Response) -> Any:
        if not response.content:
            return None
        body = response.json()
        if isinstance(body, dict) and "data" in body:
            return body["data"]
        return body

    # ------------------------------------------------------------------
    # Verb shortcuts
    # ------------------------------------------------------------------

    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, json_body: Any = None, retries: int | None = None) -> Any:
        return await self.request("POST", path, json_body=json_body, retries=retries)

    async def put(self, path: str, json_body: Any = None) -> Any:
        return await self.request("PUT", path, json_body=json_body)

    async def delete(self, path: str) -> Any:
        return await self.request("DELETE", path)


def _error_message(response: httpx.Response) -> str:
    """Pull the backend's ``message`` out of an error envelope if present."""
    try:
        body = response.json()
    except ValueError:
        return response.text or "Request failed"
    if isinstance(body, dict):
        return str(body.get("message") or body.get("detail") or "Request failed")
    return "Request failed"
