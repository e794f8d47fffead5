"""
Internal REST client for WireKVS SDK.

This module provides the low-level HTTP communication layer.
It is internal to the SDK and should not be used directly by users.

Users should use WireKVS and WireKVSDatabase instead.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from .errors import RequestError
from .hub import JsonValue

logger = logging.getLogger(__name__)

_NO_BODY = object()


def path_segment(value: str) -> str:
    """Percent-encode a value for use as a single URL path segment."""
    return quote(value, safe="")


class RestClient:
    """Internal HTTP client for the WireKVS REST API.

    Every call is a single request/response round trip with the given
    credential in the Authorization header. There is no retry.

    This is an internal class - users should use WireKVS instead.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the REST client.

        Args:
            base_url: API base URL, e.g. ``https://kvs.wireway.ch/v2``
            timeout: Request timeout in seconds (ignored if http_client given)
            http_client: Optional shared httpx client; not closed by close()
        """
        self._base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def owns_client(self) -> bool:
        """Whether close() closes the underlying httpx client."""
        return self._owns_client

    async def close(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self) -> RestClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def request(
        self,
        method: str,
        path: str,
        *,
        credential: str,
        body: Any = _NO_BODY,
        expect_json: bool = True,
    ) -> JsonValue:
        """Send one request.

        Args:
            method: HTTP method
            path: Path below the base URL, starting with ``/``
            credential: Value for the Authorization header
            body: JSON-serializable request body, if any
            expect_json: Whether to decode the response body

        Returns:
            Decoded JSON body, or None if expect_json is False

        Raises:
            RequestError: On network failure, non-2xx status, or bad JSON
        """
        url = f"{self._base_url}{path}"
        headers = {"Authorization": credential}
        payload: dict[str, Any] = {}
        if body is None:
            # httpx reads json=None as "no body"
            payload["content"] = b"null"
            headers["Content-Type"] = "application/json"
        elif body is not _NO_BODY:
            payload["json"] = body

        try:
            response = await self._client.request(method, url, headers=headers, **payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise RequestError(
                f"{method} {path} failed with status {status}",
                method=method,
                url=url,
                status_code=status,
            ) from e
        except httpx.HTTPError as e:
            raise RequestError(
                f"{method} {path} failed: {e}",
                method=method,
                url=url,
            ) from e

        logger.debug(f"{method} {path} -> {response.status_code}")

        if not expect_json:
            return None

        try:
            return response.json()
        except ValueError as e:
            raise RequestError(
                f"{method} {path} returned a non-JSON body",
                method=method,
                url=url,
                status_code=response.status_code,
            ) from e
