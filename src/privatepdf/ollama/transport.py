"""Thin httpx wrapper: one shared ``AsyncClient``, a timeout on every call.

Network-level failures surface as :class:`TransportError`; HTTP status codes are
left for the caller to judge (``response.is_success``).
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx

from .errors import TransportError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://127.0.0.1:11434"


class OllamaTransport:
    """HTTP client bound to the local Ollama endpoint.

    Absolute URLs (e.g. the GitHub release host) are accepted too; httpx
    ignores ``base_url`` for them.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(base_url=self.base_url)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "OllamaTransport":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def get(self, path: str, *, timeout: float) -> httpx.Response:
        try:
            return await self._client.get(path, timeout=timeout)
        except httpx.HTTPError as e:
            raise TransportError(f"GET {path} failed: {e}") from e

    async def post(self, path: str, *, json: dict[str, Any], timeout: float) -> httpx.Response:
        try:
            return await self._client.post(path, json=json, timeout=timeout)
        except httpx.HTTPError as e:
            raise TransportError(f"POST {path} failed: {e}") from e

    @asynccontextmanager
    async def stream(
        self,
        method: str,
        url: str,
        *,
        timeout: float,
        json: dict[str, Any] | None = None,
        follow_redirects: bool = False,
    ) -> AsyncIterator[httpx.Response]:
        """Open a streaming request; the body is read via :func:`iter_body`."""
        try:
            async with self._client.stream(
                method,
                url,
                json=json,
                timeout=timeout,
                follow_redirects=follow_redirects,
            ) as response:
                yield response
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {url} failed: {e}") from e


async def iter_body(response: httpx.Response) -> AsyncIterator[bytes]:
    """Yield raw body chunks, converting mid-stream failures to TransportError."""
    try:
        async for chunk in response.aiter_bytes():
            yield chunk
    except httpx.HTTPError as e:
        raise TransportError(f"Stream error: {e}") from e
