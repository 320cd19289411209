"""Asynchronous origin client -- the "fetch from origin" capability.

This module provides :class:`OriginClient`, which wraps
:class:`httpx.AsyncClient` and turns every origin reply into a fully-read
:class:`~offcache.models.ResponseSnapshot`. The strategy engine and the
lifecycle manager only depend on the :class:`Fetcher` protocol, so tests
and embedding hosts can swap in any object with an async ``fetch``.

Semantics follow a browser ``fetch``: an HTTP error status (404, 500, ...)
is a normal response. Failures to obtain a response at all (DNS, refused
connection, timeout, redirect loops, undecodable bodies) raise
:class:`~offcache.exceptions.NetworkError`.
Connection errors are retried with exponential backoff when
``max_retries`` is set.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional, Protocol

import httpx

from offcache.exceptions import NetworkError
from offcache.models import RequestConfig, RequestDescriptor, ResponseSnapshot
from offcache.output import get_output

_WIRE_HEADERS = frozenset({"content-encoding", "content-length"})


class Fetcher(Protocol):
    """Anything that can fetch a request from its origin."""

    async def fetch(self, request: RequestDescriptor) -> ResponseSnapshot:
        ...


class OriginClient:
    """Asynchronous HTTP client for origin fetches.

    Must be used as an async context manager.

    Args:
        config: Request settings (timeout, SSL verification, retries).
        transport: Optional :mod:`httpx` transport, e.g. an
            :class:`httpx.MockTransport` in tests.

    Example::

        async with OriginClient(RequestConfig()) as origin:
            snapshot = await origin.fetch(RequestDescriptor(url="https://cdn.example/lib.js"))
    """

    def __init__(
        self,
        config: Optional[RequestConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = config or RequestConfig()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    # ------------------------------------------------------------------ #
    # Async context manager
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> OriginClient:
        kwargs: dict[str, Any] = {
            "timeout": self._config.timeout,
            "verify": self._config.verify_ssl,
            "follow_redirects": True,
        }
        if self._transport is not None:
            kwargs["transport"] = self._transport
        self._client = httpx.AsyncClient(**kwargs)
        return self

    async def __aexit__(self, *args: object) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------ #
    # Fetch
    # ------------------------------------------------------------------ #

    async def fetch(self, request: RequestDescriptor) -> ResponseSnapshot:
        """Fetch *request* from its origin and read the whole body.

        The body is stored decoded, so the headers describing the wire
        encoding are dropped.

        Returns:
            A snapshot of the response, whatever its status.

        Raises:
            NetworkError: On transport errors after all retries, and on any
                other :mod:`httpx` request failure.
        """
        response = await self._execute_with_retry(request)
        headers = {
            name: value
            for name, value in response.headers.items()
            if name.lower() not in _WIRE_HEADERS
        }
        return ResponseSnapshot(
            status=response.status_code,
            headers=headers,
            body=response.content,
            url=str(response.url),
        )

    async def _execute_with_retry(self, request: RequestDescriptor) -> httpx.Response:
        """Send the request, retrying connection errors with exponential backoff.

        The delay doubles each attempt: 1 s, 2 s, 4 s, ...
        """
        assert self._client is not None, "Client not initialised -- use as async context manager"

        max_retries = self._config.max_retries
        output = get_output()

        for attempt in range(max_retries + 1):
            try:
                return await self._client.request(
                    method=request.method,
                    url=request.url,
                    headers=request.headers,
                )
            except httpx.TransportError as exc:
                if attempt < max_retries:
                    delay = 2 ** attempt
                    output.debug(
                        f"Connection error: {exc}, retrying in {delay}s "
                        f"(attempt {attempt + 1}/{max_retries})"
                    )
                    await asyncio.sleep(delay)
                    continue
                raise NetworkError(
                    f"Fetch of {request.url} failed after {max_retries + 1} attempts: {exc}"
                ) from exc
            except (httpx.HTTPError, httpx.InvalidURL) as exc:
                # not retried: the same request fails the same way
                raise NetworkError(f"Cannot fetch {request.url}: {exc}") from exc

        raise NetworkError(f"Fetch of {request.url} failed")  # pragma: no cover
