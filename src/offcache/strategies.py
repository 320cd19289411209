"""The strategy engine: cache-first, network-first, stale-while-revalidate.

Each strategy is a coroutine built on a :class:`~offcache.store.CacheStore`
and a :class:`~offcache.client.Fetcher`; it suspends only on store calls
and origin fetches.

* :meth:`StrategyEngine.cache_first` -- serve the stored copy, fetch only
  on a miss. When the entry-point document cannot be fetched, a
  synthesised offline page is returned instead of the error.
* :meth:`StrategyEngine.network_first` -- always try the origin first;
  fall back to the stored copy, then to the cached application shell for
  HTML navigations.
* :meth:`StrategyEngine.stale_while_revalidate` -- serve the stored copy
  immediately and refresh it in the background; wait for the network
  only when nothing is stored.

Successful (2xx) responses are written back to the store; anything else
is returned to the caller unstored. Stored entries are never expired:
freshness comes from strategy choice and namespace versioning.
"""

from __future__ import annotations

import asyncio
from typing import Optional
from urllib.parse import urljoin

from offcache.client import Fetcher
from offcache.classifier import last_segment
from offcache.exceptions import NetworkError
from offcache.models import RequestDescriptor, ResponseSnapshot, StrategyTag, WorkerConfig
from offcache.output import debug, error, warning
from offcache.store import CacheNamespace, CacheStore, normalize_url


class StrategyEngine:
    """Runs the three caching strategies against one store and one origin.

    Args:
        store: The namespaced response store.
        fetcher: The origin fetch capability.
        config: Worker configuration (namespace names, entry point,
            offline notice).
    """

    def __init__(self, store: CacheStore, fetcher: Fetcher, config: WorkerConfig) -> None:
        self._store = store
        self._fetcher = fetcher
        self._config = config
        self._entry_url = normalize_url(urljoin(config.scope, config.entry_point))
        self._entry_name = last_segment(self._entry_url)
        self._revalidations: set[asyncio.Task[ResponseSnapshot]] = set()

    @property
    def entry_url(self) -> str:
        """Absolute URL of the application shell document."""
        return self._entry_url

    async def handle(self, tag: StrategyTag, request: RequestDescriptor) -> ResponseSnapshot:
        """Dispatch *request* to the strategy named by *tag*.

        Cache-first requests use the static namespace; the other two use
        the dynamic namespace.
        """
        versions = self._config.versions
        if tag is StrategyTag.CACHE_FIRST:
            return await self.cache_first(request, versions.static_name)
        if tag is StrategyTag.STALE_WHILE_REVALIDATE:
            return await self.stale_while_revalidate(request, versions.dynamic_name)
        return await self.network_first(request, versions.dynamic_name)

    # ------------------------------------------------------------------ #
    # Strategies
    # ------------------------------------------------------------------ #

    async def cache_first(self, request: RequestDescriptor, namespace: str) -> ResponseSnapshot:
        """Serve from the store; fetch and store on a miss.

        Raises:
            NetworkError: When the fetch fails and *request* is not the
                entry-point document.
        """
        cache = await self._store.open(namespace)
        cached = await cache.match(request)
        if cached is not None:
            debug(f"Cache hit: {request.url}")
            return cached

        debug(f"Cache miss, fetching: {request.url}")
        try:
            response = await self._fetcher.fetch(request)
        except NetworkError as exc:
            error(f"Cache-first fetch failed for {request.url}: {exc}")
            if self.is_entry_point(request):
                return self.offline_response(request)
            raise

        if response.ok:
            await cache.put(request, response)
        return response

    async def network_first(self, request: RequestDescriptor, namespace: str) -> ResponseSnapshot:
        """Fetch from the origin; fall back to the store when it fails.

        Raises:
            NetworkError: When the fetch fails, nothing is stored for
                *request*, and no cached shell can stand in for it.
        """
        try:
            response = await self._fetcher.fetch(request)
        except NetworkError:
            debug(f"Network failed, trying cache: {request.url}")
            cache = await self._store.open(namespace)
            cached = await cache.match(request)
            if cached is not None:
                return cached

            if request.accepts_html:
                shell = await self._cached_shell()
                if shell is not None:
                    return shell
            raise

        if response.ok:
            cache = await self._store.open(namespace)
            await cache.put(request, response)
        return response

    async def stale_while_revalidate(
        self, request: RequestDescriptor, namespace: str
    ) -> ResponseSnapshot:
        """Serve the stored copy now and refresh it in the background.

        Exactly one background fetch is started per call. With a stored
        copy its failure is only logged; without one the caller awaits it
        and its failure propagates.
        """
        cache = await self._store.open(namespace)
        cached = await cache.match(request)

        task = asyncio.create_task(self._revalidate(request, cache))

        if cached is not None:
            debug(f"Serving from cache (stale): {request.url}")
            self._revalidations.add(task)
            task.add_done_callback(self._revalidation_done)
            return cached

        debug(f"No cache, waiting for network: {request.url}")
        return await task

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    def is_entry_point(self, request: RequestDescriptor) -> bool:
        """True when *request* designates the application shell document."""
        url = normalize_url(request.url)
        if url == self._entry_url:
            return True
        return bool(self._entry_name) and last_segment(url) == self._entry_name

    def offline_response(self, request: RequestDescriptor) -> ResponseSnapshot:
        """The synthesised page served when the shell is unreachable."""
        return ResponseSnapshot(
            status=200,
            headers={"content-type": "text/html"},
            body=self._config.offline_notice.encode("utf-8"),
            url=request.url,
        )

    @property
    def pending_revalidations(self) -> int:
        return len(self._revalidations)

    async def wait_for_revalidations(self) -> None:
        """Wait until every background revalidation has finished.

        Failures are already logged by the task callback and are not
        raised here.
        """
        while self._revalidations:
            await asyncio.gather(*list(self._revalidations), return_exceptions=True)

    async def _cached_shell(self) -> Optional[ResponseSnapshot]:
        static = await self._store.open(self._config.versions.static_name)
        return await static.match(self._entry_url)

    async def _revalidate(
        self, request: RequestDescriptor, cache: CacheNamespace
    ) -> ResponseSnapshot:
        response = await self._fetcher.fetch(request)
        if response.ok:
            await cache.put(request, response)
        return response

    def _revalidation_done(self, task: asyncio.Task[ResponseSnapshot]) -> None:
        self._revalidations.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            warning(f"Background fetch failed: {exc}")
