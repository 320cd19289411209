"""Worker facade -- the explicit entry points of the caching layer.

:class:`CacheWorker` wires the classifier, the strategy engine, the
lifecycle manager and the control channel around one store and one
origin, and exposes them as plain coroutines:

* :meth:`CacheWorker.intercept` -- answer one outgoing request, or
  return ``None`` when the request is not intercepted.
* :meth:`CacheWorker.handle_control_message` -- run one control message.
* :meth:`CacheWorker.install` / :meth:`CacheWorker.activate` -- the
  lifecycle transitions.

:func:`open_worker` builds a worker backed by a
:class:`~offcache.store.DiskCacheStore` and an
:class:`~offcache.client.OriginClient` for hosts such as the CLI.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional, Union

import httpx

from offcache.classifier import Classifier
from offcache.client import Fetcher, OriginClient
from offcache.config import get_store_dir
from offcache.control import ControlChannel
from offcache.lifecycle import ClientRegistry, LifecycleManager
from offcache.models import (
    ActivationResult,
    ControlMessage,
    InstallResult,
    RequestDescriptor,
    ResponseSnapshot,
    StrategyTag,
    WorkerConfig,
)
from offcache.output import debug
from offcache.store import CacheStore, DiskCacheStore
from offcache.strategies import StrategyEngine


class CacheWorker:
    """One caching worker instance for one version pair.

    Args:
        config: Worker configuration.
        store: The namespaced response store.
        fetcher: The origin fetch capability.
        clients: Connected client sessions (optional).

    Example::

        worker = CacheWorker(config, store, origin)
        await worker.install()
        response = await worker.intercept(RequestDescriptor(url="https://app.example/"))
    """

    def __init__(
        self,
        config: WorkerConfig,
        store: CacheStore,
        fetcher: Fetcher,
        clients: Optional[ClientRegistry] = None,
    ) -> None:
        self.config = config
        self.store = store
        self.classifier = Classifier(config.manifest, config.scope)
        self.engine = StrategyEngine(store, fetcher, config)
        self.lifecycle = LifecycleManager(config, store, fetcher, clients)
        self.control = ControlChannel(store, self.lifecycle)

    @property
    def clients(self) -> ClientRegistry:
        return self.lifecycle.clients

    def classify(self, request: RequestDescriptor) -> Optional[StrategyTag]:
        return self.classifier.classify(request)

    async def intercept(self, request: RequestDescriptor) -> Optional[ResponseSnapshot]:
        """Answer *request* with the strategy its classification selects.

        Returns:
            The response, or ``None`` for requests that are not
            intercepted (non-http(s) schemes).

        Raises:
            NetworkError: When the selected strategy has no fallback.
            StoreError: When the store fails.
        """
        tag = self.classify(request)
        if tag is None:
            debug(f"Not intercepted: {request.url}")
            return None
        debug(f"{tag.value}: {request.method} {request.url}")
        return await self.engine.handle(tag, request)

    async def handle_control_message(
        self, message: Union[ControlMessage, dict[str, Any]]
    ) -> Optional[dict[str, Any]]:
        return await self.control.handle(message)

    async def install(self) -> InstallResult:
        """Install, then activate right away when ``skip_waiting`` is configured."""
        result = await self.lifecycle.install()
        if result.ok and self.config.skip_waiting:
            await self.lifecycle.skip_waiting()
        return result

    async def activate(self) -> ActivationResult:
        return await self.lifecycle.activate()

    async def close(self) -> None:
        """Let background revalidations finish, then release the store."""
        await self.engine.wait_for_revalidations()
        self.store.close()


@asynccontextmanager
async def open_worker(
    config: WorkerConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> AsyncIterator[CacheWorker]:
    """Yield a :class:`CacheWorker` over a disk store and an httpx origin."""
    store = DiskCacheStore(get_store_dir(config), vary_headers=config.vary_headers)
    async with OriginClient(config.request, transport=transport) as origin:
        worker = CacheWorker(config, store, origin)
        try:
            yield worker
        finally:
            await worker.close()
