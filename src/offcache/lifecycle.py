"""Store lifecycle: install (bring-up) and activate (supersession).

:class:`LifecycleManager` is a small state machine::

    uninitialized -> installing -> installed-waiting -> activating -> active
          ^               |
          +---- failure --+

* :meth:`~LifecycleManager.install` populates the static namespace with
  every static asset and the dynamic namespace with the first
  ``eager_dynamic_count`` dynamic assets. The two populations run
  concurrently and each is all-or-nothing: a namespace is written only
  when every one of its fetches returned a 2xx response. A failed
  install is logged and reported, and leaves the manager ready to retry.
* :meth:`~LifecycleManager.activate` deletes every namespace outside the
  current version pair (and the reserved legacy name), each deletion
  isolated from the others, then claims every connected client session
  and tells each one that activation completed.

Client sessions are modelled in-process by :class:`ClientRegistry`,
:class:`ClientSession` and :class:`MessagePort`.
"""

from __future__ import annotations

import asyncio
import itertools
from typing import Any, Callable, Optional

from offcache.classifier import resolve_urls
from offcache.client import Fetcher
from offcache.exceptions import LifecycleError, OffcacheError, StoreError
from offcache.models import (
    ActivationResult,
    DeletionOutcome,
    InstallResult,
    LifecycleState,
    MessageType,
    PopulationOutcome,
    RequestDescriptor,
    WorkerConfig,
)
from offcache.output import debug, error, info, success
from offcache.store import CacheStore

ACTIVATED_MESSAGE = {"type": MessageType.ACTIVATED.value}


class MessagePort:
    """One end of a message channel.

    Posted messages are recorded in :attr:`messages` and forwarded to the
    optional *on_message* callback.
    """

    def __init__(self, on_message: Optional[Callable[[dict[str, Any]], None]] = None) -> None:
        self.messages: list[dict[str, Any]] = []
        self._on_message = on_message

    def post_message(self, message: dict[str, Any]) -> None:
        self.messages.append(message)
        if self._on_message is not None:
            self._on_message(message)


class ClientSession:
    """A connected client (e.g. one open page of the application)."""

    def __init__(self, session_id: str, port: Optional[MessagePort] = None) -> None:
        self.id = session_id
        self.port = port or MessagePort()
        self.controller: Optional[str] = None

    def post_message(self, message: dict[str, Any]) -> None:
        self.port.post_message(message)


class ClientRegistry:
    """The set of client sessions currently connected to the worker."""

    def __init__(self) -> None:
        self._sessions: dict[str, ClientSession] = {}
        self._ids = itertools.count(1)

    def register(self, session: Optional[ClientSession] = None) -> ClientSession:
        if session is None:
            session = ClientSession(f"client-{next(self._ids)}")
        self._sessions[session.id] = session
        return session

    def unregister(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    def match_all(self) -> list[ClientSession]:
        return list(self._sessions.values())

    async def claim(self, controller: str) -> int:
        """Make *controller* the controller of every session; return the count."""
        sessions = self.match_all()
        for session in sessions:
            session.controller = controller
        return len(sessions)

    async def broadcast(self, message: dict[str, Any]) -> int:
        """Post *message* to every session; return the count."""
        sessions = self.match_all()
        for session in sessions:
            session.post_message(dict(message))
        return len(sessions)


class LifecycleManager:
    """Owns namespace creation (install) and deletion (activate).

    Args:
        config: Worker configuration (versions and manifest).
        store: The namespaced response store.
        fetcher: Origin fetch capability used to populate namespaces.
        clients: Connected client sessions. A fresh registry is created
            when omitted.
    """

    def __init__(
        self,
        config: WorkerConfig,
        store: CacheStore,
        fetcher: Fetcher,
        clients: Optional[ClientRegistry] = None,
    ) -> None:
        self._config = config
        self._store = store
        self._fetcher = fetcher
        self.clients = clients if clients is not None else ClientRegistry()
        self._state = LifecycleState.UNINITIALIZED
        self._skip_requested = False

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def controller_id(self) -> str:
        versions = self._config.versions
        return f"{versions.prefix}@{versions.static_version}/{versions.dynamic_version}"

    # ------------------------------------------------------------------ #
    # Install
    # ------------------------------------------------------------------ #

    async def install(self) -> InstallResult:
        """Populate the current static and dynamic namespaces.

        Never raises for a failed population, whatever the cause: the
        failure is logged and reported in the returned
        :class:`~offcache.models.InstallResult`. Cancellation propagates.
        """
        self._state = LifecycleState.INSTALLING
        versions = self._config.versions
        info(f"Installing cache generation {versions.static_name} / {versions.dynamic_name}")

        manifest = self._config.manifest
        scope = self._config.scope
        static_urls = resolve_urls(manifest.static_assets, scope)
        dynamic_urls = resolve_urls(
            manifest.dynamic_assets[: manifest.eager_dynamic_count], scope
        )

        try:
            static, dynamic = await asyncio.gather(
                self._populate(versions.static_name, static_urls),
                self._populate(versions.dynamic_name, dynamic_urls),
            )
        except BaseException:
            self._state = LifecycleState.UNINITIALIZED
            raise
        result = InstallResult(ok=static.ok and dynamic.ok, populations=[static, dynamic])

        if not result.ok:
            failures = "; ".join(
                f"{p.namespace}: {p.error}" for p in result.populations if not p.ok
            )
            error(f"Install failed: {failures}")
            self._state = LifecycleState.UNINITIALIZED
            return result

        self._state = LifecycleState.INSTALLED_WAITING
        success("Initial cache population complete")
        if self._skip_requested:
            self._skip_requested = False
            await self.activate()
        return result

    async def _populate(self, namespace: str, urls: list[str]) -> PopulationOutcome:
        """Fetch every URL, then store all of them or none of them."""
        debug(f"Populating {namespace} with {len(urls)} asset(s)")
        try:
            cache = await self._store.open(namespace)
            requests = [RequestDescriptor(url=url) for url in urls]
            responses = await asyncio.gather(
                *(self._fetcher.fetch(r) for r in requests), return_exceptions=True
            )
            for request, response in zip(requests, responses):
                if isinstance(response, BaseException):
                    raise response
                if not response.ok:
                    raise OffcacheError(f"{request.url} returned HTTP {response.status}")
            await cache.put_all(list(zip(requests, responses)))
        except OffcacheError as exc:
            return PopulationOutcome(namespace=namespace, urls=urls, ok=False, error=str(exc))
        except Exception as exc:
            debug(f"Unexpected {type(exc).__name__} while populating {namespace}")
            return PopulationOutcome(
                namespace=namespace, urls=urls, ok=False, error=f"{type(exc).__name__}: {exc}"
            )
        return PopulationOutcome(namespace=namespace, urls=urls, ok=True)

    # ------------------------------------------------------------------ #
    # Activate
    # ------------------------------------------------------------------ #

    async def activate(self) -> ActivationResult:
        """Retire superseded namespaces and take over client sessions.

        Per-namespace deletion failures are reported in the result and
        do not stop the other deletions or the transition to active.

        Raises:
            LifecycleError: If the manager is not installed-waiting.
        """
        if self._state is not LifecycleState.INSTALLED_WAITING:
            raise LifecycleError(f"Cannot activate from state '{self._state.value}'")

        self._state = LifecycleState.ACTIVATING
        info("Activating")

        deletions, claimed = await asyncio.gather(
            self._delete_stale(), self.clients.claim(self.controller_id)
        )

        self._state = LifecycleState.ACTIVE
        notified = await self.clients.broadcast(ACTIVATED_MESSAGE)
        result = ActivationResult(
            deletions=deletions, clients_claimed=claimed, clients_notified=notified
        )
        for failed in result.failed:
            error(f"Could not delete namespace {failed.namespace}: {failed.error}")
        success("Activation complete")
        return result

    async def skip_waiting(self) -> Optional[ActivationResult]:
        """Activate without waiting for the host's normal handoff.

        Activates immediately when installed-waiting. Before or during
        install, activation is deferred until install succeeds.
        """
        if self._state is LifecycleState.INSTALLED_WAITING:
            return await self.activate()
        if self._state in (LifecycleState.UNINITIALIZED, LifecycleState.INSTALLING):
            debug("Skip waiting requested, activating after install")
            self._skip_requested = True
            return None
        debug(f"Skip waiting ignored in state '{self._state.value}'")
        return None

    async def _delete_stale(self) -> list[DeletionOutcome]:
        try:
            names = await self._store.keys()
        except StoreError as exc:
            error(f"Could not list namespaces: {exc}")
            return []

        keep = self._config.versions.reserved_names()
        stale = [name for name in names if name not in keep]
        return list(await asyncio.gather(*(self._delete_one(name) for name in stale)))

    async def _delete_one(self, name: str) -> DeletionOutcome:
        info(f"Deleting superseded namespace: {name}")
        try:
            await self._store.delete(name)
        except StoreError as exc:
            return DeletionOutcome(namespace=name, ok=False, error=str(exc))
        return DeletionOutcome(namespace=name, ok=True)
