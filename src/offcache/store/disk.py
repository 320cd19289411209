"""Disk-backed cache store built on :mod:`diskcache`.

Each namespace is its own :class:`diskcache.Cache` directory below a
root directory. The directory name is the URL-quoted namespace name, so
any namespace name maps to exactly one directory and back.

Entries are stored as plain dicts (``url``, ``method``, ``response``)
where ``response`` is a :meth:`~offcache.models.ResponseSnapshot.model_dump`
of the snapshot, body bytes included. Entries never expire: staleness is
handled by strategy choice and namespace versioning, not by TTL.

:mod:`diskcache` is blocking, so every call is offloaded with
:func:`asyncio.to_thread`; ``diskcache`` itself is thread-safe.

Example::

    store = DiskCacheStore("/tmp/offcache-stores")
    ns = await store.open("app-static-v1")
    await ns.put(RequestDescriptor(url="https://app.example/"), snapshot)
    hit = await ns.match("https://app.example/")
"""

from __future__ import annotations

import asyncio
import shutil
import sqlite3
from pathlib import Path
from typing import Any, Callable, Optional, Sequence, TypeVar
from urllib.parse import quote, unquote

import diskcache

from offcache.exceptions import StoreError
from offcache.models import ResponseSnapshot
from offcache.store.base import (
    CacheNamespace,
    CacheStore,
    RequestLike,
    as_request,
    fingerprint,
)

T = TypeVar("T")

_BACKEND_ERRORS = (OSError, sqlite3.Error, diskcache.Timeout)


async def _call(namespace: str, func: Callable[..., T], *args: Any) -> T:
    """Run a blocking backend call in a thread, mapping failures to StoreError."""
    try:
        return await asyncio.to_thread(func, *args)
    except _BACKEND_ERRORS as exc:
        raise StoreError(f"Store operation failed on '{namespace}': {exc}") from exc


class DiskNamespace(CacheNamespace):
    """A namespace stored in one :class:`diskcache.Cache` directory.

    Args:
        name: Namespace name.
        cache: The open :class:`diskcache.Cache` for this namespace.
        vary_headers: Request headers that take part in the fingerprint.
    """

    def __init__(
        self,
        name: str,
        cache: diskcache.Cache,
        vary_headers: Sequence[str] = (),
    ) -> None:
        super().__init__(name)
        self._cache = cache
        self._vary_headers = tuple(vary_headers)
        self._deleted = False

    async def match(self, request: RequestLike) -> Optional[ResponseSnapshot]:
        self._require_live()
        request = as_request(request)
        if request.method != "GET":
            return None
        key = fingerprint(request, self._vary_headers)
        entry = await _call(self.name, self._cache.get, key)
        if entry is None:
            return None
        return ResponseSnapshot.model_validate(entry["response"])

    async def put(self, request: RequestLike, response: ResponseSnapshot) -> bool:
        self._require_live()
        prepared = self._prepare(request, response)
        if prepared is None:
            return False
        await _call(self.name, self._cache.set, *prepared)
        return True

    async def put_all(self, entries: Sequence[tuple[RequestLike, ResponseSnapshot]]) -> int:
        self._require_live()
        prepared = [
            item
            for item in (self._prepare(request, response) for request, response in entries)
            if item is not None
        ]

        def _write_all() -> int:
            # transact() rolls back every set when one of them raises
            with self._cache.transact():
                for key, entry in prepared:
                    self._cache.set(key, entry)
            return len(prepared)

        return await _call(self.name, _write_all)

    def _prepare(
        self, request: RequestLike, response: ResponseSnapshot
    ) -> Optional[tuple[str, dict[str, Any]]]:
        """Return ``(key, entry)`` for a storable pair, ``None`` when refused."""
        request = as_request(request)
        if request.method != "GET":
            return None
        # Only cache 2xx responses
        if not response.ok:
            return None

        key = fingerprint(request, self._vary_headers)
        entry = {
            "url": request.url,
            "method": request.method,
            "response": response.stamped().model_dump(),
        }
        return key, entry

    async def keys(self) -> list[str]:
        return [entry["url"] for entry in await self._entries()]

    async def snapshots(self) -> list[ResponseSnapshot]:
        return [
            ResponseSnapshot.model_validate(entry["response"])
            for entry in await self._entries()
        ]

    async def _entries(self) -> list[dict[str, Any]]:
        self._require_live()

        def _read_all() -> list[dict[str, Any]]:
            entries = []
            for key in self._cache:
                entry = self._cache.get(key)
                if entry is not None:
                    entries.append(entry)
            return entries

        return await _call(self.name, _read_all)

    def _require_live(self) -> None:
        if self._deleted:
            raise StoreError(f"Namespace '{self.name}' has been deleted")

    def _detach(self) -> None:
        self._deleted = True
        self._cache.close()


class DiskCacheStore(CacheStore):
    """Root directory holding one :mod:`diskcache` directory per namespace.

    Args:
        root: Store root directory (created if missing).
        vary_headers: Request headers that take part in every fingerprint.
    """

    def __init__(self, root: str | Path, vary_headers: Sequence[str] = ()) -> None:
        self._root = Path(root)
        self._vary_headers = tuple(vary_headers)
        self._open: dict[str, DiskNamespace] = {}

    @property
    def root(self) -> Path:
        return self._root

    def _path_for(self, name: str) -> Path:
        return self._root / quote(name, safe="")

    async def open(self, name: str) -> DiskNamespace:
        namespace = self._open.get(name)
        if namespace is not None and self._path_for(name).is_dir():
            return namespace

        def _create() -> diskcache.Cache:
            self._root.mkdir(parents=True, exist_ok=True)
            return diskcache.Cache(str(self._path_for(name)))

        cache = await _call(name, _create)
        # a concurrent open of the same name may have finished first
        existing = self._open.get(name)
        if existing is not None and existing is not namespace:
            cache.close()
            return existing
        namespace = DiskNamespace(name, cache, self._vary_headers)
        self._open[name] = namespace
        return namespace

    async def keys(self) -> list[str]:
        def _list() -> list[str]:
            if not self._root.is_dir():
                return []
            return sorted(unquote(p.name) for p in self._root.iterdir() if p.is_dir())

        return await _call("*", _list)

    async def delete(self, name: str) -> bool:
        namespace = self._open.pop(name, None)
        if namespace is not None:
            namespace._detach()
        path = self._path_for(name)

        def _remove() -> bool:
            if not path.is_dir():
                return False
            shutil.rmtree(path)
            return True

        return await _call(name, _remove)

    def close(self) -> None:
        """Close every open :class:`diskcache.Cache`."""
        for namespace in self._open.values():
            namespace._cache.close()
        self._open.clear()
