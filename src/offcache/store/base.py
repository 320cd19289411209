"""Abstract cache store and request fingerprinting.

This module defines the contract every store backend implements:

- :class:`CacheStore` -- a set of named namespaces: ``open``, ``keys``
  (list namespace names), ``delete``.
- :class:`CacheNamespace` -- a handle on one namespace: ``match``,
  ``put``, ``put_all`` (atomic batch), ``keys`` (stored URLs),
  ``snapshots``, ``size``.

Keys inside a namespace are request fingerprints produced by
:func:`fingerprint`: a SHA-256 hash of ``METHOD|normalised-url`` plus
any configured vary headers. Only GET requests with a 2xx response are
ever stored, and a put overwrites any previous entry for the same key.

Backend failures surface as :class:`~offcache.exceptions.StoreError`;
the store never swallows them, callers decide how to recover.

See Also:
    :mod:`offcache.store.disk` for the :mod:`diskcache` backend.
"""

from __future__ import annotations

import hashlib
from abc import ABC, abstractmethod
from typing import Optional, Sequence, Union
from urllib.parse import urlsplit, urlunsplit

from offcache.models import RequestDescriptor, ResponseSnapshot

RequestLike = Union[RequestDescriptor, str]


def normalize_url(url: str) -> str:
    """Lower-case scheme and host and drop the fragment."""
    parts = urlsplit(url)
    return urlunsplit(
        (parts.scheme.lower(), parts.netloc.lower(), parts.path, parts.query, "")
    )


def fingerprint(request: RequestDescriptor, vary_headers: Sequence[str] = ()) -> str:
    """Generate a store key from method, normalised URL, and vary headers."""
    parts = [request.method.upper(), normalize_url(request.url)]
    for name in sorted(h.lower() for h in vary_headers):
        parts.append(f"{name}={request.header(name, '')}")
    raw = "|".join(parts)
    return hashlib.sha256(raw.encode()).hexdigest()


def as_request(request: RequestLike) -> RequestDescriptor:
    if isinstance(request, str):
        return RequestDescriptor(url=request)
    return request


class CacheNamespace(ABC):
    """Handle on one named namespace of a :class:`CacheStore`."""

    def __init__(self, name: str) -> None:
        self.name = name

    @abstractmethod
    async def match(self, request: RequestLike) -> Optional[ResponseSnapshot]:
        """Return the stored snapshot for *request*, or ``None`` on a miss.

        Non-GET requests always miss.
        """

    @abstractmethod
    async def put(self, request: RequestLike, response: ResponseSnapshot) -> bool:
        """Store *response* under *request*'s fingerprint, overwriting any entry.

        Returns:
            ``False`` when the entry was refused (non-GET request or a
            non-2xx response), ``True`` once it is written.
        """

    @abstractmethod
    async def put_all(self, entries: Sequence[tuple[RequestLike, ResponseSnapshot]]) -> int:
        """Store every entry, or none of them when any write fails.

        Refused entries (see :meth:`put`) are skipped.

        Returns:
            The number of entries written.
        """

    @abstractmethod
    async def keys(self) -> list[str]:
        """Return the URLs of every stored entry."""

    @abstractmethod
    async def snapshots(self) -> list[ResponseSnapshot]:
        """Return every stored snapshot."""

    async def size(self) -> int:
        """Sum of the body byte lengths of every stored entry."""
        return sum(len(snapshot.body) for snapshot in await self.snapshots())


class CacheStore(ABC):
    """A collection of named namespaces."""

    @abstractmethod
    async def open(self, name: str) -> CacheNamespace:
        """Return the namespace called *name*, creating it if absent."""

    @abstractmethod
    async def keys(self) -> list[str]:
        """Return the names of every existing namespace."""

    @abstractmethod
    async def delete(self, name: str) -> bool:
        """Delete the namespace called *name*.

        Returns:
            ``True`` if it existed, ``False`` otherwise.
        """

    async def has(self, name: str) -> bool:
        return name in await self.keys()

    async def total_size(self) -> int:
        """Sum of body byte lengths across every entry of every namespace."""
        total = 0
        for name in await self.keys():
            namespace = await self.open(name)
            total += await namespace.size()
        return total

    def close(self) -> None:
        """Release backend resources. The default does nothing."""
