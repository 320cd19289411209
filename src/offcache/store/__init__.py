"""Versioned, namespaced response store for offcache.

This package provides the :class:`CacheStore` / :class:`CacheNamespace`
contract and :class:`DiskCacheStore`, a persistent backend that keeps one
:mod:`diskcache` directory per namespace. Entries are keyed by request
fingerprint and hold full response snapshots; only successful GET
responses are ever stored.

The store is owned by :class:`~offcache.lifecycle.LifecycleManager`
(namespace creation and deletion) and read and written by
:class:`~offcache.strategies.StrategyEngine`.
"""

from offcache.store.base import CacheNamespace, CacheStore, fingerprint, normalize_url
from offcache.store.disk import DiskCacheStore, DiskNamespace

__all__ = [
    "CacheNamespace",
    "CacheStore",
    "DiskCacheStore",
    "DiskNamespace",
    "fingerprint",
    "normalize_url",
]
