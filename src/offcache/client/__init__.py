"""Origin fetch capability for offcache.

Re-exports :class:`OriginClient` (the :mod:`httpx` implementation) and
the :class:`Fetcher` protocol the strategy engine depends on.
"""

from offcache.client.origin import Fetcher, OriginClient

__all__ = ["Fetcher", "OriginClient"]
