"""Request classification -- which strategy handles which request.

Classification is a pure, synchronous function of the request URL and
the asset manifest. Rules, in priority order:

1. The URL equals a static asset URL, or contains the icon marker
   -> :attr:`~offcache.models.StrategyTag.CACHE_FIRST`.
2. The URL's final path segment equals the final path segment of any
   dynamic asset URL -> :attr:`~offcache.models.StrategyTag.STALE_WHILE_REVALIDATE`.
3. Anything else -> :attr:`~offcache.models.StrategyTag.NETWORK_FIRST`.

Requests whose scheme is not ``http``/``https`` are not classified at
all (``None``): the caching layer does not intercept them.
"""

from __future__ import annotations

from typing import Optional
from urllib.parse import urljoin, urlsplit

from offcache.models import AssetManifest, RequestDescriptor, StrategyTag
from offcache.store.base import normalize_url

_INTERCEPTED_SCHEMES = ("http", "https")


def resolve_urls(urls: list[str], scope: str) -> list[str]:
    """Resolve manifest entries against *scope* and normalise them."""
    return [normalize_url(urljoin(scope, url)) for url in urls]


def last_segment(url: str) -> str:
    return urlsplit(url).path.rsplit("/", 1)[-1]


def is_interceptable(url: str) -> bool:
    return urlsplit(url).scheme.lower() in _INTERCEPTED_SCHEMES


class Classifier:
    """Classifier bound to one manifest and scope.

    Args:
        manifest: Static and dynamic asset lists plus the icon marker.
        scope: Base URL that relative manifest entries resolve against.
    """

    def __init__(self, manifest: AssetManifest, scope: str) -> None:
        self._icon_marker = manifest.icon_marker
        self._static = set(resolve_urls(manifest.static_assets, scope))
        self._dynamic_names = {
            name for name in (last_segment(u) for u in manifest.dynamic_assets) if name
        }

    def classify(self, request: RequestDescriptor) -> Optional[StrategyTag]:
        if not is_interceptable(request.url):
            return None

        url = normalize_url(request.url)
        if url in self._static or (self._icon_marker and self._icon_marker in url):
            return StrategyTag.CACHE_FIRST

        name = last_segment(url)
        if name and name in self._dynamic_names:
            return StrategyTag.STALE_WHILE_REVALIDATE

        return StrategyTag.NETWORK_FIRST


def classify(
    request: RequestDescriptor,
    manifest: AssetManifest,
    scope: str,
) -> Optional[StrategyTag]:
    """Classify *request* against *manifest* in one call."""
    return Classifier(manifest, scope).classify(request)
