"""Shared test fixtures for offcache.

Provides a recording fake origin, a ``tmp_path``-backed disk store, a
worker configuration with a small static/dynamic manifest, isolated XDG
directories, and automatic reset of the global output state. These
fixtures are discovered by pytest and available to all test modules
without explicit imports.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional, Union

import pytest

from offcache.exceptions import NetworkError
from offcache.models import (
    AssetManifest,
    CacheVersions,
    RequestDescriptor,
    ResponseSnapshot,
    WorkerConfig,
)
from offcache.output import OutputFormat, OutputManager, reset_output, set_output
from offcache.store import DiskCacheStore


SCOPE = "https://app.example/"
CDN = "https://cdn.example/ajax/libs"


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time; a fresh one must be created once capture changes.
    """
    yield
    reset_output()


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a PLAIN-format, quiet OutputManager for the test."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True, no_color=True)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# Fake origin
# ---------------------------------------------------------------------------


class FakeOrigin:
    """A recording origin with canned responses per URL.

    URLs without a route fail with :class:`NetworkError`, as an
    unreachable origin would. :meth:`hold` makes a fetch wait until the
    returned event is set.
    """

    def __init__(self) -> None:
        self.routes: dict[str, Union[ResponseSnapshot, Exception]] = {}
        self.calls: list[str] = []
        self._gates: dict[str, asyncio.Event] = {}

    def respond(
        self,
        url: str,
        body: bytes = b"ok",
        status: int = 200,
        headers: Optional[dict[str, str]] = None,
    ) -> ResponseSnapshot:
        snapshot = ResponseSnapshot(
            status=status,
            headers=headers or {"content-type": "text/plain"},
            body=body,
            url=url,
        )
        self.routes[url] = snapshot
        return snapshot

    def fail(self, url: str) -> None:
        self.routes[url] = NetworkError(f"unreachable: {url}")

    def hold(self, url: str) -> asyncio.Event:
        gate = asyncio.Event()
        self._gates[url] = gate
        return gate

    def count(self, url: str) -> int:
        return self.calls.count(url)

    async def fetch(self, request: RequestDescriptor) -> ResponseSnapshot:
        self.calls.append(request.url)
        gate = self._gates.get(request.url)
        if gate is not None:
            await gate.wait()
        route = self.routes.get(request.url)
        if route is None:
            raise NetworkError(f"no route to {request.url}")
        if isinstance(route, Exception):
            raise route
        return route


@pytest.fixture
def origin() -> FakeOrigin:
    return FakeOrigin()


# ---------------------------------------------------------------------------
# Config and store
# ---------------------------------------------------------------------------


@pytest.fixture
def config() -> WorkerConfig:
    """A worker config for https://app.example/ with three CDN libraries."""
    return WorkerConfig(
        scope=SCOPE,
        versions=CacheVersions(prefix="app", static_version="v2", dynamic_version="v2"),
        manifest=AssetManifest(
            static_assets=["./", "./index.html", "./manifest.json", "./icon-192.png"],
            dynamic_assets=[
                f"{CDN}/font-awesome/6.4.0/css/all.min.css",
                f"{CDN}/pdf.js/2.16.105/pdf.min.js",
                f"{CDN}/jszip/3.10.1/jszip.min.js",
            ],
        ),
    )


@pytest.fixture
def store(tmp_path: Path) -> DiskCacheStore:
    """A DiskCacheStore rooted in tmp_path."""
    s = DiskCacheStore(tmp_path / "stores")
    yield s
    s.close()


def serve_manifest(origin: FakeOrigin) -> None:
    """Give every asset of the ``config`` fixture a 200 response."""
    for path in ("", "index.html", "manifest.json", "icon-192.png"):
        origin.respond(f"{SCOPE}{path}", body=f"static:{path}".encode())
    origin.respond(f"{CDN}/font-awesome/6.4.0/css/all.min.css", body=b"css")
    origin.respond(f"{CDN}/pdf.js/2.16.105/pdf.min.js", body=b"pdfjs")


@pytest.fixture
def served_origin(origin: FakeOrigin) -> FakeOrigin:
    """The fake origin with every install-time asset reachable."""
    serve_manifest(origin)
    return origin


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Sets XDG_CONFIG_HOME, XDG_CACHE_HOME, and XDG_DATA_HOME to
    subdirectories of tmp_path, clears all OFFCACHE_* environment
    variables, and changes the working directory to tmp_path.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setattr("offcache.config._is_xdg_platform", lambda: True)

    for var in ["OFFCACHE_CONFIG", "OFFCACHE_SCOPE", "OFFCACHE_STORE_DIR"]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
