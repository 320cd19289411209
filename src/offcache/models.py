"""Canonical Pydantic models shared across all offcache modules.

This is the single source of truth for data shapes in the project. Every other
module imports from here rather than defining its own models. The models fall
into three groups:

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`CacheVersions`, :class:`AssetManifest`, :class:`RequestConfig`,
    and :class:`WorkerConfig`.

**Wire models** -- what flows through the strategy engine and the store:
    :class:`RequestDescriptor`, :class:`ResponseSnapshot`,
    :class:`StrategyTag`, and :class:`ControlMessage`.

**Lifecycle results** -- structured aggregates reported by install and
activate: :class:`LifecycleState`, :class:`PopulationOutcome`,
:class:`InstallResult`, :class:`DeletionOutcome`, and
:class:`ActivationResult`.

All models use Pydantic v2.
"""

from __future__ import annotations

import enum
import time
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


# --- Configuration ---


class CacheVersions(BaseModel):
    """The active version pair and the namespace names derived from it.

    Bumping either version makes the next activation delete every
    namespace that carries the old name.

    Example::

        CacheVersions(prefix="planner", static_version="v1.2", dynamic_version="v1.2")
        # static_name  -> "planner-static-v1.2"
        # dynamic_name -> "planner-dynamic-v1.2"
    """

    prefix: str = Field(default="offcache", description="Namespace name prefix")
    static_version: str = Field(default="v1", description="Version of the static namespace")
    dynamic_version: str = Field(default="v1", description="Version of the dynamic namespace")
    legacy_namespace: Optional[str] = Field(
        default=None,
        description="Reserved namespace name that activation never deletes",
    )

    @property
    def static_name(self) -> str:
        return f"{self.prefix}-static-{self.static_version}"

    @property
    def dynamic_name(self) -> str:
        return f"{self.prefix}-dynamic-{self.dynamic_version}"

    def reserved_names(self) -> set[str]:
        """Names that survive activation cleanup."""
        names = {self.static_name, self.dynamic_name}
        if self.legacy_namespace:
            names.add(self.legacy_namespace)
        return names


class AssetManifest(BaseModel):
    """URLs that classify requests and seed the store at install time.

    ``static_assets`` are all pre-populated into the static namespace.
    Only the first ``eager_dynamic_count`` entries of ``dynamic_assets``
    are pre-populated into the dynamic namespace; the remainder are
    cached lazily on first access. Relative entries are resolved against
    :attr:`WorkerConfig.scope`.
    """

    static_assets: list[str] = Field(
        default_factory=lambda: ["./", "./index.html", "./manifest.json"],
    )
    dynamic_assets: list[str] = Field(default_factory=list)
    eager_dynamic_count: int = Field(default=2, ge=0)
    icon_marker: str = Field(
        default="icon-", description="Substring that marks icon-family assets"
    )


class RequestConfig(BaseModel):
    """Settings for origin fetches."""

    timeout: int = Field(default=30, description="Request timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")
    max_retries: int = Field(
        default=0, ge=0, description="Retries on connection errors"
    )


class WorkerConfig(BaseModel):
    """Complete configuration of one caching worker.

    Persisted as ``config.json`` in the config directory (or as a
    project-local ``offcache.json``) and resolved by
    :func:`~offcache.config.resolve_config`. Passed explicitly into the
    classifier, the strategy engine, and the lifecycle manager.
    """

    scope: str = Field(
        default="http://localhost/",
        description="Base URL that relative manifest entries resolve against",
    )
    versions: CacheVersions = Field(default_factory=CacheVersions)
    manifest: AssetManifest = Field(default_factory=AssetManifest)
    entry_point: str = Field(
        default="./index.html", description="The application shell document"
    )
    offline_notice: str = Field(
        default="App offline - reload when you are back online",
        description="Body of the synthesised entry-point response",
    )
    request: RequestConfig = Field(default_factory=RequestConfig)
    store_dir: Optional[str] = Field(
        default=None, description="Store root directory (default: <cache dir>/stores)"
    )
    vary_headers: list[str] = Field(
        default_factory=list, description="Request headers that take part in the fingerprint"
    )
    skip_waiting: bool = Field(
        default=True, description="Activate immediately after a successful install"
    )


# --- Wire models ---


class StrategyTag(str, enum.Enum):
    """The caching strategy selected for a request. Never persisted."""

    CACHE_FIRST = "cache-first"
    STALE_WHILE_REVALIDATE = "stale-while-revalidate"
    NETWORK_FIRST = "network-first"


def _lower_keys(headers: dict[str, str]) -> dict[str, str]:
    return {str(k).lower(): str(v) for k, v in headers.items()}


class RequestDescriptor(BaseModel):
    """An outgoing request as seen by the caching layer."""

    model_config = ConfigDict(frozen=True)

    url: str
    method: str = "GET"
    headers: dict[str, str] = Field(default_factory=dict)

    @field_validator("method")
    @classmethod
    def _upper_method(cls, value: str) -> str:
        return value.upper()

    @field_validator("headers")
    @classmethod
    def _normalise_headers(cls, value: dict[str, str]) -> dict[str, str]:
        return _lower_keys(value)

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.headers.get(name.lower(), default)

    @property
    def accepts_html(self) -> bool:
        """True when the ``Accept`` header asks for HTML."""
        return "text/html" in (self.header("accept") or "")


class ResponseSnapshot(BaseModel):
    """A fully-read response: status, headers, body bytes.

    The body is always materialised before a snapshot exists, so the
    same snapshot can be returned to the caller and written to the store.
    ``stored_at`` is stamped by the store when the snapshot is put.
    """

    model_config = ConfigDict(frozen=True)

    status: int
    headers: dict[str, str] = Field(default_factory=dict)
    body: bytes = b""
    url: str = ""
    stored_at: Optional[float] = None

    @field_validator("headers")
    @classmethod
    def _normalise_headers(cls, value: dict[str, str]) -> dict[str, str]:
        return _lower_keys(value)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def content_type(self) -> str:
        return self.headers.get("content-type", "")

    def stamped(self) -> ResponseSnapshot:
        """Return a copy carrying the current time as ``stored_at``."""
        return self.model_copy(update={"stored_at": time.time()})


class MessageType(str, enum.Enum):
    """Control-channel message types, requests and replies."""

    SKIP_WAITING = "SKIP_WAITING"
    GET_CACHE_SIZE = "GET_CACHE_SIZE"
    CLEAR_CACHE = "CLEAR_CACHE"
    CACHE_SIZE = "CACHE_SIZE"
    CACHE_CLEARED = "CACHE_CLEARED"
    ACTIVATED = "SW_ACTIVATED"


class ControlMessage(BaseModel):
    """A message received on the control channel.

    ``data`` is accepted as an alias for ``payload``. ``ports`` carries
    the reply channel(s); replies go to the first one.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, populate_by_name=True)

    type: str
    payload: Any = Field(default=None, validation_alias=AliasChoices("payload", "data"))
    ports: list[Any] = Field(default_factory=list)


# --- Lifecycle results ---


class LifecycleState(str, enum.Enum):
    """States of :class:`~offcache.lifecycle.LifecycleManager`."""

    UNINITIALIZED = "uninitialized"
    INSTALLING = "installing"
    INSTALLED_WAITING = "installed-waiting"
    ACTIVATING = "activating"
    ACTIVE = "active"


class PopulationOutcome(BaseModel):
    """Result of populating one namespace at install time."""

    namespace: str
    urls: list[str] = Field(default_factory=list)
    ok: bool
    error: Optional[str] = None


class InstallResult(BaseModel):
    """Aggregate result of :meth:`~offcache.lifecycle.LifecycleManager.install`."""

    ok: bool
    populations: list[PopulationOutcome] = Field(default_factory=list)

    def outcome(self, namespace: str) -> Optional[PopulationOutcome]:
        for population in self.populations:
            if population.namespace == namespace:
                return population
        return None


class DeletionOutcome(BaseModel):
    """Result of deleting one superseded namespace at activation time."""

    namespace: str
    ok: bool
    error: Optional[str] = None


class ActivationResult(BaseModel):
    """Aggregate result of :meth:`~offcache.lifecycle.LifecycleManager.activate`."""

    deletions: list[DeletionOutcome] = Field(default_factory=list)
    clients_claimed: int = 0
    clients_notified: int = 0

    @property
    def ok(self) -> bool:
        return all(d.ok for d in self.deletions)

    @property
    def failed(self) -> list[DeletionOutcome]:
        return [d for d in self.deletions if not d.ok]
