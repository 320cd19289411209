"""Tests for the DiskCacheStore backend."""

from __future__ import annotations

import asyncio
import sqlite3

import diskcache
import pytest

from offcache.exceptions import StoreError
from offcache.models import RequestDescriptor, ResponseSnapshot
from offcache.store import DiskCacheStore, fingerprint, normalize_url


def _snapshot(body: bytes = b"hello", status: int = 200) -> ResponseSnapshot:
    return ResponseSnapshot(
        status=status,
        headers={"Content-Type": "text/plain"},
        body=body,
        url="https://app.example/a",
    )


# ------------------------------------------------------------------ #
# Namespaces
# ------------------------------------------------------------------ #


class TestNamespaces:
    @pytest.mark.asyncio
    async def test_open_creates_namespace(self, store: DiskCacheStore) -> None:
        await store.open("app-static-v1")
        assert await store.keys() == ["app-static-v1"]

    @pytest.mark.asyncio
    async def test_open_is_idempotent(self, store: DiskCacheStore) -> None:
        first = await store.open("app-static-v1")
        await first.put("https://app.example/a", _snapshot())
        second = await store.open("app-static-v1")
        assert await second.match("https://app.example/a") is not None
        assert await store.keys() == ["app-static-v1"]

    @pytest.mark.asyncio
    async def test_empty_store_lists_nothing(self, store: DiskCacheStore) -> None:
        assert await store.keys() == []

    @pytest.mark.asyncio
    async def test_concurrent_open_shares_one_handle(
        self, store: DiskCacheStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        created: list[diskcache.Cache] = []
        closed: list[diskcache.Cache] = []

        class RecordingCache(diskcache.Cache):
            def __init__(self, *args, **kwargs):
                super().__init__(*args, **kwargs)
                created.append(self)

            def close(self):
                closed.append(self)
                super().close()

        monkeypatch.setattr(diskcache, "Cache", RecordingCache)

        first, second = await asyncio.gather(store.open("dyn"), store.open("dyn"))

        assert first is second
        assert all(cache in closed for cache in created if cache is not first._cache)
        assert first._cache not in closed

    @pytest.mark.asyncio
    async def test_names_with_slashes_round_trip(self, store: DiskCacheStore) -> None:
        await store.open("odd/name v1")
        assert await store.keys() == ["odd/name v1"]

    @pytest.mark.asyncio
    async def test_delete_existing_returns_true(self, store: DiskCacheStore) -> None:
        await store.open("app-static-v1")
        assert await store.delete("app-static-v1") is True
        assert await store.keys() == []

    @pytest.mark.asyncio
    async def test_has(self, store: DiskCacheStore) -> None:
        assert await store.has("app-static-v1") is False
        await store.open("app-static-v1")
        assert await store.has("app-static-v1") is True

    @pytest.mark.asyncio
    async def test_delete_missing_returns_false(self, store: DiskCacheStore) -> None:
        assert await store.delete("nope") is False

    @pytest.mark.asyncio
    async def test_deleted_handle_raises(self, store: DiskCacheStore) -> None:
        ns = await store.open("app-static-v1")
        await store.delete("app-static-v1")
        with pytest.raises(StoreError):
            await ns.match("https://app.example/a")

    @pytest.mark.asyncio
    async def test_reopen_after_delete_is_empty(self, store: DiskCacheStore) -> None:
        ns = await store.open("app-static-v1")
        await ns.put("https://app.example/a", _snapshot())
        await store.delete("app-static-v1")
        fresh = await store.open("app-static-v1")
        assert await fresh.match("https://app.example/a") is None


# ------------------------------------------------------------------ #
# Entries
# ------------------------------------------------------------------ #


class TestEntries:
    @pytest.mark.asyncio
    async def test_put_and_match(self, store: DiskCacheStore) -> None:
        ns = await store.open("dyn")
        assert await ns.put("https://app.example/a", _snapshot()) is True
        hit = await ns.match(RequestDescriptor(url="https://app.example/a"))
        assert hit is not None
        assert hit.body == b"hello"
        assert hit.headers == {"content-type": "text/plain"}
        assert hit.stored_at is not None

    @pytest.mark.asyncio
    async def test_miss_returns_none(self, store: DiskCacheStore) -> None:
        ns = await store.open("dyn")
        assert await ns.match("https://app.example/missing") is None

    @pytest.mark.asyncio
    async def test_put_overwrites(self, store: DiskCacheStore) -> None:
        ns = await store.open("dyn")
        await ns.put("https://app.example/a", _snapshot(b"old"))
        await ns.put("https://app.example/a", _snapshot(b"new"))
        hit = await ns.match("https://app.example/a")
        assert hit is not None and hit.body == b"new"
        assert await ns.keys() == ["https://app.example/a"]

    @pytest.mark.parametrize("status", [301, 404, 500, 503])
    @pytest.mark.asyncio
    async def test_non_2xx_not_stored(self, store: DiskCacheStore, status: int) -> None:
        ns = await store.open("dyn")
        assert await ns.put("https://app.example/a", _snapshot(status=status)) is False
        assert await ns.match("https://app.example/a") is None

    @pytest.mark.asyncio
    async def test_post_not_stored(self, store: DiskCacheStore) -> None:
        ns = await store.open("dyn")
        request = RequestDescriptor(url="https://app.example/a", method="post")
        assert await ns.put(request, _snapshot()) is False
        assert await ns.keys() == []

    @pytest.mark.asyncio
    async def test_post_never_matches(self, store: DiskCacheStore) -> None:
        ns = await store.open("dyn")
        await ns.put("https://app.example/a", _snapshot())
        request = RequestDescriptor(url="https://app.example/a", method="POST")
        assert await ns.match(request) is None

    @pytest.mark.asyncio
    async def test_fragment_ignored(self, store: DiskCacheStore) -> None:
        ns = await store.open("dyn")
        await ns.put("https://App.Example/a#top", _snapshot())
        assert await ns.match("https://app.example/a") is not None

    @pytest.mark.asyncio
    async def test_put_all_writes_batch_and_skips_refused(self, store: DiskCacheStore) -> None:
        ns = await store.open("static")
        written = await ns.put_all(
            [
                ("https://app.example/a", _snapshot(b"a")),
                ("https://app.example/b", _snapshot(b"b")),
                ("https://app.example/gone", _snapshot(status=404)),
            ]
        )
        assert written == 2
        assert sorted(await ns.keys()) == ["https://app.example/a", "https://app.example/b"]

    @pytest.mark.asyncio
    async def test_size_sums_bodies(self, store: DiskCacheStore) -> None:
        a = await store.open("a")
        b = await store.open("b")
        await a.put("https://app.example/1", _snapshot(b"12345"))
        await a.put("https://app.example/2", _snapshot(b"123"))
        await b.put("https://app.example/3", _snapshot(b"12"))
        assert await a.size() == 8
        assert await store.total_size() == 10


# ------------------------------------------------------------------ #
# Fingerprints
# ------------------------------------------------------------------ #


class TestFingerprint:
    def test_normalize_url(self) -> None:
        assert normalize_url("HTTPS://CDN.Example/Lib.js#x") == "https://cdn.example/Lib.js"

    def test_method_case_insensitive(self) -> None:
        a = RequestDescriptor(url="https://a.example/", method="get")
        b = RequestDescriptor(url="https://a.example/", method="GET")
        assert fingerprint(a) == fingerprint(b)

    def test_query_is_significant(self) -> None:
        a = RequestDescriptor(url="https://a.example/?v=1")
        b = RequestDescriptor(url="https://a.example/?v=2")
        assert fingerprint(a) != fingerprint(b)

    def test_vary_headers(self) -> None:
        a = RequestDescriptor(url="https://a.example/", headers={"Accept-Language": "it"})
        b = RequestDescriptor(url="https://a.example/", headers={"Accept-Language": "en"})
        assert fingerprint(a) == fingerprint(b)
        assert fingerprint(a, ["accept-language"]) != fingerprint(b, ["accept-language"])

    @pytest.mark.asyncio
    async def test_store_vary_headers(self, tmp_path) -> None:
        store = DiskCacheStore(tmp_path, vary_headers=["Accept-Language"])
        try:
            ns = await store.open("dyn")
            it = RequestDescriptor(url="https://a.example/", headers={"accept-language": "it"})
            en = RequestDescriptor(url="https://a.example/", headers={"accept-language": "en"})
            await ns.put(it, _snapshot(b"ciao"))
            assert await ns.match(en) is None
            hit = await ns.match(it)
            assert hit is not None and hit.body == b"ciao"
        finally:
            store.close()


# ------------------------------------------------------------------ #
# Backend failures
# ------------------------------------------------------------------ #


class TestBackendErrors:
    @pytest.mark.asyncio
    async def test_backend_error_becomes_store_error(
        self, store: DiskCacheStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        ns = await store.open("dyn")

        def _broken(*args, **kwargs):
            raise sqlite3.OperationalError("disk I/O error")

        monkeypatch.setattr(diskcache.Cache, "get", _broken)
        with pytest.raises(StoreError, match="disk I/O error"):
            await ns.match("https://app.example/a")

    @pytest.mark.asyncio
    async def test_failed_batch_writes_nothing(
        self, store: DiskCacheStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        ns = await store.open("static")
        original_set = diskcache.Cache.set
        calls = []

        def _fail_second(self, key, value, *args, **kwargs):
            calls.append(key)
            if len(calls) == 2:
                raise sqlite3.OperationalError("database or disk is full")
            return original_set(self, key, value, *args, **kwargs)

        monkeypatch.setattr(diskcache.Cache, "set", _fail_second)
        with pytest.raises(StoreError, match="disk is full"):
            await ns.put_all(
                [
                    ("https://app.example/a", _snapshot(b"a")),
                    ("https://app.example/b", _snapshot(b"b")),
                    ("https://app.example/c", _snapshot(b"c")),
                ]
            )

        assert await ns.keys() == []

    @pytest.mark.asyncio
    async def test_close_twice(self, store: DiskCacheStore) -> None:
        await store.open("dyn")
        store.close()
        store.close()
