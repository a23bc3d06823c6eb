"""
Unit tests for the response cache and blob stores.
"""

import pytest

from metaintent.blob_store import FileBlobStore, InMemoryBlobStore
from metaintent.cache import CacheManager
from metaintent.errors import CacheError, StorageError
from metaintent.types import BackendRequest, CacheEntry, LLMBackend, now_ms


class TestCacheKey:
    def test_independent_of_context_key_order(self):
        first = {"type": "t", "input": "i", "context": {"a": 1, "b": 2}}
        second = {"context": {"b": 2, "a": 1}, "input": "i", "type": "t"}
        assert CacheManager.generate_cache_key(first) == CacheManager.generate_cache_key(second)

    def test_request_object_matches_dict(self):
        request = BackendRequest(type="t", prompt="i", context={"k": "v"})
        as_dict = {"type": "t", "input": "i", "context": {"k": "v"}}
        assert CacheManager.generate_cache_key(request) == CacheManager.generate_cache_key(as_dict)

    def test_prompt_alias(self):
        assert CacheManager.generate_cache_key(
            {"type": "t", "prompt": "i"}
        ) == CacheManager.generate_cache_key({"type": "t", "input": "i"})

    def test_differs_by_input(self):
        assert CacheManager.generate_cache_key(
            {"type": "t", "input": "a"}
        ) != CacheManager.generate_cache_key({"type": "t", "input": "b"})

    def test_is_sha256_hex(self):
        key = CacheManager.generate_cache_key({"type": "t", "input": "a"})
        assert len(key) == 64
        int(key, 16)


class TestCacheManager:
    @pytest.mark.asyncio
    async def test_miss(self):
        assert await CacheManager().get("nope") is None

    @pytest.mark.asyncio
    async def test_hit_increments_counter(self):
        cache = CacheManager()
        entry = await cache.cache_response(
            BackendRequest(type="t", prompt="p"), {"content": "x"}, LLMBackend.NIM
        )

        first = await cache.get(entry.cache_key)
        second = await cache.get(entry.cache_key)

        assert first.hit_count == 1
        assert second.hit_count == 2
        assert second.llm_backend == "nim"
        assert second.request == {"type": "t", "input": "p", "context": None}

    @pytest.mark.asyncio
    async def test_expired_entry_is_a_miss(self):
        cache = CacheManager(ttl_seconds=10)
        entry = await cache.cache_response({"type": "t", "input": "p"}, "x", "claude")

        assert await cache.get(entry.cache_key, now=entry.timestamp + 9_999) is not None
        assert await cache.get(entry.cache_key, now=entry.timestamp + 10_000) is None

    @pytest.mark.asyncio
    async def test_invalidate(self):
        cache = CacheManager()
        entry = await cache.cache_response({"type": "t", "input": "p"}, "x", "claude")

        assert await cache.invalidate(entry.cache_key) is True
        assert await cache.invalidate(entry.cache_key) is False
        assert await cache.get(entry.cache_key) is None

    @pytest.mark.asyncio
    async def test_corrupt_entry_raises(self):
        store = InMemoryBlobStore()
        await store.put("cache/bad.json", b"not json")
        with pytest.raises(CacheError):
            await CacheManager(store).get("bad")

    @pytest.mark.asyncio
    async def test_entries_persist_on_disk(self, tmp_path):
        entry = await CacheManager(FileBlobStore(tmp_path)).cache_response(
            {"type": "t", "input": "p"}, {"content": "disk"}, "claude"
        )

        reopened = CacheManager(FileBlobStore(tmp_path))
        cached = await reopened.get(entry.cache_key)

        assert cached.response == {"content": "disk"}
        assert (tmp_path / "cache" / f"{entry.cache_key}.json").exists()


class TestCacheEntry:
    def test_validity_window(self):
        entry = CacheEntry("k", {}, "r", timestamp=1_000, ttl=1)
        assert entry.is_valid(now=1_999)
        assert not entry.is_valid(now=2_000)

    def test_fresh_entry_valid(self):
        assert CacheEntry("k", {}, "r", timestamp=now_ms(), ttl=60).is_valid()


class TestFileBlobStore:
    @pytest.mark.asyncio
    async def test_put_get_delete(self, tmp_path):
        store = FileBlobStore(tmp_path)
        await store.put("logs/2026-01-01/1.json", b"[]")

        assert await store.get("logs/2026-01-01/1.json") == b"[]"
        assert await store.get("logs/missing.json") is None
        assert await store.delete("logs/2026-01-01/1.json") is True
        assert await store.delete("logs/2026-01-01/1.json") is False

    @pytest.mark.asyncio
    async def test_list_keys_sorted_by_prefix(self, tmp_path):
        store = FileBlobStore(tmp_path)
        for key in ("logs/b.json", "cache/x.json", "logs/a.json"):
            await store.put(key, b"{}")

        assert await store.list_keys("logs/") == ["logs/a.json", "logs/b.json"]
        assert len(await store.list_keys()) == 3

    @pytest.mark.asyncio
    async def test_key_escaping_root_rejected(self, tmp_path):
        store = FileBlobStore(tmp_path / "root")
        with pytest.raises(StorageError):
            await store.put("../outside.json", b"x")
