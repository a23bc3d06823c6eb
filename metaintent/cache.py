"""
Response cache for backend calls.

Entries live in a blob store under ``cache/<key>.json`` and are keyed
by a SHA-256 of the request's type, input and context, serialized with
sorted keys so the hash does not depend on dict ordering.
"""

from __future__ import annotations

import hashlib
import json
import logging
from typing import Any

from .blob_store import BlobStore, InMemoryBlobStore
from .errors import CacheError, StorageError
from .types import BackendRequest, CacheEntry, LLMBackend, now_ms

logger = logging.getLogger(__name__)

CACHE_TTL_SECONDS = 60 * 60


def _request_shape(request: BackendRequest | dict[str, Any]) -> dict[str, Any]:
    if isinstance(request, BackendRequest):
        return request.cache_shape()
    return {
        "type": request.get("type"),
        "input": request.get("input") or request.get("prompt"),
        "context": request.get("context"),
    }


class CacheManager:
    """
    TTL cache of backend responses.

    Reads increment the hit counter and write the entry back.
    """

    def __init__(
        self,
        store: BlobStore | None = None,
        ttl_seconds: int = CACHE_TTL_SECONDS,
    ):
        """
        Initialize cache manager.

        Args:
            store: Blob store holding the entries (in-memory if None)
            ttl_seconds: TTL assigned to newly cached responses
        """
        self.store = store or InMemoryBlobStore()
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def generate_cache_key(request: BackendRequest | dict[str, Any]) -> str:
        """Deterministic hash of {type, input, context}."""
        request_string = json.dumps(_request_shape(request), sort_keys=True, default=str)
        return hashlib.sha256(request_string.encode("utf-8")).hexdigest()

    @staticmethod
    def _blob_key(cache_key: str) -> str:
        return f"cache/{cache_key}.json"

    async def get(self, cache_key: str, now: int | None = None) -> CacheEntry | None:
        """
        Get a live cache entry.

        Args:
            cache_key: Key from generate_cache_key
            now: Override of the current epoch-ms time

        Returns:
            The entry with its hit counter incremented, or None on
            miss or expiry
        """
        try:
            body = await self.store.get(self._blob_key(cache_key))
        except StorageError as e:
            raise CacheError(f"Failed to get cache entry: {e}") from e

        if body is None:
            return None

        try:
            entry = CacheEntry.from_dict(json.loads(body))
        except (ValueError, KeyError, TypeError) as e:
            raise CacheError(f"Corrupt cache entry {cache_key}: {e}") from e

        if not entry.is_valid(now):
            return None

        entry.hit_count += 1
        await self.set(entry)
        return entry

    async def set(self, entry: CacheEntry) -> None:
        try:
            body = json.dumps(entry.to_dict(), default=str).encode("utf-8")
            await self.store.put(self._blob_key(entry.cache_key), body)
        except (StorageError, TypeError) as e:
            raise CacheError(f"Failed to set cache entry: {e}") from e

    async def cache_response(
        self,
        request: BackendRequest | dict[str, Any],
        response: Any,
        llm_backend: LLMBackend | str,
    ) -> CacheEntry:
        """Create and store a cache entry for a request/response pair."""
        shape = _request_shape(request)
        entry = CacheEntry(
            cache_key=self.generate_cache_key(request),
            request={
                "type": shape["type"] or "unknown",
                "input": shape["input"] or "",
                "context": shape["context"],
            },
            response=response,
            timestamp=now_ms(),
            ttl=self.ttl_seconds,
            hit_count=0,
            llm_backend=llm_backend.value if isinstance(llm_backend, LLMBackend) else llm_backend,
        )
        await self.set(entry)
        logger.debug("Cached response for %s (%s)", entry.request["type"], entry.cache_key[:12])
        return entry

    async def invalidate(self, cache_key: str) -> bool:
        try:
            return await self.store.delete(self._blob_key(cache_key))
        except StorageError as e:
            raise CacheError(f"Failed to invalidate cache: {e}") from e


__all__ = ["CACHE_TTL_SECONDS", "CacheManager"]
