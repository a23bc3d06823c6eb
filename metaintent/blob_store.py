"""
Blob stores backing the response cache and the log sink.

Keys are slash-separated paths such as ``cache/<hash>.json``.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from pathlib import Path

from .errors import StorageError


class BlobStore(ABC):
    """Minimal async key -> bytes store."""

    @abstractmethod
    async def get(self, key: str) -> bytes | None:
        """Return the blob, or None when the key is absent."""

    @abstractmethod
    async def put(self, key: str, body: bytes) -> None:
        """Create or overwrite a blob."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove a blob. Returns True if it existed."""

    @abstractmethod
    async def list_keys(self, prefix: str = "") -> list[str]:
        """List keys starting with ``prefix`` in sorted order."""


class InMemoryBlobStore(BlobStore):
    """Process-local blob store, used by default and in tests."""

    def __init__(self) -> None:
        self._blobs: dict[str, bytes] = {}

    async def get(self, key: str) -> bytes | None:
        return self._blobs.get(key)

    async def put(self, key: str, body: bytes) -> None:
        self._blobs[key] = bytes(body)

    async def delete(self, key: str) -> bool:
        return self._blobs.pop(key, None) is not None

    async def list_keys(self, prefix: str = "") -> list[str]:
        return sorted(k for k in self._blobs if k.startswith(prefix))


class FileBlobStore(BlobStore):
    """
    Blob store rooted at a directory on disk.

    File I/O runs in a worker thread so callers never block the event loop.
    """

    def __init__(self, root: Path | str):
        self.root = Path(root).expanduser()
        self.root.mkdir(parents=True, exist_ok=True)

    def _path_for(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents:
            raise StorageError(f"Blob key escapes store root: {key}")
        return path

    async def get(self, key: str) -> bytes | None:
        path = self._path_for(key)

        def _read() -> bytes | None:
            if not path.exists():
                return None
            return path.read_bytes()

        try:
            return await asyncio.to_thread(_read)
        except OSError as e:
            raise StorageError(f"Failed to read blob {key}: {e}") from e

    async def put(self, key: str, body: bytes) -> None:
        path = self._path_for(key)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(path.suffix + ".tmp")
            tmp.write_bytes(body)
            tmp.replace(path)

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            raise StorageError(f"Failed to write blob {key}: {e}") from e

    async def delete(self, key: str) -> bool:
        path = self._path_for(key)

        def _unlink() -> bool:
            if path.exists():
                path.unlink()
                return True
            return False

        try:
            return await asyncio.to_thread(_unlink)
        except OSError as e:
            raise StorageError(f"Failed to delete blob {key}: {e}") from e

    async def list_keys(self, prefix: str = "") -> list[str]:
        def _scan() -> list[str]:
            keys = []
            for path in self.root.rglob("*"):
                if path.is_file() and not path.name.endswith(".tmp"):
                    key = path.relative_to(self.root).as_posix()
                    if key.startswith(prefix):
                        keys.append(key)
            return sorted(keys)

        return await asyncio.to_thread(_scan)


__all__ = ["BlobStore", "FileBlobStore", "InMemoryBlobStore"]
