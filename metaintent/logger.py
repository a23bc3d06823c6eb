"""
Buffered structured logging for MetaIntent.

Entries are echoed to the stdlib logger as JSON lines, buffered in
memory and flushed to a blob store as a JSON array. Flush failures are
reported and dropped; logging never affects control flow.
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from .blob_store import BlobStore
from .types import LogEntry, LogLevel, now_ms

logger = logging.getLogger(__name__)

_STDLIB_LEVELS = {
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


class StructuredLogger:
    """Append-only log sink with size-triggered flushing."""

    def __init__(self, store: BlobStore | None = None, buffer_size: int = 10):
        """
        Initialize logger.

        Args:
            store: Destination for flushed batches (None keeps entries
                only in the stdlib log)
            buffer_size: Number of entries that triggers a flush
        """
        self.store = store
        self.buffer_size = buffer_size
        self._buffer: list[LogEntry] = []

    @property
    def buffered(self) -> list[LogEntry]:
        return list(self._buffer)

    async def info(
        self, session_id: str, component: str, message: str, data: dict[str, Any] | None = None
    ) -> None:
        await self._log(LogLevel.INFO, session_id, component, message, data)

    async def warn(
        self, session_id: str, component: str, message: str, data: dict[str, Any] | None = None
    ) -> None:
        await self._log(LogLevel.WARN, session_id, component, message, data)

    async def error(
        self, session_id: str, component: str, message: str, data: dict[str, Any] | None = None
    ) -> None:
        await self._log(LogLevel.ERROR, session_id, component, message, data)

    async def log_with_metrics(
        self,
        level: LogLevel,
        session_id: str,
        component: str,
        message: str,
        cost: float | None = None,
        duration: float | None = None,
        data: dict[str, Any] | None = None,
    ) -> None:
        """Log with cost and duration tracking."""
        await self._log(level, session_id, component, message, data, cost, duration)

    async def _log(
        self,
        level: LogLevel,
        session_id: str,
        component: str,
        message: str,
        data: dict[str, Any] | None = None,
        cost: float | None = None,
        duration: float | None = None,
    ) -> None:
        entry = LogEntry(
            timestamp=now_ms(),
            session_id=session_id,
            component=component,
            level=level,
            message=message,
            data=data,
            cost=cost,
            duration=duration,
        )
        logger.log(_STDLIB_LEVELS[level], json.dumps(entry.to_dict(), default=str))

        self._buffer.append(entry)
        if len(self._buffer) >= self.buffer_size:
            await self.flush()

    async def flush(self) -> None:
        """Write buffered entries to the blob store. Never raises."""
        if not self._buffer:
            return

        entries = self._buffer
        self._buffer = []

        if self.store is None:
            return

        timestamp = now_ms()
        day = datetime.fromtimestamp(timestamp / 1000, tz=timezone.utc).strftime("%Y-%m-%d")
        key = f"logs/{day}/{timestamp}-{uuid.uuid4().hex[:8]}.json"
        try:
            body = json.dumps([e.to_dict() for e in entries], default=str).encode("utf-8")
            await self.store.put(key, body)
        except Exception as e:
            logger.error("Failed to flush %d log entries: %s", len(entries), e)


__all__ = ["StructuredLogger"]
