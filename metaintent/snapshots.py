"""
Append-only intent history with drift between consecutive snapshots.

Snapshots are stored per session and always read back ordered by
timestamp (insertion order breaks ties). Two stores are provided: an
in-memory one for tests and single-process use, and SQLite for
durable history shared across processes.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import threading
import uuid
from abc import ABC, abstractmethod
from pathlib import Path

from .errors import StorageError
from .types import DriftVector, ExtractedIntent, IntentSnapshot, SessionStatus, now_ms

logger = logging.getLogger(__name__)

DEFAULT_SNAPSHOT_TTL_S = 24 * 60 * 60

GOAL_CHANGE_WEIGHT = 0.4
SCOPE_CHANGE_WEIGHT = 0.2
ADDED_ITEM_WEIGHT = 0.15
SCORE_DELTA_THRESHOLD = 20


# =============================================================================
# Stores
# =============================================================================


class SnapshotStore(ABC):
    """Durable append/query store for intent snapshots."""

    @abstractmethod
    async def append(self, snapshot: IntentSnapshot) -> None:
        """Persist one snapshot."""

    @abstractmethod
    async def list_session(self, session_id: str) -> list[IntentSnapshot]:
        """All live snapshots for a session, oldest first."""

    async def close(self) -> None:
        return None


class InMemorySnapshotStore(SnapshotStore):
    def __init__(self) -> None:
        self._sessions: dict[str, list[IntentSnapshot]] = {}

    async def append(self, snapshot: IntentSnapshot) -> None:
        self._sessions.setdefault(snapshot.session_id, []).append(snapshot)

    async def list_session(self, session_id: str) -> list[IntentSnapshot]:
        # sorted() is stable, so equal timestamps keep insertion order
        return sorted(self._sessions.get(session_id, []), key=lambda s: s.timestamp)


class SQLiteSnapshotStore(SnapshotStore):
    """
    SQLite-backed snapshot history.

    One connection is shared across worker threads and serialized with a
    lock; blocking calls run via ``asyncio.to_thread``. Rows carry an
    expiry and expired rows are never returned.
    """

    def __init__(self, db_path: str, ttl_seconds: int = DEFAULT_SNAPSHOT_TTL_S):
        self.db_path = db_path
        self.ttl_seconds = ttl_seconds
        self._lock = threading.Lock()
        if db_path != ":memory:":
            Path(db_path).expanduser().parent.mkdir(parents=True, exist_ok=True)
        try:
            self._conn = sqlite3.connect(
                str(Path(db_path).expanduser()) if db_path != ":memory:" else db_path,
                check_same_thread=False,
            )
            self._init_database()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to open snapshot store {db_path}: {e}") from e

    def _init_database(self) -> None:
        if self.db_path != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS intent_snapshots (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                snapshot_id TEXT NOT NULL UNIQUE,
                session_id TEXT NOT NULL,
                timestamp INTEGER NOT NULL,
                expires_at INTEGER NOT NULL,
                data TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_snapshots_session
                ON intent_snapshots(session_id, timestamp);
        """)
        self._conn.commit()

    def _append_sync(self, snapshot: IntentSnapshot) -> None:
        expires_at = now_ms() + self.ttl_seconds * 1000
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO intent_snapshots (snapshot_id, session_id, timestamp, expires_at, data)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    snapshot.snapshot_id,
                    snapshot.session_id,
                    snapshot.timestamp,
                    expires_at,
                    json.dumps(snapshot.to_dict()),
                ),
            )
            self._conn.commit()

    def _list_sync(self, session_id: str) -> list[IntentSnapshot]:
        with self._lock:
            rows = self._conn.execute(
                """
                SELECT data FROM intent_snapshots
                WHERE session_id = ? AND expires_at > ?
                ORDER BY timestamp, seq
                """,
                (session_id, now_ms()),
            ).fetchall()
        return [IntentSnapshot.from_dict(json.loads(row[0])) for row in rows]

    async def append(self, snapshot: IntentSnapshot) -> None:
        try:
            await asyncio.to_thread(self._append_sync, snapshot)
        except sqlite3.Error as e:
            raise StorageError(f"Failed to save snapshot {snapshot.snapshot_id}: {e}") from e

    async def list_session(self, session_id: str) -> list[IntentSnapshot]:
        try:
            return await asyncio.to_thread(self._list_sync, session_id)
        except (sqlite3.Error, ValueError, KeyError) as e:
            raise StorageError(f"Failed to load snapshots for {session_id}: {e}") from e

    def purge_expired(self) -> int:
        """Delete expired rows; returns how many were removed."""
        with self._lock:
            cursor = self._conn.execute(
                "DELETE FROM intent_snapshots WHERE expires_at <= ?", (now_ms(),)
            )
            self._conn.commit()
        return cursor.rowcount

    async def close(self) -> None:
        with self._lock:
            self._conn.close()


# =============================================================================
# Drift
# =============================================================================


def infer_drift_reason(changes: list[str]) -> str:
    if not changes:
        return "No significant changes"
    if any("Goal changed" in c for c in changes):
        return "User refined or pivoted their goal"
    if any("Clarity improved" in c for c in changes):
        return "Clarification process working"
    if any("constraints" in c for c in changes):
        return "User added more context about limitations"
    if any("success criteria" in c for c in changes):
        return "User clarified desired outcomes"
    return "Intent evolved through conversation"


def calculate_drift(previous: IntentSnapshot, current: IntentSnapshot) -> DriftVector:
    """
    Describe what changed between two snapshots.

    Magnitude is additive: goal change +0.4, scope change +0.2, each new
    constraint or success criterion +0.15, an ambiguity delta over 20
    points adds delta/200. Clamped to 1.0.
    """
    prev_intent = previous.extracted_intent
    curr_intent = current.extracted_intent
    changes: list[str] = []
    magnitude = 0.0

    if prev_intent.goal != curr_intent.goal:
        changes.append(f'Goal changed from "{prev_intent.goal}" to "{curr_intent.goal}"')
        magnitude += GOAL_CHANGE_WEIGHT

    if prev_intent.scope != curr_intent.scope:
        changes.append(f"Scope refined: {curr_intent.scope}")
        magnitude += SCOPE_CHANGE_WEIGHT

    new_constraints = [c for c in curr_intent.constraints if c not in prev_intent.constraints]
    if new_constraints:
        changes.append(f"Added constraints: {', '.join(new_constraints)}")
        magnitude += ADDED_ITEM_WEIGHT * len(new_constraints)

    new_criteria = [
        c for c in curr_intent.success_criteria if c not in prev_intent.success_criteria
    ]
    if new_criteria:
        changes.append(f"Added success criteria: {', '.join(new_criteria)}")
        magnitude += ADDED_ITEM_WEIGHT * len(new_criteria)

    delta = abs(current.ambiguity_score - previous.ambiguity_score)
    if delta > SCORE_DELTA_THRESHOLD:
        direction = (
            "improved" if current.ambiguity_score < previous.ambiguity_score else "decreased"
        )
        changes.append(f"Clarity {direction} by {delta} points")
        magnitude += delta / 200

    return DriftVector(
        from_snapshot_id=previous.snapshot_id,
        changes=changes,
        reason=infer_drift_reason(changes),
        magnitude=min(1.0, magnitude),
    )


# =============================================================================
# Manager
# =============================================================================


class IntentSnapshotManager:
    """Creates snapshots, links each to its predecessor and persists them."""

    def __init__(self, store: SnapshotStore | None = None):
        self.store = store or InMemorySnapshotStore()

    async def create_snapshot(
        self,
        session_id: str,
        user_input: str,
        ambiguity_score: int,
        extracted_intent: ExtractedIntent,
        confidence: float,
        previous_snapshot_id: str | None = None,
        status: SessionStatus | None = None,
    ) -> IntentSnapshot:
        """
        Capture and persist the current intent.

        A drift vector is attached only when ``previous_snapshot_id``
        names a snapshot that exists in the same session. ``status`` is
        the session status this snapshot leaves behind, used to rebuild
        the session elsewhere.

        Raises:
            StorageError: if the store cannot be read or written
        """
        snapshot = IntentSnapshot(
            snapshot_id=str(uuid.uuid4()),
            session_id=session_id,
            timestamp=now_ms(),
            ambiguity_score=ambiguity_score,
            user_input=user_input,
            extracted_intent=extracted_intent,
            confidence=confidence,
            status=status,
        )

        if previous_snapshot_id:
            previous = await self.get_snapshot(session_id, previous_snapshot_id)
            if previous is not None:
                snapshot.drift_vector = calculate_drift(previous, snapshot)
            else:
                logger.warning(
                    "Previous snapshot %s not found in session %s",
                    previous_snapshot_id,
                    session_id,
                )

        await self.store.append(snapshot)
        return snapshot

    async def get_snapshot(self, session_id: str, snapshot_id: str) -> IntentSnapshot | None:
        for snapshot in await self.store.list_session(session_id):
            if snapshot.snapshot_id == snapshot_id:
                return snapshot
        return None

    async def get_session_snapshots(self, session_id: str) -> list[IntentSnapshot]:
        return await self.store.list_session(session_id)

    async def get_latest_snapshot(self, session_id: str) -> IntentSnapshot | None:
        snapshots = await self.store.list_session(session_id)
        return snapshots[-1] if snapshots else None


__all__ = [
    "InMemorySnapshotStore",
    "IntentSnapshotManager",
    "SQLiteSnapshotStore",
    "SnapshotStore",
    "calculate_drift",
    "infer_drift_reason",
]
