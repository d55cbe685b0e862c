# =============================================================================
# hydraulics_core/offline/mutation_store.py
# Local SQLite Mutation Journal for Offline Operations
# =============================================================================
"""
MutationStore - durable, append-only journal of entity mutations that have
not yet reached the remote store.

Features:
- One row per create/update/delete, never rewritten in place
- Pending rows ordered by enqueue time (row id breaks ties)
- Idempotent mark-synced up to a journal position
- Failure bookkeeping and escalation to "needs attention"
- Tombstones for hard-deleted entities, with expiry
- DataFrame view (pandas) for status screens
- Thread-local connections, commit per write
"""

from __future__ import annotations
import json
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Set
import logging

import pandas as pd

from hydraulics_core.errors import LocalStoreError
from hydraulics_core.models.decoding import format_timestamp, parse_timestamp, utc_now

logger = logging.getLogger(__name__)


class ChangeType(str, Enum):
    """Kind of change a mutation carries."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class MutationStatus(str, Enum):
    """Journal row state."""
    PENDING = "pending"
    SYNCED = "synced"
    NEEDS_ATTENTION = "needs_attention"


@dataclass
class Mutation:
    """A single journaled change to one entity."""
    collection: str
    entity_id: str
    change_type: ChangeType
    payload: Dict[str, Any]
    enqueued_at: datetime = field(default_factory=utc_now)
    seq: int = 0
    status: MutationStatus = MutationStatus.PENDING
    attempts: int = 0
    last_error: Optional[str] = None

    @property
    def synced(self) -> bool:
        return self.status == MutationStatus.SYNCED

    @property
    def sort_key(self):
        return (self.enqueued_at, self.seq)


class MutationStore:
    """
    SQLite journal of pending mutations plus tombstones.

    Usage:
        store = MutationStore(Path("local_data/workorders.db"))
        store.initialize()
        store.enqueue("workOrders", wo.id, ChangeType.UPDATE, wo.to_document())
        for mutation in store.pending_mutations():
            ...
    """

    DEFAULT_DB_PATH = Path("local_data") / "workorders.db"

    SCHEMA = {
        "mutations": """
            CREATE TABLE IF NOT EXISTS mutations (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                collection TEXT NOT NULL,
                entity_id TEXT NOT NULL,
                change_type TEXT NOT NULL,
                payload_json TEXT NOT NULL,
                enqueued_at TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'pending',
                attempts INTEGER NOT NULL DEFAULT 0,
                last_attempt TEXT,
                last_error TEXT
            )
        """,
        "mutations_pending_index": """
            CREATE INDEX IF NOT EXISTS idx_mutations_status_entity
            ON mutations(status, entity_id)
        """,
        "tombstones": """
            CREATE TABLE IF NOT EXISTS tombstones (
                collection TEXT NOT NULL,
                entity_id TEXT NOT NULL,
                deleted_at TEXT NOT NULL,
                expires_at TEXT NOT NULL,
                PRIMARY KEY (collection, entity_id)
            )
        """,
        "app_settings": """
            CREATE TABLE IF NOT EXISTS app_settings (
                key TEXT PRIMARY KEY,
                value TEXT,
                updated_at TEXT
            )
        """,
    }

    def __init__(self, db_path: Optional[Path] = None, clock=utc_now):
        """
        Args:
            db_path: Path to SQLite database file
            clock: Callable returning the current aware datetime
        """
        self.db_path = Path(db_path) if db_path else self.DEFAULT_DB_PATH
        self._clock = clock
        self._local = threading.local()
        self._write_lock = threading.Lock()
        self._initialized = False

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        if getattr(self._local, "connection", None) is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.db_path), check_same_thread=False, timeout=10)
            conn.row_factory = sqlite3.Row
            self._local.connection = conn
        return self._local.connection

    @contextmanager
    def transaction(self, operation: str):
        """Run one write transaction; sqlite/OS failures become LocalStoreError."""
        try:
            with self._write_lock:
                conn = self._get_connection()
                try:
                    yield conn
                    conn.commit()
                except Exception:
                    conn.rollback()
                    raise
        except (sqlite3.Error, OSError) as e:
            logger.error(f"Local store {operation} failed: {e}")
            raise LocalStoreError(
                operation=operation,
                db_path=str(self.db_path),
                details={"error": str(e)},
            ) from e

    def _query(self, operation: str, sql: str, params: Optional[List] = None) -> List[sqlite3.Row]:
        try:
            return self._get_connection().execute(sql, params or []).fetchall()
        except (sqlite3.Error, OSError) as e:
            logger.error(f"Local store {operation} failed: {e}")
            raise LocalStoreError(
                message="Unable to read local changes",
                operation=operation,
                db_path=str(self.db_path),
                details={"error": str(e)},
            ) from e

    def initialize(self) -> None:
        """Create tables if needed."""
        if self._initialized:
            return

        with self.transaction("initialize") as conn:
            for name, schema in self.SCHEMA.items():
                conn.execute(schema)
                logger.debug(f"Created/verified: {name}")

        self._initialized = True
        logger.info(f"Mutation store initialized at: {self.db_path}")

    # =========================================================================
    # JOURNAL
    # =========================================================================

    def enqueue(
        self,
        collection: str,
        entity_id: str,
        change_type: ChangeType,
        payload: Dict[str, Any],
        enqueued_at: Optional[datetime] = None,
    ) -> Mutation:
        """
        Append a mutation to the journal.

        Raises:
            LocalStoreError: if the row could not be persisted
        """
        self.initialize()
        change_type = ChangeType(change_type)
        enqueued_at = enqueued_at or self._clock()
        try:
            payload_json = json.dumps(payload)
        except (TypeError, ValueError) as e:
            raise LocalStoreError(
                operation="enqueue",
                details={"error": f"payload is not serializable: {e}"},
            ) from e

        with self.transaction("enqueue") as conn:
            cursor = conn.execute(
                """
                INSERT INTO mutations
                    (collection, entity_id, change_type, payload_json, enqueued_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                [collection, entity_id, change_type.value, payload_json,
                 format_timestamp(enqueued_at)],
            )
            seq = cursor.lastrowid

        logger.debug(f"Enqueued {change_type.value} {collection}/{entity_id} (seq {seq})")
        return Mutation(
            collection=collection,
            entity_id=entity_id,
            change_type=change_type,
            payload=payload,
            enqueued_at=enqueued_at,
            seq=seq,
        )

    def _row_to_mutation(self, row: sqlite3.Row) -> Mutation:
        return Mutation(
            collection=row["collection"],
            entity_id=row["entity_id"],
            change_type=ChangeType(row["change_type"]),
            payload=json.loads(row["payload_json"]) if row["payload_json"] else {},
            enqueued_at=parse_timestamp(row["enqueued_at"]),
            seq=row["seq"],
            status=MutationStatus(row["status"]),
            attempts=row["attempts"],
            last_error=row["last_error"],
        )

    def _select(self, operation: str, where: str, params: Optional[List] = None) -> List[Mutation]:
        self.initialize()
        rows = self._query(
            operation,
            f"SELECT * FROM mutations WHERE {where}",
            params,
        )
        mutations = [self._row_to_mutation(row) for row in rows]
        # ISO strings sort lexically only for a single offset; compare datetimes.
        mutations.sort(key=lambda m: m.sort_key)
        return mutations

    def pending_mutations(self) -> List[Mutation]:
        """All unsynced, non-escalated mutations in enqueue order."""
        return self._select("pending_mutations", "status = ?", [MutationStatus.PENDING.value])

    def needs_attention(self) -> List[Mutation]:
        """Mutations the coordinator gave up on."""
        return self._select(
            "needs_attention", "status = ?", [MutationStatus.NEEDS_ATTENTION.value]
        )

    def mutations_for(self, entity_id: str) -> List[Mutation]:
        return self._select("mutations_for", "entity_id = ?", [entity_id])

    def mark_synced(self, entity_id: str, through_seq: Optional[int] = None) -> int:
        """
        Flip pending rows of an entity to synced. Idempotent.

        Escalated rows at or before the same position are resolved too: the
        synced state supersedes them, so they can never be requeued over it.

        Args:
            entity_id: Entity whose mutations reached the remote store
            through_seq: Only rows at or before this journal position; rows
                enqueued later stay pending

        Returns:
            Number of rows changed
        """
        sql = "UPDATE mutations SET status = ? WHERE entity_id = ? AND status IN (?, ?)"
        params: List[Any] = [
            MutationStatus.SYNCED.value,
            entity_id,
            MutationStatus.PENDING.value,
            MutationStatus.NEEDS_ATTENTION.value,
        ]
        if through_seq is not None:
            sql += " AND seq <= ?"
            params.append(through_seq)

        with self.transaction("mark_synced") as conn:
            return conn.execute(sql, params).rowcount

    def record_failure(self, seq: int, error: str, count_attempt: bool = True) -> int:
        """
        Note a failed replay on one row.

        Returns:
            The row's attempt count after the update
        """
        increment = 1 if count_attempt else 0
        with self.transaction("record_failure") as conn:
            conn.execute(
                """
                UPDATE mutations
                SET attempts = attempts + ?, last_attempt = ?, last_error = ?
                WHERE seq = ?
                """,
                [increment, format_timestamp(self._clock()), error, seq],
            )
            row = conn.execute("SELECT attempts FROM mutations WHERE seq = ?", [seq]).fetchone()
        return row["attempts"] if row else 0

    def escalate(self, entity_id: str, through_seq: int, error: str) -> int:
        """Move an entity's pending rows up to through_seq to needs_attention."""
        with self.transaction("escalate") as conn:
            count = conn.execute(
                """
                UPDATE mutations
                SET status = ?, last_error = ?
                WHERE entity_id = ? AND status = ? AND seq <= ?
                """,
                [MutationStatus.NEEDS_ATTENTION.value, error, entity_id,
                 MutationStatus.PENDING.value, through_seq],
            ).rowcount
        logger.warning(f"Escalated {count} mutation(s) for {entity_id}: {error}")
        return count

    def requeue(self, entity_id: Optional[str] = None) -> int:
        """
        Return escalated rows (one entity, or all) to pending with a fresh attempt count.

        Rows with a later pending or synced row for the same entity stay put.
        """
        sql = """
            UPDATE mutations SET status = ?, attempts = 0
            WHERE status = ?
            AND NOT EXISTS (
                SELECT 1 FROM mutations AS later
                WHERE later.entity_id = mutations.entity_id
                AND later.seq > mutations.seq
                AND later.status IN (?, ?)
            )
        """
        params: List[Any] = [
            MutationStatus.PENDING.value,
            MutationStatus.NEEDS_ATTENTION.value,
            MutationStatus.PENDING.value,
            MutationStatus.SYNCED.value,
        ]
        if entity_id is not None:
            sql += " AND entity_id = ?"
            params.append(entity_id)
        with self.transaction("requeue") as conn:
            return conn.execute(sql, params).rowcount

    def clear_synced(self) -> int:
        """Delete synced rows. Returns number removed."""
        with self.transaction("clear_synced") as conn:
            count = conn.execute(
                "DELETE FROM mutations WHERE status = ?", [MutationStatus.SYNCED.value]
            ).rowcount
        if count:
            logger.debug(f"Cleared {count} synced mutation(s)")
        return count

    def pending_count(self) -> int:
        """Number of distinct entities with pending changes."""
        self.initialize()
        rows = self._query(
            "pending_count",
            "SELECT COUNT(DISTINCT entity_id) AS count FROM mutations WHERE status = ?",
            [MutationStatus.PENDING.value],
        )
        return rows[0]["count"] if rows else 0

    def needs_attention_count(self) -> int:
        self.initialize()
        rows = self._query(
            "needs_attention_count",
            "SELECT COUNT(DISTINCT entity_id) AS count FROM mutations WHERE status = ?",
            [MutationStatus.NEEDS_ATTENTION.value],
        )
        return rows[0]["count"] if rows else 0

    def has_pending(self, entity_id: str) -> bool:
        self.initialize()
        rows = self._query(
            "has_pending",
            "SELECT 1 FROM mutations WHERE entity_id = ? AND status = ? LIMIT 1",
            [entity_id, MutationStatus.PENDING.value],
        )
        return bool(rows)

    # =========================================================================
    # TOMBSTONES
    # =========================================================================

    def add_tombstone(self, collection: str, entity_id: str, ttl: timedelta) -> None:
        now = self._clock()
        with self.transaction("add_tombstone") as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO tombstones (collection, entity_id, deleted_at, expires_at)
                VALUES (?, ?, ?, ?)
                """,
                [collection, entity_id, format_timestamp(now), format_timestamp(now + ttl)],
            )

    def tombstoned_ids(self, collection: str) -> Set[str]:
        """Ids deleted locally whose tombstone has not expired."""
        self.initialize()
        now = self._clock()
        rows = self._query(
            "tombstoned_ids",
            "SELECT entity_id, expires_at FROM tombstones WHERE collection = ?",
            [collection],
        )
        return {
            row["entity_id"] for row in rows
            if parse_timestamp(row["expires_at"], now) > now
        }

    def purge_expired_tombstones(self) -> int:
        now = self._clock()
        self.initialize()
        rows = self._query(
            "purge_expired_tombstones",
            "SELECT collection, entity_id, expires_at FROM tombstones",
        )
        expired = [
            (row["collection"], row["entity_id"]) for row in rows
            if parse_timestamp(row["expires_at"], now) <= now
        ]
        if not expired:
            return 0
        with self.transaction("purge_expired_tombstones") as conn:
            conn.executemany(
                "DELETE FROM tombstones WHERE collection = ? AND entity_id = ?", expired
            )
        return len(expired)

    # =========================================================================
    # PANDAS INTEGRATION
    # =========================================================================

    def to_dataframe(self, status: Optional[MutationStatus] = None) -> pd.DataFrame:
        """
        Journal rows as a DataFrame (payload excluded).

        Args:
            status: Only rows in this state
        """
        self.initialize()
        query = (
            "SELECT seq, collection, entity_id, change_type, enqueued_at, status, "
            "attempts, last_attempt, last_error FROM mutations"
        )
        params: List[Any] = []
        if status is not None:
            query += " WHERE status = ?"
            params.append(MutationStatus(status).value)
        query += " ORDER BY seq"

        try:
            df = pd.read_sql_query(query, self._get_connection(), params=params)
        except (sqlite3.Error, pd.errors.DatabaseError) as e:
            raise LocalStoreError(
                message="Unable to read local changes",
                operation="to_dataframe",
                details={"error": str(e)},
            ) from e
        if not df.empty:
            df["enqueued_at"] = pd.to_datetime(df["enqueued_at"], utc=True, format="ISO8601")
        return df

    # =========================================================================
    # SETTINGS
    # =========================================================================

    def get_setting(self, key: str, default: Any = None) -> Any:
        self.initialize()
        rows = self._query("get_setting", "SELECT value FROM app_settings WHERE key = ?", [key])
        if rows:
            try:
                return json.loads(rows[0]["value"])
            except json.JSONDecodeError:
                return rows[0]["value"]
        return default

    def set_setting(self, key: str, value: Any) -> None:
        value_str = json.dumps(value) if not isinstance(value, str) else value
        with self.transaction("set_setting") as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO app_settings (key, value, updated_at)
                VALUES (?, ?, ?)
                """,
                [key, value_str, datetime.now(timezone.utc).isoformat()],
            )

    def close(self) -> None:
        """Close this thread's database connection."""
        conn = getattr(self._local, "connection", None)
        if conn is not None:
            conn.close()
            self._local.connection = None
