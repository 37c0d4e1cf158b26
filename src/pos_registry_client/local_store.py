"""On-device durable store: the session cache and the pending-operations outbox.

Both live in one SQLite file. Every public method opens its own connection and
runs as a single transaction, so a crash mid-call never leaves a half-written
row behind.
"""
from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator

from platformdirs import user_data_dir
from pydantic import BaseModel

from .exceptions import StoreError
from .idempotency import new_idempotency_key, new_operation_id
from .models import FailureKind, OperationType, PendingSyncCount, PendingSyncOperation

logger = logging.getLogger(__name__)

APP_NAME = "pos-registry-client"
APP_AUTHOR = "POS"
DEFAULT_FILENAME = "offline.sqlite3"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS session_cache (
    key TEXT PRIMARY KEY,
    value_json TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS pending_operations (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    operation_type TEXT NOT NULL,
    payload_json TEXT NOT NULL,
    idempotency_key TEXT NOT NULL UNIQUE,
    created_at TEXT NOT NULL,
    attempts INTEGER NOT NULL DEFAULT 0,
    last_error TEXT,
    last_error_kind TEXT,
    next_attempt_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_pending_operations_type ON pending_operations (operation_type, seq);
"""

USER_KEY = "user"
REGISTRY_SESSION_KEY = "registry_session"
PERMISSIONS_KEY = "permissions"
SESSION_KEYS = (USER_KEY, REGISTRY_SESSION_KEY, PERMISSIONS_KEY)


def default_store_path() -> Path:
    return Path(user_data_dir(APP_NAME, APP_AUTHOR)) / DEFAULT_FILENAME


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _dump(value: Any) -> str:
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json", by_alias=True)
    return json.dumps(value, default=str)


@dataclass
class LocalStore:
    path: Path | None = None

    def __post_init__(self) -> None:
        self.path = Path(self.path) if self.path else default_store_path()
        self._initialized = False

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            if not self._initialized:
                self.path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.path), timeout=5.0)
        except (OSError, sqlite3.Error) as exc:
            raise StoreError(f"Cannot open local store at {self.path}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        try:
            if not self._initialized:
                conn.executescript(_SCHEMA)
                self._initialized = True
            with conn:
                yield conn
        except sqlite3.Error as exc:
            raise StoreError(f"Local store operation failed: {exc}") from exc
        finally:
            conn.close()

    # session cache -----------------------------------------------------

    def read_cache(self, key: str) -> Any | None:
        with self._connect() as conn:
            row = conn.execute("SELECT value_json FROM session_cache WHERE key = ?", (key,)).fetchone()
        if row is None:
            return None
        try:
            return json.loads(row["value_json"])
        except ValueError as exc:
            raise StoreError(f"Corrupt cache entry {key!r}") from exc

    def write_cache(self, key: str, value: Any) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO session_cache (key, value_json, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value_json = excluded.value_json, updated_at = excluded.updated_at
                """,
                (key, _dump(value), _utcnow().isoformat()),
            )

    def delete_cache(self, *keys: str) -> None:
        with self._connect() as conn:
            conn.executemany("DELETE FROM session_cache WHERE key = ?", [(key,) for key in keys])

    # outbox -------------------------------------------------------------

    def enqueue(
        self,
        operation_type: OperationType | str,
        payload: dict[str, Any],
        *,
        idempotency_key: str | None = None,
    ) -> PendingSyncOperation:
        op_type = OperationType(operation_type)
        operation_id = new_operation_id()
        key = idempotency_key or new_idempotency_key(op_type.value)
        created_at = _utcnow()
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO pending_operations (id, operation_type, payload_json, idempotency_key, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (operation_id, op_type.value, _dump(payload), key, created_at.isoformat()),
            )
            seq = cursor.lastrowid
        logger.info(
            "outbox_enqueued",
            extra={"operation_id": operation_id, "operation_type": op_type.value, "seq": seq},
        )
        return PendingSyncOperation(
            id=operation_id,
            seq=seq or 0,
            operation_type=op_type,
            payload=payload,
            idempotency_key=key,
            created_at=created_at,
        )

    def list_pending(self, operation_type: OperationType | str | None = None) -> list[PendingSyncOperation]:
        query = "SELECT * FROM pending_operations"
        params: tuple[Any, ...] = ()
        if operation_type is not None:
            query += " WHERE operation_type = ?"
            params = (OperationType(operation_type).value,)
        query += " ORDER BY seq"
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._to_operation(row) for row in rows]

    def get(self, operation_id: str) -> PendingSyncOperation | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM pending_operations WHERE id = ?", (operation_id,)).fetchone()
        return self._to_operation(row) if row else None

    def has_pending_before(self, operation: PendingSyncOperation) -> bool:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT 1 FROM pending_operations WHERE operation_type = ? AND seq < ? LIMIT 1",
                (operation.operation_type.value, operation.seq),
            ).fetchone()
        return row is not None

    def remove(self, operation_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM pending_operations WHERE id = ?", (operation_id,))
        return cursor.rowcount > 0

    def discard(self, operation_id: str, *, reason: str) -> PendingSyncOperation | None:
        """Human-approved removal of an entry the server keeps rejecting."""
        operation = self.get(operation_id)
        if operation is None:
            return None
        self.remove(operation_id)
        logger.warning(
            "outbox_discarded",
            extra={
                "operation_id": operation_id,
                "operation_type": operation.operation_type.value,
                "attempts": operation.attempts,
                "last_error": operation.last_error,
                "reason": reason,
            },
        )
        return operation

    def record_failure(
        self,
        operation_id: str,
        *,
        error: str,
        kind: FailureKind,
        next_attempt_at: datetime | None,
    ) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                UPDATE pending_operations
                SET attempts = attempts + 1, last_error = ?, last_error_kind = ?, next_attempt_at = ?
                WHERE id = ?
                """,
                (
                    error,
                    kind.value,
                    next_attempt_at.isoformat() if next_attempt_at else None,
                    operation_id,
                ),
            )

    def pending_count(self) -> PendingSyncCount:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT operation_type, COUNT(1) AS n FROM pending_operations GROUP BY operation_type"
            ).fetchall()
        by_type = {row["operation_type"]: int(row["n"]) for row in rows}
        return PendingSyncCount(total=sum(by_type.values()), by_type=by_type)

    @staticmethod
    def _to_operation(row: sqlite3.Row) -> PendingSyncOperation:
        try:
            payload = json.loads(row["payload_json"])
        except ValueError as exc:
            raise StoreError(f"Corrupt outbox entry {row['id']}") from exc
        return PendingSyncOperation(
            id=row["id"],
            seq=row["seq"],
            operation_type=row["operation_type"],
            payload=payload,
            idempotency_key=row["idempotency_key"],
            created_at=row["created_at"],
            attempts=row["attempts"],
            last_error=row["last_error"],
            last_error_kind=row["last_error_kind"],
            next_attempt_at=row["next_attempt_at"],
        )


class SessionCache:
    """Cached user, registry session and permissions; any storage failure reads as a miss."""

    def __init__(self, store: LocalStore) -> None:
        self.store = store

    def save_user(self, user: Any) -> bool:
        return self._save(USER_KEY, user)

    def get_user(self) -> dict[str, Any] | None:
        return self._get(USER_KEY)

    def save_registry_session(self, session: Any) -> bool:
        return self._save(REGISTRY_SESSION_KEY, session)

    def get_registry_session(self) -> dict[str, Any] | None:
        return self._get(REGISTRY_SESSION_KEY)

    def clear_registry_session(self) -> bool:
        return self._delete(REGISTRY_SESSION_KEY)

    def save_permissions(self, permissions: Any) -> bool:
        return self._save(PERMISSIONS_KEY, permissions)

    def get_permissions(self) -> dict[str, Any] | None:
        return self._get(PERMISSIONS_KEY)

    def clear_all(self) -> bool:
        # Only the session keys: unsynced outbox entries are real sales and must survive logout.
        return self._delete(*SESSION_KEYS)

    def _save(self, key: str, value: Any) -> bool:
        try:
            self.store.write_cache(key, value)
        except StoreError:
            logger.warning("session_cache_write_failed", extra={"key": key}, exc_info=True)
            return False
        return True

    def _get(self, key: str) -> dict[str, Any] | None:
        try:
            value = self.store.read_cache(key)
        except StoreError:
            logger.warning("session_cache_read_failed", extra={"key": key}, exc_info=True)
            return None
        return value if isinstance(value, dict) else None

    def _delete(self, *keys: str) -> bool:
        try:
            self.store.delete_cache(*keys)
        except StoreError:
            logger.warning("session_cache_clear_failed", extra={"keys": list(keys)}, exc_info=True)
            return False
        return True
