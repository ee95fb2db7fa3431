"""Durable key-value storage and the versioned timer snapshot.

The host provides a ``KeyValueStore``. ``SnapshotStore`` wraps one with a
schema-versioned envelope, structural validation, and corruption recovery.
Durability is best-effort: failures are logged, never raised to callers.
"""

from __future__ import annotations

import json
import logging
import math
import sqlite3
from pathlib import Path
from typing import Any, Protocol

from .clock import SYSTEM_CLOCK, Clock
from .counter import TITLE_MAX_LENGTH, VALID_STATES
from .errors import PersistenceError, ValidationResult

logger = logging.getLogger("timekeep.store")

SNAPSHOT_KEY = "timekeep-timers-v1"
SCHEMA_VERSION = 1
MAX_COUNTERS = 20
PROBE_KEY = "__timekeep_probe__"


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class QuotaExceededError(PersistenceError):
    pass


class MemoryStore:
    """In-process store. ``quota_bytes`` caps the total stored size."""

    def __init__(self, quota_bytes: int | None = None):
        self._data: dict[str, str] = {}
        self.quota_bytes = quota_bytes

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if self.quota_bytes is not None:
            others = sum(len(k) + len(v) for k, v in self._data.items() if k != key)
            if others + len(key) + len(value) > self.quota_bytes:
                raise QuotaExceededError(f"Quota of {self.quota_bytes} bytes exceeded")
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._data


class SqliteStore:
    """Key-value table in a SQLite file. Survives process restarts."""

    def __init__(self, db_path: Path | str):
        self.db_path = Path(db_path)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.execute("PRAGMA busy_timeout=5000")
        return conn

    def _init_db(self) -> None:
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = self._connect()
            try:
                conn.execute("PRAGMA journal_mode=WAL")
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS kv (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL,
                        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    )
                """)
                conn.commit()
            finally:
                conn.close()
        except (sqlite3.Error, OSError) as e:
            raise PersistenceError(f"Cannot open {self.db_path}: {e}") from e

    def get(self, key: str) -> str | None:
        try:
            conn = self._connect()
            try:
                row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise PersistenceError(f"Read of {key!r} failed: {e}") from e
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        try:
            conn = self._connect()
            try:
                conn.execute(
                    """
                    INSERT INTO kv (key, value) VALUES (?, ?)
                    ON CONFLICT(key) DO UPDATE SET value = excluded.value,
                        updated_at = CURRENT_TIMESTAMP
                    """,
                    (key, value),
                )
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise PersistenceError(f"Write of {key!r} failed: {e}") from e

    def delete(self, key: str) -> None:
        try:
            conn = self._connect()
            try:
                conn.execute("DELETE FROM kv WHERE key = ?", (key,))
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise PersistenceError(f"Delete of {key!r} failed: {e}") from e


def _validate_counter(entry: Any) -> ValidationResult:
    if not isinstance(entry, dict):
        return ValidationResult.failure("counter entry is not an object")

    counter_id = entry.get("id")
    if not isinstance(counter_id, str) or not counter_id:
        return ValidationResult.failure("counter id must be a non-empty string")

    title = entry.get("title")
    if not isinstance(title, str) or not title:
        return ValidationResult.failure(f"counter {counter_id} has no title")
    if len(title) > TITLE_MAX_LENGTH:
        return ValidationResult.failure(f"counter {counter_id} title is too long")

    elapsed = entry.get("elapsedMs")
    if isinstance(elapsed, bool) or not isinstance(elapsed, (int, float)):
        return ValidationResult.failure(f"counter {counter_id} elapsedMs is not a number")
    if not math.isfinite(elapsed) or elapsed < 0:
        return ValidationResult.failure(f"counter {counter_id} elapsedMs out of range")

    if entry.get("state") not in VALID_STATES:
        return ValidationResult.failure(f"counter {counter_id} has invalid state")

    return ValidationResult.success()


def validate_payload(payload: Any) -> ValidationResult:
    """Check the shape of ``{"counters": [...], "runningId": ...}``."""
    if not isinstance(payload, dict):
        return ValidationResult.failure("payload is not an object")

    counters = payload.get("counters")
    if not isinstance(counters, list):
        return ValidationResult.failure("counters is not a list")
    if not 1 <= len(counters) <= MAX_COUNTERS:
        return ValidationResult.failure(
            f"counters must hold 1-{MAX_COUNTERS} entries, got {len(counters)}"
        )

    seen: set[str] = set()
    for entry in counters:
        result = _validate_counter(entry)
        if not result:
            return result
        if entry["id"] in seen:
            return ValidationResult.failure(f"duplicate counter id {entry['id']}")
        seen.add(entry["id"])

    running_id = payload.get("runningId")
    if running_id is not None:
        if not isinstance(running_id, str):
            return ValidationResult.failure("runningId must be a string or null")
        if running_id not in seen:
            return ValidationResult.failure(f"runningId {running_id} matches no counter")

    return ValidationResult.success()


class SnapshotStore:
    """Versioned snapshot of the timer collection in a KeyValueStore.

    Envelope: ``{"schemaVersion", "savedAt", "payload"}``. Anything that
    does not parse, has another schema version, or fails validation is
    cleared and reported as absent.
    """

    def __init__(
        self,
        backend: KeyValueStore,
        key: str = SNAPSHOT_KEY,
        schema_version: int = SCHEMA_VERSION,
        clock: Clock | None = None,
    ):
        self.backend = backend
        self.key = key
        self.schema_version = schema_version
        self._clock = clock or SYSTEM_CLOCK
        self.available = self._check_availability()

    def _check_availability(self) -> bool:
        try:
            self.backend.set(PROBE_KEY, PROBE_KEY)
            self.backend.delete(PROBE_KEY)
            return True
        except Exception as e:
            logger.warning(f"Durable store not available, timer state will not persist: {e}")
            return False

    def save(self, payload: dict) -> bool:
        if not self.available:
            return False

        result = validate_payload(payload)
        if not result:
            logger.warning(f"Refusing to save invalid timer state: {result.reason}")
            return False

        envelope = {
            "schemaVersion": self.schema_version,
            "savedAt": self._clock.wall_ms(),
            "payload": payload,
        }
        try:
            self.backend.set(self.key, json.dumps(envelope))
        except QuotaExceededError as e:
            logger.warning(f"Storage quota exceeded, timer state not saved: {e}")
            return False
        except Exception as e:
            logger.error(f"Failed to save timer state: {e}")
            return False
        return True

    def load(self) -> dict | None:
        if not self.available:
            return None

        try:
            raw = self.backend.get(self.key)
        except Exception as e:
            logger.error(f"Failed to read timer state: {e}")
            return None
        if raw is None:
            return None

        try:
            stored = json.loads(raw)
        except ValueError as e:
            logger.warning(f"Stored timer state is not valid JSON, clearing: {e}")
            self.clear()
            return None

        version = stored.get("schemaVersion") if isinstance(stored, dict) else None
        if isinstance(version, bool) or version != self.schema_version:
            logger.warning(f"Storage schema version mismatch ({version!r}), clearing old data")
            self.clear()
            return None

        payload = stored.get("payload")
        result = validate_payload(payload)
        if not result:
            logger.warning(f"Invalid timer state in storage ({result.reason}), clearing")
            self.clear()
            return None

        return payload

    def clear(self) -> None:
        if not self.available:
            return
        try:
            self.backend.delete(self.key)
        except Exception as e:
            logger.error(f"Failed to clear timer state: {e}")
