"""Keyed record storage: SQLite when healthy, process memory after a failure.

Three logical stores hold JSON records keyed by session id:

    sessions      -- session headers
    states        -- chat state (transcript) per session
    agent_states  -- per-session agent runtime state

``FallbackStorage`` selects the backend. The first failure of the persistent
backend switches the process to ``MemoryBackend`` for good and fires the
storage-degraded notification once, so the presentation layer can offer a
storage reset.
"""

import copy
import json
import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 3

STORE_SESSIONS = "sessions"
STORE_STATES = "states"
STORE_AGENT_STATES = "agent_states"
STORES = (STORE_SESSIONS, STORE_STATES, STORE_AGENT_STATES)

T = TypeVar("T")


class StorageError(Exception):
    """Raised when the persistent store is unusable (corrupt, incompatible, unknown store)."""


# =============================================================================
# DEGRADATION NOTIFICATION
# =============================================================================


@dataclass(frozen=True)
class StorageDegraded:
    message: str | None = None


_listeners: list[Callable[[StorageDegraded], None]] = []
_alerted = False
_alert_lock = threading.Lock()


def on_storage_degraded(listener: Callable[[StorageDegraded], None]) -> Callable[[], None]:
    """Register a listener; returns a callable that unregisters it."""
    _listeners.append(listener)

    def unsubscribe() -> None:
        if listener in _listeners:
            _listeners.remove(listener)

    return unsubscribe


def storage_alerted() -> bool:
    """True once the degraded notification has fired in this process."""
    return _alerted


def reset_storage_alert() -> None:
    global _alerted
    with _alert_lock:
        _alerted = False


def notify_storage_degraded(error: BaseException | None) -> bool:
    """Fire the degraded notification unless it already fired. Returns True if fired."""
    global _alerted
    with _alert_lock:
        if _alerted:
            return False
        _alerted = True
    event = StorageDegraded(message=str(error) if error else "Persistent storage is unavailable or incompatible.")
    for listener in list(_listeners):
        try:
            listener(event)
        except Exception:
            logger.exception("Storage degraded listener failed")
    return True


# =============================================================================
# BACKENDS
# =============================================================================


class StorageBackend(ABC):
    """Key/record store with one namespace per logical store."""

    @abstractmethod
    def get(self, store: str, key: str) -> dict[str, Any] | None: ...

    @abstractmethod
    def get_all(self, store: str) -> list[dict[str, Any]]: ...

    @abstractmethod
    def put(self, store: str, key: str, record: dict[str, Any]) -> None: ...

    @abstractmethod
    def delete(self, store: str, key: str) -> None: ...

    @abstractmethod
    def clear(self, store: str) -> None: ...


def _check_store(store: str) -> str:
    if store not in STORES:
        raise StorageError(f"Unknown store: {store}")
    return store


class SqliteBackend(StorageBackend):
    """One table per store, JSON payload per key, one connection per operation."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._ready = False
        self._init_lock = threading.Lock()

    def _connect(self) -> sqlite3.Connection:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.path, timeout=5.0)
        with self._init_lock:
            if not self._ready:
                try:
                    self._ensure_schema(conn)
                except Exception:
                    conn.close()
                    raise
                self._ready = True
        return conn

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        version = conn.execute("PRAGMA user_version").fetchone()[0]
        if version not in (0, SCHEMA_VERSION):
            raise StorageError(
                f"Incompatible storage schema version {version} (expected {SCHEMA_VERSION})"
            )
        conn.execute("PRAGMA journal_mode=WAL")
        for store in STORES:
            conn.execute(
                f"CREATE TABLE IF NOT EXISTS {store} (key TEXT PRIMARY KEY, payload TEXT NOT NULL)"
            )
        conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
        conn.commit()
        logger.debug("Storage schema ready at %s (version %d)", self.path, SCHEMA_VERSION)

    def get(self, store: str, key: str) -> dict[str, Any] | None:
        table = _check_store(store)
        conn = self._connect()
        try:
            row = conn.execute(f"SELECT payload FROM {table} WHERE key = ?", (key,)).fetchone()
        finally:
            conn.close()
        return json.loads(row[0]) if row else None

    def get_all(self, store: str) -> list[dict[str, Any]]:
        table = _check_store(store)
        conn = self._connect()
        try:
            rows = conn.execute(f"SELECT payload FROM {table}").fetchall()
        finally:
            conn.close()
        return [json.loads(r[0]) for r in rows]

    def put(self, store: str, key: str, record: dict[str, Any]) -> None:
        table = _check_store(store)
        payload = json.dumps(record, ensure_ascii=False)
        conn = self._connect()
        try:
            with conn:
                conn.execute(
                    f"INSERT INTO {table} (key, payload) VALUES (?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET payload = excluded.payload",
                    (key, payload),
                )
        finally:
            conn.close()

    def delete(self, store: str, key: str) -> None:
        table = _check_store(store)
        conn = self._connect()
        try:
            with conn:
                conn.execute(f"DELETE FROM {table} WHERE key = ?", (key,))
        finally:
            conn.close()

    def clear(self, store: str) -> None:
        table = _check_store(store)
        conn = self._connect()
        try:
            with conn:
                conn.execute(f"DELETE FROM {table}")
        finally:
            conn.close()

    def destroy(self) -> None:
        """Delete the database files so the next use rebuilds the schema."""
        for suffix in ("", "-wal", "-shm"):
            Path(f"{self.path}{suffix}").unlink(missing_ok=True)
        self._ready = False


class MemoryBackend(StorageBackend):
    """Process-lifetime dict store. Records are deep-copied on the way in and out."""

    def __init__(self) -> None:
        self._data: dict[str, dict[str, dict[str, Any]]] = {store: {} for store in STORES}
        self._lock = threading.Lock()

    def get(self, store: str, key: str) -> dict[str, Any] | None:
        with self._lock:
            record = self._data[_check_store(store)].get(key)
            return copy.deepcopy(record) if record is not None else None

    def get_all(self, store: str) -> list[dict[str, Any]]:
        with self._lock:
            return [copy.deepcopy(r) for r in self._data[_check_store(store)].values()]

    def put(self, store: str, key: str, record: dict[str, Any]) -> None:
        with self._lock:
            self._data[_check_store(store)][key] = copy.deepcopy(record)

    def delete(self, store: str, key: str) -> None:
        with self._lock:
            self._data[_check_store(store)].pop(key, None)

    def clear(self, store: str) -> None:
        with self._lock:
            self._data[_check_store(store)].clear()


class FallbackStorage(StorageBackend):
    """Persistent backend first; memory for the rest of the process after any failure."""

    def __init__(self, primary: StorageBackend | None, memory: MemoryBackend | None = None) -> None:
        self._primary = primary
        self._memory = memory or MemoryBackend()
        self._degraded = primary is None
        self._switch_lock = threading.Lock()

    @property
    def degraded(self) -> bool:
        return self._degraded

    def _run(self, op: Callable[[StorageBackend], T]) -> T:
        if not self._degraded and self._primary is not None:
            try:
                return op(self._primary)
            except Exception as exc:
                self._degrade(exc)
        return op(self._memory)

    def _degrade(self, exc: Exception) -> None:
        with self._switch_lock:
            if self._degraded:
                return
            self._degraded = True
        logger.warning("Persistent storage failed, falling back to memory storage: %s", exc)
        notify_storage_degraded(exc)

    def get(self, store: str, key: str) -> dict[str, Any] | None:
        return self._run(lambda b: b.get(store, key))

    def get_all(self, store: str) -> list[dict[str, Any]]:
        return self._run(lambda b: b.get_all(store))

    def put(self, store: str, key: str, record: dict[str, Any]) -> None:
        self._run(lambda b: b.put(store, key, record))

    def delete(self, store: str, key: str) -> None:
        self._run(lambda b: b.delete(store, key))

    def clear(self, store: str) -> None:
        self._run(lambda b: b.clear(store))

    def reset(self) -> None:
        """Recovery action: drop the persistent database and try it again from scratch."""
        if isinstance(self._primary, SqliteBackend):
            self._primary.destroy()
        self._memory = MemoryBackend()
        with self._switch_lock:
            self._degraded = self._primary is None
        reset_storage_alert()
        logger.info("Local storage reset")


def open_storage(path: Path | None) -> FallbackStorage:
    """Fallback storage over SQLite at ``path``, or memory-only when ``path`` is None."""
    if path is None:
        return FallbackStorage(None)
    return FallbackStorage(SqliteBackend(path))
