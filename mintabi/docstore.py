"""
Plan document storage.

Any backend that can create, read, partially update and delete one plan
document by id, and notify watchers when it changes, can back a board.

Documents are plain dicts shaped like the remote layout:
    {title, cards: [...], days: [...], createdAt, updatedAt}

Updates replace whole top-level fields; ``cards`` and ``days`` are never
merged element-wise, so the last write wins.
"""
import json
import logging
import sqlite3
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Dict, Any, Callable, List

from .errors import PlanNotFound, WriteFailure, DeleteFailure

logger = logging.getLogger(__name__)

WRITABLE_FIELDS = ("title", "cards", "days")

SnapshotCallback = Callable[[Optional[Dict[str, Any]]], None]
ErrorCallback = Callable[[Exception], None]


def server_timestamp() -> str:
    """ISO-8601 UTC timestamp assigned by the store on every write."""
    return datetime.now(timezone.utc).isoformat()


def new_plan_id() -> str:
    """Opaque 20-character document id."""
    return uuid.uuid4().hex[:20]


def check_partial(partial: Dict[str, Any]) -> None:
    """Reject updates that touch anything but title/cards/days."""
    unknown = set(partial) - set(WRITABLE_FIELDS)
    if unknown:
        raise ValueError(f"Cannot write fields: {sorted(unknown)}")
    if not partial:
        raise ValueError("Nothing to write")


class Watch:
    """Handle for one live subscription; ``close()`` stops delivery."""

    def __init__(self, registry: "WatchRegistry", plan_id: str,
                 on_snapshot: SnapshotCallback, on_error: Optional[ErrorCallback] = None):
        self.registry = registry
        self.plan_id = plan_id
        self.on_snapshot = on_snapshot
        self.on_error = on_error
        self.closed = False

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.registry.remove(self)


class WatchRegistry:
    """Thread-safe plan_id → watchers map with fault-isolated delivery."""

    def __init__(self):
        self._lock = threading.Lock()
        self._watches: Dict[str, List[Watch]] = {}

    def add(self, watch: Watch) -> None:
        with self._lock:
            self._watches.setdefault(watch.plan_id, []).append(watch)

    def remove(self, watch: Watch) -> None:
        with self._lock:
            watches = self._watches.get(watch.plan_id, [])
            if watch in watches:
                watches.remove(watch)
            if not watches:
                self._watches.pop(watch.plan_id, None)

    def watching(self, plan_id: str) -> List[Watch]:
        with self._lock:
            return list(self._watches.get(plan_id, []))

    def deliver(self, watch: Watch, snapshot: Optional[Dict[str, Any]]) -> None:
        if watch.closed:
            return
        try:
            watch.on_snapshot(snapshot)
        except Exception as e:
            logger.error(f"Snapshot callback for {watch.plan_id} failed: {e}")

    def fail(self, watch: Watch, error: Exception) -> None:
        if watch.closed or watch.on_error is None:
            logger.error(f"Watch on {watch.plan_id} failed: {error}")
            return
        try:
            watch.on_error(error)
        except Exception as e:
            logger.error(f"Error callback for {watch.plan_id} failed: {e}")

    def notify(self, plan_id: str, snapshot: Optional[Dict[str, Any]]) -> None:
        for watch in self.watching(plan_id):
            self.deliver(watch, snapshot)


class DocumentStore:
    """Interface every plan backend implements."""

    def create(self, data: Dict[str, Any]) -> str:
        raise NotImplementedError

    def get(self, plan_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def update(self, plan_id: str, partial: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def delete(self, plan_id: str) -> None:
        raise NotImplementedError

    def watch(self, plan_id: str, on_snapshot: SnapshotCallback,
              on_error: Optional[ErrorCallback] = None) -> Watch:
        raise NotImplementedError

    def close(self) -> None:
        pass


def _connect(db_path: str) -> sqlite3.Connection:
    """Open a connection in WAL mode with dict-like rows."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode = WAL")
    return conn


class SqliteDocumentStore(DocumentStore):
    """
    SQLite-backed plan documents.

    Watchers registered on this instance are notified synchronously after
    each write made through it, and once with the current document when
    they subscribe.
    """

    def __init__(self, db_path: str = None):
        if db_path is None:
            db_path = str(Path.home() / ".local" / "share" / "mintabi" / "plans.db")
        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self.watches = WatchRegistry()
        self._init_schema()

    def _init_schema(self):
        with _connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS plans (
                    plan_id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    cards TEXT NOT NULL,  -- JSON list
                    days TEXT NOT NULL,   -- JSON list
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_plans_updated ON plans(updated_at)")
            conn.commit()

    def _row_to_doc(self, row: sqlite3.Row) -> Dict[str, Any]:
        return {
            "title": row["title"],
            "cards": json.loads(row["cards"]),
            "days": json.loads(row["days"]),
            "createdAt": row["created_at"],
            "updatedAt": row["updated_at"],
        }

    def create(self, data: Dict[str, Any]) -> str:
        plan_id = new_plan_id()
        now = server_timestamp()
        try:
            with _connect(self.db_path) as conn:
                conn.execute(
                    "INSERT INTO plans (plan_id, title, cards, days, created_at, updated_at) "
                    "VALUES (?, ?, ?, ?, ?, ?)",
                    (
                        plan_id,
                        data.get("title", ""),
                        json.dumps(data.get("cards", []), ensure_ascii=False),
                        json.dumps(data.get("days", []), ensure_ascii=False),
                        now,
                        now,
                    ),
                )
                conn.commit()
        except sqlite3.Error as e:
            raise WriteFailure(f"Could not create plan: {e}") from e
        logger.info(f"Created plan {plan_id}")
        return plan_id

    def get(self, plan_id: str) -> Optional[Dict[str, Any]]:
        with _connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT * FROM plans WHERE plan_id = ?", (plan_id,)
            ).fetchone()
        return self._row_to_doc(row) if row else None

    def update(self, plan_id: str, partial: Dict[str, Any]) -> Dict[str, Any]:
        check_partial(partial)
        assignments = []
        values = []
        for key in WRITABLE_FIELDS:
            if key not in partial:
                continue
            assignments.append(f"{key} = ?")
            if key == "title":
                values.append(partial[key])
            else:
                values.append(json.dumps(partial[key], ensure_ascii=False))
        assignments.append("updated_at = ?")
        values.append(server_timestamp())
        try:
            with _connect(self.db_path) as conn:
                cursor = conn.execute(
                    f"UPDATE plans SET {', '.join(assignments)} WHERE plan_id = ?",
                    (*values, plan_id),
                )
                conn.commit()
                updated = cursor.rowcount
        except sqlite3.Error as e:
            raise WriteFailure(f"Could not write plan {plan_id}: {e}") from e
        if not updated:
            raise PlanNotFound(plan_id)
        doc = self.get(plan_id)
        self.watches.notify(plan_id, doc)
        return doc

    def delete(self, plan_id: str) -> None:
        try:
            with _connect(self.db_path) as conn:
                cursor = conn.execute("DELETE FROM plans WHERE plan_id = ?", (plan_id,))
                conn.commit()
                deleted = cursor.rowcount
        except sqlite3.Error as e:
            raise DeleteFailure(f"Could not delete plan {plan_id}: {e}") from e
        if not deleted:
            raise PlanNotFound(plan_id)
        logger.info(f"Deleted plan {plan_id}")
        self.watches.notify(plan_id, None)

    def watch(self, plan_id: str, on_snapshot: SnapshotCallback,
              on_error: Optional[ErrorCallback] = None) -> Watch:
        watch = Watch(self.watches, plan_id, on_snapshot, on_error)
        self.watches.add(watch)
        try:
            doc = self.get(plan_id)
        except sqlite3.Error as e:
            self.watches.fail(watch, e)
            return watch
        self.watches.deliver(watch, doc)
        return watch
