"""
Reconcile Event Store — append-only audit record of engine invocations.

Every scheduled or manual reconciliation produces one ReconcileEvent.

Behavioral Contract:
- Append-only. No event is ever modified or deleted.
- Every event answers: Which resource? What did the engine do?
  How did it end? Why?
- Queryable by resource, by failure, and by recency.
"""

import sqlite3
import threading
from datetime import datetime
from typing import List, Optional
from uuid import uuid4

from edgeplane.models.event import ReconcileEvent
from edgeplane.models.outcome import OutcomeKind, ReconcileOutcome
from edgeplane.models.resource import ConditionReason

_FAILURE_OUTCOMES = (
    OutcomeKind.TRANSIENT_ERROR.value,
    OutcomeKind.PERMANENT_ERROR.value,
    OutcomeKind.KIND_UNSUPPORTED.value,
)


class EventStore:
    """
    Append-only reconcile event store.
    Prototype: SQLite. Production: PostgreSQL or the cluster event API.
    """

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        # Scheduler worker threads append concurrently
        self._lock = threading.Lock()
        self._init_schema()

    def _init_schema(self) -> None:
        """Create the events table if it doesn't exist."""
        with self._lock:
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS events (
                    id TEXT PRIMARY KEY,
                    resource_key TEXT NOT NULL,
                    kind TEXT NOT NULL,
                    outcome TEXT NOT NULL,
                    action TEXT NOT NULL,
                    stage TEXT NOT NULL,
                    reason TEXT,
                    message TEXT NOT NULL DEFAULT '',
                    recorded_at TEXT NOT NULL,
                    event_json TEXT NOT NULL
                )
            """)
            self._conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_events_resource_key ON events(resource_key)
            """)
            self._conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_events_outcome ON events(outcome)
            """)
            self._conn.commit()

    def record(
        self,
        kind: str,
        outcome: ReconcileOutcome,
        reason: Optional[ConditionReason] = None,
    ) -> ReconcileEvent:
        """Build an event from an engine outcome and append it."""
        event = ReconcileEvent(
            id=f"evt_{uuid4().hex[:12]}",
            resource_key=outcome.resource_key,
            kind=kind,
            outcome=outcome.kind,
            action=outcome.action,
            stage=outcome.stage,
            identifier=outcome.identifier,
            reason=reason,
            message=outcome.message,
            recorded_at=outcome.completed_at,
        )
        return self.append(event)

    def append(self, event: ReconcileEvent) -> ReconcileEvent:
        """Append an event."""
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO events (
                    id, resource_key, kind, outcome, action, stage,
                    reason, message, recorded_at, event_json
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    event.id,
                    event.resource_key,
                    event.kind,
                    event.outcome.value,
                    event.action.value,
                    event.stage.value,
                    event.reason.value if event.reason else None,
                    event.message,
                    event.recorded_at.isoformat(),
                    event.model_dump_json(),
                ),
            )
            self._conn.commit()
        return event

    def _deserialize(self, row: sqlite3.Row) -> ReconcileEvent:
        return ReconcileEvent.model_validate_json(row["event_json"])

    def _fetch(self, sql: str, params: tuple = ()) -> List[ReconcileEvent]:
        with self._lock:
            rows = self._conn.execute(sql, params).fetchall()
        return [self._deserialize(r) for r in rows]

    def get_by_id(self, event_id: str) -> Optional[ReconcileEvent]:
        events = self._fetch("SELECT event_json FROM events WHERE id = ?", (event_id,))
        return events[0] if events else None

    def query_by_resource(self, resource_key: str) -> List[ReconcileEvent]:
        """All events for one declared resource, oldest first."""
        return self._fetch(
            "SELECT event_json FROM events WHERE resource_key = ? ORDER BY rowid",
            (resource_key,),
        )

    def query_failures(self, since: Optional[datetime] = None) -> List[ReconcileEvent]:
        """All failed invocations, optionally since a point in time."""
        placeholders = ", ".join("?" for _ in _FAILURE_OUTCOMES)
        sql = f"SELECT event_json FROM events WHERE outcome IN ({placeholders})"
        params: tuple = _FAILURE_OUTCOMES
        if since:
            sql += " AND recorded_at >= ?"
            params = params + (since.isoformat(),)
        return self._fetch(sql + " ORDER BY rowid", params)

    def query_recent(self, limit: int = 50) -> List[ReconcileEvent]:
        """The most recent events, oldest first."""
        events = self._fetch(
            "SELECT event_json FROM events ORDER BY rowid DESC LIMIT ?",
            (limit,),
        )
        return list(reversed(events))

    def count(self) -> int:
        """Total number of events."""
        with self._lock:
            row = self._conn.execute("SELECT COUNT(*) as cnt FROM events").fetchone()
        return row["cnt"]

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
