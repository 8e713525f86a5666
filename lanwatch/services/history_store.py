"""Append-only liveness history with bounded retention per host."""

import logging
import sqlite3
import threading
from datetime import UTC, datetime, timedelta
from pathlib import Path

from ..exceptions import TransientStoreError
from ..models.host import HostStatus, LivenessRecord

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 1000
DEFAULT_UPTIME_WINDOW = timedelta(hours=24)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS liveness_history (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  host_id INTEGER NOT NULL,
  status TEXT NOT NULL CHECK(status IN ('online','offline')),
  observed_at TEXT NOT NULL,
  latency_ms REAL
);
CREATE INDEX IF NOT EXISTS idx_liveness_history_host
  ON liveness_history(host_id, observed_at);
"""


def _to_utc_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


class LivenessHistoryStore:
    """Per-host status ledger stored in SQLite.

    Records are never modified. Each host keeps at most ``max_records`` of its
    most recent observations; older ones are pruned on append.
    """

    def __init__(self, path: Path | str = ":memory:", max_records: int = DEFAULT_HISTORY_LIMIT):
        self.path = str(path)
        self.max_records = max_records
        self._local = threading.local()
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)

    def connect(self) -> sqlite3.Connection:
        conn = getattr(self._local, "conn", None)
        if conn is None:
            conn = sqlite3.connect(self.path, timeout=30, isolation_level=None)
            conn.row_factory = sqlite3.Row
            if self.path != ":memory:":
                conn.execute("PRAGMA journal_mode = WAL;")
            conn.executescript(_SCHEMA)
            self._local.conn = conn
        return conn

    def close(self) -> None:
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            conn.close()
            self._local.conn = None

    def append(
        self,
        host_id: int,
        status: HostStatus,
        latency_ms: float | None = None,
        observed_at: datetime | None = None,
    ) -> LivenessRecord:
        """Insert a record, then prune the host's history to the retention limit.

        Raises:
            TransientStoreError: If the record cannot be written.
        """
        record = LivenessRecord(
            host_id=host_id,
            status=status,
            observed_at=observed_at or datetime.now(UTC),
            latency_ms=latency_ms,
        )
        try:
            conn = self.connect()
            conn.execute("BEGIN;")
            try:
                conn.execute(
                    "INSERT INTO liveness_history(host_id, status, observed_at, latency_ms) VALUES (?,?,?,?);",
                    (host_id, record.status.value, _to_utc_iso(record.observed_at), latency_ms),
                )
                self._prune(conn, host_id)
                conn.execute("COMMIT;")
            except sqlite3.Error:
                conn.execute("ROLLBACK;")
                raise
        except sqlite3.Error as e:
            raise TransientStoreError(f"Cannot append history for host {host_id}: {e}") from e
        return record

    def _prune(self, conn: sqlite3.Connection, host_id: int) -> None:
        try:
            conn.execute(
                """
                DELETE FROM liveness_history
                WHERE host_id = ? AND id NOT IN (
                  SELECT id FROM liveness_history
                  WHERE host_id = ?
                  ORDER BY observed_at DESC, id DESC
                  LIMIT ?
                );
                """,
                (host_id, host_id, self.max_records),
            )
        except sqlite3.Error as e:
            logger.debug(f"History prune skipped for host {host_id}: {e}")

    def _query_one(self, sql: str, params: tuple, what: str) -> sqlite3.Row:
        try:
            return self.connect().execute(sql, params).fetchone()
        except sqlite3.Error as e:
            raise TransientStoreError(f"Cannot read {what}: {e}") from e

    def rolling_uptime(
        self,
        host_id: int,
        window: timedelta = DEFAULT_UPTIME_WINDOW,
        now: datetime | None = None,
    ) -> float:
        """Percentage of Online records within the trailing window.

        Returns 100.0 when the host has no records in the window.

        Raises:
            TransientStoreError: If the history cannot be read.
        """
        since = (now or datetime.now(UTC)) - window
        row = self._query_one(
            """
            SELECT COUNT(*) AS total,
                   COUNT(CASE WHEN status = 'online' THEN 1 END) AS online
            FROM liveness_history
            WHERE host_id = ? AND observed_at >= ?;
            """,
            (host_id, _to_utc_iso(since)),
            f"uptime of host {host_id}",
        )
        total = int(row["total"])
        if total == 0:
            return 100.0
        return int(row["online"]) / total * 100

    def records(self, host_id: int, limit: int = 100) -> list[LivenessRecord]:
        """Get a host's most recent records, newest first."""
        try:
            rows = self.connect().execute(
                """
                SELECT host_id, status, observed_at, latency_ms FROM liveness_history
                WHERE host_id = ?
                ORDER BY observed_at DESC, id DESC
                LIMIT ?;
                """,
                (host_id, limit),
            ).fetchall()
        except sqlite3.Error as e:
            raise TransientStoreError(f"Cannot read history of host {host_id}: {e}") from e
        return [
            LivenessRecord(
                host_id=r["host_id"],
                status=HostStatus(r["status"]),
                observed_at=datetime.fromisoformat(r["observed_at"]),
                latency_ms=r["latency_ms"],
            )
            for r in rows
        ]

    def count(self, host_id: int) -> int:
        """Number of records kept for a host."""
        row = self._query_one(
            "SELECT COUNT(*) AS n FROM liveness_history WHERE host_id = ?;",
            (host_id,),
            f"record count of host {host_id}",
        )
        return int(row["n"])
