"""
SQLite transaction store: one durable row per processed file.

`upsert` is a full-row insert-or-replace that preserves the first
`created_at`, so a retried write for the same record id is safe. Status
updates are best-effort and never raise; each one is also appended to the
`transaction_events` table, which keeps the history the single
`process_status` column ("last error wins") cannot.
"""

import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from intake.schema import LocationEvidence, ProcessStatus, TransactionRecord

logger = logging.getLogger(__name__)


SCHEMA = """
    CREATE TABLE IF NOT EXISTS transactions (
        record_id TEXT PRIMARY KEY,
        group_id TEXT NOT NULL,
        brand_slug TEXT NOT NULL,
        upload_date TEXT NOT NULL,
        upload_time TEXT NOT NULL,
        reference TEXT,
        location_evidence TEXT,
        presented_label TEXT NOT NULL,
        storage_key TEXT NOT NULL,
        file_checksum TEXT NOT NULL,
        process_status TEXT NOT NULL,
        driver_copy_sent INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );
    CREATE INDEX IF NOT EXISTS idx_transactions_group_id
        ON transactions(group_id);
    CREATE INDEX IF NOT EXISTS idx_transactions_status
        ON transactions(process_status);
    CREATE TABLE IF NOT EXISTS transaction_events (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        record_id TEXT NOT NULL,
        event_type TEXT NOT NULL,
        status TEXT,
        created_at TEXT NOT NULL
    );
    CREATE INDEX IF NOT EXISTS idx_transaction_events_record_id
        ON transaction_events(record_id);
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class TransactionStore:
    """Keyed record store backed by a SQLite file."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self.init_database()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_database(self) -> None:
        """Create tables and indexes if they do not exist yet."""
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        conn = self._connect()
        try:
            conn.executescript(SCHEMA)
            conn.commit()
        finally:
            conn.close()

    def upsert(self, record: TransactionRecord) -> None:
        """
        Insert or replace the row for `record.record_id`.

        Every column takes the new value except `created_at`, which is carried
        over from an existing row or stamped now on first insert. Errors
        propagate; the caller decides how degraded the upload is.
        """
        now = _now()
        conn = self._connect()
        try:
            conn.execute(
                """
                INSERT OR REPLACE INTO transactions (
                    record_id, group_id, brand_slug, upload_date, upload_time,
                    reference, location_evidence, presented_label, storage_key,
                    file_checksum, process_status, driver_copy_sent,
                    created_at, updated_at
                ) VALUES (
                    ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?,
                    COALESCE((SELECT created_at FROM transactions WHERE record_id = ?), ?),
                    ?
                )
                """,
                (
                    record.record_id,
                    record.group_id,
                    record.brand_slug,
                    record.upload_date,
                    record.upload_time,
                    record.reference,
                    record.location_evidence.model_dump_json(),
                    record.presented_label.value,
                    record.storage_key,
                    record.file_checksum,
                    record.process_status.value,
                    1 if record.driver_copy_sent else 0,
                    record.record_id,
                    now,
                    now,
                ),
            )
            self._append_event(conn, record.record_id, "upsert", record.process_status.value)
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def set_status(self, record_id: str, status: ProcessStatus) -> bool:
        """
        Best-effort single-column status update. Returns False on failure
        instead of raising. A row that is already `delivered` is left alone.
        """
        try:
            conn = self._connect()
        except Exception as e:
            logger.warning(f"⚠️ Could not open transaction store to set {record_id} -> {status.value}: {e}")
            return False
        try:
            cursor = conn.execute(
                """
                UPDATE transactions
                SET process_status = ?, updated_at = ?
                WHERE record_id = ? AND process_status != ?
                """,
                (status.value, _now(), record_id, ProcessStatus.DELIVERED.value),
            )
            if cursor.rowcount > 0:
                self._append_event(conn, record_id, "status", status.value)
            conn.commit()
            return True
        except Exception as e:
            logger.warning(f"⚠️ Failed to set status {status.value} for {record_id}: {e}")
            conn.rollback()
            return False
        finally:
            conn.close()

    def finalize(self, record_id: str, should_be_delivered: bool) -> bool:
        """
        One-way transition to `delivered`. When `should_be_delivered` is
        false the current status is kept as is (never reverted).
        """
        if not should_be_delivered:
            return True
        return self.set_status(record_id, ProcessStatus.DELIVERED)

    def mark_driver_copy_sent(self, record_id: str) -> bool:
        """Best-effort flag that the uploader's copy was delivered."""
        try:
            conn = self._connect()
        except Exception as e:
            logger.warning(f"⚠️ Could not open transaction store for {record_id}: {e}")
            return False
        try:
            conn.execute(
                "UPDATE transactions SET driver_copy_sent = 1, updated_at = ? WHERE record_id = ?",
                (_now(), record_id),
            )
            self._append_event(conn, record_id, "driver_copy_sent", None)
            conn.commit()
            return True
        except Exception as e:
            logger.warning(f"⚠️ Failed to flag driver copy for {record_id}: {e}")
            conn.rollback()
            return False
        finally:
            conn.close()

    def get_record(self, record_id: str) -> Optional[Dict]:
        """Return the row for record_id as a dict, or None."""
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT * FROM transactions WHERE record_id = ?", (record_id,)
            ).fetchone()
        finally:
            conn.close()
        return self._row_to_dict(row) if row else None

    def record_exists(self, record_id: str) -> bool:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT 1 FROM transactions WHERE record_id = ? OR group_id = ? LIMIT 1",
                (record_id, record_id),
            ).fetchone()
        finally:
            conn.close()
        return row is not None

    def list_group(self, group_id: str) -> List[Dict]:
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT * FROM transactions WHERE group_id = ? ORDER BY record_id",
                (group_id,),
            ).fetchall()
        finally:
            conn.close()
        return [self._row_to_dict(row) for row in rows]

    def get_events(self, record_id: str) -> List[Dict]:
        conn = self._connect()
        try:
            rows = conn.execute(
                """
                SELECT event_type, status, created_at FROM transaction_events
                WHERE record_id = ? ORDER BY id
                """,
                (record_id,),
            ).fetchall()
        finally:
            conn.close()
        return [dict(row) for row in rows]

    @staticmethod
    def _append_event(conn: sqlite3.Connection, record_id: str, event_type: str, status: Optional[str]) -> None:
        conn.execute(
            "INSERT INTO transaction_events (record_id, event_type, status, created_at) VALUES (?, ?, ?, ?)",
            (record_id, event_type, status, _now()),
        )

    @staticmethod
    def _row_to_dict(row: sqlite3.Row) -> Dict:
        record = dict(row)
        record["driver_copy_sent"] = bool(record["driver_copy_sent"])
        evidence = record.get("location_evidence")
        record["location_evidence"] = (
            LocationEvidence.model_validate(json.loads(evidence)) if evidence else LocationEvidence()
        )
        return record
