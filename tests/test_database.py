"""
Tests for the SQLite transaction store: idempotent upsert, best-effort status
updates and the one-way move to `delivered`.
"""

import sqlite3
import time

import pytest

from intake.database import TransactionStore
from intake.schema import (
    ChosenLocation,
    LocationEvidence,
    ProcessStatus,
    SourceTag,
    TransactionRecord,
)


def make_record(record_id="7KQ2MZ4D", **overrides):
    values = dict(
        record_id=record_id,
        group_id=record_id.split("-")[0],
        brand_slug="acme",
        upload_date="2025-09-04",
        upload_time="11:15:30",
        reference="REF-1",
        location_evidence=LocationEvidence(
            chosen=ChosenLocation(lat=52.1, lon=4.3, accuracy_m=10.0, source_tag=SourceTag.GPS)
        ),
        presented_label=SourceTag.GPS,
        storage_key=f"acme/2025/09/20250904_111530_{record_id}.pdf",
        file_checksum="ab" * 32,
        process_status=ProcessStatus.RECEIVED,
    )
    values.update(overrides)
    return TransactionRecord(**values)


class TestUpsert:
    def test_insert_then_read(self, transactions):
        transactions.upsert(make_record())
        row = transactions.get_record("7KQ2MZ4D")
        assert row["brand_slug"] == "acme"
        assert row["process_status"] == "received"
        assert row["driver_copy_sent"] is False
        assert row["location_evidence"].source_tag == SourceTag.GPS
        assert row["created_at"]

    def test_second_upsert_keeps_created_at_and_takes_new_fields(self, transactions):
        transactions.upsert(make_record())
        first = transactions.get_record("7KQ2MZ4D")
        time.sleep(0.01)
        transactions.upsert(make_record(reference="REF-2", process_status=ProcessStatus.ISSUE_REPORTED))
        second = transactions.get_record("7KQ2MZ4D")

        assert second["created_at"] == first["created_at"]
        assert second["updated_at"] >= first["updated_at"]
        assert second["reference"] == "REF-2"
        assert second["process_status"] == "issue_reported"

    def test_upsert_errors_propagate(self, tmp_path):
        store = TransactionStore(str(tmp_path / "t.db"))
        conn = sqlite3.connect(store.db_path)
        conn.execute("DROP TABLE transactions")
        conn.commit()
        conn.close()
        with pytest.raises(sqlite3.OperationalError):
            store.upsert(make_record())


class TestStatus:
    def test_set_status(self, transactions):
        transactions.upsert(make_record())
        assert transactions.set_status("7KQ2MZ4D", ProcessStatus.ERROR_STAFF_MAIL)
        assert transactions.get_record("7KQ2MZ4D")["process_status"] == "error_staff_mail"

    def test_last_error_wins(self, transactions):
        transactions.upsert(make_record())
        transactions.set_status("7KQ2MZ4D", ProcessStatus.ERROR_STAFF_MAIL)
        transactions.set_status("7KQ2MZ4D", ProcessStatus.ERROR_USER_MAIL)
        assert transactions.get_record("7KQ2MZ4D")["process_status"] == "error_user_mail"

    def test_set_status_failure_returns_false(self, tmp_path):
        store = TransactionStore(str(tmp_path / "t.db"))
        conn = sqlite3.connect(store.db_path)
        conn.execute("DROP TABLE transactions")
        conn.commit()
        conn.close()
        assert store.set_status("7KQ2MZ4D", ProcessStatus.ERROR) is False

    def test_delivered_is_terminal(self, transactions):
        transactions.upsert(make_record())
        assert transactions.finalize("7KQ2MZ4D", True)
        transactions.set_status("7KQ2MZ4D", ProcessStatus.ERROR_USER_MAIL)
        assert transactions.get_record("7KQ2MZ4D")["process_status"] == "delivered"

    def test_finalize_false_keeps_status(self, transactions):
        transactions.upsert(make_record(process_status=ProcessStatus.ISSUE_REPORTED))
        assert transactions.finalize("7KQ2MZ4D", False)
        assert transactions.get_record("7KQ2MZ4D")["process_status"] == "issue_reported"

    def test_finalize_false_never_reverts_delivered(self, transactions):
        transactions.upsert(make_record())
        transactions.finalize("7KQ2MZ4D", True)
        transactions.finalize("7KQ2MZ4D", False)
        assert transactions.get_record("7KQ2MZ4D")["process_status"] == "delivered"

    def test_driver_copy_flag(self, transactions):
        transactions.upsert(make_record())
        assert transactions.mark_driver_copy_sent("7KQ2MZ4D")
        assert transactions.get_record("7KQ2MZ4D")["driver_copy_sent"] is True


class TestHistory:
    def test_events_record_every_change(self, transactions):
        transactions.upsert(make_record())
        transactions.set_status("7KQ2MZ4D", ProcessStatus.ERROR_STAFF_MAIL)
        transactions.set_status("7KQ2MZ4D", ProcessStatus.ERROR_USER_MAIL)
        events = transactions.get_events("7KQ2MZ4D")
        assert [(e["event_type"], e["status"]) for e in events] == [
            ("upsert", "received"),
            ("status", "error_staff_mail"),
            ("status", "error_user_mail"),
        ]

    def test_ignored_update_leaves_no_event(self, transactions):
        transactions.upsert(make_record())
        transactions.finalize("7KQ2MZ4D", True)
        transactions.set_status("7KQ2MZ4D", ProcessStatus.ERROR)
        assert [e["status"] for e in transactions.get_events("7KQ2MZ4D")] == ["received", "delivered"]


class TestLookups:
    def test_record_exists_matches_group_id(self, transactions):
        transactions.upsert(make_record("ABCDEFGH-1"))
        assert transactions.record_exists("ABCDEFGH")
        assert transactions.record_exists("ABCDEFGH-1")
        assert not transactions.record_exists("ZZZZZZZZ")

    def test_list_group(self, transactions):
        for n in (2, 1, 3):
            transactions.upsert(make_record(f"ABCDEFGH-{n}"))
        rows = transactions.list_group("ABCDEFGH")
        assert [r["record_id"] for r in rows] == ["ABCDEFGH-1", "ABCDEFGH-2", "ABCDEFGH-3"]

    def test_missing_record(self, transactions):
        assert transactions.get_record("NOPE") is None
