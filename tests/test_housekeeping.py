from __future__ import annotations

import unittest
from datetime import date, datetime, timedelta, timezone
from unittest.mock import patch

from sqlalchemy import Delete, Select, Update

from hrportal.models import DeliveryStatus, RequestStatus
from hrportal.services.housekeeping import run_cleanup, select_ids_to_prune


class SelectIdsToPruneTests(unittest.TestCase):
    def setUp(self) -> None:
        self.base = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def test_keeps_newest_rows_per_owner(self) -> None:
        rows = [(row_id, 1, self.base + timedelta(days=row_id)) for row_id in range(1, 8)]
        rows += [(100, 2, self.base), (101, 2, self.base + timedelta(days=1))]

        prune = select_ids_to_prune(rows, keep=5)

        self.assertEqual(prune, [1, 2])

    def test_ties_keep_higher_id(self) -> None:
        rows = [(10, 1, self.base), (11, 1, self.base), (12, 1, self.base)]

        prune = select_ids_to_prune(rows, keep=2)

        self.assertEqual(prune, [10])

    def test_zero_keep_prunes_everything(self) -> None:
        rows = [(1, 1, self.base), (2, 2, self.base)]

        self.assertEqual(select_ids_to_prune(rows, keep=0), [1, 2])
        self.assertEqual(select_ids_to_prune([], keep=5), [])



class _FakeResult:
    def __init__(self, rows: list[tuple] | None = None, rowcount: int = 0):
        self._rows = rows or []
        self.rowcount = rowcount

    def all(self) -> list[tuple]:
        return list(self._rows)


class _FakeCleanupDB:
    def __init__(self, leave_rows: list[tuple]):
        self.leave_rows = leave_rows
        self.statements: list[object] = []
        self.commits = 0

    def execute(self, statement):  # type: ignore[no-untyped-def]
        self.statements.append(statement)
        if isinstance(statement, Select):
            if "FROM leave_requests" in str(statement):
                return _FakeResult(rows=self.leave_rows)
            return _FakeResult(rows=[])
        return _FakeResult(rowcount=1)

    def commit(self) -> None:
        self.commits += 1

    def of_type(self, kind: type) -> list[object]:
        return [statement for statement in self.statements if isinstance(statement, kind)]


class RunCleanupTests(unittest.TestCase):
    def setUp(self) -> None:
        self.now = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)
        self.leave_rows = [(row_id, 9, self.now - timedelta(days=row_id)) for row_id in range(1, 8)]

    def test_cleanup_reports_every_job(self) -> None:
        fake_db = _FakeCleanupDB(self.leave_rows)

        with patch("hrportal.services.housekeeping.expire_toil_entries", return_value=2) as expire:
            result = run_cleanup(fake_db, now=self.now)  # type: ignore[arg-type]

        self.assertEqual(
            result,
            {
                "expired_announcements": 1,
                "finished_shifts": 1,
                "old_messages": 1,
                "failed_deliveries": 1,
                "pruned_leave_requests": 2,
                "pruned_overtime_requests": 0,
                "expired_toil_entries": 2,
            },
        )
        self.assertEqual(fake_db.commits, 1)
        self.assertEqual(expire.call_args.kwargs["today"], date(2026, 3, 2))

    def test_pending_requests_are_never_pruned(self) -> None:
        fake_db = _FakeCleanupDB(self.leave_rows)

        with patch("hrportal.services.housekeeping.expire_toil_entries", return_value=0):
            run_cleanup(fake_db, now=self.now)  # type: ignore[arg-type]

        for query in fake_db.of_type(Select):
            self.assertIn(".status !=", str(query))
            self.assertEqual(query.compile().params["status_1"], RequestStatus.PENDING)
        leave_deletes = [stmt for stmt in fake_db.of_type(Delete) if "leave_requests" in str(stmt)]
        self.assertEqual(len(leave_deletes), 1)
        self.assertEqual(sorted(leave_deletes[0].compile().params["id_1"]), [6, 7])

    def test_timed_out_deliveries_are_marked_failed(self) -> None:
        fake_db = _FakeCleanupDB([])

        with patch("hrportal.services.housekeeping.expire_toil_entries", return_value=0):
            run_cleanup(fake_db, now=self.now)  # type: ignore[arg-type]

        (delivery_update,) = fake_db.of_type(Update)
        params = delivery_update.compile().params
        self.assertEqual(params["delivery_status"], DeliveryStatus.FAILED)
        self.assertEqual(params["delivery_status_1"], DeliveryStatus.PENDING)
        self.assertEqual(params["error_message"], "delivery_timeout")
        self.assertEqual(params["last_attempt_at_1"], self.now - timedelta(minutes=10))


if __name__ == "__main__":
    unittest.main()
