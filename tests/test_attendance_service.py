from __future__ import annotations

import unittest
from datetime import date, datetime, timezone
from unittest.mock import patch

from hrportal.errors import ApiError
from hrportal.models import Attendance, AttendanceStatus, CheckInMethod, Holiday, User, UserRole
from hrportal.schemas import AttendanceAdminUpdateRequest, AttendanceCheckinRequest, AttendanceCheckoutRequest
from hrportal.services.attendance import (
    AUTO_CHECKOUT_LOCATION,
    admin_update_attendance,
    auto_checkout_stale_records,
    check_in,
    check_out,
)


class _FakeScalars:
    def __init__(self, rows: list[object]):
        self._rows = rows

    def all(self) -> list[object]:
        return list(self._rows)


class _FakeAttendanceDB:
    def __init__(self, *, scalar_results: list[object | None] | None = None, rows: list[object] | None = None):
        self._scalar_results = list(scalar_results or [])
        self._rows = list(rows or [])
        self.records = {row.id: row for row in self._rows if isinstance(row, Attendance)}
        self.added: list[object] = []
        self.commits = 0

    def scalar(self, _statement):  # type: ignore[no-untyped-def]
        if not self._scalar_results:
            return None
        return self._scalar_results.pop(0)

    def scalars(self, _statement):  # type: ignore[no-untyped-def]
        if _statement.column_descriptions[0]["entity"] is Holiday:
            return _FakeScalars([])
        return _FakeScalars(self._rows)

    def get(self, _model, object_id: int):  # type: ignore[no-untyped-def]
        return self.records.get(object_id)

    def add(self, obj: object) -> None:
        self.added.append(obj)

    def commit(self) -> None:
        self.commits += 1

    def rollback(self) -> None:
        return

    def refresh(self, _obj: object) -> None:
        return


def _user() -> User:
    return User(id=7, username="mehmet", full_name="Mehmet Kaya", role=UserRole.EMPLOYEE, is_active=True)


def _open_record(record_id: int, work_date: date, checked_in_at: datetime) -> Attendance:
    return Attendance(
        id=record_id,
        user_id=7,
        work_date=work_date,
        check_in=checked_in_at,
        check_in_method=CheckInMethod.GPS,
        status=AttendanceStatus.PRESENT,
        working_hours=0.0,
        overtime_hours=0.0,
        is_location_valid=True,
        requires_approval=False,
        flags={},
    )


@patch("hrportal.services.attendance.find_shift_for_day", return_value=None)
@patch("hrportal.services.attendance.is_holiday", return_value=False)
@patch("hrportal.services.attendance.list_work_locations", return_value=[])
class CheckInOutTests(unittest.TestCase):
    def test_late_check_in_creates_record(self, *_mocks) -> None:  # type: ignore[no-untyped-def]
        fake_db = _FakeAttendanceDB()
        now = datetime(2026, 3, 2, 9, 40, tzinfo=timezone.utc)

        record = check_in(fake_db, _user(), AttendanceCheckinRequest(lat=41.0, lon=29.0), now=now)  # type: ignore[arg-type]

        self.assertIs(fake_db.added[0], record)
        self.assertEqual(record.work_date, date(2026, 3, 2))
        self.assertEqual(record.status, AttendanceStatus.LATE)
        self.assertTrue(record.is_location_valid)
        self.assertEqual(record.flags["check_in"]["reason"], "no_work_locations")
        self.assertEqual(fake_db.commits, 1)

    def test_second_check_in_same_day_conflicts(self, *_mocks) -> None:  # type: ignore[no-untyped-def]
        existing = _open_record(1, date(2026, 3, 2), datetime(2026, 3, 2, 8, 55, tzinfo=timezone.utc))
        fake_db = _FakeAttendanceDB(scalar_results=[existing])

        with self.assertRaises(ApiError) as ctx:
            check_in(
                fake_db,  # type: ignore[arg-type]
                _user(),
                AttendanceCheckinRequest(),
                now=datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc),
            )
        self.assertEqual(ctx.exception.code, "ALREADY_CHECKED_IN")
        self.assertEqual(fake_db.added, [])

    def test_biometric_requires_verification(self, *_mocks) -> None:  # type: ignore[no-untyped-def]
        with self.assertRaises(ApiError) as ctx:
            check_in(
                _FakeAttendanceDB(),  # type: ignore[arg-type]
                _user(),
                AttendanceCheckinRequest(method=CheckInMethod.BIOMETRIC),
                now=datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc),
            )
        self.assertEqual(ctx.exception.code, "BIOMETRIC_NOT_VERIFIED")

    def test_check_out_computes_hours_and_overtime(self, *_mocks) -> None:  # type: ignore[no-untyped-def]
        record = _open_record(3, date(2026, 3, 2), datetime(2026, 3, 2, 8, 30, tzinfo=timezone.utc))
        fake_db = _FakeAttendanceDB(scalar_results=[record])

        result = check_out(
            fake_db,  # type: ignore[arg-type]
            _user(),
            AttendanceCheckoutRequest(),
            now=datetime(2026, 3, 2, 18, 0, tzinfo=timezone.utc),
        )

        self.assertIs(result, record)
        self.assertEqual(record.working_hours, 9.5)
        self.assertEqual(record.overtime_hours, 1.5)
        self.assertEqual(record.status, AttendanceStatus.PRESENT)
        self.assertIn("check_out", record.flags)

    def test_check_out_without_open_record(self, *_mocks) -> None:  # type: ignore[no-untyped-def]
        with self.assertRaises(ApiError) as ctx:
            check_out(
                _FakeAttendanceDB(),  # type: ignore[arg-type]
                _user(),
                AttendanceCheckoutRequest(),
                now=datetime(2026, 3, 2, 18, 0, tzinfo=timezone.utc),
            )
        self.assertEqual(ctx.exception.code, "NOT_CHECKED_IN")


class AutoCheckoutTests(unittest.TestCase):
    def test_stale_records_are_closed_as_incomplete(self) -> None:
        stale = _open_record(11, date(2026, 3, 1), datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc))
        fake_db = _FakeAttendanceDB(rows=[stale])

        closed = auto_checkout_stale_records(
            fake_db,  # type: ignore[arg-type]
            now=datetime(2026, 3, 2, 0, 5, tzinfo=timezone.utc),
        )

        self.assertEqual(closed, [11])
        self.assertEqual(stale.check_out, datetime(2026, 3, 1, 23, 59, 59, tzinfo=timezone.utc))
        self.assertEqual(stale.status, AttendanceStatus.INCOMPLETE)
        self.assertEqual(stale.working_hours, 0.0)
        self.assertEqual(stale.check_out_location, AUTO_CHECKOUT_LOCATION)
        self.assertTrue(stale.flags["auto_checkout"])
        self.assertEqual(fake_db.commits, 1)

    def test_nothing_to_close_skips_commit(self) -> None:
        fake_db = _FakeAttendanceDB(rows=[])

        closed = auto_checkout_stale_records(fake_db)  # type: ignore[arg-type]

        self.assertEqual(closed, [])
        self.assertEqual(fake_db.commits, 0)



class AdminUpdateTests(unittest.TestCase):
    def test_explicit_null_check_out_reopens_record(self) -> None:
        record = _open_record(21, date(2026, 3, 2), datetime(2026, 3, 2, 6, 0, tzinfo=timezone.utc))
        record.check_out = datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)
        record.working_hours = 9.0
        record.overtime_hours = 1.0
        fake_db = _FakeAttendanceDB(rows=[record])

        updated = admin_update_attendance(
            fake_db,  # type: ignore[arg-type]
            21,
            AttendanceAdminUpdateRequest(check_out=None),
        )

        self.assertIsNone(updated.check_out)
        self.assertEqual(updated.working_hours, 0.0)
        self.assertEqual(updated.overtime_hours, 0.0)
        self.assertTrue(updated.flags["admin_edited"])

    def test_omitted_check_out_is_kept(self) -> None:
        checked_out = datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)
        record = _open_record(22, date(2026, 3, 2), datetime(2026, 3, 2, 6, 0, tzinfo=timezone.utc))
        record.check_out = checked_out
        fake_db = _FakeAttendanceDB(rows=[record])

        updated = admin_update_attendance(
            fake_db,  # type: ignore[arg-type]
            22,
            AttendanceAdminUpdateRequest(admin_notes="duzeltildi"),
        )

        self.assertEqual(updated.check_out, checked_out)
        self.assertEqual(updated.admin_notes, "duzeltildi")

    def test_check_out_before_check_in_is_rejected(self) -> None:
        record = _open_record(23, date(2026, 3, 2), datetime(2026, 3, 2, 6, 0, tzinfo=timezone.utc))
        fake_db = _FakeAttendanceDB(rows=[record])

        with self.assertRaises(ApiError) as ctx:
            admin_update_attendance(
                fake_db,  # type: ignore[arg-type]
                23,
                AttendanceAdminUpdateRequest(check_out=datetime(2026, 3, 2, 5, 0, tzinfo=timezone.utc)),
            )
        self.assertEqual(ctx.exception.code, "INVALID_TIME_RANGE")


if __name__ == "__main__":
    unittest.main()
