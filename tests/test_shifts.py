from __future__ import annotations

import unittest
from datetime import date, datetime, timezone

from hrportal.errors import ApiError
from hrportal.models import Shift, ShiftStatus, User, UserRole
from hrportal.schemas import ShiftCreate, ShiftUpdate
from hrportal.services.shifts import create_shift, find_shift_for_day, update_shift


class _FakeScalars:
    def __init__(self, rows: list[object]):
        self._rows = rows

    def first(self) -> object | None:
        return self._rows[0] if self._rows else None

    def all(self) -> list[object]:
        return list(self._rows)


class _FakeShiftDB:
    def __init__(
        self,
        *,
        shifts: list[Shift] | None = None,
        users: list[User] | None = None,
        clash_id: int | None = None,
    ):
        self.shifts = {shift.id: shift for shift in shifts or []}
        self.users = {user.id: user for user in users or []}
        self.clash_id = clash_id
        self.overlap_queries = 0
        self.statements: list[object] = []
        self.added: list[object] = []
        self.commits = 0

    def get(self, model, object_id: int):  # type: ignore[no-untyped-def]
        if model is User:
            return self.users.get(object_id)
        return self.shifts.get(object_id)

    def scalar(self, _statement):  # type: ignore[no-untyped-def]
        self.overlap_queries += 1
        return self.clash_id

    def scalars(self, statement):  # type: ignore[no-untyped-def]
        self.statements.append(statement)
        return _FakeScalars(list(self.shifts.values()))

    def add(self, obj: object) -> None:
        self.added.append(obj)

    def commit(self) -> None:
        self.commits += 1

    def refresh(self, _obj: object) -> None:
        return


def _manager() -> User:
    return User(id=1, username="manager", full_name="Ayse Yilmaz", role=UserRole.MANAGER, is_active=True)


def _employee() -> User:
    return User(id=5, username="ali", full_name="Ali Celik", role=UserRole.EMPLOYEE, is_active=True)


def _shift(status: ShiftStatus) -> Shift:
    return Shift(
        id=12,
        user_id=5,
        title="Sabah",
        start_time=datetime(2026, 3, 2, 6, 0, tzinfo=timezone.utc),
        end_time=datetime(2026, 3, 2, 14, 0, tzinfo=timezone.utc),
        status=status,
        created_by=1,
    )


class CreateShiftTests(unittest.TestCase):
    def test_end_before_start_is_rejected(self) -> None:
        payload = ShiftCreate(
            user_id=5,
            title="Gece",
            start_time=datetime(2026, 3, 2, 22, 0, tzinfo=timezone.utc),
            end_time=datetime(2026, 3, 2, 21, 0, tzinfo=timezone.utc),
        )

        with self.assertRaises(ApiError) as ctx:
            create_shift(_FakeShiftDB(users=[_employee()]), payload, created_by=_manager())  # type: ignore[arg-type]
        self.assertEqual(ctx.exception.code, "INVALID_TIME_RANGE")

    def test_overlapping_scheduled_shift_conflicts(self) -> None:
        fake_db = _FakeShiftDB(users=[_employee()], clash_id=3)
        payload = ShiftCreate(
            user_id=5,
            title="Sabah",
            start_time=datetime(2026, 3, 2, 6, 0, tzinfo=timezone.utc),
            end_time=datetime(2026, 3, 2, 14, 0, tzinfo=timezone.utc),
        )

        with self.assertRaises(ApiError) as ctx:
            create_shift(fake_db, payload, created_by=_manager())  # type: ignore[arg-type]
        self.assertEqual(ctx.exception.status_code, 409)
        self.assertEqual(ctx.exception.code, "SHIFT_OVERLAP")
        self.assertEqual(fake_db.added, [])

    def test_unknown_user_is_not_found(self) -> None:
        payload = ShiftCreate(
            user_id=99,
            title="Sabah",
            start_time=datetime(2026, 3, 2, 6, 0, tzinfo=timezone.utc),
            end_time=datetime(2026, 3, 2, 14, 0, tzinfo=timezone.utc),
        )

        with self.assertRaises(ApiError) as ctx:
            create_shift(_FakeShiftDB(), payload, created_by=_manager())  # type: ignore[arg-type]
        self.assertEqual(ctx.exception.status_code, 404)

    def test_new_shift_is_scheduled(self) -> None:
        fake_db = _FakeShiftDB(users=[_employee()])
        payload = ShiftCreate(
            user_id=5,
            title="  Sabah  ",
            start_time=datetime(2026, 3, 2, 6, 0, tzinfo=timezone.utc),
            end_time=datetime(2026, 3, 2, 14, 0, tzinfo=timezone.utc),
        )

        shift = create_shift(fake_db, payload, created_by=_manager())  # type: ignore[arg-type]

        self.assertEqual(shift.status, ShiftStatus.SCHEDULED)
        self.assertEqual(shift.title, "Sabah")
        self.assertEqual(shift.created_by, 1)
        self.assertEqual(fake_db.commits, 1)


class UpdateShiftTests(unittest.TestCase):
    def test_reactivating_cancelled_shift_checks_overlap(self) -> None:
        shift = _shift(ShiftStatus.CANCELLED)
        fake_db = _FakeShiftDB(shifts=[shift], clash_id=30)

        with self.assertRaises(ApiError) as ctx:
            update_shift(fake_db, 12, ShiftUpdate(status=ShiftStatus.SCHEDULED))  # type: ignore[arg-type]
        self.assertEqual(ctx.exception.code, "SHIFT_OVERLAP")
        self.assertEqual(fake_db.overlap_queries, 1)
        self.assertEqual(shift.status, ShiftStatus.CANCELLED)

    def test_reactivating_without_clash_succeeds(self) -> None:
        shift = _shift(ShiftStatus.COMPLETED)
        fake_db = _FakeShiftDB(shifts=[shift])

        updated = update_shift(fake_db, 12, ShiftUpdate(status=ShiftStatus.SCHEDULED))  # type: ignore[arg-type]

        self.assertEqual(updated.status, ShiftStatus.SCHEDULED)
        self.assertEqual(fake_db.overlap_queries, 1)

    def test_notes_only_change_skips_overlap_check(self) -> None:
        shift = _shift(ShiftStatus.SCHEDULED)
        fake_db = _FakeShiftDB(shifts=[shift], clash_id=30)

        updated = update_shift(fake_db, 12, ShiftUpdate(notes="Depo girisi"))  # type: ignore[arg-type]

        self.assertEqual(updated.notes, "Depo girisi")
        self.assertEqual(fake_db.overlap_queries, 0)

    def test_cancelling_never_checks_overlap(self) -> None:
        shift = _shift(ShiftStatus.SCHEDULED)
        fake_db = _FakeShiftDB(shifts=[shift], clash_id=30)

        updated = update_shift(fake_db, 12, ShiftUpdate(status=ShiftStatus.CANCELLED))  # type: ignore[arg-type]

        self.assertEqual(updated.status, ShiftStatus.CANCELLED)
        self.assertEqual(fake_db.overlap_queries, 0)

    def test_moved_times_are_validated(self) -> None:
        fake_db = _FakeShiftDB(shifts=[_shift(ShiftStatus.SCHEDULED)])

        with self.assertRaises(ApiError) as ctx:
            update_shift(
                fake_db,  # type: ignore[arg-type]
                12,
                ShiftUpdate(end_time=datetime(2026, 3, 2, 5, 0, tzinfo=timezone.utc)),
            )
        self.assertEqual(ctx.exception.code, "INVALID_TIME_RANGE")

    def test_missing_shift_is_not_found(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            update_shift(_FakeShiftDB(), 404, ShiftUpdate(title="Yeni"))  # type: ignore[arg-type]
        self.assertEqual(ctx.exception.status_code, 404)


class FindShiftForDayTests(unittest.TestCase):
    def test_returns_first_scheduled_shift_of_the_day(self) -> None:
        shift = _shift(ShiftStatus.SCHEDULED)
        fake_db = _FakeShiftDB(shifts=[shift])

        found = find_shift_for_day(fake_db, 5, date(2026, 3, 2))  # type: ignore[arg-type]

        self.assertIs(found, shift)
        compiled = str(fake_db.statements[0])
        self.assertIn("shifts.status", compiled)
        self.assertIn("shifts.start_time >=", compiled)

    def test_day_without_shift_returns_none(self) -> None:
        found = find_shift_for_day(_FakeShiftDB(), 5, date(2026, 3, 2))  # type: ignore[arg-type]

        self.assertIsNone(found)


if __name__ == "__main__":
    unittest.main()
