from __future__ import annotations

import unittest
from datetime import date, datetime, time, timezone
from unittest.mock import patch

from hrportal.errors import ApiError
from hrportal.models import (
    Attendance,
    AttendanceStatus,
    CheckInMethod,
    OvertimeCompensation,
    OvertimeRequest,
    ProjectTimeEntry,
    RequestStatus,
    User,
    UserRole,
)
from hrportal.schemas import MessageCreate, TimeAllocation
from hrportal.services.messaging import send_message
from hrportal.services.overtime import overtime_hours_between, review_overtime_request
from hrportal.services.projects import replace_daily_time_entries


class _FakeScalars:
    def __init__(self, rows: list[object]):
        self._rows = rows

    def all(self) -> list[object]:
        return list(self._rows)


class _FakeDB:
    def __init__(
        self,
        *,
        get_result: object | None = None,
        scalar_results: list[object | None] | None = None,
        scalars_results: list[list[object]] | None = None,
    ):
        self._get_result = get_result
        self._scalar_results = list(scalar_results or [])
        self._scalars_results = list(scalars_results or [])
        self.added: list[object] = []
        self.executed = 0
        self.commits = 0

    def get(self, _model, _pk):  # type: ignore[no-untyped-def]
        return self._get_result

    def scalar(self, _statement):  # type: ignore[no-untyped-def]
        if not self._scalar_results:
            return None
        return self._scalar_results.pop(0)

    def scalars(self, _statement):  # type: ignore[no-untyped-def]
        if not self._scalars_results:
            return _FakeScalars([])
        return _FakeScalars(self._scalars_results.pop(0))

    def execute(self, _statement):  # type: ignore[no-untyped-def]
        self.executed += 1

    def add(self, obj: object) -> None:
        self.added.append(obj)

    def flush(self) -> None:
        return

    def commit(self) -> None:
        self.commits += 1

    def refresh(self, _obj: object) -> None:
        return


def _manager() -> User:
    return User(id=1, username="manager", full_name="Team Manager", role=UserRole.MANAGER, is_active=True)


def _employee() -> User:
    return User(id=8, username="can", full_name="Can Aydin", role=UserRole.EMPLOYEE, is_active=True)


def _overtime(compensation: OvertimeCompensation, status: RequestStatus = RequestStatus.PENDING) -> OvertimeRequest:
    return OvertimeRequest(
        id=30,
        user_id=8,
        work_date=date(2026, 3, 2),
        start_time=time(18, 0),
        end_time=time(20, 30),
        hours=2.5,
        compensation=compensation,
        status=status,
    )


class OvertimeReviewTests(unittest.TestCase):
    def test_hours_between_times(self) -> None:
        self.assertEqual(overtime_hours_between(time(18, 0), time(20, 30)), 2.5)

    def test_approved_toil_overtime_credits_balance(self) -> None:
        request = _overtime(OvertimeCompensation.TOIL)
        fake_db = _FakeDB(get_result=request)

        with patch("hrportal.services.overtime.credit_toil") as credit:
            result = review_overtime_request(fake_db, 30, reviewer=_manager(), approve=True, admin_notes="ok")  # type: ignore[arg-type]

        self.assertEqual(result.status, RequestStatus.APPROVED)
        self.assertEqual(result.approved_by, 1)
        self.assertIsNotNone(result.processed_at)
        credit.assert_called_once()
        self.assertEqual(credit.call_args.kwargs["hours"], 2.5)
        self.assertEqual(credit.call_args.kwargs["overtime_request_id"], 30)

    def test_rejected_toil_overtime_credits_nothing(self) -> None:
        fake_db = _FakeDB(get_result=_overtime(OvertimeCompensation.TOIL))

        with patch("hrportal.services.overtime.credit_toil") as credit:
            result = review_overtime_request(fake_db, 30, reviewer=_manager(), approve=False, admin_notes=None)  # type: ignore[arg-type]

        self.assertEqual(result.status, RequestStatus.REJECTED)
        credit.assert_not_called()

    def test_processed_request_cannot_be_reviewed_again(self) -> None:
        fake_db = _FakeDB(get_result=_overtime(OvertimeCompensation.PAID, RequestStatus.APPROVED))

        with self.assertRaises(ApiError) as ctx:
            review_overtime_request(fake_db, 30, reviewer=_manager(), approve=True, admin_notes=None)  # type: ignore[arg-type]
        self.assertEqual(ctx.exception.code, "ALREADY_PROCESSED")


class DailyProjectTimeTests(unittest.TestCase):
    def _checked_out_record(self, hours: float) -> Attendance:
        return Attendance(
            id=4,
            user_id=8,
            work_date=date(2026, 3, 2),
            check_in=datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc),
            check_out=datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc),
            check_in_method=CheckInMethod.GPS,
            status=AttendanceStatus.PRESENT,
            working_hours=hours,
            overtime_hours=0.0,
        )

    def test_allocations_are_limited_by_worked_hours(self) -> None:
        fake_db = _FakeDB(scalar_results=[self._checked_out_record(6.0)], scalars_results=[[1, 2]])
        allocations = [TimeAllocation(project_id=1, hours_spent=4.0), TimeAllocation(project_id=2, hours_spent=3.0)]

        with self.assertRaises(ApiError) as ctx:
            replace_daily_time_entries(fake_db, _employee(), date(2026, 3, 2), allocations)  # type: ignore[arg-type]

        self.assertEqual(ctx.exception.code, "INVALID_TIME_ALLOCATION")
        self.assertIn("OVER_ALLOCATED", ctx.exception.message)
        self.assertEqual(fake_db.executed, 0)

    def test_unassigned_project_is_forbidden(self) -> None:
        fake_db = _FakeDB(scalars_results=[[1]])

        with self.assertRaises(ApiError) as ctx:
            replace_daily_time_entries(
                fake_db,  # type: ignore[arg-type]
                _employee(),
                date(2026, 3, 2),
                [TimeAllocation(project_id=5, hours_spent=2.0)],
            )
        self.assertEqual(ctx.exception.code, "NOT_ASSIGNED")

    def test_valid_allocations_replace_the_day(self) -> None:
        fake_db = _FakeDB(
            scalar_results=[self._checked_out_record(6.0), self._checked_out_record(6.0)],
            scalars_results=[[1, 2], []],
        )
        allocations = [
            TimeAllocation(project_id=1, hours_spent=4.0, billable_hours=3.5),
            TimeAllocation(project_id=2, hours_spent=2.0),
        ]

        daily = replace_daily_time_entries(fake_db, _employee(), date(2026, 3, 2), allocations)  # type: ignore[arg-type]

        self.assertEqual(fake_db.executed, 1)
        self.assertEqual(fake_db.commits, 1)
        entries = [item for item in fake_db.added if isinstance(item, ProjectTimeEntry)]
        self.assertEqual([(entry.project_id, entry.hours_spent) for entry in entries], [(1, 4.0), (2, 2.0)])
        self.assertEqual(daily.available_hours, 6.0)


class SendMessageTests(unittest.TestCase):
    def test_message_needs_exactly_one_target(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            send_message(_FakeDB(), _employee(), MessageCreate(content="hello"))  # type: ignore[arg-type]
        self.assertEqual(ctx.exception.code, "INVALID_TARGET")

    def test_inactive_recipient_is_not_found(self) -> None:
        inactive = User(id=9, username="gone", full_name="Gone", role=UserRole.EMPLOYEE, is_active=False)

        with self.assertRaises(ApiError) as ctx:
            send_message(_FakeDB(get_result=inactive), _employee(), MessageCreate(content="hi", recipient_id=9))  # type: ignore[arg-type]
        self.assertEqual(ctx.exception.status_code, 404)


if __name__ == "__main__":
    unittest.main()
