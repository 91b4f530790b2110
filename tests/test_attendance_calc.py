from __future__ import annotations

import unittest
from dataclasses import dataclass
from datetime import date, datetime, time, timezone

from hrportal.models import AttendanceStatus
from hrportal.services.attendance_calc import (
    ALLOCATION_BILLABLE_EXCEEDS_HOURS,
    ALLOCATION_DUPLICATE_PROJECT,
    ALLOCATION_NON_POSITIVE_HOURS,
    ALLOCATION_OVER_ALLOCATED,
    calculate_overtime_hours,
    calculate_working_hours,
    count_leave_days,
    derive_checkin_status,
    derive_checkout_status,
    is_recurring_match,
    summarize_month,
    validate_time_allocations,
    working_dates_between,
)


@dataclass
class _Allocation:
    project_id: int
    hours_spent: float
    billable_hours: float = 0.0


@dataclass
class _Record:
    status: AttendanceStatus
    work_date: date = date(2026, 3, 2)
    working_hours: float = 0.0
    overtime_hours: float = 0.0


class WorkingHoursTests(unittest.TestCase):
    def test_working_hours_equal_checkout_minus_checkin(self) -> None:
        check_in = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
        check_out = datetime(2026, 3, 2, 17, 45, tzinfo=timezone.utc)

        self.assertEqual(calculate_working_hours(check_in, check_out), 8.75)

    def test_working_hours_zero_without_checkout(self) -> None:
        check_in = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

        self.assertEqual(calculate_working_hours(check_in, None), 0.0)

    def test_working_hours_never_negative(self) -> None:
        check_in = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
        check_out = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)

        self.assertEqual(calculate_working_hours(check_in, check_out), 0.0)

    def test_overtime_is_excess_over_standard_day(self) -> None:
        self.assertEqual(calculate_overtime_hours(9.5, 8.0), 1.5)
        self.assertEqual(calculate_overtime_hours(7.0, 8.0), 0.0)

    def test_overtime_on_holiday_counts_all_hours(self) -> None:
        self.assertEqual(calculate_overtime_hours(5.25, 8.0, is_holiday=True), 5.25)


class StatusDerivationTests(unittest.TestCase):
    def test_checkin_within_grace_is_present(self) -> None:
        status = derive_checkin_status(time(9, 15), time(9, 0), grace_minutes=15)
        self.assertEqual(status, AttendanceStatus.PRESENT)

    def test_checkin_after_grace_is_late(self) -> None:
        status = derive_checkin_status(time(9, 16), time(9, 0), grace_minutes=15)
        self.assertEqual(status, AttendanceStatus.LATE)

    def test_checkin_on_holiday(self) -> None:
        status = derive_checkin_status(time(11, 0), time(9, 0), grace_minutes=15, is_holiday=True)
        self.assertEqual(status, AttendanceStatus.HOLIDAY)

    def test_early_checkout_turns_present_into_early_leave(self) -> None:
        status = derive_checkout_status(AttendanceStatus.PRESENT, time(16, 30), time(17, 0), grace_minutes=15)
        self.assertEqual(status, AttendanceStatus.EARLY_LEAVE)

    def test_checkout_within_grace_keeps_present(self) -> None:
        status = derive_checkout_status(AttendanceStatus.PRESENT, time(16, 50), time(17, 0), grace_minutes=15)
        self.assertEqual(status, AttendanceStatus.PRESENT)

    def test_late_status_survives_early_checkout(self) -> None:
        status = derive_checkout_status(AttendanceStatus.LATE, time(15, 0), time(17, 0), grace_minutes=15)
        self.assertEqual(status, AttendanceStatus.LATE)


class CalendarTests(unittest.TestCase):
    def test_leave_days_skip_weekends_and_holidays(self) -> None:
        # Monday 2026-03-02 .. Sunday 2026-03-08, Wednesday is a holiday
        days = count_leave_days(date(2026, 3, 2), date(2026, 3, 8), {date(2026, 3, 4)})
        self.assertEqual(days, 4)

    def test_leave_days_zero_for_inverted_range(self) -> None:
        self.assertEqual(count_leave_days(date(2026, 3, 8), date(2026, 3, 2)), 0)

    def test_recurring_holiday_matches_any_year(self) -> None:
        self.assertTrue(is_recurring_match(date(2020, 12, 25), date(2026, 12, 25)))
        self.assertFalse(is_recurring_match(date(2020, 12, 25), date(2026, 12, 26)))


class TimeAllocationTests(unittest.TestCase):
    def test_valid_allocations_have_no_errors(self) -> None:
        errors = validate_time_allocations(8.0, [_Allocation(1, 5.0, 4.0), _Allocation(2, 3.0)])
        self.assertEqual(errors, [])

    def test_allocations_over_available_hours_are_rejected(self) -> None:
        errors = validate_time_allocations(6.0, [_Allocation(1, 4.0), _Allocation(2, 2.5)])
        self.assertEqual(errors, [ALLOCATION_OVER_ALLOCATED])

    def test_each_violation_is_reported_once(self) -> None:
        errors = validate_time_allocations(
            8.0,
            [
                _Allocation(1, 0.0),
                _Allocation(1, -1.0),
                _Allocation(2, 2.0, billable_hours=3.0),
            ],
        )
        self.assertEqual(
            errors,
            [ALLOCATION_NON_POSITIVE_HOURS, ALLOCATION_BILLABLE_EXCEEDS_HOURS, ALLOCATION_DUPLICATE_PROJECT],
        )


MONTH_START = date(2026, 3, 2)


def _weekdays(count: int) -> list[date]:
    return working_dates_between(MONTH_START, date(2026, 3, 31))[:count]


class MonthSummaryTests(unittest.TestCase):
    def test_missing_days_count_as_absent(self) -> None:
        days = _weekdays(10)
        records = [
            _Record(AttendanceStatus.PRESENT, days[0], 8.0, 0.0),
            _Record(AttendanceStatus.LATE, days[1], 7.5, 0.0),
            _Record(AttendanceStatus.EARLY_LEAVE, days[2], 6.0, 0.0),
            _Record(AttendanceStatus.INCOMPLETE, days[3]),
            _Record(AttendanceStatus.PRESENT, days[4], 9.5, 1.5),
        ]

        summary = summarize_month(records, days)

        self.assertEqual(summary.working_days, 10)
        self.assertEqual(summary.present_days, 2)
        self.assertEqual(summary.late_days, 1)
        self.assertEqual(summary.early_leave_days, 1)
        self.assertEqual(summary.incomplete_days, 1)
        self.assertEqual(summary.absent_days, 5)
        self.assertEqual(summary.total_hours, 31.0)
        self.assertEqual(summary.overtime_hours, 1.5)
        self.assertEqual(summary.attendance_rate, 50.0)

    def test_holiday_work_does_not_hide_a_missed_weekday(self) -> None:
        days = _weekdays(3)
        records = [
            _Record(AttendanceStatus.PRESENT, days[0], 8.0),
            _Record(AttendanceStatus.PRESENT, days[1], 8.0),
            _Record(AttendanceStatus.HOLIDAY, date(2026, 3, 20), 5.0, 5.0),
        ]

        summary = summarize_month(records, days)

        self.assertEqual(summary.absent_days, 1)
        self.assertEqual(summary.total_hours, 21.0)
        self.assertEqual(summary.overtime_hours, 5.0)

    def test_weekend_work_never_pushes_rate_above_full(self) -> None:
        days = _weekdays(4)
        records = [_Record(AttendanceStatus.PRESENT, day, 8.0) for day in days]
        records.append(_Record(AttendanceStatus.PRESENT, date(2026, 3, 7), 4.0))

        summary = summarize_month(records, days)

        self.assertEqual(summary.attendance_rate, 100.0)
        self.assertEqual(summary.absent_days, 0)

    def test_no_working_days_gives_zero_rate(self) -> None:
        summary = summarize_month([], [])

        self.assertEqual(summary.attendance_rate, 0.0)
        self.assertEqual(summary.absent_days, 0)

    def test_working_dates_skip_weekends_and_holidays(self) -> None:
        days = working_dates_between(date(2026, 3, 6), date(2026, 3, 10), [date(2026, 3, 9)])

        self.assertEqual(days, [date(2026, 3, 6), date(2026, 3, 10)])


if __name__ == "__main__":
    unittest.main()
