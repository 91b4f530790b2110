from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable, Protocol, Sequence

from hrportal.models import AttendanceStatus

ALLOCATION_NON_POSITIVE_HOURS = "NON_POSITIVE_HOURS"
ALLOCATION_BILLABLE_EXCEEDS_HOURS = "BILLABLE_EXCEEDS_HOURS"
ALLOCATION_DUPLICATE_PROJECT = "DUPLICATE_PROJECT"
ALLOCATION_OVER_ALLOCATED = "OVER_ALLOCATED"


class AllocationLike(Protocol):
    project_id: int
    hours_spent: float
    billable_hours: float


class AttendanceLike(Protocol):
    work_date: date
    status: AttendanceStatus
    working_hours: float
    overtime_hours: float


@dataclass(frozen=True)
class MonthSummary:
    working_days: int
    present_days: int
    late_days: int
    early_leave_days: int
    incomplete_days: int
    absent_days: int
    total_hours: float
    overtime_hours: float
    attendance_rate: float


def calculate_working_hours(check_in: datetime | None, check_out: datetime | None) -> float:
    if check_in is None or check_out is None:
        return 0.0
    seconds = (check_out - check_in).total_seconds()
    return round(max(0.0, seconds / 3600), 2)


def calculate_overtime_hours(working_hours: float, standard_hours: float, *, is_holiday: bool = False) -> float:
    safe_working = max(0.0, working_hours)
    if is_holiday:
        return round(safe_working, 2)
    return round(max(0.0, safe_working - max(0.0, standard_hours)), 2)


def _shift_time(value: time, minutes: int) -> time:
    anchor = datetime.combine(date(2000, 1, 1), value) + timedelta(minutes=minutes)
    if anchor.date() != date(2000, 1, 1):
        return time.max if minutes > 0 else time.min
    return anchor.time()


def derive_checkin_status(
    local_check_in: time,
    start: time,
    *,
    grace_minutes: int,
    is_holiday: bool = False,
) -> AttendanceStatus:
    if is_holiday:
        return AttendanceStatus.HOLIDAY
    if local_check_in > _shift_time(start, max(0, grace_minutes)):
        return AttendanceStatus.LATE
    return AttendanceStatus.PRESENT


def derive_checkout_status(
    current: AttendanceStatus,
    local_check_out: time,
    end: time,
    *,
    grace_minutes: int,
) -> AttendanceStatus:
    if current != AttendanceStatus.PRESENT:
        return current
    if local_check_out < _shift_time(end, -max(0, grace_minutes)):
        return AttendanceStatus.EARLY_LEAVE
    return current


def is_recurring_match(holiday_day: date, day: date) -> bool:
    return (holiday_day.month, holiday_day.day) == (day.month, day.day)


def working_dates_between(start: date, end: date, holidays: Iterable[date] = ()) -> list[date]:
    """Weekdays in ``[start, end]`` that are not holidays."""
    excluded = set(holidays)
    days: list[date] = []
    cursor = start
    while cursor <= end:
        if cursor.weekday() < 5 and cursor not in excluded:
            days.append(cursor)
        cursor += timedelta(days=1)
    return days


def count_leave_days(start: date, end: date, holidays: Iterable[date] = ()) -> int:
    return len(working_dates_between(start, end, holidays))


def validate_time_allocations(available_hours: float, allocations: Sequence[AllocationLike]) -> list[str]:
    errors: list[str] = []
    seen_projects: set[int] = set()
    duplicate = False
    for allocation in allocations:
        if allocation.hours_spent <= 0 and ALLOCATION_NON_POSITIVE_HOURS not in errors:
            errors.append(ALLOCATION_NON_POSITIVE_HOURS)
        if (
            allocation.billable_hours < 0 or allocation.billable_hours > allocation.hours_spent
        ) and ALLOCATION_BILLABLE_EXCEEDS_HOURS not in errors:
            errors.append(ALLOCATION_BILLABLE_EXCEEDS_HOURS)
        if allocation.project_id in seen_projects:
            duplicate = True
        seen_projects.add(allocation.project_id)

    if duplicate:
        errors.append(ALLOCATION_DUPLICATE_PROJECT)

    total = round(sum(allocation.hours_spent for allocation in allocations), 2)
    if total > round(max(0.0, available_hours), 2):
        errors.append(ALLOCATION_OVER_ALLOCATED)
    return errors


_ATTENDED_STATUSES = frozenset(
    {
        AttendanceStatus.PRESENT,
        AttendanceStatus.LATE,
        AttendanceStatus.EARLY_LEAVE,
        AttendanceStatus.INCOMPLETE,
    }
)


def summarize_month(records: Iterable[AttendanceLike], working_dates: Iterable[date]) -> MonthSummary:
    """Aggregate a month of attendance records.

    Only records on one of ``working_dates`` count towards attendance; work on
    weekends or holidays still adds to the hour totals.
    """
    counted_days = set(working_dates)
    counts = {status: 0 for status in AttendanceStatus}
    attended_days: set[date] = set()
    total_hours = 0.0
    overtime_hours = 0.0
    for record in records:
        counts[record.status] += 1
        total_hours += record.working_hours or 0.0
        overtime_hours += record.overtime_hours or 0.0
        if record.status in _ATTENDED_STATUSES and record.work_date in counted_days:
            attended_days.add(record.work_date)

    working_days = len(counted_days)
    # a counted day without an attended record is absent
    absent_days = working_days - len(attended_days)
    attendance_rate = round(min(100.0, len(attended_days) / working_days * 100), 1) if working_days > 0 else 0.0

    return MonthSummary(
        working_days=working_days,
        present_days=counts[AttendanceStatus.PRESENT],
        late_days=counts[AttendanceStatus.LATE],
        early_leave_days=counts[AttendanceStatus.EARLY_LEAVE],
        incomplete_days=counts[AttendanceStatus.INCOMPLETE],
        absent_days=absent_days,
        total_hours=round(total_hours, 2),
        overtime_hours=round(overtime_hours, 2),
        attendance_rate=attendance_rate,
    )
