from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from hrportal.models import Attendance, AttendanceStatus, LeaveRequest, OvertimeRequest, RequestStatus, User
from hrportal.services.clock import local_day, normalize_ts
from hrportal.services.leaves import list_pending_leave_requests
from hrportal.services.overtime import list_pending_overtime_requests

NEW_HIRE_WINDOW_DAYS = 30
_ATTENDED_TODAY = (AttendanceStatus.PRESENT, AttendanceStatus.LATE)


@dataclass(frozen=True)
class DashboardMetrics:
    total_employees: int
    present_today: int
    attendance_rate: float
    pending_leaves: int
    pending_overtime: int
    new_hires: int


@dataclass(frozen=True)
class TrendPoint:
    work_date: date
    present: int
    late: int
    early_leave: int
    incomplete: int
    absent: int


def _count(db: Session, stmt) -> int:
    return int(db.scalar(stmt) or 0)


def get_dashboard_metrics(db: Session, *, now: datetime | None = None) -> DashboardMetrics:
    reference = normalize_ts(now)
    today = local_day(reference)

    total_employees = _count(db, select(func.count(User.id)).where(User.is_active.is_(True)))
    records_today = _count(db, select(func.count(Attendance.id)).where(Attendance.work_date == today))
    present_today = _count(
        db,
        select(func.count(Attendance.id)).where(
            Attendance.work_date == today,
            Attendance.status.in_(_ATTENDED_TODAY),
        ),
    )
    pending_leaves = _count(
        db,
        select(func.count(LeaveRequest.id)).where(LeaveRequest.status == RequestStatus.PENDING),
    )
    pending_overtime = _count(
        db,
        select(func.count(OvertimeRequest.id)).where(OvertimeRequest.status == RequestStatus.PENDING),
    )
    new_hires = _count(
        db,
        select(func.count(User.id)).where(User.created_at >= reference - timedelta(days=NEW_HIRE_WINDOW_DAYS)),
    )

    attendance_rate = round(present_today / records_today * 100, 1) if records_today else 0.0
    return DashboardMetrics(
        total_employees=total_employees,
        present_today=present_today,
        attendance_rate=attendance_rate,
        pending_leaves=pending_leaves,
        pending_overtime=pending_overtime,
        new_hires=new_hires,
    )


def get_pending_requests(db: Session) -> tuple[list[LeaveRequest], list[OvertimeRequest]]:
    return list_pending_leave_requests(db), list_pending_overtime_requests(db)


def get_attendance_trend(db: Session, *, days: int, now: datetime | None = None) -> list[TrendPoint]:
    span = max(1, min(days, 90))
    end_day = local_day(now)
    start_day = end_day - timedelta(days=span - 1)

    rows = db.execute(
        select(Attendance.work_date, Attendance.status, func.count(Attendance.id))
        .where(Attendance.work_date >= start_day, Attendance.work_date <= end_day)
        .group_by(Attendance.work_date, Attendance.status)
    ).all()
    counts: dict[date, dict[AttendanceStatus, int]] = {}
    for work_date, status, total in rows:
        counts.setdefault(work_date, {})[status] = int(total)

    active_users = _count(db, select(func.count(User.id)).where(User.is_active.is_(True)))

    points: list[TrendPoint] = []
    for offset in range(span):
        day = start_day + timedelta(days=offset)
        day_counts = counts.get(day, {})
        recorded = sum(day_counts.values())
        points.append(
            TrendPoint(
                work_date=day,
                present=day_counts.get(AttendanceStatus.PRESENT, 0),
                late=day_counts.get(AttendanceStatus.LATE, 0),
                early_leave=day_counts.get(AttendanceStatus.EARLY_LEAVE, 0),
                incomplete=day_counts.get(AttendanceStatus.INCOMPLETE, 0),
                absent=day_counts.get(AttendanceStatus.ABSENT, 0) + max(0, active_users - recorded),
            )
        )
    return points
