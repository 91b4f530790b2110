from __future__ import annotations

import logging
from calendar import monthrange
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from hrportal.errors import ApiError, not_found
from hrportal.models import (
    Attendance,
    AttendanceStatus,
    CheckInMethod,
    ProjectTimeEntry,
    User,
    WorkLocation,
)
from hrportal.schemas import (
    AttendanceAdminUpdateRequest,
    AttendanceCheckinRequest,
    AttendanceCheckoutRequest,
    WorkLocationCreate,
)
from hrportal.services.attendance_calc import (
    MonthSummary,
    calculate_overtime_hours,
    calculate_working_hours,
    derive_checkin_status,
    derive_checkout_status,
    summarize_month,
    working_dates_between,
)
from hrportal.services.clock import local_day, local_end_of_day_utc, normalize_ts, to_local
from hrportal.services.holidays import holiday_dates_between, is_holiday
from hrportal.services.location import evaluate_location
from hrportal.services.shifts import find_shift_for_day
from hrportal.settings import get_settings, get_workday_bounds

logger = logging.getLogger("hrportal.attendance")

AUTO_CHECKOUT_LOCATION = "Auto Check-out (Midnight)"
AUTO_CHECKOUT_NOTES = "Automatically checked out at midnight - no manual checkout recorded"
AUTO_CHECKOUT_ADMIN_NOTES = "Auto-checkout due to missing manual checkout"


@dataclass(frozen=True)
class MonthlyHistory:
    user: User
    year: int
    month: int
    records: list[Attendance]
    project_hours: list[tuple[date, float]]
    summary: MonthSummary

    @property
    def project_hours_total(self) -> float:
        return round(sum(hours for _, hours in self.project_hours), 2)


def list_work_locations(db: Session, *, include_inactive: bool = False) -> list[WorkLocation]:
    stmt = select(WorkLocation).order_by(WorkLocation.name.asc(), WorkLocation.id.asc())
    if not include_inactive:
        stmt = stmt.where(WorkLocation.is_active.is_(True))
    return list(db.scalars(stmt).all())


def create_work_location(db: Session, payload: WorkLocationCreate) -> WorkLocation:
    location = WorkLocation(
        name=payload.name.strip(),
        address=payload.address,
        lat=payload.lat,
        lon=payload.lon,
        radius_m=payload.radius_m,
        is_active=payload.is_active,
    )
    db.add(location)
    db.commit()
    db.refresh(location)
    return location


def _get_record_for_day(db: Session, user_id: int, day: date) -> Attendance | None:
    return db.scalar(select(Attendance).where(Attendance.user_id == user_id, Attendance.work_date == day))


def _day_bounds_for_user(db: Session, user_id: int, day: date) -> tuple[time, time]:
    start, end = get_workday_bounds()
    shift = find_shift_for_day(db, user_id, day)
    if shift is not None:
        start = to_local(shift.start_time).time()
        end = to_local(shift.end_time).time()
        if to_local(shift.end_time).date() != day:
            end = time.max
    return start, end


def check_in(
    db: Session,
    user: User,
    payload: AttendanceCheckinRequest,
    *,
    now: datetime | None = None,
) -> Attendance:
    reference = normalize_ts(now)
    today = local_day(reference)

    if payload.method == CheckInMethod.BIOMETRIC and not payload.biometric_verified:
        raise ApiError(
            status_code=422,
            code="BIOMETRIC_NOT_VERIFIED",
            message="Biometric verification is required for biometric check-in.",
        )

    if _get_record_for_day(db, user.id, today) is not None:
        raise ApiError(status_code=409, code="ALREADY_CHECKED_IN", message="Already checked in today.")

    is_valid, flags = evaluate_location(list_work_locations(db), payload.lat, payload.lon)
    check_in_flags: dict[str, Any] = {"check_in": dict(flags)}
    if payload.accuracy_m is not None:
        check_in_flags["check_in"]["accuracy_m"] = payload.accuracy_m

    holiday = is_holiday(db, today)
    start, _ = _day_bounds_for_user(db, user.id, today)
    status = derive_checkin_status(
        to_local(reference).time(),
        start,
        grace_minutes=get_settings().late_grace_minutes,
        is_holiday=holiday,
    )

    record = Attendance(
        user_id=user.id,
        work_date=today,
        check_in=reference,
        check_in_lat=payload.lat,
        check_in_lon=payload.lon,
        check_in_location=payload.location_label,
        check_in_notes=payload.notes,
        check_in_method=payload.method,
        status=status,
        working_hours=0.0,
        overtime_hours=0.0,
        is_location_valid=is_valid,
        requires_approval=not is_valid,
        flags=check_in_flags,
    )
    db.add(record)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ApiError(status_code=409, code="ALREADY_CHECKED_IN", message="Already checked in today.") from exc
    db.refresh(record)

    logger.info(
        "attendance_checked_in",
        extra={
            "user_id": user.id,
            "attendance_id": record.id,
            "status": record.status.value,
            "method": record.check_in_method.value,
            "is_location_valid": is_valid,
        },
    )
    return record


def check_out(
    db: Session,
    user: User,
    payload: AttendanceCheckoutRequest,
    *,
    now: datetime | None = None,
) -> Attendance:
    reference = normalize_ts(now)
    today = local_day(reference)

    record = _get_record_for_day(db, user.id, today)
    if record is None or record.check_in is None or record.check_out is not None:
        raise ApiError(status_code=409, code="NOT_CHECKED_IN", message="No open check-in found for today.")

    is_valid, flags = evaluate_location(list_work_locations(db), payload.lat, payload.lon)
    _, end = _day_bounds_for_user(db, user.id, today)
    holiday = record.status == AttendanceStatus.HOLIDAY or is_holiday(db, today)

    working_hours = calculate_working_hours(record.check_in, reference)
    record.check_out = reference
    record.check_out_lat = payload.lat
    record.check_out_lon = payload.lon
    record.check_out_location = payload.location_label
    record.check_out_notes = payload.notes
    record.working_hours = working_hours
    record.overtime_hours = calculate_overtime_hours(
        working_hours,
        get_settings().standard_daily_hours,
        is_holiday=holiday,
    )
    record.status = derive_checkout_status(
        record.status,
        to_local(reference).time(),
        end,
        grace_minutes=get_settings().late_grace_minutes,
    )
    record.is_location_valid = record.is_location_valid and is_valid
    if not is_valid:
        record.requires_approval = True
    record.flags = {**(record.flags or {}), "check_out": dict(flags)}

    db.commit()
    db.refresh(record)
    logger.info(
        "attendance_checked_out",
        extra={
            "user_id": user.id,
            "attendance_id": record.id,
            "status": record.status.value,
            "working_hours": record.working_hours,
            "overtime_hours": record.overtime_hours,
        },
    )
    return record


def get_today_attendance(db: Session, *, now: datetime | None = None) -> list[Attendance]:
    return get_attendance_for_date(db, local_day(now))


def get_user_today_attendance(db: Session, user_id: int, *, now: datetime | None = None) -> Attendance | None:
    return _get_record_for_day(db, user_id, local_day(now))


def get_attendance_for_date(db: Session, day: date) -> list[Attendance]:
    stmt = select(Attendance).where(Attendance.work_date == day).order_by(Attendance.check_in.asc(), Attendance.id.asc())
    return list(db.scalars(stmt).all())


def list_attendance_for_user(
    db: Session,
    user_id: int,
    *,
    start: date | None = None,
    end: date | None = None,
) -> list[Attendance]:
    stmt = select(Attendance).where(Attendance.user_id == user_id)
    if start is not None:
        stmt = stmt.where(Attendance.work_date >= start)
    if end is not None:
        stmt = stmt.where(Attendance.work_date <= end)
    stmt = stmt.order_by(Attendance.work_date.desc(), Attendance.id.desc())
    return list(db.scalars(stmt).all())


def get_incomplete_attendance(db: Session) -> list[Attendance]:
    stmt = (
        select(Attendance)
        .where(Attendance.check_in.is_not(None), Attendance.check_out.is_(None))
        .order_by(Attendance.work_date.asc(), Attendance.id.asc())
    )
    return list(db.scalars(stmt).all())


def list_all_attendance_with_users(db: Session, *, start: date, end: date) -> list[tuple[Attendance, User]]:
    stmt = (
        select(Attendance, User)
        .join(User, User.id == Attendance.user_id)
        .where(Attendance.work_date >= start, Attendance.work_date <= end)
        .order_by(Attendance.work_date.desc(), User.full_name.asc(), Attendance.id.asc())
    )
    return [(record, user) for record, user in db.execute(stmt).all()]


def admin_update_attendance(db: Session, record_id: int, payload: AttendanceAdminUpdateRequest) -> Attendance:
    record = db.get(Attendance, record_id)
    if record is None:
        raise not_found("attendance record")

    changes = payload.model_dump(exclude_unset=True)
    check_in_value = normalize_ts(changes["check_in"]) if changes.get("check_in") else record.check_in
    # an explicit null check_out reopens the record
    if "check_out" in changes:
        check_out_value = normalize_ts(changes["check_out"]) if changes["check_out"] else None
    else:
        check_out_value = record.check_out
    if check_in_value is not None and check_out_value is not None and check_out_value < check_in_value:
        raise ApiError(
            status_code=422,
            code="INVALID_TIME_RANGE",
            message="check_out must not be before check_in.",
        )

    record.check_in = check_in_value
    record.check_out = check_out_value
    if changes.get("status") is not None:
        record.status = changes["status"]
    if "requires_approval" in changes and changes["requires_approval"] is not None:
        record.requires_approval = changes["requires_approval"]
    if "admin_notes" in changes:
        record.admin_notes = changes["admin_notes"]

    if record.check_in is not None and record.check_out is not None:
        record.working_hours = calculate_working_hours(record.check_in, record.check_out)
        record.overtime_hours = calculate_overtime_hours(
            record.working_hours,
            get_settings().standard_daily_hours,
            is_holiday=record.status == AttendanceStatus.HOLIDAY or is_holiday(db, record.work_date),
        )
    elif record.check_out is None:
        record.working_hours = 0.0
        record.overtime_hours = 0.0

    record.flags = {**(record.flags or {}), "admin_edited": True}
    db.commit()
    db.refresh(record)
    return record


def auto_checkout_stale_records(db: Session, *, now: datetime | None = None) -> list[int]:
    """Close open records from earlier local days.

    Each record is closed at 23:59:59 of its own day with zero hours and the
    ``incomplete`` status. Records of the current day are left alone.
    """
    today = local_day(now)
    stale = list(
        db.scalars(
            select(Attendance).where(
                Attendance.check_in.is_not(None),
                Attendance.check_out.is_(None),
                Attendance.work_date < today,
            )
        ).all()
    )
    if not stale:
        return []

    closed_ids: list[int] = []
    for record in stale:
        record.check_out = local_end_of_day_utc(record.work_date)
        record.check_out_location = AUTO_CHECKOUT_LOCATION
        record.check_out_notes = AUTO_CHECKOUT_NOTES
        record.admin_notes = AUTO_CHECKOUT_ADMIN_NOTES
        record.working_hours = 0.0
        record.overtime_hours = 0.0
        record.status = AttendanceStatus.INCOMPLETE
        record.flags = {**(record.flags or {}), "auto_checkout": True}
        closed_ids.append(record.id)

    db.commit()
    logger.info("auto_checkout_applied", extra={"closed": len(closed_ids), "attendance_ids": closed_ids})
    return closed_ids


def attendance_event_payload(record: Attendance, user: User) -> dict[str, Any]:
    return {
        "type": "attendance_update",
        "data": {
            "attendance_id": record.id,
            "user_id": user.id,
            "user_name": user.full_name,
            "work_date": record.work_date.isoformat(),
            "check_in": record.check_in.isoformat() if record.check_in else None,
            "check_out": record.check_out.isoformat() if record.check_out else None,
            "status": record.status.value,
            "working_hours": record.working_hours,
        },
    }


def _month_bounds(year: int, month: int) -> tuple[date, date]:
    days_in_month = monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, days_in_month)


def _daily_project_hours(db: Session, user_id: int, start: date, end: date) -> list[tuple[date, float]]:
    stmt = (
        select(ProjectTimeEntry.work_date, func.sum(ProjectTimeEntry.hours_spent))
        .where(
            ProjectTimeEntry.user_id == user_id,
            ProjectTimeEntry.work_date >= start,
            ProjectTimeEntry.work_date <= end,
        )
        .group_by(ProjectTimeEntry.work_date)
        .order_by(ProjectTimeEntry.work_date.asc())
    )
    return [(day, round(float(hours or 0.0), 2)) for day, hours in db.execute(stmt).all()]


def build_monthly_history(
    db: Session,
    user_id: int,
    *,
    year: int,
    month: int,
    today: date | None = None,
) -> MonthlyHistory:
    if month < 1 or month > 12:
        raise ApiError(status_code=422, code="INVALID_MONTH", message="month must be between 1 and 12.")

    user = db.get(User, user_id)
    if user is None:
        raise not_found("user")

    start, end = _month_bounds(year, month)
    reference_day = today or local_day()
    # future days do not count towards the attendance rate
    if reference_day < start:
        counted_until = start - timedelta(days=1)
    else:
        counted_until = min(end, reference_day)

    records = sorted(
        list_attendance_for_user(db, user_id, start=start, end=end),
        key=lambda item: (item.work_date, item.id),
    )
    holidays = holiday_dates_between(db, start, end)
    summary = summarize_month(
        [record for record in records if record.work_date <= counted_until],
        working_dates_between(start, counted_until, holidays),
    )

    return MonthlyHistory(
        user=user,
        year=year,
        month=month,
        records=records,
        project_hours=_daily_project_hours(db, user_id, start, end),
        summary=summary,
    )
