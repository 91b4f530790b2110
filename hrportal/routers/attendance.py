from datetime import date

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, Response, status
from sqlalchemy.orm import Session

from hrportal.audit import audit_user_action
from hrportal.db import get_db
from hrportal.models import Attendance, User, UserRole, WorkLocation
from hrportal.realtime import manager
from hrportal.schemas import (
    AttendanceAdminUpdateRequest,
    AttendanceCheckinRequest,
    AttendanceCheckoutRequest,
    AttendanceRead,
    DailyProjectHoursRead,
    MonthlyAttendanceHistoryResponse,
    MonthlyAttendanceSummaryRead,
    WorkLocationCreate,
    WorkLocationRead,
)
from hrportal.security import STAFF_ROLES, ensure_self_or_roles, require_roles, require_user
from hrportal.services.attendance import (
    MonthlyHistory,
    admin_update_attendance,
    attendance_event_payload,
    build_monthly_history,
    check_in,
    check_out,
    create_work_location,
    get_attendance_for_date,
    get_incomplete_attendance,
    get_today_attendance,
    get_user_today_attendance,
    list_attendance_for_user,
    list_work_locations,
)
from hrportal.services.clock import local_day
from hrportal.services.exports import build_monthly_history_xlsx_bytes

router = APIRouter(tags=["attendance"])
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _history_response(history: MonthlyHistory) -> MonthlyAttendanceHistoryResponse:
    summary = history.summary
    return MonthlyAttendanceHistoryResponse(
        user_id=history.user.id,
        year=history.year,
        month=history.month,
        records=[AttendanceRead.model_validate(record) for record in history.records],
        project_hours=[DailyProjectHoursRead(work_date=day, hours=hours) for day, hours in history.project_hours],
        summary=MonthlyAttendanceSummaryRead(
            working_days=summary.working_days,
            present_days=summary.present_days,
            late_days=summary.late_days,
            early_leave_days=summary.early_leave_days,
            incomplete_days=summary.incomplete_days,
            absent_days=summary.absent_days,
            total_hours=summary.total_hours,
            overtime_hours=summary.overtime_hours,
            project_hours=history.project_hours_total,
            attendance_rate=summary.attendance_rate,
        ),
    )


def _resolve_month(year: int | None, month: int | None) -> tuple[int, int]:
    today = local_day()
    return year or today.year, month or today.month


@router.post("/api/attendance/checkin", response_model=AttendanceRead, status_code=status.HTTP_201_CREATED)
def checkin_endpoint(
    payload: AttendanceCheckinRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> Attendance:
    record = check_in(db, user, payload)
    request.state.flags = record.flags
    audit_user_action(
        db,
        request,
        actor=user,
        action="ATTENDANCE_CHECK_IN",
        entity_type="attendance",
        entity_id=record.id,
        details={
            "method": record.check_in_method.value,
            "status": record.status.value,
            "is_location_valid": record.is_location_valid,
        },
    )
    background_tasks.add_task(manager.broadcast, attendance_event_payload(record, user))
    return record


@router.post("/api/attendance/checkout", response_model=AttendanceRead)
def checkout_endpoint(
    payload: AttendanceCheckoutRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> Attendance:
    record = check_out(db, user, payload)
    request.state.flags = record.flags
    audit_user_action(
        db,
        request,
        actor=user,
        action="ATTENDANCE_CHECK_OUT",
        entity_type="attendance",
        entity_id=record.id,
        details={
            "status": record.status.value,
            "working_hours": record.working_hours,
            "overtime_hours": record.overtime_hours,
        },
    )
    background_tasks.add_task(manager.broadcast, attendance_event_payload(record, user))
    return record


@router.get("/api/attendance/today", response_model=list[AttendanceRead])
def today_attendance_endpoint(
    _: User = Depends(require_roles(*STAFF_ROLES)),
    db: Session = Depends(get_db),
) -> list[Attendance]:
    return get_today_attendance(db)


@router.get("/api/attendance/incomplete", response_model=list[AttendanceRead])
def incomplete_attendance_endpoint(
    _: User = Depends(require_roles(*STAFF_ROLES)),
    db: Session = Depends(get_db),
) -> list[Attendance]:
    return get_incomplete_attendance(db)


@router.get("/api/attendance/me/today", response_model=AttendanceRead | None)
def my_today_attendance_endpoint(
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> Attendance | None:
    return get_user_today_attendance(db, user.id)


@router.get("/api/attendance/user/{user_id}", response_model=list[AttendanceRead])
def user_attendance_endpoint(
    user_id: int,
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    actor: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> list[Attendance]:
    ensure_self_or_roles(actor, user_id)
    return list_attendance_for_user(db, user_id, start=start_date, end=end_date)


@router.get("/api/attendance/date/{day}", response_model=list[AttendanceRead])
def attendance_for_date_endpoint(
    day: date,
    _: User = Depends(require_roles(*STAFF_ROLES)),
    db: Session = Depends(get_db),
) -> list[Attendance]:
    return get_attendance_for_date(db, day)


@router.get("/api/attendance/history/{user_id}", response_model=MonthlyAttendanceHistoryResponse)
def attendance_history_endpoint(
    user_id: int,
    year: int | None = Query(default=None, ge=2000, le=2100),
    month: int | None = Query(default=None, ge=1, le=12),
    actor: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> MonthlyAttendanceHistoryResponse:
    ensure_self_or_roles(actor, user_id)
    resolved_year, resolved_month = _resolve_month(year, month)
    return _history_response(build_monthly_history(db, user_id, year=resolved_year, month=resolved_month))


@router.get("/api/attendance/history/{user_id}/export")
def attendance_history_export_endpoint(
    user_id: int,
    request: Request,
    year: int | None = Query(default=None, ge=2000, le=2100),
    month: int | None = Query(default=None, ge=1, le=12),
    actor: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> Response:
    ensure_self_or_roles(actor, user_id)
    resolved_year, resolved_month = _resolve_month(year, month)
    history = build_monthly_history(db, user_id, year=resolved_year, month=resolved_month)
    content = build_monthly_history_xlsx_bytes(history)
    audit_user_action(
        db,
        request,
        actor=actor,
        action="ATTENDANCE_HISTORY_EXPORTED",
        entity_type="user",
        entity_id=user_id,
        details={"year": resolved_year, "month": resolved_month},
    )
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={
            "Content-Disposition": (
                f'attachment; filename="attendance-{user_id}-{resolved_year}-{resolved_month:02d}.xlsx"'
            ),
        },
    )


@router.put("/api/attendance/{record_id}", response_model=AttendanceRead)
def update_attendance_endpoint(
    record_id: int,
    payload: AttendanceAdminUpdateRequest,
    request: Request,
    actor: User = Depends(require_roles(*STAFF_ROLES)),
    db: Session = Depends(get_db),
) -> Attendance:
    record = admin_update_attendance(db, record_id, payload)
    audit_user_action(
        db,
        request,
        actor=actor,
        action="ATTENDANCE_UPDATED",
        entity_type="attendance",
        entity_id=record.id,
        details={"fields": sorted(payload.model_fields_set)},
    )
    return record


@router.get("/api/work-locations", response_model=list[WorkLocationRead])
def list_work_locations_endpoint(
    _: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> list[WorkLocation]:
    return list_work_locations(db)


@router.post("/api/work-locations", response_model=WorkLocationRead, status_code=status.HTTP_201_CREATED)
def create_work_location_endpoint(
    payload: WorkLocationCreate,
    request: Request,
    actor: User = Depends(require_roles(UserRole.ADMIN)),
    db: Session = Depends(get_db),
) -> WorkLocation:
    location = create_work_location(db, payload)
    audit_user_action(
        db,
        request,
        actor=actor,
        action="WORK_LOCATION_CREATED",
        entity_type="work_location",
        entity_id=location.id,
        details={"name": location.name, "radius_m": location.radius_m},
    )
    return location
