from datetime import date, timedelta
from typing import Literal

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from hrportal.audit import audit_user_action
from hrportal.db import get_db
from hrportal.errors import ApiError
from hrportal.models import AuditLog, MessageDeliveryLog, User, UserRole
from hrportal.schemas import (
    AttendanceRead,
    AttendanceTrendPoint,
    AttendanceWithUserRead,
    AuditLogRead,
    DashboardMetricsResponse,
    LeaveRequestRead,
    MaintenanceRunResponse,
    MessageDeliveryLogRead,
    OvertimeRequestRead,
    PendingRequestsResponse,
    SessionStatsResponse,
)
from hrportal.security import MANAGEMENT_ROLES, STAFF_ROLES, require_roles
from hrportal.services.attendance import auto_checkout_stale_records, list_all_attendance_with_users
from hrportal.services.clock import local_day, utcnow
from hrportal.services.dashboard import get_attendance_trend, get_dashboard_metrics, get_pending_requests
from hrportal.services.housekeeping import run_cleanup
from hrportal.services.messaging import list_failed_messages
from hrportal.services.sessions import cleanup_expired_sessions, get_session_stats

router = APIRouter(tags=["admin"])
MAX_ATTENDANCE_RANGE_DAYS = 93


@router.get("/api/dashboard/metrics", response_model=DashboardMetricsResponse)
def dashboard_metrics_endpoint(
    _: User = Depends(require_roles(*MANAGEMENT_ROLES)),
    db: Session = Depends(get_db),
) -> DashboardMetricsResponse:
    metrics = get_dashboard_metrics(db, now=utcnow())
    return DashboardMetricsResponse(
        total_employees=metrics.total_employees,
        present_today=metrics.present_today,
        attendance_rate=metrics.attendance_rate,
        pending_leaves=metrics.pending_leaves,
        pending_overtime=metrics.pending_overtime,
        new_hires=metrics.new_hires,
    )


@router.get("/api/admin/pending-requests", response_model=PendingRequestsResponse)
def pending_requests_endpoint(
    _: User = Depends(require_roles(*MANAGEMENT_ROLES)),
    db: Session = Depends(get_db),
) -> PendingRequestsResponse:
    leaves, overtime = get_pending_requests(db)
    return PendingRequestsResponse(
        leave_requests=[LeaveRequestRead.model_validate(item) for item in leaves],
        overtime_requests=[OvertimeRequestRead.model_validate(item) for item in overtime],
    )


@router.get("/api/admin/employees-attendance", response_model=list[AttendanceTrendPoint])
def employees_attendance_endpoint(
    days: int = Query(default=7, ge=1, le=90),
    _: User = Depends(require_roles(*STAFF_ROLES)),
    db: Session = Depends(get_db),
) -> list[AttendanceTrendPoint]:
    return [
        AttendanceTrendPoint(
            work_date=point.work_date,
            present=point.present,
            late=point.late,
            early_leave=point.early_leave,
            incomplete=point.incomplete,
            absent=point.absent,
        )
        for point in get_attendance_trend(db, days=days, now=utcnow())
    ]


@router.get("/api/admin/attendance", response_model=list[AttendanceWithUserRead])
def admin_attendance_endpoint(
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    _: User = Depends(require_roles(*STAFF_ROLES)),
    db: Session = Depends(get_db),
) -> list[AttendanceWithUserRead]:
    end = end_date or local_day()
    start = start_date or end - timedelta(days=6)
    if end < start:
        raise ApiError(status_code=422, code="INVALID_DATE_RANGE", message="end_date must not be before start_date.")
    if (end - start).days >= MAX_ATTENDANCE_RANGE_DAYS:
        raise ApiError(
            status_code=422,
            code="INVALID_DATE_RANGE",
            message=f"Date range must not exceed {MAX_ATTENDANCE_RANGE_DAYS} days.",
        )

    return [
        AttendanceWithUserRead(
            **AttendanceRead.model_validate(record).model_dump(),
            user_name=user.full_name,
            user_role=user.role,
            department=user.department,
        )
        for record, user in list_all_attendance_with_users(db, start=start, end=end)
    ]


@router.get("/api/admin/sessions/stats", response_model=SessionStatsResponse)
def session_stats_endpoint(
    _: User = Depends(require_roles(UserRole.ADMIN)),
    db: Session = Depends(get_db),
) -> SessionStatsResponse:
    return SessionStatsResponse(**get_session_stats(db, now=utcnow()))


@router.post("/api/admin/maintenance/{job}", response_model=MaintenanceRunResponse)
def run_maintenance_endpoint(
    job: Literal["auto-checkout", "cleanup", "session-cleanup"],
    request: Request,
    actor: User = Depends(require_roles(UserRole.ADMIN)),
    db: Session = Depends(get_db),
) -> MaintenanceRunResponse:
    now = utcnow()
    if job == "auto-checkout":
        result = {"closed": len(auto_checkout_stale_records(db, now=now))}
    elif job == "cleanup":
        result = run_cleanup(db, now=now)
    else:
        result = {"deleted_sessions": cleanup_expired_sessions(db, now=now)}

    audit_user_action(
        db,
        request,
        actor=actor,
        action="MAINTENANCE_RUN",
        entity_type="maintenance",
        entity_id=job,
        details=result,
    )
    return MaintenanceRunResponse(job=job, result=result)


@router.get("/api/admin/audit-logs", response_model=list[AuditLogRead])
def list_audit_logs_endpoint(
    action: str | None = Query(default=None),
    entity_type: str | None = Query(default=None),
    entity_id: str | None = Query(default=None),
    actor_id: str | None = Query(default=None),
    success: bool | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    _: User = Depends(require_roles(UserRole.ADMIN)),
    db: Session = Depends(get_db),
) -> list[AuditLog]:
    stmt = select(AuditLog)
    if action:
        stmt = stmt.where(AuditLog.action == action)
    if entity_type:
        stmt = stmt.where(AuditLog.entity_type == entity_type)
    if entity_id:
        stmt = stmt.where(AuditLog.entity_id == entity_id)
    if actor_id:
        stmt = stmt.where(AuditLog.actor_id == actor_id)
    if success is not None:
        stmt = stmt.where(AuditLog.success.is_(success))
    return list(db.scalars(stmt.order_by(AuditLog.id.desc()).limit(limit)).all())


@router.get("/api/admin/messages/failed", response_model=list[MessageDeliveryLogRead])
def failed_messages_endpoint(
    limit: int = Query(default=100, ge=1, le=500),
    _: User = Depends(require_roles(UserRole.ADMIN)),
    db: Session = Depends(get_db),
) -> list[MessageDeliveryLog]:
    return list_failed_messages(db, limit=limit)
