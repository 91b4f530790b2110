from __future__ import annotations

import logging
from datetime import date, datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from hrportal.errors import ApiError, not_found
from hrportal.models import LeaveRequest, LeaveType, RequestStatus, User
from hrportal.schemas import LeaveRequestCreate
from hrportal.services.attendance_calc import count_leave_days
from hrportal.services.holidays import holiday_dates_between
from hrportal.services.toil import get_toil_balance, use_toil_hours
from hrportal.settings import get_settings

logger = logging.getLogger("hrportal.leaves")

_BLOCKING_STATUSES = (RequestStatus.PENDING, RequestStatus.APPROVED)


def _toil_hours_for_days(days: int) -> float:
    return round(days * get_settings().standard_daily_hours, 2)


def create_leave_request(
    db: Session,
    user: User,
    payload: LeaveRequestCreate,
    *,
    today: date,
) -> LeaveRequest:
    if payload.end_date < payload.start_date:
        raise ApiError(
            status_code=422,
            code="INVALID_DATE_RANGE",
            message="end_date must be greater than or equal to start_date.",
        )

    holidays = holiday_dates_between(db, payload.start_date, payload.end_date)
    days = count_leave_days(payload.start_date, payload.end_date, holidays)
    if days <= 0:
        raise ApiError(
            status_code=422,
            code="NO_WORKING_DAYS",
            message="The requested range contains no working days.",
        )

    overlapping = db.scalar(
        select(LeaveRequest.id).where(
            LeaveRequest.user_id == user.id,
            LeaveRequest.status.in_(_BLOCKING_STATUSES),
            LeaveRequest.start_date <= payload.end_date,
            LeaveRequest.end_date >= payload.start_date,
        )
    )
    if overlapping is not None:
        raise ApiError(
            status_code=409,
            code="LEAVE_OVERLAP",
            message="An open leave request already covers part of this range.",
        )

    if payload.leave_type == LeaveType.TOIL:
        needed = _toil_hours_for_days(days)
        if get_toil_balance(db, user.id, today=today) < needed:
            raise ApiError(status_code=422, code="INSUFFICIENT_TOIL", message="Insufficient TOIL balance.")

    leave = LeaveRequest(
        user_id=user.id,
        leave_type=payload.leave_type,
        start_date=payload.start_date,
        end_date=payload.end_date,
        days=days,
        reason=payload.reason,
        status=RequestStatus.PENDING,
        submitted_at=datetime.now(timezone.utc),
    )
    db.add(leave)
    db.commit()
    db.refresh(leave)
    logger.info(
        "leave_request_created",
        extra={"leave_request_id": leave.id, "user_id": user.id, "leave_type": leave.leave_type.value, "days": days},
    )
    return leave


def get_leave_request_or_404(db: Session, request_id: int) -> LeaveRequest:
    leave = db.get(LeaveRequest, request_id)
    if leave is None:
        raise not_found("leave request")
    return leave


def list_leave_requests_for_user(db: Session, user_id: int) -> list[LeaveRequest]:
    stmt = (
        select(LeaveRequest)
        .where(LeaveRequest.user_id == user_id)
        .order_by(LeaveRequest.submitted_at.desc(), LeaveRequest.id.desc())
    )
    return list(db.scalars(stmt).all())


def list_pending_leave_requests(db: Session) -> list[LeaveRequest]:
    stmt = (
        select(LeaveRequest)
        .where(LeaveRequest.status == RequestStatus.PENDING)
        .order_by(LeaveRequest.submitted_at.asc(), LeaveRequest.id.asc())
    )
    return list(db.scalars(stmt).all())


def review_leave_request(
    db: Session,
    request_id: int,
    *,
    reviewer: User,
    approve: bool,
    admin_notes: str | None,
    today: date,
) -> LeaveRequest:
    leave = get_leave_request_or_404(db, request_id)
    if leave.status != RequestStatus.PENDING:
        raise ApiError(status_code=409, code="ALREADY_PROCESSED", message="Leave request was already processed.")

    if approve and leave.leave_type == LeaveType.TOIL:
        use_toil_hours(db, user_id=leave.user_id, hours=_toil_hours_for_days(leave.days), today=today)

    leave.status = RequestStatus.APPROVED if approve else RequestStatus.REJECTED
    leave.approved_by = reviewer.id
    leave.admin_notes = admin_notes
    leave.processed_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(leave)
    logger.info(
        "leave_request_reviewed",
        extra={"leave_request_id": leave.id, "status": leave.status.value, "reviewer_id": reviewer.id},
    )
    return leave


def cancel_leave_request(db: Session, request_id: int, *, user: User) -> LeaveRequest:
    leave = get_leave_request_or_404(db, request_id)
    if leave.user_id != user.id:
        raise ApiError(status_code=403, code="FORBIDDEN", message="Only the requester can cancel a leave request.")
    if leave.status != RequestStatus.PENDING:
        raise ApiError(status_code=409, code="ALREADY_PROCESSED", message="Leave request was already processed.")

    leave.status = RequestStatus.CANCELLED
    leave.processed_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(leave)
    return leave
