from __future__ import annotations

import logging
from datetime import date, datetime, time, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from hrportal.errors import ApiError, not_found
from hrportal.models import OvertimeCompensation, OvertimeRequest, RequestStatus, User
from hrportal.schemas import OvertimeRequestCreate
from hrportal.services.toil import credit_toil

logger = logging.getLogger("hrportal.overtime")


def overtime_hours_between(start_time: time, end_time: time) -> float:
    start = datetime.combine(date(2000, 1, 1), start_time)
    end = datetime.combine(date(2000, 1, 1), end_time)
    return round((end - start).total_seconds() / 3600, 2)


def create_overtime_request(db: Session, user: User, payload: OvertimeRequestCreate) -> OvertimeRequest:
    if payload.end_time <= payload.start_time:
        raise ApiError(
            status_code=422,
            code="INVALID_TIME_RANGE",
            message="end_time must be after start_time.",
        )

    request = OvertimeRequest(
        user_id=user.id,
        work_date=payload.work_date,
        start_time=payload.start_time,
        end_time=payload.end_time,
        hours=overtime_hours_between(payload.start_time, payload.end_time),
        reason=payload.reason,
        compensation=payload.compensation,
        status=RequestStatus.PENDING,
        created_at=datetime.now(timezone.utc),
    )
    db.add(request)
    db.commit()
    db.refresh(request)
    logger.info(
        "overtime_request_created",
        extra={"overtime_request_id": request.id, "user_id": user.id, "hours": request.hours},
    )
    return request


def get_overtime_request_or_404(db: Session, request_id: int) -> OvertimeRequest:
    request = db.get(OvertimeRequest, request_id)
    if request is None:
        raise not_found("overtime request")
    return request


def list_overtime_requests(db: Session, *, status: RequestStatus | None = None) -> list[OvertimeRequest]:
    stmt = select(OvertimeRequest).order_by(OvertimeRequest.created_at.desc(), OvertimeRequest.id.desc())
    if status is not None:
        stmt = stmt.where(OvertimeRequest.status == status)
    return list(db.scalars(stmt).all())


def list_pending_overtime_requests(db: Session) -> list[OvertimeRequest]:
    stmt = (
        select(OvertimeRequest)
        .where(OvertimeRequest.status == RequestStatus.PENDING)
        .order_by(OvertimeRequest.created_at.asc(), OvertimeRequest.id.asc())
    )
    return list(db.scalars(stmt).all())


def list_overtime_requests_for_user(db: Session, user_id: int) -> list[OvertimeRequest]:
    stmt = (
        select(OvertimeRequest)
        .where(OvertimeRequest.user_id == user_id)
        .order_by(OvertimeRequest.work_date.desc(), OvertimeRequest.id.desc())
    )
    return list(db.scalars(stmt).all())


def review_overtime_request(
    db: Session,
    request_id: int,
    *,
    reviewer: User,
    approve: bool,
    admin_notes: str | None,
) -> OvertimeRequest:
    request = get_overtime_request_or_404(db, request_id)
    if request.status != RequestStatus.PENDING:
        raise ApiError(status_code=409, code="ALREADY_PROCESSED", message="Overtime request was already processed.")

    request.status = RequestStatus.APPROVED if approve else RequestStatus.REJECTED
    request.approved_by = reviewer.id
    request.admin_notes = admin_notes
    request.processed_at = datetime.now(timezone.utc)

    if approve and request.compensation == OvertimeCompensation.TOIL:
        credit_toil(
            db,
            user_id=request.user_id,
            hours=request.hours,
            earned_date=request.work_date,
            overtime_request_id=request.id,
        )

    db.commit()
    db.refresh(request)
    logger.info(
        "overtime_request_reviewed",
        extra={"overtime_request_id": request.id, "status": request.status.value, "reviewer_id": reviewer.id},
    )
    return request
