from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from hrportal.audit import audit_user_action
from hrportal.db import get_db
from hrportal.models import LeaveRequest, OvertimeRequest, RequestStatus, User
from hrportal.schemas import (
    LeaveRequestCreate,
    LeaveRequestRead,
    OvertimeRequestCreate,
    OvertimeRequestRead,
    RequestReviewRequest,
    ToilBalanceResponse,
)
from hrportal.security import MANAGEMENT_ROLES, ensure_self_or_roles, require_roles, require_user
from hrportal.services.clock import local_day
from hrportal.services.leaves import (
    cancel_leave_request,
    create_leave_request,
    list_leave_requests_for_user,
    list_pending_leave_requests,
    review_leave_request,
)
from hrportal.services.overtime import (
    create_overtime_request,
    list_overtime_requests,
    list_overtime_requests_for_user,
    list_pending_overtime_requests,
    review_overtime_request,
)
from hrportal.services.toil import get_toil_balance

router = APIRouter(tags=["requests"])


@router.post("/api/leave-requests", response_model=LeaveRequestRead, status_code=status.HTTP_201_CREATED)
def create_leave_request_endpoint(
    payload: LeaveRequestCreate,
    request: Request,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> LeaveRequest:
    leave = create_leave_request(db, user, payload, today=local_day())
    audit_user_action(
        db,
        request,
        actor=user,
        action="LEAVE_REQUEST_CREATED",
        entity_type="leave_request",
        entity_id=leave.id,
        details={"leave_type": leave.leave_type.value, "days": leave.days},
    )
    return leave


@router.get("/api/leave-requests/pending", response_model=list[LeaveRequestRead])
def pending_leave_requests_endpoint(
    _: User = Depends(require_roles(*MANAGEMENT_ROLES)),
    db: Session = Depends(get_db),
) -> list[LeaveRequest]:
    return list_pending_leave_requests(db)


@router.get("/api/leave-requests/user/{user_id}", response_model=list[LeaveRequestRead])
def user_leave_requests_endpoint(
    user_id: int,
    actor: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> list[LeaveRequest]:
    ensure_self_or_roles(actor, user_id, MANAGEMENT_ROLES)
    return list_leave_requests_for_user(db, user_id)


@router.put("/api/leave-requests/{request_id}", response_model=LeaveRequestRead)
def review_leave_request_endpoint(
    request_id: int,
    payload: RequestReviewRequest,
    request: Request,
    reviewer: User = Depends(require_roles(*MANAGEMENT_ROLES)),
    db: Session = Depends(get_db),
) -> LeaveRequest:
    leave = review_leave_request(
        db,
        request_id,
        reviewer=reviewer,
        approve=payload.status == "approved",
        admin_notes=payload.admin_notes,
        today=local_day(),
    )
    audit_user_action(
        db,
        request,
        actor=reviewer,
        action="LEAVE_REQUEST_REVIEWED",
        entity_type="leave_request",
        entity_id=leave.id,
        details={"status": leave.status.value},
    )
    return leave


@router.post("/api/leave-requests/{request_id}/cancel", response_model=LeaveRequestRead)
def cancel_leave_request_endpoint(
    request_id: int,
    request: Request,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> LeaveRequest:
    leave = cancel_leave_request(db, request_id, user=user)
    audit_user_action(
        db,
        request,
        actor=user,
        action="LEAVE_REQUEST_CANCELLED",
        entity_type="leave_request",
        entity_id=leave.id,
    )
    return leave


@router.post("/api/overtime-requests", response_model=OvertimeRequestRead, status_code=status.HTTP_201_CREATED)
def create_overtime_request_endpoint(
    payload: OvertimeRequestCreate,
    request: Request,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> OvertimeRequest:
    overtime = create_overtime_request(db, user, payload)
    audit_user_action(
        db,
        request,
        actor=user,
        action="OVERTIME_REQUEST_CREATED",
        entity_type="overtime_request",
        entity_id=overtime.id,
        details={"hours": overtime.hours, "compensation": overtime.compensation.value},
    )
    return overtime


@router.get("/api/overtime-requests", response_model=list[OvertimeRequestRead])
def list_overtime_requests_endpoint(
    request_status: RequestStatus | None = Query(default=None, alias="status"),
    _: User = Depends(require_roles(*MANAGEMENT_ROLES)),
    db: Session = Depends(get_db),
) -> list[OvertimeRequest]:
    return list_overtime_requests(db, status=request_status)


@router.get("/api/overtime-requests/pending", response_model=list[OvertimeRequestRead])
def pending_overtime_requests_endpoint(
    _: User = Depends(require_roles(*MANAGEMENT_ROLES)),
    db: Session = Depends(get_db),
) -> list[OvertimeRequest]:
    return list_pending_overtime_requests(db)


@router.get("/api/overtime-requests/user/{user_id}", response_model=list[OvertimeRequestRead])
def user_overtime_requests_endpoint(
    user_id: int,
    actor: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> list[OvertimeRequest]:
    ensure_self_or_roles(actor, user_id, MANAGEMENT_ROLES)
    return list_overtime_requests_for_user(db, user_id)


@router.put("/api/overtime-requests/{request_id}", response_model=OvertimeRequestRead)
def review_overtime_request_endpoint(
    request_id: int,
    payload: RequestReviewRequest,
    request: Request,
    reviewer: User = Depends(require_roles(*MANAGEMENT_ROLES)),
    db: Session = Depends(get_db),
) -> OvertimeRequest:
    overtime = review_overtime_request(
        db,
        request_id,
        reviewer=reviewer,
        approve=payload.status == "approved",
        admin_notes=payload.admin_notes,
    )
    audit_user_action(
        db,
        request,
        actor=reviewer,
        action="OVERTIME_REQUEST_REVIEWED",
        entity_type="overtime_request",
        entity_id=overtime.id,
        details={"status": overtime.status.value, "compensation": overtime.compensation.value},
    )
    return overtime


@router.get("/api/toil/balance/{user_id}", response_model=ToilBalanceResponse)
def toil_balance_endpoint(
    user_id: int,
    actor: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> ToilBalanceResponse:
    ensure_self_or_roles(actor, user_id, MANAGEMENT_ROLES)
    return ToilBalanceResponse(user_id=user_id, hours_remaining=get_toil_balance(db, user_id, today=local_day()))
