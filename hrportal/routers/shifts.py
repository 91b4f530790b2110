from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from hrportal.audit import audit_user_action
from hrportal.db import get_db
from hrportal.models import Shift, User
from hrportal.schemas import DeleteResponse, ShiftCreate, ShiftRead, ShiftUpdate
from hrportal.security import MANAGEMENT_ROLES, ensure_self_or_roles, require_roles, require_user
from hrportal.services.shifts import (
    create_shift,
    delete_shift,
    list_all_shifts,
    list_shifts_for_user,
    list_shifts_in_range,
    update_shift,
)

router = APIRouter(tags=["shifts"])


@router.post("/api/shifts", response_model=ShiftRead, status_code=status.HTTP_201_CREATED)
def create_shift_endpoint(
    payload: ShiftCreate,
    request: Request,
    actor: User = Depends(require_roles(*MANAGEMENT_ROLES)),
    db: Session = Depends(get_db),
) -> Shift:
    shift = create_shift(db, payload, created_by=actor)
    audit_user_action(
        db,
        request,
        actor=actor,
        action="SHIFT_CREATED",
        entity_type="shift",
        entity_id=shift.id,
        details={"user_id": shift.user_id, "start_time": shift.start_time.isoformat()},
    )
    return shift


@router.get("/api/shifts", response_model=list[ShiftRead])
def list_shifts_endpoint(
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
    _: User = Depends(require_roles(*MANAGEMENT_ROLES)),
    db: Session = Depends(get_db),
) -> list[Shift]:
    if start is not None and end is not None:
        return list_shifts_in_range(db, start, end)
    return list_all_shifts(db)


@router.get("/api/shifts/user/{user_id}", response_model=list[ShiftRead])
def user_shifts_endpoint(
    user_id: int,
    actor: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> list[Shift]:
    ensure_self_or_roles(actor, user_id, MANAGEMENT_ROLES)
    return list_shifts_for_user(db, user_id)


@router.put("/api/shifts/{shift_id}", response_model=ShiftRead)
def update_shift_endpoint(
    shift_id: int,
    payload: ShiftUpdate,
    request: Request,
    actor: User = Depends(require_roles(*MANAGEMENT_ROLES)),
    db: Session = Depends(get_db),
) -> Shift:
    shift = update_shift(db, shift_id, payload)
    audit_user_action(
        db,
        request,
        actor=actor,
        action="SHIFT_UPDATED",
        entity_type="shift",
        entity_id=shift.id,
        details={"fields": sorted(payload.model_fields_set)},
    )
    return shift


@router.delete("/api/shifts/{shift_id}", response_model=DeleteResponse)
def delete_shift_endpoint(
    shift_id: int,
    request: Request,
    actor: User = Depends(require_roles(*MANAGEMENT_ROLES)),
    db: Session = Depends(get_db),
) -> DeleteResponse:
    delete_shift(db, shift_id)
    audit_user_action(db, request, actor=actor, action="SHIFT_DELETED", entity_type="shift", entity_id=shift_id)
    return DeleteResponse(ok=True, id=shift_id)
