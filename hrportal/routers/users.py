from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from hrportal.audit import audit_user_action
from hrportal.db import get_db
from hrportal.models import User, UserRole
from hrportal.schemas import UserActiveUpdateRequest, UserCreate, UserRead, UserUpdate
from hrportal.security import MANAGEMENT_ROLES, ensure_self_or_roles, require_roles, require_user
from hrportal.services.users import create_user, get_user_or_404, list_users, set_user_active, update_user

router = APIRouter(tags=["users"])


@router.post("/api/users", response_model=UserRead, status_code=status.HTTP_201_CREATED)
def create_user_endpoint(
    payload: UserCreate,
    request: Request,
    actor: User = Depends(require_roles(UserRole.ADMIN, UserRole.HR)),
    db: Session = Depends(get_db),
) -> User:
    user = create_user(db, payload)
    audit_user_action(
        db,
        request,
        actor=actor,
        action="USER_CREATED",
        entity_type="user",
        entity_id=user.id,
        details={"username": user.username, "role": user.role.value},
    )
    return user


@router.get("/api/users", response_model=list[UserRead])
def list_users_endpoint(
    include_inactive: bool = Query(default=False),
    _: User = Depends(require_roles(*MANAGEMENT_ROLES)),
    db: Session = Depends(get_db),
) -> list[User]:
    return list_users(db, include_inactive=include_inactive)


@router.get("/api/users/{user_id}", response_model=UserRead)
def get_user_endpoint(
    user_id: int,
    actor: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> User:
    ensure_self_or_roles(actor, user_id, MANAGEMENT_ROLES)
    return get_user_or_404(db, user_id)


@router.put("/api/users/{user_id}", response_model=UserRead)
def update_user_endpoint(
    user_id: int,
    payload: UserUpdate,
    request: Request,
    actor: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> User:
    user = get_user_or_404(db, user_id)
    updated = update_user(db, user, payload, actor=actor)
    audit_user_action(
        db,
        request,
        actor=actor,
        action="USER_UPDATED",
        entity_type="user",
        entity_id=updated.id,
        details={"fields": sorted(field for field in payload.model_fields_set if field != "password")},
    )
    return updated


@router.patch("/api/users/{user_id}/active", response_model=UserRead)
def set_user_active_endpoint(
    user_id: int,
    payload: UserActiveUpdateRequest,
    request: Request,
    actor: User = Depends(require_roles(UserRole.ADMIN)),
    db: Session = Depends(get_db),
) -> User:
    user = set_user_active(db, user_id, is_active=payload.is_active)
    audit_user_action(
        db,
        request,
        actor=actor,
        action="USER_ACTIVE_UPDATED",
        entity_type="user",
        entity_id=user.id,
        details={"is_active": user.is_active},
    )
    return user
