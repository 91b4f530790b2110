from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from hrportal.errors import ApiError, not_found
from hrportal.models import User, UserRole
from hrportal.schemas import RegisterRequest, UserCreate, UserUpdate
from hrportal.security import hash_password
from hrportal.services.sessions import revoke_user_sessions
from hrportal.settings import get_settings

logger = logging.getLogger("hrportal.users")

_SELF_EDITABLE_FIELDS = frozenset({"email", "full_name", "phone", "password"})


@dataclass(frozen=True, slots=True)
class SetupResult:
    success: bool
    message: str
    admin_username: str | None = None


def _default_org_fields(role: UserRole) -> tuple[str, str]:
    if role == UserRole.ADMIN:
        return "Administration", "System Administrator"
    return "General", "Employee"


def _normalize_username(value: str) -> str:
    return value.strip()


def _normalize_email(value: str) -> str:
    return value.strip().lower()


def _ensure_unique(
    db: Session,
    *,
    username: str | None = None,
    email: str | None = None,
    exclude_user_id: int | None = None,
) -> None:
    if username is not None:
        stmt = select(User.id).where(func.lower(User.username) == username.lower())
        if exclude_user_id is not None:
            stmt = stmt.where(User.id != exclude_user_id)
        if db.scalar(stmt) is not None:
            raise ApiError(status_code=409, code="USERNAME_TAKEN", message="Username is already in use.")

    if email is not None:
        stmt = select(User.id).where(func.lower(User.email) == email.lower())
        if exclude_user_id is not None:
            stmt = stmt.where(User.id != exclude_user_id)
        if db.scalar(stmt) is not None:
            raise ApiError(status_code=409, code="EMAIL_TAKEN", message="Email is already in use.")


def create_user(db: Session, payload: UserCreate) -> User:
    username = _normalize_username(payload.username)
    email = _normalize_email(payload.email)
    _ensure_unique(db, username=username, email=email)

    default_department, default_position = _default_org_fields(payload.role)
    user = User(
        username=username,
        email=email,
        password_hash=hash_password(payload.password),
        full_name=payload.full_name.strip(),
        role=payload.role,
        department=payload.department or default_department,
        position=payload.position or default_position,
        phone=payload.phone,
        hire_date=payload.hire_date,
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("user_created", extra={"user_id": user.id, "role": user.role.value})
    return user


def register_user(db: Session, payload: RegisterRequest) -> User:
    if not get_settings().allow_self_registration:
        raise ApiError(status_code=403, code="REGISTRATION_DISABLED", message="Self registration is disabled.")
    return create_user(
        db,
        UserCreate(
            username=payload.username,
            email=payload.email,
            password=payload.password,
            full_name=payload.full_name,
            role=UserRole.EMPLOYEE,
        ),
    )


def get_user_or_404(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise not_found("user")
    return user


def get_user_by_username(db: Session, username: str) -> User | None:
    return db.scalar(select(User).where(func.lower(User.username) == _normalize_username(username).lower()))


def list_users(db: Session, *, include_inactive: bool = False) -> list[User]:
    stmt = select(User).order_by(User.full_name.asc(), User.id.asc())
    if not include_inactive:
        stmt = stmt.where(User.is_active.is_(True))
    return list(db.scalars(stmt).all())


def update_user(db: Session, user: User, payload: UserUpdate, *, actor: User) -> User:
    changes: dict[str, Any] = payload.model_dump(exclude_unset=True)
    if actor.role != UserRole.ADMIN:
        if actor.id != user.id:
            raise ApiError(status_code=403, code="FORBIDDEN", message="Insufficient permissions.")
        forbidden = sorted(set(changes) - _SELF_EDITABLE_FIELDS)
        if forbidden:
            raise ApiError(
                status_code=403,
                code="FORBIDDEN",
                message=f"Only administrators can change: {', '.join(forbidden)}.",
            )

    if "email" in changes and changes["email"] is not None:
        changes["email"] = _normalize_email(changes["email"])
        _ensure_unique(db, email=changes["email"], exclude_user_id=user.id)

    password = changes.pop("password", None)
    if password:
        user.password_hash = hash_password(password)

    for field, value in changes.items():
        if value is None and field in {"email", "full_name", "role"}:
            continue
        setattr(user, field, value)

    db.commit()
    db.refresh(user)
    return user


def set_user_active(db: Session, user_id: int, *, is_active: bool) -> User:
    user = get_user_or_404(db, user_id)
    user.is_active = is_active
    revoked = 0
    if not is_active:
        revoked = revoke_user_sessions(db, user.id)
    db.commit()
    db.refresh(user)
    logger.info(
        "user_active_changed",
        extra={"user_id": user.id, "is_active": is_active, "revoked_sessions": revoked},
    )
    return user


def ensure_default_admin(db: Session) -> SetupResult:
    existing_admin = db.scalar(select(User).where(User.role == UserRole.ADMIN).order_by(User.id.asc()))
    if existing_admin is not None:
        return SetupResult(
            success=True,
            message="Admin user already exists.",
            admin_username=existing_admin.username,
        )

    settings = get_settings()
    try:
        admin = create_user(
            db,
            UserCreate(
                username=settings.default_admin_username,
                email=settings.default_admin_email,
                password=settings.default_admin_password,
                full_name="System Administrator",
                role=UserRole.ADMIN,
            ),
        )
    except ApiError as exc:
        db.rollback()
        return SetupResult(success=False, message=exc.message)

    logger.warning("default_admin_created", extra={"username": admin.username})
    return SetupResult(
        success=True,
        message="Default admin user created. Change the password after the first login.",
        admin_username=admin.username,
    )


def validate_authentication_system(db: Session) -> dict[str, Any]:
    total_users = int(db.scalar(select(func.count(User.id))) or 0)
    admin_users = int(db.scalar(select(func.count(User.id)).where(User.role == UserRole.ADMIN)) or 0)
    issues: list[str] = []
    if total_users == 0:
        issues.append("no_users")
    if admin_users == 0:
        issues.append("no_admin_user")
    return {
        "ok": not issues,
        "total_users": total_users,
        "admin_users": admin_users,
        "issues": issues,
    }
