from __future__ import annotations

import threading
from collections import defaultdict, deque
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from passlib.exc import UnknownHashError
from sqlalchemy.orm import Session

from hrportal.db import get_db
from hrportal.errors import ApiError
from hrportal.models import User, UserRole, UserSession
from hrportal.services.sessions import resolve_session
from hrportal.settings import get_settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
bearer_scheme = HTTPBearer(auto_error=False)

_LOCK = threading.Lock()
_FAILED_ATTEMPTS: dict[str, deque[datetime]] = defaultdict(deque)
_MAX_ATTEMPTS = 10
_ATTEMPT_WINDOW = timedelta(minutes=10)
_LAST_SEEN_RESOLUTION = timedelta(seconds=60)

STAFF_ROLES: tuple[UserRole, ...] = (UserRole.ADMIN, UserRole.HR)
MANAGEMENT_ROLES: tuple[UserRole, ...] = (UserRole.ADMIN, UserRole.HR, UserRole.MANAGER)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _cleanup_attempts(ip: str, now: datetime) -> None:
    queue = _FAILED_ATTEMPTS[ip]
    threshold = now - _ATTEMPT_WINDOW
    while queue and queue[0] < threshold:
        queue.popleft()
    if not queue:
        _FAILED_ATTEMPTS.pop(ip, None)


def ensure_login_attempt_allowed(ip: str) -> None:
    now = _utcnow()
    with _LOCK:
        _cleanup_attempts(ip, now)
        queue = _FAILED_ATTEMPTS.get(ip, deque())
        if len(queue) >= _MAX_ATTEMPTS:
            raise ApiError(
                status_code=429,
                code="TOO_MANY_ATTEMPTS",
                message="Too many failed login attempts. Please try again later.",
            )


def register_login_failure(ip: str) -> None:
    now = _utcnow()
    with _LOCK:
        _cleanup_attempts(ip, now)
        _FAILED_ATTEMPTS[ip].append(now)


def register_login_success(ip: str) -> None:
    with _LOCK:
        _FAILED_ATTEMPTS.pop(ip, None)


def reset_login_attempts() -> None:
    with _LOCK:
        _FAILED_ATTEMPTS.clear()


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return pwd_context.verify(password, password_hash)
    except (ValueError, TypeError, UnknownHashError):
        # Malformed hashes are treated as a failed login.
        return False


def create_session_token(session: UserSession) -> str:
    settings = get_settings()
    issued_at = session.created_at or _utcnow()
    claims = {
        "sub": str(session.user_id),
        "jti": session.jti,
        "iss": settings.session_issuer,
        "aud": settings.session_audience,
        "iat": int(issued_at.timestamp()),
        "exp": int(session.expires_at.timestamp()),
        "typ": "session",
    }
    return jwt.encode(claims, settings.session_secret, algorithm="HS256")


def decode_session_token(token: str) -> dict[str, Any]:
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.session_secret,
            algorithms=["HS256"],
            audience=settings.session_audience,
            issuer=settings.session_issuer,
            options={"require_sub": True, "require_iat": True, "require_exp": True, "require_jti": True},
        )
    except JWTError as exc:
        raise ApiError(status_code=401, code="UNAUTHORIZED", message="Session token is invalid.") from exc

    if payload.get("typ") != "session":
        raise ApiError(status_code=401, code="UNAUTHORIZED", message="Session token type is invalid.")

    jti = payload.get("jti")
    if not isinstance(jti, str) or not jti:
        raise ApiError(status_code=401, code="UNAUTHORIZED", message="Session token is invalid.")
    return payload


def extract_session_token(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None,
) -> str | None:
    cookie_value = request.cookies.get(get_settings().session_cookie_name)
    if cookie_value:
        return cookie_value
    if credentials is not None and credentials.scheme.lower() == "bearer":
        return credentials.credentials
    return None


def authenticate_session_token(db: Session, token: str, *, now: datetime | None = None) -> User:
    reference = now or _utcnow()
    payload = decode_session_token(token)

    session = resolve_session(db, payload["jti"], now=reference)
    if session is None or str(session.user_id) != str(payload.get("sub")):
        raise ApiError(status_code=401, code="SESSION_EXPIRED", message="Session has expired. Please log in again.")

    user = db.get(User, session.user_id)
    if user is None:
        raise ApiError(status_code=401, code="SESSION_EXPIRED", message="Session has expired. Please log in again.")
    if not user.is_active:
        raise ApiError(status_code=403, code="USER_INACTIVE", message="User account is inactive.")

    if session.last_seen_at is None or reference - session.last_seen_at >= _LAST_SEEN_RESOLUTION:
        session.last_seen_at = reference
        db.commit()
    return user


def require_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    token = extract_session_token(request, credentials)
    if not token:
        raise ApiError(status_code=401, code="UNAUTHORIZED", message="Authentication required.")

    user = authenticate_session_token(db, token)
    request.state.actor = user.role.value
    request.state.actor_id = str(user.id)
    return user


def require_roles(*roles: UserRole) -> Callable[..., User]:
    if not roles:
        raise ValueError("At least one role is required")
    allowed = frozenset(roles)

    def _dependency(user: User = Depends(require_user)) -> User:
        if user.role not in allowed:
            raise ApiError(status_code=403, code="FORBIDDEN", message="Insufficient permissions.")
        return user

    return _dependency


def ensure_self_or_roles(user: User, user_id: int, roles: tuple[UserRole, ...] = STAFF_ROLES) -> None:
    if user.id == user_id or user.role in roles:
        return
    raise ApiError(status_code=403, code="FORBIDDEN", message="Insufficient permissions.")
