from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from hrportal.audit import audit_user_action, client_ip, user_agent
from hrportal.db import get_db
from hrportal.errors import ApiError
from hrportal.models import User
from hrportal.schemas import LoginRequest, LoginResponse, LogoutResponse, RegisterRequest, UserRead
from hrportal.security import (
    bearer_scheme,
    create_session_token,
    decode_session_token,
    ensure_login_attempt_allowed,
    extract_session_token,
    register_login_failure,
    register_login_success,
    require_user,
    verify_password,
)
from hrportal.services.sessions import open_session, revoke_session
from hrportal.services.users import get_user_by_username, register_user
from hrportal.settings import get_settings

router = APIRouter(tags=["auth"])
settings = get_settings()


def _set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        max_age=settings.session_minutes * 60,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
    )


@router.post("/api/login", response_model=LoginResponse)
def login(
    payload: LoginRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
) -> LoginResponse:
    ip = client_ip(request)
    if ip:
        try:
            ensure_login_attempt_allowed(ip)
        except ApiError:
            audit_user_action(
                db,
                request,
                actor=None,
                action="LOGIN_FAIL",
                success=False,
                details={"username": payload.username, "reason": "TOO_MANY_ATTEMPTS"},
            )
            raise

    user = get_user_by_username(db, payload.username)
    if user is None or not verify_password(payload.password, user.password_hash):
        if ip:
            register_login_failure(ip)
        audit_user_action(
            db,
            request,
            actor=None,
            action="LOGIN_FAIL",
            success=False,
            details={"username": payload.username, "reason": "INVALID_CREDENTIALS"},
        )
        raise ApiError(status_code=401, code="INVALID_CREDENTIALS", message="Invalid credentials.")

    if not user.is_active:
        audit_user_action(
            db,
            request,
            actor=user,
            action="LOGIN_FAIL",
            success=False,
            details={"reason": "USER_INACTIVE"},
        )
        raise ApiError(status_code=403, code="USER_INACTIVE", message="User account is inactive.")

    if ip:
        register_login_success(ip)

    session = open_session(db, user, ip=ip, user_agent=user_agent(request))
    token = create_session_token(session)
    _set_session_cookie(response, token)
    request.state.actor = user.role.value
    request.state.actor_id = str(user.id)

    audit_user_action(
        db,
        request,
        actor=user,
        action="LOGIN_SUCCESS",
        entity_type="user_session",
        entity_id=session.id,
    )
    return LoginResponse(user=UserRead.model_validate(user), token=token, expires_at=session.expires_at)


@router.post("/api/logout", response_model=LogoutResponse)
def logout(
    request: Request,
    response: Response,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> LogoutResponse:
    token = extract_session_token(request, credentials)
    revoked = False
    actor: User | None = None
    if token:
        try:
            claims = decode_session_token(token)
        except ApiError:
            # an unreadable token has no server-side session to revoke
            claims = None
        if claims is not None:
            revoked = revoke_session(db, claims["jti"])
            actor = db.get(User, int(claims["sub"]))

    response.delete_cookie(settings.session_cookie_name)
    if revoked:
        audit_user_action(db, request, actor=actor, action="LOGOUT")
    return LogoutResponse(ok=True)


@router.post("/api/register", response_model=UserRead, status_code=status.HTTP_201_CREATED)
def register(
    payload: RegisterRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> User:
    user = register_user(db, payload)
    audit_user_action(
        db,
        request,
        actor=user,
        action="USER_REGISTERED",
        entity_type="user",
        entity_id=user.id,
        details={"username": user.username},
    )
    return user


@router.get("/api/user", response_model=UserRead)
def current_user(user: User = Depends(require_user)) -> User:
    return user
