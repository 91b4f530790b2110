from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, func, or_, select
from sqlalchemy.orm import Session

from hrportal.models import User, UserSession
from hrportal.settings import get_settings

logger = logging.getLogger("hrportal.sessions")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def open_session(
    db: Session,
    user: User,
    *,
    ip: str | None = None,
    user_agent: str | None = None,
    now: datetime | None = None,
) -> UserSession:
    reference = now or _utcnow()
    session = UserSession(
        jti=secrets.token_urlsafe(32),
        user_id=user.id,
        created_at=reference,
        expires_at=reference + timedelta(minutes=get_settings().session_minutes),
        last_seen_at=reference,
        ip=ip,
        user_agent=(user_agent or "")[:1024] or None,
    )
    db.add(session)
    db.commit()
    db.refresh(session)
    return session


def resolve_session(db: Session, jti: str, *, now: datetime | None = None) -> UserSession | None:
    reference = now or _utcnow()
    session = db.scalar(select(UserSession).where(UserSession.jti == jti))
    if session is None:
        return None
    if session.revoked_at is not None:
        return None
    if session.expires_at <= reference:
        return None
    return session


def revoke_session(db: Session, jti: str, *, now: datetime | None = None) -> bool:
    session = db.scalar(select(UserSession).where(UserSession.jti == jti))
    if session is None or session.revoked_at is not None:
        return False
    session.revoked_at = now or _utcnow()
    db.commit()
    return True


def revoke_user_sessions(db: Session, user_id: int, *, now: datetime | None = None) -> int:
    reference = now or _utcnow()
    sessions = list(
        db.scalars(
            select(UserSession).where(
                UserSession.user_id == user_id,
                UserSession.revoked_at.is_(None),
            )
        ).all()
    )
    for session in sessions:
        session.revoked_at = reference
    return len(sessions)


def cleanup_expired_sessions(db: Session, *, now: datetime | None = None) -> int:
    reference = now or _utcnow()
    result = db.execute(
        delete(UserSession).where(
            or_(
                UserSession.expires_at <= reference,
                UserSession.revoked_at.is_not(None),
            )
        )
    )
    db.commit()
    deleted = int(result.rowcount or 0)
    if deleted:
        logger.info("session_cleanup_applied", extra={"deleted": deleted})
    return deleted


def get_session_stats(db: Session, *, now: datetime | None = None) -> dict[str, int]:
    reference = now or _utcnow()
    total = int(db.scalar(select(func.count(UserSession.id))) or 0)
    expired = int(
        db.scalar(
            select(func.count(UserSession.id)).where(
                or_(
                    UserSession.expires_at <= reference,
                    UserSession.revoked_at.is_not(None),
                )
            )
        )
        or 0
    )
    return {"total": total, "expired": expired, "active": total - expired}
