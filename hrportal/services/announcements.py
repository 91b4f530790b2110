from __future__ import annotations

from datetime import datetime

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from hrportal.errors import ApiError, not_found
from hrportal.models import Announcement, User
from hrportal.schemas import AnnouncementCreate
from hrportal.services.clock import normalize_ts


def create_announcement(db: Session, author: User, payload: AnnouncementCreate, *, now: datetime | None = None) -> Announcement:
    reference = normalize_ts(now)
    expires_at = normalize_ts(payload.expires_at) if payload.expires_at else None
    if expires_at is not None and expires_at <= reference:
        raise ApiError(status_code=422, code="INVALID_EXPIRY", message="expires_at must be in the future.")

    announcement = Announcement(
        title=payload.title.strip(),
        content=payload.content,
        priority=payload.priority,
        created_by=author.id,
        is_active=True,
        created_at=reference,
        expires_at=expires_at,
    )
    db.add(announcement)
    db.commit()
    db.refresh(announcement)
    return announcement


def list_active_announcements(db: Session, *, now: datetime | None = None) -> list[Announcement]:
    reference = normalize_ts(now)
    stmt = (
        select(Announcement)
        .where(
            Announcement.is_active.is_(True),
            or_(Announcement.expires_at.is_(None), Announcement.expires_at > reference),
        )
        .order_by(Announcement.created_at.desc(), Announcement.id.desc())
    )
    return list(db.scalars(stmt).all())


def deactivate_announcement(db: Session, announcement_id: int) -> Announcement:
    announcement = db.get(Announcement, announcement_id)
    if announcement is None:
        raise not_found("announcement")
    announcement.is_active = False
    db.commit()
    db.refresh(announcement)
    return announcement
