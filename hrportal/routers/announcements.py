from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from hrportal.audit import audit_user_action
from hrportal.db import get_db
from hrportal.models import Announcement, Holiday, User, UserRole
from hrportal.schemas import AnnouncementCreate, AnnouncementRead, DeleteResponse, HolidayRead, HolidayUpsert
from hrportal.security import STAFF_ROLES, require_roles, require_user
from hrportal.services.announcements import create_announcement, deactivate_announcement, list_active_announcements
from hrportal.services.clock import utcnow
from hrportal.services.holidays import create_holiday, delete_holiday, list_holidays, update_holiday

router = APIRouter(tags=["announcements"])


@router.get("/api/announcements", response_model=list[AnnouncementRead])
def list_announcements_endpoint(
    _: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> list[Announcement]:
    return list_active_announcements(db, now=utcnow())


@router.post("/api/announcements", response_model=AnnouncementRead, status_code=status.HTTP_201_CREATED)
def create_announcement_endpoint(
    payload: AnnouncementCreate,
    request: Request,
    actor: User = Depends(require_roles(*STAFF_ROLES)),
    db: Session = Depends(get_db),
) -> Announcement:
    announcement = create_announcement(db, actor, payload, now=utcnow())
    audit_user_action(
        db,
        request,
        actor=actor,
        action="ANNOUNCEMENT_CREATED",
        entity_type="announcement",
        entity_id=announcement.id,
        details={"priority": announcement.priority},
    )
    return announcement


@router.delete("/api/announcements/{announcement_id}", response_model=DeleteResponse)
def delete_announcement_endpoint(
    announcement_id: int,
    request: Request,
    actor: User = Depends(require_roles(*STAFF_ROLES)),
    db: Session = Depends(get_db),
) -> DeleteResponse:
    deactivate_announcement(db, announcement_id)
    audit_user_action(
        db,
        request,
        actor=actor,
        action="ANNOUNCEMENT_DEACTIVATED",
        entity_type="announcement",
        entity_id=announcement_id,
    )
    return DeleteResponse(ok=True, id=announcement_id)


@router.get("/api/holidays", response_model=list[HolidayRead])
def list_holidays_endpoint(
    year: int | None = Query(default=None, ge=2000, le=2100),
    _: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> list[Holiday]:
    return list_holidays(db, year=year)


@router.post("/api/holidays", response_model=HolidayRead, status_code=status.HTTP_201_CREATED)
def create_holiday_endpoint(
    payload: HolidayUpsert,
    request: Request,
    actor: User = Depends(require_roles(UserRole.ADMIN, UserRole.HR)),
    db: Session = Depends(get_db),
) -> Holiday:
    holiday = create_holiday(db, payload)
    audit_user_action(
        db,
        request,
        actor=actor,
        action="HOLIDAY_CREATED",
        entity_type="holiday",
        entity_id=holiday.id,
        details={"holiday_date": holiday.holiday_date.isoformat(), "is_recurring": holiday.is_recurring},
    )
    return holiday


@router.put("/api/holidays/{holiday_id}", response_model=HolidayRead)
def update_holiday_endpoint(
    holiday_id: int,
    payload: HolidayUpsert,
    request: Request,
    actor: User = Depends(require_roles(UserRole.ADMIN, UserRole.HR)),
    db: Session = Depends(get_db),
) -> Holiday:
    holiday = update_holiday(db, holiday_id, payload)
    audit_user_action(
        db,
        request,
        actor=actor,
        action="HOLIDAY_UPDATED",
        entity_type="holiday",
        entity_id=holiday.id,
        details={"holiday_date": holiday.holiday_date.isoformat()},
    )
    return holiday


@router.delete("/api/holidays/{holiday_id}", response_model=DeleteResponse)
def delete_holiday_endpoint(
    holiday_id: int,
    request: Request,
    actor: User = Depends(require_roles(UserRole.ADMIN, UserRole.HR)),
    db: Session = Depends(get_db),
) -> DeleteResponse:
    delete_holiday(db, holiday_id)
    audit_user_action(db, request, actor=actor, action="HOLIDAY_DELETED", entity_type="holiday", entity_id=holiday_id)
    return DeleteResponse(ok=True, id=holiday_id)
