from __future__ import annotations

from datetime import date, datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from hrportal.errors import ApiError, not_found
from hrportal.models import Shift, ShiftStatus, User
from hrportal.schemas import ShiftCreate, ShiftUpdate
from hrportal.services.clock import local_day_bounds_utc, normalize_ts


def _validate_range(start_time: datetime, end_time: datetime) -> None:
    if normalize_ts(end_time) <= normalize_ts(start_time):
        raise ApiError(
            status_code=422,
            code="INVALID_TIME_RANGE",
            message="end_time must be after start_time.",
        )


def _ensure_no_overlap(
    db: Session,
    *,
    user_id: int,
    start_time: datetime,
    end_time: datetime,
    exclude_id: int | None = None,
) -> None:
    stmt = select(Shift.id).where(
        Shift.user_id == user_id,
        Shift.status == ShiftStatus.SCHEDULED,
        Shift.start_time < normalize_ts(end_time),
        Shift.end_time > normalize_ts(start_time),
    )
    if exclude_id is not None:
        stmt = stmt.where(Shift.id != exclude_id)
    if db.scalar(stmt) is not None:
        raise ApiError(
            status_code=409,
            code="SHIFT_OVERLAP",
            message="The employee already has a scheduled shift in this period.",
        )


def create_shift(db: Session, payload: ShiftCreate, *, created_by: User) -> Shift:
    _validate_range(payload.start_time, payload.end_time)
    if db.get(User, payload.user_id) is None:
        raise not_found("user")
    _ensure_no_overlap(db, user_id=payload.user_id, start_time=payload.start_time, end_time=payload.end_time)

    shift = Shift(
        user_id=payload.user_id,
        title=payload.title.strip(),
        start_time=normalize_ts(payload.start_time),
        end_time=normalize_ts(payload.end_time),
        location=payload.location,
        notes=payload.notes,
        status=ShiftStatus.SCHEDULED,
        created_by=created_by.id,
        created_at=datetime.now(timezone.utc),
    )
    db.add(shift)
    db.commit()
    db.refresh(shift)
    return shift


def get_shift_or_404(db: Session, shift_id: int) -> Shift:
    shift = db.get(Shift, shift_id)
    if shift is None:
        raise not_found("shift")
    return shift


def list_shifts_for_user(db: Session, user_id: int) -> list[Shift]:
    stmt = select(Shift).where(Shift.user_id == user_id).order_by(Shift.start_time.asc(), Shift.id.asc())
    return list(db.scalars(stmt).all())


def list_shifts_in_range(db: Session, start: datetime, end: datetime) -> list[Shift]:
    stmt = (
        select(Shift)
        .where(Shift.start_time < normalize_ts(end), Shift.end_time > normalize_ts(start))
        .order_by(Shift.start_time.asc(), Shift.id.asc())
    )
    return list(db.scalars(stmt).all())


def list_all_shifts(db: Session) -> list[Shift]:
    return list(db.scalars(select(Shift).order_by(Shift.start_time.desc(), Shift.id.desc())).all())


def update_shift(db: Session, shift_id: int, payload: ShiftUpdate) -> Shift:
    shift = get_shift_or_404(db, shift_id)
    changes = payload.model_dump(exclude_unset=True)

    start_time = changes.get("start_time") or shift.start_time
    end_time = changes.get("end_time") or shift.end_time
    new_status = changes.get("status") or shift.status
    times_changed = "start_time" in changes or "end_time" in changes
    if times_changed:
        _validate_range(start_time, end_time)
    # reactivating a cancelled or completed shift must not create a clash
    if new_status == ShiftStatus.SCHEDULED and (times_changed or new_status != shift.status):
        _ensure_no_overlap(
            db,
            user_id=shift.user_id,
            start_time=start_time,
            end_time=end_time,
            exclude_id=shift.id,
        )

    for field, value in changes.items():
        if value is None and field in {"title", "start_time", "end_time", "status"}:
            continue
        if field in {"start_time", "end_time"}:
            value = normalize_ts(value)
        setattr(shift, field, value)

    db.commit()
    db.refresh(shift)
    return shift


def delete_shift(db: Session, shift_id: int) -> None:
    shift = get_shift_or_404(db, shift_id)
    db.delete(shift)
    db.commit()


def find_shift_for_day(db: Session, user_id: int, day: date) -> Shift | None:
    day_start, day_end = local_day_bounds_utc(day)
    stmt = (
        select(Shift)
        .where(
            Shift.user_id == user_id,
            Shift.status == ShiftStatus.SCHEDULED,
            Shift.start_time >= day_start,
            Shift.start_time < day_end,
        )
        .order_by(Shift.start_time.asc(), Shift.id.asc())
    )
    return db.scalars(stmt).first()
