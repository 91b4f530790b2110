from __future__ import annotations

from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session

from hrportal.errors import ApiError, not_found
from hrportal.models import Holiday
from hrportal.schemas import HolidayUpsert
from hrportal.services.attendance_calc import is_recurring_match


def _ensure_date_available(db: Session, holiday_date: date, *, exclude_id: int | None = None) -> None:
    stmt = select(Holiday.id).where(Holiday.holiday_date == holiday_date)
    if exclude_id is not None:
        stmt = stmt.where(Holiday.id != exclude_id)
    if db.scalar(stmt) is not None:
        raise ApiError(status_code=409, code="HOLIDAY_EXISTS", message="A holiday already exists on this date.")


def list_holidays(db: Session, *, year: int | None = None) -> list[Holiday]:
    rows = list(db.scalars(select(Holiday).order_by(Holiday.holiday_date.asc(), Holiday.id.asc())).all())
    if year is None:
        return rows
    return [row for row in rows if row.is_recurring or row.holiday_date.year == year]


def create_holiday(db: Session, payload: HolidayUpsert) -> Holiday:
    _ensure_date_available(db, payload.holiday_date)
    holiday = Holiday(
        name=payload.name.strip(),
        holiday_date=payload.holiday_date,
        description=payload.description,
        is_recurring=payload.is_recurring,
    )
    db.add(holiday)
    db.commit()
    db.refresh(holiday)
    return holiday


def update_holiday(db: Session, holiday_id: int, payload: HolidayUpsert) -> Holiday:
    holiday = db.get(Holiday, holiday_id)
    if holiday is None:
        raise not_found("holiday")
    _ensure_date_available(db, payload.holiday_date, exclude_id=holiday.id)

    holiday.name = payload.name.strip()
    holiday.holiday_date = payload.holiday_date
    holiday.description = payload.description
    holiday.is_recurring = payload.is_recurring
    db.commit()
    db.refresh(holiday)
    return holiday


def delete_holiday(db: Session, holiday_id: int) -> None:
    holiday = db.get(Holiday, holiday_id)
    if holiday is None:
        raise not_found("holiday")
    db.delete(holiday)
    db.commit()


def holiday_dates_between(db: Session, start: date, end: date) -> set[date]:
    """Expand fixed and recurring holidays into concrete dates inside ``[start, end]``."""
    result: set[date] = set()
    for holiday in db.scalars(select(Holiday)).all():
        if not holiday.is_recurring:
            if start <= holiday.holiday_date <= end:
                result.add(holiday.holiday_date)
            continue
        for year in range(start.year, end.year + 1):
            try:
                candidate = holiday.holiday_date.replace(year=year)
            except ValueError:
                # Feb 29 in a non leap year
                continue
            if start <= candidate <= end:
                result.add(candidate)
    return result


def is_holiday(db: Session, day: date) -> bool:
    if db.scalar(select(Holiday.id).where(Holiday.holiday_date == day)) is not None:
        return True
    recurring = db.scalars(select(Holiday).where(Holiday.is_recurring.is_(True))).all()
    return any(is_recurring_match(holiday.holiday_date, day) for holiday in recurring)
