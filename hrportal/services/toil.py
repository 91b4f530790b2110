from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from hrportal.errors import ApiError
from hrportal.models import ToilBalance
from hrportal.settings import get_settings

logger = logging.getLogger("hrportal.toil")


def _usable_entries_stmt(user_id: int, today: date):
    return (
        select(ToilBalance)
        .where(
            ToilBalance.user_id == user_id,
            ToilBalance.is_expired.is_(False),
            ToilBalance.hours_remaining > 0,
            ToilBalance.expires_at >= today,
        )
        .order_by(ToilBalance.expires_at.asc(), ToilBalance.id.asc())
    )


def get_toil_balance(db: Session, user_id: int, *, today: date) -> float:
    total = db.scalar(
        select(func.coalesce(func.sum(ToilBalance.hours_remaining), 0.0)).where(
            ToilBalance.user_id == user_id,
            ToilBalance.is_expired.is_(False),
            ToilBalance.expires_at >= today,
        )
    )
    return round(float(total or 0.0), 2)


def credit_toil(
    db: Session,
    *,
    user_id: int,
    hours: float,
    earned_date: date,
    overtime_request_id: int | None = None,
) -> ToilBalance:
    if hours <= 0:
        raise ApiError(status_code=422, code="INVALID_TOIL_HOURS", message="TOIL hours must be positive.")
    entry = ToilBalance(
        user_id=user_id,
        overtime_request_id=overtime_request_id,
        hours_earned=round(hours, 2),
        hours_used=0.0,
        hours_remaining=round(hours, 2),
        earned_date=earned_date,
        expires_at=earned_date + timedelta(days=get_settings().toil_expiry_days),
        is_expired=False,
    )
    db.add(entry)
    db.flush()
    logger.info(
        "toil_credited",
        extra={"user_id": user_id, "hours": entry.hours_earned, "expires_at": entry.expires_at},
    )
    return entry


def consume_entries(entries: Sequence[ToilBalance], hours: float) -> list[tuple[ToilBalance, float]]:
    """Plan how ``hours`` are drawn from ``entries`` in the given order.

    Returns ``(entry, hours_taken)`` pairs. Raises when the entries cannot cover
    the requested hours; nothing is mutated in that case.
    """
    remaining = round(hours, 2)
    plan: list[tuple[ToilBalance, float]] = []
    for entry in entries:
        if remaining <= 0:
            break
        taken = round(min(entry.hours_remaining, remaining), 2)
        if taken <= 0:
            continue
        plan.append((entry, taken))
        remaining = round(remaining - taken, 2)

    if remaining > 0:
        raise ApiError(status_code=422, code="INSUFFICIENT_TOIL", message="Insufficient TOIL balance.")
    return plan


def use_toil_hours(db: Session, *, user_id: int, hours: float, today: date) -> float:
    if hours <= 0:
        return 0.0
    entries = list(db.scalars(_usable_entries_stmt(user_id, today)).all())
    plan = consume_entries(entries, hours)
    for entry, taken in plan:
        entry.hours_used = round(entry.hours_used + taken, 2)
        entry.hours_remaining = round(entry.hours_remaining - taken, 2)
    db.flush()
    logger.info("toil_used", extra={"user_id": user_id, "hours": round(hours, 2), "entries": len(plan)})
    return round(hours, 2)


def expire_toil_entries(db: Session, *, today: date) -> int:
    entries = list(
        db.scalars(
            select(ToilBalance).where(
                ToilBalance.is_expired.is_(False),
                ToilBalance.expires_at < today,
            )
        ).all()
    )
    for entry in entries:
        entry.is_expired = True
    if entries:
        db.commit()
    return len(entries)
