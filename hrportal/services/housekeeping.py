from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Iterable

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from hrportal.models import (
    Announcement,
    DeliveryStatus,
    LeaveRequest,
    Message,
    MessageDeliveryLog,
    OvertimeRequest,
    RequestStatus,
    Shift,
    ShiftStatus,
)
from hrportal.services.clock import local_day, normalize_ts
from hrportal.services.toil import expire_toil_entries
from hrportal.settings import get_settings

logger = logging.getLogger("hrportal.housekeeping")


def select_ids_to_prune(rows: Iterable[tuple[int, int, datetime]], keep: int) -> list[int]:
    """Return ids beyond the newest ``keep`` rows per owner.

    ``rows`` are ``(id, owner_id, timestamp)`` tuples in any order. Ties on the
    timestamp are broken by the higher id being newer.
    """
    by_owner: dict[int, list[tuple[datetime, int]]] = defaultdict(list)
    for row_id, owner_id, ts in rows:
        by_owner[owner_id].append((ts, row_id))

    prune: list[int] = []
    safe_keep = max(0, keep)
    for owner_rows in by_owner.values():
        owner_rows.sort(reverse=True)
        prune.extend(row_id for _, row_id in owner_rows[safe_keep:])
    return sorted(prune)


def _prune_processed_leave_requests(db: Session, keep: int) -> int:
    rows = db.execute(
        select(LeaveRequest.id, LeaveRequest.user_id, LeaveRequest.submitted_at).where(
            LeaveRequest.status != RequestStatus.PENDING
        )
    ).all()
    ids = select_ids_to_prune(rows, keep)
    if ids:
        db.execute(delete(LeaveRequest).where(LeaveRequest.id.in_(ids)))
    return len(ids)


def _prune_processed_overtime_requests(db: Session, keep: int) -> int:
    rows = db.execute(
        select(OvertimeRequest.id, OvertimeRequest.user_id, OvertimeRequest.created_at).where(
            OvertimeRequest.status != RequestStatus.PENDING
        )
    ).all()
    ids = select_ids_to_prune(rows, keep)
    if ids:
        db.execute(delete(OvertimeRequest).where(OvertimeRequest.id.in_(ids)))
    return len(ids)


def run_cleanup(db: Session, *, now: datetime | None = None) -> dict[str, int]:
    settings = get_settings()
    reference = normalize_ts(now)

    expired_announcements = db.execute(
        delete(Announcement).where(
            Announcement.expires_at.is_not(None),
            Announcement.expires_at <= reference,
        )
    ).rowcount
    finished_shifts = db.execute(
        delete(Shift).where(
            Shift.status.in_((ShiftStatus.COMPLETED, ShiftStatus.CANCELLED)),
            Shift.created_at < reference - timedelta(days=settings.finished_shift_retention_days),
        )
    ).rowcount
    old_messages = db.execute(
        delete(Message).where(Message.sent_at < reference - timedelta(days=settings.message_retention_days))
    ).rowcount
    failed_deliveries = db.execute(
        update(MessageDeliveryLog)
        .where(
            MessageDeliveryLog.delivery_status == DeliveryStatus.PENDING,
            MessageDeliveryLog.last_attempt_at
            < reference - timedelta(minutes=settings.message_delivery_timeout_minutes),
        )
        .values(delivery_status=DeliveryStatus.FAILED, error_message="delivery_timeout")
    ).rowcount
    pruned_leaves = _prune_processed_leave_requests(db, settings.request_history_per_user)
    pruned_overtime = _prune_processed_overtime_requests(db, settings.request_history_per_user)
    db.commit()

    expired_toil = expire_toil_entries(db, today=local_day(reference))

    result = {
        "expired_announcements": int(expired_announcements or 0),
        "finished_shifts": int(finished_shifts or 0),
        "old_messages": int(old_messages or 0),
        "failed_deliveries": int(failed_deliveries or 0),
        "pruned_leave_requests": pruned_leaves,
        "pruned_overtime_requests": pruned_overtime,
        "expired_toil_entries": expired_toil,
    }
    logger.info("cleanup_applied", extra=result)
    return result
