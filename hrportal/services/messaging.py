from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from hrportal.errors import ApiError, not_found
from hrportal.models import (
    ChatGroup,
    DeliveryStatus,
    GroupMembership,
    GroupRole,
    Message,
    MessageDeliveryLog,
    User,
    UserRole,
)
from hrportal.schemas import ChatGroupCreate, MessageCreate

logger = logging.getLogger("hrportal.messaging")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _get_group_or_404(db: Session, group_id: int) -> ChatGroup:
    group = db.get(ChatGroup, group_id)
    if group is None:
        raise not_found("chat group")
    return group


def _membership(db: Session, group_id: int, user_id: int) -> GroupMembership | None:
    return db.scalar(
        select(GroupMembership).where(
            GroupMembership.group_id == group_id,
            GroupMembership.user_id == user_id,
        )
    )


def create_chat_group(db: Session, creator: User, payload: ChatGroupCreate) -> ChatGroup:
    group = ChatGroup(name=payload.name.strip(), description=payload.description, created_by=creator.id)
    db.add(group)
    db.flush()

    db.add(GroupMembership(group_id=group.id, user_id=creator.id, role=GroupRole.ADMIN))
    for member_id in sorted(set(payload.member_ids) - {creator.id}):
        member = db.get(User, member_id)
        if member is None or not member.is_active:
            raise not_found("user")
        db.add(GroupMembership(group_id=group.id, user_id=member_id, role=GroupRole.MEMBER))

    db.commit()
    db.refresh(group)
    logger.info("chat_group_created", extra={"group_id": group.id, "created_by": creator.id})
    return group


def add_group_member(
    db: Session,
    group_id: int,
    *,
    actor: User,
    user_id: int,
    role: GroupRole = GroupRole.MEMBER,
) -> GroupMembership:
    _get_group_or_404(db, group_id)
    actor_membership = _membership(db, group_id, actor.id)
    is_group_admin = actor_membership is not None and actor_membership.role == GroupRole.ADMIN
    if not is_group_admin and actor.role != UserRole.ADMIN:
        raise ApiError(status_code=403, code="FORBIDDEN", message="Only group admins can add members.")

    member = db.get(User, user_id)
    if member is None:
        raise not_found("user")
    if _membership(db, group_id, user_id) is not None:
        raise ApiError(status_code=409, code="ALREADY_MEMBER", message="User is already a group member.")

    membership = GroupMembership(group_id=group_id, user_id=user_id, role=role)
    db.add(membership)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ApiError(status_code=409, code="ALREADY_MEMBER", message="User is already a group member.") from exc
    db.refresh(membership)
    return membership


def list_groups_for_user(db: Session, user_id: int) -> list[ChatGroup]:
    stmt = (
        select(ChatGroup)
        .join(GroupMembership, GroupMembership.group_id == ChatGroup.id)
        .where(GroupMembership.user_id == user_id)
        .order_by(ChatGroup.name.asc(), ChatGroup.id.asc())
    )
    return list(db.scalars(stmt).all())


def list_group_member_ids(db: Session, group_id: int) -> list[int]:
    stmt = select(GroupMembership.user_id).where(GroupMembership.group_id == group_id).order_by(GroupMembership.user_id)
    return list(db.scalars(stmt).all())


def message_recipient_ids(db: Session, message: Message) -> list[int]:
    if message.recipient_id is not None:
        return [message.recipient_id]
    if message.group_id is None:
        return []
    return [member_id for member_id in list_group_member_ids(db, message.group_id) if member_id != message.sender_id]


def send_message(db: Session, sender: User, payload: MessageCreate) -> tuple[Message, list[int]]:
    """Persist a direct or group message and its per-recipient delivery logs.

    Returns the message together with the recipient user ids so the caller can
    fan it out over the realtime channel.
    """
    if (payload.recipient_id is None) == (payload.group_id is None):
        raise ApiError(
            status_code=422,
            code="INVALID_TARGET",
            message="Exactly one of recipient_id or group_id is required.",
        )

    if payload.recipient_id is not None:
        recipient = db.get(User, payload.recipient_id)
        if recipient is None or not recipient.is_active:
            raise not_found("recipient")
    else:
        _get_group_or_404(db, payload.group_id)
        if _membership(db, payload.group_id, sender.id) is None:
            raise ApiError(status_code=403, code="NOT_GROUP_MEMBER", message="Sender is not a member of this group.")

    message = Message(
        sender_id=sender.id,
        recipient_id=payload.recipient_id,
        group_id=payload.group_id,
        content=payload.content,
        message_type=payload.message_type,
        is_read=False,
        is_deleted=False,
        delivery_status=DeliveryStatus.PENDING,
        sent_at=_utcnow(),
    )
    db.add(message)
    db.flush()

    recipient_ids = message_recipient_ids(db, message)
    for recipient_id in recipient_ids:
        db.add(
            MessageDeliveryLog(
                message_id=message.id,
                recipient_id=recipient_id,
                delivery_status=DeliveryStatus.PENDING,
                attempts=0,
                last_attempt_at=message.sent_at,
            )
        )

    db.commit()
    db.refresh(message)
    return message, recipient_ids


def get_conversation(db: Session, user_id: int, other_id: int, *, limit: int = 200) -> list[Message]:
    stmt = (
        select(Message)
        .where(
            Message.group_id.is_(None),
            Message.is_deleted.is_(False),
            or_(
                and_(Message.sender_id == user_id, Message.recipient_id == other_id),
                and_(Message.sender_id == other_id, Message.recipient_id == user_id),
            ),
        )
        .order_by(Message.sent_at.desc(), Message.id.desc())
        .limit(limit)
    )
    return list(reversed(db.scalars(stmt).all()))


def get_group_messages(db: Session, group_id: int, *, user: User, limit: int = 200) -> list[Message]:
    _get_group_or_404(db, group_id)
    if _membership(db, group_id, user.id) is None and user.role != UserRole.ADMIN:
        raise ApiError(status_code=403, code="NOT_GROUP_MEMBER", message="User is not a member of this group.")
    stmt = (
        select(Message)
        .where(Message.group_id == group_id, Message.is_deleted.is_(False))
        .order_by(Message.sent_at.desc(), Message.id.desc())
        .limit(limit)
    )
    return list(reversed(db.scalars(stmt).all()))


def mark_messages_read(db: Session, user_id: int, message_ids: Iterable[int]) -> int:
    ids = sorted(set(message_ids))
    if not ids:
        return 0
    now = _utcnow()
    result = db.execute(
        update(Message)
        .where(
            Message.id.in_(ids),
            Message.recipient_id == user_id,
            Message.is_read.is_(False),
        )
        .values(is_read=True, delivery_status=DeliveryStatus.READ)
    )
    db.execute(
        update(MessageDeliveryLog)
        .where(
            MessageDeliveryLog.message_id.in_(ids),
            MessageDeliveryLog.recipient_id == user_id,
        )
        .values(delivery_status=DeliveryStatus.READ, read_at=now)
    )
    db.commit()
    return int(result.rowcount or 0)


def get_unread_count(db: Session, user_id: int) -> int:
    total = db.scalar(
        select(func.count(Message.id)).where(
            Message.recipient_id == user_id,
            Message.is_read.is_(False),
            Message.is_deleted.is_(False),
        )
    )
    return int(total or 0)


def update_delivery_status(
    db: Session,
    message_id: int,
    recipient_ids: Iterable[int],
    *,
    status: DeliveryStatus,
    error_message: str | None = None,
) -> int:
    ids = list(recipient_ids)
    if not ids:
        return 0
    now = _utcnow()
    stmt = select(MessageDeliveryLog).where(
        MessageDeliveryLog.message_id == message_id,
        MessageDeliveryLog.recipient_id.in_(ids),
    )
    if status != DeliveryStatus.READ:
        # a read receipt is final
        stmt = stmt.where(MessageDeliveryLog.delivery_status != DeliveryStatus.READ)
    logs = list(db.scalars(stmt).all())
    for log in logs:
        log.delivery_status = status
        log.attempts = (log.attempts or 0) + 1
        log.last_attempt_at = now
        log.error_message = error_message
        if status == DeliveryStatus.DELIVERED:
            log.delivered_at = now

    message = db.get(Message, message_id)
    if message is not None and status == DeliveryStatus.DELIVERED and message.delivery_status == DeliveryStatus.PENDING:
        message.delivery_status = DeliveryStatus.DELIVERED
    db.commit()
    return len(logs)


def list_failed_messages(db: Session, *, limit: int = 100) -> list[MessageDeliveryLog]:
    stmt = (
        select(MessageDeliveryLog)
        .where(MessageDeliveryLog.delivery_status == DeliveryStatus.FAILED)
        .order_by(MessageDeliveryLog.last_attempt_at.desc(), MessageDeliveryLog.id.desc())
        .limit(limit)
    )
    return list(db.scalars(stmt).all())


def serialize_message(message: Message) -> dict[str, object]:
    return {
        "id": message.id,
        "sender_id": message.sender_id,
        "recipient_id": message.recipient_id,
        "group_id": message.group_id,
        "content": message.content,
        "message_type": message.message_type,
        "sent_at": message.sent_at.isoformat() if message.sent_at else None,
    }
