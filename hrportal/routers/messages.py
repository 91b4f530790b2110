import asyncio
import json
import logging
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, WebSocket, status
from pydantic import ValidationError
from sqlalchemy.orm import Session
from starlette.websockets import WebSocketDisconnect

from hrportal.audit import audit_user_action
from hrportal.db import SessionLocal, get_db
from hrportal.errors import ApiError
from hrportal.models import ChatGroup, DeliveryStatus, GroupMembership, Message, User, UserRole
from hrportal.realtime import manager
from hrportal.schemas import (
    ChatGroupCreate,
    ChatGroupRead,
    GroupMemberAddRequest,
    GroupMembershipRead,
    MarkReadRequest,
    MarkReadResponse,
    MessageCreate,
    MessageRead,
    UnreadCountResponse,
)
from hrportal.security import authenticate_session_token, ensure_self_or_roles, require_user
from hrportal.services.messaging import (
    add_group_member,
    create_chat_group,
    get_conversation,
    get_group_messages,
    get_unread_count,
    list_groups_for_user,
    mark_messages_read,
    send_message,
    serialize_message,
    update_delivery_status,
)
from hrportal.settings import get_settings

router = APIRouter(tags=["messages"])
logger = logging.getLogger("hrportal.realtime")
settings = get_settings()


def _mark_delivered(message_id: int, user_ids: list[int]) -> None:
    with SessionLocal() as db:
        update_delivery_status(db, message_id, user_ids, status=DeliveryStatus.DELIVERED)


async def deliver_message(message_id: int, recipient_ids: list[int], message_payload: dict[str, Any]) -> list[int]:
    delivered = await manager.send_to_users(recipient_ids, {"type": "chat_message", "data": message_payload})
    if delivered:
        await asyncio.to_thread(_mark_delivered, message_id, delivered)
    return delivered


@router.post("/api/messages", response_model=MessageRead, status_code=status.HTTP_201_CREATED)
def send_message_endpoint(
    payload: MessageCreate,
    request: Request,
    background_tasks: BackgroundTasks,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> Message:
    message, recipient_ids = send_message(db, user, payload)
    audit_user_action(
        db,
        request,
        actor=user,
        action="MESSAGE_SENT",
        entity_type="message",
        entity_id=message.id,
        details={"recipients": len(recipient_ids), "group_id": message.group_id},
    )
    background_tasks.add_task(deliver_message, message.id, recipient_ids, serialize_message(message))
    return message


@router.get("/api/messages/user/{user_id}", response_model=list[MessageRead])
def conversation_endpoint(
    user_id: int,
    limit: int = Query(default=200, ge=1, le=1000),
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> list[Message]:
    return get_conversation(db, user.id, user_id, limit=limit)


@router.get("/api/messages/group/{group_id}", response_model=list[MessageRead])
def group_messages_endpoint(
    group_id: int,
    limit: int = Query(default=200, ge=1, le=1000),
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> list[Message]:
    return get_group_messages(db, group_id, user=user, limit=limit)


@router.put("/api/messages/mark-read", response_model=MarkReadResponse)
def mark_read_endpoint(
    payload: MarkReadRequest,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> MarkReadResponse:
    return MarkReadResponse(updated=mark_messages_read(db, user.id, payload.message_ids))


@router.get("/api/messages/unread-count", response_model=UnreadCountResponse)
def unread_count_endpoint(
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> UnreadCountResponse:
    return UnreadCountResponse(count=get_unread_count(db, user.id))


@router.post("/api/chat-groups", response_model=ChatGroupRead, status_code=status.HTTP_201_CREATED)
def create_chat_group_endpoint(
    payload: ChatGroupCreate,
    request: Request,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> ChatGroup:
    group = create_chat_group(db, user, payload)
    audit_user_action(
        db,
        request,
        actor=user,
        action="CHAT_GROUP_CREATED",
        entity_type="chat_group",
        entity_id=group.id,
        details={"name": group.name},
    )
    return group


@router.post(
    "/api/chat-groups/{group_id}/members",
    response_model=GroupMembershipRead,
    status_code=status.HTTP_201_CREATED,
)
def add_group_member_endpoint(
    group_id: int,
    payload: GroupMemberAddRequest,
    request: Request,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> GroupMembership:
    membership = add_group_member(db, group_id, actor=user, user_id=payload.user_id, role=payload.role)
    audit_user_action(
        db,
        request,
        actor=user,
        action="CHAT_GROUP_MEMBER_ADDED",
        entity_type="chat_group",
        entity_id=group_id,
        details={"user_id": payload.user_id, "role": payload.role.value},
    )
    return membership


@router.get("/api/chat-groups/user/{user_id}", response_model=list[ChatGroupRead])
def user_chat_groups_endpoint(
    user_id: int,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> list[ChatGroup]:
    ensure_self_or_roles(user, user_id, (UserRole.ADMIN,))
    return list_groups_for_user(db, user_id)


def _authenticate_socket(token: str) -> int:
    with SessionLocal() as db:
        return authenticate_session_token(db, token).id


def _persist_chat_message(user_id: int, payload: MessageCreate) -> tuple[int, list[int], dict[str, Any]]:
    with SessionLocal() as db:
        sender = db.get(User, user_id)
        if sender is None or not sender.is_active:
            raise ApiError(status_code=403, code="USER_INACTIVE", message="User account is inactive.")
        message, recipient_ids = send_message(db, sender, payload)
        return message.id, recipient_ids, serialize_message(message)


async def _send_error(websocket: WebSocket, code: str, message: str) -> None:
    await websocket.send_json({"type": "error", "data": {"code": code, "message": message}})


async def _handle_frame(user_id: int, websocket: WebSocket, frame: dict[str, Any]) -> None:
    frame_type = frame.get("type")
    if frame_type == "ping":
        await websocket.send_json({"type": "pong"})
        return
    if frame_type != "chat_message":
        await _send_error(websocket, "UNKNOWN_FRAME", "Unsupported frame type.")
        return

    data = frame.get("data") if isinstance(frame.get("data"), dict) else frame
    try:
        payload = MessageCreate(
            content=data.get("content", ""),
            recipient_id=data.get("recipient_id"),
            group_id=data.get("group_id"),
            message_type=data.get("message_type", "text"),
        )
    except ValidationError:
        await _send_error(websocket, "VALIDATION_ERROR", "Invalid chat message payload.")
        return

    try:
        message_id, recipient_ids, message_payload = await asyncio.to_thread(_persist_chat_message, user_id, payload)
    except ApiError as exc:
        await _send_error(websocket, exc.code, exc.message)
        return

    await websocket.send_json({"type": "message_sent", "data": message_payload})
    await deliver_message(message_id, recipient_ids, message_payload)


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, token: str | None = Query(default=None)) -> None:
    raw_token = websocket.cookies.get(settings.session_cookie_name) or token
    if not raw_token:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    try:
        user_id = await asyncio.to_thread(_authenticate_socket, raw_token)
    except ApiError as exc:
        logger.info("realtime_auth_failed", extra={"code": exc.code})
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await manager.connect(user_id, websocket)
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                frame = json.loads(raw)
            except ValueError:
                await _send_error(websocket, "INVALID_JSON", "Frames must be JSON objects.")
                continue
            if not isinstance(frame, dict):
                await _send_error(websocket, "INVALID_JSON", "Frames must be JSON objects.")
                continue
            await _handle_frame(user_id, websocket, frame)
    except WebSocketDisconnect:
        logger.info("realtime_client_closed", extra={"user_id": user_id})
    finally:
        await manager.disconnect(user_id, websocket)
