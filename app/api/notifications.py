"""Notification inbox and live feed.

GET  /v1/notifications               latest 20 + unread count
POST /v1/notifications/{id}/read     mark one as read (own only)
WS   /v1/notifications/ws?token=...  push feed for the caller

Browsers cannot set an Authorization header on a websocket handshake, so
the feed takes the access token as a query parameter and validates it
the same way require_user does.
"""

from __future__ import annotations

import logging
from typing import Annotated
from uuid import UUID

import jwt
from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, status
from fastapi.websockets import WebSocketDisconnect
from pydantic import BaseModel

from app.api.dependencies import principal_from_token, require_user
from app.models.principal import Principal
from app.repos.registry import repos
from app.services import notification_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/notifications", tags=["notifications"])

# Idle feeds send a keepalive this often so dead sockets are noticed.
_KEEPALIVE_SECONDS = 25.0


class NotificationOut(BaseModel):
    id: str
    type: str
    title: str
    message: str
    is_read: bool
    created_at: int


class InboxOut(BaseModel):
    unread_count: int
    notifications: list[NotificationOut]


@router.get("", response_model=InboxOut)
async def get_notifications(
    principal: Annotated[Principal, Depends(require_user)],
) -> InboxOut:
    recent = await notification_service.list_recent(
        repos.notifications, principal.user_uuid
    )
    unread = await notification_service.unread_count(
        repos.notifications, principal.user_uuid
    )
    return InboxOut(
        unread_count=unread,
        notifications=[
            NotificationOut(
                id=str(n.id),
                type=n.type,
                title=n.title,
                message=n.message,
                is_read=n.is_read,
                created_at=n.created_at,
            )
            for n in recent
        ],
    )


@router.post("/{notification_id}/read", status_code=status.HTTP_204_NO_CONTENT)
async def mark_notification_read(
    notification_id: UUID,
    principal: Annotated[Principal, Depends(require_user)],
) -> None:
    found = await notification_service.mark_read(
        repos.notifications, notification_id, principal.user_uuid
    )
    if not found:
        raise HTTPException(status_code=404, detail="notification not found")


@router.websocket("/ws")
async def notification_feed(
    websocket: WebSocket,
    token: Annotated[str, Query()],
) -> None:
    try:
        principal = principal_from_token(token)
        user_id = principal.user_uuid
    except (jwt.InvalidTokenError, ValueError) as e:
        logger.warning("Notification feed rejected: %s", e)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    logger.info("Notification feed opened for user=%s", user_id)
    try:
        async with notification_service.subscribe(user_id) as sub:
            while True:
                message = await sub.next_message(timeout=_KEEPALIVE_SECONDS)
                if message is None:
                    await websocket.send_json({"type": "keepalive"})
                else:
                    await websocket.send_json(message)
    except WebSocketDisconnect:
        logger.info("Notification feed closed for user=%s", user_id)
