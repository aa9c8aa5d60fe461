# This project was developed with assistance from AI tools.
"""Notification inbox routes and the live push WebSocket."""

import logging

from db import get_db
from db.enums import UserRole
from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..middleware.auth import CurrentUser, authenticate_websocket, require_roles
from ..schemas import Pagination
from ..schemas.notification import (
    MarkAllReadResponse,
    NotificationCreate,
    NotificationListResponse,
    NotificationResponse,
    NotificationStatisticsResponse,
    UnreadCountResponse,
)
from ..services.errors import WorkflowError
from ..services.notification import (
    ConnectionManager,
    NotificationService,
    get_connection_manager,
    get_notification_service,
)
from ._errors import to_http_exception

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    user: CurrentUser,
    unread_only: bool = Query(default=False),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=20, ge=1, le=100),
    session: AsyncSession = Depends(get_db),
    service: NotificationService = Depends(get_notification_service),
) -> NotificationListResponse:
    """Notifications addressed to the user, the user's role, or everyone."""
    items, total = await service.list_for_user(
        session, user.user_id, user.role, unread_only=unread_only, offset=offset, limit=limit
    )
    return NotificationListResponse(
        data=[NotificationResponse.model_validate(n) for n in items],
        pagination=Pagination(
            total=total,
            offset=offset,
            limit=limit,
            has_more=(offset + limit < total),
        ),
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
    service: NotificationService = Depends(get_notification_service),
) -> UnreadCountResponse:
    count = await service.get_unread_count(session, user.user_id, user.role)
    return UnreadCountResponse(unread=count)


@router.get("/statistics", response_model=NotificationStatisticsResponse)
async def notification_statistics(
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
    service: NotificationService = Depends(get_notification_service),
) -> NotificationStatisticsResponse:
    stats = await service.get_statistics(session, user.user_id, user.role)
    return NotificationStatisticsResponse(**stats)


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: int,
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
    service: NotificationService = Depends(get_notification_service),
) -> NotificationResponse:
    try:
        notification = await service.mark_read(session, notification_id, user.user_id, user.role)
    except WorkflowError as exc:
        raise to_http_exception(exc) from exc
    return NotificationResponse.model_validate(notification)


@router.post("/read-all", response_model=MarkAllReadResponse)
async def mark_all_read(
    user: CurrentUser,
    session: AsyncSession = Depends(get_db),
    service: NotificationService = Depends(get_notification_service),
) -> MarkAllReadResponse:
    updated = await service.mark_all_read(session, user.user_id, user.role)
    return MarkAllReadResponse(updated=updated)


@router.post(
    "",
    response_model=NotificationResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_roles(UserRole.ADMIN))],
)
async def send_notification(
    body: NotificationCreate,
    session: AsyncSession = Depends(get_db),
    service: NotificationService = Depends(get_notification_service),
) -> NotificationResponse:
    """Send an operator notification to a user, a role, or everyone."""
    notification = await service.send_notification(
        session,
        title=body.title,
        message=body.message,
        notification_type=body.type,
        priority=body.priority,
        recipient_id=body.recipient_id,
        recipient_role=body.recipient_role,
        action_url=body.action_url,
        scheduled_at=body.scheduled_at,
    )
    return NotificationResponse.model_validate(notification)


@router.websocket("/ws")
async def notifications_ws(
    ws: WebSocket,
    manager: ConnectionManager = Depends(get_connection_manager),
):
    """Live push channel.

    Protocol:
        Client connects with ``?token=<jwt>``.
        Server pushes ``{"type": "notification", "notification": {...}}``.
        Client may send ``"ping"``; server answers ``{"type": "pong"}``.
    """
    await ws.accept()
    user = await authenticate_websocket(ws)
    if user is None:
        return

    await manager.connect(user.user_id, ws)
    try:
        while True:
            message = await ws.receive_text()
            if message == "ping":
                await ws.send_json({"type": "pong"})
    except WebSocketDisconnect:
        logger.info("Notification socket closed for user=%s", user.user_id)
    finally:
        await manager.disconnect(user.user_id, ws)
