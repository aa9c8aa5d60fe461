# This project was developed with assistance from AI tools.
"""Notification persistence and live push delivery.

The database row is the source of truth: every notification is committed
before any push is attempted. Live push goes through a ``ConnectionManager``
holding the open WebSockets of each user; a failed push is logged, the dead
socket is dropped, and the reader still finds the row through the unread
queries.

Recipient is exactly one of: a user id, a role, or nobody (broadcast).
"""

import asyncio
import logging
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any, Protocol

from db import Notification, User
from db.database import utcnow
from db.enums import NotificationPriority, NotificationType, UserRole
from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..schemas.notification import NotificationResponse
from .errors import NotFoundError

logger = logging.getLogger(__name__)


class PushConnection(Protocol):
    async def send_json(self, data: Any) -> None: ...


class ConnectionManager:
    """Registry of live connections, keyed by user id.

    The registry is shared by request handlers and the background sweeps,
    so every read or write of ``_connections`` happens under ``_lock``.
    Sends happen outside the lock on a snapshot.
    """

    def __init__(self):
        self._connections: dict[str, set[PushConnection]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, user_id: str, connection: PushConnection) -> None:
        async with self._lock:
            self._connections.setdefault(user_id, set()).add(connection)
        logger.info("Push connection registered for user=%s", user_id)

    async def disconnect(self, user_id: str, connection: PushConnection) -> None:
        async with self._lock:
            conns = self._connections.get(user_id)
            if conns is None:
                return
            conns.discard(connection)
            if not conns:
                del self._connections[user_id]

    async def connected_user_ids(self) -> set[str]:
        async with self._lock:
            return set(self._connections)

    async def connection_count(self) -> int:
        async with self._lock:
            return sum(len(c) for c in self._connections.values())

    async def send_to_user(self, user_id: str, payload: dict) -> int:
        """Push to every connection of one user. Returns successful sends."""
        return await self.send_to_users([user_id], payload)

    async def send_to_users(self, user_ids: Iterable[str], payload: dict) -> int:
        wanted = set(user_ids)
        async with self._lock:
            targets = [
                (uid, conn)
                for uid, conns in self._connections.items()
                if uid in wanted
                for conn in conns
            ]
        return await self._send(targets, payload)

    async def send_to_all(self, payload: dict) -> int:
        async with self._lock:
            targets = [(uid, conn) for uid, conns in self._connections.items() for conn in conns]
        return await self._send(targets, payload)

    async def _send(self, targets: list[tuple[str, PushConnection]], payload: dict) -> int:
        delivered = 0
        for user_id, conn in targets:
            try:
                await conn.send_json(payload)
                delivered += 1
            except Exception as exc:
                logger.warning("Dropping push connection for user=%s: %s", user_id, exc)
                await self.disconnect(user_id, conn)
        return delivered


def build_push_envelope(notification: Notification) -> dict:
    """Wire format of a live push message."""
    body = NotificationResponse.model_validate(notification).model_dump(mode="json")
    return {"type": "notification", "notification": body}


def _visible_to(user_id: str, role: UserRole):
    """Read scope: addressed to the user, to the user's role, or to everyone."""
    return and_(
        Notification.sent_at.is_not(None),
        or_(
            Notification.recipient_id == user_id,
            Notification.recipient_role == role,
            and_(Notification.recipient_id.is_(None), Notification.recipient_role.is_(None)),
        ),
    )


class NotificationService:
    """Persist-then-push notification delivery."""

    def __init__(
        self,
        manager: ConnectionManager,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.manager = manager
        self._clock = clock

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    async def send_notification(
        self,
        session: AsyncSession,
        *,
        title: str,
        message: str,
        notification_type: NotificationType,
        priority: NotificationPriority = NotificationPriority.NORMAL,
        recipient_id: str | None = None,
        recipient_role: UserRole | None = None,
        entity_type: str | None = None,
        entity_id: int | None = None,
        action_url: str | None = None,
        data: dict | None = None,
        scheduled_at: datetime | None = None,
    ) -> Notification:
        """Commit a notification and, unless scheduled for later, push it.

        Raises:
            ValueError: both ``recipient_id`` and ``recipient_role`` given.
        """
        if recipient_id is not None and recipient_role is not None:
            raise ValueError("recipient_id and recipient_role are mutually exclusive")

        now = self._clock()
        deliver_now = scheduled_at is None or scheduled_at <= now

        notification = Notification(
            title=title,
            message=message,
            type=notification_type,
            priority=priority,
            recipient_id=recipient_id,
            recipient_role=recipient_role,
            entity_type=entity_type,
            entity_id=entity_id,
            action_url=action_url,
            data=data,
            scheduled_at=scheduled_at,
            sent_at=now if deliver_now else None,
        )
        session.add(notification)
        await session.commit()
        await session.refresh(notification)

        if deliver_now:
            await self._push(session, notification)
        return notification

    async def notify_user(self, session: AsyncSession, user_id: str, **fields) -> Notification:
        return await self.send_notification(session, recipient_id=user_id, **fields)

    async def notify_role(self, session: AsyncSession, role: UserRole, **fields) -> Notification:
        """Store one role-addressed record and push to each active holder of the role."""
        return await self.send_notification(session, recipient_role=role, **fields)

    async def broadcast(self, session: AsyncSession, **fields) -> Notification:
        return await self.send_notification(session, **fields)

    async def process_scheduled(self, session: AsyncSession) -> int:
        """Deliver notifications whose ``scheduled_at`` has arrived.

        Returns:
            Number of notifications marked sent.
        """
        now = self._clock()
        stmt = (
            select(Notification)
            .where(Notification.scheduled_at <= now, Notification.sent_at.is_(None))
            .order_by(Notification.scheduled_at.asc())
        )
        due = list((await session.execute(stmt)).scalars().all())
        if not due:
            return 0

        for notification in due:
            notification.sent_at = now
        await session.commit()

        for notification in due:
            await self._push(session, notification)
        logger.info("Delivered %d scheduled notifications", len(due))
        return len(due)

    async def _push(self, session: AsyncSession, notification: Notification) -> None:
        """Best-effort live delivery; failures never propagate."""
        try:
            envelope = build_push_envelope(notification)
            if notification.recipient_id is not None:
                await self.manager.send_to_user(notification.recipient_id, envelope)
            elif notification.recipient_role is not None:
                user_ids = await self._active_user_ids(session, notification.recipient_role)
                await self.manager.send_to_users(user_ids, envelope)
            else:
                await self.manager.send_to_all(envelope)
        except Exception:
            logger.warning(
                "Live push failed for notification %s", notification.id, exc_info=True
            )

    @staticmethod
    async def _active_user_ids(session: AsyncSession, role: UserRole) -> list[str]:
        stmt = select(User.id).where(User.role == role, User.is_active.is_(True))
        return list((await session.execute(stmt)).scalars().all())

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    async def list_for_user(
        self,
        session: AsyncSession,
        user_id: str,
        role: UserRole,
        *,
        unread_only: bool = False,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[Notification], int]:
        scope = _visible_to(user_id, role)
        if unread_only:
            scope = and_(scope, Notification.read_at.is_(None))

        total = (
            await session.execute(select(func.count(Notification.id)).where(scope))
        ).scalar_one()
        stmt = (
            select(Notification)
            .where(scope)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset)
            .limit(limit)
        )
        items = list((await session.execute(stmt)).scalars().all())
        return items, total

    async def get_unread_count(self, session: AsyncSession, user_id: str, role: UserRole) -> int:
        stmt = select(func.count(Notification.id)).where(
            _visible_to(user_id, role), Notification.read_at.is_(None)
        )
        return (await session.execute(stmt)).scalar_one()

    async def mark_read(
        self,
        session: AsyncSession,
        notification_id: int,
        user_id: str,
        role: UserRole,
    ) -> Notification:
        """Mark one notification read.

        Raises:
            NotFoundError: the id does not exist or is outside the reader's scope.
        """
        stmt = select(Notification).where(
            Notification.id == notification_id, _visible_to(user_id, role)
        )
        notification = (await session.execute(stmt)).scalar_one_or_none()
        if notification is None:
            raise NotFoundError(f"Notification {notification_id} not found")

        if notification.read_at is None:
            notification.read_at = self._clock()
            await session.commit()
            await session.refresh(notification)
        return notification

    async def mark_all_read(self, session: AsyncSession, user_id: str, role: UserRole) -> int:
        stmt = (
            update(Notification)
            .where(_visible_to(user_id, role), Notification.read_at.is_(None))
            .values(read_at=self._clock())
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        await session.commit()
        return result.rowcount

    async def get_statistics(self, session: AsyncSession, user_id: str, role: UserRole) -> dict:
        scope = _visible_to(user_id, role)
        rows = (
            await session.execute(
                select(Notification.type, func.count(Notification.id))
                .where(scope)
                .group_by(Notification.type)
            )
        ).all()
        by_type = {ntype.value: count for ntype, count in rows}
        unread = await self.get_unread_count(session, user_id, role)
        return {"total": sum(by_type.values()), "unread": unread, "by_type": by_type}


_manager = ConnectionManager()
_service = NotificationService(_manager)


def get_connection_manager() -> ConnectionManager:
    return _manager


def get_notification_service() -> NotificationService:
    """Return the process-wide NotificationService."""
    return _service
