"""
Notification Service.

Handles creation and state management of notifications. Billing
transitions call `emit`, which is best effort: it commits on its own and
never lets a failure reach the transition that triggered it.
"""

import logging
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from datetime import datetime
from typing import Optional, Dict, Any

from dues_backend.app.models.notification import Notification, NotificationType
from dues_backend.app.models.user import User
from dues_backend.app.models.enums import UserRole

logger = logging.getLogger("dues.notifications")


class NotificationService:

    @staticmethod
    async def create_notification(
        db: AsyncSession,
        user_id: int,
        title: str,
        message: str,
        type: NotificationType = NotificationType.INFO,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Notification:
        """Create a single notification."""
        notif = Notification(
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            metadata_payload=metadata
        )
        db.add(notif)
        await db.flush()  # Caller commits usually
        return notif

    @staticmethod
    async def emit(
        db: AsyncSession,
        user_id: int,
        title: str,
        message: str,
        type: NotificationType = NotificationType.INFO,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Optional[Notification]:
        """
        Fire-and-forget notification. Must be called after the triggering
        transition has committed.

        Returns the notification, or None if it could not be stored.
        """
        try:
            notif = await NotificationService.create_notification(
                db, user_id, title, message, type=type, metadata=metadata
            )
            await db.commit()
            return notif
        except SQLAlchemyError:
            logger.exception("Dropped notification %r for user %s", title, user_id)
            await db.rollback()
            return None

    @staticmethod
    async def notify_admins(
        db: AsyncSession,
        title: str,
        message: str,
        type: NotificationType = NotificationType.INFO,
        metadata: Optional[Dict[str, Any]] = None
    ) -> int:
        """Best-effort notification to every active admin. Returns how many were stored."""
        try:
            result = await db.execute(
                select(User.id).where(User.role == UserRole.ADMIN, User.is_active == True)
            )
            admin_ids = result.scalars().all()
        except SQLAlchemyError:
            logger.exception("Could not look up admins for %r", title)
            await db.rollback()
            return 0

        sent = 0
        for admin_id in admin_ids:
            if await NotificationService.emit(db, admin_id, title, message, type=type, metadata=metadata):
                sent += 1
        return sent

    @staticmethod
    async def mark_read(db: AsyncSession, notification_id: int, user_id: int) -> bool:
        """Mark a notification as read."""
        stmt = update(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == user_id
        ).values(
            is_read=True,
            read_at=datetime.utcnow()
        )
        result = await db.execute(stmt)
        return result.rowcount > 0

    @staticmethod
    async def mark_all_read(db: AsyncSession, user_id: int) -> int:
        """Mark all notifications for user as read."""
        stmt = update(Notification).where(
            Notification.user_id == user_id,
            Notification.is_read == False
        ).values(
            is_read=True,
            read_at=datetime.utcnow()
        )
        result = await db.execute(stmt)
        return result.rowcount
