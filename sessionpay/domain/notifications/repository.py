"""Notification repository - Append-only delivery audit log"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ...models import CHANNEL_WHATSAPP, Notification
from ...shared.validators import utcnow

logger = logging.getLogger(__name__)


class NotificationRepository:
    """Repository for notification database operations"""

    @staticmethod
    def create(
        db: Session,
        session_id: str,
        type: str,
        status: str,
        channel: str = CHANNEL_WHATSAPP,
        provider_message_id: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> Notification:
        notification = Notification(
            session_id=session_id,
            type=type,
            channel=channel,
            status=status,
            provider_message_id=provider_message_id,
            sent_at=utcnow() if status == "sent" else None,
            error_message=error_message,
        )
        db.add(notification)
        db.commit()
        db.refresh(notification)
        logger.debug(f"Logged {status} {type} notification for session {session_id}")
        return notification

    @staticmethod
    def log_success(
        db: Session,
        session_id: str,
        type: str,
        provider_message_id: Optional[str] = None,
        channel: str = CHANNEL_WHATSAPP,
    ) -> Notification:
        return NotificationRepository.create(
            db, session_id, type, "sent", channel=channel, provider_message_id=provider_message_id
        )

    @staticmethod
    def log_failure(
        db: Session,
        session_id: str,
        type: str,
        error_message: str,
        channel: str = CHANNEL_WHATSAPP,
    ) -> Notification:
        return NotificationRepository.create(
            db, session_id, type, "failed", channel=channel, error_message=error_message
        )

    @staticmethod
    def find_by_session_id(db: Session, session_id: str) -> list[Notification]:
        return (
            db.query(Notification)
            .filter(Notification.session_id == session_id)
            .order_by(Notification.created_at.desc())
            .all()
        )

    @staticmethod
    def get_failed_notifications(db: Session, limit: Optional[int] = None) -> list[Notification]:
        """Failed rows, newest first, for out-of-band monitoring"""
        query = (
            db.query(Notification)
            .filter(Notification.status == "failed")
            .order_by(Notification.created_at.desc())
        )
        if limit:
            query = query.limit(limit)
        return query.all()

    @staticmethod
    def was_notification_sent(db: Session, session_id: str, type: str) -> bool:
        return (
            db.query(Notification.id)
            .filter(
                Notification.session_id == session_id,
                Notification.type == type,
                Notification.status == "sent",
            )
            .first()
            is not None
        )
