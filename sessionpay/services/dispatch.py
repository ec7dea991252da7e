"""Send-and-log helpers shared by the monitor job, webhook confirmation and admin tooling"""

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from ..domain.notifications.repository import NotificationRepository
from ..domain.payments.repository import PaymentPreferenceRepository
from ..models import PaymentPreference, TherapySession
from ..schemas import PreferenceRequest, SendResult
from ..shared.validators import mask_phone

logger = logging.getLogger(__name__)


async def send_and_log(
    db: Session,
    messaging,
    session_id: str,
    notification_type: str,
    phone: str,
    body: str,
) -> SendResult:
    """Send one message and append its outcome to the notification log"""
    result = await messaging.send(phone, body)

    if result.success:
        NotificationRepository.log_success(
            db, session_id, notification_type, provider_message_id=result.provider_message_id
        )
        logger.info(f"✅ Sent {notification_type} for session {session_id} to {mask_phone(phone)}")
    else:
        NotificationRepository.log_failure(
            db, session_id, notification_type, result.error or "Unknown error"
        )
        logger.warning(f"⚠️ Failed {notification_type} for session {session_id}: {result.error}")

    return result


async def ensure_payment_link(
    db: Session,
    payment,
    session: TherapySession,
    now: datetime,
    force_new: bool = False,
) -> PaymentPreference:
    """
    Reuse the session's unexpired checkout link or create a new one.

    force_new always creates a fresh link, replacing any existing one.
    Raises PaymentGatewayError when a link is needed and the provider fails.
    """
    if not force_new:
        existing = PaymentPreferenceRepository.find_active(db, session.id, now)
        if existing:
            logger.debug(f"Reusing payment preference {existing.provider_preference_id} for session {session.id}")
            return existing

    result = await payment.create_preference(
        PreferenceRequest(
            reference=session.id,
            payee_name=session.patient.name,
            amount=float(session.amount),
            session_date=session.scheduled_at,
            currency=session.currency,
        )
    )
    return PaymentPreferenceRepository.find_or_replace(db, session.id, result)
