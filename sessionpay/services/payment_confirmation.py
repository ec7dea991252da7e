"""
Payment confirmation
Handles Mercado Pago payment notifications after the webhook has been acknowledged
"""

import logging
from typing import Callable, Optional

from sqlalchemy.orm import Session

from ..database import SessionLocal
from ..domain.notifications.repository import NotificationRepository
from ..domain.patients.repository import PatientRepository
from ..domain.sessions.repository import SessionRepository
from ..models import NOTIFICATION_PAYMENT_CONFIRMED, PAYMENT_PAID
from . import message_templates
from .dispatch import send_and_log
from .reminder_planner import NO_VALID_PHONE, plan_payment_confirmation

logger = logging.getLogger(__name__)

# Outcome tags
IGNORED = "ignored"
INVALID = "invalid"
PAYMENT_UNAVAILABLE = "payment_unavailable"
NOT_APPROVED = "not_approved"
SESSION_NOT_FOUND = "session_not_found"
ALREADY_PAID = "already_paid"
CONFIRMED = "confirmed"


def parse_payment_id(raw) -> Optional[str]:
    """Mercado Pago payment ids are positive integers, sent as numbers or strings"""
    if raw is None or isinstance(raw, bool):
        return None
    value = str(raw).strip()
    if not value.isdigit() or int(value) <= 0:
        return None
    return value


async def confirm_session_payment(
    db: Session, messaging, session_id: str, payment_id: Optional[str]
) -> str:
    """
    Transition a session to paid and send the confirmation message.

    Shared by the webhook path and manual operator confirmation. Returns
    ALREADY_PAID when the conditional update finds the session already paid.
    """
    if not SessionRepository.mark_paid_if_unpaid(db, session_id, payment_id):
        db.rollback()
        logger.info(f"ℹ️ Session {session_id} already paid, nothing to do")
        return ALREADY_PAID

    session = SessionRepository.get_with_patient(db, session_id)
    PatientRepository.record_payment(db, session.patient, session.amount)
    db.commit()
    logger.info(f"💰 Session {session_id} marked as paid (payment {payment_id})")

    # Messaging failures never undo the payment transition
    decision = plan_payment_confirmation(session, session.patient)
    try:
        if decision is None:
            NotificationRepository.log_failure(db, session_id, NOTIFICATION_PAYMENT_CONFIRMED, NO_VALID_PHONE)
            logger.warning(f"⚠️ No valid phone for session {session_id}, confirmation not sent")
        else:
            body = message_templates.render(decision.template, **decision.context)
            await send_and_log(db, messaging, session_id, NOTIFICATION_PAYMENT_CONFIRMED, decision.phone, body)
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Failed to send payment confirmation for session {session_id}: {e}")

    return CONFIRMED


class PaymentConfirmationService:
    """Webhook-driven payment confirmation state machine"""

    def __init__(self, payment, messaging, session_factory: Callable[[], Session] = SessionLocal):
        self.payment = payment
        self.messaging = messaging
        self.session_factory = session_factory

    async def process_notification(self, notification_type: Optional[str], raw_payment_id) -> str:
        """
        Process one notification with its own DB session and return an outcome tag.

        The payload is never trusted: payment state is always re-fetched from the provider.
        """
        if notification_type != "payment":
            logger.debug(f"Ignoring webhook notification of type {notification_type}")
            return IGNORED

        payment_id = parse_payment_id(raw_payment_id)
        if payment_id is None:
            logger.error(f"❌ Invalid payment id in webhook: {raw_payment_id!r}")
            return INVALID

        try:
            payment = await self.payment.get_payment_by_id(payment_id)
        except Exception as e:
            logger.error(f"❌ Payment lookup {payment_id} failed: {e}", exc_info=True)
            payment = None

        if payment is None:
            logger.error(f"❌ Could not fetch payment {payment_id} from Mercado Pago")
            return PAYMENT_UNAVAILABLE

        if payment.status != "approved":
            logger.info(f"ℹ️ Payment {payment_id} status is {payment.status}, ignoring")
            return NOT_APPROVED

        session_id = payment.external_reference
        if not session_id:
            logger.error(f"❌ Approved payment {payment_id} has no external_reference")
            return INVALID

        db = self.session_factory()
        try:
            session = SessionRepository.get_with_patient(db, session_id)
            if session is None:
                # Needs manual reconciliation: money received for an unknown session
                logger.error(f"❌ Session {session_id} not found for approved payment {payment_id}")
                return SESSION_NOT_FOUND

            if session.payment_status == PAYMENT_PAID:
                logger.info(f"ℹ️ Session {session_id} already paid, duplicate notification for payment {payment_id}")
                return ALREADY_PAID

            return await confirm_session_payment(db, self.messaging, session_id, payment_id)
        except Exception as e:
            db.rollback()
            logger.error(f"❌ Error processing payment {payment_id}: {e}", exc_info=True)
            return INVALID
        finally:
            db.close()


def build_payment_confirmation_service() -> PaymentConfirmationService:
    from .messaging_gateway import create_messaging_gateway
    from .payment_gateway import create_payment_gateway

    return PaymentConfirmationService(
        payment=create_payment_gateway(),
        messaging=create_messaging_gateway(),
    )
