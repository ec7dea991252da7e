"""
Session admin service
Manual operator actions: confirm payments, resend links, reset reminder flags
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..domain.notifications.repository import NotificationRepository
from ..domain.sessions.repository import SessionRepository
from ..models import NOTIFICATION_MEET_LINK, NOTIFICATION_REMINDER_24H, Notification
from ..shared.validators import is_valid_phone, utcnow, validate_uuid
from . import message_templates
from .dispatch import ensure_payment_link, send_and_log
from .payment_confirmation import confirm_session_payment
from .reminder_planner import SkipNotification, plan_meet_link

logger = logging.getLogger(__name__)

MANUAL_PAYMENT_ID = "manual-confirmation"

REMINDER_FLAGS = {
    "24h": "reminder_24h_sent",
    "2h": "reminder_2h_sent",
    "meet_link": "meet_link_sent",
}


class SessionAdminError(Exception):
    """Operator action could not be carried out"""


class SessionAdminService:
    def __init__(self, db: Session, payment=None, messaging=None):
        self.db = db
        self.payment = payment
        self.messaging = messaging

    def _get_session(self, session_id: str):
        if not validate_uuid(session_id):
            raise SessionAdminError(f"Invalid session id {session_id!r}")
        session = SessionRepository.get_with_patient(self.db, session_id)
        if not session:
            raise SessionAdminError(f"Session {session_id} not found")
        return session

    async def confirm_payment(
        self,
        session_id: str,
        payment_id: Optional[str] = None,
        send_meet_link: bool = False,
    ) -> str:
        """
        Mark a session paid out of band, then send the confirmation.

        Uses the same conditional transition as the webhook; returns its outcome tag.
        """
        self._get_session(session_id)
        outcome = await confirm_session_payment(
            self.db, self.messaging, session_id, payment_id or MANUAL_PAYMENT_ID
        )
        logger.info(f"🔧 Manual payment confirmation for session {session_id}: {outcome}")

        if send_meet_link:
            await self.send_meet_link(session_id)
        return outcome

    async def send_meet_link(self, session_id: str) -> bool:
        """Send the meeting link now and mark it sent"""
        session = self._get_session(session_id)
        decision = plan_meet_link(session, session.patient)
        if isinstance(decision, SkipNotification):
            raise SessionAdminError(decision.reason)

        body = message_templates.render(decision.template, **decision.context)
        try:
            result = await send_and_log(self.db, self.messaging, session_id, NOTIFICATION_MEET_LINK, decision.phone, body)
        finally:
            self.db.rollback()
            SessionRepository.mark_meet_link_sent(self.db, session_id)
        return result.success

    def reset_reminder(self, session_id: str, window: str) -> None:
        """The only sanctioned way to clear a reminder flag"""
        flag = REMINDER_FLAGS.get(window)
        if flag is None:
            raise SessionAdminError(f"Unknown window {window!r}; expected one of {', '.join(REMINDER_FLAGS)}")
        self._get_session(session_id)
        SessionRepository.reset_flag(self.db, session_id, flag)
        logger.info(f"🔧 Reset {flag} for session {session_id}")

    async def send_payment_link(self, session_id: str, force_new: bool = True) -> str:
        """
        Send the 24h payment reminder immediately.

        By default a fresh checkout link replaces any existing one. Returns the link sent.
        """
        session = self._get_session(session_id)
        patient = session.patient
        if not is_valid_phone(patient.phone):
            raise SessionAdminError(f"Patient {patient.id} has no valid phone number")

        phone = patient.phone
        context = {"patient_name": patient.name, "session_date": session.scheduled_at}
        preference = await ensure_payment_link(self.db, self.payment, session, utcnow(), force_new=force_new)
        payment_link = preference.payment_link

        body = message_templates.payment_reminder(payment_link=payment_link, **context)
        await send_and_log(self.db, self.messaging, session_id, NOTIFICATION_REMINDER_24H, phone, body)
        return payment_link

    def failed_notifications(self, limit: Optional[int] = None) -> list[Notification]:
        return NotificationRepository.get_failed_notifications(self.db, limit=limit)
