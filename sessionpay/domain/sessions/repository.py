"""Session repository - Database operations for therapy sessions"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ...models import PAYMENT_PAID, PAYMENT_STATUSES, TherapySession
from ...services.reminder_planner import window_bounds

logger = logging.getLogger(__name__)


class SessionRepository:
    """Repository for therapy session database operations"""

    @staticmethod
    def get_with_patient(db: Session, session_id: str) -> Optional[TherapySession]:
        """Get session with its patient eagerly loaded"""
        return (
            db.query(TherapySession)
            .options(joinedload(TherapySession.patient))
            .filter(TherapySession.id == session_id)
            .first()
        )

    @staticmethod
    def get_by_calendar_event_id(db: Session, calendar_event_id: str) -> Optional[TherapySession]:
        return (
            db.query(TherapySession)
            .filter(TherapySession.calendar_event_id == calendar_event_id)
            .first()
        )

    @staticmethod
    def find_or_create(
        db: Session,
        calendar_event_id: str,
        patient_id: str,
        scheduled_at: datetime,
        duration_minutes: int,
        amount,
        currency: str,
        meet_link: Optional[str] = None,
    ) -> tuple[TherapySession, bool]:
        """
        Upsert keyed on calendar_event_id. An existing session is returned untouched.

        Flushes only; the caller commits.
        Returns (session, created)
        """
        existing = SessionRepository.get_by_calendar_event_id(db, calendar_event_id)
        if existing:
            return existing, False

        session = TherapySession(
            calendar_event_id=calendar_event_id,
            patient_id=patient_id,
            scheduled_at=scheduled_at,
            duration_minutes=duration_minutes,
            amount=amount,
            currency=currency,
            meet_link=meet_link,
        )
        db.add(session)
        db.flush()
        logger.info(f"✅ Created session {session.id} for event {calendar_event_id} at {scheduled_at}")
        return session, True

    @staticmethod
    def _in_window(db: Session, now: datetime, min_minutes: int, max_minutes: int):
        start, end = window_bounds(now, min_minutes, max_minutes)
        return (
            db.query(TherapySession)
            .options(joinedload(TherapySession.patient))
            .filter(TherapySession.scheduled_at >= start, TherapySession.scheduled_at <= end)
        )

    @staticmethod
    def get_sessions_needing_24h_reminder(
        db: Session, now: datetime, min_minutes: int, max_minutes: int
    ) -> list[TherapySession]:
        return (
            SessionRepository._in_window(db, now, min_minutes, max_minutes)
            .filter(TherapySession.reminder_24h_sent.is_(False))
            .order_by(TherapySession.scheduled_at)
            .all()
        )

    @staticmethod
    def get_sessions_needing_2h_reminder(
        db: Session, now: datetime, min_minutes: int, max_minutes: int
    ) -> list[TherapySession]:
        """Only sessions whose 24h reminder was already attempted"""
        return (
            SessionRepository._in_window(db, now, min_minutes, max_minutes)
            .filter(
                TherapySession.reminder_24h_sent.is_(True),
                TherapySession.reminder_2h_sent.is_(False),
            )
            .order_by(TherapySession.scheduled_at)
            .all()
        )

    @staticmethod
    def get_sessions_needing_meet_link(
        db: Session, now: datetime, min_minutes: int, max_minutes: int
    ) -> list[TherapySession]:
        """Paid sessions about to start whose link has not gone out"""
        return (
            SessionRepository._in_window(db, now, min_minutes, max_minutes)
            .filter(
                TherapySession.payment_status == PAYMENT_PAID,
                TherapySession.meet_link_sent.is_(False),
            )
            .order_by(TherapySession.scheduled_at)
            .all()
        )

    @staticmethod
    def _set_flag(db: Session, session_id: str, flag: str, value: bool) -> None:
        db.query(TherapySession).filter(TherapySession.id == session_id).update(
            {getattr(TherapySession, flag): value}, synchronize_session="fetch"
        )
        db.commit()

    @staticmethod
    def mark_reminder_24h_sent(db: Session, session_id: str) -> None:
        SessionRepository._set_flag(db, session_id, "reminder_24h_sent", True)

    @staticmethod
    def mark_reminder_2h_sent(db: Session, session_id: str) -> None:
        SessionRepository._set_flag(db, session_id, "reminder_2h_sent", True)

    @staticmethod
    def mark_meet_link_sent(db: Session, session_id: str) -> None:
        SessionRepository._set_flag(db, session_id, "meet_link_sent", True)

    @staticmethod
    def reset_flag(db: Session, session_id: str, flag: str) -> None:
        """Clear a reminder flag; reserved for operator tooling"""
        if flag not in ("reminder_24h_sent", "reminder_2h_sent", "meet_link_sent"):
            raise ValueError(f"Unknown reminder flag: {flag}")
        SessionRepository._set_flag(db, session_id, flag, False)

    @staticmethod
    def update_payment_status(
        db: Session, session: TherapySession, status: str, payment_id: Optional[str] = None
    ) -> TherapySession:
        """Unconditional payment status update"""
        if status not in PAYMENT_STATUSES:
            raise ValueError(f"Unknown payment status: {status}")
        session.payment_status = status
        if payment_id is not None:
            session.payment_id = payment_id
        db.commit()
        db.refresh(session)
        return session

    @staticmethod
    def mark_paid_if_unpaid(db: Session, session_id: str, payment_id: Optional[str]) -> bool:
        """
        Conditionally transition a session to paid.

        Returns False when zero rows changed, meaning another path already
        marked the session paid. The change is flushed; the caller commits
        together with any counter updates.
        """
        updated = (
            db.query(TherapySession)
            .filter(TherapySession.id == session_id, TherapySession.payment_status != PAYMENT_PAID)
            .update(
                {TherapySession.payment_status: PAYMENT_PAID, TherapySession.payment_id: payment_id},
                synchronize_session="fetch",
            )
        )
        db.flush()
        return updated > 0
