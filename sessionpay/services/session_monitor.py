"""
Session monitor job
Syncs calendar events into sessions, then runs the 24h, 2h and meeting-link sweeps.

Stages run in order and fail independently; a failing item never stops its
stage and a failing stage never stops the next one. Reminder flags are flipped
after every send attempt or precondition skip, so each window is attempted at
most once per session.
"""

import logging
import time
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.orm import Session

from .. import config
from ..database import SessionLocal
from ..domain.notifications.repository import NotificationRepository
from ..domain.patients.repository import PatientRepository
from ..domain.payments.repository import PaymentPreferenceRepository
from ..domain.sessions.repository import SessionRepository
from ..models import (
    NOTIFICATION_MEET_LINK,
    NOTIFICATION_REMINDER_2H,
    NOTIFICATION_REMINDER_24H,
    TherapySession,
)
from ..shared.validators import utcnow
from . import message_templates
from .dispatch import ensure_payment_link, send_and_log
from .reminder_planner import (
    SendMessage,
    SkipNotification,
    plan_2h,
    plan_24h,
    plan_meet_link,
)
from .session_parser import SessionIntent, SessionRejection, parse_event

logger = logging.getLogger(__name__)


def default_settings() -> dict:
    return {
        "session_price": config.SESSION_PRICE,
        "session_currency": config.SESSION_CURRENCY,
        "lookahead_hours": config.CALENDAR_LOOKAHEAD_HOURS,
        "min_duration": config.SESSION_MIN_DURATION,
        "max_duration": config.SESSION_MAX_DURATION,
        "reminder_24h_min": config.REMINDER_24H_MIN_OFFSET,
        "reminder_24h_max": config.REMINDER_24H_MAX_OFFSET,
        "reminder_2h_min": config.REMINDER_2H_MIN_OFFSET,
        "reminder_2h_max": config.REMINDER_2H_MAX_OFFSET,
        "meet_link_min": config.MEET_LINK_MIN_OFFSET,
        "meet_link_max": config.MEET_LINK_MAX_OFFSET,
    }


def _sweep_counters() -> dict:
    return {"found": 0, "sent": 0, "failed": 0, "skipped": 0, "errors": 0}


def new_summary() -> dict:
    return {
        "events_seen": 0,
        "events_accepted": 0,
        "events_rejected": 0,
        "event_errors": 0,
        "patients_created": 0,
        "sessions_created": 0,
        NOTIFICATION_REMINDER_24H: _sweep_counters(),
        NOTIFICATION_REMINDER_2H: _sweep_counters(),
        NOTIFICATION_MEET_LINK: _sweep_counters(),
        "stage_errors": [],
        "duration_ms": 0,
    }


class SessionMonitorJob:
    """
    One reconciliation run per call to run().

    Gateways are injected; session_factory yields SQLAlchemy sessions and clock
    returns the current naive UTC time.
    """

    def __init__(
        self,
        calendar,
        payment,
        messaging,
        session_factory: Callable[[], Session] = SessionLocal,
        clock: Callable[[], datetime] = utcnow,
        settings: Optional[dict] = None,
    ):
        self.calendar = calendar
        self.payment = payment
        self.messaging = messaging
        self.session_factory = session_factory
        self.clock = clock
        self.settings = default_settings()
        if settings:
            self.settings.update(settings)

    async def run(self) -> dict:
        """Execute all stages; never raises"""
        started = time.monotonic()
        summary = new_summary()
        logger.info("🔄 Session monitor job started")

        try:
            now = self.clock()
            stages = (
                ("calendar_sync", self.sync_calendar_events),
                (NOTIFICATION_REMINDER_24H, self.process_24h_reminders),
                (NOTIFICATION_REMINDER_2H, self.process_2h_reminders),
                (NOTIFICATION_MEET_LINK, self.process_meet_links),
            )
            for name, stage in stages:
                await self._run_stage(name, stage, now, summary)
        except Exception as e:
            logger.error(f"❌ Session monitor job failed: {e}", exc_info=True)
            summary["stage_errors"].append("job")

        summary["duration_ms"] = int((time.monotonic() - started) * 1000)
        logger.info(f"✅ Session monitor job completed in {summary['duration_ms']}ms: {summary}")
        return summary

    async def _run_stage(self, name: str, stage, now: datetime, summary: dict) -> None:
        db = self.session_factory()
        try:
            await stage(db, now, summary)
        except Exception as e:
            db.rollback()
            summary["stage_errors"].append(name)
            logger.error(f"❌ Stage {name} failed: {e}", exc_info=True)
        finally:
            db.close()

    # Stage 1: calendar sync

    async def sync_calendar_events(self, db: Session, now: datetime, summary: dict) -> None:
        time_max = now + timedelta(hours=self.settings["lookahead_hours"])
        events = await self.calendar.list_events(now, time_max)
        summary["events_seen"] = len(events)

        for event in events:
            result = parse_event(
                event,
                min_duration=self.settings["min_duration"],
                max_duration=self.settings["max_duration"],
            )
            if isinstance(result, SessionRejection):
                summary["events_rejected"] += 1
                logger.debug(f"Skipping event {event.id}: {result.reason}")
                continue

            summary["events_accepted"] += 1
            try:
                patient_created, session_created = self._sync_intent(db, result)
            except Exception as e:
                db.rollback()
                summary["event_errors"] += 1
                logger.error(f"❌ Failed to process calendar event {event.id}: {e}")
                continue

            summary["patients_created"] += int(patient_created)
            summary["sessions_created"] += int(session_created)

        logger.info(
            f"📅 Calendar sync: {summary['events_seen']} events, "
            f"{summary['events_accepted']} sessions, {summary['sessions_created']} new"
        )

    def _sync_intent(self, db: Session, intent: SessionIntent) -> tuple[bool, bool]:
        """Upsert patient and session for one event in a single transaction"""
        patient, patient_created = PatientRepository.find_or_create(
            db, name=intent.patient_name, phone=intent.patient_phone
        )
        session, session_created = SessionRepository.find_or_create(
            db,
            calendar_event_id=intent.calendar_event_id,
            patient_id=patient.id,
            scheduled_at=intent.scheduled_at,
            duration_minutes=intent.duration_minutes,
            amount=self.settings["session_price"],
            currency=self.settings["session_currency"],
            meet_link=intent.meet_link,
        )
        if session_created:
            PatientRepository.record_session(db, patient, session.scheduled_at)
        db.commit()
        return patient_created, session_created

    # Stages 2-4: reminder sweeps

    async def process_24h_reminders(self, db: Session, now: datetime, summary: dict) -> None:
        sessions = SessionRepository.get_sessions_needing_24h_reminder(
            db, now, self.settings["reminder_24h_min"], self.settings["reminder_24h_max"]
        )
        await self._sweep(db, now, sessions, NOTIFICATION_REMINDER_24H, summary, self._send_24h_reminder)

    async def process_2h_reminders(self, db: Session, now: datetime, summary: dict) -> None:
        sessions = SessionRepository.get_sessions_needing_2h_reminder(
            db, now, self.settings["reminder_2h_min"], self.settings["reminder_2h_max"]
        )
        await self._sweep(db, now, sessions, NOTIFICATION_REMINDER_2H, summary, self._send_2h_reminder)

    async def process_meet_links(self, db: Session, now: datetime, summary: dict) -> None:
        sessions = SessionRepository.get_sessions_needing_meet_link(
            db, now, self.settings["meet_link_min"], self.settings["meet_link_max"]
        )
        await self._sweep(db, now, sessions, NOTIFICATION_MEET_LINK, summary, self._send_meet_link)

    async def _sweep(self, db: Session, now: datetime, sessions, notification_type: str, summary: dict, handler) -> None:
        counters = summary[notification_type]
        counters["found"] = len(sessions)
        logger.info(f"ℹ️ {len(sessions)} session(s) need {notification_type}")

        for session in sessions:
            session_id = session.id
            try:
                await handler(db, session, now, counters)
            except Exception as e:
                db.rollback()
                counters["errors"] += 1
                logger.error(f"❌ Failed {notification_type} for session {session_id}: {e}")

    async def _send_24h_reminder(self, db: Session, session: TherapySession, now: datetime, counters: dict) -> None:
        decision = plan_24h(session, session.patient)
        if isinstance(decision, SkipNotification):
            self._skip(db, session.id, NOTIFICATION_REMINDER_24H, decision.reason, counters)
            SessionRepository.mark_reminder_24h_sent(db, session.id)
            return

        # A payment gateway failure raises here, before any send; the flag stays unset
        preference = await ensure_payment_link(db, self.payment, session, now)
        body = message_templates.render(
            decision.template, payment_link=preference.payment_link, **decision.context
        )
        await self._deliver(db, session.id, NOTIFICATION_REMINDER_24H, decision, body, counters,
                            SessionRepository.mark_reminder_24h_sent)

    async def _send_2h_reminder(self, db: Session, session: TherapySession, now: datetime, counters: dict) -> None:
        preference = PaymentPreferenceRepository.find_by_session_id(db, session.id)
        decision = plan_2h(session, session.patient, preference)
        if isinstance(decision, SkipNotification):
            self._skip(db, session.id, NOTIFICATION_REMINDER_2H, decision.reason, counters)
            SessionRepository.mark_reminder_2h_sent(db, session.id)
            return

        body = message_templates.render(decision.template, **decision.context)
        await self._deliver(db, session.id, NOTIFICATION_REMINDER_2H, decision, body, counters,
                            SessionRepository.mark_reminder_2h_sent)

    async def _send_meet_link(self, db: Session, session: TherapySession, now: datetime, counters: dict) -> None:
        decision = plan_meet_link(session, session.patient)
        if isinstance(decision, SkipNotification):
            self._skip(db, session.id, NOTIFICATION_MEET_LINK, decision.reason, counters)
            SessionRepository.mark_meet_link_sent(db, session.id)
            return

        body = message_templates.render(decision.template, **decision.context)
        await self._deliver(db, session.id, NOTIFICATION_MEET_LINK, decision, body, counters,
                            SessionRepository.mark_meet_link_sent)

    async def _deliver(
        self,
        db: Session,
        session_id: str,
        notification_type: str,
        decision: SendMessage,
        body: str,
        counters: dict,
        mark_sent: Callable[[Session, str], None],
    ) -> None:
        """Send, log, then flip the flag whatever the outcome"""
        try:
            result = await send_and_log(db, self.messaging, session_id, notification_type, decision.phone, body)
        finally:
            # Flag must flip once the send was attempted, even if logging failed
            db.rollback()
            mark_sent(db, session_id)

        counters["sent" if result.success else "failed"] += 1

    def _skip(self, db: Session, session_id: str, notification_type: str, reason: str, counters: dict) -> None:
        logger.warning(f"⚠️ Skipping {notification_type} for session {session_id}: {reason}")
        NotificationRepository.log_failure(db, session_id, notification_type, reason)
        counters["skipped"] += 1


def build_session_monitor_job() -> SessionMonitorJob:
    """Job wired to the configured Google, Mercado Pago and Twilio gateways"""
    from .calendar_gateway import create_calendar_gateway
    from .messaging_gateway import create_messaging_gateway
    from .payment_gateway import create_payment_gateway

    return SessionMonitorJob(
        calendar=create_calendar_gateway(),
        payment=create_payment_gateway(),
        messaging=create_messaging_gateway(),
    )
