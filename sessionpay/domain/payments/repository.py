"""Payment preference repository - Checkout links per session"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import PaymentPreference
from ...schemas import PaymentPreferenceResult

logger = logging.getLogger(__name__)


class PaymentPreferenceRepository:
    """Repository for payment preference database operations"""

    @staticmethod
    def find_by_session_id(db: Session, session_id: str) -> Optional[PaymentPreference]:
        return (
            db.query(PaymentPreference)
            .filter(PaymentPreference.session_id == session_id)
            .order_by(PaymentPreference.expires_at.desc())
            .first()
        )

    @staticmethod
    def is_expired(preference: PaymentPreference, now: datetime) -> bool:
        return now > preference.expires_at

    @staticmethod
    def find_active(db: Session, session_id: str, now: datetime) -> Optional[PaymentPreference]:
        """Return the session's preference unless it has expired"""
        preference = PaymentPreferenceRepository.find_by_session_id(db, session_id)
        if preference and not PaymentPreferenceRepository.is_expired(preference, now):
            return preference
        return None

    @staticmethod
    def delete_by_session_id(db: Session, session_id: str) -> int:
        deleted = (
            db.query(PaymentPreference)
            .filter(PaymentPreference.session_id == session_id)
            .delete(synchronize_session="fetch")
        )
        if deleted:
            logger.debug(f"Deleted {deleted} payment preference(s) for session {session_id}")
        return deleted

    @staticmethod
    def find_or_replace(db: Session, session_id: str, result: PaymentPreferenceResult) -> PaymentPreference:
        """
        Store a freshly created preference as the session's only link.

        Any existing rows for the session are deleted first, never mutated.
        """
        PaymentPreferenceRepository.delete_by_session_id(db, session_id)

        preference = PaymentPreference(
            session_id=session_id,
            provider_preference_id=result.preference_id,
            payment_link=result.payment_link,
            sandbox_link=result.sandbox_link,
            expires_at=result.expires_at,
        )
        db.add(preference)
        db.commit()
        db.refresh(preference)
        logger.info(f"💰 Stored payment preference {result.preference_id} for session {session_id}")
        return preference
