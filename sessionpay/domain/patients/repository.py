"""Patient repository - Database operations for patients"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Patient

logger = logging.getLogger(__name__)


class PatientRepository:
    """Repository for patient database operations"""

    @staticmethod
    def get_by_phone(db: Session, phone: str) -> Optional[Patient]:
        """Get patient by E.164 phone number"""
        return db.query(Patient).filter(Patient.phone == phone).first()

    @staticmethod
    def get_by_name(db: Session, name: str) -> list[Patient]:
        """Get patients whose name matches exactly"""
        return db.query(Patient).filter(Patient.name == name).all()

    @staticmethod
    def find_or_create(db: Session, name: str, phone: Optional[str] = None) -> tuple[Patient, bool]:
        """
        Find a patient by phone, falling back to exact name match, or create one.

        A single phone-less name match gets the phone backfilled. Zero or
        several name matches create a new patient. Changes are flushed, not
        committed; the caller owns the transaction.

        Returns (patient, created)
        """
        if phone:
            by_phone = PatientRepository.get_by_phone(db, phone)
            if by_phone:
                return by_phone, False

        by_name = PatientRepository.get_by_name(db, name)
        if len(by_name) == 1:
            patient = by_name[0]
            if phone and not patient.phone:
                patient.phone = phone
                db.flush()
                logger.info(f"📱 Backfilled phone for patient {patient.id}")
            return patient, False

        patient = Patient(name=name, phone=phone)
        db.add(patient)
        db.flush()
        logger.info(f"✅ Created patient {patient.id} ({name})")
        return patient, True

    @staticmethod
    def record_session(db: Session, patient: Patient, scheduled_at: datetime) -> None:
        """Advance the session counters for a newly created session"""
        patient.total_sessions = (patient.total_sessions or 0) + 1
        if patient.last_session_at is None or scheduled_at > patient.last_session_at:
            patient.last_session_at = scheduled_at
        db.flush()

    @staticmethod
    def record_payment(db: Session, patient: Patient, amount) -> None:
        """Advance total_paid after a session transitions to paid"""
        patient.total_paid = Decimal(str(patient.total_paid or 0)) + Decimal(str(amount or 0))
        db.flush()
