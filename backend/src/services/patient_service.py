"""
Patient service for patient account lookup, creation and removal.

Patients are booked by front-desk staff, so an account is created on the fly
the first time a patient shows up. Later bookings are matched back to the
same account by national id or email.
"""

import logging
from datetime import date
from typing import List, Optional

import bcrypt
from sqlalchemy import or_
from sqlalchemy.orm import Session

from core.config import DEFAULT_PATIENT_PASSWORD
from core.constants import PATIENT_SUGGESTION_LIMIT, ROLE_PATIENT
from core.exceptions import NotFoundError
from models.invoice import Invoice
from models.user import User
from utils.patient_fields import placeholder_first_name

logger = logging.getLogger(__name__)


def hash_password(password: str) -> str:
    """bcrypt hash of a plain-text password."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


class PatientService:
    """
    Service class for patient operations.

    Shared by appointment booking and the patient management endpoints.
    """

    @staticmethod
    def find_patient(db: Session, nic: Optional[str], email: Optional[str]) -> Optional[User]:
        """Find a patient account by national id or email."""
        conditions = []
        if nic:
            conditions.append(User.nic == nic)
        if email:
            conditions.append(User.email == email)
        if not conditions:
            return None
        return db.query(User).filter(
            User.role == ROLE_PATIENT,
            or_(*conditions),
        ).order_by(User.id).first()

    @staticmethod
    def find_or_create_patient(
        db: Session,
        first_name: str,
        last_name: str,
        email: str,
        phone: str,
        nic: Optional[str] = None,
        dob: Optional[date] = None,
        gender: Optional[str] = None,
        password: Optional[str] = None,
    ) -> User:
        """
        Resolve the patient account for a booking, creating it when missing.

        Args:
            db: Database session
            first_name: Patient's first name; a placeholder is used when empty
            last_name: Patient's last name (may be empty)
            email: Patient's email (synthesized by the caller when not given)
            phone: Patient's phone number
            nic: National id
            dob: Date of birth
            gender: Gender
            password: Initial password; the configured default when not given

        Returns:
            Existing or newly created patient (flushed, not committed)
        """
        patient = PatientService.find_patient(db, nic, email)
        if patient:
            return patient

        patient = User(
            first_name=first_name or placeholder_first_name(email, phone),
            last_name=last_name or "",
            email=email,
            phone=phone,
            nic=nic,
            dob=dob,
            gender=gender,
            role=ROLE_PATIENT,
            password_hash=hash_password(password or DEFAULT_PATIENT_PASSWORD),
        )
        db.add(patient)
        db.flush()

        logger.info(f"Created patient {patient.id} during booking")
        return patient

    @staticmethod
    def suggest_patients(db: Session, q: Optional[str]) -> List[User]:
        """
        Patients whose name, phone or email contains the query.

        Returns at most PATIENT_SUGGESTION_LIMIT matches; an empty query returns nothing.
        """
        if not q or not q.strip():
            return []
        pattern = f"%{q.strip()}%"
        return db.query(User).filter(
            User.role == ROLE_PATIENT,
            or_(
                User.first_name.ilike(pattern),
                User.last_name.ilike(pattern),
                User.phone.ilike(pattern),
                User.email.ilike(pattern),
            ),
        ).order_by(User.first_name, User.id).limit(PATIENT_SUGGESTION_LIMIT).all()

    @staticmethod
    def delete_patient(db: Session, patient_id: int) -> int:
        """
        Delete a patient account together with everything billed to it.

        Appointments are removed with their invoices and reports, then any
        invoice issued to the patient outside an appointment.

        Returns:
            Number of appointments deleted

        Raises:
            NotFoundError: If the patient does not exist
        """
        # Imported here to avoid a circular import with the appointment service
        from services.appointment_service import AppointmentService

        patient = db.query(User).filter(User.id == patient_id, User.role == ROLE_PATIENT).first()
        if not patient:
            raise NotFoundError("Patient not found")

        deleted = AppointmentService.delete_appointments_for_patient(db, patient_id)

        for invoice in db.query(Invoice).filter(Invoice.patient_id == patient_id).all():
            db.delete(invoice)

        db.delete(patient)
        db.flush()
        logger.info(f"Deleted patient {patient_id} and {deleted} appointment(s)")
        return deleted
