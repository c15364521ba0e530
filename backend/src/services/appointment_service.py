"""
Appointment service for the appointment lifecycle.

Booking resolves the patient and the doctor, prices the visit, harmonizes the
status pair, persists the appointment and bills it. Later edits re-harmonize,
notify the patient and settle invoices. Every path ends with a report sync.
Invoice generation, notifications, settlement and report sync are best-effort:
a failure there is logged and never undoes the appointment write.
"""

import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from core.config import DEFAULT_CONSULTATION_FEE, PLATFORM_FEE
from core.constants import (
    APPOINTMENT_PRICE_RATIO,
    APPOINTMENT_STATUSES,
    CONSULTATION_FEE_DESCRIPTION,
    DASHBOARD_ROLES,
    PAYMENT_STATUSES,
    PLATFORM_FEE_DESCRIPTION,
    ROLE_DOCTOR,
)
from core.exceptions import NotFoundError, PermissionDeniedError
from models.appointment import Appointment
from models.invoice import Invoice
from models.user import User
from services.invoice_service import InvoiceService
from services.notification_service import NotificationService
from services.patient_service import PatientService
from services.report_service import ReportService
from services.status_harmonizer import HarmonizeContext, harmonize, is_paid_equivalent
from utils.clinical_payload import normalize_result
from utils.datetime_utils import clinic_now, parse_appointment_date, parse_date_string
from utils.money import round_to_unit, to_money
from utils.patient_fields import (
    derive_age_from_dob,
    derive_dob_from_age,
    split_name,
    synthesize_email,
    synthesize_nic,
)

logger = logging.getLogger(__name__)

# Fields each update path may write; anything else in the payload is ignored
STATUS_UPDATE_FIELDS = frozenset({
    "status", "payment_status", "appointment_date", "department", "address", "has_visited",
})
PRESCRIPTION_FIELDS = frozenset({"result", "has_visited", "status", "payment_status"})
PRESCRIPTION_FLAGS = frozenset({"print", "print_and_save"})

# Sorts appointments with an unparseable date before every dated one
_UNDATED = datetime.min.replace(tzinfo=timezone.utc)


def _validate_state(status: Optional[str], payment_status: Optional[str]) -> None:
    if status is not None and status not in APPOINTMENT_STATUSES:
        raise ValueError(f"Invalid status. Must be one of: {', '.join(APPOINTMENT_STATUSES)}")
    if payment_status is not None and payment_status not in PAYMENT_STATUSES:
        raise ValueError(f"Invalid payment_status. Must be one of: {', '.join(PAYMENT_STATUSES)}")


def _as_date_string(value: Any) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


class AppointmentService:
    """
    Service class for appointment operations.

    Contains the booking, update and deletion flows shared by the appointment
    and patient endpoints.
    """

    # ===== Queries =====

    @staticmethod
    def get_appointment(db: Session, appointment_id: int) -> Optional[Appointment]:
        return db.query(Appointment).filter(Appointment.id == appointment_id).first()

    @staticmethod
    def require_appointment(db: Session, appointment_id: int) -> Appointment:
        """Get an appointment by ID or raise NotFoundError."""
        appointment = AppointmentService.get_appointment(db, appointment_id)
        if not appointment:
            raise NotFoundError("Appointment not found")
        return appointment

    @staticmethod
    def list_appointments(db: Session) -> List[Appointment]:
        return db.query(Appointment).order_by(Appointment.id).all()

    @staticmethod
    def list_appointments_for_patient(db: Session, patient_id: int) -> List[Appointment]:
        """All appointments of a patient. Raises NotFoundError if there are none."""
        appointments = db.query(Appointment).filter(
            Appointment.patient_id == patient_id
        ).order_by(Appointment.id).all()
        if not appointments:
            raise NotFoundError("No appointments found for this patient")
        return appointments

    @staticmethod
    def search_appointments(
        db: Session,
        name: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> List[Appointment]:
        """
        Find appointments by patient name and/or phone (substring, case-insensitive).

        Raises:
            ValueError: If neither name nor phone is given
            NotFoundError: If nothing matches
        """
        if not name and not phone:
            raise ValueError("Provide a name or phone to search")

        query = db.query(Appointment)
        if name:
            pattern = f"%{name.strip()}%"
            full_name = Appointment.first_name + " " + Appointment.last_name
            query = query.filter(or_(
                Appointment.first_name.ilike(pattern),
                Appointment.last_name.ilike(pattern),
                full_name.ilike(pattern),
            ))
        if phone:
            query = query.filter(Appointment.phone.ilike(f"%{phone.strip()}%"))

        appointments = query.order_by(Appointment.id).all()
        if not appointments:
            raise NotFoundError("No appointments found")
        return appointments

    # ===== Booking =====

    @staticmethod
    def resolve_doctor(db: Session, doctor_id: Optional[int], department: str) -> User:
        """
        Pick the doctor for a booking.

        An explicit doctor id must belong to a Doctor. Otherwise the first doctor
        of the department (lowest id) is used.

        Raises:
            NotFoundError: If no matching doctor exists
        """
        if doctor_id:
            doctor = db.query(User).filter(User.id == doctor_id, User.role == ROLE_DOCTOR).first()
            if not doctor:
                raise NotFoundError(f"Doctor not found for id {doctor_id}")
            return doctor

        doctors = db.query(User).filter(
            User.role == ROLE_DOCTOR,
            User.doctor_department == department,
        ).order_by(User.id).all()
        if not doctors:
            raise NotFoundError(f"No doctor found for department {department}")
        if len(doctors) > 1:
            logger.warning(
                f"{len(doctors)} doctors found for department {department}, assigning doctor {doctors[0].id}"
            )
        return doctors[0]

    @staticmethod
    def create_appointment(db: Session, requester: Any, data: Mapping[str, Any]) -> Appointment:
        """
        Book an appointment.

        Args:
            db: Database session
            requester: Authenticated caller (needs `user_id`, `role`, `name`)
            data: Booking fields. Required: name (or first_name/last_name), phone,
                address, department. Optional: email, nic, dob, age, gender,
                doctor_id, has_visited, password, payment_status, status,
                appointment_date.

        Returns:
            Created appointment (flushed, not committed)

        Raises:
            PermissionDeniedError: If the caller is not dashboard staff
            ValueError: If required fields are missing or values are invalid
            NotFoundError: If no doctor can be resolved
        """
        if requester is None or getattr(requester, "role", None) not in DASHBOARD_ROLES:
            raise PermissionDeniedError("Only clinic staff can book appointments")

        if data.get("first_name") or data.get("last_name"):
            first_name = (data.get("first_name") or "").strip()
            last_name = (data.get("last_name") or "").strip()
        else:
            first_name, last_name = split_name(data.get("name"))

        phone = (data.get("phone") or "").strip()
        address = (data.get("address") or "").strip()
        department = (data.get("department") or "").strip()

        required = {
            "name": first_name or last_name,
            "phone": phone,
            "address": address,
            "department": department,
        }
        missing = [field for field, value in required.items() if not value]
        if missing:
            raise ValueError(f"Missing required fields: {', '.join(missing)}")

        _validate_state(data.get("status") or None, data.get("payment_status") or None)

        doctor = AppointmentService.resolve_doctor(db, data.get("doctor_id"), department)

        # Identity derivations
        dob = data.get("dob")
        if isinstance(dob, str):
            dob = parse_date_string(dob) if dob.strip() else None
        age = data.get("age")
        if dob is not None and age is None:
            age = derive_age_from_dob(dob)
        elif dob is None and age is not None:
            age = int(age)
            dob = derive_dob_from_age(age)

        nic = data.get("nic") or synthesize_nic(phone)
        email = data.get("email") or synthesize_email(first_name, phone)

        patient = PatientService.find_or_create_patient(
            db,
            first_name=first_name,
            last_name=last_name,
            email=email,
            phone=phone,
            nic=nic,
            dob=dob,
            gender=data.get("gender"),
            password=data.get("password"),
        )

        fee = to_money(doctor.consultation_fee) if doctor.consultation_fee is not None else to_money(DEFAULT_CONSULTATION_FEE)
        price = round_to_unit(fee * APPOINTMENT_PRICE_RATIO)

        state = harmonize(
            {"status": data.get("status"), "payment_status": data.get("payment_status")},
            None,
            HarmonizeContext.CREATE,
        )

        appointment_date = data.get("appointment_date")
        appointment = Appointment(
            first_name=first_name,
            last_name=last_name,
            email=email,
            phone=phone,
            nic=nic,
            dob=dob,
            age=age,
            gender=data.get("gender"),
            address=address,
            appointment_date=_as_date_string(appointment_date) if appointment_date else clinic_now().isoformat(),
            department=department,
            doctor_id=doctor.id,
            doctor_first_name=doctor.first_name,
            doctor_last_name=doctor.last_name,
            has_visited=bool(data.get("has_visited", False)),
            patient_id=patient.id,
            status=state["status"],
            payment_status=state["payment_status"],
            price=price,
            result=[],
            booked_by_id=getattr(requester, "user_id", None),
            booked_by_name=getattr(requester, "name", None),
        )
        db.add(appointment)
        db.flush()

        logger.info(
            f"Booked appointment {appointment.id} for patient {patient.id} with doctor {doctor.id} "
            f"({appointment.status}/{appointment.payment_status})"
        )

        AppointmentService.generate_invoice_safely(
            db, appointment, fee, created_by_id=getattr(requester, "user_id", None)
        )
        ReportService.sync_report_safely(db, appointment.id)
        return appointment

    @staticmethod
    def generate_invoice(
        db: Session,
        appointment: Appointment,
        consultation_fee: Any,
        created_by_id: Optional[int] = None,
    ) -> Invoice:
        """
        Bill a freshly booked appointment: consultation fee plus platform fee.

        When the booking was paid for, the invoice is settled right away.
        """
        invoice = InvoiceService.create_invoice(
            db,
            invoice_number=InvoiceService.generate_invoice_number(appointment.id),
            patient_id=appointment.patient_id,
            appointment_id=appointment.id,
            doctor_id=appointment.doctor_id,
            items=[
                {"description": CONSULTATION_FEE_DESCRIPTION, "quantity": 1, "unit_price": consultation_fee},
                {"description": PLATFORM_FEE_DESCRIPTION, "quantity": 1, "unit_price": PLATFORM_FEE},
            ],
        )
        if is_paid_equivalent(appointment.payment_status):
            InvoiceService.settle(invoice, created_by_id=created_by_id)
        db.flush()
        return invoice

    @staticmethod
    def generate_invoice_safely(
        db: Session,
        appointment: Appointment,
        consultation_fee: Any,
        created_by_id: Optional[int] = None,
    ) -> Optional[Invoice]:
        """generate_invoice inside a savepoint; a failure leaves the appointment unbilled."""
        try:
            with db.begin_nested():
                return AppointmentService.generate_invoice(
                    db, appointment, consultation_fee, created_by_id=created_by_id
                )
        except Exception as e:
            logger.exception(f"Failed to generate invoice for appointment {appointment.id}: {e}")
            return None

    # ===== Updates =====

    @staticmethod
    def update_status(
        db: Session,
        appointment_id: int,
        changes: Mapping[str, Any],
        updated_by_id: Optional[int] = None,
    ) -> Appointment:
        """
        Dashboard edit of an appointment's status, payment status or scheduling.

        Allowed fields: status, payment_status, appointment_date, department,
        address, has_visited. The patient is notified when the status changes,
        and every invoice is settled when the payment becomes Paid.

        Raises:
            NotFoundError: If the appointment does not exist
            ValueError: On an invalid status or payment status
        """
        appointment = AppointmentService.require_appointment(db, appointment_id)

        payload = {
            key: value for key, value in changes.items()
            if key in STATUS_UPDATE_FIELDS and value is not None
        }
        _validate_state(payload.get("status"), payload.get("payment_status"))
        if isinstance(payload.get("appointment_date"), str) and not payload["appointment_date"].strip():
            raise ValueError("appointment_date cannot be empty")

        previous_status = appointment.status
        previous_payment_status = appointment.payment_status

        harmonized = harmonize(
            payload,
            {"status": previous_status, "payment_status": previous_payment_status},
            HarmonizeContext.STATUS_UPDATE,
        )

        for field, value in harmonized.items():
            if field == "appointment_date":
                value = _as_date_string(value)
            setattr(appointment, field, value)
        db.flush()

        logger.info(
            f"Updated appointment {appointment_id}: "
            f"{previous_status}/{previous_payment_status} -> {appointment.status}/{appointment.payment_status}"
        )

        if appointment.status != previous_status:
            NotificationService.notify_status_change_safely(db, appointment)

        if appointment.payment_status == "Paid" and previous_payment_status != "Paid":
            InvoiceService.settle_invoices_for_appointment(db, appointment_id, created_by_id=updated_by_id)

        ReportService.sync_report_safely(db, appointment_id)
        return appointment

    @staticmethod
    def get_latest_for_patient(db: Session, patient_id: int) -> Appointment:
        """
        The patient's appointment with the latest appointment date.

        Raises:
            NotFoundError: If the patient has no appointments
        """
        appointments = db.query(Appointment).filter(Appointment.patient_id == patient_id).all()
        if not appointments:
            raise NotFoundError("No appointments found for this patient")

        return max(
            appointments,
            key=lambda a: (parse_appointment_date(a.appointment_date) or _UNDATED, a.id),
        )

    @staticmethod
    def update_latest_for_patient(
        db: Session,
        patient_id: int,
        changes: Mapping[str, Any],
    ) -> Appointment:
        """
        Save a prescription on the patient's most recent appointment.

        The clinical result is normalized before it is stored. Printing the
        prescription (or setting status Completed) completes the visit when it
        has been paid for.

        Raises:
            NotFoundError: If the patient has no appointments
            ValueError: On an invalid status or payment status
        """
        appointment = AppointmentService.get_latest_for_patient(db, patient_id)

        payload: Dict[str, Any] = {
            key: value for key, value in changes.items()
            if key in PRESCRIPTION_FIELDS | PRESCRIPTION_FLAGS and value is not None
        }
        _validate_state(payload.get("status"), payload.get("payment_status"))

        if "result" in payload:
            payload["result"] = normalize_result(payload["result"])

        harmonized = harmonize(
            payload,
            {"status": appointment.status, "payment_status": appointment.payment_status},
            HarmonizeContext.PRESCRIPTION_SAVE,
        )

        for field in PRESCRIPTION_FIELDS:
            if harmonized.get(field) is not None:
                setattr(appointment, field, harmonized[field])
        db.flush()

        logger.info(
            f"Saved prescription on appointment {appointment.id} "
            f"({appointment.status}/{appointment.payment_status})"
        )

        ReportService.sync_report_safely(db, appointment.id)
        return appointment

    # ===== Deletion =====

    @staticmethod
    def _delete(db: Session, appointment: Appointment) -> None:
        for invoice in list(appointment.invoices):
            db.delete(invoice)
        ReportService.delete_for_appointment(db, appointment.id)
        db.delete(appointment)

    @staticmethod
    def delete_appointment(db: Session, appointment_id: int) -> None:
        """
        Delete an appointment with its invoices and report.

        Raises:
            NotFoundError: If the appointment does not exist
        """
        appointment = AppointmentService.require_appointment(db, appointment_id)
        AppointmentService._delete(db, appointment)
        db.flush()
        logger.info(f"Deleted appointment {appointment_id}")

    @staticmethod
    def bulk_delete_appointments(db: Session, appointment_ids: List[int]) -> int:
        """
        Delete several appointments with their invoices and reports.

        Unknown ids are skipped.

        Returns:
            Number of appointments deleted

        Raises:
            ValueError: If no ids are given
        """
        if not appointment_ids:
            raise ValueError("No appointment ids provided")

        appointments = db.query(Appointment).filter(Appointment.id.in_(appointment_ids)).all()
        for appointment in appointments:
            AppointmentService._delete(db, appointment)
        db.flush()

        logger.info(f"Bulk deleted {len(appointments)} appointment(s)")
        return len(appointments)

    @staticmethod
    def delete_appointments_for_patient(db: Session, patient_id: int) -> int:
        """Delete every appointment of a patient. Returns the number deleted."""
        appointments = db.query(Appointment).filter(Appointment.patient_id == patient_id).all()
        for appointment in appointments:
            AppointmentService._delete(db, appointment)
        db.flush()

        logger.info(f"Deleted {len(appointments)} appointment(s) of patient {patient_id}")
        return len(appointments)
