"""
Integration tests for deleting appointments and patients.

Deleting an appointment removes its invoices (with items and payments) and its
report; patient notifications are kept.
"""

import pytest

from auth.dependencies import UserContext
from core.exceptions import NotFoundError
from models import Appointment, Invoice, InvoiceItem, Message, Payment, Report, User
from services import AppointmentService, InvoiceService, PatientService


@pytest.fixture
def book(db_session, doctor_user, compounder_user, sample_booking_data):
    requester = UserContext(
        user_id=compounder_user.id,
        role=compounder_user.role,
        email=compounder_user.email,
        name=compounder_user.full_name,
    )

    def _book(**overrides):
        appointment = AppointmentService.create_appointment(db_session, requester, {**sample_booking_data, **overrides})
        db_session.commit()
        return appointment

    return _book


class TestDeleteAppointment:
    """Single appointment deletion."""

    def test_cascades_to_invoices_and_report(self, db_session, book):
        appointment = book()
        AppointmentService.update_status(db_session, appointment.id, {"status": "Rejected"})
        db_session.commit()
        assert db_session.query(Message).count() == 1

        AppointmentService.delete_appointment(db_session, appointment.id)
        db_session.commit()

        assert db_session.query(Appointment).count() == 0
        assert db_session.query(Invoice).count() == 0
        assert db_session.query(InvoiceItem).count() == 0
        assert db_session.query(Payment).count() == 0
        assert db_session.query(Report).count() == 0
        assert db_session.query(Message).count() == 1

    def test_other_appointments_are_untouched(self, db_session, book):
        first = book()
        second = book(nic="9999988888777")

        AppointmentService.delete_appointment(db_session, first.id)
        db_session.commit()

        assert [a.id for a in AppointmentService.list_appointments(db_session)] == [second.id]
        assert len(InvoiceService.get_invoices_for_appointment(db_session, second.id)) == 1
        assert db_session.query(Report).count() == 1

    def test_unknown_appointment(self, db_session):
        with pytest.raises(NotFoundError, match="Appointment not found"):
            AppointmentService.delete_appointment(db_session, 999)


class TestBulkDelete:
    """Deleting several appointments at once."""

    def test_unknown_ids_are_skipped(self, db_session, book):
        first = book()
        second = book()
        third = book()

        deleted = AppointmentService.bulk_delete_appointments(db_session, [first.id, second.id, 999])
        db_session.commit()

        assert deleted == 2
        assert [a.id for a in AppointmentService.list_appointments(db_session)] == [third.id]
        assert db_session.query(Invoice).count() == 1

    def test_empty_id_list_is_rejected(self, db_session):
        with pytest.raises(ValueError, match="No appointment ids"):
            AppointmentService.bulk_delete_appointments(db_session, [])


class TestPatientDeletion:
    """Deleting by patient."""

    def test_delete_appointments_for_patient(self, db_session, book):
        mine = book(nic="1111122222333", email="mine@example.com")
        book(nic="1111122222333", email="mine@example.com")
        other = book(nic="4444455555666", email="other@example.com")

        deleted = AppointmentService.delete_appointments_for_patient(db_session, mine.patient_id)
        db_session.commit()

        assert deleted == 2
        assert [a.id for a in AppointmentService.list_appointments(db_session)] == [other.id]
        assert db_session.get(User, mine.patient_id) is not None

    def test_delete_patient_removes_account_and_billing(self, db_session, book, patient_user):
        appointment = book(nic=patient_user.nic)
        standalone = InvoiceService.create_invoice(
            db_session,
            invoice_number="INV-WALKIN-1",
            patient_id=patient_user.id,
            items=[{"description": "Dressing", "unit_price": 80}],
        )
        db_session.commit()
        assert appointment.patient_id == patient_user.id

        deleted = PatientService.delete_patient(db_session, patient_user.id)
        db_session.commit()

        assert deleted == 1
        assert db_session.query(User).filter(User.role == "Patient").count() == 0
        assert db_session.query(Invoice).filter(Invoice.id == standalone.id).count() == 0
        assert db_session.query(Appointment).count() == 0
        assert db_session.query(Report).count() == 0

    def test_delete_unknown_patient(self, db_session, doctor_user):
        with pytest.raises(NotFoundError, match="Patient not found"):
            PatientService.delete_patient(db_session, doctor_user.id)
