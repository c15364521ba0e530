"""
Integration tests for appointment updates.

Covers dashboard status edits (notification, settlement, report sync) and
prescription saves on a patient's latest appointment.
"""

from decimal import Decimal

import pytest

from auth.dependencies import UserContext
from core.exceptions import NotFoundError
from models import Message, Payment
from services import AppointmentService, InvoiceService, NotificationService, ReportService


@pytest.fixture
def requester(compounder_user):
    return UserContext(
        user_id=compounder_user.id,
        role=compounder_user.role,
        email=compounder_user.email,
        name=compounder_user.full_name,
    )


@pytest.fixture
def pending_appointment(db_session, doctor_user, requester, sample_booking_data):
    data = {**sample_booking_data}
    data.pop("payment_status")
    appointment = AppointmentService.create_appointment(db_session, requester, data)
    db_session.commit()
    return appointment


@pytest.fixture
def paid_appointment(db_session, doctor_user, requester, sample_booking_data):
    appointment = AppointmentService.create_appointment(db_session, requester, sample_booking_data)
    db_session.commit()
    return appointment


class TestStatusUpdate:
    """Dashboard edits of status and payment status."""

    def test_payment_makes_appointment_accepted_and_settles(self, db_session, pending_appointment, compounder_user):
        appointment = AppointmentService.update_status(
            db_session, pending_appointment.id, {"payment_status": "Paid"}, updated_by_id=compounder_user.id
        )
        db_session.commit()

        assert appointment.status == "Accepted"
        assert appointment.payment_status == "Paid"

        invoice = InvoiceService.get_invoices_for_appointment(db_session, appointment.id)[0]
        assert invoice.status == "Paid"
        assert [(p.amount, p.method, p.created_by_id) for p in invoice.payments] == [
            (Decimal("550.00"), "Settlement", compounder_user.id)
        ]

        report = ReportService.get_report(db_session, appointment.id)
        assert (report.paid, report.due, report.status) == (Decimal("550.00"), Decimal("0.00"), "Paid")

    def test_status_change_notifies_patient(self, db_session, pending_appointment):
        AppointmentService.update_status(db_session, pending_appointment.id, {"status": "Accepted"})
        db_session.commit()

        messages = db_session.query(Message).filter(Message.appointment_id == pending_appointment.id).all()
        assert len(messages) == 1
        assert messages[0].message == "Your appointment scheduled on 2024-03-05 10:30 is now Accepted."
        assert messages[0].email == pending_appointment.email
        assert messages[0].read is False

    def test_unchanged_status_does_not_notify(self, db_session, pending_appointment):
        AppointmentService.update_status(db_session, pending_appointment.id, {"address": "221B Baker Street"})
        db_session.commit()

        assert pending_appointment.address == "221B Baker Street"
        assert db_session.query(Message).count() == 0

    def test_completing_unpaid_appointment_is_refused_silently(self, db_session, pending_appointment):
        appointment = AppointmentService.update_status(db_session, pending_appointment.id, {"status": "Completed"})
        db_session.commit()

        assert appointment.status == "Accepted"
        assert appointment.payment_status == "Due"
        invoice = InvoiceService.get_invoices_for_appointment(db_session, appointment.id)[0]
        assert invoice.status == "Unpaid"

    def test_completing_paid_appointment(self, db_session, paid_appointment):
        appointment = AppointmentService.update_status(db_session, paid_appointment.id, {"status": "Completed"})
        db_session.commit()

        assert (appointment.status, appointment.payment_status) == ("Completed", "Paid")

    def test_repeated_paid_update_does_not_settle_twice(self, db_session, pending_appointment):
        AppointmentService.update_status(db_session, pending_appointment.id, {"payment_status": "Paid"})
        AppointmentService.update_status(db_session, pending_appointment.id, {"payment_status": "Paid"})
        db_session.commit()

        assert db_session.query(Payment).count() == 1

    def test_cancelled_invoices_are_not_settled(self, db_session, pending_appointment):
        invoice = InvoiceService.get_invoices_for_appointment(db_session, pending_appointment.id)[0]
        InvoiceService.update_invoice(db_session, invoice.id, {"status": "Cancelled"})

        AppointmentService.update_status(db_session, pending_appointment.id, {"payment_status": "Paid"})
        db_session.commit()

        assert invoice.status == "Cancelled"
        assert invoice.payments == []

    def test_fields_outside_the_allow_list_are_ignored(self, db_session, pending_appointment):
        appointment = AppointmentService.update_status(
            db_session, pending_appointment.id, {"price": 1, "patient_id": 999, "department": "Neurology"}
        )

        assert appointment.price == Decimal("100.00")
        assert appointment.patient_id != 999
        assert appointment.department == "Neurology"

    def test_invalid_status_is_rejected(self, db_session, pending_appointment):
        with pytest.raises(ValueError, match="Invalid status"):
            AppointmentService.update_status(db_session, pending_appointment.id, {"status": "Done"})

    @pytest.mark.parametrize("changes", [{"status": ""}, {"payment_status": ""}, {"appointment_date": " "}])
    def test_empty_values_are_rejected(self, db_session, pending_appointment, changes):
        with pytest.raises(ValueError):
            AppointmentService.update_status(db_session, pending_appointment.id, changes)

        assert pending_appointment.status == "Pending"
        assert db_session.query(Message).count() == 0

    def test_unknown_appointment(self, db_session):
        with pytest.raises(NotFoundError):
            AppointmentService.update_status(db_session, 999, {"status": "Accepted"})

    def test_notification_failure_does_not_block_update(self, db_session, pending_appointment, monkeypatch):
        def fail(*args, **kwargs):
            raise RuntimeError("mailbox full")

        monkeypatch.setattr(NotificationService, "notify_status_change", fail)

        appointment = AppointmentService.update_status(db_session, pending_appointment.id, {"status": "Rejected"})
        db_session.commit()

        assert appointment.status == "Rejected"
        assert db_session.query(Message).count() == 0

    def test_report_follows_appointment_date(self, db_session, pending_appointment):
        AppointmentService.update_status(db_session, pending_appointment.id, {"appointment_date": "2024-04-01T09:00:00"})
        db_session.commit()

        report = ReportService.get_report(db_session, pending_appointment.id)
        assert report.appointment_date == "2024-04-01T09:00:00"


class TestPrescriptionSave:
    """Saving a prescription on the patient's latest appointment."""

    def test_latest_appointment_is_updated(self, db_session, doctor_user, requester, sample_booking_data):
        nic = "1111122222333"
        older = AppointmentService.create_appointment(
            db_session, requester, {**sample_booking_data, "nic": nic, "appointment_date": "2024-01-10"}
        )
        latest = AppointmentService.create_appointment(
            db_session, requester, {**sample_booking_data, "nic": nic, "appointment_date": "2024-03-05T10:30:00"}
        )
        db_session.commit()
        assert older.patient_id == latest.patient_id

        updated = AppointmentService.update_latest_for_patient(
            db_session, latest.patient_id, {"result": [{"initial_complaint": "cough"}]}
        )

        assert updated.id == latest.id
        assert older.result == []

    def test_undated_appointments_sort_first(self, db_session, doctor_user, requester, sample_booking_data):
        nic = "1111122222333"
        dated = AppointmentService.create_appointment(
            db_session, requester, {**sample_booking_data, "nic": nic, "appointment_date": "2024-01-10"}
        )
        AppointmentService.create_appointment(
            db_session, requester, {**sample_booking_data, "nic": nic, "appointment_date": "sometime soon"}
        )
        db_session.commit()

        assert AppointmentService.get_latest_for_patient(db_session, dated.patient_id).id == dated.id

    def test_print_completes_paid_visit_and_normalizes_result(self, db_session, paid_appointment):
        appointment = AppointmentService.update_latest_for_patient(
            db_session,
            paid_appointment.patient_id,
            {
                "result": [{"initial_complaint": "cough", "medicineAdvice": {"Medicine": "Syrup", "Rout": "Oral"}}],
                "print": True,
                "has_visited": True,
            },
        )
        db_session.commit()

        assert appointment.status == "Completed"
        assert appointment.payment_status == "Paid"
        assert appointment.has_visited is True
        medicine = appointment.result[0]["medicine_advice"][0]
        assert medicine["name"] == "Syrup"
        assert medicine["route"] == "Oral"
        assert medicine["dose"] == ""

        report = ReportService.get_report(db_session, appointment.id)
        assert report.status == "Paid"

    def test_print_on_unpaid_visit_keeps_it_open(self, db_session, pending_appointment):
        appointment = AppointmentService.update_latest_for_patient(
            db_session, pending_appointment.patient_id, {"print_and_save": True}
        )

        assert appointment.status == "Accepted"
        assert appointment.payment_status == "Pending"

    def test_prescription_save_neither_notifies_nor_settles(self, db_session, pending_appointment):
        AppointmentService.update_latest_for_patient(
            db_session, pending_appointment.patient_id, {"payment_status": "Paid"}
        )
        db_session.commit()

        assert pending_appointment.status == "Accepted"
        assert pending_appointment.payment_status == "Paid"
        assert db_session.query(Message).count() == 0
        assert db_session.query(Payment).count() == 0

    def test_reopening_payment_on_completed_visit(self, db_session, paid_appointment):
        AppointmentService.update_latest_for_patient(db_session, paid_appointment.patient_id, {"print": True})
        db_session.commit()
        assert paid_appointment.status == "Completed"

        appointment = AppointmentService.update_latest_for_patient(
            db_session, paid_appointment.patient_id, {"payment_status": "Due"}
        )
        db_session.commit()

        assert appointment.status == "Accepted"
        assert appointment.payment_status == "Due"

    def test_patient_without_appointments(self, db_session, patient_user):
        with pytest.raises(NotFoundError, match="No appointments found"):
            AppointmentService.update_latest_for_patient(db_session, patient_user.id, {"print": True})
