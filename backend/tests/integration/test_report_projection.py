"""
Integration tests for report projection and the revenue summary.
"""

from datetime import datetime
from decimal import Decimal

import pytest

from models import Appointment, Report
from services import InvoiceService, ReportService
from utils.datetime_utils import CLINIC_TZ, end_of_day, start_of_day


def add_appointment(db_session, doctor_id, patient_id, status="Accepted", payment_status="Pending",
                    price="100", appointment_date="2024-03-05T10:30:00"):
    appointment = Appointment(
        first_name="Jane",
        last_name="Doe",
        phone="0300-1234567",
        address="12 Mall Road",
        appointment_date=appointment_date,
        department="Cardiology",
        doctor_id=doctor_id,
        patient_id=patient_id,
        status=status,
        payment_status=payment_status,
        price=Decimal(price),
        result=[],
    )
    db_session.add(appointment)
    db_session.flush()
    return appointment


def add_invoice(db_session, appointment, number, amount, paid=None, issued_at=None):
    invoice = InvoiceService.create_invoice(
        db_session,
        invoice_number=number,
        patient_id=appointment.patient_id,
        appointment_id=appointment.id,
        doctor_id=appointment.doctor_id,
        items=[{"description": "Consultation Fee", "unit_price": amount}],
        issued_at=issued_at,
    )
    if paid is not None:
        InvoiceService.append_payment(invoice, paid)
        InvoiceService.recompute_status(invoice)
    db_session.flush()
    return invoice


class TestSyncReport:
    """Per-appointment report upserts."""

    def test_two_partially_paid_invoices(self, db_session, doctor_user, patient_user):
        appointment = add_appointment(db_session, doctor_user.id, patient_user.id)
        add_invoice(db_session, appointment, "INV-A", 300, paid=100)
        add_invoice(db_session, appointment, "INV-B", 200, paid=50)

        report = ReportService.sync_report(db_session, appointment.id)
        db_session.commit()

        assert (report.amount, report.paid, report.due, report.status) == (
            Decimal("500.00"), Decimal("150.00"), Decimal("350.00"), "Due"
        )
        assert report.doctor_id == doctor_user.id
        assert report.patient_id == patient_user.id
        assert report.appointment_date == "2024-03-05T10:30:00"
        assert "2 invoice(s) and 2 payment(s)" in report.notes

    def test_sync_is_idempotent(self, db_session, doctor_user, patient_user):
        appointment = add_appointment(db_session, doctor_user.id, patient_user.id)
        add_invoice(db_session, appointment, "INV-C", 300, paid=100)
        first = ReportService.sync_report(db_session, appointment.id)
        db_session.commit()
        first_updated_at = first.updated_at
        snapshot = (first.amount, first.paid, first.due, first.status, first.notes)

        second = ReportService.sync_report(db_session, appointment.id)
        db_session.commit()

        assert second.id == first.id
        assert (second.amount, second.paid, second.due, second.status, second.notes) == snapshot
        assert second.updated_at == first_updated_at
        assert db_session.query(Report).count() == 1

    def test_sync_picks_up_new_payments(self, db_session, doctor_user, patient_user):
        appointment = add_appointment(db_session, doctor_user.id, patient_user.id)
        invoice = add_invoice(db_session, appointment, "INV-D", 300, paid=100)
        ReportService.sync_report(db_session, appointment.id)

        InvoiceService.settle(invoice)
        report = ReportService.sync_report(db_session, appointment.id)

        assert (report.paid, report.due, report.status) == (Decimal("300.00"), Decimal("0.00"), "Paid")

    def test_report_of_deleted_appointment_is_recreated_on_sync(self, db_session, doctor_user, patient_user):
        appointment = add_appointment(db_session, doctor_user.id, patient_user.id, status="Completed", payment_status="Paid")
        ReportService.sync_report(db_session, appointment.id)
        assert ReportService.delete_for_appointment(db_session, appointment.id) is True
        db_session.flush()
        assert ReportService.get_report(db_session, appointment.id) is None

        report = ReportService.sync_report(db_session, appointment.id)

        assert (report.amount, report.paid, report.due, report.status) == (
            Decimal("100.00"), Decimal("100.00"), Decimal("0.00"), "Paid"
        )

    def test_unknown_appointment(self, db_session):
        assert ReportService.sync_report(db_session, 999) is None
        assert ReportService.sync_report_safely(db_session, 999) is None
        assert ReportService.sync_report_safely(db_session, None) is None
        assert ReportService.delete_for_appointment(db_session, 999) is False


class TestReportSummary:
    """Revenue and due per period."""

    @pytest.fixture
    def ledger(self, db_session, doctor_user, patient_user, admin_user):
        """Invoiced and uninvoiced appointments over two days in March and one in April."""
        march_5 = datetime(2024, 3, 5, 10, 0, tzinfo=CLINIC_TZ)
        march_6 = datetime(2024, 3, 6, 10, 0, tzinfo=CLINIC_TZ)
        april_2 = datetime(2024, 4, 2, 10, 0, tzinfo=CLINIC_TZ)

        first = add_appointment(db_session, doctor_user.id, patient_user.id)
        add_invoice(db_session, first, "INV-S1", 550, paid=550, issued_at=march_5)
        second = add_appointment(db_session, doctor_user.id, patient_user.id)
        add_invoice(db_session, second, "INV-S2", 550, paid=200, issued_at=march_6)
        third = add_appointment(db_session, doctor_user.id, patient_user.id)
        add_invoice(db_session, third, "INV-S3", 300, issued_at=april_2)

        # No invoice: counted by appointment date
        add_appointment(db_session, doctor_user.id, patient_user.id, status="Completed",
                        payment_status="Paid", appointment_date="2024-03-05T15:00:00")
        add_appointment(db_session, doctor_user.id, patient_user.id, appointment_date="2024-03-06")
        add_appointment(db_session, doctor_user.id, patient_user.id, appointment_date="whenever")

        # Another doctor's invoice
        other = add_appointment(db_session, admin_user.id, patient_user.id)
        add_invoice(db_session, other, "INV-OTHER", 1000, paid=1000, issued_at=march_5)
        db_session.commit()

    def test_hybrid_by_day(self, db_session, doctor_user, ledger):
        summary = ReportService.get_report_summary(db_session, doctor_id=doctor_user.id, group_by="day")

        assert summary["by_period"] == [
            {"period": "2024-03-05", "revenue": Decimal("650.00"), "due": Decimal("0.00"), "invoices": 1, "appointments": 1},
            {"period": "2024-03-06", "revenue": Decimal("200.00"), "due": Decimal("450.00"), "invoices": 1, "appointments": 1},
            {"period": "2024-04-02", "revenue": Decimal("0.00"), "due": Decimal("300.00"), "invoices": 1, "appointments": 0},
        ]
        assert summary["totals"] == {"revenue": Decimal("850.00"), "due": Decimal("750.00")}

    def test_by_month(self, db_session, doctor_user, ledger):
        summary = ReportService.get_report_summary(db_session, doctor_id=doctor_user.id, group_by="month")

        assert [(p["period"], p["revenue"], p["due"]) for p in summary["by_period"]] == [
            ("2024-03", Decimal("850.00"), Decimal("450.00")),
            ("2024-04", Decimal("0.00"), Decimal("300.00")),
        ]

    def test_invoice_source_skips_uninvoiced_appointments(self, db_session, doctor_user, ledger):
        summary = ReportService.get_report_summary(db_session, doctor_id=doctor_user.id, source="invoice")

        assert summary["totals"] == {"revenue": Decimal("750.00"), "due": Decimal("650.00")}
        assert all(p["appointments"] == 0 for p in summary["by_period"])

    def test_appointment_source_only_counts_uninvoiced_appointments(self, db_session, doctor_user, ledger):
        summary = ReportService.get_report_summary(db_session, doctor_id=doctor_user.id, source="appointment")

        assert summary["totals"] == {"revenue": Decimal("100.00"), "due": Decimal("100.00")}
        assert all(p["invoices"] == 0 for p in summary["by_period"])

    def test_date_range(self, db_session, doctor_user, ledger):
        summary = ReportService.get_report_summary(
            db_session,
            start=start_of_day(datetime(2024, 3, 6).date()),
            end=end_of_day(datetime(2024, 3, 6).date()),
            doctor_id=doctor_user.id,
        )

        assert [p["period"] for p in summary["by_period"]] == ["2024-03-06"]
        assert summary["totals"] == {"revenue": Decimal("200.00"), "due": Decimal("450.00")}

    def test_all_doctors(self, db_session, ledger):
        summary = ReportService.get_report_summary(db_session, source="invoice")

        assert summary["totals"]["revenue"] == Decimal("1750.00")

    @pytest.mark.parametrize("kwargs,message", [
        ({"group_by": "week"}, "group_by"),
        ({"source": "ledger"}, "source"),
    ])
    def test_invalid_arguments(self, db_session, kwargs, message):
        with pytest.raises(ValueError, match=message):
            ReportService.get_report_summary(db_session, **kwargs)
