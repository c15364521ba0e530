"""
Service for per-appointment financial reports.

A report is a projection of an appointment and its invoices: it can be deleted
and recomputed at any time. Every flow that changes an appointment or one of its
invoices calls `sync_report` (usually through `sync_report_safely`) afterwards.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from models.appointment import Appointment
from models.invoice import Invoice
from models.report import Report
from services.status_harmonizer import is_paid_equivalent
from utils.datetime_utils import ensure_clinic_tz, parse_appointment_date, period_key
from utils.money import ZERO, money_sum, non_negative, to_money

logger = logging.getLogger(__name__)

REPORT_SOURCES = ("hybrid", "invoice", "appointment")
REPORT_GROUPS = ("day", "month")


class ReportService:
    """Service for computing and storing appointment reports."""

    @staticmethod
    def compute_figures(appointment: Appointment, invoices: List[Invoice]) -> Dict[str, Any]:
        """
        Derive the report fields of an appointment.

        Amount is the sum of invoice totals, or the appointment price when nothing
        was invoiced. Paid comes from the payment ledgers when any payment exists;
        otherwise it is inferred from the appointment's status.
        """
        if invoices:
            amount = money_sum(
                invoice.total if invoice.total is not None else invoice.subtotal
                for invoice in invoices
            )
        else:
            amount = to_money(appointment.price)

        payment_count = sum(len(invoice.payments) for invoice in invoices)
        if payment_count:
            paid = money_sum(invoice.paid_amount for invoice in invoices)
            due = non_negative(amount - paid)
            notes = f"Computed from {len(invoices)} invoice(s) and {payment_count} payment(s)"
        else:
            if appointment.status == "Completed":
                settled = True
            elif appointment.status == "Accepted":
                settled = False
            else:
                settled = is_paid_equivalent(appointment.payment_status)
            paid, due = (amount, ZERO) if settled else (ZERO, amount)
            basis = f"{len(invoices)} invoice(s)" if invoices else "appointment price"
            notes = (
                f"Computed from {basis}; no payments recorded, "
                f"inferred from status {appointment.status}/{appointment.payment_status}"
            )

        # Any outstanding balance wins: 500 billed with 150 paid reports as Due
        if due > 0:
            status = "Due"
        elif paid > 0:
            status = "Paid"
        else:
            status = "Adjusted"

        return {
            "doctor_id": appointment.doctor_id,
            "patient_id": appointment.patient_id,
            "appointment_date": appointment.appointment_date,
            "amount": amount,
            "paid": paid,
            "due": due,
            "status": status,
            "notes": notes,
        }

    @staticmethod
    def sync_report(db: Session, appointment_id: int) -> Optional[Report]:
        """
        Recompute and upsert the report of an appointment.

        Only fields whose value changed are assigned, so a second call without an
        intervening change leaves the row untouched.

        Returns:
            The report, or None if the appointment does not exist
        """
        appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
        if not appointment:
            return None

        invoices = db.query(Invoice).filter(
            Invoice.appointment_id == appointment_id
        ).order_by(Invoice.id).all()
        figures = ReportService.compute_figures(appointment, invoices)

        report = db.query(Report).filter(Report.appointment_id == appointment_id).first()
        if report is None:
            report = Report(appointment_id=appointment_id)
            db.add(report)

        for field, value in figures.items():
            if getattr(report, field) != value:
                setattr(report, field, value)

        db.flush()
        return report

    @staticmethod
    def sync_report_safely(db: Session, appointment_id: Optional[int]) -> Optional[Report]:
        """
        Best-effort report sync inside a savepoint.

        Failures are logged and rolled back to the savepoint; the caller's own
        changes are kept.
        """
        if appointment_id is None:
            return None
        try:
            with db.begin_nested():
                return ReportService.sync_report(db, appointment_id)
        except Exception as e:
            logger.exception(f"Failed to sync report for appointment {appointment_id}: {e}")
            return None

    @staticmethod
    def get_report(db: Session, appointment_id: int) -> Optional[Report]:
        """Get the stored report of an appointment."""
        return db.query(Report).filter(Report.appointment_id == appointment_id).first()

    @staticmethod
    def delete_for_appointment(db: Session, appointment_id: int) -> bool:
        """Delete the report of an appointment. Returns whether one existed."""
        report = ReportService.get_report(db, appointment_id)
        if report is None:
            return False
        db.delete(report)
        return True

    @staticmethod
    def get_report_summary(
        db: Session,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        doctor_id: Optional[int] = None,
        group_by: str = "day",
        source: str = "hybrid",
    ) -> Dict[str, Any]:
        """
        Revenue and due per period.

        Invoices are grouped by issue date: revenue is what was paid on them and
        due is total minus payments. With source "hybrid" or "appointment",
        appointments that have no invoice are added by appointment date, their
        price counting as revenue only when paid and completed.

        Args:
            db: Database session
            start: Range start (inclusive)
            end: Range end (inclusive)
            doctor_id: Restrict to one doctor
            group_by: "day" or "month"
            source: "hybrid", "invoice" or "appointment"

        Returns:
            {"totals": {"revenue", "due"}, "by_period": [{"period", "revenue", "due", "invoices", "appointments"}]}

        Raises:
            ValueError: On an unknown group_by or source
        """
        if group_by not in REPORT_GROUPS:
            raise ValueError(f"group_by must be one of: {', '.join(REPORT_GROUPS)}")
        if source not in REPORT_SOURCES:
            raise ValueError(f"source must be one of: {', '.join(REPORT_SOURCES)}")

        by_period: Dict[str, Dict[str, Any]] = {}

        def bucket(key: str) -> Dict[str, Any]:
            return by_period.setdefault(
                key, {"period": key, "revenue": ZERO, "due": ZERO, "invoices": 0, "appointments": 0}
            )

        if source in ("hybrid", "invoice"):
            for issued_at, paid, due in ReportService._invoice_rows(db, start, end, doctor_id):
                entry = bucket(period_key(issued_at, group_by))
                entry["revenue"] += paid
                entry["due"] += due
                entry["invoices"] += 1

        if source in ("hybrid", "appointment"):
            for visit_at, appointment in ReportService._uninvoiced_appointments(db, start, end, doctor_id):
                entry = bucket(period_key(visit_at, group_by))
                price = to_money(appointment.price)
                if appointment.payment_status == "Paid" and appointment.status == "Completed":
                    entry["revenue"] += price
                else:
                    entry["due"] += price
                entry["appointments"] += 1

        periods = [by_period[key] for key in sorted(by_period)]
        totals = {
            "revenue": sum((entry["revenue"] for entry in periods), ZERO),
            "due": sum((entry["due"] for entry in periods), ZERO),
        }
        return {"totals": totals, "by_period": periods}

    @staticmethod
    def _invoice_rows(
        db: Session,
        start: Optional[datetime],
        end: Optional[datetime],
        doctor_id: Optional[int],
    ) -> List[Tuple[datetime, Decimal, Decimal]]:
        query = db.query(Invoice)
        if start is not None:
            query = query.filter(Invoice.issued_at >= start)
        if end is not None:
            query = query.filter(Invoice.issued_at <= end)
        if doctor_id is not None:
            query = query.filter(Invoice.doctor_id == doctor_id)

        rows = []
        for invoice in query.order_by(Invoice.issued_at).all():
            paid = invoice.paid_amount
            rows.append((
                ensure_clinic_tz(invoice.issued_at or invoice.created_at),
                paid,
                to_money(invoice.total) - paid,
            ))
        return rows

    @staticmethod
    def _uninvoiced_appointments(
        db: Session,
        start: Optional[datetime],
        end: Optional[datetime],
        doctor_id: Optional[int],
    ) -> List[Tuple[datetime, Appointment]]:
        query = db.query(Appointment).filter(~Appointment.invoices.any())
        if doctor_id is not None:
            query = query.filter(Appointment.doctor_id == doctor_id)

        start = ensure_clinic_tz(start)
        end = ensure_clinic_tz(end)
        matches = []
        for appointment in query.order_by(Appointment.id).all():
            visit_at = parse_appointment_date(appointment.appointment_date)
            if visit_at is None:
                continue
            if start is not None and visit_at < start:
                continue
            if end is not None and visit_at > end:
                continue
            matches.append((visit_at, appointment))
        return matches
