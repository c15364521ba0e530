"""
HTML document service for invoices and appointment summaries.

Renders the Jinja2 templates under backend/templates into standalone HTML
documents that the dashboard downloads as attachments. Autoescaping is on for
every template, so patient-supplied text is always HTML-escaped.
"""

import logging
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from models.appointment import Appointment
from models.invoice import Invoice
from utils.datetime_utils import format_display_datetime, parse_appointment_date
from utils.money import to_money

logger = logging.getLogger(__name__)


def format_currency(value: Any) -> str:
    """Format an amount with thousands separators and cents (e.g. 2500 -> '2,500.00')."""
    try:
        return f"{to_money(value):,.2f}"
    except ValueError:
        logger.warning(f"Error formatting amount: {value!r}")
        return str(value)


def format_visit_date(value: Optional[str]) -> str:
    """Format a stored appointment date for display, keeping unparseable values as-is."""
    parsed = parse_appointment_date(value)
    return format_display_datetime(parsed) if parsed else (value or "-")


class DocumentService:
    """
    Service for rendering invoice and appointment documents.

    Templates receive plain dicts rather than ORM objects so the rendered
    document only depends on the snapshot taken here.
    """

    def __init__(self):
        """Initialize document service with template loader."""
        # Get template directory (backend/templates)
        template_dir = Path(__file__).parent.parent.parent / "templates"
        self.env = Environment(
            loader=FileSystemLoader(str(template_dir)),
            autoescape=select_autoescape(['html', 'xml'])
        )
        self.env.filters['format_currency'] = format_currency
        self.env.filters['format_datetime'] = format_display_datetime
        self.env.filters['format_visit_date'] = format_visit_date

    @staticmethod
    def invoice_data(invoice: Invoice) -> Dict[str, Any]:
        """Snapshot of an invoice for rendering."""
        patient = invoice.patient
        doctor = invoice.doctor
        appointment = invoice.appointment
        return {
            "invoice_number": invoice.invoice_number,
            "status": invoice.status,
            "issued_at": invoice.issued_at,
            "due_date": invoice.due_date,
            "patient_name": patient.full_name if patient else (appointment.patient_name if appointment else ""),
            "patient_phone": patient.phone if patient else None,
            "doctor_name": doctor.full_name if doctor else (appointment.doctor_name if appointment else ""),
            "appointment_date": appointment.appointment_date if appointment else None,
            "payment_status": appointment.payment_status if appointment else None,
            "items": [
                {
                    "description": item.description,
                    "quantity": item.quantity,
                    "unit_price": item.unit_price,
                    "total": item.total,
                }
                for item in invoice.items
            ],
            "payments": [
                {"amount": payment.amount, "method": payment.method, "paid_at": payment.paid_at}
                for payment in invoice.payments
            ],
            "subtotal": invoice.subtotal,
            "tax": invoice.tax,
            "discount": invoice.discount,
            "total": invoice.total,
            "paid": invoice.paid_amount,
            "due": invoice.due_amount,
        }

    @staticmethod
    def appointment_data(appointment: Appointment) -> Dict[str, Any]:
        """Snapshot of an appointment and its invoices for rendering."""
        items: List[Dict[str, Any]] = []
        subtotal = tax = discount = total = Decimal("0.00")
        for invoice in appointment.invoices:
            for item in invoice.items:
                items.append({
                    "invoice_number": invoice.invoice_number,
                    "description": item.description,
                    "quantity": item.quantity,
                    "unit_price": item.unit_price,
                    "total": item.total,
                })
            subtotal += to_money(invoice.subtotal)
            tax += to_money(invoice.tax)
            discount += to_money(invoice.discount)
            total += to_money(invoice.total)

        return {
            "appointment_id": appointment.id,
            "patient_name": appointment.patient_name,
            "phone": appointment.phone,
            "email": appointment.email,
            "address": appointment.address,
            "doctor_name": appointment.doctor_name,
            "department": appointment.department,
            "appointment_date": appointment.appointment_date,
            "status": appointment.status,
            "payment_status": appointment.payment_status,
            "price": appointment.price,
            "items": items,
            "subtotal": subtotal,
            "tax": tax,
            "discount": discount,
            "total": total,
        }

    def render_invoice_html(self, invoice: Invoice) -> str:
        """Render an invoice as a standalone HTML document."""
        template = self.env.get_template('invoices/invoice.html')
        return template.render(invoice=self.invoice_data(invoice))

    def render_appointment_html(self, appointment: Appointment) -> str:
        """Render an appointment summary as a standalone HTML document."""
        template = self.env.get_template('appointments/appointment.html')
        return template.render(appointment=self.appointment_data(appointment))
