"""
Service for managing invoices.

Handles invoice creation, line item normalization, total and status derivation,
the payment ledger and settlement of outstanding balances.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from core.constants import (
    DEFAULT_PAYMENT_METHOD,
    INVOICE_STATUSES,
    INVOICE_STATS_DEFAULT_DAYS,
    SETTLEMENT_PAYMENT_METHOD,
)
from core.exceptions import NotFoundError
from models.appointment import Appointment
from models.invoice import Invoice
from models.invoice_item import InvoiceItem
from models.payment import Payment
from models.user import User
from utils.datetime_utils import clinic_now, ensure_clinic_tz, period_key
from utils.money import ZERO, money_sum, non_negative, to_money

logger = logging.getLogger(__name__)

# Fields a partial invoice update may touch; everything else in the payload is ignored
UPDATABLE_INVOICE_FIELDS = frozenset({
    "invoice_number", "items", "tax", "discount", "status", "due_date", "payments", "settle",
})


class InvoiceService:
    """Service for invoice operations."""

    # ===== Arithmetic =====

    @staticmethod
    def normalize_items(items: Optional[Iterable[Any]]) -> List[InvoiceItem]:
        """
        Build line items from loosely shaped input.

        Accepts `description` or `name`, and `unit_price` or `price`. Quantity
        defaults to 1 (a missing or zero quantity counts as 1); the line total
        defaults to quantity * unit_price unless given explicitly.

        Raises:
            ValueError: On a negative quantity, unit price or total
        """
        normalized: List[InvoiceItem] = []
        for position, item in enumerate(items or []):
            if not isinstance(item, Mapping):
                # Pydantic request models
                item = item.model_dump()
            quantity = int(item.get("quantity") or 1)
            if quantity < 1:
                raise ValueError(f"Item {position}: quantity must be >= 1")

            unit_price = to_money(item.get("unit_price", item.get("price")))
            if unit_price < 0:
                raise ValueError(f"Item {position}: unit_price must be >= 0")

            explicit_total = item.get("total")
            if explicit_total is not None:
                line_total = to_money(explicit_total)
                if line_total < 0:
                    raise ValueError(f"Item {position}: total must be >= 0")
            else:
                line_total = to_money(unit_price * quantity)

            normalized.append(InvoiceItem(
                position=position,
                description=str(item.get("description") or item.get("name") or ""),
                quantity=quantity,
                unit_price=unit_price,
                total=line_total,
            ))
        return normalized

    @staticmethod
    def recompute_totals(invoice: Invoice) -> None:
        """Derive subtotal and total from the current items, tax and discount."""
        subtotal = money_sum(item.total for item in invoice.items)
        invoice.subtotal = subtotal
        invoice.total = non_negative(subtotal + to_money(invoice.tax) - to_money(invoice.discount))

    @staticmethod
    def append_payment(
        invoice: Invoice,
        amount: Any,
        method: Optional[str] = None,
        reference: Optional[str] = None,
        created_by_id: Optional[int] = None,
        paid_at: Optional[datetime] = None,
    ) -> Payment:
        """
        Record a payment on the ledger.

        Does not change the invoice status; call recompute_status afterwards.

        Raises:
            ValueError: If the amount is negative
        """
        payment_amount = to_money(amount)
        if payment_amount < 0:
            raise ValueError("Payment amount must be >= 0")

        payment = Payment(
            amount=payment_amount,
            method=method or DEFAULT_PAYMENT_METHOD,
            reference=reference,
            created_by_id=created_by_id,
            paid_at=paid_at or clinic_now(),
        )
        invoice.payments.append(payment)
        return payment

    @staticmethod
    def recompute_status(invoice: Invoice) -> str:
        """
        Derive the status from cumulative payments.

        Paid when paid >= total > 0, Partial when 0 < paid < total, otherwise Unpaid.
        """
        paid = invoice.paid_amount
        total = to_money(invoice.total)
        if total > 0 and paid >= total:
            invoice.status = "Paid"
        elif paid > 0 and paid < total:
            invoice.status = "Partial"
        else:
            invoice.status = "Unpaid"
        return invoice.status

    @staticmethod
    def settle(invoice: Invoice, created_by_id: Optional[int] = None) -> Optional[Payment]:
        """
        Pay off the outstanding balance.

        Appends a single "Settlement" payment for the remaining due (nothing when
        the invoice is already fully paid), then recomputes the status.
        Cancelled invoices are left untouched.

        Returns:
            The settlement payment, or None if nothing was due
        """
        if invoice.status == "Cancelled":
            logger.info(f"Skipping settlement of cancelled invoice {invoice.invoice_number}")
            return None

        InvoiceService.recompute_totals(invoice)
        due = invoice.due_amount
        payment = None
        if due > 0:
            payment = InvoiceService.append_payment(
                invoice,
                amount=due,
                method=SETTLEMENT_PAYMENT_METHOD,
                created_by_id=created_by_id,
            )
        InvoiceService.recompute_status(invoice)
        return payment

    @staticmethod
    def generate_invoice_number(appointment_id: Optional[int] = None) -> str:
        """
        Invoice number for automatically generated invoices.

        Format: INV-{YYYYMMDDHHMMSS}-{appointment id}, in clinic local time.
        """
        stamp = clinic_now().strftime("%Y%m%d%H%M%S")
        return f"INV-{stamp}-{appointment_id}" if appointment_id is not None else f"INV-{stamp}"

    # ===== Persistence =====

    @staticmethod
    def create_invoice(
        db: Session,
        invoice_number: Optional[str],
        patient_id: Optional[int],
        appointment_id: Optional[int] = None,
        doctor_id: Optional[int] = None,
        items: Optional[Iterable[Mapping[str, Any]]] = None,
        tax: Any = 0,
        discount: Any = 0,
        issued_at: Optional[datetime] = None,
        due_date: Optional[datetime] = None,
        status: Optional[str] = None,
    ) -> Invoice:
        """
        Create an invoice and link it to its appointment.

        Args:
            db: Database session
            invoice_number: Unique invoice number (required)
            patient_id: ID of the billed patient (required)
            appointment_id: Appointment to link the invoice to
            doctor_id: Doctor the invoice is issued for
            items: Line items (see normalize_items); empty yields a zero-total invoice
            tax: Tax amount added to the subtotal
            discount: Discount subtracted from the subtotal
            issued_at: Issue date (defaults to now)
            due_date: Optional payment due date
            status: Explicit status; defaults to "Unpaid"

        Returns:
            Created invoice (flushed, not committed)

        Raises:
            ValueError: If required fields are missing or values are invalid
            NotFoundError: If the appointment or doctor does not exist
        """
        if not invoice_number or not patient_id:
            raise ValueError("invoice_number and patient are required")

        if status is not None and status not in INVOICE_STATUSES:
            raise ValueError(f"Invalid invoice status. Must be one of: {', '.join(INVOICE_STATUSES)}")

        appointment = None
        if appointment_id is not None:
            appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
            if not appointment:
                raise NotFoundError("Appointment not found")

        if doctor_id is not None:
            doctor = db.query(User).filter(User.id == doctor_id).first()
            if not doctor:
                raise NotFoundError("Doctor not found")

        existing = db.query(Invoice).filter(Invoice.invoice_number == invoice_number).first()
        if existing:
            raise ValueError(f"Invoice number {invoice_number} already exists")

        tax_amount = to_money(tax)
        discount_amount = to_money(discount)
        if tax_amount < 0 or discount_amount < 0:
            raise ValueError("tax and discount must be >= 0")

        invoice = Invoice(
            invoice_number=invoice_number,
            patient_id=patient_id,
            doctor_id=doctor_id,
            tax=tax_amount,
            discount=discount_amount,
            issued_at=ensure_clinic_tz(issued_at) or clinic_now(),
            due_date=ensure_clinic_tz(due_date),
            status=status or "Unpaid",
        )
        invoice.items = InvoiceService.normalize_items(items)
        InvoiceService.recompute_totals(invoice)

        if appointment is not None:
            appointment.invoices.append(invoice)

        db.add(invoice)
        db.flush()

        logger.info(f"Created invoice {invoice.invoice_number} (total {invoice.total}) for patient {patient_id}")
        return invoice

    @staticmethod
    def get_invoice_by_id(db: Session, invoice_id: int) -> Optional[Invoice]:
        """Get an invoice by ID."""
        return db.query(Invoice).filter(Invoice.id == invoice_id).first()

    @staticmethod
    def require_invoice(db: Session, invoice_id: int) -> Invoice:
        """Get an invoice by ID or raise NotFoundError."""
        invoice = InvoiceService.get_invoice_by_id(db, invoice_id)
        if not invoice:
            raise NotFoundError("Invoice not found")
        return invoice

    @staticmethod
    def get_invoices_for_appointment(db: Session, appointment_id: int) -> List[Invoice]:
        """All invoices billed for an appointment, oldest first."""
        return db.query(Invoice).filter(
            Invoice.appointment_id == appointment_id
        ).order_by(Invoice.id).all()

    @staticmethod
    def require_invoices_for_appointment(db: Session, appointment_id: int) -> List[Invoice]:
        """Invoices of an appointment, raising NotFoundError when there are none."""
        invoices = InvoiceService.get_invoices_for_appointment(db, appointment_id)
        if not invoices:
            raise NotFoundError("No invoices found for this appointment")
        return invoices

    @staticmethod
    def apply_changes(
        invoice: Invoice,
        changes: Mapping[str, Any],
        created_by_id: Optional[int] = None,
    ) -> Invoice:
        """
        Apply an allow-listed partial update to an invoice in memory.

        Supported keys: invoice_number (an empty value is ignored), items, tax,
        discount, status, due_date, payments (appended to the ledger) and settle
        (pay off the remaining balance). Totals are always recomputed. The status
        is recomputed when payments were recorded and no explicit status was given.

        Raises:
            ValueError: On invalid values
        """
        changes = {key: value for key, value in changes.items() if key in UPDATABLE_INVOICE_FIELDS}

        if changes.get("invoice_number"):
            invoice.invoice_number = changes["invoice_number"]

        if changes.get("items") is not None:
            invoice.items = InvoiceService.normalize_items(changes["items"])

        for field in ("tax", "discount"):
            if changes.get(field) is not None:
                amount = to_money(changes[field])
                if amount < 0:
                    raise ValueError(f"{field} must be >= 0")
                setattr(invoice, field, amount)

        if changes.get("due_date") is not None:
            invoice.due_date = ensure_clinic_tz(changes["due_date"])

        InvoiceService.recompute_totals(invoice)

        payments = changes.get("payments") or []
        for payment in payments:
            InvoiceService.append_payment(
                invoice,
                amount=payment.get("amount"),
                method=payment.get("method"),
                reference=payment.get("reference"),
                created_by_id=created_by_id,
                paid_at=payment.get("paid_at"),
            )

        explicit_status = changes.get("status")
        if changes.get("settle"):
            InvoiceService.settle(invoice, created_by_id=created_by_id)
        elif payments and not explicit_status:
            InvoiceService.recompute_status(invoice)

        if explicit_status:
            if explicit_status not in INVOICE_STATUSES:
                raise ValueError(f"Invalid invoice status. Must be one of: {', '.join(INVOICE_STATUSES)}")
            invoice.status = explicit_status

        return invoice

    @staticmethod
    def update_invoice(
        db: Session,
        invoice_id: int,
        changes: Mapping[str, Any],
        created_by_id: Optional[int] = None,
    ) -> Invoice:
        """
        Partially update an invoice (see apply_changes).

        Raises:
            NotFoundError: If the invoice does not exist
            ValueError: On invalid values or a duplicate invoice number
        """
        invoice = InvoiceService.require_invoice(db, invoice_id)

        new_number = changes.get("invoice_number")
        if new_number and new_number != invoice.invoice_number:
            duplicate = db.query(Invoice).filter(Invoice.invoice_number == new_number).first()
            if duplicate:
                raise ValueError(f"Invoice number {new_number} already exists")

        InvoiceService.apply_changes(invoice, changes, created_by_id=created_by_id)
        db.flush()
        return invoice

    @staticmethod
    def update_invoices_for_appointment(
        db: Session,
        appointment_id: int,
        changes: Mapping[str, Any],
        created_by_id: Optional[int] = None,
    ) -> List[Invoice]:
        """
        Apply the same partial update to every invoice of an appointment.

        The invoice number is never bulk-assigned since it must stay unique.

        Raises:
            NotFoundError: If the appointment has no invoices
        """
        invoices = InvoiceService.require_invoices_for_appointment(db, appointment_id)
        bulk_changes = {key: value for key, value in changes.items() if key != "invoice_number"}
        for invoice in invoices:
            InvoiceService.apply_changes(invoice, bulk_changes, created_by_id=created_by_id)
        db.flush()
        return invoices

    @staticmethod
    def settle_invoice(db: Session, invoice_id: int, created_by_id: Optional[int] = None) -> Invoice:
        """Settle one invoice. Raises NotFoundError if it does not exist."""
        invoice = InvoiceService.require_invoice(db, invoice_id)
        InvoiceService.settle(invoice, created_by_id=created_by_id)
        db.flush()
        return invoice

    @staticmethod
    def settle_invoices_for_appointment(
        db: Session,
        appointment_id: int,
        created_by_id: Optional[int] = None,
    ) -> List[Invoice]:
        """
        Settle every invoice of an appointment, each in its own savepoint.

        A failure on one invoice is logged and does not stop the others.
        Cancelled invoices are left untouched.

        Returns:
            The invoices that were settled successfully
        """
        settled: List[Invoice] = []
        for invoice in InvoiceService.get_invoices_for_appointment(db, appointment_id):
            if invoice.status == "Cancelled":
                continue
            try:
                with db.begin_nested():
                    InvoiceService.settle(invoice, created_by_id=created_by_id)
                settled.append(invoice)
            except Exception as e:
                logger.exception(f"Failed to settle invoice {invoice.id} for appointment {appointment_id}: {e}")
        return settled

    @staticmethod
    def delete_invoice(db: Session, invoice_id: int) -> Optional[int]:
        """
        Delete an invoice together with its items and payments.

        The invoice is unlinked from its appointment first. The appointment's
        report is not touched; the caller re-syncs it.

        Returns:
            ID of the appointment the invoice belonged to, if any

        Raises:
            NotFoundError: If the invoice does not exist
        """
        invoice = InvoiceService.require_invoice(db, invoice_id)
        appointment_id = invoice.appointment_id

        if invoice.appointment is not None and invoice in invoice.appointment.invoices:
            invoice.appointment.invoices.remove(invoice)

        db.delete(invoice)
        db.flush()
        logger.info(f"Deleted invoice {invoice_id}")
        return appointment_id

    # ===== Queries =====

    @staticmethod
    def list_invoices(
        db: Session,
        patient_id: Optional[int] = None,
        doctor_id: Optional[int] = None,
        appointment_id: Optional[int] = None,
        status: Optional[str] = None,
        q: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        page: int = 1,
        limit: int = 50,
    ) -> List[Invoice]:
        """List invoices matching all given filters, newest issue date first."""
        query = db.query(Invoice)
        if patient_id is not None:
            query = query.filter(Invoice.patient_id == patient_id)
        if doctor_id is not None:
            query = query.filter(Invoice.doctor_id == doctor_id)
        if appointment_id is not None:
            query = query.filter(Invoice.appointment_id == appointment_id)
        if status:
            query = query.filter(Invoice.status == status)
        if q:
            query = query.filter(Invoice.invoice_number.ilike(f"%{q}%"))
        if start is not None:
            query = query.filter(Invoice.issued_at >= start)
        if end is not None:
            query = query.filter(Invoice.issued_at <= end)

        offset = (max(page, 1) - 1) * limit
        return query.order_by(Invoice.issued_at.desc(), Invoice.id.desc()).offset(offset).limit(limit).all()

    @staticmethod
    def search_invoices(db: Session, q: str) -> List[Invoice]:
        """
        Search invoices by invoice number or by the patient's name, phone or email.

        Raises:
            ValueError: If the query is empty
        """
        if not q or not q.strip():
            raise ValueError("Search query required")
        pattern = f"%{q.strip()}%"

        patient_ids = [
            row.id for row in db.query(User.id).filter(or_(
                User.first_name.ilike(pattern),
                User.last_name.ilike(pattern),
                User.phone.ilike(pattern),
                User.email.ilike(pattern),
            )).all()
        ]

        conditions = [Invoice.invoice_number.ilike(pattern)]
        if patient_ids:
            conditions.append(Invoice.patient_id.in_(patient_ids))

        return db.query(Invoice).filter(or_(*conditions)).order_by(Invoice.issued_at.desc(), Invoice.id.desc()).all()

    @staticmethod
    def get_invoice_stats(
        db: Session,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        group: Optional[str] = None,
        doctor_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Total earning (payments received) and total due over a date range.

        Args:
            db: Database session
            start: Range start on issue date (defaults to 29 days before end)
            end: Range end on issue date (defaults to now)
            group: "day", "week" or "month" to break totals down per period
            doctor_id: Restrict to one doctor's invoices

        Returns:
            {"total_earning", "total_due", "groups": [{"period", "total_earning", "total_due", "count"}]}
        """
        end = end or clinic_now()
        start = start or (end - timedelta(days=INVOICE_STATS_DEFAULT_DAYS - 1))

        query = db.query(Invoice).filter(Invoice.issued_at >= start, Invoice.issued_at <= end)
        if doctor_id is not None:
            query = query.filter(Invoice.doctor_id == doctor_id)

        total_earning = ZERO
        total_due = ZERO
        groups: Dict[str, Dict[str, Any]] = {}

        for invoice in query.all():
            paid = invoice.paid_amount
            due = invoice.due_amount
            total_earning += paid
            total_due += due

            issued = ensure_clinic_tz(invoice.issued_at or invoice.created_at) or clinic_now()
            key = period_key(issued, group)
            bucket = groups.setdefault(key, {"period": key, "total_earning": ZERO, "total_due": ZERO, "count": 0})
            bucket["total_earning"] += paid
            bucket["total_due"] += due
            bucket["count"] += 1

        return {
            "total_earning": total_earning,
            "total_due": total_due,
            "groups": [groups[key] for key in sorted(groups)],
        }
