"""
Shared response models for API endpoints.

This module contains Pydantic response models that are shared across
multiple API endpoints, together with the helpers that build them from
ORM objects.
"""

from datetime import datetime, date
from decimal import Decimal
from typing import Any, List, Optional

from pydantic import BaseModel

from models import Appointment, Invoice, Report, User


class InvoiceItemResponse(BaseModel):
    """Response model for an invoice line item."""
    description: str
    quantity: int
    unit_price: Decimal
    total: Decimal


class PaymentResponse(BaseModel):
    """Response model for a recorded payment."""
    id: int
    amount: Decimal
    method: str
    reference: Optional[str] = None
    paid_at: datetime
    created_by_id: Optional[int] = None


class InvoiceResponse(BaseModel):
    """Response model for invoice details."""
    id: int
    invoice_number: str
    appointment_id: Optional[int] = None
    patient_id: Optional[int] = None
    doctor_id: Optional[int] = None
    items: List[InvoiceItemResponse]
    subtotal: Decimal
    tax: Decimal
    discount: Decimal
    total: Decimal
    paid: Decimal  # Sum of payments
    due: Decimal  # Outstanding balance, never negative
    status: str
    issued_at: datetime
    due_date: Optional[datetime] = None
    payments: List[PaymentResponse]
    created_at: datetime
    updated_at: datetime


class InvoiceListResponse(BaseModel):
    """Response model for listing invoices."""
    invoices: List[InvoiceResponse]


class AppointmentResponse(BaseModel):
    """Response model for appointment details."""
    id: int
    first_name: str
    last_name: str
    email: Optional[str] = None
    phone: str
    nic: Optional[str] = None
    dob: Optional[date] = None
    age: Optional[int] = None
    gender: Optional[str] = None
    address: str
    appointment_date: str
    department: str
    doctor_id: Optional[int] = None
    doctor_first_name: str
    doctor_last_name: str
    has_visited: bool
    patient_id: Optional[int] = None
    status: str
    payment_status: str
    price: Decimal
    result: List[Any]
    invoice_ids: List[int]
    booked_by_id: Optional[int] = None
    booked_by_name: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class AppointmentListResponse(BaseModel):
    """Response model for listing appointments."""
    appointments: List[AppointmentResponse]


class ReportResponse(BaseModel):
    """Response model for an appointment report."""
    appointment_id: int
    doctor_id: Optional[int] = None
    patient_id: Optional[int] = None
    appointment_date: Optional[str] = None
    amount: Decimal
    paid: Decimal
    due: Decimal
    status: str
    notes: Optional[str] = None


class PatientSuggestionResponse(BaseModel):
    """Response model for a booking autosuggest entry."""
    id: int
    first_name: str
    last_name: str
    email: str
    phone: Optional[str] = None
    nic: Optional[str] = None
    dob: Optional[date] = None
    gender: Optional[str] = None


def build_invoice_response(invoice: Invoice) -> InvoiceResponse:
    return InvoiceResponse(
        id=invoice.id,
        invoice_number=invoice.invoice_number,
        appointment_id=invoice.appointment_id,
        patient_id=invoice.patient_id,
        doctor_id=invoice.doctor_id,
        items=[
            InvoiceItemResponse(
                description=item.description,
                quantity=item.quantity,
                unit_price=item.unit_price,
                total=item.total,
            )
            for item in invoice.items
        ],
        subtotal=invoice.subtotal,
        tax=invoice.tax,
        discount=invoice.discount,
        total=invoice.total,
        paid=invoice.paid_amount,
        due=invoice.due_amount,
        status=invoice.status,
        issued_at=invoice.issued_at,
        due_date=invoice.due_date,
        payments=[
            PaymentResponse(
                id=payment.id,
                amount=payment.amount,
                method=payment.method,
                reference=payment.reference,
                paid_at=payment.paid_at,
                created_by_id=payment.created_by_id,
            )
            for payment in invoice.payments
        ],
        created_at=invoice.created_at,
        updated_at=invoice.updated_at,
    )


def build_appointment_response(appointment: Appointment) -> AppointmentResponse:
    return AppointmentResponse(
        id=appointment.id,
        first_name=appointment.first_name,
        last_name=appointment.last_name,
        email=appointment.email,
        phone=appointment.phone,
        nic=appointment.nic,
        dob=appointment.dob,
        age=appointment.age,
        gender=appointment.gender,
        address=appointment.address,
        appointment_date=appointment.appointment_date,
        department=appointment.department,
        doctor_id=appointment.doctor_id,
        doctor_first_name=appointment.doctor_first_name,
        doctor_last_name=appointment.doctor_last_name,
        has_visited=appointment.has_visited,
        patient_id=appointment.patient_id,
        status=appointment.status,
        payment_status=appointment.payment_status,
        price=appointment.price,
        result=appointment.result or [],
        invoice_ids=appointment.invoice_ids,
        booked_by_id=appointment.booked_by_id,
        booked_by_name=appointment.booked_by_name,
        created_at=appointment.created_at,
        updated_at=appointment.updated_at,
    )


def build_report_response(report: Report) -> ReportResponse:
    return ReportResponse(
        appointment_id=report.appointment_id,
        doctor_id=report.doctor_id,
        patient_id=report.patient_id,
        appointment_date=report.appointment_date,
        amount=report.amount,
        paid=report.paid,
        due=report.due,
        status=report.status,
        notes=report.notes,
    )


def build_patient_suggestion(patient: User) -> PatientSuggestionResponse:
    return PatientSuggestionResponse(
        id=patient.id,
        first_name=patient.first_name,
        last_name=patient.last_name,
        email=patient.email,
        phone=patient.phone,
        nic=patient.nic,
        dob=patient.dob,
        gender=patient.gender,
    )
