"""
Services package for shared business logic.

This package contains service classes that encapsulate business logic
shared across multiple API endpoints.
"""

from .invoice_service import InvoiceService
from .report_service import ReportService
from .patient_service import PatientService
from .notification_service import NotificationService
from .appointment_service import AppointmentService
from .document_service import DocumentService

__all__ = [
    "InvoiceService",
    "ReportService",
    "PatientService",
    "NotificationService",
    "AppointmentService",
    "DocumentService",
]
