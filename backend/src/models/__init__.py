# Package initialization
# Import all models to ensure relationships are properly established
from .user import User
from .appointment import Appointment
from .invoice import Invoice
from .invoice_item import InvoiceItem
from .payment import Payment
from .report import Report
from .message import Message

__all__ = [
    "User",
    "Appointment",
    "Invoice",
    "InvoiceItem",
    "Payment",
    "Report",
    "Message",
]
