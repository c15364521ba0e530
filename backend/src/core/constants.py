"""Application constants and configuration values."""

from decimal import Decimal

from core.config import FRONTEND_URL, DASHBOARD_URL

# Database connection settings
DB_POOL_RECYCLE_SECONDS = 300  # 5 minutes

# CORS origins for the patient frontend and the staff dashboard
_CORS_ORIGINS_RAW = [
    "http://localhost:5173",      # Patient frontend (Vite) - localhost
    "http://localhost:5174",      # Dashboard (Vite) - localhost
    FRONTEND_URL,
    DASHBOARD_URL,
]

# Filter out None values, empty strings and duplicates to avoid CORS errors
CORS_ORIGINS = list(dict.fromkeys(origin for origin in _CORS_ORIGINS_RAW if origin and origin.strip()))

# Roles
ROLE_ADMIN = "Admin"
ROLE_DOCTOR = "Doctor"
ROLE_COMPOUNDER = "Compounder"
ROLE_PATIENT = "Patient"
DASHBOARD_ROLES = (ROLE_ADMIN, ROLE_DOCTOR, ROLE_COMPOUNDER)

# Appointment state domains
APPOINTMENT_STATUSES = ("Pending", "Accepted", "Rejected", "Completed")
PAYMENT_STATUSES = ("Pending", "Due", "Accepted", "Paid")
# "Accepted" was historically written where "Paid" was meant
PAID_EQUIVALENT_PAYMENT_STATUSES = frozenset({"Paid", "Accepted"})

# Invoice state domain
INVOICE_STATUSES = ("Unpaid", "Partial", "Paid", "Cancelled")

# Pricing
APPOINTMENT_PRICE_RATIO = Decimal("0.2")  # Appointment price is 20% of the doctor's consultation fee
CONSULTATION_FEE_DESCRIPTION = "Consultation Fee"
PLATFORM_FEE_DESCRIPTION = "Platform Fee"
SETTLEMENT_PAYMENT_METHOD = "Settlement"
DEFAULT_PAYMENT_METHOD = "Cash"

# Synthesized patient identifiers
NIC_LENGTH = 13

# Listing
DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200
PATIENT_SUGGESTION_LIMIT = 10
INVOICE_STATS_DEFAULT_DAYS = 30
