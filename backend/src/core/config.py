"""
Application configuration using python-dotenv.

This module loads environment variables from .env file into os.environ
for use throughout the application.
"""

import os
import pathlib
from decimal import Decimal
from dotenv import load_dotenv


# Determine if we're running in a test environment
# Don't load .env file during testing to ensure predictable test behavior
is_testing = os.getenv("PYTEST_VERSION") is not None or any("pytest" in str(frame) for frame in __import__('inspect').stack(0))

# Load .env file into os.environ (only outside of testing)
if not is_testing:
    # Try multiple possible locations for .env file
    possible_paths = [
        pathlib.Path(__file__).parent.parent.parent / ".env",  # backend/.env (when run from backend/src)
        pathlib.Path(__file__).parent.parent.parent.parent / ".env",  # .env at repository root
        pathlib.Path.cwd() / ".env",  # .env in current directory
    ]

    for env_path in possible_paths:
        if env_path.exists():
            load_dotenv(env_path)
            break


# Configuration constants with defaults
# These match the environment variables defined in .env.example
def get_database_url():
    """Get the database URL from environment."""
    return os.getenv(
        "DATABASE_URL",
        "postgresql://localhost/clinic_admin_dev"
    )

DATABASE_URL = get_database_url()
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")
DASHBOARD_URL = os.getenv("DASHBOARD_URL", "http://localhost:5174")

# Authentication
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-key-change-in-production")
JWT_ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("JWT_ACCESS_TOKEN_EXPIRE_MINUTES", "60"))

# Clinic locale
CLINIC_UTC_OFFSET_HOURS = int(os.getenv("CLINIC_UTC_OFFSET_HOURS", "5"))

# Billing
DEFAULT_CONSULTATION_FEE = Decimal(os.getenv("DEFAULT_CONSULTATION_FEE", "500"))
PLATFORM_FEE = Decimal(os.getenv("PLATFORM_FEE", "50"))

# Patient accounts created during booking
DEFAULT_PATIENT_PASSWORD = os.getenv("DEFAULT_PATIENT_PASSWORD", "defaultPassword123")
PATIENT_EMAIL_DOMAIN = os.getenv("PATIENT_EMAIL_DOMAIN", "patients.clinic.local")
