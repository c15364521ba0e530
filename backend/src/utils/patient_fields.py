"""
Derivation of patient identity fields at booking time.

Front-desk staff often book with a name and a phone number only; these helpers
fill in the remaining identity fields the way the booking workflow expects.
"""

import re
from datetime import date, datetime
from typing import Optional, Tuple

from core.config import PATIENT_EMAIL_DOMAIN
from core.constants import NIC_LENGTH
from utils.datetime_utils import clinic_now, clinic_today, years_before


def split_name(full_name: Optional[str]) -> Tuple[str, str]:
    """
    Split a free-text name into (first_name, last_name).

    The first whitespace-separated token is the first name and the remainder is
    the last name. A single-token name yields an empty last name.
    """
    tokens = (full_name or "").split()
    if not tokens:
        return "", ""
    return tokens[0], " ".join(tokens[1:])


def placeholder_first_name(email: Optional[str], phone: Optional[str]) -> str:
    """Name for a patient booked without one: email local part, else phone suffix."""
    if email and "@" in email:
        local_part = email.split("@", 1)[0].strip()
        if local_part:
            return local_part
    digits = re.sub(r"\D", "", phone or "")
    return f"Patient-{digits[-4:]}" if digits else "Patient"


def derive_dob_from_age(age: int, today: Optional[date] = None) -> date:
    """Approximate a date of birth as today minus `age` years."""
    return years_before(today or clinic_today(), age)


def derive_age_from_dob(dob: date, today: Optional[date] = None) -> int:
    """Whole years since `dob`, computed as floor(days / 365.25)."""
    days = ((today or clinic_today()) - dob).days
    return max(0, int(days // 365.25))


def synthesize_nic(phone: str, now: Optional[datetime] = None) -> str:
    """
    Build a 13-character pseudo national id from phone digits and the current time.

    Not secure and not guaranteed unique: it only fills the field for walk-in
    patients who do not give an id.
    """
    timestamp_ms = int((now or clinic_now()).timestamp() * 1000)
    digits = re.sub(r"\D", "", phone or "") + str(timestamp_ms)
    return digits[-NIC_LENGTH:].rjust(NIC_LENGTH, "0")


def synthesize_email(first_name: str, phone: str) -> str:
    """Placeholder email: lowercase first name + last two phone digits at the patient domain."""
    slug = re.sub(r"[^a-z0-9]", "", (first_name or "").lower()) or "patient"
    digits = re.sub(r"\D", "", phone or "")
    return f"{slug}{digits[-2:]}@{PATIENT_EMAIL_DOMAIN}"
