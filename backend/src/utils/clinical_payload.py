"""
Normalization of the clinical `result` payload saved with a prescription.

Older dashboard builds send medicine rows with capitalized or differently named
keys (``Medicine``, ``Rout``, ``Interval`` ...). Everything is normalized to the
canonical six keys before it is stored.
"""

from typing import Any, Dict, List, Tuple

MEDICINE_FIELDS: Tuple[str, ...] = ("name", "type", "dose", "frequency", "route", "duration")

# Canonical key -> accepted spellings, in lookup order
MEDICINE_KEY_ALIASES: Dict[str, Tuple[str, ...]] = {
    "name": ("name", "Medicine", "MedicineName"),
    "type": ("type", "Type"),
    "dose": ("dose", "Dose"),
    "frequency": ("frequency", "Frequency", "Interval"),
    "route": ("route", "Rout", "Route", "rout"),
    "duration": ("duration", "Duration"),
}

_ALIAS_KEYS = {alias for aliases in MEDICINE_KEY_ALIASES.values() for alias in aliases}


def normalize_medicine(medicine: Any) -> Any:
    """
    Normalize one medicine row to the canonical keys.

    The first non-empty alias wins for each canonical field; missing fields become "".
    Keys that are not aliases are preserved. Non-dict rows are returned unchanged.
    """
    if not isinstance(medicine, dict):
        return medicine

    normalized: Dict[str, Any] = {
        key: value for key, value in medicine.items() if key not in _ALIAS_KEYS
    }
    for field, aliases in MEDICINE_KEY_ALIASES.items():
        normalized[field] = next(
            (medicine[alias] for alias in aliases if medicine.get(alias)),
            "",
        )
    return normalized


def normalize_visit_record(record: Any) -> Any:
    """Ensure a visit record's medicine_advice is a list of normalized rows."""
    if not isinstance(record, dict):
        return record

    normalized = dict(record)
    advice = normalized.pop("medicineAdvice", None)
    advice = normalized.get("medicine_advice", advice)
    if advice is None:
        advice = []
    elif not isinstance(advice, list):
        advice = [advice]
    normalized["medicine_advice"] = [normalize_medicine(medicine) for medicine in advice]
    return normalized


def normalize_result(result: Any) -> List[Any]:
    """Normalize the full `result` payload into a list of visit records."""
    if result is None:
        return []
    if not isinstance(result, list):
        result = [result]
    return [normalize_visit_record(record) for record in result]
