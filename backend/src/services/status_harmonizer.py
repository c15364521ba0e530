"""
Harmonization of appointment status and payment status.

Appointment status and payment status are edited independently by different
flows (booking, prescription printing, dashboard edits). Every write goes through
`harmonize` so that no single-field update can store an appointment that is
'Completed' while its payment is still outstanding.
"""

from enum import Enum
from typing import Any, Dict, Mapping, Optional

from core.constants import PAID_EQUIVALENT_PAYMENT_STATUSES

STATUS = "status"
PAYMENT_STATUS = "payment_status"

# Payment values that make a dashboard edit default the status to Accepted
_STATUS_UPDATE_PAYMENT_TRIGGERS = frozenset({"Paid", "Accepted", "Pending", "Due"})


class HarmonizeContext(str, Enum):
    """The write path a payload comes from."""

    CREATE = "create"
    PRESCRIPTION_SAVE = "prescription_save"
    STATUS_UPDATE = "status_update"


def is_paid_equivalent(payment_status: Optional[str]) -> bool:
    """True for 'Paid' and for the legacy 'Accepted' spelling."""
    return payment_status in PAID_EQUIVALENT_PAYMENT_STATUSES


def is_completing_prescription(payload: Mapping[str, Any]) -> bool:
    """A prescription save completes the visit when asked explicitly or when printing."""
    return (
        payload.get(STATUS) == "Completed"
        or bool(payload.get("print"))
        or bool(payload.get("print_and_save"))
    )


def harmonize(
    payload: Mapping[str, Any],
    existing: Optional[Mapping[str, Any]],
    context: HarmonizeContext,
) -> Dict[str, Any]:
    """
    Derive a consistent (status, payment_status) pair for a write.

    Args:
        payload: Incoming fields; only `status` and `payment_status` are inspected
        existing: Current `status` / `payment_status` of the stored appointment, or None
        context: Which write path the payload comes from

    Returns:
        A copy of the payload with `status` / `payment_status` set or overridden.
        Keys absent from the result are left unchanged by the caller. Never raises;
        contradictory input is silently corrected.
    """
    result: Dict[str, Any] = dict(payload)
    existing = existing or {}

    if context == HarmonizeContext.CREATE:
        _harmonize_create(result)
    elif context == HarmonizeContext.PRESCRIPTION_SAVE:
        _harmonize_prescription_save(result, existing)
    else:
        _harmonize_status_update(result, existing)

    _guard_completed(result, existing)
    return result


def _guard_completed(result: Dict[str, Any], existing: Mapping[str, Any]) -> None:
    """Whatever the write path, Completed requires a paid-equivalent payment status."""
    status = result.get(STATUS) or existing.get(STATUS)
    payment_status = result.get(PAYMENT_STATUS) or existing.get(PAYMENT_STATUS)
    if status == "Completed" and not is_paid_equivalent(payment_status):
        result[STATUS] = "Accepted"


def _harmonize_create(result: Dict[str, Any]) -> None:
    payment_status = result.get(PAYMENT_STATUS) or "Pending"
    status = result.get(STATUS)

    if status == "Completed" and payment_status != "Paid":
        # Never book a completed visit that has not been paid for
        status, payment_status = "Accepted", "Due"
    elif not status:
        status = "Accepted" if payment_status == "Paid" else "Pending"

    result[STATUS] = status
    result[PAYMENT_STATUS] = payment_status


def _harmonize_prescription_save(result: Dict[str, Any], existing: Mapping[str, Any]) -> None:
    incoming_payment = result.get(PAYMENT_STATUS)
    paid = is_paid_equivalent(incoming_payment) or is_paid_equivalent(existing.get(PAYMENT_STATUS))

    if is_completing_prescription(result):
        if paid:
            result[STATUS], result[PAYMENT_STATUS] = "Completed", "Paid"
        else:
            # Prescription is saved, payment still outstanding
            result[STATUS], result[PAYMENT_STATUS] = "Accepted", "Pending"
        return

    if is_paid_equivalent(incoming_payment) and not result.get(STATUS):
        result[STATUS] = "Accepted"


def _harmonize_status_update(result: Dict[str, Any], existing: Mapping[str, Any]) -> None:
    incoming_payment = result.get(PAYMENT_STATUS)
    incoming_status = result.get(STATUS)

    payment_changing = (
        incoming_payment in _STATUS_UPDATE_PAYMENT_TRIGGERS
        and incoming_payment != existing.get(PAYMENT_STATUS)
    )
    if payment_changing and not incoming_status:
        still_completed = existing.get(STATUS) == "Completed" and is_paid_equivalent(incoming_payment)
        if not still_completed:
            result[STATUS] = "Accepted"

    if incoming_status == "Completed":
        if is_paid_equivalent(incoming_payment) or is_paid_equivalent(existing.get(PAYMENT_STATUS)):
            result[PAYMENT_STATUS] = "Paid"
        else:
            result[STATUS] = "Accepted"
            result[PAYMENT_STATUS] = incoming_payment or "Due"
