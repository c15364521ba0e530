# pyright: reportMissingTypeStubs=false
"""
Appointment Management API endpoints.

Booking, dashboard status edits, prescription saves and deletion of
appointments. Billing side effects (invoice generation, settlement, report
sync) happen inside AppointmentService.
"""

import logging
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi import status as http_status
from fastapi.responses import Response
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from core.database import get_db
from auth.dependencies import require_admin_role, require_dashboard_user, UserContext
from services import AppointmentService, DocumentService, PatientService
from api.errors import service_error
from api.responses import (
    AppointmentListResponse,
    AppointmentResponse,
    PatientSuggestionResponse,
    build_appointment_response,
    build_patient_suggestion,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ===== Request/Response Models =====

class AppointmentCreateRequest(BaseModel):
    """Request model for booking an appointment."""
    name: Optional[str] = Field(None, description="Full name; first token is the first name")
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    nic: Optional[str] = None
    dob: Optional[str] = Field(None, description="YYYY-MM-DD")
    age: Optional[int] = Field(None, ge=0)
    gender: Optional[str] = None
    address: Optional[str] = None
    department: Optional[str] = None
    doctor_id: Optional[int] = None
    has_visited: bool = False
    password: Optional[str] = None
    payment_status: Optional[str] = None
    status: Optional[str] = None
    appointment_date: Optional[str] = None


class AppointmentStatusUpdateRequest(BaseModel):
    """Request model for a dashboard edit of an appointment."""
    status: Optional[str] = None
    payment_status: Optional[str] = None
    appointment_date: Optional[str] = None
    department: Optional[str] = None
    address: Optional[str] = None
    has_visited: Optional[bool] = None


class PrescriptionSaveRequest(BaseModel):
    """Request model for saving a prescription on the patient's latest appointment."""
    model_config = ConfigDict(populate_by_name=True)

    result: Optional[Any] = None
    has_visited: Optional[bool] = None
    status: Optional[str] = None
    payment_status: Optional[str] = None
    print: Optional[bool] = None
    print_and_save: Optional[bool] = Field(None, alias="printAndSave")


class BulkDeleteRequest(BaseModel):
    """Request model for deleting several appointments."""
    ids: List[int] = Field(default_factory=list)


class DeleteResponse(BaseModel):
    """Response model for deletions."""
    success: bool
    deleted: int
    message: str


def _html_attachment(content: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type="text/html; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ===== Booking and queries =====

@router.post("/", status_code=http_status.HTTP_201_CREATED, response_model=None)
async def create_appointment(
    request: AppointmentCreateRequest,
    download: bool = Query(False, description="Return the appointment summary as an HTML attachment"),
    current_user: UserContext = Depends(require_dashboard_user),
    db: Session = Depends(get_db)
) -> AppointmentResponse | Response:
    """
    Book an appointment.

    Creates the patient account if needed, prices the visit from the doctor's
    consultation fee, generates the invoice and syncs the report.
    """
    try:
        appointment = AppointmentService.create_appointment(
            db, current_user, request.model_dump(exclude_unset=True)
        )
        db.commit()
    except Exception as e:
        raise service_error(db, e, "Failed to create appointment")

    if download:
        html = DocumentService().render_appointment_html(appointment)
        return _html_attachment(html, f"appointment-{appointment.id}.html")
    return build_appointment_response(appointment)


@router.get("/", response_model=AppointmentListResponse)
async def list_appointments(
    current_user: UserContext = Depends(require_dashboard_user),
    db: Session = Depends(get_db)
) -> AppointmentListResponse:
    """List all appointments."""
    try:
        appointments = AppointmentService.list_appointments(db)
        return AppointmentListResponse(
            appointments=[build_appointment_response(a) for a in appointments]
        )
    except Exception as e:
        raise service_error(db, e, "Failed to list appointments")


@router.get("/patient/{patient_id}", response_model=AppointmentListResponse)
async def list_patient_appointments(
    patient_id: int,
    current_user: UserContext = Depends(require_dashboard_user),
    db: Session = Depends(get_db)
) -> AppointmentListResponse:
    """List the appointments of a patient."""
    try:
        appointments = AppointmentService.list_appointments_for_patient(db, patient_id)
        return AppointmentListResponse(
            appointments=[build_appointment_response(a) for a in appointments]
        )
    except Exception as e:
        raise service_error(db, e, "Failed to list patient appointments")


@router.get("/search", response_model=AppointmentListResponse)
async def search_appointments(
    name: Optional[str] = Query(None),
    phone: Optional[str] = Query(None),
    current_user: UserContext = Depends(require_dashboard_user),
    db: Session = Depends(get_db)
) -> AppointmentListResponse:
    """Search appointments by patient name and/or phone."""
    try:
        appointments = AppointmentService.search_appointments(db, name=name, phone=phone)
        return AppointmentListResponse(
            appointments=[build_appointment_response(a) for a in appointments]
        )
    except Exception as e:
        raise service_error(db, e, "Failed to search appointments")


@router.get("/suggest", response_model=List[PatientSuggestionResponse])
async def suggest_patients(
    q: Optional[str] = Query(None, description="Name, phone or email fragment"),
    current_user: UserContext = Depends(require_dashboard_user),
    db: Session = Depends(get_db)
) -> List[PatientSuggestionResponse]:
    """Patient autosuggest for the booking form."""
    try:
        return [build_patient_suggestion(p) for p in PatientService.suggest_patients(db, q)]
    except Exception as e:
        raise service_error(db, e, "Failed to suggest patients")


# ===== Updates =====

def _update_status(
    appointment_id: int,
    request: AppointmentStatusUpdateRequest,
    current_user: UserContext,
    db: Session,
) -> AppointmentResponse:
    try:
        appointment = AppointmentService.update_status(
            db,
            appointment_id,
            request.model_dump(exclude_none=True),
            updated_by_id=current_user.user_id,
        )
        db.commit()
        return build_appointment_response(appointment)
    except Exception as e:
        raise service_error(db, e, "Failed to update appointment")


@router.put("/update/{appointment_id}", response_model=AppointmentResponse)
async def update_appointment(
    appointment_id: int,
    request: AppointmentStatusUpdateRequest,
    current_user: UserContext = Depends(require_admin_role),
    db: Session = Depends(get_db)
) -> AppointmentResponse:
    """Admin edit of an appointment's status, payment status or schedule."""
    return _update_status(appointment_id, request, current_user, db)


@router.put("/status/{appointment_id}", response_model=AppointmentResponse)
async def update_appointment_status(
    appointment_id: int,
    request: AppointmentStatusUpdateRequest,
    current_user: UserContext = Depends(require_dashboard_user),
    db: Session = Depends(get_db)
) -> AppointmentResponse:
    """Dashboard edit of an appointment's status or payment status."""
    return _update_status(appointment_id, request, current_user, db)


@router.put("/patient/update/{patient_id}", response_model=AppointmentResponse)
async def save_prescription(
    patient_id: int,
    request: PrescriptionSaveRequest,
    current_user: UserContext = Depends(require_dashboard_user),
    db: Session = Depends(get_db)
) -> AppointmentResponse:
    """Save a prescription on the patient's most recent appointment."""
    try:
        appointment = AppointmentService.update_latest_for_patient(
            db, patient_id, request.model_dump(exclude_none=True)
        )
        db.commit()
        return build_appointment_response(appointment)
    except Exception as e:
        raise service_error(db, e, "Failed to save prescription")


# ===== Deletion =====

@router.delete("/delete/{appointment_id}", response_model=DeleteResponse)
async def delete_appointment(
    appointment_id: int,
    current_user: UserContext = Depends(require_admin_role),
    db: Session = Depends(get_db)
) -> DeleteResponse:
    """Delete an appointment with its invoices and report."""
    try:
        AppointmentService.delete_appointment(db, appointment_id)
        db.commit()
        return DeleteResponse(success=True, deleted=1, message="Appointment deleted")
    except Exception as e:
        raise service_error(db, e, "Failed to delete appointment")


@router.post("/bulk-delete", response_model=DeleteResponse)
async def bulk_delete_appointments(
    request: BulkDeleteRequest,
    current_user: UserContext = Depends(require_admin_role),
    db: Session = Depends(get_db)
) -> DeleteResponse:
    """Delete several appointments with their invoices and reports."""
    try:
        deleted = AppointmentService.bulk_delete_appointments(db, request.ids)
        db.commit()
        return DeleteResponse(success=True, deleted=deleted, message=f"{deleted} appointment(s) deleted")
    except Exception as e:
        raise service_error(db, e, "Failed to delete appointments")


@router.delete("/delete/patient/{patient_id}", response_model=DeleteResponse)
async def delete_patient_appointments(
    patient_id: int,
    current_user: UserContext = Depends(require_admin_role),
    db: Session = Depends(get_db)
) -> DeleteResponse:
    """Delete every appointment of a patient."""
    try:
        deleted = AppointmentService.delete_appointments_for_patient(db, patient_id)
        db.commit()
        return DeleteResponse(success=True, deleted=deleted, message=f"{deleted} appointment(s) deleted")
    except Exception as e:
        raise service_error(db, e, "Failed to delete appointments")


# ===== Documents =====

@router.get("/{appointment_id}/download")
async def download_appointment(
    appointment_id: int,
    current_user: UserContext = Depends(require_dashboard_user),
    db: Session = Depends(get_db)
) -> Response:
    """Download the appointment summary as an HTML attachment."""
    try:
        appointment = AppointmentService.require_appointment(db, appointment_id)
        html = DocumentService().render_appointment_html(appointment)
    except Exception as e:
        raise service_error(db, e, "Failed to render appointment")
    return _html_attachment(html, f"appointment-{appointment_id}.html")
