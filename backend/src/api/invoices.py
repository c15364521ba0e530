# pyright: reportMissingTypeStubs=false
"""
Invoice API endpoints.

Handles invoice creation, editing, payment recording, settlement, listing,
statistics and HTML download. Every mutation re-syncs the report of the
appointment the invoice belongs to.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi import status as http_status
from fastapi.responses import Response
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from core.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from core.database import get_db
from auth.dependencies import require_admin_role, require_dashboard_user, UserContext
from services import DocumentService, InvoiceService, ReportService
from utils.datetime_utils import ensure_clinic_tz
from api.errors import service_error
from api.responses import InvoiceListResponse, InvoiceResponse, build_invoice_response

logger = logging.getLogger(__name__)

router = APIRouter()


# ===== Request/Response Models =====

class InvoiceItemRequest(BaseModel):
    """Request model for an invoice line item."""
    model_config = ConfigDict(populate_by_name=True)

    description: Optional[str] = Field(None, description="Falls back to `name`")
    name: Optional[str] = None
    quantity: Optional[int] = Field(None, description="Missing or 0 counts as 1")
    unit_price: Optional[Decimal] = Field(None, alias="unitPrice")
    price: Optional[Decimal] = None
    total: Optional[Decimal] = Field(None, description="Overrides quantity * unit_price")


class PaymentRequest(BaseModel):
    """Request model for recording a payment."""
    amount: Decimal
    method: Optional[str] = None
    reference: Optional[str] = None
    paid_at: Optional[datetime] = None


class InvoiceCreateRequest(BaseModel):
    """Request model for creating an invoice."""
    invoice_number: Optional[str] = None
    patient_id: Optional[int] = None
    appointment_id: Optional[int] = None
    doctor_id: Optional[int] = None
    items: List[InvoiceItemRequest] = Field(default_factory=list)
    tax: Decimal = Decimal("0")
    discount: Decimal = Decimal("0")
    issued_at: Optional[datetime] = None
    due_date: Optional[datetime] = None
    status: Optional[str] = None


class InvoiceUpdateRequest(BaseModel):
    """Request model for a partial invoice update."""
    invoice_number: Optional[str] = None
    items: Optional[List[InvoiceItemRequest]] = None
    tax: Optional[Decimal] = None
    discount: Optional[Decimal] = None
    status: Optional[str] = None
    due_date: Optional[datetime] = None
    payments: Optional[List[PaymentRequest]] = Field(None, description="Payments to append to the ledger")
    settle: bool = Field(False, description="Pay off the remaining balance")


class InvoiceStatsGroup(BaseModel):
    """Totals of one period."""
    period: str
    total_earning: Decimal
    total_due: Decimal
    count: int


class InvoiceStatsResponse(BaseModel):
    """Response model for invoice statistics."""
    total_earning: Decimal
    total_due: Decimal
    groups: List[InvoiceStatsGroup]


class DeleteInvoiceResponse(BaseModel):
    """Response model for invoice deletion."""
    success: bool
    message: str


def _item_dicts(items: Optional[List[InvoiceItemRequest]]) -> Optional[List[Dict[str, Any]]]:
    if items is None:
        return None
    return [item.model_dump(exclude_none=True) for item in items]


def _update_changes(request: InvoiceUpdateRequest) -> Dict[str, Any]:
    changes = request.model_dump(exclude_none=True, exclude={"items", "payments"})
    if request.items is not None:
        changes["items"] = _item_dicts(request.items)
    if request.payments is not None:
        changes["payments"] = [payment.model_dump() for payment in request.payments]
    return changes


def _html_attachment(content: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type="text/html; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ===== Create and list =====

@router.post("/", status_code=http_status.HTTP_201_CREATED, response_model=InvoiceResponse)
async def create_invoice(
    request: InvoiceCreateRequest,
    current_user: UserContext = Depends(require_dashboard_user),
    db: Session = Depends(get_db)
) -> InvoiceResponse:
    """Create an invoice, optionally linked to an appointment."""
    try:
        invoice = InvoiceService.create_invoice(
            db,
            invoice_number=request.invoice_number,
            patient_id=request.patient_id,
            appointment_id=request.appointment_id,
            doctor_id=request.doctor_id,
            items=_item_dicts(request.items),
            tax=request.tax,
            discount=request.discount,
            issued_at=request.issued_at,
            due_date=request.due_date,
            status=request.status,
        )
        ReportService.sync_report_safely(db, invoice.appointment_id)
        db.commit()
        return build_invoice_response(invoice)
    except Exception as e:
        raise service_error(db, e, "Failed to create invoice")


@router.get("/", response_model=InvoiceListResponse)
async def list_invoices(
    patient_id: Optional[int] = Query(None),
    doctor_id: Optional[int] = Query(None),
    appointment_id: Optional[int] = Query(None),
    status: Optional[str] = Query(None),
    q: Optional[str] = Query(None, description="Invoice number fragment"),
    start: Optional[datetime] = Query(None, description="Issued on or after"),
    end: Optional[datetime] = Query(None, description="Issued on or before"),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    current_user: UserContext = Depends(require_dashboard_user),
    db: Session = Depends(get_db)
) -> InvoiceListResponse:
    """List invoices, newest first."""
    try:
        invoices = InvoiceService.list_invoices(
            db,
            patient_id=patient_id,
            doctor_id=doctor_id,
            appointment_id=appointment_id,
            status=status,
            q=q,
            start=ensure_clinic_tz(start),
            end=ensure_clinic_tz(end),
            page=page,
            limit=limit,
        )
        return InvoiceListResponse(invoices=[build_invoice_response(i) for i in invoices])
    except Exception as e:
        raise service_error(db, e, "Failed to list invoices")


@router.get("/search", response_model=InvoiceListResponse)
async def search_invoices(
    q: Optional[str] = Query(None, description="Invoice number or patient name, phone or email"),
    current_user: UserContext = Depends(require_dashboard_user),
    db: Session = Depends(get_db)
) -> InvoiceListResponse:
    """Search invoices by number or patient."""
    try:
        invoices = InvoiceService.search_invoices(db, q or "")
        return InvoiceListResponse(invoices=[build_invoice_response(i) for i in invoices])
    except Exception as e:
        raise service_error(db, e, "Failed to search invoices")


@router.get("/stats", response_model=InvoiceStatsResponse)
async def get_invoice_stats(
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    group: Optional[str] = Query(None, pattern="^(day|week|month)$"),
    doctor_id: Optional[int] = Query(None),
    current_user: UserContext = Depends(require_dashboard_user),
    db: Session = Depends(get_db)
) -> InvoiceStatsResponse:
    """Total earning and due over a date range (default: last 30 days)."""
    try:
        stats = InvoiceService.get_invoice_stats(
            db,
            start=ensure_clinic_tz(start),
            end=ensure_clinic_tz(end),
            group=group,
            doctor_id=doctor_id,
        )
        return InvoiceStatsResponse(
            total_earning=stats["total_earning"],
            total_due=stats["total_due"],
            groups=[InvoiceStatsGroup(**group_stats) for group_stats in stats["groups"]],
        )
    except Exception as e:
        raise service_error(db, e, "Failed to compute invoice statistics")


# ===== Invoices of an appointment =====

@router.get("/appointment/{appointment_id}", response_model=InvoiceListResponse)
async def get_appointment_invoices(
    appointment_id: int,
    current_user: UserContext = Depends(require_dashboard_user),
    db: Session = Depends(get_db)
) -> InvoiceListResponse:
    """Invoices of an appointment."""
    try:
        invoices = InvoiceService.require_invoices_for_appointment(db, appointment_id)
        return InvoiceListResponse(invoices=[build_invoice_response(i) for i in invoices])
    except Exception as e:
        raise service_error(db, e, "Failed to get invoices")


@router.put("/appointment/{appointment_id}", response_model=InvoiceListResponse)
async def update_appointment_invoices(
    appointment_id: int,
    request: InvoiceUpdateRequest,
    current_user: UserContext = Depends(require_dashboard_user),
    db: Session = Depends(get_db)
) -> InvoiceListResponse:
    """Apply the same partial update to every invoice of an appointment."""
    try:
        invoices = InvoiceService.update_invoices_for_appointment(
            db, appointment_id, _update_changes(request), created_by_id=current_user.user_id
        )
        ReportService.sync_report_safely(db, appointment_id)
        db.commit()
        return InvoiceListResponse(invoices=[build_invoice_response(i) for i in invoices])
    except Exception as e:
        raise service_error(db, e, "Failed to update invoices")


@router.post("/appointment/{appointment_id}/settle", response_model=InvoiceListResponse)
async def settle_appointment_invoices(
    appointment_id: int,
    current_user: UserContext = Depends(require_dashboard_user),
    db: Session = Depends(get_db)
) -> InvoiceListResponse:
    """Settle every invoice of an appointment."""
    try:
        InvoiceService.require_invoices_for_appointment(db, appointment_id)
        invoices = InvoiceService.settle_invoices_for_appointment(
            db, appointment_id, created_by_id=current_user.user_id
        )
        ReportService.sync_report_safely(db, appointment_id)
        db.commit()
        return InvoiceListResponse(invoices=[build_invoice_response(i) for i in invoices])
    except Exception as e:
        raise service_error(db, e, "Failed to settle invoices")


# ===== Single invoice =====

@router.get("/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(
    invoice_id: int,
    current_user: UserContext = Depends(require_dashboard_user),
    db: Session = Depends(get_db)
) -> InvoiceResponse:
    """Get an invoice."""
    try:
        return build_invoice_response(InvoiceService.require_invoice(db, invoice_id))
    except Exception as e:
        raise service_error(db, e, "Failed to get invoice")


@router.put("/{invoice_id}", response_model=InvoiceResponse)
async def update_invoice(
    invoice_id: int,
    request: InvoiceUpdateRequest,
    current_user: UserContext = Depends(require_dashboard_user),
    db: Session = Depends(get_db)
) -> InvoiceResponse:
    """Partially update an invoice, record payments or settle it."""
    try:
        invoice = InvoiceService.update_invoice(
            db, invoice_id, _update_changes(request), created_by_id=current_user.user_id
        )
        ReportService.sync_report_safely(db, invoice.appointment_id)
        db.commit()
        return build_invoice_response(invoice)
    except Exception as e:
        raise service_error(db, e, "Failed to update invoice")


@router.post("/{invoice_id}/settle", response_model=InvoiceResponse)
async def settle_invoice(
    invoice_id: int,
    current_user: UserContext = Depends(require_dashboard_user),
    db: Session = Depends(get_db)
) -> InvoiceResponse:
    """Pay off an invoice's remaining balance."""
    try:
        invoice = InvoiceService.settle_invoice(db, invoice_id, created_by_id=current_user.user_id)
        ReportService.sync_report_safely(db, invoice.appointment_id)
        db.commit()
        return build_invoice_response(invoice)
    except Exception as e:
        raise service_error(db, e, "Failed to settle invoice")


@router.delete("/{invoice_id}", response_model=DeleteInvoiceResponse)
async def delete_invoice(
    invoice_id: int,
    current_user: UserContext = Depends(require_admin_role),
    db: Session = Depends(get_db)
) -> DeleteInvoiceResponse:
    """Delete an invoice. Admin-only."""
    try:
        appointment_id = InvoiceService.delete_invoice(db, invoice_id)
        ReportService.sync_report_safely(db, appointment_id)
        db.commit()
        return DeleteInvoiceResponse(success=True, message="Invoice deleted")
    except Exception as e:
        raise service_error(db, e, "Failed to delete invoice")


@router.get("/{invoice_id}/download")
async def download_invoice(
    invoice_id: int,
    current_user: UserContext = Depends(require_dashboard_user),
    db: Session = Depends(get_db)
) -> Response:
    """Download an invoice as an HTML attachment."""
    try:
        invoice = InvoiceService.require_invoice(db, invoice_id)
        html = DocumentService().render_invoice_html(invoice)
    except Exception as e:
        raise service_error(db, e, "Failed to render invoice")
    return _html_attachment(html, f"invoice-{invoice_id}.html")
