# pyright: reportMissingTypeStubs=false
"""
Report API endpoints.

Per-appointment financial reports and the period summary used by the
dashboard's accounting page.
"""

import logging
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi import status as http_status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from core.database import get_db
from auth.dependencies import require_dashboard_user, UserContext
from services import ReportService
from utils.datetime_utils import end_of_day, parse_datetime_string, start_of_day
from api.errors import service_error
from api.responses import ReportResponse, build_report_response

logger = logging.getLogger(__name__)

router = APIRouter()


class ReportTotals(BaseModel):
    """Revenue and due over the whole range."""
    revenue: Decimal
    due: Decimal


class ReportPeriod(BaseModel):
    """Revenue and due of one period."""
    period: str
    revenue: Decimal
    due: Decimal
    invoices: int
    appointments: int


class ReportSummaryResponse(BaseModel):
    """Response model for the report summary."""
    totals: ReportTotals
    by_period: List[ReportPeriod]


@router.get("/appointment/{appointment_id}", response_model=ReportResponse)
async def get_appointment_report(
    appointment_id: int,
    current_user: UserContext = Depends(require_dashboard_user),
    db: Session = Depends(get_db)
) -> ReportResponse:
    """Get the stored report of an appointment."""
    report = ReportService.get_report(db, appointment_id)
    if not report:
        raise HTTPException(
            status_code=http_status.HTTP_404_NOT_FOUND,
            detail="Report not found"
        )
    return build_report_response(report)


@router.post("/appointment/{appointment_id}/sync", response_model=ReportResponse)
async def sync_appointment_report(
    appointment_id: int,
    current_user: UserContext = Depends(require_dashboard_user),
    db: Session = Depends(get_db)
) -> ReportResponse:
    """Recompute the report of an appointment from its invoices."""
    try:
        report = ReportService.sync_report(db, appointment_id)
        if report is None:
            raise HTTPException(
                status_code=http_status.HTTP_404_NOT_FOUND,
                detail="Appointment not found"
            )
        db.commit()
        return build_report_response(report)
    except Exception as e:
        raise service_error(db, e, "Failed to sync report")


@router.get("/summary", response_model=ReportSummaryResponse)
async def get_report_summary(
    start: Optional[str] = Query(None, description="Range start (date or datetime)"),
    end: Optional[str] = Query(None, description="Range end (date or datetime)"),
    doctor_id: Optional[int] = Query(None),
    group_by: str = Query("day", description="'day' or 'month'"),
    source: str = Query("hybrid", description="'hybrid', 'invoice' or 'appointment'"),
    current_user: UserContext = Depends(require_dashboard_user),
    db: Session = Depends(get_db)
) -> ReportSummaryResponse:
    """
    Revenue and due per day or month.

    A start without an end covers that single day.
    """
    try:
        range_start = parse_datetime_string(start) if start else None
        if end:
            range_end = parse_datetime_string(end)
            if "T" not in end:
                # A plain date includes the whole day
                range_end = end_of_day(range_end.date())
        elif range_start is not None:
            range_end = end_of_day(range_start.date())
        else:
            range_end = None
        if range_start is not None and "T" not in (start or ""):
            range_start = start_of_day(range_start.date())

        summary = ReportService.get_report_summary(
            db,
            start=range_start,
            end=range_end,
            doctor_id=doctor_id,
            group_by=group_by,
            source=source,
        )
        return ReportSummaryResponse(
            totals=ReportTotals(**summary["totals"]),
            by_period=[ReportPeriod(**period) for period in summary["by_period"]],
        )
    except Exception as e:
        raise service_error(db, e, "Failed to compute report summary")
