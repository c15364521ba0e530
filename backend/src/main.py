# pyright: reportMissingTypeStubs=false
"""
Clinic Admin Backend API

A FastAPI application providing the staff dashboard backend of a clinic:
appointment booking, invoicing and per-appointment financial reports.

Features:
- Appointment lifecycle with harmonized status / payment status
- Invoices with line items, payment ledger and settlement
- Financial reports recomputed from appointments and invoices
- PostgreSQL database with SQLAlchemy ORM
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import appointments, invoices, reports
from core.constants import CORS_ORIGINS
from core.exceptions import NotFoundError, PermissionDeniedError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()],
)

logger = logging.getLogger(__name__)
logger.info("🏥 Clinic Admin API starting...")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    # Schema is managed by Alembic: run `alembic upgrade head` from backend/ before starting
    logger.info("🚀 Starting Clinic Admin Backend API")

    yield

    logger.info("🛑 Shutting down Clinic Admin Backend API")


# Create FastAPI application
app = FastAPI(
    title="Clinic Admin Backend",
    description="Appointments, invoices and financial reports for clinic staff",
    version="1.0.0",
    docs_url="/docs",  # Swagger UI
    redoc_url="/redoc",  # ReDoc
    lifespan=lifespan,
)

# CORS middleware for frontend integration
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(
    appointments.router,
    prefix="/api/appointments",
    tags=["appointments"],
    responses={
        400: {"description": "Bad request"},
        401: {"description": "Unauthorized"},
        403: {"description": "Forbidden"},
        404: {"description": "Resource not found"},
        500: {"description": "Internal server error"},
    },
)
app.include_router(
    invoices.router,
    prefix="/api/invoices",
    tags=["invoices"],
    responses={
        400: {"description": "Bad request"},
        401: {"description": "Unauthorized"},
        403: {"description": "Forbidden"},
        404: {"description": "Resource not found"},
        500: {"description": "Internal server error"},
    },
)
app.include_router(
    reports.router,
    prefix="/api/reports",
    tags=["reports"],
    responses={
        401: {"description": "Unauthorized"},
        403: {"description": "Forbidden"},
        404: {"description": "Resource not found"},
        500: {"description": "Internal server error"},
    },
)


@app.get(
    "/",
    summary="Root endpoint",
    description="Returns basic API information",
)
async def root() -> dict[str, str]:
    """Get API information."""
    return {
        "message": "Clinic Admin Backend API",
        "version": "1.0.0",
        "status": "running"
    }


@app.get(
    "/health",
    summary="Health check",
    description="Returns the health status of the API",
)
async def health_check() -> dict[str, str]:
    """Check if the API is healthy and responding."""
    return {"status": "healthy"}


# Global exception handlers
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions globally."""
    logger.exception(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "type": "internal_error"},
    )


@app.exception_handler(NotFoundError)
async def not_found_error_handler(request: Request, exc: NotFoundError):
    """Handle NotFoundError exceptions."""
    logger.warning(f"NotFoundError: {exc}")
    return JSONResponse(
        status_code=404,
        content={"detail": str(exc), "type": "not_found"},
    )


@app.exception_handler(PermissionDeniedError)
async def permission_denied_handler(request: Request, exc: PermissionDeniedError):
    """Handle PermissionDeniedError exceptions."""
    logger.warning(f"PermissionDeniedError: {exc}")
    return JSONResponse(
        status_code=403,
        content={"detail": str(exc), "type": "permission_denied"},
    )


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    """Handle ValueError exceptions."""
    logger.warning(f"ValueError: {exc}")
    return JSONResponse(
        status_code=400,
        content={"detail": str(exc), "type": "validation_error"},
    )
