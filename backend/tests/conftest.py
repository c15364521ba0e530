"""
Test configuration and shared fixtures for the Clinic Admin test suite.

Uses an in-memory SQLite database. Each test gets its own engine and a freshly
created schema, so tests never see each other's data.
"""

import os

# Must be set before core.config is imported anywhere
os.environ.setdefault("DATABASE_URL", "sqlite://")

import bcrypt
import jwt
import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, Generator, Optional

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from core.config import JWT_SECRET_KEY
from core.database import Base, enable_sqlite_savepoints, get_db
from services.jwt_service import jwt_service, TokenPayload

# Import all models to ensure they're registered with SQLAlchemy before any relationships are resolved
from models.user import User
from models.appointment import Appointment
from models.invoice import Invoice
from models.invoice_item import InvoiceItem
from models.payment import Payment
from models.report import Report
from models.message import Message


@pytest.fixture(scope="function")
def db_engine():
    """
    Create an in-memory database engine for one test.

    StaticPool keeps a single connection so every session sees the same
    in-memory database.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    enable_sqlite_savepoints(engine)
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Provide a database session bound to the test's engine."""
    TestSession = sessionmaker(bind=db_engine, autoflush=False, expire_on_commit=False)
    session = TestSession()

    yield session

    session.rollback()
    session.close()


@pytest.fixture
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """TestClient whose requests use the test's database session."""
    from main import app

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_db, None)


def create_user(
    db: Session,
    role: str,
    email: str,
    first_name: str = "Test",
    last_name: str = "User",
    phone: Optional[str] = None,
    nic: Optional[str] = None,
    department: Optional[str] = None,
    consultation_fee: Optional[Decimal] = None,
) -> User:
    """Create and commit a user. The password hash is a placeholder."""
    user = User(
        first_name=first_name,
        last_name=last_name,
        email=email,
        phone=phone,
        nic=nic,
        role=role,
        password_hash="not-a-real-hash",
        doctor_department=department,
        consultation_fee=consultation_fee,
    )
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def admin_user(db_session: Session) -> User:
    return create_user(db_session, "Admin", "admin@clinic.test", first_name="Ada", last_name="Admin")


@pytest.fixture
def doctor_user(db_session: Session) -> User:
    return create_user(
        db_session,
        "Doctor",
        "house@clinic.test",
        first_name="Gregory",
        last_name="House",
        department="Cardiology",
        consultation_fee=Decimal("500"),
    )


@pytest.fixture
def compounder_user(db_session: Session) -> User:
    return create_user(db_session, "Compounder", "desk@clinic.test", first_name="Casey", last_name="Desk")


@pytest.fixture
def patient_user(db_session: Session) -> User:
    return create_user(
        db_session,
        "Patient",
        "jane@example.com",
        first_name="Jane",
        last_name="Doe",
        phone="0300-1234567",
        nic="1234512345671",
    )


@pytest.fixture
def sample_booking_data():
    """Sample booking payload for tests."""
    return {
        "name": "John Smith",
        "phone": "03001234567",
        "address": "12 Mall Road",
        "department": "Cardiology",
        "appointment_date": "2024-03-05T10:30:00",
        "payment_status": "Paid",
    }


def create_jwt_token(user: User) -> str:
    """Create an access token for a user."""
    payload = TokenPayload(
        sub=str(user.id),
        email=user.email,
        role=user.role,
        name=user.full_name,
    )
    return jwt_service.create_access_token(payload)


def create_expired_jwt_token(user: User) -> str:
    """Create an access token that expired an hour ago."""
    payload = {
        "sub": str(user.id),
        "email": user.email,
        "role": user.role,
        "name": user.full_name,
        "exp": datetime.now(timezone.utc) - timedelta(hours=1),
        "iat": datetime.now(timezone.utc) - timedelta(hours=2),
    }
    return jwt.encode(payload, JWT_SECRET_KEY, algorithm="HS256")


def auth_headers(user: User) -> Dict[str, str]:
    """Authorization header for API requests made as `user`."""
    return {"Authorization": f"Bearer {create_jwt_token(user)}"}


def password_matches(password: str, password_hash: str) -> bool:
    """Whether a stored bcrypt hash belongs to `password`."""
    return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
