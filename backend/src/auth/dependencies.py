# pyright: reportMissingTypeStubs=false
"""
Authentication and authorization dependencies for FastAPI.

Provides dependency injection functions for user authentication and
role-based access control of the dashboard endpoints.
"""

import logging
from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from core.constants import DASHBOARD_ROLES, ROLE_ADMIN
from core.database import get_db
from models import User
from services.jwt_service import jwt_service, TokenPayload

logger = logging.getLogger(__name__)


class UserContext:
    """Authenticated user context extracted from JWT token."""

    def __init__(
        self,
        user_id: int,
        role: str,
        email: str,
        name: str,
    ):
        self.user_id = user_id
        self.role = role  # "Admin", "Doctor", "Compounder" or "Patient"
        self.email = email
        self.name = name

    def is_admin(self) -> bool:
        """Check if user is an admin."""
        return self.role == ROLE_ADMIN

    def is_dashboard_user(self) -> bool:
        """Check if user is clinic staff with dashboard access."""
        return self.role in DASHBOARD_ROLES

    def __repr__(self) -> str:
        return f"UserContext(user_id={self.user_id}, email='{self.email}', role='{self.role}')"


# HTTP Bearer token security scheme
security = HTTPBearer(auto_error=False)


def get_token_payload(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Optional[TokenPayload]:
    """Extract and validate JWT token payload."""
    if not credentials:
        return None

    return jwt_service.verify_token(credentials.credentials)


def get_current_user(
    payload: Optional[TokenPayload] = Depends(get_token_payload),
    db: Session = Depends(get_db)
) -> UserContext:
    """Get authenticated user context from JWT token."""
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication credentials not provided"
        )

    try:
        user_id = int(payload.sub)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials"
        )

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found"
        )

    # The stored role wins over the one in the token
    return UserContext(
        user_id=user.id,
        role=user.role,
        email=user.email,
        name=user.full_name,
    )


def require_dashboard_user(user: UserContext = Depends(get_current_user)) -> UserContext:
    """Require an Admin, Doctor or Compounder."""
    if not user.is_dashboard_user():
        logger.warning(f"Dashboard access denied for {user!r}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Dashboard access required"
        )
    return user


def require_admin_role(user: UserContext = Depends(get_current_user)) -> UserContext:
    """Require an Admin."""
    if not user.is_admin():
        logger.warning(f"Admin access denied for {user!r}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return user
