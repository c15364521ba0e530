"""
JWT Service for access token management.

Dashboard clients authenticate with a bearer access token signed with HS256.
The token carries the user id and role; the role is re-checked against the
database on every request.
"""

import jwt
from datetime import datetime, timedelta, timezone
from typing import Optional
from pydantic import BaseModel

from core.config import JWT_SECRET_KEY, JWT_ACCESS_TOKEN_EXPIRE_MINUTES


class TokenPayload(BaseModel):
    """Payload structure for JWT tokens."""
    sub: str  # User id
    email: str
    role: str  # "Admin", "Doctor", "Compounder" or "Patient"
    name: str
    iat: Optional[int] = None  # Set by JWT service
    exp: Optional[int] = None  # Set by JWT service


class JWTService:
    """Service for JWT token operations."""

    ALGORITHM = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES = JWT_ACCESS_TOKEN_EXPIRE_MINUTES

    @classmethod
    def create_access_token(cls, payload: TokenPayload, expires_delta: Optional[timedelta] = None) -> str:
        """Create a JWT access token."""
        to_encode = payload.model_dump(exclude={"iat", "exp"})
        now = datetime.now(timezone.utc)
        expire = now + (expires_delta or timedelta(minutes=cls.ACCESS_TOKEN_EXPIRE_MINUTES))
        to_encode.update({"exp": expire, "iat": now})
        return jwt.encode(to_encode, JWT_SECRET_KEY, algorithm=cls.ALGORITHM)

    @classmethod
    def verify_token(cls, token: str) -> Optional[TokenPayload]:
        """Verify and decode a JWT token."""
        try:
            payload = jwt.decode(token, JWT_SECRET_KEY, algorithms=[cls.ALGORITHM])
            return TokenPayload(**payload)
        except jwt.ExpiredSignatureError:
            return None
        except jwt.InvalidTokenError:
            return None


# Global instance
jwt_service = JWTService()
