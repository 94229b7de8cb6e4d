"""
Module: auth.py
Description: Password hashing and JWT bearer authentication.

Provides:
    - bcrypt password hashing/verification
    - HS256 access token issuing and verification
    - get_current_user dependency for FastAPI

Usage:
    @app.get("/protected")
    async def protected_route(user_id: str = Depends(get_current_user)):
        ...

Author: Expense Tracker Team
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from fastapi import HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from config import get_settings
from services.observability import logger


# =============================================================================
# Security Scheme
# =============================================================================

security = HTTPBearer(auto_error=False)


# =============================================================================
# Passwords
# =============================================================================

def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        return False


# =============================================================================
# Tokens
# =============================================================================

def create_access_token(user_id: str, now: Optional[datetime] = None) -> str:
    """
    Issue a signed access token for a user.

    Args:
        user_id: Value stored in the "sub" claim.
        now: Issue time (defaults to the current UTC time).

    Returns:
        Encoded JWT string.
    """
    settings = get_settings()
    issued_at = now or datetime.now(timezone.utc)
    claims = {
        "sub": user_id,
        "iat": issued_at,
        "exp": issued_at + timedelta(hours=settings.jwt_expire_hours),
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: str) -> Optional[dict]:
    """
    Verify a token and return its claims.

    Returns:
        Dict of claims if valid, None otherwise.
    """
    if not token:
        return None

    settings = get_settings()
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        logger.warning("Token expired")
        return None
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid token", error=str(e))
        return None


# =============================================================================
# FastAPI Dependencies
# =============================================================================

async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> str:
    """
    Resolve the authenticated user id from the Authorization header.

    Raises:
        HTTPException: 401 if not authenticated or the token is invalid.
    """
    settings = get_settings()
    if settings.auth_bypass:
        return settings.auth_bypass_user_id

    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authorized, no token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    claims = verify_token(credentials.credentials)
    if not claims:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authorized, token failed",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = claims.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token: missing user ID.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    logger.set_context(user=user_id[:8])
    return user_id
