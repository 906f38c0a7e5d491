"""
Bazaar Reputation API Dependencies

Dependency injection for DB sessions, auth, and caller roles.
"""

import uuid
from collections.abc import AsyncGenerator

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from core.security import ADMIN_ROLE, VENDOR_ROLE
from db.session import AsyncSessionLocal

settings = get_settings()
security = HTTPBearer(auto_error=not settings.debug)

# Dev identity used when debug bypasses auth
DEV_VENDOR_ID = "00000000-0000-0000-0000-000000000001"


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


def get_session_factory():
    """Session factory for work that opens its own sessions (the evaluation job)."""
    return AsyncSessionLocal


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> dict:
    """Decode JWT and return user payload. Bypassed in debug mode."""
    if settings.debug:
        return {
            "sub": "dev-admin",
            "email": "dev@bazaar.example",
            "role": ADMIN_ROLE,
            "vendor_id": DEV_VENDOR_ID,
        }

    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    from core.security import decode_access_token

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    return payload


async def require_admin(user: dict = Depends(get_current_user)) -> dict:
    """Only admins may act on the escalation ledger."""
    if user.get("role") != ADMIN_ROLE:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin role required",
        )
    if not user.get("sub"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has no subject",
        )
    return user


async def get_current_vendor_id(user: dict = Depends(get_current_user)) -> uuid.UUID:
    """Vendor id of the calling vendor account."""
    vendor_id = user.get("vendor_id")
    if user.get("role") != VENDOR_ROLE and not (settings.debug and vendor_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Vendor account required",
        )
    try:
        return uuid.UUID(str(vendor_id))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="No vendor context",
        )
