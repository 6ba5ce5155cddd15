import uuid

import jwt
import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db
from app.models.enums import UserRole
from app.models.professional_profile import ProfessionalProfile
from app.models.user import User

logger = structlog.get_logger()
security = HTTPBearer()


def _unauthorized(detail: str = "Invalid authentication token") -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Extract and validate the bearer access token, return the authenticated user."""
    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            issuer=settings.JWT_ISSUER,
            options={"verify_iss": True},
        )
    except jwt.PyJWTError:
        raise _unauthorized()

    # Refresh tokens must not be usable as access tokens
    if payload.get("type") != "access":
        raise _unauthorized()
    try:
        user_id = uuid.UUID(payload.get("sub") or "")
    except ValueError:
        raise _unauthorized()

    user = await db.get(User, user_id)
    if user is None:
        raise _unauthorized("User not found")

    if not user.is_active:
        logger.info("inactive_user_rejected", user_id=str(user.id))
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account has been deactivated. Contact support for more information.",
        )
    return user


async def get_current_customer(
    user: User = Depends(get_current_user),
) -> User:
    if user.role != UserRole.CUSTOMER:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only customers can access this resource",
        )
    return user


async def get_current_professional(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> tuple[User, ProfessionalProfile]:
    """Get current user and verify they are a professional with a profile.

    Approval is not required here: pending professionals can still see their
    inbox, they simply never receive requests until approved.
    """
    if user.role != UserRole.PROFESSIONAL:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only professionals can access this resource",
        )

    result = await db.execute(
        select(ProfessionalProfile).where(ProfessionalProfile.user_id == user.id)
    )
    profile = result.scalar_one_or_none()
    if profile is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Professional profile not found",
        )
    return user, profile


async def get_current_admin(
    user: User = Depends(get_current_user),
) -> User:
    """Get current user and verify they are an admin."""
    if user.role != UserRole.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user
