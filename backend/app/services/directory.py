import uuid
from typing import NamedTuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.enums import UserRole
from app.models.professional_profile import ProfessionalProfile
from app.models.user import User


class ProfessionalLookup(NamedTuple):
    exists: bool
    is_approved: bool
    is_active: bool
    trade: str | None = None


NOT_A_PROFESSIONAL = ProfessionalLookup(exists=False, is_approved=False, is_active=False)


async def lookup_professional(db: AsyncSession, professional_id: uuid.UUID) -> ProfessionalLookup:
    """Resolve a professional's user id to its directory status.

    A user only counts as a professional when it has the professional role
    and a profile row; approval lives on the profile, activity on the user.
    """
    result = await db.execute(
        select(User.is_active, ProfessionalProfile.is_approved, ProfessionalProfile.trade)
        .join(ProfessionalProfile, ProfessionalProfile.user_id == User.id)
        .where(User.id == professional_id, User.role == UserRole.PROFESSIONAL)
    )
    row = result.one_or_none()
    if row is None:
        return NOT_A_PROFESSIONAL
    return ProfessionalLookup(
        exists=True,
        is_approved=bool(row.is_approved),
        is_active=bool(row.is_active),
        trade=row.trade,
    )
