import uuid
from decimal import Decimal

import structlog
from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, UploadFile, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.config import settings
from app.database import get_db
from app.dependencies import get_current_professional, get_current_user
from app.models.enums import UserRole
from app.models.professional_document import ProfessionalDocument
from app.models.professional_profile import ProfessionalProfile
from app.models.rating import Rating
from app.models.user import User
from app.schemas.professional import (
    DocumentResponse,
    ProfessionalDetailResponse,
    ProfessionalListItem,
    ProfessionalProfileResponse,
    ProfessionalProfileUpdate,
)
from app.services.lifecycle import rating_stats
from app.services.storage import get_document_url, upload_file
from app.utils.rate_limit import LIST_RATE_LIMIT, WRITE_RATE_LIMIT, limiter

logger = structlog.get_logger()
router = APIRouter()


def _listed_professionals():
    """Approved profiles of active users, joined with the user row."""
    return (
        select(ProfessionalProfile, User)
        .join(User, User.id == ProfessionalProfile.user_id)
        .where(
            ProfessionalProfile.is_approved == True,
            User.is_active == True,
            User.role == UserRole.PROFESSIONAL,
        )
    )


async def _documents_with_urls(documents: list[ProfessionalDocument]) -> list[DocumentResponse]:
    return [
        DocumentResponse(
            id=doc.id,
            filename=doc.filename,
            url=await get_document_url(doc.url),
            created_at=doc.created_at,
        )
        for doc in documents
    ]


# --- Static routes first (before /{professional_id}) ---


@router.post("/register", response_model=ProfessionalProfileResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("5/minute")
async def register_professional(
    request: Request,
    trade: str = Form(..., min_length=1, max_length=100),
    experience: int | None = Form(None, ge=0, le=80),
    bio: str | None = Form(None, max_length=2000),
    hourly_rate: Decimal | None = Form(None, ge=0),
    location: str | None = Form(None, max_length=255),
    documents: list[UploadFile] | None = File(None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Submit a professional profile with supporting documents for admin approval.

    The caller's role switches to professional straight away; the profile stays
    hidden from the directory until an admin approves it.
    """
    documents = documents or []
    if user.role == UserRole.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Admins cannot register as professionals",
        )
    if len(documents) > settings.MAX_PROFESSIONAL_DOCUMENTS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"At most {settings.MAX_PROFESSIONAL_DOCUMENTS} documents can be uploaded",
        )

    existing = await db.execute(
        select(ProfessionalProfile.id).where(ProfessionalProfile.user_id == user.id)
    )
    if existing.scalar_one_or_none():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Already registered as professional",
        )

    uploaded: list[tuple[str, str]] = []
    try:
        for document in documents:
            url = await upload_file(document, "documents")
            uploaded.append((document.filename or "document", url))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    profile = ProfessionalProfile(
        user_id=user.id,
        trade=trade.strip(),
        experience=experience,
        bio=bio,
        hourly_rate=hourly_rate,
        location=location,
        is_approved=False,
    )
    db.add(profile)
    await db.flush()
    for filename, url in uploaded:
        db.add(ProfessionalDocument(profile_id=profile.id, filename=filename[:255], url=url))
    user.role = UserRole.PROFESSIONAL
    await db.flush()

    logger.info(
        "professional_registered",
        user_id=str(user.id),
        profile_id=str(profile.id),
        documents=len(uploaded),
    )
    return ProfessionalProfileResponse.model_validate(profile)


@router.patch("/profile", response_model=ProfessionalProfileResponse)
@limiter.limit(WRITE_RATE_LIMIT)
async def update_profile(
    request: Request,
    body: ProfessionalProfileUpdate,
    professional: tuple[User, ProfessionalProfile] = Depends(get_current_professional),
    db: AsyncSession = Depends(get_db),
):
    """Update bio, hourly rate and location. Omitted fields are left unchanged."""
    user, profile = professional
    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(profile, field, value)
    await db.flush()
    await db.refresh(profile)
    logger.info("professional_profile_updated", user_id=str(user.id))
    return ProfessionalProfileResponse.model_validate(profile)


@router.get("", response_model=list[ProfessionalListItem])
@limiter.limit(LIST_RATE_LIMIT)
async def list_professionals(
    request: Request,
    trade: str | None = Query(None, max_length=100),
    location: str | None = Query(None, max_length=255),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0, le=10000),
    db: AsyncSession = Depends(get_db),
):
    """Directory of approved, active professionals, optionally filtered by trade and location."""
    stmt = _listed_professionals()
    if trade:
        stmt = stmt.where(ProfessionalProfile.trade == trade)
    if location:
        stmt = stmt.where(ProfessionalProfile.location.ilike(f"%{location}%"))
    stmt = stmt.order_by(ProfessionalProfile.created_at.desc()).offset(offset).limit(limit)

    rows = (await db.execute(stmt)).all()
    if not rows:
        return []

    # Rating aggregates for the whole page in one query
    user_ids = [user.id for _, user in rows]
    stats_result = await db.execute(
        select(Rating.professional_id, func.avg(Rating.score), func.count(Rating.id))
        .where(Rating.professional_id.in_(user_ids))
        .group_by(Rating.professional_id)
    )
    stats = {pid: (round(float(avg), 2), int(total)) for pid, avg, total in stats_result}

    items = []
    for profile, user in rows:
        average, total = stats.get(user.id, (0.0, 0))
        items.append(
            ProfessionalListItem(
                user_id=user.id,
                first_name=user.first_name,
                last_name=user.last_name,
                trade=profile.trade,
                experience=profile.experience,
                hourly_rate=profile.hourly_rate,
                location=profile.location,
                rating_average=average,
                rating_total=total,
            )
        )
    return items


@router.get("/{professional_id}", response_model=ProfessionalDetailResponse)
@limiter.limit(LIST_RATE_LIMIT)
async def get_professional(
    request: Request,
    professional_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    """Public profile of an approved professional, looked up by user id."""
    result = await db.execute(
        _listed_professionals()
        .where(User.id == professional_id)
        .options(selectinload(ProfessionalProfile.documents))
    )
    row = result.one_or_none()
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Professional not found")
    profile, user = row

    stats = await rating_stats(db, user.id)
    return ProfessionalDetailResponse(
        user_id=user.id,
        first_name=user.first_name,
        last_name=user.last_name,
        phone_number=user.phone_number,
        trade=profile.trade,
        experience=profile.experience,
        bio=profile.bio,
        hourly_rate=profile.hourly_rate,
        location=profile.location,
        rating_average=stats.average,
        rating_total=stats.total,
        documents=await _documents_with_urls(profile.documents),
    )
