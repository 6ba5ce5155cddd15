import asyncio
import uuid

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.database import get_db
from app.dependencies import get_current_admin
from app.metrics import PROFESSIONAL_REVIEWS
from app.models.audit_log import AuditLog
from app.models.enums import UserRole
from app.models.professional_profile import ProfessionalProfile
from app.models.types import utcnow
from app.models.user import User
from app.schemas.admin import ApproveProfessionalRequest, PendingProfessionalResponse, ToggleStatusResponse
from app.schemas.professional import DocumentResponse
from app.services.storage import delete_file, get_document_url
from app.utils.csv_sanitize import sanitize_csv_cell
from app.utils.rate_limit import limiter

logger = structlog.get_logger()
router = APIRouter(prefix="/admin", tags=["admin"])


# --- 1. Pending professional registrations ---


@router.get("/professionals/pending", response_model=list[PendingProfessionalResponse])
@limiter.limit("30/minute")
async def pending_professionals(
    request: Request,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0, le=10000),
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    """Profiles awaiting approval, oldest submission first."""
    result = await db.execute(
        select(ProfessionalProfile)
        .options(selectinload(ProfessionalProfile.user), selectinload(ProfessionalProfile.documents))
        .where(ProfessionalProfile.is_approved == False)
        .order_by(ProfessionalProfile.created_at.asc())
        .offset(offset)
        .limit(limit)
    )
    profiles = result.scalars().all()

    pending = []
    for p in profiles:
        # Documents are identity papers: hand out short-lived links only
        urls = await asyncio.gather(*(get_document_url(d.url) for d in p.documents))
        pending.append(
            PendingProfessionalResponse(
                profile_id=p.id,
                user_id=p.user_id,
                email=p.user.email,
                first_name=p.user.first_name,
                last_name=p.user.last_name,
                phone_number=p.user.phone_number,
                trade=p.trade,
                experience=p.experience,
                location=p.location,
                created_at=p.created_at,
                documents=[
                    DocumentResponse(id=d.id, filename=d.filename, url=url, created_at=d.created_at)
                    for d, url in zip(p.documents, urls)
                ],
            )
        )
    return pending


# --- 2. Approve or reject a professional ---


@router.patch("/professionals/{user_id}/approve")
@limiter.limit("30/minute")
async def approve_professional(
    request: Request,
    user_id: uuid.UUID,
    body: ApproveProfessionalRequest,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    """Approve a professional, or reject the registration.

    Rejection deletes the profile with its documents and turns the user back
    into a customer, who may register again later. Only registrations still
    awaiting review can be rejected: an approved professional may hold
    accepted requests, and is deactivated through toggle-status instead.
    """
    result = await db.execute(
        select(ProfessionalProfile)
        .options(selectinload(ProfessionalProfile.user), selectinload(ProfessionalProfile.documents))
        .where(ProfessionalProfile.user_id == user_id)
    )
    profile = result.scalar_one_or_none()
    if profile is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Professional profile not found",
        )

    if body.approved:
        profile.is_approved = True
        profile.approved_by = admin.id
        profile.approved_at = utcnow()
        action = "approve_professional"
    else:
        if profile.is_approved:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Approved professionals cannot be rejected, deactivate the account instead",
            )
        document_urls = [d.url for d in profile.documents]
        # documents are loaded, so the delete cascades to them
        await db.delete(profile)
        profile.user.role = UserRole.CUSTOMER
        for url in document_urls:
            await delete_file(url)
        action = "reject_professional"

    db.add(AuditLog(
        action=action,
        admin_user_id=admin.id,
        target_user_id=user_id,
        detail=body.reason,
    ))
    await db.flush()

    PROFESSIONAL_REVIEWS.labels(decision="approved" if body.approved else "rejected").inc()
    logger.info(
        "professional_review_decided",
        user_id=str(user_id),
        approved=body.approved,
        admin_id=str(admin.id),
    )
    return {
        "user_id": str(user_id),
        "status": "approved" if body.approved else "rejected",
    }


# --- 3. List users ---


@router.get("/users")
@limiter.limit("30/minute")
async def list_users(
    request: Request,
    role: str | None = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0, le=10000),
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    """List users newest first, with optional role filter and pagination."""
    stmt = select(User)
    count_stmt = select(func.count(User.id))

    if role:
        try:
            role_enum = UserRole(role)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid role: {role}. Must be one of: customer, professional, admin",
            )
        stmt = stmt.where(User.role == role_enum)
        count_stmt = count_stmt.where(User.role == role_enum)

    total = (await db.execute(count_stmt)).scalar() or 0

    stmt = stmt.order_by(User.created_at.desc()).offset(offset).limit(limit)
    users = (await db.execute(stmt)).scalars().all()

    # Admin UIs export this list to spreadsheets
    return {
        "total": total,
        "users": [
            {
                "id": str(u.id),
                "email": sanitize_csv_cell(u.email),
                "role": UserRole(u.role).value,
                "first_name": sanitize_csv_cell(u.first_name),
                "last_name": sanitize_csv_cell(u.last_name),
                "phone_number": sanitize_csv_cell(u.phone_number),
                "is_active": u.is_active,
                "created_at": u.created_at.isoformat() if u.created_at else None,
            }
            for u in users
        ],
    }


# --- 4. Ban / unban ---


@router.patch("/users/{user_id}/toggle-status", response_model=ToggleStatusResponse)
@limiter.limit("10/minute")
async def toggle_user_status(
    request: Request,
    user_id: uuid.UUID,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    """Flip a user's active flag. Inactive users cannot log in or receive requests."""
    user = await db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    if user.role == UserRole.ADMIN:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Cannot deactivate admin users")

    user.is_active = not user.is_active
    db.add(AuditLog(
        action="activate_user" if user.is_active else "deactivate_user",
        admin_user_id=admin.id,
        target_user_id=user.id,
    ))
    await db.flush()
    logger.info(
        "user_status_toggled",
        user_id=str(user_id),
        is_active=user.is_active,
        admin_id=str(admin.id),
    )
    return ToggleStatusResponse(id=user.id, is_active=user.is_active)
