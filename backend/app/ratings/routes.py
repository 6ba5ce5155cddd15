import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_current_customer
from app.models.user import User
from app.schemas.rating import (
    CanRateResponse,
    ProfessionalRatingsResponse,
    PublicRatingResponse,
    RatingCreateRequest,
    RatingResponse,
)
from app.services import lifecycle
from app.services.directory import lookup_professional
from app.utils.display_name import public_display_name
from app.utils.rate_limit import LIST_RATE_LIMIT, limiter

router = APIRouter()


@router.post("", response_model=RatingResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
async def create_rating(
    request: Request,
    body: RatingCreateRequest,
    user: User = Depends(get_current_customer),
    db: AsyncSession = Depends(get_db),
):
    """Rate the professional of a completed request (once per request)."""
    rating = await lifecycle.rate_request(
        db, body.request_id, user.id, score=body.score, review=body.review
    )
    return RatingResponse.model_validate(rating)


@router.get("/can-rate/{request_id}", response_model=CanRateResponse)
async def can_rate(
    request_id: uuid.UUID,
    user: User = Depends(get_current_customer),
    db: AsyncSession = Depends(get_db),
):
    return CanRateResponse(
        request_id=request_id,
        can_rate=await lifecycle.can_rate(db, request_id, user.id),
    )


@router.get("/professional/{professional_id}", response_model=ProfessionalRatingsResponse)
@limiter.limit(LIST_RATE_LIMIT)
async def professional_ratings(
    request: Request,
    professional_id: uuid.UUID,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    """Public ratings of a professional with the average score and rating count."""
    professional = await lookup_professional(db, professional_id)
    if not professional.exists:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Professional not found")

    stats = await lifecycle.rating_stats(db, professional_id)
    ratings = await lifecycle.list_professional_ratings(db, professional_id, limit=limit, offset=offset)
    return ProfessionalRatingsResponse(
        professional_id=professional_id,
        average=stats.average,
        total=stats.total,
        ratings=[
            PublicRatingResponse(
                id=r.id,
                score=r.score,
                review=r.review,
                rated_at=r.rated_at,
                customer_name=public_display_name(r.customer),
            )
            for r in ratings
        ],
    )
