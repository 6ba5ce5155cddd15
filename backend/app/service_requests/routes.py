import uuid

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_current_customer, get_current_professional, get_current_user
from app.models.enums import UserRole
from app.models.professional_profile import ProfessionalProfile
from app.models.service_request import ServiceRequest
from app.models.user import User
from app.schemas.service_request import (
    CancelRequest,
    CompleteRequest,
    RespondRequest,
    ServiceRequestCreate,
    ServiceRequestDetailResponse,
    ServiceRequestResponse,
)
from app.services import lifecycle
from app.utils.rate_limit import LIST_RATE_LIMIT, WRITE_RATE_LIMIT, limiter

router = APIRouter()


def _detail(service_request: ServiceRequest) -> ServiceRequestDetailResponse:
    response = ServiceRequestDetailResponse.model_validate(service_request)
    response.is_rated = service_request.rating is not None
    return response


@router.post("", response_model=ServiceRequestResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(WRITE_RATE_LIMIT)
async def create_service_request(
    request: Request,
    body: ServiceRequestCreate,
    user: User = Depends(get_current_customer),
    db: AsyncSession = Depends(get_db),
):
    """Send a service request to an approved professional."""
    service_request = await lifecycle.create_request(
        db,
        customer_id=user.id,
        professional_id=body.professional_id,
        trade=body.trade,
        description=body.description,
        preferred_date=body.preferred_date,
        preferred_time=body.preferred_time,
        location=body.location,
    )
    return ServiceRequestResponse.model_validate(service_request)


# --- Static routes first (before /{request_id}) ---


@router.get("/my-requests", response_model=list[ServiceRequestDetailResponse])
@limiter.limit(LIST_RATE_LIMIT)
async def my_requests(
    request: Request,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: User = Depends(get_current_customer),
    db: AsyncSession = Depends(get_db),
):
    requests = await lifecycle.list_customer_requests(db, user.id, limit=limit, offset=offset)
    return [_detail(r) for r in requests]


@router.get("/incoming", response_model=list[ServiceRequestDetailResponse])
@limiter.limit(LIST_RATE_LIMIT)
async def incoming_requests(
    request: Request,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    professional: tuple[User, ProfessionalProfile] = Depends(get_current_professional),
    db: AsyncSession = Depends(get_db),
):
    """Pending requests waiting for the professional's answer, newest first."""
    user, _ = professional
    requests = await lifecycle.list_incoming_requests(db, user.id, limit=limit, offset=offset)
    return [_detail(r) for r in requests]


@router.get("/history", response_model=list[ServiceRequestDetailResponse])
@limiter.limit(LIST_RATE_LIMIT)
async def request_history(
    request: Request,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    professional: tuple[User, ProfessionalProfile] = Depends(get_current_professional),
    db: AsyncSession = Depends(get_db),
):
    """Requests the professional has answered, most recently updated first."""
    user, _ = professional
    requests = await lifecycle.list_request_history(db, user.id, limit=limit, offset=offset)
    return [_detail(r) for r in requests]


@router.get("/{request_id}", response_model=ServiceRequestDetailResponse)
async def get_service_request(
    request_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    viewer_id = None if user.role == UserRole.ADMIN else user.id
    service_request = await lifecycle.get_request(db, request_id, viewer_id=viewer_id)
    return _detail(service_request)


@router.patch("/{request_id}/respond", response_model=ServiceRequestResponse)
@limiter.limit(WRITE_RATE_LIMIT)
async def respond(
    request: Request,
    request_id: uuid.UUID,
    body: RespondRequest,
    professional: tuple[User, ProfessionalProfile] = Depends(get_current_professional),
    db: AsyncSession = Depends(get_db),
):
    """Accept (with an optional quoted price) or deny a pending request."""
    user, _ = professional
    service_request = await lifecycle.respond_to_request(
        db, request_id, user.id, body.decision, quoted_price=body.quoted_price
    )
    return ServiceRequestResponse.model_validate(service_request)


@router.patch("/{request_id}/complete", response_model=ServiceRequestResponse)
@limiter.limit(WRITE_RATE_LIMIT)
async def complete(
    request: Request,
    request_id: uuid.UUID,
    body: CompleteRequest | None = None,
    professional: tuple[User, ProfessionalProfile] = Depends(get_current_professional),
    db: AsyncSession = Depends(get_db),
):
    user, _ = professional
    final_price = body.final_price if body else None
    service_request = await lifecycle.complete_request(db, request_id, user.id, final_price=final_price)
    return ServiceRequestResponse.model_validate(service_request)


@router.patch("/{request_id}/cancel", response_model=ServiceRequestResponse)
@limiter.limit(WRITE_RATE_LIMIT)
async def cancel(
    request: Request,
    request_id: uuid.UUID,
    body: CancelRequest | None = None,
    user: User = Depends(get_current_customer),
    db: AsyncSession = Depends(get_db),
):
    reason = body.reason if body else None
    service_request = await lifecycle.cancel_request(db, request_id, user.id, reason=reason)
    return ServiceRequestResponse.model_validate(service_request)
