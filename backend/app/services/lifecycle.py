"""Service request lifecycle: creation, guarded transitions and ratings.

Every transition is a single conditional UPDATE filtered on id, acting party
and expected status. Exactly one affected row means the transition happened;
zero rows means it did not, and the row is only re-read to explain why. Two
professionals racing to respond to the same request therefore cannot both
win: the loser's UPDATE matches nothing and it gets InvalidTransition.
"""
import uuid
from datetime import date
from decimal import Decimal
from typing import Any, NamedTuple

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import InstrumentedAttribute, selectinload

from app.config import settings
from app.exceptions import (
    AlreadyRated,
    DuplicatePending,
    Forbidden,
    InvalidInput,
    InvalidTransition,
    NotApproved,
    NotEligible,
    NotFound,
)
from app.metrics import RATINGS_SUBMITTED, REQUEST_TRANSITION_CONFLICTS, REQUEST_TRANSITIONS, REQUESTS_CREATED
from app.models.enums import RequestStatus, ResponseDecision
from app.models.rating import Rating
from app.models.service_request import ServiceRequest
from app.models.types import utcnow
from app.services.directory import lookup_professional
from app.utils.request_state import source_status, validate_transition

logger = structlog.get_logger()

# Spellings used by older clients, which sent the target status instead of the verb
_DECISION_ALIASES = {
    "accept": ResponseDecision.ACCEPT,
    "accepted": ResponseDecision.ACCEPT,
    "deny": ResponseDecision.DENY,
    "denied": ResponseDecision.DENY,
}

HISTORY_STATUSES = (
    RequestStatus.ACCEPTED,
    RequestStatus.DENIED,
    RequestStatus.COMPLETED,
    RequestStatus.CANCELLED,
)


class RatingStats(NamedTuple):
    average: float
    total: int


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


async def _existing_pending_id(
    db: AsyncSession, customer_id: uuid.UUID, professional_id: uuid.UUID
) -> uuid.UUID | None:
    result = await db.execute(
        select(ServiceRequest.id).where(
            ServiceRequest.customer_id == customer_id,
            ServiceRequest.professional_id == professional_id,
            ServiceRequest.status == RequestStatus.PENDING.value,
        )
    )
    return result.scalar_one_or_none()


async def create_request(
    db: AsyncSession,
    customer_id: uuid.UUID,
    professional_id: uuid.UUID,
    trade: str,
    description: str,
    preferred_date: date,
    preferred_time: str | None = None,
    location: str | None = None,
) -> ServiceRequest:
    """Create a pending request from a customer to an approved, active professional."""
    if not description or not description.strip():
        raise InvalidInput("Please describe the service needed")
    if len(description) > settings.REQUEST_DESCRIPTION_MAX_LENGTH:
        raise InvalidInput(
            f"Description must be at most {settings.REQUEST_DESCRIPTION_MAX_LENGTH} characters"
        )
    if customer_id == professional_id:
        raise InvalidInput("You cannot send a request to yourself")

    professional = await lookup_professional(db, professional_id)
    if not professional.exists or not professional.is_active:
        raise NotFound("Professional not found")
    if not professional.is_approved:
        raise NotApproved("Professional is not yet approved")

    # Fast path only: the partial unique index decides under concurrency
    if await _existing_pending_id(db, customer_id, professional_id) is not None:
        raise DuplicatePending("You already have a pending request with this professional")

    request = ServiceRequest(
        customer_id=customer_id,
        professional_id=professional_id,
        trade=trade,
        description=description,
        preferred_date=preferred_date,
        preferred_time=preferred_time,
        location=location,
        status=RequestStatus.PENDING,
    )
    try:
        async with db.begin_nested():
            db.add(request)
            await db.flush()
    except IntegrityError:
        # Only a pending row that now exists means the unique index fired
        if await _existing_pending_id(db, customer_id, professional_id) is None:
            logger.error("request_insert_failed", customer_id=str(customer_id), professional_id=str(professional_id))
            raise
        logger.info(
            "request_duplicate_pending_race",
            customer_id=str(customer_id),
            professional_id=str(professional_id),
        )
        raise DuplicatePending("You already have a pending request with this professional")

    REQUESTS_CREATED.inc()
    logger.info(
        "request_created",
        request_id=str(request.id),
        customer_id=str(customer_id),
        professional_id=str(professional_id),
    )
    return request


# ---------------------------------------------------------------------------
# Guarded transitions
# ---------------------------------------------------------------------------


async def _load_for_party(
    db: AsyncSession,
    request_id: uuid.UUID,
    party: InstrumentedAttribute,
    actor_id: uuid.UUID,
) -> ServiceRequest:
    request = await db.get(ServiceRequest, request_id, populate_existing=True)
    if request is None:
        raise NotFound("Request not found")
    if getattr(request, party.key) != actor_id:
        raise Forbidden("Not your request")
    return request


async def _transition(
    db: AsyncSession,
    request_id: uuid.UUID,
    party: InstrumentedAttribute,
    actor_id: uuid.UUID,
    new_status: RequestStatus,
    action: str,
    values: dict[str, Any] | None = None,
) -> ServiceRequest:
    """Compare-and-swap ``source_status(new_status) -> new_status`` for one request."""
    expected = source_status(new_status)
    result = await db.execute(
        update(ServiceRequest)
        .where(
            ServiceRequest.id == request_id,
            party == actor_id,
            ServiceRequest.status == expected.value,
        )
        .values(status=new_status.value, updated_at=utcnow(), **(values or {}))
        .execution_options(synchronize_session=False)
    )

    if result.rowcount != 1:
        REQUEST_TRANSITION_CONFLICTS.labels(to_status=new_status.value).inc()
        current = await _load_for_party(db, request_id, party, actor_id)
        validate_transition(current.status, new_status, action=action)
        # Statuses never move backwards, so a matching status here means the
        # row changed between the UPDATE and the read; report what we saw.
        raise InvalidTransition(
            f"Cannot {action} a request that is '{RequestStatus(current.status).value}'",
            current_status=RequestStatus(current.status).value,
        )

    request = await db.get(ServiceRequest, request_id, populate_existing=True)
    REQUEST_TRANSITIONS.labels(to_status=new_status.value).inc()
    logger.info(
        "request_transitioned",
        request_id=str(request_id),
        from_status=expected.value,
        to_status=new_status.value,
        actor_id=str(actor_id),
    )
    return request


def _parse_decision(decision: str | ResponseDecision) -> ResponseDecision | None:
    if isinstance(decision, ResponseDecision):
        return decision
    if not isinstance(decision, str):
        return None
    return _DECISION_ALIASES.get(decision.strip().lower())


def _check_price(value: Decimal | None, label: str) -> None:
    if value is not None and value < 0:
        raise InvalidInput(f"{label} cannot be negative")


async def respond_to_request(
    db: AsyncSession,
    request_id: uuid.UUID,
    professional_id: uuid.UUID,
    decision: str | ResponseDecision,
    quoted_price: Decimal | None = None,
) -> ServiceRequest:
    """Accept (optionally quoting a price) or deny a pending request."""
    parsed = _parse_decision(decision)
    if parsed is None:
        # Ownership and state errors take precedence over a bad decision value
        current = await _load_for_party(db, request_id, ServiceRequest.professional_id, professional_id)
        validate_transition(current.status, RequestStatus.ACCEPTED, action="respond to")
        raise InvalidInput("Decision must be 'accept' or 'deny'")

    if parsed is ResponseDecision.ACCEPT:
        _check_price(quoted_price, "Quoted price")
        return await _transition(
            db,
            request_id,
            ServiceRequest.professional_id,
            professional_id,
            RequestStatus.ACCEPTED,
            action="accept",
            values={"quoted_price": quoted_price},
        )
    return await _transition(
        db,
        request_id,
        ServiceRequest.professional_id,
        professional_id,
        RequestStatus.DENIED,
        action="deny",
    )


async def complete_request(
    db: AsyncSession,
    request_id: uuid.UUID,
    professional_id: uuid.UUID,
    final_price: Decimal | None = None,
) -> ServiceRequest:
    """Mark an accepted request completed.

    Without an explicit ``final_price`` the quoted price is carried over inside
    the same UPDATE. When neither exists the request is completed with no price.
    """
    _check_price(final_price, "Final price")
    price = final_price if final_price is not None else ServiceRequest.quoted_price
    return await _transition(
        db,
        request_id,
        ServiceRequest.professional_id,
        professional_id,
        RequestStatus.COMPLETED,
        action="complete",
        values={"final_price": price, "completed_at": utcnow()},
    )


async def cancel_request(
    db: AsyncSession,
    request_id: uuid.UUID,
    customer_id: uuid.UUID,
    reason: str | None = None,
) -> ServiceRequest:
    """Cancel a pending request. Accepted, denied or completed requests stay as they are."""
    return await _transition(
        db,
        request_id,
        ServiceRequest.customer_id,
        customer_id,
        RequestStatus.CANCELLED,
        action="cancel",
        values={"cancelled_at": utcnow(), "cancellation_reason": reason},
    )


# ---------------------------------------------------------------------------
# Ratings
# ---------------------------------------------------------------------------


async def _existing_rating_id(db: AsyncSession, request_id: uuid.UUID) -> uuid.UUID | None:
    result = await db.execute(select(Rating.id).where(Rating.request_id == request_id))
    return result.scalar_one_or_none()


async def _rating_guard(db: AsyncSession, request_id: uuid.UUID, customer_id: uuid.UUID) -> ServiceRequest:
    """Return the request if ``customer_id`` may rate it, else raise NotEligible/AlreadyRated."""
    request = await db.get(ServiceRequest, request_id, populate_existing=True)
    if request is None or request.customer_id != customer_id:
        raise NotEligible("Completed request not found or does not belong to you")
    if request.status != RequestStatus.COMPLETED:
        raise NotEligible(
            f"Only completed requests can be rated, this one is '{RequestStatus(request.status).value}'"
        )
    if await _existing_rating_id(db, request_id) is not None:
        raise AlreadyRated("This service has already been rated")
    return request


async def can_rate(db: AsyncSession, request_id: uuid.UUID, customer_id: uuid.UUID) -> bool:
    try:
        await _rating_guard(db, request_id, customer_id)
    except (NotEligible, AlreadyRated):
        return False
    return True


async def rate_request(
    db: AsyncSession,
    request_id: uuid.UUID,
    customer_id: uuid.UUID,
    score: int,
    review: str | None = None,
) -> Rating:
    """Record the customer's rating of a completed request (one per request)."""
    if not settings.RATING_MIN_SCORE <= score <= settings.RATING_MAX_SCORE:
        raise InvalidInput(
            f"Score must be between {settings.RATING_MIN_SCORE} and {settings.RATING_MAX_SCORE}"
        )

    request = await _rating_guard(db, request_id, customer_id)

    rating = Rating(
        request_id=request.id,
        customer_id=customer_id,
        professional_id=request.professional_id,
        score=score,
        review=review,
    )
    # uq_rating_request settles concurrent submissions
    try:
        async with db.begin_nested():
            db.add(rating)
            await db.flush()
    except IntegrityError:
        if await _existing_rating_id(db, request_id) is None:
            logger.error("rating_insert_failed", request_id=str(request_id), score=score)
            raise
        logger.info("rating_duplicate_race", request_id=str(request_id))
        raise AlreadyRated("This service has already been rated")

    RATINGS_SUBMITTED.labels(score=str(score)).inc()
    logger.info(
        "rating_created",
        rating_id=str(rating.id),
        request_id=str(request_id),
        professional_id=str(request.professional_id),
        score=score,
    )
    return rating


async def rating_stats(db: AsyncSession, professional_id: uuid.UUID) -> RatingStats:
    result = await db.execute(
        select(func.avg(Rating.score), func.count(Rating.id)).where(
            Rating.professional_id == professional_id
        )
    )
    average, total = result.one()
    if not total:
        return RatingStats(average=0.0, total=0)
    return RatingStats(average=round(float(average), 2), total=int(total))


async def list_professional_ratings(
    db: AsyncSession, professional_id: uuid.UUID, limit: int = 50, offset: int = 0
) -> list[Rating]:
    result = await db.execute(
        select(Rating)
        .options(selectinload(Rating.customer))
        .where(Rating.professional_id == professional_id)
        .order_by(Rating.rated_at.desc())
        .offset(offset)
        .limit(limit)
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def _with_parties(stmt):
    # Rows may already sit in the session with a stale rating attribute
    return stmt.options(
        selectinload(ServiceRequest.customer),
        selectinload(ServiceRequest.professional),
        selectinload(ServiceRequest.rating),
    ).execution_options(populate_existing=True)


async def get_request(
    db: AsyncSession, request_id: uuid.UUID, viewer_id: uuid.UUID | None = None
) -> ServiceRequest:
    """Fetch one request. With ``viewer_id`` set, only its two parties may see it."""
    result = await db.execute(
        _with_parties(select(ServiceRequest)).where(ServiceRequest.id == request_id)
    )
    request = result.scalar_one_or_none()
    if request is None:
        raise NotFound("Request not found")
    if viewer_id is not None and viewer_id not in (request.customer_id, request.professional_id):
        raise Forbidden("Not your request")
    return request


async def list_customer_requests(
    db: AsyncSession, customer_id: uuid.UUID, limit: int = 50, offset: int = 0
) -> list[ServiceRequest]:
    result = await db.execute(
        _with_parties(select(ServiceRequest))
        .where(ServiceRequest.customer_id == customer_id)
        .order_by(ServiceRequest.created_at.desc())
        .offset(offset)
        .limit(limit)
    )
    return list(result.scalars().all())


async def list_incoming_requests(
    db: AsyncSession, professional_id: uuid.UUID, limit: int = 50, offset: int = 0
) -> list[ServiceRequest]:
    result = await db.execute(
        _with_parties(select(ServiceRequest))
        .where(
            ServiceRequest.professional_id == professional_id,
            ServiceRequest.status == RequestStatus.PENDING.value,
        )
        .order_by(ServiceRequest.created_at.desc())
        .offset(offset)
        .limit(limit)
    )
    return list(result.scalars().all())


async def list_request_history(
    db: AsyncSession, professional_id: uuid.UUID, limit: int = 50, offset: int = 0
) -> list[ServiceRequest]:
    result = await db.execute(
        _with_parties(select(ServiceRequest))
        .where(
            ServiceRequest.professional_id == professional_id,
            ServiceRequest.status.in_([s.value for s in HISTORY_STATUSES]),
        )
        .order_by(ServiceRequest.updated_at.desc())
        .offset(offset)
        .limit(limit)
    )
    return list(result.scalars().all())
