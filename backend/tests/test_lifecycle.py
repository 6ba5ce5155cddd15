"""Service-level tests for the request lifecycle and ratings."""
import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

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
from app.models.enums import RequestStatus, ResponseDecision, UserRole
from app.models.professional_profile import ProfessionalProfile
from app.models.rating import Rating
from app.models.service_request import ServiceRequest
from app.models.user import User
from app.services import lifecycle
from tests.conftest import make_request


async def _create(db: AsyncSession, customer: User, professional: User, **kwargs) -> ServiceRequest:
    values = {
        "trade": "plumber",
        "description": "Blocked drain in the bathroom",
        "preferred_date": date.today() + timedelta(days=1),
        "preferred_time": "14:00",
        "location": "Kileleshwa",
    }
    values.update(kwargs)
    return await lifecycle.create_request(db, customer.id, professional.id, **values)


async def _other_professional(db: AsyncSession) -> User:
    user = User(
        id=uuid.uuid4(),
        email="other-fundi@test.com",
        password_hash="x",
        role=UserRole.PROFESSIONAL,
    )
    db.add(user)
    await db.flush()
    db.add(ProfessionalProfile(user_id=user.id, trade="electrician", is_approved=True))
    await db.flush()
    return user


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_create_request_is_pending(
    db: AsyncSession, customer_user: User, professional_user: User, professional_profile: ProfessionalProfile
):
    request = await _create(db, customer_user, professional_user)

    assert request.status == RequestStatus.PENDING
    assert request.customer_id == customer_user.id
    assert request.professional_id == professional_user.id
    assert request.quoted_price is None
    assert request.final_price is None
    assert request.completed_at is None


@pytest.mark.asyncio
async def test_create_request_unknown_professional(db: AsyncSession, customer_user: User):
    with pytest.raises(NotFound):
        await lifecycle.create_request(
            db, customer_user.id, uuid.uuid4(), "plumber", "Leak", date.today()
        )


@pytest.mark.asyncio
async def test_create_request_targeting_a_customer_is_not_found(
    db: AsyncSession, customer_user: User, second_customer: User
):
    with pytest.raises(NotFound):
        await _create(db, customer_user, second_customer)


@pytest.mark.asyncio
async def test_create_request_inactive_professional(
    db: AsyncSession, customer_user: User, professional_user: User, professional_profile: ProfessionalProfile
):
    professional_user.is_active = False
    await db.flush()

    with pytest.raises(NotFound):
        await _create(db, customer_user, professional_user)


@pytest.mark.asyncio
async def test_create_request_unapproved_professional(
    db: AsyncSession, customer_user: User, pending_professional: User
):
    with pytest.raises(NotApproved):
        await _create(db, customer_user, pending_professional, trade="electrician")


@pytest.mark.asyncio
async def test_create_request_duplicate_pending(
    db: AsyncSession, customer_user: User, professional_user: User, professional_profile: ProfessionalProfile
):
    await _create(db, customer_user, professional_user)

    with pytest.raises(DuplicatePending):
        await _create(db, customer_user, professional_user, description="Another leak")


@pytest.mark.asyncio
async def test_create_request_duplicate_guarded_by_unique_index(
    db: AsyncSession, customer_user: User, professional_user: User, professional_profile: ProfessionalProfile
):
    """With the fast-path check bypassed, the partial unique index still refuses a second pending request."""
    first = await _create(db, customer_user, professional_user)

    # The fast path sees nothing, the lookup after the failed insert finds the winner
    with patch("app.services.lifecycle._existing_pending_id", AsyncMock(side_effect=[None, first.id])):
        with pytest.raises(DuplicatePending):
            await _create(db, customer_user, professional_user, description="Race")

    count = await db.scalar(select(func.count(ServiceRequest.id)))
    assert count == 1


@pytest.mark.asyncio
async def test_create_request_other_integrity_errors_propagate(
    db: AsyncSession, customer_user: User, professional_user: User, professional_profile: ProfessionalProfile
):
    failure = IntegrityError("INSERT INTO service_requests", {}, Exception("CHECK constraint failed"))
    with patch.object(db, "flush", AsyncMock(side_effect=failure)):
        with pytest.raises(IntegrityError):
            await _create(db, customer_user, professional_user)

    assert await db.scalar(select(func.count(ServiceRequest.id))) == 0


@pytest.mark.asyncio
async def test_create_request_allowed_again_after_cancel(
    db: AsyncSession, customer_user: User, professional_user: User, professional_profile: ProfessionalProfile
):
    first = await _create(db, customer_user, professional_user)
    await lifecycle.cancel_request(db, first.id, customer_user.id)

    second = await _create(db, customer_user, professional_user)
    assert second.id != first.id
    assert second.status == RequestStatus.PENDING


@pytest.mark.asyncio
async def test_other_customers_are_not_blocked_by_a_pending_request(
    db: AsyncSession,
    customer_user: User,
    second_customer: User,
    professional_user: User,
    professional_profile: ProfessionalProfile,
):
    await _create(db, customer_user, professional_user)
    other = await _create(db, second_customer, professional_user)
    assert other.status == RequestStatus.PENDING


@pytest.mark.asyncio
async def test_create_request_description_too_long(
    db: AsyncSession, customer_user: User, professional_user: User, professional_profile: ProfessionalProfile
):
    with pytest.raises(InvalidInput):
        await _create(db, customer_user, professional_user, description="x" * 501)


@pytest.mark.asyncio
async def test_create_request_blank_description(
    db: AsyncSession, customer_user: User, professional_user: User, professional_profile: ProfessionalProfile
):
    with pytest.raises(InvalidInput):
        await _create(db, customer_user, professional_user, description="   ")


# ---------------------------------------------------------------------------
# Respond
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_accept_stores_quoted_price(
    db: AsyncSession, customer_user: User, professional_user: User, professional_profile: ProfessionalProfile
):
    request = await _create(db, customer_user, professional_user)

    updated = await lifecycle.respond_to_request(
        db, request.id, professional_user.id, ResponseDecision.ACCEPT, quoted_price=Decimal("2500")
    )

    assert updated.status == RequestStatus.ACCEPTED
    assert updated.quoted_price == Decimal("2500")


@pytest.mark.asyncio
async def test_accept_without_price(
    db: AsyncSession, customer_user: User, professional_user: User, professional_profile: ProfessionalProfile
):
    request = await _create(db, customer_user, professional_user)

    updated = await lifecycle.respond_to_request(db, request.id, professional_user.id, "accept")

    assert updated.status == RequestStatus.ACCEPTED
    assert updated.quoted_price is None


@pytest.mark.asyncio
async def test_deny(
    db: AsyncSession, customer_user: User, professional_user: User, professional_profile: ProfessionalProfile
):
    request = await _create(db, customer_user, professional_user)

    updated = await lifecycle.respond_to_request(db, request.id, professional_user.id, "deny")

    assert updated.status == RequestStatus.DENIED


@pytest.mark.asyncio
@pytest.mark.parametrize("decision,expected", [("accepted", RequestStatus.ACCEPTED), ("Denied", RequestStatus.DENIED)])
async def test_respond_accepts_status_spellings(
    db: AsyncSession,
    customer_user: User,
    professional_user: User,
    professional_profile: ProfessionalProfile,
    decision: str,
    expected: RequestStatus,
):
    request = await _create(db, customer_user, professional_user)

    updated = await lifecycle.respond_to_request(db, request.id, professional_user.id, decision)

    assert updated.status == expected


@pytest.mark.asyncio
async def test_respond_unknown_request(db: AsyncSession, professional_user: User):
    with pytest.raises(NotFound):
        await lifecycle.respond_to_request(db, uuid.uuid4(), professional_user.id, "accept")


@pytest.mark.asyncio
async def test_respond_by_another_professional(
    db: AsyncSession, customer_user: User, professional_user: User, professional_profile: ProfessionalProfile
):
    request = await _create(db, customer_user, professional_user)
    intruder = await _other_professional(db)

    with pytest.raises(Forbidden):
        await lifecycle.respond_to_request(db, request.id, intruder.id, "accept")

    await db.refresh(request)
    assert request.status == RequestStatus.PENDING


@pytest.mark.asyncio
async def test_respond_invalid_decision(
    db: AsyncSession, customer_user: User, professional_user: User, professional_profile: ProfessionalProfile
):
    request = await _create(db, customer_user, professional_user)

    with pytest.raises(InvalidInput):
        await lifecycle.respond_to_request(db, request.id, professional_user.id, "maybe")

    await db.refresh(request)
    assert request.status == RequestStatus.PENDING


@pytest.mark.asyncio
async def test_respond_invalid_decision_on_unknown_request_is_not_found(db: AsyncSession, professional_user: User):
    with pytest.raises(NotFound):
        await lifecycle.respond_to_request(db, uuid.uuid4(), professional_user.id, "maybe")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status",
    [RequestStatus.ACCEPTED, RequestStatus.DENIED, RequestStatus.COMPLETED, RequestStatus.CANCELLED],
)
@pytest.mark.parametrize("decision", ["accept", "deny", "maybe"])
async def test_respond_on_non_pending_is_invalid_transition(
    db: AsyncSession,
    customer_user: User,
    professional_user: User,
    status: RequestStatus,
    decision: str,
):
    request = make_request(customer_user, professional_user, status=status)
    db.add(request)
    await db.flush()

    with pytest.raises(InvalidTransition) as exc_info:
        await lifecycle.respond_to_request(db, request.id, professional_user.id, decision)

    assert exc_info.value.current_status == status.value
    assert status.value in exc_info.value.message


@pytest.mark.asyncio
async def test_second_response_loses(
    db: AsyncSession, customer_user: User, professional_user: User, professional_profile: ProfessionalProfile
):
    request = await _create(db, customer_user, professional_user)
    await lifecycle.respond_to_request(db, request.id, professional_user.id, "accept")

    with pytest.raises(InvalidTransition) as exc_info:
        await lifecycle.respond_to_request(db, request.id, professional_user.id, "deny")

    assert exc_info.value.current_status == "accepted"
    await db.refresh(request)
    assert request.status == RequestStatus.ACCEPTED


@pytest.mark.asyncio
async def test_accept_negative_price(
    db: AsyncSession, customer_user: User, professional_user: User, professional_profile: ProfessionalProfile
):
    request = await _create(db, customer_user, professional_user)

    with pytest.raises(InvalidInput):
        await lifecycle.respond_to_request(
            db, request.id, professional_user.id, "accept", quoted_price=Decimal("-1")
        )


# ---------------------------------------------------------------------------
# Complete
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_complete_with_explicit_price(db: AsyncSession, customer_user: User, professional_user: User):
    request = make_request(
        customer_user, professional_user, status=RequestStatus.ACCEPTED, quoted_price=Decimal("1000")
    )
    db.add(request)
    await db.flush()

    updated = await lifecycle.complete_request(db, request.id, professional_user.id, final_price=Decimal("1200"))

    assert updated.status == RequestStatus.COMPLETED
    assert updated.final_price == Decimal("1200")
    assert updated.quoted_price == Decimal("1000")
    assert updated.completed_at is not None


@pytest.mark.asyncio
async def test_complete_defaults_to_quoted_price(db: AsyncSession, customer_user: User, professional_user: User):
    request = make_request(
        customer_user, professional_user, status=RequestStatus.ACCEPTED, quoted_price=Decimal("750")
    )
    db.add(request)
    await db.flush()

    updated = await lifecycle.complete_request(db, request.id, professional_user.id)

    assert updated.final_price == Decimal("750")


@pytest.mark.asyncio
async def test_complete_without_any_price_keeps_null(db: AsyncSession, customer_user: User, professional_user: User):
    request = make_request(customer_user, professional_user, status=RequestStatus.ACCEPTED)
    db.add(request)
    await db.flush()

    updated = await lifecycle.complete_request(db, request.id, professional_user.id)

    assert updated.status == RequestStatus.COMPLETED
    assert updated.final_price is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status",
    [RequestStatus.PENDING, RequestStatus.DENIED, RequestStatus.COMPLETED, RequestStatus.CANCELLED],
)
async def test_complete_requires_accepted(
    db: AsyncSession, customer_user: User, professional_user: User, status: RequestStatus
):
    request = make_request(customer_user, professional_user, status=status)
    db.add(request)
    await db.flush()

    with pytest.raises(InvalidTransition) as exc_info:
        await lifecycle.complete_request(db, request.id, professional_user.id)

    assert exc_info.value.current_status == status.value


@pytest.mark.asyncio
async def test_complete_by_another_professional(db: AsyncSession, customer_user: User, professional_user: User):
    request = make_request(customer_user, professional_user, status=RequestStatus.ACCEPTED)
    db.add(request)
    await db.flush()
    intruder = await _other_professional(db)

    with pytest.raises(Forbidden):
        await lifecycle.complete_request(db, request.id, intruder.id)


# ---------------------------------------------------------------------------
# Cancel
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_cancel_pending_request(
    db: AsyncSession, customer_user: User, professional_user: User, professional_profile: ProfessionalProfile
):
    request = await _create(db, customer_user, professional_user)

    updated = await lifecycle.cancel_request(db, request.id, customer_user.id, reason="Fixed it myself")

    assert updated.status == RequestStatus.CANCELLED
    assert updated.cancellation_reason == "Fixed it myself"
    assert updated.cancelled_at is not None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status",
    [RequestStatus.ACCEPTED, RequestStatus.DENIED, RequestStatus.COMPLETED, RequestStatus.CANCELLED],
)
async def test_cancel_requires_pending(
    db: AsyncSession, customer_user: User, professional_user: User, status: RequestStatus
):
    request = make_request(customer_user, professional_user, status=status)
    db.add(request)
    await db.flush()

    with pytest.raises(InvalidTransition) as exc_info:
        await lifecycle.cancel_request(db, request.id, customer_user.id)

    assert exc_info.value.current_status == status.value


@pytest.mark.asyncio
async def test_cancel_by_another_customer(
    db: AsyncSession, customer_user: User, second_customer: User, professional_user: User
):
    request = make_request(customer_user, professional_user)
    db.add(request)
    await db.flush()

    with pytest.raises(Forbidden):
        await lifecycle.cancel_request(db, request.id, second_customer.id)


@pytest.mark.asyncio
async def test_professional_cannot_cancel(db: AsyncSession, customer_user: User, professional_user: User):
    request = make_request(customer_user, professional_user)
    db.add(request)
    await db.flush()

    with pytest.raises(Forbidden):
        await lifecycle.cancel_request(db, request.id, professional_user.id)


@pytest.mark.asyncio
async def test_cancel_unknown_request(db: AsyncSession, customer_user: User):
    with pytest.raises(NotFound):
        await lifecycle.cancel_request(db, uuid.uuid4(), customer_user.id)


# ---------------------------------------------------------------------------
# Ratings
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_can_rate_follows_the_lifecycle(db: AsyncSession, customer_user: User, professional_user: User):
    request = make_request(customer_user, professional_user, status=RequestStatus.ACCEPTED)
    db.add(request)
    await db.flush()

    assert await lifecycle.can_rate(db, request.id, customer_user.id) is False

    await lifecycle.complete_request(db, request.id, professional_user.id)
    assert await lifecycle.can_rate(db, request.id, customer_user.id) is True

    await lifecycle.rate_request(db, request.id, customer_user.id, score=4)
    assert await lifecycle.can_rate(db, request.id, customer_user.id) is False


@pytest.mark.asyncio
async def test_can_rate_is_false_for_other_customer(
    db: AsyncSession, customer_user: User, second_customer: User, professional_user: User
):
    request = make_request(customer_user, professional_user, status=RequestStatus.COMPLETED)
    db.add(request)
    await db.flush()

    assert await lifecycle.can_rate(db, request.id, second_customer.id) is False
    assert await lifecycle.can_rate(db, uuid.uuid4(), customer_user.id) is False


@pytest.mark.asyncio
async def test_rate_completed_request(db: AsyncSession, customer_user: User, professional_user: User):
    request = make_request(customer_user, professional_user, status=RequestStatus.COMPLETED)
    db.add(request)
    await db.flush()

    rating = await lifecycle.rate_request(db, request.id, customer_user.id, score=5, review="Quick and tidy")

    assert rating.score == 5
    assert rating.review == "Quick and tidy"
    assert rating.professional_id == professional_user.id
    assert rating.customer_id == customer_user.id


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status",
    [RequestStatus.PENDING, RequestStatus.ACCEPTED, RequestStatus.DENIED, RequestStatus.CANCELLED],
)
async def test_rate_requires_completed(
    db: AsyncSession, customer_user: User, professional_user: User, status: RequestStatus
):
    request = make_request(customer_user, professional_user, status=status)
    db.add(request)
    await db.flush()

    with pytest.raises(NotEligible):
        await lifecycle.rate_request(db, request.id, customer_user.id, score=4)


@pytest.mark.asyncio
async def test_rate_someone_elses_request(
    db: AsyncSession, customer_user: User, second_customer: User, professional_user: User
):
    request = make_request(customer_user, professional_user, status=RequestStatus.COMPLETED)
    db.add(request)
    await db.flush()

    with pytest.raises(NotEligible):
        await lifecycle.rate_request(db, request.id, second_customer.id, score=4)


@pytest.mark.asyncio
@pytest.mark.parametrize("score", [0, 6, -3])
async def test_rate_score_out_of_range(
    db: AsyncSession, customer_user: User, professional_user: User, score: int
):
    request = make_request(customer_user, professional_user, status=RequestStatus.COMPLETED)
    db.add(request)
    await db.flush()

    with pytest.raises(InvalidInput):
        await lifecycle.rate_request(db, request.id, customer_user.id, score=score)


@pytest.mark.asyncio
async def test_rate_twice(db: AsyncSession, customer_user: User, professional_user: User):
    request = make_request(customer_user, professional_user, status=RequestStatus.COMPLETED)
    db.add(request)
    await db.flush()
    await lifecycle.rate_request(db, request.id, customer_user.id, score=5)

    with pytest.raises(AlreadyRated):
        await lifecycle.rate_request(db, request.id, customer_user.id, score=1)


@pytest.mark.asyncio
async def test_rate_twice_guarded_by_unique_constraint(
    db: AsyncSession, customer_user: User, professional_user: User
):
    """With the fast-path check bypassed, uq_rating_request still allows only one rating."""
    request = make_request(customer_user, professional_user, status=RequestStatus.COMPLETED)
    db.add(request)
    await db.flush()
    first = await lifecycle.rate_request(db, request.id, customer_user.id, score=5)

    with patch("app.services.lifecycle._existing_rating_id", AsyncMock(side_effect=[None, first.id])):
        with pytest.raises(AlreadyRated):
            await lifecycle.rate_request(db, request.id, customer_user.id, score=2)

    count = await db.scalar(select(func.count(Rating.id)).where(Rating.request_id == request.id))
    assert count == 1


@pytest.mark.asyncio
async def test_rate_request_check_violation_is_not_reported_as_already_rated(
    db: AsyncSession, customer_user: User, professional_user: User
):
    request = make_request(customer_user, professional_user, status=RequestStatus.COMPLETED)
    db.add(request)
    await db.flush()

    # Settings wider than ck_rating_score_range let the score through to the store
    with patch.object(lifecycle.settings, "RATING_MAX_SCORE", 10):
        with pytest.raises(IntegrityError):
            await lifecycle.rate_request(db, request.id, customer_user.id, score=7)

    assert await lifecycle.can_rate(db, request.id, customer_user.id) is True
    rating = await lifecycle.rate_request(db, request.id, customer_user.id, score=5)
    assert rating.score == 5


@pytest.mark.asyncio
async def test_rating_stats_without_ratings(db: AsyncSession, professional_user: User):
    stats = await lifecycle.rating_stats(db, professional_user.id)

    assert stats.average == 0.0
    assert stats.total == 0


@pytest.mark.asyncio
async def test_rating_stats_average(
    db: AsyncSession, customer_user: User, second_customer: User, professional_user: User
):
    for customer, score in ((customer_user, 4), (second_customer, 5), (customer_user, 5)):
        request = make_request(customer, professional_user, status=RequestStatus.COMPLETED)
        db.add(request)
        await db.flush()
        await lifecycle.rate_request(db, request.id, customer.id, score=score)

    stats = await lifecycle.rating_stats(db, professional_user.id)

    assert stats.total == 3
    assert stats.average == pytest.approx(4.67)


@pytest.mark.asyncio
async def test_list_professional_ratings_newest_first(
    db: AsyncSession, customer_user: User, professional_user: User
):
    now = datetime.now(timezone.utc)
    for minutes_ago, score in ((30, 3), (5, 5)):
        request = make_request(customer_user, professional_user, status=RequestStatus.COMPLETED)
        db.add(request)
        await db.flush()
        db.add(Rating(
            request_id=request.id,
            customer_id=customer_user.id,
            professional_id=professional_user.id,
            score=score,
            rated_at=now - timedelta(minutes=minutes_ago),
        ))
    await db.flush()

    ratings = await lifecycle.list_professional_ratings(db, professional_user.id)

    assert [r.score for r in ratings] == [5, 3]
    assert ratings[0].customer.id == customer_user.id


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_list_customer_requests_newest_first(
    db: AsyncSession, customer_user: User, second_customer: User, professional_user: User
):
    old = make_request(customer_user, professional_user, status=RequestStatus.COMPLETED, created_offset_minutes=60)
    new = make_request(customer_user, professional_user, created_offset_minutes=1)
    foreign = make_request(second_customer, professional_user)
    db.add_all([old, new, foreign])
    await db.flush()

    requests = await lifecycle.list_customer_requests(db, customer_user.id)

    assert [r.id for r in requests] == [new.id, old.id]
    assert requests[0].professional.id == professional_user.id


@pytest.mark.asyncio
async def test_list_incoming_requests_only_pending(
    db: AsyncSession, customer_user: User, second_customer: User, professional_user: User
):
    older = make_request(customer_user, professional_user, created_offset_minutes=30)
    newer = make_request(second_customer, professional_user, created_offset_minutes=2)
    answered = make_request(customer_user, professional_user, status=RequestStatus.ACCEPTED)
    db.add_all([older, newer, answered])
    await db.flush()

    requests = await lifecycle.list_incoming_requests(db, professional_user.id)

    assert [r.id for r in requests] == [newer.id, older.id]


@pytest.mark.asyncio
async def test_list_request_history_excludes_pending(
    db: AsyncSession, customer_user: User, professional_user: User
):
    now = datetime.now(timezone.utc)
    pending = make_request(customer_user, professional_user)
    denied = make_request(customer_user, professional_user, status=RequestStatus.DENIED, updated_at=now - timedelta(hours=3))
    completed = make_request(customer_user, professional_user, status=RequestStatus.COMPLETED, updated_at=now - timedelta(hours=1))
    accepted = make_request(customer_user, professional_user, status=RequestStatus.ACCEPTED, updated_at=now - timedelta(hours=2))
    cancelled = make_request(customer_user, professional_user, status=RequestStatus.CANCELLED, updated_at=now - timedelta(hours=4))
    db.add_all([pending, denied, completed, accepted, cancelled])
    await db.flush()

    requests = await lifecycle.list_request_history(db, professional_user.id)

    assert [r.id for r in requests] == [completed.id, accepted.id, denied.id, cancelled.id]


@pytest.mark.asyncio
async def test_get_request_visibility(
    db: AsyncSession, customer_user: User, second_customer: User, professional_user: User
):
    request = make_request(customer_user, professional_user)
    db.add(request)
    await db.flush()

    assert (await lifecycle.get_request(db, request.id, customer_user.id)).id == request.id
    assert (await lifecycle.get_request(db, request.id, professional_user.id)).id == request.id
    # No viewer: admin access
    assert (await lifecycle.get_request(db, request.id)).id == request.id

    with pytest.raises(Forbidden):
        await lifecycle.get_request(db, request.id, second_customer.id)
    with pytest.raises(NotFound):
        await lifecycle.get_request(db, uuid.uuid4(), customer_user.id)


# ---------------------------------------------------------------------------
# End-to-end scenarios
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_scenario_approve_accept_complete_rate(
    db: AsyncSession, customer_user: User, pending_professional: User
):
    with pytest.raises(NotApproved):
        await _create(db, customer_user, pending_professional, trade="electrician")

    profile = await db.scalar(
        select(ProfessionalProfile).where(ProfessionalProfile.user_id == pending_professional.id)
    )
    profile.is_approved = True
    await db.flush()

    request = await _create(db, customer_user, pending_professional, trade="electrician")
    assert request.status == RequestStatus.PENDING

    accepted = await lifecycle.respond_to_request(
        db, request.id, pending_professional.id, "accept", quoted_price=Decimal("500")
    )
    assert accepted.status == RequestStatus.ACCEPTED
    assert accepted.quoted_price == Decimal("500")

    completed = await lifecycle.complete_request(db, request.id, pending_professional.id)
    assert completed.status == RequestStatus.COMPLETED
    assert completed.final_price == Decimal("500")

    rating = await lifecycle.rate_request(db, request.id, customer_user.id, score=5)
    assert rating.score == 5

    with pytest.raises(AlreadyRated):
        await lifecycle.rate_request(db, request.id, customer_user.id, score=4)


@pytest.mark.asyncio
async def test_scenario_cancel_then_respond(
    db: AsyncSession, customer_user: User, professional_user: User, professional_profile: ProfessionalProfile
):
    request = await _create(db, customer_user, professional_user)

    cancelled = await lifecycle.cancel_request(db, request.id, customer_user.id)
    assert cancelled.status == RequestStatus.CANCELLED

    with pytest.raises(InvalidTransition) as exc_info:
        await lifecycle.respond_to_request(db, request.id, professional_user.id, "accept")
    assert exc_info.value.current_status == "cancelled"
