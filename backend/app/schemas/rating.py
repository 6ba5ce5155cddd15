import uuid
from datetime import datetime

from pydantic import BaseModel, Field


class RatingCreateRequest(BaseModel):
    request_id: uuid.UUID
    # Range is checked by the lifecycle service
    score: int
    review: str | None = Field(None, max_length=1000)


class RatingResponse(BaseModel):
    id: uuid.UUID
    request_id: uuid.UUID
    customer_id: uuid.UUID
    professional_id: uuid.UUID
    score: int
    review: str | None
    rated_at: datetime

    model_config = {"from_attributes": True}


class PublicRatingResponse(BaseModel):
    id: uuid.UUID
    score: int
    review: str | None
    rated_at: datetime
    customer_name: str


class ProfessionalRatingsResponse(BaseModel):
    professional_id: uuid.UUID
    average: float
    total: int
    ratings: list[PublicRatingResponse]


class CanRateResponse(BaseModel):
    request_id: uuid.UUID
    can_rate: bool
