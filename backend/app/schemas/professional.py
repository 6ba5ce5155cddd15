import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field


class ProfessionalProfileUpdate(BaseModel):
    bio: str | None = Field(None, max_length=2000)
    hourly_rate: Decimal | None = Field(None, ge=0, max_digits=10, decimal_places=2)
    location: str | None = Field(None, max_length=255)


class DocumentResponse(BaseModel):
    id: uuid.UUID
    filename: str
    url: str
    created_at: datetime

    model_config = {"from_attributes": True}


class ProfessionalProfileResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    trade: str
    experience: int | None
    bio: str | None
    hourly_rate: Decimal | None
    location: str | None
    is_approved: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class ProfessionalListItem(BaseModel):
    """Directory entry: the professional's user id is what requests target."""
    user_id: uuid.UUID
    first_name: str | None
    last_name: str | None
    trade: str
    experience: int | None
    hourly_rate: Decimal | None
    location: str | None
    rating_average: float = 0.0
    rating_total: int = 0


class ProfessionalDetailResponse(ProfessionalListItem):
    bio: str | None
    phone_number: str | None
    documents: list[DocumentResponse] = []
