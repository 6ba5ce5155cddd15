import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from app.models.enums import RequestStatus


class ServiceRequestCreate(BaseModel):
    professional_id: uuid.UUID
    trade: str = Field(min_length=1, max_length=100)
    # Length is enforced by the lifecycle service so the error carries its code
    description: str
    preferred_date: date
    preferred_time: str | None = Field(None, max_length=20)
    location: str | None = Field(None, max_length=255)


class RespondRequest(BaseModel):
    # Free-form so unknown decisions reach the service and come back as invalid_input
    decision: str = Field(max_length=20)
    quoted_price: Decimal | None = Field(None, max_digits=10, decimal_places=2)


class CompleteRequest(BaseModel):
    final_price: Decimal | None = Field(None, max_digits=10, decimal_places=2)


class CancelRequest(BaseModel):
    reason: str | None = Field(None, max_length=500)


class PartySummary(BaseModel):
    id: uuid.UUID
    first_name: str | None
    last_name: str | None
    phone_number: str | None

    model_config = {"from_attributes": True}


class ServiceRequestResponse(BaseModel):
    id: uuid.UUID
    customer_id: uuid.UUID
    professional_id: uuid.UUID
    trade: str
    description: str
    preferred_date: date
    preferred_time: str | None
    location: str | None
    status: RequestStatus
    quoted_price: Decimal | None
    final_price: Decimal | None
    cancellation_reason: str | None
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None
    cancelled_at: datetime | None

    model_config = {"from_attributes": True}


class ServiceRequestDetailResponse(ServiceRequestResponse):
    customer: PartySummary
    professional: PartySummary
    is_rated: bool = False
