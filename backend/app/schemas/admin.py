import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from app.schemas.professional import DocumentResponse


class ApproveProfessionalRequest(BaseModel):
    approved: bool
    reason: str | None = Field(None, max_length=500)


class PendingProfessionalResponse(BaseModel):
    profile_id: uuid.UUID
    user_id: uuid.UUID
    email: str
    first_name: str | None
    last_name: str | None
    phone_number: str | None
    trade: str
    experience: int | None
    location: str | None
    created_at: datetime
    documents: list[DocumentResponse] = []


class ToggleStatusResponse(BaseModel):
    id: uuid.UUID
    is_active: bool
