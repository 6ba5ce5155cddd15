import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.config import RATING_SCORE_CEILING, RATING_SCORE_FLOOR
from app.database import Base
from app.models.types import GUID, utcnow


class Rating(Base):
    __tablename__ = "ratings"
    __table_args__ = (
        UniqueConstraint("request_id", name="uq_rating_request"),
        CheckConstraint(
            f"score >= {RATING_SCORE_FLOOR} AND score <= {RATING_SCORE_CEILING}", name="ck_rating_score_range"
        ),
        Index("ix_rating_professional_rated", "professional_id", "rated_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    request_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("service_requests.id", ondelete="RESTRICT"), nullable=False
    )
    customer_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    # Copied from the request so the aggregate needs no join
    professional_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    score: Mapped[int] = mapped_column(Integer, nullable=False)
    review: Mapped[str | None] = mapped_column(Text, nullable=True)
    rated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    request: Mapped["ServiceRequest"] = relationship("ServiceRequest", back_populates="rating", lazy="raise")
    customer: Mapped["User"] = relationship("User", foreign_keys=[customer_id], lazy="raise")
