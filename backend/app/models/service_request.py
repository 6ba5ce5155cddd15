import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, Date, DateTime, ForeignKey, Index, Numeric, String, Text, func, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.models.enums import RequestStatus
from app.models.types import GUID, utcnow

_PENDING_ONLY = text("status = 'pending'")


class ServiceRequest(Base):
    __tablename__ = "service_requests"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'accepted', 'denied', 'completed', 'cancelled')",
            name="ck_service_request_status",
        ),
        CheckConstraint("quoted_price IS NULL OR quoted_price >= 0", name="ck_service_request_quoted_price_positive"),
        CheckConstraint("final_price IS NULL OR final_price >= 0", name="ck_service_request_final_price_positive"),
        # At most one pending request per (customer, professional): the
        # authoritative guard behind the application-level duplicate check.
        Index(
            "uq_service_request_pending_pair",
            "customer_id",
            "professional_id",
            unique=True,
            postgresql_where=_PENDING_ONLY,
            sqlite_where=_PENDING_ONLY,
        ),
        Index("ix_service_request_customer_created", "customer_id", "created_at"),
        Index("ix_service_request_professional_status", "professional_id", "status", "updated_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    customer_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    professional_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    trade: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    preferred_date: Mapped[date] = mapped_column(Date, nullable=False)
    preferred_time: Mapped[str | None] = mapped_column(String(20), nullable=True)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[RequestStatus] = mapped_column(
        String(20), nullable=False, default=RequestStatus.PENDING, index=True
    )
    # quoted_price is written on acceptance, final_price on completion.
    # Both stay NULL when the professional never states a price.
    quoted_price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    final_price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    customer: Mapped["User"] = relationship("User", foreign_keys=[customer_id], lazy="raise")
    professional: Mapped["User"] = relationship("User", foreign_keys=[professional_id], lazy="raise")
    rating: Mapped["Rating | None"] = relationship(
        "Rating", back_populates="request", uselist=False, lazy="raise"
    )
