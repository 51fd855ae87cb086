# backend/motoserve/models/worker.py
"""Shop worker model (the subset the booking core reads and writes)."""

from sqlalchemy import Boolean, CheckConstraint, Column, Float, Index, Integer, String

from ..core.ulid_helper import generate_ulid
from ..database import Base
from .types import UTCDateTime, utcnow

UNKNOWN_UNAVAILABLE_REASON = "unknown"


class Worker(Base):
    __tablename__ = "workers"

    id = Column(String(26), primary_key=True, index=True, default=generate_ulid)
    shop_id = Column(String(26), nullable=False, index=True)
    name = Column(String(120), nullable=True)

    rating = Column(Float, nullable=False, default=0.0)
    is_available = Column(Boolean, nullable=False, default=True)
    unavailable_reason = Column(String(500), nullable=True)
    response_time_minutes = Column(Integer, nullable=False, default=30)
    # Opaque tie-break; the core never computes distances
    distance_from_shop = Column(Float, nullable=True)

    completed_jobs = Column(Integer, nullable=False, default=0)
    total_service_minutes = Column(Integer, nullable=False, default=0)

    updated_at = Column(UTCDateTime(), nullable=True, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("rating >= 0 AND rating <= 5", name="ck_workers_rating_range"),
        CheckConstraint("response_time_minutes >= 0", name="ck_workers_response_time"),
        CheckConstraint(
            "is_available OR unavailable_reason IS NOT NULL",
            name="ck_workers_unavailable_reason",
        ),
        Index("ix_workers_shop_available", "shop_id", "is_available"),
    )

    def mark_unavailable(self, reason: str | None) -> None:
        self.is_available = False
        self.unavailable_reason = (reason or "").strip() or UNKNOWN_UNAVAILABLE_REASON

    def mark_available(self) -> None:
        self.is_available = True
        self.unavailable_reason = None

    def __repr__(self) -> str:
        return (
            f"<Worker {self.id}: shop={self.shop_id}, rating={self.rating}, "
            f"available={self.is_available}>"
        )
