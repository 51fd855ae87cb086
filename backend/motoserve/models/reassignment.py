# backend/motoserve/models/reassignment.py
"""Append-only audit of every worker hand-off on a booking."""

from sqlalchemy import Boolean, Column, ForeignKey, String, Text

from ..core.ulid_helper import generate_ulid
from ..database import Base
from .types import UTCDateTime, utcnow


class ReassignmentRecord(Base):
    __tablename__ = "reassignment_records"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    booking_id = Column(String(26), ForeignKey("bookings.id"), nullable=False, index=True)
    old_worker_id = Column(String(26), nullable=True)
    new_worker_id = Column(String(26), ForeignKey("workers.id"), nullable=False)
    reason = Column(Text, nullable=False)
    is_fallback = Column(Boolean, nullable=False, default=False)
    reassigned_at = Column(UTCDateTime(), nullable=False, default=utcnow)
    # Actor id, or "system" for cascade-driven hand-offs
    reassigned_by = Column(String(26), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<ReassignmentRecord {self.id}: booking={self.booking_id}, "
            f"{self.old_worker_id} -> {self.new_worker_id}>"
        )


class WorkerEmergency(Base):
    """A worker's report that they cannot finish a booking."""

    __tablename__ = "worker_emergencies"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    worker_id = Column(String(26), ForeignKey("workers.id"), nullable=False, index=True)
    booking_id = Column(String(26), ForeignKey("bookings.id"), nullable=False, index=True)
    reason = Column(Text, nullable=False)
    emergency_at = Column(UTCDateTime(), nullable=False, default=utcnow)
    # Actor id of the reporter; an admin may file on the worker's behalf
    reported_by = Column(String(26), nullable=False)

    def __repr__(self) -> str:
        return f"<WorkerEmergency {self.id}: worker={self.worker_id}, booking={self.booking_id}>"
