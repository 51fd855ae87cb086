# backend/motoserve/models/cancellation.py
"""
Cancellation economy models.

CancellationTokenLedger holds one row per customer with the monthly token
balance. CancellationRecord is written exactly once per successful
cancellation and never updated.
"""

from sqlalchemy import CheckConstraint, Column, ForeignKey, Index, Integer, Numeric, String, Text

from ..core.ulid_helper import generate_ulid
from ..database import Base
from .types import UTCDateTime, utcnow


class CancellationTokenLedger(Base):
    __tablename__ = "cancellation_token_ledgers"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    customer_id = Column(String(26), nullable=False, unique=True, index=True)
    tokens_available = Column(Integer, nullable=False)
    tokens_used = Column(Integer, nullable=False, default=0)
    last_reset_date = Column(UTCDateTime(), nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime(), nullable=True, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("tokens_available >= 0", name="ck_ledger_tokens_available_non_negative"),
        CheckConstraint("tokens_used >= 0", name="ck_ledger_tokens_used_non_negative"),
    )

    def __repr__(self) -> str:
        return (
            f"<CancellationTokenLedger customer={self.customer_id} "
            f"available={self.tokens_available} used={self.tokens_used}>"
        )


class CancellationRecord(Base):
    __tablename__ = "cancellation_records"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    customer_id = Column(String(26), nullable=False)
    booking_id = Column(String(26), ForeignKey("bookings.id"), nullable=False, unique=True)
    cancelled_at = Column(UTCDateTime(), nullable=False)
    tokens_deducted = Column(Integer, nullable=False)
    refund_amount = Column(Numeric(10, 2), nullable=False)
    refund_percentage = Column(Integer, nullable=False)
    reason = Column(Text, nullable=False)

    __table_args__ = (
        CheckConstraint("tokens_deducted >= 0", name="ck_cancellation_tokens_non_negative"),
        CheckConstraint(
            "refund_percentage >= 0 AND refund_percentage <= 100",
            name="ck_cancellation_refund_percentage_range",
        ),
        Index("ix_cancellation_records_customer_cancelled_at", "customer_id", "cancelled_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<CancellationRecord {self.id}: booking={self.booking_id}, "
            f"tokens={self.tokens_deducted}, refund={self.refund_amount}>"
        )
