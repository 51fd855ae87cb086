# backend/motoserve/schemas/cancellation.py
"""Cancellation token balance and history schemas."""

from datetime import datetime
from typing import List

from .base import Money, StandardizedModel


class TokenBalanceResponse(StandardizedModel):
    tokens_available: int
    tokens_used: int
    monthly_allowance: int
    cancellations_this_month: int
    next_cancellation_cost: int
    can_cancel: bool
    last_reset_date: datetime
    next_reset_at: datetime


class CancellationRecordResponse(StandardizedModel):
    id: str
    booking_id: str
    cancelled_at: datetime
    tokens_deducted: int
    refund_amount: Money
    refund_percentage: int
    reason: str


class CancellationHistoryResponse(StandardizedModel):
    cancellations: List[CancellationRecordResponse]
    count: int
