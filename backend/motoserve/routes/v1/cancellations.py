# backend/motoserve/routes/v1/cancellations.py
"""
Cancellation economy routes - API v1

Endpoints:
    GET /tokens    → Customer's token balance (applies the monthly reset)
    GET /history   → Customer's cancellations, newest first
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ...api.dependencies.auth import get_current_customer
from ...api.dependencies.services import get_cancellation_token_service
from ...core.exceptions import DomainException
from ...core.principal import Actor
from ...schemas.cancellation import (
    CancellationHistoryResponse,
    CancellationRecordResponse,
    TokenBalanceResponse,
)
from ...services.cancellation_token_service import CancellationTokenService
from .common import handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(tags=["cancellations-v1"])


@router.get("/tokens", response_model=TokenBalanceResponse)
def get_token_balance(
    actor: Actor = Depends(get_current_customer),
    token_service: CancellationTokenService = Depends(get_cancellation_token_service),
) -> TokenBalanceResponse:
    try:
        balance = token_service.get_balance(actor.id)
    except DomainException as e:
        handle_domain_exception(e)
    return TokenBalanceResponse(
        tokens_available=balance.tokens_available,
        tokens_used=balance.tokens_used,
        monthly_allowance=balance.monthly_allowance,
        cancellations_this_month=balance.cancellations_this_month,
        next_cancellation_cost=balance.next_cancellation_cost,
        can_cancel=balance.can_cancel,
        last_reset_date=balance.last_reset_date,
        next_reset_at=balance.next_reset_at,
    )


@router.get("/history", response_model=CancellationHistoryResponse)
def get_cancellation_history(
    limit: Optional[int] = Query(default=None, ge=1, le=200),
    actor: Actor = Depends(get_current_customer),
    token_service: CancellationTokenService = Depends(get_cancellation_token_service),
) -> CancellationHistoryResponse:
    try:
        records = token_service.get_history(actor.id, limit=limit)
    except DomainException as e:
        handle_domain_exception(e)
    items = [CancellationRecordResponse.model_validate(record) for record in records]
    return CancellationHistoryResponse(cancellations=items, count=len(items))
