# backend/motoserve/services/cancellation_token_service.py
"""
Cancellation token ledger for the motoserve booking core.

Each customer holds a monthly allowance of cancellation tokens. The first
cancellation in a calendar month costs one token and every further one
costs two. Calendar months are evaluated in the business timezone.
"""

from dataclasses import dataclass
from datetime import datetime
import logging
from typing import List, Optional, Tuple

import pytz
from sqlalchemy.orm import Session

from ..core.config import Settings, settings as default_settings
from ..core.exceptions import InsufficientTokensException, StateConflictException
from ..models.cancellation import CancellationRecord, CancellationTokenLedger
from ..repositories.cancellation_repository import (
    CancellationRecordRepository,
    CancellationTokenLedgerRepository,
)
from ..repositories.factory import RepositoryFactory
from .base import BaseService, Clock

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenCharge:
    tokens_deducted: int
    tokens_remaining: int
    # Cancellations already recorded this month, not counting this one
    cancellations_this_month: int


@dataclass(frozen=True)
class TokenBalance:
    customer_id: str
    tokens_available: int
    tokens_used: int
    monthly_allowance: int
    cancellations_this_month: int
    next_cancellation_cost: int
    last_reset_date: datetime
    next_reset_at: datetime

    @property
    def can_cancel(self) -> bool:
        return self.tokens_available >= self.next_cancellation_cost


class CancellationTokenService(BaseService):
    """Charges, resets and reports the per-customer cancellation token ledger."""

    def __init__(
        self,
        db: Session,
        ledger_repository: Optional[CancellationTokenLedgerRepository] = None,
        record_repository: Optional[CancellationRecordRepository] = None,
        clock: Optional[Clock] = None,
        config: Optional[Settings] = None,
    ):
        super().__init__(db, clock=clock)
        self.ledger_repository = ledger_repository or RepositoryFactory.create_ledger_repository(db)
        self.record_repository = (
            record_repository or RepositoryFactory.create_cancellation_record_repository(db)
        )
        self.config = config or default_settings
        self.timezone = pytz.timezone(self.config.business_timezone)

    # Calendar helpers

    def month_bounds(self, at_time: datetime) -> Tuple[datetime, datetime]:
        """UTC instants of the start of at_time's business month and of the next one."""
        local = at_time.astimezone(self.timezone)
        start = self.timezone.localize(datetime(local.year, local.month, 1))
        if local.month == 12:
            following = datetime(local.year + 1, 1, 1)
        else:
            following = datetime(local.year, local.month + 1, 1)
        end = self.timezone.localize(following)
        return start.astimezone(pytz.UTC), end.astimezone(pytz.UTC)

    def _month_key(self, value: datetime) -> Tuple[int, int]:
        local = value.astimezone(self.timezone)
        return local.year, local.month

    def cost_for(self, cancellations_this_month: int) -> int:
        if cancellations_this_month == 0:
            return self.config.first_cancellation_token_cost
        return self.config.repeat_cancellation_token_cost

    # Ledger access

    def _current_ledger(self, customer_id: str, now: datetime) -> CancellationTokenLedger:
        """Load (or lazily create) the ledger and apply a pending monthly reset."""
        allowance = self.config.monthly_cancellation_tokens
        ledger = self.ledger_repository.get_or_create(customer_id, allowance, now)
        if self._month_key(now) > self._month_key(ledger.last_reset_date):
            observed = ledger.last_reset_date
            if self.ledger_repository.reset_if_unchanged(ledger, observed, allowance, now):
                self.logger.info(
                    "Monthly token reset",
                    extra={"customer_id": customer_id, "tokens_available": allowance},
                )
            else:
                ledger = self.ledger_repository.reload(ledger)
        return ledger

    @BaseService.measure_operation("charge_cancellation")
    def charge_cancellation(
        self, customer_id: str, at_time: Optional[datetime] = None
    ) -> TokenCharge:
        """
        Deduct the cost of one cancellation from the customer's ledger.

        Runs inside the caller's transaction; nothing is committed here so the
        charge is undone if the rest of the cancellation fails.

        Raises:
            InsufficientTokensException: Balance below the cost; nothing deducted
            StateConflictException: The ledger kept changing underneath us
        """
        now = at_time or self.now()
        month_start, month_end = self.month_bounds(now)

        for attempt in range(1, self.config.ledger_charge_max_attempts + 1):
            ledger = self._current_ledger(customer_id, now)
            count = self.record_repository.count_between(customer_id, month_start, month_end)
            cost = self.cost_for(count)
            available = ledger.tokens_available

            if available < cost:
                self.logger.info(
                    "Cancellation refused for insufficient tokens",
                    extra={"customer_id": customer_id, "required": cost, "available": available},
                )
                raise InsufficientTokensException(required=cost, available=available)

            if self.ledger_repository.debit_if_unchanged(ledger, available, cost, now):
                return TokenCharge(
                    tokens_deducted=cost,
                    tokens_remaining=available - cost,
                    cancellations_this_month=count,
                )

            self.logger.info(
                "Token ledger changed during charge, retrying",
                extra={"customer_id": customer_id, "attempt": attempt},
            )

        raise StateConflictException(
            "Cancellation token balance changed concurrently; please retry",
            details={"customer_id": customer_id},
        )

    @BaseService.measure_operation("get_token_balance")
    def get_balance(self, customer_id: str, at_time: Optional[datetime] = None) -> TokenBalance:
        """Current balance, applying lazy creation and the monthly reset first."""
        now = at_time or self.now()
        month_start, month_end = self.month_bounds(now)
        with self.transaction():
            ledger = self._current_ledger(customer_id, now)
            count = self.record_repository.count_between(customer_id, month_start, month_end)
            return TokenBalance(
                customer_id=customer_id,
                tokens_available=ledger.tokens_available,
                tokens_used=ledger.tokens_used,
                monthly_allowance=self.config.monthly_cancellation_tokens,
                cancellations_this_month=count,
                next_cancellation_cost=self.cost_for(count),
                last_reset_date=ledger.last_reset_date,
                next_reset_at=month_end,
            )

    @BaseService.measure_operation("get_cancellation_history")
    def get_history(
        self, customer_id: str, limit: Optional[int] = None
    ) -> List[CancellationRecord]:
        """Most recent cancellations first."""
        return self.record_repository.get_history(
            customer_id, limit or self.config.cancellation_history_limit
        )
