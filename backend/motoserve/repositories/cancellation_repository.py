# backend/motoserve/repositories/cancellation_repository.py
"""
Cancellation Repository for the motoserve booking core.

Owns the token ledger writes. Every balance change is a compare-and-set
UPDATE keyed on the value the caller observed, so two concurrent charges
against the same ledger can never both succeed on a stale balance.
"""

from datetime import datetime
import logging
from typing import List, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.cancellation import CancellationRecord, CancellationTokenLedger
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class CancellationTokenLedgerRepository(BaseRepository[CancellationTokenLedger]):
    def __init__(self, db: Session):
        super().__init__(db, CancellationTokenLedger)

    def get_for_customer(
        self, customer_id: str, for_update: bool = False
    ) -> Optional[CancellationTokenLedger]:
        query = self._build_query().filter(CancellationTokenLedger.customer_id == customer_id)
        if for_update:
            query = query.with_for_update().populate_existing()
        try:
            return query.first()
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading ledger for customer {customer_id}: {str(e)}")
            raise RepositoryException(f"Failed to load token ledger: {str(e)}") from e

    def get_or_create(
        self, customer_id: str, allowance: int, now: datetime
    ) -> CancellationTokenLedger:
        """
        Return the customer's ledger, creating it with the monthly allowance.

        A concurrent creator wins through the unique customer_id and the loser
        re-reads the committed row. SQLite has no usable row locks, so there
        the insert skips the conflict in the statement itself; server
        databases use a savepoint.
        """
        ledger = self.get_for_customer(customer_id, for_update=True)
        if ledger is not None:
            return ledger

        if self.dialect_name == "sqlite":
            stmt = (
                sqlite_insert(CancellationTokenLedger)
                .values(
                    customer_id=customer_id,
                    tokens_available=allowance,
                    tokens_used=0,
                    last_reset_date=now,
                )
                .on_conflict_do_nothing(index_elements=["customer_id"])
            )
            try:
                self.db.execute(stmt)
            except SQLAlchemyError as e:
                self.logger.error(f"Error creating ledger for customer {customer_id}: {str(e)}")
                raise RepositoryException(f"Failed to create token ledger: {str(e)}") from e
            return self._reread_after_create(customer_id)

        try:
            with self.db.begin_nested():
                ledger = CancellationTokenLedger(
                    customer_id=customer_id,
                    tokens_available=allowance,
                    tokens_used=0,
                    last_reset_date=now,
                )
                self.db.add(ledger)
            return ledger
        except IntegrityError:
            self.logger.info("Ledger for customer %s created concurrently; re-reading", customer_id)
            return self._reread_after_create(customer_id)

    def _reread_after_create(self, customer_id: str) -> CancellationTokenLedger:
        ledger = self.get_for_customer(customer_id, for_update=True)
        if ledger is None:
            raise RepositoryException(f"Token ledger for {customer_id} vanished after conflict")
        return ledger

    def debit_if_unchanged(
        self,
        ledger: CancellationTokenLedger,
        expected_available: int,
        cost: int,
        now: datetime,
    ) -> bool:
        """Deduct ``cost`` tokens only if the balance still equals ``expected_available``."""
        stmt = (
            sa.update(CancellationTokenLedger)
            .where(
                CancellationTokenLedger.id == ledger.id,
                CancellationTokenLedger.tokens_available == expected_available,
            )
            .values(
                tokens_available=expected_available - cost,
                tokens_used=CancellationTokenLedger.tokens_used + cost,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return self._compare_and_set(ledger, stmt)

    def reset_if_unchanged(
        self,
        ledger: CancellationTokenLedger,
        observed_reset_date: datetime,
        allowance: int,
        now: datetime,
    ) -> bool:
        """Restore the monthly allowance unless another writer already reset the ledger."""
        stmt = (
            sa.update(CancellationTokenLedger)
            .where(
                CancellationTokenLedger.id == ledger.id,
                CancellationTokenLedger.last_reset_date == observed_reset_date,
            )
            .values(tokens_available=allowance, last_reset_date=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return self._compare_and_set(ledger, stmt)

    def reload(self, ledger: CancellationTokenLedger) -> CancellationTokenLedger:
        refreshed = self.get_for_customer(ledger.customer_id, for_update=True)
        if refreshed is None:
            raise RepositoryException(f"Token ledger {ledger.id} disappeared")
        return refreshed

    def _compare_and_set(self, ledger: CancellationTokenLedger, stmt: sa.Update) -> bool:
        try:
            result = self.db.execute(stmt)
        except SQLAlchemyError as e:
            self.logger.error(f"Ledger update failed for {ledger.id}: {str(e)}")
            raise RepositoryException(f"Failed to update token ledger: {str(e)}") from e
        if result.rowcount != 1:
            return False
        self.db.refresh(ledger)
        return True


class CancellationRecordRepository(BaseRepository[CancellationRecord]):
    def __init__(self, db: Session):
        super().__init__(db, CancellationRecord)

    def count_between(self, customer_id: str, start: datetime, end: datetime) -> int:
        """Cancellations by the customer with start <= cancelled_at < end."""
        query = self.db.query(sa.func.count(CancellationRecord.id)).filter(
            CancellationRecord.customer_id == customer_id,
            CancellationRecord.cancelled_at >= start,
            CancellationRecord.cancelled_at < end,
        )
        return int(self._execute_scalar(query) or 0)

    def get_history(self, customer_id: str, limit: int) -> List[CancellationRecord]:
        query = (
            self._build_query()
            .filter(CancellationRecord.customer_id == customer_id)
            .order_by(CancellationRecord.cancelled_at.desc(), CancellationRecord.id.desc())
            .limit(limit)
        )
        return self._execute_query(query)
