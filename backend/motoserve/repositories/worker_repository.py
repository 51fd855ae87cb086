# backend/motoserve/repositories/worker_repository.py
"""
Worker Repository for the motoserve booking core.

Candidate ranking lives in the query so the database can use the
(shop_id, is_available) index; the matching service only adds retries.
"""

import logging
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from ..models.worker import Worker
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class WorkerRepository(BaseRepository[Worker]):
    def __init__(self, db: Session):
        super().__init__(db, Worker)

    def find_candidates(
        self,
        shop_id: str,
        min_rating: float,
        exclude_worker_ids: Iterable[str] = (),
        limit: Optional[int] = None,
    ) -> List[Worker]:
        """
        Available workers of a shop ranked for assignment.

        Order: rating desc, response time asc, distance asc (unknown last),
        then id so equal candidates always come back in the same order.
        """
        excluded = [worker_id for worker_id in exclude_worker_ids if worker_id]
        query = self._build_query().filter(
            Worker.shop_id == shop_id,
            Worker.is_available.is_(True),
            Worker.rating >= min_rating,
        )
        if excluded:
            query = query.filter(Worker.id.notin_(excluded))
        query = query.order_by(
            Worker.rating.desc(),
            Worker.response_time_minutes.asc(),
            Worker.distance_from_shop.is_(None).asc(),
            Worker.distance_from_shop.asc(),
            Worker.id.asc(),
        )
        if limit is not None:
            query = query.limit(limit)
        return self._execute_query(query)

    def lock_if_available(self, worker_id: str, shop_id: str) -> Optional[Worker]:
        """Re-read a worker under a row lock; None unless still available in the shop."""
        worker = self.get_by_id(worker_id, for_update=True)
        if worker is None or worker.shop_id != shop_id or not worker.is_available:
            return None
        return worker

    def record_completed_job(self, worker_id: str, service_minutes: int) -> Optional[Worker]:
        """Add one completed job and its duration to the worker's running totals."""
        worker = self.get_by_id(worker_id, for_update=True)
        if worker is None:
            return None
        worker.completed_jobs = (worker.completed_jobs or 0) + 1
        worker.total_service_minutes = (worker.total_service_minutes or 0) + max(
            service_minutes, 0
        )
        self.flush()
        return worker
