# backend/motoserve/services/worker_matching_service.py
"""
Worker matching for the motoserve booking core.

Ranking is read-only and may be stale by the time a caller acts on it, so
selection always ends with a claim: the chosen worker is re-read under a
row lock and must still be available. A worker that fails the claim is
excluded and the next candidate is tried.
"""

import logging
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from ..core.config import Settings, settings as default_settings
from ..models.worker import Worker
from ..repositories.factory import RepositoryFactory
from ..repositories.worker_repository import WorkerRepository
from .base import BaseService, Clock

logger = logging.getLogger(__name__)


class WorkerMatchingService(BaseService):
    def __init__(
        self,
        db: Session,
        worker_repository: Optional[WorkerRepository] = None,
        clock: Optional[Clock] = None,
        config: Optional[Settings] = None,
    ):
        super().__init__(db, clock=clock)
        self.worker_repository = worker_repository or RepositoryFactory.create_worker_repository(db)
        self.config = config or default_settings

    @property
    def quality_min_rating(self) -> float:
        return self.config.quality_min_rating

    @property
    def fallback_min_rating(self) -> float:
        return self.config.fallback_min_rating

    @BaseService.measure_operation("find_candidates")
    def find_candidates(
        self,
        shop_id: str,
        exclude_worker_ids: Iterable[str] = (),
        min_rating: Optional[float] = None,
        limit: Optional[int] = None,
    ) -> List[Worker]:
        """
        Ranked available workers for a shop.

        Returns an empty list when nobody qualifies; that is not an error.
        """
        threshold = self.quality_min_rating if min_rating is None else min_rating
        return self.worker_repository.find_candidates(
            shop_id=shop_id,
            min_rating=threshold,
            exclude_worker_ids=list(exclude_worker_ids),
            limit=limit,
        )

    def claim(self, worker_id: str, shop_id: str) -> Optional[Worker]:
        """Re-validate a ranked worker at write time; None if they stopped being available."""
        return self.worker_repository.lock_if_available(worker_id, shop_id)

    def select_worker(
        self,
        shop_id: str,
        min_rating: float,
        exclude_worker_ids: Iterable[str] = (),
    ) -> Optional[Worker]:
        """
        Best available worker at or above min_rating, already claimed.

        Must run inside the caller's transaction so the row lock taken by the
        claim covers the caller's write.
        """
        excluded = {worker_id for worker_id in exclude_worker_ids if worker_id}
        for attempt in range(1, self.config.worker_claim_max_attempts + 1):
            candidates = self.find_candidates(
                shop_id, exclude_worker_ids=excluded, min_rating=min_rating, limit=1
            )
            if not candidates:
                return None
            candidate = candidates[0]
            claimed = self.claim(candidate.id, shop_id)
            if claimed is not None:
                return claimed
            self.logger.info(
                "Worker became unavailable before claim, trying next candidate",
                extra={"worker_id": candidate.id, "shop_id": shop_id, "attempt": attempt},
            )
            excluded.add(candidate.id)
        return None
