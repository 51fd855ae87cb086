# backend/motoserve/repositories/reassignment_repository.py
"""Append-only access to the worker hand-off audit trail."""

import logging

from sqlalchemy.orm import Session

from ..models.reassignment import ReassignmentRecord
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class ReassignmentRepository(BaseRepository[ReassignmentRecord]):
    def __init__(self, db: Session):
        super().__init__(db, ReassignmentRecord)
