"""FastAPI dependencies: database session, services and the calling actor."""

from .auth import get_current_actor, get_current_customer, require_role
from .database import get_db
from .services import (
    get_booking_service,
    get_cancellation_token_service,
    get_reassignment_service,
)

__all__ = [
    "get_booking_service",
    "get_cancellation_token_service",
    "get_current_actor",
    "get_current_customer",
    "get_db",
    "get_reassignment_service",
    "require_role",
]
