"""Versioned v1 routers; mounted under /api/v1 in main.py."""

from . import admin, bookings, cancellations, workers

__all__ = ["admin", "bookings", "cancellations", "workers"]
