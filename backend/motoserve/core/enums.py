# backend/motoserve/core/enums.py
"""
Core enums for the motoserve platform.

Role names are supplied by the upstream gateway with every request; the
core only distinguishes between them, it never issues them.
"""

from enum import Enum


class RoleName(str, Enum):
    """Roles an authenticated actor can hold."""

    CUSTOMER = "customer"
    WORKER = "worker"
    OWNER = "owner"
    ADMIN = "admin"
    SYSTEM = "system"


SYSTEM_ACTOR_ID = "system"
