# backend/motoserve/core/principal.py
"""
Authenticated actor supplied by the upstream gateway.

The core never authenticates anyone; it only checks that the actor it was
handed holds a role (and, for owners, a shop) that permits the operation.
"""

from dataclasses import dataclass
from typing import Optional

from .enums import RoleName


@dataclass(frozen=True)
class Actor:
    id: str
    role: RoleName
    shop_id: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == RoleName.ADMIN

    @property
    def is_system(self) -> bool:
        return self.role == RoleName.SYSTEM

    @property
    def is_customer(self) -> bool:
        return self.role == RoleName.CUSTOMER

    @property
    def is_worker(self) -> bool:
        return self.role == RoleName.WORKER

    def owns_shop(self, shop_id: Optional[str]) -> bool:
        return self.role == RoleName.OWNER and self.shop_id is not None and self.shop_id == shop_id
