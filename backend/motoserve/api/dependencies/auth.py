# backend/motoserve/api/dependencies/auth.py
"""
Actor resolution for the v1 API.

Authentication happens upstream; the gateway forwards the verified actor
in headers. Requests without a usable identity are rejected here, before
any service runs.
"""

import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException, status

from ...core.enums import RoleName
from ...core.principal import Actor

logger = logging.getLogger(__name__)


def get_current_actor(
    x_actor_id: Optional[str] = Header(default=None),
    x_actor_role: Optional[str] = Header(default=None),
    x_actor_shop_id: Optional[str] = Header(default=None),
) -> Actor:
    if not x_actor_id or not x_actor_role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": "Missing actor identity", "code": "UNAUTHENTICATED"},
        )
    try:
        role = RoleName(x_actor_role.strip().lower())
    except ValueError:
        logger.warning("Rejected request with unknown actor role %r", x_actor_role)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": f"Unknown actor role: {x_actor_role}", "code": "UNAUTHENTICATED"},
        ) from None
    return Actor(id=x_actor_id.strip(), role=role, shop_id=(x_actor_shop_id or "").strip() or None)


def require_role(*roles: RoleName):
    """Dependency factory: the actor must hold one of ``roles``."""

    def dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "message": "Your role cannot perform this action",
                    "code": "FORBIDDEN",
                    "details": {"role": actor.role.value},
                },
            )
        return actor

    return dependency


get_current_customer = require_role(RoleName.CUSTOMER)
