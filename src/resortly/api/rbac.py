"""Role checks and actor resolution for reservation routes.

Provides:
- get_actor(): FastAPI dependency turning the authenticated user into the
  lifecycle Actor (user id + role)
- require_role(): dependency factory restricting a route to given roles

Per-reservation authorization (customer of the booking vs. owner of the
room's resort) is decided by the lifecycle, not here.
"""

from __future__ import annotations

from typing import Callable

from fastapi import Depends, HTTPException

from resortly.api.auth import USER_ROLES, CurrentUser, get_current_user
from resortly.domain.lifecycle import Actor


def get_actor(user: CurrentUser = Depends(get_current_user)) -> Actor:
    """FastAPI dependency: the caller as a lifecycle Actor."""
    return Actor(user_id=user.id, role=user.role)


def require_role(*roles: str) -> Callable[..., Actor]:
    """Create a dependency that only admits users holding one of roles.

    Usage:
        @router.post("")
        def endpoint(actor: Actor = Depends(require_role("customer"))):
            ...
    """
    unknown = [r for r in roles if r not in USER_ROLES]
    if unknown or not roles:
        raise ValueError(f"Invalid roles: {roles}")

    def dependency(actor: Actor = Depends(get_actor)) -> Actor:
        if actor.role not in roles:
            raise HTTPException(status_code=403, detail="Insufficient role")
        return actor

    return dependency
