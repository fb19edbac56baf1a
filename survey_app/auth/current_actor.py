# survey_app/auth/current_actor.py
"""
Identity seam.

Authentication happens upstream; the auth gateway forwards the caller as
X-User-Id / X-Actor-Role headers. Routes depend on current_actor (or one
of the role-specific wrappers) and receive an Actor.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header, HTTPException

from survey_app.domain.booking_status import ActorRole
from survey_app.domain.models import Actor


def current_actor(
    x_user_id: Optional[str] = Header(default=None),
    x_actor_role: Optional[str] = Header(default=None),
) -> Actor:
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Not authenticated")

    role_raw = (x_actor_role or ActorRole.USER.value).strip().upper()
    try:
        role = ActorRole(role_raw)
    except ValueError:
        raise HTTPException(status_code=401, detail="Unknown actor role")

    # SYSTEM is internal only, never asserted by a caller
    if role is ActorRole.SYSTEM:
        raise HTTPException(status_code=403, detail="Forbidden")

    return Actor(role=role, actor_id=user_id)


def _require(role: ActorRole):
    def dependency(actor: Actor = Depends(current_actor)) -> Actor:
        if actor.role is not role:
            raise HTTPException(status_code=403, detail="Forbidden")
        return actor

    return dependency


require_user = _require(ActorRole.USER)
require_vendor = _require(ActorRole.VENDOR)
require_admin = _require(ActorRole.ADMIN)
