"""
Request-scoped dependencies: actor identity, optimistic version and the shared
auto-save coordinator.
"""
from __future__ import annotations

from typing import Optional

from fastapi import Header, HTTPException, Request

from schemas.enums import Role
from services.access_control import ActorContext
from services.autosave import AutoSaveCoordinator


def get_actor(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
    x_company_id: Optional[str] = Header(None),
) -> ActorContext:
    if not x_user_id or not x_user_role:
        raise HTTPException(status_code=401, detail="Unauthorized")
    try:
        role = Role(x_user_role.strip().upper())
    except ValueError:
        raise HTTPException(status_code=401, detail=f"Unknown role: {x_user_role}")
    return ActorContext(user_id=x_user_id.strip(), role=role, company_id=(x_company_id or "").strip() or None)


def get_expected_version(if_match: Optional[str] = Header(None)) -> Optional[int]:
    """Parse ``If-Match`` (``3`` or ``"3"``) into the version the caller last read."""
    if if_match is None or not if_match.strip():
        return None
    raw = if_match.strip()
    if raw.startswith("W/"):
        raw = raw[2:]
    try:
        return int(raw.strip('"'))
    except ValueError:
        raise HTTPException(status_code=400, detail="If-Match must be an integer version")


def get_autosave(request: Request) -> AutoSaveCoordinator:
    return request.app.state.autosave
