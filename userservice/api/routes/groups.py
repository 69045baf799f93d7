"""
userservice.api.routes.groups — Groups, memberships & group permissions
=========================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import Engine

from userservice.api.deps import get_current_admin, get_engine
from userservice.services import group_service, permission_service

router = APIRouter(prefix="/groups", tags=["groups"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class GroupCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    bonus_payout: float = 0.0
    priority: int = 0


class GroupUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=100)
    bonus_payout: float | None = None
    priority: int | None = None


class PermissionSet(BaseModel):
    granted: bool


# ---------------------------------------------------------------------------
# Groups
# ---------------------------------------------------------------------------
@router.get("")
def list_groups(engine: Engine = Depends(get_engine)):
    """All groups, highest priority first, with their permission records."""
    return {"groups": group_service.list_groups(engine)}


@router.get("/{group_id}")
def get_group(group_id: int, engine: Engine = Depends(get_engine)):
    return group_service.get_group(engine, group_id)


@router.post("", status_code=201)
def create_group(
    body: GroupCreate,
    admin: dict = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    return group_service.create_group(
        engine,
        name=body.name,
        bonus_payout=body.bonus_payout,
        priority=body.priority,
    )


@router.patch("/{group_id}")
def update_group(
    group_id: int,
    body: GroupUpdate,
    admin: dict = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    fields = body.model_dump(exclude_none=True)
    if not fields:
        raise HTTPException(400, "No fields to update")
    return group_service.update_group(engine, group_id, **fields)


@router.delete("")
def delete_groups(
    group_id: list[int] = Query(..., min_length=1),
    admin: dict = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    return {"deleted": group_service.delete_groups(engine, group_id)}


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------
@router.get("/{group_id}/members")
def list_members(group_id: int, engine: Engine = Depends(get_engine)):
    return {"group_id": group_id, "members": group_service.list_members(engine, group_id)}


@router.put("/{group_id}/members/{channel_id}")
def add_member(
    group_id: int,
    channel_id: str,
    admin: dict = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    added = group_service.add_member(engine, group_id, channel_id)
    return {"group_id": group_id, "channel_id": channel_id, "added": added}


@router.delete("/{group_id}/members/{channel_id}")
def remove_member(
    group_id: int,
    channel_id: str,
    admin: dict = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    if not group_service.remove_member(engine, group_id, channel_id):
        raise HTTPException(404, f"User {channel_id} is not in group {group_id}")
    return {"ok": True}


# ---------------------------------------------------------------------------
# Group permissions
# ---------------------------------------------------------------------------
@router.put("/{group_id}/permissions/{permission}")
def set_permission(
    group_id: int,
    permission: str,
    body: PermissionSet,
    admin: dict = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    permission_service.set_group_permission(engine, group_id, permission, body.granted)
    return {"group_id": group_id, "permission": permission, "granted": body.granted}


@router.delete("/{group_id}/permissions/{permission}")
def revoke_permission(
    group_id: int,
    permission: str,
    admin: dict = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    if not permission_service.remove_group_permission(engine, group_id, permission):
        raise HTTPException(404, f"No {permission} record for group {group_id}")
    return {"ok": True}
