"""
userservice.api.routes.users — User lookup, filtering, mutation & permissions
==============================================================================
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import Engine

from userservice.api.deps import get_current_admin, get_engine
from userservice.engine.accrual import UserAggregate
from userservice.engine.ranks import select_rank_name
from userservice.services import permission_service, rank_service, user_service
from userservice.services.user_service import UserFilter, UserSort, UserUpdate

router = APIRouter(prefix="/users", tags=["users"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class UserIn(BaseModel):
    channel_id: str = Field(min_length=1, max_length=64)
    display_name: str = Field(min_length=1, max_length=100)
    watch_time_seconds: float = Field(0.0, ge=0)
    balance: float = Field(0.0, ge=0)
    first_seen_at: datetime | None = None
    last_seen_at: datetime | None = None

    def to_update(self) -> UserUpdate:
        return UserUpdate(
            channel_id=self.channel_id,
            display_name=self.display_name,
            watch_time=timedelta(seconds=self.watch_time_seconds),
            balance=self.balance,
            first_seen_at=_utc(self.first_seen_at) if self.first_seen_at else None,
            last_seen_at=_utc(self.last_seen_at) if self.last_seen_at else None,
        )


class UsersUpsert(BaseModel):
    users: list[UserIn] = Field(min_length=1)


class FilterIn(BaseModel):
    field: str
    op: str = "eq"
    value: str | int | float


class UserQuery(BaseModel):
    filters: list[FilterIn] = Field(default_factory=list)
    sort: str = UserSort.NONE.value
    limit: int | None = Field(None, ge=1, le=1000)
    offset: int = Field(0, ge=0)


class PermissionSet(BaseModel):
    granted: bool


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _utc(value: datetime) -> datetime:
    # Naive timestamps from callers are taken as UTC
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value.astimezone(UTC)


def _with_ranks(engine: Engine, users: list[UserAggregate]) -> list[dict]:
    ranks = rank_service.load_ranks(engine)
    return [user_service.user_dict(u, select_rank_name(u.watch_time, ranks)) for u in users]


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
@router.get("/{channel_id}")
def get_user(channel_id: str, engine: Engine = Depends(get_engine)):
    user = user_service.get_user(engine, channel_id)
    if user is None:
        raise HTTPException(404, f"User {channel_id} not found")
    return _with_ranks(engine, [user])[0]


@router.post("/query")
def query_users(body: UserQuery, engine: Engine = Depends(get_engine)):
    """Filter and sort users.  Unknown fields/operators/sorts → 400."""
    users = user_service.list_users(
        engine,
        [UserFilter(f.field, f.op, f.value) for f in body.filters],
        body.sort,
        limit=body.limit,
        offset=body.offset,
    )
    return {"users": _with_ranks(engine, users), "count": len(users)}


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------
@router.put("")
def upsert_users(
    body: UsersUpsert,
    admin: dict = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    """Create or replace users.  Omitted timestamps keep the stored ones."""
    stored = user_service.upsert_users(engine, [u.to_update() for u in body.users])
    return {"users": _with_ranks(engine, stored)}


@router.delete("")
def delete_users(
    channel_id: list[str] = Query(..., min_length=1),
    admin: dict = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    return {"deleted": user_service.delete_users(engine, channel_id)}


# ---------------------------------------------------------------------------
# Permissions
# ---------------------------------------------------------------------------
@router.get("/{channel_id}/permissions")
def get_effective_permissions(
    channel_id: str,
    default: bool = False,
    engine: Engine = Depends(get_engine),
):
    return {
        "channel_id": channel_id,
        "permissions": permission_service.user_effective_permissions(engine, channel_id, default),
    }


@router.get("/{channel_id}/permissions/{permission}")
def check_permission(
    channel_id: str,
    permission: str,
    default: bool = False,
    engine: Engine = Depends(get_engine),
):
    granted = permission_service.check_user_permission(engine, channel_id, permission, default)
    return {"channel_id": channel_id, "permission": permission, "granted": granted}


@router.put("/{channel_id}/permissions/{permission}")
def set_permission(
    channel_id: str,
    permission: str,
    body: PermissionSet,
    admin: dict = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    permission_service.set_user_permission(engine, channel_id, permission, body.granted)
    return {"channel_id": channel_id, "permission": permission, "granted": body.granted}


@router.delete("/{channel_id}/permissions/{permission}")
def revoke_permission(
    channel_id: str,
    permission: str,
    admin: dict = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    if not permission_service.remove_user_permission(engine, channel_id, permission):
        raise HTTPException(404, f"No {permission} record for user {channel_id}")
    return {"ok": True}
