"""
userservice.api.routes.ranks — Rank CRUD
=========================================
"""

from __future__ import annotations

from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import Engine

from userservice.api.deps import get_current_admin, get_engine
from userservice.services import rank_service

router = APIRouter(prefix="/ranks", tags=["ranks"])


class RankCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    threshold_seconds: float = Field(ge=0)
    priority: int = 0


class RankUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=100)
    threshold_seconds: float | None = Field(None, ge=0)
    priority: int | None = None


@router.get("")
def list_ranks(engine: Engine = Depends(get_engine)):
    """All ranks, highest priority first."""
    return {"ranks": rank_service.list_ranks(engine)}


@router.post("", status_code=201)
def create_rank(
    body: RankCreate,
    admin: dict = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    return rank_service.create_rank(
        engine,
        name=body.name,
        threshold=timedelta(seconds=body.threshold_seconds),
        priority=body.priority,
    )


@router.patch("/{rank_id}")
def update_rank(
    rank_id: int,
    body: RankUpdate,
    admin: dict = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    fields = body.model_dump(exclude_none=True)
    if not fields:
        raise HTTPException(400, "No fields to update")
    if "threshold_seconds" in fields:
        fields["threshold"] = timedelta(seconds=fields.pop("threshold_seconds"))
    return rank_service.update_rank(engine, rank_id, **fields)


@router.delete("")
def delete_ranks(
    rank_id: list[int] = Query(..., min_length=1),
    admin: dict = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    return {"deleted": rank_service.delete_ranks(engine, rank_id)}
