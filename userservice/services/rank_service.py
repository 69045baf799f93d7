"""
userservice.services.rank_service — Rank CRUD
==============================================
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import timedelta
from typing import Any

from sqlalchemy import Engine, select

from userservice.database.engine import get_session
from userservice.database.models import Rank, duration_to_parts
from userservice.engine.ranks import select_rank_name, sort_ranks
from userservice.errors import NotFound, ValidationFailure

logger = logging.getLogger(__name__)

EDITABLE_FIELDS: frozenset[str] = frozenset({"name", "priority", "threshold"})


def rank_dict(rank: Rank) -> dict:
    seconds, nanos = duration_to_parts(rank.threshold)
    return {
        "id": rank.id,
        "name": rank.name,
        "priority": rank.priority,
        "threshold": {"seconds": seconds, "nanos": nanos},
        "threshold_seconds": rank.threshold.total_seconds(),
    }


def _validate(name: str | None, threshold: timedelta | None) -> None:
    if name is not None and not name.strip():
        raise ValidationFailure("rank name must not be empty")
    if threshold is not None and threshold < timedelta(0):
        raise ValidationFailure("rank threshold must not be negative")


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def load_ranks(engine: Engine) -> list[Rank]:
    """Every rank, detached, priority descending."""
    with get_session(engine) as session:
        ranks = session.scalars(select(Rank)).all()
    return sort_ranks(ranks)


def list_ranks(engine: Engine) -> list[dict]:
    return [rank_dict(r) for r in load_ranks(engine)]


def rank_name_for(engine: Engine, watch_time: timedelta) -> str:
    return select_rank_name(watch_time, load_ranks(engine))


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------
def create_rank(
    engine: Engine,
    *,
    name: str,
    threshold: timedelta,
    priority: int = 0,
) -> dict:
    _validate(name, threshold)
    with get_session(engine) as session:
        rank = Rank(name=name, priority=priority, threshold=threshold)
        session.add(rank)
        session.flush()
        logger.info("Created rank %s (%s, %s)", rank.id, rank.name, threshold)
        return rank_dict(rank)


def update_rank(engine: Engine, rank_id: int, **fields: Any) -> dict:
    """Apply the non-``None`` *fields* to a rank.

    Raises
    ------
    NotFound
        If the rank does not exist.
    ValidationFailure
        On an unknown field, an empty name, or a negative threshold.
    """
    unknown = set(fields) - EDITABLE_FIELDS
    if unknown:
        raise ValidationFailure(f"cannot update rank field(s): {', '.join(sorted(unknown))}")
    _validate(fields.get("name"), fields.get("threshold"))
    with get_session(engine) as session:
        rank = session.get(Rank, rank_id)
        if rank is None:
            raise NotFound(f"Rank {rank_id} not found")
        for key, value in fields.items():
            if value is not None:
                setattr(rank, key, value)
        session.flush()
        logger.info("Updated rank %s", rank_id)
        return rank_dict(rank)


def delete_ranks(engine: Engine, rank_ids: Iterable[int]) -> int:
    ids = list(dict.fromkeys(rank_ids))
    if not ids:
        return 0
    with get_session(engine) as session:
        ranks = session.scalars(select(Rank).where(Rank.id.in_(ids))).all()
        for rank in ranks:
            session.delete(rank)
        deleted = len(ranks)
    logger.info("Deleted %d rank(s)", deleted)
    return deleted
