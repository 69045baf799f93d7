"""
userservice.engine.ranks — Rank Selection
==========================================

A viewer qualifies for every rank whose watch-time threshold they have
reached.  Among those, the rank with the highest priority is shown.
Equal priorities are broken by the lowest rank id, so the result never
depends on the order rows come back from the database.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import timedelta
from typing import Protocol, TypeVar

from userservice.constants import DEFAULT_RANK_NAME

__all__ = ["select_rank", "select_rank_name", "sort_ranks"]


class RankLike(Protocol):
    id: int
    name: str
    priority: int

    @property
    def threshold(self) -> timedelta: ...


R = TypeVar("R", bound=RankLike)


def sort_ranks(ranks: Iterable[R]) -> list[R]:
    """Presentation order: priority descending, then id ascending."""
    return sorted(ranks, key=lambda r: (-(r.priority or 0), r.id))


def select_rank(watch_time: timedelta, ranks: Iterable[R]) -> R | None:
    """Return the qualifying rank with the highest priority, or ``None``."""
    for rank in sort_ranks(ranks):
        if rank.threshold <= watch_time:
            return rank
    return None


def select_rank_name(
    watch_time: timedelta,
    ranks: Iterable[RankLike],
    default: str = DEFAULT_RANK_NAME,
) -> str:
    rank = select_rank(watch_time, ranks)
    return rank.name if rank is not None else default
