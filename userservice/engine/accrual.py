"""
userservice.engine.accrual — Watch-Time & Balance Accrual
==========================================================

Pure calculation, no DB I/O.  Given the viewer's previous aggregate and a
new chat event, produce the next aggregate.

A viewer counts as continuously watching between two messages when the gap
between them is shorter than the *active window*.  Only such gaps are
credited: the gap is added to the watch-time and paid out at::

    rate = base_rate + sum(group.bonus_payout for group in groups)   # per minute
    balance += rate * gap_seconds / 60

Longer gaps are absences: nothing is credited, only ``last_seen_at`` moves.
Events that arrive with a timestamp older than ``last_seen_at`` (replays,
out-of-order delivery) credit nothing and leave ``last_seen_at`` where it
is, so replaying the feed can never decrease or double-count anything that
was already applied.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Protocol

from userservice.engine.events import ChatEvent

logger = logging.getLogger(__name__)

__all__ = ["AccrualResult", "UserAggregate", "accrue", "payout_rate"]

ZERO = timedelta(0)


class HasBonus(Protocol):
    bonus_payout: float


# ---------------------------------------------------------------------------
# UserAggregate — the current-state record for one viewer
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class UserAggregate:
    channel_id: str
    display_name: str
    watch_time: timedelta
    balance: float
    first_seen_at: datetime
    last_seen_at: datetime

    @classmethod
    def new(cls, channel_id: str, display_name: str, now: datetime) -> UserAggregate:
        return cls(
            channel_id=channel_id,
            display_name=display_name,
            watch_time=ZERO,
            balance=0.0,
            first_seen_at=now,
            last_seen_at=now,
        )


@dataclass(frozen=True, slots=True)
class AccrualResult:
    """Output of :func:`accrue` plus what was credited (for logging)."""

    user: UserAggregate
    created: bool = False
    credited_time: timedelta = ZERO
    credited_balance: float = 0.0


def payout_rate(base_rate: float, groups: Iterable[HasBonus]) -> float:
    """Currency per minute for a viewer in *groups*.

    Negative bonuses may cancel the base rate but never push it below zero.
    """
    return max(0.0, base_rate + sum(group.bonus_payout or 0.0 for group in groups))


# ---------------------------------------------------------------------------
# The accrual step
# ---------------------------------------------------------------------------
def accrue(
    prior: UserAggregate | None,
    event: ChatEvent,
    now: datetime,
    *,
    active_window: timedelta,
    base_rate: float,
    groups: Iterable[HasBonus] = (),
) -> AccrualResult:
    """Apply one chat event to a viewer's aggregate.

    This is a PURE function.  The caller reads *prior*, resolves the
    viewer's *groups*, and persists the returned aggregate.

    Parameters
    ----------
    prior : the stored aggregate, or ``None`` for a first-time viewer
    event : the chat event (its display name always wins)
    now : wall-clock time the event was observed
    active_window : longest gap still counted as continuous watching
    base_rate : currency per minute before group bonuses
    groups : the viewer's groups (only ``bonus_payout`` is read)
    """
    if prior is None:
        user = UserAggregate.new(event.channel_id, event.display_name, now)
        return AccrualResult(user=user, created=True)

    elapsed = now - prior.last_seen_at
    if elapsed < ZERO:
        # Out-of-order or replayed event: keep everything, including last_seen_at
        logger.debug(
            "Event for %s is %s older than last_seen_at — no accrual",
            prior.channel_id, -elapsed,
        )
        return AccrualResult(user=replace(prior, display_name=event.display_name))

    if elapsed >= active_window:
        return AccrualResult(
            user=replace(prior, display_name=event.display_name, last_seen_at=now)
        )

    credited_balance = payout_rate(base_rate, groups) * elapsed.total_seconds() / 60
    user = replace(
        prior,
        display_name=event.display_name,
        watch_time=prior.watch_time + elapsed,
        balance=prior.balance + credited_balance,
        last_seen_at=now,
    )
    return AccrualResult(
        user=user,
        credited_time=elapsed,
        credited_balance=credited_balance,
    )
