"""
userservice.services.accrual_service — Apply One Chat Event
============================================================

Read → accrue → write for a single event, inside one transaction:

1. Load the viewer's stored aggregate (if any).
2. Load the viewer's groups (for their payout bonuses).
3. Run :func:`userservice.engine.accrual.accrue`.
4. Create-or-replace the ``users`` row.

Replays are safe: the engine never credits an event that is older than the
stored ``last_seen_at``.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import Engine

from userservice.config import UserServiceConfig
from userservice.database.engine import get_session
from userservice.database.models import User
from userservice.engine.accrual import AccrualResult, accrue
from userservice.engine.events import ChatEvent
from userservice.services.group_service import load_groups_for_user
from userservice.services.user_service import to_aggregate, write_aggregate

logger = logging.getLogger(__name__)


def apply_event(
    engine: Engine,
    cfg: UserServiceConfig,
    event: ChatEvent,
    now: datetime,
) -> AccrualResult:
    """Process one chat event and persist the result.

    Raises
    ------
    StoreUnavailable
        If the database rejects the read or the write.
    """
    with get_session(engine) as session:
        row = session.get(User, event.channel_id)
        prior = to_aggregate(row) if row is not None else None
        groups = load_groups_for_user(session, event.channel_id) if prior is not None else []

        result = accrue(
            prior,
            event,
            now,
            active_window=cfg.active_window,
            base_rate=cfg.default_payout,
            groups=groups,
        )
        write_aggregate(session, result.user)

    if result.created:
        logger.info("New viewer %s (%s)", event.display_name, event.channel_id)
    elif result.credited_time:
        logger.debug(
            "Credited %s / %.4f to %s",
            result.credited_time, result.credited_balance, event.channel_id,
        )
    return result
