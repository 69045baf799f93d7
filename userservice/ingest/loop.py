"""
userservice.ingest.loop — Sequential Chat Ingestion
====================================================

One consumer reads the chat feed and applies each event to the store
before asking for the next one, so at most one event is ever in flight.

States::

    WAITING ──event──▶ PROCESSING ──done / skipped──▶ WAITING
       │
       └──feed ended / cancelled──▶ CLOSED

Failure policy is "skip and continue": a malformed event, a store error or any other
error raised while applying one event is logged and the loop moves on.
Only the feed itself ending (or failing) stops the loop.  Nothing is retried.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import AsyncIterable, Callable, Mapping
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import Engine

from userservice.config import UserServiceConfig
from userservice.database.engine import run_db
from userservice.engine.accrual import AccrualResult
from userservice.engine.events import ChatEvent
from userservice.errors import MalformedEvent, StoreUnavailable
from userservice.services.accrual_service import apply_event

logger = logging.getLogger(__name__)

Payload = Mapping[str, Any] | str | bytes


def utc_now() -> datetime:
    return datetime.now(UTC)


class LoopState(enum.StrEnum):
    WAITING = "waiting"
    PROCESSING = "processing"
    CLOSED = "closed"


class IngestionLoop:
    """Drive :func:`~userservice.services.accrual_service.apply_event` from a feed.

    Parameters
    ----------
    engine:
        SQLAlchemy engine for the entity store.
    cfg:
        Supplies the base payout rate and the active window.
    clock:
        Returns "now" for each event; injectable for tests.
    """

    def __init__(
        self,
        engine: Engine,
        cfg: UserServiceConfig,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.engine = engine
        self.cfg = cfg
        self.clock = clock
        self.state = LoopState.WAITING
        self.processed = 0
        self.skipped = 0

    async def run(self, feed: AsyncIterable[Payload]) -> None:
        """Consume *feed* until it ends.  Transport errors propagate."""
        logger.info(
            "Ingestion loop started (payout %.2f/min, active window %s)",
            self.cfg.default_payout, self.cfg.active_window,
        )
        try:
            async for payload in feed:
                self.state = LoopState.PROCESSING
                try:
                    await self.handle(payload)
                finally:
                    self.state = LoopState.WAITING
        finally:
            self.state = LoopState.CLOSED
            logger.info(
                "Ingestion loop closed — %d processed, %d skipped",
                self.processed, self.skipped,
            )

    async def handle(self, payload: Payload) -> AccrualResult | None:
        """Apply one payload.  Returns ``None`` when the event was skipped."""
        now = self.clock()
        try:
            event = ChatEvent.from_payload(payload)
        except MalformedEvent as exc:
            self.skipped += 1
            logger.warning("Skipping malformed chat event: %s", exc)
            return None

        try:
            result = await run_db(apply_event, self.engine, self.cfg, event, now)
        except StoreUnavailable:
            self.skipped += 1
            logger.exception(
                "Store rejected update for %s — event skipped", event.channel_id
            )
            return None
        except Exception:
            self.skipped += 1
            logger.exception("Unexpected error applying event for %s — event skipped", event.channel_id)
            return None

        self.processed += 1
        return result
