"""
userservice.constants — Shared Defaults & Labels
=================================================

Single source of truth for defaults that are referenced by the config
loader, the engine, and the API.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Economy defaults (overridable in config/userservice.yaml)
# ---------------------------------------------------------------------------
DEFAULT_PAYOUT_PER_MINUTE: float = 1.0
DEFAULT_ACTIVE_TIME_MINUTES: float = 5.0

# ---------------------------------------------------------------------------
# Ranks
# ---------------------------------------------------------------------------
DEFAULT_RANK_NAME = "Unranked"

# ---------------------------------------------------------------------------
# Durations are persisted as (seconds, nanos) pairs
# ---------------------------------------------------------------------------
NANOS_PER_MICROSECOND = 1_000
NANOS_PER_SECOND = 1_000_000_000

# ---------------------------------------------------------------------------
# Column widths shared by the models and event validation
# ---------------------------------------------------------------------------
CHANNEL_ID_MAX_LENGTH = 64
DISPLAY_NAME_MAX_LENGTH = 100
