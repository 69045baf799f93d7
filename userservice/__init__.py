"""
userservice — Viewer Engagement Service for Live-Stream Communities
=====================================================================
Consumes the chat feed of a live stream, turns every message into accrued
watch-time and currency for the viewer who sent it, and answers questions
about viewers (balance, rank, permissions) for the rest of the platform.

Package layout::

    userservice/
    ├── __main__.py        # python -m userservice (API + ingestion loop)
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Shared defaults and labels
    ├── errors.py          # NotFound / ValidationFailure / StoreUnavailable / MalformedEvent
    ├── log.py             # stdout + syslog logging setup
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine, session helper, async bridge
    │   └── models.py      # Users, groups, ranks, permissions, memberships
    ├── engine/
    │   ├── events.py      # ChatEvent envelope
    │   ├── accrual.py     # Watch-time / balance accrual (pure)
    │   ├── permissions.py # Layered permission resolution (pure)
    │   └── ranks.py       # Rank selection (pure)
    ├── services/
    │   ├── user_service.py        # User aggregate reads/writes + filtering
    │   ├── group_service.py       # Groups and memberships
    │   ├── rank_service.py        # Ranks
    │   ├── permission_service.py  # Permission records + resolution
    │   └── accrual_service.py     # Read-accrue-upsert for one chat event
    ├── ingest/
    │   ├── feed.py        # NDJSON chat feed over HTTP
    │   └── loop.py        # Sequential ingestion loop
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # Engine/config/auth dependencies
        └── routes/        # users, groups, ranks, permissions
"""

__version__ = "0.1.0"
