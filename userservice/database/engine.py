"""
userservice.database.engine — Database Connection & Async Helper
=================================================================

The ingestion loop and the HTTP API both run on one ``asyncio`` event loop.
SQLAlchemy + psycopg2 is **synchronous** — calling the database directly
from a coroutine would stall the loop (and with it every in-flight
request) until the query returns.

Sync store functions are therefore shipped to a worker thread with
:func:`run_db`, which wraps :func:`asyncio.to_thread`.

Every session opened through :func:`get_session` translates driver and ORM
failures into :class:`~userservice.errors.StoreUnavailable`, so callers
handle one error kind for "the store said no".

Usage::

    from userservice.database.engine import create_db_engine, init_db, run_db

    engine = create_db_engine()
    init_db(engine)

    # Inside a coroutine:
    user = await run_db(user_service.get_user, engine, channel_id)
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from userservice.database.models import Base
from userservice.errors import StoreUnavailable

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine(url: str | None = None) -> Engine:
    """Build a SQLAlchemy :class:`Engine` from ``DATABASE_URL``.

    * ``pool_size=10`` — the ingestion loop holds one connection at a time,
      the rest serve concurrent API requests.
    * ``max_overflow=10`` — extra connections under load.
    * ``pool_timeout=10`` — fail after 10 s if no connection is available.
    * ``pool_recycle=3600`` — recycle connections after 1 hour.

    Raises
    ------
    RuntimeError
        If no URL is given and ``DATABASE_URL`` is not set.
    """
    url = url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set (see .env.example for the expected format)"
        )

    engine = create_engine(
        url,
        echo=False,
        pool_size=10,
        max_overflow=10,
        pool_pre_ping=True,
        pool_timeout=10,
        pool_recycle=3600,
    )
    logger.info("Entity store engine ready (%s)", engine.url.render_as_string(hide_password=True))
    return engine


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_db(engine: Engine) -> None:
    """Create all tables defined in :mod:`userservice.database.models`.

    Production schemas come from ``alembic upgrade head``; this only fills
    in tables that are missing, it never alters existing ones.
    """
    Base.metadata.create_all(engine)
    logger.info("Entity store tables present")


# ---------------------------------------------------------------------------
# Session helper
# ---------------------------------------------------------------------------
@contextmanager
def get_session(engine: Engine) -> Iterator[Session]:
    """Yield a :class:`Session` that commits on success and rolls back on
    exception.

    Objects stay usable after the block (``expire_on_commit=False``).
    Any :class:`SQLAlchemyError` is re-raised as :class:`StoreUnavailable`.

    Usage::

        with get_session(engine) as session:
            session.add(Group(name="Moderators", priority=10))
            # commit happens automatically on block exit
    """
    session = Session(engine, expire_on_commit=False)
    try:
        yield session
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        raise StoreUnavailable(str(exc)) from exc
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# ---------------------------------------------------------------------------
# Async bridge
# ---------------------------------------------------------------------------
async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Await a blocking store call without stalling the event loop."""
    return await asyncio.to_thread(func, *args, **kwargs)
