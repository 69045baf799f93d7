"""
userservice.__main__ — Entry point for ``python -m userservice``
================================================================

Wiring:
1. Load .env (secrets) and set up logging (``DEBUG`` → verbose).
2. Load config/userservice.yaml (created with defaults on first run).
3. Create the SQLAlchemy engine and ensure tables exist.
4. Run the HTTP API and the chat ingestion loop side by side on one
   asyncio loop.  When the chat feed ends the loop closes; the API keeps
   serving until the process is stopped.
"""

from __future__ import annotations

import asyncio
import logging
import os

import uvicorn
from dotenv import load_dotenv

from userservice.config import UserServiceConfig
from userservice.log import setup_log

logger = logging.getLogger("userservice")


async def _ingest(engine, cfg: UserServiceConfig, feed_url: str | None) -> None:
    from userservice.ingest.feed import HttpChatFeed
    from userservice.ingest.loop import IngestionLoop

    if not feed_url:
        logger.warning("CHAT_FEED_URL is not set — running the API without ingestion")
        return
    loop = IngestionLoop(engine, cfg)
    try:
        await loop.run(HttpChatFeed(feed_url))
    except Exception:
        logger.exception("Chat feed %s failed — ingestion stopped", feed_url)


async def serve(cfg: UserServiceConfig) -> None:
    from userservice.api.deps import get_engine
    from userservice.api.main import app
    from userservice.database.engine import init_db

    engine = get_engine()
    init_db(engine)

    server = uvicorn.Server(
        uvicorn.Config(app, host=cfg.api_host, port=cfg.api_port, log_config=None)
    )
    ingest = asyncio.create_task(_ingest(engine, cfg, os.getenv("CHAT_FEED_URL")))
    try:
        await server.serve()
    finally:
        ingest.cancel()
        await asyncio.gather(ingest, return_exceptions=True)


def main() -> None:
    """Bootstrap and run the user service."""
    load_dotenv()
    setup_log(verbose=os.getenv("DEBUG") is not None)

    from userservice.api.deps import get_config

    cfg = get_config()
    logger.info(
        "Config loaded — payout %.2f/min, active window %s",
        cfg.default_payout, cfg.active_window,
    )
    try:
        asyncio.run(serve(cfg))
    except KeyboardInterrupt:
        logger.info("Shutting down gracefully…")


if __name__ == "__main__":
    main()
