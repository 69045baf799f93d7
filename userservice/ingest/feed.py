"""
userservice.ingest.feed — Chat Feed Client
===========================================

The chat service publishes every observed message as one JSON object per
line on a long-lived HTTP response::

    {"channel_id": "UC123", "display_name": "Alice"}
    {"channel_id": "UC456", "display_name": "Bob"}

:class:`HttpChatFeed` yields those lines as raw strings; decoding and
validation happen in :meth:`ChatEvent.from_payload` so a bad line is
reported per event instead of breaking the stream.  The iterator ends when
the server closes the response.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator

import httpx

logger = logging.getLogger(__name__)


class HttpChatFeed:
    """Async iterator over the lines of an NDJSON chat stream.

    Parameters
    ----------
    url:
        Stream endpoint, e.g. ``http://chat-service:8080/messages/stream``.
    client:
        Optional preconfigured :class:`httpx.AsyncClient` (tests pass one
        built on :class:`httpx.MockTransport`).  When omitted a client with
        no read timeout is created for the lifetime of the iteration.
    """

    def __init__(self, url: str, *, client: httpx.AsyncClient | None = None) -> None:
        self.url = url
        self._client = client

    async def __aiter__(self) -> AsyncIterator[str]:
        if self._client is not None:
            async for line in self._lines(self._client):
                yield line
            return

        # Reads block until the next chat message, however long that takes
        timeout = httpx.Timeout(10.0, read=None)
        async with httpx.AsyncClient(timeout=timeout) as client:
            async for line in self._lines(client):
                yield line

    async def _lines(self, client: httpx.AsyncClient) -> AsyncIterator[str]:
        async with client.stream("GET", self.url, headers={"Accept": "application/x-ndjson"}) as resp:
            resp.raise_for_status()
            logger.info("Subscribed to chat feed %s", self.url)
            async for line in resp.aiter_lines():
                if line.strip():
                    yield line
        logger.info("Chat feed %s closed by server", self.url)
