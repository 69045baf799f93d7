"""
userservice.log — Logging Setup
================================

Console output for humans plus an optional syslog sink for the
deployment's log collector.  Set ``SYSLOG_SERVER=host[:port]`` to forward
records over UDP; without it only stdout is used.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
import sys

LOG_FORMAT = "%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"
SYSLOG_PORT = 514


def _syslog_address(server: str) -> tuple[str, int]:
    host, _, port = server.partition(":")
    return host, int(port) if port else SYSLOG_PORT


def setup_log(verbose: bool = False) -> None:
    """Configure the root logger.  *verbose* switches INFO → DEBUG."""
    level = logging.DEBUG if verbose else logging.INFO

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    server = os.getenv("SYSLOG_SERVER")
    if server:
        syslog = logging.handlers.SysLogHandler(
            address=_syslog_address(server),
            facility=logging.handlers.SysLogHandler.LOG_USER,
        )
        # Syslog adds its own timestamp
        syslog.setFormatter(logging.Formatter("userservice: %(name)s │ %(message)s"))
        syslog.setLevel(logging.INFO)
        handlers.append(syslog)

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
        handlers=handlers,
        force=True,
    )
    logging.getLogger(__name__).debug("Debug logging enabled")
