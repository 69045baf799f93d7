"""
userservice.config — YAML Configuration Loader
===============================================

**Why this file exists:**
The payout rate and the active window are operator tuning, not secrets, so
they live in ``config/userservice.yaml`` next to the deployment.  Secrets
and infrastructure (``DATABASE_URL``, ``CHAT_FEED_URL``, ``JWT_SECRET``)
stay in the environment / ``.env``.

On first start the file does not exist yet; :func:`load_config` writes one
filled with defaults and then reads it back, so operators always have a
file to edit.

Usage::

    from userservice.config import load_config

    cfg = load_config()             # reads config/userservice.yaml
    print(cfg.default_payout)       # 1.0 (currency per minute)
    print(cfg.active_window)        # 0:05:00
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import timedelta
from pathlib import Path

import yaml

from userservice.constants import DEFAULT_ACTIVE_TIME_MINUTES, DEFAULT_PAYOUT_PER_MINUTE

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config") / "userservice.yaml"


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class UserServiceConfig:
    """Immutable configuration loaded from ``userservice.yaml``.

    ``default_payout`` is the base currency rate per minute of watch-time
    that every viewer earns; group bonuses are added on top of it.
    ``active_time_minutes`` is the longest gap between two chat messages
    for which the viewer still counts as continuously watching.
    """

    default_payout: float = DEFAULT_PAYOUT_PER_MINUTE
    active_time_minutes: float = DEFAULT_ACTIVE_TIME_MINUTES

    # HTTP API
    api_host: str = "0.0.0.0"
    api_port: int = 50051

    @property
    def active_window(self) -> timedelta:
        return timedelta(minutes=self.active_time_minutes)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def save_config(cfg: UserServiceConfig, path: str | Path = DEFAULT_CONFIG_PATH) -> None:
    """Write *cfg* to *path* as YAML, creating the parent folder if needed."""
    config_path = Path(path)
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w", encoding="utf-8") as fh:
        yaml.safe_dump(asdict(cfg), fh, sort_keys=False)


def load_config(path: str | Path = DEFAULT_CONFIG_PATH) -> UserServiceConfig:
    """Read *path* and return a :class:`UserServiceConfig` instance.

    If the file does not exist it is created with defaults first.
    Missing keys fall back to their defaults.

    Raises
    ------
    ValueError
        If a value cannot be converted or is out of range.
    """
    config_path = Path(path)
    if not config_path.exists():
        logger.debug("Config file %s does not exist, creating a default config", config_path)
        save_config(UserServiceConfig(), config_path)

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    defaults = UserServiceConfig()
    cfg = UserServiceConfig(
        default_payout=float(raw.get("default_payout", defaults.default_payout)),
        active_time_minutes=float(
            raw.get("active_time_minutes", defaults.active_time_minutes)
        ),
        api_host=str(raw.get("api_host", defaults.api_host)),
        api_port=int(raw.get("api_port", defaults.api_port)),
    )
    if cfg.default_payout < 0:
        raise ValueError(f"default_payout must be >= 0, got {cfg.default_payout}")
    if cfg.active_time_minutes <= 0:
        raise ValueError(
            f"active_time_minutes must be > 0, got {cfg.active_time_minutes}"
        )
    return cfg
