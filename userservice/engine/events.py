"""
userservice.engine.events — ChatEvent envelope
===============================================

Every line delivered by the chat feed is normalized into a
:class:`ChatEvent` before the accrual pipeline sees it.  Payloads that
cannot be normalized raise :class:`~userservice.errors.MalformedEvent`.
"""

from __future__ import annotations

import json
import unicodedata
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from userservice.constants import CHANNEL_ID_MAX_LENGTH, DISPLAY_NAME_MAX_LENGTH
from userservice.errors import MalformedEvent

__all__ = ["ChatEvent"]

# Accepted spellings per field, first match wins
_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "channel_id": ("channel_id", "channelId", "identityKey", "identity_key"),
    "display_name": ("display_name", "displayName"),
}

_MAX_LENGTHS: dict[str, int] = {
    "channel_id": CHANNEL_ID_MAX_LENGTH,
    "display_name": DISPLAY_NAME_MAX_LENGTH,
}


def _check_text(field: str, value: str) -> str:
    if len(value) > _MAX_LENGTHS[field]:
        raise MalformedEvent(f"{field} is longer than {_MAX_LENGTHS[field]} characters")
    # NUL and other C0/C1 controls cannot be stored in a text column
    if any(unicodedata.category(ch) == "Cc" for ch in value):
        raise MalformedEvent(f"{field} contains control characters")
    return value


def _pick(payload: Mapping[str, Any], field: str) -> str:
    for key in _FIELD_ALIASES[field]:
        value = payload.get(key)
        if value is None:
            continue
        if not isinstance(value, str):
            raise MalformedEvent(f"{field} must be a string, got {type(value).__name__}")
        if value.strip():
            return _check_text(field, value)
    raise MalformedEvent(f"event is missing {field}")


@dataclass(frozen=True, slots=True)
class ChatEvent:
    """One chat message observed on the stream.

    Only the sender matters for accrual; message content is never read.
    """

    channel_id: str
    display_name: str

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any] | str | bytes) -> ChatEvent:
        """Build an event from a decoded mapping or a raw JSON line."""
        if isinstance(payload, (str, bytes)):
            try:
                payload = json.loads(payload)
            except (json.JSONDecodeError, UnicodeDecodeError) as exc:
                raise MalformedEvent(f"event is not valid JSON: {exc}") from exc
        if not isinstance(payload, Mapping):
            raise MalformedEvent(f"event must be an object, got {type(payload).__name__}")
        return cls(
            channel_id=_pick(payload, "channel_id"),
            display_name=_pick(payload, "display_name"),
        )
