"""
userservice.errors — Error kinds shared by the API and the ingestion loop
=========================================================================

The API maps these onto HTTP statuses (see :mod:`userservice.api.main`);
the ingestion loop logs and skips on :class:`StoreUnavailable` and
:class:`MalformedEvent`.
"""

from __future__ import annotations


class NotFound(LookupError):
    """A requested user, group or rank does not exist."""


class ValidationFailure(ValueError):
    """A malformed filter, sort, or field value supplied by a caller."""


class StoreUnavailable(RuntimeError):
    """The database is unreachable or rejected the operation."""


class MalformedEvent(ValueError):
    """The chat feed delivered an event missing required fields."""
