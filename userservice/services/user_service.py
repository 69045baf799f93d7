"""
userservice.services.user_service — User Aggregate Store
=========================================================

Reads and writes of the ``users`` table, shared by the ingestion loop and
the API.  Rows leave this module as frozen
:class:`~userservice.engine.accrual.UserAggregate` values so nothing
outside the service layer touches ORM state.

Writes are create-or-replace keyed by ``channel_id``.  ``first_seen_at``
of an existing row is never overwritten.  External updates arrive as
:class:`UserUpdate` values whose timestamps are optional: an omitted
``last_seen_at`` keeps the stored one, and ``last_seen_at >= first_seen_at``
is checked against the row that is actually stored.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy import Engine, and_, exists, or_, select
from sqlalchemy.orm import Session
from sqlalchemy.sql.elements import ColumnElement

from userservice.database.engine import get_session
from userservice.database.models import User, duration_to_parts
from userservice.engine.accrual import UserAggregate
from userservice.errors import ValidationFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class UserUpdate:
    """A user record supplied from outside the accrual pipeline."""

    channel_id: str
    display_name: str
    watch_time: timedelta = timedelta(0)
    balance: float = 0.0
    first_seen_at: datetime | None = None
    last_seen_at: datetime | None = None


# ---------------------------------------------------------------------------
# Row <-> aggregate
# ---------------------------------------------------------------------------
def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored as UTC
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


def to_aggregate(row: User) -> UserAggregate:
    return UserAggregate(
        channel_id=row.channel_id,
        display_name=row.display_name,
        watch_time=row.watch_time,
        balance=row.balance or 0.0,
        first_seen_at=_aware(row.first_seen_at),
        last_seen_at=_aware(row.last_seen_at),
    )


def _check_totals(user: UserAggregate | UserUpdate) -> None:
    if not user.channel_id:
        raise ValidationFailure("channel_id must not be empty")
    if user.watch_time < timedelta(0):
        raise ValidationFailure("watch_time must not be negative")
    if user.balance < 0:
        raise ValidationFailure("balance must not be negative")


def validate_aggregate(user: UserAggregate) -> None:
    """Raise :class:`ValidationFailure` if *user* breaks a stored invariant."""
    _check_totals(user)
    if _aware(user.last_seen_at) < _aware(user.first_seen_at):
        raise ValidationFailure("last_seen_at must not be before first_seen_at")


def resolve_update(
    row: User | None, user: UserAggregate | UserUpdate, now: datetime
) -> UserAggregate:
    """Merge *user* with the stored *row* into the aggregate to write.

    * existing row: ``first_seen_at`` comes from the row; ``last_seen_at``
      from *user*, or the row when omitted.
    * new row: omitted ``first_seen_at`` is *now*; omitted ``last_seen_at``
      is the later of *now* and ``first_seen_at``.

    Raises
    ------
    ValidationFailure
        If the merged record breaks a stored invariant.
    """
    if row is not None:
        first = _aware(row.first_seen_at)
        last = user.last_seen_at or row.last_seen_at
    else:
        first = _aware(user.first_seen_at or now)
        last = user.last_seen_at or max(first, now)
    merged = UserAggregate(
        channel_id=user.channel_id,
        display_name=user.display_name,
        watch_time=user.watch_time,
        balance=user.balance,
        first_seen_at=first,
        last_seen_at=_aware(last),
    )
    validate_aggregate(merged)
    return merged


def write_aggregate(session: Session, user: UserAggregate) -> User:
    """Create-or-replace the row for *user* inside an open session."""
    row = session.get(User, user.channel_id)
    if row is None:
        row = User(channel_id=user.channel_id, first_seen_at=_aware(user.first_seen_at))
        session.add(row)
    row.display_name = user.display_name
    row.watch_time = user.watch_time
    row.balance = user.balance
    row.last_seen_at = max(_aware(user.last_seen_at), _aware(row.first_seen_at))
    return row


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_user(engine: Engine, channel_id: str) -> UserAggregate | None:
    with get_session(engine) as session:
        row = session.get(User, channel_id)
        return to_aggregate(row) if row is not None else None


def user_exists(engine: Engine, channel_id: str) -> bool:
    with get_session(engine) as session:
        return bool(session.scalar(select(exists().where(User.channel_id == channel_id))))


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------
def upsert_user(
    engine: Engine, user: UserAggregate | UserUpdate, *, now: datetime | None = None
) -> UserAggregate:
    """Create or replace one user and return the stored aggregate."""
    return upsert_users(engine, [user], now=now)[0]


def upsert_users(
    engine: Engine,
    users: Sequence[UserAggregate | UserUpdate],
    *,
    now: datetime | None = None,
) -> list[UserAggregate]:
    """Create or replace several users in one transaction.

    Nothing is written if any record is invalid.
    """
    for user in users:
        _check_totals(user)
    now = now or datetime.now(UTC)
    with get_session(engine) as session:
        rows = []
        for user in users:
            merged = resolve_update(session.get(User, user.channel_id), user, now)
            rows.append(write_aggregate(session, merged))
        session.flush()
        stored = [to_aggregate(row) for row in rows]
    logger.info("Upserted %d user(s)", len(stored))
    return stored


def delete_users(engine: Engine, channel_ids: Iterable[str]) -> int:
    """Delete users (and their memberships/permissions).  Returns the count."""
    ids = list(dict.fromkeys(channel_ids))
    if not ids:
        return 0
    with get_session(engine) as session:
        rows = session.scalars(select(User).where(User.channel_id.in_(ids))).all()
        for row in rows:
            session.delete(row)
        deleted = len(rows)
    logger.info("Deleted %d user(s)", deleted)
    return deleted


# ---------------------------------------------------------------------------
# Filtering & sorting
# ---------------------------------------------------------------------------
class UserSort(enum.StrEnum):
    NONE = "none"
    WATCH_TIME_ASC = "watch_time_asc"
    WATCH_TIME_DESC = "watch_time_desc"
    BALANCE_ASC = "balance_asc"
    BALANCE_DESC = "balance_desc"


STRING_FIELDS = frozenset({"channel_id", "display_name"})
NUMBER_FIELDS = frozenset({"watch_time", "balance"})
COMPARISON_OPS = frozenset({"eq", "ne", "lt", "le", "gt", "ge"})
STRING_OPS = COMPARISON_OPS | {"contains"}


@dataclass(frozen=True, slots=True)
class UserFilter:
    """``<field> <op> <value>``; all filters of a query are AND-ed."""

    field: str
    op: str
    value: Any


def _compare(column, op: str, value) -> ColumnElement[bool]:
    return {
        "eq": column == value,
        "ne": column != value,
        "lt": column < value,
        "le": column <= value,
        "gt": column > value,
        "ge": column >= value,
    }[op]


_STRICT = {"lt": "lt", "le": "lt", "gt": "gt", "ge": "gt"}


def _watch_time_clause(op: str, value: timedelta) -> ColumnElement[bool]:
    # (seconds, nanos) compared lexicographically
    seconds, nanos = duration_to_parts(value)
    secs, ns = User.watch_time_seconds, User.watch_time_nanos
    if op == "eq":
        return and_(secs == seconds, ns == nanos)
    if op == "ne":
        return or_(secs != seconds, ns != nanos)
    strict = _compare(secs, _STRICT[op], seconds)
    return or_(strict, and_(secs == seconds, _compare(ns, op, nanos)))


def _filter_clause(flt: UserFilter) -> ColumnElement[bool]:
    if flt.field in STRING_FIELDS:
        if flt.op not in STRING_OPS:
            raise ValidationFailure(f"operator {flt.op!r} is not valid for {flt.field}")
        if not isinstance(flt.value, str):
            raise ValidationFailure(f"{flt.field} filter value must be a string")
        column = getattr(User, flt.field)
        if flt.op == "contains":
            return column.contains(flt.value, autoescape=True)
        return _compare(column, flt.op, flt.value)

    if flt.field in NUMBER_FIELDS:
        if flt.op not in COMPARISON_OPS:
            raise ValidationFailure(f"operator {flt.op!r} is not valid for {flt.field}")
        if isinstance(flt.value, bool) or not isinstance(flt.value, (int, float)):
            raise ValidationFailure(f"{flt.field} filter value must be a number")
        if flt.field == "balance":
            return _compare(User.balance, flt.op, float(flt.value))
        if flt.value < 0:
            raise ValidationFailure("watch_time filter value must not be negative")
        return _watch_time_clause(flt.op, timedelta(seconds=flt.value))

    raise ValidationFailure(f"unknown filter field {flt.field!r}")


def _order_by(sort: UserSort) -> list:
    return {
        UserSort.NONE: [],
        UserSort.WATCH_TIME_ASC: [User.watch_time_seconds.asc(), User.watch_time_nanos.asc()],
        UserSort.WATCH_TIME_DESC: [User.watch_time_seconds.desc(), User.watch_time_nanos.desc()],
        UserSort.BALANCE_ASC: [User.balance.asc()],
        UserSort.BALANCE_DESC: [User.balance.desc()],
    }[sort]


def list_users(
    engine: Engine,
    filters: Sequence[UserFilter] = (),
    sort: UserSort | str = UserSort.NONE,
    *,
    limit: int | None = None,
    offset: int = 0,
) -> list[UserAggregate]:
    """Return users matching every filter, in *sort* order.

    Raises
    ------
    ValidationFailure
        On an unknown field, operator, sort key, or a mistyped value.
    """
    try:
        sort = UserSort(sort)
    except ValueError:
        raise ValidationFailure(f"unknown sort {sort!r}") from None
    if limit is not None and limit < 0:
        raise ValidationFailure("limit must not be negative")
    if offset < 0:
        raise ValidationFailure("offset must not be negative")

    stmt = select(User).where(*[_filter_clause(f) for f in filters])
    order = _order_by(sort)
    if order:
        # channel_id keeps pages stable across equal keys
        stmt = stmt.order_by(*order, User.channel_id)
    if offset:
        stmt = stmt.offset(offset)
    if limit is not None:
        stmt = stmt.limit(limit)

    with get_session(engine) as session:
        return [to_aggregate(row) for row in session.scalars(stmt).all()]


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------
def user_dict(user: UserAggregate, rank: str | None = None) -> dict:
    seconds, nanos = duration_to_parts(user.watch_time)
    data = {
        "channel_id": user.channel_id,
        "display_name": user.display_name,
        "watch_time": {"seconds": seconds, "nanos": nanos},
        "watch_time_seconds": user.watch_time.total_seconds(),
        "balance": user.balance,
        "first_seen_at": user.first_seen_at.isoformat(),
        "last_seen_at": user.last_seen_at.isoformat(),
    }
    if rank is not None:
        data["rank"] = rank
    return data
