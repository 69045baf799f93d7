"""
userservice.database.models — SQLAlchemy 2.0 Data Models
=========================================================

Tables:
- users              — One aggregate row per viewer (channel id PK)
- groups             — Named groups with a payout bonus and a priority
- ranks              — Watch-time thresholds with a display name
- group_permissions  — (group, permission) → granted
- user_permissions   — (user, permission) → granted
- group_members      — Many-to-many link between users and groups

Durations (watch-time, rank thresholds) are stored as a seconds column plus
a nanosecond remainder column and exposed as :class:`datetime.timedelta`
through plain Python properties.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from userservice.constants import (
    CHANNEL_ID_MAX_LENGTH,
    DISPLAY_NAME_MAX_LENGTH,
    NANOS_PER_MICROSECOND,
    NANOS_PER_SECOND,
)


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all userservice ORM models."""


# ---------------------------------------------------------------------------
# Duration helpers
# ---------------------------------------------------------------------------
def duration_to_parts(value: timedelta) -> tuple[int, int]:
    """Split a non-negative timedelta into ``(seconds, nanos)``."""
    return value.days * 86_400 + value.seconds, value.microseconds * NANOS_PER_MICROSECOND


def parts_to_duration(seconds: int, nanos: int) -> timedelta:
    """Inverse of :func:`duration_to_parts` (sub-microsecond nanos are dropped)."""
    seconds += nanos // NANOS_PER_SECOND
    nanos %= NANOS_PER_SECOND
    return timedelta(seconds=seconds, microseconds=nanos // NANOS_PER_MICROSECOND)


# ---------------------------------------------------------------------------
# Users — one row per viewer
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    channel_id: Mapped[str] = mapped_column(String(CHANNEL_ID_MAX_LENGTH), primary_key=True)
    display_name: Mapped[str] = mapped_column(String(DISPLAY_NAME_MAX_LENGTH), nullable=False)
    watch_time_seconds: Mapped[int] = mapped_column(BigInteger, default=0)
    watch_time_nanos: Mapped[int] = mapped_column(Integer, default=0)
    balance: Mapped[float] = mapped_column(Float, default=0.0)
    first_seen_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_seen_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Relationships
    permissions: Mapped[list[UserPermission]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )
    memberships: Mapped[list[GroupMember]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_users_watch_time", "watch_time_seconds", "watch_time_nanos"),
        Index("ix_users_balance", "balance"),
        CheckConstraint("watch_time_seconds >= 0", name="ck_users_watch_time_non_negative"),
        CheckConstraint("balance >= 0", name="ck_users_balance_non_negative"),
        CheckConstraint("last_seen_at >= first_seen_at", name="ck_users_seen_order"),
    )

    @property
    def watch_time(self) -> timedelta:
        return parts_to_duration(self.watch_time_seconds or 0, self.watch_time_nanos or 0)

    @watch_time.setter
    def watch_time(self, value: timedelta) -> None:
        self.watch_time_seconds, self.watch_time_nanos = duration_to_parts(value)

    def __repr__(self) -> str:
        return f"<User channel_id={self.channel_id!r} name={self.display_name!r}>"


# ---------------------------------------------------------------------------
# Groups — payout bonus + permission layer
# ---------------------------------------------------------------------------
class Group(Base):
    __tablename__ = "groups"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    bonus_payout: Mapped[float] = mapped_column(Float, default=0.0)
    priority: Mapped[int] = mapped_column(Integer, default=0)

    permissions: Mapped[list[GroupPermission]] = relationship(
        back_populates="group", cascade="all, delete-orphan"
    )
    members: Mapped[list[GroupMember]] = relationship(
        back_populates="group", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_groups_priority", "priority"),
    )

    def __repr__(self) -> str:
        return f"<Group id={self.id} name={self.name!r} priority={self.priority}>"


# ---------------------------------------------------------------------------
# Ranks — watch-time thresholds
# ---------------------------------------------------------------------------
class Rank(Base):
    __tablename__ = "ranks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    priority: Mapped[int] = mapped_column(Integer, default=0)
    threshold_seconds: Mapped[int] = mapped_column(BigInteger, default=0)
    threshold_nanos: Mapped[int] = mapped_column(Integer, default=0)

    __table_args__ = (
        Index("ix_ranks_priority", "priority"),
    )

    @property
    def threshold(self) -> timedelta:
        return parts_to_duration(self.threshold_seconds or 0, self.threshold_nanos or 0)

    @threshold.setter
    def threshold(self, value: timedelta) -> None:
        self.threshold_seconds, self.threshold_nanos = duration_to_parts(value)

    def __repr__(self) -> str:
        return f"<Rank id={self.id} name={self.name!r} threshold={self.threshold}>"


# ---------------------------------------------------------------------------
# Permission records
# ---------------------------------------------------------------------------
class GroupPermission(Base):
    __tablename__ = "group_permissions"

    group_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("groups.id", ondelete="CASCADE"), primary_key=True
    )
    permission: Mapped[str] = mapped_column(String(100), primary_key=True)
    granted: Mapped[bool] = mapped_column(Boolean, nullable=False)

    group: Mapped[Group] = relationship(back_populates="permissions")

    def __repr__(self) -> str:
        return f"<GroupPermission group={self.group_id} {self.permission}={self.granted}>"


class UserPermission(Base):
    __tablename__ = "user_permissions"

    channel_id: Mapped[str] = mapped_column(
        String(CHANNEL_ID_MAX_LENGTH),
        ForeignKey("users.channel_id", ondelete="CASCADE"),
        primary_key=True,
    )
    permission: Mapped[str] = mapped_column(String(100), primary_key=True)
    granted: Mapped[bool] = mapped_column(Boolean, nullable=False)

    user: Mapped[User] = relationship(back_populates="permissions")

    def __repr__(self) -> str:
        return f"<UserPermission user={self.channel_id!r} {self.permission}={self.granted}>"


# ---------------------------------------------------------------------------
# Group membership
# ---------------------------------------------------------------------------
class GroupMember(Base):
    __tablename__ = "group_members"

    group_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("groups.id", ondelete="CASCADE"), primary_key=True
    )
    channel_id: Mapped[str] = mapped_column(
        String(CHANNEL_ID_MAX_LENGTH),
        ForeignKey("users.channel_id", ondelete="CASCADE"),
        primary_key=True,
    )

    group: Mapped[Group] = relationship(back_populates="members")
    user: Mapped[User] = relationship(back_populates="memberships")

    __table_args__ = (
        Index("ix_group_members_channel", "channel_id"),
    )

    def __repr__(self) -> str:
        return f"<GroupMember group={self.group_id} user={self.channel_id!r}>"
