"""
userservice.services.group_service — Groups & Memberships
==========================================================

Groups carry two things: a payout bonus added to every member's rate, and a
layer of permission records resolved by priority (see
:mod:`userservice.engine.permissions`).  Listings are always priority
descending.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from sqlalchemy import Engine, func, select
from sqlalchemy.orm import Session, selectinload

from userservice.database.engine import get_session
from userservice.database.models import Group, GroupMember, User
from userservice.errors import NotFound, ValidationFailure

logger = logging.getLogger(__name__)

EDITABLE_FIELDS: frozenset[str] = frozenset({"name", "bonus_payout", "priority"})


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------
def group_dict(group: Group, member_count: int | None = None) -> dict:
    data = {
        "id": group.id,
        "name": group.name,
        "bonus_payout": group.bonus_payout,
        "priority": group.priority,
        "permissions": {p.permission: p.granted for p in group.permissions},
    }
    if member_count is not None:
        data["member_count"] = member_count
    return data


# ---------------------------------------------------------------------------
# Session-level helpers (shared with the accrual and permission services)
# ---------------------------------------------------------------------------
def load_groups_for_user(session: Session, channel_id: str) -> list[Group]:
    """Groups *channel_id* belongs to, with their permission records loaded."""
    return list(
        session.scalars(
            select(Group)
            .join(GroupMember, GroupMember.group_id == Group.id)
            .where(GroupMember.channel_id == channel_id)
            .options(selectinload(Group.permissions))
            .order_by(Group.priority.desc(), Group.id)
        ).all()
    )


def _get_or_404(session: Session, group_id: int) -> Group:
    group = session.get(Group, group_id)
    if group is None:
        raise NotFound(f"Group {group_id} not found")
    return group


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def list_groups(engine: Engine) -> list[dict]:
    """All groups, priority descending, with nested permissions."""
    with get_session(engine) as session:
        counts = dict(
            session.execute(
                select(GroupMember.group_id, func.count()).group_by(GroupMember.group_id)
            ).all()
        )
        groups = session.scalars(
            select(Group)
            .options(selectinload(Group.permissions))
            .order_by(Group.priority.desc(), Group.id)
        ).all()
        return [group_dict(g, counts.get(g.id, 0)) for g in groups]


def get_group(engine: Engine, group_id: int) -> dict:
    with get_session(engine) as session:
        group = _get_or_404(session, group_id)
        count = session.scalar(
            select(func.count()).select_from(GroupMember).where(GroupMember.group_id == group_id)
        )
        return group_dict(group, count or 0)


def groups_for_user(engine: Engine, channel_id: str) -> list[dict]:
    with get_session(engine) as session:
        return [group_dict(g) for g in load_groups_for_user(session, channel_id)]


def list_members(engine: Engine, group_id: int) -> list[str]:
    with get_session(engine) as session:
        _get_or_404(session, group_id)
        return list(
            session.scalars(
                select(GroupMember.channel_id)
                .where(GroupMember.group_id == group_id)
                .order_by(GroupMember.channel_id)
            ).all()
        )


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------
def create_group(
    engine: Engine,
    *,
    name: str,
    bonus_payout: float = 0.0,
    priority: int = 0,
) -> dict:
    if not name.strip():
        raise ValidationFailure("group name must not be empty")
    with get_session(engine) as session:
        group = Group(name=name, bonus_payout=bonus_payout, priority=priority)
        session.add(group)
        session.flush()
        logger.info("Created group %s (%s)", group.id, group.name)
        return group_dict(group, 0)


def update_group(engine: Engine, group_id: int, **fields: Any) -> dict:
    """Apply the non-``None`` *fields* to a group.

    Raises
    ------
    NotFound
        If the group does not exist.
    ValidationFailure
        On an unknown field or an empty name.
    """
    unknown = set(fields) - EDITABLE_FIELDS
    if unknown:
        raise ValidationFailure(f"cannot update group field(s): {', '.join(sorted(unknown))}")
    if fields.get("name") is not None and not fields["name"].strip():
        raise ValidationFailure("group name must not be empty")
    with get_session(engine) as session:
        group = _get_or_404(session, group_id)
        for key, value in fields.items():
            if value is not None:
                setattr(group, key, value)
        session.flush()
        logger.info("Updated group %s", group_id)
        return group_dict(group)


def delete_groups(engine: Engine, group_ids: Iterable[int]) -> int:
    """Delete groups with their permission records and memberships."""
    ids = list(dict.fromkeys(group_ids))
    if not ids:
        return 0
    with get_session(engine) as session:
        groups = session.scalars(select(Group).where(Group.id.in_(ids))).all()
        for group in groups:
            session.delete(group)
        deleted = len(groups)
    logger.info("Deleted %d group(s)", deleted)
    return deleted


def add_member(engine: Engine, group_id: int, channel_id: str) -> bool:
    """Put a user into a group.  Returns ``False`` if already a member."""
    with get_session(engine) as session:
        _get_or_404(session, group_id)
        if session.get(User, channel_id) is None:
            raise NotFound(f"User {channel_id} not found")
        if session.get(GroupMember, (group_id, channel_id)) is not None:
            return False
        session.add(GroupMember(group_id=group_id, channel_id=channel_id))
    logger.info("Added %s to group %s", channel_id, group_id)
    return True


def remove_member(engine: Engine, group_id: int, channel_id: str) -> bool:
    """Take a user out of a group.  Returns ``False`` if not a member."""
    with get_session(engine) as session:
        member = session.get(GroupMember, (group_id, channel_id))
        if member is None:
            return False
        session.delete(member)
    logger.info("Removed %s from group %s", channel_id, group_id)
    return True
