"""
userservice.services.permission_service — Permission Records & Checks
======================================================================

Stores explicit ``(owner, permission) → granted`` records for groups and
users and resolves them with :mod:`userservice.engine.permissions`.

Setting a record replaces any previous record for the same pair.  Removing
a record ("revoke") drops the override so lower layers or the caller's
default apply again; an explicit deny is a record with ``granted=False``.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from userservice.database.engine import get_session
from userservice.database.models import Group, GroupPermission, User, UserPermission
from userservice.engine.permissions import (
    effective_permissions,
    order_groups,
    resolve_permission,
)
from userservice.errors import NotFound, ValidationFailure
from userservice.services.group_service import load_groups_for_user

logger = logging.getLogger(__name__)


def _check_name(permission: str) -> str:
    if not permission or not permission.strip():
        raise ValidationFailure("permission name must not be empty")
    return permission


# ---------------------------------------------------------------------------
# Session-level reads
# ---------------------------------------------------------------------------
def load_layers(
    session: Session, channel_id: str
) -> tuple[list[dict[str, bool]], dict[str, bool]]:
    """Return ``(group_layers, user_grants)`` ready for resolution."""
    groups = order_groups(load_groups_for_user(session, channel_id))
    layers = [{p.permission: p.granted for p in g.permissions} for g in groups]
    user_grants = dict(
        session.execute(
            select(UserPermission.permission, UserPermission.granted)
            .where(UserPermission.channel_id == channel_id)
        ).all()
    )
    return layers, user_grants


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------
def check_user_permission(
    engine: Engine, channel_id: str, permission: str, default: bool = False
) -> bool:
    """Resolve *permission* for a user.

    Raises
    ------
    NotFound
        If the user does not exist.
    """
    _check_name(permission)
    with get_session(engine) as session:
        if session.get(User, channel_id) is None:
            raise NotFound(f"User {channel_id} not found")
        layers, user_grants = load_layers(session, channel_id)
    granted = resolve_permission(permission, default, layers, user_grants)
    logger.debug("Permission %s for %s → %s", permission, channel_id, granted)
    return granted


def user_effective_permissions(
    engine: Engine, channel_id: str, default: bool = False
) -> dict[str, bool]:
    with get_session(engine) as session:
        if session.get(User, channel_id) is None:
            raise NotFound(f"User {channel_id} not found")
        layers, user_grants = load_layers(session, channel_id)
    return effective_permissions(layers, user_grants, default)


def permissions_for_user(engine: Engine, channel_id: str) -> dict[str, bool]:
    """The user's own records only (no group layers)."""
    with get_session(engine) as session:
        return dict(
            session.execute(
                select(UserPermission.permission, UserPermission.granted)
                .where(UserPermission.channel_id == channel_id)
            ).all()
        )


def permissions_for_group(engine: Engine, group_id: int) -> dict[str, bool]:
    with get_session(engine) as session:
        return dict(
            session.execute(
                select(GroupPermission.permission, GroupPermission.granted)
                .where(GroupPermission.group_id == group_id)
            ).all()
        )


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------
def set_user_permission(
    engine: Engine, channel_id: str, permission: str, granted: bool
) -> None:
    _check_name(permission)
    with get_session(engine) as session:
        if session.get(User, channel_id) is None:
            raise NotFound(f"User {channel_id} not found")
        record = session.get(UserPermission, (channel_id, permission))
        if record is None:
            session.add(UserPermission(channel_id=channel_id, permission=permission, granted=granted))
        else:
            record.granted = granted
    logger.info("User %s: %s=%s", channel_id, permission, granted)


def remove_user_permission(engine: Engine, channel_id: str, permission: str) -> bool:
    with get_session(engine) as session:
        record = session.get(UserPermission, (channel_id, permission))
        if record is None:
            return False
        session.delete(record)
    logger.info("User %s: %s override removed", channel_id, permission)
    return True


def set_group_permission(
    engine: Engine, group_id: int, permission: str, granted: bool
) -> None:
    _check_name(permission)
    with get_session(engine) as session:
        if session.get(Group, group_id) is None:
            raise NotFound(f"Group {group_id} not found")
        record = session.get(GroupPermission, (group_id, permission))
        if record is None:
            session.add(GroupPermission(group_id=group_id, permission=permission, granted=granted))
        else:
            record.granted = granted
    logger.info("Group %s: %s=%s", group_id, permission, granted)


def remove_group_permission(engine: Engine, group_id: int, permission: str) -> bool:
    with get_session(engine) as session:
        record = session.get(GroupPermission, (group_id, permission))
        if record is None:
            return False
        session.delete(record)
    logger.info("Group %s: %s override removed", group_id, permission)
    return True
