"""
userservice.engine.permissions — Layered Permission Resolution
===============================================================

Pure resolution, no DB I/O.

Resolution is a last-writer-wins fold, NOT a union of grants::

    result = default
    for group in groups ordered by (priority, id) ascending:
        if group has a record for the permission: result = record.granted
    if the user has a record for the permission: result = record.granted

So a higher-priority group overrides a lower one, a later group id
overrides an earlier one at equal priority, and a user-level record
always has the final say.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Protocol, TypeVar

__all__ = ["effective_permissions", "order_groups", "resolve_permission"]


class Prioritized(Protocol):
    id: int
    priority: int


G = TypeVar("G", bound=Prioritized)


def order_groups(groups: Iterable[G]) -> list[G]:
    """Lowest precedence first: ascending priority, then ascending id."""
    return sorted(groups, key=lambda g: (g.priority or 0, g.id))


def resolve_permission(
    permission: str,
    default: bool,
    group_layers: Sequence[Mapping[str, bool]],
    user_grants: Mapping[str, bool],
) -> bool:
    """Resolve one permission.

    Parameters
    ----------
    permission : permission name (opaque, no hierarchy)
    default : value when no layer mentions the permission
    group_layers : per-group ``{permission: granted}`` maps, lowest
        precedence first (see :func:`order_groups`)
    user_grants : the user's own ``{permission: granted}`` records
    """
    result = default
    for layer in group_layers:
        if permission in layer:
            result = layer[permission]
    if permission in user_grants:
        result = user_grants[permission]
    return result


def effective_permissions(
    group_layers: Sequence[Mapping[str, bool]],
    user_grants: Mapping[str, bool],
    default: bool = False,
) -> dict[str, bool]:
    """Resolve every permission mentioned by any layer."""
    names: set[str] = set(user_grants)
    for layer in group_layers:
        names.update(layer)
    return {
        name: resolve_permission(name, default, group_layers, user_grants)
        for name in sorted(names)
    }
