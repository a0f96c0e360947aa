"""Ownership, visibility and per-user enablement rules.

Two layers decide whether a resource takes part in a request:

1. **Visibility** -- the requester owns it, it is public, or the requester
   is an admin.  With no requester (auth disabled) everything is visible.
2. **Effective enablement** -- a per-user override, when present, replaces
   the resource's base ``enabled`` flag.

These are plain functions over explicit inputs so every call-site (model
registry, retrieval, knowledge-base listing) applies the same rules.
"""

from __future__ import annotations

from typing import Iterable, Mapping


def is_visible(
    owner_user_id: str | None,
    is_public: bool,
    requester_id: str | None,
    is_admin: bool = False,
) -> bool:
    """Return ``True`` if the requester may read the resource.

    A private resource with no owner (legacy/system data) is visible only
    to admins and to anonymous callers when auth is disabled.
    """
    if requester_id is None or is_admin:
        return True
    if is_public:
        return True
    return owner_user_id is not None and owner_user_id == requester_id


def can_manage(
    owner_user_id: str | None,
    requester_id: str | None,
    is_admin: bool = False,
) -> bool:
    """Return ``True`` if the requester may modify or delete the resource."""
    if requester_id is None or is_admin:
        return True
    return owner_user_id is not None and owner_user_id == requester_id


def effective_enabled(base_enabled: bool, override: bool | None) -> bool:
    """The per-user override if there is one, else the base flag."""
    return base_enabled if override is None else override


def resolve_candidate_ids(
    accessible_ids: Iterable[str],
    overrides: Mapping[str, bool],
    candidate_ids: list[str] | None,
) -> list[str]:
    """Return the knowledge-base ids a search should cover, in order.

    ``candidate_ids=None`` means "no filter": every accessible id that the
    user has not disabled.  An explicit list, even an empty one, is
    intersected with the accessible set, so ``[]`` selects nothing.
    Order follows ``candidate_ids`` when given, else ``accessible_ids``.
    """
    accessible = [
        kb_id for kb_id in accessible_ids if effective_enabled(True, overrides.get(kb_id))
    ]
    if candidate_ids is None:
        return accessible

    allowed = set(accessible)
    selected: list[str] = []
    for kb_id in candidate_ids:
        if kb_id in allowed and kb_id not in selected:
            selected.append(kb_id)
    return selected
