"""
townsquare.engine.visibility — Visibility-tier rules
=====================================================

Pure decision logic (no DB access).  Each tier maps to an
:class:`Audience`: either everyone, or the set of communities whose
members may read.  The DB-backed evaluator in
:mod:`townsquare.services.access_service` resolves membership against it.

Tier rules, in precedence order:

1. ``public`` — everyone.
2. ``city``   — members of the exact owning community; with
   ``AccessPolicy.city_scope_includes_ancestors`` also members of any
   community on its ancestor chain.
3. ``local``  — members of the exact owning community.

Dispatch is exhaustive over :class:`PostVisibility`; an unknown tier is a
programming error, never a silent grant.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import assert_never

from townsquare.config import DEFAULT_POLICY, AccessPolicy
from townsquare.database.models import PostVisibility

__all__ = ["Audience", "EVERYONE", "audience_for", "needs_ancestors"]


@dataclass(frozen=True, slots=True)
class Audience:
    """Who may read: everyone, or members of any of ``community_ids``."""

    everyone: bool = False
    community_ids: frozenset[int] = frozenset()

    def admits_member_of(self, community_ids: Iterable[int]) -> bool:
        if self.everyone:
            return True
        return not self.community_ids.isdisjoint(community_ids)


EVERYONE = Audience(everyone=True)


def needs_ancestors(visibility: PostVisibility, policy: AccessPolicy = DEFAULT_POLICY) -> bool:
    """Whether :func:`audience_for` needs the ancestor chain for this tier."""
    return visibility is PostVisibility.CITY and policy.city_scope_includes_ancestors


def audience_for(
    visibility: PostVisibility,
    community_id: int,
    ancestor_ids: Iterable[int] = (),
    policy: AccessPolicy = DEFAULT_POLICY,
) -> Audience:
    """Return the audience of a post with *visibility* owned by *community_id*.

    *ancestor_ids* is only consulted when :func:`needs_ancestors` is true.
    """
    match visibility:
        case PostVisibility.PUBLIC:
            return EVERYONE
        case PostVisibility.CITY:
            ids = {community_id}
            if policy.city_scope_includes_ancestors:
                ids.update(ancestor_ids)
            return Audience(community_ids=frozenset(ids))
        case PostVisibility.LOCAL:
            return Audience(community_ids=frozenset({community_id}))
        case _:
            assert_never(visibility)
