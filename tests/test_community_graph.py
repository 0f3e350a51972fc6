"""
tests/test_community_graph.py — Community hierarchy
====================================================
Creation, ancestor walks, descendant checks, founder moderator bootstrap,
and moderator-only metadata updates.
"""

from __future__ import annotations

import pytest
from conftest import make_community
from sqlalchemy import update

from townsquare.config import AccessPolicy
from townsquare.database.engine import get_session
from townsquare.database.models import Community, CommunityType, ModeratorSource
from townsquare.errors import CommunityNotFound, ConsistencyFault, NotAuthorized
from townsquare.services import community_service, moderation_service


class TestCreateCommunity:
    def test_root_community_has_no_parent_and_zero_members(self, db_engine):
        c = make_community(db_engine, "Springfield")
        assert c.id is not None
        assert c.parent_id is None
        assert c.member_count == 0
        assert c.type is CommunityType.CITY

    def test_unknown_parent_rejected(self, db_engine):
        with pytest.raises(CommunityNotFound):
            make_community(db_engine, "Orphan", CommunityType.LOCAL, parent_id=999)

    def test_creator_becomes_founding_moderator(self, db_engine):
        c = make_community(db_engine, "Springfield", created_by="mayor-quimby")
        mods = moderation_service.list_moderators(db_engine, c.id)
        assert [(m.user_id, m.source) for m in mods] == [
            ("mayor-quimby", ModeratorSource.FOUNDER),
        ]


class TestAncestors:
    def test_chain_runs_parent_first_to_root(self, db_engine, hierarchy):
        city, municipality, local = hierarchy
        chain = community_service.ancestors_of(db_engine, local.id)
        assert [c.id for c in chain] == [municipality.id, city.id]

    def test_root_has_empty_chain(self, db_engine, hierarchy):
        city, _, _ = hierarchy
        assert community_service.ancestors_of(db_engine, city.id) == []

    def test_unknown_community(self, db_engine):
        with pytest.raises(CommunityNotFound):
            community_service.ancestors_of(db_engine, 404)

    def test_is_descendant(self, db_engine, hierarchy):
        city, municipality, local = hierarchy
        assert community_service.is_descendant(db_engine, local.id, city.id)
        assert community_service.is_descendant(db_engine, local.id, municipality.id)
        assert not community_service.is_descendant(db_engine, city.id, local.id)
        assert not community_service.is_descendant(db_engine, city.id, city.id)

    def test_corrupted_cycle_raises_consistency_fault(self, db_engine, hierarchy):
        city, _, local = hierarchy
        # Bypass the service to close the loop: city → local → … → city
        with get_session(db_engine) as session:
            session.execute(
                update(Community).where(Community.id == city.id).values(parent_id=local.id)
            )
        with pytest.raises(ConsistencyFault):
            community_service.ancestors_of(db_engine, local.id)

    def test_depth_limit(self, db_engine, hierarchy):
        _, _, local = hierarchy
        with pytest.raises(ConsistencyFault):
            community_service.ancestors_of(
                db_engine, local.id, AccessPolicy(max_hierarchy_depth=1),
            )


class TestUpdateCommunity:
    def test_moderator_can_update(self, db_engine):
        c = make_community(db_engine, created_by="mod")
        updated = community_service.update_community(
            db_engine, c.id, actor_id="mod", name="Springfield City", description="Home",
        )
        assert updated.name == "Springfield City"
        assert updated.description == "Home"

    def test_omitted_fields_untouched_and_none_clears(self, db_engine):
        c = make_community(db_engine, created_by="mod")
        community_service.update_community(
            db_engine, c.id, actor_id="mod", cover_url="https://cdn/community-covers/a.png",
        )
        updated = community_service.update_community(
            db_engine, c.id, actor_id="mod", description=None,
        )
        assert updated.cover_url == "https://cdn/community-covers/a.png"
        assert updated.description is None

    def test_non_moderator_rejected(self, db_engine):
        c = make_community(db_engine, created_by="mod")
        with pytest.raises(NotAuthorized):
            community_service.update_community(db_engine, c.id, actor_id="rando", name="X")
