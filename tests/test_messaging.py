"""
tests/test_messaging.py — MessagingGate
========================================
A may message B only if B follows A.  Not mutual, not the reverse.
"""

from __future__ import annotations

import pytest

from townsquare.database.engine import get_session
from townsquare.errors import NotAuthorized
from townsquare.services import membership_service, messaging_service


class TestCanMessage:
    def test_receiver_following_sender_grants(self, db_engine):
        membership_service.follow_user(db_engine, "bob", "alice")  # B follows A
        assert messaging_service.check_can_message(db_engine, "alice", "bob")

    def test_sender_following_receiver_does_not_grant(self, db_engine):
        membership_service.follow_user(db_engine, "alice", "bob")  # A follows B
        assert not messaging_service.check_can_message(db_engine, "alice", "bob")
        # …but it lets B write to A
        assert messaging_service.check_can_message(db_engine, "bob", "alice")

    def test_strangers(self, db_engine):
        with get_session(db_engine) as session:
            assert not messaging_service.can_message(session, "alice", "bob")


class TestSendMessage:
    def test_send_succeeds_when_receiver_follows_sender(self, db_engine):
        membership_service.follow_user(db_engine, "bob", "alice")
        msg = messaging_service.send_message(db_engine, "alice", "bob", "Hi Bob")
        assert msg.id is not None
        assert (msg.sender_id, msg.receiver_id) == ("alice", "bob")

    def test_send_rejected_even_if_sender_follows_receiver(self, db_engine):
        membership_service.follow_user(db_engine, "alice", "bob")
        with pytest.raises(NotAuthorized):
            messaging_service.send_message(db_engine, "alice", "bob", "Hi Bob")
        assert messaging_service.list_inbox(db_engine, "bob") == []

    def test_unfollow_revokes_consent(self, db_engine):
        membership_service.follow_user(db_engine, "bob", "alice")
        messaging_service.send_message(db_engine, "alice", "bob", "one")
        membership_service.unfollow_user(db_engine, "bob", "alice")
        with pytest.raises(NotAuthorized):
            messaging_service.send_message(db_engine, "alice", "bob", "two")
        assert [m.content for m in messaging_service.list_inbox(db_engine, "bob")] == ["one"]


class TestListing:
    def test_inbox_and_conversation(self, db_engine):
        membership_service.follow_user(db_engine, "bob", "alice")
        membership_service.follow_user(db_engine, "alice", "bob")
        membership_service.follow_user(db_engine, "bob", "carol")
        messaging_service.send_message(db_engine, "alice", "bob", "a→b")
        messaging_service.send_message(db_engine, "bob", "alice", "b→a")
        messaging_service.send_message(db_engine, "carol", "bob", "c→b")

        inbox = messaging_service.list_inbox(db_engine, "bob")
        assert [m.content for m in inbox] == ["c→b", "a→b"]

        convo = messaging_service.list_conversation(db_engine, "alice", "bob")
        assert [m.content for m in convo] == ["b→a", "a→b"]
