"""
townsquare.database.models — SQLAlchemy 2.0 Data Models
========================================================

Tables:
- communities      — Hierarchy nodes (city → municipality → local) + member_count cache
- memberships      — user → community follow edges (one per pair)
- user_follows     — user → user follow edges (one per ordered pair)
- posts            — Visibility-scoped content + likes/comments count caches
- comments         — Replies; inherit their post's visibility
- likes            — user → post like edges (one per pair)
- messages         — Direct messages, gated on the receiver following the sender
- moderators       — Moderator set per community
- election_rounds  — Moderator voting windows (one active per community)
- votes            — Ballots (one per voter per round)
- domain_events    — Transactional outbox for external notification delivery

Users are opaque principal identifiers owned by the identity provider;
there is no users table.  Counter columns are caches — the edge and child
tables are ground truth (see ``reconciliation_service``).
"""

from __future__ import annotations

import enum
from datetime import UTC, datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from townsquare.constants import MAX_PRINCIPAL_LENGTH, MAX_URL_LENGTH


def _utcnow() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Townsquare ORM models."""


# ---------------------------------------------------------------------------
# Enums — closed variants, matched exhaustively at every decision point
# ---------------------------------------------------------------------------
class CommunityType(enum.StrEnum):
    CITY = "city"
    MUNICIPALITY = "municipality"
    LOCAL = "local"


class PostVisibility(enum.StrEnum):
    PUBLIC = "public"
    CITY = "city"
    LOCAL = "local"


class PostType(enum.StrEnum):
    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"


class ModeratorSource(enum.StrEnum):
    """How a user entered the moderator set."""
    FOUNDER = "founder"
    ELECTION = "election"
    ADMIN = "admin"


def _enum(cls: type[enum.Enum], name: str) -> Enum:
    return Enum(
        cls,
        name=name,
        values_callable=lambda e: [m.value for m in e],
        validate_strings=True,
    )


def _principal() -> String:
    return String(MAX_PRINCIPAL_LENGTH)


# ---------------------------------------------------------------------------
# Communities — hierarchy nodes
# ---------------------------------------------------------------------------
class Community(Base):
    __tablename__ = "communities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    cover_url: Mapped[str | None] = mapped_column(String(MAX_URL_LENGTH), default=None)
    type: Mapped[CommunityType] = mapped_column(
        _enum(CommunityType, "community_type"), nullable=False
    )
    parent_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("communities.id", ondelete="RESTRICT"), nullable=True
    )
    member_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_by: Mapped[str] = mapped_column(_principal(), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        CheckConstraint("member_count >= 0", name="ck_communities_member_count_nonneg"),
        Index("ix_communities_parent", "parent_id"),
    )

    def __repr__(self) -> str:
        return f"<Community id={self.id} name={self.name!r} type={self.type}>"


# ---------------------------------------------------------------------------
# Memberships — user → community follow edges
# ---------------------------------------------------------------------------
class Membership(Base):
    __tablename__ = "memberships"

    user_id: Mapped[str] = mapped_column(_principal(), primary_key=True)
    community_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("communities.id", ondelete="CASCADE"), primary_key=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        Index("ix_memberships_community", "community_id"),
    )

    def __repr__(self) -> str:
        return f"<Membership user={self.user_id!r} community={self.community_id}>"


# ---------------------------------------------------------------------------
# UserFollow — user → user follow edges
# ---------------------------------------------------------------------------
class UserFollow(Base):
    __tablename__ = "user_follows"

    follower_id: Mapped[str] = mapped_column(_principal(), primary_key=True)
    followee_id: Mapped[str] = mapped_column(_principal(), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        Index("ix_user_follows_followee", "followee_id"),
    )

    def __repr__(self) -> str:
        return f"<UserFollow {self.follower_id!r} -> {self.followee_id!r}>"


# ---------------------------------------------------------------------------
# Posts — visibility-scoped content
# ---------------------------------------------------------------------------
class Post(Base):
    __tablename__ = "posts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    author_id: Mapped[str] = mapped_column(_principal(), nullable=False)
    community_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("communities.id", ondelete="CASCADE"), nullable=False
    )
    visibility: Mapped[PostVisibility] = mapped_column(
        _enum(PostVisibility, "post_visibility"), nullable=False
    )
    post_type: Mapped[PostType] = mapped_column(
        _enum(PostType, "post_type"), nullable=False, default=PostType.TEXT
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    attachment_url: Mapped[str | None] = mapped_column(String(MAX_URL_LENGTH), default=None)
    likes_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    comments_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        CheckConstraint("likes_count >= 0", name="ck_posts_likes_count_nonneg"),
        CheckConstraint("comments_count >= 0", name="ck_posts_comments_count_nonneg"),
        Index("ix_posts_community_time", "community_id", "created_at"),
        Index("ix_posts_author", "author_id"),
    )

    def __repr__(self) -> str:
        return f"<Post id={self.id} community={self.community_id} vis={self.visibility}>"


# ---------------------------------------------------------------------------
# Comments — inherit their post's visibility
# ---------------------------------------------------------------------------
class Comment(Base):
    __tablename__ = "comments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    post_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False
    )
    author_id: Mapped[str] = mapped_column(_principal(), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        Index("ix_comments_post_time", "post_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Comment id={self.id} post={self.post_id}>"


# ---------------------------------------------------------------------------
# Likes — user → post edges
# ---------------------------------------------------------------------------
class Like(Base):
    __tablename__ = "likes"

    post_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("posts.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[str] = mapped_column(_principal(), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    def __repr__(self) -> str:
        return f"<Like post={self.post_id} user={self.user_id!r}>"


# ---------------------------------------------------------------------------
# Messages — direct messages
# ---------------------------------------------------------------------------
class Message(Base):
    __tablename__ = "messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sender_id: Mapped[str] = mapped_column(_principal(), nullable=False)
    receiver_id: Mapped[str] = mapped_column(_principal(), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        Index("ix_messages_receiver_time", "receiver_id", "created_at"),
        Index("ix_messages_sender_time", "sender_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Message id={self.id} {self.sender_id!r} -> {self.receiver_id!r}>"


# ---------------------------------------------------------------------------
# Moderators — moderator set per community
# ---------------------------------------------------------------------------
class Moderator(Base):
    __tablename__ = "moderators"

    community_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("communities.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[str] = mapped_column(_principal(), primary_key=True)
    source: Mapped[ModeratorSource] = mapped_column(
        _enum(ModeratorSource, "moderator_source"), nullable=False
    )
    appointed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    def __repr__(self) -> str:
        return f"<Moderator community={self.community_id} user={self.user_id!r}>"


# ---------------------------------------------------------------------------
# ElectionRound — moderator voting window
# ---------------------------------------------------------------------------
class ElectionRound(Base):
    __tablename__ = "election_rounds"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    community_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("communities.id", ondelete="CASCADE"), nullable=False
    )
    opened_by: Mapped[str] = mapped_column(_principal(), nullable=False)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    winner_id: Mapped[str | None] = mapped_column(_principal(), nullable=True)
    closed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        CheckConstraint("end_time > start_time", name="ck_election_rounds_window"),
        # At most one active round per community
        Index(
            "uq_election_rounds_one_active",
            "community_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
        Index("ix_election_rounds_active_end", "is_active", "end_time"),
    )

    def __repr__(self) -> str:
        return (
            f"<ElectionRound id={self.id} community={self.community_id} "
            f"active={self.is_active}>"
        )


# ---------------------------------------------------------------------------
# Vote — one ballot per voter per round
# ---------------------------------------------------------------------------
class Vote(Base):
    __tablename__ = "votes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    round_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("election_rounds.id", ondelete="CASCADE"), nullable=False
    )
    voter_id: Mapped[str] = mapped_column(_principal(), nullable=False)
    candidate_id: Mapped[str] = mapped_column(_principal(), nullable=False)
    # Application-assigned so the tie-break keeps microsecond precision
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        UniqueConstraint("round_id", "voter_id", name="uq_votes_round_voter"),
        Index("ix_votes_round_candidate", "round_id", "candidate_id"),
    )

    def __repr__(self) -> str:
        return f"<Vote round={self.round_id} voter={self.voter_id!r}>"


# ---------------------------------------------------------------------------
# DomainEventRecord — transactional outbox
# ---------------------------------------------------------------------------
class DomainEventRecord(Base):
    """Append-only outbox row written in the same transaction as its mutation.

    An external notification subscriber polls by ascending ``id``.
    """
    __tablename__ = "domain_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)
    actor_id: Mapped[str | None] = mapped_column(_principal(), nullable=True)
    community_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    post_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    payload: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        Index("ix_domain_events_type_time", "event_type", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<DomainEventRecord id={self.id} type={self.event_type}>"
