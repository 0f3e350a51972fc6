"""Initial Townsquare schema

Revision ID: 5e0c2a7d41b9
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "5e0c2a7d41b9"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

community_type = postgresql.ENUM("city", "municipality", "local", name="community_type")
post_visibility = postgresql.ENUM("public", "city", "local", name="post_visibility")
post_type = postgresql.ENUM("text", "image", "video", name="post_type")
moderator_source = postgresql.ENUM("founder", "election", "admin", name="moderator_source")


def _created_at(name: str = "created_at") -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )


def upgrade() -> None:
    """Create the community graph, content, messaging and election tables."""
    op.create_table(
        "communities",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("cover_url", sa.String(500), nullable=True),
        sa.Column("type", community_type, nullable=False),
        sa.Column(
            "parent_id",
            sa.Integer(),
            sa.ForeignKey("communities.id", ondelete="RESTRICT"),
            nullable=True,
        ),
        sa.Column("member_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_by", sa.String(64), nullable=False),
        _created_at(),
        sa.CheckConstraint("member_count >= 0", name="ck_communities_member_count_nonneg"),
    )
    op.create_index("ix_communities_parent", "communities", ["parent_id"])

    op.create_table(
        "memberships",
        sa.Column("user_id", sa.String(64), primary_key=True),
        sa.Column(
            "community_id",
            sa.Integer(),
            sa.ForeignKey("communities.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        _created_at(),
    )
    op.create_index("ix_memberships_community", "memberships", ["community_id"])

    op.create_table(
        "user_follows",
        sa.Column("follower_id", sa.String(64), primary_key=True),
        sa.Column("followee_id", sa.String(64), primary_key=True),
        _created_at(),
    )
    op.create_index("ix_user_follows_followee", "user_follows", ["followee_id"])

    op.create_table(
        "posts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("author_id", sa.String(64), nullable=False),
        sa.Column(
            "community_id",
            sa.Integer(),
            sa.ForeignKey("communities.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("visibility", post_visibility, nullable=False),
        sa.Column("post_type", post_type, nullable=False, server_default="text"),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("attachment_url", sa.String(500), nullable=True),
        sa.Column("likes_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("comments_count", sa.Integer(), nullable=False, server_default="0"),
        _created_at(),
        _created_at("updated_at"),
        sa.CheckConstraint("likes_count >= 0", name="ck_posts_likes_count_nonneg"),
        sa.CheckConstraint("comments_count >= 0", name="ck_posts_comments_count_nonneg"),
    )
    op.create_index("ix_posts_community_time", "posts", ["community_id", "created_at"])
    op.create_index("ix_posts_author", "posts", ["author_id"])

    op.create_table(
        "comments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "post_id",
            sa.Integer(),
            sa.ForeignKey("posts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("author_id", sa.String(64), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        _created_at(),
    )
    op.create_index("ix_comments_post_time", "comments", ["post_id", "created_at"])

    op.create_table(
        "likes",
        sa.Column(
            "post_id",
            sa.Integer(),
            sa.ForeignKey("posts.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("user_id", sa.String(64), primary_key=True),
        _created_at(),
    )

    op.create_table(
        "messages",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("sender_id", sa.String(64), nullable=False),
        sa.Column("receiver_id", sa.String(64), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        _created_at(),
    )
    op.create_index("ix_messages_receiver_time", "messages", ["receiver_id", "created_at"])
    op.create_index("ix_messages_sender_time", "messages", ["sender_id", "created_at"])

    op.create_table(
        "moderators",
        sa.Column(
            "community_id",
            sa.Integer(),
            sa.ForeignKey("communities.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("user_id", sa.String(64), primary_key=True),
        sa.Column("source", moderator_source, nullable=False),
        _created_at("appointed_at"),
    )

    op.create_table(
        "election_rounds",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "community_id",
            sa.Integer(),
            sa.ForeignKey("communities.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("opened_by", sa.String(64), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("winner_id", sa.String(64), nullable=True),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("end_time > start_time", name="ck_election_rounds_window"),
    )
    op.create_index(
        "uq_election_rounds_one_active",
        "election_rounds",
        ["community_id"],
        unique=True,
        postgresql_where=sa.text("is_active"),
    )
    op.create_index("ix_election_rounds_active_end", "election_rounds", ["is_active", "end_time"])

    op.create_table(
        "votes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "round_id",
            sa.Integer(),
            sa.ForeignKey("election_rounds.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("voter_id", sa.String(64), nullable=False),
        sa.Column("candidate_id", sa.String(64), nullable=False),
        _created_at(),
        sa.UniqueConstraint("round_id", "voter_id", name="uq_votes_round_voter"),
    )
    op.create_index("ix_votes_round_candidate", "votes", ["round_id", "candidate_id"])

    op.create_table(
        "domain_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_type", sa.String(50), nullable=False),
        sa.Column("actor_id", sa.String(64), nullable=True),
        sa.Column("community_id", sa.Integer(), nullable=True),
        sa.Column("post_id", sa.Integer(), nullable=True),
        sa.Column("payload", postgresql.JSONB(), nullable=True),
        _created_at(),
    )
    op.create_index("ix_domain_events_type_time", "domain_events", ["event_type", "created_at"])


def downgrade() -> None:
    """Drop every Townsquare table and enum type."""
    for table in (
        "domain_events",
        "votes",
        "election_rounds",
        "moderators",
        "messages",
        "likes",
        "comments",
        "posts",
        "user_follows",
        "memberships",
        "communities",
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for enum_type in (moderator_source, post_type, post_visibility, community_type):
        enum_type.drop(bind, checkfirst=True)
