"""Initial schema — users, movies, cycles, meetings, items, free evenings

Revision ID: 0001
Revises: —
Create Date: 2026-10-19 00:00:00
"""
from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID
from alembic import op

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id_column() -> sa.Column:
    return sa.Column("id", UUID(as_uuid=True), primary_key=True,
                     server_default=sa.text("gen_random_uuid()"))


def _created_at_column(name: str = "created_at") -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True),
                     nullable=False, server_default=sa.text("now()"))


def _ordered_link_table(name: str, owner_table: str, owner_column: str, constraint: str) -> None:
    op.create_table(
        name,
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(owner_column, UUID(as_uuid=True),
                  sa.ForeignKey(f"{owner_table}.id", ondelete="CASCADE"), nullable=False),
        sa.Column("movie_id", UUID(as_uuid=True),
                  sa.ForeignKey("movies.id", ondelete="CASCADE"), nullable=False),
        sa.UniqueConstraint(owner_column, "movie_id", name=constraint),
    )
    op.create_index(f"ix_{name}_{owner_column}", name, [owner_column])


def upgrade() -> None:
    # ── Extensions ────────────────────────────────────────────────────────────
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")

    # ── users ─────────────────────────────────────────────────────────────────
    op.create_table(
        "users",
        _id_column(),
        sa.Column("username", sa.String(64), nullable=False),
        sa.Column("pattern_hash", sa.String, nullable=True),
        sa.Column("display_name", sa.String(60), nullable=True),
        sa.Column("display_name_color", sa.String(16), nullable=True, server_default="#000000"),
        sa.Column("avatar", sa.Text, nullable=True),
        sa.Column("is_admin", sa.Boolean, nullable=False, server_default="false"),
        sa.Column(
            "preferences",
            JSONB,
            nullable=False,
            server_default=sa.text(
                """'{"genres": [], "favorite_movie_ids": [], "optional_text": null}'::jsonb"""
            ),
        ),
        _created_at_column(),
        sa.UniqueConstraint("username", name="uq_users_username"),
    )
    op.create_index("ix_users_username", "users", ["username"])
    # Logins match usernames case-insensitively
    op.execute("CREATE INDEX idx_users_username_lower ON users (lower(username))")

    # ── movies ────────────────────────────────────────────────────────────────
    op.create_table(
        "movies",
        _id_column(),
        sa.Column("tmdb_id", sa.Integer, nullable=False),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("poster", sa.String(500), nullable=False),
        sa.Column("trailer", sa.String(500), nullable=True),
        sa.Column("description", sa.Text, nullable=False, server_default=""),
        sa.Column("genres", JSONB, nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("release_date", sa.Date, nullable=True),
        sa.Column("runtime", sa.Integer, nullable=True),
        sa.Column(
            "added_by_user_id",
            UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        _created_at_column("added_at"),
        sa.UniqueConstraint("tmdb_id", name="uq_movies_tmdb_id"),
    )
    op.create_index("ix_movies_tmdb_id", "movies", ["tmdb_id"])

    # ── cycles / votes ────────────────────────────────────────────────────────
    op.create_table(
        "cycles",
        _id_column(),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("meeting_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("location", sa.String(500), nullable=True),
        sa.Column(
            "created_by_user_id",
            UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        _created_at_column(),
    )
    op.create_index("ix_cycles_is_active", "cycles", ["is_active"])

    _ordered_link_table("cycle_movies", "cycles", "cycle_id", "uq_cycle_movie")

    op.create_table(
        "votes",
        _id_column(),
        sa.Column("user_id", UUID(as_uuid=True),
                  sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("movie_id", UUID(as_uuid=True),
                  sa.ForeignKey("movies.id", ondelete="CASCADE"), nullable=False),
        sa.Column("cycle_id", UUID(as_uuid=True),
                  sa.ForeignKey("cycles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("vote_type", sa.String(16), nullable=False),
        sa.Column("review", sa.Text, nullable=True),
        _created_at_column(),
        sa.UniqueConstraint("user_id", "movie_id", "cycle_id", name="uq_vote_user_movie_cycle"),
        sa.CheckConstraint("vote_type IN ('like', 'dislike')", name="vote_type"),
    )
    op.create_index("ix_votes_user_id", "votes", ["user_id"])
    op.create_index("ix_votes_cycle_id", "votes", ["cycle_id"])

    # ── meetings ──────────────────────────────────────────────────────────────
    op.create_table(
        "meetings",
        _id_column(),
        sa.Column("watched_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("host_id", UUID(as_uuid=True),
                  sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("location", sa.String(500), nullable=True),
        sa.Column("theme", sa.String(500), nullable=True),
        sa.Column("average_rating", sa.Float, nullable=False, server_default="0"),
        sa.Column("average_gathering_rating", sa.Float, nullable=False, server_default="0"),
        sa.Column("status", sa.String(16), nullable=False, server_default="upcoming"),
        sa.CheckConstraint("status IN ('upcoming', 'watched')", name="meeting_status"),
    )
    op.create_index("ix_meetings_watched_date", "meetings", ["watched_date"])

    _ordered_link_table("meeting_movies", "meetings", "meeting_id", "uq_meeting_movie")
    _ordered_link_table("meeting_candidates", "meetings", "meeting_id", "uq_meeting_candidate")

    op.create_table(
        "meeting_ratings",
        _id_column(),
        sa.Column("meeting_id", UUID(as_uuid=True),
                  sa.ForeignKey("meetings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", UUID(as_uuid=True),
                  sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("movie_id", UUID(as_uuid=True),
                  sa.ForeignKey("movies.id", ondelete="SET NULL"), nullable=True),
        sa.Column("rating", sa.Integer, nullable=False),
        sa.Column("comment", sa.Text, nullable=False),
        _created_at_column(),
        sa.CheckConstraint("rating BETWEEN 1 AND 5", name="chk_meeting_rating_range"),
        sa.CheckConstraint("length(comment) >= 50", name="chk_meeting_rating_comment_len"),
    )
    op.create_index("ix_meeting_ratings_meeting_id", "meeting_ratings", ["meeting_id"])
    op.create_index("ix_meeting_ratings_movie_id", "meeting_ratings", ["movie_id"])
    # One rating per user per movie; one movie-less rating per user per meeting
    op.execute("""
        CREATE UNIQUE INDEX uq_meeting_rating_user_movie
          ON meeting_ratings (meeting_id, user_id, movie_id)
          WHERE movie_id IS NOT NULL
    """)
    op.execute("""
        CREATE UNIQUE INDEX uq_meeting_rating_user_no_movie
          ON meeting_ratings (meeting_id, user_id)
          WHERE movie_id IS NULL
    """)

    op.create_table(
        "gathering_ratings",
        _id_column(),
        sa.Column("meeting_id", UUID(as_uuid=True),
                  sa.ForeignKey("meetings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", UUID(as_uuid=True),
                  sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("rating", sa.Integer, nullable=False),
        sa.Column("comment", sa.Text, nullable=True),
        _created_at_column(),
        sa.UniqueConstraint("meeting_id", "user_id", name="uq_gathering_rating_user"),
        sa.CheckConstraint("rating BETWEEN 1 AND 5", name="chk_gathering_rating_range"),
    )
    op.create_index("ix_gathering_ratings_meeting_id", "gathering_ratings", ["meeting_id"])

    op.create_table(
        "meeting_suggestions",
        _id_column(),
        sa.Column("meeting_id", UUID(as_uuid=True),
                  sa.ForeignKey("meetings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", UUID(as_uuid=True),
                  sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("movie_id", UUID(as_uuid=True),
                  sa.ForeignKey("movies.id", ondelete="CASCADE"), nullable=False),
        _created_at_column(),
    )
    op.create_index("ix_meeting_suggestions_meeting_id", "meeting_suggestions", ["meeting_id"])

    op.create_table(
        "meeting_votes",
        _id_column(),
        sa.Column("user_id", UUID(as_uuid=True),
                  sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("movie_id", UUID(as_uuid=True),
                  sa.ForeignKey("movies.id", ondelete="CASCADE"), nullable=False),
        sa.Column("meeting_id", UUID(as_uuid=True),
                  sa.ForeignKey("meetings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("vote_type", sa.String(16), nullable=False),
        sa.Column("reason", sa.String(500), nullable=True),
        _created_at_column(),
        sa.UniqueConstraint("user_id", "movie_id", "meeting_id",
                            name="uq_meeting_vote_user_movie_meeting"),
        sa.CheckConstraint("vote_type IN ('yes', 'no')", name="meeting_vote_type"),
    )
    op.create_index("ix_meeting_votes_meeting_id", "meeting_votes", ["meeting_id"])

    # ── items ─────────────────────────────────────────────────────────────────
    op.create_table(
        "items",
        _id_column(),
        sa.Column("event_id", UUID(as_uuid=True),
                  sa.ForeignKey("meetings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("claimed_by_user_id", UUID(as_uuid=True),
                  sa.ForeignKey("users.id"), nullable=True),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="available"),
        sa.CheckConstraint("status IN ('available', 'claimed')", name="item_status"),
        sa.CheckConstraint(
            "(status = 'claimed' AND claimed_by_user_id IS NOT NULL) OR "
            "(status = 'available' AND claimed_by_user_id IS NULL)",
            name="chk_item_claimant",
        ),
    )
    op.create_index("ix_items_event_id", "items", ["event_id"])

    # ── free_evenings ─────────────────────────────────────────────────────────
    op.create_table(
        "free_evenings",
        _id_column(),
        sa.Column("user_id", UUID(as_uuid=True),
                  sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("date", sa.Date, nullable=False),
        _created_at_column(),
        sa.UniqueConstraint("user_id", "date", name="uq_free_evening_user_date"),
    )
    op.create_index("ix_free_evenings_user_id", "free_evenings", ["user_id"])
    op.create_index("ix_free_evenings_date", "free_evenings", ["date"])


def downgrade() -> None:
    # Drop in reverse dependency order
    op.drop_table("free_evenings")
    op.drop_table("items")
    op.drop_table("meeting_votes")
    op.drop_table("meeting_suggestions")
    op.drop_table("gathering_ratings")
    op.drop_table("meeting_ratings")
    op.drop_table("meeting_candidates")
    op.drop_table("meeting_movies")
    op.drop_table("meetings")
    op.drop_table("votes")
    op.drop_table("cycle_movies")
    op.drop_table("cycles")
    op.drop_table("movies")
    op.drop_table("users")
    op.execute("DROP EXTENSION IF EXISTS pgcrypto")
