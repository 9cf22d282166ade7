"""Initial schema — users, movie_lists, movie_list_items, quizzes, questions, quiz_results

Revision ID: 0001
Revises: —
Create Date: 2026-10-18 00:00:00
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── users ─────────────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("email", sa.String(180), nullable=False),
        sa.Column("password_hash", sa.String, nullable=False),
        sa.Column("is_admin", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True),
                  nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    # ── movie_lists ───────────────────────────────────────────────────────────
    op.create_table(
        "movie_lists",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("user_id", sa.Integer,
                  sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("is_system", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True),
                  nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_movie_lists_user_id", "movie_lists", ["user_id"])

    # ── movie_list_items ──────────────────────────────────────────────────────
    op.create_table(
        "movie_list_items",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("movie_list_id", sa.Integer,
                  sa.ForeignKey("movie_lists.id", ondelete="CASCADE"), nullable=False),
        sa.Column("tmdb_id", sa.Integer, nullable=False),
        sa.Column("tmdb_type", sa.String(20), nullable=False),
        sa.Column("poster_path", sa.String(255), nullable=True),
        sa.Column("added_at", sa.DateTime(timezone=True),
                  nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("movie_list_id", "tmdb_id", "tmdb_type", name="uq_list_tmdb_item"),
        sa.CheckConstraint("tmdb_type IN ('movie', 'tv')", name="chk_tmdb_type"),
    )
    op.create_index("ix_movie_list_items_movie_list_id", "movie_list_items", ["movie_list_id"])
    op.create_index("idx_movie_list_items_tmdb", "movie_list_items", ["tmdb_type", "tmdb_id"])

    # ── quizzes ───────────────────────────────────────────────────────────────
    op.create_table(
        "quizzes",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("theme", sa.String(100), nullable=False),
        sa.Column("difficulty", sa.String(50), nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True),
                  nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )

    # ── questions ─────────────────────────────────────────────────────────────
    op.create_table(
        "questions",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("quiz_id", sa.Integer,
                  sa.ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False),
        sa.Column("text", sa.String(500), nullable=False),
        sa.Column("choices", sa.JSON, nullable=False),
        sa.Column("correct_answer", sa.String(255), nullable=False),
        sa.Column("explanation", sa.String(1000), nullable=True),
    )
    op.create_index("ix_questions_quiz_id", "questions", ["quiz_id"])

    # ── quiz_results ──────────────────────────────────────────────────────────
    op.create_table(
        "quiz_results",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("quiz_id", sa.Integer,
                  sa.ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False),
        # NULL for anonymous players
        sa.Column("user_id", sa.Integer,
                  sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("score", sa.Integer, nullable=False, server_default="0"),
        sa.Column("reward", sa.String(100), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True),
                  nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("score >= 0", name="chk_quiz_score_positive"),
    )
    op.create_index("ix_quiz_results_quiz_id", "quiz_results", ["quiz_id"])
    op.create_index("ix_quiz_results_user_id", "quiz_results", ["user_id"])


def downgrade() -> None:
    op.drop_table("quiz_results")
    op.drop_table("questions")
    op.drop_table("quizzes")
    op.drop_table("movie_list_items")
    op.drop_table("movie_lists")
    op.drop_table("users")
