"""Initial Notarium schema

Revision ID: 001
Revises: None
Create Date: 2026-10-19 00:00:00.000000+00:00

What:  Creates users, subjects, notes, the like/upvote tables, the tutor chat
       tables and the admin activity log, then seeds the default subjects.

Rollback: downgrade() drops every table (destructive).
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

from notarium.models.subject import DEFAULT_SUBJECTS

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("display_name", sa.String(100), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("class", sa.String(20), nullable=True),
        sa.Column(
            "role",
            sa.String(20),
            nullable=False,
            server_default=sa.text("'student'"),
            comment="student | admin",
        ),
        sa.Column("photo_url", sa.Text(), nullable=True),
        sa.Column("description", sa.String(500), nullable=True),
        sa.Column("notes_uploaded", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_likes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_admin_upvotes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("suspended", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("suspension_end_date", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("suspension_reason", sa.Text(), nullable=True),
        sa.Column("warning", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("warning_message", sa.Text(), nullable=True),
        sa.Column("warning_first_viewed", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("warning_view_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    subjects = op.create_table(
        "subjects",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("icon", sa.String(100), nullable=True),
        sa.Column("note_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )

    op.create_table(
        "notes",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("subject_id", sa.Integer(), nullable=False),
        sa.Column("author_id", sa.Integer(), nullable=False),
        sa.Column("author_class", sa.String(20), nullable=True),
        sa.Column("extracted_text", sa.Text(), nullable=True, comment="OCR text from the note images"),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("image_paths", sa.JSON(), nullable=False, comment="Storage-relative image paths"),
        sa.Column(
            "status",
            sa.String(20),
            nullable=False,
            server_default=sa.text("'published'"),
            comment="draft | published",
        ),
        sa.Column(
            "visibility",
            sa.String(20),
            nullable=False,
            server_default=sa.text("'everyone'"),
            comment="everyone | class",
        ),
        sa.Column("scheduled_publish_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("parent_note_id", sa.Integer(), nullable=True),
        sa.Column("part_number", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("likes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("admin_upvotes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["subject_id"], ["subjects.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["author_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["parent_note_id"], ["notes.id"], ondelete="SET NULL"),
    )
    op.create_index("idx_notes_subject_status", "notes", ["subject_id", "status"])
    op.create_index("idx_notes_author", "notes", ["author_id"])
    op.create_index("idx_notes_created_at", "notes", [sa.text("created_at DESC")])

    op.create_table(
        "note_likes",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("note_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["note_id"], ["notes.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("note_id", "user_id", name="uq_note_likes_note_user"),
    )
    op.create_index("ix_note_likes_note_id", "note_likes", ["note_id"])
    op.create_index("ix_note_likes_user_id", "note_likes", ["user_id"])

    op.create_table(
        "admin_note_likes",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("note_id", sa.Integer(), nullable=False),
        sa.Column("admin_id", sa.Integer(), nullable=False),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["note_id"], ["notes.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["admin_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("note_id", "admin_id", name="uq_admin_note_likes_note_admin"),
    )
    op.create_index("ix_admin_note_likes_note_id", "admin_note_likes", ["note_id"])
    op.create_index("ix_admin_note_likes_admin_id", "admin_note_likes", ["admin_id"])

    op.create_table(
        "chat_sessions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("subject", sa.String(100), nullable=True),
        sa.Column("topic", sa.String(255), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_chat_sessions_user_id", "chat_sessions", ["user_id"])

    op.create_table(
        "chat_messages",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("session_id", sa.Integer(), nullable=False),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["session_id"], ["chat_sessions.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_chat_messages_session_id", "chat_messages", ["session_id"])

    op.create_table(
        "admin_activity_log",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("admin_id", sa.Integer(), nullable=True),
        sa.Column("admin_email", sa.String(255), nullable=False),
        sa.Column("action_type", sa.String(50), nullable=False),
        sa.Column("target_type", sa.String(20), nullable=True),
        sa.Column("target_id", sa.Integer(), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["admin_id"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index(
        "idx_admin_activity_created_at", "admin_activity_log", [sa.text("created_at DESC")]
    )

    op.bulk_insert(
        subjects,
        [{"name": name, "icon": icon, "note_count": 0} for name, icon in DEFAULT_SUBJECTS],
    )


def downgrade() -> None:
    """Drop every Notarium table. All data is lost."""
    op.drop_index("idx_admin_activity_created_at", table_name="admin_activity_log")
    op.drop_table("admin_activity_log")
    op.drop_index("ix_chat_messages_session_id", table_name="chat_messages")
    op.drop_table("chat_messages")
    op.drop_index("ix_chat_sessions_user_id", table_name="chat_sessions")
    op.drop_table("chat_sessions")
    op.drop_index("ix_admin_note_likes_admin_id", table_name="admin_note_likes")
    op.drop_index("ix_admin_note_likes_note_id", table_name="admin_note_likes")
    op.drop_table("admin_note_likes")
    op.drop_index("ix_note_likes_user_id", table_name="note_likes")
    op.drop_index("ix_note_likes_note_id", table_name="note_likes")
    op.drop_table("note_likes")
    op.drop_index("idx_notes_created_at", table_name="notes")
    op.drop_index("idx_notes_author", table_name="notes")
    op.drop_index("idx_notes_subject_status", table_name="notes")
    op.drop_table("notes")
    op.drop_table("subjects")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
