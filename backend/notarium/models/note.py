"""
Notarium Backend — Note SQLAlchemy Models
===========================================

What:  ORM models for notes and the two kinds of appreciation a note can get:
       student likes (`note_likes`) and admin upvotes (`admin_note_likes`).
Why:   Notes are the core content; likes and upvotes feed the leaderboard.
Who:   Used by NoteService, AdminService, the leaderboard and Alembic.

Table Design Rationale:
    - author_class: the author's class at upload time, so class-only
      visibility does not need a join against users
    - tags / image_paths: JSON lists. Tags are short strings; image_paths are
      storage-relative paths (YYYY/MM/DD/<uuid>.jpg), never base64 blobs
    - status draft|published and scheduled_publish_at: drafts with a past
      schedule are published by the background publisher
    - parent_note_id / part_number: one upload may be split into several
      notes; parts after the first point back at part 1
    - likes / admin_upvotes: denormalized counters mirrored by the like
      tables, never negative

Query Patterns:
    - Subject page: WHERE subject_id = :id AND status = 'published'
      ORDER BY created_at DESC → idx_notes_subject_status
    - My notes: WHERE author_id = :id → idx_notes_author
    - Scheduled publisher: WHERE status = 'draft' AND scheduled_publish_at <= now
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    JSON,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from notarium.clock import utcnow
from notarium.database import Base

STATUS_DRAFT = "draft"
STATUS_PUBLISHED = "published"
NOTE_STATUSES = (STATUS_DRAFT, STATUS_PUBLISHED)

VISIBILITY_EVERYONE = "everyone"
VISIBILITY_CLASS = "class"
NOTE_VISIBILITIES = (VISIBILITY_EVERYONE, VISIBILITY_CLASS)


class Note(Base):
    """
    A study note (or one part of a chunked upload).

    Lifecycle:
        1. Created as draft or published by POST /api/notes
        2. Draft → published by the owner, or by the scheduled publisher
        3. Edited by the owner (content fields) or an admin (any field)
        4. Deleted by the owner or an admin; counters it contributed to the
           author and subject are reversed
    """

    __tablename__ = "notes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    subject_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("subjects.id", ondelete="RESTRICT"), nullable=False
    )
    author_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    author_class: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # ── Content ───────────────────────────────────────────────────────────
    extracted_text: Mapped[Optional[str]] = mapped_column(
        Text, nullable=True, comment="OCR text from the note images"
    )
    summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tags: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    image_paths: Mapped[List[str]] = mapped_column(
        JSON, nullable=False, default=list, comment="Storage-relative image paths"
    )

    # ── Publication ───────────────────────────────────────────────────────
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=STATUS_PUBLISHED,
        server_default=text("'published'"),
        comment="draft | published",
    )
    visibility: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=VISIBILITY_EVERYONE,
        server_default=text("'everyone'"),
        comment="everyone | class",
    )
    scheduled_publish_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # ── Chunked Uploads ───────────────────────────────────────────────────
    parent_note_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("notes.id", ondelete="SET NULL"), nullable=True
    )
    part_number: Mapped[int] = mapped_column(
        Integer, nullable=False, default=1, server_default=text("1")
    )

    # ── Counters ──────────────────────────────────────────────────────────
    likes: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    admin_upvotes: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )

    # ── Timestamps ────────────────────────────────────────────────────────
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
    )

    __table_args__ = (
        Index("idx_notes_subject_status", "subject_id", "status"),
        Index("idx_notes_author", "author_id"),
        Index("idx_notes_created_at", created_at.desc()),
    )

    @property
    def is_published(self) -> bool:
        return self.status == STATUS_PUBLISHED

    def __repr__(self) -> str:
        return (
            f"<Note(id={self.id}, title='{self.title}', status='{self.status}', "
            f"part={self.part_number})>"
        )


class NoteLike(Base):
    """A student's like on a note. At most one per (note, user)."""

    __tablename__ = "note_likes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    note_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("notes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (UniqueConstraint("note_id", "user_id", name="uq_note_likes_note_user"),)


class AdminNoteLike(Base):
    """An admin upvote on a note. At most one per (note, admin)."""

    __tablename__ = "admin_note_likes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    note_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("notes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    admin_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("note_id", "admin_id", name="uq_admin_note_likes_note_admin"),
    )
