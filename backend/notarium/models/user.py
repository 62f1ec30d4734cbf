"""
Notarium Backend — User SQLAlchemy Model
==========================================

What:  ORM model for the `users` table: identity, role, contribution
       counters and moderation state.
Who:   Used by the auth, note, leaderboard and admin services.

Table Design Rationale:
    - Integer autoincrement id: referenced from notes, likes, chat sessions
      and the activity log; small and index-friendly
    - email unique: one account per address (enforced again in the service
      so duplicates surface as 409 instead of an IntegrityError)
    - user_class: stored in the column "class" (a Python keyword, hence the
      attribute name); NULL for users who have not picked one
    - notes_uploaded / total_likes / total_admin_upvotes: denormalized
      counters. Points are derived from them (see User.points), so the
      leaderboard never has to aggregate the notes table.
    - suspension_* / warning_*: moderation state written by admins and
      read on every authenticated request
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Integer, String, Text, func, text
from sqlalchemy.orm import Mapped, mapped_column

from notarium.clock import utcnow
from notarium.config import settings
from notarium.database import Base

ROLE_STUDENT = "student"
ROLE_ADMIN = "admin"


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    user_class: Mapped[Optional[str]] = mapped_column("class", String(20), nullable=True)
    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ROLE_STUDENT,
        server_default=text("'student'"),
        comment="student | admin",
    )
    photo_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # ── Contribution Counters ─────────────────────────────────────────────
    # Never negative: every decrement goes through max(0, n - 1)
    notes_uploaded: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    total_likes: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    total_admin_upvotes: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )

    # ── Suspension ────────────────────────────────────────────────────────
    suspended: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )
    suspension_end_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    suspension_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # ── Warning ───────────────────────────────────────────────────────────
    # Auto-dismissed after warning_dismiss_hours or warning_max_views views
    warning: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )
    warning_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    warning_first_viewed: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    warning_view_count: Mapped[int] = mapped_column(
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

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def points(self) -> float:
        """Leaderboard score; an admin upvote outweighs a regular like."""
        return (
            self.notes_uploaded * settings.points_per_note
            + self.total_likes * settings.points_per_like
            + self.total_admin_upvotes * settings.points_per_admin_upvote
        )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"
