"""
Notarium Backend — User Service
=================================

What:  Moderation state as seen by the user (suspension expiry, warning
       auto-dismissal), profile edits and the leaderboard.
Who:   Auth dependencies (every authenticated request), the auth routes and
       GET /api/leaderboard.

Suspension:
    A suspension is active while `suspended` is set and the end date is in
    the future (or absent, which means indefinite). The first request after
    the end date clears it, so nobody has to lift it by hand.

Warning auto-dismissal (on GET /api/auth/me):
    first view   → warning_first_viewed = now, view count 1
    later views  → count + 1
    cleared once warning_dismiss_hours have passed since the first view or
    the count reaches warning_max_views
"""

import logging
import math
from datetime import timedelta
from typing import List, Optional

from sqlalchemy import desc, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from notarium.clock import as_utc, utcnow
from notarium.config import settings
from notarium.exceptions import AccountSuspendedError, ConflictError, DatabaseError, ValidationError
from notarium.models.user import ROLE_ADMIN, User
from notarium.schemas.auth import ProfileUpdateRequest
from notarium.schemas.user import LeaderboardEntry

logger = logging.getLogger(__name__)


class UserService:
    """Stateless; every method receives the session it should use."""

    # ── Suspension ────────────────────────────────────────────────────────

    def refresh_suspension(self, user: User) -> bool:
        """
        Clears an expired suspension in place.

        Returns True while the suspension is still active.
        """
        if not user.suspended:
            return False
        end = as_utc(user.suspension_end_date)
        if end is not None and utcnow() > end:
            logger.info("Suspension expired, clearing for user %d", user.id)
            user.suspended = False
            user.suspension_end_date = None
            user.suspension_reason = None
            return False
        return True

    def suspension_error(self, user: User) -> AccountSuspendedError:
        end = as_utc(user.suspension_end_date)
        days_remaining = 0
        if end is not None:
            seconds = (end - utcnow()).total_seconds()
            days_remaining = max(0, math.ceil(seconds / 86400))
        return AccountSuspendedError(
            suspension_end_date=end,
            reason=user.suspension_reason,
            days_remaining=days_remaining,
        )

    def ensure_not_suspended(self, user: User) -> None:
        if self.refresh_suspension(user):
            raise self.suspension_error(user)

    # ── Warning ───────────────────────────────────────────────────────────

    def record_warning_view(self, user: User) -> None:
        """Counts one view of the pending warning, clearing it when due."""
        if not user.warning or not user.warning_message:
            return

        now = utcnow()
        first_viewed = as_utc(user.warning_first_viewed)
        if first_viewed is None:
            user.warning_first_viewed = now
            user.warning_view_count = 1
            return

        expired = now - first_viewed >= timedelta(hours=settings.warning_dismiss_hours)
        views = (user.warning_view_count or 0) + 1
        if expired or views >= settings.warning_max_views:
            logger.info("Warning auto-dismissed for user %d after %d views", user.id, views)
            self.clear_warning(user)
        else:
            user.warning_view_count = views

    def clear_warning(self, user: User) -> None:
        user.warning = False
        user.warning_message = None
        user.warning_first_viewed = None
        user.warning_view_count = 0

    # ── Profile ───────────────────────────────────────────────────────────

    def validate_class(self, user_class: Optional[str]) -> Optional[str]:
        if user_class is None or user_class == "":
            return None
        if user_class not in settings.valid_classes_list:
            raise ValidationError(
                message=f"Invalid class. Must be one of: {', '.join(settings.valid_classes_list)}",
                field="class",
            )
        return user_class

    async def get_by_email(self, db: AsyncSession, email: str) -> Optional[User]:
        result = await db.execute(select(User).where(User.email == email.lower()))
        return result.scalar_one_or_none()

    async def update_profile(
        self, db: AsyncSession, user: User, data: ProfileUpdateRequest
    ) -> bool:
        """
        Applies the fields present in the request.

        Returns False when nothing actually changed.
        Raises ConflictError when the new email belongs to another account.
        """
        changes = {}
        sent = data.model_fields_set

        if "display_name" in sent and data.display_name:
            changes["display_name"] = data.display_name.strip()
        if "photo_url" in sent:
            changes["photo_url"] = data.photo_url or None
        if "description" in sent:
            changes["description"] = data.description or None
        if "user_class" in sent:
            changes["user_class"] = self.validate_class(data.user_class)
        if "email" in sent and data.email:
            new_email = str(data.email).lower()
            if new_email != user.email:
                existing = await self.get_by_email(db, new_email)
                if existing is not None and existing.id != user.id:
                    raise ConflictError(message="Email already in use by another account")
            changes["email"] = new_email

        changes = {k: v for k, v in changes.items() if getattr(user, k) != v}
        if not changes:
            return False

        for field, value in changes.items():
            setattr(user, field, value)
        try:
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Profile update failed for user %d: %s", user.id, str(e))
            raise DatabaseError(
                message="Could not update your profile. Please try again.",
                context={"user_id": user.id},
            )
        logger.info("Profile updated for user %d: %s", user.id, sorted(changes))
        return True

    # ── Leaderboard ───────────────────────────────────────────────────────

    async def leaderboard(self, db: AsyncSession) -> List[LeaderboardEntry]:
        """
        Students ranked by points, then notes uploaded, then likes.

        Points are weighted sums of the stored counters, so the ordering is
        done in SQL with the same weights User.points uses.
        """
        points = (
            User.notes_uploaded * settings.points_per_note
            + User.total_likes * settings.points_per_like
            + User.total_admin_upvotes * settings.points_per_admin_upvote
        )
        try:
            result = await db.execute(
                select(User)
                .where(User.role != ROLE_ADMIN)
                .order_by(
                    desc(points),
                    desc(User.notes_uploaded),
                    desc(User.total_likes),
                    User.id,
                )
            )
            users = result.scalars().all()
        except SQLAlchemyError as e:
            logger.error("Database error building leaderboard: %s", str(e), exc_info=True)
            raise DatabaseError(message="Could not load the leaderboard. Please try again.")

        return [
            LeaderboardEntry(
                rank=rank,
                id=user.id,
                display_name=user.display_name,
                user_class=user.user_class,
                photo_url=user.photo_url,
                notes_uploaded=user.notes_uploaded,
                total_likes=user.total_likes,
                total_admin_upvotes=user.total_admin_upvotes,
                points=user.points,
            )
            for rank, user in enumerate(users, start=1)
        ]


user_service = UserService()
