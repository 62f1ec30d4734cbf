"""
Notarium Backend — Admin Moderation Service
=============================================

What:  Everything an admin can do to notes and users, plus the usage report.
Why:   Moderation touches several tables at once (likes, counters, files,
       chat history); keeping it here keeps the admin routes thin.
Who:   routes/admin.py. Every mutating method writes an activity log entry.

Counter rules match the student-facing paths in NoteService: upvotes are
mirrored in note.admin_upvotes and the author's total_admin_upvotes, and no
counter ever drops below zero.
"""

import logging
from collections import Counter
from datetime import timedelta
from typing import List, Optional

from sqlalchemy import delete, desc, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from notarium.clock import as_utc, utcnow
from notarium.exceptions import DatabaseError, NotFoundError, PermissionDeniedError
from notarium.models.activity import AdminActivityLog
from notarium.models.chat import ChatMessage, ChatSession
from notarium.models.note import AdminNoteLike, Note, NoteLike
from notarium.models.subject import Subject
from notarium.models.user import ROLE_ADMIN, ROLE_STUDENT, User
from notarium.schemas.admin import (
    AdminNoteResponse,
    ClassCount,
    DailyCount,
    SubjectUsage,
    TopContributor,
    UsageOverview,
    UsageStatsResponse,
)
from notarium.schemas.note import AdminNoteUpdateRequest, NoteResponse
from notarium.schemas.user import UserResponse
from notarium.services.activity_service import (
    ACTION_DELETE_NOTE,
    ACTION_DELETE_USER,
    ACTION_EDIT_NOTE,
    ACTION_LIKE_NOTE,
    ACTION_SUSPEND,
    ACTION_UNLIKE_NOTE,
    ACTION_UNSUSPEND,
    ACTION_UPVOTE_NOTE,
    ACTION_WARN,
    TARGET_NOTE,
    TARGET_USER,
    activity_service,
)
from notarium.services.note_service import EDITABLE_FIELDS, decrement, note_service

logger = logging.getLogger(__name__)

DEFAULT_SUSPENSION_REASON = "Suspended by admin"
DEFAULT_WARNING_MESSAGE = "Warning issued by admin"
USAGE_DAYS = 14
TOP_N = 10


class AdminService:
    """
    Responsibilities:
        - Notes: toggle/add upvote, edit any field, delete
        - Users: suspend, unsuspend, warn, delete with full cleanup
        - Reports: user list, note list, activity log, usage stats
    """

    async def _get_user_or_404(self, db: AsyncSession, user_id: int) -> User:
        user = await db.get(User, user_id)
        if user is None:
            raise NotFoundError(resource="user", resource_id=user_id)
        return user

    # ══════════════════════════════════════════════════════════════════════
    # Notes
    # ══════════════════════════════════════════════════════════════════════

    async def _find_upvote(self, db: AsyncSession, note_id: int, admin_id: int) -> Optional[AdminNoteLike]:
        result = await db.execute(
            select(AdminNoteLike).where(
                AdminNoteLike.note_id == note_id, AdminNoteLike.admin_id == admin_id
            )
        )
        return result.scalar_one_or_none()

    async def _add_upvote(self, db: AsyncSession, note: Note, admin: User) -> None:
        db.add(AdminNoteLike(note_id=note.id, admin_id=admin.id))
        note.admin_upvotes = (note.admin_upvotes or 0) + 1
        author = await db.get(User, note.author_id)
        if author is not None:
            author.total_admin_upvotes = (author.total_admin_upvotes or 0) + 1

    async def toggle_upvote(self, db: AsyncSession, admin: User, note_id: int) -> bool:
        """Adds or removes this admin's upvote. Returns the new state."""
        note = await note_service.get_note_or_404(db, note_id)
        existing = await self._find_upvote(db, note.id, admin.id)

        if existing is not None:
            await db.delete(existing)
            note.admin_upvotes = decrement(note.admin_upvotes)
            author = await db.get(User, note.author_id)
            if author is not None:
                author.total_admin_upvotes = decrement(author.total_admin_upvotes)
            liked = False
        else:
            await self._add_upvote(db, note, admin)
            liked = True

        await db.flush()
        await activity_service.log_action(
            db,
            admin,
            ACTION_LIKE_NOTE if liked else ACTION_UNLIKE_NOTE,
            TARGET_NOTE,
            note.id,
            {"title": note.title, "author_id": note.author_id},
        )
        return liked

    async def upvote(self, db: AsyncSession, admin: User, note_id: int) -> bool:
        """Adds this admin's upvote when absent. Returns False if it already existed."""
        note = await note_service.get_note_or_404(db, note_id)
        if await self._find_upvote(db, note.id, admin.id) is not None:
            return False
        await self._add_upvote(db, note, admin)
        await db.flush()
        await activity_service.log_action(
            db, admin, ACTION_UPVOTE_NOTE, TARGET_NOTE, note.id, {"title": note.title}
        )
        return True

    async def edit_note(
        self, db: AsyncSession, admin: User, note_id: int, data: AdminNoteUpdateRequest
    ) -> NoteResponse:
        note = await note_service.get_note_or_404(db, note_id)
        changed = note_service.apply_changes(note, data, EDITABLE_FIELDS)
        if data.status is not None and data.status != note.status:
            await note_service.set_status(db, note, data.status)
            changed.append("status")
        await db.flush()

        await activity_service.log_action(
            db, admin, ACTION_EDIT_NOTE, TARGET_NOTE, note.id, {"fields": changed}
        )
        return await note_service.to_response(db, note, admin)

    async def delete_note(self, db: AsyncSession, admin: User, note_id: int) -> float:
        note = await note_service.get_note_or_404(db, note_id)
        details = {"title": note.title, "author_id": note.author_id}
        points = await note_service.delete_note(db, note)
        await activity_service.log_action(
            db, admin, ACTION_DELETE_NOTE, TARGET_NOTE, note_id, details
        )
        return points

    # ══════════════════════════════════════════════════════════════════════
    # Users
    # ══════════════════════════════════════════════════════════════════════

    async def suspend(
        self, db: AsyncSession, admin: User, user_id: int, days: int, reason: Optional[str]
    ) -> User:
        user = await self._get_user_or_404(db, user_id)
        if user.id == admin.id:
            raise PermissionDeniedError(message="You cannot suspend your own account")

        user.suspended = True
        user.suspension_end_date = utcnow() + timedelta(days=days)
        user.suspension_reason = reason or DEFAULT_SUSPENSION_REASON
        await db.flush()

        await activity_service.log_action(
            db,
            admin,
            ACTION_SUSPEND,
            TARGET_USER,
            user.id,
            {"days": days, "reason": user.suspension_reason, "email": user.email},
        )
        return user

    async def unsuspend(self, db: AsyncSession, admin: User, user_id: int) -> User:
        user = await self._get_user_or_404(db, user_id)
        user.suspended = False
        user.suspension_end_date = None
        user.suspension_reason = None
        await db.flush()
        await activity_service.log_action(
            db, admin, ACTION_UNSUSPEND, TARGET_USER, user.id, {"email": user.email}
        )
        return user

    async def warn(self, db: AsyncSession, admin: User, user_id: int, message: Optional[str]) -> User:
        """Sets a warning and restarts its view tracking."""
        user = await self._get_user_or_404(db, user_id)
        user.warning = True
        user.warning_message = message or DEFAULT_WARNING_MESSAGE
        user.warning_first_viewed = None
        user.warning_view_count = 0
        await db.flush()
        await activity_service.log_action(
            db, admin, ACTION_WARN, TARGET_USER, user.id, {"message": user.warning_message}
        )
        return user

    async def delete_user(self, db: AsyncSession, admin: User, user_id: int) -> None:
        """
        Removes a user and everything that belongs to them.

        Order:
            1. Likes given by the user (note likes and author totals fixed)
            2. Admin upvotes given by the user (same, for upvote counters)
            3. Notes authored by the user, with their files
            4. Chat messages and sessions
            5. Activity entries written by the user
            6. The user row
        """
        user = await self._get_user_or_404(db, user_id)
        if user.id == admin.id:
            raise PermissionDeniedError(message="You cannot delete your own account")
        email = user.email

        try:
            # ── Step 1: Likes given ───────────────────────────────────────
            likes = (await db.execute(select(NoteLike).where(NoteLike.user_id == user.id))).scalars().all()
            for like in likes:
                note = await db.get(Note, like.note_id)
                if note is not None:
                    note.likes = decrement(note.likes)
                    author = await db.get(User, note.author_id)
                    if author is not None:
                        author.total_likes = decrement(author.total_likes)
                await db.delete(like)

            # ── Step 2: Upvotes given ─────────────────────────────────────
            upvotes = (
                await db.execute(select(AdminNoteLike).where(AdminNoteLike.admin_id == user.id))
            ).scalars().all()
            for upvote in upvotes:
                note = await db.get(Note, upvote.note_id)
                if note is not None:
                    note.admin_upvotes = decrement(note.admin_upvotes)
                    author = await db.get(User, note.author_id)
                    if author is not None:
                        author.total_admin_upvotes = decrement(author.total_admin_upvotes)
                await db.delete(upvote)
            await db.flush()

            # ── Step 3: Authored notes ────────────────────────────────────
            notes = (await db.execute(select(Note).where(Note.author_id == user.id))).scalars().all()
            for note in notes:
                await note_service.delete_note(db, note)

            # ── Step 4-5: Chat history and activity entries ───────────────
            session_ids = select(ChatSession.id).where(ChatSession.user_id == user.id)
            await db.execute(delete(ChatMessage).where(ChatMessage.session_id.in_(session_ids)))
            await db.execute(delete(ChatSession).where(ChatSession.user_id == user.id))
            await db.execute(delete(AdminActivityLog).where(AdminActivityLog.admin_id == user.id))

            # ── Step 6: The user ──────────────────────────────────────────
            await db.delete(user)
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Failed to delete user %d: %s", user_id, str(e), exc_info=True)
            raise DatabaseError(message="Failed to delete user. Please try again.")

        logger.info(
            "User %d deleted: %d likes, %d upvotes, %d notes removed",
            user_id,
            len(likes),
            len(upvotes),
            len(notes),
        )
        await activity_service.log_action(
            db,
            admin,
            ACTION_DELETE_USER,
            TARGET_USER,
            user_id,
            {"email": email, "notes_deleted": len(notes)},
        )

    # ══════════════════════════════════════════════════════════════════════
    # Listings
    # ══════════════════════════════════════════════════════════════════════

    async def list_users(self, db: AsyncSession) -> List[UserResponse]:
        result = await db.execute(select(User).order_by(desc(User.created_at), desc(User.id)))
        return [UserResponse.from_user(user) for user in result.scalars().all()]

    async def list_notes(self, db: AsyncSession, admin: User) -> List[AdminNoteResponse]:
        """Every note, drafts included, newest first, with this admin's upvote state."""
        result = await db.execute(select(Note).order_by(desc(Note.created_at), desc(Note.id)))
        responses = await note_service.to_responses(db, result.scalars().all(), admin)
        return [
            AdminNoteResponse(**response.model_dump(), admin_liked=response.upvoted_by_me)
            for response in responses
        ]

    # ══════════════════════════════════════════════════════════════════════
    # Usage Report
    # ══════════════════════════════════════════════════════════════════════

    async def _count(self, db: AsyncSession, query) -> int:
        return (await db.execute(query)).scalar_one() or 0

    async def _active_users(self, db: AsyncSession, since) -> int:
        """Distinct users who uploaded, chatted or liked since the cutoff."""
        ids = set()
        for query in (
            select(Note.author_id).where(Note.created_at >= since),
            select(ChatSession.user_id).where(ChatSession.created_at >= since),
            select(NoteLike.user_id).where(NoteLike.created_at >= since),
        ):
            ids.update((await db.execute(query)).scalars().all())
        return len(ids)

    async def _daily(self, db: AsyncSession, column, since) -> List[DailyCount]:
        values = (await db.execute(select(column).where(column >= since))).scalars().all()
        buckets = Counter(as_utc(value).date().isoformat() for value in values)
        return [DailyCount(date=day, count=count) for day, count in sorted(buckets.items())]

    async def usage_stats(self, db: AsyncSession) -> UsageStatsResponse:
        now = utcnow()
        week_ago = now - timedelta(days=7)
        month_ago = now - timedelta(days=30)
        window_start = now - timedelta(days=USAGE_DAYS)

        try:
            overview = UsageOverview(
                total_users=await self._count(db, select(func.count(User.id))),
                active_users_7d=await self._active_users(db, week_ago),
                active_users_30d=await self._active_users(db, month_ago),
                total_notes=await self._count(db, select(func.count(Note.id))),
                notes_7d=await self._count(
                    db, select(func.count(Note.id)).where(Note.created_at >= week_ago)
                ),
                notes_30d=await self._count(
                    db, select(func.count(Note.id)).where(Note.created_at >= month_ago)
                ),
                total_likes=await self._count(db, select(func.count(NoteLike.id))),
                total_admin_upvotes=await self._count(db, select(func.count(AdminNoteLike.id))),
                total_chat_sessions=await self._count(db, select(func.count(ChatSession.id))),
                chat_sessions_7d=await self._count(
                    db, select(func.count(ChatSession.id)).where(ChatSession.created_at >= week_ago)
                ),
                chat_sessions_30d=await self._count(
                    db, select(func.count(ChatSession.id)).where(ChatSession.created_at >= month_ago)
                ),
                suspended_users=await self._count(
                    db, select(func.count(User.id)).where(User.suspended.is_(True))
                ),
                warned_users=await self._count(
                    db, select(func.count(User.id)).where(User.warning.is_(True))
                ),
            )

            contributors = (
                await db.execute(
                    select(User)
                    .where(User.role == ROLE_STUDENT)
                    .order_by(desc(User.notes_uploaded), User.id)
                    .limit(TOP_N)
                )
            ).scalars().all()

            users_by_class = (
                await db.execute(
                    select(User.user_class, func.count(User.id))
                    .where(User.role != ROLE_ADMIN, User.user_class.isnot(None))
                    .group_by(User.user_class)
                    .order_by(User.user_class)
                )
            ).all()

            notes_by_class = (
                await db.execute(
                    select(Note.author_class, func.count(Note.id))
                    .where(Note.author_class.isnot(None))
                    .group_by(Note.author_class)
                    .order_by(Note.author_class)
                )
            ).all()

            note_count = func.count(Note.id)
            popular = (
                await db.execute(
                    select(Subject.id, Subject.name, note_count, func.coalesce(func.sum(Note.likes), 0))
                    .outerjoin(Note, Note.subject_id == Subject.id)
                    .group_by(Subject.id, Subject.name)
                    .order_by(desc(note_count), Subject.name)
                    .limit(TOP_N)
                )
            ).all()

            daily_notes = await self._daily(db, Note.created_at, window_start)
            daily_registrations = await self._daily(db, User.created_at, window_start)
        except SQLAlchemyError as e:
            logger.error("Database error building usage stats: %s", str(e), exc_info=True)
            raise DatabaseError(message="Failed to fetch usage statistics.")

        return UsageStatsResponse(
            overview=overview,
            top_contributors=[
                TopContributor(
                    id=user.id,
                    display_name=user.display_name,
                    email=user.email,
                    user_class=user.user_class,
                    notes_uploaded=user.notes_uploaded,
                    total_likes=user.total_likes,
                    total_admin_upvotes=user.total_admin_upvotes,
                    points=user.points,
                )
                for user in contributors
            ],
            users_by_class=[ClassCount(user_class=c, count=n) for c, n in users_by_class],
            notes_by_class=[ClassCount(user_class=c, count=n) for c, n in notes_by_class],
            popular_subjects=[
                SubjectUsage(id=sid, name=name, note_count=count, total_likes=int(likes or 0))
                for sid, name, count, likes in popular
            ],
            daily_notes=daily_notes,
            daily_registrations=daily_registrations,
        )


admin_service = AdminService()
