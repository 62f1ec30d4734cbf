"""
Notarium Backend — Admin Activity Log
=======================================

What:  Writes and reads the moderation audit trail.
How:   Each entry is written inside a SAVEPOINT, so a failed insert rolls
       back only the log row and the moderation action itself still
       commits. The failure is logged as a warning.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import desc, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from notarium.models.activity import AdminActivityLog
from notarium.models.user import User

logger = logging.getLogger(__name__)

# Action types
ACTION_SUSPEND = "suspend_user"
ACTION_UNSUSPEND = "unsuspend_user"
ACTION_WARN = "warn_user"
ACTION_DELETE_USER = "delete_user"
ACTION_DELETE_NOTE = "delete_note"
ACTION_EDIT_NOTE = "edit_note"
ACTION_LIKE_NOTE = "admin_like"
ACTION_UNLIKE_NOTE = "admin_unlike"
ACTION_UPVOTE_NOTE = "admin_upvote"
ACTION_RESET_PASSWORD = "reset_password"
ACTION_SYNC_COUNTS = "sync_subject_counts"

TARGET_USER = "user"
TARGET_NOTE = "note"
TARGET_SUBJECT = "subject"


class ActivityService:

    async def log_action(
        self,
        db: AsyncSession,
        admin: User,
        action_type: str,
        target_type: Optional[str] = None,
        target_id: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> Optional[AdminActivityLog]:
        """Records one moderation action. Returns None when the write failed."""
        entry = AdminActivityLog(
            admin_id=admin.id,
            admin_email=admin.email,
            action_type=action_type,
            target_type=target_type,
            target_id=target_id,
            details=details,
        )
        try:
            async with db.begin_nested():
                db.add(entry)
        except SQLAlchemyError as e:
            logger.warning(
                "Failed to write activity log (%s by admin %d): %s",
                action_type,
                admin.id,
                str(e),
            )
            return None

        logger.info(
            "Admin %d: %s %s=%s", admin.id, action_type, target_type or "-", target_id
        )
        return entry

    async def list_entries(
        self, db: AsyncSession, limit: int = 50, offset: int = 0
    ) -> Tuple[List[AdminActivityLog], int]:
        """Newest first. Returns (page, total)."""
        total = (await db.execute(select(func.count(AdminActivityLog.id)))).scalar_one()
        result = await db.execute(
            select(AdminActivityLog)
            .order_by(desc(AdminActivityLog.created_at), desc(AdminActivityLog.id))
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all()), total


activity_service = ActivityService()
