"""
Notarium Backend — Subject Service
====================================

Subjects are a fixed catalogue (seeded on first start). Listing reports, for
each subject, how many published notes the *viewer* can see, which can be
fewer than the stored note_count because of class-only notes.
"""

import logging
from typing import List

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from notarium.exceptions import DatabaseError
from notarium.models.note import STATUS_PUBLISHED, Note
from notarium.models.subject import DEFAULT_SUBJECTS, Subject
from notarium.models.user import User
from notarium.schemas.subject import SubjectResponse
from notarium.services.visibility import visible_to

logger = logging.getLogger(__name__)


class SubjectService:

    async def ensure_default_subjects(self, db: AsyncSession) -> int:
        """Inserts any missing default subject. Returns how many were added."""
        result = await db.execute(select(Subject.name))
        existing = set(result.scalars().all())
        missing = [(name, icon) for name, icon in DEFAULT_SUBJECTS if name not in existing]
        for name, icon in missing:
            db.add(Subject(name=name, icon=icon))
        if missing:
            await db.flush()
            logger.info("Seeded %d default subjects", len(missing))
        return len(missing)

    async def list_subjects(self, db: AsyncSession, viewer: User) -> List[SubjectResponse]:
        try:
            counts_query = (
                select(Note.subject_id, func.count(Note.id))
                .where(Note.status == STATUS_PUBLISHED, visible_to(viewer))
                .group_by(Note.subject_id)
            )
            counts = dict((await db.execute(counts_query)).all())
            subjects = (await db.execute(select(Subject).order_by(Subject.name))).scalars().all()
        except SQLAlchemyError as e:
            logger.error("Database error listing subjects: %s", str(e), exc_info=True)
            raise DatabaseError(message="Could not load subjects. Please try again.")

        return [
            SubjectResponse(
                id=subject.id,
                name=subject.name,
                icon=subject.icon,
                note_count=counts.get(subject.id, 0),
            )
            for subject in subjects
        ]

    async def sync_note_counts(self, db: AsyncSession) -> List[SubjectResponse]:
        """Recomputes every stored note_count from the published notes."""
        counts_query = (
            select(Note.subject_id, func.count(Note.id))
            .where(Note.status == STATUS_PUBLISHED)
            .group_by(Note.subject_id)
        )
        counts = dict((await db.execute(counts_query)).all())
        subjects = (await db.execute(select(Subject).order_by(Subject.name))).scalars().all()
        for subject in subjects:
            subject.note_count = counts.get(subject.id, 0)
        await db.flush()
        logger.info("Synced note counts for %d subjects", len(subjects))
        return [SubjectResponse.model_validate(subject) for subject in subjects]


subject_service = SubjectService()
