"""
Notarium Backend — Note Service (Business Logic Orchestrator)
===============================================================

What:  Central orchestrator for the note lifecycle: upload, listing,
       search, likes, publishing and deletion.
Why:   Encapsulates all business logic in one place, independent of HTTP concerns.
How:   Composes FileService, the image pipeline, the chunking accumulator and
       database operations.
Who:   Called by the notes routes, the admin service and the scheduled
       publisher started in the app lifespan.

Upload Flow (POST /api/notes):
    ┌──────────┐    ┌─────────────┐    ┌─────────────┐    ┌──────────┐    ┌──────────┐
    │  base64  │───▶│  Decode &   │───▶│ Preprocess  │───▶│  Store   │───▶│  Chunk   │
    │  images  │    │  Validate   │    │ (Pillow)    │    │  (disk)  │    │ → notes  │
    └──────────┘    └─────────────┘    └─────────────┘    └──────────┘    └──────────┘

    On failure after files were written, every stored file is removed
    before the exception propagates to the error handler.

Counter Bookkeeping:
    A published note contributes +1 to its author's notes_uploaded and its
    subject's note_count. Its likes and admin upvotes are mirrored in the
    author's total_likes / total_admin_upvotes. Deleting a note reverses
    all of that, never going below zero.

Design Decision:
    NoteService is stateless. It receives the db session for each call, so
    the same instance serves requests and the background publisher.
"""

import asyncio
import logging
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from sqlalchemy import String, cast, delete, desc, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from notarium.clock import as_utc, utcnow
from notarium.config import settings
from notarium.database import after_commit
from notarium.exceptions import (
    DatabaseError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from notarium.models.note import (
    STATUS_DRAFT,
    STATUS_PUBLISHED,
    AdminNoteLike,
    Note,
    NoteLike,
)
from notarium.models.subject import Subject
from notarium.models.user import User
from notarium.schemas.note import (
    NoteCreateRequest,
    NoteCreateResponse,
    NoteResponse,
    NoteUpdateRequest,
)
from notarium.services.chunking import chunk_by_size
from notarium.services.file_service import file_service
from notarium.services.image_service import OUTPUT_EXTENSION, preprocess_image
from notarium.services.visibility import can_view, visible_to

logger = logging.getLogger(__name__)

CONTINUATION_PREFIX = "Continued from previous note...\n\n"
SEARCH_LIMIT = 50

# Relevance weight per matched field
SEARCH_WEIGHTS = {
    "title": 10,
    "author": 8,
    "tags": 6,
    "subject": 5,
    "description": 4,
    "extracted_text": 2,
}

EDITABLE_FIELDS = ("title", "description", "content", "extracted_text", "summary", "tags", "visibility")


def file_url(relative_path: str) -> str:
    return f"/api/files/{relative_path}"


def decrement(value: Optional[int], amount: int = 1) -> int:
    return max(0, (value or 0) - amount)


class NoteService:
    """
    Business logic layer for note operations.

    Responsibilities:
        - create_notes(): upload → one or more note parts
        - list_by_subject() / search() / get_note() / my_notes(): reads,
          always filtered by the visibility rule
        - update_note() / update_summary(): owner edits
        - toggle_like() / publish() / delete_note(): counter-changing actions
        - publish_due_drafts(): scheduled publishing

    Error Handling Strategy:
        Database errors are wrapped in DatabaseError (hides internal details).
        Validation and permission problems raise ValidationError,
        PermissionDeniedError and NotFoundError for the global handlers.
    """

    # ── Lookups ───────────────────────────────────────────────────────────

    async def get_note_or_404(self, db: AsyncSession, note_id: int) -> Note:
        note = await db.get(Note, note_id)
        if note is None:
            raise NotFoundError(resource="note", resource_id=note_id)
        return note

    async def get_owned_note(self, db: AsyncSession, note_id: int, user: User) -> Note:
        note = await self.get_note_or_404(db, note_id)
        if note.author_id != user.id:
            raise PermissionDeniedError(
                message="You can only modify your own notes",
                context={"note_id": note_id},
            )
        return note

    # ── Enrichment ────────────────────────────────────────────────────────

    async def to_responses(
        self, db: AsyncSession, notes: Sequence[Note], viewer: User
    ) -> List[NoteResponse]:
        """
        Builds NoteResponses for a batch of notes with four queries total:
        authors, subjects, the viewer's likes and the viewer's upvotes.
        """
        if not notes:
            return []

        note_ids = [note.id for note in notes]
        author_ids = {note.author_id for note in notes}
        subject_ids = {note.subject_id for note in notes}

        authors = await self._by_id(db, User, author_ids)
        subjects = await self._by_id(db, Subject, subject_ids)
        liked = await self._ids(
            db,
            select(NoteLike.note_id).where(
                NoteLike.user_id == viewer.id, NoteLike.note_id.in_(note_ids)
            ),
        )
        upvoted = await self._ids(
            db,
            select(AdminNoteLike.note_id).where(
                AdminNoteLike.admin_id == viewer.id, AdminNoteLike.note_id.in_(note_ids)
            ),
        )

        responses = []
        for note in notes:
            author = authors.get(note.author_id)
            subject = subjects.get(note.subject_id)
            paths = list(note.image_paths or [])
            responses.append(
                NoteResponse(
                    id=note.id,
                    title=note.title,
                    description=note.description,
                    subject_id=note.subject_id,
                    subject_name=subject.name if subject else None,
                    author_id=note.author_id,
                    author_name=author.display_name if author else None,
                    author_photo=author.photo_url if author else None,
                    author_class=note.author_class,
                    extracted_text=note.extracted_text,
                    summary=note.summary,
                    content=note.content,
                    tags=list(note.tags or []),
                    image_paths=paths,
                    image_urls=[file_url(p) for p in paths],
                    status=note.status,
                    visibility=note.visibility,
                    scheduled_publish_at=note.scheduled_publish_at,
                    parent_note_id=note.parent_note_id,
                    part_number=note.part_number,
                    likes=note.likes,
                    admin_upvotes=note.admin_upvotes,
                    liked_by_me=note.id in liked,
                    upvoted_by_me=note.id in upvoted,
                    created_at=note.created_at,
                    updated_at=note.updated_at,
                )
            )
        return responses

    async def to_response(self, db: AsyncSession, note: Note, viewer: User) -> NoteResponse:
        return (await self.to_responses(db, [note], viewer))[0]

    async def _by_id(self, db: AsyncSession, model, ids: Iterable[int]) -> Dict[int, object]:
        ids = list(ids)
        if not ids:
            return {}
        result = await db.execute(select(model).where(model.id.in_(ids)))
        return {row.id: row for row in result.scalars().all()}

    async def _ids(self, db: AsyncSession, query) -> Set[int]:
        return set((await db.execute(query)).scalars().all())

    # ── Reads ─────────────────────────────────────────────────────────────

    async def list_by_subject(
        self, db: AsyncSession, subject_id: int, viewer: User
    ) -> List[NoteResponse]:
        """Published notes of one subject the viewer may see, newest first."""
        try:
            result = await db.execute(
                select(Note)
                .where(
                    Note.subject_id == subject_id,
                    Note.status == STATUS_PUBLISHED,
                    visible_to(viewer),
                )
                .order_by(desc(Note.created_at), desc(Note.id))
            )
            notes = result.scalars().all()
            return await self.to_responses(db, notes, viewer)
        except SQLAlchemyError as e:
            logger.error("Database error listing subject %d: %s", subject_id, str(e), exc_info=True)
            raise DatabaseError(message="Could not load notes. Please try again.")

    async def get_note(self, db: AsyncSession, note_id: int, viewer: User) -> NoteResponse:
        """
        Raises:
            NotFoundError: no such note, or the viewer may not see it
        """
        note = await db.get(Note, note_id)
        if note is None or not can_view(note, viewer):
            raise NotFoundError(resource="note", resource_id=note_id)
        return await self.to_response(db, note, viewer)

    async def my_notes(
        self, db: AsyncSession, viewer: User, status: Optional[str] = None
    ) -> List[NoteResponse]:
        """The viewer's own notes grouped by subject name, newest first within each."""
        query = (
            select(Note)
            .join(Subject, Subject.id == Note.subject_id)
            .where(Note.author_id == viewer.id)
            .order_by(Subject.name, desc(Note.created_at), desc(Note.id))
        )
        if status:
            query = query.where(Note.status == status)
        result = await db.execute(query)
        return await self.to_responses(db, result.scalars().all(), viewer)

    async def search(self, db: AsyncSession, query: str, viewer: User) -> List[NoteResponse]:
        """
        Word search over published, visible notes.

        The database narrows candidates to notes where some word occurs in
        some searchable field; scoring happens here, since it needs to know
        which fields matched.

        Score = Σ weight(field) × len(words) for every field containing at
        least one word. Ties break on newest first. At most 50 results.
        """
        words = query.lower().split()
        if not words:
            return []

        fields = {
            "title": func.lower(Note.title),
            "description": func.lower(func.coalesce(Note.description, "")),
            "extracted_text": func.lower(func.coalesce(Note.extracted_text, "")),
            "author": func.lower(User.display_name),
            "tags": func.lower(cast(Note.tags, String)),
            "subject": func.lower(Subject.name),
        }
        conditions = [
            column.like(f"%{word}%") for column in fields.values() for word in words
        ]

        try:
            result = await db.execute(
                select(Note, User.display_name, Subject.name)
                .join(User, User.id == Note.author_id)
                .join(Subject, Subject.id == Note.subject_id)
                .where(Note.status == STATUS_PUBLISHED, visible_to(viewer), or_(*conditions))
            )
            rows = result.all()
        except SQLAlchemyError as e:
            logger.error("Database error searching notes: %s", str(e), exc_info=True)
            raise DatabaseError(message="Search failed. Please try again.")

        scored = []
        for note, author_name, subject_name in rows:
            score = self.relevance(note, author_name, subject_name, words)
            if score > 0:
                scored.append((score, note))

        scored.sort(key=lambda pair: (pair[0], as_utc(pair[1].created_at), pair[1].id), reverse=True)
        scored = scored[:SEARCH_LIMIT]

        responses = await self.to_responses(db, [note for _, note in scored], viewer)
        for response, (score, _) in zip(responses, scored):
            response.relevance_score = score
        logger.info("Search '%s' matched %d notes", query, len(responses))
        return responses

    def relevance(
        self, note: Note, author_name: Optional[str], subject_name: Optional[str], words: List[str]
    ) -> int:
        haystacks = {
            "title": note.title,
            "author": author_name,
            "tags": " ".join(note.tags or []),
            "subject": subject_name,
            "description": note.description,
            "extracted_text": note.extracted_text,
        }
        score = 0
        for field, text in haystacks.items():
            text = (text or "").lower()
            if any(word in text for word in words):
                score += SEARCH_WEIGHTS[field] * len(words)
        return score

    # ── Create ────────────────────────────────────────────────────────────

    async def create_notes(
        self, db: AsyncSession, author: User, data: NoteCreateRequest
    ) -> NoteCreateResponse:
        """
        Complete workflow: validate subject → process images → store → chunk → persist.

        Raises:
            ValidationError: unknown subject, too many or invalid images
            FileStorageError: disk write failed
            DatabaseError: persistence failed
        """
        subject = await db.get(Subject, data.subject_id)
        if subject is None:
            raise ValidationError(message="Invalid subject", field="subject_id")

        if len(data.images) > settings.max_images_per_upload:
            raise ValidationError(
                message=f"At most {settings.max_images_per_upload} images per upload",
                field="images",
            )

        # ── Step 1: Decode, validate, preprocess (nothing written yet) ───
        processed: List[bytes] = []
        for raw in data.images:
            content = file_service.decode_base64_image(raw)
            file_service.validate_image(content)
            processed.append(await asyncio.to_thread(preprocess_image, content, data.enhance))

        stored_paths: List[str] = []
        try:
            # ── Step 2: Store ─────────────────────────────────────────────
            stored = []
            for content in processed:
                _, relative_path = await file_service.store_file(content, OUTPUT_EXTENSION)
                stored_paths.append(relative_path)
                stored.append((relative_path, len(content)))

            # ── Step 3: Chunk into parts ──────────────────────────────────
            chunks = chunk_by_size(
                stored,
                size_of=lambda item: item[1],
                max_bytes=settings.note_chunk_max_bytes,
                max_items=settings.max_images_per_note,
            ) or [[]]

            # ── Step 4: Persist ───────────────────────────────────────────
            status = STATUS_DRAFT if data.status == STATUS_DRAFT else STATUS_PUBLISHED
            notes: List[Note] = []
            for part_number, chunk in enumerate(chunks, start=1):
                note = self._build_part(data, author, status, part_number, [p for p, _ in chunk])
                if notes:
                    note.parent_note_id = notes[0].id
                db.add(note)
                await db.flush()
                notes.append(note)

            if status == STATUS_PUBLISHED:
                author.notes_uploaded = (author.notes_uploaded or 0) + len(notes)
                subject.note_count = (subject.note_count or 0) + len(notes)
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Failed to save uploaded notes: %s", str(e), exc_info=True)
            await file_service.cleanup_files(stored_paths)
            raise DatabaseError(message="Failed to save your note. Please try again.")
        except Exception:
            await file_service.cleanup_files(stored_paths)
            raise

        logger.info(
            "User %d uploaded %d image(s) as %d note part(s), status=%s",
            author.id,
            len(stored_paths),
            len(notes),
            status,
        )
        responses = await self.to_responses(db, notes, author)
        return NoteCreateResponse(note=responses[0], notes=responses, total_parts=len(responses))

    def _build_part(
        self,
        data: NoteCreateRequest,
        author: User,
        status: str,
        part_number: int,
        image_paths: List[str],
    ) -> Note:
        title = data.title
        extracted_text = data.extracted_text
        if part_number > 1:
            title = f"{data.title} ({part_number})"
            extracted_text = CONTINUATION_PREFIX + (data.extracted_text or "")

        return Note(
            title=title,
            description=data.description,
            subject_id=data.subject_id,
            author_id=author.id,
            author_class=author.user_class,
            extracted_text=extracted_text,
            summary=data.quick_summary,
            content=data.content,
            tags=list(data.tags),
            image_paths=image_paths,
            status=status,
            visibility=data.visibility,
            scheduled_publish_at=data.scheduled_publish_at if status == STATUS_DRAFT else None,
            part_number=part_number,
        )

    # ── Edits ─────────────────────────────────────────────────────────────

    def apply_changes(self, note: Note, data: NoteUpdateRequest, fields: Sequence[str]) -> List[str]:
        """Copies the fields present in `data` onto the note. Returns the changed names."""
        changed = []
        for field in fields:
            if field not in data.model_fields_set:
                continue
            value = getattr(data, field)
            if field in ("title", "visibility", "status") and value is None:
                continue
            if field == "tags":
                value = list(value or [])
            if getattr(note, field) != value:
                setattr(note, field, value)
                changed.append(field)
        return changed

    async def update_note(
        self, db: AsyncSession, note_id: int, user: User, data: NoteUpdateRequest
    ) -> NoteResponse:
        """
        Owner edit of the content fields.

        Raises:
            ValidationError: empty body
            PermissionDeniedError: caller is not the author
        """
        if not data.model_fields_set:
            raise ValidationError(message="No fields to update")

        note = await self.get_owned_note(db, note_id, user)
        changed = self.apply_changes(note, data, EDITABLE_FIELDS)
        await db.flush()
        logger.info("Note %d updated by owner: %s", note.id, changed)
        return await self.to_response(db, note, user)

    async def update_summary(
        self, db: AsyncSession, note_id: int, user: User, summary: str
    ) -> NoteResponse:
        note = await self.get_note_or_404(db, note_id)
        if note.author_id != user.id and not user.is_admin:
            raise PermissionDeniedError(message="You can only modify your own notes")
        note.summary = summary
        await db.flush()
        return await self.to_response(db, note, user)

    # ── Likes ─────────────────────────────────────────────────────────────

    async def toggle_like(self, db: AsyncSession, note_id: int, user: User) -> Tuple[bool, int]:
        """
        Likes or unlikes a note for the viewer.

        Returns:
            (liked, likes): the viewer's new state and the note's like count
        """
        note = await db.get(Note, note_id)
        if note is None or not can_view(note, user):
            raise NotFoundError(resource="note", resource_id=note_id)

        existing = (
            await db.execute(
                select(NoteLike).where(NoteLike.note_id == note.id, NoteLike.user_id == user.id)
            )
        ).scalar_one_or_none()
        author = await db.get(User, note.author_id)

        if existing is not None:
            await db.delete(existing)
            note.likes = decrement(note.likes)
            if author is not None:
                author.total_likes = decrement(author.total_likes)
            liked = False
        else:
            db.add(NoteLike(note_id=note.id, user_id=user.id))
            note.likes = (note.likes or 0) + 1
            if author is not None:
                author.total_likes = (author.total_likes or 0) + 1
            liked = True

        await db.flush()
        logger.info("User %d %s note %d", user.id, "liked" if liked else "unliked", note.id)
        return liked, note.likes

    # ── Publishing ────────────────────────────────────────────────────────

    async def _mark_published(self, db: AsyncSession, note: Note) -> None:
        note.status = STATUS_PUBLISHED
        note.scheduled_publish_at = None
        author = await db.get(User, note.author_id)
        subject = await db.get(Subject, note.subject_id)
        if author is not None:
            author.notes_uploaded = (author.notes_uploaded or 0) + 1
        if subject is not None:
            subject.note_count = (subject.note_count or 0) + 1

    async def publish(self, db: AsyncSession, note_id: int, user: User) -> NoteResponse:
        note = await self.get_owned_note(db, note_id, user)
        if note.is_published:
            raise ValidationError(message="Note is already published", field="status")
        await self._mark_published(db, note)
        await db.flush()
        logger.info("Note %d published by owner", note.id)
        return await self.to_response(db, note, user)

    async def set_status(self, db: AsyncSession, note: Note, status: str) -> None:
        """Moves a note between draft and published, keeping counters in step."""
        if status == note.status:
            return
        if status == STATUS_PUBLISHED:
            await self._mark_published(db, note)
            return
        note.status = STATUS_DRAFT
        author = await db.get(User, note.author_id)
        subject = await db.get(Subject, note.subject_id)
        if author is not None:
            author.notes_uploaded = decrement(author.notes_uploaded)
        if subject is not None:
            subject.note_count = decrement(subject.note_count)

    async def publish_due_drafts(self, db: AsyncSession) -> int:
        """Publishes every draft whose scheduled time has passed. Returns the count."""
        result = await db.execute(
            select(Note).where(
                Note.status == STATUS_DRAFT,
                Note.scheduled_publish_at.isnot(None),
                Note.scheduled_publish_at <= utcnow(),
            )
        )
        due = result.scalars().all()
        for note in due:
            await self._mark_published(db, note)
        if due:
            await db.flush()
            logger.info("Scheduled publisher published %d note(s)", len(due))
        return len(due)

    # ── Delete ────────────────────────────────────────────────────────────

    async def delete_owned(self, db: AsyncSession, note_id: int, user: User) -> float:
        note = await self.get_owned_note(db, note_id, user)
        return await self.delete_note(db, note)

    async def delete_note(self, db: AsyncSession, note: Note) -> float:
        """
        Deletes a note with its likes, upvotes and images, reversing every
        counter it contributed. The image files are removed once the session
        commits (see commit_session).

        Returns:
            Points removed from the author's score.
        """
        author = await db.get(User, note.author_id)
        subject = await db.get(Subject, note.subject_id)
        published = note.is_published
        likes = note.likes or 0
        upvotes = note.admin_upvotes or 0

        points_deducted = (
            (settings.points_per_note if published else 0)
            + likes * settings.points_per_like
            + upvotes * settings.points_per_admin_upvote
        )

        if author is not None:
            if published:
                author.notes_uploaded = decrement(author.notes_uploaded)
            author.total_likes = decrement(author.total_likes, likes)
            author.total_admin_upvotes = decrement(author.total_admin_upvotes, upvotes)
        if published and subject is not None:
            subject.note_count = decrement(subject.note_count)

        image_paths = list(note.image_paths or [])
        try:
            await db.execute(delete(NoteLike).where(NoteLike.note_id == note.id))
            await db.execute(delete(AdminNoteLike).where(AdminNoteLike.note_id == note.id))
            await db.execute(
                update(Note).where(Note.parent_note_id == note.id).values(parent_note_id=None)
            )
            await db.delete(note)
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Failed to delete note %d: %s", note.id, str(e), exc_info=True)
            raise DatabaseError(message="Failed to delete the note. Please try again.")

        # Files go only once the delete is committed
        after_commit(db, lambda: file_service.cleanup_files(image_paths))
        logger.info("Note %d deleted, %.1f points deducted", note.id, points_deducted)
        return points_deducted


# ── Singleton Instance ────────────────────────────────────────────────────
note_service = NoteService()
