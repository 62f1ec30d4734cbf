"""
Notarium Backend — Note Service Tests
=======================================

What:  NoteService against a real SQLite schema.
Why:   The interesting rules (visibility, counters, chunked uploads, search
       ranking) live in queries and in how several rows change together,
       which mocks cannot show.
How:   Fixtures from conftest give persisted users and a subject; images
       are real PNGs so the whole upload pipeline runs.

What we test:
    ✅ Upload: parts, continuation titles, counters, draft vs published
    ✅ Failed upload leaves no files behind
    ✅ Visibility: class-only notes and drafts
    ✅ Likes toggle and keep counters in step
    ✅ Delete reverses counters and reports points deducted
    ✅ Search scoring and ordering
    ✅ Publishing now and on schedule
"""

from datetime import timedelta
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from notarium.clock import utcnow
from notarium.config import settings
from notarium.database import AFTER_COMMIT_KEY, commit_session
from notarium.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from notarium.models.note import AdminNoteLike, Note, NoteLike
from notarium.schemas.note import NoteCreateRequest, NoteUpdateRequest
from notarium.services.file_service import file_service
from notarium.services.note_service import CONTINUATION_PREFIX, NoteService, decrement, file_url


def create_request(subject_id, **overrides):
    data = {"title": "Hukum Newton", "subject_id": subject_id}
    data.update(overrides)
    return NoteCreateRequest(**data)


async def add_note(db, author, subject, **fields):
    """Inserts a note directly, bypassing the upload pipeline."""
    values = {
        "title": "Catatan",
        "subject_id": subject.id,
        "author_id": author.id,
        "author_class": author.user_class,
        "tags": [],
        "image_paths": [],
        "status": "published",
        "visibility": "everyone",
    }
    values.update(fields)
    note = Note(**values)
    db.add(note)
    await db.flush()
    return note


class TestHelpers:

    def test_decrement_floors_at_zero(self):
        assert decrement(3) == 2
        assert decrement(0) == 0
        assert decrement(None) == 0
        assert decrement(2, 5) == 0

    def test_file_url(self):
        assert file_url("2025/10/19/a.jpg") == "/api/files/2025/10/19/a.jpg"


class TestCreateNotes:

    def setup_method(self):
        self.service = NoteService()

    @pytest.mark.asyncio
    async def test_single_part_upload(self, db_session, student, subject, image_b64):
        result = await self.service.create_notes(
            db_session, student, create_request(subject.id, images=[image_b64], tags=["gaya"])
        )

        assert result.total_parts == 1
        note = result.note
        assert note.title == "Hukum Newton"
        assert note.part_number == 1
        assert note.parent_note_id is None
        assert note.author_class == "10.1"
        assert note.subject_name == "Fisika"
        assert len(note.image_paths) == 1
        assert note.image_urls == [file_url(note.image_paths[0])]
        assert note.image_paths[0].endswith(".jpg")
        assert file_service.resolve(note.image_paths[0]).is_file()
        assert student.notes_uploaded == 1
        assert subject.note_count == 1

    @pytest.mark.asyncio
    async def test_upload_without_images_creates_one_note(self, db_session, student, subject):
        result = await self.service.create_notes(db_session, student, create_request(subject.id))
        assert result.total_parts == 1
        assert result.note.image_paths == []

    @pytest.mark.asyncio
    async def test_upload_split_into_parts(self, db_session, student, subject, image_b64):
        request = create_request(subject.id, images=[image_b64] * 3, extracted_text="F = m a")
        # every image alone exceeds the budget, so each becomes its own part
        with patch.object(settings, "note_chunk_max_bytes", 1):
            result = await self.service.create_notes(db_session, student, request)

        assert result.total_parts == 3
        titles = [part.title for part in result.notes]
        assert titles == ["Hukum Newton", "Hukum Newton (2)", "Hukum Newton (3)"]
        first = result.notes[0]
        assert first.extracted_text == "F = m a"
        for part in result.notes[1:]:
            assert part.parent_note_id == first.id
            assert part.extracted_text == CONTINUATION_PREFIX + "F = m a"
        assert [part.part_number for part in result.notes] == [1, 2, 3]
        assert student.notes_uploaded == 3
        assert subject.note_count == 3

    @pytest.mark.asyncio
    async def test_draft_upload_does_not_count(self, db_session, student, subject):
        publish_at = utcnow() + timedelta(days=1)
        request = create_request(subject.id, status="draft", scheduled_publish_at=publish_at)
        result = await self.service.create_notes(db_session, student, request)

        assert result.note.status == "draft"
        assert result.note.scheduled_publish_at is not None
        assert student.notes_uploaded == 0
        assert subject.note_count == 0

    @pytest.mark.asyncio
    async def test_unknown_subject_rejected(self, db_session, student):
        with pytest.raises(ValidationError, match="Invalid subject"):
            await self.service.create_notes(db_session, student, create_request(9999))

    @pytest.mark.asyncio
    async def test_invalid_image_rejected_before_storing(self, db_session, student, subject):
        with pytest.raises(ValidationError):
            await self.service.create_notes(
                db_session, student, create_request(subject.id, images=["bm90IGFuIGltYWdl"])
            )
        count = (await db_session.execute(select(func.count(Note.id)))).scalar_one()
        assert count == 0

    @pytest.mark.asyncio
    async def test_failed_persist_cleans_up_files(self, db_session, student, subject, image_b64):
        stored = []
        original_store = file_service.store_file

        async def tracking_store(content, extension=".jpg"):
            result = await original_store(content, extension)
            stored.append(result[0])
            return result

        with patch.object(file_service, "store_file", side_effect=tracking_store), \
             patch("notarium.services.note_service.chunk_by_size", side_effect=RuntimeError("boom")):
            with pytest.raises(RuntimeError):
                await self.service.create_notes(
                    db_session, student, create_request(subject.id, images=[image_b64])
                )

        assert len(stored) == 1
        assert not Path(stored[0]).exists()


class TestVisibility:

    def setup_method(self):
        self.service = NoteService()

    @pytest.mark.asyncio
    async def test_class_note_hidden_from_other_class(
        self, db_session, student, classmate, outsider, admin, subject
    ):
        note = await add_note(db_session, student, subject, visibility="class")

        assert (await self.service.get_note(db_session, note.id, classmate)).id == note.id
        assert (await self.service.get_note(db_session, note.id, admin)).id == note.id
        with pytest.raises(NotFoundError):
            await self.service.get_note(db_session, note.id, outsider)

    @pytest.mark.asyncio
    async def test_draft_visible_only_to_author_and_admin(
        self, db_session, student, classmate, admin, subject
    ):
        note = await add_note(db_session, student, subject, status="draft")

        assert (await self.service.get_note(db_session, note.id, student)).status == "draft"
        assert (await self.service.get_note(db_session, note.id, admin)).id == note.id
        with pytest.raises(NotFoundError):
            await self.service.get_note(db_session, note.id, classmate)

    @pytest.mark.asyncio
    async def test_subject_listing_filters_and_orders(
        self, db_session, student, outsider, subject
    ):
        now = utcnow()
        older = await add_note(db_session, student, subject, title="Lama", created_at=now - timedelta(days=2))
        newer = await add_note(db_session, student, subject, title="Baru", created_at=now)
        await add_note(db_session, student, subject, title="Kelas", visibility="class")
        await add_note(db_session, student, subject, title="Draf", status="draft")

        notes = await self.service.list_by_subject(db_session, subject.id, outsider)

        assert [n.id for n in notes] == [newer.id, older.id]

    @pytest.mark.asyncio
    async def test_my_notes_includes_drafts_and_filters_status(self, db_session, student, subject):
        await add_note(db_session, student, subject, title="Published")
        await add_note(db_session, student, subject, title="Draft", status="draft")

        assert len(await self.service.my_notes(db_session, student)) == 2
        drafts = await self.service.my_notes(db_session, student, "draft")
        assert [n.title for n in drafts] == ["Draft"]


class TestLikes:

    def setup_method(self):
        self.service = NoteService()

    @pytest.mark.asyncio
    async def test_like_then_unlike(self, db_session, student, classmate, subject):
        note = await add_note(db_session, student, subject)

        liked, likes = await self.service.toggle_like(db_session, note.id, classmate)
        assert (liked, likes) == (True, 1)
        assert student.total_likes == 1
        response = await self.service.get_note(db_session, note.id, classmate)
        assert response.liked_by_me is True

        liked, likes = await self.service.toggle_like(db_session, note.id, classmate)
        assert (liked, likes) == (False, 0)
        assert student.total_likes == 0
        remaining = (await db_session.execute(select(func.count(NoteLike.id)))).scalar_one()
        assert remaining == 0

    @pytest.mark.asyncio
    async def test_cannot_like_invisible_note(self, db_session, student, outsider, subject):
        note = await add_note(db_session, student, subject, visibility="class")
        with pytest.raises(NotFoundError):
            await self.service.toggle_like(db_session, note.id, outsider)


class TestEditsAndPublishing:

    def setup_method(self):
        self.service = NoteService()

    @pytest.mark.asyncio
    async def test_owner_updates_only_sent_fields(self, db_session, student, subject):
        note = await add_note(db_session, student, subject, description="keep me")
        data = NoteUpdateRequest(title="Baru", tags=["a", "a", " b "])

        response = await self.service.update_note(db_session, note.id, student, data)

        assert response.title == "Baru"
        assert response.tags == ["a", "b"]
        assert response.description == "keep me"

    @pytest.mark.asyncio
    async def test_empty_update_rejected(self, db_session, student, subject):
        note = await add_note(db_session, student, subject)
        with pytest.raises(ValidationError, match="No fields"):
            await self.service.update_note(db_session, note.id, student, NoteUpdateRequest())

    @pytest.mark.asyncio
    async def test_non_owner_cannot_update(self, db_session, student, classmate, subject):
        note = await add_note(db_session, student, subject)
        with pytest.raises(PermissionDeniedError):
            await self.service.update_note(
                db_session, note.id, classmate, NoteUpdateRequest(title="Hijacked")
            )

    @pytest.mark.asyncio
    async def test_publish_draft_counts_it(self, db_session, student, subject):
        note = await add_note(db_session, student, subject, status="draft")

        response = await self.service.publish(db_session, note.id, student)

        assert response.status == "published"
        assert student.notes_uploaded == 1
        assert subject.note_count == 1
        with pytest.raises(ValidationError, match="already published"):
            await self.service.publish(db_session, note.id, student)

    @pytest.mark.asyncio
    async def test_publish_due_drafts(self, db_session, student, subject):
        due = await add_note(
            db_session, student, subject, status="draft",
            scheduled_publish_at=utcnow() - timedelta(minutes=5),
        )
        future = await add_note(
            db_session, student, subject, status="draft",
            scheduled_publish_at=utcnow() + timedelta(days=1),
        )
        unscheduled = await add_note(db_session, student, subject, status="draft")

        assert await self.service.publish_due_drafts(db_session) == 1

        assert due.status == "published"
        assert due.scheduled_publish_at is None
        assert future.status == "draft"
        assert unscheduled.status == "draft"
        assert student.notes_uploaded == 1
        assert await self.service.publish_due_drafts(db_session) == 0


class TestDelete:

    def setup_method(self):
        self.service = NoteService()

    @pytest.mark.asyncio
    async def test_delete_reverses_counters(self, db_session, student, classmate, admin, subject):
        note = await add_note(db_session, student, subject, likes=2, admin_upvotes=1)
        student.notes_uploaded = 1
        student.total_likes = 2
        student.total_admin_upvotes = 1
        subject.note_count = 1
        db_session.add(NoteLike(note_id=note.id, user_id=classmate.id))
        db_session.add(AdminNoteLike(note_id=note.id, admin_id=admin.id))
        child = await add_note(db_session, student, subject, parent_note_id=note.id, part_number=2)

        points = await self.service.delete_owned(db_session, note.id, student)

        expected = (
            settings.points_per_note
            + 2 * settings.points_per_like
            + settings.points_per_admin_upvote
        )
        assert points == expected
        assert student.notes_uploaded == 0
        assert student.total_likes == 0
        assert student.total_admin_upvotes == 0
        assert subject.note_count == 0
        assert await db_session.get(Note, note.id) is None
        await db_session.refresh(child)
        assert child.parent_note_id is None

    @pytest.mark.asyncio
    async def test_images_removed_only_after_commit(self, db_session, student, subject, image_b64):
        created = await self.service.create_notes(
            db_session, student, create_request(subject.id, images=[image_b64])
        )
        image = file_service.resolve(created.note.image_paths[0])

        await self.service.delete_note(db_session, await db_session.get(Note, created.note.id))
        assert image.is_file()

        await commit_session(db_session)
        assert not image.exists()

    @pytest.mark.asyncio
    async def test_failed_commit_keeps_images(self, db_session, student, subject, image_b64):
        created = await self.service.create_notes(
            db_session, student, create_request(subject.id, images=[image_b64])
        )
        image = file_service.resolve(created.note.image_paths[0])
        await self.service.delete_note(db_session, await db_session.get(Note, created.note.id))

        failure = OperationalError("COMMIT", {}, Exception("database is locked"))
        with patch.object(db_session, "commit", AsyncMock(side_effect=failure)):
            with pytest.raises(OperationalError):
                await commit_session(db_session)

        assert image.is_file()
        assert AFTER_COMMIT_KEY not in db_session.info
        assert (await db_session.execute(select(func.count(NoteLike.id)))).scalar_one() == 0
        assert (await db_session.execute(select(func.count(AdminNoteLike.id)))).scalar_one() == 0

    @pytest.mark.asyncio
    async def test_deleting_draft_deducts_no_note_point(self, db_session, student, subject):
        note = await add_note(db_session, student, subject, status="draft")
        assert await self.service.delete_owned(db_session, note.id, student) == 0

    @pytest.mark.asyncio
    async def test_counters_never_negative(self, db_session, student, subject):
        note = await add_note(db_session, student, subject, likes=5)
        await self.service.delete_owned(db_session, note.id, student)
        assert student.notes_uploaded == 0
        assert student.total_likes == 0
        assert subject.note_count == 0

    @pytest.mark.asyncio
    async def test_only_owner_deletes(self, db_session, student, classmate, subject):
        note = await add_note(db_session, student, subject)
        with pytest.raises(PermissionDeniedError):
            await self.service.delete_owned(db_session, note.id, classmate)


class TestSearch:

    def setup_method(self):
        self.service = NoteService()

    @pytest.mark.asyncio
    async def test_title_match_outranks_text_match(self, db_session, student, classmate, subject):
        in_text = await add_note(
            db_session, student, subject, title="Bab 1", extracted_text="tentang newton"
        )
        in_title = await add_note(db_session, student, subject, title="Hukum Newton")

        results = await self.service.search(db_session, "newton", classmate)

        assert [r.id for r in results] == [in_title.id, in_text.id]
        assert results[0].relevance_score == 10
        assert results[1].relevance_score == 2

    @pytest.mark.asyncio
    async def test_score_multiplies_by_word_count(self, db_session, student, classmate, subject):
        await add_note(db_session, student, subject, title="Optika", tags=["cahaya"])

        results = await self.service.search(db_session, "optika cahaya", classmate)

        # title (10) and tags (6), each × 2 words
        assert results[0].relevance_score == (10 + 6) * 2

    @pytest.mark.asyncio
    async def test_non_ascii_tag_match(self, db_session, student, classmate, subject):
        note = await add_note(db_session, student, subject, title="Catatan", tags=["énergie", "熱力学"])

        accented = await self.service.search(db_session, "énergie", classmate)
        cjk = await self.service.search(db_session, "熱力学", classmate)

        assert [r.id for r in accented] == [note.id]
        assert accented[0].relevance_score == 6
        assert [r.id for r in cjk] == [note.id]

    @pytest.mark.asyncio
    async def test_author_and_subject_fields_match(self, db_session, student, classmate, subject):
        await add_note(db_session, student, subject, title="Catatan")
        by_author = await self.service.search(db_session, "ani", classmate)
        by_subject = await self.service.search(db_session, "fisika", classmate)
        assert by_author[0].relevance_score == 8
        assert by_subject[0].relevance_score == 5

    @pytest.mark.asyncio
    async def test_search_respects_visibility(self, db_session, student, outsider, subject):
        await add_note(db_session, student, subject, title="Rahasia kelas", visibility="class")
        await add_note(db_session, student, subject, title="Rahasia draf", status="draft")
        assert await self.service.search(db_session, "rahasia", outsider) == []

    @pytest.mark.asyncio
    async def test_blank_query_returns_nothing(self, db_session, student):
        assert await self.service.search(db_session, "   ", student) == []
