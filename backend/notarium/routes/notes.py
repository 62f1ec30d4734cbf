"""
Notarium Backend — Notes Route Handlers
=========================================

What:  Upload, browse, search, edit, like, publish and delete notes, and
       serve their stored images.
How:   Extracts path/query/body data, delegates to NoteService, wraps the
       result in the response envelope.

Route order matters: the fixed paths (/notes/search, /notes/my-notes,
/notes/subject/...) are declared before /notes/{note_id}.

Caching Strategy:
    - Note data: no caching (likes and edits change it)
    - /api/files/...: 24h public cache, file names are random and immutable
"""

import logging
from typing import Optional

from fastapi import APIRouter, Query
from fastapi.responses import FileResponse

from notarium.dependencies import CurrentUser, DbSession
from notarium.exceptions import ValidationError
from notarium.models.note import NOTE_STATUSES
from notarium.schemas.common import ErrorResponse
from notarium.schemas.note import (
    LikeResponse,
    NoteCreateRequest,
    NoteCreateResponse,
    NoteDeleteResponse,
    NoteEnvelope,
    NoteListResponse,
    NoteSummaryUpdateRequest,
    NoteUpdateRequest,
)
from notarium.services.file_service import file_service
from notarium.services.note_service import note_service

logger = logging.getLogger(__name__)

# ── Router Configuration ──────────────────────────────────────────────────
router = APIRouter(prefix="/api", tags=["Notes"])


@router.post(
    "/notes",
    status_code=201,
    response_model=NoteCreateResponse,
    responses={
        400: {"description": "Invalid subject or image", "model": ErrorResponse},
        413: {"description": "Request too large", "model": ErrorResponse},
    },
    summary="Upload a note",
    description=(
        "Images are validated, preprocessed (orientation, optional enhancement, "
        "resize, JPEG) and stored. When they do not fit in one note the upload is "
        "split into parts: 'Title', 'Title (2)', ..., each pointing back at part 1."
    ),
)
async def create_note(body: NoteCreateRequest, user: CurrentUser, db: DbSession) -> NoteCreateResponse:
    return await note_service.create_notes(db, user, body)


@router.get(
    "/notes/search",
    response_model=NoteListResponse,
    summary="Search notes",
    description=(
        "Matches any query word against title, author, tags, subject, description "
        "and extracted text. Results carry relevance_score; at most 50 are returned."
    ),
)
async def search_notes(
    user: CurrentUser,
    db: DbSession,
    q: str = Query(default="", max_length=200, description="Search words"),
) -> NoteListResponse:
    return NoteListResponse(notes=await note_service.search(db, q, user))


@router.get(
    "/notes/my-notes",
    response_model=NoteListResponse,
    summary="The caller's own notes, drafts included",
)
async def my_notes(
    user: CurrentUser,
    db: DbSession,
    status: Optional[str] = Query(default=None, description="draft or published"),
) -> NoteListResponse:
    if status is not None and status not in NOTE_STATUSES:
        raise ValidationError(message=f"Invalid status '{status}'", field="status")
    return NoteListResponse(notes=await note_service.my_notes(db, user, status))


@router.get(
    "/notes/subject/{subject_id}",
    response_model=NoteListResponse,
    summary="Published notes of a subject, newest first",
)
async def notes_by_subject(subject_id: int, user: CurrentUser, db: DbSession) -> NoteListResponse:
    return NoteListResponse(notes=await note_service.list_by_subject(db, subject_id, user))


@router.get(
    "/notes/{note_id}",
    response_model=NoteEnvelope,
    responses={404: {"description": "Note not found", "model": ErrorResponse}},
    summary="Get a single note",
)
async def get_note(note_id: int, user: CurrentUser, db: DbSession) -> NoteEnvelope:
    return NoteEnvelope(note=await note_service.get_note(db, note_id, user))


@router.put(
    "/notes/{note_id}",
    response_model=NoteEnvelope,
    responses={
        400: {"description": "Nothing to update", "model": ErrorResponse},
        403: {"description": "Not the author", "model": ErrorResponse},
        404: {"description": "Note not found", "model": ErrorResponse},
    },
    summary="Edit your note",
)
async def update_note(
    note_id: int, body: NoteUpdateRequest, user: CurrentUser, db: DbSession
) -> NoteEnvelope:
    return NoteEnvelope(note=await note_service.update_note(db, note_id, user, body))


@router.put(
    "/notes/{note_id}/summary",
    response_model=NoteEnvelope,
    responses={403: {"description": "Not the author", "model": ErrorResponse}},
    summary="Replace a note's summary",
)
async def update_summary(
    note_id: int, body: NoteSummaryUpdateRequest, user: CurrentUser, db: DbSession
) -> NoteEnvelope:
    return NoteEnvelope(note=await note_service.update_summary(db, note_id, user, body.summary))


@router.post(
    "/notes/{note_id}/like",
    response_model=LikeResponse,
    summary="Like or unlike a note",
)
async def toggle_like(note_id: int, user: CurrentUser, db: DbSession) -> LikeResponse:
    liked, likes = await note_service.toggle_like(db, note_id, user)
    return LikeResponse(liked=liked, likes=likes)


@router.post(
    "/notes/{note_id}/publish",
    response_model=NoteEnvelope,
    responses={400: {"description": "Already published", "model": ErrorResponse}},
    summary="Publish a draft now",
)
async def publish_note(note_id: int, user: CurrentUser, db: DbSession) -> NoteEnvelope:
    return NoteEnvelope(note=await note_service.publish(db, note_id, user))


@router.delete(
    "/notes/{note_id}",
    response_model=NoteDeleteResponse,
    responses={403: {"description": "Not the author", "model": ErrorResponse}},
    summary="Delete your note",
)
async def delete_note(note_id: int, user: CurrentUser, db: DbSession) -> NoteDeleteResponse:
    points = await note_service.delete_owned(db, note_id, user)
    return NoteDeleteResponse(points_deducted=points)


@router.get(
    "/files/{file_path:path}",
    summary="Serve a stored note image",
    responses={
        200: {"description": "Image file"},
        400: {"description": "Invalid path"},
        404: {"description": "File not found"},
    },
)
async def serve_file(file_path: str) -> FileResponse:
    """
    Public so <img> tags can load images; file names are random UUIDs.
    Paths resolving outside the storage root are rejected.
    """
    full_path = file_service.resolve(file_path)
    return FileResponse(
        path=str(full_path),
        media_type="image/jpeg",
        headers={"Cache-Control": "public, max-age=86400"},
    )
