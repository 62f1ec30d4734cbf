"""
Notarium Backend — AI Study Tool Routes
=========================================

What:  OCR, summaries, tags, quizzes, study plans and concept explanations.
How:   Thin handlers over StudyService. Provider failures surface as 503
       through the LLMServiceError / CircuitBreakerOpenError handlers.

    POST /api/gemini/ocr              base64 JSON body
    POST /api/gemini/ocr/upload       multipart file
    POST /api/gemini/quick-summary    works without an API key
    POST /api/gemini/summarize
    POST /api/gemini/auto-tags        never fails, falls back to generic tags
    POST /api/notes/{id}/summary      generated and stored on the note
    POST /api/notes/{id}/quiz
    POST /api/study-plan
    POST /api/concept-explain
"""

import logging
from typing import Optional

from fastapi import APIRouter, Body, File, Form, UploadFile

from notarium.dependencies import CurrentUser, DbSession
from notarium.exceptions import NotFoundError
from notarium.schemas.ai import (
    AutoTagsRequest,
    AutoTagsResponse,
    ConceptRequest,
    ConceptResponse,
    NoteSummaryRequest,
    NoteSummaryResponse,
    OCRRequest,
    OCRResponse,
    QuizResponse,
    StudyPlanRequest,
    StudyPlanResponse,
    SummaryRequest,
    SummaryResponse,
)
from notarium.schemas.common import ErrorResponse
from notarium.services.file_service import file_service
from notarium.services.note_service import note_service
from notarium.services.study_service import study_service
from notarium.services.visibility import can_view

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["AI"])

LLM_ERRORS = {
    503: {"description": "AI service unavailable", "model": ErrorResponse},
}


# ── OCR ───────────────────────────────────────────────────────────────────


@router.post(
    "/gemini/ocr",
    response_model=OCRResponse,
    responses={400: {"description": "Invalid image", "model": ErrorResponse}, **LLM_ERRORS},
    summary="Extract text from a base64 image",
)
async def ocr(body: OCRRequest, user: CurrentUser) -> OCRResponse:
    image = file_service.decode_base64_image(body.image_base64)
    text = await study_service.ocr(image, enhance=body.enhance)
    return OCRResponse(text=text)


@router.post(
    "/gemini/ocr/upload",
    response_model=OCRResponse,
    responses={400: {"description": "Invalid image", "model": ErrorResponse}, **LLM_ERRORS},
    summary="Extract text from an uploaded image file",
)
async def ocr_upload(
    user: CurrentUser,
    file: UploadFile = File(..., description="PNG, JPEG or WebP image, max 10MB"),
    enhance: bool = Form(default=True),
) -> OCRResponse:
    try:
        file_service.validate_extension(file.filename or "upload.jpg")
        content = await file.read()
        logger.info("OCR upload: filename=%s, size=%d bytes", file.filename or "unknown", len(content))
        file_service.validate_size(file.size, len(content))
        text = await study_service.ocr(content, enhance=enhance)
    finally:
        await file.close()
    return OCRResponse(text=text)


# ── Summaries & Tags ──────────────────────────────────────────────────────


@router.post(
    "/gemini/quick-summary",
    response_model=SummaryResponse,
    responses=LLM_ERRORS,
    summary="Two-sentence summary for the upload form",
)
async def quick_summary(body: SummaryRequest, user: CurrentUser) -> SummaryResponse:
    return SummaryResponse(summary=await study_service.quick_summary(body.title, body.text))


@router.post(
    "/gemini/summarize",
    response_model=SummaryResponse,
    responses=LLM_ERRORS,
    summary="Two-sentence summary",
)
async def summarize(body: SummaryRequest, user: CurrentUser) -> SummaryResponse:
    return SummaryResponse(summary=await study_service.summarize(body.title, body.text))


@router.post("/gemini/auto-tags", response_model=AutoTagsResponse, summary="Suggest 3-5 tags")
async def auto_tags(body: AutoTagsRequest, user: CurrentUser) -> AutoTagsResponse:
    return AutoTagsResponse(tags=await study_service.auto_tags(body.title, body.content))


# ── Note Tools ────────────────────────────────────────────────────────────


async def _visible_note(db, note_id: int, user):
    note = await note_service.get_note_or_404(db, note_id)
    if not can_view(note, user):
        raise NotFoundError(resource="note", resource_id=note_id)
    return note


@router.post(
    "/notes/{note_id}/summary",
    response_model=NoteSummaryResponse,
    responses={404: {"description": "Note not found", "model": ErrorResponse}, **LLM_ERRORS},
    summary="Generate a note summary",
    description="Stored on the note when the caller is its author or an admin.",
)
async def generate_note_summary(
    note_id: int,
    user: CurrentUser,
    db: DbSession,
    body: Optional[NoteSummaryRequest] = Body(default=None),
) -> NoteSummaryResponse:
    note = await _visible_note(db, note_id, user)
    body = body or NoteSummaryRequest()
    content = body.content or note.extracted_text or note.content or note.description or note.title
    summary = await study_service.summarize(body.title or note.title, content)

    if note.author_id == user.id or user.is_admin:
        note.summary = summary
        await db.flush()
    return NoteSummaryResponse(summary=summary)


@router.post(
    "/notes/{note_id}/quiz",
    response_model=QuizResponse,
    responses={404: {"description": "Note not found", "model": ErrorResponse}, **LLM_ERRORS},
    summary="Generate a 5-question quiz from a note",
)
async def generate_quiz(
    note_id: int,
    user: CurrentUser,
    db: DbSession,
    body: Optional[NoteSummaryRequest] = Body(default=None),
) -> QuizResponse:
    note = await _visible_note(db, note_id, user)
    body = body or NoteSummaryRequest()
    content = body.content or note.extracted_text or note.content or note.description or note.title
    return QuizResponse(quiz=await study_service.quiz(body.title or note.title, content))


# ── Study Plan & Concepts ─────────────────────────────────────────────────


@router.post("/study-plan", response_model=StudyPlanResponse, responses=LLM_ERRORS, summary="7-day study plan")
async def study_plan(body: StudyPlanRequest, user: CurrentUser) -> StudyPlanResponse:
    return StudyPlanResponse(plan=await study_service.study_plan(body.subject, body.topic))


@router.post(
    "/concept-explain",
    response_model=ConceptResponse,
    responses=LLM_ERRORS,
    summary="Explain a concept",
)
async def concept_explain(body: ConceptRequest, user: CurrentUser) -> ConceptResponse:
    return ConceptResponse(explanation=await study_service.explain_concept(body.concept, body.subject))
