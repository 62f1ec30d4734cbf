"""
Notarium Backend — AI Tutor Chat Routes
=========================================

Sessions belong to their creator; someone else's session id answers 404.
"""

from fastapi import APIRouter

from notarium.dependencies import CurrentUser, DbSession
from notarium.schemas.chat import (
    AIChatResponse,
    AIResponseRequest,
    ChatMessageCreateRequest,
    ChatMessageEnvelope,
    ChatMessageListResponse,
    ChatMessageResponse,
    ChatSessionCreateRequest,
    ChatSessionEnvelope,
    ChatSessionListResponse,
    ChatSessionResponse,
)
from notarium.schemas.common import ErrorResponse
from notarium.services.chat_service import chat_service

router = APIRouter(prefix="/api/chat", tags=["Chat"])


@router.post("/sessions", response_model=ChatSessionEnvelope, summary="Start a chat session")
async def create_session(
    body: ChatSessionCreateRequest, user: CurrentUser, db: DbSession
) -> ChatSessionEnvelope:
    session = await chat_service.create_session(db, user, body.subject, body.topic)
    return ChatSessionEnvelope(session=ChatSessionResponse.model_validate(session))


@router.get(
    "/sessions",
    response_model=ChatSessionListResponse,
    summary="The caller's 20 most recently active sessions",
)
async def list_sessions(user: CurrentUser, db: DbSession) -> ChatSessionListResponse:
    sessions = await chat_service.list_sessions(db, user)
    return ChatSessionListResponse(
        sessions=[ChatSessionResponse.model_validate(s) for s in sessions]
    )


@router.get(
    "/sessions/{session_id}/messages",
    response_model=ChatMessageListResponse,
    responses={404: {"description": "Session not found", "model": ErrorResponse}},
    summary="Transcript, oldest first",
)
async def list_messages(session_id: int, user: CurrentUser, db: DbSession) -> ChatMessageListResponse:
    messages = await chat_service.list_messages(db, session_id, user)
    return ChatMessageListResponse(
        messages=[ChatMessageResponse.model_validate(m) for m in messages]
    )


@router.post(
    "/sessions/{session_id}/messages",
    response_model=ChatMessageEnvelope,
    responses={404: {"description": "Session not found", "model": ErrorResponse}},
    summary="Append a message without asking the tutor",
)
async def post_message(
    session_id: int, body: ChatMessageCreateRequest, user: CurrentUser, db: DbSession
) -> ChatMessageEnvelope:
    message = await chat_service.post_message(db, session_id, user, body.role, body.content)
    return ChatMessageEnvelope(message=ChatMessageResponse.model_validate(message))


@router.post(
    "/sessions/{session_id}/ai-response",
    response_model=AIChatResponse,
    responses={
        404: {"description": "Session not found", "model": ErrorResponse},
        503: {"description": "AI service unavailable", "model": ErrorResponse},
    },
    summary="Ask the tutor",
    description="Stores the question and the answer; the answer draws on the caller's notes.",
)
async def ai_response(
    session_id: int, body: AIResponseRequest, user: CurrentUser, db: DbSession
) -> AIChatResponse:
    reply = await chat_service.ai_response(db, session_id, user, body.message, body.subject)
    return AIChatResponse(response=reply)
