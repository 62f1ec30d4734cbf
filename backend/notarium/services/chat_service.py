"""
Notarium Backend — AI Tutor Chat Service
==========================================

What:  Chat sessions, their transcripts and tutor replies.
How:   A reply is grounded in the student's own notes: up to 10 of them
       (filtered by subject name when one is given) are pasted into the
       system instruction as a knowledge base, and the previous 8 messages
       are sent as conversation history.
Who:   routes/chat.py.
"""

import logging
from typing import List, Optional

from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from notarium.clock import utcnow
from notarium.config import settings
from notarium.exceptions import NotFoundError
from notarium.models.chat import ROLE_ASSISTANT, ROLE_USER, ChatMessage, ChatSession
from notarium.models.note import Note
from notarium.models.subject import Subject
from notarium.models.user import User
from notarium.services.gemini_service import gemini_service
from notarium.services.llm_base import ChatTurn, LLMService
from notarium.services.study_service import sanitize_ai_input

logger = logging.getLogger(__name__)

SESSION_LIST_LIMIT = 20
HISTORY_MESSAGES = 8
KNOWLEDGE_NOTES = 10
KNOWLEDGE_NOTE_CHARS = 1200


class ChatService:

    def __init__(self, llm: LLMService = gemini_service):
        self.llm = llm

    # ── Sessions ──────────────────────────────────────────────────────────

    async def create_session(
        self, db: AsyncSession, user: User, subject: Optional[str], topic: Optional[str]
    ) -> ChatSession:
        session = ChatSession(user_id=user.id, subject=subject, topic=topic)
        db.add(session)
        await db.flush()
        logger.info("Chat session %d created for user %d", session.id, user.id)
        return session

    async def list_sessions(self, db: AsyncSession, user: User) -> List[ChatSession]:
        result = await db.execute(
            select(ChatSession)
            .where(ChatSession.user_id == user.id)
            .order_by(desc(ChatSession.updated_at), desc(ChatSession.id))
            .limit(SESSION_LIST_LIMIT)
        )
        return list(result.scalars().all())

    async def get_session(self, db: AsyncSession, session_id: int, user: User) -> ChatSession:
        """Another user's session is reported as missing."""
        session = await db.get(ChatSession, session_id)
        if session is None or session.user_id != user.id:
            raise NotFoundError(resource="chat session", resource_id=session_id)
        return session

    # ── Messages ──────────────────────────────────────────────────────────

    async def list_messages(self, db: AsyncSession, session_id: int, user: User) -> List[ChatMessage]:
        session = await self.get_session(db, session_id, user)
        result = await db.execute(
            select(ChatMessage)
            .where(ChatMessage.session_id == session.id)
            .order_by(ChatMessage.created_at, ChatMessage.id)
        )
        return list(result.scalars().all())

    async def add_message(
        self, db: AsyncSession, session: ChatSession, role: str, content: str
    ) -> ChatMessage:
        message = ChatMessage(session_id=session.id, role=role, content=content)
        db.add(message)
        session.updated_at = utcnow()
        await db.flush()
        return message

    async def post_message(
        self, db: AsyncSession, session_id: int, user: User, role: str, content: str
    ) -> ChatMessage:
        session = await self.get_session(db, session_id, user)
        return await self.add_message(db, session, role, content)

    # ── Tutor ─────────────────────────────────────────────────────────────

    async def recent_history(self, db: AsyncSession, session_id: int) -> List[ChatTurn]:
        """The last HISTORY_MESSAGES messages, oldest first."""
        result = await db.execute(
            select(ChatMessage)
            .where(ChatMessage.session_id == session_id)
            .order_by(desc(ChatMessage.created_at), desc(ChatMessage.id))
            .limit(HISTORY_MESSAGES)
        )
        messages = list(result.scalars().all())
        messages.reverse()
        return [{"role": m.role, "content": m.content} for m in messages]

    async def knowledge_base(self, db: AsyncSession, user: User, subject: Optional[str]) -> str:
        query = (
            select(Note.title, Note.extracted_text, Note.description, Subject.name)
            .join(Subject, Subject.id == Note.subject_id)
            .where(Note.author_id == user.id)
            .order_by(desc(Note.created_at), desc(Note.id))
            .limit(KNOWLEDGE_NOTES)
        )
        if subject:
            query = query.where(Subject.name == subject)

        entries = []
        for title, extracted_text, description, subject_name in (await db.execute(query)).all():
            body = (extracted_text or description or title or "")[:KNOWLEDGE_NOTE_CHARS]
            entries.append(f"### {title} ({subject_name})\n{body}")
        return "\n\n".join(entries)

    def system_instruction(self, subject: str, knowledge: str) -> str:
        instruction = (
            f"You are a friendly and patient study tutor helping a high school student "
            f"with {subject}. Explain step by step, check understanding, and keep "
            f"answers focused on the question. Write your answer in {settings.ai_response_language}."
        )
        if knowledge:
            instruction += (
                "\n\nThe student's own notes are below. Prefer them when they are "
                f"relevant and say so when you use them.\n\n{knowledge}"
            )
        return instruction

    async def ai_response(
        self,
        db: AsyncSession,
        session_id: int,
        user: User,
        message: str,
        subject: Optional[str] = None,
    ) -> str:
        """
        Stores the user's message, asks the tutor and stores its reply.

        History is read before the new message is stored, so the new message
        is sent once, as the prompt.
        """
        session = await self.get_session(db, session_id, user)
        history = await self.recent_history(db, session.id)
        await self.add_message(db, session, ROLE_USER, message)

        chat_subject = subject or session.subject or "General"
        knowledge = await self.knowledge_base(db, user, subject or session.subject)

        reply = await self.llm.generate_text(
            sanitize_ai_input(message),
            system_instruction=self.system_instruction(chat_subject, knowledge),
            history=history,
            temperature=0.7,
            max_output_tokens=1024,
        )
        await self.add_message(db, session, ROLE_ASSISTANT, reply)
        logger.info("Tutor replied in session %d (%d chars)", session.id, len(reply))
        return reply


chat_service = ChatService()
