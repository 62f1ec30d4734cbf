"""ORM models. Importing this package registers every table on Base.metadata."""

from notarium.models.activity import AdminActivityLog
from notarium.models.chat import ChatMessage, ChatSession
from notarium.models.note import AdminNoteLike, Note, NoteLike
from notarium.models.subject import Subject
from notarium.models.user import User

__all__ = [
    "AdminActivityLog",
    "AdminNoteLike",
    "ChatMessage",
    "ChatSession",
    "Note",
    "NoteLike",
    "Subject",
    "User",
]
