from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from notarium.models.chat import CHAT_ROLES


class ChatSessionCreateRequest(BaseModel):
    subject: Optional[str] = Field(default=None, max_length=100)
    topic: Optional[str] = Field(default=None, max_length=255)


class ChatMessageCreateRequest(BaseModel):
    role: str = Field(default="user")
    content: str = Field(min_length=1, max_length=10_000)

    @field_validator("role")
    @classmethod
    def validate_role(cls, v: str) -> str:
        if v not in CHAT_ROLES:
            raise ValueError(f"Invalid role '{v}'. Must be one of: {list(CHAT_ROLES)}")
        return v


class AIResponseRequest(BaseModel):
    message: str = Field(min_length=1, max_length=10_000)
    subject: Optional[str] = Field(default=None, max_length=100)


class ChatSessionResponse(BaseModel):
    id: int
    user_id: int
    subject: Optional[str] = None
    topic: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ChatMessageResponse(BaseModel):
    id: int
    session_id: int
    role: str
    content: str
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ChatSessionEnvelope(BaseModel):
    session: ChatSessionResponse


class ChatSessionListResponse(BaseModel):
    sessions: List[ChatSessionResponse]


class ChatMessageEnvelope(BaseModel):
    message: ChatMessageResponse


class ChatMessageListResponse(BaseModel):
    messages: List[ChatMessageResponse]


class AIChatResponse(BaseModel):
    response: str
