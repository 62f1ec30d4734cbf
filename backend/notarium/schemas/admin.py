"""
Notarium Backend — Admin Moderation Schemas
=============================================

Request bodies for suspensions and warnings, and the shapes of the
activity log and usage report.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, EmailStr, Field

from notarium.schemas.note import NoteResponse


class AdminVerifyRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=128)


class AdminVerifyResponse(BaseModel):
    success: bool
    isAdmin: bool


class SuspendRequest(BaseModel):
    days: int = Field(default=7, ge=1, le=3650)
    reason: Optional[str] = Field(default=None, max_length=1000)


class SuspendResponse(BaseModel):
    success: bool = True
    suspension_end_date: datetime
    reason: str


class WarnRequest(BaseModel):
    message: str = Field(min_length=1, max_length=1000)


class WarnResponse(BaseModel):
    success: bool = True
    message: str


class AdminLikeResponse(BaseModel):
    liked: bool


class AdminNoteResponse(NoteResponse):
    admin_liked: bool = False


class AdminNoteListResponse(BaseModel):
    notes: List[AdminNoteResponse]


class ActivityLogEntry(BaseModel):
    id: int
    admin_id: Optional[int] = None
    admin_email: str
    action_type: str
    target_type: Optional[str] = None
    target_id: Optional[int] = None
    details: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ActivityLogResponse(BaseModel):
    logs: List[ActivityLogEntry]
    total: int


# ── Usage Report ──────────────────────────────────────────────────────────


class UsageOverview(BaseModel):
    total_users: int
    active_users_7d: int
    active_users_30d: int
    total_notes: int
    notes_7d: int
    notes_30d: int
    total_likes: int
    total_admin_upvotes: int
    total_chat_sessions: int
    chat_sessions_7d: int
    chat_sessions_30d: int
    suspended_users: int
    warned_users: int


class TopContributor(BaseModel):
    id: int
    display_name: str
    email: str
    user_class: Optional[str] = Field(default=None, serialization_alias="class")
    notes_uploaded: int
    total_likes: int
    total_admin_upvotes: int
    points: float


class ClassCount(BaseModel):
    user_class: Optional[str] = Field(default=None, serialization_alias="class")
    count: int


class SubjectUsage(BaseModel):
    id: int
    name: str
    note_count: int
    total_likes: int


class DailyCount(BaseModel):
    date: str
    count: int


class UsageStatsResponse(BaseModel):
    overview: UsageOverview
    top_contributors: List[TopContributor]
    users_by_class: List[ClassCount]
    notes_by_class: List[ClassCount]
    popular_subjects: List[SubjectUsage]
    daily_notes: List[DailyCount]
    daily_registrations: List[DailyCount]
