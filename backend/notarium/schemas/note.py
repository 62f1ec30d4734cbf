"""
Notarium Backend — Note Request/Response Schemas
==================================================

What:  API contract for creating, editing, listing and moderating notes.
Why:   Strict input validation plus a stable response shape that enriches
       the row with author, subject and "did I like this" fields.

Design Decision:
    Schemas are separate from the SQLAlchemy models because responses carry
    computed fields (author_name, liked_by_me, image_urls) and the request
    bodies accept things that are never stored as-is (base64 images, the
    enhance flag).
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from notarium.models.note import NOTE_STATUSES, NOTE_VISIBILITIES, STATUS_PUBLISHED, VISIBILITY_EVERYONE


def _check_choice(value: Optional[str], allowed, name: str) -> Optional[str]:
    if value is not None and value not in allowed:
        raise ValueError(f"Invalid {name} '{value}'. Must be one of: {list(allowed)}")
    return value


def _clean_tags(tags: Optional[List[str]]) -> Optional[List[str]]:
    if tags is None:
        return None
    cleaned = []
    for tag in tags:
        tag = tag.strip()
        if tag and tag not in cleaned:
            cleaned.append(tag[:50])
    return cleaned[:20]


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class NoteCreateRequest(BaseModel):
    """
    What:  Body of POST /api/notes.

    images:   base64 strings, optionally as data URIs
              ("data:image/jpeg;base64,..."); each is validated, preprocessed
              and stored. The upload is split into several notes when the
              images do not fit in one.
    enhance:  grayscale + contrast stretch before storing (scanned pages)
    """
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=500)
    subject_id: int = Field(gt=0)
    content: Optional[str] = Field(default=None, max_length=100_000)
    extracted_text: Optional[str] = Field(default=None, max_length=100_000)
    quick_summary: Optional[str] = Field(default=None, max_length=5_000)
    tags: List[str] = Field(default_factory=list)
    images: List[str] = Field(default_factory=list)
    status: str = Field(default=STATUS_PUBLISHED)
    visibility: str = Field(default=VISIBILITY_EVERYONE)
    scheduled_publish_at: Optional[datetime] = None
    enhance: bool = False

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Title is required")
        return v

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        return _check_choice(v, NOTE_STATUSES, "status")

    @field_validator("visibility")
    @classmethod
    def validate_visibility(cls, v: str) -> str:
        return _check_choice(v, NOTE_VISIBILITIES, "visibility")

    @field_validator("tags")
    @classmethod
    def clean_tags(cls, v: List[str]) -> List[str]:
        return _clean_tags(v)


class NoteUpdateRequest(BaseModel):
    """Owner edit. Only the fields present in the body are changed."""
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=500)
    content: Optional[str] = Field(default=None, max_length=100_000)
    extracted_text: Optional[str] = Field(default=None, max_length=100_000)
    summary: Optional[str] = Field(default=None, max_length=20_000)
    tags: Optional[List[str]] = None
    visibility: Optional[str] = None

    @field_validator("visibility")
    @classmethod
    def validate_visibility(cls, v: Optional[str]) -> Optional[str]:
        return _check_choice(v, NOTE_VISIBILITIES, "visibility")

    @field_validator("tags")
    @classmethod
    def clean_tags(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return _clean_tags(v)


class AdminNoteUpdateRequest(NoteUpdateRequest):
    """Admins can additionally move a note between draft and published."""
    status: Optional[str] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: Optional[str]) -> Optional[str]:
        return _check_choice(v, NOTE_STATUSES, "status")


class NoteSummaryUpdateRequest(BaseModel):
    summary: str = Field(min_length=1, max_length=20_000)


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class NoteResponse(BaseModel):
    """
    What:  A note enriched with author and subject details.
    Who:   Returned by every note endpoint (lists, detail, create, edit).

    image_urls are ready-to-use paths under /api/files/; image_paths are the
    raw storage paths kept for clients that build their own URLs.
    """
    id: int
    title: str
    description: Optional[str] = None
    subject_id: int
    subject_name: Optional[str] = None
    author_id: int
    author_name: Optional[str] = None
    author_photo: Optional[str] = None
    author_class: Optional[str] = None
    extracted_text: Optional[str] = None
    summary: Optional[str] = None
    content: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    image_paths: List[str] = Field(default_factory=list)
    image_urls: List[str] = Field(default_factory=list)
    status: str
    visibility: str
    scheduled_publish_at: Optional[datetime] = None
    parent_note_id: Optional[int] = None
    part_number: int = 1
    likes: int = 0
    admin_upvotes: int = 0
    liked_by_me: bool = False
    upvoted_by_me: bool = False
    relevance_score: Optional[int] = Field(default=None, description="Search results only")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class NoteEnvelope(BaseModel):
    success: bool = True
    note: NoteResponse


class NoteListResponse(BaseModel):
    notes: List[NoteResponse]


class NoteCreateResponse(BaseModel):
    """
    POST /api/notes result. `note` is part 1; `notes` lists every part in
    order; total_parts == len(notes).
    """
    success: bool = True
    note: NoteResponse
    notes: List[NoteResponse]
    total_parts: int


class LikeResponse(BaseModel):
    liked: bool
    likes: int


class NoteDeleteResponse(BaseModel):
    success: bool = True
    points_deducted: float = Field(description="Points removed from the author's score")
