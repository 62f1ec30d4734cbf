"""
Notarium Backend — AI Feature Schemas
=======================================

Bodies and results of the OCR, summary, tagging, quiz, study plan and
concept endpoints. The OCR body keeps the camelCase field names the web
client already sends (imageBase64, mimeType).
"""

from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, Field, model_validator


class OCRRequest(BaseModel):
    image_base64: str = Field(
        min_length=1,
        validation_alias=AliasChoices("imageBase64", "image_base64"),
        description="Base64 image, optionally as a data URI",
    )
    mime_type: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("mimeType", "mime_type")
    )
    enhance: bool = True


class OCRResponse(BaseModel):
    success: bool = True
    text: str


class SummaryRequest(BaseModel):
    """`content` falls back to `description` for clients that send that."""
    title: str = Field(default="", max_length=200)
    content: Optional[str] = Field(default=None, max_length=100_000)
    description: Optional[str] = Field(default=None, max_length=100_000)

    @model_validator(mode="after")
    def require_text(self) -> "SummaryRequest":
        if not (self.content or self.description):
            raise ValueError("Content is required")
        return self

    @property
    def text(self) -> str:
        return self.content or self.description or ""


class SummaryResponse(BaseModel):
    success: bool = True
    summary: str


class AutoTagsRequest(BaseModel):
    title: str = Field(default="", max_length=200)
    content: str = Field(default="", max_length=100_000)


class AutoTagsResponse(BaseModel):
    success: bool = True
    tags: List[str]


class NoteSummaryRequest(BaseModel):
    """Both optional: the note's own title and text are used when omitted."""
    title: Optional[str] = Field(default=None, max_length=200)
    content: Optional[str] = Field(default=None, max_length=100_000)


class NoteSummaryResponse(BaseModel):
    summary: str


class QuizResponse(BaseModel):
    quiz: Dict[str, Any] = Field(description='{"questions": [{question, options, correct, explanation}]}')


class StudyPlanRequest(BaseModel):
    subject: str = Field(min_length=1, max_length=100)
    topic: str = Field(min_length=1, max_length=500)


class StudyPlanResponse(BaseModel):
    plan: str


class ConceptRequest(BaseModel):
    concept: str = Field(min_length=1, max_length=500)
    subject: Optional[str] = Field(default=None, max_length=100)


class ConceptResponse(BaseModel):
    explanation: str
