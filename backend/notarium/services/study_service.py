"""
Notarium Backend — Study Tools Service
========================================

What:  OCR, summaries, tags, quizzes, study plans and concept explanations.
Why:   One place that owns the prompts and the post-processing of the AI
       answers (sentence trimming, tag parsing, quiz JSON extraction).
How:   Every piece of user text goes through sanitize_ai_input() before it
       is put in a prompt. The LLM itself is reached through LLMService, so
       tests hand in a mock instead of Gemini.
Who:   routes/ai.py.

Fallbacks:
    quick_summary   no API key        → "<title>: <first 80 chars>..."
    auto_tags       empty answer      → ["study", "notes"]
                    provider failure  → ["study", "notes", "learning"]
    ocr             cleaning failure  → raw extracted text
"""

import asyncio
import json
import logging
import re
from typing import Any, Dict, List, Optional

from notarium.config import settings
from notarium.exceptions import LLMServiceError
from notarium.services.file_service import file_service
from notarium.services.gemini_service import gemini_service
from notarium.services.image_service import OUTPUT_MIME_TYPE, preprocess_image
from notarium.services.llm_base import LLMService

logger = logging.getLogger(__name__)

# ── Prompt Injection Filters ──────────────────────────────────────────────
_ROLE_MARKERS = re.compile(r"(system|assistant|user)\s*:", re.IGNORECASE)
_SPECIAL_TOKENS = re.compile(r"<\|.*?\|>")
_INST_MARKERS = re.compile(r"\[INST\]|\[/INST\]")

_SENTENCE = re.compile(r"[^.!?]+[.!?]+")
_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")

DEFAULT_TAGS = ["study", "notes"]
FALLBACK_TAGS = ["study", "notes", "learning"]
MAX_TAGS = 5
SUMMARY_INPUT_CHARS = 3000
TAGS_INPUT_CHARS = 500


def sanitize_ai_input(text: Optional[str], max_chars: Optional[int] = None) -> str:
    """
    Strips role markers, special tokens and [INST] markers, then trims and
    truncates to max_chars (default ai_input_max_chars).
    """
    if not text:
        return ""
    limit = max_chars or settings.ai_input_max_chars
    cleaned = _ROLE_MARKERS.sub("", text)
    cleaned = _SPECIAL_TOKENS.sub("", cleaned)
    cleaned = _INST_MARKERS.sub("", cleaned)
    return cleaned.strip()[:limit]


def first_sentences(text: str, count: int = 2) -> str:
    """First `count` sentences; the whole (stripped) text when none are found."""
    sentences = _SENTENCE.findall(text)
    if not sentences:
        return text.strip()
    return " ".join(s.strip() for s in sentences[:count]).strip()


def parse_tags(text: str) -> List[str]:
    tags = [tag.strip().strip("#").strip() for tag in text.split(",")]
    return [tag for tag in tags if tag][:MAX_TAGS]


def language_rule() -> str:
    return f"Write your answer in {settings.ai_response_language}."


class StudyService:

    def __init__(self, llm: LLMService = gemini_service):
        self.llm = llm

    # ── OCR ───────────────────────────────────────────────────────────────

    async def ocr(self, image: bytes, enhance: bool = True) -> str:
        """
        Validate → preprocess → extract → clean.

        Raises:
            ValidationError: not an allowed image
            LLMServiceError / CircuitBreakerOpenError: extraction failed
        """
        file_service.validate_image(image)
        processed = await asyncio.to_thread(preprocess_image, image, enhance)

        raw_text = await self.llm.extract_text(
            processed,
            OUTPUT_MIME_TYPE,
            "Extract all text from this image of study notes exactly as written. "
            "Preserve line breaks, lists and formulas. "
            "Return only the text. If there is no text, return an empty response.",
        )
        if not raw_text:
            return ""

        try:
            cleaned = await self.llm.generate_text(
                "Clean up and properly format this OCR-extracted text. Fix obvious OCR "
                "errors, improve formatting, add proper line breaks and structure, but "
                "keep all the content intact. Return only the cleaned text without any "
                f"explanations.\n\nRaw OCR Text:\n{sanitize_ai_input(raw_text)}",
                temperature=0.2,
                max_output_tokens=4096,
            )
        except LLMServiceError as e:
            logger.warning("OCR text cleaning failed, returning raw text: %s", e.message)
            return raw_text
        return cleaned or raw_text

    # ── Summaries ─────────────────────────────────────────────────────────

    async def summarize(self, title: str, content: str) -> str:
        """Exactly two sentences, in the configured language."""
        title = sanitize_ai_input(title) or "Untitled"
        content = sanitize_ai_input(content, SUMMARY_INPUT_CHARS)
        answer = await self.llm.generate_text(
            "Summarize this study note in EXACTLY 2 sentences. Focus on the main "
            f'concepts and key points.\n\nTitle: "{title}"\n\nContent:\n{content}\n\n'
            f"IMPORTANT: Your response must be EXACTLY 2 sentences. {language_rule()}",
            temperature=0.3,
            max_output_tokens=150,
        )
        return first_sentences(answer)

    async def quick_summary(self, title: str, content: str) -> str:
        """Upload-form summary. Works without an API key."""
        if not settings.gemini_configured:
            return f"{title or 'Study material'}: {(content or 'No content available')[:80]}..."
        return await self.summarize(title, content)

    # ── Tags ──────────────────────────────────────────────────────────────

    async def auto_tags(self, title: str, content: str) -> List[str]:
        """3-5 tags. Never raises: failures fall back to generic tags."""
        try:
            answer = await self.llm.generate_text(
                "Generate 3-5 relevant study tags for this note. Return ONLY the tags "
                f"as a comma-separated list, nothing else. {language_rule()}\n\n"
                f"Title: {sanitize_ai_input(title) or 'Untitled'}\n"
                f"Content: {sanitize_ai_input(content, TAGS_INPUT_CHARS) or 'No content'}\n\nTags:",
                temperature=0.4,
                max_output_tokens=50,
            )
        except LLMServiceError as e:
            logger.warning("Auto-tagging failed, using fallback tags: %s", e.message)
            return list(FALLBACK_TAGS)
        return parse_tags(answer) or list(DEFAULT_TAGS)

    # ── Quiz ──────────────────────────────────────────────────────────────

    async def quiz(self, title: str, content: str) -> Dict[str, Any]:
        """
        Five multiple-choice questions as {"questions": [...]}.

        Raises:
            LLMServiceError when the answer holds no parseable JSON object.
        """
        answer = await self.llm.generate_text(
            f'Create a quiz with 5 multiple-choice questions based on the study note titled "{sanitize_ai_input(title) or "Untitled"}".\n\n'
            "Return the response as a JSON object with this structure:\n"
            '{"questions": [{"id": 1, "question": "Question text?", '
            '"options": ["A) option 1", "B) option 2", "C) option 3", "D) option 4"], '
            '"correctAnswer": "A", "explanation": "Why this is correct"}]}\n\n'
            f"{language_rule()}\n\nContent:\n{sanitize_ai_input(content)}",
            temperature=0.5,
            max_output_tokens=2048,
        )
        match = _JSON_OBJECT.search(answer)
        if match is None:
            raise LLMServiceError(message="The AI returned a quiz in an invalid format.")
        try:
            quiz = json.loads(match.group(0))
        except json.JSONDecodeError as e:
            logger.warning("Quiz JSON could not be parsed: %s", str(e))
            raise LLMServiceError(message="The AI returned a quiz in an invalid format.")
        if not isinstance(quiz, dict):
            raise LLMServiceError(message="The AI returned a quiz in an invalid format.")
        return quiz

    # ── Study Plan & Concepts ─────────────────────────────────────────────

    async def study_plan(self, subject: str, topic: str) -> str:
        return await self.llm.generate_text(
            f'Create a comprehensive 7-day study plan for a student learning about "{sanitize_ai_input(topic)}" '
            f"in {sanitize_ai_input(subject)}.\n\nThe plan should be realistic for a high school "
            "student, include daily goals and activities, suggest resources and study "
            "techniques, include practice problems and self-assessment, and prepare for exams.\n\n"
            f"Format it as markdown with a clear breakdown per day. {language_rule()}",
            temperature=0.4,
            max_output_tokens=2048,
        )

    async def explain_concept(self, concept: str, subject: Optional[str] = None) -> str:
        return await self.llm.generate_text(
            f'Explain the concept of "{sanitize_ai_input(concept)}" in the context of '
            f"{sanitize_ai_input(subject) or 'General'}.\n\nStart with a simple definition, use "
            "real-world examples, break down complex ideas, mention common misconceptions, "
            "suggest how to remember it and give practice tips.\n\n"
            f"Make it engaging and suitable for high school students. {language_rule()}",
            temperature=0.5,
            max_output_tokens=1500,
        )


study_service = StudyService()
