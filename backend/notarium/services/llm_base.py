"""
Notarium Backend — Abstract LLM Service Interface
===================================================

What:  Contract for the AI provider behind OCR, summaries, tags, quizzes,
       study plans and the tutor chat.
Why:   StudyService and ChatService only depend on this interface, so the
       provider can be swapped (or mocked in tests) without touching them.
How:   Concrete implementations (GeminiService) handle their own retries
       and translate provider errors into LLMServiceError.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

# One prior turn of a conversation: {"role": "user" | "assistant", "content": str}
ChatTurn = Dict[str, str]


class LLMService(ABC):
    """
    Abstract interface for the AI provider.

    Contract:
        - Methods return plain text (stripped), never None
        - Provider failures surface as LLMServiceError after retries
        - An open circuit surfaces as CircuitBreakerOpenError
    """

    @abstractmethod
    async def extract_text(self, image_bytes: bytes, mime_type: str, prompt: str) -> str:
        """
        Read the text in an image (OCR).

        Args:
            image_bytes: Encoded image (already validated and preprocessed)
            mime_type:   MIME type of image_bytes, e.g. "image/jpeg"
            prompt:      Instructions sent alongside the image

        Returns:
            The extracted text; empty string when the image has none.
        """
        ...

    @abstractmethod
    async def generate_text(
        self,
        prompt: str,
        *,
        system_instruction: Optional[str] = None,
        history: Optional[List[ChatTurn]] = None,
        temperature: float = 0.5,
        max_output_tokens: int = 1024,
    ) -> str:
        """
        Single text completion, optionally continuing a conversation.

        history turns come before `prompt`, oldest first.
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Lightweight connectivity test (does NOT consume generation quota).
        Called by the health endpoint.
        """
        ...
