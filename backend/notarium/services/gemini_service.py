"""
Notarium Backend — Google Gemini Service Implementation
=========================================================

What:  LLMService implementation on Google Gemini: image OCR and text
       generation for every AI feature.
Why:   One choke point for the provider, so retry, circuit breaking and
       latency logging apply to every AI call the same way.
How:   google-generativeai SDK. Images are sent inline as
       {"mime_type", "data"} parts; system prompts go through the model's
       system_instruction; generation settings through generation_config.

Resilience Strategy:
    1. Tenacity retry with exponential backoff + jitter for transient failures
    2. Circuit breaker so a Gemini outage fails fast instead of making every
       student wait through three timeouts
    3. 60s per-call timeout
    4. Every failure is translated into LLMServiceError (503)
"""

import asyncio
import logging
import time
import uuid
from typing import Any, Dict, List, Optional

import google.generativeai as genai
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from notarium.config import settings
from notarium.exceptions import CircuitBreakerOpenError, LLMServiceError
from notarium.services.llm_base import ChatTurn, LLMService

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 60


# ══════════════════════════════════════════════════════════════════════════
# Circuit Breaker Implementation
# ══════════════════════════════════════════════════════════════════════════

class CircuitBreaker:
    """
    Implements the circuit breaker pattern to prevent cascade failures.

    State Machine:
        CLOSED (normal operation)
            → On failure: increment failure_count
            → When failure_count >= threshold: transition to OPEN

        OPEN (rejecting all requests)
            → All calls raise CircuitBreakerOpenError immediately
            → After recovery_timeout seconds: transition to HALF_OPEN

        HALF_OPEN (testing recovery)
            → Allow the next request through
            → On success: transition to CLOSED (reset failure_count)
            → On failure: transition back to OPEN (reset timer)

    Not shared between worker processes; each uvicorn worker keeps its own.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, failure_threshold: int = 5, recovery_timeout: int = 60):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None

    def can_execute(self) -> bool:
        """
        Check if a request is allowed through.

        Raises:
            CircuitBreakerOpenError if OPEN and the recovery timeout has not
            elapsed yet.
        """
        if self.state == self.OPEN:
            elapsed = time.time() - (self.last_failure_time or 0)
            if elapsed < self.recovery_timeout:
                raise CircuitBreakerOpenError(
                    recovery_time=max(1, int(self.recovery_timeout - elapsed))
                )
            logger.info("Circuit breaker transitioning to HALF_OPEN after %.1fs", elapsed)
            self.state = self.HALF_OPEN
        return True

    def record_success(self) -> None:
        if self.state == self.HALF_OPEN:
            logger.info("Circuit breaker transitioning to CLOSED (service recovered)")
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = time.time()

        if self.state == self.HALF_OPEN:
            logger.warning("Circuit breaker returning to OPEN (test request failed)")
            self.state = self.OPEN
        elif self.failure_count >= self.failure_threshold and self.state != self.OPEN:
            logger.warning(
                "Circuit breaker OPENING after %d consecutive failures",
                self.failure_count,
            )
            self.state = self.OPEN


# ══════════════════════════════════════════════════════════════════════════
# Gemini Service
# ══════════════════════════════════════════════════════════════════════════

class GeminiService(LLMService):
    """
    Google Gemini implementation of LLMService.

    Error Handling Chain:
        API call fails → tenacity retries (retry_max_attempts, backoff)
        → all retries fail → circuit breaker failure + LLMServiceError
        → threshold reached → later calls rejected instantly (503)
        → recovery timeout → one test call (HALF_OPEN)
    """

    def __init__(self):
        if settings.gemini_configured:
            genai.configure(api_key=settings.gemini_api_key)

        self.circuit_breaker = CircuitBreaker(
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
        )

        logger.info(
            "GeminiService initialized with model=%s, "
            "circuit_breaker(threshold=%d, recovery=%ds)",
            settings.gemini_model,
            settings.cb_failure_threshold,
            settings.cb_recovery_timeout,
        )

    @property
    def configured(self) -> bool:
        return settings.gemini_configured

    # ── Public API ────────────────────────────────────────────────────────

    async def extract_text(self, image_bytes: bytes, mime_type: str, prompt: str) -> str:
        contents = [prompt, {"mime_type": mime_type, "data": image_bytes}]
        return await self._guarded_generate(
            contents,
            description="ocr",
            generation_config={"temperature": 0.1, "max_output_tokens": 4096},
        )

    async def generate_text(
        self,
        prompt: str,
        *,
        system_instruction: Optional[str] = None,
        history: Optional[List[ChatTurn]] = None,
        temperature: float = 0.5,
        max_output_tokens: int = 1024,
    ) -> str:
        if history:
            contents: List[Any] = [
                {
                    "role": "model" if turn["role"] == "assistant" else "user",
                    "parts": [turn["content"]],
                }
                for turn in history
            ]
            contents.append({"role": "user", "parts": [prompt]})
        else:
            contents = [prompt]

        return await self._guarded_generate(
            contents,
            description="generate",
            system_instruction=system_instruction,
            generation_config={
                "temperature": temperature,
                "max_output_tokens": max_output_tokens,
            },
        )

    async def health_check(self) -> bool:
        """
        Lists models (no token cost) to verify the key and connectivity.
        Runs in a worker thread because the SDK call is blocking.
        """
        if not self.configured:
            return False
        try:
            models = await asyncio.to_thread(lambda: list(genai.list_models()))
            target = f"models/{settings.gemini_model}"
            if target not in [m.name for m in models]:
                logger.warning("Configured model %s not found in available models", target)
            return True
        except Exception as e:
            logger.warning("Gemini health check failed: %s", str(e))
            return False

    # ── Internals ─────────────────────────────────────────────────────────

    async def _guarded_generate(
        self,
        contents: List[Any],
        description: str,
        system_instruction: Optional[str] = None,
        generation_config: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Circuit breaker check, retried call, then success/failure bookkeeping.
        """
        request_id = str(uuid.uuid4())[:8]

        if not self.configured:
            raise LLMServiceError(
                message="The AI service is not configured on this server.",
                context={"request_id": request_id},
            )

        self.circuit_breaker.can_execute()

        try:
            result = await self._call_gemini_with_retry(
                contents, request_id, description, system_instruction, generation_config
            )
        except Exception as e:
            self.circuit_breaker.record_failure()
            logger.error(
                "[%s] Gemini %s failed after %d attempt(s): %s",
                request_id,
                description,
                settings.retry_max_attempts,
                str(e),
            )
            raise LLMServiceError(
                message="The AI service failed after multiple attempts. Please try again later.",
                retry_after=self.circuit_breaker.recovery_timeout,
                context={
                    "request_id": request_id,
                    "attempts": settings.retry_max_attempts,
                    "error_type": type(e).__name__,
                },
            )

        self.circuit_breaker.record_success()
        return result

    @retry(
        retry=retry_if_exception_type(Exception),
        stop=stop_after_attempt(settings.retry_max_attempts),
        wait=wait_exponential_jitter(
            initial=settings.retry_min_wait,
            max=settings.retry_max_wait,
            jitter=1,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _call_gemini_with_retry(
        self,
        contents: List[Any],
        request_id: str,
        description: str,
        system_instruction: Optional[str],
        generation_config: Optional[Dict[str, Any]],
    ) -> str:
        """
        The actual API call. Separate from _guarded_generate so that only the
        call is retried, never the circuit breaker check.
        """
        start_time = time.time()
        try:
            model = genai.GenerativeModel(
                settings.gemini_model,
                system_instruction=system_instruction,
            )
            response = await model.generate_content_async(
                contents,
                generation_config=generation_config,
                request_options={"timeout": REQUEST_TIMEOUT_SECONDS},
            )
            text = response.text.strip() if response.text else ""
        except Exception as e:
            logger.warning(
                "[%s] Gemini %s call failed after %.0fms: %s",
                request_id,
                description,
                (time.time() - start_time) * 1000,
                str(e),
            )
            raise

        logger.info(
            "[%s] Gemini %s completed in %.0fms, %d chars",
            request_id,
            description,
            (time.time() - start_time) * 1000,
            len(text),
        )
        return text


# ── Singleton Instance ────────────────────────────────────────────────────
# Holds the circuit breaker state, which must be shared across requests
gemini_service = GeminiService()
