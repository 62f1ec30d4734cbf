"""
Notarium Backend — Gemini Service Unit Tests (Mocked)
=======================================================

What:  Tests for GeminiService and its circuit breaker with the Google SDK
       patched out.
Why:   Tests must not make real API calls (costs money, requires network).
How:   Patches the genai module; RETRY_MAX_ATTEMPTS=1 in conftest keeps
       failures from sleeping through backoff.

What we test:
    ✅ Circuit breaker state machine
    ✅ OCR and text generation return stripped text
    ✅ Chat history is mapped onto Gemini roles
    ✅ Failures become LLMServiceError and eventually open the circuit
    ✅ Unconfigured key fails fast
    ❌ Real API calls
"""

import time
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from notarium.config import settings
from notarium.exceptions import CircuitBreakerOpenError, LLMServiceError
from notarium.services.gemini_service import CircuitBreaker, GeminiService


class TestCircuitBreaker:

    def test_initial_state_is_closed(self):
        cb = CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        assert cb.state == "closed"
        assert cb.failure_count == 0

    def test_stays_closed_under_threshold(self):
        cb = CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        for _ in range(4):
            cb.record_failure()
        assert cb.state == "closed"
        assert cb.can_execute()

    def test_opens_at_threshold_and_rejects(self):
        cb = CircuitBreaker(failure_threshold=3, recovery_timeout=60)
        for _ in range(3):
            cb.record_failure()
        assert cb.state == "open"
        with pytest.raises(CircuitBreakerOpenError) as exc_info:
            cb.can_execute()
        assert 1 <= exc_info.value.recovery_time <= 60

    def test_half_open_after_recovery_timeout(self):
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=0)
        cb.record_failure()
        time.sleep(0.01)
        assert cb.can_execute()
        assert cb.state == "half_open"

    def test_half_open_failure_reopens(self):
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=0)
        cb.record_failure()
        time.sleep(0.01)
        cb.can_execute()
        cb.record_failure()
        assert cb.state == "open"

    def test_half_open_success_closes(self):
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=0)
        cb.record_failure()
        time.sleep(0.01)
        cb.can_execute()
        cb.record_success()
        assert cb.state == "closed"
        assert cb.failure_count == 0


def mock_model(mock_genai, text="answer", side_effect=None):
    model = MagicMock()
    if side_effect is not None:
        model.generate_content_async = AsyncMock(side_effect=side_effect)
    else:
        model.generate_content_async = AsyncMock(return_value=MagicMock(text=text))
    mock_genai.GenerativeModel.return_value = model
    return model


class TestGeminiServiceMocked:

    @pytest.mark.asyncio
    async def test_extract_text_success(self):
        with patch("notarium.services.gemini_service.genai") as mock_genai:
            model = mock_model(mock_genai, text="  Hukum Newton I\n")
            service = GeminiService()

            result = await service.extract_text(b"jpeg-bytes", "image/jpeg", "Read this")

            assert result == "Hukum Newton I"
            contents = model.generate_content_async.await_args.args[0]
            assert contents[0] == "Read this"
            assert contents[1] == {"mime_type": "image/jpeg", "data": b"jpeg-bytes"}

    @pytest.mark.asyncio
    async def test_generate_text_maps_history_roles(self):
        with patch("notarium.services.gemini_service.genai") as mock_genai:
            model = mock_model(mock_genai, text="Sure")
            service = GeminiService()

            await service.generate_text(
                "And the third law?",
                system_instruction="You are a tutor",
                history=[
                    {"role": "user", "content": "What is inertia?"},
                    {"role": "assistant", "content": "Resistance to change in motion."},
                ],
            )

            contents = model.generate_content_async.await_args.args[0]
            assert [turn["role"] for turn in contents] == ["user", "model", "user"]
            assert contents[-1]["parts"] == ["And the third law?"]
            _, kwargs = mock_genai.GenerativeModel.call_args
            assert kwargs["system_instruction"] == "You are a tutor"

    @pytest.mark.asyncio
    async def test_empty_response_text_is_empty_string(self):
        with patch("notarium.services.gemini_service.genai") as mock_genai:
            mock_model(mock_genai, text=None)
            service = GeminiService()
            assert await service.generate_text("hello") == ""

    @pytest.mark.asyncio
    async def test_failure_raises_llm_error(self):
        with patch("notarium.services.gemini_service.genai") as mock_genai:
            mock_model(mock_genai, side_effect=RuntimeError("quota exceeded"))
            service = GeminiService()

            with pytest.raises(LLMServiceError) as exc_info:
                await service.generate_text("hello")

            assert exc_info.value.retry_after == service.circuit_breaker.recovery_timeout
            assert service.circuit_breaker.failure_count == 1

    @pytest.mark.asyncio
    async def test_repeated_failures_open_circuit(self):
        with patch("notarium.services.gemini_service.genai") as mock_genai:
            model = mock_model(mock_genai, side_effect=RuntimeError("down"))
            service = GeminiService()

            for _ in range(service.circuit_breaker.failure_threshold):
                with pytest.raises(LLMServiceError):
                    await service.generate_text("hello")

            calls_before = model.generate_content_async.await_count
            with pytest.raises(CircuitBreakerOpenError):
                await service.generate_text("hello")
            assert model.generate_content_async.await_count == calls_before

    @pytest.mark.asyncio
    async def test_unconfigured_key_fails_fast(self):
        with patch("notarium.services.gemini_service.genai") as mock_genai, \
             patch.object(settings, "gemini_api_key", ""):
            model = mock_model(mock_genai)
            service = GeminiService()

            with pytest.raises(LLMServiceError, match="not configured"):
                await service.generate_text("hello")
            model.generate_content_async.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_health_check(self):
        with patch("notarium.services.gemini_service.genai") as mock_genai:
            listed = MagicMock()
            listed.name = f"models/{settings.gemini_model}"
            mock_genai.list_models.return_value = [listed]

            assert await GeminiService().health_check() is True

    @pytest.mark.asyncio
    async def test_health_check_failure_is_false(self):
        with patch("notarium.services.gemini_service.genai") as mock_genai:
            mock_genai.list_models.side_effect = RuntimeError("network")
            assert await GeminiService().health_check() is False
