"""
Language-model completion backend.
Uses the official google-generativeai SDK directly; the grading client only
sees the CompletionBackend interface so it can be scripted in tests.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from examgrader.config import logger, GradingConfig
from examgrader.errors import (
    MissingApiKeyError,
    InvalidApiKeyError,
    ProviderError,
    TransientProviderError,
)


@dataclass
class CompletionResult:
    text: str
    # Model stopped because it hit the output token budget
    truncated: bool = False


class CompletionBackend(ABC):
    """A system + user prompt in, raw model text out."""

    @abstractmethod
    async def complete(self, system_prompt: str, user_prompt: str, api_key: str,
                       max_output_tokens: int) -> CompletionResult:
        """
        Raises TransientProviderError for retryable failures, InvalidApiKeyError
        for rejected credentials and ProviderError for any other rejection.
        """


def _is_api_key_message(message: str) -> bool:
    lowered = message.lower()
    return "api key" in lowered or "api_key_invalid" in lowered


def classify_provider_exception(e: Exception) -> Exception:
    """Map an SDK / transport exception to the grading error taxonomy."""
    if isinstance(e, (google_exceptions.Unauthenticated, google_exceptions.PermissionDenied)):
        return InvalidApiKeyError(f"Model provider rejected the API key: {e}")
    if isinstance(e, google_exceptions.InvalidArgument) and _is_api_key_message(str(e)):
        return InvalidApiKeyError(f"Model provider rejected the API key: {e}")
    if isinstance(e, (google_exceptions.TooManyRequests, google_exceptions.ResourceExhausted,
                      google_exceptions.ServerError, google_exceptions.RetryError)):
        return TransientProviderError(f"Model provider temporarily unavailable: {e}")
    if isinstance(e, (asyncio.TimeoutError, ConnectionError)):
        return TransientProviderError(f"Model request failed: {type(e).__name__}")
    if isinstance(e, google_exceptions.GoogleAPICallError):
        return ProviderError(f"Model provider rejected the request: {e}")
    return ProviderError(f"Unexpected model provider failure: {e}")


def _response_text(response) -> str:
    """Concatenate text parts; response.text raises when a candidate was cut off."""
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return ""
    content = getattr(candidates[0], "content", None)
    parts = getattr(content, "parts", None) or []
    return "".join(getattr(part, "text", "") or "" for part in parts)


def _is_truncated(response) -> bool:
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return False
    finish_reason = getattr(candidates[0], "finish_reason", None)
    name = getattr(finish_reason, "name", finish_reason)
    return str(name) == "MAX_TOKENS"


class GeminiCompletionBackend(CompletionBackend):
    """
    Gemini JSON-mode completions.

    genai.configure() is process-global, so the key is applied right before
    each call. The worker processes one job at a time, so calls in flight
    always share the same credential.
    """

    def __init__(self, config: GradingConfig):
        self.config = config

    async def complete(self, system_prompt, user_prompt, api_key, max_output_tokens):
        if not api_key:
            raise MissingApiKeyError("No model API key configured")

        genai.configure(api_key=api_key)
        model = genai.GenerativeModel(
            model_name=self.config.model_name,
            system_instruction=system_prompt,
            generation_config={
                "temperature": self.config.temperature,
                "max_output_tokens": max_output_tokens,
                "response_mime_type": "application/json",
            },
        )

        # The SDK call is synchronous - run it in the default executor
        loop = asyncio.get_event_loop()
        try:
            response = await asyncio.wait_for(
                loop.run_in_executor(
                    None,
                    lambda: model.generate_content(
                        user_prompt,
                        request_options={"timeout": self.config.timeout_seconds},
                    ),
                ),
                timeout=self.config.timeout_seconds,
            )
        except Exception as e:
            mapped = classify_provider_exception(e)
            logger.warning(f"Gemini call failed ({type(e).__name__}) -> {mapped.code}")
            raise mapped from e

        return CompletionResult(text=_response_text(response), truncated=_is_truncated(response))
