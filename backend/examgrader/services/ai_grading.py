"""
AI grading client - one model call per (answer, rubric, max points).

Model output is untrusted: it is decoded through a lenient schema and
normalized so callers always get a fully valid GradingResponse.
"""

import asyncio
import json
import math
import uuid
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from examgrader.config import logger, GradingConfig
from examgrader.errors import MissingApiKeyError, ServiceUnavailableError, TransientProviderError
from examgrader.models import GradingRequest, GradingResponse, AIInlineComment
from examgrader.services.llm import CompletionBackend, CompletionResult
from examgrader.services.reconciler import reconcile_offsets, find_best_quote_index

MODE_INSTRUCTIONS = {
    "NEUTRAL": "Keep a professional, balanced tone. Reward and penalize fairly, sticking to the rubric.",
    "STRICT": (
        "Strict mode: be demanding when awarding points and penalize imprecision, ambiguity "
        "and reasoning errors. Do not give points for vague approximations."
    ),
    "LENIENT": (
        "Lenient mode: favour positive reinforcement, value the student's intent and award "
        "partial credit when there is reasonable evidence, while staying consistent with the rubric."
    ),
}

FALLBACK_COMMENT = "Evaluation completed with a simplified prompt."

# Shortened prompt limits used after a truncated response
FALLBACK_RUBRIC_CHARS = 500
FALLBACK_QUESTION_CHARS = 300
FALLBACK_ANSWER_CHARS = 800
FALLBACK_COMMENT_CHARS = 1000


# ============== PROMPTS ==============

def build_system_prompt(mode: str) -> str:
    return f"""You are a constructive, pedagogical grader. You evaluate exam answers using the professor's RUBRIC.
Your goal is to help the student improve with useful, educational feedback.

GRADING MODE: {mode}.
Mode instructions: {MODE_INSTRUCTIONS.get(mode, MODE_INSTRUCTIONS["NEUTRAL"])}

JSON RESPONSE STRUCTURE:
- "pointsAwarded": numeric score
- "comment": general feedback following a pedagogical structure
- "overallComment": global comment about the answer
- "inlineComments": array of comments about specific fragments of the answer

Each inlineComments element must have:
- "id": unique identifier (e.g. "c1", "c2")
- "startIndex": start position of the commented text
- "endIndex": end position of the commented text
- "text": the comment about that fragment
- "quote": the EXACT phrase (literal substring) of the student's answer you are commenting on.
  It must appear verbatim in the answer. Do not rephrase. Keep it short (about 5-25 words).

Use inlineComments only for long answers (more than 50 words) with several concepts, concrete
mistakes or notable strengths in specific fragments. Never use them for very short answers.

"comment" and "overallComment" may use simple Markdown: **bold** and *italic*. A line starting
with "# " is a short heading. Do not use lists, links, tables or code.

ALWAYS return valid JSON."""


def build_user_prompt(request: GradingRequest) -> str:
    return f"""STUDENT: "{request.student_label}"
RUBRIC: "{request.rubric_text}"
QUESTION: "{request.question_text}" (maximum {_format_points(request.max_points)} points)
STUDENT ANSWER: "{request.answer_text}"

Grade the answer and produce:
1. A **general comment** with strengths, areas to improve, justification and advice
2. **Specific comments** (only if the answer is long) pointing at concrete fragments

Count text indices in characters from the start of the answer (starting at 0).
For every inline comment also include "quote" with the EXACT substring of the answer you are
commenting on. The quote must appear in the answer unchanged.

Return ONLY the JSON."""


def build_fallback_prompts(request: GradingRequest):
    max_points = _format_points(request.max_points)
    system_prompt = f"""Grade this exam answer and return JSON with:
- "pointsAwarded": numeric score (0-{max_points})
- "comment": short comment (at most 200 characters)

Return ONLY the JSON."""
    user_prompt = f"""RUBRIC: "{request.rubric_text[:FALLBACK_RUBRIC_CHARS]}"
QUESTION: "{request.question_text[:FALLBACK_QUESTION_CHARS]}" ({max_points} points maximum)
ANSWER: "{request.answer_text[:FALLBACK_ANSWER_CHARS]}"

Grade it and return JSON."""
    return system_prompt, user_prompt


def _format_points(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


# ============== LENIENT DECODING ==============

def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


class RawInlineComment(BaseModel):
    """Inline comment as the model sent it. Every field is optional."""
    model_config = ConfigDict(extra="ignore")
    id: Optional[str] = None
    startIndex: Any = None
    endIndex: Any = None
    text: Optional[str] = None
    quote: Optional[str] = None

    @field_validator("id", "text", "quote", mode="before")
    @classmethod
    def _coerce_strings(cls, value):
        return _as_text(value)


class RawGradingPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")
    pointsAwarded: Any = None
    comment: Optional[str] = None
    overallComment: Optional[str] = None
    inlineComments: List[Any] = []

    @field_validator("comment", "overallComment", mode="before")
    @classmethod
    def _coerce_strings(cls, value):
        return _as_text(value)

    @field_validator("inlineComments", mode="before")
    @classmethod
    def _coerce_list(cls, value):
        return value if isinstance(value, list) else []


def _strip_code_fence(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        text = text.split("```")[1]
        if text.startswith("json"):
            text = text[4:]
        text = text.strip()
    return text


def parse_payload(text: str) -> Optional[RawGradingPayload]:
    """Decode raw model text. None when it is not a JSON object."""
    try:
        data = json.loads(_strip_code_fence(text or ""))
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None
    return RawGradingPayload.model_validate(data)


def coerce_points(value: Any, max_points: float) -> float:
    """Finite number clamped to [0, max_points]; anything unparseable is 0."""
    if value is None or isinstance(value, bool):
        number = 0.0
    else:
        try:
            number = float(value)
        except (TypeError, ValueError):
            number = 0.0
    if not math.isfinite(number):
        number = 0.0
    return max(0.0, min(number, float(max_points)))


def _new_comment_id() -> str:
    return uuid.uuid4().hex[:9]


# ============== CLIENT ==============

class AIGradingClient:
    """Grades a single answer through a CompletionBackend."""

    def __init__(self, config: GradingConfig, backend: CompletionBackend):
        self.config = config
        self.backend = backend

    async def grade(self, request: GradingRequest) -> GradingResponse:
        if not request.api_key:
            raise MissingApiKeyError("No model API key configured for AI grading")

        result = await self._complete_with_retry(
            build_system_prompt(request.mode),
            build_user_prompt(request),
            request.api_key,
            self.config.max_output_tokens,
        )

        if result.truncated:
            logger.warning(
                f"Model response truncated at {self.config.max_output_tokens} tokens; "
                f"retrying once with simplified prompt"
            )
            return await self._grade_simplified(request)

        payload = parse_payload(result.text)
        if payload is None:
            logger.error(f"Model returned invalid JSON ({len(result.text or '')} chars); defaulting to 0 points")
            return GradingResponse()
        return self.normalize(payload, request)

    async def _grade_simplified(self, request: GradingRequest) -> GradingResponse:
        system_prompt, user_prompt = build_fallback_prompts(request)
        result = await self._complete_with_retry(
            system_prompt, user_prompt, request.api_key, self.config.fallback_max_output_tokens
        )
        payload = parse_payload(result.text)
        if payload is None:
            logger.error("Simplified prompt also returned invalid JSON; defaulting to 0 points")
            return GradingResponse()

        comment = payload.comment if payload.comment is not None else FALLBACK_COMMENT
        return GradingResponse(
            points_awarded=coerce_points(payload.pointsAwarded, request.max_points),
            comment=comment[:FALLBACK_COMMENT_CHARS],
        )

    async def _complete_with_retry(self, system_prompt: str, user_prompt: str, api_key: str,
                                   max_output_tokens: int) -> CompletionResult:
        attempt = 0
        while True:
            try:
                return await self.backend.complete(system_prompt, user_prompt, api_key, max_output_tokens)
            except TransientProviderError as e:
                if attempt >= self.config.max_retries:
                    raise ServiceUnavailableError(
                        f"AI grading service unavailable after {attempt + 1} attempts: {e.message}"
                    ) from e
                delay = min(self.config.retry_base_delay * (2 ** attempt), self.config.retry_max_delay)
                logger.warning(f"Transient model error ({e.message}); retry {attempt + 1} in {delay}s")
                await asyncio.sleep(delay)
                attempt += 1

    def normalize(self, payload: RawGradingPayload, request: GradingRequest) -> GradingResponse:
        """Apply clamping, length caps and offset reconciliation to a decoded payload."""
        cfg = self.config
        inline_comments = []
        seen_ids = set()

        for raw in payload.inlineComments:
            if not isinstance(raw, dict):
                continue
            candidate = RawInlineComment.model_validate(raw)

            text = (candidate.text or "")[:cfg.max_inline_text_length]
            if not text.strip():
                continue

            quote = candidate.quote or None
            if quote and len(quote) > cfg.max_quote_length:
                logger.info(f"Dropping inline comment: quote longer than {cfg.max_quote_length} chars")
                continue
            proposed = {
                "start_index": candidate.startIndex,
                "end_index": candidate.endIndex,
                "quote": quote,
            }
            if quote and cfg.drop_unmatched_quotes and find_best_quote_index(request.answer_text, quote, 0) is None:
                logger.info(f"Dropping inline comment: quote not found in answer ({quote[:40]!r})")
                continue

            offsets = reconcile_offsets(request.answer_text, proposed, cfg.quote_tolerance)
            if offsets is None:
                continue

            comment_id = candidate.id
            if not comment_id or comment_id in seen_ids:
                comment_id = _new_comment_id()
                while comment_id in seen_ids:
                    comment_id = _new_comment_id()
            seen_ids.add(comment_id)

            inline_comments.append(AIInlineComment(
                id=comment_id,
                start_index=offsets[0],
                end_index=offsets[1],
                text=text,
            ))

        return GradingResponse(
            points_awarded=coerce_points(payload.pointsAwarded, request.max_points),
            comment=(payload.comment or "")[:cfg.max_comment_length],
            overall_comment=(payload.overallComment or "")[:cfg.max_comment_length],
            inline_comments=inline_comments,
        )
