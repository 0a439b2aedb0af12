"""
Participant and evaluator calls against an OpenAI-compatible endpoint.

==============================================================================
FEATURES IMPLEMENTED IN THIS MODULE:
==============================================================================

1. PARTICIPANT CALLS
   - call_interviewer(): next interviewer turn, parsed from {"message", "done"}
     JSON; anything else is treated as a plain message that does not end
     the interview
   - call_persona(): simulated interviewee answer, plain text

2. EVALUATOR CALL
   - call_evaluator(): one structured-output request using the schema built
     from the current settings; returns the parsed JSON object or raises

3. RATE LIMIT HANDLING WITH EXPONENTIAL BACKOFF (Feature: rate-limit-retry)
   - Only 429 / rate-limit errors are retried; everything else propagates
   - Delay doubles each attempt, capped at RETRY_MAX_DELAY, with 0-10% jitter

==============================================================================
"""

import asyncio
import json
import logging
import random
from dataclasses import dataclass
from typing import Any, Dict, Generic, List, Optional, TypeVar

from . import config
from .models import TranscriptEntry, TranscriptRole
from .schema_builder import extract_json

logger = logging.getLogger(__name__)

T = TypeVar('T')

_ROLE_LABELS = {
    TranscriptRole.interviewer: "Interviewer",
    TranscriptRole.persona: "Interviewee",
    TranscriptRole.user: "User",
}


@dataclass
class ParticipantReply:
    content: str
    done: bool = False


# ==============================================================================
# RETRY RESULT WRAPPER (Feature: rate-limit-retry)
# ==============================================================================
@dataclass
class RetryResult(Generic[T]):
    """Result from retry_with_backoff including retry statistics.

    Attributes:
        result: The actual return value from the wrapped function
        retry_count: Number of retries that occurred (0 = success on first try)
        had_rate_limit: True if any rate limit error was encountered
    """
    result: T
    retry_count: int
    had_rate_limit: bool


def is_rate_limit_error(error: Exception) -> bool:
    if getattr(error, "status_code", None) == 429:
        return True
    error_str = str(error).lower()
    return (
        '429' in error_str or
        'rate' in error_str and 'limit' in error_str or
        'too many requests' in error_str
    )


async def retry_with_backoff(func, *args, max_attempts=None, base_delay=None, **kwargs) -> RetryResult:
    """
    Retry an async function with exponential backoff for rate limit errors.

    Args:
        func: The async function to call
        max_attempts: Maximum number of attempts (default RETRY_MAX_ATTEMPTS)
        base_delay: Base delay in seconds, doubled each retry (default RETRY_BASE_DELAY)
        *args, **kwargs: Arguments to pass to the function

    Raises:
        The last exception if all retries fail, or any non-rate-limit error immediately
    """
    max_attempts = max_attempts or config.RETRY_MAX_ATTEMPTS
    base_delay = config.RETRY_BASE_DELAY if base_delay is None else base_delay
    last_exception = None
    retry_count = 0

    for attempt in range(max_attempts):
        try:
            result = await func(*args, **kwargs)
            return RetryResult(result=result, retry_count=retry_count, had_rate_limit=retry_count > 0)
        except Exception as e:
            if not is_rate_limit_error(e):
                raise

            last_exception = e
            retry_count += 1

            if attempt < max_attempts - 1:
                delay = min(base_delay * (2 ** attempt), config.RETRY_MAX_DELAY)
                wait_time = delay + random.uniform(0, delay * 0.1)
                logger.warning(
                    f"Rate limit hit (attempt {attempt + 1}/{max_attempts}). "
                    f"Retrying in {wait_time:.1f}s... Error: {str(e)[:100]}"
                )
                await asyncio.sleep(wait_time)
            else:
                logger.error(f"Max retries ({max_attempts}) exceeded for rate limit error: {str(e)[:200]}")

    raise last_exception


def format_transcript(transcript: List[TranscriptEntry]) -> str:
    return "\n\n".join(f"{_ROLE_LABELS[entry.role]}: {entry.content}" for entry in transcript)


def parse_interviewer_reply(text: str) -> ParticipantReply:
    """Read {"message": str, "done": bool}; fall back to the raw text, not done."""
    try:
        parsed = extract_json(text)
    except json.JSONDecodeError:
        parsed = None
    if isinstance(parsed, dict) and isinstance(parsed.get("message"), str) and isinstance(parsed.get("done"), bool):
        return ParticipantReply(content=parsed["message"], done=parsed["done"])
    logger.warning(f"Interviewer reply was not the expected JSON, using raw text: {text[:200]}")
    return ParticipantReply(content=text, done=False)


class LLMAgents:
    """The three model-backed roles. Models are chosen per call from stored settings."""

    def __init__(self, openai_client=None):
        self._client = openai_client

    def _openai(self):
        if self._client is None:
            from openai import OpenAI  # Lazy import to speed up server startup
            logger.info(f"Initializing OpenAI-compatible client (base_url: {config.LLM_BASE_URL})")
            self._client = OpenAI(base_url=config.LLM_BASE_URL, api_key=config.LLM_API_KEY)
        return self._client

    async def _complete(self, model: str, system: str, user: str, **options) -> str:
        messages = [
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ]

        async def _call():
            return await asyncio.to_thread(
                self._openai().chat.completions.create,
                model=model,
                messages=messages,
                **options,
            )

        retry_result = await retry_with_backoff(_call)
        if retry_result.had_rate_limit:
            logger.warning(f"{model} call completed after {retry_result.retry_count} rate-limit retries")
        response = retry_result.result
        return (response.choices[0].message.content or "").strip()

    async def call_interviewer(self, prompt_text: str, initial_question: str,
                               transcript: List[TranscriptEntry], task_topic: Optional[str] = None,
                               model: Optional[str] = None) -> ParticipantReply:
        user = f"INITIAL_QUESTION:\n{initial_question}\n\n"
        if task_topic:
            user += f"TASK_TOPIC:\n{task_topic}\n\n"
        user += f"TRANSCRIPT:\n{format_transcript(transcript) or '(No conversation yet)'}"
        text = await self._complete(model or config.AGENT_A_MODEL, prompt_text, user,
                                    temperature=0.7, max_tokens=1000)
        return parse_interviewer_reply(text)

    async def call_persona(self, prompt_text: str, profile_content: str,
                           transcript: List[TranscriptEntry], last_question: str,
                           model: Optional[str] = None) -> ParticipantReply:
        user = (
            f"PROFILE:\n{profile_content}\n\n"
            f"TRANSCRIPT:\n{format_transcript(transcript)}\n\n"
            f"QUESTION:\n{last_question}"
        )
        text = await self._complete(model or config.AGENT_B_MODEL, prompt_text, user,
                                    temperature=0.8, max_tokens=1000)
        return ParticipantReply(content=text)

    async def call_evaluator(self, prompt_text: str, initial_question: str,
                             transcript: List[TranscriptEntry], response_format: Dict[str, Any],
                             model: Optional[str] = None) -> Dict[str, Any]:
        user = f"INITIAL_QUESTION:\n{initial_question}\n\nTRANSCRIPT:\n{format_transcript(transcript)}"
        text = await self._complete(model or config.AGENT_C_MODEL, prompt_text, user,
                                    temperature=0.3, max_tokens=2000, response_format=response_format)
        logger.debug(f"Evaluator response: {text[:300]}...")
        return extract_json(text)


# Singleton instance
_agents: Optional[LLMAgents] = None


def get_agents() -> LLMAgents:
    global _agents
    if _agents is None:
        _agents = LLMAgents()
    return _agents
