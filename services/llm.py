"""
LLM JSON completion service.

generate_json(prompt) sends one prompt to an OpenAI-compatible chat endpoint
in JSON mode and returns the parsed object. Nothing here retries on its own;
wrap the client in RetryingLLM (or call with_retry yourself) where needed.
"""

import json
import logging
import re
from typing import Any, Optional, Protocol

from openai import AsyncOpenAI, OpenAIError

from config.settings import settings
from utils.resilience import with_retry

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


class LLMError(Exception):
    """The LLM call failed or returned something that is not JSON."""


class JSONCompletionService(Protocol):
    async def generate_json(self, prompt: str) -> Any:
        ...


def parse_json_response(text: Optional[str]) -> Any:
    """Parse a model reply, tolerating ```json fences and leading chatter."""
    if not text or not text.strip():
        raise LLMError("Empty response from LLM")
    cleaned = _FENCE_RE.sub("", text.strip())
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass
    # Fall back to the outermost object in the reply
    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start != -1 and end > start:
        try:
            return json.loads(cleaned[start:end + 1])
        except json.JSONDecodeError as e:
            raise LLMError(f"Malformed JSON from LLM: {e}") from e
    raise LLMError("No JSON object found in LLM response")


class LLMClient:
    """Async client for OpenAI-compatible chat completions in JSON mode."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        temperature: float = 0.2,
    ):
        self.model = model or settings.LLM_MODEL
        self.temperature = temperature
        self._client = AsyncOpenAI(
            api_key=api_key or settings.LLM_API_KEY or "missing-key",
            base_url=base_url or settings.LLM_BASE_URL,
            timeout=timeout or settings.LLM_TIMEOUT_SECONDS,
            max_retries=0,
        )
        if not (api_key or settings.LLM_API_KEY):
            logger.warning("LLM_API_KEY is not set — LLM calls will fail.")

    async def generate_json(self, prompt: str) -> Any:
        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=self.temperature,
                response_format={"type": "json_object"},
            )
        except OpenAIError as e:
            logger.error(f"[LLMClient] Request failed: {e}")
            raise LLMError(str(e)) from e

        if not response.choices:
            raise LLMError("LLM returned no choices")
        content = response.choices[0].message.content
        logger.debug(f"[LLMClient] Response: {len(content or '')} chars")
        return parse_json_response(content)


class RetryingLLM:
    """Wraps a JSON completion service with exponential-backoff retries."""

    def __init__(self, inner: JSONCompletionService, max_retries: int = settings.LLM_MAX_RETRIES):
        self.inner = inner
        self.max_retries = max_retries

    async def generate_json(self, prompt: str) -> Any:
        return await with_retry(
            lambda: self.inner.generate_json(prompt),
            max_retries=self.max_retries,
            on_retry=lambda attempt, err: logger.warning(f"[LLM] Retry {attempt}: {err}"),
        )
