"""Text generation capability backed by Anthropic.

One ``generate`` capability serves every prompt the engine builds; prompt
builders live with their callers.
"""

import re
from typing import Protocol

from anthropic import AsyncAnthropic

from evidence_engine.core.config import get_settings
from evidence_engine.core.logging import get_logger

logger = get_logger(__name__)

_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?|-?\.\d+")


class GenerationUnavailableError(Exception):
    """No generation backend is configured."""


class TextGenerator(Protocol):
    """Generation capability: prompt in, text out."""

    async def generate(self, prompt: str, max_tokens: int, temperature: float) -> str: ...


class AnthropicGenerator:
    """TextGenerator over the Anthropic messages API."""

    def __init__(self, model: str | None = None, api_key: str | None = None):
        settings = get_settings()
        self.model = model or settings.RERANK_MODEL
        self._api_key = api_key or settings.ANTHROPIC_API_KEY
        self._client: AsyncAnthropic | None = None

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    def _get_client(self) -> AsyncAnthropic:
        if not self._api_key:
            raise GenerationUnavailableError("ANTHROPIC_API_KEY is not configured")
        if self._client is None:
            self._client = AsyncAnthropic(api_key=self._api_key)
        return self._client

    async def generate(self, prompt: str, max_tokens: int, temperature: float) -> str:
        """
        Generate a completion for a single user prompt.

        Raises:
            GenerationUnavailableError: If no API key is configured
        """
        client = self._get_client()
        response = await client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            temperature=temperature,
            messages=[{"role": "user", "content": prompt}],
        )
        return "".join(block.text for block in response.content if getattr(block, "type", "") == "text")


def _strip_llm_fences(raw_output: str) -> str:
    """Strip markdown code fences from LLM output.

    Handles: ```json ... ```, ``` ... ```, leading/trailing whitespace.
    """
    cleaned = raw_output.strip()

    fence_match = re.search(r"```(?:\w+)?\s*\n?(.*?)```", cleaned, re.DOTALL)
    if fence_match:
        return fence_match.group(1).strip()

    if cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def parse_score(raw_output: str) -> float:
    """
    Parse a 0-1 score from a model reply.

    Takes the first number in the reply and clamps it to [0, 1].

    Raises:
        ValueError: If the reply contains no number
    """
    cleaned = _strip_llm_fences(raw_output)
    found = _NUMBER_RE.search(cleaned)
    if not found:
        raise ValueError(f"No score in model reply: {raw_output[:50]!r}")
    return max(0.0, min(1.0, float(found.group(0))))
