# ============================================================================
# TEXT GENERATION CLIENT
# ============================================================================
# STATUS: Infrastructure - Generative text backend
# PURPOSE: Thin async client over the Anthropic Messages API
# CREATED: 19 OCT 2026
# ============================================================================
"""
Text Generation Client

The executor and hand-written tasks only depend on the TextGenerator
protocol. AnthropicTextGenerator is the production implementation;
tests pass an AsyncMock or a small fake.

Per-call settings come from the merged TaskConfig:
- max_tokens, temperature, model
- timeout_seconds (from timeout_ms)
- max_retries (from retry_attempts)
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import anthropic

from core.config.defaults import LLMDefaults, get_defaults

logger = logging.getLogger(__name__)


@dataclass
class GeneratedText:
    """Text returned by the backend plus its token usage."""
    content: str
    tokens_used: int = 0
    model: Optional[str] = None


class TextGenerator(Protocol):
    async def generate(
        self,
        prompt: str,
        *,
        max_tokens: int,
        temperature: float,
        model: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        max_retries: Optional[int] = None,
    ) -> GeneratedText: ...


class AnthropicTextGenerator:
    """TextGenerator backed by anthropic.AsyncAnthropic."""

    def __init__(
        self,
        client: anthropic.AsyncAnthropic,
        default_model: str,
    ):
        self._client = client
        self.default_model = default_model

    @classmethod
    def from_env(cls, defaults: Optional[LLMDefaults] = None) -> "AnthropicTextGenerator":
        """
        Build a client from ANTHROPIC_API_KEY / LLM_MODEL.

        Raises:
            RuntimeError: If no API key is configured
        """
        defaults = defaults or get_defaults().llm
        if not defaults.api_key:
            raise RuntimeError(
                "Text generation unavailable. Set ANTHROPIC_API_KEY environment variable."
            )
        client = anthropic.AsyncAnthropic(
            api_key=defaults.api_key,
            max_retries=defaults.max_retries,
        )
        return cls(client, default_model=defaults.model)

    async def generate(
        self,
        prompt: str,
        *,
        max_tokens: int,
        temperature: float,
        model: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        max_retries: Optional[int] = None,
    ) -> GeneratedText:
        client = self._client
        if max_retries is not None:
            client = client.with_options(max_retries=max_retries)

        kwargs: Dict[str, Any] = {
            "model": model or self.default_model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if timeout_seconds is not None:
            kwargs["timeout"] = timeout_seconds

        response = await client.messages.create(**kwargs)

        text = "".join(
            block.text for block in response.content
            if getattr(block, "type", None) == "text"
        )
        total_tokens = response.usage.input_tokens + response.usage.output_tokens
        logger.debug(f"Generated {len(text)} chars with {kwargs['model']} ({total_tokens} tokens)")
        return GeneratedText(content=text, tokens_used=total_tokens, model=kwargs["model"])


def parse_json_response(raw_text: str) -> Any:
    """
    Parse JSON from a model response, handling markdown code fences.

    Raises:
        json.JSONDecodeError: If the text cannot be parsed as JSON
    """
    content = raw_text.strip()

    if content.startswith("```"):
        content = content.split("\n", 1)[1] if "\n" in content else content[3:]

    if content.endswith("```"):
        content = content.rsplit("```", 1)[0]

    return json.loads(content.strip())


__all__ = [
    "GeneratedText",
    "TextGenerator",
    "AnthropicTextGenerator",
    "parse_json_response",
]
