"""
Async Claude client backing the AI-analysis collaborator.

Uses the ``anthropic`` Python SDK (``AsyncAnthropic``).  Agents never see
this class directly: they receive ``AIClient.perform_ai_analysis`` as an
injected ``(prompt) -> dict`` callable.

Key features:
    - Automatic retry with exponential backoff via ``@with_retry`` for
      rate limits, timeouts, connection and server errors
    - Token usage tracking (input + output)
    - JSON parsing with markdown-fence stripping

Error contract of ``perform_ai_analysis``:
    - ``ConfigurationError`` when no model or API key is configured
    - ``FormatError`` when the response is not a JSON object
    - ``TransientCollaboratorError`` when the API keeps failing
"""

import json
import logging
import os
from typing import Any, Dict, List, Optional

import anthropic
from anthropic import AsyncAnthropic

from copilot.config import get_settings
from copilot.exceptions import (
    ConfigurationError,
    FormatError,
    RetryExhaustedError,
    TransientCollaboratorError,
)
from copilot.utils import with_retry

logger = logging.getLogger(__name__)

RETRYABLE_API_ERRORS = (
    anthropic.APIConnectionError,
    anthropic.APITimeoutError,
    anthropic.RateLimitError,
    anthropic.InternalServerError,
)

RAW_EXCERPT_CHARS = 200

ANALYSIS_SYSTEM_PROMPT = (
    "You are a content analytics assistant for a blog platform. "
    "Answer with a single JSON object and nothing else."
)


def parse_json_response(text: str) -> Dict[str, Any]:
    """
    Parse a model response into a JSON object.

    Markdown code fences (` ```json ... ``` `) are stripped first.

    Raises:
        FormatError: If the text is not valid JSON or not a JSON object.
    """
    cleaned = (text or "").strip()
    if cleaned.startswith("```"):
        # Remove opening fence (e.g. ```json)
        first_newline = cleaned.find("\n")
        if first_newline != -1:
            cleaned = cleaned[first_newline + 1 :]
        else:
            cleaned = cleaned[3:]
        # Remove closing fence
        if cleaned.rstrip().endswith("```"):
            cleaned = cleaned.rstrip()[:-3]

    try:
        data = json.loads(cleaned.strip())
    except json.JSONDecodeError as exc:
        raise FormatError(
            f"AI returned an invalid response format: {exc}",
            raw_excerpt=cleaned[:RAW_EXCERPT_CHARS],
        ) from exc

    if not isinstance(data, dict):
        raise FormatError(
            f"AI response must be a JSON object, got {type(data).__name__}",
            raw_excerpt=cleaned[:RAW_EXCERPT_CHARS],
        )
    return data


class AIClient:
    """Async Claude client for structured content analysis.

    Args:
        api_key: Anthropic API key.  Falls back to the
            ``ANTHROPIC_API_KEY`` environment variable.
        model: Model identifier.  Defaults to ``Settings.ai_model``.
        max_tokens: Response token budget.

    Raises:
        ConfigurationError: If no API key or model is available.

    Usage::

        client = AIClient()
        registry = AgentRegistry(ai_analyzer=client.perform_ai_analysis)
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> None:
        settings = get_settings()
        key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        if not key:
            raise ConfigurationError("ANTHROPIC_API_KEY is not set")
        self.model = model or settings.ai_model
        if not self.model:
            raise ConfigurationError("No AI model configured")
        self.max_tokens = max_tokens or settings.ai_max_tokens
        self.client = AsyncAnthropic(api_key=key)
        self._total_input_tokens: int = 0
        self._total_output_tokens: int = 0

    # ------------------------------------------------------------------
    # Text generation
    # ------------------------------------------------------------------

    @with_retry(max_attempts=3, retryable_exceptions=RETRYABLE_API_ERRORS)
    async def generate(
        self,
        prompt: str,
        system: Optional[str] = None,
        temperature: float = 0.3,
    ) -> str:
        """Generate a plain-text response from the model.

        Args:
            prompt: The user message content.
            system: Optional system prompt.
            temperature: Sampling temperature (0.0 -- 1.0).

        Returns:
            The model's text response.
        """
        messages: List[Dict[str, str]] = [{"role": "user", "content": prompt}]

        kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "max_tokens": self.max_tokens,
            "temperature": temperature,
        }
        if system:
            kwargs["system"] = system

        response = await self.client.messages.create(**kwargs)

        # Track token usage
        self._total_input_tokens += response.usage.input_tokens
        self._total_output_tokens += response.usage.output_tokens

        logger.debug(
            "Claude generate: in=%d out=%d tokens",
            response.usage.input_tokens,
            response.usage.output_tokens,
        )

        return "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )

    # ------------------------------------------------------------------
    # Structured analysis
    # ------------------------------------------------------------------

    async def perform_ai_analysis(self, prompt: str) -> Dict[str, Any]:
        """
        Send *prompt* to the model and return the parsed JSON object.

        Raises:
            FormatError: If the response is not a JSON object.
            TransientCollaboratorError: If the API call fails.
        """
        try:
            text = await self.generate(prompt, system=ANALYSIS_SYSTEM_PROMPT)
        except RetryExhaustedError as exc:
            raise TransientCollaboratorError("anthropic", str(exc)) from exc
        except anthropic.APIError as exc:
            raise TransientCollaboratorError("anthropic", str(exc)) from exc
        return parse_json_response(text)

    # ------------------------------------------------------------------
    # Usage tracking
    # ------------------------------------------------------------------

    def get_usage(self) -> Dict[str, int]:
        """Cumulative token usage since construction."""
        return {
            "input_tokens": self._total_input_tokens,
            "output_tokens": self._total_output_tokens,
            "total_tokens": self._total_input_tokens + self._total_output_tokens,
        }
