"""
OpenAI wrapper for single-shot text generation.

Features:
    - One attempt per call (no retry layer; callers add their own if needed)
    - Blank replies rejected with EmptyResponse
    - Transport/API failures wrapped in UpstreamError
    - Client built once at startup and injected

Author: Expense Tracker Team
"""

import time
from typing import Any, Optional

from config import Settings
from services.errors import EmptyResponse, UpstreamError
from services.observability import logger, log_llm_call


class AIService:
    """
    Submit a prompt string, get trimmed text back.

    Args:
        client: An openai.AsyncOpenAI-compatible client, or None when no API
            key is configured (every call then fails with UpstreamError).
        model: Chat-completions model name.
    """

    def __init__(self, client: Optional[Any] = None, model: str = "gpt-4o-mini"):
        self.client = client
        self.model = model

    @classmethod
    def from_settings(cls, settings: Settings) -> "AIService":
        """Build the service from process configuration."""
        client = None
        if settings.openai_api_key:
            from openai import AsyncOpenAI
            client = AsyncOpenAI(api_key=settings.openai_api_key)
            logger.info("OpenAI client initialized", model=settings.openai_model)
        else:
            logger.warning("OPENAI_API_KEY not configured; AI endpoints will fail")
        return cls(client=client, model=settings.openai_model)

    @property
    def configured(self) -> bool:
        return self.client is not None

    async def complete(self, prompt: str, purpose: str = "suggestion") -> str:
        """
        Send one prompt and return the trimmed reply.

        Args:
            prompt: Fully rendered prompt text.
            purpose: Label used in logs and error messages.

        Returns:
            Non-empty, whitespace-trimmed text.

        Raises:
            UpstreamError: Client missing or the API call failed.
            EmptyResponse: The API returned blank text.
        """
        if not self.client:
            raise UpstreamError(f"failed to generate {purpose}: text-generation API key not configured")

        start = time.perf_counter()
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
            )
        except Exception as e:
            logger.error("LLM call failed", purpose=purpose, error=str(e))
            raise UpstreamError(f"failed to generate {purpose}: {e}") from e

        duration_ms = (time.perf_counter() - start) * 1000
        usage = getattr(response, "usage", None)
        log_llm_call(purpose, self.model, duration_ms, getattr(usage, "total_tokens", 0) or 0)

        text = self._extract_text(response)
        if not text or not text.strip():
            raise EmptyResponse(f"failed to generate {purpose}: got empty response from model")
        return text.strip()

    def _extract_text(self, response: Any) -> Optional[str]:
        choices = getattr(response, "choices", None) or []
        if not choices:
            return None
        message = getattr(choices[0], "message", None)
        content = getattr(message, "content", None)
        return content if isinstance(content, str) else None

    async def check_connection(self) -> bool:
        """Check if the OpenAI API is reachable."""
        if not self.client:
            return False
        try:
            await self.client.models.list()
            return True
        except Exception:
            return False
