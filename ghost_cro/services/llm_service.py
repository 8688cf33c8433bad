"""
LLM Service

Wraps the Claude client used to simulate shoppers and grade a store's
cart-to-checkout flow.
"""
from typing import Optional

from anthropic import Anthropic

from ghost_cro.config import get_settings
from ghost_cro.utils.logger import log

settings = get_settings()


class LLMUnavailableError(Exception):
    """No API key configured or analysis switched off"""


class LLMService:
    """
    Service for Claude completions

    Args:
        client: Pre-built Anthropic client (tests pass a fake); built from
            settings when omitted
    """

    def __init__(self, client=None):
        if client is not None:
            self.client = client
            self.enabled = True
            return

        self.enabled = bool(settings.enable_llm_analysis and settings.anthropic_api_key)
        self.client = None

        if self.enabled:
            try:
                self.client = Anthropic(api_key=settings.anthropic_api_key)
                log.info("LLM Service initialized with Claude")
            except Exception as e:
                log.error(f"Failed to initialize Anthropic client: {str(e)}")
                self.enabled = False
        else:
            log.info("LLM analysis disabled (no API key or feature disabled)")

    def is_available(self) -> bool:
        return self.enabled and self.client is not None

    def complete(self, prompt: str, max_tokens: Optional[int] = None) -> str:
        """Single-turn completion; returns the first text block"""
        if not self.is_available():
            raise LLMUnavailableError("LLM analysis is not configured")

        response = self.client.messages.create(
            model=settings.llm_model,
            max_tokens=max_tokens or settings.llm_max_tokens,
            messages=[{"role": "user", "content": prompt}],
        )

        for block in response.content:
            if getattr(block, "type", "text") == "text":
                return block.text

        return ""


_llm_service: Optional[LLMService] = None


def get_llm_service() -> LLMService:
    """Shared instance; FastAPI dependency"""
    global _llm_service
    if _llm_service is None:
        _llm_service = LLMService()
    return _llm_service
