"""
Propodocs Backend — Anthropic Provider
========================================

What:  LLMProvider backed by the anthropic SDK (Messages API).
How:   AsyncAnthropic client created lazily on first call; the answer is the
       text of the first content block. Anthropic has no JSON response mode,
       so JSON output relies on the prompt plus fence stripping in the chain.
"""

import logging
from typing import Optional

import anthropic

from propodocs.config import settings
from propodocs.services.circuit_breaker import CircuitBreaker
from propodocs.services.llm_base import GenerationOptions, LLMProvider

logger = logging.getLogger(__name__)


class AnthropicProvider(LLMProvider):
    name = "anthropic"

    def __init__(
        self,
        api_key: str = "",
        model: str = "",
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        super().__init__(api_key=api_key, circuit_breaker=circuit_breaker)
        self.model_name = model or settings.anthropic_model
        self._client: Optional[anthropic.AsyncAnthropic] = None

    @property
    def client(self) -> anthropic.AsyncAnthropic:
        if self._client is None:
            self._client = anthropic.AsyncAnthropic(
                api_key=self.api_key,
                timeout=settings.ai_request_timeout,
                max_retries=0,  # retries are owned by tenacity in LLMProvider
            )
        return self._client

    async def _complete(
        self,
        system_prompt: str,
        user_prompt: str,
        options: GenerationOptions,
    ) -> str:
        response = await self.client.messages.create(
            model=self.model_name,
            max_tokens=options.max_tokens or settings.anthropic_max_tokens,
            temperature=(
                options.temperature if options.temperature is not None else settings.ai_temperature
            ),
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
        )
        for block in response.content:
            if block.type == "text":
                return block.text
        return ""
