"""
Propodocs Backend — OpenAI Provider
=====================================

What:  LLMProvider backed by the openai SDK (Chat Completions).
How:   AsyncOpenAI client created lazily; JSON requests use
       response_format={"type": "json_object"}.
"""

import logging
from typing import Optional

import openai

from propodocs.config import settings
from propodocs.services.circuit_breaker import CircuitBreaker
from propodocs.services.llm_base import GenerationOptions, LLMProvider

logger = logging.getLogger(__name__)


class OpenAIProvider(LLMProvider):
    name = "openai"

    def __init__(
        self,
        api_key: str = "",
        model: str = "",
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        super().__init__(api_key=api_key, circuit_breaker=circuit_breaker)
        self.model_name = model or settings.openai_model
        self._client: Optional[openai.AsyncOpenAI] = None

    @property
    def client(self) -> openai.AsyncOpenAI:
        if self._client is None:
            self._client = openai.AsyncOpenAI(
                api_key=self.api_key,
                timeout=settings.ai_request_timeout,
                max_retries=0,
            )
        return self._client

    async def _complete(
        self,
        system_prompt: str,
        user_prompt: str,
        options: GenerationOptions,
    ) -> str:
        kwargs = {
            "model": self.model_name,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": (
                options.temperature if options.temperature is not None else settings.ai_temperature
            ),
        }
        if options.json_output:
            kwargs["response_format"] = {"type": "json_object"}
        if options.max_tokens:
            kwargs["max_tokens"] = options.max_tokens

        response = await self.client.chat.completions.create(**kwargs)
        return response.choices[0].message.content or ""
