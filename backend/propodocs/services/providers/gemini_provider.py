"""
Propodocs Backend — Google Gemini Provider
============================================

What:  LLMProvider backed by the google-generativeai SDK.
Why:   First in the default chain: generous free tier and native JSON mode
       (response_mime_type="application/json") for schema generation.
How:   The SDK keeps the API key in module-level state (genai.configure),
       so it is configured once at construction. A GenerativeModel is built
       per call because the system instruction differs per operation.
"""

import logging
from typing import Optional

import google.generativeai as genai

from propodocs.config import settings
from propodocs.services.circuit_breaker import CircuitBreaker
from propodocs.services.llm_base import GenerationOptions, LLMProvider

logger = logging.getLogger(__name__)


class GeminiProvider(LLMProvider):
    name = "gemini"

    def __init__(
        self,
        api_key: str = "",
        model: str = "",
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        super().__init__(api_key=api_key, circuit_breaker=circuit_breaker)
        self.model_name = model or settings.gemini_model
        if self.is_configured:
            genai.configure(api_key=self.api_key)
        logger.info(
            "GeminiProvider initialized with model=%s (configured=%s)",
            self.model_name, self.is_configured,
        )

    async def _complete(
        self,
        system_prompt: str,
        user_prompt: str,
        options: GenerationOptions,
    ) -> str:
        generation_config = {
            "temperature": (
                options.temperature if options.temperature is not None else settings.ai_temperature
            ),
        }
        if options.json_output:
            generation_config["response_mime_type"] = "application/json"
        if options.max_tokens:
            generation_config["max_output_tokens"] = options.max_tokens

        model = genai.GenerativeModel(self.model_name, system_instruction=system_prompt)
        response = await model.generate_content_async(
            user_prompt,
            generation_config=generation_config,
            request_options={"timeout": settings.ai_request_timeout},
        )
        return response.text.strip() if response.text else ""
