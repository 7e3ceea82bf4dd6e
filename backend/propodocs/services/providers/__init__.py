"""
Propodocs Backend — AI Provider Registry
==========================================

What:  Builds the ordered provider list the generation chain walks.
How:   AI_PROVIDER_ORDER decides the order; every listed provider is built
       even when unconfigured so /health can report it. The chain skips
       unconfigured ones.
"""

from typing import Dict, List, Type

from propodocs.config import Settings
from propodocs.services.llm_base import LLMProvider
from propodocs.services.providers.anthropic_provider import AnthropicProvider
from propodocs.services.providers.gemini_provider import GeminiProvider
from propodocs.services.providers.openai_provider import OpenAIProvider

PROVIDER_CLASSES: Dict[str, Type[LLMProvider]] = {
    GeminiProvider.name: GeminiProvider,
    AnthropicProvider.name: AnthropicProvider,
    OpenAIProvider.name: OpenAIProvider,
}


def build_providers(settings: Settings) -> List[LLMProvider]:
    """Instantiate providers in configured priority order."""
    return [
        PROVIDER_CLASSES[name](api_key=settings.provider_api_key(name))
        for name in settings.provider_order_list
    ]


__all__ = [
    "AnthropicProvider",
    "GeminiProvider",
    "OpenAIProvider",
    "PROVIDER_CLASSES",
    "build_providers",
]
