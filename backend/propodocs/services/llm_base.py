"""
Propodocs Backend — Abstract LLM Provider Interface
=====================================================

What:  Abstract base class for one generative backend (Gemini, Anthropic, OpenAI).
Why:   The generation chain walks an ordered list of providers and must not
       care which vendor it is talking to. This is the Strategy pattern; the
       chain is the context object.
How:   Subclasses implement `_complete()` (one raw vendor call). The base
       class wraps it with the shared resilience envelope:
           circuit breaker check → tenacity retries → breaker bookkeeping
       and translates every failure into ProviderError.

Design Decision:
    Why retry inside the provider and fall back outside it:
    Retries absorb transient blips (timeouts, 429s) of one vendor; the chain
    handles persistent failure by switching vendor. Keeping the two apart
    means a provider's retry budget never delays the breaker of another.
"""

import logging
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from propodocs.config import PLACEHOLDER_KEYS, settings
from propodocs.exceptions import CircuitBreakerOpenError, ProviderError
from propodocs.services.circuit_breaker import CircuitBreaker

logger = logging.getLogger(__name__)


@dataclass
class GenerationOptions:
    """Per-request knobs forwarded to the vendor call."""

    json_output: bool = True
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None


class LLMProvider(ABC):
    """
    Contract:
        - `name` is stable and matches an entry of AI_PROVIDER_ORDER
        - `is_configured` is False when no usable API key is set; the chain
          skips such providers without calling them
        - `generate()` returns the raw text of the model's answer, or raises
          ProviderError (CircuitBreakerOpenError when the breaker is open)
    """

    name: str = "base"

    def __init__(self, api_key: str = "", circuit_breaker: Optional[CircuitBreaker] = None):
        self.api_key = api_key
        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            name=self.name,
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
        )

    @property
    def is_configured(self) -> bool:
        key = (self.api_key or "").strip()
        return bool(key) and key not in PLACEHOLDER_KEYS

    @property
    def status(self) -> str:
        """available | unconfigured | circuit_open (reported by /health)."""
        if not self.is_configured:
            return "unconfigured"
        if self.circuit_breaker.is_open:
            return "circuit_open"
        return "available"

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        options: Optional[GenerationOptions] = None,
    ) -> str:
        """
        One provider attempt: breaker check, retried vendor call, bookkeeping.

        Raises:
            CircuitBreakerOpenError: breaker open, no call was made
            ProviderError:           vendor call failed after all retries
        """
        options = options or GenerationOptions()
        call_id = str(uuid.uuid4())[:8]

        self.circuit_breaker.can_execute()

        start_time = time.time()
        try:
            text = await self._complete_with_retry(system_prompt, user_prompt, options, call_id)
        except CircuitBreakerOpenError:
            raise
        except Exception as e:
            self.circuit_breaker.record_failure()
            logger.error(
                "[%s] %s failed after %d attempt(s): %s",
                call_id, self.name, settings.retry_max_attempts, e,
            )
            raise ProviderError(
                provider=self.name,
                message=f"{self.name} request failed: {e}",
                context={"call_id": call_id, "error_type": type(e).__name__},
            ) from e

        self.circuit_breaker.record_success()
        logger.info(
            "[%s] %s completed in %.0fms, %d chars",
            call_id, self.name, (time.time() - start_time) * 1000, len(text or ""),
        )
        return text or ""

    async def _complete_with_retry(
        self,
        system_prompt: str,
        user_prompt: str,
        options: GenerationOptions,
        call_id: str,
    ) -> str:
        # Built per call so tests can override retry settings at runtime
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(Exception),
            stop=stop_after_attempt(settings.retry_max_attempts),
            wait=wait_exponential_jitter(
                initial=settings.retry_min_wait,
                max=settings.retry_max_wait,
                jitter=1,
            ),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                try:
                    return await self._complete(system_prompt, user_prompt, options)
                except Exception as e:
                    logger.warning("[%s] %s call failed: %s", call_id, self.name, e)
                    raise
        return ""

    @abstractmethod
    async def _complete(
        self,
        system_prompt: str,
        user_prompt: str,
        options: GenerationOptions,
    ) -> str:
        """Single vendor call. Raise on any failure; return the answer text."""
        ...
