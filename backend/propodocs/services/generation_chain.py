"""
Propodocs Backend — Generation Fallback Chain
===============================================

What:  Runs one generation request against an ordered list of AI providers,
       moving to the next on any failure, until one yields a usable result.
Why:   No single vendor is reliable enough to gate calculator and proposal
       generation. Users care that *some* model answers; the response says
       which one did.
How:   Strictly sequential walk over providers:

           NOT_ATTEMPTED → TRYING(0) ─ok→ SUCCESS
                              │fail
                              ▼
                           TRYING(1) ─ok→ SUCCESS
                              │fail
                              ▼
                             ...   → ALL_FAILED

       A provider attempt fails on: ProviderError (includes circuit open),
       text that is not valid JSON after fence stripping (JSON requests),
       empty/null output, or a parser rejection (ValueError/TypeError).
       Unconfigured providers are skipped and never called.

Error Outcomes:
    - No configured provider        → ProvidersUnconfiguredError (503)
    - Every configured one failed   → AllProvidersFailedError (502) with the
                                      attempt trail in its context
"""

import enum
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from propodocs.config import settings
from propodocs.exceptions import (
    AllProvidersFailedError,
    CircuitBreakerOpenError,
    ProviderError,
    ProvidersUnconfiguredError,
)
from propodocs.services.llm_base import GenerationOptions, LLMProvider
from propodocs.services.providers import build_providers

logger = logging.getLogger(__name__)

Parser = Callable[[Any], Any]

# Opening fence (optionally tagged json) at the very start, closing fence at the very end
_FENCE_RE = re.compile(r"^\s*```(?:json)?[ \t]*\n?|\n?[ \t]*```\s*$", re.IGNORECASE)


def strip_code_fences(text: str) -> str:
    """
    Remove markdown code fences models like to wrap JSON in.

    Example:
        >>> strip_code_fences('```json\\n{"a": 1}\\n```')
        '{"a": 1}'
    """
    return _FENCE_RE.sub("", text or "").strip()


class ChainState(str, enum.Enum):
    NOT_ATTEMPTED = "not_attempted"
    TRYING = "trying"
    SUCCESS = "success"
    ALL_FAILED = "all_failed"


class AttemptOutcome(str, enum.Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    CIRCUIT_OPEN = "circuit_open"
    ERROR = "error"
    INVALID_OUTPUT = "invalid_output"


@dataclass
class Attempt:
    provider: str
    outcome: AttemptOutcome
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, str]:
        data = {"provider": self.provider, "outcome": self.outcome.value}
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class GenerationResult:
    """Parsed artifact plus the provider that produced it."""

    value: Any
    provider: str
    attempts: List[Attempt] = field(default_factory=list)


class InvalidOutputError(ValueError):
    """The provider answered, but the answer is unusable."""


class GenerationChain:
    """
    Ordered fallback over LLMProvider instances.

    The chain holds no per-request state; each run() keeps its own attempt
    trail, so one instance is shared across concurrent requests.
    """

    def __init__(self, providers: Sequence[LLMProvider]):
        self.providers = list(providers)

    @property
    def configured_providers(self) -> List[LLMProvider]:
        return [p for p in self.providers if p.is_configured]

    def provider_statuses(self) -> Dict[str, str]:
        return {p.name: p.status for p in self.providers}

    async def run(
        self,
        system_prompt: str,
        user_prompt: str,
        options: Optional[GenerationOptions] = None,
        parser: Optional[Parser] = None,
    ) -> GenerationResult:
        """
        Walk the providers until one produces a result `parser` accepts.

        Args:
            system_prompt: Operation-specific instructions
            user_prompt:   The request content
            options:       json_output=True (default) parses the text as JSON
                           after fence stripping; False hands the stripped
                           text to the parser
            parser:        Optional callable validating/transforming the
                           decoded value. Raise ValueError or TypeError to
                           reject it and fall through to the next provider.

        Raises:
            ProvidersUnconfiguredError: no provider has credentials
            AllProvidersFailedError:    every configured provider failed
        """
        options = options or GenerationOptions()
        attempts: List[Attempt] = []
        state = ChainState.NOT_ATTEMPTED

        if not self.configured_providers:
            logger.error("Generation requested but no AI provider is configured")
            raise ProvidersUnconfiguredError()

        for index, provider in enumerate(self.providers):
            if not provider.is_configured:
                attempts.append(Attempt(provider.name, AttemptOutcome.SKIPPED, "not configured"))
                continue

            state = ChainState.TRYING
            logger.debug("Generation chain %s(%d): %s", state.value, index, provider.name)

            try:
                text = await provider.generate(system_prompt, user_prompt, options)
                value = self._decode(text, options, parser)
            except CircuitBreakerOpenError as e:
                attempts.append(Attempt(provider.name, AttemptOutcome.CIRCUIT_OPEN, e.message))
                logger.warning("Skipping %s: circuit open", provider.name)
                continue
            except ProviderError as e:
                attempts.append(Attempt(provider.name, AttemptOutcome.ERROR, e.message))
                logger.warning("Provider %s failed, falling back: %s", provider.name, e.message)
                continue
            except (ValueError, TypeError) as e:
                attempts.append(Attempt(provider.name, AttemptOutcome.INVALID_OUTPUT, str(e)))
                logger.warning("Provider %s returned unusable output: %s", provider.name, e)
                continue

            state = ChainState.SUCCESS
            attempts.append(Attempt(provider.name, AttemptOutcome.SUCCESS))
            logger.info(
                "Generation succeeded with %s after %d attempt(s)",
                provider.name,
                sum(1 for a in attempts if a.outcome != AttemptOutcome.SKIPPED),
            )
            return GenerationResult(value=value, provider=provider.name, attempts=attempts)

        state = ChainState.ALL_FAILED
        trail = [a.to_dict() for a in attempts]
        logger.error("Generation chain %s: %s", state.value, trail)
        raise AllProvidersFailedError(attempts=trail)

    @staticmethod
    def _decode(text: str, options: GenerationOptions, parser: Optional[Parser]) -> Any:
        cleaned = strip_code_fences(text)
        if not cleaned:
            raise InvalidOutputError("empty response")

        if options.json_output:
            value = json.loads(cleaned)
            if value is None or value == {} or value == []:
                raise InvalidOutputError("empty JSON value")
        else:
            value = cleaned

        return parser(value) if parser is not None else value


# ── Singleton Instance ────────────────────────────────────────────────────
# Shared so that each provider's circuit breaker state survives across requests
generation_chain = GenerationChain(build_providers(settings))
