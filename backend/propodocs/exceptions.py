"""
Propodocs Backend — Custom Exception Hierarchy
================================================

What:  Defines application-specific exceptions for different error scenarios.
Why:   Custom exceptions enable targeted error handling with appropriate HTTP
       status codes and user-friendly messages.
How:   Each exception class carries a message and optional context dict.
       Global exception handlers (registered in main.py) catch these and
       return structured JSON error responses with correct HTTP status codes.

Exception Hierarchy:
    PropodocsError (base)
    ├── ValidationError              → 400 Bad Request
    ├── AuthenticationError          → 401 Unauthorized
    ├── NotFoundError                → 404 Not Found
    ├── RateLimitExceededError       → 429 Too Many Requests
    ├── DatabaseError                → 500 Internal Server Error
    ├── ProviderError                → never reaches a client; triggers fallback
    │   └── CircuitBreakerOpenError
    └── GenerationError
        ├── AllProvidersFailedError  → 502 Bad Gateway
        └── ProvidersUnconfiguredError → 503 Service Unavailable
"""

from typing import Any, Dict, List, Optional


class PropodocsError(Exception):
    """
    Base exception for all Propodocs application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged; only returned where handlers say so)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(PropodocsError):
    """
    Raised when client input fails a business rule.

    HTTP: 400 Bad Request. Schema-level validation stays with FastAPI (422).
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class AuthenticationError(PropodocsError):
    """Missing, malformed, expired or forged bearer token. HTTP: 401."""

    def __init__(
        self,
        message: str = "Authentication required",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(PropodocsError):
    """
    Raised when a requested resource does not exist, or is not owned by the caller.

    HTTP: 404 Not Found. Ownership misses are reported the same way as real
    misses so that ids of other users' records are not confirmed.
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class DatabaseError(PropodocsError):
    """
    Raised when database operations fail unexpectedly.

    HTTP: 500. The message returned to the client is always generic;
    details are logged server-side only.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RateLimitExceededError(PropodocsError):
    """Client exceeded its request window. HTTP: 429 with Retry-After."""

    def __init__(
        self,
        retry_after: int = 60,
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = message or (
            f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


# ══════════════════════════════════════════════════════════════════════════
# Generation errors
# ══════════════════════════════════════════════════════════════════════════


class ProviderError(PropodocsError):
    """
    One provider attempt failed (API error, timeout, unusable output).

    Internal to the generation chain: it is caught there and turns into a
    transition to the next provider.
    """

    def __init__(
        self,
        provider: str,
        message: str = "AI provider call failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["provider"] = provider
        super().__init__(message=message, context=ctx)
        self.provider = provider


class CircuitBreakerOpenError(ProviderError):
    """
    The provider's circuit breaker is OPEN.

    How the breaker works:
        CLOSED (normal) → failures increment counter
        → After N failures → OPEN (reject all calls for recovery_time seconds)
        → After recovery_time → HALF-OPEN (allow one test call)
        → Test succeeds → CLOSED; test fails → OPEN again
    """

    def __init__(
        self,
        provider: str = "unknown",
        recovery_time: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"AI provider '{provider}' is temporarily disabled after repeated failures. "
            f"It will be retried in approximately {recovery_time} seconds."
        )
        ctx = context or {}
        ctx["recovery_time"] = recovery_time
        super().__init__(provider=provider, message=message, context=ctx)
        self.recovery_time = recovery_time


class GenerationError(PropodocsError):
    """Base for terminal failures of the generation chain."""


class ProvidersUnconfiguredError(GenerationError):
    """
    No AI provider has credentials configured.

    HTTP: 503. Raised before any network call is made.
    """

    def __init__(
        self,
        message: str = "AI generation is not configured on this server",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class AllProvidersFailedError(GenerationError):
    """
    Every configured provider was attempted and none produced a usable result.

    HTTP: 502. `attempts` lists provider name and failure reason in order.
    """

    def __init__(
        self,
        attempts: Optional[List[Dict[str, str]]] = None,
        message: str = "All AI providers failed to produce a result. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        self.attempts = attempts or []
        ctx["attempts"] = self.attempts
        super().__init__(message=message, context=ctx)
