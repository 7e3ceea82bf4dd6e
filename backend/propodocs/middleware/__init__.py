"""
Propodocs Backend — Middleware Package
========================================

Middleware Chain (outermost first):
    Request → [Request ID] → [Logging] → [Rate Limit] → [GZip] → [CORS] → Route

    Request ID runs first so that the access log and 429 bodies carry it.
    The stricter AI-generation limit is a route dependency, not middleware
    (see rate_limit.StrictRateLimit).
"""
