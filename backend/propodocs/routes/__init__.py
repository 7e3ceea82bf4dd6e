"""
Propodocs Backend — API Routes Package
========================================

Route Inventory:
    - analytics.py:   /api/analytics/*     (tracking, dashboards, pipeline)
    - calculators.py: /api/calculators/*   (calculator generation, block edits)
    - ai.py:          /api/ai/*            (proposal content generation)
    - health.py:      GET /health          (service health check)

Routes stay thin: extract request data, call one service method, return its
result. Errors propagate as PropodocsError subclasses to the handlers in main.
"""
