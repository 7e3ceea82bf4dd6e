# Services package init
"""
Propodocs Backend — Services Layer
====================================

What:  Business logic between routes (HTTP) and the database.
How:   Services take sessions and domain objects, apply the rules, and return
       schema models. Routes use the module-level singletons.

Service Inventory:
    - AnalyticsService: view/interaction tracking, dashboards, pipeline rollup
    - GenerationChain: ordered provider fallback over LLMProvider adapters
    - CalculatorService: calculator schemas and single-block edits
    - ProposalContentService: proposal drafts, document import, copy enhancement
    - NotificationService: owner notifications (log, email, SMS)

The aggregation functions in analytics_service (compute_analytics,
compute_sessions, compute_pipeline) are pure and take plain records, so they
are tested without a database.
"""
