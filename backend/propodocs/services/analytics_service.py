"""
Propodocs Backend — Analytics Aggregator
==========================================

What:  Turns raw view/interaction rows into dashboard statistics, and
       proposal rows into the pipeline rollup.
Why:   The storage layer is only asked for equality/range filters. Every
       aggregation (distinct visitors, breakdowns, time series, pipeline
       buckets) happens here, in Python, over rows already fetched.
How:   Two layers:
       1. Pure functions (compute_analytics, compute_sessions,
          compute_pipeline, extract_annual_total). No I/O, no logging side
          effects beyond anomaly warnings; order-independent by construction.
       2. AnalyticsService: fetches rows with simple filters, enforces
          ownership and the view/proposal invariant, delegates to (1).

Complexity:
    compute_analytics   O(V + I), one traversal of each input
    compute_sessions    O(V + I) via a view_id → count map (no per-view query)
    compute_pipeline    O(P) with constant-time status dispatch
"""

import logging
import math
import uuid
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from user_agents import parse as parse_user_agent

from propodocs.exceptions import DatabaseError, NotFoundError, PropodocsError, ValidationError
from propodocs.models.analytics import INTERACTION_TYPES, ProposalInteraction, ProposalView
from propodocs.models.proposal import PROPOSAL_STATUSES, Proposal
from propodocs.schemas.analytics import (
    AnalyticsSummary,
    DateCount,
    InteractionRecord,
    LabelCount,
    PipelineBucket,
    PipelineEntry,
    PipelineSnapshot,
    SessionInteractionsResponse,
    SessionSummary,
    TrackInteractionRequest,
    TrackViewRequest,
    ViewRecord,
    ViewStats,
)

logger = logging.getLogger(__name__)

# ── Interaction dispatch ──────────────────────────────────────────────────
# Each stored type maps to the output bucket it feeds; types without a chart
# (focus) map to None. Anything absent from this table is unrecognized.
HEATMAP = "heatmap"
SCROLL = "scroll"
_CHARTED = {"click": HEATMAP, "hover": HEATMAP, "scroll": SCROLL}
INTERACTION_BUCKETS: Dict[str, Optional[str]] = {
    kind: _CHARTED.get(kind) for kind in INTERACTION_TYPES
}

# ── Pipeline buckets ──────────────────────────────────────────────────────
# Proposal lifecycle order is the display order of the dashboard funnel
PIPELINE_STAGES: Tuple[Tuple[str, str], ...] = tuple(
    (status, status.capitalize()) for status in PROPOSAL_STATUSES
)

UNKNOWN_DEVICE = "unknown"


def _as_utc(value: datetime) -> datetime:
    """Naive timestamps are stored as UTC; make them comparable with aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _coerce_amount(value: Any) -> float:
    """
    Normalizes a stored money amount: real finite numbers pass through,
    everything else (None, bools, strings, NaN, nested objects) is 0.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    if not math.isfinite(value):
        return 0.0
    return float(value)


# ══════════════════════════════════════════════════════════════════════════
# Pure aggregation
# ══════════════════════════════════════════════════════════════════════════


def compute_analytics(
    views: Sequence[ViewRecord],
    interactions: Iterable[InteractionRecord],
) -> AnalyticsSummary:
    """
    Aggregate one proposal's views and interactions into dashboard statistics.

    Inputs must already be filtered to a single proposal; nothing is
    filtered here.

    Views are traversed once. All accumulators (count, distinct sessions,
    total/max duration, per-date, per-device and per-browser counts) are
    updated in that same loop, and avg_duration is derived from them.

    Interactions are traversed once and each one is classified exactly once
    through INTERACTION_BUCKETS.
    """
    total_views = 0
    sessions = set()
    total_duration = 0.0
    max_duration = 0.0
    per_date: Counter = Counter()
    per_device: Counter = Counter()
    per_browser: Counter = Counter()

    for view in views:
        total_views += 1
        sessions.add(view.session_id)

        duration = view.duration_seconds or 0
        total_duration += duration
        if duration > max_duration:
            max_duration = duration

        per_date[_as_utc(view.viewed_at).strftime("%Y-%m-%d")] += 1
        per_device[view.device_type or UNKNOWN_DEVICE] += 1
        if view.browser:
            per_browser[view.browser] += 1

    avg_duration = total_duration / total_views if total_views > 0 else 0

    buckets: Dict[str, List[InteractionRecord]] = {HEATMAP: [], SCROLL: []}
    unrecognized = 0
    for interaction in interactions:
        try:
            target = INTERACTION_BUCKETS[interaction.interaction_type]
        except KeyError:
            unrecognized += 1
            continue
        if target is not None:
            buckets[target].append(interaction)

    if unrecognized:
        logger.warning("Skipped %d interactions with unrecognized type", unrecognized)

    return AnalyticsSummary(
        view_stats=ViewStats(
            total_views=total_views,
            unique_views=len(sessions),
            avg_duration=avg_duration,
            max_duration=max_duration,
        ),
        views_over_time=[
            DateCount(date=date, count=count) for date, count in sorted(per_date.items())
        ],
        device_breakdown=[
            LabelCount(label=label, count=count) for label, count in per_device.most_common()
        ],
        browser_breakdown=[
            LabelCount(label=label, count=count) for label, count in per_browser.most_common()
        ],
        heatmap_data=buckets[HEATMAP],
        scroll_data=buckets[SCROLL],
    )


def compute_sessions(
    views: Iterable[ViewRecord],
    interactions: Iterable[InteractionRecord],
) -> List[SessionSummary]:
    """Attach interaction_count to every view, most recent view first."""
    counts = Counter(interaction.view_id for interaction in interactions)
    sessions = [
        SessionSummary(**view.model_dump(), interaction_count=counts.get(view.id, 0))
        for view in views
    ]
    sessions.sort(key=lambda s: _as_utc(s.viewed_at), reverse=True)
    return sessions


def compute_pipeline(proposals: Iterable[PipelineEntry]) -> PipelineSnapshot:
    """
    Roll proposals up into the five pipeline buckets.

    Bucket membership is decided by status alone: a proposal whose annual
    total is missing or malformed adds 0 to the value but still counts.
    A missing status counts as draft. Unrecognized statuses are left out of
    every bucket and of the grand total, and are returned in
    `unrecognized` for the caller to log.
    """
    breakdown = [PipelineBucket(status=status, label=label) for status, label in PIPELINE_STAGES]
    by_status = {bucket.status: bucket for bucket in breakdown}

    total = 0.0
    unrecognized: List[str] = []
    for proposal in proposals:
        status = proposal.status or "draft"
        bucket = by_status.get(status)
        if bucket is None:
            unrecognized.append(status)
            continue
        amount = _coerce_amount(proposal.annual_total)
        bucket.count += 1
        bucket.value += amount
        total += amount

    return PipelineSnapshot(
        total_pipeline_value=total,
        breakdown=breakdown,
        unrecognized=unrecognized,
    )


def extract_annual_total(calculator_data: Any) -> float:
    """
    Read totals.annualTotal from a proposal's calculator data.

    Every calculator type currently stores its totals at this path; a type
    that shapes totals differently contributes 0.
    """
    if not isinstance(calculator_data, dict):
        return 0.0
    totals = calculator_data.get("totals")
    if not isinstance(totals, dict):
        return 0.0
    return _coerce_amount(totals.get("annualTotal"))


def describe_user_agent(user_agent: Optional[str]) -> Tuple[str, Optional[str], Optional[str]]:
    """
    Derive (device_type, browser, os) from a raw User-Agent header.

    No header at all → ("unknown", None, None). A header without a
    mobile/tablet signature → "desktop". Browser/OS families the parser
    cannot name ("Other") are stored as None.
    """
    if not user_agent:
        return UNKNOWN_DEVICE, None, None

    ua = parse_user_agent(user_agent)
    if ua.is_tablet:
        device = "tablet"
    elif ua.is_mobile:
        device = "mobile"
    elif ua.is_bot:
        device = "bot"
    else:
        device = "desktop"

    browser = ua.browser.family if ua.browser.family != "Other" else None
    os_name = ua.os.family if ua.os.family != "Other" else None
    return device, browser, os_name


# ══════════════════════════════════════════════════════════════════════════
# Persistence orchestration
# ══════════════════════════════════════════════════════════════════════════


class AnalyticsService:
    """
    Fetches tracking rows and hands them to the pure aggregation functions.

    Error Handling Strategy:
        Application exceptions (NotFoundError, ValidationError) propagate
        unchanged; anything else raised by the database layer is wrapped in
        DatabaseError with the original type in its context.
    """

    async def record_view(
        self, db: AsyncSession, payload: TrackViewRequest
    ) -> Tuple[ProposalView, bool]:
        """
        Store one page-load of a shared proposal.

        Returns:
            (view, is_new_session). A session is new when the client did not
            send a session id; the caller uses this to notify the owner once
            per visit instead of once per page-load.
        """
        is_new_session = not payload.session_id
        session_id = payload.session_id or uuid.uuid4().hex[:21]
        device_type, browser, os_name = describe_user_agent(payload.user_agent)

        try:
            view = ProposalView(
                proposal_id=payload.proposal_id,
                link_id=payload.link_id,
                session_id=session_id,
                ip_address=payload.ip_address,
                user_agent=payload.user_agent,
                device_type=device_type,
                browser=browser,
                os=os_name,
            )
            db.add(view)
            await db.flush()
        except Exception as e:
            logger.error("Failed to record view for proposal %s: %s", payload.proposal_id, e)
            raise DatabaseError(
                message="Failed to track view",
                context={"error_type": type(e).__name__},
            ) from e

        logger.info(
            "View %s recorded for proposal %s (session=%s, device=%s)",
            view.id, payload.proposal_id, session_id, device_type,
        )
        return view, is_new_session

    async def update_duration(self, db: AsyncSession, view_id: int, duration_seconds: int) -> None:
        """Heartbeat: record how long the view lasted."""
        try:
            view = await db.get(ProposalView, view_id)
            if view is None:
                raise NotFoundError(resource="view", resource_id=str(view_id))
            view.duration_seconds = duration_seconds
            await db.flush()
        except PropodocsError:
            raise
        except Exception as e:
            logger.error("Failed to update duration of view %s: %s", view_id, e)
            raise DatabaseError(
                message="Failed to update duration",
                context={"view_id": view_id},
            ) from e

    async def record_interaction(
        self, db: AsyncSession, payload: TrackInteractionRequest
    ) -> ProposalInteraction:
        """
        Store one interaction event.

        Raises:
            NotFoundError:   the referenced view does not exist
            ValidationError: the view belongs to another proposal
        """
        try:
            view = await db.get(ProposalView, payload.view_id)
            if view is None:
                raise NotFoundError(resource="view", resource_id=str(payload.view_id))
            if view.proposal_id != payload.proposal_id:
                raise ValidationError(
                    message="Interaction proposal does not match the proposal of its view",
                    field="proposalId",
                    context={"view_id": payload.view_id, "proposal_id": payload.proposal_id},
                )
            if payload.interaction_type not in INTERACTION_TYPES:
                # Stored anyway: the aggregator skips it and reports the anomaly
                logger.warning(
                    "Recording interaction with unrecognized type '%s' on view %s",
                    payload.interaction_type, payload.view_id,
                )

            interaction = ProposalInteraction(
                view_id=payload.view_id,
                proposal_id=payload.proposal_id,
                interaction_type=payload.interaction_type,
                element_id=payload.element_id,
                element_type=payload.element_type,
                x_position=payload.x_position,
                y_position=payload.y_position,
                scroll_depth=payload.scroll_depth,
            )
            db.add(interaction)
            await db.flush()
            return interaction
        except PropodocsError:
            raise
        except Exception as e:
            logger.error("Failed to record interaction on view %s: %s", payload.view_id, e)
            raise DatabaseError(
                message="Failed to track interaction",
                context={"error_type": type(e).__name__},
            ) from e

    async def get_analytics(
        self, db: AsyncSession, proposal_id: int, user_id: int
    ) -> AnalyticsSummary:
        """Aggregated statistics for one proposal owned by user_id."""
        await self._ensure_owned(db, proposal_id, user_id)
        views, interactions = await self._fetch_events(db, proposal_id)
        summary = compute_analytics(views, interactions)
        logger.debug(
            "Analytics for proposal %s: %d views, %d unique",
            proposal_id, summary.view_stats.total_views, summary.view_stats.unique_views,
        )
        return summary

    async def get_sessions(
        self, db: AsyncSession, proposal_id: int, user_id: int
    ) -> List[SessionSummary]:
        """Every view of one proposal with its interaction count."""
        await self._ensure_owned(db, proposal_id, user_id)
        views, interactions = await self._fetch_events(db, proposal_id)
        return compute_sessions(views, interactions)

    async def get_session_interactions(
        self, db: AsyncSession, session_id: str
    ) -> SessionInteractionsResponse:
        """The earliest view of a session plus its interactions in time order (session replay)."""
        try:
            result = await db.execute(
                select(ProposalView)
                .where(ProposalView.session_id == session_id)
                .order_by(ProposalView.viewed_at.asc())
                .limit(1)
            )
            view = result.scalars().first()
            if view is None:
                raise NotFoundError(resource="session", resource_id=session_id)

            result = await db.execute(
                select(ProposalInteraction)
                .where(ProposalInteraction.view_id == view.id)
                .order_by(ProposalInteraction.timestamp.asc(), ProposalInteraction.id.asc())
            )
            interactions = [InteractionRecord.model_validate(row) for row in result.scalars().all()]
        except PropodocsError:
            raise
        except Exception as e:
            logger.error("Failed to load interactions of session %s: %s", session_id, e)
            raise DatabaseError(
                message="Failed to get session interactions",
                context={"session_id": session_id},
            ) from e

        return SessionInteractionsResponse(
            view=ViewRecord.model_validate(view),
            interactions=interactions,
        )

    async def get_pipeline(self, db: AsyncSession, user_id: int) -> PipelineSnapshot:
        """Pipeline rollup over the user's non-archived proposals."""
        try:
            result = await db.execute(
                select(Proposal.id, Proposal.status, Proposal.calculator_data).where(
                    Proposal.user_id == user_id,
                    Proposal.is_archived.is_(False),
                )
            )
            rows = result.all()
        except Exception as e:
            logger.error("Failed to load proposals of user %s: %s", user_id, e)
            raise DatabaseError(
                message="Failed to get pipeline analytics",
                context={"user_id": user_id},
            ) from e

        snapshot = compute_pipeline(
            PipelineEntry(status=row.status, annual_total=extract_annual_total(row.calculator_data))
            for row in rows
        )
        if snapshot.unrecognized:
            logger.warning(
                "Pipeline for user %s excluded %d proposals with unrecognized status: %s",
                user_id, len(snapshot.unrecognized), sorted(set(snapshot.unrecognized)),
            )
        return snapshot

    # ── Internal helpers ──────────────────────────────────────────────────

    async def _ensure_owned(self, db: AsyncSession, proposal_id: int, user_id: int) -> None:
        try:
            result = await db.execute(
                select(Proposal.id).where(Proposal.id == proposal_id, Proposal.user_id == user_id)
            )
            found = result.scalar_one_or_none()
        except Exception as e:
            logger.error("Ownership lookup failed for proposal %s: %s", proposal_id, e)
            raise DatabaseError(
                message="Could not load the proposal. Please try again.",
                context={"proposal_id": proposal_id},
            ) from e
        if found is None:
            raise NotFoundError(resource="proposal", resource_id=str(proposal_id))

    async def _fetch_events(
        self, db: AsyncSession, proposal_id: int
    ) -> Tuple[List[ViewRecord], List[InteractionRecord]]:
        try:
            view_rows = await db.execute(
                select(ProposalView).where(ProposalView.proposal_id == proposal_id)
            )
            interaction_rows = await db.execute(
                select(ProposalInteraction).where(ProposalInteraction.proposal_id == proposal_id)
            )
            views = [ViewRecord.model_validate(row) for row in view_rows.scalars().all()]
            interactions = [
                InteractionRecord.model_validate(row) for row in interaction_rows.scalars().all()
            ]
        except Exception as e:
            logger.error("Failed to load events of proposal %s: %s", proposal_id, e)
            raise DatabaseError(
                message="Failed to get analytics",
                context={"proposal_id": proposal_id},
            ) from e
        return views, interactions


# ── Singleton Instance ────────────────────────────────────────────────────
analytics_service = AnalyticsService()
