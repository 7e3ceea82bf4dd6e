"""
Propodocs Backend — Analytics Aggregator Tests
================================================

What we test:
    ✅ compute_analytics: counts, distinct sessions, durations, breakdowns,
       time series, interaction partitioning, sparse input
    ✅ compute_sessions: interaction counts and newest-first order
    ✅ compute_pipeline / extract_annual_total: buckets, malformed totals,
       missing and unrecognized statuses
    ✅ AnalyticsService against SQLite: tracking, the view/proposal
       invariant, ownership scoping, archived proposals, session replay
"""

from datetime import datetime, timedelta, timezone

import pytest

from propodocs.exceptions import NotFoundError, ValidationError
from propodocs.models import INTERACTION_TYPES, PROPOSAL_STATUSES, Proposal, ProposalView
from propodocs.schemas.analytics import (
    InteractionRecord,
    PipelineEntry,
    TrackInteractionRequest,
    TrackViewRequest,
    ViewRecord,
)
from propodocs.services.analytics_service import (
    INTERACTION_BUCKETS,
    PIPELINE_STAGES,
    analytics_service,
    compute_analytics,
    compute_pipeline,
    compute_sessions,
    describe_user_agent,
    extract_annual_total,
)

CHROME_DESKTOP = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
IPHONE = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)

BASE_TIME = datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc)


def view(view_id, session_id, duration=None, at=BASE_TIME, device="desktop", browser="Chrome"):
    return ViewRecord(
        id=view_id,
        proposal_id=1,
        session_id=session_id,
        duration_seconds=duration,
        viewed_at=at,
        device_type=device,
        browser=browser,
    )


def interaction(view_id, kind, interaction_id=None):
    return InteractionRecord(id=interaction_id, view_id=view_id, proposal_id=1, interaction_type=kind)


# ══════════════════════════════════════════════════════════════════════════
# compute_analytics
# ══════════════════════════════════════════════════════════════════════════


class TestComputeAnalytics:

    def test_view_stats_scenario(self):
        """Durations [10, 20, 0] with two views sharing a session."""
        views = [view(1, "s1", 10), view(2, "s1", 20), view(3, "s2", 0)]
        stats = compute_analytics(views, []).view_stats

        assert stats.total_views == 3
        assert stats.unique_views == 2
        assert stats.avg_duration == 10
        assert stats.max_duration == 20

    def test_missing_duration_counts_as_zero(self):
        stats = compute_analytics([view(1, "a", None), view(2, "b", 30)], []).view_stats
        assert stats.avg_duration == 15
        assert stats.max_duration == 30

    def test_unique_equals_total_when_sessions_distinct(self):
        views = [view(i, f"s{i}", 5) for i in range(4)]
        stats = compute_analytics(views, []).view_stats
        assert stats.unique_views == stats.total_views == 4

    def test_empty_input_yields_zeros(self):
        summary = compute_analytics([], [])
        assert summary.view_stats.total_views == 0
        assert summary.view_stats.avg_duration == 0
        assert summary.view_stats.max_duration == 0
        assert summary.views_over_time == []
        assert summary.device_breakdown == []
        assert summary.heatmap_data == []
        assert summary.scroll_data == []

    def test_views_over_time_sorted_by_utc_date(self):
        views = [
            view(1, "a", at=BASE_TIME + timedelta(days=2)),
            view(2, "b", at=BASE_TIME),
            view(3, "c", at=BASE_TIME + timedelta(hours=3)),
            # 23:30 at UTC-5 is already the next UTC day
            view(4, "d", at=datetime(2025, 3, 10, 23, 30, tzinfo=timezone(timedelta(hours=-5)))),
        ]
        series = compute_analytics(views, []).views_over_time
        assert [(p.date, p.count) for p in series] == [
            ("2025-03-10", 2),
            ("2025-03-11", 1),
            ("2025-03-12", 1),
        ]

    def test_device_and_browser_breakdowns(self):
        views = [
            view(1, "a", device="mobile", browser="Mobile Safari"),
            view(2, "b", device="mobile", browser=None),
            view(3, "c", device=None, browser="Chrome"),
        ]
        summary = compute_analytics(views, [])

        devices = {d.label: d.count for d in summary.device_breakdown}
        browsers = {b.label: b.count for b in summary.browser_breakdown}
        assert devices == {"mobile": 2, "unknown": 1}
        assert browsers == {"Mobile Safari": 1, "Chrome": 1}

    def test_interactions_partitioned_by_type(self):
        items = [
            interaction(1, "click", 1),
            interaction(1, "hover", 2),
            interaction(1, "scroll", 3),
            interaction(1, "focus", 4),
            interaction(1, "drag", 5),
        ]
        summary = compute_analytics([view(1, "a")], items)

        assert [i.id for i in summary.heatmap_data] == [1, 2]
        assert [i.id for i in summary.scroll_data] == [3]
        charted = {i.id for i in summary.heatmap_data} | {i.id for i in summary.scroll_data}
        assert 4 not in charted and 5 not in charted

    def test_unrecognized_interaction_type_is_logged(self, caplog):
        with caplog.at_level("WARNING"):
            compute_analytics([], [interaction(1, "drag"), interaction(1, "pinch")])
        assert "2 interactions with unrecognized type" in caplog.text

    def test_serializes_with_camel_case_keys(self):
        data = compute_analytics([view(1, "a", 10)], []).model_dump(by_alias=True)
        assert set(data) == {
            "viewStats", "viewsOverTime", "deviceBreakdown",
            "browserBreakdown", "heatmapData", "scrollData",
        }


# ══════════════════════════════════════════════════════════════════════════
# compute_sessions
# ══════════════════════════════════════════════════════════════════════════


class TestDispatchTables:

    def test_every_stored_interaction_type_is_dispatched(self):
        assert set(INTERACTION_BUCKETS) == set(INTERACTION_TYPES)
        assert INTERACTION_BUCKETS["focus"] is None

    def test_pipeline_follows_proposal_lifecycle(self):
        assert [status for status, _ in PIPELINE_STAGES] == list(PROPOSAL_STATUSES)
        assert PIPELINE_STAGES[0] == ("draft", "Draft")


class TestComputeSessions:

    def test_interaction_counts_attached(self):
        views = [view(1, "a"), view(2, "b")]
        items = [interaction(1, "click"), interaction(1, "scroll"), interaction(2, "hover")]
        counts = {s.id: s.interaction_count for s in compute_sessions(views, items)}
        assert counts == {1: 2, 2: 1}

    def test_view_without_interactions_has_zero(self):
        sessions = compute_sessions([view(7, "a")], [])
        assert sessions[0].interaction_count == 0

    def test_newest_first(self):
        views = [
            view(1, "a", at=BASE_TIME),
            view(2, "b", at=BASE_TIME + timedelta(hours=5)),
            view(3, "c", at=BASE_TIME + timedelta(hours=1)),
        ]
        assert [s.id for s in compute_sessions(views, [])] == [2, 3, 1]


# ══════════════════════════════════════════════════════════════════════════
# compute_pipeline / extract_annual_total
# ══════════════════════════════════════════════════════════════════════════


class TestComputePipeline:

    def test_buckets_and_total(self):
        snapshot = compute_pipeline([
            PipelineEntry(status="draft", annual_total=1000),
            PipelineEntry(status="sent", annual_total=2500.5),
            PipelineEntry(status="sent", annual_total=500),
            PipelineEntry(status="accepted", annual_total=10000),
        ])
        buckets = {b.status: (b.count, b.value) for b in snapshot.breakdown}

        assert buckets == {
            "draft": (1, 1000),
            "sent": (2, 3000.5),
            "viewed": (0, 0),
            "accepted": (1, 10000),
            "rejected": (0, 0),
        }
        assert snapshot.total_pipeline_value == 14000.5

    def test_bucket_order_and_labels(self):
        snapshot = compute_pipeline([])
        assert [(b.status, b.label) for b in snapshot.breakdown] == [
            ("draft", "Draft"),
            ("sent", "Sent"),
            ("viewed", "Viewed"),
            ("accepted", "Accepted"),
            ("rejected", "Rejected"),
        ]
        assert snapshot.total_pipeline_value == 0

    @pytest.mark.parametrize("bad_total", [None, "5000", True, float("nan"), {"x": 1}])
    def test_malformed_total_counts_but_adds_nothing(self, bad_total):
        snapshot = compute_pipeline([PipelineEntry(status="viewed", annual_total=bad_total)])
        viewed = snapshot.breakdown[2]
        assert viewed.count == 1
        assert viewed.value == 0
        assert snapshot.total_pipeline_value == 0

    def test_missing_status_is_draft(self):
        snapshot = compute_pipeline([PipelineEntry(status=None, annual_total=700)])
        assert snapshot.breakdown[0].count == 1
        assert snapshot.breakdown[0].value == 700

    def test_unrecognized_status_excluded_and_reported(self):
        entries = [
            PipelineEntry(status="sent", annual_total=100),
            PipelineEntry(status="on_hold", annual_total=9999),
        ]
        snapshot = compute_pipeline(entries)

        assert sum(b.count for b in snapshot.breakdown) == len(entries) - 1
        assert snapshot.total_pipeline_value == 100
        assert sum(b.value for b in snapshot.breakdown) == snapshot.total_pipeline_value
        assert snapshot.unrecognized == ["on_hold"]
        assert "unrecognized" not in snapshot.model_dump(by_alias=True)

    def test_extract_annual_total(self):
        assert extract_annual_total({"totals": {"annualTotal": 42000}}) == 42000
        assert extract_annual_total({"totals": {}}) == 0
        assert extract_annual_total({"totals": "n/a"}) == 0
        assert extract_annual_total(None) == 0
        assert extract_annual_total([1, 2]) == 0


class TestDescribeUserAgent:

    def test_desktop_browser(self):
        device, browser, os_name = describe_user_agent(CHROME_DESKTOP)
        assert device == "desktop"
        assert browser == "Chrome"
        assert os_name == "Windows"

    def test_mobile(self):
        assert describe_user_agent(IPHONE)[0] == "mobile"

    def test_no_header(self):
        assert describe_user_agent(None) == ("unknown", None, None)


# ══════════════════════════════════════════════════════════════════════════
# AnalyticsService (SQLite)
# ══════════════════════════════════════════════════════════════════════════


class TestAnalyticsService:

    @pytest.mark.asyncio
    async def test_record_view_starts_new_session(self, db_session, proposal):
        payload = TrackViewRequest(proposal_id=proposal.id, user_agent=CHROME_DESKTOP)
        view_row, is_new = await analytics_service.record_view(db_session, payload)

        assert is_new is True
        assert view_row.id is not None
        assert view_row.session_id
        assert view_row.device_type == "desktop"
        assert view_row.browser == "Chrome"

    @pytest.mark.asyncio
    async def test_record_view_keeps_client_session(self, db_session, proposal):
        payload = TrackViewRequest(proposal_id=proposal.id, session_id="visitor-1")
        view_row, is_new = await analytics_service.record_view(db_session, payload)

        assert is_new is False
        assert view_row.session_id == "visitor-1"
        assert view_row.device_type == "unknown"

    @pytest.mark.asyncio
    async def test_update_duration(self, db_session, proposal):
        view_row, _ = await analytics_service.record_view(
            db_session, TrackViewRequest(proposal_id=proposal.id)
        )
        await analytics_service.update_duration(db_session, view_row.id, 95)
        assert (await db_session.get(ProposalView, view_row.id)).duration_seconds == 95

    @pytest.mark.asyncio
    async def test_update_duration_unknown_view(self, db_session):
        with pytest.raises(NotFoundError):
            await analytics_service.update_duration(db_session, 999, 10)

    @pytest.mark.asyncio
    async def test_interaction_must_match_view_proposal(self, db_session, owner, proposal):
        other = Proposal(user_id=owner.id, title="Other", status="draft")
        db_session.add(other)
        await db_session.flush()

        view_row, _ = await analytics_service.record_view(
            db_session, TrackViewRequest(proposal_id=proposal.id)
        )
        payload = TrackInteractionRequest(
            view_id=view_row.id, proposal_id=other.id, interaction_type="click"
        )
        with pytest.raises(ValidationError):
            await analytics_service.record_interaction(db_session, payload)

    @pytest.mark.asyncio
    async def test_interaction_unknown_view(self, db_session, proposal):
        payload = TrackInteractionRequest(view_id=404, proposal_id=proposal.id, interaction_type="click")
        with pytest.raises(NotFoundError):
            await analytics_service.record_interaction(db_session, payload)

    @pytest.mark.asyncio
    async def test_get_analytics_end_to_end(self, db_session, owner, proposal):
        first, _ = await analytics_service.record_view(
            db_session, TrackViewRequest(proposal_id=proposal.id, session_id="s1")
        )
        second, _ = await analytics_service.record_view(
            db_session, TrackViewRequest(proposal_id=proposal.id, session_id="s1")
        )
        await analytics_service.update_duration(db_session, first.id, 40)
        await analytics_service.update_duration(db_session, second.id, 20)
        for kind in ("click", "scroll", "focus"):
            await analytics_service.record_interaction(
                db_session,
                TrackInteractionRequest(view_id=first.id, proposal_id=proposal.id, interaction_type=kind),
            )

        summary = await analytics_service.get_analytics(db_session, proposal.id, owner.id)

        assert summary.view_stats.total_views == 2
        assert summary.view_stats.unique_views == 1
        assert summary.view_stats.avg_duration == 30
        assert len(summary.heatmap_data) == 1
        assert len(summary.scroll_data) == 1

    @pytest.mark.asyncio
    async def test_analytics_scoped_to_owner(self, db_session, proposal):
        with pytest.raises(NotFoundError):
            await analytics_service.get_analytics(db_session, proposal.id, user_id=proposal.user_id + 1)

    @pytest.mark.asyncio
    async def test_get_sessions(self, db_session, owner, proposal):
        view_row, _ = await analytics_service.record_view(
            db_session, TrackViewRequest(proposal_id=proposal.id)
        )
        await analytics_service.record_interaction(
            db_session,
            TrackInteractionRequest(view_id=view_row.id, proposal_id=proposal.id, interaction_type="hover"),
        )
        sessions = await analytics_service.get_sessions(db_session, proposal.id, owner.id)
        assert [(s.id, s.interaction_count) for s in sessions] == [(view_row.id, 1)]

    @pytest.mark.asyncio
    async def test_session_interactions_in_time_order(self, db_session, proposal):
        view_row, _ = await analytics_service.record_view(
            db_session, TrackViewRequest(proposal_id=proposal.id, session_id="replay")
        )
        for kind in ("scroll", "click"):
            await analytics_service.record_interaction(
                db_session,
                TrackInteractionRequest(view_id=view_row.id, proposal_id=proposal.id, interaction_type=kind),
            )

        replay = await analytics_service.get_session_interactions(db_session, "replay")

        assert replay.view.id == view_row.id
        assert [i.interaction_type for i in replay.interactions] == ["scroll", "click"]

    @pytest.mark.asyncio
    async def test_unknown_session(self, db_session):
        with pytest.raises(NotFoundError):
            await analytics_service.get_session_interactions(db_session, "nope")

    @pytest.mark.asyncio
    async def test_pipeline_skips_archived_and_other_users(self, db_session, owner, proposal):
        db_session.add_all([
            Proposal(
                user_id=owner.id, title="Won", status="accepted",
                calculator_data={"totals": {"annualTotal": 24000}},
            ),
            Proposal(
                user_id=owner.id, title="Old", status="sent", is_archived=True,
                calculator_data={"totals": {"annualTotal": 99999}},
            ),
            Proposal(user_id=owner.id, title="Odd", status="paused"),
        ])
        await db_session.flush()

        snapshot = await analytics_service.get_pipeline(db_session, owner.id)

        buckets = {b.status: (b.count, b.value) for b in snapshot.breakdown}
        assert buckets["sent"] == (1, 60000)
        assert buckets["accepted"] == (1, 24000)
        assert snapshot.total_pipeline_value == 84000
        assert snapshot.unrecognized == ["paused"]

        assert (await analytics_service.get_pipeline(db_session, owner.id + 1)).total_pipeline_value == 0
