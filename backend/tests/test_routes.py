"""
Propodocs Backend — API Route Integration Tests
=================================================

What we test:
    ✅ Tracking endpoints (201, session ids, owner notification scheduling)
    ✅ Dashboard endpoints (auth, ownership, response shape)
    ✅ Generation endpoints (provider in response, 502/503 mapping)
    ✅ Strict AI rate limit (429 after the budget)
    ✅ Health check

How:
    Requests go through the real app (middleware, handlers, routers) via
    HTTPX ASGITransport. The database dependency is overridden with the
    SQLite test session; the generation chain is swapped per test.
"""

import json
from unittest.mock import AsyncMock, patch

import pytest

from propodocs.auth import create_access_token
from propodocs.services.calculator_service import calculator_service
from propodocs.services.proposal_content_service import proposal_content_service

CALCULATOR = {
    "name": "Local SEO",
    "layout": "tiered",
    "tiers": [
        {"id": "tier_1", "monthlyPrice": 1000},
        {"id": "tier_2", "monthlyPrice": 2000},
        {"id": "tier_3", "monthlyPrice": 3000},
    ],
    "addOns": [],
}


class TestTrackingRoutes:

    @pytest.mark.asyncio
    async def test_track_view_new_session_notifies_owner(self, test_client, proposal):
        with patch(
            "propodocs.routes.analytics.notify_proposal_viewed_task", new=AsyncMock()
        ) as notify:
            response = await test_client.post(
                "/api/analytics/views",
                json={"proposalId": proposal.id},
                headers={"User-Agent": "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X)"},
            )

        assert response.status_code == 201
        data = response.json()
        assert data["viewId"] > 0
        assert data["sessionId"]
        notify.assert_awaited_once_with(proposal.id)

    @pytest.mark.asyncio
    async def test_track_view_existing_session_does_not_notify(self, test_client, proposal):
        with patch(
            "propodocs.routes.analytics.notify_proposal_viewed_task", new=AsyncMock()
        ) as notify:
            response = await test_client.post(
                "/api/analytics/views",
                json={"proposalId": proposal.id, "sessionId": "returning-visitor"},
            )

        assert response.status_code == 201
        assert response.json()["sessionId"] == "returning-visitor"
        notify.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_duration_unknown_view_404(self, test_client):
        response = await test_client.patch(
            "/api/analytics/views/9999/duration", json={"durationSeconds": 30}
        )
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    @pytest.mark.asyncio
    async def test_session_replay(self, test_client, proposal):
        with patch("propodocs.routes.analytics.notify_proposal_viewed_task", new=AsyncMock()):
            view = (await test_client.post(
                "/api/analytics/views", json={"proposalId": proposal.id, "sessionId": "s-1"}
            )).json()

        for kind in ("scroll", "click"):
            response = await test_client.post(
                "/api/analytics/interactions",
                json={
                    "viewId": view["viewId"],
                    "proposalId": proposal.id,
                    "interactionType": kind,
                    "scrollDepth": 40.0,
                },
            )
            assert response.status_code == 201

        response = await test_client.get("/api/analytics/sessions/s-1/interactions")

        assert response.status_code == 200
        data = response.json()
        assert data["view"]["session_id"] == "s-1"
        assert [i["interaction_type"] for i in data["interactions"]] == ["scroll", "click"]

    @pytest.mark.asyncio
    async def test_interaction_for_wrong_proposal_400(self, test_client, proposal):
        with patch("propodocs.routes.analytics.notify_proposal_viewed_task", new=AsyncMock()):
            view = (await test_client.post(
                "/api/analytics/views", json={"proposalId": proposal.id}
            )).json()

        response = await test_client.post(
            "/api/analytics/interactions",
            json={"viewId": view["viewId"], "proposalId": proposal.id + 1, "interactionType": "click"},
        )
        assert response.status_code == 400


class TestDashboardRoutes:

    @pytest.mark.asyncio
    async def test_analytics_requires_token(self, test_client, proposal):
        response = await test_client.get(f"/api/analytics/proposals/{proposal.id}/analytics")
        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"

    @pytest.mark.asyncio
    async def test_analytics_of_someone_elses_proposal_404(self, test_client, proposal):
        headers = {"Authorization": f"Bearer {create_access_token(proposal.user_id + 100)}"}
        response = await test_client.get(
            f"/api/analytics/proposals/{proposal.id}/analytics", headers=headers
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_analytics_shape(self, test_client, proposal, auth_headers):
        response = await test_client.get(
            f"/api/analytics/proposals/{proposal.id}/analytics", headers=auth_headers
        )
        assert response.status_code == 200
        data = response.json()
        assert data["viewStats"]["total_views"] == 0
        assert data["heatmapData"] == []
        assert data["scrollData"] == []

    @pytest.mark.asyncio
    async def test_sessions_list(self, test_client, proposal, auth_headers):
        with patch("propodocs.routes.analytics.notify_proposal_viewed_task", new=AsyncMock()):
            await test_client.post("/api/analytics/views", json={"proposalId": proposal.id})

        response = await test_client.get(
            f"/api/analytics/proposals/{proposal.id}/sessions", headers=auth_headers
        )
        assert response.status_code == 200
        assert len(response.json()["sessions"]) == 1

    @pytest.mark.asyncio
    async def test_pipeline(self, test_client, proposal, auth_headers):
        response = await test_client.get("/api/analytics/pipeline", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["totalPipelineValue"] == 60000
        sent = next(b for b in data["breakdown"] if b["status"] == "sent")
        assert sent == {"status": "sent", "label": "Sent", "count": 1, "value": 60000}
        assert "unrecognized" not in data


class TestGenerationRoutes:

    @pytest.mark.asyncio
    async def test_generate_calculator(
        self, test_client, auth_headers, make_provider, fake_chain, monkeypatch
    ):
        chain = fake_chain(
            make_provider("gemini", [RuntimeError("quota exceeded")]),
            make_provider("anthropic", [f"```json\n{json.dumps(CALCULATOR)}\n```"]),
        )
        monkeypatch.setattr(calculator_service, "chain", chain)

        response = await test_client.post(
            "/api/calculators/generate",
            json={"prompt": "Local SEO for dentists"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["provider"] == "anthropic"
        assert data["calculator"]["name"] == "Local SEO"
        assert data["warnings"] == []

    @pytest.mark.asyncio
    async def test_generate_requires_token(self, test_client):
        response = await test_client.post("/api/calculators/generate", json={"prompt": "x"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_all_providers_failed_502(
        self, test_client, auth_headers, make_provider, fake_chain, monkeypatch
    ):
        chain = fake_chain(
            make_provider("gemini", [RuntimeError("timeout")]),
            make_provider("openai", ["not json"]),
        )
        monkeypatch.setattr(calculator_service, "chain", chain)

        response = await test_client.post(
            "/api/calculators/generate", json={"prompt": "x"}, headers=auth_headers
        )

        assert response.status_code == 502
        body = response.json()
        assert body["error"] == "all_providers_failed"
        assert [a["provider"] for a in body["details"]["attempts"]] == ["gemini", "openai"]

    @pytest.mark.asyncio
    async def test_no_provider_configured_503(
        self, test_client, auth_headers, make_provider, fake_chain, monkeypatch
    ):
        chain = fake_chain(make_provider("gemini", configured=False))
        monkeypatch.setattr(proposal_content_service, "chain", chain)

        response = await test_client.post(
            "/api/ai/enhance-content",
            json={"content": "", "instruction": "Write an intro"},
            headers=auth_headers,
        )

        assert response.status_code == 503
        assert response.json()["error"] == "ai_not_configured"

    @pytest.mark.asyncio
    async def test_edit_block(
        self, test_client, auth_headers, make_provider, fake_chain, monkeypatch
    ):
        chain = fake_chain(make_provider("openai", ['{"id": "changed", "name": "Premium"}']))
        monkeypatch.setattr(calculator_service, "chain", chain)

        response = await test_client.post(
            "/api/calculators/edit-block",
            json={
                "blockType": "tier",
                "blockData": {"id": "tier_3", "name": "Pro"},
                "instruction": "Rename to Premium",
            },
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json()["block"] == {"id": "tier_3", "name": "Premium"}

    @pytest.mark.asyncio
    async def test_strict_rate_limit(
        self, test_client, auth_headers, make_provider, fake_chain, monkeypatch
    ):
        chain = fake_chain(make_provider("gemini", [json.dumps(CALCULATOR)]))
        monkeypatch.setattr(calculator_service, "chain", chain)

        statuses = []
        for _ in range(6):
            response = await test_client.post(
                "/api/calculators/generate", json={"prompt": "x"}, headers=auth_headers
            )
            statuses.append(response.status_code)

        assert statuses == [200] * 5 + [429]
        assert "Retry-After" in response.headers
        assert response.json()["error"] == "rate_limit_exceeded"


class TestHealthRoute:

    @pytest.mark.asyncio
    async def test_health(self, test_client):
        response = await test_client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["database"] == "connected"
        assert data["status"] == "healthy"
        assert data["providers"] == {
            "gemini": "available",
            "anthropic": "available",
            "openai": "available",
        }
