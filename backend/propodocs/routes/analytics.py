"""
Propodocs Backend — Analytics Route Handlers
==============================================

What:  View/interaction tracking for shared proposal links, plus the owner's
       analytics, session list and pipeline dashboards.
Who:   Tracking endpoints are called by the public proposal viewer (no
       account); dashboard endpoints by the signed-in proposal owner.

Route Inventory:
    POST  /api/analytics/views                          (track a page-load)
    PATCH /api/analytics/views/{view_id}/duration        (heartbeat)
    POST  /api/analytics/interactions                   (track an interaction)
    GET   /api/analytics/proposals/{id}/analytics       (auth, aggregated stats)
    GET   /api/analytics/proposals/{id}/sessions        (auth, per-view list)
    GET   /api/analytics/sessions/{session_id}/interactions  (session replay)
    GET   /api/analytics/pipeline                       (auth, pipeline rollup)
"""

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from propodocs.auth import get_current_user
from propodocs.database import get_db_session
from propodocs.schemas.analytics import (
    AnalyticsSummary,
    InteractionRecord,
    MessageResponse,
    PipelineSnapshot,
    SessionInteractionsResponse,
    SessionListResponse,
    TrackInteractionRequest,
    TrackViewRequest,
    TrackViewResponse,
    UpdateDurationRequest,
)
from propodocs.schemas.common import ErrorResponse
from propodocs.services.analytics_service import analytics_service
from propodocs.services.notification_service import notify_proposal_viewed_task

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/analytics", tags=["Analytics"])

_NOT_FOUND = {404: {"description": "Not found or not owned by caller", "model": ErrorResponse}}
_UNAUTHORIZED = {401: {"description": "Missing or invalid token", "model": ErrorResponse}}


# ══════════════════════════════════════════════════════════════════════════
# Tracking (public)
# ══════════════════════════════════════════════════════════════════════════


@router.post(
    "/views",
    response_model=TrackViewResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Track a proposal view",
)
async def track_view(
    payload: TrackViewRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db_session),
) -> TrackViewResponse:
    """
    Records one page-load. The server fills in IP and User-Agent when the
    client did not send them. The owner is notified once per new session,
    after the response has gone out.
    """
    if payload.ip_address is None and request.client:
        payload.ip_address = request.client.host
    if payload.user_agent is None:
        payload.user_agent = request.headers.get("User-Agent")

    view, is_new_session = await analytics_service.record_view(db, payload)

    if is_new_session:
        background_tasks.add_task(notify_proposal_viewed_task, payload.proposal_id)

    return TrackViewResponse(view_id=view.id, session_id=view.session_id)


@router.patch(
    "/views/{view_id}/duration",
    response_model=MessageResponse,
    responses=_NOT_FOUND,
    summary="Update view duration",
)
async def update_view_duration(
    view_id: int,
    payload: UpdateDurationRequest,
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    await analytics_service.update_duration(db, view_id, payload.duration_seconds)
    return MessageResponse(message="Duration updated")


@router.post(
    "/interactions",
    response_model=InteractionRecord,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"description": "View belongs to another proposal", "model": ErrorResponse},
        **_NOT_FOUND,
    },
    summary="Track an interaction",
)
async def track_interaction(
    payload: TrackInteractionRequest,
    db: AsyncSession = Depends(get_db_session),
) -> InteractionRecord:
    interaction = await analytics_service.record_interaction(db, payload)
    return InteractionRecord.model_validate(interaction)


# ══════════════════════════════════════════════════════════════════════════
# Dashboards
# ══════════════════════════════════════════════════════════════════════════


@router.get(
    "/proposals/{proposal_id}/analytics",
    response_model=AnalyticsSummary,
    responses={**_UNAUTHORIZED, **_NOT_FOUND},
    summary="Aggregated analytics for one proposal",
)
async def get_proposal_analytics(
    proposal_id: int,
    user_id: int = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> AnalyticsSummary:
    return await analytics_service.get_analytics(db, proposal_id, user_id)


@router.get(
    "/proposals/{proposal_id}/sessions",
    response_model=SessionListResponse,
    responses={**_UNAUTHORIZED, **_NOT_FOUND},
    summary="Viewing sessions of one proposal, newest first",
)
async def get_proposal_sessions(
    proposal_id: int,
    user_id: int = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> SessionListResponse:
    sessions = await analytics_service.get_sessions(db, proposal_id, user_id)
    return SessionListResponse(sessions=sessions)


@router.get(
    "/sessions/{session_id}/interactions",
    response_model=SessionInteractionsResponse,
    responses=_NOT_FOUND,
    summary="Interactions of one viewing session, in time order",
)
async def get_session_interactions(
    session_id: str,
    db: AsyncSession = Depends(get_db_session),
) -> SessionInteractionsResponse:
    return await analytics_service.get_session_interactions(db, session_id)


@router.get(
    "/pipeline",
    response_model=PipelineSnapshot,
    responses=_UNAUTHORIZED,
    summary="Pipeline value by proposal status",
)
async def get_pipeline(
    user_id: int = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> PipelineSnapshot:
    return await analytics_service.get_pipeline(db, user_id)
