"""
Propodocs Backend — Analytics Schemas
=======================================

What:  Pydantic models for view/interaction tracking requests and for the
       aggregated analytics, session and pipeline responses.

Two families live here:
    - *Record models (ViewRecord, InteractionRecord) are the in-memory
      representation handed to the pure aggregation functions. They are
      built from ORM rows (from_attributes) or directly in tests.
    - Request/response models define the HTTP contract (camelCase).
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from propodocs.schemas.common import CamelModel


# ══════════════════════════════════════════════════════════════════════════
# Records — input of the aggregation functions
# ══════════════════════════════════════════════════════════════════════════


class ViewRecord(BaseModel):
    """One page-load of a shared proposal."""

    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    proposal_id: int
    link_id: Optional[str] = None
    session_id: str
    device_type: Optional[str] = None
    browser: Optional[str] = None
    os: Optional[str] = None
    viewed_at: datetime
    duration_seconds: Optional[int] = None


class InteractionRecord(BaseModel):
    """One click/scroll/hover/focus event within a view."""

    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    view_id: int
    proposal_id: int
    interaction_type: str
    element_id: Optional[str] = None
    element_type: Optional[str] = None
    x_position: Optional[float] = None
    y_position: Optional[float] = None
    scroll_depth: Optional[float] = None
    timestamp: Optional[datetime] = None


class PipelineEntry(BaseModel):
    """Minimal proposal projection consumed by compute_pipeline."""

    status: Optional[str] = None
    annual_total: Optional[object] = None


# ══════════════════════════════════════════════════════════════════════════
# Aggregated outputs
# ══════════════════════════════════════════════════════════════════════════


class ViewStats(BaseModel):
    total_views: int = 0
    unique_views: int = 0
    avg_duration: float = 0
    max_duration: float = 0


class DateCount(BaseModel):
    date: str = Field(description="UTC calendar date, YYYY-MM-DD")
    count: int


class LabelCount(BaseModel):
    label: str
    count: int


class AnalyticsSummary(CamelModel):
    """Everything the analytics dashboard renders for one proposal."""

    view_stats: ViewStats = Field(default_factory=ViewStats)
    views_over_time: List[DateCount] = Field(default_factory=list)
    device_breakdown: List[LabelCount] = Field(default_factory=list)
    browser_breakdown: List[LabelCount] = Field(default_factory=list)
    heatmap_data: List[InteractionRecord] = Field(default_factory=list)
    scroll_data: List[InteractionRecord] = Field(default_factory=list)


class SessionSummary(ViewRecord):
    interaction_count: int = 0


class SessionListResponse(BaseModel):
    sessions: List[SessionSummary]


class SessionInteractionsResponse(BaseModel):
    view: ViewRecord
    interactions: List[InteractionRecord]


class PipelineBucket(BaseModel):
    status: str
    label: str
    count: int = 0
    value: float = 0


class PipelineSnapshot(CamelModel):
    total_pipeline_value: float = 0
    breakdown: List[PipelineBucket] = Field(default_factory=list)
    # Statuses that matched no bucket; logged by the caller, not serialized
    unrecognized: List[str] = Field(default_factory=list, exclude=True)


# ══════════════════════════════════════════════════════════════════════════
# Tracking requests / responses
# ══════════════════════════════════════════════════════════════════════════


class TrackViewRequest(CamelModel):
    proposal_id: int
    link_id: Optional[str] = None
    session_id: Optional[str] = Field(default=None, max_length=64)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class TrackViewResponse(CamelModel):
    view_id: int
    session_id: str


class UpdateDurationRequest(CamelModel):
    duration_seconds: int = Field(ge=0)


class TrackInteractionRequest(CamelModel):
    view_id: int
    proposal_id: int
    interaction_type: str = Field(min_length=1, max_length=16)
    element_id: Optional[str] = None
    element_type: Optional[str] = None
    x_position: Optional[float] = None
    y_position: Optional[float] = None
    scroll_depth: Optional[float] = None


class MessageResponse(BaseModel):
    message: str
