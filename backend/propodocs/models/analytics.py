"""
Propodocs Backend — View Tracking SQLAlchemy Models
=====================================================

What:  ORM models for `proposal_views` and `proposal_interactions`.
Why:   Raw engagement events; every statistic shown on the analytics
       dashboard is derived from these two tables.

Lifecycle:
    ProposalView:        created on first load of a shared link, then
                         updated once by the duration heartbeat. Retention
                         is an external policy; this service never deletes.
    ProposalInteraction: created per client-side event, immutable.

Invariant:
    interaction.proposal_id == interaction.view.proposal_id
    (enforced by AnalyticsService.record_interaction)
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from propodocs.database import Base

INTERACTION_TYPES = ("click", "scroll", "hover", "focus")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProposalView(Base):
    """One page-load of a shared proposal."""

    __tablename__ = "proposal_views"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    proposal_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("proposals.id", ondelete="CASCADE"), nullable=False
    )
    link_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    session_id: Mapped[str] = mapped_column(String(64), nullable=False)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    device_type: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    browser: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    os: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    viewed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    duration_seconds: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    __table_args__ = (
        Index("idx_proposal_views_proposal", "proposal_id"),
        Index("idx_proposal_views_session", "session_id"),
    )

    def __repr__(self) -> str:
        return f"<ProposalView(id={self.id}, proposal_id={self.proposal_id}, session='{self.session_id}')>"


class ProposalInteraction(Base):
    """One micro-event (click/scroll/hover/focus) within a view."""

    __tablename__ = "proposal_interactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    view_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("proposal_views.id", ondelete="CASCADE"), nullable=False
    )
    # Denormalized so per-proposal queries need no join
    proposal_id: Mapped[int] = mapped_column(Integer, nullable=False)
    interaction_type: Mapped[str] = mapped_column(String(16), nullable=False)
    element_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    element_type: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    x_position: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    y_position: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    scroll_depth: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        Index("idx_proposal_interactions_proposal", "proposal_id"),
        Index("idx_proposal_interactions_view", "view_id"),
    )

    def __repr__(self) -> str:
        return f"<ProposalInteraction(id={self.id}, view_id={self.view_id}, type='{self.interaction_type}')>"
