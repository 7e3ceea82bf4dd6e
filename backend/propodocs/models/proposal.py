"""
Propodocs Backend — Proposal and User SQLAlchemy Models
=========================================================

What:  ORM models for the `users` and `proposals` tables (the columns this
       service reads; the CRUD layer owns the rest of the schema).
Who:   Read by AnalyticsService (ownership checks, pipeline) and
       NotificationService (recipient lookup).

Table Design Rationale:
    - is_archived: explicit soft-delete flag. The pipeline excludes archived
      proposals with a plain equality filter instead of inspecting display
      configuration.
    - calculator_data: JSON blob produced by the calculator editor. The
      pipeline reads totals.annualTotal from it and nothing else.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from propodocs.database import Base

PROPOSAL_STATUSES = ("draft", "sent", "viewed", "accepted", "rejected")


class User(Base):
    """Account owning proposals; only contact fields are mapped here."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}')>"


class Proposal(Base):
    """
    A client-facing pricing/service document owned by a user.

    Lifecycle:
        draft → sent → viewed → accepted | rejected
        Archiving sets is_archived; rows are never hard-deleted by this service.
    """

    __tablename__ = "proposals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="Untitled Proposal")
    client_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="draft",
        server_default=text("'draft'"),
        comment="draft, sent, viewed, accepted, rejected",
    )
    calculator_data: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    is_archived: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    # Pipeline query: WHERE user_id = :uid AND is_archived = false
    __table_args__ = (
        Index("idx_proposals_user_archived", "user_id", "is_archived"),
    )

    def __repr__(self) -> str:
        return f"<Proposal(id={self.id}, status='{self.status}', archived={self.is_archived})>"
