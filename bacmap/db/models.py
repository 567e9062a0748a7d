"""SQLAlchemy async database models for bacmap.

Nested structures (points, templates, reasoning, feedback, metadata) are
stored as JSON columns holding the pydantic models' JSON dumps.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class EquipmentModel(Base):
    """Equipment instance with its points."""

    __tablename__ = "equipment"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    connector_id: Mapped[str] = mapped_column(String(255), default="", index=True)
    equipment_type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    vendor_name: Mapped[str | None] = mapped_column(String(255))
    model_name: Mapped[str | None] = mapped_column(String(255))

    points: Mapped[list] = mapped_column(JSON, default=list)
    normalization_summary: Mapped[dict | None] = mapped_column(JSON)


class SignatureModel(Base):
    """Reusable equipment signature."""

    __tablename__ = "signatures"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    equipment_type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    point_signature: Mapped[list] = mapped_column(JSON, default=list)
    source: Mapped[str] = mapped_column(String(50), nullable=False)
    confidence: Mapped[float] = mapped_column(Float, default=0.0)
    matching_equipment_ids: Mapped[list] = mapped_column(JSON, default=list)

    detailed_confidence: Mapped[dict | None] = mapped_column(JSON)
    learning_data: Mapped[dict | None] = mapped_column(JSON)


class AssignmentModel(Base):
    """Auto-assignment result for one (equipment, signature) pair."""

    __tablename__ = "auto_assignments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    equipment_id: Mapped[str] = mapped_column(String(255), nullable=False)
    signature_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("signatures.id", ondelete="CASCADE"), nullable=False
    )
    confidence: Mapped[float] = mapped_column(Float, nullable=False)
    reasoning: Mapped[list] = mapped_column(JSON, default=list)
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    auto_assigned: Mapped[bool] = mapped_column(Boolean, default=False)
    requires_review: Mapped[bool] = mapped_column(Boolean, default=True)

    user_feedback: Mapped[dict | None] = mapped_column(JSON)
    # "metadata" is reserved on declarative classes
    assignment_metadata: Mapped[dict] = mapped_column("metadata", JSON, default=dict)

    __table_args__ = (
        UniqueConstraint("equipment_id", "signature_id", name="uq_assignment_pair"),
        Index("idx_assignment_signature", "signature_id"),
    )


class SignatureAnalyticsModel(Base):
    """Running usage/accuracy aggregate per signature."""

    __tablename__ = "signature_analytics"

    signature_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("signatures.id", ondelete="CASCADE"), primary_key=True
    )
    total_matches: Mapped[int] = mapped_column(Integer, default=0)
    accurate_matches: Mapped[int] = mapped_column(Integer, default=0)
    accuracy: Mapped[float] = mapped_column(Float, default=0.0)
    average_confidence: Mapped[float] = mapped_column(Float, default=0.0)
    usage_frequency: Mapped[int] = mapped_column(Integer, default=0)
    last_used: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    positive_feedback: Mapped[int] = mapped_column(Integer, default=0)
    negative_feedback: Mapped[int] = mapped_column(Integer, default=0)
