"""SQLAlchemy models for the plan ingestion tables."""

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    TIMESTAMP,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from takeoff_ai.core.database import Base


class Plan(Base):
    """Uploaded plan set (one PDF)."""

    __tablename__ = "plans"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    job_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    title: Mapped[str | None] = mapped_column(String, nullable=True)
    file_name: Mapped[str | None] = mapped_column(String, nullable=True)
    file_path: Mapped[str] = mapped_column(String, nullable=False)
    project_name: Mapped[str | None] = mapped_column(String, nullable=True)
    project_location: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(
        String, nullable=False, default="draft"
    )  # draft | processing | ready
    num_pages: Mapped[int | None] = mapped_column(Integer, nullable=True)
    processing_status: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()", nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()", onupdate=datetime.utcnow
    )

    sheets: Mapped[list["PlanSheetIndex"]] = relationship(
        "PlanSheetIndex", back_populates="plan", cascade="all, delete-orphan"
    )
    chunks: Mapped[list["PlanChunk"]] = relationship(
        "PlanChunk", back_populates="plan", cascade="all, delete-orphan"
    )


class PlanSheetIndex(Base):
    """Per-page sheet classification."""

    __tablename__ = "plan_sheet_index"
    __table_args__ = (UniqueConstraint("plan_id", "page_no", name="uq_plan_sheet_page"),)

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    plan_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("plans.id", ondelete="CASCADE"), nullable=False, index=True
    )
    page_no: Mapped[int] = mapped_column(Integer, nullable=False)
    sheet_id: Mapped[str] = mapped_column(String, nullable=False)
    title: Mapped[str | None] = mapped_column(Text, nullable=True)
    discipline: Mapped[str] = mapped_column(String, nullable=False, default="unknown")
    scale: Mapped[str | None] = mapped_column(String, nullable=True)
    scale_ratio: Mapped[float | None] = mapped_column(Float, nullable=True)
    units: Mapped[str] = mapped_column(String, nullable=False, default="unknown")
    sheet_type: Mapped[str] = mapped_column(String, nullable=False, default="other")
    rotation: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    has_text_layer: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    has_image: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    text_length: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    detected_keywords: Mapped[list | None] = mapped_column(JSONB, nullable=True)

    plan: Mapped["Plan"] = relationship("Plan", back_populates="sheets")


class PlanChunk(Base):
    """Token-budgeted chunk of plan text."""

    __tablename__ = "plan_chunks"
    __table_args__ = (UniqueConstraint("plan_id", "chunk_index", name="uq_plan_chunk_index"),)

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    plan_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("plans.id", ondelete="CASCADE"), nullable=False, index=True
    )
    chunk_id: Mapped[str] = mapped_column(String, nullable=False)
    chunk_index: Mapped[int] = mapped_column(Integer, nullable=False)
    page_range: Mapped[dict] = mapped_column(JSONB, nullable=False)
    sheet_index_subset: Mapped[list] = mapped_column(JSONB, nullable=False)
    content: Mapped[dict] = mapped_column(JSONB, nullable=False)
    # "metadata" is reserved on declarative classes
    chunk_metadata: Mapped[dict] = mapped_column("metadata", JSONB, nullable=False)
    safeguards: Mapped[dict] = mapped_column(JSONB, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()", nullable=False
    )

    plan: Mapped["Plan"] = relationship("Plan", back_populates="chunks")
