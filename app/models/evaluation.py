import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db import Base


class EvaluationPeriod(Base):
    __tablename__ = "evaluation_periods"
    __table_args__ = (UniqueConstraint("period_month", "period_year", name="uq_evaluation_period_month_year"),)

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    period_month: Mapped[int] = mapped_column(Integer, nullable=False)
    period_year: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC))

    evaluations = relationship("Evaluation", back_populates="period")


class Evaluation(Base):
    __tablename__ = "evaluations"
    __table_args__ = (
        UniqueConstraint("person_id", "evaluation_period_id", name="uq_evaluation_person_period"),
        Index("ix_evaluations_period_score", "evaluation_period_id", "total_score"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    evaluation_period_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("evaluation_periods.id"), nullable=False
    )
    person_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("people.id"), nullable=False)
    total_score: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC)
    )

    period = relationship("EvaluationPeriod", back_populates="evaluations")
    person = relationship("Person")
    details = relationship("EvaluationDetail", back_populates="evaluation", cascade="all, delete-orphan")


class EvaluationDetail(Base):
    __tablename__ = "evaluation_details"
    __table_args__ = (Index("ix_evaluation_details_evaluation", "evaluation_id"),)

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    evaluation_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("evaluations.id", ondelete="CASCADE"), nullable=False
    )
    kpi_item_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("kpi_items.id"), nullable=False)
    actual_value: Mapped[float | None] = mapped_column(Float)
    achievement_ratio: Mapped[float | None] = mapped_column(Float)
    score: Mapped[float] = mapped_column(Float, nullable=False, default=0)

    evaluation = relationship("Evaluation", back_populates="details")
    kpi_item = relationship("KPIItem")
