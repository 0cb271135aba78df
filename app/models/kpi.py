import enum
import uuid
from datetime import UTC, datetime

from sqlalchemy import Boolean, DateTime, Enum, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db import Base


class InputSource(enum.Enum):
    ADMIN = "ADMIN"
    TL = "TL"
    SYSTEM = "SYSTEM"


class MetricKey(enum.Enum):
    quantity_activity = "quantity_activity"
    sales_flp = "sales_flp"
    attendance = "attendance"
    coaching_sessions = "coaching_sessions"
    briefing_sessions = "briefing_sessions"
    team_size = "team_size"
    quiz_score = "quiz_score"
    training_participation = "training_participation"
    apple_logins = "apple_logins"
    apple_points = "apple_points"
    myhero_points = "myhero_points"
    total_prospects = "total_prospects"
    prospect_ratio = "prospect_ratio"


class Pillar(Base):
    __tablename__ = "pillars"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(120), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text)
    weight: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC)
    )

    kpi_items = relationship("KPIItem", back_populates="pillar")


class KPIItem(Base):
    __tablename__ = "kpi_items"
    __table_args__ = (
        Index("ix_kpi_items_pillar", "pillar_id"),
        Index("ix_kpi_items_applies_to_tl", "applies_to_tl"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    pillar_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("pillars.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(160), nullable=False)
    # Takes precedence over the legacy name mapping when set.
    metric_key: Mapped[MetricKey | None] = mapped_column(Enum(MetricKey))
    weight: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    target_value: Mapped[float | None] = mapped_column(Float)
    unit: Mapped[str | None] = mapped_column(String(40))
    frequency: Mapped[str | None] = mapped_column(String(40))
    input_source: Mapped[InputSource] = mapped_column(Enum(InputSource), nullable=False, default=InputSource.ADMIN)
    applies_to_tl: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    applies_to_salesman: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC)
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    pillar = relationship("Pillar", back_populates="kpi_items")


class PersonKPITarget(Base):
    __tablename__ = "person_kpi_targets"
    __table_args__ = (
        UniqueConstraint(
            "person_id", "kpi_item_id", "period_month", "period_year", name="uq_person_kpi_target_person_kpi_period"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    person_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("people.id"), nullable=False)
    kpi_item_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("kpi_items.id"), nullable=False)
    period_month: Mapped[int] = mapped_column(Integer, nullable=False)
    period_year: Mapped[int] = mapped_column(Integer, nullable=False)
    target_value: Mapped[float] = mapped_column(Float, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC))
