import enum
import uuid
from datetime import UTC, date, datetime

from sqlalchemy import Date, DateTime, Enum, Float, ForeignKey, Index, Integer, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from app.db import Base


class DatasetType(enum.Enum):
    quiz = "quiz"
    sales_flp = "sales_flp"
    apple_login = "apple_login"
    apple_point = "apple_point"
    myhero_point = "myhero_point"
    prospect = "prospect"


class DatasetStatus(enum.Enum):
    pending = "pending"
    processed = "processed"
    failed = "failed"


class DashboardDataset(Base):
    __tablename__ = "dashboard_datasets"
    __table_args__ = (Index("ix_dashboard_datasets_type_period", "type", "period_year", "period_month"),)

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    type: Mapped[DatasetType] = mapped_column(Enum(DatasetType), nullable=False)
    period_date: Mapped[date | None] = mapped_column(Date)
    period_month: Mapped[int] = mapped_column(Integer, nullable=False)
    period_year: Mapped[int] = mapped_column(Integer, nullable=False)
    file_name: Mapped[str | None] = mapped_column(String(255))
    status: Mapped[DatasetStatus] = mapped_column(Enum(DatasetStatus), nullable=False, default=DatasetStatus.processed)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC))


class _DatasetRowMixin:
    """Columns shared by every per-person row deposited from an uploaded dataset."""

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    honda_id: Mapped[str | None] = mapped_column(String(40))
    dealer_code: Mapped[str | None] = mapped_column(String(40))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC))

    @declared_attr
    def dataset_id(cls) -> Mapped[uuid.UUID]:
        return mapped_column(UUID(as_uuid=True), ForeignKey("dashboard_datasets.id"), nullable=False, index=True)

    @declared_attr
    def person_id(cls) -> Mapped[uuid.UUID | None]:
        return mapped_column(UUID(as_uuid=True), ForeignKey("people.id"), index=True)


class QuizResult(_DatasetRowMixin, Base):
    __tablename__ = "quiz_results"

    score: Mapped[float] = mapped_column(Float, nullable=False, default=0)


class SalesFLP(_DatasetRowMixin, Base):
    __tablename__ = "sales_flp"

    flp_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0)


class AppleLogin(_DatasetRowMixin, Base):
    __tablename__ = "apple_logins"

    login_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class ApplePoint(_DatasetRowMixin, Base):
    __tablename__ = "apple_points"

    points: Mapped[float] = mapped_column(Float, nullable=False, default=0)


class MyHeroPoint(_DatasetRowMixin, Base):
    __tablename__ = "myhero_points"

    points: Mapped[float] = mapped_column(Float, nullable=False, default=0)


class Prospect(_DatasetRowMixin, Base):
    __tablename__ = "prospects"

    prospect_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
