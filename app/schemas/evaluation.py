from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class EvaluationCalculateRequest(BaseModel):
    period_month: int = Field(ge=1, le=12)
    period_year: int = Field(ge=2020)
    person_id: UUID | None = None


class PillarScoreBreakdown(BaseModel):
    pillar_id: UUID
    pillar_name: str
    pillar_weight: float
    pillar_score: float
    pillar_max_score: float


class KpiScoreBreakdown(BaseModel):
    kpi_item_id: UUID
    kpi_item_name: str
    pillar_name: str
    weight: float
    actual_value: float | None = None
    target_value: float | None = None
    achievement_ratio: float | None = None
    score: float
    max_score: float
    unit: str | None = None
    input_source: str


class EvaluationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    person_id: UUID
    person_name: str
    period_month: int
    period_year: int
    total_score: float
    pillar_breakdown: list[PillarScoreBreakdown] = Field(default_factory=list)
    kpi_breakdown: list[KpiScoreBreakdown] = Field(default_factory=list)
    created_at: datetime


class EvaluationListResponse(BaseModel):
    items: list[EvaluationResponse]
    total: int
    limit: int
    offset: int


class LeaderboardEntry(BaseModel):
    rank: int
    person_id: UUID
    person_name: str
    dealer_code: str
    total_score: float
    period_month: int
    period_year: int


class LeaderboardResponse(BaseModel):
    period: str
    entries: list[LeaderboardEntry]
    total: int
