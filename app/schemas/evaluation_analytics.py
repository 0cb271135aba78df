from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class RankingInfo(BaseModel):
    rank: int
    total_tls: int
    percentile: int


class OverallStatistics(BaseModel):
    total_evaluations: int
    average_score: float
    median_score: float
    highest_score: float
    lowest_score: float
    std_deviation: float


class PerformerItem(BaseModel):
    rank: int
    person_id: UUID
    person_name: str
    dealer_code: str
    total_score: float


class PillarAnalysisItem(BaseModel):
    pillar_id: UUID
    pillar_name: str
    pillar_weight: float
    average_score: float
    achievement_pct: float
    top_performer_name: str
    top_performer_score: float


class TrendPoint(BaseModel):
    period_month: int
    period_year: int
    label: str
    average_score: float
    participants: int
    change: float | None = None


class DistributionBucket(BaseModel):
    range_label: str
    min_score: float
    max_score: float
    count: int


class AdminAnalyticsResponse(BaseModel):
    period: str
    statistics: OverallStatistics
    top_performers: list[PerformerItem] = Field(default_factory=list)
    bottom_performers: list[PerformerItem] = Field(default_factory=list)
    pillar_analysis: list[PillarAnalysisItem] = Field(default_factory=list)
    trend: list[TrendPoint] = Field(default_factory=list)
    distribution: list[DistributionBucket] = Field(default_factory=list)


class TeamComparisonMember(BaseModel):
    rank: int
    person_id: UUID
    person_name: str
    dealer_code: str
    total_score: float
    pillar_scores: dict[str, float] = Field(default_factory=dict)


class TLPillarScore(BaseModel):
    person_name: str
    score: float


class PillarComparisonChart(BaseModel):
    pillar_name: str
    scores: list[TLPillarScore] = Field(default_factory=list)


class TeamComparisonResponse(BaseModel):
    period: str
    pillars: list[str]
    members: list[TeamComparisonMember]
    pillar_charts: list[PillarComparisonChart] = Field(default_factory=list)


class PersonTrendPoint(BaseModel):
    period_month: int
    period_year: int
    label: str
    total_score: float


class KpiHighlight(BaseModel):
    kpi_item_id: UUID
    kpi_item_name: str
    pillar_name: str
    score: float
    weight: float
    percentage: float


class KpiHighlightsResponse(BaseModel):
    top: list[KpiHighlight]
    weak: list[KpiHighlight]


class TLQuickStats(BaseModel):
    activities_count: int
    coaching_count: int
    briefing_count: int
    training_count: int
    team_size: int
    attendance_rate: float


class RecentActivityItem(BaseModel):
    type: str
    date: datetime
    description: str
    details: str = ""
