from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import get_db, get_evaluation_analytics, get_evaluation_service
from app.schemas.evaluation import (
    EvaluationCalculateRequest,
    EvaluationListResponse,
    EvaluationResponse,
    LeaderboardResponse,
)
from app.schemas.evaluation_analytics import (
    AdminAnalyticsResponse,
    KpiHighlightsResponse,
    PersonTrendPoint,
    RankingInfo,
    RecentActivityItem,
    TeamComparisonResponse,
    TLQuickStats,
)

router = APIRouter(prefix="/evaluations", tags=["evaluations"])


@router.post("/calculate", response_model=list[EvaluationResponse])
def calculate_evaluations(
    payload: EvaluationCalculateRequest,
    db: Session = Depends(get_db),
    service=Depends(get_evaluation_service),
):
    return service.calculate_for_period(db, payload.period_month, payload.period_year, payload.person_id)


@router.post("/recalculate", response_model=list[EvaluationResponse])
def recalculate_evaluations(
    payload: EvaluationCalculateRequest,
    db: Session = Depends(get_db),
    service=Depends(get_evaluation_service),
):
    return service.recalculate(db, payload.period_month, payload.period_year, payload.person_id)


@router.get("", response_model=EvaluationListResponse)
def list_evaluations(
    period_month: int | None = Query(None, ge=1, le=12),
    period_year: int | None = Query(None, ge=2020),
    person_id: UUID | None = Query(None),
    order_by: str = Query("created_at"),
    order_dir: str = Query("desc", pattern="^(asc|desc)$"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    service=Depends(get_evaluation_service),
):
    return service.list_response(db, period_month, period_year, person_id, order_by, order_dir, limit, offset)


@router.get("/leaderboard", response_model=LeaderboardResponse)
def leaderboard(
    period_month: int = Query(..., ge=1, le=12),
    period_year: int = Query(..., ge=2020),
    limit: int | None = Query(None, ge=0),
    db: Session = Depends(get_db),
    service=Depends(get_evaluation_service),
):
    return service.get_leaderboard(db, period_month, period_year, limit)


@router.get("/analytics", response_model=AdminAnalyticsResponse)
def admin_analytics(
    period_month: int = Query(..., ge=1, le=12),
    period_year: int = Query(..., ge=2020),
    top: int = Query(5, ge=1, le=50),
    trend_months: int = Query(6, ge=1, le=24),
    db: Session = Depends(get_db),
    analytics=Depends(get_evaluation_analytics),
):
    return analytics.admin_analytics(db, period_month, period_year, top, trend_months)


@router.get("/compare", response_model=TeamComparisonResponse)
def compare_team(
    period_month: int = Query(..., ge=1, le=12),
    period_year: int = Query(..., ge=2020),
    person_ids: list[UUID] = Query(...),
    db: Session = Depends(get_db),
    analytics=Depends(get_evaluation_analytics),
):
    return analytics.compare_team(db, person_ids, period_month, period_year)


@router.get("/person/{person_id}", response_model=EvaluationResponse)
def evaluation_for_person(
    person_id: UUID,
    period_month: int = Query(..., ge=1, le=12),
    period_year: int = Query(..., ge=2020),
    db: Session = Depends(get_db),
    service=Depends(get_evaluation_service),
):
    return service.get_by_person_and_period(db, person_id, period_month, period_year)


@router.get("/person/{person_id}/ranking", response_model=RankingInfo | None)
def ranking_for_person(
    person_id: UUID,
    period_month: int = Query(..., ge=1, le=12),
    period_year: int = Query(..., ge=2020),
    db: Session = Depends(get_db),
    analytics=Depends(get_evaluation_analytics),
):
    return analytics.ranking_for_person(db, person_id, period_month, period_year)


@router.get("/person/{person_id}/trend", response_model=list[PersonTrendPoint])
def trend_for_person(
    person_id: UUID,
    limit: int = Query(6, ge=1, le=24),
    db: Session = Depends(get_db),
    analytics=Depends(get_evaluation_analytics),
):
    return analytics.person_trend(db, person_id, limit)


@router.get("/person/{person_id}/quick-stats", response_model=TLQuickStats)
def quick_stats_for_person(
    person_id: UUID,
    period_month: int = Query(..., ge=1, le=12),
    period_year: int = Query(..., ge=2020),
    db: Session = Depends(get_db),
    analytics=Depends(get_evaluation_analytics),
):
    return analytics.quick_stats(db, person_id, period_month, period_year)


@router.get("/person/{person_id}/activities", response_model=list[RecentActivityItem])
def recent_activities_for_person(
    person_id: UUID,
    limit: int = Query(10, ge=1, le=50),
    db: Session = Depends(get_db),
    analytics=Depends(get_evaluation_analytics),
):
    return analytics.recent_activities(db, person_id, limit)


@router.get("/{evaluation_id}", response_model=EvaluationResponse)
def get_evaluation(
    evaluation_id: UUID,
    db: Session = Depends(get_db),
    service=Depends(get_evaluation_service),
):
    return service.get_by_id(db, evaluation_id)


@router.get("/{evaluation_id}/highlights", response_model=KpiHighlightsResponse)
def evaluation_highlights(
    evaluation_id: UUID,
    limit: int = Query(3, ge=1, le=10),
    db: Session = Depends(get_db),
    analytics=Depends(get_evaluation_analytics),
):
    return analytics.kpi_highlights(db, evaluation_id, limit)
