from __future__ import annotations

import uuid

from sqlalchemy import desc, func
from sqlalchemy.orm import Session

from app.logging import get_logger
from app.models.activity import TLDailyActivity, TLSession
from app.models.evaluation import Evaluation, EvaluationDetail, EvaluationPeriod
from app.models.kpi import KPIItem, MetricKey
from app.schemas.evaluation_analytics import (
    AdminAnalyticsResponse,
    KpiHighlight,
    KpiHighlightsResponse,
    PerformerItem,
    PersonTrendPoint,
    PillarAnalysisItem,
    PillarComparisonChart,
    RankingInfo,
    RecentActivityItem,
    TeamComparisonMember,
    TeamComparisonResponse,
    TLPillarScore,
    TLQuickStats,
    TrendPoint,
)
from app.services.common import coerce_uuid
from app.services.evaluation.catalog import PersonDirectory, PillarKpiLookup, kpi_catalog, person_directory
from app.services.evaluation.errors import EvaluationNotFoundError
from app.services.evaluation.metrics import MetricAggregator, metric_aggregator
from app.services.evaluation.periods import format_period, get_period, require_period, shift_month, validate_period
from app.services.evaluation.ranking import overall_statistics, ranking_info, score_distribution, top_and_bottom
from app.services.evaluation.service import EvaluationService, evaluation_service

logger = get_logger(__name__)

_MONTH_LABELS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def _month_label(month: int, year: int) -> str:
    return f"{_MONTH_LABELS[month - 1]} {year}"


def _safe_pct(value: float, maximum: float) -> float:
    if not maximum:
        return 0.0
    return value / maximum * 100


class EvaluationAnalyticsService:
    def __init__(
        self,
        catalog: PillarKpiLookup | None = None,
        people: PersonDirectory | None = None,
        evaluations: EvaluationService | None = None,
        aggregator: MetricAggregator | None = None,
    ):
        self.catalog = catalog or kpi_catalog
        self.people = people or person_directory
        self.evaluations = evaluations or evaluation_service
        self.aggregator = aggregator or metric_aggregator

    def _ranked(self, db: Session, period_id: uuid.UUID) -> list[Evaluation]:
        return (
            db.query(Evaluation)
            .filter(Evaluation.evaluation_period_id == period_id)
            .order_by(Evaluation.total_score.desc(), Evaluation.created_at.asc())
            .all()
        )

    def ranking_for_person(
        self, db: Session, person_id: str | uuid.UUID, period_month: int, period_year: int
    ) -> RankingInfo | None:
        period = get_period(db, period_month, period_year)
        if period is None:
            return None
        ordered_ids = [evaluation.person_id for evaluation in self._ranked(db, period.id)]
        return ranking_info(ordered_ids, coerce_uuid(person_id))

    def _performers(self, db: Session, evaluations: list[Evaluation], ranks: list[int]) -> list[PerformerItem]:
        people = self.people.by_ids(db, [evaluation.person_id for evaluation in evaluations])
        items = []
        for rank, evaluation in zip(ranks, evaluations, strict=True):
            person = people.get(evaluation.person_id)
            items.append(
                PerformerItem(
                    rank=rank,
                    person_id=evaluation.person_id,
                    person_name=person.name if person else "",
                    dealer_code=(person.dealer_code or "") if person else "",
                    total_score=evaluation.total_score,
                )
            )
        return items

    def pillar_analysis(self, db: Session, period_id: uuid.UUID) -> list[PillarAnalysisItem]:
        pillars = sorted(self.catalog.pillars(db).values(), key=lambda pillar: pillar.name)
        items = []
        for pillar in pillars:
            average = (
                db.query(func.coalesce(func.avg(EvaluationDetail.score), 0))
                .select_from(EvaluationDetail)
                .join(KPIItem, KPIItem.id == EvaluationDetail.kpi_item_id)
                .join(Evaluation, Evaluation.id == EvaluationDetail.evaluation_id)
                .filter(KPIItem.pillar_id == pillar.id)
                .filter(Evaluation.evaluation_period_id == period_id)
                .scalar()
            )
            top = (
                db.query(Evaluation.person_id, func.sum(EvaluationDetail.score).label("pillar_total"))
                .select_from(EvaluationDetail)
                .join(KPIItem, KPIItem.id == EvaluationDetail.kpi_item_id)
                .join(Evaluation, Evaluation.id == EvaluationDetail.evaluation_id)
                .filter(KPIItem.pillar_id == pillar.id)
                .filter(Evaluation.evaluation_period_id == period_id)
                .group_by(Evaluation.person_id)
                .order_by(desc("pillar_total"))
                .first()
            )
            top_name = ""
            top_score = 0.0
            if top is not None:
                top_name = self.people.names_for(db, [top.person_id]).get(top.person_id, "")
                top_score = float(top.pillar_total or 0)
            average = float(average or 0)
            items.append(
                PillarAnalysisItem(
                    pillar_id=pillar.id,
                    pillar_name=pillar.name,
                    pillar_weight=pillar.weight,
                    average_score=average,
                    achievement_pct=_safe_pct(average, pillar.weight),
                    top_performer_name=top_name,
                    top_performer_score=top_score,
                )
            )
        return items

    def trend(self, db: Session, period_month: int, period_year: int, months: int = 6) -> list[TrendPoint]:
        """Average score per month for the `months` months ending at the given one, oldest first.

        Months without a period or without evaluations are left out, and each
        point's change is measured against the previous point that was kept.
        """
        points: list[TrendPoint] = []
        for offset in range(months - 1, -1, -1):
            month, year = shift_month(period_month, period_year, -offset)
            period = get_period(db, month, year)
            if period is None:
                continue
            count, average = (
                db.query(func.count(Evaluation.id), func.avg(Evaluation.total_score))
                .filter(Evaluation.evaluation_period_id == period.id)
                .one()
            )
            if not count:
                continue
            average = float(average or 0)
            change = average - points[-1].average_score if points else None
            points.append(
                TrendPoint(
                    period_month=month,
                    period_year=year,
                    label=_month_label(month, year),
                    average_score=average,
                    participants=count,
                    change=change,
                )
            )
        return points

    def admin_analytics(
        self,
        db: Session,
        period_month: int,
        period_year: int,
        top_count: int = 5,
        trend_months: int = 6,
    ) -> AdminAnalyticsResponse:
        validate_period(period_month, period_year)
        period = require_period(db, period_month, period_year)
        evaluations = self._ranked(db, period.id)
        if not evaluations:
            raise EvaluationNotFoundError(
                "no_evaluations", f"No evaluations found for {format_period(period_month, period_year)}"
            )
        scores = [evaluation.total_score for evaluation in evaluations]
        top, bottom = top_and_bottom(evaluations, top_count)
        total = len(evaluations)
        return AdminAnalyticsResponse(
            period=format_period(period_month, period_year),
            statistics=overall_statistics(scores),
            top_performers=self._performers(db, top, list(range(1, len(top) + 1))),
            bottom_performers=self._performers(db, bottom, [total - index for index in range(len(bottom))]),
            pillar_analysis=self.pillar_analysis(db, period.id),
            trend=self.trend(db, period_month, period_year, trend_months),
            distribution=score_distribution(scores),
        )

    def compare_team(
        self,
        db: Session,
        person_ids: list[str | uuid.UUID],
        period_month: int,
        period_year: int,
    ) -> TeamComparisonResponse:
        period = require_period(db, period_month, period_year)
        ids = [coerce_uuid(person_id) for person_id in person_ids]
        evaluations = (
            db.query(Evaluation)
            .filter(Evaluation.evaluation_period_id == period.id)
            .filter(Evaluation.person_id.in_(ids))
            .all()
        )
        pillars = self.catalog.pillars(db)
        people = self.people.by_ids(db, ids)
        members: list[TeamComparisonMember] = []
        for evaluation in evaluations:
            details = db.query(EvaluationDetail).filter(EvaluationDetail.evaluation_id == evaluation.id).all()
            kpis = self.catalog.kpis(db, [detail.kpi_item_id for detail in details])
            pillar_scores: dict[str, float] = {}
            for detail in details:
                kpi = kpis.get(detail.kpi_item_id)
                pillar = pillars.get(kpi.pillar_id) if kpi else None
                if pillar is None:
                    continue
                pillar_scores[pillar.name] = pillar_scores.get(pillar.name, 0.0) + detail.score
            person = people.get(evaluation.person_id)
            members.append(
                TeamComparisonMember(
                    rank=0,
                    person_id=evaluation.person_id,
                    person_name=person.name if person else "",
                    dealer_code=(person.dealer_code or "") if person else "",
                    total_score=evaluation.total_score,
                    pillar_scores=pillar_scores,
                )
            )
        members.sort(key=lambda member: member.total_score, reverse=True)
        for rank, member in enumerate(members, start=1):
            member.rank = rank
        pillar_names = sorted(pillar.name for pillar in pillars.values())
        charts = [
            PillarComparisonChart(
                pillar_name=name,
                scores=[
                    TLPillarScore(person_name=member.person_name, score=member.pillar_scores[name])
                    for member in members
                    if name in member.pillar_scores
                ],
            )
            for name in pillar_names
        ]
        return TeamComparisonResponse(
            period=format_period(period_month, period_year),
            pillars=pillar_names,
            members=members,
            pillar_charts=[chart for chart in charts if chart.scores],
        )

    def person_trend(self, db: Session, person_id: str | uuid.UUID, limit: int = 6) -> list[PersonTrendPoint]:
        rows = (
            db.query(Evaluation.total_score, EvaluationPeriod.period_month, EvaluationPeriod.period_year)
            .join(EvaluationPeriod, EvaluationPeriod.id == Evaluation.evaluation_period_id)
            .filter(Evaluation.person_id == coerce_uuid(person_id))
            .order_by(EvaluationPeriod.period_year.desc(), EvaluationPeriod.period_month.desc())
            .limit(limit)
            .all()
        )
        return [
            PersonTrendPoint(
                period_month=month,
                period_year=year,
                label=_month_label(month, year),
                total_score=total_score,
            )
            for total_score, month, year in reversed(rows)
        ]

    def quick_stats(
        self, db: Session, person_id: str | uuid.UUID, period_month: int, period_year: int
    ) -> TLQuickStats:
        """Operational counts for one team leader's month, from the same rules that feed scoring."""
        validate_period(period_month, period_year)
        person = self.people.require(db, person_id)
        metrics = self.aggregator.aggregate(db, person.id, period_month, period_year)

        def _count(key: MetricKey) -> int:
            return int(metrics[key.value].value)

        return TLQuickStats(
            activities_count=_count(MetricKey.quantity_activity),
            coaching_count=_count(MetricKey.coaching_sessions),
            briefing_count=_count(MetricKey.briefing_sessions),
            training_count=_count(MetricKey.training_participation),
            team_size=_count(MetricKey.team_size),
            attendance_rate=metrics[MetricKey.attendance.value].value,
        )

    def recent_activities(self, db: Session, person_id: str | uuid.UUID, limit: int = 10) -> list[RecentActivityItem]:
        """Latest daily activities and sessions of one person, newest first."""
        person_uuid = coerce_uuid(person_id)
        activities = (
            db.query(TLDailyActivity)
            .filter(TLDailyActivity.person_id == person_uuid)
            .filter(TLDailyActivity.deleted_at.is_(None))
            .order_by(TLDailyActivity.date.desc())
            .limit(limit)
            .all()
        )
        sessions = (
            db.query(TLSession)
            .filter(TLSession.person_id == person_uuid)
            .filter(TLSession.deleted_at.is_(None))
            .order_by(TLSession.date.desc())
            .limit(limit)
            .all()
        )
        items = [
            RecentActivityItem(
                type="activity",
                date=activity.date,
                description=f"{activity.activity_type} activity",
                details=activity.description or "",
            )
            for activity in activities
        ]
        items.extend(
            RecentActivityItem(
                type=session.session_type.value,
                date=session.date,
                description=f"{session.session_type.value} session",
                details=session.notes or "",
            )
            for session in sessions
        )
        items.sort(key=lambda item: item.date, reverse=True)
        return items[:limit]

    def kpi_highlights(self, db: Session, evaluation_id: str | uuid.UUID, limit: int = 3) -> KpiHighlightsResponse:
        evaluation = self.evaluations.get_by_id(db, evaluation_id)
        highlights = [
            KpiHighlight(
                kpi_item_id=item.kpi_item_id,
                kpi_item_name=item.kpi_item_name,
                pillar_name=item.pillar_name,
                score=item.score,
                weight=item.weight,
                percentage=_safe_pct(item.score, item.weight),
            )
            for item in evaluation.kpi_breakdown
        ]
        ordered = sorted(highlights, key=lambda item: item.percentage, reverse=True)
        return KpiHighlightsResponse(
            top=ordered[:limit],
            weak=sorted(highlights, key=lambda item: item.percentage)[:limit],
        )


evaluation_analytics = EvaluationAnalyticsService()
