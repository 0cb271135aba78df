"""Monthly metric aggregation for team-leader evaluations.

Every metric is computed for one person and one calendar month. TL-entered
operational rows are filtered by their own date against the month window;
admin-uploaded dataset rows are filtered by the period stored on the dataset
header instead.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import case, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.logging import get_logger
from app.models.activity import (
    AttendanceStatus,
    SessionType,
    TLAttendanceRecord,
    TLDailyActivity,
    TLSession,
    TLTrainingParticipation,
)
from app.models.dataset import AppleLogin, ApplePoint, DashboardDataset, MyHeroPoint, Prospect, QuizResult, SalesFLP
from app.models.kpi import InputSource, MetricKey
from app.models.person import Person, PersonRole
from app.services.common import coerce_uuid
from app.services.evaluation.errors import AggregationError
from app.services.evaluation.observability import METRIC_FAILURES
from app.services.evaluation.periods import month_window

logger = get_logger(__name__)


@dataclass(frozen=True)
class MetricValue:
    value: float
    unit: str
    source: str
    description: str


@dataclass(frozen=True)
class MetricScope:
    person_id: uuid.UUID
    month: int
    year: int
    start: datetime
    end: datetime


@dataclass(frozen=True)
class MetricRule:
    key: MetricKey
    unit: str
    source: InputSource
    description: str
    compute: Callable[[Session, MetricScope], float | int | None]


def _count_daily_activities(db: Session, scope: MetricScope) -> int:
    return (
        db.query(func.count(TLDailyActivity.id))
        .filter(TLDailyActivity.person_id == scope.person_id)
        .filter(TLDailyActivity.date >= scope.start, TLDailyActivity.date <= scope.end)
        .filter(TLDailyActivity.deleted_at.is_(None))
        .scalar()
    )


def _count_sessions(session_type: SessionType) -> Callable[[Session, MetricScope], int]:
    def compute(db: Session, scope: MetricScope) -> int:
        return (
            db.query(func.count(TLSession.id))
            .filter(TLSession.person_id == scope.person_id)
            .filter(TLSession.session_type == session_type)
            .filter(TLSession.date >= scope.start, TLSession.date <= scope.end)
            .filter(TLSession.deleted_at.is_(None))
            .scalar()
        )

    return compute


def _attendance_rate(db: Session, scope: MetricScope) -> float:
    indicator = case((TLAttendanceRecord.status == AttendanceStatus.present, 100.0), else_=0.0)
    value = (
        db.query(func.avg(indicator))
        .filter(TLAttendanceRecord.tl_person_id == scope.person_id)
        .filter(TLAttendanceRecord.date >= scope.start, TLAttendanceRecord.date <= scope.end)
        .filter(TLAttendanceRecord.deleted_at.is_(None))
        .scalar()
    )
    return value or 0.0


def _count_trainings(db: Session, scope: MetricScope) -> int:
    return (
        db.query(func.count(TLTrainingParticipation.id))
        .filter(TLTrainingParticipation.tl_person_id == scope.person_id)
        .filter(TLTrainingParticipation.date >= scope.start, TLTrainingParticipation.date <= scope.end)
        .filter(TLTrainingParticipation.deleted_at.is_(None))
        .scalar()
    )


def _count_active_salesmen(db: Session, scope: MetricScope) -> int:
    # Counts every active salesman; persons carry no supervisor link yet.
    return (
        db.query(func.count(Person.id))
        .filter(Person.role == PersonRole.salesman)
        .filter(Person.is_active.is_(True))
        .scalar()
    )


def _dataset_total(model, column, aggregate=func.sum) -> Callable[[Session, MetricScope], float]:
    def compute(db: Session, scope: MetricScope) -> float:
        return (
            db.query(func.coalesce(aggregate(column), 0))
            .select_from(model)
            .join(DashboardDataset, DashboardDataset.id == model.dataset_id)
            .filter(DashboardDataset.period_month == scope.month)
            .filter(DashboardDataset.period_year == scope.year)
            .filter(model.person_id == scope.person_id)
            .scalar()
        )

    return compute


def _reserved(db: Session, scope: MetricScope) -> float:
    return 0.0


DEFAULT_RULES: tuple[MetricRule, ...] = (
    MetricRule(
        MetricKey.quantity_activity,
        "count",
        InputSource.TL,
        "Number of promotional activities (canvassing + pameran)",
        _count_daily_activities,
    ),
    MetricRule(
        MetricKey.sales_flp,
        "amount",
        InputSource.ADMIN,
        "Total FLP sales amount",
        _dataset_total(SalesFLP, SalesFLP.flp_amount),
    ),
    MetricRule(MetricKey.attendance, "percentage", InputSource.TL, "Team attendance rate", _attendance_rate),
    MetricRule(
        MetricKey.coaching_sessions,
        "count",
        InputSource.TL,
        "Number of coaching sessions",
        _count_sessions(SessionType.coaching),
    ),
    MetricRule(
        MetricKey.briefing_sessions,
        "count",
        InputSource.TL,
        "Number of briefing sessions",
        _count_sessions(SessionType.briefing),
    ),
    MetricRule(MetricKey.team_size, "count", InputSource.TL, "Number of active salesmen", _count_active_salesmen),
    MetricRule(
        MetricKey.quiz_score,
        "score",
        InputSource.ADMIN,
        "Average quiz score",
        _dataset_total(QuizResult, QuizResult.score, func.avg),
    ),
    MetricRule(
        MetricKey.training_participation,
        "count",
        InputSource.TL,
        "Number of trainings attended",
        _count_trainings,
    ),
    MetricRule(
        MetricKey.apple_logins,
        "count",
        InputSource.ADMIN,
        "Total Apple logins",
        _dataset_total(AppleLogin, AppleLogin.login_count),
    ),
    MetricRule(
        MetricKey.apple_points,
        "points",
        InputSource.ADMIN,
        "Total Apple points",
        _dataset_total(ApplePoint, ApplePoint.points),
    ),
    MetricRule(
        MetricKey.myhero_points,
        "points",
        InputSource.ADMIN,
        "Total MyHero points",
        _dataset_total(MyHeroPoint, MyHeroPoint.points),
    ),
    MetricRule(
        MetricKey.total_prospects,
        "count",
        InputSource.ADMIN,
        "Total prospects",
        _dataset_total(Prospect, Prospect.prospect_count),
    ),
    MetricRule(MetricKey.prospect_ratio, "ratio", InputSource.ADMIN, "Prospect ratio (reserved)", _reserved),
)


class MetricAggregator:
    def __init__(self, rules: tuple[MetricRule, ...] = DEFAULT_RULES):
        self.rules = rules

    def aggregate(self, db: Session, person_id: str | uuid.UUID, month: int, year: int) -> dict[str, MetricValue]:
        """Collect every metric for one person and period.

        Raises AggregationError naming the first metric that fails; no partial
        map is returned.
        """
        start, end = month_window(month, year)
        scope = MetricScope(person_id=coerce_uuid(person_id), month=month, year=year, start=start, end=end)
        metrics: dict[str, MetricValue] = {}
        for rule in self.rules:
            try:
                value = float(rule.compute(db, scope) or 0)
            except (SQLAlchemyError, TypeError, ValueError) as exc:
                METRIC_FAILURES.labels(metric=rule.key.value).inc()
                logger.error(
                    "metric_aggregation_failed metric=%s person_id=%s period=%s-%s error=%s",
                    rule.key.value,
                    scope.person_id,
                    year,
                    month,
                    exc,
                )
                raise AggregationError(rule.key.value, str(exc)) from exc
            metrics[rule.key.value] = MetricValue(
                value=value,
                unit=rule.unit,
                source=rule.source.value,
                description=rule.description,
            )
        return metrics


metric_aggregator = MetricAggregator()
