from __future__ import annotations

import uuid
from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from app.config import settings
from app.logging import get_logger
from app.models.kpi import KPIItem, PersonKPITarget
from app.services.common import coerce_uuid
from app.services.evaluation.errors import EvaluationConfigError
from app.services.evaluation.metrics import MetricAggregator, metric_aggregator
from app.services.evaluation.scoring import resolve_metric_key, score_kpi

logger = get_logger(__name__)


@dataclass(frozen=True)
class DetailDraft:
    kpi_item_id: uuid.UUID
    actual_value: float | None
    achievement_ratio: float | None
    score: float


@dataclass
class CalculationResult:
    person_id: uuid.UUID
    total_score: float = 0.0
    details: list[DetailDraft] = field(default_factory=list)


def load_tl_kpi_items(db: Session) -> list[KPIItem]:
    items = (
        db.query(KPIItem)
        .filter(KPIItem.applies_to_tl.is_(True))
        .filter(KPIItem.deleted_at.is_(None))
        .order_by(KPIItem.pillar_id, KPIItem.name)
        .all()
    )
    if not items:
        raise EvaluationConfigError("no_kpi_items_configured", "No KPI items configured for team leaders")
    return items


def person_targets(db: Session, person_id: uuid.UUID, month: int, year: int) -> dict[uuid.UUID, float]:
    rows = (
        db.query(PersonKPITarget.kpi_item_id, PersonKPITarget.target_value)
        .filter(PersonKPITarget.person_id == person_id)
        .filter(PersonKPITarget.period_month == month)
        .filter(PersonKPITarget.period_year == year)
        .all()
    )
    return {kpi_item_id: target_value for kpi_item_id, target_value in rows}


class EvaluationCalculator:
    def __init__(self, aggregator: MetricAggregator | None = None, use_person_targets: bool | None = None):
        self.aggregator = aggregator or metric_aggregator
        self.use_person_targets = (
            settings.evaluation_use_person_targets if use_person_targets is None else use_person_targets
        )

    def calculate(
        self,
        db: Session,
        person_id: str | uuid.UUID,
        month: int,
        year: int,
        kpi_items: list | None = None,
    ) -> CalculationResult:
        """Score every TL KPI item for one person and period without persisting anything."""
        person_uuid = coerce_uuid(person_id)
        if kpi_items is None:
            kpi_items = load_tl_kpi_items(db)
        elif not kpi_items:
            raise EvaluationConfigError("no_kpi_items_configured", "No KPI items configured for team leaders")

        metrics = self.aggregator.aggregate(db, person_uuid, month, year)
        overrides = person_targets(db, person_uuid, month, year) if self.use_person_targets else {}

        result = CalculationResult(person_id=person_uuid)
        for kpi in kpi_items:
            metric = metrics.get(resolve_metric_key(kpi))
            if metric is None:
                result.details.append(
                    DetailDraft(kpi_item_id=kpi.id, actual_value=None, achievement_ratio=None, score=0.0)
                )
                continue
            target_value = overrides.get(kpi.id, kpi.target_value)
            scored = score_kpi(kpi.weight, target_value, metric.value)
            result.details.append(
                DetailDraft(
                    kpi_item_id=kpi.id,
                    actual_value=metric.value,
                    achievement_ratio=scored.achievement_ratio,
                    score=scored.score,
                )
            )
            result.total_score += scored.score
        logger.debug(
            "evaluation_calculated person_id=%s period=%s-%s total=%.2f kpis=%d",
            person_uuid,
            year,
            month,
            result.total_score,
            len(result.details),
        )
        return result


evaluation_calculator = EvaluationCalculator()
