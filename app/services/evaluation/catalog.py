"""Read-only lookups used when scoring and when rebuilding breakdowns.

KPI and pillar metadata changes rarely but is read on every breakdown, so
`KpiCatalog` keeps detached snapshots in memory for a configurable TTL. Admin
edits should call `kpi_catalog.invalidate()`; a request for an unknown KPI id
also forces a reload.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from threading import Lock
from time import monotonic
from typing import Protocol

from sqlalchemy.orm import Session

from app.config import settings
from app.logging import get_logger
from app.models.evaluation import Evaluation, EvaluationDetail
from app.models.kpi import KPIItem, MetricKey, Pillar
from app.models.person import Person, PersonRole
from app.schemas.evaluation import EvaluationResponse, KpiScoreBreakdown, PillarScoreBreakdown
from app.services.common import coerce_uuid
from app.services.evaluation.calculator import person_targets
from app.services.evaluation.errors import EvaluationNotFoundError, EvaluationValidationError

logger = get_logger(__name__)


@dataclass(frozen=True)
class PillarInfo:
    id: uuid.UUID
    name: str
    weight: float


@dataclass(frozen=True)
class KpiInfo:
    id: uuid.UUID
    pillar_id: uuid.UUID
    name: str
    weight: float
    target_value: float | None
    unit: str | None
    input_source: str
    metric_key: MetricKey | None


class PillarKpiLookup(Protocol):
    """Read access to KPI and pillar metadata by id."""

    def kpis(self, db: Session, kpi_ids: Iterable[uuid.UUID] = ()) -> dict[uuid.UUID, KpiInfo]: ...

    def pillars(self, db: Session) -> dict[uuid.UUID, PillarInfo]: ...


def snapshot_kpi(kpi: KPIItem) -> KpiInfo:
    return KpiInfo(
        id=kpi.id,
        pillar_id=kpi.pillar_id,
        name=kpi.name,
        weight=float(kpi.weight or 0),
        target_value=kpi.target_value,
        unit=kpi.unit,
        input_source=kpi.input_source.value if kpi.input_source else "",
        metric_key=kpi.metric_key,
    )


class KpiCatalog:
    def __init__(self, ttl_seconds: int | None = None, clock=monotonic):
        self.ttl_seconds = settings.kpi_catalog_ttl_seconds if ttl_seconds is None else ttl_seconds
        self._clock = clock
        self._lock = Lock()
        self._loaded_at: float | None = None
        self._kpis: dict[uuid.UUID, KpiInfo] = {}
        self._pillars: dict[uuid.UUID, PillarInfo] = {}

    def invalidate(self) -> None:
        with self._lock:
            self._loaded_at = None
            self._kpis = {}
            self._pillars = {}

    def _is_stale(self) -> bool:
        if self._loaded_at is None or self.ttl_seconds <= 0:
            return True
        return self._clock() - self._loaded_at > self.ttl_seconds

    def _load(self, db: Session) -> None:
        # Soft-deleted KPI items stay visible so historical details keep their labels.
        self._kpis = {kpi.id: snapshot_kpi(kpi) for kpi in db.query(KPIItem).all()}
        self._pillars = {
            pillar.id: PillarInfo(id=pillar.id, name=pillar.name, weight=float(pillar.weight or 0))
            for pillar in db.query(Pillar).all()
        }
        self._loaded_at = self._clock()
        logger.debug("kpi_catalog_loaded kpis=%d pillars=%d", len(self._kpis), len(self._pillars))

    def _ensure(self, db: Session, kpi_ids: Iterable[uuid.UUID] = ()) -> None:
        with self._lock:
            if self._is_stale() or any(kpi_id not in self._kpis for kpi_id in kpi_ids):
                self._load(db)

    def kpis(self, db: Session, kpi_ids: Iterable[uuid.UUID] = ()) -> dict[uuid.UUID, KpiInfo]:
        self._ensure(db, list(kpi_ids))
        return self._kpis

    def pillars(self, db: Session) -> dict[uuid.UUID, PillarInfo]:
        self._ensure(db)
        return self._pillars


class PersonDirectory:
    def get(self, db: Session, person_id: str | uuid.UUID) -> Person | None:
        return db.get(Person, coerce_uuid(person_id))

    def require(self, db: Session, person_id: str | uuid.UUID) -> Person:
        person = self.get(db, person_id)
        if not person:
            raise EvaluationNotFoundError("person_not_found", f"Person {person_id} not found")
        return person

    def require_team_leader(self, db: Session, person_id: str | uuid.UUID) -> Person:
        person = self.require(db, person_id)
        if person.role != PersonRole.tl:
            raise EvaluationValidationError("person_not_tl", f"Person {person_id} is not a team leader")
        return person

    def active_team_leaders(self, db: Session) -> list[Person]:
        return (
            db.query(Person)
            .filter(Person.role == PersonRole.tl)
            .filter(Person.is_active.is_(True))
            .order_by(Person.name)
            .all()
        )

    def by_ids(self, db: Session, person_ids: Iterable[uuid.UUID]) -> dict[uuid.UUID, Person]:
        ids = list({coerce_uuid(person_id) for person_id in person_ids})
        if not ids:
            return {}
        return {person.id: person for person in db.query(Person).filter(Person.id.in_(ids)).all()}

    def names_for(self, db: Session, person_ids: Iterable[uuid.UUID]) -> dict[uuid.UUID, str]:
        return {person_id: person.name for person_id, person in self.by_ids(db, person_ids).items()}


kpi_catalog = KpiCatalog()
person_directory = PersonDirectory()


def build_evaluation_response(
    db: Session,
    evaluation: Evaluation,
    catalog: PillarKpiLookup | None = None,
    people: PersonDirectory | None = None,
    use_person_targets: bool | None = None,
) -> EvaluationResponse:
    """Rebuild the scored breakdown of a stored evaluation.

    With person targets enabled the reported target is the per-person override
    the score was computed against, falling back to the KPI default.
    """
    catalog = catalog or kpi_catalog
    people = people or person_directory
    if use_person_targets is None:
        use_person_targets = settings.evaluation_use_person_targets
    period = evaluation.period
    details = db.query(EvaluationDetail).filter(EvaluationDetail.evaluation_id == evaluation.id).all()
    kpis = catalog.kpis(db, [detail.kpi_item_id for detail in details])
    pillars = catalog.pillars(db)
    person = people.get(db, evaluation.person_id)
    overrides = (
        person_targets(db, evaluation.person_id, period.period_month, period.period_year)
        if use_person_targets
        else {}
    )

    kpi_breakdown: list[KpiScoreBreakdown] = []
    pillar_totals: dict[uuid.UUID, float] = {}
    for detail in details:
        kpi = kpis.get(detail.kpi_item_id)
        if kpi is None:
            continue
        pillar = pillars.get(kpi.pillar_id)
        kpi_breakdown.append(
            KpiScoreBreakdown(
                kpi_item_id=kpi.id,
                kpi_item_name=kpi.name,
                pillar_name=pillar.name if pillar else "",
                weight=kpi.weight,
                actual_value=detail.actual_value,
                target_value=overrides.get(kpi.id, kpi.target_value),
                achievement_ratio=detail.achievement_ratio,
                score=detail.score,
                max_score=kpi.weight,
                unit=kpi.unit,
                input_source=kpi.input_source,
            )
        )
        if pillar is not None:
            pillar_totals[pillar.id] = pillar_totals.get(pillar.id, 0.0) + detail.score

    kpi_breakdown.sort(key=lambda item: (item.pillar_name, item.kpi_item_name))
    pillar_breakdown = [
        PillarScoreBreakdown(
            pillar_id=pillar_id,
            pillar_name=pillars[pillar_id].name,
            pillar_weight=pillars[pillar_id].weight,
            pillar_score=score,
            pillar_max_score=pillars[pillar_id].weight,
        )
        for pillar_id, score in pillar_totals.items()
    ]
    pillar_breakdown.sort(key=lambda item: item.pillar_name)

    return EvaluationResponse(
        id=evaluation.id,
        person_id=evaluation.person_id,
        person_name=person.name if person else "",
        period_month=period.period_month,
        period_year=period.period_year,
        total_score=evaluation.total_score,
        pillar_breakdown=pillar_breakdown,
        kpi_breakdown=kpi_breakdown,
        created_at=evaluation.created_at,
    )
