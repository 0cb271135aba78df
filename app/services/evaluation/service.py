"""Evaluation persistence and orchestration.

One evaluation exists per (person, period). Writing it replaces the stored
details and total score inside a single savepoint, so a failure leaves the
previous state untouched. Batch calculations skip persons that fail and keep
going; targeted calculations raise.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterator
from concurrent.futures import ThreadPoolExecutor, as_completed
from contextlib import contextmanager
from dataclasses import dataclass, field
from threading import Lock
from time import monotonic

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.db import SessionLocal
from app.logging import get_logger
from app.models.evaluation import Evaluation, EvaluationDetail, EvaluationPeriod
from app.schemas.evaluation import EvaluationListResponse, EvaluationResponse, LeaderboardEntry, LeaderboardResponse
from app.services.common import apply_ordering, apply_pagination, coerce_uuid
from app.services.evaluation.calculator import (
    CalculationResult,
    EvaluationCalculator,
    evaluation_calculator,
    load_tl_kpi_items,
)
from app.services.evaluation.catalog import (
    PersonDirectory,
    PillarKpiLookup,
    build_evaluation_response,
    kpi_catalog,
    person_directory,
    snapshot_kpi,
)
from app.services.evaluation.errors import EvaluationError, EvaluationNotFoundError, PersistenceError
from app.services.evaluation.observability import BATCH_SIZE, CALCULATION_TIME, EVALUATION_CALCULATIONS
from app.services.evaluation.periods import (
    format_period,
    get_or_create_period,
    get_period,
    require_period,
    validate_period,
)
from app.telemetry import get_tracer

logger = get_logger(__name__)
_tracer = get_tracer(__name__)


@dataclass(frozen=True)
class SkippedPerson:
    person_id: uuid.UUID
    code: str
    reason: str
    # Set when a recalculation failed and the earlier evaluation is still stored.
    kept_previous: bool = False


@dataclass
class BatchResult:
    period_month: int
    period_year: int
    succeeded: list[EvaluationResponse] = field(default_factory=list)
    skipped: list[SkippedPerson] = field(default_factory=list)


class _WriteLock:
    __slots__ = ("lock", "holders")

    def __init__(self):
        self.lock = Lock()
        self.holders = 0


_write_locks: dict[tuple[uuid.UUID, uuid.UUID], _WriteLock] = {}
_write_locks_guard = Lock()


@contextmanager
def _evaluation_write_lock(person_id: uuid.UUID, period_id: uuid.UUID) -> Iterator[None]:
    """Serialize writers of one (person, period) within this process.

    Across processes the evaluation row lock and the unique constraint on
    (person_id, evaluation_period_id) apply.
    """
    key = (person_id, period_id)
    with _write_locks_guard:
        entry = _write_locks.setdefault(key, _WriteLock())
        entry.holders += 1
    try:
        with entry.lock:
            yield
    finally:
        with _write_locks_guard:
            entry.holders -= 1
            if not entry.holders:
                del _write_locks[key]


class EvaluationService:
    def __init__(
        self,
        calculator: EvaluationCalculator | None = None,
        catalog: PillarKpiLookup | None = None,
        people: PersonDirectory | None = None,
        session_factory=None,
        batch_workers: int | None = None,
    ):
        self.calculator = calculator or evaluation_calculator
        self.catalog = catalog or kpi_catalog
        self.people = people or person_directory
        self.session_factory = session_factory
        self.batch_workers = settings.evaluation_batch_workers if batch_workers is None else batch_workers

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def calculate_batch(
        self,
        db: Session,
        period_month: int,
        period_year: int,
        person_id: str | uuid.UUID | None = None,
        replace: bool = False,
    ) -> BatchResult:
        with _tracer.start_as_current_span("evaluation.calculate_batch") as span:
            span.set_attribute("evaluation.period", format_period(period_month, period_year))
            result = self._run_batch(db, period_month, period_year, person_id, replace)
            span.set_attribute("evaluation.succeeded", len(result.succeeded))
            span.set_attribute("evaluation.skipped", len(result.skipped))
            return result

    def _run_batch(
        self,
        db: Session,
        period_month: int,
        period_year: int,
        person_id: str | uuid.UUID | None,
        replace: bool,
    ) -> BatchResult:
        validate_period(period_month, period_year)
        targeted = person_id is not None
        if targeted:
            person_ids = [self.people.require_team_leader(db, person_id).id]
        else:
            person_ids = [person.id for person in self.people.active_team_leaders(db)]
            if not person_ids:
                raise EvaluationNotFoundError("no_team_leaders", "No active team leaders found")

        kpis = [snapshot_kpi(kpi) for kpi in load_tl_kpi_items(db)]
        period = get_or_create_period(db, period_month, period_year)
        period_id = period.id
        db.commit()

        BATCH_SIZE.observe(len(person_ids))
        result = BatchResult(period_month=period_month, period_year=period_year)
        precomputed: dict[uuid.UUID, CalculationResult | EvaluationError] = {}
        if not targeted and self.batch_workers > 1 and self.session_factory is not None:
            precomputed = self._calculate_parallel(person_ids, period_month, period_year, kpis)

        for current_id in person_ids:
            outcome = precomputed.get(current_id)
            try:
                if isinstance(outcome, EvaluationError):
                    raise outcome
                evaluation = self._calculate_and_store(
                    db, period_id, current_id, period_month, period_year, kpis, outcome, replace
                )
                response = self._response(db, evaluation)
            except EvaluationError as exc:
                if targeted:
                    raise
                kept_previous = replace and self._find(db, current_id, period_id) is not None
                self._record_skip(result, current_id, exc, kept_previous)
                continue
            EVALUATION_CALCULATIONS.labels(status="succeeded").inc()
            result.succeeded.append(response)

        logger.info(
            "evaluation_batch_complete period=%s succeeded=%d skipped=%d",
            format_period(period_month, period_year),
            len(result.succeeded),
            len(result.skipped),
        )
        return result

    def calculate_for_period(
        self,
        db: Session,
        period_month: int,
        period_year: int,
        person_id: str | uuid.UUID | None = None,
    ) -> list[EvaluationResponse]:
        return self.calculate_batch(db, period_month, period_year, person_id).succeeded

    def recalculate(
        self,
        db: Session,
        period_month: int,
        period_year: int,
        person_id: str | uuid.UUID | None = None,
    ) -> list[EvaluationResponse]:
        """Discard and rebuild evaluations for the period.

        Each targeted person's old evaluation is deleted and a fresh one is
        inserted in the same savepoint, so the replacement gets a new id. A
        person whose recalculation fails keeps the previous evaluation, and the
        leaderboard keeps showing that older score; `calculate_batch` with
        `replace=True` reports such persons with `kept_previous` set.
        """
        validate_period(period_month, period_year)
        if get_period(db, period_month, period_year) is None:
            return self.calculate_for_period(db, period_month, period_year, person_id)
        return self.calculate_batch(db, period_month, period_year, person_id, replace=True).succeeded

    def delete_evaluation(self, db: Session, person_id: str | uuid.UUID, period_id: str | uuid.UUID) -> bool:
        evaluation = self._find(db, coerce_uuid(person_id), coerce_uuid(period_id))
        if not evaluation:
            return False
        db.delete(evaluation)
        db.flush()
        return True

    def _calculate_parallel(
        self,
        person_ids: list[uuid.UUID],
        period_month: int,
        period_year: int,
        kpis: list,
    ) -> dict[uuid.UUID, CalculationResult | EvaluationError]:
        def _work(person_id: uuid.UUID) -> CalculationResult:
            session = self.session_factory()
            try:
                return self.calculator.calculate(session, person_id, period_month, period_year, kpis)
            except SQLAlchemyError as exc:
                raise PersistenceError(f"Could not read metrics for person {person_id}: {exc}") from exc
            finally:
                session.close()

        outcomes: dict[uuid.UUID, CalculationResult | EvaluationError] = {}
        with ThreadPoolExecutor(max_workers=self.batch_workers) as executor:
            futures = {executor.submit(_work, person_id): person_id for person_id in person_ids}
            for future in as_completed(futures):
                person_id = futures[future]
                try:
                    outcomes[person_id] = future.result()
                except EvaluationError as exc:
                    outcomes[person_id] = exc
        return outcomes

    def _calculate_and_store(
        self,
        db: Session,
        period_id: uuid.UUID,
        person_id: uuid.UUID,
        period_month: int,
        period_year: int,
        kpis: list,
        calculation: CalculationResult | None,
        replace: bool,
    ) -> Evaluation:
        started = monotonic()
        with _evaluation_write_lock(person_id, period_id):
            try:
                with db.begin_nested():
                    if calculation is None:
                        calculation = self.calculator.calculate(db, person_id, period_month, period_year, kpis)
                    evaluation = self._write_evaluation(db, period_id, person_id, calculation, replace)
            except SQLAlchemyError as exc:
                raise PersistenceError(f"Could not store evaluation for person {person_id}: {exc}") from exc
            try:
                db.commit()
            except SQLAlchemyError as exc:
                db.rollback()
                raise PersistenceError(f"Could not commit evaluation for person {person_id}: {exc}") from exc
        CALCULATION_TIME.observe(monotonic() - started)
        logger.info(
            "evaluation_stored person_id=%s period_id=%s total_score=%.2f details=%d",
            person_id,
            period_id,
            calculation.total_score,
            len(calculation.details),
        )
        return evaluation

    def _write_evaluation(
        self,
        db: Session,
        period_id: uuid.UUID,
        person_id: uuid.UUID,
        calculation: CalculationResult,
        replace: bool,
    ) -> Evaluation:
        evaluation = self._find(db, person_id, period_id, for_update=True)
        if evaluation and replace:
            db.delete(evaluation)
            db.flush()
            evaluation = None
        if evaluation:
            db.query(EvaluationDetail).filter(EvaluationDetail.evaluation_id == evaluation.id).delete(
                synchronize_session=False
            )
            evaluation.total_score = calculation.total_score
        else:
            evaluation = Evaluation(
                person_id=person_id,
                evaluation_period_id=period_id,
                total_score=calculation.total_score,
            )
            db.add(evaluation)
            db.flush()
        db.add_all(
            [
                EvaluationDetail(
                    evaluation_id=evaluation.id,
                    kpi_item_id=draft.kpi_item_id,
                    actual_value=draft.actual_value,
                    achievement_ratio=draft.achievement_ratio,
                    score=draft.score,
                )
                for draft in calculation.details
            ]
        )
        db.flush()
        return evaluation

    def _find(
        self,
        db: Session,
        person_id: uuid.UUID,
        period_id: uuid.UUID,
        for_update: bool = False,
    ) -> Evaluation | None:
        query = (
            db.query(Evaluation)
            .filter(Evaluation.person_id == person_id)
            .filter(Evaluation.evaluation_period_id == period_id)
        )
        if for_update:
            query = query.with_for_update()
        return query.first()

    @staticmethod
    def _record_skip(
        result: BatchResult, person_id: uuid.UUID, exc: EvaluationError, kept_previous: bool = False
    ) -> None:
        EVALUATION_CALCULATIONS.labels(status="skipped").inc()
        logger.warning(
            "evaluation_skipped person_id=%s period=%s code=%s reason=%s kept_previous=%s",
            person_id,
            format_period(result.period_month, result.period_year),
            exc.code,
            exc.detail,
            kept_previous,
        )
        result.skipped.append(
            SkippedPerson(person_id=person_id, code=exc.code, reason=exc.detail, kept_previous=kept_previous)
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _response(self, db: Session, evaluation: Evaluation) -> EvaluationResponse:
        return build_evaluation_response(
            db,
            evaluation,
            self.catalog,
            self.people,
            use_person_targets=getattr(self.calculator, "use_person_targets", False),
        )

    def get_by_id(self, db: Session, evaluation_id: str | uuid.UUID) -> EvaluationResponse:
        evaluation = db.get(Evaluation, coerce_uuid(evaluation_id))
        if not evaluation:
            raise EvaluationNotFoundError("evaluation_not_found", "Evaluation not found")
        return self._response(db, evaluation)

    def get_by_person_and_period(
        self,
        db: Session,
        person_id: str | uuid.UUID,
        period_month: int,
        period_year: int,
    ) -> EvaluationResponse:
        period = require_period(db, period_month, period_year)
        evaluation = self._find(db, coerce_uuid(person_id), period.id)
        if not evaluation:
            raise EvaluationNotFoundError("evaluation_not_found", "Evaluation not found")
        return self._response(db, evaluation)

    def list(
        self,
        db: Session,
        period_month: int | None = None,
        period_year: int | None = None,
        person_id: str | uuid.UUID | None = None,
        order_by: str = "created_at",
        order_dir: str = "desc",
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[EvaluationResponse], int]:
        query = db.query(Evaluation)
        if period_month is not None or period_year is not None:
            query = query.join(EvaluationPeriod, EvaluationPeriod.id == Evaluation.evaluation_period_id)
            if period_month is not None:
                query = query.filter(EvaluationPeriod.period_month == period_month)
            if period_year is not None:
                query = query.filter(EvaluationPeriod.period_year == period_year)
        if person_id:
            query = query.filter(Evaluation.person_id == coerce_uuid(person_id))
        total = query.count()
        query = apply_ordering(
            query,
            order_by,
            order_dir,
            {"created_at": Evaluation.created_at, "total_score": Evaluation.total_score},
        )
        evaluations = apply_pagination(query, limit, offset).all()
        items = [self._response(db, evaluation) for evaluation in evaluations]
        return items, total

    def list_response(
        self,
        db: Session,
        period_month: int | None = None,
        period_year: int | None = None,
        person_id: str | uuid.UUID | None = None,
        order_by: str = "created_at",
        order_dir: str = "desc",
        limit: int = 20,
        offset: int = 0,
    ) -> EvaluationListResponse:
        items, total = self.list(db, period_month, period_year, person_id, order_by, order_dir, limit, offset)
        return EvaluationListResponse(items=items, total=total, limit=limit, offset=offset)

    def get_leaderboard(
        self,
        db: Session,
        period_month: int,
        period_year: int,
        limit: int | None = None,
    ) -> LeaderboardResponse:
        period = require_period(db, period_month, period_year)
        limit = settings.leaderboard_default_limit if limit is None else limit
        query = (
            db.query(Evaluation)
            .filter(Evaluation.evaluation_period_id == period.id)
            .order_by(Evaluation.total_score.desc(), Evaluation.created_at.asc())
        )
        if limit > 0:
            query = query.limit(limit)
        evaluations = query.all()
        people = self.people.by_ids(db, [evaluation.person_id for evaluation in evaluations])

        entries: list[LeaderboardEntry] = []
        for rank, evaluation in enumerate(evaluations, start=1):
            person = people.get(evaluation.person_id)
            if person is None:
                continue
            entries.append(
                LeaderboardEntry(
                    rank=rank,
                    person_id=person.id,
                    person_name=person.name,
                    dealer_code=person.dealer_code or "",
                    total_score=evaluation.total_score,
                    period_month=period_month,
                    period_year=period_year,
                )
            )
        return LeaderboardResponse(period=format_period(period_month, period_year), entries=entries, total=len(entries))


evaluation_service = EvaluationService(session_factory=SessionLocal)
