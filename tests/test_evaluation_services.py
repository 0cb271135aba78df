"""Tests for evaluation calculation, persistence and read operations."""

import uuid
from types import SimpleNamespace

import pytest

from app.models.dataset import DatasetType, SalesFLP
from app.models.evaluation import Evaluation, EvaluationDetail, EvaluationPeriod
from app.models.kpi import MetricKey, PersonKPITarget
from app.models.person import PersonRole
from app.services.evaluation.calculator import CalculationResult, DetailDraft, EvaluationCalculator
from app.services.evaluation.errors import (
    AggregationError,
    EvaluationConfigError,
    EvaluationNotFoundError,
    EvaluationValidationError,
)
from app.services.evaluation.metrics import MetricAggregator
from app.services.evaluation.service import EvaluationService, _evaluation_write_lock, _write_locks


class _FailingAggregator(MetricAggregator):
    def __init__(self, failing_person_ids):
        super().__init__()
        self.failing_person_ids = set(failing_person_ids)

    def aggregate(self, db, person_id, month, year):
        if person_id in self.failing_person_ids:
            raise AggregationError("sales_flp", "dataset unavailable")
        return super().aggregate(db, person_id, month, year)


def _service(aggregator=None, **kwargs):
    return EvaluationService(calculator=EvaluationCalculator(aggregator=aggregator, use_person_targets=False), **kwargs)


def _details(db_session, evaluation_id):
    return db_session.query(EvaluationDetail).filter(EvaluationDetail.evaluation_id == evaluation_id).all()


# ---------------------------------------------------------------------------
# End-to-end scoring
# ---------------------------------------------------------------------------


def test_end_to_end_sales_pillar(db_session, team_leader, sales_setup, march_metrics):
    march_metrics(team_leader)

    results = _service().calculate_for_period(db_session, 3, 2025, team_leader.id)

    assert len(results) == 1
    result = results[0]
    assert result.person_id == team_leader.id
    assert result.person_name == "Budi Santoso"
    assert result.period_month == 3
    assert result.period_year == 2025
    assert result.total_score == pytest.approx(45)

    by_name = {item.kpi_item_name: item for item in result.kpi_breakdown}
    assert by_name["Quantity Activity"].score == pytest.approx(25)
    assert by_name["Quantity Activity"].actual_value == 12
    assert by_name["Quantity Activity"].achievement_ratio is None
    assert by_name["Sales FLP"].score == pytest.approx(20)
    assert by_name["Sales FLP"].actual_value == pytest.approx(800)
    assert by_name["Sales FLP"].achievement_ratio == pytest.approx(80)
    assert by_name["Sales FLP"].target_value == 1000
    assert by_name["Sales FLP"].max_score == 25
    assert by_name["Sales FLP"].pillar_name == "Sales"

    assert len(result.pillar_breakdown) == 1
    pillar = result.pillar_breakdown[0]
    assert pillar.pillar_name == "Sales"
    assert pillar.pillar_score == pytest.approx(45)
    assert pillar.pillar_max_score == 50


def test_total_score_equals_sum_of_stored_details(
    db_session, team_leader, sales_setup, march_metrics, make_pillar, make_kpi
):
    leadership = make_pillar("Leadership", 30)
    make_kpi(leadership, "Sesi Coaching", 10, 4)
    make_kpi(leadership, "Disiplin & Kehadiran Tim", 20, 100)
    march_metrics(team_leader, activities=3, flp_amounts=(1500.0,))

    result = _service().calculate_for_period(db_session, 3, 2025, team_leader.id)[0]

    evaluation = db_session.get(Evaluation, result.id)
    details = _details(db_session, result.id)
    assert len(details) == 4
    assert evaluation.total_score == pytest.approx(sum(detail.score for detail in details))
    assert result.total_score == pytest.approx(sum(item.score for item in result.kpi_breakdown))


def test_kpi_without_matching_metric_scores_zero_with_no_actual(db_session, team_leader, make_pillar, make_kpi):
    pillar = make_pillar("Sales", 50)
    make_kpi(pillar, "Renamed Sales KPI", 25, 1000)

    result = _service().calculate_for_period(db_session, 3, 2025, team_leader.id)[0]

    assert result.total_score == 0
    assert result.kpi_breakdown[0].actual_value is None
    assert result.kpi_breakdown[0].score == 0


def test_explicit_metric_key_survives_rename(db_session, team_leader, make_pillar, make_kpi, march_metrics):
    pillar = make_pillar("Sales", 50)
    make_kpi(pillar, "FLP Revenue (renamed)", 25, 1000, metric_key=MetricKey.sales_flp)
    march_metrics(team_leader)

    result = _service().calculate_for_period(db_session, 3, 2025, team_leader.id)[0]

    assert result.total_score == pytest.approx(20)


def test_kpis_not_applicable_to_team_leaders_are_ignored(
    db_session, team_leader, sales_setup, march_metrics, make_pillar, make_kpi
):
    salesman_pillar = make_pillar("Salesman Only", 20)
    make_kpi(salesman_pillar, "Kuis", 20, 100, applies_to_tl=False, applies_to_salesman=True)
    march_metrics(team_leader)

    result = _service().calculate_for_period(db_session, 3, 2025, team_leader.id)[0]

    assert [item.pillar_name for item in result.pillar_breakdown] == ["Sales"]
    assert len(result.kpi_breakdown) == 2


def test_person_target_override_applies_when_enabled(db_session, team_leader, sales_setup, march_metrics):
    march_metrics(team_leader)
    db_session.add(
        PersonKPITarget(
            person_id=team_leader.id,
            kpi_item_id=sales_setup["sales_flp"].id,
            period_month=3,
            period_year=2025,
            target_value=800,
        )
    )
    db_session.commit()
    service = EvaluationService(calculator=EvaluationCalculator(use_person_targets=True))

    result = service.calculate_for_period(db_session, 3, 2025, team_leader.id)[0]

    flp = next(item for item in result.kpi_breakdown if item.kpi_item_name == "Sales FLP")
    assert flp.score == pytest.approx(25)
    assert flp.achievement_ratio == pytest.approx(100)


def test_person_target_override_is_ignored_by_default(db_session, team_leader, sales_setup, march_metrics):
    march_metrics(team_leader)
    db_session.add(
        PersonKPITarget(
            person_id=team_leader.id,
            kpi_item_id=sales_setup["sales_flp"].id,
            period_month=3,
            period_year=2025,
            target_value=800,
        )
    )
    db_session.commit()

    result = _service().calculate_for_period(db_session, 3, 2025, team_leader.id)[0]

    assert result.total_score == pytest.approx(45)


# ---------------------------------------------------------------------------
# Recalculation
# ---------------------------------------------------------------------------


def test_calculating_twice_updates_in_place(db_session, team_leader, sales_setup, march_metrics):
    march_metrics(team_leader)
    service = _service()

    first = service.calculate_for_period(db_session, 3, 2025, team_leader.id)[0]
    second = service.calculate_for_period(db_session, 3, 2025, team_leader.id)[0]

    assert second.id == first.id
    assert second.total_score == pytest.approx(first.total_score)
    assert len(_details(db_session, first.id)) == 2
    assert db_session.query(Evaluation).filter(Evaluation.person_id == team_leader.id).count() == 1


def test_recalculation_picks_up_new_metrics(db_session, team_leader, sales_setup, march_metrics, make_dataset):
    march_metrics(team_leader)
    service = _service()
    service.calculate_for_period(db_session, 3, 2025, team_leader.id)

    dataset = make_dataset(DatasetType.sales_flp, 3, 2025)
    db_session.add(SalesFLP(dataset_id=dataset.id, person_id=team_leader.id, flp_amount=100))
    db_session.commit()

    result = service.calculate_for_period(db_session, 3, 2025, team_leader.id)[0]

    assert result.total_score == pytest.approx(47.5)
    assert len(_details(db_session, result.id)) == 2


def test_recalculate_replaces_existing_evaluation(db_session, team_leader, sales_setup, march_metrics):
    march_metrics(team_leader)
    service = _service()
    original = service.calculate_for_period(db_session, 3, 2025, team_leader.id)[0]

    rebuilt = service.recalculate(db_session, 3, 2025, team_leader.id)[0]

    assert rebuilt.id != original.id
    assert rebuilt.total_score == pytest.approx(original.total_score)
    assert db_session.get(Evaluation, original.id) is None
    assert _details(db_session, original.id) == []
    assert len(_details(db_session, rebuilt.id)) == 2


def test_recalculate_without_existing_period_acts_like_calculate(db_session, team_leader, sales_setup, march_metrics):
    march_metrics(team_leader)

    results = _service().recalculate(db_session, 3, 2025)

    assert [result.person_id for result in results] == [team_leader.id]
    assert db_session.query(EvaluationPeriod).filter(EvaluationPeriod.period_month == 3).count() == 1


def test_failed_recalculation_keeps_previous_evaluation(db_session, team_leader, sales_setup, march_metrics):
    march_metrics(team_leader)
    original = _service().calculate_for_period(db_session, 3, 2025, team_leader.id)[0]

    failing = _service(aggregator=_FailingAggregator({team_leader.id}))
    results = failing.calculate_for_period(db_session, 3, 2025)

    assert results == []
    evaluation = db_session.get(Evaluation, original.id)
    assert evaluation is not None
    assert evaluation.total_score == pytest.approx(45)
    assert len(_details(db_session, original.id)) == 2


# ---------------------------------------------------------------------------
# Batch semantics and validation
# ---------------------------------------------------------------------------


def test_batch_skips_failing_person_and_continues(db_session, sales_setup, make_person, march_metrics):
    ana = make_person(name="Ana")
    bayu = make_person(name="Bayu")
    citra = make_person(name="Citra")
    for person in (ana, bayu, citra):
        march_metrics(person, activities=2, flp_amounts=(100.0,))

    service = _service(aggregator=_FailingAggregator({bayu.id}))
    batch = service.calculate_batch(db_session, 3, 2025)
    results = service.calculate_for_period(db_session, 3, 2025)

    assert len(results) == 2
    assert {result.person_id for result in results} == {ana.id, citra.id}
    assert [skipped.person_id for skipped in batch.skipped] == [bayu.id]
    assert batch.skipped[0].code == "aggregation_failed"
    assert db_session.query(Evaluation).filter(Evaluation.person_id == bayu.id).count() == 0


def test_batch_only_includes_active_team_leaders(db_session, sales_setup, make_person):
    active = make_person(name="Active TL")
    make_person(name="Inactive TL", is_active=False)
    make_person(name="Salesman", role=PersonRole.salesman)

    results = _service().calculate_for_period(db_session, 3, 2025)

    assert [result.person_id for result in results] == [active.id]


def test_batch_without_team_leaders_raises(db_session, sales_setup):
    with pytest.raises(EvaluationNotFoundError) as exc:
        _service().calculate_for_period(db_session, 3, 2025)
    assert exc.value.code == "no_team_leaders"


def test_targeted_aggregation_failure_propagates(db_session, team_leader, sales_setup):
    service = _service(aggregator=_FailingAggregator({team_leader.id}))

    with pytest.raises(AggregationError):
        service.calculate_for_period(db_session, 3, 2025, team_leader.id)


def test_targeted_person_must_be_team_leader(db_session, sales_setup, make_person):
    salesman = make_person(role=PersonRole.salesman)

    with pytest.raises(EvaluationValidationError) as exc:
        _service().calculate_for_period(db_session, 3, 2025, salesman.id)

    assert exc.value.code == "person_not_tl"
    assert db_session.query(Evaluation).count() == 0


def test_targeted_unknown_person_is_not_found(db_session, sales_setup):
    with pytest.raises(EvaluationNotFoundError):
        _service().calculate_for_period(db_session, 3, 2025, uuid.uuid4())


def test_no_kpi_items_is_a_configuration_error(db_session, team_leader):
    with pytest.raises(EvaluationConfigError) as exc:
        _service().calculate_for_period(db_session, 3, 2025)
    assert exc.value.code == "no_kpi_items_configured"


def test_invalid_period_is_rejected(db_session, team_leader, sales_setup):
    with pytest.raises(EvaluationValidationError):
        _service().calculate_for_period(db_session, 13, 2025)


def test_parallel_batch_keeps_order_and_skips_failures(db_session, sales_setup, make_person):
    ana = make_person(name="Ana")
    bayu = make_person(name="Bayu")
    citra = make_person(name="Citra")
    scores = {ana.id: 30.0, bayu.id: None, citra.id: 12.5}

    class _StaticCalculator:
        def calculate(self, db, person_id, month, year, kpi_items=None):
            score = scores[person_id]
            if score is None:
                raise AggregationError("sales_flp", "dataset unavailable")
            kpi = kpi_items[0]
            return CalculationResult(
                person_id=person_id,
                total_score=score,
                details=[DetailDraft(kpi_item_id=kpi.id, actual_value=score, achievement_ratio=None, score=score)],
            )

    service = EvaluationService(
        calculator=_StaticCalculator(),
        session_factory=lambda: SimpleNamespace(close=lambda: None),
        batch_workers=3,
    )

    batch = service.calculate_batch(db_session, 3, 2025)

    assert [result.person_id for result in batch.succeeded] == [ana.id, citra.id]
    assert [result.total_score for result in batch.succeeded] == [30.0, 12.5]
    assert [skipped.person_id for skipped in batch.skipped] == [bayu.id]


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


def test_get_by_id_and_by_person_period(db_session, team_leader, sales_setup, march_metrics):
    march_metrics(team_leader)
    service = _service()
    created = service.calculate_for_period(db_session, 3, 2025, team_leader.id)[0]

    by_id = service.get_by_id(db_session, created.id)
    by_person = service.get_by_person_and_period(db_session, team_leader.id, 3, 2025)

    assert by_id.id == created.id
    assert by_person.id == created.id
    assert by_person.total_score == pytest.approx(45)


def test_get_by_id_missing_raises(db_session):
    with pytest.raises(EvaluationNotFoundError) as exc:
        _service().get_by_id(db_session, uuid.uuid4())
    assert exc.value.status_code == 404


def test_get_by_person_and_period_requires_period(db_session, team_leader):
    with pytest.raises(EvaluationNotFoundError) as exc:
        _service().get_by_person_and_period(db_session, team_leader.id, 1, 2030)
    assert exc.value.code == "period_not_found"


def test_list_filters_and_paginates(db_session, sales_setup, make_person):
    people = [make_person(name=f"TL {index}") for index in range(3)]
    service = _service()
    service.calculate_for_period(db_session, 3, 2025)
    service.calculate_for_period(db_session, 4, 2025, people[0].id)

    march, march_total = service.list(db_session, period_month=3, period_year=2025, limit=2)
    assert march_total == 3
    assert len(march) == 2

    mine, mine_total = service.list(db_session, person_id=people[0].id)
    assert mine_total == 2
    assert {(item.period_month, item.period_year) for item in mine} == {(3, 2025), (4, 2025)}

    response = service.list_response(db_session, period_month=4, limit=10, offset=0)
    assert response.total == 1
    assert response.items[0].person_id == people[0].id


# ---------------------------------------------------------------------------
# Leaderboard
# ---------------------------------------------------------------------------


def _seed_period(db_session, make_person, scores, month=3, year=2025):
    period = EvaluationPeriod(period_month=month, period_year=year)
    db_session.add(period)
    db_session.commit()
    people = []
    for index, score in enumerate(scores):
        person = make_person(name=f"TL {index:02d}", dealer_code=None if index == 0 else f"D{index}")
        db_session.add(Evaluation(person_id=person.id, evaluation_period_id=period.id, total_score=score))
        people.append(person)
    db_session.commit()
    return period, people


def test_leaderboard_orders_by_score_descending(db_session, make_person):
    _, people = _seed_period(db_session, make_person, [55.0, 90.0, 72.5, 10.0])

    leaderboard = _service().get_leaderboard(db_session, 3, 2025, 0)

    assert leaderboard.period == "2025-03"
    assert leaderboard.total == 4
    scores = [entry.total_score for entry in leaderboard.entries]
    assert scores == sorted(scores, reverse=True)
    assert [entry.rank for entry in leaderboard.entries] == [1, 2, 3, 4]
    assert leaderboard.entries[0].person_id == people[1].id
    lowest = leaderboard.entries[-1]
    assert lowest.period_month == 3
    assert lowest.period_year == 2025
    dealer_codes = {entry.person_id: entry.dealer_code for entry in leaderboard.entries}
    assert dealer_codes[people[0].id] == ""


def test_leaderboard_limit(db_session, make_person):
    _seed_period(db_session, make_person, [55.0, 90.0, 72.5, 10.0])

    leaderboard = _service().get_leaderboard(db_session, 3, 2025, 2)

    assert leaderboard.total == 2
    assert [entry.total_score for entry in leaderboard.entries] == [90.0, 72.5]


def test_leaderboard_requires_period(db_session):
    with pytest.raises(EvaluationNotFoundError):
        _service().get_leaderboard(db_session, 9, 2029)


def test_delete_evaluation(db_session, team_leader, sales_setup):
    service = _service()
    created = service.calculate_for_period(db_session, 3, 2025, team_leader.id)[0]
    period = db_session.query(EvaluationPeriod).filter(EvaluationPeriod.period_month == 3).one()

    assert service.delete_evaluation(db_session, team_leader.id, period.id) is True
    db_session.commit()

    assert db_session.get(Evaluation, created.id) is None
    assert _details(db_session, created.id) == []
    assert service.delete_evaluation(db_session, team_leader.id, period.id) is False


def test_person_target_override_is_reported_in_breakdown(db_session, team_leader, sales_setup, march_metrics):
    march_metrics(team_leader)
    db_session.add(
        PersonKPITarget(
            person_id=team_leader.id,
            kpi_item_id=sales_setup["sales_flp"].id,
            period_month=3,
            period_year=2025,
            target_value=800,
        )
    )
    db_session.commit()
    service = EvaluationService(calculator=EvaluationCalculator(use_person_targets=True))

    created = service.calculate_for_period(db_session, 3, 2025, team_leader.id)[0]
    fetched = service.get_by_id(db_session, created.id)

    for result in (created, fetched):
        flp = next(item for item in result.kpi_breakdown if item.kpi_item_name == "Sales FLP")
        assert flp.target_value == 800
        assert flp.actual_value == pytest.approx(800)
        assert flp.achievement_ratio == pytest.approx(100)
    activity = next(item for item in fetched.kpi_breakdown if item.kpi_item_name == "Quantity Activity")
    assert activity.target_value is None


def test_breakdown_reports_default_target_when_overrides_disabled(db_session, team_leader, sales_setup, march_metrics):
    march_metrics(team_leader)
    db_session.add(
        PersonKPITarget(
            person_id=team_leader.id,
            kpi_item_id=sales_setup["sales_flp"].id,
            period_month=3,
            period_year=2025,
            target_value=800,
        )
    )
    db_session.commit()

    result = _service().calculate_for_period(db_session, 3, 2025, team_leader.id)[0]

    flp = next(item for item in result.kpi_breakdown if item.kpi_item_name == "Sales FLP")
    assert flp.target_value == 1000
    assert flp.achievement_ratio == pytest.approx(80)


def test_write_locks_are_released_after_each_write(db_session, team_leader, sales_setup):
    service = _service()
    _write_locks.clear()

    for month in range(1, 13):
        service.calculate_for_period(db_session, month, 2025, team_leader.id)

    assert _write_locks == {}


def test_write_lock_entry_lives_while_held():
    person_id, period_id = uuid.uuid4(), uuid.uuid4()

    with _evaluation_write_lock(person_id, period_id):
        assert (person_id, period_id) in _write_locks

    assert (person_id, period_id) not in _write_locks


def test_failed_replace_flags_retained_evaluation(db_session, sales_setup, make_person, march_metrics):
    veteran = make_person(name="Ana")
    newcomer = make_person(name="Bayu")
    march_metrics(veteran)
    _service().calculate_for_period(db_session, 3, 2025, veteran.id)

    failing = _service(aggregator=_FailingAggregator({veteran.id, newcomer.id}))
    batch = failing.calculate_batch(db_session, 3, 2025, replace=True)

    flags = {skipped.person_id: skipped.kept_previous for skipped in batch.skipped}
    assert flags == {veteran.id: True, newcomer.id: False}
    assert db_session.query(Evaluation).filter(Evaluation.person_id == veteran.id).count() == 1
