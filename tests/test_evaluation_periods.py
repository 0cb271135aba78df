"""Tests for period windows and get-or-create of evaluation periods."""

from datetime import datetime

import pytest

from app.models.evaluation import EvaluationPeriod
from app.services.evaluation import periods
from app.services.evaluation.errors import EvaluationNotFoundError, EvaluationValidationError


def test_month_window_covers_whole_month_inclusive():
    start, end = periods.month_window(3, 2025)
    assert start == datetime(2025, 3, 1, 0, 0, 0)
    assert end == datetime(2025, 3, 31, 23, 59, 59)


def test_month_window_rolls_over_december():
    start, end = periods.month_window(12, 2024)
    assert start == datetime(2024, 12, 1)
    assert end == datetime(2024, 12, 31, 23, 59, 59)


def test_month_window_handles_leap_february():
    _, end = periods.month_window(2, 2024)
    assert end == datetime(2024, 2, 29, 23, 59, 59)


@pytest.mark.parametrize(
    ("month", "year", "delta", "expected"),
    [
        (1, 2025, -1, (12, 2024)),
        (11, 2024, 3, (2, 2025)),
        (6, 2025, 0, (6, 2025)),
        (3, 2025, -14, (1, 2024)),
    ],
)
def test_shift_month(month, year, delta, expected):
    assert periods.shift_month(month, year, delta) == expected


def test_format_period_pads_month():
    assert periods.format_period(3, 2025) == "2025-03"


@pytest.mark.parametrize(("month", "year"), [(0, 2025), (13, 2025), (5, 2019)])
def test_validate_period_rejects_out_of_range(month, year):
    with pytest.raises(EvaluationValidationError) as exc:
        periods.validate_period(month, year)
    assert exc.value.code == "invalid_period"
    assert exc.value.status_code == 400


def test_require_period_raises_when_missing(db_session):
    with pytest.raises(EvaluationNotFoundError):
        periods.require_period(db_session, 7, 2031)


# ---------------------------------------------------------------------------
# Get-or-create
# ---------------------------------------------------------------------------


def test_get_or_create_period_is_idempotent(db_session):
    first = periods.get_or_create_period(db_session, 3, 2025)
    second = periods.get_or_create_period(db_session, 3, 2025)

    assert first.id == second.id
    count = (
        db_session.query(EvaluationPeriod)
        .filter(EvaluationPeriod.period_month == 3, EvaluationPeriod.period_year == 2025)
        .count()
    )
    assert count == 1


def test_get_or_create_period_recovers_when_another_writer_inserted_first(db_session, monkeypatch):
    existing = EvaluationPeriod(period_month=4, period_year=2025)
    db_session.add(existing)
    db_session.commit()
    existing_id = existing.id

    real_get_period = periods.get_period
    calls = {"count": 0}

    def _stale_first_lookup(db, month, year):
        calls["count"] += 1
        if calls["count"] == 1:
            return None
        return real_get_period(db, month, year)

    monkeypatch.setattr(periods, "get_period", _stale_first_lookup)

    period = periods.get_or_create_period(db_session, 4, 2025)

    assert period.id == existing_id
    assert calls["count"] == 2
    count = (
        db_session.query(EvaluationPeriod)
        .filter(EvaluationPeriod.period_month == 4, EvaluationPeriod.period_year == 2025)
        .count()
    )
    assert count == 1
