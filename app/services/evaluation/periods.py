from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.logging import get_logger
from app.models.evaluation import EvaluationPeriod
from app.services.evaluation.errors import EvaluationNotFoundError, EvaluationValidationError, PersistenceError

logger = get_logger(__name__)

MIN_PERIOD_YEAR = 2020


def month_window(month: int, year: int) -> tuple[datetime, datetime]:
    """Inclusive bounds of a calendar month: day 1 00:00:00 to the last second of the month."""
    start = datetime(year, month, 1)
    next_month, next_year = shift_month(month, year, 1)
    return start, datetime(next_year, next_month, 1) - timedelta(seconds=1)


def shift_month(month: int, year: int, delta: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index % 12 + 1, index // 12


def format_period(month: int, year: int) -> str:
    return f"{year}-{month:02d}"


def validate_period(month: int, year: int) -> None:
    if not 1 <= month <= 12:
        raise EvaluationValidationError("invalid_period", "period_month must be between 1 and 12")
    if year < MIN_PERIOD_YEAR:
        raise EvaluationValidationError("invalid_period", f"period_year must be {MIN_PERIOD_YEAR} or later")


def get_period(db: Session, month: int, year: int) -> EvaluationPeriod | None:
    return (
        db.query(EvaluationPeriod)
        .filter(EvaluationPeriod.period_month == month)
        .filter(EvaluationPeriod.period_year == year)
        .first()
    )


def require_period(db: Session, month: int, year: int) -> EvaluationPeriod:
    period = get_period(db, month, year)
    if not period:
        raise EvaluationNotFoundError("period_not_found", f"Evaluation period {format_period(month, year)} not found")
    return period


def get_or_create_period(db: Session, month: int, year: int) -> EvaluationPeriod:
    period = get_period(db, month, year)
    if period:
        return period
    try:
        with db.begin_nested():
            period = EvaluationPeriod(period_month=month, period_year=year)
            db.add(period)
            db.flush()
    except IntegrityError:
        # Another writer created the same (month, year) first.
        logger.info("evaluation_period_conflict period=%s", format_period(month, year))
        period = get_period(db, month, year)
        if period is None:
            raise PersistenceError(f"Could not create evaluation period {format_period(month, year)}") from None
        return period
    logger.info("evaluation_period_created period=%s id=%s", format_period(month, year), period.id)
    return period
