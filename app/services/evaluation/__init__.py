"""Team-leader evaluation engine: metric aggregation, KPI scoring, persistence and ranking."""

from app.services.evaluation.analytics import EvaluationAnalyticsService, evaluation_analytics
from app.services.evaluation.calculator import EvaluationCalculator, evaluation_calculator
from app.services.evaluation.catalog import KpiCatalog, PersonDirectory, PillarKpiLookup, kpi_catalog, person_directory
from app.services.evaluation.metrics import MetricAggregator, metric_aggregator
from app.services.evaluation.service import BatchResult, EvaluationService, SkippedPerson, evaluation_service

__all__ = [
    "BatchResult",
    "EvaluationAnalyticsService",
    "EvaluationCalculator",
    "EvaluationService",
    "KpiCatalog",
    "MetricAggregator",
    "PersonDirectory",
    "PillarKpiLookup",
    "SkippedPerson",
    "evaluation_analytics",
    "evaluation_calculator",
    "evaluation_service",
    "kpi_catalog",
    "metric_aggregator",
    "person_directory",
]
