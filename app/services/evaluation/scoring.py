from __future__ import annotations

from dataclasses import dataclass

from app.models.kpi import MetricKey

# Display-name mapping used for KPI items created before metric_key existed.
# Renaming such an item breaks the lookup, so new items should set metric_key.
LEGACY_METRIC_KEYS: dict[str, MetricKey] = {
    "Quantity Activity": MetricKey.quantity_activity,
    "Sales FLP": MetricKey.sales_flp,
    "Disiplin & Kehadiran Tim": MetricKey.attendance,
    "Sesi Coaching": MetricKey.coaching_sessions,
    "Sesi Briefing": MetricKey.briefing_sessions,
    "Jumlah Tim": MetricKey.team_size,
    "Kuis": MetricKey.quiz_score,
    "Partisipasi Training": MetricKey.training_participation,
    "Login Apple": MetricKey.apple_logins,
    "Point Apple": MetricKey.apple_points,
    "Point my Hero": MetricKey.myhero_points,
    "Jumlah Prospek": MetricKey.total_prospects,
    "Ratio Prospek": MetricKey.prospect_ratio,
}


@dataclass(frozen=True)
class KpiScore:
    score: float
    achievement_ratio: float | None


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def score_kpi(weight: float | None, target_value: float | None, actual_value: float) -> KpiScore:
    """Score one KPI against its target.

    Without a target (None or 0) the KPI is presence-scored: full weight for
    any positive actual, nothing otherwise. With a target the weight is scaled
    by actual/target capped at 1. The achievement ratio is actual/target as an
    uncapped percentage and is only reported for positive targets.
    """
    max_score = max(float(weight or 0), 0.0)
    if not target_value:
        return KpiScore(score=max_score if actual_value > 0 else 0.0, achievement_ratio=None)
    ratio = min(actual_value / target_value, 1.0)
    achievement_ratio = actual_value / target_value * 100 if target_value > 0 else None
    return KpiScore(score=_clamp(max_score * ratio, 0.0, max_score), achievement_ratio=achievement_ratio)


def resolve_metric_key(kpi) -> str:
    if kpi.metric_key is not None:
        return kpi.metric_key.value
    legacy = LEGACY_METRIC_KEYS.get(kpi.name)
    if legacy is not None:
        return legacy.value
    return kpi.name
