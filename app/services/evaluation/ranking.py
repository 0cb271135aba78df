"""Rank, percentile and summary statistics over one period's scores."""

from __future__ import annotations

import statistics
from collections.abc import Sequence
from typing import TypeVar

from app.schemas.evaluation_analytics import DistributionBucket, OverallStatistics, RankingInfo

T = TypeVar("T")

DISTRIBUTION_BUCKETS: tuple[tuple[str, float, float], ...] = (
    ("0-20", 0.0, 20.0),
    ("20-40", 20.0, 40.0),
    ("40-60", 40.0, 60.0),
    ("60-80", 60.0, 80.0),
    ("80-100", 80.0, 100.0),
)


def percentile(rank: int, total: int) -> int:
    """Share of the field ranked at or below this position, e.g. rank 3 of 10 is 70."""
    if total <= 0:
        return 0
    return 100 - int(rank / total * 100)


def rank_of(ordered_ids: Sequence, person_id) -> int | None:
    for index, candidate in enumerate(ordered_ids, start=1):
        if candidate == person_id:
            return index
    return None


def ranking_info(ordered_ids: Sequence, person_id) -> RankingInfo | None:
    rank = rank_of(ordered_ids, person_id)
    if rank is None:
        return None
    total = len(ordered_ids)
    return RankingInfo(rank=rank, total_tls=total, percentile=percentile(rank, total))


def overall_statistics(scores: Sequence[float]) -> OverallStatistics:
    if not scores:
        return OverallStatistics(
            total_evaluations=0,
            average_score=0.0,
            median_score=0.0,
            highest_score=0.0,
            lowest_score=0.0,
            std_deviation=0.0,
        )
    return OverallStatistics(
        total_evaluations=len(scores),
        average_score=statistics.fmean(scores),
        median_score=float(statistics.median(scores)),
        highest_score=max(scores),
        lowest_score=min(scores),
        std_deviation=statistics.pstdev(scores),
    )


def score_distribution(scores: Sequence[float]) -> list[DistributionBucket]:
    buckets = []
    last = len(DISTRIBUTION_BUCKETS) - 1
    for index, (label, low, high) in enumerate(DISTRIBUTION_BUCKETS):
        if index == last:
            count = sum(1 for score in scores if low <= score <= high)
        else:
            count = sum(1 for score in scores if low <= score < high)
        buckets.append(DistributionBucket(range_label=label, min_score=low, max_score=high, count=count))
    return buckets


def top_and_bottom(ordered: Sequence[T], count: int) -> tuple[list[T], list[T]]:
    """Split a best-first list into its first `count` and its last `count`, worst first."""
    if count <= 0:
        return [], []
    top = list(ordered[:count])
    bottom = list(reversed(ordered[-count:]))
    return top, bottom
