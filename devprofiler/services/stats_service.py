"""Order statistics over stored profiles.

All results are rounded to 2 dp and are ``0.0`` for an empty sample.

Percentile p on ascending samples of size n:
    index = ceil(p / 100 * n) - 1, clamped to >= 0
"""

from __future__ import annotations

import math
from typing import List, Sequence

from devprofiler.models.schemas import AggregatedPageStats, ProfileRecord
from devprofiler.utils.helpers import round_ms


def calculate_mean(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return round_ms(sum(values) / len(values))


def calculate_median(values: Sequence[float]) -> float:
    """Middle element for odd counts, mean of the two middle ones otherwise."""
    if not values:
        return 0.0
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2:
        return round_ms(ordered[mid])
    return round_ms((ordered[mid - 1] + ordered[mid]) / 2.0)


def calculate_percentile(values: Sequence[float], percentile: float) -> float:
    """Nearest-rank percentile (no interpolation)."""
    if not values:
        return 0.0
    ordered = sorted(values)
    index = math.ceil(percentile / 100.0 * len(ordered)) - 1
    return round_ms(ordered[max(index, 0)])


def aggregate_page(page_slug: str, records: List[ProfileRecord]) -> AggregatedPageStats:
    """Summarise one page log; *records* must already be newest-first."""
    load_times = [r.total_time for r in records if r.total_time is not None]
    sql_times = [r.sql_time for r in records if r.sql_time is not None]
    query_counts = [len(r.sql_queries) for r in records]
    newest = records[0] if records else None

    return AggregatedPageStats(
        page_slug=page_slug,
        url=newest.url if newest else None,
        profile_count=len(records),
        mean_load_time=calculate_mean(load_times),
        median_load_time=calculate_median(load_times),
        p95_load_time=calculate_percentile(load_times, 95),
        mean_sql_time=calculate_mean(sql_times),
        mean_sql_queries=calculate_mean(query_counts),
        latest_timestamp=newest.timestamp if newest else None,
    )
