"""Training load calculations: daily loads, rolling ACWR, longest-run baseline.

Every per-day value depends only on a bounded window of earlier days (at
most LONGEST_RUN_LOOKBACK_DAYS) plus, for the smoothed baseline, the
previous day's EWMA value. That locality is what lets the cache recompute
only the tail of a long history.

References:
    - Gabbett (2016): ACWR injury risk thresholds
    - Hulin et al. (2016): rolling-average acute:chronic ratio with a
      coupled 4-week chronic window
    - Nielsen et al. (2014): single-session distance spikes and injury
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date
from typing import Iterable, Sequence

import numpy as np
import pandas as pd

from overload_engine.models.activity import Activity, merge_sessions
from overload_engine.models.enums import (
    ACUTE_WINDOW_DAYS,
    ACWR_DANGER_THRESHOLD,
    ACWR_OPTIMAL_HIGH,
    ACWR_UNDERTRAINED,
    CHRONIC_WEEKS,
    CHRONIC_WINDOW_DAYS,
    IQR_FENCE_FACTOR,
    IQR_MIN_SAMPLES,
    LOAD_CAP_WINDOW_DAYS,
    LONGEST_RUN_EWMA_SPAN,
    LONGEST_RUN_LOOKBACK_DAYS,
    SPIKE_HIGH_RATIO,
    SPIKE_MODERATE_RATIO,
    SPIKE_VERY_HIGH_RATIO,
    AcwrRiskTier,
    SingleRunRiskTier,
)


def daily_loads(
    activities: Iterable[Activity], start_date: date, end_date: date
) -> tuple[np.ndarray, np.ndarray]:
    """Build per-day total distance and per-day longest session arrays.

    Args:
        activities: Raw activities, any order. Days outside the range are ignored.
        start_date: First day of the series (index 0).
        end_date: Last day of the series, inclusive.

    Returns:
        ``(raw, longest)`` float64 arrays of length ``(end - start).days + 1``.
    """
    activities = list(activities)
    n_days = (end_date - start_date).days + 1
    raw = np.zeros(max(n_days, 0), dtype=np.float64)
    longest = np.zeros_like(raw)
    if n_days <= 0:
        return raw, longest

    totals: dict[int, float] = defaultdict(float)
    for activity in activities:
        idx = (activity.day - start_date).days
        if 0 <= idx < n_days:
            totals[idx] += activity.distance
    for idx, total in totals.items():
        raw[idx] = total

    for session in merge_sessions(activities):
        idx = (session.day - start_date).days
        if 0 <= idx < n_days and session.distance > longest[idx]:
            longest[idx] = session.distance
    return raw, longest


def iqr_upper_fence(values: Sequence[float] | np.ndarray) -> float | None:
    """Upper Tukey fence ``q3 + 1.5 * iqr`` of the positive values.

    Quartiles are taken by index on the sorted sample. Returns None when
    there are fewer than IQR_MIN_SAMPLES positive values.
    """
    sample = np.sort(np.asarray([v for v in values if v > 0], dtype=np.float64))
    if len(sample) < IQR_MIN_SAMPLES:
        return None
    q1 = sample[int(len(sample) * 0.25)]
    q3 = sample[int(len(sample) * 0.75)]
    return float(q3 + IQR_FENCE_FACTOR * (q3 - q1))


def stable_longest_run(distances: Sequence[float] | np.ndarray) -> float:
    """Longest distance after discarding IQR outliers; 0.0 for no runs."""
    positive = [float(d) for d in distances if d > 0]
    if not positive:
        return 0.0
    fence = iqr_upper_fence(positive)
    if fence is None:
        return max(positive)
    return max(d for d in positive if d <= fence)


def capped_loads(raw: np.ndarray, from_index: int = 0) -> list[float]:
    """Cap each day's load at the IQR fence of its trailing LOAD_CAP_WINDOW_DAYS."""
    result: list[float] = []
    for i in range(from_index, len(raw)):
        window = raw[max(0, i - LOAD_CAP_WINDOW_DAYS + 1) : i + 1]
        fence = iqr_upper_fence(window)
        value = float(raw[i])
        result.append(value if fence is None else min(value, fence))
    return result


def window_sum(values: np.ndarray, end_index: int, length: int) -> float:
    """Sum of ``length`` values ending at ``end_index`` (inclusive); missing days are 0."""
    if end_index < 0:
        return 0.0
    start = max(0, end_index - length + 1)
    return float(np.sum(values[start : end_index + 1]))


def acute_load_at(raw: np.ndarray, index: int) -> float:
    """Total load of the 7 days ending at ``index``."""
    return window_sum(raw, index, ACUTE_WINDOW_DAYS)


def chronic_load_at(raw: np.ndarray, index: int) -> float:
    """Mean weekly load of the 3 weeks preceding the acute week."""
    return window_sum(raw, index - ACUTE_WINDOW_DAYS, CHRONIC_WINDOW_DAYS) / CHRONIC_WEEKS


def weekly_maxima(values: np.ndarray) -> list[float]:
    """Maximum of each 7-day block, counted back from the end of ``values``.

    The oldest block may be shorter than a week.
    """
    return [
        float(np.max(values[max(0, end - ACUTE_WINDOW_DAYS) : end]))
        for end in range(len(values), 0, -ACUTE_WINDOW_DAYS)
    ]


def longest_run_baseline_at(longest: np.ndarray, index: int) -> float:
    """Stable longest session in the LONGEST_RUN_LOOKBACK_DAYS before ``index``.

    The fence is applied to each week's longest session rather than to every
    session, so a long run that recurs weekly stays inside it and only a
    one-off week is discarded.
    """
    start = max(0, index - LONGEST_RUN_LOOKBACK_DAYS)
    return stable_longest_run(weekly_maxima(longest[start:index]))


def calculate_ewma_series(
    values: Sequence[float] | np.ndarray,
    span: int = LONGEST_RUN_EWMA_SPAN,
    seed: float | None = None,
) -> list[float]:
    """Exponentially weighted moving average of a series (oldest first).

    Args:
        values: Series to smooth.
        span: EWMA span parameter.
        seed: EWMA value of the day before ``values[0]``. When given, the
              result continues that series instead of restarting at values[0].

    Returns:
        One smoothed value per input value.
    """
    if len(values) == 0:
        return []
    data = list(values) if seed is None else [seed, *values]
    smoothed = pd.Series(data, dtype=np.float64).ewm(span=span, adjust=False).mean()
    result = [float(v) for v in smoothed]
    return result if seed is None else result[1:]


def calculate_acwr(acute: float, chronic: float) -> float:
    """Acute:chronic ratio. Returns 0.0 when there is no chronic baseline."""
    if chronic <= 0.0:
        return 0.0
    return acute / chronic


def classify_acwr(acwr: float) -> AcwrRiskTier:
    """Classify an ACWR value.

    Boundaries: 0.8 and 1.3 are optimal, 1.5 is moderate overtraining.

    Reference:
        Gabbett (2016), Br J Sports Med 50(5):273-280.
    """
    if acwr > ACWR_DANGER_THRESHOLD:
        return AcwrRiskTier.HIGH_OVERTRAINING
    if acwr > ACWR_OPTIMAL_HIGH:
        return AcwrRiskTier.MODERATE_OVERTRAINING
    if acwr >= ACWR_UNDERTRAINED:
        return AcwrRiskTier.OPTIMAL
    return AcwrRiskTier.UNDERTRAINING


def classify_spike(distance: float, baseline: float) -> SingleRunRiskTier:
    """Classify one session against the smoothed longest-run baseline."""
    if baseline <= 0.0:
        return SingleRunRiskTier.NONE
    ratio = distance / baseline
    if ratio > SPIKE_VERY_HIGH_RATIO:
        return SingleRunRiskTier.VERY_HIGH
    if ratio >= SPIKE_HIGH_RATIO:
        return SingleRunRiskTier.HIGH
    if ratio >= SPIKE_MODERATE_RATIO:
        return SingleRunRiskTier.MODERATE
    return SingleRunRiskTier.NONE
