"""Risk Analyzer: turns dated activities into load series and risk assessments.

Pure and deterministic: the same activities and ``as_of`` date always give
the same RunAnalysis. The series builder and the per-day assessment are
shared with the AnalysisCacheManager so cached and uncached results agree.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Sequence

import numpy as np

from overload_engine.math.training_load import (
    acute_load_at,
    calculate_acwr,
    calculate_ewma_series,
    capped_loads,
    chronic_load_at,
    classify_acwr,
    classify_spike,
    daily_loads,
    longest_run_baseline_at,
)
from overload_engine.models.activity import Activity
from overload_engine.models.analysis import (
    AcuteChronicAssessment,
    CombinedRisk,
    RunAnalysis,
    SingleActivityRiskAssessment,
)
from overload_engine.models.enums import (
    ACUTE_WINDOW_DAYS,
    ACWR_RANGE_CEILING,
    ACWR_UNDERTRAINED,
    MAX_WEEKLY_LOAD_FACTOR,
    MIN_RUN_LONG_RUN_FRACTION,
    SAFE_LONG_RUN_FACTOR,
    AcwrRiskTier,
    Severity,
    SingleRunRiskTier,
)

logger = logging.getLogger(__name__)


_ACWR_MESSAGES = {
    AcwrRiskTier.UNDERTRAINING: "Training load is below your recent baseline.",
    AcwrRiskTier.OPTIMAL: "Training load is in the optimal range.",
    AcwrRiskTier.MODERATE_OVERTRAINING: "Training load is elevated relative to your baseline.",
    AcwrRiskTier.HIGH_OVERTRAINING: "Training load is far above your baseline.",
}

_SPIKE_MESSAGES = {
    SingleRunRiskTier.NONE: "This run was within a safe range of your recent longest run.",
    SingleRunRiskTier.MODERATE: "This run was over 10% longer than your recent longest run.",
    SingleRunRiskTier.HIGH: "This run was over 30% longer than your recent longest run.",
    SingleRunRiskTier.VERY_HIGH: "This run was more than double your recent longest run.",
}

_LOAD_TITLES = {
    AcwrRiskTier.UNDERTRAINING: "Low Load",
    AcwrRiskTier.OPTIMAL: "Optimal Load",
    AcwrRiskTier.MODERATE_OVERTRAINING: "Elevated Load",
    AcwrRiskTier.HIGH_OVERTRAINING: "High Load",
}

_SPIKE_TITLES = {
    SingleRunRiskTier.NONE: "Stable Run",
    SingleRunRiskTier.MODERATE: "Moderate Spike",
    SingleRunRiskTier.HIGH: "Large Spike",
    SingleRunRiskTier.VERY_HIGH: "Extreme Spike",
}

_LOAD_DETAIL = {
    AcwrRiskTier.UNDERTRAINING: (
        "Your overall load is low, so muscles and connective tissue are "
        "getting less stimulus and tolerate less stress."
    ),
    AcwrRiskTier.OPTIMAL: "Your overall load is well balanced with your recent training.",
    AcwrRiskTier.MODERATE_OVERTRAINING: (
        "Your overall load is elevated and fatigue is accumulating."
    ),
    AcwrRiskTier.HIGH_OVERTRAINING: (
        "Your overall load is very high and injury risk is raised even on easy days."
    ),
}

_SPIKE_DETAIL = {
    SingleRunRiskTier.NONE: "This run does not create a distance spike.",
    SingleRunRiskTier.MODERATE: "This run is moderately longer than your recent longest effort.",
    SingleRunRiskTier.HIGH: "This run is a large increase over your recent longest effort.",
    SingleRunRiskTier.VERY_HIGH: "This run is more than double your recent longest effort.",
}

_ACWR_SEVERITY = {
    AcwrRiskTier.UNDERTRAINING: Severity.LOW_LOAD,
    AcwrRiskTier.OPTIMAL: Severity.OPTIMAL,
    AcwrRiskTier.MODERATE_OVERTRAINING: Severity.ELEVATED,
    AcwrRiskTier.HIGH_OVERTRAINING: Severity.HIGH,
}

_SPIKE_SEVERITY = {
    SingleRunRiskTier.NONE: Severity.OPTIMAL,
    SingleRunRiskTier.MODERATE: Severity.ELEVATED,
    SingleRunRiskTier.HIGH: Severity.HIGH,
    SingleRunRiskTier.VERY_HIGH: Severity.HIGH,
}


@dataclass(frozen=True)
class SeriesBlock:
    """Derived series for a contiguous run of days (one value per day)."""

    acute: tuple[float, ...] = field(default_factory=tuple)
    chronic: tuple[float, ...] = field(default_factory=tuple)
    capped: tuple[float, ...] = field(default_factory=tuple)
    capped_acute: tuple[float, ...] = field(default_factory=tuple)
    smoothed_longest_run: tuple[float, ...] = field(default_factory=tuple)


def build_series(
    raw: np.ndarray,
    longest: np.ndarray,
    from_index: int = 0,
    capped_prefix: Sequence[float] = (),
    smoothed_seed: float | None = None,
) -> SeriesBlock:
    """Compute derived series for days ``from_index`` .. ``len(raw) - 1``.

    Args:
        raw: Daily total distance for the whole history.
        longest: Daily longest session for the whole history.
        from_index: First day to compute; earlier days are taken as given.
        capped_prefix: Capped loads for days before ``from_index``.
        smoothed_seed: Smoothed baseline of day ``from_index - 1``.

    Returns:
        A SeriesBlock covering only the computed days.
    """
    n_days = len(raw)
    days = range(from_index, n_days)
    capped_tail = capped_loads(raw, from_index)
    capped_all = np.asarray(list(capped_prefix[:from_index]) + capped_tail, dtype=np.float64)
    baselines = [longest_run_baseline_at(longest, i) for i in days]
    return SeriesBlock(
        acute=tuple(acute_load_at(raw, i) for i in days),
        chronic=tuple(chronic_load_at(raw, i) for i in days),
        capped=tuple(capped_tail),
        capped_acute=tuple(acute_load_at(capped_all, i) for i in days),
        smoothed_longest_run=tuple(calculate_ewma_series(baselines, seed=smoothed_seed)),
    )


def assess_acwr(day: date, acute: float, chronic: float) -> AcuteChronicAssessment:
    ratio = calculate_acwr(acute, chronic)
    tier = classify_acwr(ratio)
    return AcuteChronicAssessment(date=day, ratio=ratio, tier=tier, message=_ACWR_MESSAGES[tier])


def assess_single_activity(distance: float, baseline: float) -> SingleActivityRiskAssessment:
    if baseline <= 0.0:
        return SingleActivityRiskAssessment(
            tier=SingleRunRiskTier.NONE,
            message="No baseline to compare against.",
            distance=distance,
            baseline=baseline,
        )
    tier = classify_spike(distance, baseline)
    return SingleActivityRiskAssessment(
        tier=tier, message=_SPIKE_MESSAGES[tier], distance=distance, baseline=baseline
    )


def combine_risk(
    acwr: AcuteChronicAssessment | None,
    single: SingleActivityRiskAssessment | None,
) -> CombinedRisk:
    """Merge both tiers into one severity; the worse component dominates.

    Two elevated components escalate to HIGH.
    """
    acwr_tier = acwr.tier if acwr is not None else AcwrRiskTier.OPTIMAL
    spike_tier = single.tier if single is not None else SingleRunRiskTier.NONE

    load_severity = _ACWR_SEVERITY[acwr_tier]
    spike_severity = _SPIKE_SEVERITY[spike_tier]
    severity = max(load_severity, spike_severity)
    if load_severity >= Severity.ELEVATED and spike_severity >= Severity.ELEVATED:
        severity = Severity.HIGH

    return CombinedRisk(
        title=f"{_LOAD_TITLES[acwr_tier]} - {_SPIKE_TITLES[spike_tier]}",
        message=f"{_LOAD_DETAIL[acwr_tier]} {_SPIKE_DETAIL[spike_tier]}",
        severity=severity,
    )


def recommended_range(
    acute: float,
    chronic: float,
    tier: AcwrRiskTier,
    today_load: float,
    safe_long_run: float,
) -> tuple[float, float]:
    """Safe distance bounds for a single day.

    The upper bound is the smaller of what is left of the long-run
    allowance today and what is left of the weekly allowance
    (chronic x tier ceiling - acute). The lower bound keeps a minimal
    stimulus: what is missing to reach ACWR 0.8, capped at half the safe
    long run.

    Returns:
        ``(minimum, maximum)``. If the minimum exceeds the maximum, both
        collapse onto the minimum bound.
    """
    ceiling = ACWR_RANGE_CEILING[tier]
    upper = max(0.0, min(safe_long_run - today_load, chronic * ceiling - acute))
    lower = min(
        max(0.0, chronic * ACWR_UNDERTRAINED - acute),
        safe_long_run * MIN_RUN_LONG_RUN_FRACTION,
    )
    if lower > upper:
        logger.warning(
            "Unreachable run range (min %.1f > max %.1f); using the minimum bound",
            lower,
            upper,
        )
        upper = lower
    return lower, upper


def latest_session_index(longest: Sequence[float] | np.ndarray, index: int) -> int | None:
    """Most recent day with a session within the acute window ending at ``index``."""
    for j in range(index, max(-1, index - ACUTE_WINDOW_DAYS), -1):
        if longest[j] > 0:
            return j
    return None


def assess_day(
    day: date,
    index: int,
    raw: Sequence[float] | np.ndarray,
    longest: Sequence[float] | np.ndarray,
    smoothed_longest_run: Sequence[float],
) -> RunAnalysis:
    """Build the RunAnalysis for day ``index`` of aligned per-day arrays."""
    raw = np.asarray(raw, dtype=np.float64)
    acute = acute_load_at(raw, index)
    chronic = chronic_load_at(raw, index)
    acwr = assess_acwr(day, acute, chronic)

    baseline = smoothed_longest_run[index]
    safe_long_run = baseline * SAFE_LONG_RUN_FACTOR
    low, high = recommended_range(acute, chronic, acwr.tier, float(raw[index]), safe_long_run)

    single = None
    session = latest_session_index(longest, index)
    if session is not None:
        single = assess_single_activity(float(longest[session]), smoothed_longest_run[session])

    return RunAnalysis(
        date=day,
        acute_load=acute,
        chronic_load=chronic,
        recommended_min=low,
        recommended_max=high,
        max_weekly_load=chronic * MAX_WEEKLY_LOAD_FACTOR,
        safe_long_run=safe_long_run,
        acwr=acwr,
        combined_risk=combine_risk(acwr, single),
        single_activity=single,
    )


def empty_analysis(day: date) -> RunAnalysis:
    """Conservative default when there is no history to analyse."""
    acwr = assess_acwr(day, 0.0, 0.0)
    return RunAnalysis(
        date=day,
        acute_load=0.0,
        chronic_load=0.0,
        recommended_min=0.0,
        recommended_max=0.0,
        max_weekly_load=0.0,
        safe_long_run=0.0,
        acwr=acwr,
        combined_risk=combine_risk(acwr, None),
    )


class RiskAnalyzer:
    """Stateless analyzer over a full activity list.

    Usage:
        analysis = RiskAnalyzer().analyze(activities, date(2026, 10, 19))
    """

    def analyze(self, activities: Iterable[Activity], as_of: date) -> RunAnalysis:
        """Analyse activities up to and including ``as_of``.

        Activities after ``as_of`` are ignored. Empty history returns the
        conservative default (zero loads, undertraining, no spike).
        """
        history = [a for a in activities if a.day <= as_of]
        if not history:
            return empty_analysis(as_of)

        start = min(a.day for a in history)
        raw, longest = daily_loads(history, start, as_of)
        block = build_series(raw, longest)
        return assess_day(as_of, len(raw) - 1, raw, longest, block.smoothed_longest_run)
