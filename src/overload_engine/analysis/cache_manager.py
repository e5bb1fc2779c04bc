"""Analysis Cache Manager — incremental load series and date-scoped risk queries."""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import TYPE_CHECKING, Iterable

import numpy as np

from overload_engine.analysis.risk_analyzer import (
    assess_acwr,
    assess_day,
    assess_single_activity,
    build_series,
    combine_risk,
    empty_analysis,
)
from overload_engine.exceptions import InvalidDateRangeError
from overload_engine.math.training_load import (
    calculate_ewma_series,
    daily_loads,
    longest_run_baseline_at,
)
from overload_engine.models.activity import Activity, activities_hash, merge_sessions
from overload_engine.models.analysis import (
    AcuteChronicAssessment,
    AnalysisCache,
    CombinedRisk,
    DailyLoadSeries,
    RunAnalysis,
)
from overload_engine.models.enums import DEFAULT_OVERLAP_DAYS, AnalysisMode

if TYPE_CHECKING:
    from overload_engine.coordination import CancellationToken

logger = logging.getLogger(__name__)


def _check(cancel_token: CancellationToken | None) -> None:
    if cancel_token is not None:
        cancel_token.raise_if_cancelled()


class AnalysisCacheManager:
    """Builds and queries AnalysisCache values.

    All methods return new values; a cache passed in is never mutated.

    Usage:
        manager = AnalysisCacheManager()
        if manager.is_stale(cache, activities, today):
            cache = manager.update(cache, activities, manager.default_overlap(today), today=today)
        analysis = manager.derive_for_date(cache, today)
    """

    def __init__(self, overlap_days: int = DEFAULT_OVERLAP_DAYS) -> None:
        self.overlap_days = overlap_days

    def default_overlap(self, today: date) -> date:
        return today - timedelta(days=self.overlap_days)

    # ------------------------------------------------------------------
    # Staleness
    # ------------------------------------------------------------------

    def is_stale(
        self,
        cache: AnalysisCache | None,
        activities: Iterable[Activity],
        today: date,
    ) -> bool:
        """True if ``cache`` cannot serve ``activities`` as of ``today``."""
        if cache is None or cache.is_empty:
            return True
        if cache.cache_date < today:
            return True
        return cache.activities_hash != activities_hash(activities)

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    def update(
        self,
        cache: AnalysisCache | None,
        activities: Iterable[Activity],
        overlap_date: date,
        mode: AnalysisMode = AnalysisMode.PERSISTENT,
        today: date | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> AnalysisCache:
        """Recompute the cache for ``activities`` as of ``today``.

        When ``cache`` starts on the same day and its raw loads before
        ``overlap_date`` match the new ones, only the days from
        ``overlap_date`` on are recomputed and spliced onto the retained
        prefix. Otherwise the whole history is recomputed.

        Args:
            cache: Previous cache, or None.
            activities: The full activity set.
            overlap_date: First day to recompute on the incremental path.
            mode: PERSISTENT also builds the per-activity combined risk map.
            today: Cache date; defaults to the current date.
            cancel_token: Checked between phases.

        Raises:
            ComputationCancelled: If ``cancel_token`` was cancelled.
        """
        today = today or date.today()
        activities = list(activities)
        digest = activities_hash(activities)

        if not activities:
            logger.info("No activities; storing an empty analysis cache for %s", today)
            return AnalysisCache(
                cache_date=today,
                activities_hash=digest,
                series=DailyLoadSeries(start_date=today),
            )

        start = min(min(a.day for a in activities), today)
        raw, longest = daily_loads(activities, start, today)
        _check(cancel_token)

        split = self._reusable_prefix(cache, start, raw, longest, overlap_date)
        if split > 0:
            logger.info(
                "Incremental analysis update from %s (%d of %d days retained)",
                start + timedelta(days=split),
                split,
                len(raw),
            )
            block = build_series(
                raw,
                longest,
                from_index=split,
                capped_prefix=cache.series.capped,
                smoothed_seed=cache.smoothed_longest_run[split - 1],
            )
            acute = cache.acute[:split] + block.acute
            chronic = cache.chronic[:split] + block.chronic
            capped = cache.series.capped[:split] + block.capped
            capped_acute = cache.capped_acute[:split] + block.capped_acute
            smoothed = cache.smoothed_longest_run[:split] + block.smoothed_longest_run
        else:
            logger.info("Full analysis recompute over %d days", len(raw))
            block = build_series(raw, longest)
            acute, chronic = block.acute, block.chronic
            capped, capped_acute = block.capped, block.capped_acute
            smoothed = block.smoothed_longest_run
        _check(cancel_token)

        split_date = start + timedelta(days=split)
        acwr_by_date: dict[date, AcuteChronicAssessment] = {}
        if split > 0:
            acwr_by_date.update(
                (d, a) for d, a in cache.acwr_by_date.items() if d < split_date
            )
        for i in range(split, len(raw)):
            day = start + timedelta(days=i)
            acwr_by_date[day] = assess_acwr(day, acute[i], chronic[i])

        risk_by_activity: dict[int, CombinedRisk] = {}
        if mode is AnalysisMode.PERSISTENT:
            _check(cancel_token)
            risk_by_activity = self._combined_risk_by_activity(
                activities, start, smoothed, acwr_by_date, cache if split > 0 else None, split_date
            )

        return AnalysisCache(
            cache_date=today,
            activities_hash=digest,
            series=DailyLoadSeries(
                start_date=start,
                raw=tuple(float(v) for v in raw),
                capped=tuple(capped),
                longest=tuple(float(v) for v in longest),
            ),
            acute=tuple(acute),
            chronic=tuple(chronic),
            capped_acute=tuple(capped_acute),
            smoothed_longest_run=tuple(smoothed),
            acwr_by_date=acwr_by_date,
            combined_risk_by_activity=risk_by_activity,
        )

    def _reusable_prefix(
        self,
        cache: AnalysisCache | None,
        start: date,
        raw: np.ndarray,
        longest: np.ndarray,
        overlap_date: date,
    ) -> int:
        """Number of leading days that can be copied from ``cache``; 0 forces a full run."""
        if cache is None or cache.is_empty or cache.start_date != start:
            return 0
        split = min((overlap_date - start).days, len(cache.series), len(raw))
        if split <= 0:
            return 0
        if not np.array_equal(np.asarray(cache.series.raw[:split]), raw[:split]):
            return 0
        if not np.array_equal(np.asarray(cache.series.longest[:split]), longest[:split]):
            return 0
        return split

    def _combined_risk_by_activity(
        self,
        activities: list[Activity],
        start: date,
        smoothed: tuple[float, ...],
        acwr_by_date: dict[date, AcuteChronicAssessment],
        previous: AnalysisCache | None,
        split_date: date,
    ) -> dict[int, CombinedRisk]:
        # Every constituent id of a merged session maps to that session's risk.
        result: dict[int, CombinedRisk] = {}
        for session in merge_sessions(activities):
            if previous is not None and session.day < split_date:
                known = previous.combined_risk_by_activity.get(session.id)
                if known is not None:
                    for activity_id in session.all_ids:
                        result[activity_id] = known
                    continue
            index = (session.day - start).days
            if index < 0 or index >= len(smoothed):
                continue
            single = assess_single_activity(session.distance, smoothed[index])
            risk = combine_risk(acwr_by_date.get(session.day), single)
            for activity_id in session.all_ids:
                result[activity_id] = risk
        return result

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def derive_for_date(self, cache: AnalysisCache, day: date) -> RunAnalysis:
        """RunAnalysis for ``day`` from cached series.

        Days before the cache start have no history and get the default
        analysis. Days after ``cache_date`` are projected with no further
        activities.
        """
        if cache.is_empty or day < cache.start_date:
            return empty_analysis(day)
        if day > cache.cache_date:
            return self.evaluate_future_date(cache, (), day, history_end=cache.cache_date)
        return assess_day(
            day,
            cache.series.index_of(day),
            cache.series.raw,
            cache.series.longest,
            cache.smoothed_longest_run,
        )

    def evaluate_future_date(
        self,
        cache: AnalysisCache,
        simulated_activities: Iterable[Activity],
        day: date,
        history_end: date | None = None,
    ) -> RunAnalysis:
        """What the analysis for ``day`` would be if ``simulated_activities`` happened.

        Cached history is used up to ``history_end`` (default: the day
        before ``day``); later cached days are ignored so simulated and real
        loads never overlap. The cache itself is not modified.

        Raises:
            InvalidDateRangeError: If ``day`` precedes the cache start date.
        """
        simulated = [a for a in simulated_activities if a.day <= day]
        if not cache.is_empty and day < cache.start_date:
            raise InvalidDateRangeError(
                f"Cannot evaluate {day.isoformat()}: cache starts on {cache.start_date.isoformat()}"
            )
        if history_end is None:
            history_end = day - timedelta(days=1)
        history_end = min(history_end, cache.cache_date, day - timedelta(days=1))

        if cache.is_empty:
            if not simulated:
                return empty_analysis(day)
            start = min(min(a.day for a in simulated), day)
            kept = 0
        else:
            start = cache.start_date
            kept = max(0, min(cache.series.index_of(history_end) + 1, len(cache.series)))

        n_days = (day - start).days + 1
        raw = np.zeros(n_days, dtype=np.float64)
        longest = np.zeros(n_days, dtype=np.float64)
        if kept:
            raw[:kept] = cache.series.raw[:kept]
            longest[:kept] = cache.series.longest[:kept]

        sim_raw, sim_longest = daily_loads(simulated, start, day)
        raw += sim_raw
        longest = np.maximum(longest, sim_longest)

        # Smoothed baselines stay valid up to the first day touched by a simulated run.
        first_changed = kept
        if simulated:
            first_changed = min(kept, max(0, (min(a.day for a in simulated) - start).days))
        baselines = [longest_run_baseline_at(longest, i) for i in range(first_changed, n_days)]
        seed = cache.smoothed_longest_run[first_changed - 1] if first_changed > 0 else None
        smoothed = list(cache.smoothed_longest_run[:first_changed]) + calculate_ewma_series(
            baselines, seed=seed
        )
        return assess_day(day, n_days - 1, raw, longest, smoothed)
