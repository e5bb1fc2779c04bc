"""Plan Generator — turns risk state and preferences into a 7-day schedule.

Pipeline:
    1. Reuse or recompute the weekday -> run type structure
    2. Target volume = base weekly volume x progression factor
    3. Initial distribution by run type
    4. Validate-rebalance loop: clamp each day to its simulated safe range,
       then move the lost or surplus volume to the other run days
    5. Emit the plan for today .. today + 6
"""

from __future__ import annotations

import logging
import math
from datetime import date, datetime, time, timedelta
from typing import TYPE_CHECKING, Iterable, Mapping

from overload_engine.analysis.cache_manager import AnalysisCacheManager
from overload_engine.models.activity import Activity, activities_hash
from overload_engine.models.analysis import AnalysisCache
from overload_engine.models.enums import (
    CONVERGENCE_EPSILON,
    LONG_RUN_VOLUME_SHARE,
    MAX_REBALANCE_ITERATIONS,
    MODERATE_TO_LONG_RATIO,
    PLAN_DAYS,
    PROGRESSION_FACTOR,
    RiskPhase,
    RunType,
    Weekday,
)
from overload_engine.models.plan import DailyPlan, PlanInput, RecentData, WeeklyTrainingPlan
from overload_engine.planning.structure import assign_structure, should_recompute_structure

if TYPE_CHECKING:
    from overload_engine.coordination import CancellationToken

logger = logging.getLogger(__name__)

# Phases in which volumes are prescribed as-is, without safe-range validation
_UNVALIDATED_PHASES = frozenset({RiskPhase.DELOAD, RiskPhase.REBUILDING})

# Rough pace used to give simulated runs a moving time (seconds per meter)
_SIMULATED_PACE = 5


def weekly_volume(plan_input: PlanInput) -> float:
    factor = PROGRESSION_FACTOR[plan_input.preferences.progression_rate]
    return plan_input.recent_data.base_weekly_volume * factor


def _days_of(structure: Mapping[Weekday, RunType], run_type: RunType) -> list[Weekday]:
    return sorted(d for d, t in structure.items() if t == run_type)


def distribute_load(
    structure: Mapping[Weekday, RunType],
    volume: float,
    recent: RecentData,
) -> dict[Weekday, float]:
    """Initial per-weekday distances before any safety validation.

    Every run day starts at the daily floor. The long day gets 38% of the
    week (capped at the safe long run), each moderate day 60% of that, and
    whatever remains is split evenly over the short days.
    """
    floor = recent.min_daily_volume
    distances = {day: 0.0 for day in Weekday}
    run_days = [d for d in Weekday if structure.get(d, RunType.REST) != RunType.REST]
    for day in run_days:
        distances[day] = floor
    remaining = volume - floor * len(run_days)

    long_share = min(volume * LONG_RUN_VOLUME_SHARE, recent.max_safe_long_run)
    for day in _days_of(structure, RunType.LONG):
        distances[day] = max(floor, long_share)
        remaining -= distances[day] - floor

    moderate_share = long_share * MODERATE_TO_LONG_RATIO
    for day in _days_of(structure, RunType.MODERATE):
        distances[day] = max(floor, moderate_share)
        remaining -= distances[day] - floor

    short_days = _days_of(structure, RunType.SHORT)
    if short_days and remaining > 0:
        increment = remaining / len(short_days)
        for day in short_days:
            distances[day] = floor + increment
    return distances


def rebalance_volume(
    distances: Mapping[Weekday, float],
    target: float,
    structure: Mapping[Weekday, RunType],
    safe_ranges: Mapping[Weekday, tuple[float, float]],
) -> dict[Weekday, float]:
    """Move the gap between ``target`` and the planned total onto run days.

    A shortfall fills short days first (up to the moderate level), then
    moderate days (up to the long level), then any run day up to its safe
    maximum. A surplus is cut from the long day first (down to the
    moderate level), then moderate days (down to the short level), then
    any run day down to its safe minimum.
    """
    result = dict(distances)
    discrepancy = target - sum(result.values())
    if discrepancy == 0:
        return result

    short_days = _days_of(structure, RunType.SHORT)
    moderate_days = _days_of(structure, RunType.MODERATE)
    long_days = _days_of(structure, RunType.LONG)

    def max_safe(day: Weekday) -> float:
        return safe_ranges.get(day, (0.0, math.inf))[1]

    def min_safe(day: Weekday) -> float:
        return safe_ranges.get(day, (0.0, math.inf))[0]

    def level(days: list[Weekday], pick, fallback: float) -> float:
        return pick(result[d] for d in days) if days else fallback

    remaining = abs(discrepancy)
    if discrepancy > 0:
        tiers = (
            (short_days, lambda d: level(moderate_days, min, result[d])),
            (moderate_days, lambda d: level(long_days, min, result[d])),
            (short_days + moderate_days + long_days, max_safe),
        )
        for days, ceiling in tiers:
            for day in days:
                if remaining <= 0:
                    break
                step = min(min(ceiling(day), max_safe(day)) - result[day], remaining)
                if step > 0:
                    result[day] += step
                    remaining -= step
    else:
        tiers = (
            (long_days, lambda d: level(moderate_days, max, result[d])),
            (moderate_days, lambda d: level(short_days, max, result[d])),
            (long_days + moderate_days + short_days, min_safe),
        )
        for days, bottom in tiers:
            for day in days:
                if remaining <= 0:
                    break
                step = min(result[day] - max(bottom(day), min_safe(day)), remaining)
                if step > 0:
                    result[day] -= step
                    remaining -= step
    return result


def max_delta(a: Mapping[Weekday, float], b: Mapping[Weekday, float]) -> float:
    if a.keys() != b.keys():
        return math.inf
    return max((abs(a[d] - b[d]) for d in a), default=0.0)


class WeeklyPlanGenerator:
    """Builds a WeeklyTrainingPlan from validated inputs.

    Pure apart from logging: history and cache are only read, and
    simulated runs never leave the generator.

    Usage:
        generator = WeeklyPlanGenerator()
        plan = generator.generate(plan_input, activities, cache, today)
    """

    def __init__(self, cache_manager: AnalysisCacheManager | None = None) -> None:
        self.cache_manager = cache_manager or AnalysisCacheManager()

    def generate(
        self,
        plan_input: PlanInput,
        activity_history: Iterable[Activity],
        cache: AnalysisCache,
        today: date,
        cancel_token: CancellationToken | None = None,
    ) -> WeeklyTrainingPlan:
        """Generate the plan for ``today`` .. ``today + 6``.

        Raises:
            ComputationCancelled: If ``cancel_token`` is cancelled between
                validate-rebalance iterations.
        """
        history = list(activity_history)

        if should_recompute_structure(plan_input, history, today):
            structure = assign_structure(plan_input)
        else:
            structure = {day: RunType.REST for day in Weekday}
            structure.update(plan_input.previous_plan.structure)

        target = weekly_volume(plan_input)
        distances = distribute_load(structure, target, plan_input.recent_data)

        phase = plan_input.recent_data.risk_phase
        has_runs = any(t != RunType.REST for t in structure.values())
        if has_runs and phase not in _UNVALIDATED_PHASES:
            distances = self._converge(distances, target, structure, cache, today, cancel_token)

        days = []
        for offset in range(PLAN_DAYS):
            day = today + timedelta(days=offset)
            weekday = Weekday.of(day)
            run_type = structure[weekday]
            days.append(
                DailyPlan(
                    date=day,
                    weekday=weekday,
                    run_type=run_type,
                    planned_distance=distances[weekday] if run_type != RunType.REST else 0.0,
                    is_rest_week=phase is RiskPhase.DELOAD,
                )
            )

        return WeeklyTrainingPlan(
            start_date=today,
            days=tuple(days),
            risk_phase=phase,
            progression_rate=plan_input.preferences.progression_rate,
            structure=structure,
            preferences=plan_input.preferences,
            historical_activities_hash=activities_hash(history),
        )

    def _converge(
        self,
        distances: dict[Weekday, float],
        target: float,
        structure: Mapping[Weekday, RunType],
        cache: AnalysisCache,
        today: date,
        cancel_token: CancellationToken | None,
    ) -> dict[Weekday, float]:
        two_back: dict[Weekday, float] | None = None
        for iteration in range(1, MAX_REBALANCE_ITERATIONS + 1):
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            before = distances
            validated, safe_ranges = self.validate(before, structure, cache, today)
            distances = rebalance_volume(validated, target, structure, safe_ranges)

            if max_delta(distances, before) < CONVERGENCE_EPSILON:
                logger.debug("Plan converged after %d iterations", iteration)
                break
            if two_back is not None and max_delta(distances, two_back) < CONVERGENCE_EPSILON:
                logger.debug("Plan oscillation detected after %d iterations", iteration)
                break
            two_back = before
        else:
            logger.info("Plan did not converge within %d iterations", MAX_REBALANCE_ITERATIONS)
        return distances

    def validate(
        self,
        distances: Mapping[Weekday, float],
        structure: Mapping[Weekday, RunType],
        cache: AnalysisCache,
        today: date,
    ) -> tuple[dict[Weekday, float], dict[Weekday, tuple[float, float]]]:
        """Clamp each day into its safe range, in calendar order.

        Each accepted distance becomes a simulated activity, so later days
        see the load of earlier days in the same week.

        Returns:
            ``(clamped distances, safe range per run day)``.
        """
        history_end = today - timedelta(days=1)
        clamped = dict(distances)
        safe_ranges: dict[Weekday, tuple[float, float]] = {}
        simulated: list[Activity] = []

        for offset in range(PLAN_DAYS):
            day = today + timedelta(days=offset)
            weekday = Weekday.of(day)
            if structure.get(weekday, RunType.REST) == RunType.REST:
                clamped[weekday] = 0.0
                continue

            analysis = self.cache_manager.evaluate_future_date(
                cache, simulated, day, history_end=history_end
            )
            low, high = analysis.recommended_range
            safe_ranges[weekday] = (low, high)
            distance = min(max(distances[weekday], low), high)
            clamped[weekday] = distance

            if distance > 0:
                simulated.append(
                    Activity(
                        id=-(offset + 1),
                        distance=distance,
                        start=datetime.combine(day, time(hour=12)),
                        moving_time=int(distance * _SIMULATED_PACE),
                    )
                )
        return clamped, safe_ranges
