"""Weekly structure: which weekday gets which run type.

Run days are spread around the week by picking, at each step, the free
day whose circular distance to the nearest already-assigned day is
largest (ties go to the earlier weekday).
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Iterable

from overload_engine.models.activity import Activity
from overload_engine.models.enums import RiskPhase, RunType, Weekday
from overload_engine.models.plan import PlanInput

logger = logging.getLogger(__name__)


def should_recompute_structure(
    plan_input: PlanInput, activities: Iterable[Activity], today: date
) -> bool:
    """Whether the previous plan's structure must be replaced."""
    previous = plan_input.previous_plan
    if previous is None or not previous.structure:
        return True
    if plan_input.recent_data.risk_phase != previous.risk_phase:
        logger.info("Risk phase changed; recomputing weekly structure")
        return True
    if previous.preferences is None or previous.preferences.structurally_differs(
        plan_input.preferences
    ):
        logger.info("Scheduling preferences changed; recomputing weekly structure")
        return True

    yesterday = today - timedelta(days=1)
    planned = previous.day_for(yesterday)
    if planned is not None:
        ran = any(a.day == yesterday for a in activities)
        if planned.run_type != RunType.REST and not ran:
            logger.info("Planned run on %s was skipped; recomputing weekly structure", yesterday)
            return True
        if planned.run_type == RunType.REST and ran:
            logger.info("Ran on planned rest day %s; recomputing weekly structure", yesterday)
            return True
    return False


def target_run_count(plan_input: PlanInput) -> int:
    """Runs to schedule: one fewer than usual in deload, one more otherwise."""
    typical = plan_input.historical_pattern.typical_runs_per_week
    delta = -1 if plan_input.recent_data.risk_phase is RiskPhase.DELOAD else 1
    count = min(plan_input.preferences.max_runs_per_week, typical + delta)
    return max(0, min(count, len(plan_input.preferences.available_days)))


def select_long_run_day(available: frozenset[Weekday], plan_input: PlanInput) -> Weekday | None:
    if not available:
        return None
    pattern = plan_input.historical_pattern
    preferred = sorted(plan_input.preferences.preferred_long_run_days & available)
    historical = pattern.typical_run_days if pattern.has_clear_structure else frozenset()

    for day in preferred:
        if day in historical:
            return day
    if preferred:
        return preferred[0]
    if pattern.typical_long_run_day is not None and pattern.typical_long_run_day in available:
        return pattern.typical_long_run_day
    return max(available)


def most_spaced_day(candidates: Iterable[Weekday], assigned: Iterable[Weekday]) -> Weekday:
    """Candidate farthest (circularly) from its nearest assigned day."""
    assigned = list(assigned)

    def gap(day: Weekday) -> int:
        if not assigned:
            return 0
        return min(day.distance_to(a) for a in assigned)

    return max(sorted(candidates), key=gap)


def moderate_run_count(target: int) -> int:
    if target >= 5:
        return 2
    if target >= 3:
        return 1
    return 0


def assign_structure(plan_input: PlanInput) -> dict[Weekday, RunType]:
    """Map every weekday to a RunType for the coming week."""
    structure = {day: RunType.REST for day in Weekday}
    available = plan_input.preferences.available_days
    target = target_run_count(plan_input)
    if target <= 0:
        return structure

    assigned: list[Weekday] = []
    long_day = select_long_run_day(available, plan_input)
    if long_day is not None:
        structure[long_day] = RunType.LONG
        assigned.append(long_day)

    for _ in range(min(moderate_run_count(target), target - len(assigned))):
        free = [d for d in available if d not in assigned]
        if not free:
            break
        apart = [d for d in free if long_day is None or not d.is_adjacent_to(long_day)]
        day = most_spaced_day(apart or free, assigned)
        structure[day] = RunType.MODERATE
        assigned.append(day)

    while len(assigned) < target:
        free = [d for d in available if d not in assigned]
        if not free:
            break
        day = most_spaced_day(free, assigned)
        structure[day] = RunType.SHORT
        assigned.append(day)

    return structure
