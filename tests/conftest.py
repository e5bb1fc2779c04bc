"""Shared test fixtures: activity factories, training histories, caches, plan inputs."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta

import pytest

from overload_engine.analysis.cache_manager import AnalysisCacheManager
from overload_engine.models.activity import Activity
from overload_engine.models.analysis import AnalysisCache
from overload_engine.models.enums import ProgressionRate, RiskPhase, Weekday
from overload_engine.models.plan import (
    HistoricalPattern,
    PlanInput,
    RecentData,
    UserPreferences,
)

# Monday
TODAY = date(2026, 10, 19)

# Weekday -> distance (m) of the steady four-runs-a-week habit
STEADY_WEEK = {
    Weekday.MONDAY: 6000.0,
    Weekday.WEDNESDAY: 8000.0,
    Weekday.FRIDAY: 6000.0,
    Weekday.SUNDAY: 14000.0,
}


def make_activity(
    activity_id: int,
    day: date,
    distance: float,
    hour: int = 8,
    minute: int = 0,
    moving_time: int | None = None,
) -> Activity:
    """Activity on ``day`` at ``hour:minute``, moving at ~5:00/km by default."""
    return Activity(
        id=activity_id,
        distance=distance,
        start=datetime.combine(day, time(hour=hour, minute=minute)),
        moving_time=int(distance * 0.3) if moving_time is None else moving_time,
    )


def daily_runs(start: date, days: int, distance: float, first_id: int = 1) -> list[Activity]:
    """One run of ``distance`` every day for ``days`` days from ``start``."""
    return [
        make_activity(first_id + i, start + timedelta(days=i), distance) for i in range(days)
    ]


def steady_weeks(end: date, weeks: int = 8, first_id: int = 1) -> list[Activity]:
    """STEADY_WEEK runs on every matching day in the ``weeks`` weeks ending at ``end``."""
    start = end - timedelta(days=weeks * 7 - 1)
    activities = []
    day = start
    next_id = first_id
    while day <= end:
        distance = STEADY_WEEK.get(Weekday.of(day))
        if distance is not None:
            activities.append(make_activity(next_id, day, distance))
            next_id += 1
        day += timedelta(days=1)
    return activities


@pytest.fixture
def steady_history() -> list[Activity]:
    """Eight weeks of Mon/Wed/Fri/Sun running, ending yesterday (34 km/week)."""
    return steady_weeks(TODAY - timedelta(days=1))


@pytest.fixture
def cache_manager() -> AnalysisCacheManager:
    return AnalysisCacheManager()


@pytest.fixture
def steady_cache(
    cache_manager: AnalysisCacheManager, steady_history: list[Activity]
) -> AnalysisCache:
    return cache_manager.update(
        None, steady_history, cache_manager.default_overlap(TODAY), today=TODAY
    )


@pytest.fixture
def default_preferences() -> UserPreferences:
    return UserPreferences(
        max_runs_per_week=5,
        preferred_long_run_days=frozenset({Weekday.SUNDAY}),
        progression_rate=ProgressionRate.SLOW,
    )


@pytest.fixture
def steady_pattern() -> HistoricalPattern:
    return HistoricalPattern(
        has_clear_structure=True,
        typical_run_days=frozenset(STEADY_WEEK),
        typical_long_run_day=Weekday.SUNDAY,
        typical_runs_per_week=4,
    )


@pytest.fixture
def steady_recent() -> RecentData:
    return RecentData(
        max_safe_long_run=15400.0,
        base_weekly_volume=34000.0,
        min_daily_volume=3400.0,
        risk_phase=RiskPhase.NONE,
    )


@pytest.fixture
def plan_input(
    default_preferences: UserPreferences,
    steady_pattern: HistoricalPattern,
    steady_recent: RecentData,
) -> PlanInput:
    return PlanInput(
        preferences=default_preferences,
        historical_pattern=steady_pattern,
        recent_data=steady_recent,
    )
