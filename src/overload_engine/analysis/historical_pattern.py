"""Detect a runner's weekly habits from recent history.

A weekday is "typical" when a run falls on it in at least half of the
weeks covered. The history has a clear structure when more than 75% of
runs land on typical days.
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from datetime import date, timedelta
from typing import Iterable

from overload_engine.models.activity import Activity, merge_sessions
from overload_engine.models.enums import (
    CLEAR_STRUCTURE_FRACTION,
    HISTORY_LOOKBACK_WEEKS,
    HISTORY_MIN_ACTIVITIES,
    MAX_TYPICAL_RUNS_PER_WEEK,
    MIN_TYPICAL_RUNS_PER_WEEK,
    TYPICAL_DAY_WEEK_FRACTION,
    Weekday,
)
from overload_engine.models.plan import HistoricalPattern

logger = logging.getLogger(__name__)


def recent_history(activities: Iterable[Activity], today: date) -> list[Activity]:
    """Activities in the HISTORY_LOOKBACK_WEEKS weeks before ``today``."""
    cutoff = today - timedelta(weeks=HISTORY_LOOKBACK_WEEKS)
    return [a for a in activities if cutoff < a.day < today]


def detect_pattern(activities: Iterable[Activity]) -> HistoricalPattern:
    """Summarise weekday habits; the default pattern when history is too thin.

    The minimum history counts recorded activities. Everything else counts
    merged sessions, so two records started within two hours are one run.
    """
    activities = list(activities)
    if len(activities) < HISTORY_MIN_ACTIVITIES:
        logger.debug("Only %d activities; using the default historical pattern", len(activities))
        return HistoricalPattern()

    sessions = merge_sessions(activities)
    first_day = sessions[0].day
    last_day = sessions[-1].day
    total_weeks = max(1.0, ((last_day - first_day).days + 1) / 7.0)

    runs_per_weekday = Counter(Weekday.of(s.day) for s in sessions)
    typical_days = frozenset(
        day
        for day, count in runs_per_weekday.items()
        if count / total_weeks >= TYPICAL_DAY_WEEK_FRACTION
    )

    average_per_week = len(sessions) / total_weeks
    runs_per_week = max(len(typical_days), math.floor(average_per_week + 0.5))
    runs_per_week = min(MAX_TYPICAL_RUNS_PER_WEEK, max(MIN_TYPICAL_RUNS_PER_WEEK, runs_per_week))

    on_typical_days = sum(runs_per_weekday[d] for d in typical_days)
    has_clear_structure = on_typical_days / len(sessions) > CLEAR_STRUCTURE_FRACTION

    longest_by_weekday: dict[Weekday, float] = {}
    for session in sessions:
        weekday = Weekday.of(session.day)
        longest_by_weekday[weekday] = max(longest_by_weekday.get(weekday, 0.0), session.distance)
    # Ties resolve to the earliest weekday.
    long_run_day = max(sorted(longest_by_weekday), key=lambda d: longest_by_weekday[d])

    return HistoricalPattern(
        has_clear_structure=has_clear_structure,
        typical_run_days=typical_days,
        typical_long_run_day=long_run_day,
        typical_runs_per_week=runs_per_week,
    )
