"""Weekly planning models: preferences, historical pattern, plan input and output."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from types import MappingProxyType
from typing import Mapping

from overload_engine.models.enums import (
    DEFAULT_TYPICAL_RUNS_PER_WEEK,
    ProgressionRate,
    RiskPhase,
    RunType,
    Weekday,
)
from overload_engine.models.risk_override import RiskOverride


@dataclass(frozen=True)
class UserPreferences:
    """The runner's scheduling constraints. Validated before planning."""

    max_runs_per_week: int = 7
    preferred_long_run_days: frozenset[Weekday] = field(default_factory=frozenset)
    forbidden_run_days: frozenset[Weekday] = field(default_factory=frozenset)
    progression_rate: ProgressionRate = ProgressionRate.SLOW

    @property
    def available_days(self) -> frozenset[Weekday]:
        return frozenset(Weekday) - self.forbidden_run_days

    def structurally_differs(self, other: UserPreferences) -> bool:
        """True if a change to ``other`` invalidates a weekly structure."""
        return (
            self.preferred_long_run_days != other.preferred_long_run_days
            or self.forbidden_run_days != other.forbidden_run_days
            or self.max_runs_per_week != other.max_runs_per_week
        )


@dataclass(frozen=True)
class HistoricalPattern:
    """Habits detected in the last weeks of history."""

    has_clear_structure: bool = False
    typical_run_days: frozenset[Weekday] = field(default_factory=frozenset)
    typical_long_run_day: Weekday | None = None
    typical_runs_per_week: int = DEFAULT_TYPICAL_RUNS_PER_WEEK


@dataclass(frozen=True)
class RecentData:
    """Override-adjusted volume inputs for one plan generation."""

    max_safe_long_run: float
    base_weekly_volume: float
    min_daily_volume: float
    risk_phase: RiskPhase = RiskPhase.NONE


@dataclass(frozen=True)
class DailyPlan:
    """One planned day."""

    date: date
    weekday: Weekday
    run_type: RunType
    planned_distance: float = 0.0  # meters
    is_rest_week: bool = False


@dataclass(frozen=True)
class WeeklyTrainingPlan:
    """Seven consecutive planned days starting at ``start_date``."""

    start_date: date
    days: tuple[DailyPlan, ...] = field(default_factory=tuple)
    risk_phase: RiskPhase = RiskPhase.NONE
    progression_rate: ProgressionRate = ProgressionRate.SLOW
    structure: Mapping[Weekday, RunType] = field(
        default_factory=lambda: MappingProxyType({})
    )
    preferences: UserPreferences | None = None
    historical_activities_hash: str = ""

    def __post_init__(self) -> None:
        if not isinstance(self.structure, MappingProxyType):
            object.__setattr__(self, "structure", MappingProxyType(dict(self.structure)))

    @property
    def total_distance(self) -> float:
        return sum(d.planned_distance for d in self.days)

    @property
    def run_days(self) -> tuple[DailyPlan, ...]:
        return tuple(d for d in self.days if d.run_type != RunType.REST)

    def day_for(self, day: date) -> DailyPlan | None:
        for plan in self.days:
            if plan.date == day:
                return plan
        return None


@dataclass(frozen=True)
class PlanInput:
    """Everything the generator needs besides history and the analysis cache."""

    preferences: UserPreferences
    historical_pattern: HistoricalPattern
    recent_data: RecentData
    risk_override: RiskOverride = field(default_factory=RiskOverride.none)
    previous_plan: WeeklyTrainingPlan | None = None
