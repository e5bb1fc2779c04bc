"""Tests for the weekly plan generator: distribution, rebalancing, validation."""

from __future__ import annotations

import dataclasses
from datetime import timedelta

import pytest

from conftest import TODAY
from overload_engine.coordination import CancellationToken
from overload_engine.exceptions import ComputationCancelled
from overload_engine.models.activity import activities_hash
from overload_engine.models.enums import (
    CONVERGENCE_EPSILON,
    MAX_REBALANCE_ITERATIONS,
    ProgressionRate,
    RiskPhase,
    RunType,
    Weekday,
)
from overload_engine.models.plan import (
    PlanInput,
    RecentData,
    UserPreferences,
    WeeklyTrainingPlan,
)
from overload_engine.planning.generator import (
    WeeklyPlanGenerator,
    distribute_load,
    max_delta,
    rebalance_volume,
    weekly_volume,
)
from overload_engine.planning.structure import assign_structure

FOUR_DAY_STRUCTURE = {
    Weekday.MONDAY: RunType.SHORT,
    Weekday.TUESDAY: RunType.REST,
    Weekday.WEDNESDAY: RunType.MODERATE,
    Weekday.THURSDAY: RunType.REST,
    Weekday.FRIDAY: RunType.SHORT,
    Weekday.SATURDAY: RunType.REST,
    Weekday.SUNDAY: RunType.LONG,
}

THREE_DAY_STRUCTURE = {
    Weekday.MONDAY: RunType.SHORT,
    Weekday.WEDNESDAY: RunType.MODERATE,
    Weekday.SUNDAY: RunType.LONG,
}


def _deload(plan_input: PlanInput) -> PlanInput:
    return dataclasses.replace(
        plan_input,
        recent_data=dataclasses.replace(plan_input.recent_data, risk_phase=RiskPhase.DELOAD),
    )


def _with_preferences(plan_input: PlanInput, **changes) -> PlanInput:
    return dataclasses.replace(
        plan_input, preferences=dataclasses.replace(plan_input.preferences, **changes)
    )


class RecordingGenerator(WeeklyPlanGenerator):
    """Keeps the safe ranges returned by every validation pass."""

    def __init__(self) -> None:
        super().__init__()
        self.safe_ranges: list[dict[Weekday, tuple[float, float]]] = []

    def validate(self, distances, structure, cache, today):
        clamped, safe_ranges = super().validate(distances, structure, cache, today)
        self.safe_ranges.append(safe_ranges)
        return clamped, safe_ranges


class PinnedGenerator(WeeklyPlanGenerator):
    """Pins every run day to ``pin(call number)`` instead of simulating."""

    def __init__(self, pin) -> None:
        super().__init__()
        self.pin = pin
        self.calls = 0

    def validate(self, distances, structure, cache, today):
        self.calls += 1
        value = self.pin(self.calls)
        ranges = {d: (value, value) for d, t in structure.items() if t != RunType.REST}
        return {d: value if d in ranges else 0.0 for d in Weekday}, ranges


def _at_a_bound(distance: float, bounds: tuple[float, float]) -> bool:
    low, high = bounds
    return distance == pytest.approx(low) or distance == pytest.approx(high)


class TestDistributeLoad:
    def test_shares_by_run_type(self) -> None:
        recent = RecentData(max_safe_long_run=20000.0, base_weekly_volume=40000.0, min_daily_volume=4000.0)
        distances = distribute_load(FOUR_DAY_STRUCTURE, 40000.0, recent)
        assert distances[Weekday.SUNDAY] == pytest.approx(15200.0)
        assert distances[Weekday.WEDNESDAY] == pytest.approx(9120.0)
        assert distances[Weekday.MONDAY] == pytest.approx(7840.0)
        assert distances[Weekday.FRIDAY] == pytest.approx(7840.0)
        assert distances[Weekday.TUESDAY] == 0.0
        assert sum(distances.values()) == pytest.approx(40000.0)

    def test_long_run_capped_at_safe_long_run(self) -> None:
        recent = RecentData(max_safe_long_run=10000.0, base_weekly_volume=40000.0, min_daily_volume=4000.0)
        distances = distribute_load(FOUR_DAY_STRUCTURE, 40000.0, recent)
        assert distances[Weekday.SUNDAY] == pytest.approx(10000.0)
        assert distances[Weekday.WEDNESDAY] == pytest.approx(6000.0)

    def test_every_run_day_gets_the_floor(self) -> None:
        recent = RecentData(max_safe_long_run=0.0, base_weekly_volume=0.0, min_daily_volume=2000.0)
        distances = distribute_load(FOUR_DAY_STRUCTURE, 0.0, recent)
        for day, run_type in FOUR_DAY_STRUCTURE.items():
            expected = 0.0 if run_type == RunType.REST else 2000.0
            assert distances[day] == expected


class TestRebalance:
    def test_shortfall_fills_short_days_first(self) -> None:
        distances = {Weekday.MONDAY: 5000.0, Weekday.WEDNESDAY: 8000.0, Weekday.SUNDAY: 12000.0}
        result = rebalance_volume(distances, 27000.0, THREE_DAY_STRUCTURE, {})
        assert result == {Weekday.MONDAY: 7000.0, Weekday.WEDNESDAY: 8000.0, Weekday.SUNDAY: 12000.0}

    def test_surplus_cuts_long_day_first(self) -> None:
        distances = {Weekday.MONDAY: 5000.0, Weekday.WEDNESDAY: 8000.0, Weekday.SUNDAY: 12000.0}
        result = rebalance_volume(distances, 21000.0, THREE_DAY_STRUCTURE, {})
        assert result == {Weekday.MONDAY: 5000.0, Weekday.WEDNESDAY: 8000.0, Weekday.SUNDAY: 8000.0}

    def test_additions_respect_safe_maximum(self) -> None:
        distances = {Weekday.MONDAY: 5000.0, Weekday.WEDNESDAY: 8000.0, Weekday.SUNDAY: 12000.0}
        safe_ranges = {
            Weekday.MONDAY: (0.0, 6000.0),
            Weekday.WEDNESDAY: (0.0, 8500.0),
            Weekday.SUNDAY: (0.0, 12500.0),
        }
        result = rebalance_volume(distances, 30000.0, THREE_DAY_STRUCTURE, safe_ranges)
        assert result == {Weekday.MONDAY: 6000.0, Weekday.WEDNESDAY: 8500.0, Weekday.SUNDAY: 12500.0}

    def test_cuts_respect_safe_minimum(self) -> None:
        distances = {Weekday.MONDAY: 5000.0, Weekday.WEDNESDAY: 8000.0, Weekday.SUNDAY: 12000.0}
        safe_ranges = {
            Weekday.MONDAY: (4500.0, 9000.0),
            Weekday.WEDNESDAY: (7000.0, 9000.0),
            Weekday.SUNDAY: (11000.0, 14000.0),
        }
        result = rebalance_volume(distances, 10000.0, THREE_DAY_STRUCTURE, safe_ranges)
        assert result == {Weekday.MONDAY: 4500.0, Weekday.WEDNESDAY: 7000.0, Weekday.SUNDAY: 11000.0}

    def test_on_target_is_unchanged(self) -> None:
        distances = {Weekday.MONDAY: 5000.0, Weekday.WEDNESDAY: 8000.0, Weekday.SUNDAY: 12000.0}
        assert rebalance_volume(distances, 25000.0, THREE_DAY_STRUCTURE, {}) == distances

    def test_max_delta(self) -> None:
        a = {Weekday.MONDAY: 5000.0, Weekday.SUNDAY: 12000.0}
        b = {Weekday.MONDAY: 5200.0, Weekday.SUNDAY: 11900.0}
        assert max_delta(a, b) == pytest.approx(200.0)
        assert max_delta(a, {Weekday.MONDAY: 5000.0}) == float("inf")


class TestGenerate:
    def setup_method(self) -> None:
        self.generator = WeeklyPlanGenerator()

    def test_plan_covers_seven_days_from_today(self, plan_input, steady_history, steady_cache) -> None:
        plan = self.generator.generate(plan_input, steady_history, steady_cache, TODAY)
        assert plan.start_date == TODAY
        assert [d.date for d in plan.days] == [TODAY + timedelta(days=i) for i in range(7)]
        assert [d.weekday for d in plan.days] == [Weekday.of(d.date) for d in plan.days]
        assert plan.historical_activities_hash == activities_hash(steady_history)
        assert plan.risk_phase == RiskPhase.NONE

    def test_structure_and_rest_days(self, plan_input, steady_history, steady_cache) -> None:
        plan = self.generator.generate(plan_input, steady_history, steady_cache, TODAY)
        assert dict(plan.structure) == assign_structure(plan_input)
        for day in plan.days:
            assert day.run_type == plan.structure[day.weekday]
            if day.run_type == RunType.REST:
                assert day.planned_distance == 0.0
            else:
                assert day.planned_distance >= 0.0
            assert not day.is_rest_week
        assert len(plan.run_days) == 5
        assert plan.total_distance > 0.0

    def test_deload_skips_validation_and_marks_rest_week(self, plan_input, steady_history, steady_cache) -> None:
        deload = _deload(plan_input)
        plan = self.generator.generate(deload, steady_history, steady_cache, TODAY)
        assert plan.risk_phase == RiskPhase.DELOAD
        assert all(d.is_rest_week for d in plan.days)
        assert len(plan.run_days) == 3
        assert plan.total_distance == pytest.approx(weekly_volume(deload))

    def test_all_days_forbidden_gives_all_rest(self, plan_input, steady_history, steady_cache) -> None:
        rest = dataclasses.replace(
            plan_input,
            preferences=UserPreferences(max_runs_per_week=0, forbidden_run_days=frozenset(Weekday)),
        )
        plan = self.generator.generate(rest, steady_history, steady_cache, TODAY)
        assert plan.run_days == ()
        assert plan.total_distance == 0.0

    def test_reuses_previous_structure(self, plan_input, steady_history, steady_cache) -> None:
        structure = {day: RunType.REST for day in Weekday}
        structure[Weekday.SUNDAY] = RunType.LONG
        structure[Weekday.WEDNESDAY] = RunType.SHORT
        previous = WeeklyTrainingPlan(
            start_date=TODAY - timedelta(days=1),
            structure=structure,
            preferences=plan_input.preferences,
        )
        reused = dataclasses.replace(plan_input, previous_plan=previous)
        # Yesterday (Sunday) was a planned long run and steady_history ran it
        plan = self.generator.generate(reused, steady_history, steady_cache, TODAY)
        assert dict(plan.structure) == structure
        assert len(plan.run_days) == 2

    def test_cancelled_generation_raises(self, plan_input, steady_history, steady_cache) -> None:
        token = CancellationToken()
        token.cancel()
        with pytest.raises(ComputationCancelled):
            self.generator.generate(plan_input, steady_history, steady_cache, TODAY, cancel_token=token)

    def test_generation_is_deterministic(self, plan_input, steady_history, steady_cache) -> None:
        first = self.generator.generate(plan_input, steady_history, steady_cache, TODAY)
        second = self.generator.generate(plan_input, steady_history, steady_cache, TODAY)
        assert first == second


class TestConvergence:
    @pytest.mark.parametrize("rate", list(ProgressionRate))
    def test_total_hits_target_unless_every_day_is_at_a_bound(
        self, rate, plan_input, steady_history, steady_cache
    ) -> None:
        generator = RecordingGenerator()
        plan_input = _with_preferences(plan_input, progression_rate=rate)
        plan = generator.generate(plan_input, steady_history, steady_cache, TODAY)

        assert 1 <= len(generator.safe_ranges) <= MAX_REBALANCE_ITERATIONS
        if abs(plan.total_distance - weekly_volume(plan_input)) >= CONVERGENCE_EPSILON:
            last = generator.safe_ranges[-1]
            for day in plan.run_days:
                assert _at_a_bound(day.planned_distance, last[day.weekday])

    def test_two_runs_cannot_reach_a_fast_target(
        self, plan_input, steady_history, steady_cache
    ) -> None:
        generator = RecordingGenerator()
        plan_input = _with_preferences(
            plan_input, max_runs_per_week=2, progression_rate=ProgressionRate.FAST
        )
        plan = generator.generate(plan_input, steady_history, steady_cache, TODAY)

        assert len(plan.run_days) == 2
        assert plan.total_distance < weekly_volume(plan_input)
        last = generator.safe_ranges[-1]
        for day in plan.run_days:
            assert day.planned_distance == pytest.approx(last[day.weekday][1])

    def test_alternating_ranges_stop_as_oscillation(
        self, plan_input, steady_history, steady_cache
    ) -> None:
        generator = PinnedGenerator(lambda call: 3000.0 if call % 2 else 9000.0)
        plan = generator.generate(plan_input, steady_history, steady_cache, TODAY)
        assert generator.calls == 3
        assert all(day.planned_distance == 3000.0 for day in plan.run_days)

    def test_drifting_ranges_stop_at_the_iteration_cap(
        self, plan_input, steady_history, steady_cache
    ) -> None:
        generator = PinnedGenerator(lambda call: 3000.0 + 1000.0 * call)
        plan = generator.generate(plan_input, steady_history, steady_cache, TODAY)
        assert generator.calls == MAX_REBALANCE_ITERATIONS
        expected = 3000.0 + 1000.0 * MAX_REBALANCE_ITERATIONS
        assert all(day.planned_distance == expected for day in plan.run_days)


class TestValidate:
    def test_days_are_clamped_into_their_safe_range(self, steady_cache) -> None:
        generator = WeeklyPlanGenerator()
        distances = {day: 50000.0 for day in Weekday}
        clamped, ranges = generator.validate(distances, FOUR_DAY_STRUCTURE, steady_cache, TODAY)
        assert set(ranges) == {d for d, t in FOUR_DAY_STRUCTURE.items() if t != RunType.REST}
        for day, run_type in FOUR_DAY_STRUCTURE.items():
            if run_type == RunType.REST:
                assert clamped[day] == 0.0
            else:
                low, high = ranges[day]
                assert low <= clamped[day] <= high
                assert clamped[day] == high
