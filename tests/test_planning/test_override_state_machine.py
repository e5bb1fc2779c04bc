"""Tests for the risk override state machine and its effects on generator inputs."""

from __future__ import annotations

from datetime import timedelta

import pytest

from conftest import TODAY
from overload_engine.analysis.risk_analyzer import assess_acwr, combine_risk
from overload_engine.exceptions import OutOfOrderUpdateError
from overload_engine.models.analysis import RunAnalysis
from overload_engine.models.enums import (
    AcwrRiskTier,
    ProgressionRate,
    RiskPhase,
    SingleRunRiskTier,
)
from overload_engine.models.risk_override import RiskOverride
from overload_engine.planning.override_state_machine import (
    advance_for_analysis,
    apply_override,
    next_override,
    transition,
)


def _analysis(chronic: float = 30000.0, safe_long_run: float = 12000.0) -> RunAnalysis:
    acwr = assess_acwr(TODAY, chronic, chronic)
    return RunAnalysis(
        date=TODAY,
        acute_load=chronic,
        chronic_load=chronic,
        recommended_min=0.0,
        recommended_max=0.0,
        max_weekly_load=chronic * 1.3,
        safe_long_run=safe_long_run,
        acwr=acwr,
        combined_risk=combine_risk(acwr, None),
    )


class TestTransitions:
    def test_deload_then_cooldown_then_none(self) -> None:
        state = transition(RiskOverride.none(), 0.7, 1.1, TODAY)
        assert state.phase == RiskPhase.DELOAD
        assert state.start_date == TODAY

        day = TODAY + timedelta(days=1)
        state = transition(state, 0.95, 1.1, day)
        assert state.phase == RiskPhase.COOLDOWN
        assert state.start_date == day

        # Six stable days: still cooling down
        for offset in range(1, 7):
            state = transition(state, 1.0, 1.1, day + timedelta(days=offset))
            assert state.phase == RiskPhase.COOLDOWN

        state = transition(state, 1.0, 1.1, day + timedelta(days=7))
        assert state.phase == RiskPhase.NONE

    def test_undertraining_enters_rebuilding(self) -> None:
        state = next_override(
            RiskOverride.none(), AcwrRiskTier.UNDERTRAINING, SingleRunRiskTier.NONE, TODAY
        )
        assert state.phase == RiskPhase.REBUILDING
        assert state.acwr_multiplier == 0.9

    def test_high_overtraining_enters_deload(self) -> None:
        state = next_override(
            RiskOverride.none(), AcwrRiskTier.HIGH_OVERTRAINING, SingleRunRiskTier.NONE, TODAY
        )
        assert state.phase == RiskPhase.DELOAD
        assert state.acwr_multiplier == 0.65

    def test_deload_partial_recovery_is_rebuilding(self) -> None:
        deload = transition(RiskOverride.none(), 0.65, 1.1, TODAY)
        state = transition(deload, 0.9, 1.1, TODAY + timedelta(days=1))
        assert state.phase == RiskPhase.REBUILDING

    def test_deload_keeps_long_run_multiplier_on_recovery(self) -> None:
        deload = transition(RiskOverride.none(), 0.65, 0.75, TODAY)
        state = transition(deload, 1.0, 1.1, TODAY + timedelta(days=1))
        assert state.phase == RiskPhase.COOLDOWN
        assert state.long_run_multiplier == 0.75
        assert state.acwr_multiplier == 1.0

    def test_rebuilding_to_cooldown(self) -> None:
        rebuilding = transition(RiskOverride.none(), 0.9, 1.1, TODAY)
        assert transition(rebuilding, 0.9, 1.1, TODAY + timedelta(days=1)).phase == RiskPhase.REBUILDING
        assert transition(rebuilding, 1.0, 1.1, TODAY + timedelta(days=1)).phase == RiskPhase.COOLDOWN

    def test_cooldown_relapse(self) -> None:
        cooldown = RiskOverride(phase=RiskPhase.COOLDOWN, start_date=TODAY)
        relapse_day = TODAY + timedelta(days=3)
        state = transition(cooldown, 0.65, 1.1, relapse_day)
        assert state.phase == RiskPhase.DELOAD
        assert state.start_date == relapse_day

    def test_single_run_risk_limits_long_runs(self) -> None:
        state = next_override(
            RiskOverride.none(), AcwrRiskTier.OPTIMAL, SingleRunRiskTier.HIGH, TODAY
        )
        assert state.phase == RiskPhase.LONG_RUN_LIMITED
        assert state.long_run_multiplier == 0.9

    def test_long_run_limit_expires_after_seven_days(self) -> None:
        limited = transition(RiskOverride.none(), 1.0, 1.0, TODAY)
        assert transition(limited, 1.0, 1.1, TODAY + timedelta(days=6)).phase == (
            RiskPhase.LONG_RUN_LIMITED
        )
        assert transition(limited, 1.0, 1.1, TODAY + timedelta(days=7)).phase == RiskPhase.NONE

    def test_long_run_limit_ignores_new_acwr_risk(self) -> None:
        limited = transition(RiskOverride.none(), 1.0, 1.0, TODAY)
        state = transition(limited, 0.65, 1.1, TODAY + timedelta(days=1))
        assert state.phase == RiskPhase.LONG_RUN_LIMITED
        assert state.same_state(limited)

    def test_no_risk_stays_none(self) -> None:
        state = next_override(RiskOverride.none(), None, None, TODAY)
        assert state.phase == RiskPhase.NONE

    def test_records_evaluation_date(self) -> None:
        state = transition(RiskOverride.none(), 1.0, 1.1, TODAY)
        assert state.evaluated_on == TODAY

    def test_out_of_order_update_raises(self) -> None:
        state = transition(RiskOverride.none(), 0.7, 1.1, TODAY)
        with pytest.raises(OutOfOrderUpdateError):
            transition(state, 1.0, 1.1, TODAY - timedelta(days=1))

    def test_same_day_replay_is_allowed(self) -> None:
        state = transition(RiskOverride.none(), 0.7, 1.1, TODAY)
        again = transition(state, 0.7, 1.1, TODAY)
        assert again.same_state(state)

    def test_advance_for_analysis_uses_analysis_date(self) -> None:
        state = advance_for_analysis(RiskOverride.none(), _analysis())
        assert state.phase == RiskPhase.NONE
        assert state.evaluated_on == TODAY


class TestApplyOverride:
    def test_no_override(self) -> None:
        recent, rate = apply_override(RiskOverride.none(), _analysis(), ProgressionRate.FAST)
        assert rate == ProgressionRate.FAST
        assert recent.base_weekly_volume == pytest.approx(30000.0)
        assert recent.max_safe_long_run == pytest.approx(13200.0)
        assert recent.min_daily_volume == pytest.approx(3000.0)
        assert recent.risk_phase == RiskPhase.NONE

    def test_deload_retains_and_applies_both_multipliers(self) -> None:
        deload = RiskOverride(
            phase=RiskPhase.DELOAD,
            start_date=TODAY,
            acwr_multiplier=0.65,
            long_run_multiplier=0.9,
        )
        recent, rate = apply_override(deload, _analysis(), ProgressionRate.FAST)
        assert rate == ProgressionRate.RETAIN
        assert recent.base_weekly_volume == pytest.approx(19500.0)
        assert recent.max_safe_long_run == pytest.approx(10800.0)
        assert recent.min_daily_volume == pytest.approx(1950.0)
        assert recent.risk_phase == RiskPhase.DELOAD

    def test_cooldown_applies_long_run_multiplier_only(self) -> None:
        cooldown = RiskOverride(
            phase=RiskPhase.COOLDOWN,
            start_date=TODAY,
            acwr_multiplier=0.65,
            long_run_multiplier=0.75,
        )
        recent, rate = apply_override(cooldown, _analysis(), ProgressionRate.FAST)
        assert rate == ProgressionRate.SLOW
        assert recent.base_weekly_volume == pytest.approx(30000.0)
        assert recent.max_safe_long_run == pytest.approx(9000.0)

    def test_long_run_limited_keeps_slow_rate(self) -> None:
        limited = RiskOverride(phase=RiskPhase.LONG_RUN_LIMITED, long_run_multiplier=1.0)
        _, rate = apply_override(limited, _analysis(), ProgressionRate.SLOW)
        assert rate == ProgressionRate.SLOW
