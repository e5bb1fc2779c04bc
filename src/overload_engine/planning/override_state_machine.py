"""Risk override state machine.

Carries a risk response across days so one bad assessment shapes the
following plans, not just today's:

    none -> deload | rebuilding       acwr multiplier < 1.0 (deload if < 0.9)
    none -> long_run_limited          only the long-run multiplier signals risk
    deload -> cooldown | rebuilding   multiplier back to >= 0.9 (cooldown if > 0.9)
    rebuilding -> cooldown            multiplier > 0.9
    cooldown -> deload | rebuilding   relapse, same rule as entry from none
    cooldown | long_run_limited -> none   after 7 days without relapse

Every other combination leaves the override unchanged.
"""

from __future__ import annotations

import dataclasses
import logging
from datetime import date

from overload_engine.exceptions import OutOfOrderUpdateError
from overload_engine.models.analysis import RunAnalysis
from overload_engine.models.enums import (
    ACWR_VOLUME_MULTIPLIER,
    DELOAD_MULTIPLIER_THRESHOLD,
    LONG_RUN_MULTIPLIER,
    MIN_DAILY_VOLUME_FRACTION,
    NEUTRAL_ACWR_MULTIPLIER,
    NEUTRAL_LONG_RUN_MULTIPLIER,
    OVERRIDE_EXPIRY_DAYS,
    AcwrRiskTier,
    ProgressionRate,
    RiskPhase,
    SingleRunRiskTier,
)
from overload_engine.models.plan import RecentData
from overload_engine.models.risk_override import RiskOverride

logger = logging.getLogger(__name__)


def acwr_multiplier_for(tier: AcwrRiskTier | None) -> float:
    if tier is None:
        return NEUTRAL_ACWR_MULTIPLIER
    return ACWR_VOLUME_MULTIPLIER[tier]


def long_run_multiplier_for(tier: SingleRunRiskTier | None) -> float:
    if tier is None:
        return NEUTRAL_LONG_RUN_MULTIPLIER
    return LONG_RUN_MULTIPLIER[tier]


def _entry_phase(acwr_multiplier: float) -> RiskPhase:
    if acwr_multiplier < DELOAD_MULTIPLIER_THRESHOLD:
        return RiskPhase.DELOAD
    return RiskPhase.REBUILDING


def transition(
    current: RiskOverride,
    acwr_multiplier: float,
    long_run_multiplier: float,
    today: date,
) -> RiskOverride:
    """Next override given today's multipliers.

    Raises:
        OutOfOrderUpdateError: If ``today`` is earlier than the date the
            current override was last evaluated on.
    """
    if current.evaluated_on is not None and today < current.evaluated_on:
        raise OutOfOrderUpdateError(today, current.evaluated_on)

    acwr_risk = acwr_multiplier < NEUTRAL_ACWR_MULTIPLIER
    long_run_risk = long_run_multiplier < NEUTRAL_LONG_RUN_MULTIPLIER
    elapsed = current.days_since_start(today)
    phase = current.phase

    if phase is RiskPhase.NONE and acwr_risk:
        nxt = RiskOverride(
            phase=_entry_phase(acwr_multiplier),
            start_date=today,
            acwr_multiplier=acwr_multiplier,
            long_run_multiplier=long_run_multiplier,
        )
    elif phase is RiskPhase.NONE and long_run_risk:
        nxt = RiskOverride(
            phase=RiskPhase.LONG_RUN_LIMITED,
            start_date=today,
            acwr_multiplier=acwr_multiplier,
            long_run_multiplier=long_run_multiplier,
        )
    elif phase is RiskPhase.DELOAD and acwr_multiplier >= DELOAD_MULTIPLIER_THRESHOLD:
        nxt = dataclasses.replace(
            current,
            phase=(
                RiskPhase.COOLDOWN
                if acwr_multiplier > DELOAD_MULTIPLIER_THRESHOLD
                else RiskPhase.REBUILDING
            ),
            start_date=today,
            acwr_multiplier=acwr_multiplier,
        )
    elif phase is RiskPhase.REBUILDING and acwr_multiplier > DELOAD_MULTIPLIER_THRESHOLD:
        nxt = dataclasses.replace(
            current,
            phase=RiskPhase.COOLDOWN,
            start_date=today,
            acwr_multiplier=acwr_multiplier,
        )
    elif phase is RiskPhase.COOLDOWN and acwr_risk:
        nxt = RiskOverride(
            phase=_entry_phase(acwr_multiplier),
            start_date=today,
            acwr_multiplier=acwr_multiplier,
            long_run_multiplier=long_run_multiplier,
        )
    elif (
        phase in (RiskPhase.COOLDOWN, RiskPhase.LONG_RUN_LIMITED)
        and elapsed >= OVERRIDE_EXPIRY_DAYS
    ):
        nxt = RiskOverride.none()
    else:
        nxt = current

    if not nxt.same_state(current):
        logger.info("Risk override %s -> %s on %s", phase.value, nxt.phase.value, today)
    return dataclasses.replace(nxt, evaluated_on=today)


def next_override(
    current: RiskOverride,
    acwr_tier: AcwrRiskTier | None,
    single_run_tier: SingleRunRiskTier | None,
    today: date,
) -> RiskOverride:
    """Tier-level wrapper around :func:`transition`."""
    return transition(
        current,
        acwr_multiplier_for(acwr_tier),
        long_run_multiplier_for(single_run_tier),
        today,
    )


def advance_for_analysis(current: RiskOverride, analysis: RunAnalysis) -> RiskOverride:
    """Feed one day's RunAnalysis into the state machine."""
    single = analysis.single_activity.tier if analysis.single_activity is not None else None
    return next_override(current, analysis.acwr.tier, single, analysis.date)


def apply_override(
    override: RiskOverride,
    analysis: RunAnalysis,
    progression_rate: ProgressionRate,
) -> tuple[RecentData, ProgressionRate]:
    """Override-adjusted generator inputs and the effective progression rate.

    deload and rebuilding hold progression and apply both multipliers;
    cooldown and long_run_limited apply only the long-run multiplier and
    slow a fast progression down.
    """
    acwr_multiplier = NEUTRAL_ACWR_MULTIPLIER
    long_run_multiplier = NEUTRAL_LONG_RUN_MULTIPLIER
    rate = progression_rate

    if override.phase in (RiskPhase.DELOAD, RiskPhase.REBUILDING):
        acwr_multiplier = override.acwr_multiplier
        long_run_multiplier = override.long_run_multiplier
        rate = ProgressionRate.RETAIN
    elif override.phase in (RiskPhase.COOLDOWN, RiskPhase.LONG_RUN_LIMITED):
        long_run_multiplier = override.long_run_multiplier
        if progression_rate is ProgressionRate.FAST:
            rate = ProgressionRate.SLOW

    weekly_volume = analysis.chronic_load * acwr_multiplier
    recent = RecentData(
        max_safe_long_run=analysis.safe_long_run * long_run_multiplier,
        base_weekly_volume=weekly_volume,
        min_daily_volume=weekly_volume * MIN_DAILY_VOLUME_FRACTION,
        risk_phase=override.phase,
    )
    return recent, rate
