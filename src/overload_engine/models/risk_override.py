"""Persisted multi-day risk override.

The override is a tagged union over RiskPhase. ``RiskOverride.none()`` is
the explicit "no override" variant, so callers never juggle ``None``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from overload_engine.models.enums import (
    NEUTRAL_ACWR_MULTIPLIER,
    NEUTRAL_LONG_RUN_MULTIPLIER,
    RiskPhase,
)


@dataclass(frozen=True)
class RiskOverride:
    """Active override phase plus the multipliers captured when it started."""

    phase: RiskPhase = RiskPhase.NONE
    start_date: date | None = None
    acwr_multiplier: float = NEUTRAL_ACWR_MULTIPLIER
    long_run_multiplier: float = NEUTRAL_LONG_RUN_MULTIPLIER

    # Last assessment date this state was derived from (enforces calendar order)
    evaluated_on: date | None = None

    @classmethod
    def none(cls, evaluated_on: date | None = None) -> RiskOverride:
        return cls(phase=RiskPhase.NONE, evaluated_on=evaluated_on)

    def days_since_start(self, today: date) -> int:
        if self.start_date is None:
            return 0
        return (today - self.start_date).days

    def same_state(self, other: RiskOverride) -> bool:
        """Equality ignoring ``evaluated_on``."""
        return (
            self.phase == other.phase
            and self.start_date == other.start_date
            and self.acwr_multiplier == other.acwr_multiplier
            and self.long_run_multiplier == other.long_run_multiplier
        )
