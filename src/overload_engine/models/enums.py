"""Enumerations and policy constants for the overload engine.

Thresholds cite their published research source where one exists; the
remaining values are product policy and are documented as such.
"""

from __future__ import annotations

from datetime import date
from enum import Enum, IntEnum, auto


class AcwrRiskTier(IntEnum):
    """Acute:chronic workload ratio classification, ordered by severity."""

    UNDERTRAINING = auto()
    OPTIMAL = auto()
    MODERATE_OVERTRAINING = auto()
    HIGH_OVERTRAINING = auto()


class SingleRunRiskTier(IntEnum):
    """Risk of one session relative to the recent longest-run baseline."""

    NONE = auto()
    MODERATE = auto()
    HIGH = auto()
    VERY_HIGH = auto()


class Severity(IntEnum):
    """User-facing severity of a combined risk. Higher value = worse."""

    OPTIMAL = 0
    LOW_LOAD = 1
    ELEVATED = 2
    HIGH = 3

    @property
    def color(self) -> str:
        return _SEVERITY_COLORS[self]


_SEVERITY_COLORS = {
    Severity.OPTIMAL: "#5EC961",
    Severity.LOW_LOAD: "#4B71BB",
    Severity.ELEVATED: "#FFA726",
    Severity.HIGH: "#D93535",
}


class RiskPhase(Enum):
    """Multi-day risk override phases. NONE means no override is active."""

    NONE = "none"
    LONG_RUN_LIMITED = "long_run_limited"
    DELOAD = "deload"
    COOLDOWN = "cooldown"
    REBUILDING = "rebuilding"


class RunType(IntEnum):
    """Category of a planned day, ordered from longest to rest."""

    LONG = auto()
    MODERATE = auto()
    SHORT = auto()
    REST = auto()


class ProgressionRate(Enum):
    """How aggressively target volume grows relative to chronic load."""

    RETAIN = "retain"
    SLOW = "slow"
    FAST = "fast"


class AnalysisMode(Enum):
    """PERSISTENT builds every cache artefact; SIMULATION only the load series."""

    PERSISTENT = auto()
    SIMULATION = auto()


class Weekday(IntEnum):
    """ISO weekday numbering (Monday = 1)."""

    MONDAY = 1
    TUESDAY = 2
    WEDNESDAY = 3
    THURSDAY = 4
    FRIDAY = 5
    SATURDAY = 6
    SUNDAY = 7

    @classmethod
    def of(cls, day: date) -> Weekday:
        return cls(day.isoweekday())

    def distance_to(self, other: Weekday) -> int:
        """Circular distance in days (0-3) between two weekdays."""
        diff = abs(self.value - other.value)
        return min(diff, 7 - diff)

    def is_adjacent_to(self, other: Weekday) -> bool:
        return self.distance_to(other) == 1


# ---------------------------------------------------------------------------
# Load windows
# ---------------------------------------------------------------------------
ACUTE_WINDOW_DAYS = 7
CHRONIC_WEEKS = 3  # Chronic = mean of the 3 weeks preceding the acute week
CHRONIC_WINDOW_DAYS = ACUTE_WINDOW_DAYS * CHRONIC_WEEKS
LONGEST_RUN_LOOKBACK_DAYS = 30
LONGEST_RUN_EWMA_SPAN = 7
LOAD_CAP_WINDOW_DAYS = 28
IQR_MIN_SAMPLES = 4
IQR_FENCE_FACTOR = 1.5

# Sessions closer than this are treated as one (e.g. run + cooldown jog)
MERGE_WINDOW_HOURS = 2

# Incremental recompute lookback: 28-day chronic window + smoothing lag
DEFAULT_OVERLAP_DAYS = 40

# ---------------------------------------------------------------------------
# ACWR thresholds: Gabbett (2016), Br J Sports Med 50(5):273-280
# ---------------------------------------------------------------------------
ACWR_UNDERTRAINED = 0.8  # Below this = insufficient stimulus
ACWR_OPTIMAL_HIGH = 1.3  # Upper bound (inclusive) of the sweet spot
ACWR_DANGER_THRESHOLD = 1.5  # Above this = high overtraining

# Ceiling multiplier on chronic load for the daily upper bound, by tier
ACWR_RANGE_CEILING = {
    AcwrRiskTier.UNDERTRAINING: 1.3,
    AcwrRiskTier.OPTIMAL: 1.3,
    AcwrRiskTier.MODERATE_OVERTRAINING: 1.2,
    AcwrRiskTier.HIGH_OVERTRAINING: 1.1,
}
MAX_WEEKLY_LOAD_FACTOR = 1.3
SAFE_LONG_RUN_FACTOR = 1.1
MIN_RUN_LONG_RUN_FRACTION = 0.5

# ---------------------------------------------------------------------------
# Single-run spike thresholds (ratio of distance to smoothed longest run)
# Nielsen et al. (2014), J Orthop Sports Phys Ther 44(10):739-747
# ---------------------------------------------------------------------------
SPIKE_MODERATE_RATIO = 1.1
SPIKE_HIGH_RATIO = 1.3
SPIKE_VERY_HIGH_RATIO = 2.0

# ---------------------------------------------------------------------------
# Risk override multipliers (product policy)
# ---------------------------------------------------------------------------
ACWR_VOLUME_MULTIPLIER = {
    AcwrRiskTier.UNDERTRAINING: 0.9,
    AcwrRiskTier.OPTIMAL: 1.0,
    AcwrRiskTier.MODERATE_OVERTRAINING: 0.85,
    AcwrRiskTier.HIGH_OVERTRAINING: 0.65,
}
LONG_RUN_MULTIPLIER = {
    SingleRunRiskTier.NONE: 1.1,
    SingleRunRiskTier.MODERATE: 1.0,
    SingleRunRiskTier.HIGH: 0.9,
    SingleRunRiskTier.VERY_HIGH: 0.75,
}
NEUTRAL_ACWR_MULTIPLIER = 1.0
NEUTRAL_LONG_RUN_MULTIPLIER = 1.1
DELOAD_MULTIPLIER_THRESHOLD = 0.9
OVERRIDE_EXPIRY_DAYS = 7
OVERRIDE_REPLAY_DAYS = 28  # Missed daily refreshes are replayed at most this far back

# ---------------------------------------------------------------------------
# Weekly plan generation (product policy)
# ---------------------------------------------------------------------------
PROGRESSION_FACTOR = {
    ProgressionRate.RETAIN: 1.0,
    ProgressionRate.SLOW: 1.1,
    ProgressionRate.FAST: 1.3,
}
LONG_RUN_VOLUME_SHARE = 0.38
MODERATE_TO_LONG_RATIO = 0.6
MIN_DAILY_VOLUME_FRACTION = 0.1
MAX_REBALANCE_ITERATIONS = 10
CONVERGENCE_EPSILON = 0.1
PLAN_DAYS = 7

# ---------------------------------------------------------------------------
# Historical pattern detection
# ---------------------------------------------------------------------------
HISTORY_MIN_ACTIVITIES = 8  # ~2 weeks of data
HISTORY_LOOKBACK_WEEKS = 8
TYPICAL_DAY_WEEK_FRACTION = 0.5
CLEAR_STRUCTURE_FRACTION = 0.75
MIN_TYPICAL_RUNS_PER_WEEK = 2
MAX_TYPICAL_RUNS_PER_WEEK = 7
DEFAULT_TYPICAL_RUNS_PER_WEEK = 3
