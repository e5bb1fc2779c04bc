"""Analysis models: risk assessments, the RunAnalysis projection and the cache."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from types import MappingProxyType
from typing import Mapping

from overload_engine.models.enums import (
    AcwrRiskTier,
    Severity,
    SingleRunRiskTier,
)


@dataclass(frozen=True)
class AcuteChronicAssessment:
    """ACWR classification for one date."""

    date: date
    ratio: float
    tier: AcwrRiskTier
    message: str = ""


@dataclass(frozen=True)
class SingleActivityRiskAssessment:
    """Spike risk of one session against the smoothed longest-run baseline."""

    tier: SingleRunRiskTier
    message: str
    distance: float = 0.0
    baseline: float = 0.0


@dataclass(frozen=True)
class CombinedRisk:
    """User-facing merge of the ACWR tier and the single-run tier."""

    title: str
    message: str
    severity: Severity

    @property
    def color(self) -> str:
        return self.severity.color


@dataclass(frozen=True)
class RunAnalysis:
    """Projection of the analysis for a single date, consumed by display and planning."""

    date: date
    acute_load: float
    chronic_load: float
    recommended_min: float
    recommended_max: float
    max_weekly_load: float
    safe_long_run: float
    acwr: AcuteChronicAssessment
    combined_risk: CombinedRisk
    single_activity: SingleActivityRiskAssessment | None = None

    @property
    def recommended_range(self) -> tuple[float, float]:
        return self.recommended_min, self.recommended_max


@dataclass(frozen=True)
class DailyLoadSeries:
    """Per-day loads from ``start_date``; index i is ``start_date + i`` days."""

    start_date: date
    raw: tuple[float, ...] = field(default_factory=tuple)
    capped: tuple[float, ...] = field(default_factory=tuple)
    longest: tuple[float, ...] = field(default_factory=tuple)

    def __len__(self) -> int:
        return len(self.raw)

    def index_of(self, day: date) -> int:
        return (day - self.start_date).days


@dataclass(frozen=True)
class AnalysisCache:
    """Derived series for an activity set, valid as of ``cache_date``.

    Invariant: every series date is <= cache_date, and ``activities_hash``
    matches the activity set the series were derived from.
    """

    cache_date: date
    activities_hash: str
    series: DailyLoadSeries
    acute: tuple[float, ...] = field(default_factory=tuple)
    chronic: tuple[float, ...] = field(default_factory=tuple)
    capped_acute: tuple[float, ...] = field(default_factory=tuple)
    smoothed_longest_run: tuple[float, ...] = field(default_factory=tuple)
    acwr_by_date: Mapping[date, AcuteChronicAssessment] = field(
        default_factory=lambda: MappingProxyType({})
    )
    combined_risk_by_activity: Mapping[int, CombinedRisk] = field(
        default_factory=lambda: MappingProxyType({})
    )

    def __post_init__(self) -> None:
        # Freeze mappings so a cache can be shared between readers.
        if not isinstance(self.acwr_by_date, MappingProxyType):
            object.__setattr__(self, "acwr_by_date", MappingProxyType(dict(self.acwr_by_date)))
        if not isinstance(self.combined_risk_by_activity, MappingProxyType):
            object.__setattr__(
                self,
                "combined_risk_by_activity",
                MappingProxyType(dict(self.combined_risk_by_activity)),
            )

    @property
    def is_empty(self) -> bool:
        return len(self.series) == 0 or len(self.acwr_by_date) == 0

    @property
    def start_date(self) -> date:
        return self.series.start_date
