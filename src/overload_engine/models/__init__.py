"""Data models for the overload engine."""

from overload_engine.models.activity import Activity
from overload_engine.models.analysis import (
    AcuteChronicAssessment,
    AnalysisCache,
    CombinedRisk,
    DailyLoadSeries,
    RunAnalysis,
    SingleActivityRiskAssessment,
)
from overload_engine.models.enums import (
    AcwrRiskTier,
    AnalysisMode,
    ProgressionRate,
    RiskPhase,
    RunType,
    Severity,
    SingleRunRiskTier,
    Weekday,
)
from overload_engine.models.plan import (
    DailyPlan,
    HistoricalPattern,
    PlanInput,
    RecentData,
    UserPreferences,
    WeeklyTrainingPlan,
)
from overload_engine.models.risk_override import RiskOverride

__all__ = [
    "Activity",
    "AcuteChronicAssessment",
    "AcwrRiskTier",
    "AnalysisCache",
    "AnalysisMode",
    "CombinedRisk",
    "DailyLoadSeries",
    "DailyPlan",
    "HistoricalPattern",
    "PlanInput",
    "ProgressionRate",
    "RecentData",
    "RiskOverride",
    "RiskPhase",
    "RunAnalysis",
    "RunType",
    "Severity",
    "SingleActivityRiskAssessment",
    "SingleRunRiskTier",
    "UserPreferences",
    "Weekday",
    "WeeklyTrainingPlan",
]
