"""JSON round-trip for the persisted contract types.

Dates are ISO strings, enums are encoded by name, and integer-keyed maps
use string keys (JSON objects only have string keys). Floats go through
``json`` unchanged, so every value survives a round trip exactly.

All functions are pure (no I/O).
"""

from __future__ import annotations

import json
from datetime import date, datetime
from enum import Enum
from typing import Any, Iterable, TypeVar

from overload_engine.models.activity import Activity
from overload_engine.models.analysis import (
    AcuteChronicAssessment,
    AnalysisCache,
    CombinedRisk,
    DailyLoadSeries,
)
from overload_engine.models.enums import (
    AcwrRiskTier,
    ProgressionRate,
    RiskPhase,
    RunType,
    Severity,
    Weekday,
)
from overload_engine.models.plan import DailyPlan, UserPreferences, WeeklyTrainingPlan
from overload_engine.models.risk_override import RiskOverride

E = TypeVar("E", bound=Enum)


def _enum(cls: type[E], raw: str) -> E:
    """Decode by name, falling back to value ("SLOW" and "slow" both work)."""
    try:
        return cls[raw.upper()]
    except KeyError:
        return cls(raw)


def _date(raw: str | None) -> date | None:
    return date.fromisoformat(raw) if raw else None


def _iso(value: date | None) -> str | None:
    return value.isoformat() if value is not None else None


def _days(days: Iterable[Weekday]) -> list[str]:
    return [d.name for d in sorted(days)]


# ---------------------------------------------------------------------------
# Activities
# ---------------------------------------------------------------------------


def activity_from_record(record: dict[str, Any]) -> Activity:
    """Build an Activity from a provider record.

    Expects ``id``, ``distance`` (meters), ``start_date_local`` (ISO
    timestamp, offset ignored) and optionally ``moving_time`` (seconds).
    """
    raw_start = str(record["start_date_local"]).replace("Z", "+00:00")
    start = datetime.fromisoformat(raw_start).replace(tzinfo=None)
    return Activity(
        id=int(record["id"]),
        distance=float(record["distance"]),
        start=start,
        moving_time=int(record.get("moving_time") or 0),
    )


def activity_to_record(activity: Activity) -> dict[str, Any]:
    return {
        "id": activity.id,
        "distance": activity.distance,
        "start_date_local": activity.start.isoformat(),
        "moving_time": activity.moving_time,
    }


def activities_from_records(records: Iterable[dict[str, Any]]) -> list[Activity]:
    return [activity_from_record(r) for r in records]


# ---------------------------------------------------------------------------
# Analysis cache
# ---------------------------------------------------------------------------


def _risk_to_dict(risk: CombinedRisk) -> dict[str, Any]:
    return {"title": risk.title, "message": risk.message, "severity": risk.severity.name}


def _risk_from_dict(data: dict[str, Any]) -> CombinedRisk:
    return CombinedRisk(
        title=data["title"],
        message=data["message"],
        severity=_enum(Severity, data["severity"]),
    )


def cache_to_dict(cache: AnalysisCache) -> dict[str, Any]:
    return {
        "cache_date": cache.cache_date.isoformat(),
        "activities_hash": cache.activities_hash,
        "series": {
            "start_date": cache.series.start_date.isoformat(),
            "raw": list(cache.series.raw),
            "capped": list(cache.series.capped),
            "longest": list(cache.series.longest),
        },
        "acute": list(cache.acute),
        "chronic": list(cache.chronic),
        "capped_acute": list(cache.capped_acute),
        "smoothed_longest_run": list(cache.smoothed_longest_run),
        "acwr_by_date": {
            day.isoformat(): {
                "ratio": assessment.ratio,
                "tier": assessment.tier.name,
                "message": assessment.message,
            }
            for day, assessment in sorted(cache.acwr_by_date.items())
        },
        "combined_risk_by_activity": {
            str(activity_id): _risk_to_dict(risk)
            for activity_id, risk in sorted(cache.combined_risk_by_activity.items())
        },
    }


def cache_from_dict(data: dict[str, Any]) -> AnalysisCache:
    series = data["series"]
    acwr_by_date = {}
    for raw_day, item in data.get("acwr_by_date", {}).items():
        day = date.fromisoformat(raw_day)
        acwr_by_date[day] = AcuteChronicAssessment(
            date=day,
            ratio=float(item["ratio"]),
            tier=_enum(AcwrRiskTier, item["tier"]),
            message=item.get("message", ""),
        )
    return AnalysisCache(
        cache_date=date.fromisoformat(data["cache_date"]),
        activities_hash=data["activities_hash"],
        series=DailyLoadSeries(
            start_date=date.fromisoformat(series["start_date"]),
            raw=tuple(float(v) for v in series["raw"]),
            capped=tuple(float(v) for v in series["capped"]),
            longest=tuple(float(v) for v in series["longest"]),
        ),
        acute=tuple(float(v) for v in data["acute"]),
        chronic=tuple(float(v) for v in data["chronic"]),
        capped_acute=tuple(float(v) for v in data["capped_acute"]),
        smoothed_longest_run=tuple(float(v) for v in data["smoothed_longest_run"]),
        acwr_by_date=acwr_by_date,
        combined_risk_by_activity={
            int(k): _risk_from_dict(v)
            for k, v in data.get("combined_risk_by_activity", {}).items()
        },
    )


# ---------------------------------------------------------------------------
# Risk override and preferences
# ---------------------------------------------------------------------------


def override_to_dict(override: RiskOverride) -> dict[str, Any]:
    return {
        "phase": override.phase.name,
        "start_date": _iso(override.start_date),
        "acwr_multiplier": override.acwr_multiplier,
        "long_run_multiplier": override.long_run_multiplier,
        "evaluated_on": _iso(override.evaluated_on),
    }


def override_from_dict(data: dict[str, Any] | None) -> RiskOverride:
    if not data:
        return RiskOverride.none()
    return RiskOverride(
        phase=_enum(RiskPhase, data["phase"]),
        start_date=_date(data.get("start_date")),
        acwr_multiplier=float(data["acwr_multiplier"]),
        long_run_multiplier=float(data["long_run_multiplier"]),
        evaluated_on=_date(data.get("evaluated_on")),
    )


def preferences_to_dict(preferences: UserPreferences) -> dict[str, Any]:
    return {
        "max_runs_per_week": preferences.max_runs_per_week,
        "preferred_long_run_days": _days(preferences.preferred_long_run_days),
        "forbidden_run_days": _days(preferences.forbidden_run_days),
        "progression_rate": preferences.progression_rate.name,
    }


def preferences_from_dict(data: dict[str, Any]) -> UserPreferences:
    defaults = UserPreferences()
    return UserPreferences(
        max_runs_per_week=int(data.get("max_runs_per_week", defaults.max_runs_per_week)),
        preferred_long_run_days=frozenset(
            _enum(Weekday, d) for d in data.get("preferred_long_run_days", ())
        ),
        forbidden_run_days=frozenset(
            _enum(Weekday, d) for d in data.get("forbidden_run_days", ())
        ),
        progression_rate=_enum(
            ProgressionRate, data.get("progression_rate", defaults.progression_rate.name)
        ),
    )


# ---------------------------------------------------------------------------
# Weekly plan
# ---------------------------------------------------------------------------


def plan_to_dict(plan: WeeklyTrainingPlan) -> dict[str, Any]:
    return {
        "start_date": plan.start_date.isoformat(),
        "days": [
            {
                "date": d.date.isoformat(),
                "weekday": d.weekday.name,
                "run_type": d.run_type.name,
                "planned_distance": d.planned_distance,
                "is_rest_week": d.is_rest_week,
            }
            for d in plan.days
        ],
        "risk_phase": plan.risk_phase.name,
        "progression_rate": plan.progression_rate.name,
        "structure": {day.name: run_type.name for day, run_type in sorted(plan.structure.items())},
        "preferences": preferences_to_dict(plan.preferences) if plan.preferences else None,
        "historical_activities_hash": plan.historical_activities_hash,
    }


def plan_from_dict(data: dict[str, Any]) -> WeeklyTrainingPlan:
    days = tuple(
        DailyPlan(
            date=date.fromisoformat(d["date"]),
            weekday=_enum(Weekday, d["weekday"]),
            run_type=_enum(RunType, d["run_type"]),
            planned_distance=float(d["planned_distance"]),
            is_rest_week=bool(d.get("is_rest_week", False)),
        )
        for d in data["days"]
    )
    preferences = data.get("preferences")
    return WeeklyTrainingPlan(
        start_date=date.fromisoformat(data["start_date"]),
        days=days,
        risk_phase=_enum(RiskPhase, data["risk_phase"]),
        progression_rate=_enum(ProgressionRate, data["progression_rate"]),
        structure={
            _enum(Weekday, k): _enum(RunType, v) for k, v in data.get("structure", {}).items()
        },
        preferences=preferences_from_dict(preferences) if preferences else None,
        historical_activities_hash=data.get("historical_activities_hash", ""),
    )


# ---------------------------------------------------------------------------
# String helpers
# ---------------------------------------------------------------------------


def dumps(data: dict[str, Any] | list[Any]) -> str:
    return json.dumps(data, indent=2)


def loads(text: str) -> Any:
    return json.loads(text)
