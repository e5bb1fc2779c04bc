"""Daily refresh — recomputes the risk analysis and the weekly plan.

Usage:
    python -m scheduler.nightly --once      # single run (for cron)
    python -m scheduler.nightly --daemon    # APScheduler loop
"""

from __future__ import annotations

import argparse
import json
import logging
from datetime import date
from pathlib import Path

from overload_engine.analysis.cache_manager import AnalysisCacheManager
from overload_engine.exceptions import InvalidPreferencesError, OverloadEngineError
from overload_engine.models.activity import Activity
from overload_engine.models.plan import UserPreferences, WeeklyTrainingPlan
from overload_engine.repositories import AnalysisRepository, PlanRepository
from overload_engine.serialization import (
    activities_from_records,
    cache_from_dict,
    cache_to_dict,
    override_from_dict,
    override_to_dict,
    plan_from_dict,
    plan_to_dict,
    preferences_from_dict,
)

from scheduler.config import (
    ACTIVITIES_PATH,
    DATA_DIR,
    OVERLAP_DAYS,
    PREFERENCES_PATH,
    REFRESH_HOUR,
    REFRESH_MINUTE,
)
from scheduler.file_store import JsonFileStore

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def _load_activities(path: Path) -> list[Activity]:
    """Load the activity export (a JSON list of provider records)."""
    with open(path) as f:
        return activities_from_records(json.load(f))


def _load_preferences(path: Path) -> UserPreferences:
    try:
        with open(path) as f:
            return preferences_from_dict(json.load(f))
    except FileNotFoundError:
        logger.warning("Preferences not found at %s, using defaults", path)
        return UserPreferences()


def build_repositories(data_dir: Path, overlap_days: int = OVERLAP_DAYS) -> PlanRepository:
    """Wire file-backed stores into the analysis and plan repositories."""
    analysis = AnalysisRepository(
        JsonFileStore(data_dir / "analysis_cache.json", cache_to_dict, cache_from_dict),
        cache_manager=AnalysisCacheManager(overlap_days=overlap_days),
    )
    return PlanRepository(
        plan_store=JsonFileStore(data_dir / "weekly_plan.json", plan_to_dict, plan_from_dict),
        override_store=JsonFileStore(
            data_dir / "risk_override.json", override_to_dict, override_from_dict
        ),
        analysis_repository=analysis,
    )


def refresh_job(
    today: date | None = None,
    data_dir: Path = DATA_DIR,
    activities_path: Path = ACTIVITIES_PATH,
    preferences_path: Path = PREFERENCES_PATH,
) -> WeeklyTrainingPlan | None:
    """Execute one refresh cycle: analysis cache, risk override, weekly plan."""
    today = today or date.today()
    logger.info("Starting refresh for %s", today)

    try:
        activities = _load_activities(activities_path)
    except FileNotFoundError:
        logger.error("Activity export not found at %s", activities_path)
        return None
    logger.info("Loaded %d activities", len(activities))

    preferences = _load_preferences(preferences_path)
    plans = build_repositories(data_dir)

    try:
        plan = plans.refresh(activities, preferences, today)
    except InvalidPreferencesError as exc:
        for reason in exc.reasons:
            logger.error("Invalid preferences: %s", reason)
        return None
    except OverloadEngineError as exc:
        logger.error("Refresh failed: %s", exc)
        return None

    for day in plan.days:
        logger.info(
            "%s %-9s %-8s %6.0f m",
            day.date.isoformat(),
            day.weekday.name.title(),
            day.run_type.name.lower(),
            day.planned_distance,
        )
    logger.info("Refresh complete")
    return plan


def main() -> None:
    parser = argparse.ArgumentParser(description="Overload engine daily refresh")
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--once", action="store_true", help="Run once and exit")
    group.add_argument("--daemon", action="store_true", help="Run as APScheduler daemon")
    args = parser.parse_args()

    if args.once:
        refresh_job()
    else:
        from apscheduler.schedulers.blocking import BlockingScheduler

        scheduler = BlockingScheduler()
        scheduler.add_job(
            refresh_job,
            "cron",
            hour=REFRESH_HOUR,
            minute=REFRESH_MINUTE,
            id="refresh_job",
        )
        logger.info(
            "Scheduler started, daily refresh at %02d:%02d",
            REFRESH_HOUR,
            REFRESH_MINUTE,
        )
        try:
            scheduler.start()
        except (KeyboardInterrupt, SystemExit):
            logger.info("Scheduler stopped")


if __name__ == "__main__":
    main()
