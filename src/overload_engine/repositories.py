"""Repositories — owners of the persisted cache, risk override and plan.

Each repository reads its single-slot store, decides whether anything
needs recomputing and routes the recompute through a RecomputeCoordinator
so concurrent refreshes for the same owner never race.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from abc import ABC, abstractmethod
from datetime import date, timedelta
from typing import Generic, Iterable, TypeVar

from overload_engine.analysis.cache_manager import AnalysisCacheManager
from overload_engine.analysis.historical_pattern import detect_pattern, recent_history
from overload_engine.coordination import CancellationToken, RecomputeCoordinator
from overload_engine.exceptions import OutOfOrderUpdateError
from overload_engine.models.activity import Activity, activities_hash
from overload_engine.models.analysis import AnalysisCache
from overload_engine.models.enums import OVERRIDE_REPLAY_DAYS, AnalysisMode
from overload_engine.models.plan import PlanInput, UserPreferences, WeeklyTrainingPlan
from overload_engine.models.risk_override import RiskOverride
from overload_engine.planning.generator import WeeklyPlanGenerator
from overload_engine.planning.override_state_machine import advance_for_analysis, apply_override
from overload_engine.planning.preferences import validate_preferences

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SingleSlotStore(ABC, Generic[T]):
    """Persistence for exactly one value (or nothing)."""

    @abstractmethod
    def load(self) -> T | None:
        ...

    @abstractmethod
    def save(self, value: T | None) -> None:
        ...


class InMemoryStore(SingleSlotStore[T]):
    def __init__(self, value: T | None = None) -> None:
        self._value = value
        self._lock = threading.Lock()

    def load(self) -> T | None:
        with self._lock:
            return self._value

    def save(self, value: T | None) -> None:
        with self._lock:
            self._value = value


class AnalysisRepository:
    """Keeps the stored AnalysisCache fresh for the current activity set."""

    def __init__(
        self,
        store: SingleSlotStore[AnalysisCache],
        cache_manager: AnalysisCacheManager | None = None,
        coordinator: RecomputeCoordinator | None = None,
        owner: str = "analysis",
    ) -> None:
        self.store = store
        self.cache_manager = cache_manager or AnalysisCacheManager()
        self.coordinator = coordinator or RecomputeCoordinator()
        self.owner = owner

    def current(self, activities: Iterable[Activity], today: date) -> AnalysisCache:
        """Stored cache if still valid, otherwise a recomputed and saved one."""
        activities = list(activities)
        cached = self.store.load()
        if not self.cache_manager.is_stale(cached, activities, today):
            return cached

        logger.info("Analysis cache stale for %s; recomputing", today)

        def compute(token: CancellationToken) -> AnalysisCache:
            return self.cache_manager.update(
                cached,
                activities,
                self.cache_manager.default_overlap(today),
                mode=AnalysisMode.PERSISTENT,
                today=today,
                cancel_token=token,
            )

        return self.coordinator.run(
            owner=self.owner,
            input_token=(activities_hash(activities), today),
            compute=compute,
            commit=self.store.save,
        )


class PlanRepository:
    """Advances the risk override and regenerates the weekly plan when needed.

    Usage:
        plans = PlanRepository(InMemoryStore(), InMemoryStore(), AnalysisRepository(InMemoryStore()))
        plan = plans.refresh(activities, preferences, today)
    """

    def __init__(
        self,
        plan_store: SingleSlotStore[WeeklyTrainingPlan],
        override_store: SingleSlotStore[RiskOverride],
        analysis_repository: AnalysisRepository,
        generator: WeeklyPlanGenerator | None = None,
        coordinator: RecomputeCoordinator | None = None,
        owner: str = "plan",
    ) -> None:
        self.plan_store = plan_store
        self.override_store = override_store
        self.analysis_repository = analysis_repository
        self.generator = generator or WeeklyPlanGenerator(analysis_repository.cache_manager)
        self.coordinator = coordinator or RecomputeCoordinator()
        self.owner = owner

    @staticmethod
    def needs_regeneration(
        plan: WeeklyTrainingPlan | None,
        preferences: UserPreferences,
        history_hash: str,
        today: date,
    ) -> bool:
        return (
            plan is None
            or plan.start_date != today
            or plan.preferences != preferences
            or plan.historical_activities_hash != history_hash
        )

    def refresh(
        self,
        activities: Iterable[Activity],
        preferences: UserPreferences,
        today: date,
    ) -> WeeklyTrainingPlan:
        """Current plan for ``today``, regenerated and saved if out of date.

        Raises:
            InvalidPreferencesError: Before any computation, for unusable preferences.
            OutOfOrderUpdateError: If the stored override is newer than yesterday.
        """
        validate_preferences(preferences)
        activities = list(activities)
        cache = self.analysis_repository.current(activities, today)

        def compute(token: CancellationToken) -> tuple[RiskOverride, WeeklyTrainingPlan]:
            return self._compute(activities, preferences, cache, today, token)

        def commit(result: tuple[RiskOverride, WeeklyTrainingPlan]) -> None:
            override, plan = result
            self.override_store.save(override)
            self.plan_store.save(plan)

        _, plan = self.coordinator.run(
            owner=self.owner,
            input_token=(cache.activities_hash, preferences, today),
            compute=compute,
            commit=commit,
        )
        return plan

    def advance_override(self, cache: AnalysisCache, today: date) -> RiskOverride:
        """Feed every not-yet-seen day up to yesterday into the override, oldest first."""
        override = self.override_store.load() or RiskOverride.none()
        yesterday = today - timedelta(days=1)
        if override.evaluated_on is None:
            first = yesterday
        elif override.evaluated_on == yesterday:
            return override
        elif override.evaluated_on > yesterday:
            raise OutOfOrderUpdateError(yesterday, override.evaluated_on)
        else:
            first = max(
                yesterday - timedelta(days=OVERRIDE_REPLAY_DAYS - 1),
                override.evaluated_on + timedelta(days=1),
            )

        manager = self.analysis_repository.cache_manager
        day = first
        while day <= yesterday:
            override = advance_for_analysis(override, manager.derive_for_date(cache, day))
            day += timedelta(days=1)
        return override

    def _compute(
        self,
        activities: list[Activity],
        preferences: UserPreferences,
        cache: AnalysisCache,
        today: date,
        token: CancellationToken,
    ) -> tuple[RiskOverride, WeeklyTrainingPlan]:
        override = self.advance_override(cache, today)
        token.raise_if_cancelled()

        stored = self.plan_store.load()
        history_hash = activities_hash(activities)
        if not self.needs_regeneration(stored, preferences, history_hash, today):
            logger.debug("Stored plan for %s is current", today)
            return override, stored

        # Yesterday's analysis: today's ACWR dips until today's run is recorded.
        analysis = self.analysis_repository.cache_manager.derive_for_date(
            cache, today - timedelta(days=1)
        )
        recent, rate = apply_override(override, analysis, preferences.progression_rate)
        plan_input = PlanInput(
            preferences=dataclasses.replace(preferences, progression_rate=rate),
            historical_pattern=detect_pattern(recent_history(activities, today)),
            recent_data=recent,
            risk_override=override,
            previous_plan=stored,
        )
        plan = self.generator.generate(plan_input, activities, cache, today, cancel_token=token)
        logger.info(
            "Generated plan for %s: %.0f m over %d run days (%s)",
            today,
            plan.total_distance,
            len(plan.run_days),
            plan.risk_phase.value,
        )
        # The plan remembers the requested preferences, not the override-adjusted ones.
        return override, dataclasses.replace(plan, preferences=preferences)
