"""Preference validation boundary. The generator assumes validated input."""

from __future__ import annotations

from overload_engine.exceptions import InvalidPreferencesError
from overload_engine.models.plan import UserPreferences


def preference_problems(preferences: UserPreferences) -> tuple[str, ...]:
    """Human-readable reasons the preferences cannot produce a plan."""
    problems: list[str] = []
    available = preferences.available_days
    if preferences.max_runs_per_week < 0:
        problems.append("Runs per week cannot be negative.")
    if len(available) < preferences.max_runs_per_week:
        problems.append(
            f"{preferences.max_runs_per_week} runs per week requested but only "
            f"{len(available)} days are available."
        )
    preferred = preferences.preferred_long_run_days
    if preferred and not (preferred & available):
        problems.append("Every preferred long-run day is also a forbidden day.")
    return tuple(problems)


def is_plan_valid(preferences: UserPreferences) -> bool:
    return not preference_problems(preferences)


def validate_preferences(preferences: UserPreferences) -> UserPreferences:
    """Return ``preferences`` unchanged if usable.

    Raises:
        InvalidPreferencesError: With every problem found in ``reasons``.
    """
    problems = preference_problems(preferences)
    if problems:
        raise InvalidPreferencesError("Invalid training preferences: " + " ".join(problems), problems)
    return preferences
