"""Custom exception hierarchy for the overload engine.

Normal edge cases (empty history, all-rest weeks) never raise; these are
reserved for contract violations and for superseded computations.
"""

from __future__ import annotations

from datetime import date


class OverloadEngineError(Exception):
    """Base exception for all overload_engine errors."""


class InvalidPreferencesError(OverloadEngineError):
    """Preferences cannot produce a plan (e.g. fewer free days than runs)."""

    def __init__(self, message: str, reasons: tuple[str, ...] = ()) -> None:
        super().__init__(message)
        self.reasons = reasons


class InvalidDateRangeError(OverloadEngineError):
    """A date argument falls outside the range a computation can serve."""


class OutOfOrderUpdateError(OverloadEngineError):
    """The override state machine was fed an assessment older than its state."""

    def __init__(self, observed: date, last_evaluated: date) -> None:
        super().__init__(
            f"Assessment for {observed.isoformat()} arrived after "
            f"{last_evaluated.isoformat()} was already applied"
        )
        self.observed = observed
        self.last_evaluated = last_evaluated


class ComputationCancelled(OverloadEngineError):
    """A recompute was superseded by fresher input and must not commit."""
