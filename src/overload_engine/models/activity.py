"""Activity record — one recorded run as delivered by the activity provider."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from typing import Iterable

from overload_engine.models.enums import MERGE_WINDOW_HOURS


@dataclass(frozen=True)
class Activity:
    """Immutable run record. Ordered by ``start``, identified by ``id``."""

    id: int
    distance: float  # meters
    start: datetime  # local start time
    moving_time: int = 0  # seconds

    # Ids of sessions folded into this one by merge_sessions()
    merged_ids: tuple[int, ...] = field(default_factory=tuple, compare=False)

    @property
    def day(self) -> date:
        return self.start.date()

    @property
    def all_ids(self) -> tuple[int, ...]:
        return (self.id,) + self.merged_ids


def sort_activities(activities: Iterable[Activity]) -> list[Activity]:
    """Sort by start time, id as a tie-breaker."""
    return sorted(activities, key=lambda a: (a.start, a.id))


def merge_sessions(activities: Iterable[Activity]) -> list[Activity]:
    """Merge sessions starting less than MERGE_WINDOW_HOURS after the previous one.

    A warm-up jog recorded separately from the main run would otherwise
    look like two short runs instead of one long one.
    """
    window = timedelta(hours=MERGE_WINDOW_HOURS)
    merged: list[Activity] = []
    for activity in sort_activities(activities):
        if merged and timedelta(0) <= activity.start - merged[-1].start < window:
            last = merged[-1]
            merged[-1] = replace(
                last,
                distance=last.distance + activity.distance,
                moving_time=last.moving_time + activity.moving_time,
                merged_ids=last.merged_ids + activity.all_ids,
            )
        else:
            merged.append(activity)
    return merged


def activities_hash(activities: Iterable[Activity]) -> str:
    """Stable SHA-256 fingerprint of an activity set (order-independent)."""
    digest = hashlib.sha256()
    for a in sorted(activities, key=lambda a: a.id):
        digest.update(
            f"{a.id}|{a.distance!r}|{a.start.isoformat()}|{a.moving_time};".encode()
        )
    return digest.hexdigest()
