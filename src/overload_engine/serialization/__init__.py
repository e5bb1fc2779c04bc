"""Serialization module — JSON round-trip of caches, overrides, preferences and plans."""

from overload_engine.serialization.json_codec import (
    activities_from_records,
    activity_from_record,
    activity_to_record,
    cache_from_dict,
    cache_to_dict,
    dumps,
    loads,
    override_from_dict,
    override_to_dict,
    plan_from_dict,
    plan_to_dict,
    preferences_from_dict,
    preferences_to_dict,
)

__all__ = [
    "activities_from_records",
    "activity_from_record",
    "activity_to_record",
    "cache_from_dict",
    "cache_to_dict",
    "dumps",
    "loads",
    "override_from_dict",
    "override_to_dict",
    "plan_from_dict",
    "plan_to_dict",
    "preferences_from_dict",
    "preferences_to_dict",
]
