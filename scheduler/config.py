"""Environment-variable-based configuration for the daily refresh scheduler."""

from __future__ import annotations

import os
from pathlib import Path

DATA_DIR: Path = Path(os.environ.get("OVERLOAD_DATA_DIR", "~/.overload_engine")).expanduser()
ACTIVITIES_PATH: Path = Path(
    os.environ.get("OVERLOAD_ACTIVITIES", str(DATA_DIR / "activities.json"))
).expanduser()
PREFERENCES_PATH: Path = Path(
    os.environ.get("OVERLOAD_PREFERENCES", str(DATA_DIR / "preferences.json"))
).expanduser()
REFRESH_HOUR: int = int(os.environ.get("SCHEDULER_HOUR", "4"))
REFRESH_MINUTE: int = int(os.environ.get("SCHEDULER_MINUTE", "0"))
OVERLAP_DAYS: int = int(os.environ.get("OVERLOAD_OVERLAP_DAYS", "40"))
