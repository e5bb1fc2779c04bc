"""JSON-file single-slot stores for the scheduler's persisted state."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Callable, TypeVar

from overload_engine.repositories import SingleSlotStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class JsonFileStore(SingleSlotStore[T]):
    """One value per file. A missing file loads as None; saving None deletes it."""

    def __init__(
        self,
        path: Path,
        to_dict: Callable[[T], dict[str, Any]],
        from_dict: Callable[[dict[str, Any]], T],
    ) -> None:
        self.path = path
        self._to_dict = to_dict
        self._from_dict = from_dict

    def load(self) -> T | None:
        try:
            with open(self.path) as f:
                data = json.load(f)
        except FileNotFoundError:
            return None
        return self._from_dict(data)

    def save(self, value: T | None) -> None:
        if value is None:
            self.path.unlink(missing_ok=True)
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp, "w") as f:
            json.dump(self._to_dict(value), f, indent=2)
        os.replace(tmp, self.path)
        logger.debug("Saved %s", self.path)
