"""File-backed activity store keeping the whole log in one JSON document."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import List

from .errors import StorageFailure
from .models import Activity
from .store import InMemoryActivityStore, StorageKind, order_key

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1


class JsonFileActivityStore(InMemoryActivityStore):
    """Loads the log on open and rewrites it when a write or transaction commits."""

    kind = StorageKind.FILE

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        super().__init__(self._load())

    def _load(self) -> List[Activity]:
        if not self.path.exists():
            return []
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
            activities = [Activity.from_dict(item) for item in payload.get("activities", [])]
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as exc:
            raise StorageFailure(f"Could not read activity log {self.path}: {exc}") from exc
        logger.debug("Loaded %d activities from %s", len(activities), self.path)
        return activities

    def _commit(self) -> None:
        payload = {
            "version": FORMAT_VERSION,
            "activities": [
                activity.to_dict()
                for activity in sorted(self._records.values(), key=order_key)
            ],
        }
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            os.replace(tmp_path, self.path)
        except OSError as exc:
            raise StorageFailure(f"Could not write activity log {self.path}: {exc}") from exc
        logger.debug("Flushed %d activities to %s", len(self._records), self.path)
