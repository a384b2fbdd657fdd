"""Activity store contract, the in-memory backend and the backend factory."""

from __future__ import annotations

import abc
import logging
from contextlib import contextmanager
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Tuple, Union

from .errors import ConfigError, NotFound, StorageFailure
from .models import Activity, ActivityUpdate

logger = logging.getLogger(__name__)


class StorageKind(str, Enum):
    MEMORY = "memory"
    FILE = "file"
    SQLITE = "sqlite"


def order_key(activity: Activity) -> Tuple[datetime, str]:
    return activity.begin, activity.id


class ActivityStore(abc.ABC):
    """Persistence contract consumed by the lifecycle and review engines.

    Every returned :class:`Activity` is a copy; callers change records only
    through :meth:`update`.
    """

    kind: StorageKind

    @abc.abstractmethod
    def insert(self, activity: Activity) -> str:
        ...

    @abc.abstractmethod
    def get(self, activity_id: str) -> Activity:
        """Return the activity or raise :class:`NotFound`."""

    @abc.abstractmethod
    def update(self, activity_id: str, mutation: ActivityUpdate) -> Activity:
        """Apply the fields set on ``mutation`` and return the stored result."""

    @abc.abstractmethod
    def find_active_work(self) -> Optional[Activity]:
        ...

    @abc.abstractmethod
    def find_open_intermission(self, parent_id: str) -> Optional[Activity]:
        ...

    @abc.abstractmethod
    def list_held_work(self) -> List[Activity]:
        """Held work entries, most recently begun first."""

    @abc.abstractmethod
    def list_intermissions(self, parent_id: str) -> List[Activity]:
        """Intermissions of ``parent_id`` ordered by begin."""

    @abc.abstractmethod
    def scan_range(self, start: datetime, end: datetime) -> Iterator[Activity]:
        """Yield entries whose begin falls in ``[start, end)``, ordered by begin."""

    @abc.abstractmethod
    def transaction(self):
        """Context manager grouping the writes of one engine operation."""

    def close(self) -> None:
        pass

    def find_held_work(self, activity_id: Optional[str] = None) -> Optional[Activity]:
        """Return the held work entry ``activity_id``, or the most recent one."""
        if activity_id is not None:
            try:
                activity = self.get(activity_id)
            except NotFound:
                return None
            return activity if activity.is_work and activity.is_held else None
        held = self.list_held_work()
        return held[0] if held else None

    def list_open_intermissions(self) -> List[Activity]:
        open_intermissions = []
        for parent in self.list_held_work():
            intermission = self.find_open_intermission(parent.id)
            if intermission is not None:
                open_intermissions.append(intermission)
        return open_intermissions

    def __enter__(self) -> "ActivityStore":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class InMemoryActivityStore(ActivityStore):
    """Keeps activities in a dict; transactions restore a snapshot on failure."""

    kind = StorageKind.MEMORY

    def __init__(self, activities: Optional[Iterable[Activity]] = None) -> None:
        self._records: Dict[str, Activity] = {}
        self._depth = 0
        for activity in activities or ():
            self._records[activity.id] = activity.copy()

    def insert(self, activity: Activity) -> str:
        if activity.id in self._records:
            raise StorageFailure(f"Activity id {activity.id} is already in use")
        self._records[activity.id] = activity.copy()
        self._written()
        return activity.id

    def get(self, activity_id: str) -> Activity:
        try:
            return self._records[activity_id].copy()
        except KeyError:
            raise NotFound(activity_id) from None

    def update(self, activity_id: str, mutation: ActivityUpdate) -> Activity:
        current = self._records.get(activity_id)
        if current is None:
            raise NotFound(activity_id)
        updated = mutation.apply(current)
        self._records[activity_id] = updated
        self._written()
        return updated.copy()

    def find_active_work(self) -> Optional[Activity]:
        matches = [a for a in self._records.values() if a.is_work and a.is_active]
        return max(matches, key=order_key).copy() if matches else None

    def find_open_intermission(self, parent_id: str) -> Optional[Activity]:
        matches = [
            a
            for a in self._records.values()
            if a.is_intermission and a.parent == parent_id and a.is_active
        ]
        return max(matches, key=order_key).copy() if matches else None

    def list_held_work(self) -> List[Activity]:
        held = [a for a in self._records.values() if a.is_work and a.is_held]
        return [a.copy() for a in sorted(held, key=order_key, reverse=True)]

    def list_intermissions(self, parent_id: str) -> List[Activity]:
        children = [
            a for a in self._records.values() if a.is_intermission and a.parent == parent_id
        ]
        return [a.copy() for a in sorted(children, key=order_key)]

    def scan_range(self, start: datetime, end: datetime) -> Iterator[Activity]:
        selected = sorted(
            (a for a in self._records.values() if start <= a.begin < end), key=order_key
        )
        for activity in selected:
            yield activity.copy()

    def all_activities(self) -> List[Activity]:
        return [a.copy() for a in sorted(self._records.values(), key=order_key)]

    @contextmanager
    def transaction(self) -> Iterator[None]:
        if self._depth:
            self._depth += 1
            try:
                yield
            finally:
                self._depth -= 1
            return

        snapshot = {key: value.copy() for key, value in self._records.items()}
        self._depth = 1
        try:
            yield
            self._depth = 0
            self._commit()
        except BaseException:
            self._records = snapshot
            raise
        finally:
            self._depth = 0

    def _written(self) -> None:
        if not self._depth:
            self._commit()

    def _commit(self) -> None:
        """Hook for subclasses that persist the record map."""


def open_store(
    kind: Union[StorageKind, str] = StorageKind.MEMORY,
    path: Optional[Path] = None,
) -> ActivityStore:
    """Instantiate the backend selected in configuration."""
    try:
        storage_kind = StorageKind(kind)
    except ValueError as exc:
        raise ConfigError(f"Unknown storage kind: {kind!r}") from exc

    if storage_kind is StorageKind.MEMORY:
        return InMemoryActivityStore()
    if path is None:
        raise ConfigError(f"Storage kind {storage_kind.value!r} requires a path")

    logger.debug("Opening %s activity store at %s", storage_kind.value, path)
    if storage_kind is StorageKind.FILE:
        from .filestore import JsonFileActivityStore

        return JsonFileActivityStore(path)

    from .db import SqliteActivityStore

    return SqliteActivityStore(path)
