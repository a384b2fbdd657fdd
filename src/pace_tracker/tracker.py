"""Activity lifecycle engine: begin, hold, resume, end and adjust activities."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional, Union

from .config import GeneralConfig
from .errors import (
    AlreadyActive,
    AlreadyHeld,
    AmbiguousTarget,
    CannotAdjustEnded,
    EndBeforeBegin,
    NoActiveActivity,
    NotHeld,
    ValidationFailure,
)
from .locking import ReadWriteLock
from .models import Activity, ActivityKind, ActivityStatus, ActivityUpdate, new_activity_id
from .normalization import normalize_category, normalize_tags, normalize_text
from .review import ReviewEngine
from .store import ActivityStore
from .timing import (
    Clock,
    SystemClock,
    TimeZoneSelection,
    assert_not_future,
    assert_ordered,
    duration_between,
    live_duration,
    resolve_instant,
)

logger = logging.getLogger(__name__)

TimeInput = Union[None, str, datetime]


@dataclass(slots=True)
class CurrentActivity:
    """The active work entry and how long it has been running."""

    activity: Activity
    live_duration: int


class ActivityTracker:
    """State machine over an :class:`ActivityStore`.

    Mutations run under the exclusive side of the lock and inside one store
    transaction, so readers never observe a half-applied transition and a
    failed operation leaves the store untouched.
    """

    def __init__(
        self,
        store: ActivityStore,
        *,
        clock: Optional[Clock] = None,
        selection: Optional[TimeZoneSelection] = None,
        settings: Optional[GeneralConfig] = None,
        lock: Optional[ReadWriteLock] = None,
    ) -> None:
        self.store = store
        self.clock = clock or SystemClock()
        self.settings = settings or GeneralConfig()
        self.selection = selection or self.settings.time_zone_selection()
        self.lock = lock or ReadWriteLock()

    def begin(
        self,
        description: str,
        category: Optional[str] = None,
        tags: Optional[Iterable[str]] = None,
        at: TimeInput = None,
    ) -> str:
        """Start a new work entry and return its id."""
        with self.lock.write(), self.store.transaction():
            active = self.store.find_active_work()
            if active is not None:
                raise AlreadyActive(
                    f"Activity {active.id} ({active.description!r}) is already active; "
                    "end or hold it first."
                )
            now = self._now()
            begin_at = self._resolve(at, now)
            text = normalize_text(description)
            if not text:
                raise ValidationFailure("A description is required to begin an activity.")
            activity = Activity(
                id=new_activity_id(),
                kind=ActivityKind.WORK,
                category=self._category(category),
                description=text,
                tags=normalize_tags(tags),
                begin=begin_at,
            )
            self.store.insert(activity)
        logger.info("Began %s %r at %s", activity.id, activity.description, begin_at.isoformat())
        return activity.id

    def end(self, at: TimeInput = None, activity_id: Optional[str] = None) -> Activity:
        """End the active (or most recently held) work entry.

        A held entry has its open intermission closed at the same instant.
        """
        with self.lock.write(), self.store.transaction():
            target = self._end_target(activity_id)
            now = self._now()
            end_at = self._resolve(at, now)
            assert_ordered(target.begin, end_at)

            children = self.store.list_intermissions(target.id)
            for child in children:
                if child.is_active:
                    self._close(child, end_at)
                    logger.info("Closed intermission %s of %s", child.id, target.id)
                elif child.end is not None and end_at < child.end:
                    raise EndBeforeBegin(
                        f"End time {end_at.isoformat()} is before intermission {child.id} "
                        f"ended ({child.end.isoformat()})"
                    )
            ended = self._close(target, end_at)
        logger.info("Ended %s after %ss", ended.id, ended.duration)
        return ended

    def hold(
        self,
        reason: Optional[str] = None,
        at: TimeInput = None,
        activity_id: Optional[str] = None,
    ) -> str:
        """Pause the active work entry and return the new intermission id."""
        with self.lock.write(), self.store.transaction():
            target = self._hold_target(activity_id)
            now = self._now()
            hold_at = self._resolve(at, now)
            assert_ordered(target.begin, hold_at)
            for child in self.store.list_intermissions(target.id):
                if child.end is not None and hold_at < child.end:
                    raise EndBeforeBegin(
                        f"Hold time {hold_at.isoformat()} overlaps intermission {child.id}"
                    )

            # Only one intermission may be open; another held entry's break ends here.
            for other in self.store.list_open_intermissions():
                if hold_at < other.begin:
                    raise EndBeforeBegin(
                        f"Hold time {hold_at.isoformat()} is before intermission {other.id} "
                        f"of {other.parent} began ({other.begin.isoformat()})"
                    )
                self._close(other, hold_at)
                logger.info("Closed intermission %s of %s", other.id, other.parent)

            intermission = Activity(
                id=new_activity_id(),
                kind=ActivityKind.INTERMISSION,
                category=target.category,
                description=normalize_text(reason) or target.description,
                begin=hold_at,
                parent=target.id,
            )
            self.store.insert(intermission)
            self.store.update(target.id, ActivityUpdate(status=ActivityStatus.HELD))
        logger.info("Held %s at %s (%s)", target.id, hold_at.isoformat(), intermission.description)
        return intermission.id

    def resume(self, at: TimeInput = None, activity_id: Optional[str] = None) -> Activity:
        """Close the open intermission of a held entry and make it active again."""
        with self.lock.write(), self.store.transaction():
            target = self._resume_target(activity_id)
            active = self.store.find_active_work()
            if active is not None:
                raise AlreadyActive(
                    f"Activity {active.id} is active; end or hold it before resuming {target.id}."
                )
            now = self._now()
            resume_at = self._resolve(at, now)

            children = self.store.list_intermissions(target.id)
            open_children = [child for child in children if child.is_active]
            if len(open_children) > 1:
                raise AmbiguousTarget(
                    f"Activity {target.id} has several open intermissions.",
                    [child.id for child in open_children],
                )
            if open_children:
                self._close(open_children[0], resume_at)
            else:
                last_end = max((child.end for child in children if child.end), default=None)
                if last_end is not None and resume_at < last_end:
                    raise EndBeforeBegin(
                        f"Resume time {resume_at.isoformat()} is before the last "
                        f"intermission ended ({last_end.isoformat()})"
                    )
            resumed = self.store.update(target.id, ActivityUpdate(status=ActivityStatus.ACTIVE))
        logger.info("Resumed %s at %s", resumed.id, resume_at.isoformat())
        return resumed

    def adjust(
        self,
        activity_id: str,
        *,
        category: Optional[str] = None,
        description: Optional[str] = None,
        begin: TimeInput = None,
        tags: Optional[Iterable[str]] = None,
        override_tags: bool = False,
    ) -> Activity:
        """Change the supplied fields of an entry that has not ended.

        New tags are merged into the existing ones unless ``override_tags``
        is set, in which case they replace them.
        """
        with self.lock.write(), self.store.transaction():
            target = self.store.get(activity_id)
            if target.is_ended:
                raise CannotAdjustEnded(f"Activity {activity_id} has ended and cannot be adjusted.")

            changes: dict = {}
            if category is not None:
                changes["category"] = self._category(category)
            if description is not None:
                text = normalize_text(description)
                if not text:
                    if target.is_work or target.parent is None:
                        raise ValidationFailure("The description of an activity must not be empty.")
                    text = self.store.get(target.parent).description
                changes["description"] = text
            if tags is not None:
                new_tags = normalize_tags(tags)
                if not override_tags:
                    new_tags = tuple(sorted(set(target.tags) | set(new_tags)))
                changes["tags"] = new_tags
            if begin is not None:
                changes["begin"] = self._adjusted_begin(target, begin)

            if not changes:
                return target
            adjusted = self.store.update(activity_id, ActivityUpdate(**changes))
        logger.info("Adjusted %s: %s", activity_id, ", ".join(sorted(changes)))
        return adjusted

    def now(self) -> Optional[CurrentActivity]:
        with self.lock.read():
            active = self.store.find_active_work()
            if active is None:
                return None
            return CurrentActivity(active, live_duration(active.begin, self._now()))

    def held(self) -> List[Activity]:
        """Held work entries, most recent first."""
        with self.lock.read():
            return self.store.list_held_work()

    def intermissions(self, activity_id: str) -> List[Activity]:
        with self.lock.read():
            return self.store.list_intermissions(activity_id)

    def get(self, activity_id: str) -> Activity:
        with self.lock.read():
            return self.store.get(activity_id)

    def reviewer(self) -> ReviewEngine:
        """A review engine sharing this tracker's store, clock and lock."""
        return ReviewEngine(
            self.store,
            clock=self.clock,
            separator=self.settings.category_separator,
            lock=self.lock,
        )

    def _now(self) -> datetime:
        return self.clock.now(self.selection.zone())

    def _resolve(self, at: TimeInput, now: datetime) -> datetime:
        if at is None:
            return now
        return assert_not_future(resolve_instant(at, self.selection, self.clock), now)

    def _category(self, category: Optional[str]) -> str:
        if category is None:
            return self.settings.default_category
        normalized = normalize_category(category, self.settings.category_separator)
        if not normalized:
            raise ValidationFailure("The category of an activity must not be empty.")
        return normalized

    def _close(self, activity: Activity, at: datetime) -> Activity:
        return self.store.update(
            activity.id,
            ActivityUpdate(
                end=at,
                duration=duration_between(activity.begin, at),
                status=ActivityStatus.ENDED,
            ),
        )

    def _end_target(self, activity_id: Optional[str]) -> Activity:
        if activity_id is not None:
            target = self.store.get(activity_id)
            if target.is_intermission:
                raise ValidationFailure(
                    f"{activity_id} is an intermission; resume or end its parent instead."
                )
            if target.is_ended:
                raise NoActiveActivity(f"Activity {activity_id} has already ended.")
            return target
        target = self.store.find_active_work() or self.store.find_held_work()
        if target is None:
            raise NoActiveActivity("There is no active or held activity to end.")
        return target

    def _hold_target(self, activity_id: Optional[str]) -> Activity:
        if activity_id is None:
            target = self.store.find_active_work()
            if target is None:
                if self.store.list_held_work():
                    raise AlreadyHeld("No activity is active; the most recent one is already held.")
                raise NoActiveActivity("There is no active activity to hold.")
            return target
        target = self.store.get(activity_id)
        if target.is_intermission:
            raise ValidationFailure(f"{activity_id} is an intermission and cannot be held.")
        if target.is_held:
            raise AlreadyHeld(f"Activity {activity_id} is already held.")
        if not target.is_active:
            raise NoActiveActivity(f"Activity {activity_id} is not active.")
        return target

    def _resume_target(self, activity_id: Optional[str]) -> Activity:
        if activity_id is not None:
            target = self.store.find_held_work(activity_id)
            if target is None:
                # Raises NotFound for unknown ids.
                self.store.get(activity_id)
                raise NotHeld(f"Activity {activity_id} is not held.")
            return target
        held = self.store.list_held_work()
        if not held:
            raise NotHeld("There is no held activity to resume.")
        if len(held) > 1:
            raise AmbiguousTarget(
                "Several activities are held; pass the id of the one to resume.",
                [activity.id for activity in held],
            )
        return held[0]

    def _adjusted_begin(self, target: Activity, begin: Union[str, datetime]) -> datetime:
        new_begin = resolve_instant(begin, self.selection, self.clock)
        assert_not_future(new_begin, self._now())
        if target.is_work:
            children = self.store.list_intermissions(target.id)
            earliest = min((child.begin for child in children), default=None)
            if earliest is not None and new_begin > earliest:
                raise EndBeforeBegin(
                    f"Begin time {new_begin.isoformat()} is after intermission begin "
                    f"{earliest.isoformat()}"
                )
        elif target.parent is not None:
            parent = self.store.get(target.parent)
            if new_begin < parent.begin:
                raise EndBeforeBegin(
                    f"Intermission cannot begin before its activity ({parent.begin.isoformat()})"
                )
        return new_begin
