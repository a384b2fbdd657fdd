"""Aggregate tracked time over a range, grouped by category and description."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from fnmatch import fnmatchcase
from typing import Any, Dict, List, Optional, Tuple

from .locking import ReadWriteLock
from .models import Activity
from .normalization import DEFAULT_SEPARATOR, split_category
from .store import ActivityStore
from .timing import Clock, SystemClock, TimeRange

logger = logging.getLogger(__name__)

GroupKey = Tuple[str, str, str]


@dataclass(slots=True)
class GroupTotals:
    total_duration: int = 0
    total_break_duration: int = 0
    total_break_count: int = 0
    sessions: int = 0

    def add(self, other: "GroupTotals") -> None:
        self.total_duration += other.total_duration
        self.total_break_duration += other.total_break_duration
        self.total_break_count += other.total_break_count
        self.sessions += other.sessions

    def as_dict(self) -> Dict[str, int]:
        return {
            "total_duration": self.total_duration,
            "total_break_duration": self.total_break_duration,
            "total_break_count": self.total_break_count,
            "sessions": self.sessions,
            "adjusted_duration": max(0, self.total_duration - self.total_break_duration),
        }


class CategoryFilter:
    """Glob match (``*``, ``?``, ``[...]``) against the full category string."""

    def __init__(self, pattern: Optional[str] = None, case_sensitive: bool = False) -> None:
        self.pattern = pattern or None
        self.case_sensitive = case_sensitive

    def matches(self, category: str) -> bool:
        if self.pattern is None:
            return True
        if self.case_sensitive:
            return fnmatchcase(category, self.pattern)
        return fnmatchcase(category.casefold(), self.pattern.casefold())


def review(
    store: ActivityStore,
    time_range: TimeRange,
    clock: Optional[Clock] = None,
    *,
    category: Optional[str] = None,
    case_sensitive: bool = False,
    separator: str = DEFAULT_SEPARATOR,
) -> Dict[str, Any]:
    """Build the grouped summary for ``time_range`` as plain nested dicts.

    Unfinished entries contribute their live duration as of ``clock.now()``.
    """
    clock = clock or SystemClock()
    now = clock.now(time_range.start.tzinfo)
    entries = list(store.scan_range(time_range.start, time_range.end))

    work = [activity for activity in entries if activity.is_work]
    active = store.find_active_work()
    if (
        active is not None
        and not time_range.contains(active.begin)
        and time_range.overlaps(active.begin, None)
    ):
        work.append(active)

    category_filter = CategoryFilter(category, case_sensitive)
    work = [activity for activity in work if category_filter.matches(activity.category)]

    groups: Dict[GroupKey, GroupTotals] = defaultdict(GroupTotals)
    owners: Dict[str, GroupKey] = {}
    for activity in work:
        top, sub = split_category(activity.category, separator)
        key = (top, sub, activity.description)
        totals = groups[key]
        totals.total_duration += activity.current_duration(now)
        totals.sessions += 1
        owners[activity.id] = key

    for intermission in _intermissions_of(entries, owners):
        totals = groups[owners[intermission.parent]]  # type: ignore[index]
        totals.total_break_duration += intermission.current_duration(now)
        totals.total_break_count += 1

    logger.debug(
        "Reviewed %d work entries in %d groups for %s", len(work), len(groups), time_range
    )
    return _build_summary(time_range, groups)


class ReviewEngine:
    """Runs reviews under the shared side of the store lock."""

    def __init__(
        self,
        store: ActivityStore,
        *,
        clock: Optional[Clock] = None,
        separator: str = DEFAULT_SEPARATOR,
        lock: Optional[ReadWriteLock] = None,
    ) -> None:
        self.store = store
        self.clock = clock or SystemClock()
        self.separator = separator
        self.lock = lock or ReadWriteLock()

    def review(
        self,
        time_range: TimeRange,
        *,
        category: Optional[str] = None,
        case_sensitive: bool = False,
    ) -> Dict[str, Any]:
        with self.lock.read():
            return review(
                self.store,
                time_range,
                self.clock,
                category=category,
                case_sensitive=case_sensitive,
                separator=self.separator,
            )


def _intermissions_of(entries: List[Activity], owners: Dict[str, GroupKey]) -> List[Activity]:
    return [
        activity
        for activity in entries
        if activity.is_intermission and activity.parent in owners
    ]


def _build_summary(time_range: TimeRange, groups: Dict[GroupKey, GroupTotals]) -> Dict[str, Any]:
    grand = GroupTotals()
    category_totals: Dict[str, GroupTotals] = defaultdict(GroupTotals)
    subcategory_totals: Dict[Tuple[str, str], GroupTotals] = defaultdict(GroupTotals)
    for (top, sub, _), totals in groups.items():
        category_totals[top].add(totals)
        subcategory_totals[(top, sub)].add(totals)
        grand.add(totals)

    categories: Dict[str, Any] = {}
    for top, sub, description in sorted(groups):
        category_entry = categories.get(top)
        if category_entry is None:
            category_entry = {**category_totals[top].as_dict(), "subcategories": {}}
            categories[top] = category_entry
        subcategories = category_entry["subcategories"]
        sub_entry = subcategories.get(sub)
        if sub_entry is None:
            sub_entry = {**subcategory_totals[(top, sub)].as_dict(), "descriptions": {}}
            subcategories[sub] = sub_entry
        sub_entry["descriptions"][description] = groups[(top, sub, description)].as_dict()

    return {
        "range": {
            "start": time_range.start.isoformat(),
            "end": time_range.end.isoformat(),
        },
        "categories": categories,
        "totals": grand.as_dict(),
    }


def is_empty(summary: Dict[str, Any]) -> bool:
    return not summary.get("categories")


def flatten(summary: Dict[str, Any]) -> List[Dict[str, Any]]:
    """One row per description group, in summary order."""
    rows = []
    for category, category_entry in summary["categories"].items():
        for subcategory, sub_entry in category_entry["subcategories"].items():
            for description, totals in sub_entry["descriptions"].items():
                rows.append(
                    {
                        "category": category,
                        "subcategory": subcategory,
                        "description": description,
                        **totals,
                    }
                )
    return rows


def summary_window(summary: Dict[str, Any]) -> Tuple[datetime, datetime]:
    return (
        datetime.fromisoformat(summary["range"]["start"]),
        datetime.fromisoformat(summary["range"]["end"]),
    )
