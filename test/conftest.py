"""
Shared pytest fixtures for pace_tracker tests.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from pace_tracker.store import StorageKind, open_store
from pace_tracker.timing import FixedClock, TimeZoneSelection
from pace_tracker.tracker import ActivityTracker

# Monday, 4 March 2024, 18:00 UTC.
NOW = datetime(2024, 3, 4, 18, 0, 0, tzinfo=timezone.utc)
EVERYTHING = (
    datetime(2000, 1, 1, tzinfo=timezone.utc),
    datetime(2100, 1, 1, tzinfo=timezone.utc),
)


@pytest.fixture(autouse=True)
def isolate_config(tmp_path, monkeypatch) -> None:
    """
    Ensure tests never read the user's real pace.toml.

    Parameters
    ----------
    tmp_path : pathlib.Path
        Temporary path provided by pytest.
    monkeypatch : pytest.MonkeyPatch
        Monkeypatch fixture for environment updates.
    """
    monkeypatch.setenv("PACE_CONFIG", str(tmp_path / "missing-pace.toml"))


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest.fixture
def utc() -> TimeZoneSelection:
    return TimeZoneSelection(tz_offset="+00:00")


@pytest.fixture(params=[StorageKind.MEMORY, StorageKind.FILE, StorageKind.SQLITE])
def store(request, tmp_path):
    """Every backend, so the contract is checked against each of them."""
    paths = {
        StorageKind.MEMORY: None,
        StorageKind.FILE: tmp_path / "activities.json",
        StorageKind.SQLITE: tmp_path / "activities.sqlite3",
    }
    backend = open_store(request.param, paths[request.param])
    yield backend
    backend.close()


@pytest.fixture
def tracker(store, clock, utc) -> ActivityTracker:
    return ActivityTracker(store, clock=clock, selection=utc)


@pytest.fixture
def at():
    """Build an instant on the fixed test day."""

    def _at(hour: int, minute: int = 0, second: int = 0) -> datetime:
        return NOW.replace(hour=hour, minute=minute, second=second)

    return _at


@pytest.fixture
def all_activities():
    def _all(store):
        return list(store.scan_range(*EVERYTHING))

    return _all


@pytest.fixture
def check_invariants(all_activities, clock):
    """Assert the lifecycle invariants over the whole store."""

    def _check(store) -> None:
        activities = all_activities(store)
        by_id = {activity.id: activity for activity in activities}
        now = clock.now()

        active_work = [a for a in activities if a.is_work and a.is_active]
        assert len(active_work) <= 1

        open_intermissions = [a for a in activities if a.is_intermission and a.is_active]
        assert len(open_intermissions) <= 1
        for intermission in open_intermissions:
            assert by_id[intermission.parent].is_held

        for activity in activities:
            assert activity.begin <= now
            if activity.is_work and activity.is_held:
                assert store.list_intermissions(activity.id)
            if activity.end is not None:
                assert activity.is_ended
                assert activity.end >= activity.begin
                assert activity.end <= now
                assert activity.duration == int((activity.end - activity.begin).total_seconds())
            else:
                assert activity.duration is None
                assert not activity.is_ended
            if activity.is_intermission:
                parent = by_id[activity.parent]
                assert parent.is_work
                assert activity.begin >= parent.begin
                if parent.end is not None and activity.end is not None:
                    assert activity.end <= parent.end
                if parent.is_ended:
                    assert activity.is_ended

    return _check


@pytest.fixture
def minutes():
    return lambda value: timedelta(minutes=value)
