"""
Tests for the activity store contract and its backends.
"""

import json
import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from pace_tracker.db import SqliteActivityStore
from pace_tracker.errors import ConfigError, NotFound, StorageFailure
from pace_tracker.filestore import JsonFileActivityStore
from pace_tracker.models import Activity, ActivityKind, ActivityStatus, ActivityUpdate
from pace_tracker.store import InMemoryActivityStore, StorageKind, open_store

BASE = datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)


def make_work(activity_id, hours=0, status=ActivityStatus.ACTIVE, **kwargs):
    return Activity(
        id=activity_id,
        kind=ActivityKind.WORK,
        category=kwargs.pop("category", "Work"),
        description=kwargs.pop("description", f"Task {activity_id}"),
        begin=BASE + timedelta(hours=hours),
        status=status,
        **kwargs,
    )


def make_break(activity_id, parent, hours=0, status=ActivityStatus.ACTIVE):
    return Activity(
        id=activity_id,
        kind=ActivityKind.INTERMISSION,
        category="Work",
        description="Intermission",
        begin=BASE + timedelta(hours=hours),
        status=status,
        parent=parent,
    )


@pytest.mark.unit
def test_insert_and_get_round_trip(store):
    activity = make_work("a1", tags=("deep", "focus"))
    assert store.insert(activity) == "a1"
    assert store.get("a1") == activity


@pytest.mark.unit
def test_get_returns_copies(store):
    store.insert(make_work("a1"))
    copy = store.get("a1")
    copy.description = "changed"
    assert store.get("a1").description == "Task a1"


@pytest.mark.unit
def test_duplicate_insert_fails(store):
    store.insert(make_work("a1"))
    with pytest.raises(StorageFailure):
        store.insert(make_work("a1"))


@pytest.mark.unit
def test_get_unknown_raises_not_found(store):
    with pytest.raises(NotFound) as excinfo:
        store.get("nope")
    assert excinfo.value.activity_id == "nope"


@pytest.mark.unit
def test_update_applies_only_set_fields(store):
    store.insert(make_work("a1", tags=("x",)))
    end = BASE + timedelta(hours=1)
    updated = store.update(
        "a1", ActivityUpdate(end=end, duration=3600, status=ActivityStatus.ENDED)
    )
    assert updated.end == end
    assert updated.duration == 3600
    assert updated.status is ActivityStatus.ENDED
    assert updated.description == "Task a1"
    assert updated.tags == ("x",)
    assert store.get("a1") == updated


@pytest.mark.unit
def test_update_replaces_tags(store):
    store.insert(make_work("a1", tags=("x", "y")))
    assert store.update("a1", ActivityUpdate(tags=("z",))).tags == ("z",)
    assert store.update("a1", ActivityUpdate(tags=())).tags == ()


@pytest.mark.unit
def test_update_unknown_raises_not_found(store):
    with pytest.raises(NotFound):
        store.update("nope", ActivityUpdate(description="x"))


@pytest.mark.unit
def test_find_active_work_ignores_intermissions_and_held(store):
    assert store.find_active_work() is None
    store.insert(make_work("held", status=ActivityStatus.HELD))
    store.insert(make_break("b1", "held", hours=1))
    assert store.find_active_work() is None
    store.insert(make_work("live", hours=2))
    assert store.find_active_work().id == "live"


@pytest.mark.unit
def test_open_intermission_lookup(store):
    store.insert(make_work("w", status=ActivityStatus.HELD))
    store.insert(make_break("b1", "w", hours=1, status=ActivityStatus.ENDED))
    assert store.find_open_intermission("w") is None
    store.insert(make_break("b2", "w", hours=2))
    assert store.find_open_intermission("w").id == "b2"
    assert [b.id for b in store.list_open_intermissions()] == ["b2"]


@pytest.mark.unit
def test_list_held_work_most_recent_first(store):
    store.insert(make_work("old", hours=0, status=ActivityStatus.HELD))
    store.insert(make_work("new", hours=3, status=ActivityStatus.HELD))
    store.insert(make_work("done", hours=4, status=ActivityStatus.ENDED))
    assert [a.id for a in store.list_held_work()] == ["new", "old"]
    assert store.find_held_work().id == "new"
    assert store.find_held_work("old").id == "old"
    assert store.find_held_work("done") is None
    assert store.find_held_work("missing") is None


@pytest.mark.unit
def test_list_intermissions_ordered_by_begin(store):
    store.insert(make_work("w"))
    store.insert(make_break("late", "w", hours=3, status=ActivityStatus.ENDED))
    store.insert(make_break("early", "w", hours=1, status=ActivityStatus.ENDED))
    store.insert(make_work("other", hours=5))
    assert [b.id for b in store.list_intermissions("w")] == ["early", "late"]
    assert store.list_intermissions("other") == []


@pytest.mark.unit
def test_scan_range_is_half_open_and_ordered(store):
    for index, hours in enumerate([2, 0, 1, 3]):
        store.insert(make_work(f"a{index}", hours=hours, status=ActivityStatus.ENDED))
    scanned = list(store.scan_range(BASE, BASE + timedelta(hours=3)))
    assert [a.id for a in scanned] == ["a1", "a2", "a0"]


@pytest.mark.unit
def test_scan_range_compares_instants_across_offsets(store):
    plus_two = timezone(timedelta(hours=2))
    store.insert(make_work("a1", hours=1))
    # 11:00+02:00 is 09:00Z, one hour before a1 begins at 10:00Z.
    start = datetime(2024, 3, 4, 11, 0, tzinfo=plus_two)
    scanned = list(store.scan_range(start, start + timedelta(hours=2)))
    assert [a.id for a in scanned] == ["a1"]
    # The end bound is exclusive: [08:00Z, 10:00Z) leaves a1 out.
    earlier = start - timedelta(hours=1)
    assert list(store.scan_range(earlier, earlier + timedelta(hours=2))) == []


@pytest.mark.unit
def test_transaction_rolls_back_on_error(store):
    store.insert(make_work("a1"))
    with pytest.raises(RuntimeError):
        with store.transaction():
            store.update("a1", ActivityUpdate(status=ActivityStatus.HELD))
            store.insert(make_break("b1", "a1", hours=1))
            raise RuntimeError("boom")
    assert store.get("a1").is_active
    with pytest.raises(NotFound):
        store.get("b1")


@pytest.mark.unit
def test_nested_transactions_commit_once(store):
    with store.transaction():
        store.insert(make_work("a1"))
        with store.transaction():
            store.update("a1", ActivityUpdate(description="inner"))
    assert store.get("a1").description == "inner"


@pytest.mark.unit
def test_open_store_kinds(tmp_path):
    assert isinstance(open_store(), InMemoryActivityStore)
    with open_store("file", tmp_path / "log.json") as file_store:
        assert file_store.kind is StorageKind.FILE
    with open_store(StorageKind.SQLITE, tmp_path / "db.sqlite3") as db_store:
        assert db_store.kind is StorageKind.SQLITE


@pytest.mark.unit
def test_open_store_rejects_bad_configuration(tmp_path):
    with pytest.raises(ConfigError):
        open_store("postgres", tmp_path / "x")
    with pytest.raises(ConfigError):
        open_store(StorageKind.SQLITE)


@pytest.mark.integration
def test_file_store_persists_across_instances(tmp_path):
    path = tmp_path / "nested" / "activities.json"
    store = JsonFileActivityStore(path)
    store.insert(make_work("a1", tags=("t",)))
    store.update("a1", ActivityUpdate(status=ActivityStatus.HELD))

    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["version"] == 1
    assert payload["activities"][0]["status"] == "held"

    reopened = JsonFileActivityStore(path)
    assert reopened.get("a1") == store.get("a1")
    assert not path.with_name("activities.json.tmp").exists()


@pytest.mark.integration
def test_file_store_does_not_flush_failed_transaction(tmp_path):
    path = tmp_path / "activities.json"
    store = JsonFileActivityStore(path)
    store.insert(make_work("a1"))
    with pytest.raises(RuntimeError):
        with store.transaction():
            store.insert(make_work("a2", hours=1))
            raise RuntimeError("boom")
    assert [a.id for a in JsonFileActivityStore(path).all_activities()] == ["a1"]


@pytest.mark.unit
def test_file_store_reports_corrupt_log(tmp_path):
    path = tmp_path / "activities.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(StorageFailure):
        JsonFileActivityStore(path)


@pytest.mark.integration
def test_sqlite_store_persists_across_connections(tmp_path):
    path = tmp_path / "activities.sqlite3"
    with SqliteActivityStore(path) as store:
        store.insert(make_work("a1", tags=("b", "a")))
        store.insert(make_break("b1", "a1", hours=1))
    with SqliteActivityStore(path) as store:
        assert store.get("a1").tags == ("a", "b")
        assert store.find_open_intermission("a1").id == "b1"


@pytest.mark.unit
def test_sqlite_store_wraps_backend_errors(tmp_path):
    store = SqliteActivityStore(tmp_path / "activities.sqlite3")
    store.close()
    with pytest.raises(StorageFailure) as excinfo:
        store.get("a1")
    assert isinstance(excinfo.value.__cause__, sqlite3.Error)
