"""
Tests for review aggregation.
"""

import pytest

from pace_tracker.models import Activity, ActivityKind, ActivityStatus
from pace_tracker.review import CategoryFilter, GroupTotals, flatten, is_empty, review
from pace_tracker.timing import TimeRange


@pytest.fixture
def day(at):
    return TimeRange(at(0), at(23, 59, 59))


@pytest.fixture
def busy_tracker(tracker, at):
    """A day with three categories, a break and a running entry."""
    tracker.begin("Design", category="Freelance::Acme", at=at(8))
    tracker.hold(reason="coffee", at=at(9))
    tracker.resume(at=at(9, 15))
    tracker.end(at=at(10))

    tracker.begin("Design", category="Freelance::Acme", at=at(11))
    tracker.end(at=at(11, 30))

    tracker.begin("Invoices", category="Freelance", at=at(12))
    tracker.end(at=at(12, 45))

    tracker.begin("Reading", category="learning", at=at(13))
    tracker.end(at=at(14))

    tracker.begin("Standup", category="Office::Meetings", tags=["daily"], at=at(17, 30))
    return tracker


@pytest.mark.unit
def test_review_groups_by_category_subcategory_and_description(busy_tracker, day):
    """
    Verify totals roll up from descriptions to categories and the grand total.

    Parameters
    ----------
    busy_tracker : ActivityTracker
        Tracker with a populated day.
    day : TimeRange
        The whole test day.

    Returns
    -------
    None
        This test asserts on the nested summary structure.
    """
    summary = busy_tracker.reviewer().review(day)

    assert list(summary["categories"]) == ["Freelance", "Office", "learning"]
    freelance = summary["categories"]["Freelance"]
    assert freelance["total_duration"] == 7200 + 1800 + 2700
    assert freelance["total_break_duration"] == 900
    assert freelance["total_break_count"] == 1
    assert freelance["sessions"] == 3
    assert list(freelance["subcategories"]) == ["", "Acme"]

    acme = freelance["subcategories"]["Acme"]
    design = acme["descriptions"]["Design"]
    assert design["total_duration"] == 9000
    assert design["sessions"] == 2
    assert design["total_break_count"] == 1
    assert design["adjusted_duration"] == 8100
    assert freelance["subcategories"][""]["descriptions"]["Invoices"]["total_duration"] == 2700

    # The running standup counts with its live duration.
    office = summary["categories"]["Office"]
    assert office["subcategories"]["Meetings"]["descriptions"]["Standup"]["total_duration"] == 1800

    totals = summary["totals"]
    assert totals["total_duration"] == 11700 + 3600 + 1800
    assert totals["total_break_duration"] == 900
    assert totals["total_break_count"] == 1
    assert totals["sessions"] == 5


@pytest.mark.unit
def test_review_category_filter_is_case_insensitive_by_default(busy_tracker, day):
    summary = busy_tracker.reviewer().review(day, category="LEARN*")
    assert list(summary["categories"]) == ["learning"]
    assert summary["totals"]["total_duration"] == 3600


@pytest.mark.unit
def test_review_category_filter_case_sensitive(busy_tracker, day):
    summary = busy_tracker.reviewer().review(day, category="LEARN*", case_sensitive=True)
    assert is_empty(summary)
    assert summary["totals"]["total_duration"] == 0


@pytest.mark.unit
def test_review_filter_matches_full_category(busy_tracker, day):
    summary = busy_tracker.reviewer().review(day, category="Freelance::*")
    assert list(summary["categories"]["Freelance"]["subcategories"]) == ["Acme"]


@pytest.mark.unit
def test_review_only_counts_entries_beginning_in_range(busy_tracker, at):
    summary = busy_tracker.reviewer().review(TimeRange(at(11), at(13)))
    assert summary["totals"]["total_duration"] == 1800 + 2700
    assert summary["totals"]["total_break_count"] == 0


@pytest.mark.unit
def test_review_empty_range(tracker, at):
    summary = tracker.reviewer().review(TimeRange(at(1), at(2)))
    assert is_empty(summary)
    assert summary["categories"] == {}
    assert summary["range"] == {"start": at(1).isoformat(), "end": at(2).isoformat()}


@pytest.mark.unit
def test_review_includes_running_entry_begun_before_range(tracker, at):
    tracker.begin("Marathon", category="Sport", at=at(6))
    summary = tracker.reviewer().review(TimeRange(at(12), at(23)))
    assert summary["categories"]["Sport"]["total_duration"] == 12 * 3600


@pytest.mark.unit
def test_review_leaves_out_held_entry_begun_before_range(tracker, at):
    tracker.begin("Marathon", category="Sport", at=at(6))
    tracker.hold(at=at(13))
    summary = tracker.reviewer().review(TimeRange(at(12), at(23)))
    # Only the active entry is carried into a later range; held ones are not.
    assert is_empty(summary)
    assert summary["totals"]["total_break_count"] == 0


@pytest.mark.unit
def test_review_counts_held_entry_and_open_break_live(tracker, at):
    tracker.begin("Task", category="Work", at=at(16))
    tracker.hold(at=at(17))
    summary = review(tracker.store, TimeRange(at(0), at(23)), tracker.clock)
    work = summary["categories"]["Work"]
    assert work["total_duration"] == 7200
    assert work["total_break_duration"] == 3600
    assert work["adjusted_duration"] == 3600


@pytest.mark.unit
def test_flatten_rows(busy_tracker, day):
    rows = flatten(busy_tracker.reviewer().review(day))
    assert [(row["category"], row["subcategory"], row["description"]) for row in rows] == [
        ("Freelance", "", "Invoices"),
        ("Freelance", "Acme", "Design"),
        ("Office", "Meetings", "Standup"),
        ("learning", "", "Reading"),
    ]


@pytest.mark.unit
def test_custom_separator(store, clock, at):
    store.insert(
        Activity(
            id="a1",
            kind=ActivityKind.WORK,
            category="Home/Garden",
            description="Weeding",
            begin=at(9),
            end=at(10),
            duration=3600,
            status=ActivityStatus.ENDED,
        )
    )
    summary = review(store, TimeRange(at(0), at(23)), clock, separator="/")
    assert list(summary["categories"]["Home"]["subcategories"]) == ["Garden"]


@pytest.mark.parametrize(
    ("pattern", "category", "case_sensitive", "expected"),
    [
        (None, "Anything", False, True),
        ("Work", "work", False, True),
        ("Work", "work", True, False),
        ("W?rk::*", "Work::Docs", True, True),
        ("[fF]reelance", "Freelance", True, True),
    ],
)
@pytest.mark.unit
def test_category_filter(pattern, category, case_sensitive, expected):
    assert CategoryFilter(pattern, case_sensitive).matches(category) is expected


@pytest.mark.unit
def test_group_totals_adjusted_duration_never_negative():
    totals = GroupTotals(total_duration=10, total_break_duration=30)
    assert totals.as_dict()["adjusted_duration"] == 0
