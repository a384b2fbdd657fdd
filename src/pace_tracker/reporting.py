"""Simple reporting utilities for CLI output."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from .models import Activity
from .review import flatten, is_empty, summary_window

_COLUMNS = ("Category", "Description", "Duration (Sessions)", "Breaks (Amount)")


class SummaryPrinter:
    """Render human-readable review summaries in the console."""

    def __init__(self, *, as_json: bool = False) -> None:
        self.as_json = as_json

    def print_review(self, summary: Dict[str, Any]) -> None:
        if self.as_json:
            print(render_review_json(summary))
            return
        if is_empty(summary):
            print("No activities found for the selected time range.")
            return
        print(render_review(summary))


def render_review(summary: Dict[str, Any]) -> str:
    start, end = summary_window(summary)
    rows: List[tuple[str, str, str, str]] = []
    last_category: Optional[str] = None
    for row in flatten(summary):
        if row["category"] != last_category:
            category_totals = summary["categories"][row["category"]]
            rows.append(
                (
                    row["category"],
                    "",
                    format_duration(category_totals["total_duration"]),
                    format_duration(category_totals["total_break_duration"]),
                )
            )
            last_category = row["category"]
        label = f"  {row['subcategory']}" if row["subcategory"] else "  -"
        rows.append(
            (
                label,
                row["description"],
                f"{format_duration(row['total_duration'])} ({row['sessions']})",
                f"{format_duration(row['total_break_duration'])} ({row['total_break_count']})",
            )
        )
    totals = summary["totals"]
    rows.append(
        (
            "Total",
            "",
            format_duration(totals["total_duration"]),
            f"{format_duration(totals['total_break_duration'])} ({totals['total_break_count']})",
        )
    )

    widths = [
        max(len(column), *(len(row[index]) for row in rows))
        for index, column in enumerate(_COLUMNS)
    ]
    lines = [
        "Your activity insights for the period:",
        f"{_format_instant(start)} - {_format_instant(end)}",
        "-" * (sum(widths) + 3 * (len(widths) - 1)),
        _format_row(_COLUMNS, widths),
        "-" * (sum(widths) + 3 * (len(widths) - 1)),
    ]
    lines.extend(_format_row(row, widths) for row in rows[:-1])
    lines.append("-" * (sum(widths) + 3 * (len(widths) - 1)))
    lines.append(_format_row(rows[-1], widths))
    return "\n".join(lines)


def render_review_json(summary: Dict[str, Any]) -> str:
    return json.dumps(summary, indent=2, ensure_ascii=False)


def describe_activity(activity: Activity, duration: Optional[int] = None) -> str:
    """One-line description used by ``now``, ``end`` and friends."""
    tags = f" [{', '.join(activity.tags)}]" if activity.tags else ""
    text = (
        f"{activity.description} ({activity.category}){tags} "
        f"since {_format_instant(activity.begin)}"
    )
    if duration is not None:
        text += f", {format_duration(duration)}"
    return f"{activity.id}  {text}"


def describe_activities(activities: Iterable[Activity]) -> List[str]:
    return [describe_activity(activity) for activity in activities]


def format_duration(seconds: float) -> str:
    total_seconds = int(round(seconds))
    hours, remainder = divmod(total_seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def _format_row(values: Iterable[str], widths: List[int]) -> str:
    cells = list(values)
    left = [cells[0].ljust(widths[0]), cells[1].ljust(widths[1])]
    right = [cell.rjust(width) for cell, width in zip(cells[2:], widths[2:])]
    return " | ".join(left + right).rstrip()


def _format_instant(value: datetime) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S %z")
