"""Command-line interface for the activity tracker."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

import typer

from .config import PaceConfig, load_config, open_configured_store
from .errors import AmbiguousTarget, PaceError
from .reporting import SummaryPrinter, describe_activities, describe_activity, format_duration
from .timing import resolve_date_range, resolve_range
from .tracker import ActivityTracker

logger = logging.getLogger(__name__)

app = typer.Typer(help="Mindful time tracking: begin, hold, resume and end activities.")

AT_OPTION = typer.Option(
    None, "--at", help="Time of the action (HH:MM[:SS], YYYY-MM-DD HH:MM or ISO 8601). Defaults to now."
)
TZ_OPTION = typer.Option(None, "--tz", help="IANA time zone, e.g. Europe/Berlin.")
TZ_OFFSET_OPTION = typer.Option(None, "--tz-offset", help="Fixed UTC offset, e.g. +02:00.")
ID_OPTION = typer.Option(None, "--id", help="Id of the activity to act on.")


@app.callback(no_args_is_help=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logs."),
    config: Optional[Path] = typer.Option(
        None, "--config", path_type=Path, help="Location of the pace.toml config file."
    ),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    ctx.obj = {"config_path": config}


@app.command()
def begin(
    ctx: typer.Context,
    description: str = typer.Argument(..., help="What you are working on."),
    category: Optional[str] = typer.Option(
        None, "--category", "-c", help="Category, sub-categories separated by '::'."
    ),
    tags: Optional[List[str]] = typer.Option(None, "--tag", "-t", help="Tag (repeatable)."),
    at: Optional[str] = AT_OPTION,
    tz: Optional[str] = TZ_OPTION,
    tz_offset: Optional[str] = TZ_OFFSET_OPTION,
) -> None:
    """Begin tracking a new activity."""
    with _tracker(ctx, tz, tz_offset) as tracker:
        activity_id = tracker.begin(description, category=category, tags=tags, at=at)
        typer.echo(f"Began {description!r} ({activity_id})")


@app.command()
def end(
    ctx: typer.Context,
    activity_id: Optional[str] = ID_OPTION,
    at: Optional[str] = AT_OPTION,
    tz: Optional[str] = TZ_OPTION,
    tz_offset: Optional[str] = TZ_OFFSET_OPTION,
) -> None:
    """End the active (or held) activity."""
    with _tracker(ctx, tz, tz_offset) as tracker:
        ended = tracker.end(at=at, activity_id=activity_id)
        typer.echo(
            f"Ended {ended.description!r} ({ended.id}) after {format_duration(ended.duration or 0)}"
        )


@app.command()
def hold(
    ctx: typer.Context,
    reason: Optional[str] = typer.Option(None, "--reason", "-r", help="Why you pause."),
    activity_id: Optional[str] = ID_OPTION,
    at: Optional[str] = AT_OPTION,
    tz: Optional[str] = TZ_OPTION,
    tz_offset: Optional[str] = TZ_OFFSET_OPTION,
) -> None:
    """Pause the active activity."""
    with _tracker(ctx, tz, tz_offset) as tracker:
        intermission_id = tracker.hold(reason=reason, at=at, activity_id=activity_id)
        typer.echo(f"Held activity; intermission {intermission_id} started")


@app.command()
def resume(
    ctx: typer.Context,
    activity_id: Optional[str] = ID_OPTION,
    at: Optional[str] = AT_OPTION,
    tz: Optional[str] = TZ_OPTION,
    tz_offset: Optional[str] = TZ_OFFSET_OPTION,
) -> None:
    """Resume a held activity."""
    with _tracker(ctx, tz, tz_offset) as tracker:
        try:
            resumed = tracker.resume(at=at, activity_id=activity_id)
        except AmbiguousTarget:
            held = tracker.held()
            if held:
                typer.echo("Held activities:", err=True)
                for line in describe_activities(held):
                    typer.echo(f"  {line}", err=True)
            raise
        typer.echo(f"Resumed {resumed.description!r} ({resumed.id})")


@app.command()
def adjust(
    ctx: typer.Context,
    activity_id: str = typer.Argument(..., help="Id of the activity to adjust."),
    category: Optional[str] = typer.Option(None, "--category", "-c", help="New category."),
    description: Optional[str] = typer.Option(
        None, "--description", "-d", help="New description."
    ),
    begin_at: Optional[str] = typer.Option(None, "--begin", help="New begin time."),
    tags: Optional[List[str]] = typer.Option(
        None, "--tag", "-t", help="Add a tag (repeatable)."
    ),
    override_tags: bool = typer.Option(
        False, "--override-tags", help="Replace the existing tags instead of adding to them."
    ),
    tz: Optional[str] = TZ_OPTION,
    tz_offset: Optional[str] = TZ_OFFSET_OPTION,
) -> None:
    """Adjust an activity that has not ended yet."""
    with _tracker(ctx, tz, tz_offset) as tracker:
        adjusted = tracker.adjust(
            activity_id,
            category=category,
            description=description,
            begin=begin_at,
            tags=tags,
            override_tags=override_tags,
        )
        typer.echo(f"Adjusted {describe_activity(adjusted)}")


@app.command()
def now(
    ctx: typer.Context,
    tz: Optional[str] = TZ_OPTION,
    tz_offset: Optional[str] = TZ_OFFSET_OPTION,
) -> None:
    """Show the activity currently running."""
    with _tracker(ctx, tz, tz_offset) as tracker:
        current = tracker.now()
        if current is None:
            typer.echo("No activity is active right now.")
            held = tracker.held()
            if held:
                typer.echo("Held activities:")
                for line in describe_activities(held):
                    typer.echo(f"  {line}")
            return
        typer.echo(describe_activity(current.activity, current.live_duration))


@app.command()
def held(
    ctx: typer.Context,
    tz: Optional[str] = TZ_OPTION,
    tz_offset: Optional[str] = TZ_OFFSET_OPTION,
) -> None:
    """List held activities, most recent first."""
    with _tracker(ctx, tz, tz_offset) as tracker:
        activities = tracker.held()
        if not activities:
            typer.echo("No activity is held.")
            return
        for line in describe_activities(activities):
            typer.echo(line)


@app.command()
def review(
    ctx: typer.Context,
    today: bool = typer.Option(False, "--today", help="Review the current day."),
    yesterday: bool = typer.Option(False, "--yesterday", help="Review the previous day."),
    this_week: bool = typer.Option(False, "--this-week", help="Review the current week."),
    last_week: bool = typer.Option(False, "--last-week", help="Review the previous week."),
    this_month: bool = typer.Option(False, "--this-month", help="Review the current month."),
    last_month: bool = typer.Option(False, "--last-month", help="Review the previous month."),
    date: Optional[str] = typer.Option(None, "--date", help="Review a single day (YYYY-MM-DD)."),
    from_: Optional[str] = typer.Option(None, "--from", help="Start of the review period."),
    to: Optional[str] = typer.Option(None, "--to", help="End of the review period (inclusive date)."),
    category: Optional[str] = typer.Option(
        None, "--category", "-c", help="Filter by category, wildcards supported."
    ),
    case_sensitive: bool = typer.Option(
        False, "--case-sensitive", help="Match the category filter case-sensitively."
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the summary as JSON."),
    tz: Optional[str] = TZ_OPTION,
    tz_offset: Optional[str] = TZ_OFFSET_OPTION,
) -> None:
    """Summarize tracked time over a period."""
    keywords = [
        keyword
        for keyword, selected in (
            ("today", today),
            ("yesterday", yesterday),
            ("this-week", this_week),
            ("last-week", last_week),
            ("this-month", this_month),
            ("last-month", last_month),
        )
        if selected
    ]
    if len(keywords) > 1:
        _fail("Choose at most one of the time period flags.")
    if date and (from_ or to):
        _fail("--date cannot be combined with --from/--to.")
    if to and not from_:
        _fail("--to requires --from.")
    if keywords and (date or from_ or to):
        _fail("Time period flags cannot be combined with date flags.")

    with _tracker(ctx, tz, tz_offset) as tracker:
        config: PaceConfig = ctx.obj["config"]
        selection = tracker.selection
        if date:
            time_range = resolve_date_range(date, selection)
        elif from_ or to:
            time_range = resolve_range(
                (from_, to or "now"),
                selection,
                tracker.clock,
            )
        else:
            time_range = resolve_range(
                keywords[0] if keywords else "today",
                selection,
                tracker.clock,
                week_start=config.general.week_start_index,
            )
        case_sensitive = case_sensitive or config.review.case_sensitive
        summary = tracker.reviewer().review(
            time_range, category=category, case_sensitive=case_sensitive
        )
        SummaryPrinter(as_json=as_json).print_review(summary)


app.command("reflect", help="Alias of review.")(review)


@contextmanager
def _tracker(
    ctx: typer.Context, tz: Optional[str], tz_offset: Optional[str]
) -> Iterator[ActivityTracker]:
    """Open the configured store and report domain errors as CLI failures."""
    obj = ctx.ensure_object(dict)
    try:
        config = load_config(obj.get("config_path"))
        obj["config"] = config
        with open_configured_store(config) as store:
            yield ActivityTracker(
                store,
                selection=config.general.time_zone_selection(tz, tz_offset),
                settings=config.general,
            )
    except PaceError as exc:
        logger.debug("Command failed with %s", exc.kind, exc_info=True)
        _fail(str(exc))


def _fail(message: str) -> None:
    typer.echo(f"Error: {message}", err=True)
    raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
