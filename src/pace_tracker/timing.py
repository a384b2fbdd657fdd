"""Turn time expressions and zone selections into concrete instants and ranges."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Optional, Protocol, Tuple, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .errors import EndBeforeBegin, InvalidTimeExpression, InvalidTimeRange, TimeInFuture

RANGE_KEYWORDS = (
    "today",
    "yesterday",
    "this-week",
    "last-week",
    "this-month",
    "last-month",
    "this-year",
    "last-year",
)

WEEKDAYS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)

_TIME_FORMATS = ("%H:%M:%S", "%H:%M")
_DATETIME_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M",
)
_OFFSET_PATTERN = re.compile(r"^(?P<sign>[+-])(?P<hours>\d{1,2})(?::?(?P<minutes>\d{2}))?$")

Bound = Union[str, date, datetime]


class Clock(Protocol):
    """Source of the current instant."""

    def now(self, tz: Optional[tzinfo] = None) -> datetime:
        ...


class SystemClock:
    """Reads the wall clock, truncated to whole seconds."""

    def now(self, tz: Optional[tzinfo] = None) -> datetime:
        current = datetime.now(tz) if tz is not None else datetime.now().astimezone()
        return current.replace(microsecond=0)


class FixedClock:
    """A clock that only moves when told to."""

    def __init__(self, current: datetime) -> None:
        if current.tzinfo is None:
            raise ValueError("FixedClock requires a timezone-aware datetime")
        self.current = current.replace(microsecond=0)

    def now(self, tz: Optional[tzinfo] = None) -> datetime:
        return self.current.astimezone(tz) if tz is not None else self.current.astimezone()

    def set(self, current: datetime) -> None:
        if current.tzinfo is None:
            raise ValueError("FixedClock requires a timezone-aware datetime")
        self.current = current.replace(microsecond=0)

    def advance(self, **kwargs: float) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


@dataclass(frozen=True, slots=True)
class TimeZoneSelection:
    """Either an IANA zone name, a fixed UTC offset, or (neither) the local zone."""

    tz_name: Optional[str] = None
    tz_offset: Optional[str] = None

    def __post_init__(self) -> None:
        if self.tz_name and self.tz_offset:
            raise InvalidTimeExpression(
                "A time zone and a time zone offset are mutually exclusive."
            )

    @property
    def is_local(self) -> bool:
        return not self.tz_name and not self.tz_offset

    def zone(self) -> Optional[tzinfo]:
        """Return the selected zone, or ``None`` for the local system zone."""
        if self.tz_name:
            try:
                return ZoneInfo(self.tz_name)
            except (ZoneInfoNotFoundError, ValueError) as exc:
                raise InvalidTimeExpression(f"Unknown time zone: {self.tz_name!r}") from exc
        if self.tz_offset:
            return parse_offset(self.tz_offset)
        return None


@dataclass(frozen=True, slots=True)
class TimeRange:
    """Half-open ``[start, end)`` interval."""

    start: datetime
    end: datetime

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant < self.end

    def overlaps(self, begin: datetime, end: Optional[datetime]) -> bool:
        if begin >= self.end:
            return False
        return end is None or end > self.start

    def __str__(self) -> str:
        return f"{self.start.isoformat()} - {self.end.isoformat()}"


def parse_offset(value: str) -> timezone:
    """Parse ``+02:00``, ``-0530``, ``+2`` or ``Z`` into a fixed offset."""
    text = value.strip()
    if text.upper() in ("Z", "UTC"):
        return timezone.utc
    match = _OFFSET_PATTERN.match(text)
    if not match:
        raise InvalidTimeExpression(f"Invalid UTC offset: {value!r}")
    hours = int(match["hours"])
    minutes = int(match["minutes"] or 0)
    if hours > 23 or minutes > 59:
        raise InvalidTimeExpression(f"Invalid UTC offset: {value!r}")
    delta = timedelta(hours=hours, minutes=minutes)
    if match["sign"] == "-":
        delta = -delta
    return timezone(delta)


def parse_weekday(value: Union[str, int]) -> int:
    """Return the weekday index (Monday is 0) for a name or index."""
    if isinstance(value, int):
        if 0 <= value <= 6:
            return value
        raise InvalidTimeExpression(f"Invalid weekday index: {value}")
    lowered = value.strip().lower()
    for index, name in enumerate(WEEKDAYS):
        if name == lowered or name[:3] == lowered:
            return index
    raise InvalidTimeExpression(f"Invalid weekday: {value!r}")


def resolve_instant(
    expr: Union[None, str, datetime],
    selection: Optional[TimeZoneSelection] = None,
    clock: Optional[Clock] = None,
) -> datetime:
    """Resolve a time expression to an aware instant in the selected zone.

    ``None``, an empty string and ``"now"`` all mean the current instant.
    A bare time of day is taken as today in the selected zone.
    """
    selection = selection or TimeZoneSelection()
    clock = clock or SystemClock()
    zone = selection.zone()
    now = clock.now(zone)

    if expr is None:
        return now
    if isinstance(expr, datetime):
        return _coerce(expr, zone)

    text = expr.strip()
    if not text or text.lower() == "now":
        return now

    for fmt in _TIME_FORMATS:
        try:
            parsed_time = datetime.strptime(text, fmt).time()
        except ValueError:
            continue
        return _localize(datetime.combine(now.date(), parsed_time), zone)

    for fmt in _DATETIME_FORMATS:
        try:
            parsed = datetime.strptime(text, fmt)
        except ValueError:
            continue
        return _localize(parsed, zone)

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise InvalidTimeExpression(f"Could not parse time expression: {expr!r}") from exc
    return _coerce(parsed, zone)


def resolve_range(
    period: Union[str, Tuple[Bound, Bound]],
    selection: Optional[TimeZoneSelection] = None,
    clock: Optional[Clock] = None,
    week_start: Union[int, str] = 0,
) -> TimeRange:
    """Resolve a named window or an explicit ``(from, to)`` pair.

    Date bounds follow calendar semantics: the ``to`` date is included, so the
    range ends at the following midnight.
    """
    selection = selection or TimeZoneSelection()
    clock = clock or SystemClock()
    zone = selection.zone()

    if isinstance(period, str):
        today = clock.now(zone).date()
        return _named_range(period.strip().lower(), today, zone, parse_weekday(week_start))

    try:
        lower, upper = period
    except (TypeError, ValueError) as exc:
        raise InvalidTimeRange(f"Expected a range keyword or a (from, to) pair, got {period!r}") from exc

    start, _ = _resolve_bound(lower, selection, clock)
    upper_instant, upper_is_date = _resolve_bound(upper, selection, clock)
    if upper_is_date:
        end = _midnight(upper_instant.date() + timedelta(days=1), zone)
    else:
        end = upper_instant
    if start > end:
        raise InvalidTimeRange(
            f"Range start {start.isoformat()} is after range end {end.isoformat()}"
        )
    return TimeRange(start, end)


def resolve_date_range(
    day: Union[str, date],
    selection: Optional[TimeZoneSelection] = None,
) -> TimeRange:
    """Return the calendar day containing ``day`` in the selected zone."""
    selection = selection or TimeZoneSelection()
    zone = selection.zone()
    target = _parse_date(day) if isinstance(day, str) else day
    if isinstance(target, datetime):
        target = target.date()
    return TimeRange(_midnight(target, zone), _midnight(target + timedelta(days=1), zone))


def assert_not_future(instant: datetime, now: datetime) -> datetime:
    if instant > now:
        raise TimeInFuture(
            f"{instant.isoformat()} is in the future (now is {now.isoformat()})"
        )
    return instant


def assert_ordered(begin: datetime, end: datetime) -> None:
    if end < begin:
        raise EndBeforeBegin(
            f"End time {end.isoformat()} is before begin time {begin.isoformat()}"
        )


def duration_between(begin: datetime, end: datetime) -> int:
    """Whole seconds from ``begin`` to ``end``."""
    assert_ordered(begin, end)
    return int((end - begin).total_seconds())


def live_duration(begin: datetime, now: datetime) -> int:
    return max(0, int((now - begin).total_seconds()))


def _named_range(keyword: str, today: date, zone: Optional[tzinfo], week_start: int) -> TimeRange:
    if keyword == "today":
        first, last = today, today + timedelta(days=1)
    elif keyword == "yesterday":
        first, last = today - timedelta(days=1), today
    elif keyword in ("this-week", "last-week"):
        first = today - timedelta(days=(today.weekday() - week_start) % 7)
        if keyword == "last-week":
            first -= timedelta(days=7)
        last = first + timedelta(days=7)
    elif keyword == "this-month":
        first = today.replace(day=1)
        last = _shift_month(first, 1)
    elif keyword == "last-month":
        last = today.replace(day=1)
        first = _shift_month(last, -1)
    elif keyword == "this-year":
        first = date(today.year, 1, 1)
        last = date(today.year + 1, 1, 1)
    elif keyword == "last-year":
        first = date(today.year - 1, 1, 1)
        last = date(today.year, 1, 1)
    else:
        raise InvalidTimeRange(
            f"Unknown time range {keyword!r}; expected one of {', '.join(RANGE_KEYWORDS)}"
        )
    return TimeRange(_midnight(first, zone), _midnight(last, zone))


def _shift_month(first_of_month: date, months: int) -> date:
    index = first_of_month.year * 12 + first_of_month.month - 1 + months
    return date(index // 12, index % 12 + 1, 1)


def _resolve_bound(
    bound: Bound, selection: TimeZoneSelection, clock: Clock
) -> Tuple[datetime, bool]:
    zone = selection.zone()
    if isinstance(bound, datetime):
        return _coerce(bound, zone), False
    if isinstance(bound, date):
        return _midnight(bound, zone), True
    if isinstance(bound, str) and len(bound.strip()) == 10:
        try:
            return _midnight(date.fromisoformat(bound.strip()), zone), True
        except ValueError:
            pass
    try:
        return resolve_instant(bound, selection, clock), False
    except InvalidTimeExpression as exc:
        raise InvalidTimeRange(f"Invalid range bound: {bound!r}") from exc


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value.strip())
    except ValueError as exc:
        raise InvalidTimeExpression(f"Invalid date (expected YYYY-MM-DD): {value!r}") from exc


def _midnight(day: date, zone: Optional[tzinfo]) -> datetime:
    return _localize(datetime.combine(day, time(0, 0)), zone)


def _localize(naive: datetime, zone: Optional[tzinfo]) -> datetime:
    if zone is None:
        aware = naive.astimezone()
    else:
        aware = naive.replace(tzinfo=zone)
    return aware.replace(microsecond=0)


def _coerce(value: datetime, zone: Optional[tzinfo]) -> datetime:
    if value.tzinfo is None:
        return _localize(value, zone)
    converted = value.astimezone(zone) if zone is not None else value.astimezone()
    return converted.replace(microsecond=0)
