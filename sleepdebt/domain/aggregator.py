"""Sleep-debt aggregation.

Buckets sleep intervals into calendar days of a reference time zone and
subtracts each day's total from a daily goal:

    debt[day] = max(0, daily_goal - sleep[day])

Intervals crossing midnight are split exactly at each midnight, so a day
only ever receives the part of an interval that falls inside it. A
midnight-aligned start belongs to the following day (half-open ranges).

All functions here are pure. Arithmetic runs on UTC instants; the zone is
only used to find day boundaries, which keeps DST days at 23h/25h instead
of wall-clock 24h.
"""

from collections import defaultdict
from collections.abc import Iterable
from datetime import UTC, date, datetime, time, timedelta, tzinfo

from sleepdebt.domain.models import SleepInterval

ZERO = timedelta(0)


class InvalidSleepIntervalError(ValueError):
    """Raised when an interval that should have been filtered reaches the aggregator."""

    def __init__(self, interval: SleepInterval, reason: str):
        self.interval = interval
        self.reason = reason
        super().__init__(
            f"{reason}: [{interval.start_time.isoformat()}, {interval.end_time.isoformat()})"
        )


def day_key(day: date) -> str:
    return day.isoformat()


def _check_interval(interval: SleepInterval) -> None:
    if interval.start_time.tzinfo is None or interval.end_time.tzinfo is None:
        raise InvalidSleepIntervalError(interval, "missing_timezone")
    if interval.end_time <= interval.start_time:
        raise InvalidSleepIntervalError(interval, "interval_order_invalid")


def next_midnight(instant: datetime, tz: tzinfo) -> datetime:
    """First midnight in `tz` strictly after `instant`, as a UTC instant."""
    local_day = instant.astimezone(tz).date()
    boundary = datetime.combine(local_day + timedelta(days=1), time.min, tzinfo=tz)
    return boundary.astimezone(UTC)


def day_start(day: date, tz: tzinfo) -> datetime:
    """Midnight opening `day` in `tz`, as a UTC instant."""
    return datetime.combine(day, time.min, tzinfo=tz).astimezone(UTC)


def split_by_day(interval: SleepInterval, tz: tzinfo) -> list[tuple[date, timedelta]]:
    """Split one interval into (day, duration) fragments at each midnight of `tz`.

    An interval spanning N midnights yields N+1 fragments whose durations sum
    to the interval's duration.
    """
    _check_interval(interval)
    fragments: list[tuple[date, timedelta]] = []
    position = interval.start_time.astimezone(UTC)
    end = interval.end_time.astimezone(UTC)
    while position < end:
        boundary = next_midnight(position, tz)
        step_end = min(end, boundary)
        fragments.append((position.astimezone(tz).date(), step_end - position))
        position = step_end
    return fragments


def daily_sleep_totals(intervals: Iterable[SleepInterval], tz: tzinfo) -> dict[str, timedelta]:
    """Sum interval fragments per day bucket. Overlaps are counted twice."""
    totals: dict[str, timedelta] = defaultdict(timedelta)
    for interval in intervals:
        for day, duration in split_by_day(interval, tz):
            totals[day_key(day)] += duration
    return dict(totals)


def days_in_window(start_day: date, end_day: date) -> list[date]:
    """All days from start_day through end_day, inclusive."""
    if end_day < start_day:
        return []
    return [start_day + timedelta(days=i) for i in range((end_day - start_day).days + 1)]


def clip_interval(
    interval: SleepInterval, start: datetime, end: datetime
) -> SleepInterval | None:
    """Intersect an interval with [start, end). None when they do not overlap."""
    clipped_start = max(interval.start_time, start)
    clipped_end = min(interval.end_time, end)
    if clipped_end <= clipped_start:
        return None
    return SleepInterval(start_time=clipped_start, end_time=clipped_end)


def compute_sleep_debt(
    intervals: Iterable[SleepInterval],
    daily_goal: timedelta,
    tz: tzinfo,
    *,
    include_zero_sleep_days: bool = False,
    window: tuple[date, date] | None = None,
) -> dict[str, timedelta]:
    """Map each day bucket to max(0, daily_goal - sleep that day).

    Days without any logged sleep are omitted unless `include_zero_sleep_days`
    is set, in which case every day of `window` (inclusive; defaults to the
    first..last day seen) is present and an empty day owes the full goal.

    Raises InvalidSleepIntervalError for naive or non-positive intervals and
    ValueError for a non-positive goal.
    """
    return debt_from_totals(
        daily_sleep_totals(intervals, tz),
        daily_goal,
        include_zero_sleep_days=include_zero_sleep_days,
        window=window,
    )


def debt_from_totals(
    totals: dict[str, timedelta],
    daily_goal: timedelta,
    *,
    include_zero_sleep_days: bool = False,
    window: tuple[date, date] | None = None,
) -> dict[str, timedelta]:
    """Deficit per day from precomputed `daily_sleep_totals` output."""
    if daily_goal <= ZERO:
        raise ValueError(f"daily_goal must be positive, got {daily_goal}")

    totals = dict(totals)
    if include_zero_sleep_days:
        if window is None and totals:
            seen = sorted(date.fromisoformat(k) for k in totals)
            window = (seen[0], seen[-1])
        if window is not None:
            for day in days_in_window(*window):
                totals.setdefault(day_key(day), ZERO)

    return {day: max(ZERO, daily_goal - total) for day, total in sorted(totals.items())}
