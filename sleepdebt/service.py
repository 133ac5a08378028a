"""Sleep service: record entries and build sleep-debt reports.

Both paths validate at the boundary. Writes reject invalid intervals
outright; reads drop (and log) anything invalid found in storage before
it reaches the aggregator.
"""

import time
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta, tzinfo
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from shared.exceptions import DuplicateSleepEntryError, InvalidTimezoneError, ValidationError
from shared.metrics import invalid_intervals_total, sleep_debt_duration_seconds, sleep_entries_total
from sleepdebt.domain.aggregator import (
    ZERO,
    clip_interval,
    daily_sleep_totals,
    day_start,
    debt_from_totals,
)
from sleepdebt.domain.models import SleepInterval, minutes
from sleepdebt.domain.orm import SleepEntryModel, UserModel
from sleepdebt.domain.validation import partition_intervals, validate_sleep_interval
from sleepdebt.repository import SleepEntryRepository

logger = structlog.get_logger()


@dataclass
class SleepDebtDay:
    """One day of the report."""

    date: str
    sleep_minutes: float
    debt_minutes: float


@dataclass
class SleepDebtReport:
    """Per-day sleep and debt for a user over a window of calendar days."""

    user_id: str
    timezone: str
    window_start: date
    window_end: date
    daily_goal_minutes: int
    include_zero_sleep_days: bool
    days: list[SleepDebtDay] = field(default_factory=list)
    entries_used: int = 0
    entries_rejected: int = 0

    @property
    def sleep_debt(self) -> dict[str, float]:
        return {d.date: d.debt_minutes for d in self.days}

    @property
    def total_debt_minutes(self) -> float:
        return round(sum(d.debt_minutes for d in self.days), 2)

    @property
    def total_sleep_minutes(self) -> float:
        return round(sum(d.sleep_minutes for d in self.days), 2)

    def as_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "timezone": self.timezone,
            "window_start": self.window_start.isoformat(),
            "window_end": self.window_end.isoformat(),
            "daily_goal_minutes": self.daily_goal_minutes,
            "include_zero_sleep_days": self.include_zero_sleep_days,
            "sleep_debt": self.sleep_debt,
            "days": [
                {
                    "date": d.date,
                    "sleep_minutes": d.sleep_minutes,
                    "debt_minutes": d.debt_minutes,
                }
                for d in self.days
            ],
            "total_sleep_minutes": self.total_sleep_minutes,
            "total_debt_minutes": self.total_debt_minutes,
            "entries_used": self.entries_used,
            "entries_rejected": self.entries_rejected,
        }


def resolve_timezone(name: str) -> ZoneInfo:
    """IANA name -> ZoneInfo. Raises InvalidTimezoneError for unknown names."""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise InvalidTimezoneError(name) from exc


def debt_window(days: int, tz: tzinfo, now: datetime) -> tuple[date, date]:
    """The last `days` calendar days in `tz`, ending today (inclusive)."""
    today = now.astimezone(tz).date()
    return today - timedelta(days=days - 1), today


async def record_sleep_entry(
    session: AsyncSession,
    user_id: str,
    start_time: datetime,
    end_time: datetime,
    now: datetime | None = None,
) -> SleepEntryModel:
    """Validate and store one sleep interval for a user.

    Raises ValidationError (422) for an invalid interval and
    DuplicateSleepEntryError (409) when the same interval is already logged.
    """
    interval = {"start_time": start_time, "end_time": end_time}
    errors = validate_sleep_interval(interval, now=now)
    if errors:
        sleep_entries_total.labels(status="rejected").inc()
        for e in errors:
            invalid_intervals_total.labels(stage="write", rule=e.reason).inc()
        logger.info(
            "sleep_entry_rejected",
            user_id=user_id,
            reasons=[e.reason for e in errors],
        )
        raise ValidationError([e.as_violation() for e in errors])

    repo = SleepEntryRepository(session)
    entry = await repo.add(
        {
            "user_id": user_id,
            "start_time": start_time,
            "end_time": end_time,
            "duration_minutes": (end_time - start_time).total_seconds() / 60,
        }
    )
    if entry is None:
        await session.rollback()
        sleep_entries_total.labels(status="duplicate").inc()
        raise DuplicateSleepEntryError()

    await session.commit()
    sleep_entries_total.labels(status="created").inc()
    logger.info(
        "sleep_entry_created",
        user_id=user_id,
        entry_id=str(entry.id),
        duration_minutes=round(entry.duration_minutes, 2),
    )
    return entry


async def build_sleep_debt_report(
    session: AsyncSession,
    user: UserModel,
    *,
    days: int,
    tz_name: str,
    include_zero_sleep_days: bool = False,
    now: datetime | None = None,
) -> SleepDebtReport:
    """Aggregate the user's sleep over the last `days` calendar days in `tz_name`.

    Entries overlapping the window edges are clipped to it, so a night that
    began before the window only counts from the window's first midnight.
    """
    start_clock = time.monotonic()
    tz = resolve_timezone(tz_name)
    now = now or datetime.now(UTC)
    first_day, last_day = debt_window(days, tz, now)
    window_start = day_start(first_day, tz)
    window_end = day_start(last_day + timedelta(days=1), tz)

    rows = await SleepEntryRepository(session).list_overlapping(
        user.user_id, window_start, window_end
    )
    valid, rejected = partition_intervals((SleepInterval.from_row(r) for r in rows), now=now)

    clipped = [
        c for c in (clip_interval(i, window_start, window_end) for i in valid) if c is not None
    ]

    totals = daily_sleep_totals(clipped, tz)
    debt = debt_from_totals(
        totals,
        timedelta(minutes=user.sleep_goal_minutes),
        include_zero_sleep_days=include_zero_sleep_days,
        window=(first_day, last_day),
    )

    report = SleepDebtReport(
        user_id=user.user_id,
        timezone=tz_name,
        window_start=first_day,
        window_end=last_day,
        daily_goal_minutes=user.sleep_goal_minutes,
        include_zero_sleep_days=include_zero_sleep_days,
        days=[
            SleepDebtDay(
                date=day,
                sleep_minutes=minutes(totals.get(day, ZERO)),
                debt_minutes=minutes(deficit),
            )
            for day, deficit in debt.items()
        ],
        entries_used=len(clipped),
        entries_rejected=len(rejected),
    )

    sleep_debt_duration_seconds.observe(time.monotonic() - start_clock)
    logger.info(
        "sleep_debt_computed",
        user_id=user.user_id,
        days=days,
        timezone=tz_name,
        entries_used=report.entries_used,
        entries_rejected=report.entries_rejected,
        total_debt_minutes=report.total_debt_minutes,
    )
    return report
