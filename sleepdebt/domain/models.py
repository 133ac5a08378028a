"""Sleep interval domain model.

A SleepInterval is one continuous sleep episode, the half-open range
[start_time, end_time). Timestamps are timezone-aware instants; day
bucketing always happens in an explicitly passed zone, never the host's.

The model itself does not enforce ordering: records read back from storage
or built by callers are checked by `sleepdebt.domain.validation`, and the
aggregator refuses anything that slipped through.
"""

from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import BaseModel, ConfigDict

DEFAULT_DAILY_GOAL = timedelta(minutes=480)


class SleepInterval(BaseModel):
    """One logged sleep episode."""

    model_config = ConfigDict(frozen=True)

    start_time: datetime
    end_time: datetime

    @property
    def duration(self) -> timedelta:
        return self.end_time - self.start_time

    @property
    def duration_minutes(self) -> float:
        return self.duration.total_seconds() / 60

    @classmethod
    def from_epoch(cls, start: float, end: float) -> "SleepInterval":
        """Build from Unix timestamps in seconds."""
        return cls(
            start_time=datetime.fromtimestamp(start, tz=UTC),
            end_time=datetime.fromtimestamp(end, tz=UTC),
        )

    @classmethod
    def from_row(cls, row: Any) -> "SleepInterval":
        """Build from any object exposing start_time / end_time (ORM rows)."""
        return cls(start_time=row.start_time, end_time=row.end_time)

    def as_record(self) -> dict[str, Any]:
        return {"start_time": self.start_time, "end_time": self.end_time}


def minutes(value: timedelta) -> float:
    """timedelta -> minutes, rounded for JSON output."""
    return round(value.total_seconds() / 60, 2)
