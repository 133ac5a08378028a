"""Boundary validation for sleep intervals and sleep goals.

Invalid intervals never reach the aggregator: writes are rejected with a
422, and anything invalid read back from storage is logged, counted and
dropped by `partition_intervals`.
Returns a list of ValidationError; empty list means valid.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import structlog

from shared.metrics import invalid_intervals_total
from sleepdebt.domain.models import SleepInterval

logger = structlog.get_logger()

MAX_EPISODE = timedelta(hours=24)
MAX_GOAL_MINUTES = 1440
# Tolerate client clocks running slightly ahead
_FUTURE_SKEW = timedelta(minutes=5)


@dataclass
class ValidationError:
    field: str
    rule: str
    reason: str
    value: Any

    def as_violation(self) -> dict[str, Any]:
        return {"field": self.field, "message": self.reason, "constraint": self.rule}


def validate_sleep_interval(
    record: dict[str, Any], now: datetime | None = None
) -> list[ValidationError]:
    """Validate a sleep interval before it is stored or aggregated.

    Returns an empty list if valid; otherwise returns all violations.
    """
    errors: list[ValidationError] = []
    now = now or datetime.now(UTC)

    # Rule 1: Required timestamps
    start = record.get("start_time")
    end = record.get("end_time")
    for name, value in (("start_time", start), ("end_time", end)):
        if value is None:
            errors.append(ValidationError(name, "required", f"missing_{name}", None))
        elif not isinstance(value, datetime):
            errors.append(ValidationError(name, "type", "not_a_timestamp", str(value)))

    if not isinstance(start, datetime) or not isinstance(end, datetime):
        return errors

    # Rule 2: Timezone on timestamps
    naive = False
    for name, value in (("start_time", start), ("end_time", end)):
        if value.tzinfo is None:
            errors.append(ValidationError(name, "timezone", "missing_timezone", str(value)))
            naive = True
    # Rules 3-5 compare instants; skip them for naive input
    if naive:
        return errors

    # Rule 3: Ordering (half-open interval must be non-empty)
    if end <= start:
        errors.append(
            ValidationError(
                "end_time",
                "ordering",
                "interval_order_invalid",
                {"start_time": str(start), "end_time": str(end)},
            )
        )

    # Rule 4: Single episode at most 24h
    elif end - start > MAX_EPISODE:
        errors.append(
            ValidationError(
                "end_time",
                "range",
                "sleep_duration_out_of_range",
                (end - start).total_seconds() / 60,
            )
        )

    # Rule 5: No future sleep
    if end > now + _FUTURE_SKEW:
        errors.append(ValidationError("end_time", "no_future", "future_end_time", str(end)))

    return errors


def validate_sleep_goal(goal_minutes: Any) -> list[ValidationError]:
    """Sleep goal must be a whole number of minutes in [1, 1440]."""
    if isinstance(goal_minutes, bool) or not isinstance(goal_minutes, int):
        return [ValidationError("sleep_goal", "type", "goal_not_integer", goal_minutes)]
    if goal_minutes < 1 or goal_minutes > MAX_GOAL_MINUTES:
        return [ValidationError("sleep_goal", "range", "goal_out_of_range", goal_minutes)]
    return []


def partition_intervals(
    intervals: Iterable[SleepInterval], now: datetime | None = None
) -> tuple[list[SleepInterval], list[tuple[SleepInterval, list[ValidationError]]]]:
    """Split stored intervals into (valid, rejected), logging each rejection."""
    valid: list[SleepInterval] = []
    rejected: list[tuple[SleepInterval, list[ValidationError]]] = []
    for interval in intervals:
        errors = validate_sleep_interval(interval.as_record(), now=now)
        if errors:
            rejected.append((interval, errors))
            for e in errors:
                invalid_intervals_total.labels(stage="read", rule=e.reason).inc()
            logger.warning(
                "sleep_interval_rejected",
                start_time=interval.start_time.isoformat(),
                end_time=interval.end_time.isoformat(),
                reasons=[e.reason for e in errors],
            )
            continue
        valid.append(interval)
    return valid, rejected
