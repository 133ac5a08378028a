"""FastAPI router for the Sleep domain.

Endpoints:
- POST   /api/sleep/add
- GET    /api/sleep/debt/{user_id}
- GET    /api/sleep/{user_id}
- DELETE /api/sleep/{user_id}/entries/{entry_id}
- GET    /api/sleep/{user_id}/sleep-goal
- PUT    /api/sleep/{user_id}/sleep-goal
"""

from __future__ import annotations

import time
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

if TYPE_CHECKING:
    from sleepdebt.domain.orm import SleepEntryModel

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from accounts.repository import UserRepository
from accounts.security import current_user, ensure_self_or_admin
from shared.config import settings
from shared.database import get_session
from shared.exceptions import NotFoundError, UserNotFoundError, ValidationError
from shared.metrics import api_requests_total, api_response_duration_seconds
from shared.middleware import request_id_var
from sleepdebt.domain.models import SleepInterval
from sleepdebt.domain.orm import UserModel
from sleepdebt.domain.validation import partition_intervals, validate_sleep_goal
from sleepdebt.repository import SleepEntryRepository
from sleepdebt.service import build_sleep_debt_report, record_sleep_entry

router = APIRouter(prefix="/api/sleep", tags=["sleep"])


# --- Request models ---


class SleepEntryRequest(BaseModel):
    """Request body for logging a sleep interval.

    Timestamps accept ISO-8601 with an offset or Unix epoch seconds.
    """

    user_id: str | None = Field(None, description="Defaults to the authenticated user")
    start_time: datetime
    end_time: datetime


class SleepGoalRequest(BaseModel):
    sleep_goal: int = Field(..., description="Daily sleep goal in minutes")


# --- Response helpers ---


def _meta() -> dict[str, Any]:
    return {
        "request_id": request_id_var.get(""),
        "timestamp": datetime.now(UTC).isoformat(),
        "api_version": settings.api_version,
    }


def _observe(endpoint: str, method: str, status_code: int, start_time: float) -> None:
    api_requests_total.labels(endpoint=endpoint, method=method, status_code=str(status_code)).inc()
    api_response_duration_seconds.labels(endpoint=endpoint).observe(time.monotonic() - start_time)


def _entry_to_dict(row: SleepEntryModel) -> dict[str, Any]:
    return {
        "id": str(row.id),
        "user_id": row.user_id,
        "start_time": row.start_time.isoformat(),
        "end_time": row.end_time.isoformat(),
        "duration_minutes": round(row.duration_minutes, 2),
    }


async def _get_user_or_404(session: AsyncSession, user_id: str) -> UserModel:
    user = await UserRepository(session).get_by_user_id(user_id)
    if user is None:
        raise UserNotFoundError(user_id)
    return user


# --- Endpoints ---


@router.post("/add", status_code=201)
async def add_sleep_entry(
    body: SleepEntryRequest,
    session: AsyncSession = Depends(get_session),
    user: UserModel = Depends(current_user),
):
    """Log one sleep interval. 409 if the exact interval is already logged."""
    start_time = time.monotonic()
    user_id = body.user_id or user.user_id
    ensure_self_or_admin(user, user_id)
    if user_id != user.user_id:
        await _get_user_or_404(session, user_id)

    entry = await record_sleep_entry(session, user_id, body.start_time, body.end_time)

    _observe("add_entry", "POST", 201, start_time)
    return {"data": _entry_to_dict(entry), "meta": _meta()}


@router.get("/debt/{user_id}")
async def get_sleep_debt(
    user_id: str,
    session: AsyncSession = Depends(get_session),
    user: UserModel = Depends(current_user),
    days: int = Query(settings.debt_window_days, ge=1, le=settings.max_debt_window_days),
    tz: str = Query(settings.default_timezone, description="IANA time zone for day boundaries"),
    include_zero_sleep_days: bool = Query(False),
):
    """Per-day sleep debt for the last `days` calendar days (in `tz`)."""
    start_time = time.monotonic()
    ensure_self_or_admin(user, user_id)
    target = user if user_id == user.user_id else await _get_user_or_404(session, user_id)

    report = await build_sleep_debt_report(
        session,
        target,
        days=days,
        tz_name=tz,
        include_zero_sleep_days=include_zero_sleep_days,
    )

    _observe("sleep_debt", "GET", 200, start_time)
    return {"data": report.as_dict(), "meta": _meta()}


@router.get("/{user_id}")
async def list_sleep_entries(
    user_id: str,
    session: AsyncSession = Depends(get_session),
    user: UserModel = Depends(current_user),
):
    """Valid sleep entries for a user, newest first. 404 when there are none."""
    start_time = time.monotonic()
    ensure_self_or_admin(user, user_id)

    rows = await SleepEntryRepository(session).list_for_user(user_id)
    valid, _ = partition_intervals(SleepInterval.from_row(r) for r in rows)
    # (user_id, start_time, end_time) is unique, so the interval identifies the row
    keep = {(i.start_time, i.end_time) for i in valid}
    entries = [_entry_to_dict(r) for r in rows if (r.start_time, r.end_time) in keep]

    if not entries:
        raise NotFoundError("No valid sleep records found")

    _observe("list_entries", "GET", 200, start_time)
    return {"data": entries, "meta": _meta()}


@router.delete("/{user_id}/entries/{entry_id}")
async def delete_sleep_entry(
    user_id: str,
    entry_id: UUID,
    session: AsyncSession = Depends(get_session),
    user: UserModel = Depends(current_user),
):
    start_time = time.monotonic()
    ensure_self_or_admin(user, user_id)

    deleted = await SleepEntryRepository(session).delete(user_id, entry_id)
    if not deleted:
        raise NotFoundError(f"Sleep entry '{entry_id}' not found")
    await session.commit()

    _observe("delete_entry", "DELETE", 200, start_time)
    return {"data": {"id": str(entry_id), "deleted": True}, "meta": _meta()}


@router.get("/{user_id}/sleep-goal")
async def get_sleep_goal(
    user_id: str,
    session: AsyncSession = Depends(get_session),
    user: UserModel = Depends(current_user),
):
    """Daily sleep goal in minutes."""
    start_time = time.monotonic()
    ensure_self_or_admin(user, user_id)
    target = user if user_id == user.user_id else await _get_user_or_404(session, user_id)

    _observe("sleep_goal", "GET", 200, start_time)
    return {"data": {"sleep_goal": target.sleep_goal_minutes}, "meta": _meta()}


@router.put("/{user_id}/sleep-goal")
async def update_sleep_goal(
    user_id: str,
    body: SleepGoalRequest,
    session: AsyncSession = Depends(get_session),
    user: UserModel = Depends(current_user),
):
    start_time = time.monotonic()
    ensure_self_or_admin(user, user_id)

    errors = validate_sleep_goal(body.sleep_goal)
    if errors:
        raise ValidationError([e.as_violation() for e in errors])

    updated = await UserRepository(session).update_sleep_goal(user_id, body.sleep_goal)
    if updated is None:
        raise UserNotFoundError(user_id)
    await session.commit()

    _observe("sleep_goal", "PUT", 200, start_time)
    return {
        "data": {"user_id": updated.user_id, "sleep_goal": updated.sleep_goal_minutes},
        "meta": _meta(),
    }
