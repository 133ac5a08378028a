"""FastAPI routers for accounts.

Endpoints:
- POST   /register
- POST   /login
- POST   /logout
- GET    /me
- GET    /api/users/{user_id}
- GET    /api/admin/users
- POST   /api/admin/users
- GET    /api/admin/users/{user_id}
- DELETE /api/admin/users/{user_id}
- GET    /api/admin/users/{user_id}/sleep-entries
"""

from __future__ import annotations

import time
from datetime import UTC, datetime
from typing import Any

import structlog
from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator
from sqlalchemy.ext.asyncio import AsyncSession

from accounts.repository import UserRepository
from accounts.security import (
    admin_user,
    clear_auth_cookie,
    create_access_token,
    current_user,
    ensure_self_or_admin,
    hash_password,
    set_auth_cookie,
    verify_password,
)
from shared.config import settings
from shared.database import get_session
from shared.exceptions import AuthenticationError, UserNotFoundError
from shared.metrics import api_requests_total, api_response_duration_seconds, auth_events_total
from shared.middleware import request_id_var
from sleepdebt.domain.orm import UserModel
from sleepdebt.repository import SleepEntryRepository

logger = structlog.get_logger()

router = APIRouter(tags=["accounts"])
admin_router = APIRouter(prefix="/api/admin", tags=["admin"])

# bcrypt only looks at the first 72 bytes
_BCRYPT_MAX_BYTES = 72


# --- Request models ---


class RegisterRequest(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=64)
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    password: str | None = Field(None, min_length=1)
    google_id: str | None = Field(None, min_length=1, max_length=255)
    github_id: str | None = Field(None, min_length=1, max_length=255)
    sleep_goal: int | None = Field(None, ge=1, le=1440, description="Minutes per day")

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, v: str | None) -> str | None:
        if v is not None and len(v.encode()) > _BCRYPT_MAX_BYTES:
            raise ValueError(f"password must be at most {_BCRYPT_MAX_BYTES} bytes")
        return v

    @model_validator(mode="after")
    def has_credential(self) -> "RegisterRequest":
        # Social-login accounts carry a provider id instead of a password
        if not (self.password or self.google_id or self.github_id):
            raise ValueError("one of password, google_id or github_id is required")
        return self


class AdminCreateUserRequest(RegisterRequest):
    is_admin: bool = False


class LoginRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


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


def _user_to_dict(user: UserModel) -> dict[str, Any]:
    """Public profile. Never includes the password hash."""
    return {
        "id": str(user.id),
        "user_id": user.user_id,
        "name": user.name,
        "email": user.email,
        "google_id": user.google_id,
        "github_id": user.github_id,
        "sleep_goal": user.sleep_goal_minutes,
        "is_admin": user.is_admin,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


async def _create_account(
    session: AsyncSession, body: RegisterRequest, is_admin: bool = False
) -> UserModel:
    record = {
        "user_id": body.user_id,
        "name": body.name,
        "email": str(body.email),
        "password_hash": await hash_password(body.password) if body.password else None,
        "google_id": body.google_id,
        "github_id": body.github_id,
        "sleep_goal_minutes": body.sleep_goal or settings.default_sleep_goal_minutes,
        "is_admin": is_admin,
    }
    user = await UserRepository(session).create(record)
    await session.commit()
    return user


# --- Account endpoints ---


@router.post("/register", status_code=201)
async def register(
    body: RegisterRequest,
    response: Response,
    session: AsyncSession = Depends(get_session),
):
    """Create an account and sign it in. 422 if user_id or email is taken."""
    start_time = time.monotonic()
    try:
        user = await _create_account(session, body)
    except Exception:
        auth_events_total.labels(event="register", outcome="failure").inc()
        raise

    token = create_access_token(user.user_id)
    set_auth_cookie(response, token)

    auth_events_total.labels(event="register", outcome="success").inc()
    logger.info("user_registered", user_id=user.user_id)
    _observe("register", "POST", 201, start_time)
    return {"data": {"user": _user_to_dict(user), "token": token}, "meta": _meta()}


@router.post("/login")
async def login(
    body: LoginRequest,
    response: Response,
    session: AsyncSession = Depends(get_session),
):
    start_time = time.monotonic()
    user = await UserRepository(session).get_by_user_id(body.user_id)

    if user is None:
        auth_events_total.labels(event="login", outcome="unknown_user").inc()
        raise AuthenticationError("Invalid User ID")
    if not user.password_hash:
        auth_events_total.labels(event="login", outcome="social_only").inc()
        raise AuthenticationError("This account requires social login")
    if not await verify_password(body.password, user.password_hash):
        auth_events_total.labels(event="login", outcome="bad_password").inc()
        logger.info("login_failed", user_id=body.user_id)
        raise AuthenticationError("Incorrect password")

    token = create_access_token(user.user_id)
    set_auth_cookie(response, token)

    auth_events_total.labels(event="login", outcome="success").inc()
    logger.info("user_logged_in", user_id=user.user_id)
    _observe("login", "POST", 200, start_time)
    return {"data": {"user_id": user.user_id, "token": token}, "meta": _meta()}


@router.post("/logout")
async def logout(response: Response):
    """Clear the auth cookie. Tokens are stateless, so there is nothing to revoke."""
    clear_auth_cookie(response)
    auth_events_total.labels(event="logout", outcome="success").inc()
    return {"data": {"message": "Logout successful"}, "meta": _meta()}


@router.get("/me")
async def me(user: UserModel = Depends(current_user)):
    start_time = time.monotonic()
    _observe("me", "GET", 200, start_time)
    return {"data": _user_to_dict(user), "meta": _meta()}


@router.get("/api/users/{user_id}")
async def get_user(
    user_id: str,
    session: AsyncSession = Depends(get_session),
    user: UserModel = Depends(current_user),
):
    start_time = time.monotonic()
    ensure_self_or_admin(user, user_id)
    target = user if user_id == user.user_id else await UserRepository(session).get_by_user_id(user_id)
    if target is None:
        raise UserNotFoundError(user_id)

    _observe("get_user", "GET", 200, start_time)
    return {"data": _user_to_dict(target), "meta": _meta()}


# --- Admin endpoints ---


@admin_router.get("/users")
async def admin_list_users(
    session: AsyncSession = Depends(get_session),
    _admin: UserModel = Depends(admin_user),
):
    start_time = time.monotonic()
    users = await UserRepository(session).list_all()
    _observe("admin_list_users", "GET", 200, start_time)
    return {"data": [_user_to_dict(u) for u in users], "meta": _meta()}


@admin_router.post("/users", status_code=201)
async def admin_create_user(
    body: AdminCreateUserRequest,
    session: AsyncSession = Depends(get_session),
    admin: UserModel = Depends(admin_user),
):
    start_time = time.monotonic()
    user = await _create_account(session, body, is_admin=body.is_admin)
    logger.info("user_created_by_admin", user_id=user.user_id, admin_id=admin.user_id)
    _observe("admin_create_user", "POST", 201, start_time)
    return {"data": _user_to_dict(user), "meta": _meta()}


@admin_router.get("/users/{user_id}")
async def admin_get_user(
    user_id: str,
    session: AsyncSession = Depends(get_session),
    _admin: UserModel = Depends(admin_user),
):
    start_time = time.monotonic()
    user = await UserRepository(session).get_by_user_id(user_id)
    if user is None:
        raise UserNotFoundError(user_id)
    _observe("admin_get_user", "GET", 200, start_time)
    return {"data": _user_to_dict(user), "meta": _meta()}


@admin_router.delete("/users/{user_id}")
async def admin_delete_user(
    user_id: str,
    session: AsyncSession = Depends(get_session),
    admin: UserModel = Depends(admin_user),
):
    start_time = time.monotonic()
    deleted = await UserRepository(session).delete(user_id)
    if not deleted:
        raise UserNotFoundError(user_id)
    await session.commit()
    logger.info("user_deleted", user_id=user_id, admin_id=admin.user_id)
    _observe("admin_delete_user", "DELETE", 200, start_time)
    return {"data": {"user_id": user_id, "deleted": True}, "meta": _meta()}


@admin_router.get("/users/{user_id}/sleep-entries")
async def admin_list_sleep_entries(
    user_id: str,
    session: AsyncSession = Depends(get_session),
    _admin: UserModel = Depends(admin_user),
):
    """Every stored entry for a user, invalid ones included."""
    start_time = time.monotonic()
    rows = await SleepEntryRepository(session).list_for_user(user_id)
    _observe("admin_list_sleep_entries", "GET", 200, start_time)
    return {
        "data": [
            {
                "id": str(r.id),
                "start_time": r.start_time.isoformat(),
                "end_time": r.end_time.isoformat(),
                "duration_minutes": round(r.duration_minutes, 2),
            }
            for r in rows
        ],
        "meta": _meta(),
    }
