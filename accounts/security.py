"""Password hashing, JWT issuance and request authentication.

Tokens are HS256 JWTs carrying the account's user_id, valid for
`settings.jwt_expiry_days`. They travel in an httpOnly cookie for browsers
and are also accepted as `Authorization: Bearer <token>` for API clients.
"""

from datetime import UTC, datetime, timedelta
from typing import Any

import bcrypt
import jwt
import structlog
from fastapi import Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from accounts.repository import UserRepository
from shared.config import settings
from shared.database import get_session
from shared.exceptions import AuthenticationError, ForbiddenError
from sleepdebt.domain.orm import UserModel

logger = structlog.get_logger()


# --- Passwords ---


def _hash(password: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    return bcrypt.hashpw(password.encode(), salt).decode()


def _check(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(password.encode(), password_hash.encode())


async def hash_password(password: str) -> str:
    """bcrypt is CPU-bound; keep it off the event loop."""
    return await run_in_threadpool(_hash, password)


async def verify_password(password: str, password_hash: str) -> bool:
    return await run_in_threadpool(_check, password, password_hash)


# --- Tokens ---


def create_access_token(user_id: str, now: datetime | None = None) -> str:
    now = now or datetime.now(UTC)
    payload = {
        "sub": user_id,
        "userId": user_id,
        "iat": now,
        "exp": now + timedelta(days=settings.jwt_expiry_days),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict[str, Any]:
    """Verify signature and expiry. Raises ForbiddenError on any invalid token."""
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError as exc:
        raise ForbiddenError("Forbidden: Token has expired") from exc
    except jwt.InvalidTokenError as exc:
        raise ForbiddenError("Forbidden: Invalid token") from exc
    if not claims.get("sub"):
        raise ForbiddenError("Forbidden: Invalid token")
    return claims


def set_auth_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        settings.cookie_name,
        token,
        httponly=True,
        secure=settings.is_production,
        samesite="strict",
        max_age=settings.jwt_expiry_days * 24 * 60 * 60,
    )


def clear_auth_cookie(response: Response) -> None:
    response.delete_cookie(
        settings.cookie_name,
        httponly=True,
        secure=settings.is_production,
        samesite="strict",
    )


def _extract_token(request: Request) -> str | None:
    token = request.cookies.get(settings.cookie_name)
    if token:
        return token
    auth = request.headers.get("Authorization", "")
    if auth.startswith("Bearer "):
        return auth[len("Bearer ") :].strip() or None
    return None


# --- Dependencies ---


async def current_user(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> UserModel:
    """Resolve the authenticated account. 401 without a token, 403 for a bad one."""
    token = _extract_token(request)
    if token is None:
        raise AuthenticationError("Unauthorized: No token provided")

    claims = decode_access_token(token)
    user = await UserRepository(session).get_by_user_id(claims["sub"])
    if user is None:
        logger.warning("token_for_unknown_user", user_id=claims["sub"])
        raise ForbiddenError("Forbidden: Invalid token")

    structlog.contextvars.bind_contextvars(user_id=user.user_id)
    return user


async def admin_user(user: UserModel = Depends(current_user)) -> UserModel:
    if not user.is_admin:
        raise ForbiddenError("Forbidden: Admin access required")
    return user


def ensure_self_or_admin(user: UserModel, user_id: str) -> None:
    """Accounts may only read and change their own data, admins anyone's."""
    if user.user_id != user_id and not user.is_admin:
        raise ForbiddenError(f"Forbidden: Not allowed to access user '{user_id}'")
