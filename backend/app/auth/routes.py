import time
import uuid
from collections import defaultdict
from datetime import datetime, timedelta, timezone

import redis.asyncio as aioredis
import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from redis.exceptions import RedisError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.service import (
    create_access_token,
    create_refresh_token,
    decode_refresh_token,
    hash_password_async,
    verify_password_async,
)
from app.config import settings
from app.database import get_db
from app.dependencies import get_current_user
from app.metrics import USERS_REGISTERED
from app.models.enums import UserRole
from app.models.user import User
from app.schemas.auth import (
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    TokenResponse,
    UserResponse,
)
from app.utils.log_mask import mask_email
from app.utils.rate_limit import AUTH_RATE_LIMIT, limiter

# Dummy hash for constant-time login failure on unknown emails
_DUMMY_HASH = "$2b$12$LJ3m4ys3Lg2UxMHFSKDcOedTqJtFHSfVLO7GRFXlI0Xp9jHQvaFYe"

logger = structlog.get_logger()
router = APIRouter()

# Per-email failed login tracking, on top of the per-IP rate limit.
# Primary: Redis INCR + EXPIRE on "login_attempts:{email}", shared by all workers.
# Fallback: in-memory dict when REDIS_URL is unset or Redis is unreachable.
_LOGIN_ATTEMPTS: dict[str, list[datetime]] = defaultdict(list)
_MAX_LOGIN_ATTEMPTS = 5
_LOGIN_LOCKOUT_WINDOW_SECONDS = 15 * 60
_MAX_LOGIN_ATTEMPTS_ENTRIES = 10000
_REDIS_RETRY_SECONDS = 60

_redis_client: aioredis.Redis | None = None
_redis_retry_after: float = 0  # monotonic timestamp


async def _get_redis_client() -> aioredis.Redis | None:
    """Return the shared async Redis client, or None if Redis is not usable right now."""
    global _redis_client, _redis_retry_after
    if not settings.REDIS_URL or time.monotonic() < _redis_retry_after:
        return None
    if _redis_client is not None:
        return _redis_client

    client = aioredis.from_url(settings.REDIS_URL, decode_responses=True, socket_connect_timeout=2)
    try:
        await client.ping()
    except (RedisError, OSError):
        _redis_retry_after = time.monotonic() + _REDIS_RETRY_SECONDS
        logger.warning("redis_unavailable_for_login_lockout", retry_in_seconds=_REDIS_RETRY_SECONDS)
        await client.aclose()
        return None
    _redis_client = client
    return _redis_client


def _lockout_redis_key(email: str) -> str:
    return f"login_attempts:{email}"


async def _is_locked_out(email: str) -> bool:
    r = await _get_redis_client()
    if r is not None:
        try:
            count = await r.get(_lockout_redis_key(email))
            return count is not None and int(count) >= _MAX_LOGIN_ATTEMPTS
        except RedisError:
            logger.warning("login_lockout_redis_error", operation="get")

    cutoff = datetime.now(timezone.utc) - timedelta(seconds=_LOGIN_LOCKOUT_WINDOW_SECONDS)
    attempts = [t for t in _LOGIN_ATTEMPTS.get(email, []) if t > cutoff]
    if attempts:
        _LOGIN_ATTEMPTS[email] = attempts
    else:
        _LOGIN_ATTEMPTS.pop(email, None)
    return len(attempts) >= _MAX_LOGIN_ATTEMPTS


async def _record_failed_login(email: str) -> None:
    r = await _get_redis_client()
    if r is not None:
        try:
            key = _lockout_redis_key(email)
            pipe = r.pipeline()
            pipe.incr(key)
            pipe.expire(key, _LOGIN_LOCKOUT_WINDOW_SECONDS)
            await pipe.execute()
            return
        except RedisError:
            logger.warning("login_lockout_redis_error", operation="incr")

    if len(_LOGIN_ATTEMPTS) >= _MAX_LOGIN_ATTEMPTS_ENTRIES and email not in _LOGIN_ATTEMPTS:
        # Drop the entry with the oldest latest attempt
        oldest = min(_LOGIN_ATTEMPTS, key=lambda k: max(_LOGIN_ATTEMPTS[k]))
        del _LOGIN_ATTEMPTS[oldest]
    _LOGIN_ATTEMPTS[email].append(datetime.now(timezone.utc))


async def _clear_login_attempts(email: str) -> None:
    r = await _get_redis_client()
    if r is not None:
        try:
            await r.delete(_lockout_redis_key(email))
        except RedisError:
            logger.warning("login_lockout_redis_error", operation="delete")
    _LOGIN_ATTEMPTS.pop(email, None)


def _token_pair(user: User) -> TokenResponse:
    user_id = str(user.id)
    return TokenResponse(
        access_token=create_access_token(user_id),
        refresh_token=create_refresh_token(user_id),
    )


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(AUTH_RATE_LIMIT)
async def register(request: Request, response: Response, body: RegisterRequest, db: AsyncSession = Depends(get_db)):
    """Register a customer account. Professionals register through /professionals/register afterwards."""
    response.headers["Cache-Control"] = "no-store"

    result = await db.execute(select(User.id).where(User.email == body.email))
    if result.scalar_one_or_none():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An account with this email already exists",
        )

    user = User(
        email=body.email,
        password_hash=await hash_password_async(body.password),
        role=UserRole.CUSTOMER,
        first_name=body.first_name,
        last_name=body.last_name,
        phone_number=body.phone_number,
        is_active=True,
    )
    try:
        async with db.begin_nested():
            db.add(user)
            await db.flush()
    except IntegrityError:
        # Email taken between the check and the insert
        logger.info("registration_race_condition")
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An account with this email already exists",
        )

    USERS_REGISTERED.inc()
    logger.info("user_registered", user_id=str(user.id))
    return _token_pair(user)


@router.post("/login", response_model=TokenResponse)
@limiter.limit(AUTH_RATE_LIMIT)
async def login(request: Request, response: Response, body: LoginRequest, db: AsyncSession = Depends(get_db)):
    """Authenticate a user and return a JWT token pair."""
    response.headers["Cache-Control"] = "no-store"
    email = body.email.lower()
    if await _is_locked_out(email):
        logger.warning("login_locked_out", email=mask_email(email))
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many failed login attempts. Please try again later.",
        )

    result = await db.execute(select(User).where(User.email == body.email))
    user = result.scalar_one_or_none()

    if user is None:
        await verify_password_async(body.password, _DUMMY_HASH)
        await _record_failed_login(email)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )
    if not await verify_password_async(body.password, user.password_hash):
        await _record_failed_login(email)
        logger.info("login_failed", user_id=str(user.id))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account has been deactivated. Contact support for more information.",
        )

    await _clear_login_attempts(email)
    logger.info("user_login", user_id=str(user.id))
    return _token_pair(user)


@router.post("/refresh", response_model=TokenResponse)
@limiter.limit(AUTH_RATE_LIMIT)
async def refresh_tokens(request: Request, response: Response, body: RefreshRequest, db: AsyncSession = Depends(get_db)):
    """Exchange a refresh token for a new access + refresh token pair."""
    response.headers["Cache-Control"] = "no-store"
    user_id = decode_refresh_token(body.refresh_token)
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired refresh token",
        )

    result = await db.execute(select(User).where(User.id == _parse_uuid(user_id)))
    user = result.scalar_one_or_none()
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired refresh token",
        )

    logger.info("token_refreshed", user_id=user_id)
    return _token_pair(user)


def _parse_uuid(value: str) -> uuid.UUID:
    try:
        return uuid.UUID(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired refresh token",
        )


@router.get("/me", response_model=UserResponse)
async def get_me(user: User = Depends(get_current_user)):
    return user
