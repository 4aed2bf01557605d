"""Redis-backed login throttling and refresh-token reuse tracking.

Every helper degrades open when Redis is unreachable: authentication keeps
working, only the throttling is lost.
"""

import logging
from datetime import datetime, timezone

from fastapi import HTTPException, status
from redis.exceptions import RedisError

from loandesk.core.settings import settings
from loandesk.utils.redis_client import get_redis_client

logger = logging.getLogger(__name__)


def _ttl(seconds: int) -> int:
    return max(1, seconds)


def _too_many(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail={"code": "rate_limited", "message": detail},
    )


async def rate_limit(key: str, limit: int, window_seconds: int) -> None:
    redis = get_redis_client()
    try:
        pipe = redis.pipeline()
        pipe.incr(key)
        pipe.expire(key, window_seconds)
        count, _ = await pipe.execute()
    except RedisError:
        logger.warning("Login rate limit skipped; redis unavailable", exc_info=True)
        return
    if count > limit:
        raise _too_many("Rate limit exceeded")


async def check_lockout(identifier: str) -> None:
    redis = get_redis_client()
    try:
        locked_until = await redis.get(f"lock:{identifier}")
    except RedisError:
        logger.warning("Lockout check skipped; redis unavailable", exc_info=True)
        return
    if locked_until:
        raise _too_many("Too many login attempts; try later")


async def register_login_attempt(identifier: str, success: bool) -> None:
    redis = get_redis_client()
    fail_key = f"fail:{identifier}"
    lock_key = f"lock:{identifier}"
    lockout_seconds = _ttl(settings.login_lockout_minutes * 60)
    try:
        if success:
            await redis.delete(fail_key, lock_key)
            return
        attempts = await redis.incr(fail_key)
        await redis.expire(fail_key, lockout_seconds)
        if attempts >= settings.login_attempt_limit:
            await redis.setex(lock_key, lockout_seconds, 1)
            await redis.delete(fail_key)
            logger.warning("Login locked after %s failed attempts", attempts)
    except RedisError:
        logger.warning("Login attempt not recorded; redis unavailable", exc_info=True)


async def enforce_login_limits(ip: str, email: str) -> None:
    await rate_limit(f"ip:{ip}", limit=settings.rate_limit_per_minute, window_seconds=60)
    await rate_limit(f"email:{email}", limit=settings.rate_limit_per_minute, window_seconds=60)
    await check_lockout(email)


async def is_refresh_used(jti: str) -> bool:
    redis = get_redis_client()
    try:
        return bool(await redis.get(f"refresh_used:{jti}"))
    except RedisError:
        return False


async def mark_refresh_used(jti: str, expires_at: datetime) -> None:
    ttl = int((expires_at - datetime.now(timezone.utc)).total_seconds())
    if ttl <= 0:
        return
    redis = get_redis_client()
    try:
        await redis.setex(f"refresh_used:{jti}", ttl, 1)
    except RedisError:
        logger.warning("Refresh token reuse marker not stored", exc_info=True)
