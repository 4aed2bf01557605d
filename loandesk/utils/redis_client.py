from functools import lru_cache

from redis.asyncio import Redis

from loandesk.core.settings import settings


@lru_cache(maxsize=1)
def get_redis_client() -> Redis:
    """Shared client for login lockouts and refresh-token reuse markers."""
    return Redis.from_url(settings.redis_url, decode_responses=True, health_check_interval=30)


async def close_redis_client() -> None:
    if get_redis_client.cache_info().currsize == 0:
        return
    await get_redis_client().aclose()
    get_redis_client.cache_clear()
