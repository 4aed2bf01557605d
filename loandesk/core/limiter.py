from slowapi import Limiter
from slowapi.util import get_remote_address

from loandesk.core.settings import settings

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[f"{settings.rate_limit_per_minute}/minute"],
    storage_uri=settings.redis_url,
    strategy="moving-window",
)


def auth_limit() -> str:
    return f"{settings.rate_limit_per_minute}/minute"


def upload_limit() -> str:
    """Multipart submissions and document uploads buffer whole files in memory."""
    return f"{settings.upload_rate_limit_per_minute}/minute"


__all__ = ["auth_limit", "limiter", "upload_limit"]
