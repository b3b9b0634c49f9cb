from slowapi import Limiter
from slowapi.util import get_remote_address

from app.core.settings import settings


def _storage_uri() -> str:
    # Tests run without Redis
    if settings.environment == "test":
        return "memory://"
    return settings.redis_url


limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[f"{settings.rate_limit_per_minute}/minute"],
    storage_uri=_storage_uri(),
    headers_enabled=False,
)

__all__ = ["limiter"]
