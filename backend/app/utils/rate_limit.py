from starlette.requests import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from app.config import settings


def get_real_ip(request: Request) -> str:
    """Extract the real client IP, respecting TRUSTED_PROXY_COUNT.

    When TRUSTED_PROXY_COUNT is 0 (default), X-Forwarded-For is ignored and
    the direct connection IP is used. When > 0, the IP at position
    len(ips) - TRUSTED_PROXY_COUNT is picked so clients cannot spoof it.
    """
    if settings.TRUSTED_PROXY_COUNT > 0:
        forwarded = request.headers.get("X-Forwarded-For", "")
        if forwarded:
            ips = [ip.strip() for ip in forwarded.split(",")]
            index = max(0, len(ips) - settings.TRUSTED_PROXY_COUNT)
            return ips[index]
    return get_remote_address(request)


def _get_storage_uri() -> str:
    if settings.RATE_LIMIT_STORAGE_URI == "memory://" and settings.REDIS_URL:
        return settings.REDIS_URL
    return settings.RATE_LIMIT_STORAGE_URI


_is_dev = settings.APP_ENV == "development"

limiter = Limiter(
    key_func=get_real_ip,
    storage_uri=_get_storage_uri(),
    default_limits=["200/minute" if _is_dev else "60/minute"],
)

# Per-endpoint limits for sensitive operations
AUTH_RATE_LIMIT = "30/minute" if _is_dev else "5/minute"
WRITE_RATE_LIMIT = "60/minute" if _is_dev else "20/minute"
# Directory and listing endpoints, kept moderate against scraping
LIST_RATE_LIMIT = "100/minute" if _is_dev else "30/minute"
