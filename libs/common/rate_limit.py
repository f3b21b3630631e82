"""slowapi limiter for the store API.

Authenticated calls are keyed by user id (``get_current_user`` puts the user
on ``request.state``); anonymous ones by the first address in
``X-Forwarded-For`` or the peer address. Tier limits come from settings so the
payment tier can be tightened per deployment.
"""

from functools import lru_cache
from typing import Callable

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from libs.common.config import get_settings
from libs.common.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()


def rate_limit_key(request: Request) -> str:
    user = getattr(request.state, "user", None)
    if user is not None:
        return f"user:{user.user_id}"

    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return f"ip:{forwarded.split(',')[0].strip()}"
    return f"ip:{get_remote_address(request)}"


@lru_cache
def get_limiter() -> Limiter:
    return Limiter(
        key_func=rate_limit_key,
        default_limits=[settings.RATE_LIMIT_DEFAULT],
        storage_uri=settings.RATE_LIMIT_STORAGE_URI,
        strategy="fixed-window",
        enabled=settings.RATE_LIMIT_ENABLED,
    )


limiter = get_limiter()


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """429 in the same ``{"detail", "code"}`` shape as the store's own errors."""
    logger.warning(
        "Rate limit hit on %s %s (%s)",
        request.method,
        request.url.path,
        rate_limit_key(request),
    )
    return JSONResponse(
        status_code=429,
        content={
            "detail": f"Too many requests: {exc.detail}",
            "code": "RATE_LIMIT_EXCEEDED",
        },
        headers={"Retry-After": "60"},
    )


def payment_limit(func: Callable) -> Callable:
    """Snap token creation; every call opens a gateway transaction."""
    return limiter.limit(settings.RATE_LIMIT_PAYMENT)(func)


def api_limit(func: Callable) -> Callable:
    return limiter.limit(settings.RATE_LIMIT_DEFAULT)(func)
