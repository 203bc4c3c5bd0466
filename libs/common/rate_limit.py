"""Rate limiting for member-facing money endpoints.

Uses slowapi. State lives in Redis when ``RATE_LIMIT_STORAGE_URI`` points at
it, otherwise in process memory.
"""

from functools import lru_cache
from typing import Callable

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from libs.common.config import get_settings


def _get_client_ip(request: Request) -> str:
    """
    Get client IP from request, honouring X-Forwarded-For from the gateway.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return get_remote_address(request)


def _get_user_or_ip(request: Request) -> str:
    """Rate limit by user id when the auth dependency stored one, else by IP."""
    user = getattr(request.state, "user", None)
    if user is not None:
        return f"user:{user.user_id}"
    return f"ip:{_get_client_ip(request)}"


@lru_cache
def get_limiter() -> Limiter:
    settings = get_settings()
    return Limiter(
        key_func=_get_user_or_ip,
        default_limits=["100/minute"],
        storage_uri=settings.RATE_LIMIT_STORAGE_URI or "memory://",
        strategy="fixed-window",
        enabled=settings.RATE_LIMIT_ENABLED,
    )


limiter = get_limiter()


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """
    Return the ledger error envelope with a Retry-After header.
    """
    return JSONResponse(
        status_code=429,
        content={
            "success": False,
            "code": "rate_limited",
            "error": f"Rate limit exceeded: {exc.detail}",
        },
        headers={"Retry-After": str(getattr(exc, "retry_after", 60))},
    )


def money_limit(func: Callable) -> Callable:
    """Strict limit for endpoints that create money movements (5/minute)."""
    return limiter.limit("5/minute")(func)
