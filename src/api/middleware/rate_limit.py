"""Rate limiting: per client address by default, per user for gate actions."""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from src.models.errors import ErrorResponse

logger = logging.getLogger(__name__)

GATE_ACTION_LIMIT = "20/minute"

limiter = Limiter(key_func=get_remote_address)


def actor_or_address(request: Request) -> str:
    """Bucket by the authorized actor, falling back to the client address.

    ``require_roles`` stores the actor on ``request.state``; dependencies run
    before the limit check, so users behind one proxy get separate budgets.
    """
    actor = getattr(request.state, "actor", None)
    if actor is not None:
        return f"user:{actor.username}"
    return get_remote_address(request)


async def custom_rate_limit_handler(request: Request, exc: RateLimitExceeded):
    """Return consistent JSON error format for rate limit exceeded."""
    logger.warning(
        "Rate limit %s exceeded by %s on %s",
        exc.detail, actor_or_address(request), request.url.path,
    )
    body = ErrorResponse(
        detail=f"Rate limit exceeded ({exc.detail}). Please try again later.",
        error_code="rate_limited",
    )
    return JSONResponse(status_code=429, content=body.model_dump())


def setup_rate_limiting(app):
    """Configure rate limiting for FastAPI app."""
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, custom_rate_limit_handler)
    return limiter
