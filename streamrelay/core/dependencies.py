"""Dependency injection utilities for FastAPI

Every shared object is built in the app lifespan (or passed to
``create_app``) and stored on ``app.state``; these getters only read it back.
"""

import logging

from fastapi import HTTPException, Request

from ..services.signature import SignatureVerifier
from .database import DatabaseManager
from .metrics import RelayMetrics
from .rate_limiter import GLOBAL_KEY, RateLimiters, TokenBucketLimiter
from .webhook_guard import IdempotencyGuard

logger = logging.getLogger(__name__)


# ============================================
# Shared state
# ============================================


def get_limiters(request: Request) -> RateLimiters:
    return request.app.state.limiters


def get_guard(request: Request) -> IdempotencyGuard:
    return request.app.state.guard


def get_verifier(request: Request) -> SignatureVerifier:
    return request.app.state.verifier


def get_metrics(request: Request) -> RelayMetrics:
    return request.app.state.metrics


def get_database_manager(request: Request) -> DatabaseManager | None:
    return getattr(request.app.state, "db_manager", None)


# ============================================
# Rate limiting
# ============================================


def caller_key(request: Request) -> str:
    """Authenticated identity when an upstream layer set one, else the client address."""
    user_id = getattr(request.state, "user_id", None)
    if user_id:
        return f"user:{user_id}"
    host = request.client.host if request.client else "unknown"
    return f"ip:{host}"


def check_limit(request: Request, limiter: TokenBucketLimiter, key: str) -> None:
    """Raise 429 with a Retry-After hint when *limiter* rejects *key*."""
    decision = limiter.check(key)
    if decision.allowed:
        return
    get_metrics(request).record_rate_limited(limiter.name)
    logger.warning(f"Rate limit '{limiter.name}' exceeded for {key}, retry in {decision.retry_after}s")
    raise HTTPException(
        status_code=429,
        detail="Rate limit exceeded",
        headers={"Retry-After": str(decision.retry_after)},
    )


def enforce_api_rate_limits(request: Request) -> None:
    """Global backstop, then the per-caller limiter, for non-webhook routes."""
    limiters = get_limiters(request)
    check_limit(request, limiters.global_, GLOBAL_KEY)
    check_limit(request, limiters.caller, caller_key(request))
