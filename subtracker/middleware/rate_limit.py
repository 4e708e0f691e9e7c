from __future__ import annotations

import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from subtracker.api.errors import error_response
from subtracker.core.auth import decode_bearer
from subtracker.core.config import get_settings
from subtracker.metrics import observe_rate_limited


SUBSCRIPTIONS_PATH_PREFIX = "/api/v1/subscriptions"
MUTATING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


@dataclass
class _Bucket:
    tokens: float
    refilled_at: float


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    retry_after: int = 0


class TokenBucketLimiter:
    """Per-key token buckets that refill continuously up to `capacity` over `window_seconds`."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._buckets: dict[str, _Bucket] = {}

    def take(self, key: str, capacity: int, window_seconds: int) -> RateDecision:
        if capacity <= 0:
            return RateDecision(False, window_seconds)

        now = self._clock()
        rate = capacity / float(window_seconds)
        with self._lock:
            bucket = self._buckets.setdefault(key, _Bucket(tokens=float(capacity), refilled_at=now))
            bucket.tokens = min(float(capacity), bucket.tokens + max(0.0, now - bucket.refilled_at) * rate)
            bucket.refilled_at = now
            if bucket.tokens < 1.0:
                return RateDecision(False, max(1, math.ceil((1.0 - bucket.tokens) / rate)))
            bucket.tokens -= 1.0
        return RateDecision(True)

    def clear(self) -> None:
        with self._lock:
            self._buckets.clear()


_limiter = TokenBucketLimiter()


def is_subscription_mutation(request: Request) -> bool:
    return request.method.upper() in MUTATING_METHODS and request.url.path.startswith(SUBSCRIPTIONS_PATH_PREFIX)


class SubscriptionMutationRateLimitMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        settings = get_settings()
        if settings.rate_limit_disabled or not is_subscription_mutation(request):
            return await call_next(request)

        user = decode_bearer(request.headers.get("authorization"))
        decision = _limiter.take(
            user.sub,
            capacity=settings.rate_limit_subscription_mutations_per_minute,
            window_seconds=settings.rate_limit_window_seconds,
        )
        if decision.allowed:
            return await call_next(request)

        observe_rate_limited(request.method.upper())
        return error_response(
            request,
            status_code=429,
            code="subscription_rate_limited",
            message="too many subscription changes, retry later",
            details={"retry_after_seconds": decision.retry_after},
            headers={"Retry-After": str(decision.retry_after)},
        )


def reset_rate_limiter() -> None:
    _limiter.clear()
