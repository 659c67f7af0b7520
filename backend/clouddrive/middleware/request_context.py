"""Request context middleware.

One pass per request:
- propagate or generate ``X-Request-ID`` and bind it to log records
- throttle each client with a token bucket (``RATE_LIMIT_PER_MINUTE``)
- time the request and emit one structured access log line

``check_rate_limit`` is a pure function over a bucket dict so it can be
exercised without the ASGI stack.
"""

import hashlib
import logging
import threading
import time
import uuid
from typing import Dict, Optional, Tuple

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from ..core.config import settings
from ..core.logging_config import request_id_var
from ..exceptions import ErrorCode

logger = logging.getLogger(__name__)

Bucket = Dict[str, Tuple[float, float]]

# {client_key: (available_tokens, last_refill)}
_rate_buckets: Bucket = {}
_rate_lock = threading.Lock()

_EVICT_AGE = 120.0
_EVICT_EVERY = 100
_calls_since_sweep = 0

_EXEMPT_PATHS = frozenset({"/", "/health", "/docs", "/redoc", "/openapi.json"})


def check_rate_limit(
    bucket: Bucket,
    key: str,
    max_per_minute: int,
    now: Optional[float] = None,
) -> Tuple[bool, float]:
    """Take one token for *key*.

    Returns:
        ``(allowed, retry_after)``; *retry_after* is the seconds until the
        next token when the request is refused, otherwise 0.0.
    """
    if max_per_minute <= 0:
        return True, 0.0
    if now is None:
        now = time.monotonic()

    refill_per_second = max_per_minute / 60.0
    tokens, last_refill = bucket.get(key, (float(max_per_minute), now))
    tokens = min(float(max_per_minute), tokens + (now - last_refill) * refill_per_second)

    if tokens >= 1.0:
        bucket[key] = (tokens - 1.0, now)
        return True, 0.0

    bucket[key] = (tokens, now)
    return False, (1.0 - tokens) / refill_per_second


def evict_stale(bucket: Bucket, now: float, max_age: float = _EVICT_AGE) -> int:
    """Drop buckets idle for longer than *max_age* seconds. Returns how many went."""
    stale = [key for key, (_, last) in bucket.items() if now - last > max_age]
    for key in stale:
        del bucket[key]
    return len(stale)


def _client_key(request: Request) -> str:
    """Session token when present, otherwise the client address.

    Tokens are hashed so raw credentials never sit in the bucket table.
    """
    auth = request.headers.get("authorization", "")
    if auth.lower().startswith("bearer ") and len(auth) > 7:
        return "t:" + hashlib.sha256(auth[7:].encode()).hexdigest()[:16]
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return "ip:" + forwarded.split(",")[0].strip()
    if request.client:
        return "ip:" + request.client.host
    return "ip:unknown"


def _take_token(key: str) -> Tuple[bool, float]:
    global _calls_since_sweep
    now = time.monotonic()
    with _rate_lock:
        _calls_since_sweep += 1
        if _calls_since_sweep >= _EVICT_EVERY:
            _calls_since_sweep = 0
            evict_stale(_rate_buckets, now)
        return check_rate_limit(_rate_buckets, key, settings.rate_limit_per_minute, now)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Request id, rate limiting, timing and access logging."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        rid = request.headers.get("x-request-id") or uuid.uuid4().hex[:16]
        request_id_var.set(rid)
        path = request.url.path

        if path not in _EXEMPT_PATHS:
            key = _client_key(request)
            allowed, retry_after = _take_token(key)
            if not allowed:
                logger.warning(
                    "Rate limit exceeded",
                    extra={"client": key, "path": path, "retry_after": round(retry_after, 1)},
                )
                return JSONResponse(
                    status_code=429,
                    content={
                        "error": ErrorCode.RATE_LIMITED.value,
                        "message": "Too many requests",
                        "details": {"retry_after": round(retry_after, 1)},
                    },
                    headers={"Retry-After": str(int(retry_after) + 1), "X-Request-ID": rid},
                )

        start = time.monotonic()
        response = await call_next(request)
        duration_ms = round((time.monotonic() - start) * 1000, 1)

        response.headers["X-Request-ID"] = rid
        response.headers["X-Response-Time"] = f"{duration_ms}ms"

        logger.info(
            f"{request.method} {path} {response.status_code}",
            extra={
                "method": request.method,
                "path": path,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )
        return response
