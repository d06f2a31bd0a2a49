"""
Rate Limiting Middleware

Fixed-window counters in Redis, keyed per user (or client IP) and path.
Fails open when Redis is unavailable.
"""
import time
import logging
from typing import Tuple
from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from core.config import settings
from core.cache import get_redis_client
from core.security import decode_access_token

logger = logging.getLogger(__name__)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-identity, per-endpoint request limits."""

    def __init__(self, app, default_limit: int = 60, window: int = 60):
        super().__init__(app)
        self.default_limit = default_limit
        self.window = window

        # Tighter limits for endpoints that fan out to paid third parties
        self.endpoint_limits = {
            "/v1/ai/chat": 10,
            "/v1/form/analyze": 5,
            "/v1/auth/login": 10,
            "/v1/auth/register": 5,
            "/v1/admin": 50,
        }
        # Webhooks are authenticated by signature, not by caller identity
        self.exempt_prefixes = ("/v1/billing/webhooks/",)

    async def dispatch(self, request: Request, call_next):
        if not settings.RATE_LIMIT_ENABLED:
            return await call_next(request)

        path = request.url.path
        if path in ("/health", "/health/detailed", "/docs", "/openapi.json", "/redoc"):
            return await call_next(request)
        if path.startswith(self.exempt_prefixes):
            return await call_next(request)

        identity = self._get_identity(request)
        limit = self._get_endpoint_limit(path)

        allowed, remaining, reset_time = self._check_rate_limit(
            identity=identity,
            endpoint=path,
            limit=limit,
            window=self.window
        )

        if not allowed:
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    "detail": "Rate limit exceeded",
                    "limit": limit,
                    "window": self.window,
                    "reset_at": reset_time
                },
                headers={
                    "X-RateLimit-Limit": str(limit),
                    "X-RateLimit-Remaining": str(remaining),
                    "X-RateLimit-Reset": str(reset_time),
                    "Retry-After": str(max(0, int(reset_time - time.time())))
                }
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(limit)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        response.headers["X-RateLimit-Reset"] = str(reset_time)

        return response

    def _get_identity(self, request: Request) -> str:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            payload = decode_access_token(auth_header.split(" ", 1)[1])
            if payload and payload.get("sub"):
                return f"user:{payload.get('sub')}"

        client_ip = request.client.host if request.client else "unknown"
        return f"ip:{client_ip}"

    def _get_endpoint_limit(self, path: str) -> int:
        if path in self.endpoint_limits:
            return self.endpoint_limits[path]

        for endpoint, limit in self.endpoint_limits.items():
            if path.startswith(endpoint):
                return limit

        return self.default_limit

    def _check_rate_limit(
        self,
        identity: str,
        endpoint: str,
        limit: int,
        window: int
    ) -> Tuple[bool, int, int]:
        """
        Returns:
            (allowed, remaining, reset_time)
        """
        redis_client = get_redis_client()

        if not redis_client:
            return True, limit, int(time.time()) + window

        key = f"rate_limit:{identity}:{endpoint}"

        try:
            new_count = redis_client.incr(key)
            if new_count == 1:
                redis_client.expire(key, window)

            ttl = redis_client.ttl(key)
            reset_time = int(time.time()) + (ttl if ttl > 0 else window)

            if new_count > limit:
                return False, 0, reset_time
            return True, max(0, limit - new_count), reset_time

        except Exception as e:
            logger.error(f"Rate limit check error: {e}")
            return True, limit, int(time.time()) + window
