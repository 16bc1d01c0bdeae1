"""Rate limiting middleware for FastAPI.

Protects the copilot chat endpoint (every request is a paid model call)
from abuse and cost attacks. Uses a simple in-memory sliding window.
"""

import logging
import re
import time
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from config import Settings, get_settings
from responses import ResponseCode, error_dict

logger = logging.getLogger(__name__)

# POST /api/jobs/{job_id}/ai/chat
RATE_LIMITED_PATH = re.compile(r"^/api/jobs/[^/]+/ai/chat/?$")


@dataclass
class RateLimitConfig:
    """Configuration for rate limiting."""

    enabled: bool = True
    requests_per_minute: int = 20
    requests_per_hour: int = 200
    burst_limit: int = 5  # Max requests in 10 seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> "RateLimitConfig":
        return cls(
            enabled=settings.rate_limit_enabled,
            requests_per_minute=settings.rate_limit_per_minute,
            requests_per_hour=settings.rate_limit_per_hour,
            burst_limit=settings.rate_limit_burst,
        )


class RateLimiter:
    """Simple in-memory rate limiter using sliding window."""

    def __init__(self, config: RateLimitConfig | None = None) -> None:
        self.config = config or RateLimitConfig()
        # Track request timestamps per client
        self._requests: dict[str, list[float]] = defaultdict(list)

    def get_client_id(self, request: Request) -> str:
        """Extract client identifier from request."""
        # Gateway identity first: limits follow the technician, not the device
        tenant_id = request.headers.get("x-tenant-id")
        user_id = request.headers.get("x-user-id")
        if tenant_id and user_id:
            return f"user:{tenant_id}:{user_id}"

        # Fall back to IP address
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return f"ip:{forwarded.split(',')[0].strip()}"

        client = request.client
        if client:
            return f"ip:{client.host}"

        return "unknown"

    def _cleanup_old_requests(self, client_id: str, now: float) -> None:
        """Remove requests older than 1 hour."""
        hour_ago = now - 3600
        self._requests[client_id] = [
            ts for ts in self._requests[client_id] if ts > hour_ago
        ]

    def check_rate_limit(self, client_id: str) -> tuple[bool, str | None, dict]:
        """Check if a request from the client is within rate limits.

        Returns:
            Tuple of (allowed, error_message, headers).
        """
        now = time.time()

        self._cleanup_old_requests(client_id, now)
        requests = self._requests[client_id]

        # Check burst limit (last 10 seconds)
        ten_sec_ago = now - 10
        recent_requests = sum(1 for ts in requests if ts > ten_sec_ago)
        if recent_requests >= self.config.burst_limit:
            return (
                False,
                "Too many requests. Please slow down.",
                {
                    "X-RateLimit-Limit": str(self.config.burst_limit),
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Reset": str(int(now + 10)),
                    "Retry-After": "10",
                },
            )

        # Check per-minute limit
        minute_ago = now - 60
        minute_requests = sum(1 for ts in requests if ts > minute_ago)
        if minute_requests >= self.config.requests_per_minute:
            return (
                False,
                "Rate limit exceeded. Please wait a moment.",
                {
                    "X-RateLimit-Limit": str(self.config.requests_per_minute),
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Reset": str(int(now + 60)),
                    "Retry-After": "60",
                },
            )

        # Check per-hour limit
        if len(requests) >= self.config.requests_per_hour:
            return (
                False,
                "Hourly rate limit exceeded.",
                {
                    "X-RateLimit-Limit": str(self.config.requests_per_hour),
                    "X-RateLimit-Remaining": "0",
                    "Retry-After": "3600",
                },
            )

        # Request allowed - record it
        self._requests[client_id].append(now)

        return (
            True,
            None,
            {
                "X-RateLimit-Limit": str(self.config.requests_per_minute),
                "X-RateLimit-Remaining": str(
                    self.config.requests_per_minute - minute_requests - 1
                ),
            },
        )


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Middleware to apply rate limiting to the chat endpoint."""

    def __init__(self, app, config: RateLimitConfig | None = None) -> None:
        super().__init__(app)
        self.config = config or RateLimitConfig.from_settings(get_settings())
        self.limiter = RateLimiter(self.config)

    @staticmethod
    def is_rate_limited(request: Request) -> bool:
        return request.method == "POST" and bool(
            RATE_LIMITED_PATH.match(request.url.path)
        )

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process request with rate limiting."""
        if not self.config.enabled or not self.is_rate_limited(request):
            return await call_next(request)

        client_id = self.limiter.get_client_id(request)
        allowed, error_message, headers = self.limiter.check_rate_limit(client_id)

        if not allowed:
            logger.warning(
                "Rate limit exceeded for %s on %s", client_id, request.url.path
            )
            response = JSONResponse(
                status_code=429,
                content=error_dict(
                    ResponseCode.LLM_RATE_LIMIT,
                    custom_message=error_message,
                    request_id=getattr(request.state, "request_id", None),
                ),
            )
            for key, value in headers.items():
                response.headers[key] = value
            return response

        # Process request
        response = await call_next(request)

        # Add rate limit headers to successful responses
        for key, value in headers.items():
            response.headers[key] = value

        return response
