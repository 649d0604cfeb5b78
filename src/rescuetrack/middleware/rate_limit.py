"""Rate limiting middleware — Redis fixed-window counters.

Learn: Each request is sorted into a bucket, and each bucket has its own
limit and window:

    auth    POST /auth/login, /auth/register, /auth/refresh   per minute
    create  POST /cases                                        per hour
    upload  POST /cases/{id}/photos                            per hour
    api     everything else                                    per minute

Counter keys look like "rescuetrack:rl:{ip}:{bucket}:{window}". Going over
the limit returns the RATE_LIMIT_EXCEEDED envelope with Retry-After.

Gracefully skips rate limiting if Redis is unavailable (e.g., in tests).
"""

import time
from dataclasses import dataclass

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from rescuetrack.errors import RateLimited

logger = structlog.get_logger()

API_PREFIX = "/api/v1"
AUTH_PATHS = frozenset(
    f"{API_PREFIX}/auth/{name}" for name in ("login", "register", "refresh")
)


@dataclass(frozen=True)
class Bucket:
    name: str
    limit: int
    window_seconds: int


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-IP limits, bucketed by what the request does."""

    def __init__(
        self,
        app,
        default_rpm: int = 100,
        auth_rpm: int = 5,
        case_create_per_hour: int = 10,
        upload_per_hour: int = 20,
    ):
        super().__init__(app)
        self.default = Bucket("api", default_rpm, 60)
        self.auth = Bucket("auth", auth_rpm, 60)
        self.create = Bucket("create", case_create_per_hour, 3600)
        self.upload = Bucket("upload", upload_per_hour, 3600)

    def bucket_for(self, method: str, path: str) -> Bucket:
        path = path.rstrip("/")
        if method == "POST":
            if path in AUTH_PATHS:
                return self.auth
            if path == f"{API_PREFIX}/cases":
                return self.create
            if path.startswith(f"{API_PREFIX}/cases/") and path.endswith("/photos"):
                return self.upload
        return self.default

    async def dispatch(self, request: Request, call_next) -> Response:
        # No Redis means no rate limiting
        try:
            from rescuetrack.realtime.pubsub import get_redis

            redis = get_redis()
        except Exception:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        bucket = self.bucket_for(request.method, request.url.path)
        now = int(time.time())
        window = now // bucket.window_seconds
        key = f"rescuetrack:rl:{client_ip}:{bucket.name}:{window}"

        try:
            count = await redis.incr(key)
            if count == 1:
                await redis.expire(key, bucket.window_seconds * 2)
        except Exception as e:
            # Redis error: let the request through
            logger.warning("rate_limit.redis_error", error=str(e))
            return await call_next(request)

        if count > bucket.limit:
            retry_after = bucket.window_seconds - (now % bucket.window_seconds)
            logger.info("rate_limit.exceeded", bucket=bucket.name, client_ip=client_ip)
            error = RateLimited("Too many requests. Please try again later.")
            return JSONResponse(
                status_code=error.http_status,
                content=error.to_response(),
                headers={"Retry-After": str(retry_after)},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(bucket.limit)
        response.headers["X-RateLimit-Remaining"] = str(max(0, bucket.limit - count))
        return response
