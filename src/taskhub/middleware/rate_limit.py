"""Rate limiting middleware — Redis-based fixed window per minute.

Learn: Each IP gets a counter key like "taskhub:rl:{ip}:{bucket}:{minute}".
Login and signup get a stricter limit (TASKHUB_RATE_LIMIT_AUTH_RPM) to slow
down password guessing and mass account creation.

Skips rate limiting entirely if Redis is unavailable (e.g., in tests).
"""

import time

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

logger = structlog.get_logger()

AUTH_ROUTES = {("POST", "/users"), ("POST", "/users/login")}


def is_auth_request(method: str, path: str) -> bool:
    return (method.upper(), path.rstrip("/") or "/") in AUTH_ROUTES


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Redis-based rate limiting per IP per minute."""

    def __init__(self, app, default_rpm: int = 100, auth_rpm: int = 10):
        super().__init__(app)
        self.default_rpm = default_rpm
        self.auth_rpm = auth_rpm

    async def dispatch(self, request: Request, call_next) -> Response:
        try:
            from taskhub.db.redis_pool import get_redis

            redis = get_redis()
        except RuntimeError:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        is_auth = is_auth_request(request.method, request.url.path)
        rpm = self.auth_rpm if is_auth else self.default_rpm

        window = int(time.time() // 60)
        bucket = "auth" if is_auth else "api"
        key = f"taskhub:rl:{client_ip}:{bucket}:{window}"

        try:
            count = await redis.incr(key)
            if count == 1:
                await redis.expire(key, 120)
        except Exception as e:
            # Redis error: don't block the request
            logger.warning("taskhub.rate_limit_unavailable", error=str(e))
            return await call_next(request)

        if count > rpm:
            logger.info("taskhub.rate_limited", client_ip=client_ip, bucket=bucket)
            return JSONResponse(
                status_code=429,
                content={"detail": "Rate limit exceeded. Try again later."},
                headers={"Retry-After": "60"},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(rpm)
        response.headers["X-RateLimit-Remaining"] = str(max(0, rpm - count))
        return response
