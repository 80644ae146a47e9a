import logging

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from ..core.cache import cache_client
from ..core.config import (
    CORS_ORIGINS,
    RATE_LIMIT_DEFAULT_PER_MINUTE,
    RATE_LIMIT_LOGIN_PER_MINUTE,
)

logger = logging.getLogger(__name__)

_LOGIN_PATHS = ("/api/auth/login", "/api/auth/register")


def _resolve_limit(method: str, path: str) -> int:
    if method == "POST" and path.startswith(_LOGIN_PATHS):
        return RATE_LIMIT_LOGIN_PER_MINUTE
    return RATE_LIMIT_DEFAULT_PER_MINUTE


def add_cors_headers(response: JSONResponse, request: Request) -> JSONResponse:
    origin = request.headers.get("origin", "")
    if origin and (origin in CORS_ORIGINS or "*" in CORS_ORIGINS):
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Credentials"] = "true"
        response.headers["Access-Control-Allow-Methods"] = "*"
        response.headers["Access-Control-Allow-Headers"] = "*"
    return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        if request.method == "OPTIONS" or not request.url.path.startswith("/api/"):
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        method = request.method
        path = request.url.path
        limit = _resolve_limit(method, path)

        allowed = cache_client.check_rate_limit(
            f"ratelimit:{client_ip}:{method}:{path}",
            limit,
            window_seconds=60,
        )
        if not allowed:
            logger.warning("Rate limit exceeded for %s %s from %s", method, path, client_ip)
            response = JSONResponse(
                status_code=429,
                content={"detail": "Too many requests"},
            )
            response.headers["Retry-After"] = "60"
            return add_cors_headers(response, request)

        return await call_next(request)
