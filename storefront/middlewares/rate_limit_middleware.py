from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Adds the headers computed by rate_limit_dependency to limited routes' responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        headers = getattr(request.state, "rate_limit", None)
        if headers:
            for name, value in headers.items():
                response.headers[name] = value
        return response
