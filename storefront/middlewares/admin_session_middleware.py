from typing import List
from fastapi import Request, status
from starlette.middleware.base import BaseHTTPMiddleware
from storefront.auth.constants import ADMIN_SESSION_COOKIE
from storefront.auth.utils import decode_admin_session_token
from storefront.common.custom_exceptions import ConfigurationError
from storefront.common.utils import json_error
from storefront.middlewares.constants import WRITE_METHODS, logger


class AdminSessionMiddleware(BaseHTTPMiddleware):
    """
    Guards admin API paths with the signed session cookie.
    Paths under open_paths (login/logout) pass through; cross-origin writes are refused.
    """

    def __init__(self, app, *, admin_prefix: str, open_paths: List[str]):
        super().__init__(app)
        self.admin_prefix = admin_prefix
        self.open_paths = open_paths

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if not path.startswith(self.admin_prefix):
            return await call_next(request)
        if any(path.startswith(p) for p in self.open_paths):
            return await call_next(request)

        if request.method in WRITE_METHODS:
            origin = request.headers.get("origin")
            own_origin = f"{request.url.scheme}://{request.url.netloc}"
            if origin and origin != own_origin:
                logger.warning("admin.middleware.invalid_origin", extra={"origin": origin, "path": path})
                return json_error({"ok": False, "error": "Invalid origin"}, status_code=status.HTTP_403_FORBIDDEN)

        try:
            claims = decode_admin_session_token(request.cookies.get(ADMIN_SESSION_COOKIE))
        except ConfigurationError as e:
            logger.error("admin.middleware.misconfigured", extra={"error": str(e)})
            return json_error({"ok": False, "error": str(e)}, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)
        if not claims:
            logger.info("admin.middleware.unauthorized", extra={"path": path, "method": request.method})
            return json_error({"ok": False, "error": "Unauthorized"}, status_code=status.HTTP_401_UNAUTHORIZED)

        request.state.admin_session = claims
        return await call_next(request)
