from typing import Callable, Union
from fastapi import Request
from storefront.common.custom_exceptions import RateLimitExceeded
from storefront.rate_limiting.constants import logger
from storefront.rate_limiting.rate_limit_fixed_window import fixed_window_allow
from storefront.rate_limiting.utils import client_ip_from_request, rate_limit_headers

LimitSource = Union[int, Callable[[], int]]


def _resolve(value: LimitSource) -> int:
    return value() if callable(value) else value


def rate_limit_dependency(namespace: str, limit: LimitSource, window: LimitSource,
                          detail: str = "Too many requests", plain_text: bool = False):
    """
    Per client IP fixed-window limit for one route.
    limit/window may be callables so settings are read per request.
    plain_text=True answers 429 with a bare text body, otherwise {"ok": false, "error": detail}.
    """
    async def _dep(request: Request):
        client_ip = client_ip_from_request(request)
        result = await fixed_window_allow(namespace, client_ip, _resolve(limit), _resolve(window))
        headers = rate_limit_headers(result)
        # RateLimitMiddleware copies these onto the response
        request.state.rate_limit = headers
        if not result.ok:
            logger.warning("rate_limit.exceeded", extra={"namespace": namespace, "client_ip": client_ip})
            raise RateLimitExceeded(detail, headers=headers, plain_text=plain_text)
    return _dep
