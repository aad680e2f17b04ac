from typing import Optional
from fastapi import FastAPI, HTTPException, Request,status
from fastapi.responses import PlainTextResponse
from fastapi.exceptions import RequestValidationError
from storefront import logger
from storefront.common.utils import build_error, json_error
from storefront.common.constants import request_id_ctx


class KVUnavailableError(RuntimeError):
    """The key-value store could not be reached."""


class ConfigurationError(RuntimeError):
    """A required secret or setting is missing."""


class ProviderError(RuntimeError):
    """An external provider (payments, email, blob) call failed."""

    def __init__(self, provider: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.status_code = status_code


class RateLimitExceeded(HTTPException):
    """429 from a rate limited route; plain_text selects the body format its callers read."""

    def __init__(self, detail: str, headers: dict, plain_text: bool = False):
        super().__init__(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=detail, headers=headers)
        self.plain_text = plain_text


async def fallback_handler(request: Request, exc: Exception):

    rid = request_id_ctx.get(None)
    body = {"message": "Internal Server Error "}

    logger.error(
        "unexpected.exception",
        extra={
            "path": request.url.path,
            "method": request.method,
            "request_id": rid,
        },
        exc_info=exc,
    )

    payload = build_error(code="SERVER_ERROR", details=body, request_id=rid)
    return json_error(payload, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


async def kv_unavailable_handler(request: Request, exc: KVUnavailableError):
    rid = request_id_ctx.get(None)
    logger.error("kv.unavailable", extra={"path": request.url.path, "request_id": rid}, exc_info=exc)
    payload = build_error(code="KV_UNAVAILABLE", details={"message": "service unavailable (kv)"}, request_id=rid)
    return json_error(payload, status_code=status.HTTP_503_SERVICE_UNAVAILABLE)


async def configuration_error_handler(request: Request, exc: ConfigurationError):
    rid = request_id_ctx.get(None)
    logger.error("config.missing", extra={"path": request.url.path, "detail": str(exc)})
    payload = build_error(code="CONFIGURATION_ERROR", details={"message": str(exc)}, request_id=rid)
    return json_error(payload, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


async def provider_error_handler(request: Request, exc: ProviderError):
    rid = request_id_ctx.get(None)
    logger.error(
        "provider.failed",
        extra={"path": request.url.path, "provider": exc.provider, "provider_status": exc.status_code},
    )
    payload = build_error(code="PROVIDER_ERROR", details={"message": f"{exc.provider} request failed"}, request_id=rid)
    return json_error(payload, status_code=status.HTTP_502_BAD_GATEWAY)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    if exc.plain_text:
        return PlainTextResponse(exc.detail, status_code=exc.status_code, headers=exc.headers)
    return json_error({"ok": False, "error": exc.detail}, status_code=exc.status_code, headers=exc.headers)


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    rid = request_id_ctx.get(None)
    logger.warning(
        "request.validation_failed",
        extra={
            "errors": exc.errors(),
            "path": request.url.path,
            "request_id": rid,
        },
    )

    payload = build_error(code="UNPROCESSABLE_ENTITY", details={"message":"invalid request"}, request_id=rid)
    return json_error(payload, status_code=status.HTTP_422_UNPROCESSABLE_ENTITY)


async def http_exception_handler(request: Request, exc: HTTPException):

    rid = request_id_ctx.get(None)

    error_code = f"HTTP_{exc.status_code}"
    payload = build_error(code=error_code, details={"message":exc.detail}, request_id=rid)
    return json_error(payload, status_code=exc.status_code, headers=getattr(exc, "headers", None))


def register_all_exceptions(app: FastAPI):

    app.add_exception_handler(
        Exception, # catch all unidentified/unhandled exceptions
        fallback_handler
    )

    app.add_exception_handler(KVUnavailableError, kv_unavailable_handler)
    app.add_exception_handler(ConfigurationError, configuration_error_handler)
    app.add_exception_handler(ProviderError, provider_error_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

    app.add_exception_handler(
        RequestValidationError,
        validation_exception_handler
    )

    app.add_exception_handler(
        HTTPException,
        http_exception_handler
    )
