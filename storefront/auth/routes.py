from fastapi import APIRouter, Depends, Request, status
from storefront.auth.constants import (ADMIN_LOGIN_RATE_NAMESPACE, ADMIN_SESSION_COOKIE,
                                       ADMIN_SESSION_TTL_SECONDS, logger)
from storefront.auth.utils import create_admin_session_token, is_valid_admin_password
from storefront.common.utils import json_error, json_ok, read_payload
from storefront.config.admin_config import admin_config
from storefront.config.settings import config_settings
from storefront.rate_limiting.dependencies import rate_limit_dependency

current_env = admin_config.ENV
secure_flag = False if current_env == "dev" else True

auth_router = APIRouter()

login_rate_limit = rate_limit_dependency(
    ADMIN_LOGIN_RATE_NAMESPACE,
    limit=lambda: config_settings.RATE_LIMIT_LOGIN_MAX,
    window=lambda: config_settings.RATE_LIMIT_LOGIN_WINDOW_SECONDS,
    detail="Too many login attempts. Try again shortly.",
)


@auth_router.post("/login", dependencies=[Depends(login_rate_limit)])
async def login(request: Request):
    admin_token = admin_config.ADMIN_TOKEN
    if not admin_token:
        return json_error({"ok": False, "error": "Missing ADMIN_TOKEN"},
                          status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

    payload = await read_payload(request)
    password = payload.get("password")
    password = password.strip() if isinstance(password, str) else ""
    if not password or not is_valid_admin_password(password, admin_token):
        logger.warning("admin.login.failed", extra={"path": request.url.path})
        return json_error({"ok": False, "error": "Invalid credentials"}, status_code=status.HTTP_401_UNAUTHORIZED)

    response = json_ok({"ok": True})
    response.set_cookie(
        key=ADMIN_SESSION_COOKIE,
        value=create_admin_session_token(),
        httponly=True,
        secure=secure_flag,
        samesite="strict",
        path="/",
        max_age=ADMIN_SESSION_TTL_SECONDS,
    )
    logger.info("admin.login.success")
    return response


@auth_router.post("/logout")
async def logout():
    response = json_ok({"ok": True})
    response.delete_cookie(key=ADMIN_SESSION_COOKIE, path="/", httponly=True, secure=secure_flag, samesite="strict")
    return response
