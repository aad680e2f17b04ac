
from contextlib import asynccontextmanager
from fastapi import FastAPI
from storefront.api import version_prefix, cur_version
from storefront.api.routers import public_routers, admin_routers
from storefront.common.custom_exceptions import register_all_exceptions
from storefront.common.logging_setup import setup_logging, shutdown_logging
from storefront.config.admin_config import admin_config
from storefront.config.settings import config_settings
from storefront.kv._kv import close_kv
from storefront.middlewares.admin_session_middleware import AdminSessionMiddleware
from storefront.middlewares.rate_limit_middleware import RateLimitMiddleware
from storefront.middlewares.request_id_middleware import RequestIdMiddleware
from storefront.orders.webhooks import stripe_webhook
from storefront import logger

stripe_webhook_path = config_settings.STRIPE_WEBHOOK_PATH


@asynccontextmanager
async def app_lifespan(app: FastAPI):
    setup_logging()
    logger.info("app.startup", extra={"env": admin_config.ENV, "admin": admin_config.ENABLE_ADMIN})

    try:
        yield
    finally:
        # new requests are no longer accepted at this point
        await close_kv()
        shutdown_logging()


def create_app():
    app = FastAPI(
        title="LAEM Archive",
        version=cur_version,
        lifespan=app_lifespan)

    app.include_router(public_routers)

    app.add_api_route(stripe_webhook_path, stripe_webhook, methods=["POST"], name="stripe_webhook")

    if admin_config.ENABLE_ADMIN:
        app.include_router(admin_routers)      # mounts /api/v1/admin
        app.add_middleware(AdminSessionMiddleware, admin_prefix=f"{version_prefix}/admin",
                           open_paths=[f"{version_prefix}/admin/auth/"])

    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(RequestIdMiddleware)
    register_all_exceptions(app)

    if admin_config.ENABLE_METRICS:
        from metrics.custom_instrumentator import instrumentator
        instrumentator.instrument(app).expose(app, endpoint="/metrics")

    return app

app = create_app()
