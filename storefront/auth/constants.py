from storefront.config.admin_config import admin_config
from storefront.common.logging_setup import get_logger

logger = get_logger("laem.auth")

ADMIN_SESSION_COOKIE = "laem_admin_session"

ADMIN_SESSION_TTL_SECONDS = int(admin_config.ADMIN_SESSION_TTL_SECONDS)

ADMIN_LOGIN_RATE_NAMESPACE = "admin-login"
