from storefront.common.logging_setup import get_logger

logger = get_logger("laem.middlewares")

WRITE_METHODS = {"POST", "PUT", "PATCH", "DELETE"}
