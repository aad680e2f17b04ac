from storefront.common.logging_setup import get_logger

logger = get_logger("laem.inventory")

DEFAULT_LOW_STOCK_THRESHOLD = 2
# optimistic retries per slug on the non-scripted path
CAS_MAX_ATTEMPTS = 5
