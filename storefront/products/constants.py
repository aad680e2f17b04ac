from storefront.common.logging_setup import get_logger

logger = get_logger("laem.products")

PRODUCT_INDEX_SCAN_LIMIT = 1000
