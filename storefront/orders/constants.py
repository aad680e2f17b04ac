from storefront.common.logging_setup import get_logger

logger = get_logger("laem.orders")

ORDER_INDEX_SCAN_LIMIT = 1000
ORDERS_PAGE_MAX_LIMIT = 50
ORDERS_PAGE_DEFAULT_LIMIT = 25
LINE_ITEMS_PAGE_LIMIT = 100
STRIPE_DASHBOARD_BASE = "https://dashboard.stripe.com"
STRIPE_API_VERSION = "2023-10-16"
STRIPE_TIMEOUT_SECONDS = 10.0
