from storefront.common.logging_setup import get_logger

logger = get_logger("laem.uploads")

MAX_IMAGE_BYTES = 10 * 1024 * 1024
BLOB_API_VERSION = "7"
BLOB_TIMEOUT_SECONDS = 30.0
UPLOAD_PREFIX = "products"
