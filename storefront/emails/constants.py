import enum
from storefront.common.logging_setup import get_logger

logger = get_logger("laem.emails")

EMAIL_TIMEOUT_SECONDS = 10.0


class InventoryAlertKind(str, enum.Enum):
    LOW = "low"
    ZERO = "zero"
    OVERSELL = "oversell"
