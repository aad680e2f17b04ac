import asyncio
from typing import Dict
from storefront.common.logging_setup import get_logger

logger = get_logger("laem.rate_limiting")

EXPIRY_GRACE_SECONDS = 5          # counters outlive their window a little
USE_IN_MEMORY_FALLBACK = True     # simple local fallback when the KV fails (not distributed)

_in_memory_counters: Dict[str, dict] = {}
_in_memory_lock = asyncio.Lock()
