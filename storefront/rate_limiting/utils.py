import math
import time
from typing import Dict
from fastapi import Request
from pydantic import BaseModel
from storefront.rate_limiting.constants import _in_memory_counters, _in_memory_lock


class RateLimitResult(BaseModel):
    ok: bool
    limit: int
    remaining: int
    retry_after_seconds: int


def client_ip_from_request(request: Request) -> str:
    """
    Proxy headers first (x-real-ip, cf-connecting-ip, fly-client-ip), then the
    first x-forwarded-for hop. Trust these only behind a proxy that sets them.
    """
    for header in ("x-real-ip", "cf-connecting-ip", "fly-client-ip"):
        direct = request.headers.get(header)
        if direct and direct.strip():
            return direct.strip()

    forwarded = request.headers.get("x-forwarded-for")
    if not forwarded:
        return "unknown"
    return forwarded.split(",")[0].strip() or "unknown"


def clamp_int(value, minimum: int) -> int:
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return minimum
    if not math.isfinite(parsed):
        return minimum
    return max(minimum, math.floor(parsed))


def current_bucket(window_seconds: int, now_ms: int):
    """(bucket number, seconds until the bucket ends)"""
    window_ms = window_seconds * 1000
    bucket = now_ms // window_ms
    retry_after = max(1, math.ceil(((bucket + 1) * window_ms - now_ms) / 1000))
    return bucket, retry_after


def rate_limit_headers(result: RateLimitResult) -> Dict[str, str]:
    return {
        "x-ratelimit-limit": str(result.limit),
        "x-ratelimit-remaining": str(result.remaining),
        "retry-after": str(result.retry_after_seconds),
    }


# simple non distributed fallback for KV unavailability, use only for short outages
async def _in_memory_allow(key: str, limit: int, window: int) -> int:
    """Per-process fixed-window counter. Returns the count after this hit."""
    async with _in_memory_lock:
        now = time.time()
        existing = _in_memory_counters.get(key)
        if not existing or existing["expires_at"] <= now:
            _in_memory_counters[key] = {"count": 1, "expires_at": now + window}
            return 1
        existing["count"] += 1
        return existing["count"]


def reset_in_memory_counters() -> None:
    _in_memory_counters.clear()
