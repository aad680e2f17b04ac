import time
from redis.exceptions import ResponseError
from storefront.common.custom_exceptions import KVUnavailableError
from storefront.kv import keys
from storefront.kv._kv import get_kv
from storefront.kv.scripts import run_script
from storefront.kv.utils import kv_errors
from storefront.rate_limiting.constants import EXPIRY_GRACE_SECONDS, USE_IN_MEMORY_FALLBACK, logger
from storefront.rate_limiting.lua_scripts import LUA_FIXED_WINDOW_INCR_AND_PEXPIRE
from storefront.rate_limiting.utils import RateLimitResult, _in_memory_allow, clamp_int, current_bucket


async def _kv_count(key: str, expire_seconds: int) -> int:
    try:
        res = await run_script(LUA_FIXED_WINDOW_INCR_AND_PEXPIRE, [key], [expire_seconds * 1000])
    except ResponseError:
        # no scripting: plain INCR, expiry set by the first hit
        with kv_errors():
            count = await get_kv().incr(key)
            if int(count) == 1:
                await get_kv().expire(key, expire_seconds)
        return int(count)

    if not res:
        return 1
    return clamp_int(res[0], 0)


async def fixed_window_allow(namespace: str, client_ip: str, limit, window_seconds) -> RateLimitResult:
    """
    Count one hit for client_ip in the current fixed window of namespace.
    The KV counter is shared by every process; on KV failure a per-process counter is used.
    """
    limit = clamp_int(limit, 1)
    window_seconds = clamp_int(window_seconds, 1)
    bucket, retry_after = current_bucket(window_seconds, int(time.time() * 1000))
    key = keys.rate_limit(namespace, client_ip, bucket)

    try:
        count = await _kv_count(key, window_seconds + EXPIRY_GRACE_SECONDS)
    except KVUnavailableError as e:
        if not USE_IN_MEMORY_FALLBACK:
            raise
        logger.error("rate_limit.kv_error", extra={"namespace": namespace, "error": str(e)})
        count = await _in_memory_allow(key, limit, window_seconds)

    return RateLimitResult(
        ok=count <= limit,
        limit=limit,
        remaining=max(0, limit - count),
        retry_after_seconds=retry_after,
    )
