import redis.asyncio as redis
from storefront.config.settings import config_settings

# the hosted KV store speaks the redis protocol
redis_client = redis.Redis.from_url(
    config_settings.REDIS_URL,
    decode_responses=True,
    socket_timeout=config_settings.REDIS_TIMEOUT_SECONDS,
    socket_connect_timeout=config_settings.REDIS_TIMEOUT_SECONDS,
)

_active_client = redis_client


def get_kv():
    return _active_client


def set_kv(client) -> None:
    """Swap the client used by repositories (tests, scripts)."""
    global _active_client
    _active_client = client


async def close_kv() -> None:
    close = getattr(_active_client, "aclose", None)
    if close is not None:
        await close()
