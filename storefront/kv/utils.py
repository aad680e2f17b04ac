from contextlib import contextmanager
from typing import Any, Optional
import orjson
from redis.exceptions import ConnectionError as RedisConnectionError, TimeoutError as RedisTimeoutError
from storefront.common.custom_exceptions import KVUnavailableError
from storefront.kv._kv import get_kv

KV_TRANSPORT_ERRORS = (RedisConnectionError, RedisTimeoutError, OSError)


@contextmanager
def kv_errors():
    """Raise transport failures inside the block as KVUnavailableError."""
    try:
        yield
    except KV_TRANSPORT_ERRORS as e:
        raise KVUnavailableError(str(e)) from e


def serialize(value: Any) -> str:
    return orjson.dumps(value).decode()

def deserialize(raw: Optional[str]) -> Any:
    if raw is None:
        return None
    try:
        return orjson.loads(raw)
    except orjson.JSONDecodeError:
        # plain scalars written by other tools (e.g. "4" via SET)
        return raw


async def kv_get_json(key: str) -> Any:
    with kv_errors():
        raw = await get_kv().get(key)
    return deserialize(raw)


async def kv_set_json(key: str, value: Any) -> None:
    with kv_errors():
        await get_kv().set(key, serialize(value))


async def kv_ping() -> bool:
    try:
        return bool(await get_kv().ping())
    except KV_TRANSPORT_ERRORS:
        return False
