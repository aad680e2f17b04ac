import asyncio
from typing import Dict, Optional, Sequence
from redis.exceptions import NoScriptError, ResponseError
from storefront.common.custom_exceptions import KVUnavailableError
from storefront.kv._kv import get_kv
from storefront.kv.utils import KV_TRANSPORT_ERRORS

_script_shas: Dict[str, str] = {}
_script_lock = asyncio.Lock()


async def _ensure_script_loaded(script: str) -> Optional[str]:
    """
    Load the Lua script into the store's script cache and remember its SHA.
    Returns None when the store refuses SCRIPT LOAD; callers then go through EVAL.
    """
    sha = _script_shas.get(script)
    if sha:
        return sha
    async with _script_lock:
        sha = _script_shas.get(script)
        if sha:
            return sha
        try:
            sha = await get_kv().script_load(script)
        except ResponseError:
            return None
        _script_shas[script] = sha
        return sha


async def run_script(script: str, keys: Sequence[str], args: Sequence) -> object:
    """
    EVALSHA with EVAL fallback on a script cache miss.
    A ResponseError from EVAL means scripting is unavailable and is left to the caller.
    """
    kv = get_kv()
    try:
        sha = await _ensure_script_loaded(script)
        if sha:
            try:
                return await kv.evalsha(sha, len(keys), *keys, *args)
            except NoScriptError:
                _script_shas.pop(script, None)
        return await kv.eval(script, len(keys), *keys, *args)
    except KV_TRANSPORT_ERRORS as e:
        raise KVUnavailableError(str(e)) from e


def forget_loaded_scripts() -> None:
    _script_shas.clear()
