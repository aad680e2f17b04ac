import asyncio
import hashlib
import time
from typing import Callable, Dict, List, Optional

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import NoScriptError, ResponseError, WatchError

from storefront.inventory.lua_scripts import LUA_DECREMENT_MULTI_STOCK, LUA_DECREMENT_STOCK
from storefront.rate_limiting.lua_scripts import LUA_FIXED_WINDOW_INCR_AND_PEXPIRE


def _sha(script: str) -> str:
    return hashlib.sha1(script.encode()).hexdigest()

def _to_int(value) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


class MockPipeline:
    """WATCH/MULTI/EXEC over MockKV; EXEC fails when a watched key changed since WATCH."""

    def __init__(self, kv: "MockKV"):
        self.kv = kv
        self.watched: Dict[str, int] = {}
        self.buffer: Optional[list] = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.reset()

    async def reset(self):
        self.watched = {}
        self.buffer = None

    async def watch(self, *keys):
        self.kv._check_transport()
        for key in keys:
            if key in self.kv.fail_watch_keys:
                raise RedisConnectionError(f"connection lost watching {key}")
            self.watched[key] = self.kv._versions.get(key, 0)

    async def unwatch(self):
        self.watched = {}

    async def get(self, key):
        value = await self.kv.get(key)
        # let other callers run between WATCH and EXEC
        await asyncio.sleep(0)
        return value

    def multi(self):
        self.buffer = []

    def set(self, key, value):
        self.buffer.append((key, value))
        return self

    async def execute(self):
        self.kv._check_transport()
        if self.kv.interfere_on_execute > 0:
            # another writer slips in between WATCH and EXEC
            self.kv.interfere_on_execute -= 1
            for key in self.watched:
                self.kv._bump(key)

        for key, version in self.watched.items():
            if self.kv._versions.get(key, 0) != version:
                await self.reset()
                raise WatchError("Watched variable changed.")

        results = [await self.kv.set(key, value) for key, value in self.buffer or []]
        self.kv.exec_calls += 1
        await self.reset()
        return results


class MockKV:
    """
    In-memory stand-in for the redis.asyncio client (decode_responses=True).
    Lua scripts the app uses are emulated by handlers keyed on their SHA.
    """

    def __init__(self):
        self.data: Dict[str, object] = {}
        self.expiry_ms: Dict[str, int] = {}
        self._versions: Dict[str, int] = {}
        self._loaded: Dict[str, str] = {}
        self.scripting_enabled = True   # False -> EVAL/EVALSHA/SCRIPT LOAD answer with an error
        self.transport_down = False     # True -> every command raises ConnectionError
        self.interfere_on_execute = 0
        self.fail_watch_keys: set = set()  # WATCH on these keys raises ConnectionError
        self.exec_calls = 0
        self.script_calls: List[str] = []
        self._handlers: Dict[str, Callable] = {
            _sha(LUA_DECREMENT_STOCK): self._lua_decrement_stock,
            _sha(LUA_DECREMENT_MULTI_STOCK): self._lua_decrement_multi,
            _sha(LUA_FIXED_WINDOW_INCR_AND_PEXPIRE): self._lua_fixed_window,
        }

    def _check_transport(self):
        if self.transport_down:
            raise RedisConnectionError("Error connecting to mock kv")

    def _bump(self, key: str):
        self._versions[key] = self._versions.get(key, 0) + 1

    def _write(self, key: str, value):
        self.data[key] = value
        self._bump(key)

    def _expired(self, key: str) -> bool:
        deadline = self.expiry_ms.get(key)
        if deadline is not None and deadline <= int(time.time() * 1000):
            self.data.pop(key, None)
            self.expiry_ms.pop(key, None)
            return True
        return False

    # strings
    async def get(self, key):
        self._check_transport()
        if self._expired(key):
            return None
        value = self.data.get(key)
        return value if value is None or isinstance(value, str) else None

    async def set(self, key, value, nx: bool = False, **kwargs):
        self._check_transport()
        if nx and key in self.data:
            return None
        self._write(key, str(value))
        self.expiry_ms.pop(key, None)
        return True

    async def delete(self, *keys):
        self._check_transport()
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
                self._bump(key)
        return removed

    async def incrby(self, key, amount: int = 1):
        self._check_transport()
        self._expired(key)
        current = self.data.get(key, "0")
        try:
            value = int(current) + int(amount)
        except ValueError as e:
            raise ResponseError("value is not an integer or out of range") from e
        self._write(key, str(value))
        return value

    async def incr(self, key, amount: int = 1):
        return await self.incrby(key, amount)

    async def pexpire(self, key, ms):
        self._check_transport()
        if key not in self.data:
            return False
        self.expiry_ms[key] = int(time.time() * 1000) + int(ms)
        return True

    async def expire(self, key, seconds):
        return await self.pexpire(key, int(seconds) * 1000)

    async def pttl(self, key):
        self._check_transport()
        if key not in self.data:
            return -2
        deadline = self.expiry_ms.get(key)
        if deadline is None:
            return -1
        return max(0, deadline - int(time.time() * 1000))

    # lists
    def _list(self, key) -> list:
        value = self.data.get(key)
        if value is None:
            value = []
            self.data[key] = value
        return value

    async def lpush(self, key, *values):
        self._check_transport()
        rows = self._list(key)
        for value in values:
            rows.insert(0, str(value))
        self._bump(key)
        return len(rows)

    async def rpush(self, key, *values):
        self._check_transport()
        rows = self._list(key)
        rows.extend(str(v) for v in values)
        self._bump(key)
        return len(rows)

    async def lrange(self, key, start: int, end: int):
        self._check_transport()
        rows = self.data.get(key)
        if not isinstance(rows, list):
            return []
        return list(rows[start:] if end == -1 else rows[start:end + 1])

    # scripting
    async def script_load(self, script: str):
        self._check_transport()
        if not self.scripting_enabled:
            raise ResponseError("ERR unknown command 'SCRIPT'")
        sha = _sha(script)
        self._loaded[sha] = script
        return sha

    def flush_scripts(self):
        self._loaded.clear()

    def _run(self, sha: str, numkeys: int, rest):
        keys = list(rest[:numkeys])
        args = list(rest[numkeys:])
        self.script_calls.append(sha)
        return self._handlers[sha](keys, args)

    async def evalsha(self, sha, numkeys, *rest):
        self._check_transport()
        if not self.scripting_enabled:
            raise ResponseError("ERR unknown command 'EVALSHA'")
        if sha not in self._loaded:
            raise NoScriptError("No matching script. Please use EVAL.")
        return self._run(sha, numkeys, rest)

    async def eval(self, script, numkeys, *rest):
        self._check_transport()
        if not self.scripting_enabled:
            raise ResponseError("ERR unknown command 'EVAL'")
        return self._run(_sha(script), numkeys, rest)

    def _counter(self, key) -> int:
        return max(0, _to_int(self.data.get(key, "0")))

    def _lua_decrement_stock(self, keys, args):
        qty = _to_int(args[0])
        if qty <= 0:
            return [0, -1, -1]
        current = self._counter(keys[0])
        if current < qty:
            return [0, current, current]
        nxt = max(0, current - qty)
        self._write(keys[0], str(nxt))
        return [1, current, nxt]

    def _lua_decrement_multi(self, keys, args):
        for i, key in enumerate(keys):
            qty = _to_int(args[i])
            if qty <= 0:
                return [0, i + 1, -1]
            current = self._counter(key)
            if current < qty:
                return [0, i + 1, current]
        out = [1]
        for i, key in enumerate(keys):
            current = self._counter(key)
            nxt = max(0, current - _to_int(args[i]))
            self._write(key, str(nxt))
            out += [current, nxt]
        return out

    def _lua_fixed_window(self, keys, args):
        key = keys[0]
        self._expired(key)
        counter = _to_int(self.data.get(key, "0")) + 1
        self._write(key, str(counter))
        if counter == 1 or key not in self.expiry_ms:
            self.expiry_ms[key] = int(time.time() * 1000) + _to_int(args[0])
        ttl = self.expiry_ms[key] - int(time.time() * 1000)
        return [counter, ttl]

    # misc
    def pipeline(self, transaction: bool = True):
        return MockPipeline(self)

    async def ping(self):
        self._check_transport()
        return True

    async def flushdb(self):
        self.data.clear()
        self.expiry_ms.clear()
        self._versions.clear()

    async def aclose(self):
        return None
