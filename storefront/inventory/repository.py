import math
from typing import Iterable, List, Tuple
from redis.exceptions import ResponseError, WatchError
from storefront.common.custom_exceptions import KVUnavailableError
from storefront.inventory.constants import CAS_MAX_ATTEMPTS, logger
from storefront.inventory.lua_scripts import LUA_DECREMENT_MULTI_STOCK, LUA_DECREMENT_STOCK
from storefront.inventory.models import AtomicDecrementResult, DecrementFailure, MultiAtomicDecrementResult, StockRequest
from storefront.inventory.utils import as_count, normalize_requests, parse_number_result, to_result
from storefront.kv import keys
from storefront.kv._kv import get_kv
from storefront.kv.scripts import run_script
from storefront.kv.utils import kv_errors
from storefront.products.repository import get_product


async def _read_counter(slug: str):
    with kv_errors():
        return await get_kv().get(keys.stock(slug))


async def get_stock(slug: str) -> int:
    raw = await _read_counter(slug)
    value = parse_number_result(raw, fallback=math.nan)
    if raw is not None and not math.isnan(value):
        return max(0, math.floor(value))

    product = await get_product(slug)
    if product is None:
        return 0
    return max(0, product.stock)


async def set_stock(slug: str, next_value: int) -> int:
    stock = max(0, math.floor(next_value))
    with kv_errors():
        await get_kv().set(keys.stock(slug), stock)
    return stock


async def ensure_stock_key(slug: str) -> int:
    """Seed the counter from the product record when it does not exist yet."""
    raw = await _read_counter(slug)
    value = parse_number_result(raw, fallback=math.nan)
    if raw is not None and not math.isnan(value):
        return max(0, math.floor(value))

    product = await get_product(slug)
    baseline = max(0, product.stock) if product else 0
    # NX keeps a counter another request seeded in the meantime
    with kv_errors():
        created = await get_kv().set(keys.stock(slug), baseline, nx=True)
    if not created:
        return await get_stock(slug)
    logger.info("inventory.stock_key.seeded", extra={"slug": slug, "stock": baseline})
    return baseline


async def _compare_and_set_decrement(slug: str, quantity: int) -> Tuple[bool, int, int]:
    """
    Decrement one counter with WATCH/MULTI/EXEC.
    Returns (ok, previous, next); ok=False leaves the counter untouched.
    """
    key = keys.stock(slug)
    kv = get_kv()
    for attempt in range(1, CAS_MAX_ATTEMPTS + 1):
        with kv_errors():
            async with kv.pipeline(transaction=True) as pipe:
                try:
                    await pipe.watch(key)
                    current = as_count(await pipe.get(key))
                    if current < quantity:
                        await pipe.unwatch()
                        return False, current, current
                    next_value = max(0, current - quantity)
                    pipe.multi()
                    pipe.set(key, next_value)
                    await pipe.execute()
                    return True, current, next_value
                except WatchError:
                    logger.debug("inventory.cas.retry", extra={"slug": slug, "attempt": attempt})
                    continue
    raise KVUnavailableError(f"stock counter for {slug} kept changing during compare-and-set")


async def decrement_stock_atomic(slug: str, quantity) -> AtomicDecrementResult:
    requested = math.floor(parse_number_result(quantity, fallback=0))
    if requested <= 0:
        current = await get_stock(slug)
        return to_result(0, False, current, current, DecrementFailure.INVALID_QUANTITY, slug=slug)

    await ensure_stock_key(slug)

    try:
        response = await run_script(LUA_DECREMENT_STOCK, [keys.stock(slug)], [str(requested)])
    except ResponseError as e:
        logger.warning("inventory.decrement.script_unavailable", extra={"slug": slug, "error": str(e)})
        response = None

    if isinstance(response, (list, tuple)) and len(response) >= 3:
        ok = parse_number_result(response[0]) == 1
        current = as_count(response[1])
        next_value = as_count(response[2], fallback=current)
        if not ok:
            return to_result(requested, False, current, next_value, DecrementFailure.INSUFFICIENT_STOCK, slug=slug)
        return to_result(requested, True, current, next_value, slug=slug)

    ok, current, next_value = await _compare_and_set_decrement(slug, requested)
    if not ok:
        return to_result(requested, False, current, current, DecrementFailure.INSUFFICIENT_STOCK, slug=slug)
    return to_result(requested, True, current, next_value, slug=slug)


def _failure(request: StockRequest, available: int, non_atomic: bool = False) -> MultiAtomicDecrementResult:
    return MultiAtomicDecrementResult(
        ok=False,
        reason=DecrementFailure.INSUFFICIENT_STOCK,
        failed_slug=request.slug,
        items=[to_result(request.quantity, False, available, available,
                         DecrementFailure.INSUFFICIENT_STOCK, slug=request.slug)],
        non_atomic=non_atomic,
    )


async def _decrement_multiple_scripted(requests: List[StockRequest]):
    stock_keys = [keys.stock(r.slug) for r in requests]
    args = [str(r.quantity) for r in requests]
    response = await run_script(LUA_DECREMENT_MULTI_STOCK, stock_keys, args)
    if not isinstance(response, (list, tuple)) or not response:
        return None

    if parse_number_result(response[0]) != 1:
        failed_index = max(1, math.floor(parse_number_result(response[1] if len(response) > 1 else 1, 1)))
        failed_index = min(failed_index, len(requests))
        available = as_count(response[2] if len(response) > 2 else 0)
        return _failure(requests[failed_index - 1], available)

    items = []
    for i, request in enumerate(requests):
        current = as_count(response[1 + i * 2] if 1 + i * 2 < len(response) else 0)
        next_value = as_count(response[2 + i * 2] if 2 + i * 2 < len(response) else None, fallback=current)
        items.append(to_result(request.quantity, True, current, next_value, slug=request.slug))
    return MultiAtomicDecrementResult(ok=True, items=items)


async def _rollback_applied(applied: List[Tuple[StockRequest, int, int]]) -> None:
    kv = get_kv()
    for request, previous, next_value in reversed(applied):
        # add back what this batch took, concurrent writers keep their changes
        try:
            with kv_errors():
                await kv.incrby(keys.stock(request.slug), previous - next_value)
        except KVUnavailableError as e:
            logger.error("inventory.decrement.rollback_failed",
                         extra={"slug": request.slug, "unrestored": previous - next_value, "error": str(e)})
            continue
        logger.info("inventory.decrement.rolled_back",
                    extra={"slug": request.slug, "restored": previous - next_value})


async def _decrement_multiple_sequential(requests: List[StockRequest]) -> MultiAtomicDecrementResult:
    """
    Per-slug compare-and-set with manual rollback.
    Not atomic across slugs: another checkout can interleave between two slugs of this batch,
    so oversell is only prevented on a best-effort basis.
    """
    logger.warning(
        "inventory.decrement.non_atomic_fallback",
        extra={"slugs": [r.slug for r in requests],
               "race_window": "concurrent decrements may interleave between slugs"},
    )
    applied: List[Tuple[StockRequest, int, int]] = []
    try:
        for request in requests:
            ok, current, next_value = await _compare_and_set_decrement(request.slug, request.quantity)
            if not ok:
                await _rollback_applied(applied)
                return _failure(request, current, non_atomic=True)
            applied.append((request, current, next_value))
    except Exception:
        await _rollback_applied(applied)
        raise

    return MultiAtomicDecrementResult(
        ok=True,
        items=[to_result(r.quantity, True, prev, nxt, slug=r.slug) for r, prev, nxt in applied],
        non_atomic=True,
    )


async def decrement_multiple_stock_atomic(rows: Iterable) -> MultiAtomicDecrementResult:
    """
    All-or-nothing decrement for a batch of (slug, quantity) requests.
    Duplicate slugs are summed. If any slug is short, nothing is written and the
    failing slug is reported with its available quantity.
    """
    requests = normalize_requests(rows)
    if not requests:
        return MultiAtomicDecrementResult(ok=False, reason=DecrementFailure.INVALID_REQUEST)

    for request in requests:
        await ensure_stock_key(request.slug)

    try:
        result = await _decrement_multiple_scripted(requests)
    except ResponseError as e:
        logger.error(
            "inventory.decrement.script_failed",
            extra={"slugs": [r.slug for r in requests], "error": str(e)},
        )
        result = None

    if result is not None:
        return result
    return await _decrement_multiple_sequential(requests)
