import asyncio
import math
from typing import List, Optional
from storefront.kv import keys
from storefront.kv._kv import get_kv
from storefront.kv.utils import kv_errors, kv_get_json, kv_set_json
from storefront.orders.constants import ORDER_INDEX_SCAN_LIMIT
from storefront.orders.models import OrderRecord, OrdersPage
from storefront.orders.utils import clamp_page, clamp_page_limit, matches_filters, normalize_order


async def read_order(order_id: str) -> Optional[OrderRecord]:
    return normalize_order(await kv_get_json(keys.order(order_id)))


async def write_order(order: OrderRecord) -> None:
    await kv_set_json(keys.order(order.id), order.model_dump(mode="json"))


async def has_order(order_id: str) -> bool:
    return await read_order(order_id) is not None


async def append_order_to_index(order_id: str) -> None:
    with kv_errors():
        await get_kv().lpush(keys.ORDERS_INDEX, order_id)


async def _read_orders(ids: List[str]) -> List[OrderRecord]:
    # a duplicate webhook delivery can push the same id twice
    ids = list(dict.fromkeys(ids))
    rows = await asyncio.gather(*(read_order(order_id) for order_id in ids))
    return [row for row in rows if row is not None]


async def list_recent_orders(limit: int) -> List[OrderRecord]:
    with kv_errors():
        ids = await get_kv().lrange(keys.ORDERS_INDEX, 0, max(0, limit - 1)) or []
    return await _read_orders(ids)


async def list_orders_page(limit, page, status: str = "all",
                           from_unix: Optional[int] = None, to_unix: Optional[int] = None) -> OrdersPage:
    """
    Scan the newest ORDER_INDEX_SCAN_LIMIT index entries, filter in memory and
    return one page sorted by creation time, newest first.
    """
    limit = clamp_page_limit(limit)
    requested_page = clamp_page(page)
    status = status or "all"

    with kv_errors():
        ids = await get_kv().lrange(keys.ORDERS_INDEX, 0, ORDER_INDEX_SCAN_LIMIT - 1) or []
    rows = await _read_orders(ids)
    filtered = [row for row in rows if matches_filters(row, status, from_unix, to_unix)]
    filtered.sort(key=lambda row: row.created, reverse=True)

    total = len(filtered)
    total_pages = max(1, math.ceil(total / limit))
    current_page = min(requested_page, total_pages)
    start = (current_page - 1) * limit

    return OrdersPage(
        rows=filtered[start:start + limit],
        total=total,
        page=current_page,
        limit=limit,
        total_pages=total_pages,
    )
