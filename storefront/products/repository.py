from typing import Callable, List, Optional
from storefront.common.utils import unix_now
from storefront.kv import keys
from storefront.kv._kv import get_kv
from storefront.kv.utils import kv_errors, kv_get_json, kv_set_json
from storefront.products.constants import PRODUCT_INDEX_SCAN_LIMIT, logger
from storefront.products.models import Product
from storefront.products.utils import normalize_product


async def _read_product_list() -> list:
    rows = await kv_get_json(keys.PRODUCTS)
    return rows if isinstance(rows, list) else []


async def get_all_products() -> List[Product]:
    products = []
    for row in await _read_product_list():
        product = normalize_product(row)
        if product is not None:
            products.append(product)
    return products


async def get_product(slug: str) -> Optional[Product]:
    direct = normalize_product(await kv_get_json(keys.product(slug)))
    if direct is not None:
        return direct

    for product in await get_all_products():
        if product.slug == slug:
            return product
    return None


async def get_shop_items() -> List[Product]:
    return [p for p in await get_all_products() if p.published and not p.archived]


async def get_archive_items() -> List[Product]:
    return [p for p in await get_all_products() if p.archived or (p.published and p.stock <= 0)]


async def list_slugs() -> List[str]:
    with kv_errors():
        indexed = await get_kv().lrange(keys.PRODUCTS_INDEX, 0, PRODUCT_INDEX_SCAN_LIMIT - 1)
    slugs = [s for s in (indexed or []) if isinstance(s, str) and s]
    if slugs:
        return slugs
    return [p.slug for p in await get_all_products()]


async def is_published(slug: str) -> bool:
    flag = await kv_get_json(keys.published(slug))
    if isinstance(flag, bool):
        return flag
    product = await get_product(slug)
    return bool(product and product.published)


async def is_archived(slug: str) -> bool:
    flag = await kv_get_json(keys.archived(slug))
    if isinstance(flag, bool):
        return flag
    product = await get_product(slug)
    return bool(product and product.archived)


async def upsert_product(product: Product) -> List[Product]:
    """Write the product to its direct key and into the catalog list (new products go first)."""
    rows = await _read_product_list()
    stored = product.model_dump()
    index = next((i for i, row in enumerate(rows) if isinstance(row, dict) and row.get("slug") == product.slug), None)
    if index is None:
        rows.insert(0, stored)
    else:
        rows[index] = stored

    await kv_set_json(keys.PRODUCTS, rows)
    await kv_set_json(keys.product(product.slug), stored)
    await write_product_flags(product)
    return [p for p in (normalize_product(r) for r in rows) if p is not None]


async def write_product_flags(product: Product) -> None:
    await kv_set_json(keys.published(product.slug), product.published)
    await kv_set_json(keys.archived(product.slug), product.archived)


async def rebuild_products_index(slugs: List[str]) -> None:
    kv = get_kv()
    with kv_errors():
        await kv.delete(keys.PRODUCTS_INDEX)
        if slugs:
            await kv.rpush(keys.PRODUCTS_INDEX, *slugs)


async def update_product_snapshot(slug: str, updater: Callable[[Product], Product]) -> Optional[Product]:
    """Apply updater to the stored product, keeping the direct key and catalog list in step."""
    direct = normalize_product(await kv_get_json(keys.product(slug)))
    rows = await _read_product_list()
    index = next((i for i, row in enumerate(rows) if isinstance(row, dict) and row.get("slug") == slug), None)

    base = direct
    if base is None and index is not None:
        base = normalize_product(rows[index])
    if base is None:
        logger.warning("product.snapshot.not_found", extra={"slug": slug})
        return None

    next_product = updater(base)
    next_product.updated_at = unix_now()
    stored = next_product.model_dump()
    await kv_set_json(keys.product(slug), stored)
    if index is not None:
        rows[index] = stored
        await kv_set_json(keys.PRODUCTS, rows)

    await kv_set_json(keys.archived(slug), bool(next_product.archived))
    return next_product


async def sync_product_stock_and_archive_state(slug: str, stock_value: int) -> Optional[Product]:
    stock = max(0, int(stock_value))

    def _apply(product: Product) -> Product:
        should_auto_archive = product.auto_archive_on_zero and stock <= 0
        return product.model_copy(update={
            "stock": stock,
            "archived": True if should_auto_archive else product.archived,
        })

    return await update_product_snapshot(slug, _apply)

