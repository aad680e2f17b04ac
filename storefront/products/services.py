from typing import List
from storefront.common.utils import unix_now
from storefront.inventory.repository import set_stock
from storefront.products.constants import logger
from storefront.products.models import Product, ProductSaveIn
from storefront.products.repository import (rebuild_products_index, sync_product_stock_and_archive_state,
                                            upsert_product)


async def save_product(payload: ProductSaveIn) -> Product:
    """Write catalog entry, direct key, stock counter and flags, then rebuild the slug index."""
    product = payload.to_product(updated_at=unix_now())

    products = await upsert_product(product)
    await set_stock(product.slug, product.stock)
    await rebuild_products_index([p.slug for p in products])

    logger.info("product.save.success",
                extra={"slug": product.slug, "stock": product.stock, "archived": product.archived})
    return product


async def bulk_set_stock(rows: List[dict]) -> List[dict]:
    for row in rows:
        await set_stock(row["slug"], row["stock"])
        synced = await sync_product_stock_and_archive_state(row["slug"], row["stock"])
        if synced is None:
            logger.info("product.stock.counter_only", extra={"slug": row["slug"]})

    logger.info("product.stock.bulk_updated", extra={"updated": len(rows)})
    return rows
