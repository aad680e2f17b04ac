
import asyncio
from dotenv import load_dotenv

load_dotenv()

from storefront.common.utils import unix_now
from storefront.inventory.repository import set_stock
from storefront.kv import keys
from storefront.kv._kv import close_kv
from storefront.kv.utils import kv_set_json
from storefront.products.models import Product
from storefront.products.repository import rebuild_products_index, write_product_flags

SHIPPING_RETURNS = "Ships in 3-7 days. Returns within 7 days (unworn)."
PLACEHOLDER_IMAGE = "https://via.placeholder.com/1200x1500"

DEMO_PRODUCTS = [
    Product(
        slug="silver-band-01",
        title="Silver Band 01",
        subtitle="Solid silver, hand-finished.",
        description="A clean band profile in solid sterling silver with a hand-finished surface.",
        price_cents=24000,
        stock=4,
        archived=False,
        published=True,
        auto_archive_on_zero=False,
        images=[PLACEHOLDER_IMAGE],
        materials="Solid silver (925).",
        dimensions="Band width: 6mm\nWeight: ~12g",
        care="Avoid harsh chemicals. Patina is expected.",
        shipping_returns=SHIPPING_RETURNS,
    ),
    Product(
        slug="chain-form-02",
        title="Chain Form 02",
        subtitle="Hand-assembled links.",
        description="Hand-assembled linked form built for everyday wear with sculptural weight.",
        price_cents=31000,
        stock=0,
        archived=False,
        published=True,
        auto_archive_on_zero=True,
        images=[PLACEHOLDER_IMAGE],
        materials="Solid silver (925).",
        dimensions="Length: 18in\nWeight: ~22g",
        care="Wipe after wear. Store dry.",
        shipping_returns=SHIPPING_RETURNS,
    ),
    Product(
        slug="pearl-hook-01",
        title="Pearl Hook 01",
        subtitle="Silver + pearl accent.",
        description="Sterling silver form paired with a pearl accent and light drop profile.",
        price_cents=28000,
        stock=0,
        archived=True,
        published=True,
        auto_archive_on_zero=True,
        images=[PLACEHOLDER_IMAGE],
        materials="Solid silver (925). Pearl accent.",
        dimensions="Drop: 22mm\nWeight: ~6g",
        care="Avoid perfumes on pearl. Wipe gently.",
        shipping_returns=SHIPPING_RETURNS,
    ),
]


async def seed_products(products=DEMO_PRODUCTS) -> int:
    stamped = [p.model_copy(update={"updated_at": unix_now()}) for p in products]

    await kv_set_json(keys.PRODUCTS, [p.model_dump() for p in stamped])
    for product in stamped:
        await kv_set_json(keys.product(product.slug), product.model_dump())
        await set_stock(product.slug, product.stock)
        await write_product_flags(product)
    await rebuild_products_index([p.slug for p in stamped])
    return len(stamped)


async def main():
    try:
        count = await seed_products()
        print(f"Seeded {count} products into KV.")
    finally:
        await close_kv()


if __name__ == "__main__":
    asyncio.run(main())
