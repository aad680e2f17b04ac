import uuid
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlencode
import httpx
from storefront.common.custom_exceptions import ConfigurationError
from storefront.common.retries import retry_http
from storefront.config.settings import config_settings
from storefront.inventory.models import StockRequest
from storefront.orders.constants import LINE_ITEMS_PAGE_LIMIT, STRIPE_API_VERSION, STRIPE_TIMEOUT_SECONDS, logger
from storefront.orders.utils import build_cart_metadata, encode_stripe_form, parse_cart_metadata
from storefront.products.models import Product


def stripe_secret_key() -> str:
    if not config_settings.STRIPE_SECRET_KEY:
        raise ConfigurationError("Missing STRIPE_SECRET_KEY")
    return config_settings.STRIPE_SECRET_KEY


def site_url() -> str:
    if not config_settings.SITE_URL:
        raise ConfigurationError("Missing SITE_URL")
    return config_settings.SITE_URL.rstrip("/")


@retry_http("stripe")
async def stripe_request(method: str, path: str, *, params: Optional[Dict[str, Any]] = None,
                         form: Optional[Dict[str, Any]] = None, idempotency_key: Optional[str] = None) -> dict:
    headers = {"Stripe-Version": STRIPE_API_VERSION}
    content = None
    if form is not None:
        headers["Content-Type"] = "application/x-www-form-urlencoded"
        content = urlencode(encode_stripe_form(form))
    if idempotency_key:
        # the same key on every attempt, so a retried create never opens two sessions
        headers["Idempotency-Key"] = idempotency_key

    async with httpx.AsyncClient(base_url=config_settings.STRIPE_API_BASE, timeout=STRIPE_TIMEOUT_SECONDS,
                                 auth=(stripe_secret_key(), "")) as client:
        resp = await client.request(method, path, params=params, content=content, headers=headers)
        resp.raise_for_status()
        return resp.json()


def build_line_item(product: Product, quantity: int, adjustable_max: Optional[int] = None) -> Dict[str, Any]:
    line_item: Dict[str, Any] = {"quantity": quantity}
    if adjustable_max is not None:
        line_item["adjustable_quantity"] = {"enabled": True, "minimum": 1, "maximum": adjustable_max}

    if product.price_id:
        line_item["price"] = product.price_id
        return line_item

    line_item["price_data"] = {
        "currency": config_settings.CHECKOUT_CURRENCY,
        "unit_amount": product.price_cents,
        "product_data": {
            "name": product.title,
            "description": product.description or product.subtitle,
        },
    }
    return line_item


async def create_checkout_session(rows: List[Tuple[Product, int]], stock_by_slug: Dict[str, int],
                                  adjustable: bool = False) -> dict:
    """
    Open a hosted checkout session for (product, quantity) rows.
    adjustable lets the buyer change the quantity of a single item, bounded by its live stock.
    """
    stripe_secret_key()
    base_url = site_url()
    first_slug = rows[0][0].slug

    line_items = [
        build_line_item(product, quantity, stock_by_slug.get(product.slug) if adjustable else None)
        for product, quantity in rows
    ]
    metadata = {"slug": first_slug}
    if not adjustable:
        metadata["cart"] = build_cart_metadata([StockRequest(slug=p.slug, quantity=q) for p, q in rows])

    if adjustable:
        success_url = f"{base_url}/products/{first_slug}?success=1&session_id={{CHECKOUT_SESSION_ID}}"
        cancel_url = f"{base_url}/products/{first_slug}?canceled=1"
    else:
        success_url = f"{base_url}/cart?success=1&session_id={{CHECKOUT_SESSION_ID}}"
        cancel_url = f"{base_url}/cart?canceled=1"

    form = {
        "mode": "payment",
        "success_url": success_url,
        "cancel_url": cancel_url,
        "line_items": line_items,
        "metadata": metadata,
    }
    session = await stripe_request("POST", "/checkout/sessions", form=form, idempotency_key=str(uuid.uuid4()))
    logger.info("stripe.checkout.session_created",
                extra={"session_id": session.get("id"), "slugs": [p.slug for p, _ in rows]})
    return session


async def get_line_item_quantity(session_id: str) -> int:
    data = await stripe_request("GET", f"/checkout/sessions/{session_id}/line_items",
                                params={"limit": LINE_ITEMS_PAGE_LIMIT})
    return sum(int(item.get("quantity") or 0) for item in data.get("data") or [])


async def get_purchased_items(session: Dict[str, Any]) -> List[StockRequest]:
    metadata = session.get("metadata") or {}
    from_metadata = parse_cart_metadata(metadata.get("cart"))
    if from_metadata:
        return from_metadata

    slug = metadata.get("slug")
    if not slug:
        return []

    quantity = await get_line_item_quantity(session["id"])
    return [StockRequest(slug=slug, quantity=max(1, quantity))]
