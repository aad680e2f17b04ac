from typing import List, Optional
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import PlainTextResponse, RedirectResponse
from pydantic import ValidationError
from storefront.common.custom_exceptions import ConfigurationError, ProviderError
from storefront.common.utils import json_error, json_ok, read_payload, unix_now
from storefront.config.settings import config_settings
from storefront.emails.services import send_shipped_email
from storefront.inventory.models import StockRequest
from storefront.inventory.repository import get_stock
from storefront.inventory.utils import normalize_requests
from storefront.orders.constants import logger
from storefront.orders.models import (ConflictResolution, OrderShipping, OrderStatus, ResolveOrderIn,
                                      ShipOrderIn)
from storefront.orders.repository import list_orders_page, read_order, write_order
from storefront.orders.services import create_checkout_session, site_url, stripe_secret_key
from storefront.orders.utils import parse_date_filter, parse_status_filter, stripe_dashboard_url
from storefront.products.repository import get_product
from storefront.rate_limiting.dependencies import rate_limit_dependency

orders_router = APIRouter()
orders_admin_router = APIRouter()

checkout_rate_limit = rate_limit_dependency(
    "checkout",
    limit=lambda: config_settings.RATE_LIMIT_CHECKOUT_MAX,
    window=lambda: config_settings.RATE_LIMIT_CHECKOUT_WINDOW_SECONDS,
    detail="Too many checkout attempts. Try again shortly.",
    plain_text=True,
)


def _checkout_requests(payload: dict) -> Optional[List[StockRequest]]:
    """Cart checkouts send items; the product page sends a single slug (None)."""
    items = payload.get("items")
    if isinstance(items, list):
        return normalize_requests([row for row in items if isinstance(row, dict)])
    return None


@orders_router.post("/checkout", dependencies=[Depends(checkout_rate_limit)])
async def checkout(request: Request):
    try:
        stripe_secret_key()
        site_url()
    except ConfigurationError as e:
        logger.error("stripe.checkout.misconfigured", extra={"error": str(e)})
        return PlainTextResponse(str(e), status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

    wants_json = "application/json" in request.headers.get("content-type", "")
    payload = await read_payload(request)

    requests = _checkout_requests(payload)
    adjustable = requests is None
    if adjustable:
        slug = payload.get("slug")
        slug = slug.strip() if isinstance(slug, str) else ""
        requests = [StockRequest(slug=slug, quantity=1)] if slug else []
    if not requests:
        return PlainTextResponse("Missing slug", status_code=status.HTTP_400_BAD_REQUEST)

    rows = []
    stock_by_slug = {}
    for item in requests:
        product = await get_product(item.slug)
        if not product or not product.published or product.archived:
            return PlainTextResponse("Product not found", status_code=status.HTTP_404_NOT_FOUND)

        stock = await get_stock(item.slug)
        if stock <= 0:
            return PlainTextResponse("Out of stock", status_code=status.HTTP_400_BAD_REQUEST)
        if item.quantity > stock:
            return PlainTextResponse(f"Only {stock} left for {item.slug}", status_code=status.HTTP_409_CONFLICT)
        rows.append((product, item.quantity))
        stock_by_slug[item.slug] = stock

    try:
        session = await create_checkout_session(rows, stock_by_slug, adjustable=adjustable)
    except ProviderError as e:
        logger.error("stripe.checkout.session_failed", extra={"provider_status": e.status_code, "error": str(e)})
        return PlainTextResponse("Unable to create checkout session", status_code=status.HTTP_502_BAD_GATEWAY)
    url = session.get("url")
    if not url:
        logger.error("stripe.checkout.missing_url", extra={"session_id": session.get("id")})
        return PlainTextResponse("Unable to create checkout session",
                                 status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

    if wants_json:
        return json_ok({"ok": True, "url": url})
    return RedirectResponse(url, status_code=status.HTTP_303_SEE_OTHER)


@orders_admin_router.get("")
async def list_orders(request: Request):
    params = request.query_params
    from_param = params.get("from")
    to_param = params.get("to")
    try:
        from_unix = parse_date_filter(from_param)
        to_unix = parse_date_filter(to_param, end_of_day=True)
    except ValueError:
        return json_error({"ok": False, "error": "Invalid date filter"}, status_code=status.HTTP_400_BAD_REQUEST)
    if from_unix is not None and to_unix is not None and from_unix > to_unix:
        return json_error({"ok": False, "error": "`from` cannot be after `to`"},
                          status_code=status.HTTP_400_BAD_REQUEST)

    result = await list_orders_page(
        limit=params.get("limit", "25"),
        page=params.get("page", "1"),
        status=parse_status_filter(params.get("status")),
        from_unix=from_unix,
        to_unix=to_unix,
    )

    secret_key = config_settings.STRIPE_SECRET_KEY
    rows = []
    for row in result.rows:
        data = row.model_dump(mode="json")
        data["customer_email"] = row.email
        data["payment_status"] = row.status.value
        data["stripe_dashboard_url"] = stripe_dashboard_url(row.id, secret_key)
        rows.append(data)

    return json_ok({
        "ok": True,
        "rows": rows,
        "pagination": {
            "page": result.page,
            "limit": result.limit,
            "total": result.total,
            "totalPages": result.total_pages,
        },
    })


@orders_admin_router.post("/ship")
async def ship_order(request: Request):
    try:
        payload = ShipOrderIn.model_validate(await read_payload(request))
    except ValidationError:
        return json_error({"ok": False, "error": "Invalid payload"}, status_code=status.HTTP_400_BAD_REQUEST)

    order = await read_order(payload.order_id)
    if not order:
        return json_error({"ok": False, "error": "Order not found"}, status_code=status.HTTP_404_NOT_FOUND)

    if order.status == OrderStatus.STOCK_CONFLICT:
        return json_error({"ok": False, "error": "Order has stock conflict. Resolve/refund before shipping."},
                          status_code=status.HTTP_409_CONFLICT)
    if order.status == OrderStatus.CONFLICT_RESOLVED:
        return json_error({"ok": False, "error": "Order conflict already resolved. Shipping is disabled for this order."},
                          status_code=status.HTTP_409_CONFLICT)
    if order.status == OrderStatus.SHIPPED:
        return json_ok({"ok": True, "already": True})

    order.status = OrderStatus.SHIPPED
    order.shipping = OrderShipping(
        carrier=payload.carrier,
        tracking_number=payload.tracking_number,
        tracking_url=payload.tracking_url,
        shipped_at=unix_now(),
    )
    await write_order(order)
    logger.info("order.shipped", extra={"order_id": order.id, "carrier": payload.carrier})

    if order.email:
        try:
            await send_shipped_email(order.id, order.email, payload.carrier,
                                     payload.tracking_number, payload.tracking_url)
        except (ProviderError, ConfigurationError) as e:
            logger.error("order.shipped_email_failed", extra={"order_id": order.id, "error": str(e)})

    return json_ok({"ok": True})


@orders_admin_router.post("/resolve")
async def resolve_order(request: Request):
    try:
        payload = ResolveOrderIn.model_validate(await read_payload(request))
    except ValidationError:
        return json_error({"ok": False, "error": "Invalid payload"}, status_code=status.HTTP_400_BAD_REQUEST)

    order = await read_order(payload.order_id)
    if not order:
        return json_error({"ok": False, "error": "Order not found"}, status_code=status.HTTP_404_NOT_FOUND)

    if order.status == OrderStatus.CONFLICT_RESOLVED:
        return json_ok({"ok": True, "already": True})
    if order.status != OrderStatus.STOCK_CONFLICT:
        return json_error({"ok": False, "error": "Only stock conflict orders can be resolved."},
                          status_code=status.HTTP_409_CONFLICT)

    order.status = OrderStatus.CONFLICT_RESOLVED
    order.conflict_resolution = ConflictResolution(note=payload.note or "Resolved in admin", resolved_at=unix_now())
    await write_order(order)
    logger.info("order.conflict_resolved", extra={"order_id": order.id})
    return json_ok({"ok": True})
