import orjson
from fastapi import Request
from fastapi.responses import PlainTextResponse
from storefront.common.constants import request_id_ctx
from storefront.common.custom_exceptions import ConfigurationError, KVUnavailableError, ProviderError
from storefront.common.utils import unix_now
from storefront.config.settings import config_settings
from storefront.emails.constants import InventoryAlertKind
from storefront.emails.services import send_inventory_alert_email, send_order_received_email
from storefront.inventory.models import MultiAtomicDecrementResult
from storefront.inventory.repository import decrement_multiple_stock_atomic
from storefront.orders.constants import logger
from storefront.orders.models import OrderRecord, OrderStatus, StockConflict
from storefront.orders.repository import append_order_to_index, has_order, write_order
from storefront.orders.services import get_purchased_items
from storefront.orders.utils import WebhookSignatureError, verify_stripe_signature
from storefront.products.repository import get_product, sync_product_stock_and_archive_state

EMAIL_ERRORS = (ProviderError, ConfigurationError)


def _build_order(session: dict, items, status: OrderStatus, slug, conflict=None) -> OrderRecord:
    customer = session.get("customer_details") or {}
    return OrderRecord(
        id=session["id"],
        slug=slug,
        email=customer.get("email"),
        created=session.get("created") or unix_now(),
        quantity=sum(item.quantity for item in items),
        items=items,
        status=status,
        amount_total=session.get("amount_total"),
        currency=session.get("currency"),
        conflict=conflict,
    )


async def _record_stock_conflict(session: dict, items, stock_result: MultiAtomicDecrementResult):
    session_id = session["id"]
    failed_slug = stock_result.failed_slug or items[0].slug
    failed_item = stock_result.items[0] if stock_result.items else None
    available = failed_item.previous if failed_item else 0
    requested = failed_item.requested if failed_item else 0

    order = _build_order(session, items, OrderStatus.STOCK_CONFLICT, failed_slug,
                         conflict=StockConflict(failed_slug=failed_slug, requested=requested, available=available))
    await write_order(order)
    await append_order_to_index(session_id)

    # payment is kept, an admin settles the shortfall by hand
    logger.error(
        "stripe.webhook.stock_conflict",
        extra={"session_id": session_id, "failed_slug": failed_slug, "available": available,
               "requested": [item.model_dump() for item in items], "request_id": request_id_ctx.get(None)},
    )

    try:
        await send_inventory_alert_email(InventoryAlertKind.OVERSELL, failed_slug or "unknown",
                                         current_stock=available, previous_stock=available,
                                         order_id=session_id, quantity=order.quantity)
    except EMAIL_ERRORS as e:
        logger.error("stripe.webhook.oversell_alert_failed",
                     extra={"session_id": session_id, "slug": failed_slug, "error": str(e)})


async def _sync_snapshots(session_id: str, stock_result: MultiAtomicDecrementResult) -> None:
    for item in stock_result.items:
        try:
            await sync_product_stock_and_archive_state(item.slug, item.next)
        except KVUnavailableError as e:
            # the counter is authoritative; the snapshot catches up on the next save
            logger.warning("stripe.webhook.snapshot_sync_failed",
                           extra={"session_id": session_id, "slug": item.slug, "error": str(e)})


async def _send_transition_alerts(session_id: str, stock_result: MultiAtomicDecrementResult) -> None:
    for item in stock_result.items:
        if not item.transition:
            continue
        logger.warning(
            "inventory.threshold_transition",
            extra={"order_id": session_id, "slug": item.slug, "transition": item.transition.value,
                   "previous": item.previous, "next": item.next},
        )
        try:
            await send_inventory_alert_email(item.transition.value, item.slug,
                                             current_stock=item.next, previous_stock=item.previous,
                                             order_id=session_id, quantity=item.requested)
        except EMAIL_ERRORS as e:
            logger.error("stripe.webhook.transition_alert_failed",
                         extra={"order_id": session_id, "slug": item.slug,
                                "transition": item.transition.value, "error": str(e)})


async def _send_order_received(order: OrderRecord) -> None:
    first_product = await get_product(order.slug) if order.slug else None
    try:
        await send_order_received_email(order.id, order.email,
                                        first_product.title if first_product else None, order.quantity)
    except EMAIL_ERRORS as e:
        logger.error("stripe.webhook.order_email_failed", extra={"order_id": order.id, "error": str(e)})


async def stripe_webhook(request: Request):
    if not config_settings.STRIPE_SECRET_KEY:
        return PlainTextResponse("Missing STRIPE_SECRET_KEY", status_code=500)
    if not config_settings.STRIPE_WEBHOOK_SECRET:
        return PlainTextResponse("Missing STRIPE_WEBHOOK_SECRET", status_code=500)

    signature = request.headers.get("stripe-signature")
    if not signature:
        return PlainTextResponse("Missing Stripe signature", status_code=400)

    body = await request.body()
    try:
        verify_stripe_signature(body, signature, config_settings.STRIPE_WEBHOOK_SECRET,
                                config_settings.STRIPE_WEBHOOK_TOLERANCE_SECONDS)
        event = orjson.loads(body)
    except (WebhookSignatureError, orjson.JSONDecodeError) as e:
        logger.warning("stripe.webhook.rejected", extra={"error": str(e)})
        return PlainTextResponse(f"Webhook Error: {e}", status_code=400)

    if not isinstance(event, dict) or event.get("type") != "checkout.session.completed":
        return PlainTextResponse("Ignored", status_code=200)

    session = (event.get("data") or {}).get("object") or {}
    if session.get("payment_status") != "paid" or not session.get("id"):
        return PlainTextResponse("Ignored", status_code=200)

    session_id = session["id"]
    # not atomic against two concurrent deliveries of the same event
    if await has_order(session_id):
        logger.info("stripe.webhook.duplicate", extra={"session_id": session_id})
        return PlainTextResponse("Already processed", status_code=200)

    items = await get_purchased_items(session)
    if not items:
        logger.warning("stripe.webhook.missing_cart", extra={"session_id": session_id})
        return PlainTextResponse("Missing cart metadata", status_code=400)

    stock_result = await decrement_multiple_stock_atomic(items)
    if not stock_result.ok:
        await _record_stock_conflict(session, items, stock_result)
        return PlainTextResponse("Stock conflict recorded", status_code=200)

    await _sync_snapshots(session_id, stock_result)

    order = _build_order(session, items, OrderStatus.PAID, items[0].slug)
    await write_order(order)
    await append_order_to_index(session_id)
    logger.info("stripe.webhook.order_paid",
                extra={"session_id": session_id, "quantity": order.quantity, "non_atomic": stock_result.non_atomic})

    await _send_transition_alerts(session_id, stock_result)

    if order.email:
        await _send_order_received(order)

    return PlainTextResponse("ok", status_code=200)
