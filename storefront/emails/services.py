from typing import Optional, Union
import httpx
from storefront.common.custom_exceptions import ConfigurationError
from storefront.common.retries import retry_http
from storefront.config.settings import config_settings
from storefront.emails.constants import EMAIL_TIMEOUT_SECONDS, InventoryAlertKind, logger
from storefront.emails.templates import inventory_alert_text, order_received_text, shipped_text


def _email_credentials():
    if not config_settings.RESEND_API_KEY:
        raise ConfigurationError("Missing RESEND_API_KEY")
    if not config_settings.EMAIL_FROM:
        raise ConfigurationError("Missing EMAIL_FROM")
    return config_settings.RESEND_API_KEY, config_settings.EMAIL_FROM


@retry_http("resend")
async def post_email(payload: dict, api_key: str) -> dict:
    headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}
    async with httpx.AsyncClient(base_url=config_settings.RESEND_API_BASE, timeout=EMAIL_TIMEOUT_SECONDS) as client:
        resp = await client.post("/emails", json=payload, headers=headers)
        resp.raise_for_status()
        return resp.json()


async def send_email(to: str, subject: str, text: str) -> Optional[str]:
    api_key, email_from = _email_credentials()
    data = await post_email({"from": email_from, "to": to, "subject": subject, "text": text}, api_key)
    message_id = data.get("id") if isinstance(data, dict) else None
    logger.info("email.sent", extra={"to": to, "subject": subject, "message_id": message_id})
    return message_id


async def send_order_received_email(order_id: str, customer_email: str,
                                    product_title: Optional[str], quantity: int):
    logger.debug("email.order_received", extra={"order_id": order_id})
    return await send_email(customer_email, "Order received", order_received_text(product_title, quantity))


async def send_shipped_email(order_id: str, customer_email: str, carrier: str,
                             tracking_number: str, tracking_url: str):
    logger.debug("email.shipped", extra={"order_id": order_id, "carrier": carrier})
    return await send_email(customer_email, "Your order has shipped",
                            shipped_text(carrier, tracking_number, tracking_url))


async def send_inventory_alert_email(kind: Union[InventoryAlertKind, str], slug: str, current_stock: int,
                                     previous_stock: int, order_id: Optional[str] = None,
                                     quantity: Optional[int] = None) -> dict:
    """Alert the shop owner; skipped when no alert recipient is configured."""
    to = config_settings.INVENTORY_ALERT_EMAIL
    if not to:
        return {"sent": False}

    kind = InventoryAlertKind(kind)
    await send_email(
        to,
        f"[Inventory] {kind.value.upper()} {slug}",
        inventory_alert_text(kind.value, slug, current_stock, previous_stock, order_id=order_id, quantity=quantity),
    )
    return {"sent": True}
