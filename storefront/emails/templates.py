from typing import Optional

SIGNATURE = "- LAEM Archive"


def order_received_text(product_title: Optional[str] = None, quantity: Optional[int] = None) -> str:
    lines = ["Your order has been received.", ""]
    if product_title:
        suffix = f" x {quantity}" if quantity and quantity > 1 else ""
        lines += [f"Item: {product_title}{suffix}", ""]
    lines += [
        "The piece will now be prepared and finished for shipment.",
        "Processing time is typically a few days.",
        "",
        "You will receive a separate message once the order has shipped.",
        "",
        "Thank you for your patience.",
        SIGNATURE,
    ]
    return "\n".join(lines)


def shipped_text(carrier: str, tracking_number: str, tracking_url: str) -> str:
    return "\n".join([
        "Your order has shipped.",
        "",
        f"Carrier: {carrier}",
        f"Tracking: {tracking_number}",
        "",
        "You can follow the shipment here:",
        tracking_url,
        "",
        "Thank you for your patience.",
        SIGNATURE,
    ])


def inventory_alert_text(kind: str, slug: str, current_stock: int, previous_stock: int,
                         order_id: Optional[str] = None, quantity: Optional[int] = None) -> str:
    lines = [
        "Inventory alert.",
        "",
        f"Product slug: {slug}",
        f"Transition: {kind}",
        f"Previous stock: {previous_stock}",
        f"Current stock: {current_stock}",
    ]
    if quantity is not None:
        lines.append(f"Requested quantity: {quantity}")
    if order_id:
        lines.append(f"Order/session: {order_id}")

    lines += ["", "Check admin inventory and Stripe orders.", SIGNATURE]
    return "\n".join(lines)
