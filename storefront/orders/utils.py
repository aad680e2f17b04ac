import hashlib
import hmac
import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
from storefront.common.utils import unix_now
from storefront.inventory.models import StockRequest
from storefront.inventory.utils import parse_number_result
from storefront.orders.constants import ORDERS_PAGE_DEFAULT_LIMIT, ORDERS_PAGE_MAX_LIMIT, STRIPE_DASHBOARD_BASE
from storefront.orders.models import (ConflictResolution, OrderRecord, OrderShipping, OrderStatus,
                                      StockConflict)


class WebhookSignatureError(ValueError):
    pass


def _as_string(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value.strip() else None

def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value if math.isfinite(value) else None

def _first_number(*values: Any) -> Optional[float]:
    for v in values:
        n = _as_number(v)
        if n is not None:
            return n
    return None


def normalize_status(value: Any) -> OrderStatus:
    if value in (OrderStatus.STOCK_CONFLICT.value, OrderStatus.CONFLICT_RESOLVED.value, OrderStatus.SHIPPED.value):
        return OrderStatus(value)
    return OrderStatus.PAID


def normalize_shipping(value: Any) -> Optional[OrderShipping]:
    if not isinstance(value, dict):
        return None
    carrier = _as_string(value.get("carrier"))
    tracking_number = _as_string(value.get("tracking_number", value.get("trackingNumber")))
    tracking_url = _as_string(value.get("tracking_url", value.get("trackingUrl")))
    shipped_at = _first_number(value.get("shipped_at"), value.get("shippedAt"))
    # partial shipping info is treated as none
    if not carrier or not tracking_number or not tracking_url or shipped_at is None:
        return None
    return OrderShipping(carrier=carrier, tracking_number=tracking_number,
                         tracking_url=tracking_url, shipped_at=int(shipped_at))


def normalize_items(value: Any) -> List[StockRequest]:
    if not isinstance(value, list):
        return []
    items = []
    for row in value:
        if not isinstance(row, dict):
            continue
        slug = _as_string(row.get("slug"))
        quantity = _as_number(row.get("quantity"))
        if slug and quantity is not None and quantity > 0:
            items.append(StockRequest(slug=slug, quantity=max(1, math.floor(quantity))))
    return items


def normalize_conflict(value: Any) -> Optional[StockConflict]:
    if not isinstance(value, dict):
        return None
    return StockConflict(
        failed_slug=_as_string(value.get("failed_slug")),
        requested=max(0, math.floor(_as_number(value.get("requested")) or 0)),
        available=max(0, math.floor(_as_number(value.get("available")) or 0)),
    )


def normalize_resolution(value: Any) -> Optional[ConflictResolution]:
    if not isinstance(value, dict):
        return None
    resolved_at = _first_number(value.get("resolved_at"), value.get("resolvedAt"))
    if resolved_at is None:
        return None
    return ConflictResolution(note=_as_string(value.get("note")) or "", resolved_at=int(resolved_at))


def normalize_order(raw: Any) -> Optional[OrderRecord]:
    """
    Build an OrderRecord from a loosely typed KV row.
    Accepts legacy keys (customerEmail, createdAt, payment_status, amountTotal); rows without an id are dropped.
    """
    if not isinstance(raw, dict):
        return None
    order_id = _as_string(raw.get("id"))
    if not order_id:
        return None

    created = _first_number(raw.get("created"), raw.get("createdAt"))
    quantity = _as_number(raw.get("quantity"))
    amount_total = _first_number(raw.get("amount_total"), raw.get("amountTotal"))

    return OrderRecord(
        id=order_id,
        slug=_as_string(raw.get("slug")),
        email=_as_string(raw.get("email")) or _as_string(raw.get("customerEmail")),
        created=int(created) if created is not None else unix_now(),
        quantity=max(1, math.floor(quantity if quantity is not None else 1)),
        items=normalize_items(raw.get("items")),
        status=normalize_status(raw.get("status") if raw.get("status") is not None else raw.get("payment_status")),
        amount_total=int(amount_total) if amount_total is not None else None,
        currency=_as_string(raw.get("currency")),
        shipping=normalize_shipping(raw.get("shipping")),
        conflict=normalize_conflict(raw.get("conflict")),
        conflict_resolution=normalize_resolution(raw.get("conflict_resolution", raw.get("conflictResolution"))),
    )


def matches_filters(row: OrderRecord, status: str, from_unix: Optional[int], to_unix: Optional[int]) -> bool:
    if status != "all" and row.status.value != status:
        return False
    if from_unix is not None and row.created < from_unix:
        return False
    if to_unix is not None and row.created > to_unix:
        return False
    return True


def clamp_page_limit(value: Any, fallback: int = ORDERS_PAGE_DEFAULT_LIMIT) -> int:
    parsed = parse_number_result(value, fallback=math.nan)
    if math.isnan(parsed):
        return fallback
    return min(ORDERS_PAGE_MAX_LIMIT, max(1, math.floor(parsed)))


def clamp_page(value: Any) -> int:
    parsed = parse_number_result(value, fallback=math.nan)
    if math.isnan(parsed):
        return 1
    return max(1, math.floor(parsed))


def parse_status_filter(value: Optional[str]) -> str:
    if value in {s.value for s in OrderStatus}:
        return value
    return "all"


def parse_date_filter(value: Optional[str], end_of_day: bool = False) -> Optional[int]:
    """YYYY-MM-DD -> unix seconds (UTC start or end of that day). Raises ValueError on bad input."""
    if not value:
        return None
    day = datetime.strptime(value, "%Y-%m-%d").replace(tzinfo=timezone.utc)
    if end_of_day:
        day = day.replace(hour=23, minute=59, second=59)
    return int(day.timestamp())


def stripe_dashboard_url(session_id: str, secret_key: Optional[str]) -> str:
    is_test = bool(secret_key and secret_key.startswith("sk_test_"))
    base = f"{STRIPE_DASHBOARD_BASE}/test" if is_test else STRIPE_DASHBOARD_BASE
    return f"{base}/checkout/sessions/{session_id}"


def parse_cart_metadata(cart_value: Any) -> List[StockRequest]:
    """'slug:qty,slug:qty' -> requests; malformed entries are skipped."""
    if not cart_value or not isinstance(cart_value, str):
        return []
    items = []
    for entry in cart_value.split(","):
        slug_raw, _, qty_raw = entry.partition(":")
        slug = slug_raw.strip()
        quantity = parse_number_result(qty_raw or "0", fallback=0)
        if not slug or quantity <= 0:
            continue
        items.append(StockRequest(slug=slug, quantity=max(1, math.floor(quantity))))
    return items


def build_cart_metadata(items: List[StockRequest]) -> str:
    return ",".join(f"{item.slug}:{item.quantity}" for item in items)


def encode_stripe_form(params: Dict[str, Any], prefix: str = "") -> List[Tuple[str, str]]:
    """Flatten nested params into the bracketed form fields the processor API expects."""
    out: List[Tuple[str, str]] = []
    for k, v in params.items():
        name = f"{prefix}[{k}]" if prefix else str(k)
        out.extend(_encode_value(name, v))
    return out

def _encode_value(name: str, value: Any) -> List[Tuple[str, str]]:
    if value is None:
        return []
    if isinstance(value, dict):
        return encode_stripe_form(value, prefix=name)
    if isinstance(value, (list, tuple)):
        out = []
        for i, item in enumerate(value):
            out.extend(_encode_value(f"{name}[{i}]", item))
        return out
    if isinstance(value, bool):
        return [(name, "true" if value else "false")]
    return [(name, str(value))]


def parse_signature_header(header: str) -> Tuple[Optional[int], List[str]]:
    timestamp = None
    signatures = []
    for part in header.split(","):
        k, _, v = part.strip().partition("=")
        if k == "t":
            try:
                timestamp = int(v)
            except ValueError:
                timestamp = None
        elif k == "v1" and v:
            signatures.append(v)
    return timestamp, signatures


def verify_stripe_signature(body: bytes, header: str, secret: str, tolerance: int,
                            now_ts: Optional[int] = None) -> None:
    timestamp, signatures = parse_signature_header(header)
    if timestamp is None or not signatures:
        raise WebhookSignatureError("Unable to extract timestamp and signatures from header")

    signed_payload = f"{timestamp}.".encode() + body
    expected = hmac.new(secret.encode(), signed_payload, hashlib.sha256).hexdigest()
    if not any(hmac.compare_digest(expected, sig) for sig in signatures):
        raise WebhookSignatureError("No signatures found matching the expected signature for payload")

    now_ts = unix_now() if now_ts is None else now_ts
    if tolerance > 0 and abs(now_ts - timestamp) > tolerance:
        raise WebhookSignatureError("Timestamp outside the tolerance zone")
