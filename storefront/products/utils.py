import math
from typing import Any, List, Optional
from storefront.products.models import Product


def as_string(value: Any, fallback: str = "") -> str:
    return value if isinstance(value, str) else fallback

def as_number(value: Any, fallback: float = 0) -> float:
    if isinstance(value, bool):
        return fallback
    if isinstance(value, (int, float)) and math.isfinite(value):
        return value
    return fallback

def as_bool(value: Any, fallback: bool = False) -> bool:
    return value if isinstance(value, bool) else fallback

def as_string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str) and item]


def _pick(row: dict, *names: str) -> Any:
    for name in names:
        if name in row:
            return row[name]
    return None


def normalize_product(raw: Any) -> Optional[Product]:
    """
    Build a Product from a loosely typed KV row.
    Rows written by older tooling use camelCase keys; rows without slug or title are dropped.
    """
    if not isinstance(raw, dict):
        return None

    slug = as_string(raw.get("slug")).strip()
    title = as_string(raw.get("title")).strip()
    if not slug or not title:
        return None

    subtitle = as_string(raw.get("subtitle"))
    price_id = as_string(_pick(raw, "price_id", "priceId")) or None
    updated_at = as_number(_pick(raw, "updated_at", "updatedAt"), fallback=-1)

    return Product(
        slug=slug,
        title=title,
        subtitle=subtitle,
        description=as_string(raw.get("description"), subtitle),
        price_cents=max(0, math.floor(as_number(_pick(raw, "price_cents", "priceCents")))),
        stock=max(0, math.floor(as_number(raw.get("stock")))),
        archived=as_bool(raw.get("archived")),
        published=as_bool(raw.get("published")),
        auto_archive_on_zero=as_bool(_pick(raw, "auto_archive_on_zero", "autoArchiveOnZero")),
        images=as_string_list(raw.get("images")),
        materials=as_string(raw.get("materials")),
        dimensions=as_string(raw.get("dimensions")),
        care=as_string(raw.get("care")),
        shipping_returns=as_string(_pick(raw, "shipping_returns", "shippingReturns")),
        price_id=price_id,
        updated_at=int(updated_at) if updated_at >= 0 else None,
    )

def sanitize_stock_updates(updates) -> List[dict]:
    """Keep rows with a slug and a finite stock value; stock floored at 0."""
    rows = []
    for item in updates or []:
        slug = item.slug.strip() if isinstance(item.slug, str) else ""
        try:
            stock_value = float(item.stock if item.stock is not None else 0)
        except (TypeError, ValueError):
            continue
        if not slug or not math.isfinite(stock_value):
            continue
        rows.append({"slug": slug, "stock": max(0, math.floor(stock_value))})
    return rows
