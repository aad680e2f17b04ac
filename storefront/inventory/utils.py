import math
from typing import Any, Iterable, List, Optional
from storefront.config.settings import config_settings
from storefront.inventory.constants import DEFAULT_LOW_STOCK_THRESHOLD
from storefront.inventory.models import AtomicDecrementResult, DecrementFailure, StockRequest, StockTransition


def parse_number_result(value: Any, fallback: float = 0) -> float:
    if isinstance(value, bool):
        return fallback
    if isinstance(value, (int, float)):
        return value if math.isfinite(value) else fallback
    if isinstance(value, (bytes, bytearray)):
        value = value.decode()
    if isinstance(value, str):
        try:
            num = float(value)
        except ValueError:
            return fallback
        return num if math.isfinite(num) else fallback
    return fallback


def as_count(value: Any, fallback: float = 0) -> int:
    """Counter value read from the store as a non-negative int."""
    return max(0, math.floor(parse_number_result(value, fallback)))


def get_low_stock_threshold() -> int:
    configured = parse_number_result(config_settings.LOW_STOCK_THRESHOLD, DEFAULT_LOW_STOCK_THRESHOLD)
    return max(1, math.floor(configured))


def get_stock_transition(previous: int, next_value: int) -> Optional[StockTransition]:
    threshold = get_low_stock_threshold()
    before = max(0, math.floor(previous))
    after = max(0, math.floor(next_value))

    if before > 0 and after == 0:
        return StockTransition.ZERO
    if before > threshold and 0 < after <= threshold:
        return StockTransition.LOW
    return None


def to_result(requested: int, ok: bool, previous: int, next_value: int,
              reason: Optional[DecrementFailure] = None, slug: Optional[str] = None) -> AtomicDecrementResult:
    return AtomicDecrementResult(
        slug=slug,
        ok=ok,
        requested=requested,
        previous=previous,
        next=next_value,
        reason=reason,
        transition=get_stock_transition(previous, next_value) if ok else None,
    )


def _field(row: Any, name: str) -> Any:
    if isinstance(row, dict):
        return row.get(name)
    return getattr(row, name, None)


def normalize_requests(rows: Iterable[Any]) -> List[StockRequest]:
    """
    Trim slugs, floor quantities, drop unusable rows and sum duplicate slugs.
    First-seen slug order is kept.
    """
    grouped: dict = {}
    for row in rows:
        slug = _field(row, "slug")
        slug = slug.strip() if isinstance(slug, str) else ""
        quantity = parse_number_result(_field(row, "quantity"), fallback=0)
        quantity = math.floor(quantity)
        if not slug or quantity <= 0:
            continue
        grouped[slug] = grouped.get(slug, 0) + quantity
    return [StockRequest(slug=slug, quantity=qty) for slug, qty in grouped.items()]
