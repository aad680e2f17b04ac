import enum
from typing import List, Optional
from pydantic import BaseModel, Field


class StockTransition(str, enum.Enum):
    LOW = "low"
    ZERO = "zero"


class DecrementFailure(str, enum.Enum):
    INVALID_QUANTITY = "invalid_quantity"
    INVALID_REQUEST = "invalid_request"
    INSUFFICIENT_STOCK = "insufficient_stock"


class StockRequest(BaseModel):
    slug: str
    quantity: int


class AtomicDecrementResult(BaseModel):
    slug: Optional[str] = None
    ok: bool
    requested: int
    previous: int
    next: int
    reason: Optional[DecrementFailure] = None
    transition: Optional[StockTransition] = None


class MultiAtomicDecrementResult(BaseModel):
    ok: bool
    items: List[AtomicDecrementResult] = Field(default_factory=list)
    reason: Optional[DecrementFailure] = None
    failed_slug: Optional[str] = None
    # True when the result came from the per-slug compare-and-set path
    non_atomic: bool = False
