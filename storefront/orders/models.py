import enum
from typing import List, Optional
from pydantic import AliasChoices, BaseModel, Field, StrictStr, field_validator
from storefront.inventory.models import StockRequest


class OrderStatus(str, enum.Enum):
    PAID = "paid"
    SHIPPED = "shipped"
    STOCK_CONFLICT = "stock_conflict"
    CONFLICT_RESOLVED = "conflict_resolved"


class OrderShipping(BaseModel):
    carrier: str
    tracking_number: str
    tracking_url: str
    shipped_at: int


class StockConflict(BaseModel):
    failed_slug: Optional[str] = None
    requested: int = 0
    available: int = 0


class ConflictResolution(BaseModel):
    note: str
    resolved_at: int


class OrderRecord(BaseModel):
    id: str                      # processor checkout session id
    slug: Optional[str] = None   # first purchased product
    email: Optional[str] = None
    created: int
    quantity: int = 1
    items: List[StockRequest] = Field(default_factory=list)
    status: OrderStatus = OrderStatus.PAID
    amount_total: Optional[int] = None
    currency: Optional[str] = None
    shipping: Optional[OrderShipping] = None
    conflict: Optional[StockConflict] = None
    conflict_resolution: Optional[ConflictResolution] = None


class OrdersPage(BaseModel):
    rows: List[OrderRecord]
    total: int
    page: int
    limit: int
    total_pages: int


class ShipOrderIn(BaseModel):
    order_id: StrictStr = Field(validation_alias=AliasChoices("order_id", "orderId"))
    carrier: StrictStr
    tracking_number: StrictStr = Field(validation_alias=AliasChoices("tracking_number", "trackingNumber"))
    tracking_url: StrictStr = Field(validation_alias=AliasChoices("tracking_url", "trackingUrl"))


class ResolveOrderIn(BaseModel):
    order_id: StrictStr = Field(validation_alias=AliasChoices("order_id", "orderId"))
    note: str = ""

    @field_validator("order_id")
    @classmethod
    def _order_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("orderId is required")
        return v

    @field_validator("note", mode="before")
    @classmethod
    def _note(cls, v) -> str:
        return v.strip() if isinstance(v, str) else ""
