from typing import Any, List, Optional
from pydantic import AliasChoices, BaseModel, Field, field_validator


class Product(BaseModel):
    slug: str
    title: str
    subtitle: str = ""
    description: str = ""
    price_cents: int = 0
    stock: int = 0
    archived: bool = False
    published: bool = False
    auto_archive_on_zero: bool = False
    images: List[str] = Field(default_factory=list)
    materials: str = ""
    dimensions: str = ""
    care: str = ""
    shipping_returns: str = ""
    price_id: Optional[str] = None      # pre-created processor price, if any
    updated_at: Optional[int] = None


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value in ("on", "true", "1")
    return bool(value)

def _as_non_negative_int(value: Any) -> int:
    try:
        return max(0, int(float(value)))
    except (TypeError, ValueError, OverflowError):
        return 0


class ProductSaveIn(BaseModel):
    """Admin product form, accepts JSON (snake or camel case) and form posts."""
    slug: str
    title: str
    subtitle: str = ""
    description: Optional[str] = None
    price_cents: int = Field(0, validation_alias=AliasChoices("price_cents", "priceCents"))
    stock: int = 0
    archived: bool = False
    published: bool = False
    auto_archive_on_zero: bool = Field(False, validation_alias=AliasChoices("auto_archive_on_zero", "autoArchiveOnZero"))
    images: List[str] = Field(default_factory=list)
    materials: str = ""
    dimensions: str = ""
    care: str = ""
    shipping_returns: str = Field("", validation_alias=AliasChoices("shipping_returns", "shippingReturns"))
    price_id: Optional[str] = Field(None, validation_alias=AliasChoices("price_id", "priceId"))

    @field_validator("slug", "title")
    @classmethod
    def _required_trimmed(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be empty")
        return v

    @field_validator("price_cents", "stock", mode="before")
    @classmethod
    def _clamp_ints(cls, v: Any) -> int:
        return _as_non_negative_int(v)

    @field_validator("archived", "published", "auto_archive_on_zero", mode="before")
    @classmethod
    def _bools(cls, v: Any) -> bool:
        return _as_bool(v)

    @field_validator("images", mode="before")
    @classmethod
    def _images(cls, v: Any) -> List[str]:
        # form posts send one url per line
        if isinstance(v, str):
            return [line.strip() for line in v.splitlines() if line.strip()]
        if isinstance(v, list):
            return [item for item in v if isinstance(item, str) and item]
        return []

    def to_product(self, updated_at: Optional[int] = None) -> Product:
        stock = self.stock
        archived = True if (self.auto_archive_on_zero and stock <= 0) else self.archived
        return Product(
            slug=self.slug,
            title=self.title,
            subtitle=self.subtitle,
            description=self.description if self.description is not None else self.subtitle,
            price_cents=self.price_cents,
            stock=stock,
            archived=archived,
            published=self.published,
            auto_archive_on_zero=self.auto_archive_on_zero,
            images=self.images,
            materials=self.materials,
            dimensions=self.dimensions,
            care=self.care,
            shipping_returns=self.shipping_returns,
            price_id=self.price_id or None,
            updated_at=updated_at,
        )


class StockUpdateIn(BaseModel):
    slug: Any = None
    stock: Any = None


class BulkStockIn(BaseModel):
    updates: List[StockUpdateIn] = Field(default_factory=list)
