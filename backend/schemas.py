"""
Domain and wire schemas for the storefront.

Records are decoded from spreadsheet rows (see rowcodec) and serialized to the
storefront with camelCase keys. Attribute names stay snake_case.
"""
from __future__ import annotations
from enum import Enum
from typing import Optional, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProductKind(str, Enum):
    APPAREL = "apparel"
    PROMOTIONAL_TIERED = "promotional_tiered"
    FLAT = "flat"


class OrderStatus(str, Enum):
    PROCESSING = "処理中"
    SHIPPED = "出荷済み"


# Catalog

class CatalogRow(BaseModel):
    id: str = ""
    category: str = ""
    name: str = ""
    color: str = ""
    size: str = ""
    quantity_tier: str = ""
    price: str = ""
    price_per_piece: str = ""
    lead_time: str = ""
    partner_name: str = ""
    partner_email: str = ""


class Product(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    category: str = ""
    name: str = ""
    colors: list[str] = []
    sizes: list[str] = []
    quantity_tiers: list[int] = []
    price_per_tier: list[str] = []
    price_per_piece_tier: list[str] = []
    price_per_size: dict[str, str] = {}
    lead_time: str = ""
    partner_name: str = ""
    partner_email: str = ""
    kind: ProductKind = ProductKind.FLAT
    is_fixed_bundle_price: bool = False


# Cart (held by the client; the server only prices and persists it)

class CartLine(CamelModel):
    product_id: str = ""
    category: str = ""
    name: str
    unit_price_or_bundle_price: str = "0"
    lead_time: str = ""
    selected_color: Optional[str] = None
    selected_size: Optional[str] = None
    selected_quantity_tier: Optional[int] = None
    quantity: int = Field(default=1, ge=1)
    partner_name: Optional[str] = None
    # set from the catalog; None on lines that never went through it
    kind: Optional[ProductKind] = None
    is_fixed_bundle_price: Optional[bool] = None

    @field_validator("unit_price_or_bundle_price", mode="before")
    @classmethod
    def _price_as_text(cls, v):
        if v is None:
            return "0"
        return str(v)


class CartSelection(CamelModel):
    product_id: Optional[str] = None
    name: Optional[str] = None
    color: Optional[str] = None
    size: Optional[str] = None
    quantity_tier: Optional[int] = None
    quantity: int = Field(default=1, ge=1)


class LineQuote(CamelModel):
    name: str
    line_total: float
    quantity_label: str
    delivery: str


class Quote(CamelModel):
    lines: list[LineQuote] = []
    subtotal: float = 0
    tax: float = 0
    shipping_fee: float = 0
    total: float = 0
    delivery_range: str = ""


class QuoteRequest(CamelModel):
    items: list[CartLine] = []


# Orders

class OrderItem(CamelModel):
    name: str = ""
    size: str = ""
    color: str = ""
    quantity: str = "1"


class Order(CamelModel):
    order_number: str
    order_date: str = ""
    order_time: str = ""
    store_name: str = ""
    store_email: str = ""
    items: list[OrderItem] = []
    status: OrderStatus = OrderStatus.PROCESSING
    shipping_date: Optional[str] = None


class OrderPage(CamelModel):
    orders: list[Order] = []
    total: int = 0
    page: int = 1
    limit: int = 30
    total_pages: int = 0


# Reference data

class StoreInfo(CamelModel):
    id: str = ""
    name: str = ""
    email: str = ""
    address: Optional[str] = None
    phone: Optional[str] = None
    zip_code: Optional[str] = None
    password: Optional[str] = Field(default=None, exclude=True)


class Partner(CamelModel):
    id: str = ""
    name: str = ""
    email: str = ""


# Notifications

class NoticeItem(CamelModel):
    name: str
    category: str = ""
    size: str = ""
    color: str = ""
    quantity: str = "1"


class NotificationFailure(CamelModel):
    order_number: str
    partner_name: str
    recipient: Optional[str] = None
    reason: str
    occurred_at: str


# Request / response payloads

class LoginPayload(CamelModel):
    store_id: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class AdminLoginPayload(CamelModel):
    email: Optional[str] = None
    password: Optional[str] = None


class CheckoutPayload(CamelModel):
    items: Optional[list[CartLine]] = None
    store_info: Optional[StoreInfo] = None
    shipping_method: str = "standard"
    total_amount: Optional[Union[float, str]] = None


class CheckoutResult(CamelModel):
    success: bool = True
    order_number: str


class StatusUpdate(CamelModel):
    order_number: Optional[str] = None
    new_status: Optional[str] = None


class ShippingDateUpdate(CamelModel):
    order_number: Optional[str] = None
    shipping_date: Optional[str] = None
