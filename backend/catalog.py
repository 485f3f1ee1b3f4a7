"""Catalog aggregation: one Product per product name from per-variant rows."""
from __future__ import annotations
import logging
import re
import uuid
from typing import Any, Iterable, Optional, Sequence

from rowcodec import decode_catalog_row
from schemas import CatalogRow, Product, ProductKind

logger = logging.getLogger(__name__)

PROMOTIONAL_CATEGORY = "販促グッズ"
CHEMICAL_CATEGORY = "液剤"

DEFAULT_LEAD_TIME = "2週間"

# Garments sold by size and color
APPAREL_NAMES = ("Tシャツ", "フーディ", "ワークシャツ", "つなぎ")

# Tier price is the price of the whole bundle
FIXED_BUNDLE_NAMES = (
    "ポイントカード",
    "サブスクメンバーズカード",
    "サブスクフライヤー",
    "フリーチケット",
    "クーポン券",
    "名刺",
    "のぼり",
    "お年賀(マイクロファイバークロス)",
)


def is_apparel_name(name: str) -> bool:
    return any(garment in name for garment in APPAREL_NAMES)


def is_fixed_bundle_name(name: str) -> bool:
    return any(item in name for item in FIXED_BUNDLE_NAMES)


def classify(category: str, name: str, tiered: bool) -> ProductKind:
    if is_apparel_name(name):
        return ProductKind.APPAREL
    if category == PROMOTIONAL_CATEGORY and tiered:
        return ProductKind.PROMOTIONAL_TIERED
    return ProductKind.FLAT


def normalize_tier(value: str) -> Optional[int]:
    digits = re.sub(r"[^0-9]", "", value or "")
    return int(digits) if digits else None


class _Group:
    def __init__(self, row: CatalogRow):
        self.id = row.id or uuid.uuid4().hex[:7]
        self.category = row.category
        self.name = row.name
        self.lead_time = row.lead_time or DEFAULT_LEAD_TIME
        self.partner_name = row.partner_name
        self.partner_email = row.partner_email
        self.colors: dict[str, None] = {}
        self.sizes: dict[str, None] = {}
        self.prices: dict[int, str] = {}
        self.prices_per_piece: dict[int, str] = {}
        self.tiers: set[int] = set()
        self.size_prices: dict[str, str] = {}

    def add(self, row: CatalogRow) -> None:
        if row.color:
            self.colors[row.color] = None
        if row.size:
            self.sizes[row.size] = None
            if row.price:
                self.size_prices[row.size] = row.price
        tier = normalize_tier(row.quantity_tier)
        if tier is None:
            return
        self.tiers.add(tier)
        if row.price:
            self.prices[tier] = row.price
        if row.price_per_piece:
            self.prices_per_piece[tier] = row.price_per_piece

    def build(self) -> Product:
        tiers = sorted(self.tiers)
        return Product(
            id=self.id,
            category=self.category,
            name=self.name,
            colors=list(self.colors),
            sizes=list(self.sizes),
            quantity_tiers=tiers,
            price_per_tier=[self.prices.get(t, "0") for t in tiers],
            price_per_piece_tier=[self.prices_per_piece.get(t, "0") for t in tiers],
            price_per_size=dict(self.size_prices),
            lead_time=self.lead_time,
            partner_name=self.partner_name,
            partner_email=self.partner_email,
            kind=classify(self.category, self.name, bool(tiers)),
            is_fixed_bundle_price=is_fixed_bundle_name(self.name),
        )


def aggregate_catalog(rows: Iterable[Sequence[Any]]) -> list[Product]:
    """Group raw catalog rows by product name.

    Colors and sizes are unioned in arrival order. Quantity tiers are sorted
    ascending once all rows are seen, and the per-tier price lists are rebuilt
    index-aligned to that order. A tier seen twice keeps the last price.
    """
    groups: dict[str, _Group] = {}
    for raw in rows:
        row = decode_catalog_row(raw)
        group = groups.get(row.name)
        if group is None:
            group = groups[row.name] = _Group(row)
        group.add(row)
    products = [g.build() for g in groups.values()]
    logger.debug("aggregated %d products", len(products))
    return products


def find_product(products: Iterable[Product], product_id: Optional[str] = None, name: Optional[str] = None) -> Optional[Product]:
    products = list(products)
    if product_id:
        for product in products:
            if product.id == product_id:
                return product
    if name is not None:
        for product in products:
            if product.name == name:
                return product
    return None


def filter_products(products: Iterable[Product], category: Optional[str] = None, q: Optional[str] = None) -> list[Product]:
    needle = (q or "").lower()
    return [
        p for p in products
        if (not category or p.category == category) and (not needle or needle in p.name.lower())
    ]
