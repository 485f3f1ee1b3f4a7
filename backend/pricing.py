"""
Per-category pricing rules, order totals and delivery estimates.

Apparel is priced by size, tiered promotional goods by the selected tier
(fixed-bundle items charge the tier price once), everything else by the first
listed price times quantity.
"""
from __future__ import annotations
import logging
import re
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Optional, Union

from catalog import (
    CHEMICAL_CATEGORY,
    PROMOTIONAL_CATEGORY,
    is_apparel_name,
    is_fixed_bundle_name,
)
from errors import MalformedInput
from schemas import CartLine, CartSelection, LineQuote, Product, ProductKind, Quote

logger = logging.getLogger(__name__)

TAX_RATE = 0.10
SAME_DAY = "即日"
PROMOTIONAL_LEAD = timedelta(weeks=3)
CHEMICAL_LEAD = timedelta(days=3)

# Reference size tables used when the catalog has no price for a size
TSHIRT_PRICES = {"M": 1810, "L": 1810, "XL": 1810, "XXL": 2040}
HOODIE_PRICES = {"M": 3210, "L": 3210, "XL": 3210, "XXL": 3770, "XXXL": 4000}
GARMENT_TABLES = (("Tシャツ", TSHIRT_PRICES, 1810), ("フーディ", HOODIE_PRICES, 3210))


def parse_money(value: Union[str, int, float, None]) -> float:
    """"¥1,810" -> 1810.0. Anything unparseable is 0."""
    if value is None:
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    cleaned = re.sub(r"[^0-9.\-]", "", str(value))
    try:
        return float(cleaned) if cleaned else 0.0
    except ValueError:
        logger.debug("unparseable money value %r", value)
        return 0.0


def apparel_unit_price(product: Product, size: Optional[str]) -> float:
    if size and size in product.price_per_size:
        return parse_money(product.price_per_size[size])
    for garment, table, default in GARMENT_TABLES:
        if garment in product.name:
            return float(table.get(size or "", default))
    if product.price_per_tier:
        return parse_money(product.price_per_tier[0])
    if product.price_per_size:
        return parse_money(next(iter(product.price_per_size.values())))
    return 0.0


def tier_price(product: Product, tier: Optional[int]) -> Optional[str]:
    if tier is None or tier not in product.quantity_tiers:
        return None
    return product.price_per_tier[product.quantity_tiers.index(tier)]


def flat_unit_price(product: Product) -> str:
    if product.price_per_tier:
        return product.price_per_tier[0]
    if product.price_per_size:
        return next(iter(product.price_per_size.values()))
    return "0"


def build_cart_line(product: Product, selection: CartSelection) -> CartLine:
    """Turn a product and the shopper's choices into a cart line."""
    line = dict(
        product_id=product.id,
        category=product.category,
        name=product.name,
        lead_time=product.lead_time,
        quantity=selection.quantity,
        partner_name=product.partner_name or None,
        kind=product.kind,
        is_fixed_bundle_price=product.is_fixed_bundle_price,
    )
    if product.kind == ProductKind.APPAREL:
        if product.colors and not selection.color:
            raise MalformedInput("color", "カラーを選択してください")
        if product.sizes and not selection.size:
            raise MalformedInput("size", "サイズを選択してください")
        price = apparel_unit_price(product, selection.size)
        line.update(
            unit_price_or_bundle_price=f"{price:g}",
            selected_color=selection.color,
            selected_size=selection.size,
        )
    elif product.kind == ProductKind.PROMOTIONAL_TIERED:
        price = tier_price(product, selection.quantity_tier)
        if price is None:
            raise MalformedInput("quantityTier", "数量を選択してください")
        line.update(
            unit_price_or_bundle_price=price,
            selected_quantity_tier=selection.quantity_tier,
            selected_color=selection.color,
        )
    else:
        line.update(
            unit_price_or_bundle_price=flat_unit_price(product),
            selected_color=selection.color,
            selected_size=selection.size,
        )
    return CartLine(**line)


def reprice_line(line: CartLine, product: Product) -> CartLine:
    """Rebuild a client cart line from the catalog.

    Only the shopper's choices (color, size, tier, quantity) are taken from the
    line; price, category, name, lead time, partner and kind come from the
    product. Choices the product cannot honor raise MalformedInput.
    """
    selection = CartSelection(
        product_id=product.id,
        color=line.selected_color,
        size=line.selected_size,
        quantity_tier=line.selected_quantity_tier,
        quantity=line.quantity,
    )
    repriced = build_cart_line(product, selection)
    if parse_money(repriced.unit_price_or_bundle_price) != parse_money(line.unit_price_or_bundle_price):
        logger.info("repriced %s from %s to %s", product.name, line.unit_price_or_bundle_price,
                    repriced.unit_price_or_bundle_price)
    return repriced


def is_fixed_bundle(line: CartLine) -> bool:
    if line.is_fixed_bundle_price is not None:
        return line.is_fixed_bundle_price
    return is_fixed_bundle_name(line.name)


def line_kind(line: CartLine) -> ProductKind:
    if line.kind is not None:
        return line.kind
    if is_apparel_name(line.name):
        return ProductKind.APPAREL
    if line.category == PROMOTIONAL_CATEGORY and line.selected_quantity_tier:
        return ProductKind.PROMOTIONAL_TIERED
    return ProductKind.FLAT


def line_total(line: CartLine) -> float:
    price = parse_money(line.unit_price_or_bundle_price)
    if line_kind(line) == ProductKind.PROMOTIONAL_TIERED and is_fixed_bundle(line):
        return price
    return price * line.quantity


def order_item_quantity(line: CartLine) -> str:
    """Quantity written to the order row."""
    if line_kind(line) == ProductKind.PROMOTIONAL_TIERED:
        if is_fixed_bundle(line):
            return str(line.selected_quantity_tier)
        return str(line.selected_quantity_tier * line.quantity)
    return str(line.quantity)


def format_quantity(line: CartLine) -> str:
    if line.selected_quantity_tier and is_fixed_bundle(line):
        return f"{line.selected_quantity_tier}枚"
    if line_kind(line) == ProductKind.PROMOTIONAL_TIERED:
        return f"{line.selected_quantity_tier}枚 × {line.quantity}"
    unit = "本" if CHEMICAL_CATEGORY in line.name else "枚"
    return f"{line.quantity}{unit}"


@dataclass(frozen=True)
class DeliveryEstimate:
    when: Optional[date]
    same_day: bool = False

    def label(self) -> str:
        if self.same_day:
            return "即日出荷"
        if self.when is None:
            return "納期未定"
        return format_day(self.when)


def format_day(d: date) -> str:
    return f"{d:%Y年%m月%d日}頃"


def estimate_delivery(category: str, lead_time: str, today: date) -> DeliveryEstimate:
    if lead_time == SAME_DAY:
        return DeliveryEstimate(today, same_day=True)
    if category == PROMOTIONAL_CATEGORY:
        return DeliveryEstimate(today + PROMOTIONAL_LEAD)
    if category == CHEMICAL_CATEGORY:
        return DeliveryEstimate(today + CHEMICAL_LEAD)
    if not lead_time:
        return DeliveryEstimate(None)
    m = re.search(r"\d+", lead_time)
    weeks = int(m.group()) if m else 0
    return DeliveryEstimate(today + timedelta(weeks=weeks))


def delivery_range(estimates: Iterable[DeliveryEstimate]) -> str:
    estimates = list(estimates)
    if not estimates:
        return "データなし"
    dates = [e.when for e in estimates if e.when is not None]
    if not dates:
        return "納期未定"
    first, last = min(dates), max(dates)
    if first == last:
        return format_day(first)
    return f"{first:%Y年%m月%d日} - {format_day(last)}"


def has_apparel(lines: Iterable[CartLine]) -> bool:
    return any(line_kind(line) == ProductKind.APPAREL for line in lines)


def quote(lines: list[CartLine], today: date, shipping_fee: float) -> Quote:
    """Subtotal, flat 10% tax and one apparel surcharge per order."""
    line_quotes = []
    estimates = []
    subtotal = 0.0
    for line in lines:
        total = line_total(line)
        subtotal += total
        estimate = estimate_delivery(line.category, line.lead_time, today)
        estimates.append(estimate)
        line_quotes.append(LineQuote(
            name=line.name,
            line_total=total,
            quantity_label=format_quantity(line),
            delivery=estimate.label(),
        ))
    tax = round(subtotal * TAX_RATE, 2)
    fee = shipping_fee if has_apparel(lines) else 0.0
    return Quote(
        lines=line_quotes,
        subtotal=round(subtotal, 2),
        tax=tax,
        shipping_fee=fee,
        total=round(subtotal + tax + fee, 2),
        delivery_range=delivery_range(estimates),
    )
