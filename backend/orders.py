"""
Order assembly and order history.

Write path: cart lines + store -> one Order_history row, then notifications.
Read path: Order_history rows -> Order records for history and admin views.
"""
from __future__ import annotations
import hashlib
import logging
import math
from datetime import date, datetime, timedelta
from typing import Iterable, Optional

from catalog import is_fixed_bundle_name
from database import ORDER_NUMBER_RANGE, ORDER_RANGE, ORDER_SHEET, SheetStore
from errors import MalformedInput, NotFound, UpstreamUnavailable
from notifier import Notifier
from pricing import order_item_quantity
from rowcodec import (
    SHIPPING_DATE_CELL,
    STATUS_CELL,
    cell,
    column_letter,
    decode_order_row,
    encode_order_row,
)
from schemas import CartLine, NoticeItem, Order, OrderItem, OrderPage, OrderStatus, Partner, Product, StoreInfo

logger = logging.getLogger(__name__)

ORDER_NUMBER_ATTEMPTS = 1000
STALE_AFTER = timedelta(days=7)


# Order numbers

def generate_order_number(now: datetime) -> str:
    """ORD- followed by the first 6 hex digits of md5(ms timestamp), mod 100000."""
    timestamp = str(int(now.timestamp() * 1000))
    digest = hashlib.md5(timestamp.encode()).hexdigest()
    return f"ORD-{int(digest[:6], 16) % 100000:05d}"


def allocate_order_number(now: datetime, taken: set[str]) -> str:
    for offset in range(ORDER_NUMBER_ATTEMPTS):
        candidate = generate_order_number(now + timedelta(milliseconds=offset))
        if candidate not in taken:
            if offset:
                logger.warning("order number collision; used offset %dms", offset)
            return candidate
    raise UpstreamUnavailable("Could not allocate a unique order number")


# Write path

def validate_submission(lines: Optional[list[CartLine]], store: Optional[StoreInfo]) -> None:
    if not lines:
        raise MalformedInput("items", "カートに商品がありません")
    if store is None:
        raise MalformedInput("storeInfo", "ストア情報が取得できませんでした")
    if not store.name:
        raise MalformedInput("storeInfo.name", "店舗名がありません")
    if not store.email:
        raise MalformedInput("storeInfo.email", "メールアドレスがありません")


def assemble_order(lines: list[CartLine], store: StoreInfo, order_number: str, now: datetime) -> Order:
    return Order(
        order_number=order_number,
        order_date=f"{now:%Y/%m/%d}",
        order_time=f"{now:%H:%M}",
        store_name=store.name,
        store_email=store.email,
        items=[
            OrderItem(
                name=line.name,
                size=line.selected_size or "",
                color=line.selected_color or "",
                quantity=order_item_quantity(line),
            )
            for line in lines
        ],
        status=OrderStatus.PROCESSING,
    )


def submit_order(store: SheetStore, lines: list[CartLine], store_info: StoreInfo, now: datetime) -> Order:
    """Append one order row; the caller schedules the notifications."""
    existing = {cell(row, 0) for row in store.get_values(ORDER_NUMBER_RANGE)}
    order = assemble_order(lines, store_info, allocate_order_number(now, existing), now)
    row = encode_order_row(order)
    store.append_row(f"{ORDER_SHEET}!A1", row)
    logger.info("Saved order %s for %s (%d items)", order.order_number, order.store_name, len(order.items))
    return order


def notice_items(lines: Iterable[CartLine]) -> list[NoticeItem]:
    return [
        NoticeItem(
            name=line.name,
            category=line.category,
            size=line.selected_size or "",
            color=line.selected_color or "",
            quantity=order_item_quantity(line),
        )
        for line in lines
    ]


def group_by_partner(lines: Iterable[CartLine]) -> dict[str, list[CartLine]]:
    groups: dict[str, list[CartLine]] = {}
    for line in lines:
        if line.partner_name:
            groups.setdefault(line.partner_name, []).append(line)
    return groups


def match_partner(name: str, partners: Iterable[Partner]) -> Optional[Partner]:
    """Trimmed, case-insensitive name match, then substring containment.

    This is a name heuristic, not a key: similar partner names can route a
    notice to the wrong partner.
    """
    wanted = name.strip().lower()
    if not wanted:
        return None
    partners = [p for p in partners if p.name]
    for partner in partners:
        if partner.name.strip().lower() == wanted:
            return partner
    for partner in partners:
        candidate = partner.name.strip().lower()
        if wanted in candidate or candidate in wanted:
            return partner
    return None


def dispatch_notifications(notifier: Notifier, order: Order, lines: list[CartLine],
                           partners: list[Partner], total: Optional[float]) -> None:
    """Store confirmation, then one notice per partner. Never raises."""
    placed_at = f"{order.order_date} {order.order_time}"
    notifier.send_order_confirmation(order.store_email, order.order_number, order.store_name,
                                     notice_items(lines), total, placed_at)
    for partner_name, partner_lines in group_by_partner(lines).items():
        partner = match_partner(partner_name, partners)
        if partner is None:
            logger.error("No partner entry matches %r for %s", partner_name, order.order_number)
        notifier.send_partner_notice(
            partner_name,
            partner.email if partner else None,
            order.order_number,
            order.store_name,
            notice_items(partner_lines),
            placed_at,
        )


# Read path

def decode_orders(rows: Iterable[list[str]]) -> list[Order]:
    return [decode_order_row(row, i) for i, row in enumerate(rows)]


def load_orders(store: SheetStore) -> list[Order]:
    return decode_orders(store.get_values(ORDER_RANGE))


def order_timestamp(order: Order) -> datetime:
    try:
        return datetime.strptime(f"{order.order_date} {order.order_time}".strip(), "%Y/%m/%d %H:%M")
    except ValueError:
        pass
    try:
        return datetime.strptime(order.order_date, "%Y/%m/%d")
    except ValueError:
        return datetime.min


def sort_orders_desc(orders: Iterable[Order]) -> list[Order]:
    return sorted(orders, key=order_timestamp, reverse=True)


def search_orders(orders: Iterable[Order], query: str) -> list[Order]:
    q = (query or "").strip().lower()
    if not q:
        return list(orders)
    return [
        o for o in orders
        if q in o.order_number.lower()
        or q in o.store_name.lower()
        or any(q in item.name.lower() for item in o.items)
    ]


def filter_by_status(orders: Iterable[Order], status: Optional[OrderStatus]) -> list[Order]:
    if status is None:
        return list(orders)
    return [o for o in orders if o.status == status]


def item_category(item: OrderItem, products: list[Product]) -> Optional[str]:
    for product in products:
        if product.name and product.name in item.name:
            return product.category
    return None


def filter_by_category(orders: Iterable[Order], category: str, products: list[Product]) -> list[Order]:
    """Orders narrowed to the items of one catalog category."""
    out = []
    for order in orders:
        items = [item for item in order.items if item_category(item, products) == category]
        if items:
            out.append(order.model_copy(update={"items": items}))
    return out


def paginate(orders: list[Order], page: int, limit: int) -> OrderPage:
    page = max(1, page)
    limit = max(1, limit)
    start = (page - 1) * limit
    return OrderPage(
        orders=orders[start:start + limit],
        total=len(orders),
        page=page,
        limit=limit,
        total_pages=math.ceil(len(orders) / limit),
    )


def stale_orders(orders: Iterable[Order], today: date) -> list[Order]:
    """Processing orders placed more than a week before today."""
    cutoff = datetime.combine(today - STALE_AFTER, datetime.min.time())
    out = []
    for order in orders:
        placed = order_timestamp(order)
        if order.status == OrderStatus.PROCESSING and placed != datetime.min and placed < cutoff:
            out.append(order)
    return out


def format_item_quantity(item: OrderItem) -> str:
    return f"{item.quantity}枚" if is_fixed_bundle_name(item.name) else item.quantity


# Status transitions

def _locate(store: SheetStore, order_number: str) -> tuple[int, Order]:
    rows = store.get_values(ORDER_RANGE)
    if not rows:
        raise NotFound("No orders found")
    for i, row in enumerate(rows):
        if cell(row, 0) == order_number:
            # data starts on sheet row 2
            return i + 2, decode_order_row(row, i)
    raise NotFound("Order not found")


def _write_shipping(store: SheetStore, sheet_row: int, shipping_date: Optional[str], status: OrderStatus) -> None:
    a1 = f"{ORDER_SHEET}!{column_letter(SHIPPING_DATE_CELL)}{sheet_row}:{column_letter(STATUS_CELL)}{sheet_row}"
    store.update_values(a1, [[shipping_date or "", status.value]])


def parse_shipping_date(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    try:
        return datetime.strptime(value.strip()[:10], "%Y-%m-%d").strftime("%Y-%m-%d")
    except ValueError:
        raise MalformedInput("shippingDate", "出荷日は YYYY-MM-DD 形式で指定してください")


def set_shipping_date(store: SheetStore, order_number: str, shipping_date: Optional[str]) -> tuple[Order, Order]:
    """Setting a date ships the order; clearing it returns the order to processing."""
    shipping_date = parse_shipping_date(shipping_date)
    sheet_row, before = _locate(store, order_number)
    status = OrderStatus.SHIPPED if shipping_date else OrderStatus.PROCESSING
    _write_shipping(store, sheet_row, shipping_date, status)
    after = before.model_copy(update={"shipping_date": shipping_date, "status": status})
    logger.info("Order %s: %s -> %s (shipping date %s)", order_number, before.status.value, status.value, shipping_date)
    return before, after


def set_status(store: SheetStore, order_number: str, new_status: OrderStatus) -> Order:
    sheet_row, before = _locate(store, order_number)
    if new_status == OrderStatus.SHIPPED:
        if not before.shipping_date:
            raise MalformedInput("newStatus", "出荷済みにするには出荷日を設定してください")
        shipping_date = before.shipping_date
    else:
        shipping_date = None
    _write_shipping(store, sheet_row, shipping_date, new_status)
    logger.info("Order %s status set to %s", order_number, new_status.value)
    return before.model_copy(update={"shipping_date": shipping_date, "status": new_status})
