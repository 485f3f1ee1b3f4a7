"""
Positional row codec for the spreadsheet tables.

Order_history layout (0-indexed cells):

    0 order number | 1 date | 2 time | 3 store name | 4 store email
    5.. item groups of 4 cells (name, size, color, quantity), read below cell 33
    45 shipping date (column AT) | 46 status (column AU)

Decoding never raises: missing or malformed cells become defaults.
"""
from __future__ import annotations
import logging
from typing import Any, Optional, Sequence

from errors import MalformedInput
from schemas import CatalogRow, Order, OrderItem, OrderStatus, Partner, StoreInfo

logger = logging.getLogger(__name__)

CATALOG_COLUMNS = (
    "id", "category", "name", "color", "size", "quantity_tier",
    "price", "price_per_piece", "lead_time", "partner_name", "partner_email",
)

ORDER_ITEMS_START = 5
ORDER_ITEM_WIDTH = 4
ORDER_ITEMS_END = 33
MAX_ORDER_ITEMS = (ORDER_ITEMS_END - ORDER_ITEMS_START + ORDER_ITEM_WIDTH - 1) // ORDER_ITEM_WIDTH
SHIPPING_DATE_CELL = 45
STATUS_CELL = 46
ORDER_ROW_WIDTH = STATUS_CELL + 1


def column_letter(index: int) -> str:
    """0 -> A, 25 -> Z, 26 -> AA, 45 -> AT."""
    letters = ""
    n = index + 1
    while n > 0:
        n, rem = divmod(n - 1, 26)
        letters = chr(ord("A") + rem) + letters
    return letters


def cell(row: Sequence[Any], index: int) -> str:
    """Cell text at index, "" when absent or None."""
    try:
        value = row[index]
    except (IndexError, TypeError):
        return ""
    if value is None:
        return ""
    return str(value).strip()


def decode_catalog_row(row: Sequence[Any]) -> CatalogRow:
    return CatalogRow(**{name: cell(row, i) for i, name in enumerate(CATALOG_COLUMNS)})


def decode_order_items(row: Sequence[Any]) -> list[OrderItem]:
    items = []
    try:
        end = min(len(row), ORDER_ITEMS_END)
    except TypeError:
        return items
    for i in range(ORDER_ITEMS_START, end, ORDER_ITEM_WIDTH):
        name = cell(row, i)
        if not name:
            # slots after an empty name are not read
            break
        items.append(OrderItem(
            name=name,
            size=cell(row, i + 1),
            color=cell(row, i + 2),
            quantity=cell(row, i + 3) or "1",
        ))
    return items


def derive_status(status_cell: str, shipping_date: Optional[str]) -> OrderStatus:
    """Shipped iff a shipping date is present; the status cell only confirms it."""
    if not shipping_date:
        if status_cell == OrderStatus.SHIPPED.value:
            logger.debug("status cell says shipped without a shipping date; using processing")
        return OrderStatus.PROCESSING
    if status_cell and status_cell != OrderStatus.SHIPPED.value:
        logger.debug("status cell %r disagrees with shipping date %s", status_cell, shipping_date)
    return OrderStatus.SHIPPED


def decode_order_row(row: Sequence[Any], index: int = 0) -> Order:
    shipping_date = cell(row, SHIPPING_DATE_CELL) or None
    return Order(
        order_number=cell(row, 0) or f"ORD-{index + 1:05d}",
        order_date=cell(row, 1),
        order_time=cell(row, 2),
        store_name=cell(row, 3),
        store_email=cell(row, 4),
        items=decode_order_items(row),
        status=derive_status(cell(row, STATUS_CELL), shipping_date),
        shipping_date=shipping_date,
    )


def encode_order_row(order: Order) -> list[str]:
    if len(order.items) > MAX_ORDER_ITEMS:
        raise MalformedInput("items", f"an order holds at most {MAX_ORDER_ITEMS} lines")
    row = [""] * ORDER_ROW_WIDTH
    row[0] = order.order_number
    row[1] = order.order_date
    row[2] = order.order_time
    row[3] = order.store_name
    row[4] = order.store_email
    for n, item in enumerate(order.items):
        base = ORDER_ITEMS_START + n * ORDER_ITEM_WIDTH
        row[base] = item.name
        row[base + 1] = item.size
        row[base + 2] = item.color
        row[base + 3] = item.quantity
    row[SHIPPING_DATE_CELL] = order.shipping_date or ""
    row[STATUS_CELL] = order.status.value
    return row


# store_info: A id, B name, C phone, D zip code, E address, F email, G password
def decode_store_row(row: Sequence[Any]) -> StoreInfo:
    return StoreInfo(
        id=cell(row, 0),
        name=cell(row, 1),
        phone=cell(row, 2) or None,
        zip_code=cell(row, 3) or None,
        address=cell(row, 4) or None,
        email=cell(row, 5),
        password=cell(row, 6) or None,
    )


# partner_info: A id, B name, C email
def decode_partner_row(row: Sequence[Any]) -> Partner:
    return Partner(id=cell(row, 0), name=cell(row, 1), email=cell(row, 2))
