import pytest

from errors import MalformedInput
from rowcodec import (
    MAX_ORDER_ITEMS,
    ORDER_ROW_WIDTH,
    SHIPPING_DATE_CELL,
    STATUS_CELL,
    cell,
    column_letter,
    decode_catalog_row,
    decode_order_row,
    decode_store_row,
    derive_status,
    encode_order_row,
)
from schemas import Order, OrderItem, OrderStatus


def test_column_letters():
    assert column_letter(0) == "A"
    assert column_letter(25) == "Z"
    assert column_letter(26) == "AA"
    assert column_letter(SHIPPING_DATE_CELL) == "AT"
    assert column_letter(STATUS_CELL) == "AU"


def test_cell_defaults():
    assert cell(["a", None], 1) == ""
    assert cell(["a"], 5) == ""
    assert cell([" x "], 0) == "x"


def test_catalog_row_short_row():
    row = decode_catalog_row(["g1", "販促グッズ", "ステッカー"])
    assert row.name == "ステッカー"
    assert row.price == ""
    assert row.partner_email == ""


def test_order_round_trip():
    order = Order(
        order_number="ORD-01234",
        order_date="2025/03/10",
        order_time="09:30",
        store_name="テスト店舗1",
        store_email="test1@example.com",
        items=[
            OrderItem(name="Tシャツ", size="XXL", color="ブラック", quantity="3"),
            OrderItem(name="ステッカー", quantity="200"),
        ],
        status=OrderStatus.SHIPPED,
        shipping_date="2025-03-12",
    )
    row = encode_order_row(order)
    assert len(row) == ORDER_ROW_WIDTH
    assert row[5:9] == ["Tシャツ", "XXL", "ブラック", "3"]
    assert row[SHIPPING_DATE_CELL] == "2025-03-12"
    assert row[STATUS_CELL] == "出荷済み"
    assert decode_order_row(row) == order


def test_encode_rejects_more_than_seven_items():
    order = Order(order_number="ORD-00001", items=[OrderItem(name=f"item{i}") for i in range(MAX_ORDER_ITEMS + 1)])
    with pytest.raises(MalformedInput) as exc:
        encode_order_row(order)
    assert exc.value.field == "items"


def test_decode_stops_at_first_empty_item_name():
    row = ["ORD-00001", "2025/03/10", "09:30", "店", "a@example.com",
           "Tシャツ", "M", "白", "1",
           "", "", "", "",
           "ステッカー", "", "", "100"]
    assert [i.name for i in decode_order_row(row).items] == ["Tシャツ"]


def test_decode_missing_cells():
    order = decode_order_row([], index=4)
    assert order.order_number == "ORD-00005"
    assert order.items == []
    assert order.status == OrderStatus.PROCESSING
    assert order.shipping_date is None


def test_item_quantity_defaults_to_one():
    row = ["ORD-00001", "", "", "", "", "ステッカー", "", ""]
    assert decode_order_row(row).items[0].quantity == "1"


def test_status_follows_shipping_date():
    assert derive_status("出荷済み", None) == OrderStatus.PROCESSING
    assert derive_status("処理中", "2025-03-12") == OrderStatus.SHIPPED
    assert derive_status("", "2025-03-12") == OrderStatus.SHIPPED
    assert derive_status("", None) == OrderStatus.PROCESSING


def test_store_row_columns():
    s = decode_store_row(["store1", "テスト店舗1", "03-1234-5678", "150-0002", "東京都渋谷区", "test1@example.com", "pass1"])
    assert s.email == "test1@example.com"
    assert s.zip_code == "150-0002"
    assert s.password == "pass1"
    assert "password" not in s.model_dump(by_alias=True)
