from catalog import (
    DEFAULT_LEAD_TIME,
    aggregate_catalog,
    classify,
    filter_products,
    find_product,
    normalize_tier,
)
from database import CATALOG_RANGE, InMemorySheetStore, SEED_SHEETS
from schemas import ProductKind


def seed_catalog():
    return aggregate_catalog(InMemorySheetStore(SEED_SHEETS).get_values(CATALOG_RANGE))


def test_groups_rows_by_name():
    products = seed_catalog()
    names = [p.name for p in products]
    assert names == ["Tシャツ", "フーディ", "ポイントカード", "ステッカー", "コーティング液剤", "マイクロファイバークロス"]
    tshirt = products[0]
    assert tshirt.colors == ["ホワイト", "ブラック"]
    assert tshirt.sizes == ["M", "XXL"]
    assert tshirt.price_per_size == {"M": "¥1,810", "XXL": "¥2,040"}
    assert tshirt.kind == ProductKind.APPAREL


def test_tiers_sorted_and_prices_aligned():
    sticker = find_product(seed_catalog(), name="ステッカー")
    assert sticker.quantity_tiers == [50, 100]
    assert sticker.price_per_tier == ["¥2,500", "¥4,000"]
    assert sticker.price_per_piece_tier == ["¥50", "¥40"]
    assert not sticker.is_fixed_bundle_price


def test_tiers_strictly_ascending_for_every_product():
    rows = [
        ["", "販促グッズ", "のぼり", "", "", "200枚", "¥9,000"],
        ["", "販促グッズ", "のぼり", "", "", "20枚", "¥1,000"],
        ["", "販促グッズ", "のぼり", "", "", "100枚", "¥5,000"],
        ["", "販促グッズ", "のぼり", "", "", "100枚", "¥4,800"],
    ]
    [banner] = aggregate_catalog(rows)
    assert banner.quantity_tiers == [20, 100, 200]
    assert len(banner.price_per_tier) == len(banner.quantity_tiers)
    # duplicate tier keeps the last price
    assert banner.price_per_tier == ["¥1,000", "¥4,800", "¥9,000"]
    assert banner.is_fixed_bundle_price
    assert banner.kind == ProductKind.PROMOTIONAL_TIERED


def test_missing_id_and_lead_time():
    [product] = aggregate_catalog([["", "クロス", "雑巾", "", "", "", "¥100"]])
    assert len(product.id) == 7
    assert product.lead_time == DEFAULT_LEAD_TIME
    assert product.kind == ProductKind.FLAT


def test_classify():
    assert classify("販促グッズ", "フーディ", True) == ProductKind.APPAREL
    assert classify("販促グッズ", "ステッカー", True) == ProductKind.PROMOTIONAL_TIERED
    assert classify("販促グッズ", "ステッカー", False) == ProductKind.FLAT
    assert classify("液剤", "コーティング液剤", False) == ProductKind.FLAT


def test_normalize_tier():
    assert normalize_tier("100枚") == 100
    assert normalize_tier("1,000") == 1000
    assert normalize_tier("") is None


def test_find_product_prefers_id():
    products = seed_catalog()
    assert find_product(products, "g1", "ステッカー").name == "ポイントカード"
    assert find_product(products, "nope", "ステッカー").id == "g2"
    assert find_product(products, "nope") is None


def test_filter_products():
    products = seed_catalog()
    assert [p.name for p in filter_products(products, category="販促グッズ")] == ["ポイントカード", "ステッカー"]
    assert [p.name for p in filter_products(products, q="クロス")] == ["マイクロファイバークロス"]
    assert len(filter_products(products)) == len(products)
