from __future__ import annotations
import logging
import os
from datetime import datetime
from typing import Callable, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from alerts import STALE_MESSAGE, LineAlerter
from cache import TTLCache
from catalog import aggregate_catalog, filter_products, find_product
from config import configure_logging, settings
from database import (
    CATALOG_RANGE,
    PARTNER_RANGE,
    PARTNER_SHEET,
    STORE_RANGE,
    SheetStore,
    create_store,
)
from errors import MalformedInput, NotFound, UpstreamUnavailable
from notifier import Notifier
from orders import (
    dispatch_notifications,
    filter_by_category,
    filter_by_status,
    format_item_quantity,
    load_orders,
    paginate,
    search_orders,
    set_shipping_date,
    set_status,
    sort_orders_desc,
    stale_orders,
    submit_order,
    validate_submission,
)
from pricing import build_cart_line, parse_money, quote, reprice_line
from rowcodec import MAX_ORDER_ITEMS, decode_partner_row, decode_store_row
from schemas import (
    AdminLoginPayload,
    CartLine,
    CartSelection,
    CheckoutPayload,
    CheckoutResult,
    LoginPayload,
    NoticeItem,
    NotificationFailure,
    Order,
    OrderPage,
    OrderStatus,
    Partner,
    Product,
    Quote,
    QuoteRequest,
    ShippingDateUpdate,
    StatusUpdate,
    StoreInfo,
)

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="SPLASH'N'GO! Order API")

# Allow all origins for the storefront and admin frontends
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Dependencies

_store: Optional[SheetStore] = None
_cache: Optional[TTLCache] = None
_notifier: Optional[Notifier] = None


def get_store() -> SheetStore:
    global _store
    if _store is None:
        _store = create_store(settings)
    return _store


def get_cache() -> TTLCache:
    global _cache
    if _cache is None:
        _cache = TTLCache(settings.CACHE_TTL_SECONDS)
    return _cache


def get_notifier() -> Notifier:
    global _notifier
    if _notifier is None:
        _notifier = Notifier.from_settings(settings)
    return _notifier


def get_alerter() -> LineAlerter:
    return LineAlerter.from_settings(settings)


def get_clock() -> Callable[[], datetime]:
    return datetime.now


# Errors

@app.exception_handler(MalformedInput)
async def malformed_input_handler(request: Request, exc: MalformedInput):
    return JSONResponse(status_code=400, content={"error": exc.message, "field": exc.field})


@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound):
    return JSONResponse(status_code=404, content={"error": str(exc)})


@app.exception_handler(UpstreamUnavailable)
async def upstream_handler(request: Request, exc: UpstreamUnavailable):
    logger.error("Upstream failure on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=502, content={"error": "Upstream service unavailable", "details": str(exc)})


# Utils

def load_catalog(store: SheetStore, cache: TTLCache) -> list[Product]:
    return cache.get_or_load("catalog", lambda: aggregate_catalog(store.get_values(CATALOG_RANGE)))


def load_stores(store: SheetStore, cache: TTLCache) -> list[StoreInfo]:
    return cache.get_or_load("stores", lambda: [decode_store_row(r) for r in store.get_values(STORE_RANGE)])


def load_partners(store: SheetStore, cache: TTLCache) -> list[Partner]:
    return cache.get_or_load("partners", lambda: [decode_partner_row(r) for r in store.get_values(PARTNER_RANGE)])


def reprice_cart(lines: list[CartLine], catalog: list[Product]) -> list[CartLine]:
    """Prices, kinds and partners come from the catalog, not the client."""
    repriced = []
    for line in lines:
        product = find_product(catalog, line.product_id, line.name)
        if product is None:
            raise MalformedInput("items", f"商品が見つかりません: {line.name}")
        repriced.append(reprice_line(line, product))
    return repriced


@app.get("/")
def root():
    return {"message": "SPLASH'N'GO! Order API running"}


@app.get("/test")
def test(store: SheetStore = Depends(get_store)):
    response = {
        "backend": "✅ Running",
        "sheet_id": "✅ Set" if settings.SHEET_ID else "❌ Not Set (demo data)",
        "connection_status": "Not Connected",
        "sheets": [],
    }
    try:
        response["sheets"] = store.sheet_titles()
        response["connection_status"] = "Connected"
    except UpstreamUnavailable as e:
        response["connection_status"] = f"⚠️ Error: {str(e)[:50]}"
    return response


# Login (plaintext comparison against store_info)

@app.post("/api/login")
def login(payload: LoginPayload, store: SheetStore = Depends(get_store), cache: TTLCache = Depends(get_cache)):
    if not payload.store_id and not (payload.email and payload.password):
        raise MalformedInput("email", "メールアドレスとパスワードを入力してください")
    stores = load_stores(store, cache)
    if payload.store_id:
        user = next((s for s in stores if s.id == payload.store_id and s.name != "admin"), None)
    else:
        user = next((s for s in stores if s.email == payload.email and s.password == payload.password), None)
    if user is None:
        raise HTTPException(status_code=401, detail="メールアドレスまたはパスワードが正しくありません")
    return {"message": "ログイン成功", "user": user.model_dump(by_alias=True)}


@app.post("/api/admin-login")
def admin_login(payload: AdminLoginPayload):
    if payload.email == settings.ADMIN_EMAIL and payload.password == settings.ADMIN_PASSWORD:
        return {"message": "Admin login successful"}
    raise HTTPException(status_code=401, detail="Invalid admin credentials")


@app.get("/api/stores", response_model=list[str])
def list_stores(store: SheetStore = Depends(get_store), cache: TTLCache = Depends(get_cache)):
    return [s.name for s in load_stores(store, cache) if s.name and s.name != "admin"]


# Catalog and cart

@app.get("/api/products", response_model=list[Product])
def list_products(
    category: Optional[str] = Query(None),
    q: Optional[str] = Query(None),
    store: SheetStore = Depends(get_store),
    cache: TTLCache = Depends(get_cache),
):
    return filter_products(load_catalog(store, cache), category=category, q=q)


@app.post("/api/cart/lines", response_model=CartLine)
def add_cart_line(selection: CartSelection, store: SheetStore = Depends(get_store), cache: TTLCache = Depends(get_cache)):
    if not selection.product_id and not selection.name:
        raise MalformedInput("productId", "商品を指定してください")
    product = find_product(load_catalog(store, cache), selection.product_id, selection.name)
    if product is None:
        raise NotFound("Product not found")
    return build_cart_line(product, selection)


@app.post("/api/cart/quote", response_model=Quote)
def quote_cart(
    payload: QuoteRequest,
    store: SheetStore = Depends(get_store),
    cache: TTLCache = Depends(get_cache),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    lines = reprice_cart(payload.items, load_catalog(store, cache))
    return quote(lines, clock().date(), settings.APPAREL_SHIPPING_FEE)


# Checkout

@app.post("/api/save-order", response_model=CheckoutResult)
def save_order(
    payload: CheckoutPayload,
    background_tasks: BackgroundTasks,
    store: SheetStore = Depends(get_store),
    cache: TTLCache = Depends(get_cache),
    notifier: Notifier = Depends(get_notifier),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    validate_submission(payload.items, payload.store_info)
    if len(payload.items) > MAX_ORDER_ITEMS:
        raise MalformedInput("items", f"1回の発注は{MAX_ORDER_ITEMS}商品までです")

    lines = reprice_cart(payload.items, load_catalog(store, cache))

    now = clock()
    totals = quote(lines, now.date(), settings.APPAREL_SHIPPING_FEE)
    if payload.total_amount is not None and parse_money(payload.total_amount) != totals.total:
        logger.warning("Client total %s differs from computed %s", payload.total_amount, totals.total)

    order = submit_order(store, lines, payload.store_info, now)
    background_tasks.add_task(_send_checkout_notices, store, cache, notifier, order, lines, totals.total)
    return CheckoutResult(order_number=order.order_number)


def _send_checkout_notices(store: SheetStore, cache: TTLCache, notifier: Notifier,
                           order: Order, lines: list[CartLine], total: float) -> None:
    try:
        partners = load_partners(store, cache)
    except UpstreamUnavailable as e:
        logger.error("Partner table unavailable for %s: %s", order.order_number, e)
        partners = []
    dispatch_notifications(notifier, order, lines, partners, total)


# Order history and admin

@app.get("/api/orders", response_model=list[Order])
def order_history(store_email: Optional[str] = Query(None, alias="storeEmail"), store: SheetStore = Depends(get_store)):
    orders = load_orders(store)
    if store_email:
        orders = [o for o in orders if o.store_email == store_email]
    return sort_orders_desc(orders)


@app.get("/api/admin-orders", response_model=OrderPage)
def admin_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(30, ge=1, le=200),
    search: str = Query(""),
    status: Optional[OrderStatus] = Query(None),
    category: Optional[str] = Query(None),
    store: SheetStore = Depends(get_store),
    cache: TTLCache = Depends(get_cache),
):
    orders = search_orders(load_orders(store), search)
    orders = filter_by_status(orders, status)
    if category:
        orders = filter_by_category(orders, category, load_catalog(store, cache))
    return paginate(sort_orders_desc(orders), page, limit)


@app.post("/api/update-order-status")
def update_order_status(payload: StatusUpdate, store: SheetStore = Depends(get_store)):
    if not payload.order_number or not payload.new_status:
        raise MalformedInput("orderNumber", "Order number and new status are required")
    try:
        new_status = OrderStatus(payload.new_status)
    except ValueError:
        raise MalformedInput("newStatus", f"Unknown status: {payload.new_status}")
    order = set_status(store, payload.order_number, new_status)
    return {"success": True, "order": order.model_dump(by_alias=True)}


@app.post("/api/update-shipping-date")
def update_shipping_date(
    payload: ShippingDateUpdate,
    store: SheetStore = Depends(get_store),
    notifier: Notifier = Depends(get_notifier),
):
    if not payload.order_number:
        raise MalformedInput("orderNumber", "Order number is required")
    before, after = set_shipping_date(store, payload.order_number, payload.shipping_date)
    notified = False
    if before.status == OrderStatus.PROCESSING and after.status == OrderStatus.SHIPPED:
        items = [
            NoticeItem(name=i.name, size=i.size, color=i.color, quantity=format_item_quantity(i))
            for i in after.items
        ]
        notified = notifier.send_shipping_notice(
            after.store_email, after.order_number, after.store_name, after.shipping_date, items,
        )
    return {"success": True, "order": after.model_dump(by_alias=True), "notified": notified}


# Partners

@app.get("/api/partners")
def partner_info(partner_name: str = Query(..., alias="partnerName"), store: SheetStore = Depends(get_store),
                 cache: TTLCache = Depends(get_cache)):
    wanted = partner_name.strip().lower()
    matches = [p for p in load_partners(store, cache) if p.name and p.name.strip().lower() == wanted]
    return {"partners": [p.model_dump(by_alias=True) for p in matches]}


@app.get("/api/check-partner-sheet")
def check_partner_sheet(store: SheetStore = Depends(get_store)):
    titles = store.sheet_titles()
    if PARTNER_SHEET not in titles:
        return {
            "exists": False,
            "sheets": titles,
            "message": f"{PARTNER_SHEET}シートが見つかりません。",
        }
    values = store.get_values(f"{PARTNER_SHEET}!A1:C")
    headers = values[0] if values else []
    rows = values[1:]
    return {
        "exists": True,
        "headers": headers,
        "rowCount": len(rows),
        "sampleData": rows[:3],
        "message": f"{PARTNER_SHEET}シートが見つかりました。",
    }


# Operations

@app.post("/api/admin/cache/clear")
def clear_cache(key: Optional[str] = Query(None), cache: TTLCache = Depends(get_cache)):
    cache.invalidate(key)
    return {"cleared": key or "all"}


@app.get("/api/admin/notification-failures", response_model=list[NotificationFailure])
def notification_failures(notifier: Notifier = Depends(get_notifier)):
    return list(notifier.failures)


@app.post("/api/alerts/stale-orders")
def alert_stale_orders(
    api_key: Optional[str] = Query(None, alias="apiKey"),
    store: SheetStore = Depends(get_store),
    alerter: LineAlerter = Depends(get_alerter),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    if not settings.LINE_MESSAGE_API_KEY or api_key != settings.LINE_MESSAGE_API_KEY:
        raise HTTPException(status_code=401, detail="Unauthorized")
    pending = stale_orders(load_orders(store), clock().date())
    if not pending:
        return {"message": "No pending orders found"}
    alerter.push_text(STALE_MESSAGE)
    return {"success": True, "message": "Message sent successfully", "pendingOrdersCount": len(pending)}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", settings.PORT)))
