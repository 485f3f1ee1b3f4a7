from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from cache import TTLCache
from database import ORDER_SHEET, SEED_SHEETS, InMemorySheetStore
from errors import UpstreamUnavailable
from main import app, get_alerter, get_cache, get_clock, get_notifier, get_store
from notifier import EmailTransport, Notifier
from rowcodec import encode_order_row
from schemas import Order, OrderItem, OrderStatus

NOW = datetime(2025, 3, 10, 9, 30)


class RecordingTransport(EmailTransport):
    def __init__(self, failing=()):
        self.sent = []
        self.attempts = []
        self.failing = set(failing)

    def send(self, to, subject, body_html):
        self.attempts.append(to)
        if to in self.failing:
            raise UpstreamUnavailable(f"mailbox {to} unavailable")
        self.sent.append({"to": to, "subject": subject, "body": body_html})


class RecordingAlerter:
    def __init__(self):
        self.pushed = []

    def push_text(self, text):
        self.pushed.append(text)


def order_row(number, order_date="2025/03/01", order_time="10:00", store_name="テスト店舗1",
              store_email="test1@example.com", items=None, shipping_date=None):
    order = Order(
        order_number=number,
        order_date=order_date,
        order_time=order_time,
        store_name=store_name,
        store_email=store_email,
        items=items or [OrderItem(name="Tシャツ", size="M", color="ホワイト", quantity="2")],
        status=OrderStatus.SHIPPED if shipping_date else OrderStatus.PROCESSING,
        shipping_date=shipping_date,
    )
    return encode_order_row(order)


@pytest.fixture
def store():
    return InMemorySheetStore(SEED_SHEETS)


@pytest.fixture
def add_orders(store):
    def add(*rows):
        store.sheets[ORDER_SHEET].extend(rows)
    return add


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def notifier(transport, sleeps):
    return Notifier(transport, attempts=3, backoff=1.0, surface_failures=True, sleep=sleeps.append)


@pytest.fixture
def alerter():
    return RecordingAlerter()


@pytest.fixture
def client(store, notifier, alerter):
    cache = TTLCache(300)
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_cache] = lambda: cache
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_alerter] = lambda: alerter
    app.dependency_overrides[get_clock] = lambda: (lambda: NOW)
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
