import pytest
import requests

from alerts import LineAlerter
from database import GoogleSheetStore, InMemorySheetStore, column_index, create_store, parse_range
from config import Settings
from errors import UpstreamUnavailable


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self.ok = status_code < 400
        self._payload = payload or {}
        self.text = str(self._payload)
        self.content = b"{}" if payload is not None else b""

    def json(self):
        return self._payload


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if self.error:
            raise self.error
        return self.response

    def post(self, url, **kwargs):
        return self.request("POST", url, **kwargs)


def test_parse_range():
    assert column_index("AV") == 47
    assert parse_range("Order_history!A2:AV") == ("Order_history", 0, 47, 1, None)
    assert parse_range("Order_history!AT5:AU5") == ("Order_history", 45, 46, 4, 4)
    assert parse_range("partner_info") == ("partner_info", 0, None, 0, None)


def test_in_memory_reads_trim_trailing_blanks():
    store = InMemorySheetStore({"s": [["h1", "h2", "h3"], ["a", "b", ""], ["c", "", ""], ["", "", ""]]})
    assert store.get_values("s!A2:C") == [["a", "b"], ["c"]]
    assert store.get_values("s!B1:B") == [["h2"], ["b"]]


def test_in_memory_update_extends_rows():
    store = InMemorySheetStore({"s": [["h"], ["a"]]})
    store.update_values("s!C2:D2", [["x", "y"]])
    assert store.sheets["s"][1] == ["a", "", "x", "y"]


def test_google_store_reads_values():
    session = FakeSession(FakeResponse(payload={"values": [["a", "b"]]}))
    store = GoogleSheetStore("sheet-id", session)
    assert store.get_values("store_info!A2:G") == [["a", "b"]]
    method, url, _ = session.calls[0]
    assert method == "GET"
    assert url.endswith("/sheet-id/values/store_info%21A2%3AG")


def test_google_store_append_uses_user_entered():
    session = FakeSession(FakeResponse(payload={}))
    GoogleSheetStore("sheet-id", session).append_row("Order_history!A1", ["ORD-00001"])
    method, url, kwargs = session.calls[0]
    assert method == "POST"
    assert url.endswith(":append")
    assert kwargs["params"]["valueInputOption"] == "USER_ENTERED"
    assert kwargs["json"] == {"values": [["ORD-00001"]]}


def test_google_store_errors_are_upstream():
    with pytest.raises(UpstreamUnavailable):
        GoogleSheetStore("id", FakeSession(error=requests.ConnectionError("down"))).get_values("s!A1")
    with pytest.raises(UpstreamUnavailable):
        GoogleSheetStore("id", FakeSession(FakeResponse(503, {"error": "busy"}))).get_values("s!A1")


def test_create_store_without_sheet_id_uses_demo_rows():
    store = create_store(Settings(SHEET_ID=None))
    assert isinstance(store, InMemorySheetStore)
    assert "Available_items" in store.sheet_titles()


def test_create_store_without_credentials():
    with pytest.raises(UpstreamUnavailable):
        create_store(Settings(SHEET_ID="abc", GOOGLE_APPLICATION_CREDENTIALS=None,
                              GOOGLE_APPLICATION_CREDENTIALS_JSON=None))


def test_line_alert_push():
    session = FakeSession(FakeResponse(payload={}))
    LineAlerter("token", "group", session=session).push_text("hello")
    _, _, kwargs = session.calls[0]
    assert kwargs["json"]["to"] == "group"
    assert kwargs["headers"]["Authorization"] == "Bearer token"


def test_line_alert_requires_configuration():
    with pytest.raises(UpstreamUnavailable):
        LineAlerter(None, "group", session=FakeSession()).push_text("hello")
