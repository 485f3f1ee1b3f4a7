from __future__ import annotations
import json
import logging
import re
from typing import Any, Optional
from urllib.parse import quote

import requests
from google.auth.transport.requests import AuthorizedSession
from google.oauth2 import service_account

from config import Settings, settings
from errors import UpstreamUnavailable

logger = logging.getLogger(__name__)

SHEETS_API = "https://sheets.googleapis.com/v4/spreadsheets"
SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]

CATALOG_SHEET = "Available_items"
ORDER_SHEET = "Order_history"
STORE_SHEET = "store_info"
PARTNER_SHEET = "partner_info"

CATALOG_RANGE = f"{CATALOG_SHEET}!A2:J"
ORDER_RANGE = f"{ORDER_SHEET}!A2:AV"
ORDER_NUMBER_RANGE = f"{ORDER_SHEET}!A2:A"
STORE_RANGE = f"{STORE_SHEET}!A2:G"
PARTNER_RANGE = f"{PARTNER_SHEET}!A2:C"

_RANGE_RE = re.compile(r"^(?P<sheet>[^!]+)(?:!(?P<c1>[A-Z]+)(?P<r1>\d*)(?::(?P<c2>[A-Z]+)(?P<r2>\d*))?)?$")


def column_index(letters: str) -> int:
    n = 0
    for ch in letters:
        n = n * 26 + (ord(ch) - ord("A") + 1)
    return n - 1


def parse_range(a1: str) -> tuple[str, int, Optional[int], int, Optional[int]]:
    """Split "Sheet!A2:AV" into (sheet, first_col, last_col, first_row, last_row), 0-indexed."""
    m = _RANGE_RE.match(a1)
    if not m:
        raise ValueError(f"Unsupported range: {a1}")
    sheet = m.group("sheet")
    c1, r1, c2, r2 = m.group("c1"), m.group("r1"), m.group("c2"), m.group("r2")
    first_col = column_index(c1) if c1 else 0
    first_row = int(r1) - 1 if r1 else 0
    if c2 is None:
        last_col = first_col if c1 else None
        last_row = first_row if r1 else None
    else:
        last_col = column_index(c2)
        last_row = int(r2) - 1 if r2 else None
    return sheet, first_col, last_col, first_row, last_row


class SheetStore:
    """Row-oriented access to the spreadsheet by A1 range."""

    def get_values(self, a1: str) -> list[list[str]]:
        raise NotImplementedError

    def append_row(self, a1: str, row: list[str]) -> None:
        raise NotImplementedError

    def update_values(self, a1: str, values: list[list[str]]) -> None:
        raise NotImplementedError

    def sheet_titles(self) -> list[str]:
        raise NotImplementedError


class GoogleSheetStore(SheetStore):
    """Sheets v4 values API over an authorized requests session."""

    def __init__(self, sheet_id: str, session: Any, timeout: float = 10.0):
        self.sheet_id = sheet_id
        self.timeout = timeout
        self._session = session

    @classmethod
    def from_settings(cls, cfg: Settings) -> "GoogleSheetStore":
        if cfg.GOOGLE_APPLICATION_CREDENTIALS_JSON:
            info = json.loads(cfg.GOOGLE_APPLICATION_CREDENTIALS_JSON)
            credentials = service_account.Credentials.from_service_account_info(info, scopes=SCOPES)
        elif cfg.GOOGLE_APPLICATION_CREDENTIALS:
            credentials = service_account.Credentials.from_service_account_file(
                cfg.GOOGLE_APPLICATION_CREDENTIALS, scopes=SCOPES
            )
        else:
            raise UpstreamUnavailable("Google credentials are not configured")
        return cls(cfg.SHEET_ID, AuthorizedSession(credentials))

    def _url(self, a1: str, suffix: str = "") -> str:
        return f"{SHEETS_API}/{self.sheet_id}/values/{quote(a1, safe='')}{suffix}"

    def _request(self, method: str, url: str, **kwargs) -> dict:
        try:
            resp = self._session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logger.error("Sheets request failed: %s %s: %s", method, url, e)
            raise UpstreamUnavailable(f"Spreadsheet request failed: {e}") from e
        if not resp.ok:
            logger.error("Sheets returned %s for %s %s: %s", resp.status_code, method, url, resp.text[:200])
            raise UpstreamUnavailable(f"Spreadsheet returned status {resp.status_code}")
        return resp.json() if resp.content else {}

    def get_values(self, a1: str) -> list[list[str]]:
        data = self._request("GET", self._url(a1))
        return data.get("values", [])

    def append_row(self, a1: str, row: list[str]) -> None:
        self._request(
            "POST",
            self._url(a1, ":append"),
            params={"valueInputOption": "USER_ENTERED", "insertDataOption": "INSERT_ROWS"},
            json={"values": [row]},
        )

    def update_values(self, a1: str, values: list[list[str]]) -> None:
        self._request(
            "PUT",
            self._url(a1),
            params={"valueInputOption": "USER_ENTERED"},
            json={"values": values},
        )

    def sheet_titles(self) -> list[str]:
        data = self._request(
            "GET", f"{SHEETS_API}/{self.sheet_id}", params={"fields": "sheets.properties.title"}
        )
        return [s.get("properties", {}).get("title", "") for s in data.get("sheets", [])]


class InMemorySheetStore(SheetStore):
    """Sheets held in process; row 0 of each sheet is the header row."""

    def __init__(self, sheets: Optional[dict[str, list[list[str]]]] = None):
        self.sheets: dict[str, list[list[str]]] = {k: [list(r) for r in v] for k, v in (sheets or {}).items()}

    def get_values(self, a1: str) -> list[list[str]]:
        sheet, first_col, last_col, first_row, last_row = parse_range(a1)
        rows = self.sheets.get(sheet, [])
        stop = len(rows) if last_row is None else last_row + 1
        out = []
        for row in rows[first_row:stop]:
            values = row[first_col:] if last_col is None else row[first_col:last_col + 1]
            values = list(values)
            while values and values[-1] == "":
                values.pop()
            out.append(values)
        while out and not out[-1]:
            out.pop()
        return out

    def append_row(self, a1: str, row: list[str]) -> None:
        sheet = parse_range(a1)[0]
        self.sheets.setdefault(sheet, [[]]).append(list(row))

    def update_values(self, a1: str, values: list[list[str]]) -> None:
        sheet, first_col, _, first_row, _ = parse_range(a1)
        rows = self.sheets.setdefault(sheet, [[]])
        for r, new_row in enumerate(values):
            idx = first_row + r
            while len(rows) <= idx:
                rows.append([])
            target = rows[idx]
            for c, value in enumerate(new_row):
                col = first_col + c
                while len(target) <= col:
                    target.append("")
                target[col] = value

    def sheet_titles(self) -> list[str]:
        return list(self.sheets)


# Demo rows served when no spreadsheet is configured
SEED_SHEETS: dict[str, list[list[str]]] = {
    STORE_SHEET: [
        ["id", "name", "phone", "zip", "address", "email", "password"],
        ["store1", "テスト店舗1", "03-1234-5678", "150-0002", "東京都渋谷区", "test1@example.com", "pass1"],
        ["store2", "テスト店舗2", "06-1234-5678", "530-0001", "大阪府大阪市", "test2@example.com", "pass2"],
        ["admin", "admin", "", "", "", "admin@admin.com", "admin"],
    ],
    PARTNER_SHEET: [
        ["id", "name", "email"],
        ["p1", "プリント工房", "print@example.com"],
        ["p2", "ウェア製作所", "wear@example.com"],
    ],
    CATALOG_SHEET: [
        ["id", "category", "name", "color", "size", "amount", "price", "price_per_piece", "lead_time", "partner", "partner_email"],
        ["a1", "アパレル", "Tシャツ", "ホワイト", "M", "", "¥1,810", "", "2週間", "ウェア製作所", "wear@example.com"],
        ["a1", "アパレル", "Tシャツ", "ブラック", "XXL", "", "¥2,040", "", "2週間", "ウェア製作所", "wear@example.com"],
        ["a2", "アパレル", "フーディ", "ネイビー", "L", "", "¥3,210", "", "3週間", "ウェア製作所", "wear@example.com"],
        ["g1", "販促グッズ", "ポイントカード", "", "", "50枚", "¥3,000", "¥60", "3週間", "プリント工房", "print@example.com"],
        ["g1", "販促グッズ", "ポイントカード", "", "", "100枚", "¥5,000", "¥50", "3週間", "プリント工房", "print@example.com"],
        ["g2", "販促グッズ", "ステッカー", "", "", "100", "¥4,000", "¥40", "3週間", "プリント工房", "print@example.com"],
        ["g2", "販促グッズ", "ステッカー", "", "", "50", "¥2,500", "¥50", "3週間", "プリント工房", "print@example.com"],
        ["c1", "液剤", "コーティング液剤", "", "", "", "¥4,500", "", "即日", "", ""],
        ["x1", "クロス", "マイクロファイバークロス", "グレー", "", "", "¥300", "", "1週間", "", ""],
    ],
    ORDER_SHEET: [
        ["order_number", "date", "time", "store", "email"],
    ],
}


def create_store(cfg: Settings = settings) -> SheetStore:
    if not cfg.SHEET_ID:
        logger.warning("SHEET_ID is not set; serving in-memory demo data")
        return InMemorySheetStore(SEED_SHEETS)
    return GoogleSheetStore.from_settings(cfg)
