"""Alert the operations group on LINE when orders sit in processing too long."""
from __future__ import annotations
import logging
from typing import Optional

import requests

from config import Settings
from errors import UpstreamUnavailable

logger = logging.getLogger(__name__)

LINE_PUSH_URL = "https://api.line.me/v2/bot/message/push"
STALE_MESSAGE = "ステータスが1週間以上処理中のものがあります"


class LineAlerter:
    def __init__(self, access_token: Optional[str], group_id: Optional[str],
                 session: Optional[requests.Session] = None, timeout: float = 10.0):
        self.access_token = access_token
        self.group_id = group_id
        self.timeout = timeout
        self._session = session or requests.Session()

    @classmethod
    def from_settings(cls, cfg: Settings) -> "LineAlerter":
        return cls(cfg.LINE_CHANNEL_ACCESS_TOKEN, cfg.LINE_GROUP_ID)

    def push_text(self, text: str) -> None:
        if not self.access_token:
            raise UpstreamUnavailable("LINE_CHANNEL_ACCESS_TOKEN is not set")
        if not self.group_id:
            raise UpstreamUnavailable("LINE_GROUP_ID is not set")
        try:
            resp = self._session.post(
                LINE_PUSH_URL,
                json={"to": self.group_id, "messages": [{"type": "text", "text": text}]},
                headers={"Authorization": f"Bearer {self.access_token}"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise UpstreamUnavailable(f"LINE Messaging API request failed: {e}") from e
        if not resp.ok:
            raise UpstreamUnavailable(f"LINE Messaging API error: {resp.text[:200]}")
        logger.info("LINE alert pushed to %s", self.group_id)
