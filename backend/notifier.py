"""
Transactional email: store order confirmation, partner order notice and
shipping notice. Delivery goes through an EmailTransport; SMTP in production.
"""
from __future__ import annotations
import html
import logging
import smtplib
import time
from collections import deque
from datetime import datetime
from email.message import EmailMessage
from typing import Callable, Optional

from config import Settings
from errors import UpstreamUnavailable
from schemas import NoticeItem, NotificationFailure

logger = logging.getLogger(__name__)

BRAND = "SPLASH'N'GO!"
# oldest partner failures are dropped past this many
MAX_KEPT_FAILURES = 200


class EmailTransport:
    def send(self, to: str, subject: str, body_html: str) -> None:
        raise NotImplementedError


class SmtpTransport(EmailTransport):
    def __init__(self, cfg: Settings, timeout: float = 10.0):
        self.cfg = cfg
        self.timeout = timeout

    def send(self, to: str, subject: str, body_html: str) -> None:
        msg = EmailMessage()
        msg["From"] = self.cfg.SMTP_FROM
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content("HTML対応のメールクライアントでご覧ください。")
        msg.add_alternative(body_html, subtype="html")
        try:
            if self.cfg.SMTP_SECURE:
                smtp = smtplib.SMTP_SSL(self.cfg.SMTP_HOST, self.cfg.SMTP_PORT, timeout=self.timeout)
            else:
                smtp = smtplib.SMTP(self.cfg.SMTP_HOST, self.cfg.SMTP_PORT, timeout=self.timeout)
            with smtp:
                if not self.cfg.SMTP_SECURE:
                    smtp.starttls()
                if self.cfg.SMTP_USER:
                    smtp.login(self.cfg.SMTP_USER, self.cfg.SMTP_PASSWORD or "")
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            raise UpstreamUnavailable(f"Mail delivery to {to} failed: {e}") from e
        logger.info("Email sent to %s: %s", to, subject)


# Subjects

def confirmation_subject(order_number: str) -> str:
    return f"【{BRAND}】発注確認 ({order_number})"


def partner_subject(order_number: str) -> str:
    return f"【{BRAND}】発注通知 ({order_number})"


def shipping_subject(order_number: str) -> str:
    return f"【{BRAND}】ご注文商品の出荷完了のお知らせ ({order_number})"


# Bodies

def _e(value) -> str:
    return html.escape(str(value if value is not None else ""))


def _items_table(items: list[NoticeItem], with_category: bool = False) -> str:
    if not items:
        return "<p><em>商品情報はありません</em></p>"
    head = ["商品名"] + (["カテゴリ"] if with_category else []) + ["サイズ", "カラー", "数量"]
    rows = []
    for item in items:
        cells = [item.name] + ([item.category] if with_category else []) + [
            item.size or "-", item.color or "-", item.quantity,
        ]
        rows.append("<tr>" + "".join(f"<td>{_e(c)}</td>" for c in cells) + "</tr>")
    return (
        "<table><thead><tr>" + "".join(f"<th>{h}</th>" for h in head) + "</tr></thead>"
        "<tbody>" + "".join(rows) + "</tbody></table>"
    )


def _layout(tagline: str, body: str) -> str:
    return (
        f"<div style=\"font-family: sans-serif; max-width: 600px; margin: 0 auto;\">"
        f"<h1>{BRAND}</h1><p>{tagline}</p>{body}"
        f"<p style=\"font-size: 12px;\">© {datetime.now():%Y} {BRAND} All rights reserved.</p></div>"
    )


def render_confirmation(order_number: str, store_name: str, items: list[NoticeItem],
                        total: Optional[float], placed_at: str) -> str:
    body = (
        f"<p>{_e(store_name)} 様</p>"
        "<p>この度はご注文いただき、誠にありがとうございます。以下の内容でご注文を承りました。</p>"
        f"<p><strong>発注番号:</strong> {_e(order_number)}</p>"
        f"<p><strong>発注日時:</strong> {_e(placed_at)}</p>"
        + _items_table(items)
    )
    if total is not None:
        body += f"<p><strong>合計金額（税込）:</strong> ¥{total:,.0f}</p>"
    body += "<p>商品の準備が整い次第、出荷のご連絡をさせていただきます。</p>"
    return _layout("ご注文ありがとうございます", body)


def render_partner_notice(order_number: str, store_name: str, items: list[NoticeItem], placed_at: str) -> str:
    body = (
        "<p>平素はお世話になっております。</p>"
        "<p>以下の商品の発注がありましたのでお知らせいたします。</p>"
        f"<p><strong>発注番号:</strong> {_e(order_number)}</p>"
        f"<p><strong>発注店舗:</strong> {_e(store_name)}</p>"
        f"<p><strong>発注日時:</strong> {_e(placed_at)}</p>"
        + _items_table(items, with_category=True)
        + "<p>ご対応のほど、よろしくお願いいたします。</p>"
    )
    return _layout("パートナー様向け発注通知", body)


def render_shipping_notice(order_number: str, store_name: str, shipping_date: str, items: list[NoticeItem]) -> str:
    try:
        shipped = datetime.strptime(shipping_date, "%Y-%m-%d")
        label = f"{shipped.year}年{shipped.month}月{shipped.day}日"
    except ValueError:
        label = shipping_date
    body = (
        f"<p>{_e(store_name)} 様</p>"
        "<p>ご注文いただいた商品を出荷いたしましたのでお知らせいたします。</p>"
        f"<p><strong>発注番号:</strong> {_e(order_number)}</p>"
        f"<p><strong>出荷日:</strong> {_e(label)}</p>"
        + _items_table(items)
        + "<p>商品の到着まで今しばらくお待ちください。</p>"
    )
    return _layout("商品出荷のお知らせ", body)


class Notifier:
    """Sends the three notices; partner notices are retried with backoff."""

    def __init__(self, transport: EmailTransport, attempts: int = 3, backoff: float = 1.0,
                 surface_failures: bool = True, sleep: Callable[[float], None] = time.sleep,
                 max_failures: int = MAX_KEPT_FAILURES):
        self.transport = transport
        self.attempts = max(1, attempts)
        self.backoff = backoff
        self.surface_failures = surface_failures
        self._sleep = sleep
        self.failures: deque[NotificationFailure] = deque(maxlen=max_failures)

    @classmethod
    def from_settings(cls, cfg: Settings) -> "Notifier":
        return cls(
            SmtpTransport(cfg),
            attempts=cfg.PARTNER_NOTIFY_ATTEMPTS,
            backoff=cfg.PARTNER_NOTIFY_BACKOFF_SECONDS,
            surface_failures=cfg.SURFACE_PARTNER_FAILURES,
        )

    def send_order_confirmation(self, to: str, order_number: str, store_name: str,
                                items: list[NoticeItem], total: Optional[float], placed_at: str) -> bool:
        logger.info("Preparing order confirmation for %s to %s", order_number, to)
        try:
            self.transport.send(to, confirmation_subject(order_number),
                                render_confirmation(order_number, store_name, items, total, placed_at))
        except UpstreamUnavailable as e:
            logger.error("Order confirmation for %s failed: %s", order_number, e)
            return False
        return True

    def send_shipping_notice(self, to: str, order_number: str, store_name: str,
                             shipping_date: str, items: list[NoticeItem]) -> bool:
        try:
            self.transport.send(to, shipping_subject(order_number),
                                render_shipping_notice(order_number, store_name, shipping_date, items))
        except UpstreamUnavailable as e:
            logger.error("Shipping notice for %s failed: %s", order_number, e)
            return False
        logger.info("Shipping notice sent for %s", order_number)
        return True

    def send_partner_notice(self, partner_name: str, to: Optional[str], order_number: str,
                            store_name: str, items: list[NoticeItem], placed_at: str) -> bool:
        if not to:
            self._record(order_number, partner_name, None, "partner email address not found")
            return False
        body = render_partner_notice(order_number, store_name, items, placed_at)
        for attempt in range(1, self.attempts + 1):
            try:
                self.transport.send(to, partner_subject(order_number), body)
                logger.info("Partner notice for %s sent to %s", order_number, partner_name)
                return True
            except UpstreamUnavailable as e:
                logger.warning("Partner notice to %s failed (attempt %d/%d): %s",
                               partner_name, attempt, self.attempts, e)
                if attempt < self.attempts:
                    self._sleep(self.backoff * 2 ** (attempt - 1))
                last_error = str(e)
        self._record(order_number, partner_name, to, last_error)
        return False

    def _record(self, order_number: str, partner_name: str, recipient: Optional[str], reason: str) -> None:
        logger.error("Partner notice for %s to %s dropped: %s", order_number, partner_name, reason)
        if self.surface_failures:
            self.failures.append(NotificationFailure(
                order_number=order_number,
                partner_name=partner_name,
                recipient=recipient,
                reason=reason,
                occurred_at=datetime.now().isoformat(timespec="seconds"),
            ))
