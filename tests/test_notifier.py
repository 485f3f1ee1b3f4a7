import smtplib

import pytest

from conftest import RecordingTransport
from errors import UpstreamUnavailable
from notifier import (
    Notifier,
    SmtpTransport,
    confirmation_subject,
    render_confirmation,
    render_shipping_notice,
)
from config import Settings
from schemas import NoticeItem

ITEMS = [NoticeItem(name="ステッカー", category="販促グッズ", quantity="200")]


def test_partner_notice_retries_with_backoff(sleeps):
    transport = RecordingTransport(failing={"print@example.com"})
    notifier = Notifier(transport, attempts=3, backoff=1.0, sleep=sleeps.append)
    assert not notifier.send_partner_notice("プリント工房", "print@example.com", "ORD-00001", "店", ITEMS, "2025/03/10 09:30")
    assert transport.attempts == ["print@example.com"] * 3
    assert sleeps == [1.0, 2.0]
    [failure] = notifier.failures
    assert failure.recipient == "print@example.com"
    assert "unavailable" in failure.reason


def test_partner_notice_succeeds_after_retry(sleeps):
    class Flaky(RecordingTransport):
        def send(self, to, subject, body_html):
            if not self.attempts:
                self.attempts.append(to)
                raise UpstreamUnavailable("timeout")
            super().send(to, subject, body_html)

    transport = Flaky()
    notifier = Notifier(transport, attempts=3, backoff=0.5, sleep=sleeps.append)
    assert notifier.send_partner_notice("プリント工房", "print@example.com", "ORD-00001", "店", ITEMS, "")
    assert len(transport.sent) == 1
    assert sleeps == [0.5]
    assert not notifier.failures


def test_failures_not_kept_when_disabled():
    notifier = Notifier(RecordingTransport(failing={"x@example.com"}), attempts=1, surface_failures=False)
    notifier.send_partner_notice("工房", "x@example.com", "ORD-00001", "店", ITEMS, "")
    notifier.send_partner_notice("工房", None, "ORD-00001", "店", ITEMS, "")
    assert not notifier.failures


def test_confirmation_failure_is_swallowed():
    notifier = Notifier(RecordingTransport(failing={"a@example.com"}))
    assert not notifier.send_order_confirmation("a@example.com", "ORD-00001", "店", ITEMS, 1000.0, "")


def test_confirmation_body():
    body = render_confirmation("ORD-00001", "<b>店</b>", ITEMS, 13782.0, "2025/03/10 09:30")
    assert "&lt;b&gt;店&lt;/b&gt;" in body
    assert "¥13,782" in body
    assert "ステッカー" in body
    assert confirmation_subject("ORD-00001").endswith("(ORD-00001)")


def test_shipping_notice_date_label():
    body = render_shipping_notice("ORD-00001", "店", "2025-03-05", [])
    assert "2025年3月5日" in body
    assert "商品情報はありません" in body


def test_smtp_errors_become_upstream(monkeypatch):
    def refuse(*args, **kwargs):
        raise ConnectionRefusedError("refused")

    monkeypatch.setattr(smtplib, "SMTP", refuse)
    transport = SmtpTransport(Settings(SMTP_HOST="localhost", SMTP_PORT=2525))
    with pytest.raises(UpstreamUnavailable):
        transport.send("a@example.com", "subject", "<p>body</p>")


def test_kept_failures_are_capped():
    notifier = Notifier(RecordingTransport(), max_failures=2)
    for n in range(1, 4):
        notifier.send_partner_notice("工房", None, f"ORD-0000{n}", "店", ITEMS, "")
    assert [f.order_number for f in notifier.failures] == ["ORD-00002", "ORD-00003"]
