"""
tests/test_notifier.py

Alert rendering and delivery.

Coverage
--------
- Subjects and escaped bodies for each alert kind
- LogNotifier keeps a bounded record of sent alerts
- SmtpNotifier talks to smtplib and logs (not raises) delivery errors
- build_notifier picks SMTP only when email is enabled
"""

from __future__ import annotations

import asyncio
import smtplib

import pytest

from conftest import make_target
from maintenance_os.schemas import Alert
from maintenance_os.services import notifier as notifier_mod
from maintenance_os.services.notifier import LogNotifier, Notifier, SmtpNotifier, build_notifier, render_alert
from maintenance_os.settings import Settings


class FakeSMTP:
    instances = []

    def __init__(self, host, port) -> None:
        self.host, self.port = host, port
        self.calls = []
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc) -> None:
        self.calls.append("quit")

    def starttls(self) -> None:
        self.calls.append("starttls")

    def login(self, user, password) -> None:
        self.calls.append(("login", user))

    def sendmail(self, sender, recipients, message) -> None:
        self.calls.append(("sendmail", sender, tuple(recipients)))


def _smtp() -> SmtpNotifier:
    return SmtpNotifier("smtp.test", 587, "user", "secret", "from@test", "admin@test")


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


class TestRenderAlert:
    def test_downtime(self) -> None:
        target = make_target("alpha", name="<Alpha>")
        subject, body = render_alert(Alert(type="downtime", target=target, details={"error": "refused"}))
        assert subject == "ALERT: <Alpha> is DOWN"
        assert "&lt;Alpha&gt;" in body
        assert "Status code: N/A" in body
        assert "Error: refused" in body

    def test_painpoints(self) -> None:
        details = [
            {"target": "Alpha", "opportunities": ["SEO Audit & Fix"]},
            {"target": "Beta", "opportunities": ["Security Hardening"]},
        ]
        subject, body = render_alert(Alert(type="painpoints", details=details))
        assert subject == "New Revenue Opportunities Detected (2 sites)"
        assert "<li>SEO Audit &amp; Fix</li>" in body

    def test_score_drop(self) -> None:
        alert = Alert(type="scoreDrop", target=make_target("alpha"), details={"previous": 90.0, "current": 75.0, "drop": 15.0})
        subject, body = render_alert(alert)
        assert subject == "Performance Drop: Alpha"
        assert "Drop: -15.0" in body

    def test_digest(self) -> None:
        details = {"sitesMonitored": 4, "auditsPerformed": 3, "avgPerformance": 71, "issuesDetected": 1}
        subject, body = render_alert(Alert(type="digest", details=details))
        assert subject.startswith("Daily Maintenance Digest - ")
        assert "Avg performance: 71%" in body


# ---------------------------------------------------------------------------
# Delivery
# ---------------------------------------------------------------------------


class TestNotifierBase:
    def test_base_is_abstract(self) -> None:
        with pytest.raises(TypeError):
            Notifier()


class TestLogNotifier:
    def test_bounded(self) -> None:
        notifier = LogNotifier()

        async def go():
            for _ in range(105):
                await notifier.send(Alert(type="digest", details={}))

        asyncio.run(go())
        assert len(notifier.sent) == 100


class TestSmtpNotifier:
    def test_sends_over_starttls(self, monkeypatch) -> None:
        FakeSMTP.instances = []
        monkeypatch.setattr(notifier_mod.smtplib, "SMTP", FakeSMTP)
        asyncio.run(_smtp().send(Alert(type="digest", details={})))

        smtp = FakeSMTP.instances[0]
        assert (smtp.host, smtp.port) == ("smtp.test", 587)
        assert smtp.calls == ["starttls", ("login", "user"), ("sendmail", "from@test", ("admin@test",)), "quit"]

    def test_delivery_error_is_logged(self, monkeypatch, caplog) -> None:
        def broken(host, port):
            raise smtplib.SMTPConnectError(421, "busy")

        monkeypatch.setattr(notifier_mod.smtplib, "SMTP", broken)
        asyncio.run(_smtp().send(Alert(type="digest", details={})))
        assert "Failed to send digest email" in caplog.text


class TestBuildNotifier:
    def test_log_by_default(self) -> None:
        assert isinstance(build_notifier(Settings(EMAIL_ENABLED=False)), LogNotifier)

    def test_smtp_when_enabled(self) -> None:
        notifier = build_notifier(Settings(EMAIL_ENABLED=True, ADMIN_EMAIL="ops@test"))
        assert isinstance(notifier, SmtpNotifier)
        assert notifier.recipient == "ops@test"
