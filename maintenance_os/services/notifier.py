# maintenance_os/services/notifier.py
"""
Alert delivery.

The scheduler hands typed `Alert` payloads to a Notifier. `LogNotifier` is
the default; `SmtpNotifier` mails a plain HTML summary to the admin address
when email is enabled. Styled templates are rendered elsewhere.
"""
import asyncio
import html
import logging
import smtplib
from abc import ABC, abstractmethod
from collections import deque
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Deque, Tuple

from ..schemas import Alert

logger = logging.getLogger(__name__)


class Notifier(ABC):
    @abstractmethod
    async def send(self, alert: Alert) -> None:
        """Deliver one alert."""


class LogNotifier(Notifier):
    """Writes every alert to the log. Useful on its own and in tests."""

    def __init__(self) -> None:
        self.sent: Deque[Alert] = deque(maxlen=100)

    async def send(self, alert: Alert) -> None:
        self.sent.append(alert)
        target = alert.target.name if alert.target else "-"
        logger.warning("[ALERT] %s target=%s details=%s", alert.type, target, alert.details)


def render_alert(alert: Alert) -> Tuple[str, str]:
    """Subject line and a minimal HTML body for one alert."""
    d = alert.details or {}
    esc = html.escape
    if alert.type == "downtime":
        name = alert.target.name if alert.target else "Unknown site"
        subject = f"ALERT: {name} is DOWN"
        body = (
            f"<h2>{esc(name)}</h2><p>{esc(alert.target.url if alert.target else '')}</p>"
            f"<p>Status code: {esc(str(d.get('statusCode') or 'N/A'))}</p>"
            f"<p>Error: {esc(str(d.get('error') or 'Connection failed'))}</p>"
        )
    elif alert.type == "painpoints":
        subject = f"New Revenue Opportunities Detected ({len(d)} sites)"
        items = "".join(
            f"<h3>{esc(site['target'])}</h3><ul>"
            + "".join(f"<li>{esc(o)}</li>" for o in site["opportunities"])
            + "</ul>"
            for site in d
        )
        body = items
    elif alert.type == "scoreDrop":
        name = alert.target.name if alert.target else "Unknown site"
        subject = f"Performance Drop: {name}"
        body = (
            f"<h2>{esc(name)}</h2><p>Previous: {d.get('previous')}</p>"
            f"<p>Current: {d.get('current')}</p><p>Drop: -{d.get('drop')}</p>"
        )
    else:
        subject = f"Daily Maintenance Digest - {datetime.now().strftime('%d/%m/%Y')}"
        body = (
            f"<p>Sites monitored: {d.get('sitesMonitored')}</p>"
            f"<p>Audits performed: {d.get('auditsPerformed')}</p>"
            f"<p>Avg performance: {d.get('avgPerformance')}%</p>"
            f"<p>Issues detected: {d.get('issuesDetected')}</p>"
        )
    return subject, body


class SmtpNotifier(Notifier):
    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        sender: str,
        recipient: str,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender
        self.recipient = recipient

    def _deliver(self, subject: str, html_body: str) -> None:
        msg = MIMEMultipart()
        msg["From"] = self.sender
        msg["To"] = self.recipient
        msg["Subject"] = subject
        msg.attach(MIMEText(html_body, "html"))
        with smtplib.SMTP(self.host, self.port) as s:
            s.starttls()
            if self.username and self.password:
                s.login(self.username, self.password)
            s.sendmail(self.sender, [self.recipient], msg.as_string())

    async def send(self, alert: Alert) -> None:
        subject, body = render_alert(alert)
        try:
            await asyncio.to_thread(self._deliver, subject, body)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("[ALERT] Failed to send %s email: %s", alert.type, e)
            return
        logger.info("[ALERT] Sent %s email to %s", alert.type, self.recipient)


def build_notifier(settings) -> Notifier:
    if settings.EMAIL_ENABLED:
        return SmtpNotifier(
            host=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            username=settings.SMTP_USERNAME,
            password=settings.SMTP_PASSWORD,
            sender=settings.EMAIL_FROM,
            recipient=settings.ADMIN_EMAIL,
        )
    return LogNotifier()
