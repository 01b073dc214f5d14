"""Email alert channel via SMTP.

Wire contract::

    send(EmailRequest(to, subject, html, rule_id=None)) -> EmailResult(success, message_id)

Failures raise :class:`EmailSendError` whose ``kind`` is one of
``"cooldown"``, ``"daily_limit"`` or ``"transport"``. The rate limiter is
consulted before the SMTP conversation starts and the reservation is kept
even if SMTP then fails.

Example::

    channel = EmailChannel(
        to_addr="ops@example.com",
        limiter=ChannelRateLimiter("email", cooldown_seconds=1800, daily_cap=50),
        host="smtp.example.com",
        username="bot@example.com",
        password="...",
    )
"""
from __future__ import annotations

import html
import logging
import smtplib
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formatdate, make_msgid

from ..alerts.store import Alert
from ..errors import EmailSendError
from .base import SendOutcome, SendStatus
from .ratelimit import ChannelRateLimiter, RateDecision

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmailRequest:
    to: str
    subject: str
    html: str
    rule_id: str | None = None


@dataclass(frozen=True)
class EmailResult:
    success: bool
    message_id: str | None = None


def render_alert_html(alert: Alert) -> str:
    """HTML body for an alert email. Every interpolated value is escaped."""
    esc = html.escape
    return (
        f"<h2>{esc(alert.rule_name)}</h2>\n"
        f"<p>{esc(alert.message)}</p>\n"
        f"<p><strong>Severity:</strong> {esc(alert.severity.value)}</p>\n"
        f"<p><strong>Current value:</strong> {alert.value:.1f}</p>\n"
        f"<p><strong>Threshold:</strong> {alert.threshold:g}</p>\n"
        f"<p><small>Raised at {esc(alert.created_at.isoformat())}</small></p>"
    )


class EmailChannel:
    """Send alert notifications via SMTP.

    Args:
        to_addr:         Recipient for alert emails.
        limiter:         Rate limiter owned by this channel.
        subject_prefix:  Prepended to every subject.
    """

    def __init__(
        self,
        to_addr: str,
        limiter: ChannelRateLimiter,
        host: str = "localhost",
        port: int = 587,
        username: str = "",
        password: str = "",
        from_addr: str = "infrawatch@localhost",
        use_tls: bool = True,
        timeout: float = 10.0,
        subject_prefix: str = "[infrawatch]",
    ) -> None:
        if not to_addr:
            raise ValueError("EmailChannel requires a recipient address")
        self._to = to_addr
        self._limiter = limiter
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._from = from_addr
        self._use_tls = use_tls
        self._timeout = timeout
        self._prefix = subject_prefix

    @property
    def name(self) -> str:
        return "email"

    @property
    def limiter(self) -> ChannelRateLimiter:
        return self._limiter

    def attempt_send(self, alert: Alert) -> SendOutcome:
        """Email ``alert``. Suppression and failures come back as outcomes."""
        request = EmailRequest(
            to=self._to,
            subject=f"{alert.severity.value.upper()}: {alert.rule_name}",
            html=render_alert_html(alert),
            rule_id=alert.rule_id,
        )
        try:
            result = self.send(request)
        except EmailSendError as exc:
            if exc.kind == "cooldown":
                logger.info("Email for rule %s suppressed: %s", alert.rule_id, exc)
                return SendOutcome(self.name, SendStatus.SUPPRESSED_COOLDOWN, str(exc))
            if exc.kind == "daily_limit":
                logger.info("Email for rule %s suppressed: %s", alert.rule_id, exc)
                return SendOutcome(self.name, SendStatus.SUPPRESSED_DAILY_LIMIT, str(exc))
            logger.warning(
                "Failed to send email for alert %s (rule %s): %s", alert.id, alert.rule_id, exc
            )
            return SendOutcome(self.name, SendStatus.FAILED, str(exc))
        return SendOutcome(self.name, SendStatus.SENT, message_id=result.message_id)

    def send(self, request: EmailRequest) -> EmailResult:
        decision = self._limiter.check_and_reserve(request.rule_id)
        if decision is RateDecision.DAILY_LIMIT:
            raise EmailSendError("daily_limit", "Daily email limit reached")
        if decision is RateDecision.COOLDOWN:
            raise EmailSendError("cooldown", "Email cooldown active for this rule")

        msg = MIMEMultipart("alternative")
        msg["Subject"] = f"{self._prefix} {request.subject}".strip()
        msg["From"] = self._from
        msg["To"] = request.to
        msg["Date"] = formatdate(localtime=True)
        msg["Message-ID"] = make_msgid(domain="infrawatch")
        msg.attach(MIMEText(request.html, "html"))
        try:
            self._send_smtp(msg, request.to)
        except (smtplib.SMTPException, OSError) as exc:
            raise EmailSendError("transport", f"SMTP error: {exc}") from exc
        return EmailResult(success=True, message_id=msg["Message-ID"])

    def _send_smtp(self, msg: MIMEMultipart, to_addr: str) -> None:
        with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as smtp:
            if self._use_tls:
                smtp.ehlo()
                smtp.starttls()
                smtp.ehlo()
            if self._username:
                smtp.login(self._username, self._password)
            smtp.sendmail(self._from, [to_addr], msg.as_string())
            logger.debug("Email alert sent to %s", to_addr)
