"""Slack-style chat webhook alert channel.

The webhook URL is validated against a fixed shape at construction; an
invalid URL is a configuration error and never reaches send time.

Example payload::

    {
        "text": ":rotating_light: CPU critical",
        "blocks": [
            {"type": "header", "text": {"type": "plain_text", "text": ":rotating_light: CPU critical"}},
            {"type": "section", "fields": [{"type": "mrkdwn", "text": "*Severity:*\\ncritical"}, ...]},
            {"type": "context", "elements": [{"type": "mrkdwn", "text": "infrawatch | 2025-08-01T10:00:00+00:00"}]}
        ]
    }
"""
from __future__ import annotations

import json
import logging
import re
import urllib.error
import urllib.request
from typing import Any

from ..alerts.store import Alert
from ..errors import WebhookConfigError, WebhookSendError
from ..rules.model import Severity
from .base import SendOutcome, SendStatus
from .ratelimit import ChannelRateLimiter, RateDecision

logger = logging.getLogger(__name__)

WEBHOOK_URL_PATTERN = re.compile(
    r"^https://hooks\.slack\.com/services/[A-Za-z0-9]+/[A-Za-z0-9]+/[A-Za-z0-9]+$"
)

_SEVERITY_EMOJI = {
    Severity.CRITICAL: ":rotating_light:",
    Severity.WARNING: ":warning:",
    Severity.INFO: ":information_source:",
}


def validate_webhook_url(url: str) -> str:
    if not url or not WEBHOOK_URL_PATTERN.match(url):
        raise WebhookConfigError("Invalid Slack webhook URL format")
    return url


def build_payload(alert: Alert) -> dict[str, Any]:
    """Header block, a field section and a context footer."""
    title = f"{_SEVERITY_EMOJI.get(alert.severity, ':bell:')} {alert.rule_name}"
    return {
        "text": title,
        "blocks": [
            {
                "type": "header",
                "text": {"type": "plain_text", "text": title[:150], "emoji": True},
            },
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": alert.message[:3000]},
                "fields": [
                    {"type": "mrkdwn", "text": f"*Severity:*\n{alert.severity.value}"},
                    {"type": "mrkdwn", "text": f"*Category:*\n{alert.category.value}"},
                    {"type": "mrkdwn", "text": f"*Value:*\n{alert.value:.1f}"},
                    {"type": "mrkdwn", "text": f"*Threshold:*\n{alert.threshold:g}"},
                ],
            },
            {
                "type": "context",
                "elements": [
                    {
                        "type": "mrkdwn",
                        "text": f"infrawatch | rule `{alert.rule_id}` | {alert.created_at.isoformat()}",
                    }
                ],
            },
        ],
    }


class WebhookChannel:
    """POST alert messages to a chat incoming webhook."""

    def __init__(self, webhook_url: str, limiter: ChannelRateLimiter, timeout: float = 5.0) -> None:
        self._url = validate_webhook_url(webhook_url)
        self._limiter = limiter
        self._timeout = timeout

    @property
    def name(self) -> str:
        return "webhook"

    @property
    def limiter(self) -> ChannelRateLimiter:
        return self._limiter

    def attempt_send(self, alert: Alert) -> SendOutcome:
        decision = self._limiter.check_and_reserve(alert.rule_id)
        if decision is RateDecision.DAILY_LIMIT:
            logger.info("Webhook for rule %s suppressed: daily limit reached", alert.rule_id)
            return SendOutcome(self.name, SendStatus.SUPPRESSED_DAILY_LIMIT, "Daily webhook limit reached")
        if decision is RateDecision.COOLDOWN:
            logger.info("Webhook for rule %s suppressed: cooldown active", alert.rule_id)
            return SendOutcome(self.name, SendStatus.SUPPRESSED_COOLDOWN, "Webhook cooldown active for this rule")

        try:
            self._post(build_payload(alert))
        except WebhookSendError as exc:
            logger.warning(
                "Failed to post webhook for alert %s (rule %s): %s", alert.id, alert.rule_id, exc
            )
            return SendOutcome(self.name, SendStatus.FAILED, str(exc))
        return SendOutcome(self.name, SendStatus.SENT)

    def _post(self, payload: dict[str, Any]) -> None:
        data = json.dumps(payload).encode()
        req = urllib.request.Request(
            self._url,
            data=data,
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        try:
            with urllib.request.urlopen(req, timeout=self._timeout) as resp:
                status = resp.status
        except urllib.error.HTTPError as exc:
            raise WebhookSendError(f"Webhook returned HTTP {exc.code}", status=exc.code) from exc
        except OSError as exc:
            raise WebhookSendError(f"Webhook unreachable: {exc}") from exc
        if not 200 <= status < 300:
            raise WebhookSendError(f"Webhook returned HTTP {status}", status=status)
