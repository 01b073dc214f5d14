"""Fan newly created alerts out to every enabled notification channel.

For each alert:

    toast    always, enqueued synchronously (cheap local feedback)
    desktop  critical alerts only, best-effort
    email    if enabled and (critical, or the account is not critical-only)
    webhook  same policy as email, independent of the email outcome

Everything except the toast runs as a fire-and-forget job on a thread pool,
so ``dispatch`` never blocks the evaluation loop on network I/O. Each job is
isolated: one channel failing cannot stop, delay or undo another, and no
channel outcome touches the alert store.
"""
from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable

from ..alerts.store import Alert
from ..rules.model import Severity
from .base import ChannelPolicy, NotificationChannel, SendOutcome, SendStatus
from .toast import ToastQueue

logger = logging.getLogger(__name__)

OutcomeHook = Callable[[Alert, SendOutcome], None]


class NotificationDispatcher:
    """Dispatch alerts to channels.

    Args:
        toast:           In-app toast queue (always used).
        desktop:         Native notification channel, or None.
        email:           Email channel, or None when not configured.
        webhook:         Chat webhook channel, or None when not configured.
        email_policy:    Account switch for email.
        webhook_policy:  Account switch for the webhook.
        max_workers:     Threads for concurrent sends.
        on_outcome:      Optional hook called with every channel outcome.
    """

    def __init__(
        self,
        toast: ToastQueue,
        desktop: NotificationChannel | None = None,
        email: NotificationChannel | None = None,
        webhook: NotificationChannel | None = None,
        email_policy: ChannelPolicy = ChannelPolicy(),
        webhook_policy: ChannelPolicy = ChannelPolicy(),
        max_workers: int = 4,
        on_outcome: OutcomeHook | None = None,
    ) -> None:
        self.toast = toast
        self.desktop = desktop
        self.email = email
        self.webhook = webhook
        self.email_policy = email_policy
        self.webhook_policy = webhook_policy
        self._on_outcome = on_outcome
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="infrawatch-notify"
        )

    def dispatch(self, alert: Alert) -> None:
        """Notify every applicable channel about ``alert``. Never raises."""
        self._report(alert, self._guarded(self.toast, alert))

        if alert.severity is Severity.CRITICAL and self.desktop is not None:
            self._submit(self.desktop, alert)

        for channel, policy in (
            (self.email, self.email_policy),
            (self.webhook, self.webhook_policy),
        ):
            if channel is not None and self._wants(policy, alert):
                self._submit(channel, alert)

    @staticmethod
    def _wants(policy: ChannelPolicy, alert: Alert) -> bool:
        if not policy.enabled:
            return False
        return alert.severity is Severity.CRITICAL or not policy.critical_only

    def _submit(self, channel: NotificationChannel, alert: Alert) -> Future[None] | None:
        try:
            return self._executor.submit(self._run, channel, alert)
        except RuntimeError as exc:
            logger.warning("Dispatcher shut down; dropping %s send for alert %s: %s",
                           channel.name, alert.id, exc)
            return None

    def _run(self, channel: NotificationChannel, alert: Alert) -> None:
        self._report(alert, self._guarded(channel, alert))

    @staticmethod
    def _guarded(channel: NotificationChannel, alert: Alert) -> SendOutcome:
        try:
            return channel.attempt_send(alert)
        except Exception as exc:
            logger.warning(
                "Channel %s raised for alert %s (rule %s): %s",
                channel.name, alert.id, alert.rule_id, exc,
            )
            return SendOutcome(channel.name, SendStatus.FAILED, str(exc))

    def _report(self, alert: Alert, outcome: SendOutcome) -> None:
        logger.debug("Alert %s via %s: %s", alert.id, outcome.channel, outcome.status.value)
        if self._on_outcome is None:
            return
        try:
            self._on_outcome(alert, outcome)
        except Exception as exc:
            logger.warning("Outcome hook failed: %s", exc)

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting sends; optionally wait for in-flight ones."""
        self._executor.shutdown(wait=wait)
