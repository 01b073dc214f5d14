"""Wiring and run loop.

``build_engine`` assembles the engine, store, dispatcher and channels from
:class:`~infrawatch.config.Settings`. ``Monitor`` ticks a metrics source on
a background thread and feeds a log stream on the calling thread; both go
through the same engine.
"""
from __future__ import annotations

import logging
import threading
from typing import Iterable

from .alerts.engine import AlertEngine
from .alerts.logs import LogLine
from .alerts.metrics import MetricsSource
from .alerts.store import AlertStore
from .config import Settings
from .errors import WebhookConfigError
from .notify.base import ChannelPolicy
from .notify.desktop import DesktopChannel
from .notify.dispatcher import NotificationDispatcher, OutcomeHook
from .notify.email_channel import EmailChannel
from .notify.ratelimit import ChannelRateLimiter
from .notify.toast import ToastQueue
from .notify.webhook import WebhookChannel
from .rules.cache import CachedRuleRepository
from .rules.repository import RuleRepository, load_repository

logger = logging.getLogger(__name__)


def build_repository(settings: Settings) -> RuleRepository:
    repo: RuleRepository = load_repository(settings.rules_file)
    if settings.redis_url:
        repo = CachedRuleRepository(repo, url=settings.redis_url, ttl=settings.rules_cache_ttl)
    return repo


def build_dispatcher(settings: Settings, on_outcome: OutcomeHook | None = None) -> NotificationDispatcher:
    email: EmailChannel | None = None
    if settings.email_enabled:
        if settings.email_to:
            email = EmailChannel(
                to_addr=settings.email_to,
                limiter=ChannelRateLimiter(
                    "email",
                    cooldown_seconds=settings.email_cooldown_minutes * 60,
                    daily_cap=settings.email_daily_cap,
                ),
                host=settings.smtp_host,
                port=settings.smtp_port,
                username=settings.smtp_user,
                password=settings.smtp_password,
                from_addr=settings.email_from,
                use_tls=settings.smtp_use_tls,
                timeout=settings.smtp_timeout,
                subject_prefix=settings.email_subject_prefix,
            )
        else:
            logger.warning("Email alerts enabled but no recipient configured; email disabled")

    webhook: WebhookChannel | None = None
    if settings.webhook_enabled:
        try:
            webhook = WebhookChannel(
                settings.webhook_url,
                limiter=ChannelRateLimiter(
                    "webhook",
                    cooldown_seconds=settings.webhook_cooldown_minutes * 60,
                    daily_cap=settings.webhook_daily_cap,
                ),
                timeout=settings.webhook_timeout,
            )
        except WebhookConfigError as exc:
            logger.error("Webhook disabled: %s", exc)

    return NotificationDispatcher(
        toast=ToastQueue(capacity=settings.toast_capacity),
        desktop=DesktopChannel(enabled=settings.desktop_enabled),
        email=email,
        webhook=webhook,
        email_policy=ChannelPolicy(
            enabled=email is not None, critical_only=settings.email_critical_only
        ),
        webhook_policy=ChannelPolicy(
            enabled=webhook is not None, critical_only=settings.webhook_critical_only
        ),
        max_workers=settings.dispatch_workers,
        on_outcome=on_outcome,
    )


def build_engine(
    settings: Settings,
    dispatch: bool = True,
    on_outcome: OutcomeHook | None = None,
) -> AlertEngine:
    """Return a fully wired :class:`AlertEngine`.

    With ``dispatch=False`` alerts are stored but no channel is notified.
    """
    dispatcher = build_dispatcher(settings, on_outcome) if dispatch else None
    return AlertEngine(
        build_repository(settings),
        store=AlertStore(retention=settings.alert_retention),
        dispatcher=dispatcher,
    )


class Monitor:
    """Drive an engine from a metrics source and a log stream.

    Usage::

        monitor = Monitor(engine, SnapshotFileSource("metrics.jsonl"), interval=5)
        monitor.start()
        try:
            monitor.run_logs(lines)
        finally:
            monitor.stop()
    """

    def __init__(
        self,
        engine: AlertEngine,
        metrics_source: MetricsSource | None = None,
        interval: float = 5.0,
    ) -> None:
        self.engine = engine
        self.metrics_source = metrics_source
        self.interval = interval
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._consecutive_failures = 0

    @property
    def stop_event(self) -> threading.Event:
        return self._stop

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the metrics tick thread. No-op without a metrics source."""
        if self.metrics_source is None or self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run_loop, name="infrawatch-metrics", daemon=True
        )
        self._thread.start()
        logger.info("Metrics monitor started (every %ss)", self.interval)

    def stop(self) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None
        logger.info("Monitor stopped")

    def _run_loop(self) -> None:
        # first tick immediately, then on the interval
        while True:
            self.tick()
            if self._stop.wait(self.interval):
                break

    def tick(self) -> None:
        """Read one snapshot and evaluate it. Errors are logged, never raised."""
        if self.metrics_source is None:
            return
        try:
            snapshot = self.metrics_source.read()
            self.engine.evaluate_snapshot(snapshot)
            self._consecutive_failures = 0
        except Exception as exc:
            self._consecutive_failures += 1
            logger.error(
                "Metrics tick failed (%d consecutive): %s", self._consecutive_failures, exc
            )

    def run_logs(self, lines: Iterable[LogLine]) -> int:
        """Evaluate log lines until the iterable ends or :meth:`stop` is called.

        Returns the number of lines evaluated.
        """
        count = 0
        for line in lines:
            if self._stop.is_set():
                break
            self.engine.evaluate_log_line(line)
            count += 1
        return count
